"""
Route table and path matching
"""
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

PLACEHOLDER_PREFIX = ":"


def split_path(path: str) -> List[str]:
    return path.split("/")


@dataclass(frozen=True)
class Route:
    """A path pattern mapped to a view, with its access requirements"""

    path: str
    view: str
    requires_auth: bool = False
    admin_only: bool = False
    authenticated_view: Optional[str] = None  # shown instead of view when signed in

    @property
    def segments(self) -> List[str]:
        return split_path(self.path)

    def matches(self, path: str) -> bool:
        if self.path == path:
            return True

        pattern_parts = self.segments
        path_parts = split_path(path)
        if len(pattern_parts) != len(path_parts):
            return False

        return all(
            part.startswith(PLACEHOLDER_PREFIX) or part == path_parts[index]
            for index, part in enumerate(pattern_parts)
        )

    def params(self, path: str) -> Dict[str, str]:
        """Placeholder values captured from a matching path"""
        return {
            part[len(PLACEHOLDER_PREFIX):]: value
            for part, value in zip(self.segments, split_path(path))
            if part.startswith(PLACEHOLDER_PREFIX)
        }


def match_route(path: str, routes: Sequence[Route]) -> Optional[Route]:
    """First route in table order that matches; no specificity ranking."""
    for route in routes:
        if route.matches(path):
            return route
    return None


DEFAULT_ROUTES: List[Route] = [
    Route("/", "landing", authenticated_view="dashboard"),
    Route("/generate", "generate", requires_auth=True),
    Route("/dashboard", "dashboard", requires_auth=True),
    Route("/gallery", "gallery", requires_auth=True),
    Route("/favorites", "favorites", requires_auth=True),
    Route("/profile", "profile", requires_auth=True),
    Route("/search", "search"),
    Route("/images/:imageId", "image_detail"),
    Route("/shared/:token", "shared_image"),
    Route("/admin", "admin", requires_auth=True, admin_only=True),
    Route("/login", "login"),
    Route("/register", "register"),
    Route("/oauth/callback", "oauth_callback"),
]
