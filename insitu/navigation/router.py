"""
Navigation router: tracks the current path and history, matches it against
the route table and decides which view to render given the signed-in identity.
"""
import enum
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence

from insitu.navigation.location import Location, MemoryLocation
from insitu.navigation.routes import DEFAULT_ROUTES, Route, match_route
from insitu.schemas.auth import AuthIdentity

logger = logging.getLogger(__name__)

LOGIN_VIEW = "login"
ACCESS_DENIED_VIEW = "access_denied"
NOT_FOUND_VIEW = "not_found"


class ViewKind(str, enum.Enum):
    ROUTE = "route"
    LOGIN = "login"
    ACCESS_DENIED = "access_denied"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class RenderDecision:
    kind: ViewKind
    view: str
    path: str
    route: Optional[Route] = None
    params: Dict[str, str] = field(default_factory=dict)


def resolve_view(
    path: str,
    routes: Sequence[Route],
    identity: Optional[AuthIdentity],
    login_view: str = LOGIN_VIEW,
    access_denied_view: str = ACCESS_DENIED_VIEW,
    fallback_view: str = NOT_FOUND_VIEW,
) -> RenderDecision:
    route = match_route(path, routes)
    if route is None:
        return RenderDecision(ViewKind.NOT_FOUND, fallback_view, path)

    params = route.params(path)
    if route.requires_auth and identity is None:
        return RenderDecision(ViewKind.LOGIN, login_view, path, route, params)
    if route.admin_only and not (identity is not None and identity.is_admin):
        return RenderDecision(ViewKind.ACCESS_DENIED, access_denied_view, path, route, params)
    view = route.authenticated_view if identity is not None and route.authenticated_view else route.view
    return RenderDecision(ViewKind.ROUTE, view, path, route, params)


RouteListener = Callable[[RenderDecision], None]


class Router:
    """
    Client navigation state. history[-1] == current_path whenever a
    navigation has completed.
    """

    def __init__(
        self,
        identity_provider: Callable[[], Optional[AuthIdentity]],
        routes: Sequence[Route] = DEFAULT_ROUTES,
        location: Optional[Location] = None,
        login_view: str = LOGIN_VIEW,
        access_denied_view: str = ACCESS_DENIED_VIEW,
        fallback_view: str = NOT_FOUND_VIEW,
    ):
        self.identity_provider = identity_provider
        self.routes = list(routes)
        self.location = location or MemoryLocation()
        self.login_view = login_view
        self.access_denied_view = access_denied_view
        self.fallback_view = fallback_view

        self.current_path = self.location.pathname
        self.history: List[str] = [self.current_path]
        self._listeners: List[RouteListener] = []
        self._going_back = False
        self._remove_pop_state_listener = self.location.add_pop_state_listener(self.handle_pop_state)

    def subscribe(self, listener: RouteListener) -> Callable[[], None]:
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def _notify(self):
        decision = self.resolve()
        for listener in list(self._listeners):
            listener(decision)

    def refresh(self):
        """Re-evaluate the current path, e.g. after sign-in or sign-out"""
        self._notify()

    def match(self, path: str) -> Optional[Route]:
        return match_route(path, self.routes)

    def resolve(self, path: Optional[str] = None) -> RenderDecision:
        return resolve_view(
            path if path is not None else self.current_path,
            self.routes,
            self.identity_provider(),
            self.login_view,
            self.access_denied_view,
            self.fallback_view,
        )

    def navigate(self, path: str) -> bool:
        if path == self.current_path:
            return False

        self.history.append(path)
        self.current_path = path
        self.location.push_state(path)
        logger.debug(f"Navigated to {path}")
        self._notify()
        return True

    def go_back(self) -> bool:
        if len(self.history) <= 1:
            return False

        self.history.pop()
        self.current_path = self.history[-1]

        # The host fires pop-state for its own back; we already moved.
        self._going_back = True
        try:
            self.location.back()
        finally:
            self._going_back = False

        self._notify()
        return True

    def handle_pop_state(self, path: str):
        """
        Resync with a host back/forward. The host already moved, so nothing is
        pushed to the location; the router history mirrors the move.
        """
        if self._going_back or path == self.current_path:
            return

        if len(self.history) > 1 and self.history[-2] == path:
            self.history.pop()
        else:
            self.history.append(path)
        self.current_path = path
        self._notify()

    def close(self):
        self._remove_pop_state_listener()
        self._listeners.clear()
