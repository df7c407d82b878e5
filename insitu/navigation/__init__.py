"""
Client navigation: route matching, history and auth-gated view resolution
"""
from .location import Location, MemoryLocation
from .router import RenderDecision, Router, ViewKind, resolve_view
from .routes import DEFAULT_ROUTES, Route, match_route

__all__ = [
    "DEFAULT_ROUTES",
    "Location",
    "MemoryLocation",
    "RenderDecision",
    "Route",
    "Router",
    "ViewKind",
    "match_route",
    "resolve_view",
]
