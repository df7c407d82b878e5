"""
Navigation API routes: drive the client router and resolve views
"""
import logging

from fastapi import APIRouter, Depends, Query

from insitu.core.auth import get_client_session
from insitu.core.context import ClientSession
from insitu.navigation.router import RenderDecision
from insitu.schemas.navigation import NavigateRequest, NavigationResponse, RenderDecisionResponse

logger = logging.getLogger(__name__)
router = APIRouter()


def _decision_response(decision: RenderDecision) -> RenderDecisionResponse:
    return RenderDecisionResponse(
        kind=decision.kind.value,
        view=decision.view,
        path=decision.path,
        route=decision.route.path if decision.route else None,
        params=decision.params,
    )


def _navigation_response(session: ClientSession) -> NavigationResponse:
    return NavigationResponse(
        current_path=session.router.current_path,
        history=list(session.router.history),
        decision=_decision_response(session.router.resolve()),
    )


@router.get("", response_model=NavigationResponse)
async def get_navigation(session: ClientSession = Depends(get_client_session)):
    return _navigation_response(session)


@router.get("/resolve", response_model=RenderDecisionResponse)
async def resolve_path(path: str = Query(..., min_length=1), session: ClientSession = Depends(get_client_session)):
    """Decide what would render at a path without navigating"""
    return _decision_response(session.router.resolve(path))


@router.post("/navigate", response_model=NavigationResponse)
async def navigate(request: NavigateRequest, session: ClientSession = Depends(get_client_session)):
    session.router.navigate(request.path)
    return _navigation_response(session)


@router.post("/back", response_model=NavigationResponse)
async def go_back(session: ClientSession = Depends(get_client_session)):
    session.router.go_back()
    return _navigation_response(session)


@router.post("/popstate", response_model=NavigationResponse)
async def pop_state(request: NavigateRequest, session: ClientSession = Depends(get_client_session)):
    """The host moved through its own history (back/forward buttons)"""
    session.router.handle_pop_state(request.path)
    return _navigation_response(session)
