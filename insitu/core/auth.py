"""
Client-session and authentication dependencies for FastAPI routes
"""
import logging
from typing import Optional

from fastapi import Depends, HTTPException, Request, Response, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from insitu.core.context import AppContext, ClientSession
from insitu.core.database import get_db
from insitu.schemas.auth import AuthIdentity

logger = logging.getLogger(__name__)

SESSION_HEADER = "X-Session-ID"

# HTTP Bearer token scheme
security = HTTPBearer(auto_error=False)


def get_app_context(request: Request) -> AppContext:
    return request.app.state.context


async def get_client_session(
    request: Request,
    response: Response,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    context: AppContext = Depends(get_app_context),
) -> ClientSession:
    """
    Resolve the caller's client session from the X-Session-ID header,
    creating one when the id is missing or unknown. A bearer token restores
    the identity on a session that is not signed in yet.
    """
    session = context.get_or_create_session(request.headers.get(SESSION_HEADER))
    response.headers[SESSION_HEADER] = session.id

    if credentials and not session.auth.is_authenticated:
        await session.auth.get_current_identity(credentials.credentials)

    return session


async def get_current_identity(session: ClientSession = Depends(get_client_session)) -> AuthIdentity:
    """
    Dependency to get the current authenticated identity.
    Raises 401 if not authenticated.
    """
    if not session.auth.identity:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return session.auth.identity


async def get_optional_identity(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    context: AppContext = Depends(get_app_context),
    db: AsyncSession = Depends(get_db),
) -> Optional[AuthIdentity]:
    """
    Identity for read-only lookups. Uses an existing client session or a
    bearer token, and never creates a session.
    """
    session = context.get_session(request.headers.get(SESSION_HEADER))
    if session is not None and session.auth.identity:
        return session.auth.identity
    if credentials:
        return await context.auth_service.identity_from_token(db, credentials.credentials)
    return None


async def require_admin(identity: AuthIdentity = Depends(get_current_identity)) -> AuthIdentity:
    """
    Dependency that requires an admin label.
    Raises 403 if the identity doesn't have sufficient permissions.
    """
    if not identity.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin privileges required",
        )
    return identity
