"""
Authentication API routes
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, status

from insitu.core.auth import get_client_session, get_current_identity
from insitu.core.context import ClientSession
from insitu.core.exceptions import AccessRestrictedError, AuthError
from insitu.schemas.auth import AuthIdentity, AuthStatusResponse, GoogleAuthRequest, TokenResponse, UserLogin, UserRegister

logger = logging.getLogger(__name__)
router = APIRouter()


def _auth_http_error(error: AuthError) -> HTTPException:
    if isinstance(error, AccessRestrictedError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(error))
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(error))


def _token_response(session: ClientSession) -> TokenResponse:
    return TokenResponse(access_token=session.auth.token, user=session.auth.identity)


@router.post("/register", response_model=TokenResponse)
async def register(user_data: UserRegister, session: ClientSession = Depends(get_client_session)):
    """
    Register a new user with email and password and sign the session in.
    """
    try:
        await session.auth.register(user_data)
    except AuthError as e:
        raise _auth_http_error(e)
    return _token_response(session)


@router.post("/login", response_model=TokenResponse)
async def login(credentials: UserLogin, session: ClientSession = Depends(get_client_session)):
    try:
        await session.auth.login(credentials)
    except AuthError as e:
        raise _auth_http_error(e)
    return _token_response(session)


@router.post("/google", response_model=TokenResponse)
async def google_auth(request: GoogleAuthRequest, session: ClientSession = Depends(get_client_session)):
    """
    Complete the Google OAuth callback. Creates the account on first sign-in.
    """
    try:
        await session.auth.login_with_google(request.token)
    except AuthError as e:
        raise _auth_http_error(e)
    return _token_response(session)


@router.post("/logout")
async def logout(session: ClientSession = Depends(get_client_session)):
    try:
        await session.auth.logout()
    except AuthError as e:
        raise _auth_http_error(e)
    return {"message": "Logged out successfully"}


@router.get("/me", response_model=AuthIdentity)
async def get_current_user_info(identity: AuthIdentity = Depends(get_current_identity)):
    return identity


@router.get("/status", response_model=AuthStatusResponse)
async def get_auth_status(session: ClientSession = Depends(get_client_session)):
    """
    Check authentication status. Returns authenticated=false when the
    session has no identity.
    """
    identity = session.auth.identity
    if identity:
        return AuthStatusResponse(authenticated=True, is_admin=identity.is_admin, user=identity)
    return AuthStatusResponse(authenticated=False)
