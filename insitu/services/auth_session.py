"""
Per-client authentication session.

Holds the current identity and token for one client, delegates to AuthService
and normalizes every failure into an AuthError carrying a user-facing message.
"""
import logging
from typing import Callable, List, Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from insitu.core.config import Settings, settings as default_settings
from insitu.core.constants import ERROR_MESSAGES
from insitu.core.database import get_db_session
from insitu.core.exceptions import AccessRestrictedError, AuthError
from insitu.database.models import Account
from insitu.schemas.auth import AuthIdentity, UserLogin, UserRegister
from insitu.services.auth_service import AuthService, account_to_identity, check_email_allowed
from insitu.services.database_service import DatabaseService

logger = logging.getLogger(__name__)

AuthListener = Callable[[Optional[AuthIdentity]], None]


class AuthSession:
    def __init__(
        self,
        auth_service: AuthService,
        database_service: DatabaseService,
        session_factory: async_sessionmaker,
        settings: Optional[Settings] = None,
    ):
        self.auth_service = auth_service
        self.database_service = database_service
        self.session_factory = session_factory
        self.settings = settings or default_settings
        self._identity: Optional[AuthIdentity] = None
        self._token: Optional[str] = None
        self._listeners: List[AuthListener] = []

    @property
    def identity(self) -> Optional[AuthIdentity]:
        return self._identity

    @property
    def token(self) -> Optional[str]:
        return self._token

    @property
    def is_authenticated(self) -> bool:
        return self._identity is not None

    @property
    def is_admin(self) -> bool:
        return self._identity is not None and self._identity.is_admin

    def subscribe(self, listener: AuthListener) -> Callable[[], None]:
        """Register a callback fired whenever the identity changes"""
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def _set_identity(self, identity: Optional[AuthIdentity], token: Optional[str]):
        changed = identity != self._identity
        self._identity = identity
        self._token = token
        if changed:
            for listener in list(self._listeners):
                listener(identity)

    def _ensure_allowed(self, email: str):
        if not check_email_allowed(email, self.settings.allowed_emails):
            logger.warning(f"Sign-in blocked for non-whitelisted email: {email}")
            raise AccessRestrictedError(ERROR_MESSAGES["restricted"])

    async def _establish(self, db, account: Account) -> AuthIdentity:
        """Issue a token for the account and make sure its profile exists"""
        identity = account_to_identity(account)
        token = self.auth_service.create_access_token(data={"sub": account.id})

        try:
            await self.database_service.ensure_user_profile(db, account.id, account.email, account.name or "")
        except Exception as e:
            logger.error(f"Failed to ensure profile for {account.id}: {e}", exc_info=True)

        self._set_identity(identity, token)
        return identity

    async def login(self, credentials: UserLogin) -> AuthIdentity:
        self._ensure_allowed(credentials.email)
        try:
            async with get_db_session(self.session_factory) as db:
                account = await self.auth_service.authenticate(db, credentials.email, credentials.password)
                if not account:
                    raise AuthError(ERROR_MESSAGES["login"])
                identity = await self._establish(db, account)
        except AuthError:
            raise
        except Exception as e:
            logger.error(f"Login error: {e}", exc_info=True)
            raise AuthError(ERROR_MESSAGES["login"]) from None

        logger.info(f"Login successful for {identity.email}")
        return identity

    async def register(self, data: UserRegister) -> AuthIdentity:
        self._ensure_allowed(data.email)
        try:
            async with get_db_session(self.session_factory) as db:
                if await self.auth_service.get_account_by_email(db, data.email):
                    raise AuthError(ERROR_MESSAGES["register"])
                await self.auth_service.create_account(
                    db, email=data.email, password=data.password, name=data.name, auth_provider="email"
                )
        except AuthError:
            raise
        except Exception as e:
            logger.error(f"Registration error: {e}", exc_info=True)
            raise AuthError(ERROR_MESSAGES["register"]) from None

        return await self.login(UserLogin(email=data.email, password=data.password))

    async def login_with_google(self, google_token: str) -> AuthIdentity:
        """Complete the OAuth callback with a Google ID token"""
        try:
            async with get_db_session(self.session_factory) as db:
                result = await self.auth_service.authenticate_google(db, google_token)
                if not result:
                    raise AuthError(ERROR_MESSAGES["google"])
                account, is_new = result
                self._ensure_allowed(account.email)
                identity = await self._establish(db, account)
        except AuthError:
            raise
        except Exception as e:
            logger.error(f"Google OAuth error: {e}", exc_info=True)
            raise AuthError(ERROR_MESSAGES["google"]) from None

        logger.info(f"Google auth successful for {identity.email} (new_user={is_new})")
        return identity

    async def logout(self):
        if not self.is_authenticated:
            raise AuthError(ERROR_MESSAGES["logout"])
        email = self._identity.email
        self._set_identity(None, None)
        logger.info(f"Logged out {email}")

    async def get_current_identity(self, token: Optional[str] = None) -> Optional[AuthIdentity]:
        """
        Re-establish the identity from a token (startup, OAuth redirect).
        No valid session is not an error: it resolves to None.
        """
        token = token or self._token
        if not token:
            self._set_identity(None, None)
            return None

        try:
            async with get_db_session(self.session_factory) as db:
                identity = await self.auth_service.identity_from_token(db, token)
        except Exception as e:
            logger.warning(f"No active session: {e}")
            identity = None

        self._set_identity(identity, token if identity else None)
        return identity
