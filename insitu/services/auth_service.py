"""
Authentication service for accounts, JWT tokens, and Google OAuth
"""
import logging
from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Tuple

import bcrypt
from google.auth.transport import requests as google_requests
from google.oauth2 import id_token
from jose import JWTError, jwt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from insitu.core.config import Settings, settings as default_settings
from insitu.database.models import Account
from insitu.schemas.auth import AuthIdentity

logger = logging.getLogger(__name__)


def check_email_allowed(email: str, allowed_emails: Optional[Iterable[str]]) -> bool:
    """Check if email is in the whitelist. Returns True if whitelist is disabled or email is allowed."""
    if allowed_emails is None:
        return True
    return email.lower() in [e.lower() for e in allowed_emails]


def account_to_identity(account: Account) -> AuthIdentity:
    return AuthIdentity(
        id=account.id,
        email=account.email,
        name=account.name or "",
        labels=list(account.labels or []),
    )


class AuthService:
    """Service for authentication operations"""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or default_settings

    def verify_password(self, plain_password: str, hashed_password: str) -> bool:
        """Verify a password against its hash"""
        return bcrypt.checkpw(plain_password.encode("utf-8"), hashed_password.encode("utf-8"))

    def hash_password(self, password: str) -> str:
        """Hash a password using bcrypt"""
        return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")

    def create_access_token(self, data: dict, expires_delta: Optional[timedelta] = None) -> str:
        """Create a JWT access token"""
        to_encode = data.copy()
        if expires_delta:
            expire = datetime.utcnow() + expires_delta
        else:
            expire = datetime.utcnow() + timedelta(minutes=self.settings.access_token_expire_minutes)
        to_encode.update({"exp": expire})
        return jwt.encode(to_encode, self.settings.secret_key, algorithm=self.settings.algorithm)

    def decode_token(self, token: str) -> Optional[dict]:
        """Decode and validate a JWT token"""
        try:
            return jwt.decode(token, self.settings.secret_key, algorithms=[self.settings.algorithm])
        except JWTError as e:
            logger.warning(f"JWT decode error: {e}")
            return None

    async def verify_google_token(self, token: str) -> Optional[dict]:
        """Verify a Google OAuth token and return user info"""
        try:
            idinfo = id_token.verify_oauth2_token(token, google_requests.Request(), self.settings.google_client_id)
            return {
                "google_id": idinfo["sub"],
                "email": idinfo["email"],
                "name": idinfo.get("name", ""),
            }
        except Exception as e:
            logger.error(f"Google token verification failed: {e}")
            return None

    async def get_account_by_email(self, db: AsyncSession, email: str) -> Optional[Account]:
        result = await db.execute(select(Account).where(Account.email == email))
        return result.scalar_one_or_none()

    async def get_account_by_id(self, db: AsyncSession, account_id: str) -> Optional[Account]:
        result = await db.execute(select(Account).where(Account.id == account_id))
        return result.scalar_one_or_none()

    async def get_account_by_google_id(self, db: AsyncSession, google_id: str) -> Optional[Account]:
        result = await db.execute(select(Account).where(Account.google_id == google_id))
        return result.scalar_one_or_none()

    async def create_account(
        self,
        db: AsyncSession,
        email: str,
        password: Optional[str] = None,
        name: Optional[str] = None,
        auth_provider: str = "email",
        google_id: Optional[str] = None,
        labels: Optional[List[str]] = None,
    ) -> Account:
        """Create a new account"""
        account = Account(
            email=email,
            hashed_password=self.hash_password(password) if password else None,
            name=name,
            auth_provider=auth_provider,
            google_id=google_id,
            labels=labels or [],
        )

        db.add(account)
        await db.commit()
        await db.refresh(account)

        logger.info(f"Created new account: {email} (provider: {auth_provider})")
        return account

    async def authenticate(self, db: AsyncSession, email: str, password: str) -> Optional[Account]:
        """Authenticate an account with email and password"""
        account = await self.get_account_by_email(db, email)
        if not account or not account.is_active:
            return None
        if not account.hashed_password:
            # Registered with OAuth, can't use password login
            return None
        if not self.verify_password(password, account.hashed_password):
            return None

        account.last_login = datetime.utcnow()
        await db.commit()
        await db.refresh(account)
        return account

    async def authenticate_google(self, db: AsyncSession, google_token: str) -> Optional[Tuple[Account, bool]]:
        """
        Authenticate or create an account via Google OAuth.
        Returns (account, is_new) or None if the token is invalid.
        """
        google_info = await self.verify_google_token(google_token)
        if not google_info:
            return None

        account = await self.get_account_by_google_id(db, google_info["google_id"])
        is_new = False

        if not account:
            account = await self.get_account_by_email(db, google_info["email"])
            if account:
                # Link Google account to existing email account
                account.google_id = google_info["google_id"]
                account.auth_provider = "google"
                if not account.name:
                    account.name = google_info["name"]
            else:
                account = await self.create_account(
                    db,
                    email=google_info["email"],
                    name=google_info["name"],
                    auth_provider="google",
                    google_id=google_info["google_id"],
                )
                is_new = True

        account.last_login = datetime.utcnow()
        await db.commit()
        await db.refresh(account)
        return account, is_new

    async def identity_from_token(self, db: AsyncSession, token: str) -> Optional[AuthIdentity]:
        """Resolve a bearer token to an identity; anything invalid resolves to None"""
        payload = self.decode_token(token)
        if not payload or not payload.get("sub"):
            return None

        account = await self.get_account_by_id(db, payload["sub"])
        if not account or not account.is_active:
            return None
        return account_to_identity(account)
