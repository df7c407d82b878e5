"""
Pydantic schemas for authentication
"""
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field


# Request schemas
class UserRegister(BaseModel):
    """Schema for user registration"""

    email: EmailStr
    password: str = Field(..., min_length=8, max_length=100)
    name: str = Field(..., min_length=1, max_length=200)


class UserLogin(BaseModel):
    """Schema for user login"""

    email: EmailStr
    password: str


class GoogleAuthRequest(BaseModel):
    """Schema for Google OAuth authentication"""

    token: str  # Google ID token from the OAuth callback


# Response schemas
class AuthIdentity(BaseModel):
    """The signed-in user's minimal identity"""

    id: str
    email: str
    name: str = ""
    labels: List[str] = []

    @property
    def is_admin(self) -> bool:
        return any("admin" in label for label in self.labels)


class TokenResponse(BaseModel):
    """Schema for token response"""

    access_token: str
    token_type: str = "bearer"
    user: AuthIdentity


class AuthStatusResponse(BaseModel):
    """Schema for checking auth status"""

    authenticated: bool
    is_admin: bool = False
    user: Optional[AuthIdentity] = None
