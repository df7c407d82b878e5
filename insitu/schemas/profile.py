"""
Pydantic schemas for user profiles
"""
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class ThemeEnum(str, Enum):
    LIGHT = "light"
    DARK = "dark"
    SYSTEM = "system"


class ProfilePreferences(BaseModel):
    theme: ThemeEnum = ThemeEnum.SYSTEM
    notifications: bool = True
    public_profile: bool = False


class ProfileStats(BaseModel):
    images_generated: int = Field(0, ge=0)
    favorite_count: int = Field(0, ge=0)
    share_count: int = Field(0, ge=0)


class UserProfileRecord(BaseModel):
    id: str
    user_id: str
    email: str
    name: str
    avatar: Optional[str] = None
    bio: Optional[str] = None
    preferences: ProfilePreferences
    stats: ProfileStats
    created_at: datetime
    updated_at: datetime


class ProfileUpdate(BaseModel):
    """Schema for profile edits. Stats are not editable."""

    name: Optional[str] = Field(None, min_length=1, max_length=200)
    bio: Optional[str] = Field(None, max_length=1000)
    avatar: Optional[str] = None
    preferences: Optional[ProfilePreferences] = None


class UserListResponse(BaseModel):
    users: List[UserProfileRecord]
    limit: int
    offset: int
