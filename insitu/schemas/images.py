"""
Pydantic schemas for generated images, favorites and shares
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class GenerationSettings(BaseModel):
    model: str
    style: Optional[str] = None
    quality: Optional[str] = None
    size: Optional[str] = None


class ImageDimensions(BaseModel):
    width: int = Field(..., ge=0)
    height: int = Field(..., ge=0)


class ImageMetadata(BaseModel):
    file_size: int = Field(..., ge=0)
    dimensions: ImageDimensions
    format: str


class GeneratedImageCreate(BaseModel):
    """Everything needed to persist a new generated image"""

    user_id: str
    title: str = Field(..., min_length=1, max_length=300)
    description: Optional[str] = None
    prompt: str = Field(..., min_length=1)
    image_url: str
    thumbnail_url: Optional[str] = None
    original_image_url: str = ""
    settings: GenerationSettings
    metadata: ImageMetadata
    is_public: bool = False
    tags: List[str] = []


class GeneratedImageRecord(GeneratedImageCreate):
    """A generated image as read back from the store"""

    id: str
    favorite_count: int = Field(0, ge=0)
    share_count: int = Field(0, ge=0)
    created_at: datetime
    updated_at: datetime


class ImageUpdate(BaseModel):
    """Owner-editable fields"""

    title: Optional[str] = Field(None, min_length=1, max_length=300)
    description: Optional[str] = None
    is_public: Optional[bool] = None
    tags: Optional[List[str]] = None


class ImageListResponse(BaseModel):
    images: List[GeneratedImageRecord]
    limit: int
    offset: int


class FavoriteRecord(BaseModel):
    id: str
    user_id: str
    image_id: str
    created_at: datetime

    class Config:
        from_attributes = True


class ShareCreate(BaseModel):
    expires_at: Optional[datetime] = None


class ShareRecord(BaseModel):
    id: str
    user_id: str
    image_id: str
    token: str
    share_url: str
    expires_at: Optional[datetime] = None
    view_count: int = Field(0, ge=0)
    is_active: bool = True
    created_at: datetime

    class Config:
        from_attributes = True


class SharedImageResponse(BaseModel):
    share: ShareRecord
    image: GeneratedImageRecord


class SystemStats(BaseModel):
    total_users: int
    total_images: int
    public_images: int
    total_favorites: int
    total_shares: int
