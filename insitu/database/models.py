"""
Database models for In-Situ Placer
"""
import uuid
from datetime import datetime

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def _uuid() -> str:
    return str(uuid.uuid4())


class Account(Base):
    """Sign-in credentials and role labels (the auth side of a user)"""

    __tablename__ = "accounts"

    id = Column(String(36), primary_key=True, default=_uuid)
    email = Column(String(255), unique=True, nullable=False, index=True)
    hashed_password = Column(String(255), nullable=True)  # Null for OAuth-only accounts
    name = Column(String(200), nullable=True)
    labels = Column(JSON, nullable=False, default=list)  # e.g. ["admin"]
    auth_provider = Column(String(20), nullable=False, default="email")
    google_id = Column(String(255), unique=True, nullable=True, index=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    last_login = Column(DateTime, nullable=True)

    def __repr__(self):
        return f"<Account(id={self.id}, email='{self.email}', provider='{self.auth_provider}')>"


class UserProfile(Base):
    """Display data, preferences and aggregate stats for an account"""

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("accounts.id"), unique=True, nullable=False, index=True)
    email = Column(String(255), nullable=False)
    name = Column(String(200), nullable=False, default="")
    avatar = Column(Text, nullable=True)
    bio = Column(Text, nullable=True)
    preferences = Column(JSON, nullable=False, default=dict)

    # Stats mirrored from generated_images / favorites / shares
    images_generated = Column(Integer, nullable=False, default=0)
    favorite_count = Column(Integer, nullable=False, default=0)
    share_count = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<UserProfile(id={self.id}, user_id={self.user_id}, images={self.images_generated})>"


class GeneratedImage(Base):
    """A product placement image produced by Gemini"""

    __tablename__ = "generated_images"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("accounts.id"), nullable=False, index=True)
    title = Column(String(300), nullable=False)
    description = Column(Text, nullable=True)
    prompt = Column(Text, nullable=False)

    image_url = Column(Text, nullable=False)
    thumbnail_url = Column(Text, nullable=True)
    original_image_url = Column(Text, nullable=False, default="")

    settings = Column(JSON, nullable=False, default=dict)  # model, style, quality, size
    image_metadata = Column("metadata", JSON, nullable=False, default=dict)  # file_size, dimensions, format

    is_public = Column(Boolean, default=False, nullable=False, index=True)
    tags = Column(JSON, nullable=False, default=list)
    favorite_count = Column(Integer, nullable=False, default=0)
    share_count = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (Index("idx_generated_images_public_created", "is_public", "created_at"),)

    def __repr__(self):
        return f"<GeneratedImage(id={self.id}, user_id={self.user_id}, public={self.is_public})>"


class Favorite(Base):
    __tablename__ = "favorites"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("accounts.id"), nullable=False, index=True)
    image_id = Column(String(36), ForeignKey("generated_images.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (UniqueConstraint("user_id", "image_id", name="uq_favorite_user_image"),)


class Share(Base):
    __tablename__ = "shares"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("accounts.id"), nullable=False, index=True)
    image_id = Column(String(36), ForeignKey("generated_images.id", ondelete="CASCADE"), nullable=False, index=True)
    token = Column(String(64), unique=True, nullable=False, index=True)
    share_url = Column(Text, nullable=False)
    expires_at = Column(DateTime, nullable=True)
    view_count = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
