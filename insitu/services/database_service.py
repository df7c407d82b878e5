"""
Persistence service for profiles, generated images, favorites and shares.

Rows are always converted to pydantic records on the way out, so a malformed
row fails loudly at this boundary instead of leaking into callers.
"""
import logging
import secrets
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import String, case, cast, delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from insitu.core.config import Settings, settings as default_settings
from insitu.core.exceptions import NotFoundError, PermissionDeniedError
from insitu.database.models import Favorite, GeneratedImage, Share, UserProfile
from insitu.schemas.images import (
    FavoriteRecord,
    GeneratedImageCreate,
    GeneratedImageRecord,
    ImageUpdate,
    ShareRecord,
    SystemStats,
)
from insitu.schemas.profile import ProfilePreferences, ProfileUpdate, UserProfileRecord
from insitu.services.file_storage import AVATARS_BUCKET, FileStorageService

logger = logging.getLogger(__name__)

USER_STATS = ("images_generated", "favorite_count", "share_count")
IMAGE_COUNTERS = ("favorite_count", "share_count")


def _profile_to_record(profile: UserProfile) -> UserProfileRecord:
    return UserProfileRecord.model_validate(
        {
            "id": profile.id,
            "user_id": profile.user_id,
            "email": profile.email,
            "name": profile.name,
            "avatar": profile.avatar,
            "bio": profile.bio,
            "preferences": profile.preferences or {},
            "stats": {
                "images_generated": profile.images_generated,
                "favorite_count": profile.favorite_count,
                "share_count": profile.share_count,
            },
            "created_at": profile.created_at,
            "updated_at": profile.updated_at,
        }
    )


def _image_to_record(image: GeneratedImage) -> GeneratedImageRecord:
    return GeneratedImageRecord.model_validate(
        {
            "id": image.id,
            "user_id": image.user_id,
            "title": image.title,
            "description": image.description,
            "prompt": image.prompt,
            "image_url": image.image_url,
            "thumbnail_url": image.thumbnail_url,
            "original_image_url": image.original_image_url or "",
            "settings": image.settings,
            "metadata": image.image_metadata,
            "is_public": image.is_public,
            "tags": image.tags or [],
            "favorite_count": image.favorite_count,
            "share_count": image.share_count,
            "created_at": image.created_at,
            "updated_at": image.updated_at,
        }
    )


def _increment(column):
    return column + 1


def _decrement(column):
    # Counters never go below zero
    return case((column > 0, column - 1), else_=0)


class DatabaseService:
    """Document-style operations over the SQL store"""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or default_settings

    # ------------------------------------------------------------------
    # User profiles
    # ------------------------------------------------------------------

    async def _get_profile_row(self, db: AsyncSession, user_id: str) -> Optional[UserProfile]:
        query = select(UserProfile).where(UserProfile.user_id == user_id).execution_options(populate_existing=True)
        result = await db.execute(query)
        return result.scalar_one_or_none()

    async def create_user_profile(self, db: AsyncSession, user_id: str, email: str, name: str) -> UserProfileRecord:
        profile = UserProfile(
            user_id=user_id,
            email=email,
            name=name,
            preferences=ProfilePreferences().model_dump(mode="json"),
        )
        db.add(profile)
        await db.commit()
        await db.refresh(profile)

        logger.info(f"Created profile for user {user_id}")
        return _profile_to_record(profile)

    async def get_user_profile(self, db: AsyncSession, user_id: str) -> Optional[UserProfileRecord]:
        profile = await self._get_profile_row(db, user_id)
        return _profile_to_record(profile) if profile else None

    async def ensure_user_profile(self, db: AsyncSession, user_id: str, email: str, name: str) -> UserProfileRecord:
        """Return the user's profile, creating it on first sign-in"""
        existing = await self.get_user_profile(db, user_id)
        if existing:
            return existing
        return await self.create_user_profile(db, user_id, email, name)

    async def update_user_profile(self, db: AsyncSession, user_id: str, updates: ProfileUpdate) -> UserProfileRecord:
        profile = await self._get_profile_row(db, user_id)
        if not profile:
            raise NotFoundError("Profile not found")

        changes = updates.model_dump(exclude_unset=True, mode="json")
        for key, value in changes.items():
            setattr(profile, key, value)
        profile.updated_at = datetime.utcnow()

        await db.commit()
        await db.refresh(profile)
        return _profile_to_record(profile)

    async def upload_avatar(
        self, db: AsyncSession, user_id: str, storage: FileStorageService, data: bytes, mime_type: str
    ) -> UserProfileRecord:
        """Store an avatar image and point the profile at it"""
        avatar_url = await storage.upload(AVATARS_BUCKET, data, mime_type)
        return await self.update_user_profile(db, user_id, ProfileUpdate(avatar=avatar_url))

    async def increment_user_stat(self, db: AsyncSession, user_id: str, stat: str):
        await self._adjust_user_stat(db, user_id, stat, _increment)

    async def decrement_user_stat(self, db: AsyncSession, user_id: str, stat: str):
        await self._adjust_user_stat(db, user_id, stat, _decrement)

    async def _adjust_user_stat(self, db: AsyncSession, user_id: str, stat: str, adjust):
        if stat not in USER_STATS:
            raise ValueError(f"Unknown user stat: {stat}")
        column = getattr(UserProfile, stat)
        statement = (
            update(UserProfile)
            .where(UserProfile.user_id == user_id)
            .values({stat: adjust(column)})
            .execution_options(synchronize_session=False)
        )
        await db.execute(statement)
        await db.commit()

    # ------------------------------------------------------------------
    # Generated images
    # ------------------------------------------------------------------

    async def _get_image_row(self, db: AsyncSession, image_id: str) -> Optional[GeneratedImage]:
        return await db.get(GeneratedImage, image_id, populate_existing=True)

    async def _get_owned_image_row(self, db: AsyncSession, image_id: str, user_id: str) -> GeneratedImage:
        image = await self._get_image_row(db, image_id)
        if not image:
            raise NotFoundError("Image not found")
        if image.user_id != user_id:
            raise PermissionDeniedError("You do not own this image")
        return image

    async def save_generated_image(self, db: AsyncSession, image_data: GeneratedImageCreate) -> GeneratedImageRecord:
        """Persist a new image with zeroed counters and bump the owner's stats"""
        payload = image_data.model_dump(mode="json")
        image = GeneratedImage(
            user_id=payload["user_id"],
            title=payload["title"],
            description=payload["description"],
            prompt=payload["prompt"],
            image_url=payload["image_url"],
            thumbnail_url=payload["thumbnail_url"],
            original_image_url=payload["original_image_url"],
            settings=payload["settings"],
            image_metadata=payload["metadata"],
            is_public=payload["is_public"],
            tags=payload["tags"],
            favorite_count=0,
            share_count=0,
        )
        db.add(image)
        await db.commit()
        await db.refresh(image)

        await self.increment_user_stat(db, image.user_id, "images_generated")

        logger.info(f"Saved generated image {image.id} for user {image.user_id}")
        return _image_to_record(image)

    async def get_user_images(
        self, db: AsyncSession, user_id: str, limit: int = 20, offset: int = 0
    ) -> List[GeneratedImageRecord]:
        query = (
            select(GeneratedImage)
            .where(GeneratedImage.user_id == user_id)
            .order_by(GeneratedImage.created_at.desc())
            .limit(limit)
            .offset(offset)
            .execution_options(populate_existing=True)
        )
        result = await db.execute(query)
        return [_image_to_record(image) for image in result.scalars().all()]

    async def get_public_images(self, db: AsyncSession, limit: int = 20, offset: int = 0) -> List[GeneratedImageRecord]:
        query = (
            select(GeneratedImage)
            .where(GeneratedImage.is_public.is_(True))
            .order_by(GeneratedImage.created_at.desc())
            .limit(limit)
            .offset(offset)
            .execution_options(populate_existing=True)
        )
        result = await db.execute(query)
        return [_image_to_record(image) for image in result.scalars().all()]

    async def get_image_by_id(self, db: AsyncSession, image_id: str) -> Optional[GeneratedImageRecord]:
        image = await self._get_image_row(db, image_id)
        return _image_to_record(image) if image else None

    async def update_image(
        self, db: AsyncSession, image_id: str, user_id: str, updates: ImageUpdate
    ) -> GeneratedImageRecord:
        image = await self._get_owned_image_row(db, image_id, user_id)

        for key, value in updates.model_dump(exclude_unset=True).items():
            setattr(image, key, value)
        image.updated_at = datetime.utcnow()

        await db.commit()
        await db.refresh(image)
        return _image_to_record(image)

    async def delete_image(self, db: AsyncSession, image_id: str, user_id: str):
        await self._get_owned_image_row(db, image_id, user_id)

        favorited_by = (await db.execute(select(Favorite.user_id).where(Favorite.image_id == image_id))).scalars().all()
        shared_by = (await db.execute(select(Share.user_id).where(Share.image_id == image_id))).scalars().all()

        await db.execute(delete(Favorite).where(Favorite.image_id == image_id))
        await db.execute(delete(Share).where(Share.image_id == image_id))
        await db.execute(delete(GeneratedImage).where(GeneratedImage.id == image_id))
        await db.commit()

        await self.decrement_user_stat(db, user_id, "images_generated")
        for fan_id in favorited_by:
            await self.decrement_user_stat(db, fan_id, "favorite_count")
        for sharer_id in shared_by:
            await self.decrement_user_stat(db, sharer_id, "share_count")
        logger.info(f"Deleted image {image_id} for user {user_id}")

    async def _adjust_image_counter(self, db: AsyncSession, image_id: str, counter: str, adjust):
        if counter not in IMAGE_COUNTERS:
            raise ValueError(f"Unknown image counter: {counter}")
        column = getattr(GeneratedImage, counter)
        statement = (
            update(GeneratedImage)
            .where(GeneratedImage.id == image_id)
            .values({counter: adjust(column)})
            .execution_options(synchronize_session=False)
        )
        await db.execute(statement)
        await db.commit()

    # ------------------------------------------------------------------
    # Favorites
    # ------------------------------------------------------------------

    async def _get_favorite_row(self, db: AsyncSession, user_id: str, image_id: str) -> Optional[Favorite]:
        query = select(Favorite).where(Favorite.user_id == user_id, Favorite.image_id == image_id)
        result = await db.execute(query)
        return result.scalar_one_or_none()

    async def add_to_favorites(self, db: AsyncSession, user_id: str, image_id: str) -> FavoriteRecord:
        """Favorite an image. Favoriting twice returns the existing favorite."""
        if not await self._get_image_row(db, image_id):
            raise NotFoundError("Image not found")

        existing = await self._get_favorite_row(db, user_id, image_id)
        if existing:
            return FavoriteRecord.model_validate(existing)

        favorite = Favorite(user_id=user_id, image_id=image_id)
        db.add(favorite)
        await db.commit()
        await db.refresh(favorite)

        await self._adjust_image_counter(db, image_id, "favorite_count", _increment)
        await self.increment_user_stat(db, user_id, "favorite_count")

        return FavoriteRecord.model_validate(favorite)

    async def remove_from_favorites(self, db: AsyncSession, user_id: str, image_id: str) -> bool:
        favorite = await self._get_favorite_row(db, user_id, image_id)
        if not favorite:
            return False

        await db.delete(favorite)
        await db.commit()

        await self._adjust_image_counter(db, image_id, "favorite_count", _decrement)
        await self.decrement_user_stat(db, user_id, "favorite_count")
        return True

    async def get_user_favorites(
        self, db: AsyncSession, user_id: str, limit: int = 20, offset: int = 0
    ) -> List[GeneratedImageRecord]:
        query = (
            select(GeneratedImage)
            .join(Favorite, Favorite.image_id == GeneratedImage.id)
            .where(Favorite.user_id == user_id)
            .order_by(Favorite.created_at.desc())
            .limit(limit)
            .offset(offset)
            .execution_options(populate_existing=True)
        )
        result = await db.execute(query)
        return [_image_to_record(image) for image in result.scalars().all()]

    async def is_favorited(self, db: AsyncSession, user_id: str, image_id: str) -> bool:
        return await self._get_favorite_row(db, user_id, image_id) is not None

    # ------------------------------------------------------------------
    # Shares
    # ------------------------------------------------------------------

    async def create_share(
        self, db: AsyncSession, user_id: str, image_id: str, expires_at: Optional[datetime] = None
    ) -> ShareRecord:
        if not await self._get_image_row(db, image_id):
            raise NotFoundError("Image not found")

        token = secrets.token_urlsafe(16)
        share = Share(
            user_id=user_id,
            image_id=image_id,
            token=token,
            share_url=f"{self.settings.share_base_url.rstrip('/')}/{token}",
            expires_at=expires_at,
            view_count=0,
            is_active=True,
        )
        db.add(share)
        await db.commit()
        await db.refresh(share)

        await self._adjust_image_counter(db, image_id, "share_count", _increment)
        await self.increment_user_stat(db, user_id, "share_count")

        logger.info(f"Created share {share.id} for image {image_id}")
        return ShareRecord.model_validate(share)

    async def get_share_by_token(self, db: AsyncSession, token: str) -> Optional[ShareRecord]:
        """Resolve a share link; inactive or expired shares resolve to None"""
        query = select(Share).where(Share.token == token).execution_options(populate_existing=True)
        result = await db.execute(query)
        share = result.scalar_one_or_none()

        if not share or not share.is_active:
            return None
        if share.expires_at is not None and share.expires_at <= datetime.utcnow():
            return None
        return ShareRecord.model_validate(share)

    async def increment_share_view(self, db: AsyncSession, share_id: str):
        statement = (
            update(Share)
            .where(Share.id == share_id)
            .values(view_count=Share.view_count + 1)
            .execution_options(synchronize_session=False)
        )
        await db.execute(statement)
        await db.commit()

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    async def search_images(self, db: AsyncSession, query: str, limit: int = 20) -> List[GeneratedImageRecord]:
        """Case-insensitive match on title, description, prompt and tags of public images"""
        query = query.strip()
        if not query:
            return []

        escaped = query.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        pattern = f"%{escaped}%"
        statement = (
            select(GeneratedImage)
            .where(
                GeneratedImage.is_public.is_(True),
                or_(
                    GeneratedImage.title.ilike(pattern, escape="\\"),
                    GeneratedImage.description.ilike(pattern, escape="\\"),
                    GeneratedImage.prompt.ilike(pattern, escape="\\"),
                    cast(GeneratedImage.tags, String).ilike(pattern, escape="\\"),
                ),
            )
            .order_by(GeneratedImage.created_at.desc())
            .limit(limit)
        )
        result = await db.execute(statement)
        return [_image_to_record(image) for image in result.scalars().all()]

    # ------------------------------------------------------------------
    # Admin
    # ------------------------------------------------------------------

    async def get_all_users(self, db: AsyncSession, limit: int = 50, offset: int = 0) -> List[UserProfileRecord]:
        query = (
            select(UserProfile)
            .order_by(UserProfile.created_at.desc())
            .limit(limit)
            .offset(offset)
            .execution_options(populate_existing=True)
        )
        result = await db.execute(query)
        return [_profile_to_record(profile) for profile in result.scalars().all()]

    async def get_system_stats(self, db: AsyncSession) -> SystemStats:
        counts: Dict[str, Any] = {}
        for key, statement in {
            "total_users": select(func.count()).select_from(UserProfile),
            "total_images": select(func.count()).select_from(GeneratedImage),
            "public_images": select(func.count())
            .select_from(GeneratedImage)
            .where(GeneratedImage.is_public.is_(True)),
            "total_favorites": select(func.count()).select_from(Favorite),
            "total_shares": select(func.count()).select_from(Share),
        }.items():
            counts[key] = (await db.execute(statement)).scalar() or 0
        return SystemStats(**counts)
