"""
Generated image API routes: galleries, search, favorites and share links
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from insitu.core.auth import get_app_context, get_current_identity, get_optional_identity
from insitu.core.config import settings
from insitu.core.context import AppContext
from insitu.core.database import get_db
from insitu.core.exceptions import NotFoundError, PermissionDeniedError
from insitu.schemas.auth import AuthIdentity
from insitu.schemas.images import (
    FavoriteRecord,
    GeneratedImageRecord,
    ImageListResponse,
    ImageUpdate,
    ShareCreate,
    ShareRecord,
    SharedImageResponse,
)

logger = logging.getLogger(__name__)
router = APIRouter()
shared_router = APIRouter()

PageLimit = Query(settings.default_page_size, ge=1, le=settings.max_page_size)
PageOffset = Query(0, ge=0)


def _http_error(error: Exception) -> HTTPException:
    if isinstance(error, PermissionDeniedError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(error))
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(error))


def _can_view(image: GeneratedImageRecord, identity: Optional[AuthIdentity]) -> bool:
    return image.is_public or (identity is not None and identity.id == image.user_id)


@router.get("/mine", response_model=ImageListResponse)
async def list_my_images(
    limit: int = PageLimit,
    offset: int = PageOffset,
    identity: AuthIdentity = Depends(get_current_identity),
    context: AppContext = Depends(get_app_context),
    db: AsyncSession = Depends(get_db),
):
    images = await context.database_service.get_user_images(db, identity.id, limit=limit, offset=offset)
    return ImageListResponse(images=images, limit=limit, offset=offset)


@router.get("/public", response_model=ImageListResponse)
async def list_public_images(
    limit: int = PageLimit,
    offset: int = PageOffset,
    context: AppContext = Depends(get_app_context),
    db: AsyncSession = Depends(get_db),
):
    images = await context.database_service.get_public_images(db, limit=limit, offset=offset)
    return ImageListResponse(images=images, limit=limit, offset=offset)


@router.get("/search", response_model=List[GeneratedImageRecord])
async def search_images(
    q: str = Query("", max_length=200),
    limit: int = PageLimit,
    context: AppContext = Depends(get_app_context),
    db: AsyncSession = Depends(get_db),
):
    """Search public images by title, description, prompt or tag"""
    return await context.database_service.search_images(db, q, limit=limit)


@router.get("/favorites", response_model=ImageListResponse)
async def list_favorites(
    limit: int = PageLimit,
    offset: int = PageOffset,
    identity: AuthIdentity = Depends(get_current_identity),
    context: AppContext = Depends(get_app_context),
    db: AsyncSession = Depends(get_db),
):
    images = await context.database_service.get_user_favorites(db, identity.id, limit=limit, offset=offset)
    return ImageListResponse(images=images, limit=limit, offset=offset)


@router.get("/{image_id}", response_model=GeneratedImageRecord)
async def get_image(
    image_id: str,
    identity: Optional[AuthIdentity] = Depends(get_optional_identity),
    context: AppContext = Depends(get_app_context),
    db: AsyncSession = Depends(get_db),
):
    """Private images are only visible to their owner"""
    image = await context.database_service.get_image_by_id(db, image_id)
    if not image or not _can_view(image, identity):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Image not found")
    return image


@router.patch("/{image_id}", response_model=GeneratedImageRecord)
async def update_image(
    image_id: str,
    updates: ImageUpdate,
    identity: AuthIdentity = Depends(get_current_identity),
    context: AppContext = Depends(get_app_context),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await context.database_service.update_image(db, image_id, identity.id, updates)
    except (NotFoundError, PermissionDeniedError) as e:
        raise _http_error(e)


@router.delete("/{image_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_image(
    image_id: str,
    identity: AuthIdentity = Depends(get_current_identity),
    context: AppContext = Depends(get_app_context),
    db: AsyncSession = Depends(get_db),
):
    try:
        await context.database_service.delete_image(db, image_id, identity.id)
    except (NotFoundError, PermissionDeniedError) as e:
        raise _http_error(e)


@router.get("/{image_id}/favorite")
async def get_favorite_status(
    image_id: str,
    identity: AuthIdentity = Depends(get_current_identity),
    context: AppContext = Depends(get_app_context),
    db: AsyncSession = Depends(get_db),
):
    return {"favorited": await context.database_service.is_favorited(db, identity.id, image_id)}


@router.post("/{image_id}/favorite", response_model=FavoriteRecord, status_code=status.HTTP_201_CREATED)
async def add_favorite(
    image_id: str,
    identity: AuthIdentity = Depends(get_current_identity),
    context: AppContext = Depends(get_app_context),
    db: AsyncSession = Depends(get_db),
):
    image = await context.database_service.get_image_by_id(db, image_id)
    if not image or not _can_view(image, identity):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Image not found")
    return await context.database_service.add_to_favorites(db, identity.id, image_id)


@router.delete("/{image_id}/favorite", status_code=status.HTTP_204_NO_CONTENT)
async def remove_favorite(
    image_id: str,
    identity: AuthIdentity = Depends(get_current_identity),
    context: AppContext = Depends(get_app_context),
    db: AsyncSession = Depends(get_db),
):
    if not await context.database_service.remove_from_favorites(db, identity.id, image_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Favorite not found")


@router.post("/{image_id}/share", response_model=ShareRecord, status_code=status.HTTP_201_CREATED)
async def share_image(
    image_id: str,
    share: Optional[ShareCreate] = None,
    identity: AuthIdentity = Depends(get_current_identity),
    context: AppContext = Depends(get_app_context),
    db: AsyncSession = Depends(get_db),
):
    """Create a share link. Only the owner can share a private image."""
    image = await context.database_service.get_image_by_id(db, image_id)
    if not image or not _can_view(image, identity):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Image not found")

    expires_at = share.expires_at if share else None
    return await context.database_service.create_share(db, identity.id, image_id, expires_at=expires_at)


@shared_router.get("/{token}", response_model=SharedImageResponse)
async def get_shared_image(
    token: str,
    context: AppContext = Depends(get_app_context),
    db: AsyncSession = Depends(get_db),
):
    """Resolve a share link and count the view"""
    share = await context.database_service.get_share_by_token(db, token)
    if not share:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Share link not found or expired")

    image = await context.database_service.get_image_by_id(db, share.image_id)
    if not image:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Image not found")

    await context.database_service.increment_share_view(db, share.id)
    share = share.model_copy(update={"view_count": share.view_count + 1})
    return SharedImageResponse(share=share, image=image)
