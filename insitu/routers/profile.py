"""
Profile API routes
"""
import logging

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from insitu.core.auth import get_app_context, get_current_identity
from insitu.core.context import AppContext
from insitu.core.database import get_db
from insitu.core.exceptions import NotFoundError, PersistenceError
from insitu.schemas.auth import AuthIdentity
from insitu.schemas.profile import ProfileUpdate, UserProfileRecord
from insitu.services.image_codec import SourceFile
from insitu.services.upload_validator import UploadValidator

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("", response_model=UserProfileRecord)
async def get_profile(
    identity: AuthIdentity = Depends(get_current_identity),
    context: AppContext = Depends(get_app_context),
    db: AsyncSession = Depends(get_db),
):
    """Get the signed-in user's profile, creating it if it is missing"""
    return await context.database_service.ensure_user_profile(db, identity.id, identity.email, identity.name)


@router.patch("", response_model=UserProfileRecord)
async def update_profile(
    updates: ProfileUpdate,
    identity: AuthIdentity = Depends(get_current_identity),
    context: AppContext = Depends(get_app_context),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await context.database_service.update_user_profile(db, identity.id, updates)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.post("/avatar", response_model=UserProfileRecord)
async def upload_avatar(
    file: UploadFile = File(...),
    identity: AuthIdentity = Depends(get_current_identity),
    context: AppContext = Depends(get_app_context),
    db: AsyncSession = Depends(get_db),
):
    """Upload an avatar image; same size and type limits as product images"""
    content = await file.read()
    candidate = SourceFile.from_bytes(file.filename or "avatar", file.content_type or "", content)

    validator = UploadValidator(context.settings.max_file_size, context.settings.allowed_image_types)
    if not validator.is_valid(candidate):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Unsupported avatar image")

    await context.database_service.ensure_user_profile(db, identity.id, identity.email, identity.name)
    try:
        return await context.database_service.upload_avatar(
            db, identity.id, context.file_storage, content, candidate.mime_type
        )
    except PersistenceError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))
