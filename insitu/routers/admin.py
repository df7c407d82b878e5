"""
Admin API routes. Every endpoint requires an identity with an admin label.
"""
import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from insitu.core.auth import get_app_context, require_admin
from insitu.core.context import AppContext
from insitu.core.database import get_db
from insitu.schemas.auth import AuthIdentity
from insitu.schemas.images import SystemStats
from insitu.schemas.profile import UserListResponse

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/users", response_model=UserListResponse)
async def list_users(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    admin: AuthIdentity = Depends(require_admin),
    context: AppContext = Depends(get_app_context),
    db: AsyncSession = Depends(get_db),
):
    users = await context.database_service.get_all_users(db, limit=limit, offset=offset)
    logger.info(f"Admin {admin.email} listed {len(users)} users")
    return UserListResponse(users=users, limit=limit, offset=offset)


@router.get("/stats", response_model=SystemStats)
async def get_stats(
    admin: AuthIdentity = Depends(require_admin),
    context: AppContext = Depends(get_app_context),
    db: AsyncSession = Depends(get_db),
):
    return await context.database_service.get_system_stats(db)


@router.get("/generation-usage")
async def get_generation_usage(
    admin: AuthIdentity = Depends(require_admin),
    context: AppContext = Depends(get_app_context),
):
    """Gemini call counters since startup"""
    return context.gateway.usage_stats
