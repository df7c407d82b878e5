"""
FastAPI main application for the product in-situ placer
"""
import logging
import os
import re
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.staticfiles import StaticFiles

from insitu.core.config import Settings, settings as default_settings
from insitu.core.context import AppContext
from insitu.core.logging import setup_logging
from insitu.middleware.logging_middleware import RequestLoggingMiddleware
from insitu.routers import admin, auth, images, navigation, profile, workspace

logger = logging.getLogger(__name__)


def _mask(value: str) -> str:
    return f"{value[:7]}...{value[-4:]}" if len(value) > 11 else "***"


def _log_environment(settings: Settings):
    logger.info("=" * 60)
    logger.info("ENVIRONMENT CHECK")
    logger.info("=" * 60)

    if settings.google_ai_api_key:
        logger.info(f"GOOGLE_AI_API_KEY is set: {_mask(settings.google_ai_api_key)}")
    else:
        logger.error("GOOGLE_AI_API_KEY is NOT set - image generation will not work!")

    sanitized = re.sub(r":\/\/[^:]*:[^@]*@", "://***:***@", settings.database_url)
    logger.info(f"DATABASE_URL: {sanitized}")

    if settings.allowed_emails is not None:
        logger.info(f"Sign-in restricted to {len(settings.allowed_emails)} email(s)")
    logger.info("=" * 60)


def create_app(settings: Optional[Settings] = None, context: Optional[AppContext] = None) -> FastAPI:
    settings = settings or (context.settings if context else default_settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager"""
        setup_logging(settings)
        logger.info(f"Starting {settings.app_name}...")
        _log_environment(settings)

        if getattr(app.state, "context", None) is None:
            app.state.context = AppContext(settings)
        await app.state.context.startup()
        logger.info("Application started")

        yield

        logger.info(f"Shutting down {settings.app_name}...")
        await app.state.context.shutdown()
        logger.info("Application stopped")

    app = FastAPI(
        title=settings.app_name,
        description="Place product photos into AI-generated scenes",
        version=settings.version,
        lifespan=lifespan,
        docs_url="/docs" if settings.environment == "development" else None,
        redoc_url="/redoc" if settings.environment == "development" else None,
    )
    app.state.context = context

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Session-ID", "X-Request-ID"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=1000)
    app.add_middleware(RequestLoggingMiddleware)

    @app.get("/health")
    async def health_check():
        """Health check endpoint for load balancers"""
        return {
            "status": "healthy",
            "timestamp": time.time(),
            "version": settings.version,
            "gemini_configured": bool(settings.google_ai_api_key),
        }

    @app.get("/")
    async def root():
        """Root endpoint with API information"""
        return {
            "name": settings.app_name,
            "version": settings.version,
            "docs": "/docs" if settings.environment == "development" else None,
            "endpoints": {
                "auth": "/api/auth",
                "workspace": "/api/workspace",
                "images": "/api/images",
                "shared": "/api/shared",
                "profile": "/api/profile",
                "admin": "/api/admin",
                "navigation": "/api/navigation",
            },
        }

    app.include_router(auth.router, prefix="/api/auth", tags=["auth"])
    app.include_router(workspace.router, prefix="/api/workspace", tags=["workspace"])
    app.include_router(images.router, prefix="/api/images", tags=["images"])
    app.include_router(images.shared_router, prefix="/api/shared", tags=["shared"])
    app.include_router(profile.router, prefix="/api/profile", tags=["profile"])
    app.include_router(admin.router, prefix="/api/admin", tags=["admin"])
    app.include_router(navigation.router, prefix="/api/navigation", tags=["navigation"])

    # Generated images, thumbnails and avatars
    os.makedirs(settings.upload_path, exist_ok=True)
    app.mount(settings.public_files_url, StaticFiles(directory=settings.upload_path), name="files")

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "insitu.main:app",
        host="0.0.0.0",
        port=8000,
        reload=default_settings.environment == "development",
        log_config=None,  # Use our custom logging
        access_log=False,  # We handle this in middleware
    )
