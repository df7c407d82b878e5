"""
Shared pytest fixtures and configuration for all tests
"""
import io
from typing import AsyncGenerator
from unittest.mock import AsyncMock, Mock

import pytest
from PIL import Image
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from insitu.core.config import Settings
from insitu.core.database import create_tables
from insitu.services.gemini_service import GeneratedImage
from insitu.services.image_codec import SourceFile


def make_image_bytes(color="red", size=(64, 48), image_format="PNG") -> bytes:
    img = Image.new("RGB", size, color=color)
    buffer = io.BytesIO()
    img.save(buffer, format=image_format)
    return buffer.getvalue()


def make_source(name="product.png", mime_type="image/png", color="red") -> SourceFile:
    image_format = "JPEG" if mime_type == "image/jpeg" else "PNG"
    return SourceFile.from_bytes(name, mime_type, make_image_bytes(color, image_format=image_format))


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    """Settings isolated from the environment and the working directory"""
    return Settings(
        database_url="sqlite+aiosqlite://",
        upload_path=str(tmp_path / "uploads"),
        google_ai_api_key="",
        secret_key="test-secret-key",
        share_base_url="http://testserver/shared",
        allowed_emails=None,
        log_format="console",
        environment="test",
    )


@pytest.fixture
async def test_engine():
    """In-memory database shared by every connection of one test"""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
        echo=False,
    )
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker:
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh database session for each test"""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def png_bytes() -> bytes:
    return make_image_bytes("blue", size=(320, 200))


@pytest.fixture
def generated_image(png_bytes) -> GeneratedImage:
    return GeneratedImage(data=png_bytes, mime_type="image/png")


@pytest.fixture
def mock_gateway(generated_image):
    """Gemini gateway stand-in that returns one image"""
    mock = Mock()
    mock.model = "gemini-2.5-flash-image-preview"
    mock.usage_stats = {"total_requests": 0, "successful_requests": 0, "failed_requests": 0}
    mock.generate = AsyncMock(return_value=generated_image)
    return mock


@pytest.fixture
def mock_google_ai_client():
    """Mock Google GenAI client for testing without API calls"""
    mock = Mock()
    mock.models = Mock()
    mock.models.generate_content = Mock()
    return mock


@pytest.fixture
def source_factory():
    """Build in-memory uploads: source_factory(name, mime_type, color)"""
    return make_source


@pytest.fixture
def image_factory():
    """Build encoded image bytes: image_factory(color, size, image_format)"""
    return make_image_bytes
