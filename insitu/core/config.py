"""
Configuration settings for the FastAPI application
"""
from typing import List, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings"""

    # Application
    app_name: str = "Product In-Situ Placer"
    version: str = "2.0.0"
    environment: str = "development"
    debug: bool = True

    # Database
    database_url: str = "sqlite+aiosqlite:///./insitu.db"
    database_pool_size: int = 10
    database_max_overflow: int = 20

    # CORS
    cors_origins: List[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]

    # Google AI Studio
    google_ai_api_key: str = ""
    google_ai_image_model: str = "gemini-2.5-flash-image-preview"
    google_ai_temperature: float = 0.7
    google_ai_top_p: float = 0.8
    google_ai_top_k: int = 40

    # File upload
    upload_path: str = "./data/uploads"
    public_files_url: str = "/files"
    max_file_size: int = 10 * 1024 * 1024  # 10MB
    max_files_count: int = 4
    allowed_image_types: List[str] = ["image/jpeg", "image/png", "image/webp"]
    thumbnail_size: int = 256

    # Generation
    require_auth_for_generation: bool = True
    persist_generations: bool = True
    default_image_public: bool = False
    use_placement_preamble: bool = True

    # Client sessions
    session_idle_timeout: int = 60 * 60  # seconds
    max_sessions: int = 1000

    # Sharing
    share_base_url: str = "http://localhost:5173/shared"

    # Pagination
    default_page_size: int = 20
    max_page_size: int = 100

    # Security
    secret_key: str = "your-secret-key-change-in-production"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24
    google_client_id: str = ""
    allowed_emails: Optional[List[str]] = None

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"
    log_dir: Optional[str] = None  # rotating JSON log files when set

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"  # Allow extra fields from .env


# Global settings instance
settings = Settings()
