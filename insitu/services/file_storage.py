"""
File storage for generated images, thumbnails, source photos and avatars.
Files are written under the upload path and served by the app's static mount.
"""
import asyncio
import logging
import mimetypes
import uuid
from pathlib import Path
from typing import Optional

from insitu.core.config import Settings, settings as default_settings
from insitu.core.exceptions import PersistenceError

logger = logging.getLogger(__name__)

IMAGES_BUCKET = "images"
THUMBNAILS_BUCKET = "thumbnails"
SOURCES_BUCKET = "sources"
AVATARS_BUCKET = "avatars"

_EXTENSIONS = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/webp": ".webp",
}


class FileStorageService:
    def __init__(self, settings: Optional[Settings] = None, root: Optional[Path] = None):
        self.settings = settings or default_settings
        self.root = Path(root or self.settings.upload_path)
        self.public_url = self.settings.public_files_url.rstrip("/")

    def _extension_for(self, mime_type: str) -> str:
        return _EXTENSIONS.get(mime_type) or mimetypes.guess_extension(mime_type) or ".bin"

    def path_for(self, bucket: str, name: str) -> Path:
        return self.root / bucket / name

    def url_for(self, bucket: str, name: str) -> str:
        return f"{self.public_url}/{bucket}/{name}"

    async def upload(self, bucket: str, data: bytes, mime_type: str) -> str:
        """Store bytes under a fresh name and return the durable URL"""
        name = f"{uuid.uuid4().hex}{self._extension_for(mime_type)}"
        path = self.path_for(bucket, name)

        def _write():
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)

        try:
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, _write)
        except OSError as e:
            logger.error(f"Failed to store file in {bucket}: {e}")
            raise PersistenceError("Failed to store file") from e

        logger.info(f"Stored {len(data)} bytes as {bucket}/{name}")
        return self.url_for(bucket, name)
