"""
Image encoding helpers: uploaded file -> base64 payload, payload -> data URL,
plus Pillow helpers for record metadata and thumbnails
"""
import asyncio
import base64
import binascii
import io
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from PIL import Image, ImageOps

from insitu.core.exceptions import ImageReadError

logger = logging.getLogger(__name__)


@dataclass
class SourceFile:
    """An uploaded product photo held in memory until it is released"""

    filename: str
    mime_type: str
    size: int
    content: Optional[bytes] = field(default=None, repr=False)

    @classmethod
    def from_bytes(cls, filename: str, mime_type: str, content: bytes) -> "SourceFile":
        return cls(filename=filename, mime_type=mime_type, size=len(content), content=content)

    @property
    def released(self) -> bool:
        return self.content is None

    async def read(self) -> bytes:
        if self.content is None:
            raise ImageReadError(f"Failed to read file {self.filename}")
        return self.content

    def release(self):
        self.content = None


@dataclass(frozen=True)
class EncodedImage:
    """Base64 image bytes plus the declared MIME type"""

    data: str
    mime_type: str


async def encode(source: SourceFile) -> EncodedImage:
    """Read a source file and base64 encode it"""
    raw = await source.read()
    encoded = base64.b64encode(raw).decode("utf-8")
    if not encoded:
        raise ImageReadError(f"Failed to extract base64 data from {source.filename}")
    return EncodedImage(data=encoded, mime_type=source.mime_type)


async def encode_all(sources: Sequence[SourceFile]) -> List[EncodedImage]:
    """Encode every file concurrently; results keep the input order."""
    return list(await asyncio.gather(*(encode(source) for source in sources)))


def to_data_url(data_b64: str, mime_type: str = "image/png") -> str:
    return f"data:{mime_type};base64,{data_b64}"


def decode_data_url(data_url: str) -> Tuple[bytes, str]:
    """Split a data URL back into raw bytes and MIME type"""
    if not data_url.startswith("data:") or "," not in data_url:
        raise ValueError("Not a base64 data URL")

    header, payload = data_url.split(",", 1)
    mime_type = header[len("data:"):].split(";")[0] or "application/octet-stream"
    try:
        return base64.b64decode(payload, validate=True), mime_type
    except binascii.Error as e:
        raise ValueError(f"Invalid base64 payload: {e}") from e


def describe_image(image_bytes: bytes) -> Tuple[int, int, str]:
    """Return (width, height, format) for encoded image bytes"""
    with Image.open(io.BytesIO(image_bytes)) as img:
        width, height = img.size
        image_format = (img.format or "png").lower()
    return width, height, image_format


def make_thumbnail(image_bytes: bytes, max_size: int = 256) -> bytes:
    """Downscale an image to fit in max_size x max_size, encoded as PNG"""
    with Image.open(io.BytesIO(image_bytes)) as img:
        # Apply EXIF correction
        thumb = ImageOps.exif_transpose(img)
        if thumb.mode not in ("RGB", "RGBA"):
            thumb = thumb.convert("RGBA")
        thumb.thumbnail((max_size, max_size))

        buffer = io.BytesIO()
        thumb.save(buffer, format="PNG")

    logger.debug(f"Created thumbnail {thumb.width}x{thumb.height}px")
    return buffer.getvalue()
