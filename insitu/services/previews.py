"""
Transient preview handles for uploaded images (the server-side counterpart of
browser object URLs). A handle stays resolvable until it is revoked.
"""
import logging
import uuid
from typing import Dict, Optional, Tuple

logger = logging.getLogger(__name__)


class PreviewRegistry:
    def __init__(self):
        self._previews: Dict[str, Tuple[bytes, str]] = {}

    def __len__(self) -> int:
        return len(self._previews)

    def __contains__(self, handle: str) -> bool:
        return handle in self._previews

    def create(self, content: bytes, mime_type: str) -> str:
        handle = uuid.uuid4().hex
        self._previews[handle] = (content, mime_type)
        return handle

    def get(self, handle: str) -> Optional[Tuple[bytes, str]]:
        return self._previews.get(handle)

    def revoke(self, handle: str) -> bool:
        if self._previews.pop(handle, None) is None:
            return False
        logger.debug(f"Revoked preview {handle}")
        return True

    def revoke_all(self):
        self._previews.clear()
