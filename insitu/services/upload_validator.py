"""
Upload constraints: per-file size/type filtering and the capped upload batch
"""
import logging
from typing import Iterable, Iterator, List, Sequence

from insitu.core.constants import ERROR_MESSAGES
from insitu.core.exceptions import BatchLimitError
from insitu.services.image_codec import SourceFile

logger = logging.getLogger(__name__)

DEFAULT_MAX_FILE_SIZE = 10 * 1024 * 1024
DEFAULT_ALLOWED_TYPES = ("image/jpeg", "image/png", "image/webp")
DEFAULT_MAX_FILES = 4


class UploadValidator:
    """Filters candidate uploads; never touches an existing batch."""

    def __init__(self, max_file_size: int = DEFAULT_MAX_FILE_SIZE, allowed_types: Iterable[str] = DEFAULT_ALLOWED_TYPES):
        self.max_file_size = max_file_size
        self.allowed_types = frozenset(allowed_types)

    def is_valid(self, candidate: SourceFile) -> bool:
        if candidate.size > self.max_file_size:
            logger.warning(f"File {candidate.filename} exceeds size limit ({candidate.size} bytes)")
            return False
        if candidate.mime_type not in self.allowed_types:
            logger.warning(f"File {candidate.filename} has unsupported format {candidate.mime_type}")
            return False
        return True

    def filter(self, candidates: Sequence[SourceFile]) -> List[SourceFile]:
        return [candidate for candidate in candidates if self.is_valid(candidate)]


class UploadBatch:
    """
    Ordered product photos awaiting generation.

    Insertion order is preserved because the first entry is used as the
    record's source image. The length never exceeds max_files.
    """

    def __init__(self, max_files: int = DEFAULT_MAX_FILES):
        self.max_files = max_files
        self._files: List[SourceFile] = []

    def __len__(self) -> int:
        return len(self._files)

    def __iter__(self) -> Iterator[SourceFile]:
        return iter(self._files)

    def __getitem__(self, index: int) -> SourceFile:
        return self._files[index]

    @property
    def files(self) -> List[SourceFile]:
        return list(self._files)

    def merge(self, candidates: Sequence[SourceFile]) -> List[SourceFile]:
        """Append all candidates, or none of them if the cap would be exceeded."""
        if len(self._files) + len(candidates) > self.max_files:
            raise BatchLimitError(ERROR_MESSAGES["max_files"].format(max_files=self.max_files))
        self._files.extend(candidates)
        return list(candidates)

    def remove(self, index: int) -> SourceFile:
        if index < 0 or index >= len(self._files):
            raise IndexError(f"No image at position {index}")
        removed = self._files.pop(index)
        removed.release()
        return removed

    def clear(self) -> List[SourceFile]:
        removed, self._files = self._files, []
        for source in removed:
            source.release()
        return removed
