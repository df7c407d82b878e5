"""
Generation workspace: upload batch -> validation -> encoding -> Gemini call ->
persistence, driven by an explicit state machine.

States: IDLE -> VALIDATING -> AWAITING_RESULT -> {SUCCESS, FAILURE} -> IDLE.
VALIDATING may go straight to FAILURE when an entry guard rejects the request.
"""
import base64
import enum
import logging
import random
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, FrozenSet, List, Optional, Sequence, Tuple

from sqlalchemy.ext.asyncio import async_sessionmaker

from insitu.core.config import Settings, settings as default_settings
from insitu.core.constants import (
    DEFAULT_QUALITY,
    DEFAULT_SIZE,
    ERROR_MESSAGES,
    LOADING_MESSAGES,
    PRESETS_BY_ID,
)
from insitu.core.database import get_db_session
from insitu.core.exceptions import (
    BatchLimitError,
    EmptyBatchError,
    EmptyPromptError,
    GenerationInProgressError,
    InvalidTransitionError,
    NotFoundError,
    UnauthenticatedError,
    ValidationError,
)
from insitu.schemas.auth import AuthIdentity
from insitu.schemas.images import (
    GeneratedImageCreate,
    GeneratedImageRecord,
    GenerationSettings,
    ImageDimensions,
    ImageMetadata,
)
from insitu.services.database_service import DatabaseService
from insitu.services.file_storage import (
    IMAGES_BUCKET,
    SOURCES_BUCKET,
    THUMBNAILS_BUCKET,
    FileStorageService,
)
from insitu.services.gemini_service import GeminiImageService, GeneratedImage
from insitu.services.image_codec import EncodedImage, SourceFile, describe_image, encode_all, make_thumbnail
from insitu.services.previews import PreviewRegistry
from insitu.services.tag_extractor import extract_tags
from insitu.services.upload_validator import UploadBatch, UploadValidator

logger = logging.getLogger(__name__)


class GenerationState(str, enum.Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    AWAITING_RESULT = "awaiting_result"
    SUCCESS = "success"
    FAILURE = "failure"


TRANSITIONS: Dict[GenerationState, FrozenSet[GenerationState]] = {
    GenerationState.IDLE: frozenset({GenerationState.VALIDATING}),
    GenerationState.VALIDATING: frozenset({GenerationState.AWAITING_RESULT, GenerationState.FAILURE}),
    GenerationState.AWAITING_RESULT: frozenset({GenerationState.SUCCESS, GenerationState.FAILURE}),
    GenerationState.SUCCESS: frozenset({GenerationState.IDLE}),
    GenerationState.FAILURE: frozenset({GenerationState.IDLE}),
}

BUSY_STATES = frozenset({GenerationState.VALIDATING, GenerationState.AWAITING_RESULT})


@dataclass(frozen=True)
class GenerationRequest:
    images: Tuple[EncodedImage, ...]
    prompt: str

    def __post_init__(self):
        if not self.images:
            raise EmptyBatchError(ERROR_MESSAGES["no_images"])
        if not self.prompt.strip():
            raise EmptyPromptError(ERROR_MESSAGES["no_prompt"])


@dataclass(frozen=True)
class PreviewInfo:
    handle: str
    filename: str
    mime_type: str
    size: int


@dataclass(frozen=True)
class WorkspaceSnapshot:
    state: GenerationState
    prompt: str
    loading_message: str
    error: Optional[str]
    result_url: Optional[str]
    record_id: Optional[str]
    previews: Tuple[PreviewInfo, ...] = field(default_factory=tuple)

    @property
    def is_loading(self) -> bool:
        return self.state in BUSY_STATES


IdentityProvider = Callable[[], Optional[AuthIdentity]]


class GenerationOrchestrator:
    """One client's generation workspace"""

    def __init__(
        self,
        gateway: GeminiImageService,
        identity_provider: IdentityProvider,
        settings: Optional[Settings] = None,
        database_service: Optional[DatabaseService] = None,
        file_storage: Optional[FileStorageService] = None,
        session_factory: Optional[async_sessionmaker] = None,
        previews: Optional[PreviewRegistry] = None,
    ):
        self.settings = settings or default_settings
        self.gateway = gateway
        self.identity_provider = identity_provider
        self.database_service = database_service
        self.file_storage = file_storage
        self.session_factory = session_factory
        self.previews = previews or PreviewRegistry()

        self.validator = UploadValidator(self.settings.max_file_size, self.settings.allowed_image_types)
        self.batch = UploadBatch(self.settings.max_files_count)

        self.state = GenerationState.IDLE
        self.prompt = ""
        self.loading_message = ""
        self.error: Optional[str] = None
        self.result: Optional[GeneratedImage] = None
        self.last_record: Optional[GeneratedImageRecord] = None
        self._preview_handles: List[str] = []

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    @property
    def is_busy(self) -> bool:
        return self.state in BUSY_STATES

    @property
    def persistence_enabled(self) -> bool:
        return (
            self.settings.persist_generations
            and self.database_service is not None
            and self.file_storage is not None
            and self.session_factory is not None
        )

    def _transition(self, target: GenerationState):
        if target not in TRANSITIONS[self.state]:
            raise InvalidTransitionError(f"Cannot move from {self.state.value} to {target.value}")
        logger.debug(f"Generation state {self.state.value} -> {target.value}")
        self.state = target

    def _fail(self, message: str):
        self._transition(GenerationState.FAILURE)
        self.error = message
        self.loading_message = ""

    def _return_to_idle(self):
        if self.state in (GenerationState.SUCCESS, GenerationState.FAILURE):
            self._transition(GenerationState.IDLE)

    def _clear_outcome(self):
        self.result = None
        self.error = None
        self.last_record = None

    def _ensure_not_busy(self):
        if self.is_busy:
            raise GenerationInProgressError(ERROR_MESSAGES["in_progress"])

    def reset(self) -> WorkspaceSnapshot:
        self._ensure_not_busy()
        self._return_to_idle()
        self._clear_outcome()
        return self.snapshot()

    def snapshot(self) -> WorkspaceSnapshot:
        previews = tuple(
            PreviewInfo(handle=handle, filename=source.filename, mime_type=source.mime_type, size=source.size)
            for handle, source in zip(self._preview_handles, self.batch)
        )
        return WorkspaceSnapshot(
            state=self.state,
            prompt=self.prompt,
            loading_message=self.loading_message,
            error=self.error,
            result_url=self.result.data_url if self.result else None,
            record_id=self.last_record.id if self.last_record else None,
            previews=previews,
        )

    # ------------------------------------------------------------------
    # Upload batch
    # ------------------------------------------------------------------

    def add_files(self, candidates: Sequence[SourceFile]) -> WorkspaceSnapshot:
        """Validate candidates and merge them into the batch all-or-nothing"""
        self._ensure_not_busy()

        accepted = self.validator.filter(candidates)
        if not accepted:
            return self.snapshot()

        try:
            self.batch.merge(accepted)
        except BatchLimitError as e:
            logger.info(f"Rejected {len(accepted)} upload(s): {e}")
            self.error = str(e)
            return self.snapshot()

        for source in accepted:
            self._preview_handles.append(self.previews.create(source.content, source.mime_type))

        self._return_to_idle()
        self._clear_outcome()
        return self.snapshot()

    def remove_file(self, index: int) -> WorkspaceSnapshot:
        """Remove one image and revoke its preview straight away"""
        self._ensure_not_busy()

        self.batch.remove(index)
        self.previews.revoke(self._preview_handles.pop(index))

        if len(self.batch) == 0:
            self.prompt = ""
            self._return_to_idle()
            self._clear_outcome()
        return self.snapshot()

    def clear(self) -> WorkspaceSnapshot:
        self._ensure_not_busy()

        self.batch.clear()
        for handle in self._preview_handles:
            self.previews.revoke(handle)
        self._preview_handles = []

        self.prompt = ""
        self._return_to_idle()
        self._clear_outcome()
        return self.snapshot()

    def close(self):
        """Release every file and preview held by the workspace"""
        self.batch.clear()
        self.previews.revoke_all()
        self._preview_handles = []

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    def _check_entry_guards(self, prompt: str, identity: Optional[AuthIdentity]):
        if len(self.batch) == 0:
            raise EmptyBatchError(ERROR_MESSAGES["no_images"])
        if not prompt.strip():
            raise EmptyPromptError(ERROR_MESSAGES["no_prompt"])
        if identity is None and self.settings.require_auth_for_generation:
            raise UnauthenticatedError(ERROR_MESSAGES["unauthenticated"])

    async def generate_from_preset(self, preset_id: str) -> WorkspaceSnapshot:
        preset = PRESETS_BY_ID.get(preset_id)
        if preset is None:
            raise NotFoundError(f"Unknown preset: {preset_id}")
        return await self.generate(preset.prompt)

    async def generate(self, prompt: str) -> WorkspaceSnapshot:
        """
        Run one generation. A second call while one is in flight raises
        GenerationInProgressError; every other outcome is reported in the
        returned snapshot.
        """
        # Check-and-set with no await in between
        self._ensure_not_busy()
        self._return_to_idle()
        self._transition(GenerationState.VALIDATING)

        self.prompt = prompt
        identity = self.identity_provider()

        try:
            self._check_entry_guards(prompt, identity)
        except (ValidationError, UnauthenticatedError) as e:
            self._clear_outcome()
            self._fail(str(e))
            return self.snapshot()

        self._transition(GenerationState.AWAITING_RESULT)
        self.loading_message = random.choice(LOADING_MESSAGES)
        self._clear_outcome()

        try:
            encoded = await encode_all(self.batch.files)
            request = GenerationRequest(images=tuple(encoded), prompt=prompt.strip())
            image = await self.gateway.generate(request.images, request.prompt)
        except Exception as e:
            logger.error(f"Image generation error: {e}", exc_info=True)
            self._fail(ERROR_MESSAGES["generation"])
            return self.snapshot()
        except BaseException:
            # Cancelled mid-call: end in FAILURE so the workspace stays usable
            logger.warning("Image generation cancelled")
            self._fail(ERROR_MESSAGES["generation"])
            raise

        if image is None:
            self._fail(ERROR_MESSAGES["generation"])
            return self.snapshot()

        self._transition(GenerationState.SUCCESS)
        self.result = image
        self.loading_message = ""

        if identity is not None and self.persistence_enabled:
            await self._persist(request, image, identity)

        return self.snapshot()

    async def _persist(self, request: GenerationRequest, image: GeneratedImage, identity: AuthIdentity):
        """
        Store the files and the record, then bump the owner's counter.
        Failures are logged only; the generated image stays visible.
        """
        try:
            width, height, image_format = describe_image(image.data)
            image_url = await self.file_storage.upload(IMAGES_BUCKET, image.data, image.mime_type)
            thumbnail_url = await self.file_storage.upload(
                THUMBNAILS_BUCKET, make_thumbnail(image.data, self.settings.thumbnail_size), "image/png"
            )
            first_source = request.images[0]
            original_image_url = await self.file_storage.upload(
                SOURCES_BUCKET, base64.b64decode(first_source.data), first_source.mime_type
            )

            record = GeneratedImageCreate(
                user_id=identity.id,
                title=f"Generated Image - {datetime.utcnow():%Y-%m-%d}",
                description=f"Generated with prompt: {request.prompt}",
                prompt=request.prompt,
                image_url=image_url,
                thumbnail_url=thumbnail_url,
                original_image_url=original_image_url,
                settings=GenerationSettings(model=self.gateway.model, quality=DEFAULT_QUALITY, size=DEFAULT_SIZE),
                metadata=ImageMetadata(
                    file_size=len(image.data),
                    dimensions=ImageDimensions(width=width, height=height),
                    format=image_format,
                ),
                is_public=self.settings.default_image_public,
                tags=extract_tags(request.prompt),
            )

            async with get_db_session(self.session_factory) as db:
                self.last_record = await self.database_service.save_generated_image(db, record)
        except Exception as e:
            logger.error(f"Failed to persist generated image for {identity.id}: {e}", exc_info=True)
