"""
Unit tests for the generation workspace state machine
Tests upload handling, entry guards, the in-flight guard, gateway failures
and best-effort persistence
"""
import asyncio
from unittest.mock import AsyncMock, Mock

import pytest

from insitu.core.constants import ERROR_MESSAGES, LOADING_MESSAGES, PRESETS_BY_ID
from insitu.core.database import get_db_session
from insitu.core.exceptions import (
    EmptyBatchError,
    EmptyPromptError,
    GenerationFailedError,
    GenerationInProgressError,
    InvalidTransitionError,
    NotFoundError,
    PersistenceError,
)
from insitu.schemas.auth import AuthIdentity
from insitu.services.database_service import DatabaseService
from insitu.services.file_storage import FileStorageService
from insitu.services.generation_orchestrator import GenerationOrchestrator, GenerationRequest, GenerationState
from insitu.services.image_codec import EncodedImage, SourceFile


@pytest.fixture
def identity():
    return AuthIdentity(id="user-1", email="maker@example.com", name="Maker")


@pytest.fixture
def current_identity(identity):
    """Mutable holder so tests can sign in and out"""
    return {"value": identity}


@pytest.fixture
def workspace(mock_gateway, current_identity, test_settings):
    return GenerationOrchestrator(
        gateway=mock_gateway,
        identity_provider=lambda: current_identity["value"],
        settings=test_settings,
    )


@pytest.fixture
def persisting_workspace(mock_gateway, current_identity, test_settings, session_factory):
    return GenerationOrchestrator(
        gateway=mock_gateway,
        identity_provider=lambda: current_identity["value"],
        settings=test_settings,
        database_service=DatabaseService(test_settings),
        file_storage=FileStorageService(test_settings),
        session_factory=session_factory,
    )


class TestGenerationRequest:
    """Tests for request invariants"""

    @pytest.mark.unit
    def test_requires_images(self):
        with pytest.raises(EmptyBatchError):
            GenerationRequest(images=(), prompt="on a desk")

    @pytest.mark.unit
    def test_requires_non_blank_prompt(self):
        with pytest.raises(EmptyPromptError):
            GenerationRequest(images=(EncodedImage("QUJD", "image/png"),), prompt="   ")


class TestUploads:
    """Tests for adding and removing product images"""

    @pytest.mark.unit
    def test_add_files_creates_previews(self, workspace, source_factory):
        snapshot = workspace.add_files([source_factory("a.png"), source_factory("b.jpg", "image/jpeg")])

        assert [p.filename for p in snapshot.previews] == ["a.png", "b.jpg"]
        assert all(p.handle in workspace.previews for p in snapshot.previews)
        assert snapshot.state == GenerationState.IDLE

    @pytest.mark.unit
    def test_invalid_files_are_dropped_silently(self, workspace, source_factory):
        gif = SourceFile.from_bytes("anim.gif", "image/gif", b"GIF89a")

        snapshot = workspace.add_files([gif, source_factory("ok.png")])

        assert [p.filename for p in snapshot.previews] == ["ok.png"]
        assert snapshot.error is None

    @pytest.mark.unit
    def test_over_cap_rejects_whole_selection(self, workspace, source_factory):
        workspace.add_files([source_factory(f"{i}.png") for i in range(3)])

        snapshot = workspace.add_files([source_factory("x.png"), source_factory("y.png")])

        assert len(snapshot.previews) == 3
        assert snapshot.error == "You can upload a maximum of 4 images"
        assert len(workspace.previews) == 3

    @pytest.mark.unit
    def test_remove_revokes_preview_immediately(self, workspace, source_factory):
        snapshot = workspace.add_files([source_factory("a.png"), source_factory("b.png")])
        removed_handle = snapshot.previews[0].handle

        snapshot = workspace.remove_file(0)

        assert removed_handle not in workspace.previews
        assert [p.filename for p in snapshot.previews] == ["b.png"]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_removing_last_image_resets_prompt_and_result(self, workspace, source_factory):
        workspace.add_files([source_factory()])
        await workspace.generate("on a desk")

        snapshot = workspace.remove_file(0)

        assert snapshot.prompt == ""
        assert snapshot.result_url is None
        assert snapshot.state == GenerationState.IDLE

    @pytest.mark.unit
    def test_clear_revokes_all(self, workspace, source_factory):
        workspace.add_files([source_factory("a.png"), source_factory("b.png")])

        snapshot = workspace.clear()

        assert snapshot.previews == ()
        assert len(workspace.previews) == 0


class TestEntryGuards:
    """Tests for requests rejected before the gateway is called"""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_empty_batch(self, workspace, mock_gateway):
        snapshot = await workspace.generate("on a desk")

        assert snapshot.state == GenerationState.FAILURE
        assert snapshot.error == ERROR_MESSAGES["no_images"]
        mock_gateway.generate.assert_not_called()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_blank_prompt(self, workspace, mock_gateway, source_factory):
        workspace.add_files([source_factory()])

        snapshot = await workspace.generate("   ")

        assert snapshot.state == GenerationState.FAILURE
        assert snapshot.error == ERROR_MESSAGES["no_prompt"]
        mock_gateway.generate.assert_not_called()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_unauthenticated(self, workspace, mock_gateway, source_factory, current_identity):
        current_identity["value"] = None
        workspace.add_files([source_factory()])

        snapshot = await workspace.generate("on a desk")

        assert snapshot.state == GenerationState.FAILURE
        assert snapshot.error == "You must be logged in to generate images."
        assert snapshot.result_url is None
        mock_gateway.generate.assert_not_called()


class TestGenerate:
    """Tests for the generation flow"""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_success_shows_result(self, workspace, mock_gateway, source_factory, generated_image):
        workspace.add_files([source_factory("a.png"), source_factory("b.jpg", "image/jpeg")])

        snapshot = await workspace.generate("  on a desk  ")

        assert snapshot.state == GenerationState.SUCCESS
        assert snapshot.result_url == generated_image.data_url
        assert snapshot.error is None
        assert snapshot.loading_message == ""
        assert not snapshot.is_loading

        images, prompt = mock_gateway.generate.call_args.args
        assert [image.mime_type for image in images] == ["image/png", "image/jpeg"]
        assert prompt == "on a desk"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_loading_message_while_awaiting(self, workspace, mock_gateway, source_factory, generated_image):
        observed = []

        async def capture(images, prompt):
            observed.append(workspace.snapshot())
            return generated_image

        mock_gateway.generate = AsyncMock(side_effect=capture)
        workspace.add_files([source_factory()])

        await workspace.generate("on a desk")

        assert observed[0].state == GenerationState.AWAITING_RESULT
        assert observed[0].is_loading
        assert observed[0].loading_message in LOADING_MESSAGES
        assert observed[0].result_url is None

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_gateway_error_shows_generic_message(self, workspace, mock_gateway, source_factory):
        mock_gateway.generate = AsyncMock(side_effect=GenerationFailedError("Failed to generate image with Gemini API."))
        workspace.add_files([source_factory()])

        snapshot = await workspace.generate("on a desk")

        assert snapshot.state == GenerationState.FAILURE
        assert snapshot.error == ERROR_MESSAGES["generation"]
        assert snapshot.result_url is None

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_cancelled_call_leaves_workspace_usable(
        self, workspace, mock_gateway, source_factory, generated_image
    ):
        mock_gateway.generate = AsyncMock(side_effect=asyncio.CancelledError())
        workspace.add_files([source_factory()])

        with pytest.raises(asyncio.CancelledError):
            await workspace.generate("on a desk")

        assert workspace.state == GenerationState.FAILURE
        assert not workspace.is_busy
        assert workspace.reset().state == GenerationState.IDLE

        mock_gateway.generate = AsyncMock(return_value=generated_image)
        snapshot = await workspace.generate("again")
        assert snapshot.state == GenerationState.SUCCESS

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_no_image_in_response_is_failure(self, workspace, mock_gateway, source_factory):
        mock_gateway.generate = AsyncMock(return_value=None)
        workspace.add_files([source_factory()])

        snapshot = await workspace.generate("on a desk")

        assert snapshot.state == GenerationState.FAILURE
        assert snapshot.error == ERROR_MESSAGES["generation"]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_new_attempt_clears_previous_result(self, workspace, mock_gateway, source_factory):
        workspace.add_files([source_factory()])
        await workspace.generate("on a desk")

        mock_gateway.generate = AsyncMock(return_value=None)
        snapshot = await workspace.generate("on a beach")

        assert snapshot.result_url is None
        assert snapshot.error is not None

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_second_trigger_while_in_flight_is_rejected(
        self, workspace, mock_gateway, source_factory, generated_image
    ):
        entered = asyncio.Event()
        release = asyncio.Event()

        async def slow_generate(images, prompt):
            entered.set()
            await release.wait()
            return generated_image

        mock_gateway.generate = AsyncMock(side_effect=slow_generate)
        workspace.add_files([source_factory()])

        first = asyncio.create_task(workspace.generate("on a desk"))
        await entered.wait()

        assert workspace.is_busy
        with pytest.raises(GenerationInProgressError):
            await workspace.generate("on a beach")
        with pytest.raises(GenerationInProgressError):
            workspace.add_files([source_factory("late.png")])

        release.set()
        snapshot = await first

        assert snapshot.state == GenerationState.SUCCESS
        assert mock_gateway.generate.await_count == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_preset_uses_preset_prompt(self, workspace, mock_gateway, source_factory):
        workspace.add_files([source_factory()])

        await workspace.generate_from_preset("beach-setting")

        assert mock_gateway.generate.call_args.args[1] == PRESETS_BY_ID["beach-setting"].prompt

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_unknown_preset(self, workspace):
        with pytest.raises(NotFoundError):
            await workspace.generate_from_preset("moon-base")

    @pytest.mark.unit
    def test_illegal_transition(self, workspace):
        with pytest.raises(InvalidTransitionError):
            workspace._transition(GenerationState.SUCCESS)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_reset_returns_to_idle(self, workspace, source_factory):
        workspace.add_files([source_factory()])
        await workspace.generate("on a desk")

        snapshot = workspace.reset()

        assert snapshot.state == GenerationState.IDLE
        assert snapshot.result_url is None
        assert len(snapshot.previews) == 1


class TestPersistence:
    """Tests for storing successful generations"""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_success_is_persisted(self, persisting_workspace, source_factory, session_factory, identity):
        database_service = persisting_workspace.database_service
        async with get_db_session(session_factory) as db:
            await database_service.create_user_profile(db, identity.id, identity.email, identity.name)

        persisting_workspace.add_files([source_factory("first.png")])
        snapshot = await persisting_workspace.generate("Place it on the beach at sunset")

        assert snapshot.record_id is not None
        async with get_db_session(session_factory) as db:
            record = await database_service.get_image_by_id(db, snapshot.record_id)
            profile = await database_service.get_user_profile(db, identity.id)

        assert record.user_id == identity.id
        assert record.title.startswith("Generated Image - ")
        assert record.description == "Generated with prompt: Place it on the beach at sunset"
        assert record.tags == ["place", "beach", "sunset"]
        assert record.is_public is False
        assert record.favorite_count == 0 and record.share_count == 0
        assert record.metadata.dimensions.width == 320
        assert record.image_url.startswith("/files/images/")
        assert record.thumbnail_url.startswith("/files/thumbnails/")
        assert record.original_image_url.startswith("/files/sources/")
        assert profile.stats.images_generated == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_persistence_failure_keeps_result(self, persisting_workspace, source_factory, generated_image):
        persisting_workspace.file_storage = Mock()
        persisting_workspace.file_storage.upload = AsyncMock(side_effect=PersistenceError("disk full"))
        persisting_workspace.add_files([source_factory()])

        snapshot = await persisting_workspace.generate("on a desk")

        assert snapshot.state == GenerationState.SUCCESS
        assert snapshot.result_url == generated_image.data_url
        assert snapshot.record_id is None
        assert snapshot.error is None

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_anonymous_generation_is_not_persisted(
        self, persisting_workspace, source_factory, current_identity, test_settings
    ):
        test_settings.require_auth_for_generation = False
        current_identity["value"] = None
        persisting_workspace.add_files([source_factory()])

        snapshot = await persisting_workspace.generate("on a desk")

        assert snapshot.state == GenerationState.SUCCESS
        assert snapshot.record_id is None
