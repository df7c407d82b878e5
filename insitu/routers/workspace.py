"""
Generation workspace API routes: upload batch, previews and generation
"""
from typing import List

from fastapi import APIRouter, Depends, File, HTTPException, Response, UploadFile, status

from insitu.core.auth import get_client_session
from insitu.core.constants import PROMPT_PRESETS
from insitu.core.context import ClientSession
from insitu.core.exceptions import GenerationInProgressError, NotFoundError
from insitu.middleware.logging_middleware import get_logger
from insitu.schemas.workspace import GenerateRequest, PresetResponse, PreviewResponse, WorkspaceResponse
from insitu.services.generation_orchestrator import GenerationOrchestrator, WorkspaceSnapshot
from insitu.services.image_codec import SourceFile

logger = get_logger(__name__)
router = APIRouter()


def _workspace_response(snapshot: WorkspaceSnapshot, workspace: GenerationOrchestrator) -> WorkspaceResponse:
    return WorkspaceResponse(
        state=snapshot.state.value,
        is_loading=snapshot.is_loading,
        prompt=snapshot.prompt,
        loading_message=snapshot.loading_message,
        error=snapshot.error,
        result_url=snapshot.result_url,
        record_id=snapshot.record_id,
        images=[
            PreviewResponse(
                index=index,
                handle=preview.handle,
                filename=preview.filename,
                mime_type=preview.mime_type,
                size=preview.size,
                url=f"/api/workspace/previews/{preview.handle}",
            )
            for index, preview in enumerate(snapshot.previews)
        ],
        max_files=workspace.batch.max_files,
    )


def _busy_error(error: GenerationInProgressError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(error))


@router.get("", response_model=WorkspaceResponse)
async def get_workspace(session: ClientSession = Depends(get_client_session)):
    return _workspace_response(session.workspace.snapshot(), session.workspace)


@router.post("/images", response_model=WorkspaceResponse)
async def add_images(
    files: List[UploadFile] = File(...),
    session: ClientSession = Depends(get_client_session),
):
    """
    Add product images to the batch. Invalid files are dropped silently;
    a batch that would exceed the cap is rejected as a whole.
    """
    candidates = []
    for upload in files:
        content = await upload.read()
        candidates.append(
            SourceFile.from_bytes(upload.filename or "upload", upload.content_type or "", content)
        )

    try:
        snapshot = session.workspace.add_files(candidates)
    except GenerationInProgressError as e:
        raise _busy_error(e)

    logger.info(f"Workspace holds {len(snapshot.previews)} image(s)")
    return _workspace_response(snapshot, session.workspace)


@router.delete("/images/{index}", response_model=WorkspaceResponse)
async def remove_image(index: int, session: ClientSession = Depends(get_client_session)):
    try:
        snapshot = session.workspace.remove_file(index)
    except GenerationInProgressError as e:
        raise _busy_error(e)
    except IndexError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Image not found")
    return _workspace_response(snapshot, session.workspace)


@router.delete("/images", response_model=WorkspaceResponse)
async def clear_images(session: ClientSession = Depends(get_client_session)):
    try:
        snapshot = session.workspace.clear()
    except GenerationInProgressError as e:
        raise _busy_error(e)
    return _workspace_response(snapshot, session.workspace)


@router.get("/previews/{handle}")
async def get_preview(handle: str, session: ClientSession = Depends(get_client_session)):
    preview = session.workspace.previews.get(handle)
    if preview is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Preview not found")
    content, mime_type = preview
    return Response(content=content, media_type=mime_type)


@router.post("/generate", response_model=WorkspaceResponse)
async def generate(request: GenerateRequest, session: ClientSession = Depends(get_client_session)):
    """
    Run one generation for the current batch. Outcomes (including
    validation and gateway failures) are reported in the workspace body;
    a second request while one is in flight gets 409.
    """
    try:
        if request.preset_id is not None:
            snapshot = await session.workspace.generate_from_preset(request.preset_id)
        else:
            snapshot = await session.workspace.generate(request.prompt or "")
    except GenerationInProgressError as e:
        raise _busy_error(e)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    logger.info(f"Generation finished in state {snapshot.state.value}")
    return _workspace_response(snapshot, session.workspace)


@router.post("/reset", response_model=WorkspaceResponse)
async def reset_workspace(session: ClientSession = Depends(get_client_session)):
    """Dismiss the last result or error and return to idle"""
    try:
        snapshot = session.workspace.reset()
    except GenerationInProgressError as e:
        raise _busy_error(e)
    return _workspace_response(snapshot, session.workspace)


@router.get("/presets", response_model=List[PresetResponse])
async def list_presets():
    return [
        PresetResponse(id=preset.id, name=preset.name, prompt=preset.prompt, category=preset.category)
        for preset in PROMPT_PRESETS
    ]
