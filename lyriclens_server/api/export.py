"""Export API endpoints: session init, frame chunk upload, finalize and stream."""

import logging

from fastapi import APIRouter, Request
from fastapi.responses import Response
from starlette.datastructures import FormData, UploadFile

from lyriclens_server.api.deps import (
    ChunkIngestorDep,
    RendererDep,
    ResultStreamerDep,
    SessionStoreDep,
    SettingsDep,
    resolve_request_session_id,
)
from lyriclens_server.exceptions import (
    InvalidSessionIdError,
    MissingRequiredFieldError,
    SessionNotFoundError,
    ValidationError,
)
from lyriclens_server.schemas.export import (
    ChunkUploadResponse,
    FinalizeExportRequest,
    InitExportResponse,
    RejectedFileInfo,
)
from lyriclens_server.utils.path_sanitizer import sanitize_id

router = APIRouter()
logger = logging.getLogger(__name__)

# Multipart fields other than files are never expected; keep the parser tight.
MAX_FORM_FIELDS = 16


def _uploads(form: FormData, field: str) -> list[UploadFile]:
    return [value for value in form.getlist(field) if isinstance(value, UploadFile)]


@router.post("/init", response_model=InitExportResponse)
async def init_export(
    request: Request,
    settings: SettingsDep,
    store: SessionStoreDep,
    ingestor: ChunkIngestorDep,
) -> InitExportResponse:
    """
    Initialize an export session.

    Receives the audio track and creates the session directory. The session
    id is taken from ``sessionId`` / ``x-session-id`` when given, otherwise
    generated.
    """
    async with request.form(max_files=settings.max_files_per_request, max_fields=MAX_FORM_FIELDS) as form:
        audio = next(iter(_uploads(form, "audio")), None)
        if audio is None:
            raise MissingRequiredFieldError("audio")

        session_id = resolve_request_session_id(request, generate=True)
        cleanup = store.cleanup_handle(session_id)
        try:
            result = await ingestor.receive(session_id, [], audio=audio)
            if result.rejected:
                rejected = result.rejected[0]
                raise ValidationError(rejected.reason, code=rejected.code)
        except BaseException:
            await cleanup()
            raise

    logger.info("[Session] Initialized: %s", session_id)
    return InitExportResponse(session_id=session_id)


@router.post("/chunk", response_model=ChunkUploadResponse)
async def upload_chunk(
    request: Request,
    settings: SettingsDep,
    store: SessionStoreDep,
    ingestor: ChunkIngestorDep,
) -> ChunkUploadResponse:
    """
    Upload one batch of frames (and optionally the audio track).

    Files over the size quota or past the session's file quota are reported
    in ``rejected``; the rest of the batch is still stored.
    """
    session_id = resolve_request_session_id(request, generate=False)

    async with request.form(max_files=settings.max_files_per_request, max_fields=MAX_FORM_FIELDS) as form:
        frames = _uploads(form, "frames")
        audio = next(iter(_uploads(form, "audio")), None)
        try:
            result = await ingestor.receive(session_id, frames, audio=audio)
        except BaseException:
            await store.cleanup_handle(session_id)()
            raise

    return ChunkUploadResponse(
        count=result.accepted,
        rejected=[RejectedFileInfo(**r.to_dict()) for r in result.rejected],
    )


@router.post("/finalize")
async def finalize_export(
    payload: FinalizeExportRequest,
    settings: SettingsDep,
    store: SessionStoreDep,
    renderer: RendererDep,
    streamer: ResultStreamerDep,
) -> Response:
    """
    Render the session into an MP4 and stream it back.

    The session directory is removed once streaming ends, or immediately if
    rendering fails.
    """
    session_id = sanitize_id(payload.session_id)
    if not session_id:
        raise InvalidSessionIdError(payload.session_id)

    fps = payload.fps or settings.default_fps
    if fps > settings.max_fps:
        raise ValidationError(f"fps must be between 1 and {settings.max_fps}")

    if not store.exists(session_id):
        raise SessionNotFoundError(session_id)

    cleanup = store.cleanup_handle(session_id)
    try:
        output_path = await renderer.render(session_id, fps)
    except BaseException:
        await cleanup()
        raise

    return await streamer.stream(output_path, "video/mp4", cleanup)
