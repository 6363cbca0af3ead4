from pathlib import Path
from typing import Annotated

from fastapi import Depends, Request

from lyriclens_server.config import Settings, get_settings
from lyriclens_server.exceptions import InvalidSessionIdError, MissingRequiredFieldError
from lyriclens_server.services.audio_fetcher import AudioFetcher
from lyriclens_server.services.chunk_ingestor import ChunkIngestor
from lyriclens_server.services.process_runner import ExternalProcessRunner
from lyriclens_server.services.renderer import EncoderOptions, Renderer
from lyriclens_server.services.result_streamer import ResultStreamer
from lyriclens_server.services.session_store import SessionStore, generate_session_id
from lyriclens_server.utils.path_sanitizer import sanitize_id

SettingsDep = Annotated[Settings, Depends(get_settings)]

SESSION_ID_QUERY_PARAM = "sessionId"
SESSION_ID_HEADER = "x-session-id"


def resolve_request_session_id(request: Request, *, generate: bool) -> str:
    """Find the session id for a request.

    Precedence:
        1. query parameter ``sessionId``
        2. header ``x-session-id``
        3. an id already attached to ``request.state`` earlier in this request
        4. a freshly generated id, only when ``generate`` is True

    The result is sanitized and attached to ``request.state.session_id``.

    Raises:
        MissingRequiredFieldError: nothing found and ``generate`` is False
        InvalidSessionIdError: the supplied id sanitizes to an empty string
    """
    raw = (
        request.query_params.get(SESSION_ID_QUERY_PARAM)
        or request.headers.get(SESSION_ID_HEADER)
        or getattr(request.state, "session_id", None)
    )
    if not raw:
        if not generate:
            raise MissingRequiredFieldError("session ID")
        raw = generate_session_id()

    session_id = sanitize_id(raw)
    if not session_id:
        raise InvalidSessionIdError(raw)
    request.state.session_id = session_id
    return session_id


def get_session_store(settings: SettingsDep) -> SessionStore:
    return SessionStore(Path(settings.temp_dir))


def get_process_runner(settings: SettingsDep) -> ExternalProcessRunner:
    return ExternalProcessRunner(timeout_seconds=settings.process_timeout_seconds)


SessionStoreDep = Annotated[SessionStore, Depends(get_session_store)]
ProcessRunnerDep = Annotated[ExternalProcessRunner, Depends(get_process_runner)]


def get_chunk_ingestor(settings: SettingsDep, store: SessionStoreDep) -> ChunkIngestor:
    return ChunkIngestor(
        store,
        max_file_size_bytes=settings.max_file_size_bytes,
        max_files_per_session=settings.max_files_per_session,
        audio_filename=settings.audio_filename,
        reserved_filenames=(settings.output_filename,),
    )


def get_renderer(settings: SettingsDep, store: SessionStoreDep, runner: ProcessRunnerDep) -> Renderer:
    return Renderer(
        store,
        runner,
        ffmpeg_path=settings.ffmpeg_path,
        audio_filename=settings.audio_filename,
        output_filename=settings.output_filename,
        frame_pattern=settings.frame_pattern,
        options=EncoderOptions(
            video_codec=settings.render_video_codec,
            preset=settings.render_preset,
            crf=settings.render_crf,
            pixel_format=settings.render_pixel_format,
            audio_codec=settings.render_audio_codec,
            audio_bitrate=settings.render_audio_bitrate,
        ),
    )


def get_audio_fetcher(settings: SettingsDep, store: SessionStoreDep, runner: ProcessRunnerDep) -> AudioFetcher:
    return AudioFetcher(store, runner, ytdlp_path=settings.ytdlp_path)


def get_result_streamer(settings: SettingsDep) -> ResultStreamer:
    return ResultStreamer(chunk_size=settings.stream_chunk_size)


ChunkIngestorDep = Annotated[ChunkIngestor, Depends(get_chunk_ingestor)]
RendererDep = Annotated[Renderer, Depends(get_renderer)]
AudioFetcherDep = Annotated[AudioFetcher, Depends(get_audio_fetcher)]
ResultStreamerDep = Annotated[ResultStreamer, Depends(get_result_streamer)]
