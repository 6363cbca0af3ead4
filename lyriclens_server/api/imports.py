"""Import API endpoints."""

from fastapi import APIRouter
from fastapi.responses import Response

from lyriclens_server.api.deps import AudioFetcherDep, ResultStreamerDep
from lyriclens_server.schemas.export import YoutubeImportRequest

router = APIRouter()


@router.post("/youtube")
async def import_youtube(
    payload: YoutubeImportRequest,
    fetcher: AudioFetcherDep,
    streamer: ResultStreamerDep,
) -> Response:
    """Download audio from a YouTube (or other yt-dlp supported) URL and stream it back as MP3."""
    fetched = await fetcher.fetch(payload.url)
    return await streamer.stream(
        fetched.audio_path,
        "audio/mpeg",
        fetched.cleanup,
        filename="youtube_audio.mp3",
    )
