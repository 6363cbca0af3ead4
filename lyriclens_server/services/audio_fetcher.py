"""Audio import from remote URLs via yt-dlp."""

import logging
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urlparse

from lyriclens_server.exceptions import ConsistencyError, InvalidUrlError
from lyriclens_server.services.process_runner import ExternalProcessRunner
from lyriclens_server.services.session_store import SessionCleanup, SessionStore

logger = logging.getLogger(__name__)

ALLOWED_SCHEMES = ("http", "https")


@dataclass
class FetchedAudio:
    """Downloaded audio, still staged in its own session."""

    session_id: str
    audio_path: Path
    cleanup: SessionCleanup


def validate_url(url: str | None) -> str:
    """Return ``url`` stripped if it is an absolute http(s) URL with a host."""
    candidate = (url or "").strip()
    if not candidate:
        raise InvalidUrlError("Missing URL")
    try:
        parsed = urlparse(candidate)
        # Accessing .port validates the port component.
        parsed.port
    except ValueError as e:
        raise InvalidUrlError(f"Invalid URL: {e}") from e
    if parsed.scheme.lower() not in ALLOWED_SCHEMES or not parsed.hostname:
        raise InvalidUrlError("Invalid URL")
    return candidate


class AudioFetcher:
    """Downloads the audio track of a remote media URL into a fresh session."""

    def __init__(
        self,
        store: SessionStore,
        runner: ExternalProcessRunner,
        *,
        ytdlp_path: str = "yt-dlp",
        audio_format: str = "mp3",
    ) -> None:
        self.store = store
        self.runner = runner
        self.ytdlp_path = ytdlp_path
        self.audio_format = audio_format

    def build_args(self, url: str, session_dir: Path) -> list[str]:
        return [
            "-x",
            "--audio-format", self.audio_format,
            "--audio-quality", "0",
            "--no-playlist",
            "-o", str(session_dir / "audio.%(ext)s"),
            url,
        ]

    async def fetch(self, url: str) -> FetchedAudio:
        """Download ``url`` as audio.

        The URL is validated before any session exists. Once the session is
        created, every failure destroys it before the error propagates.
        """
        url = validate_url(url)
        session_id, session_dir = self.store.create()
        cleanup = self.store.cleanup_handle(session_id)
        audio_path = session_dir / f"audio.{self.audio_format}"

        logger.info("[YouTube] Downloading %s into session %s", url, session_id)
        try:
            await self.runner.run(self.ytdlp_path, self.build_args(url, session_dir))
            if not audio_path.is_file():
                raise ConsistencyError("yt-dlp", str(audio_path))
        except BaseException:
            await cleanup()
            raise

        logger.info("[YouTube] Download complete for %s", session_id)
        return FetchedAudio(session_id=session_id, audio_path=audio_path, cleanup=cleanup)
