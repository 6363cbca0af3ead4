"""Muxing of staged frames and audio into a single MP4.

Provides:
- RenderJob: the encoder invocation for one session
- Renderer: precondition checks, encoder execution, output verification
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from time import perf_counter

from lyriclens_server.exceptions import ConsistencyError, MissingAudioError, SessionNotFoundError
from lyriclens_server.services.process_runner import ExternalProcessRunner
from lyriclens_server.services.session_store import SessionStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EncoderOptions:
    """Codec settings applied to every render."""

    video_codec: str = "libx264"
    preset: str = "veryfast"
    crf: int = 23
    pixel_format: str = "yuv420p"
    audio_codec: str = "aac"
    audio_bitrate: str = "192k"


@dataclass(frozen=True)
class RenderJob:
    """One encoder invocation. Never persisted."""

    session_dir: Path
    audio_path: Path
    frame_pattern: str
    fps: int
    output_path: Path

    def to_args(self, options: EncoderOptions) -> list[str]:
        """Build the encoder argument list.

        Frames are read as an image sequence at ``fps``; the output stops at
        the shorter of the two inputs and has its moov atom moved to the
        front for progressive playback.
        """
        return [
            "-framerate", str(self.fps),
            "-i", str(self.session_dir / self.frame_pattern),
            "-i", str(self.audio_path),
            "-c:v", options.video_codec,
            "-preset", options.preset,
            "-crf", str(options.crf),
            "-pix_fmt", options.pixel_format,
            "-c:a", options.audio_codec,
            "-b:a", options.audio_bitrate,
            "-shortest",
            "-movflags", "+faststart",
            "-y",
            str(self.output_path),
        ]


class Renderer:
    """Renders a session's frames and audio into its output file."""

    def __init__(
        self,
        store: SessionStore,
        runner: ExternalProcessRunner,
        *,
        ffmpeg_path: str = "ffmpeg",
        audio_filename: str = "audio.mp3",
        output_filename: str = "output.mp4",
        frame_pattern: str = "frame%06d.jpg",
        options: EncoderOptions | None = None,
    ) -> None:
        self.store = store
        self.runner = runner
        self.ffmpeg_path = ffmpeg_path
        self.audio_filename = audio_filename
        self.output_filename = output_filename
        self.frame_pattern = frame_pattern
        self.options = options or EncoderOptions()

    def build_job(self, session_id: str, fps: int) -> RenderJob:
        """Check preconditions and describe the render. Spawns nothing."""
        if not self.store.exists(session_id):
            raise SessionNotFoundError(session_id)
        session_dir = self.store.resolve(session_id)
        audio_path = session_dir / self.audio_filename
        if not audio_path.is_file():
            raise MissingAudioError(session_id)
        return RenderJob(
            session_dir=session_dir,
            audio_path=audio_path,
            frame_pattern=self.frame_pattern,
            fps=fps,
            output_path=session_dir / self.output_filename,
        )

    async def render(self, session_id: str, fps: int) -> Path:
        """Render the session and return the path of the finished video.

        Raises:
            SessionNotFoundError: session directory does not exist
            MissingAudioError: no audio staged (raised before any spawn)
            SpawnError, ProcessError: encoder missing or failed
            ConsistencyError: encoder succeeded but produced no output
        """
        job = self.build_job(session_id, fps)
        logger.info("[Export] Finalizing session %s at %s FPS", session_id, fps)

        start = perf_counter()
        await self.runner.run(self.ffmpeg_path, job.to_args(self.options))
        elapsed = perf_counter() - start

        if not job.output_path.is_file():
            raise ConsistencyError("ffmpeg", str(job.output_path))

        logger.info("[Export] FFmpeg completed in %.1fs for session %s", elapsed, session_id)
        return job.output_path
