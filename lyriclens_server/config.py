import json
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Application
    app_name: str = "LyricLens Export Server"
    app_version: str = "0.1.0"
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = False
    host: str = "0.0.0.0"
    port: int = 3001
    log_level: str = "INFO"

    # CORS - stored as string, parsed via computed property
    cors_origins_raw: str = "*"

    @computed_field
    @property
    def cors_origins(self) -> list[str]:
        """Parse CORS origins from pipe/comma-separated string or JSON array."""
        v = self.cors_origins_raw
        if v.startswith("["):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                pass
        if "|" in v:
            return [origin.strip() for origin in v.split("|") if origin.strip()]
        return [origin.strip() for origin in v.split(",") if origin.strip()]

    # Session staging. One subdirectory per session; never survives a restart.
    temp_dir: str = str(Path.cwd() / "temp")
    purge_temp_on_startup: bool = True

    # Upload quotas
    max_file_size_bytes: int = 50 * 1024 * 1024
    max_files_per_session: int = 10000
    max_files_per_request: int = 10000

    # Session file layout
    audio_filename: str = "audio.mp3"
    output_filename: str = "output.mp4"
    frame_pattern: str = "frame%06d.jpg"

    # External tools
    ffmpeg_path: str = "ffmpeg"
    ytdlp_path: str = "yt-dlp"
    # Bounded wait for external tools, in seconds. 0 waits forever.
    process_timeout_seconds: float = 1800

    # Render settings
    default_fps: int = 30
    max_fps: int = 120
    render_video_codec: str = "libx264"
    render_preset: str = "veryfast"
    render_crf: int = 23
    render_pixel_format: str = "yuv420p"
    render_audio_codec: str = "aac"
    render_audio_bitrate: str = "192k"

    # Result streaming
    stream_chunk_size: int = 64 * 1024


@lru_cache
def get_settings() -> Settings:
    return Settings()
