"""LyricLens export server: session-scoped frame upload, ffmpeg render and audio import."""

__version__ = "0.1.0"
