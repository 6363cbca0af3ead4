"""
Pytest fixtures for the export server tests.

External tools are replaced by FakeProcessRunner, which produces the files
ffmpeg / yt-dlp would have written (or fails with a chosen exit code), so the
suite runs without either binary installed.

Tests that invoke the real ffmpeg are marked with @pytest.mark.requires_tools
and are skipped when ffmpeg is not on PATH.
"""

import io
import shutil
from collections.abc import Sequence
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from starlette.datastructures import Headers, UploadFile

from lyriclens_server.api.deps import get_process_runner
from lyriclens_server.config import Settings, get_settings
from lyriclens_server.exceptions import ProcessError, SpawnError
from lyriclens_server.main import app
from lyriclens_server.services.process_runner import ExternalProcessRunner
from lyriclens_server.services.session_store import SessionStore


def pytest_configure(config):
    """Register custom markers for CI/CD test filtering."""
    config.addinivalue_line(
        "markers",
        "requires_tools: mark test as requiring ffmpeg on PATH (skipped when absent)"
    )


requires_ffmpeg = pytest.mark.skipif(
    shutil.which("ffmpeg") is None,
    reason="ffmpeg not available on PATH"
)


class FakeProcessRunner(ExternalProcessRunner):
    """Stands in for ffmpeg and yt-dlp.

    Records every call. On success it writes the artifact the real tool
    would produce: the last argument for ffmpeg, ``audio.mp3`` next to the
    ``-o`` template for yt-dlp.
    """

    def __init__(
        self,
        exit_code: int = 0,
        *,
        spawn_error: bool = False,
        produce_output: bool = True,
        payload: bytes = b"\x00\x00\x00\x18ftypmp42" + b"x" * 4096,
    ) -> None:
        super().__init__()
        self.exit_code = exit_code
        self.spawn_error = spawn_error
        self.produce_output = produce_output
        self.payload = payload
        self.calls: list[tuple[str, list[str]]] = []

    async def run(self, command: str, args: Sequence[str]) -> None:
        args = [str(a) for a in args]
        self.calls.append((command, args))
        name = Path(command).name
        if self.spawn_error:
            raise SpawnError(name, "No such file or directory")
        if self.exit_code != 0:
            raise ProcessError(name, self.exit_code, ["simulated failure"])
        if not self.produce_output:
            return
        if "-o" in args:
            template = Path(args[args.index("-o") + 1])
            target = template.with_name("audio.mp3")
        else:
            target = Path(args[-1])
        target.write_bytes(self.payload)


def make_upload(filename: str, data: bytes = b"\xff\xd8\xff\xe0frame", content_type: str = "image/jpeg") -> UploadFile:
    """Build an UploadFile the way Starlette's form parser would."""
    return UploadFile(
        file=io.BytesIO(data),
        size=len(data),
        filename=filename,
        headers=Headers({"content-type": content_type}),
    )


def frame_name(index: int) -> str:
    return f"frame{index:06d}.jpg"


@pytest.fixture
def temp_root(tmp_path: Path) -> Path:
    """Session root for one test."""
    root = tmp_path / "sessions"
    root.mkdir()
    return root


@pytest.fixture
def store(temp_root: Path) -> SessionStore:
    return SessionStore(temp_root)


@pytest.fixture
def settings(temp_root: Path) -> Settings:
    return Settings(
        temp_dir=str(temp_root),
        max_file_size_bytes=1024 * 1024,
        max_files_per_session=50,
        stream_chunk_size=1024,
    )


@pytest.fixture
def fake_runner() -> FakeProcessRunner:
    return FakeProcessRunner()


@pytest.fixture
def client(settings: Settings, fake_runner: FakeProcessRunner):
    """FastAPI test client wired to the temp root and the fake runner."""
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_process_runner] = lambda: fake_runner
    try:
        yield TestClient(app, raise_server_exceptions=False)
    finally:
        app.dependency_overrides.clear()
