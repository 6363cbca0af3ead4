"""Tests for artifact streaming and its cleanup guarantees.

SessionFileResponse is driven directly as an ASGI app with hand-written
``receive`` / ``send`` callables so disconnects and send failures can be
placed exactly.
"""

import asyncio
import json
from pathlib import Path

import pytest

from lyriclens_server.exceptions import StreamError
from lyriclens_server.services.result_streamer import ResultStreamer, SessionFileResponse
from lyriclens_server.services.session_store import SessionStore

SCOPE = {"type": "http", "method": "POST", "path": "/"}


def _stage_artifact(store: SessionStore, size: int = 5000) -> Path:
    directory = store.ensure("s1")
    artifact = directory / "output.mp4"
    artifact.write_bytes(bytes(i % 251 for i in range(size)))
    return artifact


def _response(store: SessionStore, artifact: Path, size: int | None = None, **kwargs) -> SessionFileResponse:
    return SessionFileResponse(
        artifact,
        size=size if size is not None else artifact.stat().st_size,
        media_type="video/mp4",
        cleanup=store.cleanup_handle("s1"),
        chunk_size=1024,
        **kwargs,
    )


async def _never_disconnect() -> dict:
    await asyncio.Event().wait()
    return {"type": "http.disconnect"}


class TestSessionFileResponse:
    """Tests for SessionFileResponse."""

    @pytest.mark.asyncio
    async def test_complete_transfer_then_cleanup(self, store: SessionStore):
        artifact = _stage_artifact(store)
        expected = artifact.read_bytes()
        response = _response(store, artifact)
        messages: list[dict] = []

        async def send(message):
            messages.append(message)

        await response(SCOPE, _never_disconnect, send)

        assert messages[0]["type"] == "http.response.start"
        assert messages[0]["status"] == 200
        headers = dict(messages[0]["headers"])
        assert headers[b"content-type"] == b"video/mp4"
        assert headers[b"content-length"] == str(len(expected)).encode()

        body = b"".join(m["body"] for m in messages[1:])
        assert body == expected
        assert messages[-1]["more_body"] is False
        assert response.cleanup.fired
        assert not store.exists("s1")

    @pytest.mark.asyncio
    async def test_filename_sets_attachment_header(self, store: SessionStore):
        artifact = _stage_artifact(store, size=10)
        response = _response(store, artifact, filename="youtube_audio.mp3")

        assert response.headers["content-disposition"] == 'attachment; filename="youtube_audio.mp3"'

    @pytest.mark.asyncio
    async def test_client_disconnect_mid_stream(self, store: SessionStore):
        artifact = _stage_artifact(store)
        response = _response(store, artifact)
        first_chunk_sent = asyncio.Event()
        bodies: list[bytes] = []

        async def send(message):
            if message["type"] == "http.response.body":
                if bodies:
                    # Client stopped reading: block like a full socket buffer.
                    await asyncio.Event().wait()
                bodies.append(message["body"])
                first_chunk_sent.set()

        async def receive():
            await first_chunk_sent.wait()
            return {"type": "http.disconnect"}

        await asyncio.wait_for(response(SCOPE, receive, send), timeout=5)

        assert len(bodies) == 1
        assert response.cleanup.fired
        assert not store.exists("s1")

    @pytest.mark.asyncio
    async def test_error_before_headers_sends_json_500(self, store: SessionStore):
        artifact = _stage_artifact(store)
        response = _response(store, artifact, size=1)
        artifact.unlink()
        messages: list[dict] = []

        async def send(message):
            messages.append(message)

        await response(SCOPE, _never_disconnect, send)

        assert messages[0]["status"] == 500
        payload = json.loads(b"".join(m.get("body", b"") for m in messages[1:]))
        assert payload["success"] is False
        assert payload["code"] == "STREAM_ERROR"
        assert response.cleanup.fired
        assert not store.exists("s1")

    @pytest.mark.asyncio
    async def test_error_after_headers_is_not_raised(self, store: SessionStore):
        artifact = _stage_artifact(store)
        response = _response(store, artifact)
        messages: list[dict] = []

        async def send(message):
            if message["type"] == "http.response.body":
                raise ConnectionResetError("peer went away")
            messages.append(message)

        await response(SCOPE, _never_disconnect, send)

        assert [m["type"] for m in messages] == ["http.response.start"]
        assert response.headers_sent
        assert response.cleanup.fired
        assert not store.exists("s1")

    @pytest.mark.asyncio
    async def test_cleanup_runs_once_even_if_already_fired(self, store: SessionStore):
        artifact = _stage_artifact(store, size=10)
        response = _response(store, artifact)

        async def send(message):
            pass

        await response(SCOPE, _never_disconnect, send)

        assert await response.cleanup() is False


class TestResultStreamer:
    """Tests for ResultStreamer.stream."""

    @pytest.mark.asyncio
    async def test_builds_response_for_existing_file(self, store: SessionStore):
        artifact = _stage_artifact(store, size=2048)
        cleanup = store.cleanup_handle("s1")

        response = await ResultStreamer(chunk_size=512).stream(artifact, "video/mp4", cleanup)

        assert isinstance(response, SessionFileResponse)
        assert response.size == 2048
        assert response.chunk_size == 512
        assert response.media_type == "video/mp4"
        assert not cleanup.fired

    @pytest.mark.asyncio
    async def test_missing_artifact_raises_and_cleans_up(self, store: SessionStore):
        directory = store.ensure("s1")
        cleanup = store.cleanup_handle("s1")

        with pytest.raises(StreamError):
            await ResultStreamer().stream(directory / "output.mp4", "video/mp4", cleanup)

        assert cleanup.fired
        assert not store.exists("s1")
