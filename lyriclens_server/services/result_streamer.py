"""Streaming of finished artifacts with guaranteed session cleanup."""

import asyncio
import logging
import os
from pathlib import Path
from typing import BinaryIO

from fastapi.responses import JSONResponse, Response
from starlette.types import Receive, Scope, Send

from lyriclens_server.exceptions import StreamError
from lyriclens_server.services.session_store import SessionCleanup

logger = logging.getLogger(__name__)


class SessionFileResponse(Response):
    """Sends one file in chunks, then destroys the session that owns it.

    Each chunk is read off the event loop only after the previous ``send``
    returned, so the client's read rate paces the disk reads. The cleanup
    handle runs exactly once whether the transfer completes, fails or the
    client disconnects.
    """

    def __init__(
        self,
        path: Path | str,
        *,
        size: int,
        media_type: str,
        cleanup: SessionCleanup,
        filename: str | None = None,
        chunk_size: int = 64 * 1024,
    ) -> None:
        headers = {"content-length": str(size)}
        if filename:
            headers["content-disposition"] = f'attachment; filename="{filename}"'
        super().__init__(content=None, headers=headers, media_type=media_type)
        self.path = Path(path)
        self.size = size
        self.cleanup = cleanup
        self.chunk_size = chunk_size
        self.headers_sent = False

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await self._stream(receive, send)
        except Exception as e:
            error = e if isinstance(e, StreamError) else StreamError(f"Failed to stream result: {e}")
            logger.error("[Stream Error] %s: %s", self.path.name, e)
            if not self.headers_sent:
                await JSONResponse(error.to_dict(), status_code=error.status_code)(scope, receive, send)
            # Once headers are out the only option is to let the connection drop.
        finally:
            await self.cleanup()

    async def _stream(self, receive: Receive, send: Send) -> None:
        file = await asyncio.to_thread(open, self.path, "rb")
        try:
            send_task = asyncio.create_task(self._send_file(file, send))
            disconnect_task = asyncio.create_task(self._wait_for_disconnect(receive))
            tasks = {send_task, disconnect_task}
            try:
                done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
            finally:
                for task in tasks:
                    task.cancel()
                await asyncio.gather(*tasks, return_exceptions=True)

            if send_task in done:
                send_task.result()
            else:
                logger.warning("[Stream] Client disconnected while streaming %s", self.path.name)
        finally:
            await asyncio.to_thread(file.close)

    async def _send_file(self, file: BinaryIO, send: Send) -> None:
        await send(
            {
                "type": "http.response.start",
                "status": self.status_code,
                "headers": self.raw_headers,
            }
        )
        self.headers_sent = True
        more_body = True
        while more_body:
            chunk = await asyncio.to_thread(file.read, self.chunk_size)
            more_body = len(chunk) == self.chunk_size
            await send({"type": "http.response.body", "body": chunk, "more_body": more_body})

    @staticmethod
    async def _wait_for_disconnect(receive: Receive) -> None:
        while True:
            message = await receive()
            if message["type"] == "http.disconnect":
                return


class ResultStreamer:
    """Turns a finished artifact into a response that cleans up its session."""

    def __init__(self, chunk_size: int = 64 * 1024) -> None:
        self.chunk_size = chunk_size

    async def stream(
        self,
        file_path: Path | str,
        content_type: str,
        cleanup: SessionCleanup,
        filename: str | None = None,
    ) -> SessionFileResponse:
        """Build the streaming response for ``file_path``.

        If the artifact cannot even be stat'ed, the session is destroyed here
        and ``StreamError`` is raised while a normal error response is still
        possible.
        """
        try:
            stat = await asyncio.to_thread(os.stat, file_path)
        except OSError as e:
            await cleanup()
            raise StreamError(f"Failed to stream result: {e.strerror or e}") from e

        logger.info("[Stream] Sending %s (%d bytes)", Path(file_path).name, stat.st_size)
        return SessionFileResponse(
            file_path,
            size=stat.st_size,
            media_type=content_type,
            cleanup=cleanup,
            filename=filename,
            chunk_size=self.chunk_size,
        )
