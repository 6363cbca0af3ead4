"""Async execution of external tools (ffmpeg, yt-dlp) with exit-code classification."""

import asyncio
import contextlib
import logging
import re
from collections import deque
from collections.abc import Sequence
from pathlib import Path

from lyriclens_server.exceptions import ProcessError, ProcessTimeoutError, SpawnError

logger = logging.getLogger(__name__)
process_logger = logging.getLogger("lyriclens_server.process")

STDERR_TAIL_LINES = 20
STDERR_READ_SIZE = 4096
_LINE_BREAK = re.compile(rb"[\r\n]")


class ExternalProcessRunner:
    """Runs one executable per call, without a shell.

    stderr is forwarded to the ``lyriclens_server.process`` logger line by
    line; stdout is discarded. Consumers that need output read the file the
    tool produced. Retries are left to callers.
    """

    def __init__(self, timeout_seconds: float | None = None) -> None:
        self.timeout_seconds = timeout_seconds or None

    async def run(self, command: str, args: Sequence[str]) -> None:
        name = Path(command).name
        try:
            proc = await asyncio.create_subprocess_exec(
                command,
                *[str(a) for a in args],
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.error("[Process] Failed to spawn %s: %s", command, e)
            raise SpawnError(name, e.strerror or str(e)) from e

        tail: deque[str] = deque(maxlen=STDERR_TAIL_LINES)
        stderr_task = asyncio.create_task(self._forward_stderr(name, proc.stderr, tail))
        try:
            returncode = await asyncio.wait_for(proc.wait(), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            await self._kill(proc)
            await stderr_task
            logger.error("[Process] %s killed after %ss", name, self.timeout_seconds)
            raise ProcessTimeoutError(name, self.timeout_seconds, list(tail))
        except asyncio.CancelledError:
            await self._kill(proc)
            stderr_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await stderr_task
            raise

        await stderr_task
        if returncode != 0:
            logger.error("[Process] %s exited with code %s", name, returncode)
            raise ProcessError(name, returncode, list(tail))

    @staticmethod
    async def _forward_stderr(name: str, stream: asyncio.StreamReader | None, tail: deque[str]) -> None:
        if stream is None:
            return

        def emit(raw_line: bytes) -> None:
            line = raw_line.decode("utf-8", errors="replace").strip()
            if line:
                tail.append(line)
                process_logger.info("[%s] %s", name, line)

        # ffmpeg terminates progress lines with \r only, so split on both.
        buffer = b""
        while chunk := await stream.read(STDERR_READ_SIZE):
            buffer += chunk
            *lines, buffer = _LINE_BREAK.split(buffer)
            for raw_line in lines:
                emit(raw_line)
        emit(buffer)

    @staticmethod
    async def _kill(proc: asyncio.subprocess.Process) -> None:
        if proc.returncode is None:
            try:
                proc.kill()
            except ProcessLookupError:
                pass
        await proc.wait()
