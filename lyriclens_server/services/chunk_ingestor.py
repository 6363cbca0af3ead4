"""Persistence of uploaded frame batches and the audio track."""

import asyncio
import logging
import os
from collections import Counter
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO
from uuid import uuid4

from starlette.datastructures import UploadFile

from lyriclens_server.exceptions import (
    ExportServerError,
    FileTooLargeError,
    TooManyFilesError,
    ValidationError,
)
from lyriclens_server.services.session_store import SessionStore
from lyriclens_server.utils.path_sanitizer import sanitize_filename

logger = logging.getLogger(__name__)

_COPY_CHUNK_SIZE = 1024 * 1024
_PART_SUFFIX = ".part"


@dataclass
class RejectedFile:
    """A single upload that was skipped, with the reason."""

    filename: str
    code: str
    reason: str

    def to_dict(self) -> dict:
        return {"filename": self.filename, "code": self.code, "reason": self.reason}


@dataclass
class IngestResult:
    """Outcome of one ``receive`` call (not cumulative)."""

    accepted: int = 0
    rejected: list[RejectedFile] = field(default_factory=list)


def _staged_names(directory: Path) -> set[str]:
    return {
        entry.name
        for entry in directory.iterdir()
        if entry.is_file() and not entry.name.endswith(_PART_SUFFIX)
    }


class SessionSlots:
    """Filenames holding a quota slot in one session: staged or being written."""

    def __init__(self, staged: set[str]) -> None:
        self.staged = staged
        self.pending: Counter[str] = Counter()
        self.users = 0

    def __len__(self) -> int:
        return len(self.staged) + sum(1 for name in self.pending if name not in self.staged)

    def holds(self, name: str) -> bool:
        return name in self.staged or name in self.pending

    def claim(self, name: str) -> None:
        self.pending[name] += 1

    def release(self, name: str, persisted: bool) -> None:
        self.pending[name] -= 1
        if not self.pending[name]:
            del self.pending[name]
        if persisted:
            self.staged.add(name)


class SlotRegistry:
    """Shares one SessionSlots per session directory between concurrent uploads."""

    def __init__(self) -> None:
        # Map session directory -> slots, kept only while an upload is active
        self._sessions: dict[Path, SessionSlots] = {}

    @asynccontextmanager
    async def open(self, directory: Path) -> AsyncIterator[SessionSlots]:
        # No await between lookup and insert, so concurrent uploads into one
        # session always share a single snapshot.
        slots = self._sessions.get(directory)
        if slots is None:
            slots = self._sessions[directory] = SessionSlots(_staged_names(directory))
        slots.users += 1
        try:
            yield slots
        finally:
            slots.users -= 1
            if not slots.users:
                del self._sessions[directory]

    def __len__(self) -> int:
        return len(self._sessions)


# Global instance
slot_registry = SlotRegistry()


class ChunkIngestor:
    """Writes uploads into a session directory under per-file and per-session quotas."""

    def __init__(
        self,
        store: SessionStore,
        *,
        max_file_size_bytes: int,
        max_files_per_session: int,
        audio_filename: str,
        reserved_filenames: tuple[str, ...] = (),
        slots: SlotRegistry | None = None,
    ) -> None:
        self.store = store
        self.slots = slots if slots is not None else slot_registry
        self.max_file_size_bytes = max_file_size_bytes
        self.max_files_per_session = max_files_per_session
        self.audio_filename = audio_filename
        self.reserved_filenames = {audio_filename, *reserved_filenames}

    async def receive(
        self,
        session_id: str,
        frames: list[UploadFile],
        audio: UploadFile | None = None,
    ) -> IngestResult:
        """Persist one batch. Oversize or over-quota files are rejected individually."""
        directory = self.store.ensure(session_id)
        result = IngestResult()

        uploads: list[tuple[UploadFile, str]] = []
        if audio is not None:
            uploads.append((audio, self.audio_filename))
        for frame in frames:
            uploads.append((frame, self._frame_target(frame)))

        async with self.slots.open(directory) as slots:
            for upload, target_name in uploads:
                original = upload.filename or ""
                try:
                    if not target_name:
                        raise ValidationError(f"Invalid filename: {original!r}")
                    await self._store_in_slot(slots, upload, directory / target_name)
                except ExportServerError as e:
                    logger.warning("[Chunk] Rejected %s for session %s: %s", original, session_id, e.message)
                    result.rejected.append(RejectedFile(original, e.code, e.message))
                    continue
                result.accepted += 1

        logger.info(
            "[Chunk] Session %s accepted %d file(s), rejected %d",
            session_id,
            result.accepted,
            len(result.rejected),
        )
        return result

    def _frame_target(self, upload: UploadFile) -> str:
        name = sanitize_filename(upload.filename)
        if name in self.reserved_filenames or name.endswith(_PART_SUFFIX):
            return ""
        return name

    async def _store_in_slot(self, slots: SessionSlots, upload: UploadFile, target: Path) -> None:
        # Check and claim happen without an await in between.
        if not slots.holds(target.name) and len(slots) >= self.max_files_per_session:
            raise TooManyFilesError(len(slots) + 1, self.max_files_per_session)
        slots.claim(target.name)
        persisted = False
        try:
            await self._persist(upload, target)
            persisted = True
        finally:
            slots.release(target.name, persisted)

    async def _persist(self, upload: UploadFile, target: Path) -> None:
        if upload.size is not None and upload.size > self.max_file_size_bytes:
            raise FileTooLargeError(upload.filename, self.max_file_size_bytes)
        await asyncio.to_thread(self._copy_atomic, upload.file, target, upload.filename)

    def _copy_atomic(self, source: BinaryIO, target: Path, filename: str | None) -> None:
        """Copy into a private temp file, then rename it into place.

        Readers never see a partially written file, and concurrent writers of
        the same name leave one complete copy behind.
        """
        part = target.with_name(f".{target.name}.{uuid4().hex}{_PART_SUFFIX}")
        written = 0
        try:
            source.seek(0)
            with open(part, "wb") as out:
                while chunk := source.read(_COPY_CHUNK_SIZE):
                    written += len(chunk)
                    if written > self.max_file_size_bytes:
                        raise FileTooLargeError(filename, self.max_file_size_bytes)
                    out.write(chunk)
            os.replace(part, target)
        except BaseException:
            part.unlink(missing_ok=True)
            raise
