"""Filesystem-backed session staging.

Each session owns exactly one directory under a fixed root. The directory's
presence is the session's only state, so no in-memory registry is shared
between requests.
"""

import asyncio
import logging
import shutil
from pathlib import Path
from uuid import uuid4

from lyriclens_server.exceptions import InvalidSessionIdError
from lyriclens_server.utils.path_sanitizer import sanitize_id

logger = logging.getLogger(__name__)


def generate_session_id() -> str:
    """Return a fresh collision-resistant session id."""
    return uuid4().hex


class SessionCleanup:
    """Destroys one session on its first call; later calls do nothing.

    A single instance is shared by every exit path of a request (failure
    handlers, stream completion, client disconnect).
    """

    def __init__(self, store: "SessionStore", session_id: str) -> None:
        self._store = store
        self.session_id = session_id
        self._fired = False

    @property
    def fired(self) -> bool:
        return self._fired

    async def __call__(self) -> bool:
        if self._fired:
            return False
        self._fired = True
        await asyncio.to_thread(self._store.destroy, self.session_id)
        return True


class SessionStore:
    """Maps session ids to isolated staging directories under ``root``."""

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root)

    def resolve(self, session_id: str) -> Path:
        """Return the directory for ``session_id`` without touching the filesystem."""
        safe_id = sanitize_id(session_id)
        if not safe_id:
            raise InvalidSessionIdError(session_id)
        return self.root / safe_id

    def ensure(self, session_id: str) -> Path:
        """Create the session directory if absent. Safe under concurrent calls."""
        directory = self.resolve(session_id)
        directory.mkdir(parents=True, exist_ok=True)
        return directory

    def exists(self, session_id: str) -> bool:
        try:
            return self.resolve(session_id).is_dir()
        except InvalidSessionIdError:
            return False

    def create(self) -> tuple[str, Path]:
        """Start a new session with a server-generated id."""
        session_id = generate_session_id()
        return session_id, self.ensure(session_id)

    def destroy(self, session_id: str) -> bool:
        """Remove the session directory tree.

        Never raises: failures are logged and discarded because this runs on
        cleanup paths that must not mask the original result. Returns True
        only if a directory was actually removed.
        """
        try:
            directory = self.resolve(session_id)
        except InvalidSessionIdError:
            return False
        return self._remove(directory, session_id)

    def cleanup_handle(self, session_id: str) -> SessionCleanup:
        return SessionCleanup(self, session_id)

    def purge(self) -> int:
        """Remove leftover session directories under the root.

        Only entries whose name is already a valid session id are touched, so
        unrelated directories in a shared temp root survive.
        """
        if not self.root.is_dir():
            return 0
        removed = 0
        for entry in self.root.iterdir():
            if entry.name != sanitize_id(entry.name) or entry.is_symlink() or not entry.is_dir():
                continue
            if self._remove(entry, entry.name):
                removed += 1
        return removed

    @staticmethod
    def _remove(directory: Path, session_id: str) -> bool:
        if not directory.exists():
            return False
        try:
            shutil.rmtree(directory)
        except OSError as e:
            logger.error("[Cleanup] Failed to remove session %s: %s", session_id, e)
            return False
        logger.info("[Cleanup] Successfully removed session %s", session_id)
        return True
