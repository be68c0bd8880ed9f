"""Session save/resume on top of a BlobStore.

Writes are debounced: schedule_save() serializes the session immediately
but only writes it after SAVE_DEBOUNCE_SECONDS, and a newer request cancels
the pending one. Busy (mid-turn) and game-over sessions are never written.

load() treats anything it cannot trust as absent and removes it from the
store: bytes that are not UTF-8, unparsable JSON, a payload that fails
Session validation (including out-of-range stats), or a session that
already ended.

The slot key carries a schema version. Bump it whenever Session changes
shape so old saves are simply not found instead of misparsed.
"""

from __future__ import annotations

import asyncio
import logging

from pydantic import ValidationError

from xianxia.models import Session
from xianxia.storage import BlobStore

logger = logging.getLogger(__name__)

SAVE_SLOT_KEY = "xianxia_save_v2"
SAVE_DEBOUNCE_SECONDS = 0.5


def is_persistable(session: Session) -> bool:
    return not session.is_busy and not session.is_game_over


class SessionPersistence:
    def __init__(
        self,
        store: BlobStore,
        key: str = SAVE_SLOT_KEY,
        delay: float = SAVE_DEBOUNCE_SECONDS,
    ) -> None:
        self._store = store
        self._key = key
        self._delay = delay
        self._pending: asyncio.Task | None = None
        self._pending_blob: str | None = None

    @property
    def key(self) -> str:
        return self._key

    @property
    def has_pending(self) -> bool:
        return self._pending is not None and not self._pending.done()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def save(self, session: Session) -> bool:
        """Write immediately. Returns False when the session is not persistable."""
        if not is_persistable(session):
            return False
        self._store.set(self._key, session.model_dump_json())
        return True

    def schedule_save(self, session: Session) -> None:
        """Debounced save; supersedes any write still waiting."""
        if not is_persistable(session):
            logger.debug("save skipped busy=%s game_over=%s", session.is_busy, session.is_game_over)
            return
        self.cancel()
        self._pending_blob = session.model_dump_json()
        self._pending = asyncio.get_running_loop().create_task(
            self._write_later(self._pending_blob)
        )

    async def _write_later(self, blob: str) -> None:
        try:
            await asyncio.sleep(self._delay)
        except asyncio.CancelledError:
            return
        self._store.set(self._key, blob)
        self._pending = None
        self._pending_blob = None

    async def flush(self) -> None:
        """Write the pending snapshot now instead of waiting for the timer."""
        blob = self._pending_blob
        if blob is None or not self.has_pending:
            return
        self.cancel()
        self._store.set(self._key, blob)

    def cancel(self) -> None:
        """Drop the pending write, if any, without writing it."""
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()
        self._pending = None
        self._pending_blob = None

    def close(self) -> None:
        self.cancel()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def load(self) -> Session | None:
        try:
            blob = self._store.get(self._key)
            if blob is None:
                return None
            session = Session.model_validate_json(blob)
        except (UnicodeDecodeError, ValidationError) as e:
            logger.warning("Discarding unreadable save %s: %s", self._key, e)
            self._store.remove(self._key)
            return None
        if not is_persistable(session):
            logger.info("Discarding finished save %s", self._key)
            self._store.remove(self._key)
            return None
        return session

    def clear(self) -> None:
        self.cancel()
        self._store.remove(self._key)
