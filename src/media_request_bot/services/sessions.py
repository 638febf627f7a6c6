"""Session persistence interface and expiry sweep."""

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from typing import Protocol
from uuid import UUID

from media_request_bot.domain.sessions import ConversationSession
from media_request_bot.services.cache import Cache

_logger = logging.getLogger(__name__)


class SessionRepository(Protocol):
    """Persistence interface for conversation sessions.

    Lookups never return a session whose ``expires_at`` has passed, even if
    the row has not been swept yet.
    """

    def get_active_session(self, sender_hash: str) -> ConversationSession | None:
        """Return the live session for a sender, if present."""

    def get_session(self, session_id: UUID) -> ConversationSession | None:
        """Return a live session by id, if present."""

    def create_session(self, session: ConversationSession) -> ConversationSession:
        """Persist a new session, replacing stale rows for the same sender."""

    def update_session(
        self, session_id: UUID, changes: dict[str, object]
    ) -> ConversationSession | None:
        """Apply a partial update and return the stored session."""

    def delete_session(self, session_id: UUID) -> bool:
        """Delete a session; return True when a row was removed."""

    def list_sessions(self, limit: int = 20) -> list[ConversationSession]:
        """Return the most recently updated live sessions."""

    def sweep_expired(self) -> int:
        """Delete expired sessions and return how many were removed."""


@dataclass
class SessionSweeper:
    """Periodically removes expired sessions and stale side-table entries."""

    repository: SessionRepository
    interval_seconds: float = 60
    caches: list[Cache] = field(default_factory=list)
    _task: asyncio.Task[None] | None = field(default=None, init=False, repr=False)

    def sweep_once(self) -> int:
        """Run a single sweep pass."""
        removed = self.repository.sweep_expired()
        purged = sum(cache.purge_expired() for cache in self.caches)
        if removed or purged:
            _logger.info(
                "Swept expired sessions: sessions=%s cache_entries=%s",
                removed,
                purged,
            )
        return removed

    async def run(self) -> None:
        """Sweep forever at the configured interval."""
        while True:
            try:
                self.sweep_once()
            except Exception:
                _logger.exception("Session sweep failed")
            await asyncio.sleep(self.interval_seconds)

    def start(self) -> None:
        """Start the background sweep on the running loop."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run())

    async def stop(self) -> None:
        """Cancel the background sweep and wait for it to exit."""
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
