"""Bounded in-memory registry of discussion sessions.

Eviction is lazy: every store operation first drops sessions idle longer than
the timeout, then drops least-recently-accessed sessions until the store is at
capacity. There is no background sweep, so an idle session keeps its slot until
the next call touches the store.

The store is not locked. Concurrent calls on the same session id are
last-write-wins; callers are expected to issue one call at a time per session.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from party_review.models import DiscussionSession, _utcnow

logger = logging.getLogger(__name__)

DEFAULT_MAX_SESSIONS = 10
DEFAULT_IDLE_TIMEOUT = timedelta(minutes=30)


@dataclass
class SessionRecord:
    session: DiscussionSession
    last_accessed_at: datetime


class SessionStore:
    """Holds active sessions keyed by session id."""

    def __init__(
        self,
        capacity: int = DEFAULT_MAX_SESSIONS,
        idle_timeout: timedelta = DEFAULT_IDLE_TIMEOUT,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self.idle_timeout = idle_timeout
        self._clock = clock
        self._records: dict[str, SessionRecord] = {}

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._records

    def cleanup(self) -> list[str]:
        """Apply idle-timeout then capacity eviction. Returns evicted session ids."""
        now = self._clock()
        evicted = [
            sid for sid, record in self._records.items()
            if now - record.last_accessed_at > self.idle_timeout
        ]
        for sid in evicted:
            del self._records[sid]

        overflow = len(self._records) - self.capacity
        if overflow > 0:
            oldest = sorted(self._records.items(), key=lambda kv: kv[1].last_accessed_at)[:overflow]
            for sid, _ in oldest:
                del self._records[sid]
                evicted.append(sid)

        if evicted:
            logger.info("Evicted %d discussion session(s): %s", len(evicted), ", ".join(evicted))
        return evicted

    def get(self, session_id: str) -> DiscussionSession | None:
        """Return the session and mark it accessed, or None if unknown/expired."""
        self.cleanup()
        record = self._records.get(session_id)
        if record is None:
            return None
        record.last_accessed_at = self._clock()
        return record.session

    def peek(self, session_id: str) -> DiscussionSession | None:
        """Like get, but does not count as an access."""
        self.cleanup()
        record = self._records.get(session_id)
        return record.session if record else None

    def set(self, session: DiscussionSession) -> None:
        """Insert or replace a session unconditionally."""
        self.cleanup()
        self._records[session.session_id] = SessionRecord(session=session, last_accessed_at=self._clock())
        self.cleanup()

    def delete(self, session_id: str) -> DiscussionSession | None:
        self.cleanup()
        record = self._records.pop(session_id, None)
        return record.session if record else None

    def list_sessions(self) -> list[dict]:
        """Return summary list of active sessions, most recently accessed first."""
        self.cleanup()
        return [
            {
                "session_id": sid,
                "identifier": record.session.identifier,
                "scope": record.session.scope,
                "agenda_items": len(record.session.agenda),
                "current_item_index": record.session.current_item_index,
                "decided": len(record.session.completed_rounds),
                "last_accessed_at": record.last_accessed_at.isoformat(),
            }
            for sid, record in sorted(
                self._records.items(), key=lambda kv: kv[1].last_accessed_at, reverse=True,
            )
        ]
