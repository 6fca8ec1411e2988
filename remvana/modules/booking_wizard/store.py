"""In-process wizard session store with idle expiry."""

from __future__ import annotations

import datetime as dt
from typing import Callable, Optional

from remvana.config import get_settings
from remvana.database import utcnow
from remvana.logging_config import get_logger
from remvana.modules.booking_wizard.models import WizardSession

logger = get_logger(__name__)


class WizardStore:
    """Dict of live sessions keyed by id; a session idle past the TTL is dropped."""

    def __init__(self, ttl_minutes: int = 120, clock: Callable[[], dt.datetime] = utcnow) -> None:
        self._sessions: dict[str, WizardSession] = {}
        self._ttl = dt.timedelta(minutes=ttl_minutes)
        self._clock = clock

    def __len__(self) -> int:
        return len(self._sessions)

    def put(self, session: WizardSession) -> WizardSession:
        session.updated_at = self._clock()
        self._sessions[session.id] = session
        return session

    def get(self, session_id: str) -> WizardSession:
        """Return a live session.

        Raises:
            LookupError: If the session is unknown or expired.
        """
        self.purge_expired()
        session = self._sessions.get(session_id)
        if session is None:
            raise LookupError(f"Booking session {session_id} not found or expired")
        return session

    def delete(self, session_id: str) -> bool:
        return self._sessions.pop(session_id, None) is not None

    def purge_expired(self) -> int:
        cutoff = self._clock() - self._ttl
        expired = [sid for sid, s in self._sessions.items() if s.updated_at < cutoff]
        for sid in expired:
            del self._sessions[sid]
        if expired:
            logger.info("wizard_sessions_expired", count=len(expired))
        return len(expired)


_store: Optional[WizardStore] = None


def get_wizard_store() -> WizardStore:
    """Return the process-wide wizard store."""
    global _store
    if _store is None:
        _store = WizardStore(ttl_minutes=get_settings().wizard_session_ttl_minutes)
    return _store
