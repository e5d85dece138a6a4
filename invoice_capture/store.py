"""
In-memory session store.

Sessions live for the lifetime of the process unless an eviction policy is
configured. Updates to one session id are serialized through a per-key
asyncio lock so two concurrent requests never interleave their mutations.
"""

import asyncio
import inspect
import secrets
import time
from datetime import datetime
from typing import Any, Callable, Optional

from .config import SESSION_ID_PREFIX, SESSION_IDLE_TTL_SECONDS, logger
from .exceptions import SessionNotFoundError
from .schemas import Session, utc_now_iso


_BASE36 = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"


def _to_base36(value: int) -> str:
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits)) or "0"


def new_session_id() -> str:
    """
    Generate a session id such as ``INV-M7XK2P1A-3F9C``.

    The base-36 millisecond timestamp keeps ids roughly sortable; the random
    suffix keeps ids created in the same millisecond apart.
    """
    millis = int(time.time() * 1000)
    return f"{SESSION_ID_PREFIX}{_to_base36(millis)}-{secrets.token_hex(2).upper()}"


# ============================================================================
# Eviction Policies
# ============================================================================

class EvictionPolicy:
    """Decides whether a stored session should be dropped."""

    def is_expired(self, session: Session, now: float) -> bool:
        raise NotImplementedError


class NeverEvict(EvictionPolicy):
    """Keep every session for the lifetime of the process."""

    def is_expired(self, session: Session, now: float) -> bool:
        return False


class IdleTimeoutEviction(EvictionPolicy):
    """Drop sessions that have not been updated for ``max_idle_seconds``."""

    def __init__(self, max_idle_seconds: float):
        self.max_idle_seconds = max_idle_seconds

    def is_expired(self, session: Session, now: float) -> bool:
        last_update = datetime.fromisoformat(session.updated_at).timestamp()
        return (now - last_update) > self.max_idle_seconds


def default_eviction_policy() -> EvictionPolicy:
    if SESSION_IDLE_TTL_SECONDS > 0:
        return IdleTimeoutEviction(SESSION_IDLE_TTL_SECONDS)
    return NeverEvict()


# ============================================================================
# Store
# ============================================================================

class SessionStore:
    """Mapping from session id to Session with per-key atomic updates."""

    def __init__(self, eviction: Optional[EvictionPolicy] = None):
        self._sessions: dict[str, Session] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self.eviction = eviction or NeverEvict()

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def create(self, session_id: str) -> Session:
        """Create a pending session, or return the existing one for this id."""
        self.evict_expired()
        session = self._sessions.get(session_id)
        if session is None:
            session = Session(session_id=session_id)
            self._sessions[session_id] = session
            self._locks[session_id] = asyncio.Lock()
            logger.info(f"Created session {session_id}")
        return session

    def get(self, session_id: str) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    async def update(self, session_id: str, mutator: Callable[[Session], Any]) -> Any:
        """
        Apply ``mutator`` to the session while holding its lock.

        The mutator may be a plain function or a coroutine function; its
        return value is passed through. ``updated_at`` is stamped after the
        mutator returns, also when it raises.

        Raises:
            SessionNotFoundError: if the session does not exist
        """
        session = self.get(session_id)
        async with self._locks[session_id]:
            try:
                result = mutator(session)
                if inspect.isawaitable(result):
                    result = await result
                return result
            finally:
                session.updated_at = utc_now_iso()

    def evict_expired(self) -> int:
        """Drop sessions the eviction policy reports as expired."""
        now = time.time()
        expired = [
            session_id
            for session_id, session in self._sessions.items()
            if not self._locks[session_id].locked() and self.eviction.is_expired(session, now)
        ]
        for session_id in expired:
            del self._sessions[session_id]
            del self._locks[session_id]
        if expired:
            logger.info(f"Evicted {len(expired)} idle session(s)")
        return len(expired)
