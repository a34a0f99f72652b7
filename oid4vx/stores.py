"""Replay guards shared across requests.

Both stores expose a single atomic check-and-set operation. The in-memory
implementations hold a threading lock around plain dict operations and never
await while holding it, so concurrent callers on threads or on the event loop
cannot both win the same nonce or state.
"""

import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Callable, Dict, Optional

from .models.request_session import RequestSession

LOGGER = logging.getLogger(__name__)

Clock = Callable[[], float]


class NonceStore(ABC):
    """Set of consumed proof nonces."""

    @abstractmethod
    async def consume(self, nonce: str, expires_at: float) -> bool:
        """Record a nonce as consumed.

        Returns False if the nonce was already consumed and has not expired.
        """

    @abstractmethod
    async def purge_expired(self) -> int:
        """Drop expired entries, returning the number removed."""


class SessionStore(ABC):
    """Mapping of state to RequestSession."""

    @abstractmethod
    async def put(self, session: RequestSession, ttl: int):
        """Store a session for at most ttl seconds."""

    @abstractmethod
    async def take(self, state: str) -> Optional[RequestSession]:
        """Remove and return the live session for state, if any."""

    @abstractmethod
    async def purge_expired(self) -> int:
        """Drop expired entries, returning the number removed."""


class InMemoryNonceStore(NonceStore):
    """Process-local nonce store."""

    def __init__(self, clock: Clock = time.time):
        """Initialize the store."""
        self._clock = clock
        self._consumed: Dict[str, float] = {}
        self._lock = threading.Lock()

    def _purge(self, now: float) -> int:
        expired = [n for n, exp in self._consumed.items() if exp <= now]
        for nonce in expired:
            del self._consumed[nonce]
        return len(expired)

    async def consume(self, nonce: str, expires_at: float) -> bool:
        """Record a nonce as consumed."""
        with self._lock:
            now = self._clock()
            self._purge(now)
            if nonce in self._consumed:
                return False
            self._consumed[nonce] = expires_at
            return True

    async def purge_expired(self) -> int:
        """Drop expired entries."""
        with self._lock:
            return self._purge(self._clock())

    def __len__(self) -> int:
        """Number of tracked nonces."""
        return len(self._consumed)


class InMemorySessionStore(SessionStore):
    """Process-local session store with lazy expiry."""

    def __init__(self, clock: Clock = time.time):
        """Initialize the store."""
        self._clock = clock
        self._sessions: Dict[str, tuple] = {}
        self._lock = threading.Lock()

    async def put(self, session: RequestSession, ttl: int):
        """Store a session."""
        with self._lock:
            if session.state in self._sessions:
                raise ValueError("Duplicate request state")
            self._sessions[session.state] = (session, self._clock() + ttl)

    async def take(self, state: str) -> Optional[RequestSession]:
        """Remove and return the live session for state."""
        with self._lock:
            entry = self._sessions.pop(state, None)
        if entry is None:
            return None
        session, expires_at = entry
        if expires_at <= self._clock():
            LOGGER.info("Request session expired")
            return None
        return session

    async def purge_expired(self) -> int:
        """Drop expired sessions."""
        with self._lock:
            now = self._clock()
            expired = [s for s, (_, exp) in self._sessions.items() if exp <= now]
            for state in expired:
                del self._sessions[state]
        return len(expired)

    def __len__(self) -> int:
        """Number of stored sessions."""
        return len(self._sessions)
