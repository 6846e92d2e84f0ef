from __future__ import annotations

import threading
import time
from abc import ABC, abstractmethod
from typing import Callable

from auth.models import PendingAuthorization

DEFAULT_STATE_TTL_SECONDS = 600


class StateStore(ABC):
    """Correlates an issued ``state`` with the PKCE verifier that belongs to it."""

    @abstractmethod
    async def put(self, state: str, verifier: str) -> None:
        raise NotImplementedError

    @abstractmethod
    async def take(self, state: str) -> str | None:
        """Remove and return the verifier for ``state``.

        Returns ``None`` when the state is unknown, already taken or expired.
        Implementations must make the lookup and the removal a single step so
        that two callbacks racing on the same state cannot both succeed.
        """
        raise NotImplementedError

    @abstractmethod
    async def sweep(self) -> int:
        raise NotImplementedError

    @abstractmethod
    def __len__(self) -> int:
        raise NotImplementedError

    @abstractmethod
    def __contains__(self, state: object) -> bool:
        raise NotImplementedError


class MemoryStateStore(StateStore):
    def __init__(
        self,
        ttl_seconds: float = DEFAULT_STATE_TTL_SECONDS,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._pending: dict[str, PendingAuthorization] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending)

    def __contains__(self, state: object) -> bool:
        with self._lock:
            return state in self._pending

    async def put(self, state: str, verifier: str) -> None:
        with self._lock:
            self._pending[state] = PendingAuthorization(
                state=state,
                verifier=verifier,
                created_at=self._clock(),
            )

    async def take(self, state: str) -> str | None:
        with self._lock:
            pending = self._pending.pop(state, None)
        if pending is None:
            return None
        if pending.is_expired(self.ttl_seconds, now=self._clock()):
            return None
        return pending.verifier

    async def sweep(self) -> int:
        now = self._clock()
        with self._lock:
            expired_states = [
                state
                for state, pending in self._pending.items()
                if pending.is_expired(self.ttl_seconds, now=now)
            ]
            for state in expired_states:
                del self._pending[state]
        return len(expired_states)
