"""Rate limiting, token rotation and due-time cutoffs shared by both bots."""

from __future__ import annotations

import threading
import time
from collections import deque
from collections.abc import Callable, Hashable, Sequence
from datetime import datetime, timedelta

from .models import SearchToken


class SlidingWindowLimiter:
    """Allow at most ``max_requests`` per key within any ``window_seconds`` span."""

    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._hits: dict[Hashable, deque[float]] = {}
        self._lock = threading.Lock()

    def _prune(self, key: Hashable, now: float) -> deque[float]:
        hits = self._hits.setdefault(key, deque())
        while hits and now - hits[0] >= self.window_seconds:
            hits.popleft()
        return hits

    def try_acquire(self, key: Hashable) -> bool:
        """Record a request for ``key`` if quota remains; never blocks."""
        with self._lock:
            now = self._clock()
            hits = self._prune(key, now)
            if len(hits) >= self.max_requests:
                return False
            hits.append(now)
            return True

    def remaining(self, key: Hashable) -> int:
        with self._lock:
            hits = self._prune(key, self._clock())
            return self.max_requests - len(hits)


class TokenRotator:
    """Round-robin over search tokens, skipping any that are out of window quota."""

    def __init__(self, tokens: Sequence[SearchToken], limiter: SlidingWindowLimiter) -> None:
        self._tokens = list(tokens)
        self._limiter = limiter
        self._index = 0
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._tokens)

    def acquire(self) -> SearchToken | None:
        """Return the next token with quota, already charged, or None if all are exhausted."""
        with self._lock:
            for _ in range(len(self._tokens)):
                token = self._tokens[self._index]
                self._index = (self._index + 1) % len(self._tokens)
                if self._limiter.try_acquire(token.id):
                    return token
            return None


def retry_cutoff(now: datetime, retry_minutes: float) -> datetime:
    return now - timedelta(minutes=retry_minutes)


def recheck_cutoff(now: datetime, recheck_hours: float) -> datetime:
    return now - timedelta(hours=recheck_hours)


def query_cutoff(now: datetime, query_interval_hours: float) -> datetime:
    return now - timedelta(hours=query_interval_hours)
