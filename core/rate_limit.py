# core/rate_limit.py
"""Rate-limit bookkeeping behind an injectable store interface."""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    remaining: int
    retry_after: float = 0.0


def _prune(window: deque[float], now: float, window_seconds: float) -> None:
    while window and now - window[0] >= window_seconds:
        window.popleft()


class RateLimitStore(ABC):
    """Process or deployment wide counters keyed by client or credential."""

    @abstractmethod
    def hit(self, key: str, limit: int, window_seconds: float) -> RateLimitDecision:
        """Record one request for ``key`` and report whether it fits the window."""

    @abstractmethod
    def mark_exhausted(self, key: str, cooldown_seconds: float) -> None:
        """Remember that ``key`` hit a provider quota."""

    @abstractmethod
    def is_exhausted(self, key: str) -> bool:
        """True while ``key`` is cooling down after a quota error."""

    @abstractmethod
    def reset(self) -> None:
        """Drop all counters."""


class InMemoryRateLimitStore(RateLimitStore):
    """Sliding-window counters for a single-instance deployment."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._hits: dict[str, deque[float]] = {}
        self._exhausted_until: dict[str, float] = {}
        self._next_sweep = 0.0

    def hit(self, key: str, limit: int, window_seconds: float) -> RateLimitDecision:
        if limit <= 0:
            return RateLimitDecision(True, 0)
        now = self._clock()
        self._sweep(now, window_seconds)
        window = self._hits.setdefault(key, deque())
        _prune(window, now, window_seconds)
        if len(window) >= limit:
            retry_after = window_seconds - (now - window[0])
            return RateLimitDecision(False, 0, max(retry_after, 0.0))
        window.append(now)
        return RateLimitDecision(True, limit - len(window))

    def _sweep(self, now: float, window_seconds: float) -> None:
        """Forget clients whose whole window has expired."""
        if now < self._next_sweep:
            return
        self._next_sweep = now + window_seconds
        for key in list(self._hits):
            window = self._hits[key]
            _prune(window, now, window_seconds)
            if not window:
                del self._hits[key]

    def tracked_keys(self) -> int:
        return len(self._hits)

    def mark_exhausted(self, key: str, cooldown_seconds: float) -> None:
        if cooldown_seconds <= 0:
            return
        self._exhausted_until[key] = self._clock() + cooldown_seconds

    def is_exhausted(self, key: str) -> bool:
        until = self._exhausted_until.get(key)
        if until is None:
            return False
        if self._clock() >= until:
            del self._exhausted_until[key]
            return False
        return True

    def reset(self) -> None:
        self._hits.clear()
        self._exhausted_until.clear()
        self._next_sweep = 0.0
