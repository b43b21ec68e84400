"""Request throttling.

``limiter`` is the app-wide slowapi limiter keyed by client address.
``RateLimiter`` counts attempts per identifier and attempt type (for example
``magic-link:alice@example.com``) inside a fixed window. Its state is
process-local and is not shared between instances.
"""

import time
from dataclasses import dataclass
from datetime import datetime, timezone

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address)

PRUNE_AFTER_SECONDS = 60 * 60


@dataclass
class RateLimitEntry:
    count: int
    first_attempt: float
    last_attempt: float


@dataclass
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_at: datetime


class RateLimiter:
    """Fixed-window attempt counter keyed by ``{type}:{identifier}``."""

    def __init__(self, clock=time.time):
        self._entries: dict[str, RateLimitEntry] = {}
        self._clock = clock
        self._last_prune = clock()

    def check(
        self,
        identifier: str,
        limit_type: str,
        max_attempts: int,
        window_minutes: int = 60,
    ) -> RateLimitResult:
        """Count one attempt and report whether it is within the limit."""
        now = self._clock()
        self._prune(now)
        key = f"{limit_type}:{identifier}"
        window = window_minutes * 60

        entry = self._entries.get(key)
        if entry is None or now - entry.first_attempt > window:
            self._entries[key] = RateLimitEntry(count=1, first_attempt=now, last_attempt=now)
            return RateLimitResult(
                allowed=True,
                remaining=max(0, max_attempts - 1),
                reset_at=datetime.fromtimestamp(now + window, timezone.utc),
            )

        entry.count += 1
        entry.last_attempt = now
        return RateLimitResult(
            allowed=entry.count <= max_attempts,
            remaining=max(0, max_attempts - entry.count),
            reset_at=datetime.fromtimestamp(entry.first_attempt + window, timezone.utc),
        )

    def reset(self, identifier: str, limit_type: str) -> None:
        self._entries.pop(f"{limit_type}:{identifier}", None)

    def clear(self) -> None:
        self._entries.clear()

    def _prune(self, now: float) -> None:
        """Drop entries idle for an hour. Runs at most once an hour."""
        if now - self._last_prune < PRUNE_AFTER_SECONDS:
            return
        self._last_prune = now
        stale = [
            key
            for key, entry in self._entries.items()
            if now - entry.last_attempt > PRUNE_AFTER_SECONDS
        ]
        for key in stale:
            del self._entries[key]

    def __len__(self) -> int:
        return len(self._entries)


attempt_limiter = RateLimiter()
