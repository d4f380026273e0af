"""Sliding-window rate limiting keyed by caller identity."""

from __future__ import annotations

import math
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Callable, Deque, Dict, Mapping

from .errors import RateLimitExceeded

# Per-endpoint overrides applied on top of the profile-wide limit.
DEFAULT_ENDPOINT_LIMITS: Mapping[str, tuple[timedelta, int]] = {
    "/api/webhook/send": (timedelta(minutes=1), 10),
    "/api/channels/create": (timedelta(minutes=5), 5),
    "/api/roles/create": (timedelta(minutes=5), 5),
    "/api/server/setup": (timedelta(hours=1), 1),
    "/health": (timedelta(minutes=1), 100),
    "/api/status": (timedelta(minutes=1), 50),
}


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    remaining: int
    limit: int
    retry_after: int = 0


@dataclass
class _Record:
    lock: threading.Lock = field(default_factory=threading.Lock)
    timestamps: Deque[float] = field(default_factory=deque)
    retired: bool = False


def identity_for(address: str, *, user_agent: str | None = None, endpoint: str | None = None) -> str:
    """Build the key a request is counted under."""

    parts = [address or "unknown"]
    if user_agent is not None:
        parts.append(user_agent or "unknown")
    if endpoint is not None:
        parts.append(endpoint)
    return "|".join(parts)


class SlidingWindowRateLimiter:
    """Count admissions per identity inside a trailing time window."""

    def __init__(
        self,
        *,
        window: timedelta,
        max_requests: int,
        timer: Callable[[], float] | None = None,
    ) -> None:
        if window.total_seconds() <= 0:
            raise ValueError("Rate limit window must be greater than zero seconds.")
        if max_requests <= 0:
            raise ValueError("Rate limit maximum must be a positive integer.")

        self._window = window.total_seconds()
        self._max = max_requests
        self._timer = timer or time.monotonic
        self._registry_lock = threading.Lock()
        self._records: Dict[str, _Record] = {}

    @property
    def max_requests(self) -> int:
        return self._max

    @property
    def window(self) -> timedelta:
        return timedelta(seconds=self._window)

    def __len__(self) -> int:
        with self._registry_lock:
            return len(self._records)

    def _record_for(self, identity: str) -> _Record:
        with self._registry_lock:
            record = self._records.get(identity)
            if record is None:
                record = _Record()
                self._records[identity] = record
            return record

    def _prune(self, timestamps: Deque[float], now: float) -> None:
        while timestamps and now - timestamps[0] >= self._window:
            timestamps.popleft()

    def admit(self, identity: str) -> RateLimitDecision:
        """Record one request for *identity* unless its window is full.

        Denied attempts are not recorded, so a caller hammering a full window
        does not extend its own lockout.
        """

        while True:
            record = self._record_for(identity)
            with record.lock:
                if record.retired:
                    continue
                now = self._timer()
                timestamps = record.timestamps
                self._prune(timestamps, now)

                if len(timestamps) >= self._max:
                    retry_after = math.ceil(timestamps[0] + self._window - now)
                    return RateLimitDecision(
                        allowed=False,
                        remaining=0,
                        limit=self._max,
                        retry_after=max(retry_after, 1),
                    )

                timestamps.append(now)
                return RateLimitDecision(
                    allowed=True,
                    remaining=self._max - len(timestamps),
                    limit=self._max,
                )

    def remaining(self, identity: str) -> int:
        with self._registry_lock:
            record = self._records.get(identity)
        if record is None:
            return self._max
        with record.lock:
            self._prune(record.timestamps, self._timer())
            return max(0, self._max - len(record.timestamps))

    def reset(self, identity: str | None = None) -> None:
        """Forget recorded requests for one identity, or for everyone."""

        with self._registry_lock:
            if identity is None:
                records = list(self._records.values())
                self._records.clear()
            else:
                record = self._records.pop(identity, None)
                records = [record] if record is not None else []
        for record in records:
            with record.lock:
                record.retired = True

    def sweep(self) -> int:
        """Drop identities whose windows have fully aged out; return how many."""

        now = self._timer()
        removed = 0
        with self._registry_lock:
            for identity, record in list(self._records.items()):
                with record.lock:
                    self._prune(record.timestamps, now)
                    if record.timestamps:
                        continue
                    record.retired = True
                del self._records[identity]
                removed += 1
        return removed


class RateLimitPolicy:
    """Global pool keyed by address plus stricter per-endpoint pools."""

    def __init__(
        self,
        *,
        window: timedelta,
        max_requests: int,
        endpoint_limits: Mapping[str, tuple[timedelta, int]] | None = None,
        timer: Callable[[], float] | None = None,
    ) -> None:
        self.global_limiter = SlidingWindowRateLimiter(window=window, max_requests=max_requests, timer=timer)
        limits = DEFAULT_ENDPOINT_LIMITS if endpoint_limits is None else endpoint_limits
        self.endpoint_limiters: Dict[str, SlidingWindowRateLimiter] = {
            path: SlidingWindowRateLimiter(window=endpoint_window, max_requests=endpoint_max, timer=timer)
            for path, (endpoint_window, endpoint_max) in limits.items()
        }

    def check(self, address: str, path: str) -> RateLimitDecision:
        """Admit the request against both pools or raise ``RateLimitExceeded``.

        The global slot stays consumed when the endpoint pool denies.
        """

        decision = self.global_limiter.admit(identity_for(address))
        if not decision.allowed:
            raise RateLimitExceeded(retry_after=decision.retry_after, limit=decision.limit, scope="global")

        endpoint_limiter = self.endpoint_limiters.get(path)
        if endpoint_limiter is None:
            return decision

        endpoint_decision = endpoint_limiter.admit(identity_for(address, endpoint=path))
        if not endpoint_decision.allowed:
            raise RateLimitExceeded(
                retry_after=endpoint_decision.retry_after,
                limit=endpoint_decision.limit,
                scope="endpoint",
            )
        if endpoint_decision.remaining < decision.remaining:
            return endpoint_decision
        return decision

    def sweep(self) -> int:
        removed = self.global_limiter.sweep()
        for limiter in self.endpoint_limiters.values():
            removed += limiter.sweep()
        return removed
