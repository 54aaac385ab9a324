# FILE: httpkernel/ratelimit.py
from __future__ import annotations

import math
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Tuple


@dataclass(frozen=True)
class RateLimit:
    """Outcome of one `consume` call."""

    accepted: bool
    limit: int
    remaining: int
    # Seconds until enough tokens exist for the same cost again; 0 when accepted.
    retry_after: int = 0
    # Wall-clock epoch second at which the retry becomes possible.
    reset_at: int = 0


class RateLimiter:
    """
    Token bucket per key.

    Buckets start full at `capacity` and refill continuously at
    `refill_per_s`. The bucket table is guarded by a lock; it is the only
    mutable state shared between requests.

    A bucket that has refilled to capacity is indistinguishable from a new
    one, so such buckets are swept at most every `sweep_interval_s`. The
    table is also capped at `max_buckets`, dropping the least recently used
    key first.
    """

    def __init__(
        self,
        capacity: float,
        refill_per_s: float,
        *,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], float] = time.time,
        max_buckets: int = 100_000,
        sweep_interval_s: float = 60.0,
    ):
        self.capacity = float(capacity)
        self.refill = float(refill_per_s)
        self.max_buckets = max(1, int(max_buckets))
        self.sweep_interval_s = max(0.0, float(sweep_interval_s))
        self._clock = clock
        self._wall_clock = wall_clock
        self._buckets: Dict[Any, Tuple[float, float]] = {}
        self._last_sweep = clock()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._buckets)

    def consume(self, key: Any, cost: float = 1.0) -> RateLimit:
        now = self._clock()
        with self._lock:
            if now - self._last_sweep >= self.sweep_interval_s:
                self._sweep(now)
            tokens, ts = self._buckets.pop(key, (self.capacity, now))
            tokens = min(self.capacity, tokens + (now - ts) * self.refill)
            if tokens >= cost:
                tokens -= cost
                ok = True
            else:
                ok = False
            # Re-inserted last: dict order doubles as LRU order.
            self._buckets[key] = (tokens, now)
            while len(self._buckets) > self.max_buckets:
                del self._buckets[next(iter(self._buckets))]

        retry_after = 0
        if not ok:
            missing = cost - tokens
            retry_after = max(1, math.ceil(missing / self.refill)) if self.refill > 0 else 3600
        return RateLimit(
            accepted=ok,
            limit=int(self.capacity),
            remaining=max(0, int(math.floor(tokens))),
            retry_after=retry_after,
            reset_at=int(self._wall_clock()) + retry_after,
        )

    def reset(self, key: Any = None) -> None:
        with self._lock:
            if key is None:
                self._buckets.clear()
            else:
                self._buckets.pop(key, None)

    def _sweep(self, now: float) -> None:
        self._last_sweep = now
        if self.refill <= 0.0:
            return
        full = [
            k
            for k, (tokens, ts) in self._buckets.items()
            if tokens + (now - ts) * self.refill >= self.capacity
        ]
        for k in full:
            del self._buckets[k]
