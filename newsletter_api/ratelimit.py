"""In-memory token bucket rate limiter keyed by client."""

from __future__ import annotations

import threading
import time


class Bucket:
    __slots__ = ("tokens", "updated")

    def __init__(self, capacity: int) -> None:
        self.tokens = float(capacity)
        self.updated = time.monotonic()

    def take(self, rps: float, burst: int) -> bool:
        now = time.monotonic()
        refill = (now - self.updated) * max(rps, 0.0)
        self.tokens = min(float(burst), self.tokens + refill)
        self.updated = now
        if self.tokens < 1.0:
            return False
        self.tokens -= 1.0
        return True


_buckets: dict[str, Bucket] = {}
_lock = threading.Lock()


def allow(key: str, rps: float, burst: int) -> bool:
    with _lock:
        bucket = _buckets.get(key)
        if bucket is None:
            bucket = _buckets[key] = Bucket(burst)
        return bucket.take(rps, burst)


def reset() -> None:
    with _lock:
        _buckets.clear()
