import threading
import time
from collections import defaultdict, deque
from dataclasses import dataclass
from typing import Callable

from fastapi import Depends, Request

from ..auth.credentials import extract_bearer, session_value
from ..errors import RateLimitedError


@dataclass
class RateDecision:
    allowed: bool
    retry_after_seconds: int


class InMemoryRateLimiter:
    """Sliding window per key. Process-local; counters are lost on restart."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._events: dict[str, deque[float]] = defaultdict(deque)
        self._lock = threading.Lock()
        self._clock = clock

    def check(self, key: str, limit: int, window_seconds: int) -> RateDecision:
        now = self._clock()
        cutoff = now - window_seconds
        with self._lock:
            hits = self._events[key]
            while hits and hits[0] <= cutoff:
                hits.popleft()
            if len(hits) >= limit:
                retry_after = max(1, int(hits[0] + window_seconds - now))
                return RateDecision(allowed=False, retry_after_seconds=retry_after)
            hits.append(now)
            return RateDecision(allowed=True, retry_after_seconds=0)

    def reset(self) -> None:
        with self._lock:
            self._events.clear()


limiter = InMemoryRateLimiter()


def client_identifier(request: Request) -> str:
    user_id = session_value(request, "user_id")
    if user_id:
        return f"user:{user_id}"
    token = extract_bearer(request.headers.get("authorization"))
    if token:
        return f"token:{token[:16]}"
    forwarded = request.headers.get("x-forwarded-for", "").strip()
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def rate_limit_dependency(route_key: str, limit: int, window_seconds: int):
    def _dep(request: Request) -> None:
        decision = limiter.check(f"{route_key}:{client_identifier(request)}", limit=limit, window_seconds=window_seconds)
        if not decision.allowed:
            raise RateLimitedError(decision.retry_after_seconds)

    return Depends(_dep)
