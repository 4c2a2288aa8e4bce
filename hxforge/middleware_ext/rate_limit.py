"""
Rate Limiting Middleware - per-client-IP request budget.

Sliding window counter over two adjacent fixed windows::

    weighted_count = prev_count * overlap_ratio + current_count

Safe methods (GET, HEAD, OPTIONS) and the shared exempt paths are never
limited. Over-budget requests get a 429 with ``Retry-After`` and the
``X-RateLimit-*`` headers; the ``RateLimitExceededFault`` is attached to
the response, not raised.

All middleware follow the hxforge async signature:
    async def __call__(self, request, ctx, next) -> Response
"""

from __future__ import annotations

import math
import threading
import time
from typing import Callable, Dict, Optional, Tuple

from hxforge.config import ExemptPaths
from hxforge.faults.domains import RateLimitExceededFault
from hxforge.middleware import Handler
from hxforge.request import Request, RequestCtx
from hxforge.response import Response

SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})


def ip_key_extractor(request: Request) -> str:
    """Client IP as rate-limit key (resolved by ``RealIPMiddleware``)."""
    return f"ip:{request.client_ip}"


# ─── Sliding Window Counter ──────────────────────────────────────────────────

class _SlidingWindowCounter:
    """
    Sliding window counter using two adjacent fixed windows.

    O(1) space per key and no boundary spike.
    """

    __slots__ = ("window_size", "max_requests", "_prev_count", "_curr_count", "_curr_start")

    def __init__(self, window_size: float, max_requests: int, now: float):
        self.window_size = window_size
        self.max_requests = max_requests
        self._curr_start = now
        self._curr_count = 0
        self._prev_count = 0

    def consume(self, now: float) -> Tuple[bool, float]:
        """
        Try to record a request.

        Returns:
            (allowed, retry_after_seconds)
        """
        self._advance_windows(now)

        elapsed = now - self._curr_start
        weighted = self._prev_count * self._weight(elapsed) + self._curr_count

        if weighted >= self.max_requests:
            return False, max(0.1, self.window_size - elapsed)

        self._curr_count += 1
        return True, 0.0

    def remaining(self, now: float) -> int:
        elapsed = now - self._curr_start
        used = math.ceil(self._prev_count * self._weight(elapsed) + self._curr_count)
        return max(0, self.max_requests - used)

    @property
    def reset_after(self) -> float:
        """Monotonic time at which the current window rolls over."""
        return self._curr_start + self.window_size

    def _weight(self, elapsed: float) -> float:
        return max(0.0, 1.0 - elapsed / self.window_size)

    def _advance_windows(self, now: float) -> None:
        window_end = self._curr_start + self.window_size
        if now < window_end:
            return
        windows_passed = int((now - self._curr_start) / self.window_size)
        if windows_passed >= 2:
            self._prev_count = 0
            self._curr_count = 0
            self._curr_start = now
        else:
            self._prev_count = self._curr_count
            self._curr_count = 0
            self._curr_start = window_end


# ─── Bucket store ────────────────────────────────────────────────────────────

class _BucketStore:
    """
    Lock-protected counters keyed by client.

    Counters idle for more than two windows are evicted on a lazy schedule
    to bound memory.
    """

    def __init__(self, window: float, limit: int, clock: Callable[[], float] = time.monotonic):
        self.window = window
        self.limit = limit
        self.clock = clock
        self._buckets: Dict[str, _SlidingWindowCounter] = {}
        self._last_access: Dict[str, float] = {}
        self._last_cleanup = clock()
        self._lock = threading.Lock()

    def consume(self, key: str) -> Tuple[bool, float, int, float]:
        """Returns (allowed, retry_after, remaining, seconds_until_reset)."""
        with self._lock:
            now = self.clock()
            bucket = self._buckets.get(key)
            if bucket is None:
                bucket = _SlidingWindowCounter(self.window, self.limit, now)
                self._buckets[key] = bucket
            self._last_access[key] = now

            allowed, retry_after = bucket.consume(now)
            remaining = bucket.remaining(now)
            reset_in = max(0.0, bucket.reset_after - now)

            if now - self._last_cleanup > self.window:
                self._cleanup(now)

            return allowed, retry_after, remaining, reset_in

    def _cleanup(self, now: float) -> None:
        self._last_cleanup = now
        ttl = self.window * 2
        expired = [k for k, t in self._last_access.items() if now - t > ttl]
        for k in expired:
            self._buckets.pop(k, None)
            self._last_access.pop(k, None)

    def __len__(self) -> int:
        return len(self._buckets)


# ─── Rate Limit Middleware ───────────────────────────────────────────────────

class RateLimitMiddleware:
    """
    Per-IP rate limiting for state-changing requests.

    Args:
        limit: Maximum requests per window.
        window: Window size in seconds.
        exempt_paths: Paths that are never limited.
        key_func: Extracts the client key (defaults to the client IP).
        clock: Monotonic clock, injectable for tests.
    """

    def __init__(
        self,
        limit: int = 120,
        window: float = 60.0,
        exempt_paths: Optional[ExemptPaths] = None,
        key_func: Optional[Callable[[Request], str]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.limit = limit
        self.window = window
        self.exempt_paths = exempt_paths or ExemptPaths()
        self.key_func = key_func or ip_key_extractor
        self._store = _BucketStore(window=window, limit=limit, clock=clock)

    async def __call__(self, request: Request, ctx: RequestCtx, next_handler: Handler) -> Response:
        if request.method in SAFE_METHODS or self.exempt_paths.matches(request.path):
            return await next_handler(request, ctx)

        allowed, retry_after, remaining, reset_in = self._store.consume(self.key_func(request))
        if not allowed:
            return self._rate_limited_response(retry_after, reset_in)

        response = await next_handler(request, ctx)
        response.set_header("x-ratelimit-limit", str(self.limit))
        response.set_header("x-ratelimit-remaining", str(remaining))
        response.set_header("x-ratelimit-reset", str(int(math.ceil(reset_in))))
        return response

    def _rate_limited_response(self, retry_after: float, reset_in: float) -> Response:
        fault = RateLimitExceededFault(limit=self.limit, window=self.window, retry_after=retry_after)
        resp = Response.text(
            "Too Many Requests",
            status=429,
            headers={
                "retry-after": str(int(math.ceil(retry_after))),
                "x-ratelimit-limit": str(self.limit),
                "x-ratelimit-remaining": "0",
                "x-ratelimit-reset": str(int(math.ceil(reset_in))),
            },
        )
        resp._fault = fault
        return resp


__all__ = ["RateLimitMiddleware", "ip_key_extractor", "SAFE_METHODS"]
