import logging
import time
from dataclasses import dataclass
from threading import Lock
from typing import Callable, Dict, Optional

from fastapi import Request

logger = logging.getLogger(__name__)


@dataclass
class RateLimitDecision:
    allowed: bool
    count: int
    remaining: int
    reset_at: float

    def retry_after(self, now: float) -> int:
        return max(1, int(self.reset_at - now + 0.999))


@dataclass
class _Window:
    count: int
    reset_at: float


class FixedWindowRateLimiter:
    """
    Fixed-window request counter keyed by client (usually the IP).

    The first hit opens a window of `window_seconds`; hits are allowed until
    `max_requests` is reached, then rejected until the window ends. The next
    hit after that opens a fresh window. Not a sliding window: a burst at the
    end of one window and the start of the next can reach 2x max_requests.

    Default limits (signup issuance):
    - 5 requests per hour per client IP
    """

    def __init__(self, max_requests: int = 5, window_seconds: float = 3600,
                 clock: Callable[[], float] = time.monotonic, max_tracked_keys: int = 10000):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.clock = clock
        self.max_tracked_keys = max_tracked_keys
        self._windows: Dict[str, _Window] = {}
        self._lock = Lock()

    def hit(self, key: str) -> RateLimitDecision:
        """Count one request for *key* and say whether it may proceed."""
        now = self.clock()
        with self._lock:
            if len(self._windows) >= self.max_tracked_keys:
                self._prune(now)

            window = self._windows.get(key)
            if window is None or now > window.reset_at:
                window = _Window(count=1, reset_at=now + self.window_seconds)
                self._windows[key] = window
                return RateLimitDecision(True, 1, self.max_requests - 1, window.reset_at)

            if window.count >= self.max_requests:
                logger.warning(f"Rate limit exceeded for {key} ({window.count}/{self.max_requests})")
                return RateLimitDecision(False, window.count, 0, window.reset_at)

            window.count += 1
            return RateLimitDecision(True, window.count, self.max_requests - window.count, window.reset_at)

    def _prune(self, now: float) -> None:
        for key in [k for k, w in self._windows.items() if now > w.reset_at]:
            del self._windows[key]

    def prune(self) -> None:
        """Drop windows that have already ended."""
        with self._lock:
            self._prune(self.clock())

    def reset(self, key: Optional[str] = None) -> None:
        with self._lock:
            if key is None:
                self._windows.clear()
            else:
                self._windows.pop(key, None)

    def tracked_keys(self) -> int:
        with self._lock:
            return len(self._windows)


def client_ip(request: Request) -> str:
    """First X-Forwarded-For hop when behind a proxy, else the socket peer."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return request.client.host if request.client else "unknown"
