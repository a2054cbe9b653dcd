"""Fixed-window request rate limiting."""
from collections.abc import Callable
from dataclasses import dataclass
import logging
from threading import Lock
import time

from merchantpay.errors import RateLimited

logger = logging.getLogger(__name__)


def monotonic_ms() -> float:
    return time.monotonic() * 1000


@dataclass
class WindowEntry:
    count: int
    reset_time: float


class FixedWindowRateLimiter:
    """Counts requests per client in fixed windows of ``window_ms``.

    The first request from a client opens its window; up to ``max_requests``
    are admitted until ``reset_time`` passes. Check and increment share one
    lock, so concurrent requests cannot overshoot the cap.
    """

    def __init__(
        self,
        window_ms: int = 15 * 60 * 1000,
        max_requests: int = 100,
        clock: Callable[[], float] = monotonic_ms,
    ):
        if window_ms <= 0 or max_requests <= 0:
            raise ValueError("window_ms and max_requests must be positive")
        self.window_ms = window_ms
        self.max_requests = max_requests
        self._clock = clock
        self._entries: dict[str, WindowEntry] = {}
        self._lock = Lock()

    def is_allowed(self, client_id: str) -> bool:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(client_id)
            if entry is None or now > entry.reset_time:
                self._entries[client_id] = WindowEntry(count=1, reset_time=now + self.window_ms)
                return True

            if entry.count >= self.max_requests:
                return False

            entry.count += 1
            return True

    def check(self, client_id: str) -> None:
        """Raise RateLimited if ``client_id`` is over its budget."""
        if not self.is_allowed(client_id):
            logger.warning(f"Rate limit exceeded for client {client_id}")
            raise RateLimited()

    def cleanup(self) -> int:
        """Drop entries whose window has passed; returns how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [client_id for client_id, entry in self._entries.items() if now > entry.reset_time]
            for client_id in expired:
                del self._entries[client_id]
        if expired:
            logger.debug(f"Rate limiter dropped {len(expired)} expired window(s)")
        return len(expired)

    def reset(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
