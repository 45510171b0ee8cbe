"""Single-slot TTL cache for the first page of the message listing."""

import threading
import time
from collections.abc import Callable
from typing import Any

from src.config.logging_config import get_logger

logger = get_logger(__name__)


class TTLCache:
    """Holds one value for a fixed time-to-live.

    Invalidated explicitly when a new message is stored so readers never see
    a page older than the latest write. A TTL of 0 disables caching.
    """

    def __init__(
        self, ttl_seconds: float, *, clock: Callable[[], float] = time.monotonic
    ) -> None:
        if ttl_seconds < 0:
            raise ValueError("ttl_seconds must not be negative")
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._value: Any | None = None
        self._stored_at: float | None = None
        self.hits = 0
        self.misses = 0

    @property
    def ttl_seconds(self) -> float:
        return self._ttl_seconds

    def get(self) -> Any | None:
        """Return the cached value, or None if empty or expired."""
        with self._lock:
            if self._stored_at is not None and (
                self._clock() - self._stored_at < self._ttl_seconds
            ):
                self.hits += 1
                return self._value
            self.misses += 1
            return None

    def set(self, value: Any) -> None:
        if self._ttl_seconds == 0:
            return
        with self._lock:
            self._value = value
            self._stored_at = self._clock()

    def invalidate(self) -> None:
        with self._lock:
            had_value = self._stored_at is not None
            self._value = None
            self._stored_at = None
        if had_value:
            logger.debug("message_cache_invalidated")

    def stats(self) -> dict[str, int]:
        with self._lock:
            return {"cache_hits": self.hits, "cache_misses": self.misses}
