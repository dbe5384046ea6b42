"""Process-local key/value cache with per-entry expiry."""

import threading
import time
from collections.abc import Callable
from typing import Any

import structlog


class TTLCache:
    """In-memory cache where every entry carries its own time-to-live.

    Expired entries behave as absent on read and are dropped lazily, or in
    bulk by ``sweep()``. Size is unbounded. A lock guards the table so the
    cache can be shared between concurrent tasks and threads.
    """

    def __init__(
        self,
        clock: Callable[[], float] | None = None,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._clock = clock or time.monotonic
        self._entries: dict[str, tuple[Any, float]] = {}
        self._lock = threading.Lock()
        self._logger = logger or structlog.get_logger(__name__)

    def get(self, key: str) -> Any | None:
        """Return the cached value, or None when absent or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        with self._lock:
            self._entries[key] = (value, self._clock() + ttl_seconds)

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def sweep(self) -> int:
        """Drop every expired entry and return how many were removed."""
        with self._lock:
            now = self._clock()
            expired = [key for key, (_, expires_at) in self._entries.items() if now >= expires_at]
            for key in expired:
                del self._entries[key]
        if expired:
            self._logger.debug("cache_swept", removed=len(expired))
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


def analysis_key(file_id: str) -> str:
    return f"analysis_{file_id}"


def image_key(file_id: str, mime_type: str) -> str:
    return f"image_{file_id}_{mime_type}"
