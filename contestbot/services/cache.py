from __future__ import annotations

import logging
import time
from typing import Any, Callable

log = logging.getLogger(__name__)

WELCOME_TTL_SECONDS = 86400
GOODBYE_TTL_SECONDS = 3600
CLICK_TTL_SECONDS = 86400


class TtlCache:
    """In-process expiring key-value store.

    Used for message dedup flags, the task timing gate, click dedup and rate
    limit counters. Losing it on restart is acceptable: it never holds points.
    A ttl of 0 means the entry does not expire.
    """

    def __init__(
        self,
        default_ttl: int = 3600,
        max_keys: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.default_ttl = default_ttl
        self.max_keys = max_keys
        self._clock = clock
        self._data: dict[str, tuple[Any, float | None]] = {}
        self._hits = 0
        self._misses = 0

    def _live(self, key: str) -> tuple[Any, float | None] | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        expires_at = entry[1]
        if expires_at is not None and expires_at <= self._clock():
            del self._data[key]
            log.debug("cache_key_expired", extra={"reason": key})
            return None
        return entry

    def _purge_expired(self) -> None:
        now = self._clock()
        for key in [k for k, (_, exp) in self._data.items() if exp is not None and exp <= now]:
            del self._data[key]

    def _make_room(self) -> None:
        if len(self._data) < self.max_keys:
            return
        self._purge_expired()
        while len(self._data) >= self.max_keys:
            oldest = next(iter(self._data))
            del self._data[oldest]
            log.debug("cache_key_evicted", extra={"reason": oldest})

    def set(self, key: str, value: Any, ttl_seconds: float | None = None) -> bool:
        ttl = self.default_ttl if ttl_seconds is None else ttl_seconds
        if key not in self._data:
            self._make_room()
        expires_at = self._clock() + ttl if ttl > 0 else None
        # re-insert so dict order follows write order for eviction
        self._data.pop(key, None)
        self._data[key] = (value, expires_at)
        return True

    def get(self, key: str) -> Any | None:
        entry = self._live(key)
        if entry is None:
            self._misses += 1
            return None
        self._hits += 1
        return entry[0]

    def has(self, key: str) -> bool:
        return self._live(key) is not None

    def delete(self, key: str) -> int:
        return 1 if self._data.pop(key, None) is not None else 0

    def flush(self) -> None:
        self._data.clear()
        log.info("cache_flushed")

    def stats(self) -> dict[str, int]:
        self._purge_expired()
        return {"keys": len(self._data), "hits": self._hits, "misses": self._misses}

    def check_rate_limit(self, key: str, max_requests: int = 10, window_seconds: float = 60) -> bool:
        """Fixed-window counter.

        The window starts at the first request and its TTL is never extended,
        so up to 2 * max_requests can pass across a window boundary.
        Get-and-increment runs without awaiting, which makes it atomic inside
        one event loop; a shared store would need an atomic INCR.
        """
        k = f"rate_limit:{key}"
        entry = self._live(k)
        if entry is None:
            if max_requests <= 0:
                return False
            self.set(k, 1, window_seconds)
            return True
        count, expires_at = entry
        if count >= max_requests:
            return False
        self._data[k] = (count + 1, expires_at)
        return True

    # ---- bot gates ------------------------------------------------------------
    def mark_welcome_sent(self, user_id: int, ttl_seconds: int = WELCOME_TTL_SECONDS) -> None:
        self.set(f"welcome_sent:{user_id}", self._clock(), ttl_seconds)

    def welcome_sent_at(self, user_id: int) -> float | None:
        return self.get(f"welcome_sent:{user_id}")

    def task_wait_elapsed(self, user_id: int, min_seconds: int = 30) -> bool:
        """True once the welcome message is at least `min_seconds` old."""
        sent_at = self.welcome_sent_at(user_id)
        if sent_at is None:
            return False
        return self._clock() - sent_at >= min_seconds

    def mark_goodbye_sent(self, user_id: int, ttl_seconds: int = GOODBYE_TTL_SECONDS) -> None:
        self.set(f"goodbye_sent:{user_id}", True, ttl_seconds)

    def is_goodbye_sent(self, user_id: int) -> bool:
        return self.has(f"goodbye_sent:{user_id}")

    def mark_click(self, user_id: int, link: str, ttl_seconds: int = CLICK_TTL_SECONDS) -> None:
        self.set(f"tiktok_click:{user_id}:{link}", True, ttl_seconds)

    def is_clicked(self, user_id: int, link: str) -> bool:
        return self.has(f"tiktok_click:{user_id}:{link}")
