"""
In-memory response cache and per-caller request quota.

Both are process-local: each service instance has its own cache and its own
quota counters.
"""
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from farmaprice.core.config import settings

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


def make_cache_key(action: str, **params: Any) -> str:
    """Order-independent key: the action plus every parameter, sorted by name."""
    items = dict(params, action=action)
    return "|".join(f"{name}:{items[name]}" for name in sorted(items))


@dataclass
class CacheEntry:
    payload: Any
    inserted_at: float


class ResponseCache:
    """
    TTL cache with a hard size bound.

    Entries older than ``ttl_seconds`` are misses (and dropped on lookup). When
    an insert pushes the size over ``max_entries`` the oldest-inserted entry is
    evicted: plain FIFO, lookups do not refresh an entry's position.
    """

    def __init__(self, ttl_seconds: float, max_entries: int, clock: Clock = time.monotonic, name: str = "cache"):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self.name = name
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._clock() - entry.inserted_at > self.ttl_seconds:
                del self._entries[key]
                return None
            return entry.payload

    def set(self, key: str, payload: Any) -> None:
        with self._lock:
            # Re-inserting moves the key to the back of the FIFO order
            self._entries.pop(key, None)
            self._entries[key] = CacheEntry(payload=payload, inserted_at=self._clock())
            while len(self._entries) > self.max_entries:
                oldest = next(iter(self._entries))
                del self._entries[oldest]
                logger.debug(f"{self.name}: evicted {oldest}")

    def evict(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


def search_cache(clock: Clock = time.monotonic) -> ResponseCache:
    return ResponseCache(
        ttl_seconds=settings.SEARCH_CACHE_TTL_SECONDS,
        max_entries=settings.SEARCH_CACHE_MAX_ENTRIES,
        clock=clock,
        name="search_cache",
    )


def dashboard_cache(clock: Clock = time.monotonic) -> ResponseCache:
    return ResponseCache(
        ttl_seconds=settings.DASHBOARD_CACHE_TTL_SECONDS,
        max_entries=settings.DASHBOARD_CACHE_MAX_ENTRIES,
        clock=clock,
        name="dashboard_cache",
    )


class RateLimited(Exception):
    """Raised when a caller has used up its quota for the current window."""

    def __init__(self, identity: str, retry_after: float):
        super().__init__(f"Rate limit exceeded for {identity}")
        self.identity = identity
        self.retry_after = retry_after


@dataclass
class _Window:
    count: int
    reset_at: float


class RequestQuota:
    """
    Fixed-window request quota per caller identity.

    A window opens on a caller's first request and lasts ``window_seconds``.
    Requests beyond ``max_requests`` inside it are rejected. Expired windows
    are replaced lazily on the caller's next request.
    """

    def __init__(
        self,
        max_requests: Optional[int] = None,
        window_seconds: Optional[float] = None,
        clock: Clock = time.monotonic,
    ):
        self.max_requests = max_requests if max_requests is not None else settings.QUOTA_MAX_REQUESTS
        self.window_seconds = window_seconds if window_seconds is not None else settings.QUOTA_WINDOW_SECONDS
        self._clock = clock
        self._windows: Dict[str, _Window] = {}
        self._lock = threading.Lock()

    def try_acquire(self, identity: str) -> bool:
        """Count one request for ``identity``; False if it is over quota."""
        now = self._clock()
        with self._lock:
            window = self._windows.get(identity)
            if window is None or now > window.reset_at:
                self._windows[identity] = _Window(count=1, reset_at=now + self.window_seconds)
                return True
            if window.count >= self.max_requests:
                return False
            window.count += 1
            return True

    def acquire(self, identity: str) -> None:
        """Like try_acquire, but raises RateLimited instead of returning False."""
        if not self.try_acquire(identity):
            with self._lock:
                window = self._windows.get(identity)
                retry_after = max(0.0, window.reset_at - self._clock()) if window else 0.0
            logger.info(f"Quota exceeded for {identity}, retry in {retry_after:.0f}s")
            raise RateLimited(identity, retry_after)
