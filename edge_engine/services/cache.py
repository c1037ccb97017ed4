"""
Thread-safe TTL cache for odds lookups.

The slate runner fans fixtures out over a thread pool, so two workers can ask
for the same fixture's odds at once.  ``get_or_set`` takes a per-key lock so
the provider is called once per key per TTL window.
"""

import threading
import time
from typing import Any, Callable, Dict, Optional, Protocol, Tuple

DEFAULT_TTL_SECONDS = 300
DEFAULT_MAX_ITEMS = 2048


class TTLCache(Protocol):
    def get(self, key: str) -> Optional[Any]:
        """Cached value, or ``None`` when missing or expired."""

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        ...

    def get_or_set(self, key: str, factory: Callable[[], Any], ttl: Optional[float] = None) -> Any:
        ...


class InMemoryTTLCache:
    """
    Dict-backed cache with expiry and a size cap.

    When full, the least recently read entry is evicted.  ``clock`` is
    injectable so tests can advance time without sleeping.
    """

    def __init__(
        self,
        default_ttl: float = DEFAULT_TTL_SECONDS,
        max_items: int = DEFAULT_MAX_ITEMS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.default_ttl = default_ttl
        self.max_items = max_items
        self._clock = clock
        # key -> (expires_at, last_access, value)
        self._store: Dict[str, Tuple[float, float, Any]] = {}
        self._lock = threading.Lock()
        self._key_locks: Dict[str, threading.Lock] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

    def _get_key_lock(self, key: str) -> threading.Lock:
        with self._lock:
            lock = self._key_locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._key_locks[key] = lock
            return lock

    def _discard_key_lock(self, key: str) -> None:
        # Caller holds self._lock.  A held lock stays so waiters share it.
        lock = self._key_locks.get(key)
        if lock is not None and not lock.locked():
            del self._key_locks[key]

    def get(self, key: str) -> Optional[Any]:
        now = self._clock()
        with self._lock:
            item = self._store.get(key)
            if item is None:
                return None
            expires_at, _, value = item
            if now >= expires_at:
                self._store.pop(key, None)
                self._discard_key_lock(key)
                return None
            self._store[key] = (expires_at, now, value)
            return value

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        now = self._clock()
        lifetime = self.default_ttl if ttl is None else ttl
        with self._lock:
            if key not in self._store and len(self._store) >= self.max_items:
                oldest = min(self._store.items(), key=lambda kv: kv[1][1])[0]
                self._store.pop(oldest, None)
                self._discard_key_lock(oldest)
            self._store[key] = (now + lifetime, now, value)

    def get_or_set(self, key: str, factory: Callable[[], Any], ttl: Optional[float] = None) -> Any:
        """Return the cached value or compute, store and return ``factory()``.

        ``None`` results are not cached.
        """
        cached = self.get(key)
        if cached is not None:
            return cached
        with self._get_key_lock(key):
            cached = self.get(key)
            if cached is not None:
                return cached
            value = factory()
            if value is not None:
                self.set(key, value, ttl)
        if value is None:
            with self._lock:
                self._discard_key_lock(key)
        return value

    def clear(self) -> None:
        with self._lock:
            self._store.clear()
            self._key_locks.clear()
