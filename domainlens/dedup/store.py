"""
Shared key-value store used for cross-instance coordination.

Primitives: GET, SET-IF-ABSENT with TTL, GET-AND-DELETE, SET with TTL, and
the two compare-and-swap variants (COMPARE-AND-SET, COMPARE-AND-DELETE) that
let a lock holder touch a key only while it still holds it. The Redis
implementation is used whenever REDIS_URL is configured; the in-memory one
covers tests and single-instance runs.
"""
import logging
import threading
import time
from typing import Callable, Dict, Optional, Protocol, Tuple

from redis import Redis
from redis.exceptions import RedisError

from domainlens.errors import StoreUnavailableError

logger = logging.getLogger("dedup.store")


class SharedStore(Protocol):
    def get(self, key: str) -> Optional[str]:
        ...

    def set_if_absent(self, key: str, value: str, ttl_seconds: float) -> bool:
        ...

    def get_and_delete(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str, ttl_seconds: float) -> None:
        ...

    def compare_and_set(self, key: str, expected: str, value: str, ttl_seconds: float) -> bool:
        ...

    def compare_and_delete(self, key: str, expected: str) -> bool:
        ...


class InMemoryStore:
    """Lock-guarded dict with monotonic expiry."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._data: Dict[str, Tuple[str, Optional[float]]] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def _live(self, key: str) -> Optional[str]:
        """Caller holds the lock."""
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and self._clock() >= expires_at:
            del self._data[key]
            return None
        return value

    def _expiry(self, ttl_seconds: Optional[float]) -> Optional[float]:
        if ttl_seconds is None:
            return None
        return self._clock() + ttl_seconds

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._live(key)

    def set_if_absent(self, key: str, value: str, ttl_seconds: float) -> bool:
        with self._lock:
            if self._live(key) is not None:
                return False
            self._data[key] = (value, self._expiry(ttl_seconds))
            return True

    def get_and_delete(self, key: str) -> Optional[str]:
        with self._lock:
            value = self._live(key)
            self._data.pop(key, None)
            return value

    def set(self, key: str, value: str, ttl_seconds: float) -> None:
        with self._lock:
            self._data[key] = (value, self._expiry(ttl_seconds))

    def compare_and_set(self, key: str, expected: str, value: str, ttl_seconds: float) -> bool:
        with self._lock:
            if self._live(key) != expected:
                return False
            self._data[key] = (value, self._expiry(ttl_seconds))
            return True

    def compare_and_delete(self, key: str, expected: str) -> bool:
        with self._lock:
            if self._live(key) != expected:
                return False
            del self._data[key]
            return True

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)


def _ttl_ms(ttl_seconds: float) -> int:
    return max(1, int(round(ttl_seconds * 1000)))


# KEYS[1] = key, ARGV = expected, new value, ttl in ms
COMPARE_AND_SET_SCRIPT = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    redis.call('SET', KEYS[1], ARGV[2], 'PX', ARGV[3])
    return 1
end
return 0
"""

# KEYS[1] = key, ARGV = expected
COMPARE_AND_DELETE_SCRIPT = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('DEL', KEYS[1])
end
return 0
"""


class RedisStore:
    """
    Redis-backed store.

    Every RedisError (connection refused, timeout, ...) surfaces as
    StoreUnavailableError so callers can decide between failing open and
    failing closed.
    """

    def __init__(self, client: Redis):
        self._client = client
        self._compare_and_set = client.register_script(COMPARE_AND_SET_SCRIPT)
        self._compare_and_delete = client.register_script(COMPARE_AND_DELETE_SCRIPT)

    @classmethod
    def from_url(cls, url: str) -> "RedisStore":
        return cls(Redis.from_url(url, decode_responses=True))

    def get(self, key: str) -> Optional[str]:
        try:
            return self._client.get(key)
        except RedisError as e:
            raise StoreUnavailableError(f"GET {key} failed: {e}") from e

    def set_if_absent(self, key: str, value: str, ttl_seconds: float) -> bool:
        try:
            return bool(self._client.set(key, value, nx=True, px=_ttl_ms(ttl_seconds)))
        except RedisError as e:
            raise StoreUnavailableError(f"SET NX {key} failed: {e}") from e

    def get_and_delete(self, key: str) -> Optional[str]:
        try:
            return self._client.getdel(key)
        except RedisError as e:
            raise StoreUnavailableError(f"GETDEL {key} failed: {e}") from e

    def set(self, key: str, value: str, ttl_seconds: float) -> None:
        try:
            self._client.set(key, value, px=_ttl_ms(ttl_seconds))
        except RedisError as e:
            raise StoreUnavailableError(f"SET {key} failed: {e}") from e

    def compare_and_set(self, key: str, expected: str, value: str, ttl_seconds: float) -> bool:
        try:
            return bool(self._compare_and_set(keys=[key], args=[expected, value, _ttl_ms(ttl_seconds)]))
        except RedisError as e:
            raise StoreUnavailableError(f"Compare-and-set {key} failed: {e}") from e

    def compare_and_delete(self, key: str, expected: str) -> bool:
        try:
            return bool(self._compare_and_delete(keys=[key], args=[expected]))
        except RedisError as e:
            raise StoreUnavailableError(f"Compare-and-delete {key} failed: {e}") from e

    def delete(self, key: str) -> None:
        try:
            self._client.delete(key)
        except RedisError as e:
            raise StoreUnavailableError(f"DEL {key} failed: {e}") from e


# Global store instance
_store = None
_store_lock = threading.Lock()


def get_shared_store() -> SharedStore:
    """Redis when REDIS_URL is set, otherwise a process-local store."""
    global _store
    if _store is None:
        with _store_lock:
            if _store is None:
                from config.settings import settings

                if settings.redis_url:
                    logger.info("Using Redis shared store")
                    _store = RedisStore.from_url(settings.redis_url)
                else:
                    logger.info("REDIS_URL not set, using in-memory shared store")
                    _store = InMemoryStore()
    return _store
