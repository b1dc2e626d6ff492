"""
Debounced tracking of user access to domains.

Access times feed the decay multiplier, so only real user requests should be
recorded; background refreshes must not reset a domain's inactivity clock.
Writes go to the shared store and are drained in batches by `flush`.
"""
import logging
import threading
import time
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, Optional

from domainlens.errors import StoreUnavailableError

logger = logging.getLogger("freshness.access")

PENDING_KEY_PREFIX = "access:pending"

DEBOUNCE_SECONDS = 5 * 60
MAX_TRACKED_DOMAINS = 10_000
CLEANUP_THRESHOLD = 12_000
PENDING_TTL_SECONDS = 7 * 24 * 60 * 60


def pending_key(domain: str) -> str:
    return f"{PENDING_KEY_PREFIX}:{domain}"


class AccessTracker:
    """
    Records domain access at most once per debounce window per domain.

    The in-memory map of last write attempts is trimmed back towards
    max_tracked once it grows past cleanup_threshold.
    """

    def __init__(
        self,
        store,
        debounce_seconds: float = DEBOUNCE_SECONDS,
        max_tracked: int = MAX_TRACKED_DOMAINS,
        cleanup_threshold: int = CLEANUP_THRESHOLD,
        pending_ttl_seconds: float = PENDING_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self._store = store
        self._debounce = debounce_seconds
        self._max_tracked = max_tracked
        self._cleanup_threshold = cleanup_threshold
        self._pending_ttl = pending_ttl_seconds
        self._clock = clock

        self._last_attempts: Dict[str, float] = {}
        self._lock = threading.Lock()

    def record_access(self, domain: str) -> bool:
        """
        Record a user access.

        Returns:
            True if an access timestamp was written, False when debounced,
            invalid, or the store is unavailable
        """
        normalized = domain.strip().lower() if isinstance(domain, str) else ""
        if not normalized:
            return False

        now = self._clock()
        with self._lock:
            last = self._last_attempts.get(normalized)
            if last is not None and now - last < self._debounce:
                return False
            self._last_attempts[normalized] = now
            if len(self._last_attempts) > self._cleanup_threshold:
                self._cleanup(now)

        accessed_at = datetime.fromtimestamp(now, tz=timezone.utc)
        try:
            self._store.set(pending_key(normalized), accessed_at.isoformat(), self._pending_ttl)
        except StoreUnavailableError as e:
            logger.warning(f"Could not record access for {normalized}: {e}")
            return False
        return True

    def _cleanup(self, now: float) -> None:
        """Drop attempts older than the debounce window. Caller holds the lock."""
        cutoff = now - self._debounce
        before = len(self._last_attempts)
        for tracked in list(self._last_attempts):
            if self._last_attempts[tracked] < cutoff:
                del self._last_attempts[tracked]
            if len(self._last_attempts) <= self._max_tracked:
                break
        logger.debug(f"Access tracker cleanup: {before} -> {len(self._last_attempts)} entries")

    @property
    def tracked_count(self) -> int:
        with self._lock:
            return len(self._last_attempts)

    def flush(
        self,
        domains: Iterable[str],
        persist: Callable[[str, datetime], None],
    ) -> int:
        """
        Drain pending access timestamps into durable storage.

        Args:
            domains: Domains to drain
            persist: Called with (domain, accessed_at) for each pending entry

        Returns:
            Number of entries handed to persist
        """
        flushed = 0
        for domain in domains:
            normalized = domain.strip().lower()
            try:
                raw = self._store.get_and_delete(pending_key(normalized))
            except StoreUnavailableError as e:
                logger.warning(f"Could not drain access for {normalized}: {e}")
                continue
            if raw is None:
                continue

            accessed_at = _parse_timestamp(raw)
            if accessed_at is None:
                logger.warning(f"Dropping unreadable access timestamp for {normalized}: {raw!r}")
                continue

            try:
                persist(normalized, accessed_at)
            except Exception as e:
                logger.error(f"Failed to persist access for {normalized}: {e}")
                continue
            flushed += 1

        if flushed:
            logger.info(f"Flushed {flushed} access timestamps")
        return flushed


def _parse_timestamp(raw: str) -> Optional[datetime]:
    try:
        value = datetime.fromisoformat(raw)
    except (TypeError, ValueError):
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


# Global tracker instance
_tracker: Optional[AccessTracker] = None
_tracker_lock = threading.Lock()


def get_access_tracker() -> AccessTracker:
    """Get the global access tracker, writing to the shared store."""
    global _tracker
    if _tracker is None:
        with _tracker_lock:
            if _tracker is None:
                from domainlens.dedup.store import get_shared_store

                _tracker = AccessTracker(get_shared_store())
    return _tracker
