"""
Stale-while-revalidate reads over persisted domain facts.

The coordinator never stores anything itself: `get_cached` reads the
persisted record and `fetch_fresh` is expected to fetch and persist. Stale
data inside the age budget is served immediately while one background
refresh runs on the coordinator's thread pool.
"""
import threading
import logging
from concurrent.futures import Future, ThreadPoolExecutor, wait
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional, Set, Union

from .core import CacheRecord, FetchResult, SwrResult
from .coalescer import RequestCoalescer

logger = logging.getLogger("freshness.swr")

MaxAge = Union[int, float, timedelta, None]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _to_seconds(max_age: MaxAge) -> Optional[float]:
    if max_age is None:
        return None
    if isinstance(max_age, timedelta):
        return max_age.total_seconds()
    return float(max_age)


class SwrCoordinator:
    """
    Serves cached facts with stale-while-revalidate semantics.

    Read paths:
    1. Miss -> synchronous fetch
    2. Fresh hit -> cached data, no fetch
    3. Stale hit within max_age -> stale data plus one background refresh
    4. Stale hit beyond max_age -> synchronous fetch
    """

    def __init__(
        self,
        max_workers: int = 4,
        max_age: MaxAge = None,
        clock: Callable[[], datetime] = _utcnow,
        propagate_exceptions: bool = False,
        coalesce_timeout: float = 30.0,
    ):
        """
        Args:
            max_workers: Thread pool size for background refreshes
            max_age: Default ceiling on how old stale data may be and still be served
            clock: Returns the current time
            propagate_exceptions: Re-raise fetcher exceptions on the synchronous path
            coalesce_timeout: Timeout for waiting on a coalesced fetch
        """
        self._default_max_age = _to_seconds(max_age)
        self._clock = clock
        self._propagate_exceptions = propagate_exceptions
        self._coalescer = RequestCoalescer(timeout=coalesce_timeout)

        self._pool = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="swr-revalidate",
        )
        self._revalidating: Set[str] = set()
        self._revalidating_lock = threading.Lock()
        self._pending: Set[Future] = set()
        self._pending_lock = threading.Lock()

        self._stats = {
            "hits_fresh": 0,
            "hits_stale": 0,
            "misses": 0,
            "revalidations": 0,
            "revalidation_failures": 0,
        }
        self._stats_lock = threading.Lock()

    def get(
        self,
        get_cached: Callable[[], CacheRecord],
        fetch_fresh: Callable[[], FetchResult],
        max_age: MaxAge = None,
        key: Optional[str] = None,
    ) -> SwrResult:
        """
        Read a fact, refreshing it as needed.

        Args:
            get_cached: Returns the persisted CacheRecord
            fetch_fresh: Fetches and persists fresh data
            max_age: Overrides the coordinator's default age ceiling
            key: Identifies the fact for coalescing and background de-duplication

        Returns:
            SwrResult (permanent fetch failures come back as success=False)
        """
        record = get_cached()
        label = key or "<anonymous>"

        if record is None or not record.has_data:
            logger.debug(f"SWR MISS: {label}")
            self._count("misses")
            return self._fetch_sync(fetch_fresh, key)

        if not record.stale:
            logger.debug(f"SWR HIT (fresh): {label}")
            self._count("hits_fresh")
            return SwrResult(success=True, data=record.data, cached=True, stale=False)

        ceiling = _to_seconds(max_age) if max_age is not None else self._default_max_age
        if self._within_budget(record, ceiling):
            logger.info(f"SWR HIT (stale, revalidating): {label}")
            self._count("hits_stale")
            self._trigger_background_refresh(fetch_fresh, key)
            return SwrResult(success=True, data=record.data, cached=True, stale=True)

        logger.info(f"SWR EXPIRED: {label} beyond max age {ceiling}s")
        self._count("misses")
        return self._fetch_sync(fetch_fresh, key)

    def _within_budget(self, record: CacheRecord, ceiling: Optional[float]) -> bool:
        if ceiling is None:
            return True
        if record.fetched_at is None:
            return False

        now = self._clock()
        fetched_at = record.fetched_at
        if now.tzinfo is not None and fetched_at.tzinfo is None:
            fetched_at = fetched_at.replace(tzinfo=timezone.utc)
        elif now.tzinfo is None and fetched_at.tzinfo is not None:
            fetched_at = fetched_at.astimezone(timezone.utc).replace(tzinfo=None)

        return (now - fetched_at).total_seconds() <= ceiling

    def _fetch_sync(self, fetch_fresh: Callable[[], FetchResult], key: Optional[str]) -> SwrResult:
        try:
            if key is not None:
                result = self._coalescer.get_or_fetch(key, fetch_fresh)
            else:
                result = fetch_fresh()
        except Exception as e:
            if self._propagate_exceptions:
                raise
            logger.error(f"Fetch raised for {key or '<anonymous>'}: {e}")
            return SwrResult(success=False, error="fetch_exception")

        if result is None:
            return SwrResult(success=False, error="fetch_failed")
        return SwrResult.from_fetch(result)

    def _trigger_background_refresh(
        self,
        fetch_fresh: Callable[[], FetchResult],
        key: Optional[str],
    ) -> None:
        """Submit a refresh without blocking the caller."""
        if key is not None:
            with self._revalidating_lock:
                if key in self._revalidating:
                    logger.debug(f"Already revalidating: {key}")
                    return
                self._revalidating.add(key)

        label = key or "<anonymous>"

        def do_refresh():
            try:
                logger.debug(f"Background refresh started: {label}")
                result = fetch_fresh()
                if result is not None and result.success:
                    self._count("revalidations")
                    logger.debug(f"Background refresh complete: {label}")
                else:
                    self._count("revalidation_failures")
                    error = result.error if result is not None else "fetch_failed"
                    logger.warning(f"Background refresh failed: {label} - {error}")
            except Exception as e:
                self._count("revalidation_failures")
                logger.warning(f"Background refresh raised: {label} - {e}")
            finally:
                if key is not None:
                    with self._revalidating_lock:
                        self._revalidating.discard(key)

        try:
            future = self._pool.submit(do_refresh)
        except RuntimeError as e:
            # Pool already shut down
            logger.warning(f"Could not schedule background refresh for {label}: {e}")
            if key is not None:
                with self._revalidating_lock:
                    self._revalidating.discard(key)
            return

        with self._pending_lock:
            self._pending.add(future)
        future.add_done_callback(self._forget)

    def _forget(self, future: Future) -> None:
        with self._pending_lock:
            self._pending.discard(future)

    def _count(self, name: str) -> None:
        with self._stats_lock:
            self._stats[name] += 1

    def wait_for_background(self, timeout: Optional[float] = None) -> bool:
        """
        Block until in-flight background refreshes finish.

        Returns:
            True if everything finished within the timeout
        """
        with self._pending_lock:
            pending = list(self._pending)
        if not pending:
            return True
        _, not_done = wait(pending, timeout=timeout)
        return not not_done

    def shutdown(self, wait_for_pending: bool = True) -> None:
        """Stop accepting background work."""
        self._pool.shutdown(wait=wait_for_pending)

    def get_stats(self) -> Dict[str, Any]:
        """Get coordinator statistics."""
        with self._stats_lock:
            stats = dict(self._stats)
        with self._revalidating_lock:
            stats["revalidating"] = len(self._revalidating)
        stats["coalescer"] = self._coalescer.get_stats()
        return stats


# Global coordinator instance
_coordinator: Optional[SwrCoordinator] = None
_coordinator_lock = threading.Lock()


def get_swr_coordinator() -> SwrCoordinator:
    """Get the global SWR coordinator instance."""
    global _coordinator
    if _coordinator is None:
        with _coordinator_lock:
            if _coordinator is None:
                from config.settings import settings

                _coordinator = SwrCoordinator(
                    max_workers=settings.swr_max_workers,
                    max_age=settings.swr_max_age_seconds,
                )
    return _coordinator
