"""
Same-process coalescing of synchronous fresh fetches.

When several requests miss the cache for the same domain section at once,
only the first one calls the fetcher; the others wait and share its result.
Cross-instance deduplication is the job of the DeduplicationGate; this only
covers threads within one process.
"""
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from .core import FetchResult

logger = logging.getLogger("freshness.coalescer")


@dataclass
class InFlightFetch:
    """Tracks one fetch in progress for a key."""
    done: threading.Event = field(default_factory=threading.Event)
    result: Optional[FetchResult] = None
    error: Optional[BaseException] = None
    started_at: float = field(default_factory=time.monotonic)
    waiters: int = 0


class RequestCoalescer:
    """
    Shares one in-flight fetch among concurrent callers for the same key.

    Usage:
        coalescer = RequestCoalescer()
        result = coalescer.get_or_fetch("dns:example.com", fetch_dns)
    """

    def __init__(self, timeout: float = 30.0):
        """
        Args:
            timeout: Max seconds a waiter blocks on someone else's fetch
        """
        self._in_flight: Dict[str, InFlightFetch] = {}
        self._lock = threading.Lock()
        self._timeout = timeout

    def get_or_fetch(self, key: str, fetch_fn: Callable[[], FetchResult]) -> FetchResult:
        """
        Join the in-flight fetch for `key` or start one.

        Returns:
            The FetchResult shared by every caller of this round

        Raises:
            Whatever fetch_fn raised (re-raised in every waiter)
        """
        with self._lock:
            in_flight = self._in_flight.get(key)
            if in_flight is not None:
                in_flight.waiters += 1
                is_leader = False
                logger.debug(f"Joining in-flight fetch for {key} (waiters: {in_flight.waiters})")
            else:
                in_flight = InFlightFetch()
                self._in_flight[key] = in_flight
                is_leader = True

        if is_leader:
            try:
                in_flight.result = fetch_fn()
            except Exception as e:
                in_flight.error = e
            finally:
                with self._lock:
                    if self._in_flight.get(key) is in_flight:
                        del self._in_flight[key]
                in_flight.done.set()

            if in_flight.error is not None:
                raise in_flight.error
            return in_flight.result

        if not in_flight.done.wait(timeout=self._timeout):
            logger.warning(f"Timed out after {self._timeout}s waiting on fetch for {key}")
            return FetchResult.fail("coalesce_timeout")

        if in_flight.error is not None:
            raise in_flight.error
        return in_flight.result

    @property
    def active_fetches(self) -> int:
        """Number of fetches currently in flight."""
        with self._lock:
            return len(self._in_flight)

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "active_fetches": len(self._in_flight),
                "active_keys": list(self._in_flight.keys()),
            }
