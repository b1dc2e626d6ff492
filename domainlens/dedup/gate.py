"""
Cross-instance deduplication of refresh work.

Before starting an expensive refresh, callers go through the gate with a
stable key. Exactly one caller per live lock starts the work; the rest get
the owner's task id so they can attach to it instead of starting their own.

Each owner holds the lock under its own pending token and only publishes its
task id while that token is still in place, so an owner whose lock expired
mid-start never overwrites the next owner's id.
"""
import logging
import threading
import time
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from domainlens.errors import DeduplicationUnavailableError, DomainLensError, StoreUnavailableError
from domainlens.tasks.base import TaskStatus

logger = logging.getLogger("dedup.gate")

# Prefix of the per-owner token held while start() is running
PENDING_MARKER = "__pending__"


def _pending_token() -> str:
    return f"{PENDING_MARKER}:{uuid.uuid4().hex}"


def _is_pending(value: str) -> bool:
    return value.startswith(PENDING_MARKER)


@dataclass(frozen=True)
class DedupResult:
    """
    Outcome of acquire_or_attach.

    task_id is None when another owner holds the lock but has not published
    its id within the poll timeout.
    """
    task_id: Optional[str]
    started: bool
    fail_open: bool = False


class DeduplicationGate:
    """
    Lock-or-attach on top of a SharedStore.

    When a status lookup (e.g. TaskQueue.get_status) is given, a recorded
    task id is only attached to while that task is running; ids of finished,
    failed or unknown tasks are cleared and the lock is taken again.

    Usage:
        gate = DeduplicationGate(store, status_lookup=queue.get_status)
        result = gate.acquire_or_attach("example.com:dns", start_refresh)
        if not result.started:
            ... wait on result.task_id
    """

    def __init__(
        self,
        store,
        default_ttl: float = 300,
        poll_interval: float = 0.05,
        poll_timeout: float = 2.0,
        fail_closed: bool = False,
        key_prefix: str = "dedup",
        status_lookup: Optional[Callable[[str], Optional[TaskStatus]]] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            store: SharedStore holding the locks
            default_ttl: Lock lifetime in seconds when none is given per call
            poll_interval: Seconds between reads while the owner is starting
            poll_timeout: Max seconds to wait for the owner's task id
            fail_closed: Raise instead of starting work when the store is down
            key_prefix: Namespace for lock keys
            status_lookup: task_id -> TaskStatus (None when unknown)
        """
        self._store = store
        self._default_ttl = default_ttl
        self._poll_interval = poll_interval
        self._poll_timeout = poll_timeout
        self._fail_closed = fail_closed
        self._key_prefix = key_prefix
        self._status_lookup = status_lookup
        self._sleep = sleep
        self._clock = clock

        self._stats = {
            "started": 0,
            "attached": 0,
            "timeouts": 0,
            "fail_open": 0,
            "stale_cleared": 0,
            "lost_locks": 0,
        }
        self._stats_lock = threading.Lock()

    def _full_key(self, key: str) -> str:
        return f"{self._key_prefix}:{key}" if self._key_prefix else key

    def acquire_or_attach(
        self,
        key: str,
        start: Callable[[], Any],
        ttl_seconds: Optional[float] = None,
    ) -> DedupResult:
        """
        Start the work behind `key` or attach to whoever already did.

        Args:
            key: Stable identity of the work (e.g. "example.com:dns")
            start: Starts the work and returns a TaskHandle
            ttl_seconds: Lock lifetime; defaults to the gate's default_ttl

        Returns:
            DedupResult

        Raises:
            Whatever start() raised (the lock is released first)
            DeduplicationUnavailableError: store down and fail_closed is set
        """
        full_key = self._full_key(key)
        ttl = ttl_seconds if ttl_seconds is not None else self._default_ttl
        deadline: Optional[float] = None

        while True:
            token = _pending_token()
            try:
                acquired = self._store.set_if_absent(full_key, token, ttl)
            except StoreUnavailableError as e:
                return self._store_down(key, start, e)

            if acquired:
                return self._run_owner(key, full_key, token, start, ttl)

            if deadline is None:
                deadline = self._clock() + self._poll_timeout

            while True:
                try:
                    current = self._store.get(full_key)
                except StoreUnavailableError as e:
                    return self._store_down(key, start, e)

                if current is None:
                    # Owner released or lock expired; try to take it
                    logger.debug(f"Lock for {key} vanished while polling, retrying")
                    break

                if not _is_pending(current):
                    if self._is_live(key, current):
                        self._count("attached")
                        logger.debug(f"Attached to {current} for {key}")
                        return DedupResult(task_id=current, started=False)
                    try:
                        self._store.compare_and_delete(full_key, current)
                    except StoreUnavailableError as e:
                        return self._store_down(key, start, e)
                    self._count("stale_cleared")
                    logger.debug(f"Cleared finished task {current} for {key}, retrying")
                    break

                if self._clock() >= deadline:
                    self._count("timeouts")
                    logger.info(f"Owner of {key} did not publish a task id within {self._poll_timeout}s")
                    return DedupResult(task_id=None, started=False)

                self._sleep(self._poll_interval)

            if self._clock() >= deadline:
                self._count("timeouts")
                return DedupResult(task_id=None, started=False)

    def _is_live(self, key: str, task_id: str) -> bool:
        """Whether a recorded task id is still worth attaching to."""
        if self._status_lookup is None:
            return True
        try:
            status = self._status_lookup(task_id)
        except DomainLensError as e:
            # Attaching is the conservative choice when we cannot tell
            logger.warning(f"Could not look up status of {task_id} for {key}: {e}")
            return True
        return status == TaskStatus.RUNNING

    def _run_owner(
        self,
        key: str,
        full_key: str,
        token: str,
        start: Callable[[], Any],
        ttl: float,
    ) -> DedupResult:
        try:
            handle = start()
        except Exception:
            try:
                self._store.compare_and_delete(full_key, token)
            except StoreUnavailableError as e:
                logger.warning(f"Could not release lock for {key} after failed start: {e}")
            raise

        task_id = str(handle.task_id)
        try:
            published = self._store.compare_and_set(full_key, token, task_id, ttl)
        except StoreUnavailableError as e:
            # Waiters will time out instead of attaching
            logger.warning(f"Could not publish task id for {key}: {e}")
        else:
            if not published:
                self._count("lost_locks")
                logger.warning(f"Lock for {key} expired before {task_id} was published; leaving the new holder alone")

        self._count("started")
        logger.debug(f"Started {task_id} for {key}")
        return DedupResult(task_id=task_id, started=True)

    def _store_down(self, key: str, start: Callable[[], Any], error: Exception) -> DedupResult:
        if self._fail_closed:
            logger.error(f"Deduplication store unavailable for {key}, refusing to start: {error}")
            raise DeduplicationUnavailableError(key) from error

        logger.warning(f"Deduplication store unavailable for {key}, starting without lock: {error}")
        handle = start()
        self._count("fail_open")
        return DedupResult(task_id=str(handle.task_id), started=True, fail_open=True)

    def release(self, key: str, task_id: Optional[str] = None) -> Optional[str]:
        """
        Drop the lock for `key`, returning the task id it held.

        With `task_id`, the lock is only dropped while it still records that
        id; a lock since taken by someone else is left in place.
        """
        full_key = self._full_key(key)
        if task_id is not None:
            return task_id if self._store.compare_and_delete(full_key, task_id) else None
        value = self._store.get_and_delete(full_key)
        if value is None or _is_pending(value):
            return None
        return value

    def _count(self, name: str) -> None:
        with self._stats_lock:
            self._stats[name] += 1

    def get_stats(self) -> Dict[str, int]:
        with self._stats_lock:
            return dict(self._stats)


# Global gate instance
_gate: Optional[DeduplicationGate] = None
_gate_lock = threading.Lock()


def get_dedup_gate(status_lookup: Optional[Callable[[str], Optional[TaskStatus]]] = None) -> DeduplicationGate:
    """
    Get the global deduplication gate.

    `status_lookup` only applies on the call that builds the gate.
    """
    global _gate
    if _gate is None:
        with _gate_lock:
            if _gate is None:
                from config.settings import settings
                from .store import get_shared_store

                _gate = DeduplicationGate(
                    get_shared_store(),
                    default_ttl=settings.dedup_ttl_seconds,
                    poll_interval=settings.dedup_poll_interval,
                    poll_timeout=settings.dedup_poll_timeout,
                    fail_closed=settings.dedup_fail_closed,
                    status_lookup=status_lookup,
                )
    return _gate
