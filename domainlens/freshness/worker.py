"""
Executes scheduled revalidations.

The worker claims due tasks from the queue and runs each one behind the
deduplication gate, so a section of a domain is refreshed by at most one
instance at a time. Refresh functions are registered per section:

    worker = RevalidationWorker(queue, gate)
    worker.register(Section.DNS, refresh_dns)   # refresh_dns(domain) -> FetchResult
    worker.run_once()

The gate records one id per claim, "<task key>#<attempt>", so a lock left
behind by an earlier claim of the same task is never mistaken for the
current one.
"""
import logging
import threading
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from domainlens.errors import DeduplicationUnavailableError, StoreUnavailableError, TaskQueueError
from domainlens.tasks.base import QueuedTask, TaskHandle, TaskStatus
from .core import FetchResult, Section

logger = logging.getLogger("freshness.worker")

Refresher = Callable[[str], Any]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def run_id(task: QueuedTask) -> str:
    """Gate task id for one claim of a queued task."""
    return f"{task.key}#{task.attempts}"


def run_status_lookup(task_queue) -> Callable[[str], Optional[TaskStatus]]:
    """
    Build a gate status lookup over a queue's claims.

    A run id resolves to its task's status only while that claim is the
    task's latest; ids of earlier claims, and ids the queue does not know,
    resolve to None.
    """
    def lookup(task_id: str) -> Optional[TaskStatus]:
        key, sep, attempt = task_id.rpartition("#")
        if not sep:
            return None
        task = task_queue.get_task(key)
        if task is None or str(task.attempts) != attempt:
            return None
        return task.status

    return lookup


class RevalidationWorker:
    """
    claim_due -> gate.acquire_or_attach -> refresh -> mark_completed / mark_failed

    A claim already being run elsewhere is left to that run, which records
    the outcome.
    """

    def __init__(
        self,
        task_queue,
        gate,
        refreshers: Optional[Dict[Section, Refresher]] = None,
        batch_size: int = 50,
        clock: Callable[[], datetime] = _utcnow,
    ):
        """
        Args:
            task_queue: Queue with claim_due, mark_completed and mark_failed
            gate: DeduplicationGate guarding each task key
            refreshers: Section -> refresh(domain); returns a FetchResult or raises
            batch_size: Max tasks claimed per run_once
        """
        self._queue = task_queue
        self._gate = gate
        self._refreshers: Dict[Section, Refresher] = dict(refreshers or {})
        self._batch_size = batch_size
        self._clock = clock

        self._stats = {
            "claimed": 0,
            "completed": 0,
            "failed": 0,
            "attached": 0,
        }
        self._stats_lock = threading.Lock()

    def register(self, section: Section, refresher: Refresher) -> None:
        self._refreshers[section] = refresher

    def run_once(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """
        Claim and execute every task due at `now`.

        Returns:
            Outcome counts for this run
        """
        now = now or self._clock()
        try:
            tasks = self._queue.claim_due(now, limit=self._batch_size)
        except TaskQueueError as e:
            logger.error(f"Could not claim due revalidations: {e}")
            return {"claimed": 0}

        outcomes: Dict[str, int] = {"claimed": len(tasks)}
        self._count("claimed", len(tasks))
        for task in tasks:
            outcome = self.execute(task)
            outcomes[outcome] = outcomes.get(outcome, 0) + 1
            self._count(outcome)

        if tasks:
            logger.info(f"Revalidation run: {outcomes}")
        return outcomes

    def execute(self, task: QueuedTask) -> str:
        """
        Run one claimed task behind the gate.

        Returns:
            "completed", "failed" or "attached"
        """
        try:
            result = self._gate.acquire_or_attach(task.key, lambda: TaskHandle(task_id=run_id(task)))
        except DeduplicationUnavailableError as e:
            self._finish(task, error=f"dedup_unavailable: {e}")
            return "failed"

        if not result.started and result.task_id is None:
            self._finish(task, error="dedup_timeout")
            return "failed"

        if not result.started:
            logger.debug(f"Revalidation {task.key} already running as {result.task_id}, leaving it to that run")
            return "attached"

        try:
            error = self._refresh(task)
        finally:
            if not result.fail_open:
                self._release(task.key, result.task_id)

        self._finish(task, error=error)
        return "failed" if error else "completed"

    def _refresh(self, task: QueuedTask) -> Optional[str]:
        """Run the section's refresher; returns an error string on failure."""
        domain = task.payload.get("domain")
        try:
            section = Section(task.payload.get("section"))
        except ValueError:
            return f"unknown_section: {task.payload.get('section')!r}"

        refresher = self._refreshers.get(section)
        if refresher is None:
            return f"no_refresher: {section.value}"

        try:
            outcome = refresher(domain)
        except Exception as e:
            logger.warning(f"Revalidation {task.key} raised: {e}")
            return f"refresh_exception: {e}"

        if isinstance(outcome, FetchResult) and not outcome.success:
            logger.info(f"Revalidation {task.key} failed: {outcome.error}")
            return outcome.error or "fetch_failed"
        return None

    def _finish(self, task: QueuedTask, error: Optional[str] = None) -> None:
        try:
            if error is None:
                self._queue.mark_completed(task.key)
            else:
                self._queue.mark_failed(task.key, error)
        except TaskQueueError as e:
            logger.error(f"Could not record outcome of {task.key}: {e}")

    def _release(self, key: str, task_id: Optional[str]) -> None:
        try:
            self._gate.release(key, task_id=task_id)
        except StoreUnavailableError as e:
            # The lock expires on its own
            logger.warning(f"Could not release revalidation lock for {key}: {e}")

    def _count(self, name: str, amount: int = 1) -> None:
        with self._stats_lock:
            self._stats[name] = self._stats.get(name, 0) + amount

    def get_stats(self) -> Dict[str, Any]:
        with self._stats_lock:
            stats = dict(self._stats)
        stats["sections"] = sorted(s.value for s in self._refreshers)
        stats["gate"] = self._gate.get_stats()
        return stats


# Global worker instance
_worker: Optional[RevalidationWorker] = None
_worker_lock = threading.Lock()


def get_revalidation_worker() -> RevalidationWorker:
    """
    Get the global worker: the scheduler's queue behind the global gate,
    attaching only to claims the queue reports as running.
    """
    global _worker
    if _worker is None:
        with _worker_lock:
            if _worker is None:
                from domainlens.dedup.gate import get_dedup_gate
                from .scheduler import get_scheduler

                queue = get_scheduler().task_queue
                _worker = RevalidationWorker(queue, get_dedup_gate(status_lookup=run_status_lookup(queue)))
    return _worker
