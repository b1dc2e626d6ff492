"""
In-process task queue.

Used in tests and single-instance deployments; tasks are lost on restart.
"""
import logging
import threading
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .base import QueuedTask, TaskStatus

logger = logging.getLogger("tasks.memory")


class InMemoryTaskQueue:
    """
    Keyed task queue held in a dict.

    Submitting an existing key always leaves exactly one pending task for it.
    A task that is currently running is replaced by the new pending one; the
    worker's later mark_completed/mark_failed then leaves the replacement
    alone.
    """

    def __init__(self):
        self._tasks: Dict[str, QueuedTask] = {}
        self._lock = threading.Lock()
        self._submissions = 0
        self._overwrites = 0

    def submit(self, key: str, payload: Dict[str, Any], not_before: datetime) -> bool:
        now = datetime.now(timezone.utc)
        with self._lock:
            self._submissions += 1
            existing = self._tasks.get(key)
            if existing is not None and existing.status == TaskStatus.PENDING:
                existing.payload = dict(payload)
                existing.not_before = not_before
                existing.updated_at = now
                self._overwrites += 1
                logger.debug(f"Replaced pending task {key} (not_before={not_before.isoformat()})")
                return True

            self._tasks[key] = QueuedTask(
                key=key,
                payload=dict(payload),
                not_before=not_before,
                attempts=existing.attempts if existing is not None else 0,
            )
            logger.debug(f"Queued task {key} (not_before={not_before.isoformat()})")
            return True

    def get_status(self, task_id: str) -> Optional[TaskStatus]:
        with self._lock:
            task = self._tasks.get(task_id)
            return task.status if task is not None else None

    def get_task(self, task_id: str) -> Optional[QueuedTask]:
        with self._lock:
            return self._tasks.get(task_id)

    def claim_due(self, now: Optional[datetime] = None, limit: Optional[int] = None) -> List[QueuedTask]:
        """
        Move pending tasks whose not_before has passed to running.

        Returns:
            Claimed tasks, earliest first
        """
        now = now or datetime.now(timezone.utc)
        with self._lock:
            due = sorted(
                (
                    t for t in self._tasks.values()
                    if t.status == TaskStatus.PENDING and t.not_before <= now
                ),
                key=lambda t: t.not_before,
            )
            if limit is not None:
                due = due[:limit]
            for task in due:
                task.status = TaskStatus.RUNNING
                task.attempts += 1
                task.updated_at = now
            return list(due)

    def mark_completed(self, task_id: str) -> bool:
        return self._finish(task_id, TaskStatus.COMPLETED, None)

    def mark_failed(self, task_id: str, error: Optional[str] = None) -> bool:
        return self._finish(task_id, TaskStatus.FAILED, error)

    def _finish(self, task_id: str, status: TaskStatus, error: Optional[str]) -> bool:
        with self._lock:
            task = self._tasks.get(task_id)
            if task is None or task.status != TaskStatus.RUNNING:
                logger.debug(f"Ignoring {status.value} for {task_id}: not running")
                return False
            task.status = status
            task.last_error = error
            task.updated_at = datetime.now(timezone.utc)
            return True

    def __len__(self) -> int:
        with self._lock:
            return len(self._tasks)

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            by_status: Dict[str, int] = {s.value: 0 for s in TaskStatus}
            for task in self._tasks.values():
                by_status[task.status.value] += 1
            return {
                "tasks": len(self._tasks),
                "submissions": self._submissions,
                "overwrites": self._overwrites,
                "by_status": by_status,
            }
