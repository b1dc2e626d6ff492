"""
Durable task queue interface used by the revalidation scheduler.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Protocol


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TaskStatus(Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class TaskHandle:
    """Reference to a started or enqueued task."""
    task_id: str


@dataclass
class QueuedTask:
    """A task as held by a queue. `key` doubles as the task id."""
    key: str
    payload: Dict[str, Any]
    not_before: datetime
    status: TaskStatus = TaskStatus.PENDING
    attempts: int = 0
    last_error: Optional[str] = None
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    @property
    def task_id(self) -> str:
        return self.key


class TaskQueue(Protocol):
    """
    One task per key. Submitting a key whose task is still pending replaces
    its payload and not_before instead of adding a second task.
    """

    def submit(self, key: str, payload: Dict[str, Any], not_before: datetime) -> bool:
        ...

    def get_status(self, task_id: str) -> Optional[TaskStatus]:
        ...
