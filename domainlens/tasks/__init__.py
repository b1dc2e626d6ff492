"""
Keyed task queues for scheduled revalidation.
"""
from .base import QueuedTask, TaskHandle, TaskQueue, TaskStatus
from .memory import InMemoryTaskQueue
from .sql_queue import SqlTaskQueue

__all__ = [
    "QueuedTask",
    "TaskHandle",
    "TaskQueue",
    "TaskStatus",
    "InMemoryTaskQueue",
    "SqlTaskQueue",
]
