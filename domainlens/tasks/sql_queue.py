"""
Durable task queue on a SQLAlchemy table.

Same semantics as InMemoryTaskQueue, persisted in `revalidation_tasks` so
scheduled refreshes survive restarts and are shared between instances.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from domainlens.errors import TaskQueueError
from domainlens.models import RevalidationTaskRecord
from .base import QueuedTask, TaskStatus

logger = logging.getLogger("tasks.sql_queue")


def _to_db(value: datetime) -> datetime:
    """Store naive UTC."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _from_db(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _to_task(record: RevalidationTaskRecord) -> QueuedTask:
    return QueuedTask(
        key=record.task_key,
        payload=dict(record.payload or {}),
        not_before=_from_db(record.not_before),
        status=TaskStatus(record.status),
        attempts=record.attempts or 0,
        last_error=record.last_error,
        created_at=_from_db(record.created_at),
        updated_at=_from_db(record.updated_at),
    )


class SqlTaskQueue:
    """
    Task queue backed by the revalidation_tasks table.

    Every public method runs in its own session; SQLAlchemy errors are
    rolled back and re-raised as TaskQueueError.
    """

    def __init__(self, session_factory: Optional[Callable[[], Session]] = None):
        if session_factory is None:
            from domainlens.db import get_session

            session_factory = get_session
        self._session_factory = session_factory

    def submit(self, key: str, payload: Dict[str, Any], not_before: datetime) -> bool:
        try:
            return self._upsert(key, payload, not_before)
        except IntegrityError:
            # Another writer inserted the key between our read and insert
            logger.debug(f"Concurrent insert for {key}, retrying as update")
            try:
                return self._upsert(key, payload, not_before)
            except SQLAlchemyError as e:
                raise TaskQueueError(f"Failed to submit task {key}: {e}") from e
        except SQLAlchemyError as e:
            raise TaskQueueError(f"Failed to submit task {key}: {e}") from e

    def _upsert(self, key: str, payload: Dict[str, Any], not_before: datetime) -> bool:
        db = self._session_factory()
        try:
            record = (
                db.query(RevalidationTaskRecord)
                .filter(RevalidationTaskRecord.task_key == key)
                .first()
            )
            if record is None:
                db.add(RevalidationTaskRecord(
                    task_key=key,
                    payload=dict(payload),
                    not_before=_to_db(not_before),
                    status=TaskStatus.PENDING.value,
                    attempts=0,
                ))
                logger.debug(f"Queued task {key} (not_before={not_before.isoformat()})")
            else:
                if record.status == TaskStatus.PENDING.value:
                    logger.debug(f"Replaced pending task {key} (not_before={not_before.isoformat()})")
                record.payload = dict(payload)
                record.not_before = _to_db(not_before)
                record.status = TaskStatus.PENDING.value
                record.last_error = None
            db.commit()
            return True
        except SQLAlchemyError:
            db.rollback()
            raise
        finally:
            db.close()

    def get_status(self, task_id: str) -> Optional[TaskStatus]:
        task = self.get_task(task_id)
        return task.status if task is not None else None

    def get_task(self, task_id: str) -> Optional[QueuedTask]:
        db = self._session_factory()
        try:
            record = (
                db.query(RevalidationTaskRecord)
                .filter(RevalidationTaskRecord.task_key == task_id)
                .first()
            )
            return _to_task(record) if record is not None else None
        except SQLAlchemyError as e:
            raise TaskQueueError(f"Failed to read task {task_id}: {e}") from e
        finally:
            db.close()

    def claim_due(self, now: Optional[datetime] = None, limit: Optional[int] = None) -> List[QueuedTask]:
        """
        Move due pending tasks to running, earliest first.

        Several instances may claim from the same table; each row is flipped
        with a conditional UPDATE, so a task goes to exactly one claimer.
        """
        now = now or datetime.now(timezone.utc)
        try:
            candidates = self._due_ids(now, limit)
            return self._claim(candidates, now)
        except SQLAlchemyError as e:
            raise TaskQueueError(f"Failed to claim due tasks: {e}") from e

    def _due_ids(self, now: datetime, limit: Optional[int]) -> List[int]:
        db = self._session_factory()
        try:
            query = (
                db.query(RevalidationTaskRecord.id)
                .filter(RevalidationTaskRecord.status == TaskStatus.PENDING.value)
                .filter(RevalidationTaskRecord.not_before <= _to_db(now))
                .order_by(RevalidationTaskRecord.not_before)
            )
            if limit is not None:
                query = query.limit(limit)
            return [row.id for row in query.all()]
        finally:
            db.close()

    def _claim(self, ids: List[int], now: datetime) -> List[QueuedTask]:
        """Flip each still-pending row to running; rows taken by someone else are skipped."""
        if not ids:
            return []
        db = self._session_factory()
        try:
            claimed_ids = []
            for record_id in ids:
                updated = (
                    db.query(RevalidationTaskRecord)
                    .filter(RevalidationTaskRecord.id == record_id)
                    .filter(RevalidationTaskRecord.status == TaskStatus.PENDING.value)
                    .filter(RevalidationTaskRecord.not_before <= _to_db(now))
                    .update(
                        {
                            "status": TaskStatus.RUNNING.value,
                            "attempts": RevalidationTaskRecord.attempts + 1,
                        },
                        synchronize_session=False,
                    )
                )
                if updated:
                    claimed_ids.append(record_id)
            db.commit()

            if len(claimed_ids) < len(ids):
                logger.debug(f"Skipped {len(ids) - len(claimed_ids)} task(s) claimed elsewhere")
            if not claimed_ids:
                return []

            records = (
                db.query(RevalidationTaskRecord)
                .filter(RevalidationTaskRecord.id.in_(claimed_ids))
                .order_by(RevalidationTaskRecord.not_before)
                .all()
            )
            return [_to_task(r) for r in records]
        except SQLAlchemyError:
            db.rollback()
            raise
        finally:
            db.close()

    def mark_completed(self, task_id: str) -> bool:
        return self._finish(task_id, TaskStatus.COMPLETED, None)

    def mark_failed(self, task_id: str, error: Optional[str] = None) -> bool:
        return self._finish(task_id, TaskStatus.FAILED, error)

    def _finish(self, task_id: str, status: TaskStatus, error: Optional[str]) -> bool:
        db = self._session_factory()
        try:
            updated = (
                db.query(RevalidationTaskRecord)
                .filter(RevalidationTaskRecord.task_key == task_id)
                .filter(RevalidationTaskRecord.status == TaskStatus.RUNNING.value)
                .update(
                    {"status": status.value, "last_error": error},
                    synchronize_session=False,
                )
            )
            db.commit()
            if not updated:
                logger.debug(f"Ignoring {status.value} for {task_id}: not running")
            return bool(updated)
        except SQLAlchemyError as e:
            db.rollback()
            raise TaskQueueError(f"Failed to mark task {task_id} {status.value}: {e}") from e
        finally:
            db.close()
