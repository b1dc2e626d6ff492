"""
Revalidation scheduling with inactivity decay.

The scheduler only computes when a section should next be refreshed and
submits that to the durable task queue. It never runs the refresh and never
raises: every failure is logged and reported as False.
"""
import logging
import math
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Union

from .core import Section
from .decay import get_decay_multiplier, should_stop_revalidation

logger = logging.getLogger("freshness.scheduler")


def _now_ms() -> float:
    return time.time() * 1000


def _ms_to_datetime(value_ms: float) -> datetime:
    return datetime.fromtimestamp(value_ms / 1000, tz=timezone.utc)


@dataclass(frozen=True)
class RevalidationTask:
    """A future refresh of one domain section."""
    domain: str
    section: Section
    due_at_ms: float

    @property
    def key(self) -> str:
        return f"{self.domain}:{self.section.value}"

    @property
    def due_at(self) -> datetime:
        return _ms_to_datetime(self.due_at_ms)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "domain": self.domain,
            "section": self.section.value,
            "due_at": self.due_at_ms,
        }


def _coerce_section(section: Union[Section, str]) -> Optional[Section]:
    if isinstance(section, Section):
        return section
    try:
        return Section(section)
    except ValueError:
        return None


def _valid_due(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
        and value >= 0
    )


class RevalidationScheduler:
    """
    Submits decayed refresh times to a TaskQueue.

    Usage:
        scheduler = RevalidationScheduler(InMemoryTaskQueue())
        scheduler.schedule_revalidation("example.com", Section.DNS, due_ms, last_accessed_at)
    """

    def __init__(self, task_queue, clock_ms: Callable[[], float] = _now_ms):
        """
        Args:
            task_queue: Anything with submit(key, payload, not_before) -> bool
            clock_ms: Returns the current time in epoch milliseconds
        """
        self._queue = task_queue
        self._clock_ms = clock_ms

    @property
    def task_queue(self):
        return self._queue

    def plan(
        self,
        domain: str,
        section: Union[Section, str],
        base_due_at_ms: Any,
        last_accessed_at: Optional[datetime] = None,
    ) -> Optional[RevalidationTask]:
        """
        Compute the task that would be submitted, or None if nothing should be.
        """
        if not _valid_due(base_due_at_ms):
            logger.warning(f"Rejected revalidation for {domain!r}: invalid due time {base_due_at_ms!r}")
            return None

        resolved = _coerce_section(section)
        if resolved is None:
            logger.warning(f"Rejected revalidation for {domain!r}: unknown section {section!r}")
            return None

        normalized = domain.strip().lower() if isinstance(domain, str) else ""
        if not normalized:
            logger.warning(f"Rejected revalidation: empty domain for section {resolved.value}")
            return None

        now_ms = self._clock_ms()
        now = _ms_to_datetime(now_ms)

        if should_stop_revalidation(resolved, last_accessed_at, now):
            logger.debug(
                f"Skip {normalized}:{resolved.value} (stopped: inactive since "
                f"{last_accessed_at.isoformat()})"
            )
            return None

        multiplier = get_decay_multiplier(resolved, last_accessed_at, now)
        due_ms = now_ms + (base_due_at_ms - now_ms) * multiplier
        due_ms = max(due_ms, now_ms)

        return RevalidationTask(domain=normalized, section=resolved, due_at_ms=due_ms)

    def schedule_revalidation(
        self,
        domain: str,
        section: Union[Section, str],
        base_due_at_ms: Any,
        last_accessed_at: Optional[datetime] = None,
    ) -> bool:
        """
        Schedule the next refresh of a domain section.

        Args:
            domain: Domain name (normalised to lower case)
            section: Section to refresh
            base_due_at_ms: Undecayed due time in epoch milliseconds
            last_accessed_at: Last user access, if tracked

        Returns:
            True if the queue accepted the task
        """
        task = self.plan(domain, section, base_due_at_ms, last_accessed_at)
        if task is None:
            return False

        try:
            accepted = self._queue.submit(task.key, task.to_payload(), task.due_at)
        except Exception as e:
            logger.error(f"Failed to schedule {task.key}: {e}")
            return False

        if not accepted:
            logger.warning(f"Task queue declined {task.key}")
            return False

        logger.debug(f"Scheduled {task.key} at {task.due_at.isoformat()}")
        return True

    def schedule_revalidation_batch(
        self,
        domain: str,
        due_by_section: Dict[Union[Section, str], Any],
        last_accessed_at: Optional[datetime] = None,
    ) -> Dict[Section, bool]:
        """
        Schedule several sections of one domain.

        Returns:
            Section -> whether it was accepted (unknown sections are dropped)
        """
        results: Dict[Section, bool] = {}
        for section, base_due_at_ms in due_by_section.items():
            resolved = _coerce_section(section)
            if resolved is None:
                logger.warning(f"Skipping unknown section {section!r} for {domain!r}")
                continue
            results[resolved] = self.schedule_revalidation(
                domain, resolved, base_due_at_ms, last_accessed_at
            )
        return results


# Global scheduler instance
_scheduler: Optional[RevalidationScheduler] = None
_scheduler_lock = threading.Lock()


def get_scheduler() -> RevalidationScheduler:
    """Get the global scheduler, backed by the SQL task queue."""
    global _scheduler
    if _scheduler is None:
        with _scheduler_lock:
            if _scheduler is None:
                from domainlens.db import init_db
                from domainlens.tasks import SqlTaskQueue

                init_db()
                _scheduler = RevalidationScheduler(SqlTaskQueue())
    return _scheduler
