"""
Database models for durable revalidation tasks.
"""
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer, JSON, String, Text
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class RevalidationTaskRecord(Base):
    """
    One scheduled refresh of a domain section.
    Keyed by task_key ("{domain}:{section}"); timestamps are naive UTC.
    """
    __tablename__ = "revalidation_tasks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    task_key = Column(String, unique=True, nullable=False, index=True)
    payload = Column(JSON, nullable=False)
    not_before = Column(DateTime, nullable=False, index=True)
    status = Column(String, nullable=False, default="pending", index=True)
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)

    def __repr__(self):
        return (
            f"<RevalidationTaskRecord(task_key='{self.task_key}', "
            f"status='{self.status}', not_before={self.not_before})>"
        )
