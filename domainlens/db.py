"""
Database connection and setup for the durable task queue.
SQLite by default, any SQLAlchemy URL via TASK_DATABASE_URL.
"""
import logging

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from config.settings import settings
from domainlens.models import Base

logger = logging.getLogger("db")


def make_engine(url: str, echo: bool = False) -> Engine:
    """Create an engine; SQLite connections are shared across threads."""
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, connect_args=connect_args, echo=echo)


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


DATABASE_URL = settings.task_database_url

engine = make_engine(DATABASE_URL)

# Session factory
SessionLocal = make_session_factory(engine)


def init_db(bind: Engine = None):
    """
    Create all tables.
    Safe to call multiple times (won't recreate existing tables)
    """
    target = bind or engine
    Base.metadata.create_all(bind=target)
    logger.info(f"Task database initialized at: {target.url}")


def get_session():
    """
    Get a database session
    Remember to close() when done
    """
    return SessionLocal()
