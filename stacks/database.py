"""Database connection and session management using SQLModel."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, create_engine, Session

from .config import DATA_DIR

DB_PATH = DATA_DIR / "library.db"
SQLITE_URL = f"sqlite:///{DB_PATH}"


def make_engine(url: str) -> Engine:
    """Create a SQLite engine usable from the task worker threads."""
    new_engine = create_engine(url, connect_args={"check_same_thread": False})

    @event.listens_for(new_engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, connection_record):  # noqa: ARG001
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return new_engine


engine = make_engine(SQLITE_URL)


@contextmanager
def session_scope(bind: Optional[Engine] = None) -> Iterator[Session]:
    """Yield a session whose objects stay usable after commit.

    Rolls back if the block raises; the caller commits.
    """
    session = Session(bind or engine, expire_on_commit=False)
    try:
        yield session
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db(bind: Optional[Engine] = None) -> None:
    """Create database tables."""
    # Import models to ensure they are registered with SQLModel.metadata
    from . import models  # noqa: F401

    target = bind or engine
    # Enable WAL mode for better concurrency
    with target.connect() as conn:
        conn.exec_driver_sql("PRAGMA journal_mode=WAL;")

    SQLModel.metadata.create_all(target)


def reset_database() -> None:
    """Delete the database file and recreate it."""
    engine.dispose()
    if DB_PATH.exists():
        DB_PATH.unlink()
    init_db()


def get_engine() -> Engine:
    """Return the global engine instance."""
    return engine
