"""Alembic migration helpers for Stacks.

This is the only module in the project that imports alembic directly.
The CLI goes through the functions below.
"""

from __future__ import annotations

import shutil
from typing import Optional, Tuple

from alembic import command as alembic_command
from alembic.config import Config as AlembicConfig
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory
from sqlalchemy import inspect

from .config import PROJECT_ROOT
from .database import DB_PATH, get_engine
from .logging_config import get_logger

logger = get_logger(__name__)


def _alembic_cfg() -> AlembicConfig:
    """Build an AlembicConfig that points at our alembic.ini."""
    cfg = AlembicConfig(str(PROJECT_ROOT / "alembic.ini"))
    # Absolute script_location so it works from any working directory
    cfg.set_main_option("script_location", str(PROJECT_ROOT / "migrations"))
    return cfg


def _backup_db() -> None:
    """Copy library.db → library.db.bak (overwrite previous backup)."""
    if DB_PATH.exists():
        shutil.copy2(DB_PATH, DB_PATH.with_suffix(".db.bak"))
        logger.debug(f"Database backed up to {DB_PATH.with_suffix('.db.bak')}")


def _current_revision() -> Optional[str]:
    if not DB_PATH.exists():
        return None
    with get_engine().connect() as conn:
        return MigrationContext.configure(conn).get_current_revision()


def _has_tables() -> bool:
    if not DB_PATH.exists():
        return False
    return bool(inspect(get_engine()).get_table_names())


def head_revision() -> str:
    script = ScriptDirectory.from_config(_alembic_cfg())
    return script.get_current_head() or "unknown"


def run_migrations(backup: bool = True) -> None:
    """Run ``alembic upgrade head``, backing up library.db first if asked."""
    if backup:
        _backup_db()
    alembic_command.upgrade(_alembic_cfg(), "head")


def stamp_if_needed() -> None:
    """Stamp a database built by create_all() to the current head.

    No-op for a missing database or one that already carries a revision.
    """
    if not _has_tables() or _current_revision() is not None:
        return
    logger.info("Database has no revision, stamping to head")
    alembic_command.stamp(_alembic_cfg(), "head")


def get_status() -> Tuple[Optional[str], str]:
    """Return (current_revision, head_revision); current is None when never stamped."""
    return _current_revision(), head_revision()
