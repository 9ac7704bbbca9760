"""Utility functions for Stacks."""

from __future__ import annotations

import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional


def short_path(path: Path) -> str:
    """Return abbreviated path showing only parent folder + filename.

    Example: /very/long/path/to/folder/file.cbz -> folder/file.cbz
    """
    return f"{path.parent.name}/{path.name}"


def format_duration(seconds: float) -> str:
    """Human friendly duration for task logs: 850ms, 12.4s, 3m 05s."""
    if seconds < 1:
        return f"{seconds * 1000:.0f}ms"
    if seconds < 60:
        return f"{seconds:.1f}s"
    minutes, rest = divmod(int(seconds), 60)
    return f"{minutes}m {rest:02d}s"


def file_mtime(stat: os.stat_result) -> datetime:
    """Modification time of a stat result as an aware UTC datetime."""
    return datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to a naive datetime read back from SQLite; aware values are converted."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
