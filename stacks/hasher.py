"""File content hashing."""

from __future__ import annotations

import hashlib
from pathlib import Path

from .logging_config import get_logger

logger = get_logger(__name__)

CHUNK_SIZE = 1024 * 1024


class Hasher:
    def compute_hash(self, path: Path) -> str:
        """Hex MD5 of the file content, read in 1MB chunks."""
        logger.debug(f"Hashing {path.name}")
        digest = hashlib.md5()
        with path.open("rb") as handle:
            for chunk in iter(lambda: handle.read(CHUNK_SIZE), b""):
                digest.update(chunk)
        return digest.hexdigest()
