"""Archive handling utilities for Stacks.

Provides a unified interface for reading CBZ (Zip) and CBR (Rar) archives,
with content sniffing so misnamed files can still be opened and repaired.
"""

from __future__ import annotations

import re
import zipfile
from pathlib import Path
from typing import List, Optional, Protocol

import rarfile


IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".webp", ".gif", ".bmp"}

MEDIA_TYPE_ZIP = "application/zip"
MEDIA_TYPE_RAR = "application/x-rar-compressed"

# Expected file extension for each container media type
EXTENSION_FOR_MEDIA_TYPE = {
    MEDIA_TYPE_ZIP: "cbz",
    MEDIA_TYPE_RAR: "cbr",
}

PAGE_MEDIA_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".webp": "image/webp",
    ".gif": "image/gif",
    ".bmp": "image/bmp",
}

_RAR_MAGIC = (b"Rar!\x1a\x07\x00", b"Rar!\x1a\x07\x01\x00")
_ZIP_MAGIC = (b"PK\x03\x04", b"PK\x05\x06")


def is_image(filename: str) -> bool:
    name = Path(filename).name
    return Path(filename).suffix.lower() in IMAGE_EXTENSIONS and not name.startswith("._")


def page_media_type(filename: str) -> str:
    return PAGE_MEDIA_TYPES.get(Path(filename).suffix.lower(), "application/octet-stream")


def natural_sort_key(name: str):
    """Sort key for page names so 1, 2, 10 order correctly (not 1, 10, 2)."""
    parts = re.split(r"(\d+)", name)
    return [int(part) if part.isdigit() else part.lower() for part in parts]


def detect_media_type(path: Path) -> Optional[str]:
    """Sniff the container type from the file header, ignoring the extension."""
    with path.open("rb") as handle:
        header = handle.read(8)
    if header.startswith(_ZIP_MAGIC):
        return MEDIA_TYPE_ZIP
    if header.startswith(_RAR_MAGIC):
        return MEDIA_TYPE_RAR
    return None


class Archive(Protocol):
    def list_images(self) -> List[str]:
        """Image entries in reading order."""
        ...

    def list_names(self) -> List[str]:
        """List all file names in the archive (for finding ComicInfo.xml etc.)."""
        ...

    def read(self, filename: str) -> bytes:
        ...

    def close(self) -> None:
        ...

    def __enter__(self) -> "Archive":
        ...

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        ...


class ZipArchiveWrapper:
    media_type = MEDIA_TYPE_ZIP

    def __init__(self, path: Path):
        self.zf = zipfile.ZipFile(path, mode="r")

    def list_images(self) -> List[str]:
        return sorted((n for n in self.zf.namelist() if is_image(n)), key=natural_sort_key)

    def list_names(self) -> List[str]:
        return self.zf.namelist()

    def read(self, filename: str) -> bytes:
        return self.zf.read(filename)

    def close(self) -> None:
        self.zf.close()

    def __enter__(self) -> "ZipArchiveWrapper":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


class RarArchiveWrapper:
    media_type = MEDIA_TYPE_RAR

    def __init__(self, path: Path):
        self.rf = rarfile.RarFile(path, mode="r")

    def list_images(self) -> List[str]:
        return sorted((n for n in self.rf.namelist() if is_image(n)), key=natural_sort_key)

    def list_names(self) -> List[str]:
        return self.rf.namelist()

    def read(self, filename: str) -> bytes:
        return self.rf.read(filename)

    def close(self) -> None:
        self.rf.close()

    def __enter__(self) -> "RarArchiveWrapper":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


def get_archive(path: Path) -> Archive:
    """Open an archive by sniffing its content, falling back to the extension.

    Tries the detected format first; a misnamed .cbr that is really a zip
    opens as zip.
    """
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")

    detected = detect_media_type(path)
    if detected == MEDIA_TYPE_ZIP:
        return ZipArchiveWrapper(path)
    if detected == MEDIA_TYPE_RAR:
        return RarArchiveWrapper(path)

    suffix = path.suffix.lower()
    if suffix == ".cbz":
        return ZipArchiveWrapper(path)
    if suffix == ".cbr":
        return RarArchiveWrapper(path)
    raise ValueError(f"Unsupported archive format: {suffix}")


def write_cbz(path: Path, pages: List[tuple[str, bytes]]) -> None:
    """Write (name, bytes) pages into a new stored (uncompressed) zip."""
    with zipfile.ZipFile(path, mode="w", compression=zipfile.ZIP_STORED) as zf:
        for name, data in pages:
            zf.writestr(name, data)
