"""ComicInfo.xml parsing for Stacks.

Reads ComicInfo.xml from inside CBZ/CBR archives and turns it into a
metadata patch. Fields that are absent stay None so they never overwrite
existing values.
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel

from .archive import get_archive
from .logging_config import get_logger

logger = get_logger(__name__)

AUTHOR_TAGS = ("writer", "penciller", "inker", "colorist", "letterer", "coverartist", "editor")


class ComicInfoPatch(BaseModel):
    """Metadata parsed from ComicInfo.xml (all optional)."""

    model_config = {"extra": "ignore"}

    title: Optional[str] = None
    series: Optional[str] = None
    number: Optional[str] = None
    summary: Optional[str] = None
    publisher: Optional[str] = None
    release_date: Optional[datetime] = None
    authors: Optional[List[str]] = None
    tags: Optional[List[str]] = None
    isbn: Optional[str] = None
    story_arcs: Optional[List[str]] = None


def _text(elem: Optional[ET.Element]) -> Optional[str]:
    if elem is None or elem.text is None:
        return None
    t = elem.text.strip()
    return t or None


def _int_or_none(s: Optional[str]) -> Optional[int]:
    if s is None:
        return None
    try:
        return int(s.strip())
    except ValueError:
        return None


def _split(s: Optional[str]) -> List[str]:
    if not s:
        return []
    return [part.strip() for part in s.split(",") if part.strip()]


def _local_name(tag: str) -> str:
    """Return tag without namespace (e.g. '{http://...}Issue' -> 'issue')."""
    return tag.split("}")[-1].lower() if "}" in tag else tag.lower()


def _release_date(year: Optional[int], month: Optional[int], day: Optional[int]) -> Optional[datetime]:
    if year is None:
        return None
    try:
        return datetime(year, month or 1, day or 1, tzinfo=timezone.utc)
    except ValueError:
        return None


def parse_comicinfo_xml(xml_bytes: bytes) -> ComicInfoPatch:
    """Parse ComicInfo.xml content into a validated Pydantic model."""
    try:
        root = ET.fromstring(xml_bytes)
    except ET.ParseError:
        logger.warning("Malformed ComicInfo.xml, ignoring")
        return ComicInfoPatch()

    by_lower = {_local_name(elem.tag): _text(elem) for elem in root}

    authors: List[str] = []
    for tag in AUTHOR_TAGS:
        for name in _split(by_lower.get(tag)):
            if name not in authors:
                authors.append(name)

    tags = _split(by_lower.get("tags")) + [
        g for g in _split(by_lower.get("genre")) if g not in _split(by_lower.get("tags"))
    ]

    gtin = by_lower.get("gtin")
    isbn = gtin.replace("-", "") if gtin else None

    raw = {
        "title": by_lower.get("title"),
        "series": by_lower.get("series"),
        "number": by_lower.get("number"),
        "summary": by_lower.get("summary"),
        "publisher": by_lower.get("publisher"),
        "release_date": _release_date(
            _int_or_none(by_lower.get("year")),
            _int_or_none(by_lower.get("month")),
            _int_or_none(by_lower.get("day")),
        ),
        "authors": authors or None,
        "tags": tags or None,
        "isbn": isbn,
        "story_arcs": _split(by_lower.get("storyarc")) or None,
    }
    return ComicInfoPatch.model_validate(raw)


def read_comicinfo_from_archive(archive_path: Path) -> Optional[ComicInfoPatch]:
    """Read ComicInfo.xml from a comic archive (CBZ/CBR) and return parsed model, or None."""
    try:
        with get_archive(archive_path) as archive:
            names = archive.list_names()
            comicinfo_name = next(
                (n for n in names if Path(n).name.lower() == "comicinfo.xml"),
                None,
            )
            if comicinfo_name is None:
                return None
            raw = archive.read(comicinfo_name)
    except Exception as exc:
        logger.warning(f"Cannot read ComicInfo.xml from {archive_path.name}: {exc}")
        return None

    if not raw.strip():
        return None
    return parse_comicinfo_xml(raw)
