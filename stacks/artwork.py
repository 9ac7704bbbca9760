"""Local artwork: sidecar images stored next to books and series folders."""

from __future__ import annotations

import re
from pathlib import Path
from typing import List

from sqlalchemy.engine import Engine

from .book_lifecycle import BookLifecycle, MarkSelectedPreference
from .database import session_scope
from .logging_config import get_logger
from .models import Book, Series, ThumbnailBook, ThumbnailSeries, ThumbnailType
from .repository import Repository

logger = get_logger(__name__)

ARTWORK_EXTENSIONS = {"jpg", "jpeg", "png", "tbn", "webp"}
SERIES_COVER_NAMES = {"cover", "default", "folder", "poster", "series"}


def find_book_sidecars(book_path: Path) -> List[Path]:
    """Images named like the book file, exactly or with a -N suffix.

    Names are matched case-insensitively; the exact match sorts first.
    """
    if not book_path.parent.is_dir():
        return []
    pattern = re.compile(rf"^{re.escape(book_path.stem.lower())}(-\d+)?$")
    found = []
    for candidate in book_path.parent.iterdir():
        if not candidate.is_file() or candidate == book_path:
            continue
        if candidate.suffix.lower().lstrip(".") not in ARTWORK_EXTENSIONS:
            continue
        match = pattern.match(candidate.stem.lower())
        if match:
            found.append((match.group(1) is not None, candidate.name.lower(), candidate))
    return [path for _, _, path in sorted(found)]


def find_series_covers(series_path: Path) -> List[Path]:
    if not series_path.is_dir():
        return []
    return sorted(
        (
            p
            for p in series_path.iterdir()
            if p.is_file()
            and p.stem.lower() in SERIES_COVER_NAMES
            and p.suffix.lower().lstrip(".") in ARTWORK_EXTENSIONS
        ),
        key=lambda p: p.name.lower(),
    )


class LocalArtworkLifecycle:
    def __init__(self, engine: Engine, book_lifecycle: BookLifecycle):
        self.engine = engine
        self.book_lifecycle = book_lifecycle

    def refresh_book_local_artwork(self, book: Book) -> None:
        logger.info(f"Refresh local artwork for book: {book.name}")
        sidecars = find_book_sidecars(book.file_path)
        for index, sidecar in enumerate(sidecars):
            self.book_lifecycle.add_thumbnail_for_book(
                ThumbnailBook(book_id=book.id, type=ThumbnailType.SIDECAR, url=str(sidecar)),
                MarkSelectedPreference.IF_NONE_OR_GENERATED if index == 0 else MarkSelectedPreference.NO,
            )
        # stale sidecars (file removed) are purged by housekeeping
        self.book_lifecycle.thumbnails_housekeeping(book.id)
        logger.debug(f"Found {len(sidecars)} sidecar images for {book.name}")

    def refresh_series_local_artwork(self, series: Series) -> None:
        logger.info(f"Refresh local artwork for series: {series.name}")
        covers = find_series_covers(Path(series.path))

        with session_scope(self.engine) as session:
            repo = Repository(session)
            known = {t.url: t for t in repo.find_series_thumbnails(series.id)}
            for url, thumbnail in known.items():
                if not Path(url).is_file():
                    logger.warning(f"Series thumbnail {url} doesn't exist, removing entry")
                    repo.delete_series_thumbnail(thumbnail)

            for cover in covers:
                if str(cover) not in known:
                    repo.insert_series_thumbnail(ThumbnailSeries(series_id=series.id, url=str(cover)))

            remaining = repo.find_series_thumbnails(series.id)
            if remaining and not any(t.selected for t in remaining):
                repo.mark_series_thumbnail_selected(remaining[0])
            repo.commit()
