"""Book file conversions: RAR to CBZ, and extension repair."""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

from sqlalchemy.engine import Engine

from .archive import (
    EXTENSION_FOR_MEDIA_TYPE,
    MEDIA_TYPE_RAR,
    ZipArchiveWrapper,
    detect_media_type,
    get_archive,
    write_cbz,
)
from .database import session_scope
from .events import BookUpdated, EventPublisher
from .exceptions import ConversionError
from .logging_config import get_logger
from .models import Book, Media, MediaStatus
from .repository import Repository
from .utils import file_mtime, short_path

logger = get_logger(__name__)

# Media types convert_to_cbz accepts
CONVERTIBLE_MEDIA_TYPES = (MEDIA_TYPE_RAR,)


class BookConverter:
    def __init__(self, engine: Engine, events: EventPublisher):
        self.engine = engine
        self.events = events

    def _ready_media(self, book: Book) -> Optional[Media]:
        with session_scope(self.engine) as session:
            media = Repository(session).get_media(book.id)
        if media is None or media.status != MediaStatus.READY:
            logger.info(f"Book media is not ready, skipping: {book.name}")
            return None
        return media

    def _relocate(self, book: Book, destination: Path, outdated: bool) -> None:
        stat = destination.stat()
        with session_scope(self.engine) as session:
            repo = Repository(session)
            stored = repo.get_book(book.id)
            if stored is None:
                return
            stored.path = str(destination)
            stored.file_size = stat.st_size
            stored.file_last_modified = file_mtime(stat)
            if outdated:
                stored.file_hash = ""
                media = repo.get_media(book.id)
                if media is not None:
                    media.status = MediaStatus.OUTDATED
                    repo.save_media(media)
            repo.save_book(stored)
            repo.commit()
        book.path = stored.path
        self.events.publish_event(BookUpdated(stored))

    def convert_to_cbz(self, book: Book) -> None:
        media = self._ready_media(book)
        if media is None:
            return
        if media.media_type not in CONVERTIBLE_MEDIA_TYPES:
            logger.info(f"Book {book.name} is {media.media_type}, no conversion needed")
            return

        source = book.file_path
        destination = source.with_suffix(".cbz")
        if destination.exists():
            raise ConversionError(f"Destination file already exists: {destination}")

        logger.info(f"Converting {short_path(source)} to CBZ")
        with get_archive(source) as archive:
            names = archive.list_images()
            extras = [n for n in archive.list_names() if Path(n).name.lower() == "comicinfo.xml"]
            entries: List[tuple[str, bytes]] = [(n, archive.read(n)) for n in names + extras]

        write_cbz(destination, entries)

        with ZipArchiveWrapper(destination) as converted:
            converted_pages = len(converted.list_images())
        if converted_pages != media.page_count:
            destination.unlink()
            raise ConversionError(
                f"Converted file does not match the original ({converted_pages} pages instead of "
                f"{media.page_count}): {book.name}"
            )

        source.unlink()
        self._relocate(book, destination, outdated=True)
        logger.info(f"Converted {book.name} to {destination.name}")

    def repair_extension(self, book: Book) -> None:
        """Rename a book whose extension does not match its actual content."""
        if self._ready_media(book) is None:
            return

        source = book.file_path
        expected = EXTENSION_FOR_MEDIA_TYPE.get(detect_media_type(source))
        if expected is None:
            logger.info(f"Cannot determine the right extension for {book.name}, skipping")
            return
        if source.suffix.lower().lstrip(".") == expected:
            logger.debug(f"Book {book.name} already has the right extension")
            return

        destination = source.with_suffix(f".{expected}")
        if destination.exists():
            raise ConversionError(f"Destination file already exists: {destination}")

        logger.info(f"Repairing extension of {short_path(source)} to .{expected}")
        source.rename(destination)
        self._relocate(book, destination, outdated=False)
