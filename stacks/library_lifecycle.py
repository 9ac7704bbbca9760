"""Library content lifecycle: sync the filesystem into the database.

Every folder that directly holds book files is a series. A scan never
hard-deletes anything: vanished books and series get a deleted_date and
come back untouched if they reappear. empty_trash removes them for good.
"""

from __future__ import annotations

import dataclasses
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Tuple

from sqlalchemy.engine import Engine

from .archive import natural_sort_key
from .book_lifecycle import BookLifecycle
from .config import LibraryConfig, ScannerConfig
from .database import session_scope
from .events import BookUpdated, EventPublisher, SeriesUpdated
from .logging_config import get_logger
from .models import Book, BookMetadata, Library, Media, MediaStatus, Series, SeriesMetadata
from .repository import Repository
from .utils import as_utc, file_mtime, short_path

logger = get_logger(__name__)


def _should_ignore(name: str, ignore_patterns: Iterable[str]) -> bool:
    """Check if file/folder should be ignored based on patterns or macOS temp files."""
    # Skip macOS temporary/metadata files (._*)
    if name.startswith("._"):
        return True
    return name in ignore_patterns


def is_book_file(path: Path, extensions: Iterable[str]) -> bool:
    return path.suffix.lower().lstrip(".") in {e.lower() for e in extensions}


def walk_library(
    root: Path,
    ignore_patterns: Tuple[str, ...],
    extensions: Tuple[str, ...],
) -> Iterator[Tuple[Path, List[Path]]]:
    """Yield (directory, book_files) under root, respecting ignore patterns."""
    root = root.resolve()
    for dirpath, dirnames, filenames in os.walk(root):
        dir_path = Path(dirpath)

        # Filter out ignored directories in-place so os.walk doesn't descend
        dirnames[:] = [d for d in dirnames if not _should_ignore(d, ignore_patterns)]

        book_files = [
            dir_path / f
            for f in filenames
            if not _should_ignore(f, ignore_patterns) and is_book_file(Path(f), extensions)
        ]
        book_files.sort(key=lambda p: natural_sort_key(p.name))
        yield dir_path, book_files


def _mtime(path: Path) -> datetime:
    return file_mtime(path.stat())


@dataclasses.dataclass
class ScanResult:
    added_series_ids: List[str] = dataclasses.field(default_factory=list)
    added_book_ids: List[str] = dataclasses.field(default_factory=list)
    outdated_book_ids: List[str] = dataclasses.field(default_factory=list)
    restored_book_ids: List[str] = dataclasses.field(default_factory=list)
    deleted_book_ids: List[str] = dataclasses.field(default_factory=list)
    deleted_series_ids: List[str] = dataclasses.field(default_factory=list)

    @property
    def changed(self) -> bool:
        return any(
            (
                self.added_series_ids,
                self.added_book_ids,
                self.outdated_book_ids,
                self.restored_book_ids,
                self.deleted_book_ids,
                self.deleted_series_ids,
            )
        )

    def as_stats(self) -> Dict[str, int]:
        return {
            "added": len(self.added_book_ids),
            "updated": len(self.outdated_book_ids),
            "restored": len(self.restored_book_ids),
            "deleted": len(self.deleted_book_ids),
        }


class LibraryContentLifecycle:
    def __init__(
        self,
        engine: Engine,
        book_lifecycle: BookLifecycle,
        events: EventPublisher,
        scanner: ScannerConfig,
    ):
        self.engine = engine
        self.book_lifecycle = book_lifecycle
        self.events = events
        self.scanner = scanner

    def register_library(self, config: LibraryConfig) -> Library:
        """Create the library row for a configured library, or update its settings."""
        with session_scope(self.engine) as session:
            repo = Repository(session)
            library = repo.get_library_by_name(config.name)
            if library is None:
                library = Library(name=config.name, root=str(config.path.resolve()))
                logger.info(f"Registering library {config.name} at {config.path}")
            library.root = str(config.path.resolve())
            library.repair_extensions = config.repair_extensions
            library.convert_to_cbz = config.convert_to_cbz
            library.import_local_artwork = config.import_local_artwork
            repo.save_library(library)
            repo.commit()
        return library

    def scan_root_folder(self, library: Library) -> ScanResult:
        root = library.path
        if not root.is_dir():
            raise FileNotFoundError(f"Library path does not exist: {root}")

        logger.info(f"Scan root folder for library {library.name}: {root}")
        scanned: Dict[Path, List[Path]] = {
            dir_path: files
            for dir_path, files in walk_library(
                root, tuple(self.scanner.ignore_patterns), tuple(self.scanner.supported_formats)
            )
            if files
        }

        now = datetime.now(timezone.utc)
        result = ScanResult()
        touched_books: List[Book] = []
        touched_series: List[Series] = []

        with session_scope(self.engine) as session:
            repo = Repository(session)
            existing_series = {s.path: s for s in repo.find_series_by_library(library.id)}
            existing_books = {b.path: b for b in repo.find_books_by_library(library.id)}
            scanned_book_paths = set()

            for dir_path, files in scanned.items():
                series = existing_series.get(str(dir_path))
                if series is None:
                    series = repo.save_series(
                        Series(
                            library_id=library.id,
                            name=dir_path.name,
                            path=str(dir_path),
                            file_last_modified=_mtime(dir_path),
                        )
                    )
                    repo.save_series_metadata(
                        SeriesMetadata(series_id=series.id, title=series.name, title_sort=series.name)
                    )
                    result.added_series_ids.append(series.id)
                    touched_series.append(series)
                    logger.info(f"[+] New series: {series.name} ({len(files)} files)")
                elif series.deleted_date is not None:
                    series.deleted_date = None
                    series.file_last_modified = _mtime(dir_path)
                    repo.save_series(series)
                    touched_series.append(series)
                    logger.info(f"[+] Restored series: {series.name}")

                for number, file in enumerate(files, start=1):
                    scanned_book_paths.add(str(file))
                    try:
                        stat = file.stat()
                    except (FileNotFoundError, PermissionError) as exc:
                        logger.error(f"✗ {file.name} - Unable to stat: {exc}")
                        continue
                    mtime = file_mtime(stat)

                    book = existing_books.get(str(file))
                    if book is None:
                        book = repo.save_book(
                            Book(
                                library_id=library.id,
                                series_id=series.id,
                                name=file.stem,
                                path=str(file),
                                number=number,
                                file_size=stat.st_size,
                                file_last_modified=mtime,
                            )
                        )
                        repo.save_media(Media(book_id=book.id, status=MediaStatus.UNKNOWN))
                        repo.save_book_metadata(
                            BookMetadata(
                                book_id=book.id,
                                title=book.name,
                                number=str(number),
                                number_sort=float(number),
                            )
                        )
                        result.added_book_ids.append(book.id)
                        touched_books.append(book)
                        logger.debug(f"[+] {short_path(file)}")
                        continue

                    touched = False
                    if book.deleted_date is not None:
                        book.deleted_date = None
                        result.restored_book_ids.append(book.id)
                        touched = True
                    if book.file_size != stat.st_size or as_utc(book.file_last_modified) != mtime:
                        logger.info(f"Book changed on disk, marking as outdated: {short_path(file)}")
                        book.file_size = stat.st_size
                        book.file_last_modified = mtime
                        book.file_hash = ""
                        media = repo.get_media(book.id) or Media(book_id=book.id)
                        media.status = MediaStatus.OUTDATED
                        repo.save_media(media)
                        result.outdated_book_ids.append(book.id)
                        touched = True
                    if book.number != number:
                        book.number = number
                        touched = True
                    if touched:
                        repo.save_book(book)
                        touched_books.append(book)

            for path, book in existing_books.items():
                if path not in scanned_book_paths and book.deleted_date is None:
                    book.deleted_date = now
                    repo.save_book(book)
                    result.deleted_book_ids.append(book.id)
                    touched_books.append(book)
                    logger.info(f"[-] Removed: {book.name}")

            scanned_series_paths = {str(p) for p in scanned}
            for path, series in existing_series.items():
                if path not in scanned_series_paths and series.deleted_date is None:
                    series.deleted_date = now
                    repo.save_series(series)
                    result.deleted_series_ids.append(series.id)
                    touched_series.append(series)
                    logger.info(f"[-] Removed series: {series.name}")

            repo.commit()

        for series in touched_series:
            self.events.publish_event(SeriesUpdated(series))
        for book in touched_books:
            self.events.publish_event(BookUpdated(book))

        logger.info(f"Library {library.name} scanned: {result.as_stats()}")
        return result

    def empty_trash(self, library: Library) -> None:
        """Hard-delete the soft-deleted books and series of a library."""
        logger.info(f"Empty trash for library: {library.name}")
        with session_scope(self.engine) as session:
            repo = Repository(session)
            books = repo.find_deleted_books(library.id)
        self.book_lifecycle.delete_many(books)

        with session_scope(self.engine) as session:
            repo = Repository(session)
            series_ids = [
                s.id
                for s in repo.find_deleted_series(library.id)
                if not repo.find_books_by_series(s.id, include_deleted=True)
            ]
            repo.delete_series(series_ids)
            repo.commit()
        logger.info(f"Removed {len(books)} books and {len(series_ids)} series from trash")
