"""Import an external book file into an existing series."""

from __future__ import annotations

import os
import shutil
from pathlib import Path
from typing import Optional

from sqlalchemy.engine import Engine

from .book_lifecycle import BookLifecycle
from .database import session_scope
from .events import BookDeleted, BookUpdated, EventPublisher
from .exceptions import BookFileNotAccessibleError, ImportBookError
from .logging_config import get_logger
from .models import Book, BookMetadata, Media, MediaStatus, ReadProgress, Series
from .repository import Repository
from .tasks import CopyMode
from .utils import as_utc, file_mtime

logger = get_logger(__name__)


def _transfer(source: Path, destination: Path, copy_mode: CopyMode) -> None:
    if copy_mode == CopyMode.MOVE:
        logger.info(f"Moving file {source} to {destination}")
        shutil.move(str(source), str(destination))
    elif copy_mode == CopyMode.HARDLINK:
        try:
            logger.info(f"Hardlink file {source} to {destination}")
            os.link(source, destination)
        except OSError:
            logger.warning(f"Filesystem does not support hardlinks, copying instead: {source}")
            shutil.copy2(source, destination)
    else:
        logger.info(f"Copying file {source} to {destination}")
        shutil.copy2(source, destination)


class BookImporter:
    def __init__(self, engine: Engine, book_lifecycle: BookLifecycle, events: EventPublisher):
        self.engine = engine
        self.book_lifecycle = book_lifecycle
        self.events = events

    def import_book(
        self,
        source: Path,
        series: Series,
        copy_mode: CopyMode = CopyMode.COPY,
        destination_name: Optional[str] = None,
        upgrade_book_id: Optional[str] = None,
    ) -> Book:
        """Place `source` in the series folder and register it as a new book.

        When `upgrade_book_id` is given, read progress and read list entries
        move to the new book and the old book is deleted (file and record).
        Raises ImportBookError when the import cannot proceed.
        """
        if not source.is_file():
            raise ImportBookError(f"File to import does not exist: {source}")

        with session_scope(self.engine) as session:
            repo = Repository(session)
            roots = [library.path.resolve() for library in repo.get_all_libraries()]
            upgrade_book = repo.get_book(upgrade_book_id) if upgrade_book_id else None

        resolved = source.resolve()
        if any(root == resolved or root in resolved.parents for root in roots):
            raise ImportBookError(f"Cannot import file that is part of an existing library: {source}")

        if upgrade_book_id is not None:
            if upgrade_book is None:
                raise ImportBookError(f"Book to upgrade does not exist: {upgrade_book_id}")
            if upgrade_book.series_id != series.id:
                raise ImportBookError(f"Book to upgrade does not belong to series: {series.name}")

        name = destination_name or source.stem
        destination = Path(series.path) / f"{name}{source.suffix.lower()}"
        replaces_upgraded = upgrade_book is not None and destination == upgrade_book.file_path
        if destination.exists() and not replaces_upgraded:
            raise ImportBookError(f"Destination file already exists: {destination}")

        sidecars = self.book_lifecycle.find_sidecar_files(upgrade_book) if upgrade_book is not None else []

        # the library file is only replaced once the new one is complete
        partial = destination.with_name(f"{destination.name}.part")
        try:
            _transfer(source, partial, copy_mode)
            os.replace(partial, destination)
        except OSError as exc:
            partial.unlink(missing_ok=True)
            raise ImportBookError(f"Could not transfer {source} to {destination}: {exc}") from exc
        if replaces_upgraded:
            logger.info(f"Replaced existing file during upgrade: {destination}")
        stat = destination.stat()

        with session_scope(self.engine) as session:
            repo = Repository(session)
            progresses = []
            read_lists = []
            if upgrade_book is not None:
                progresses = [
                    (p.user_id, p.page, p.completed, as_utc(p.read_date))
                    for p in repo.find_read_progress_by_book(upgrade_book.id)
                ]
                read_lists = repo.find_read_lists_containing(upgrade_book.id)
                # frees the unique path when the new file took the old one's place
                self.book_lifecycle.delete_book_rows(repo, [upgrade_book.id])

            number = len(repo.find_books_by_series(series.id)) + 1
            book = repo.save_book(
                Book(
                    library_id=series.library_id,
                    series_id=series.id,
                    name=destination.stem,
                    path=str(destination),
                    number=number,
                    file_size=stat.st_size,
                    file_last_modified=file_mtime(stat),
                )
            )
            repo.save_media(Media(book_id=book.id, status=MediaStatus.UNKNOWN))
            repo.save_book_metadata(
                BookMetadata(book_id=book.id, title=book.name, number=str(number), number_sort=float(number))
            )
            for user_id, page, completed, read_date in progresses:
                repo.save_read_progress(
                    ReadProgress(book_id=book.id, user_id=user_id, page=page, completed=completed, read_date=read_date)
                )
            for read_list in read_lists:
                repo.add_book_to_read_list(read_list, book.id)
            repo.commit()

        if upgrade_book is not None:
            if not replaces_upgraded:
                try:
                    self.book_lifecycle.delete_book_files(upgrade_book, sidecars)
                except BookFileNotAccessibleError:
                    logger.warning(f"Could not delete upgraded book file: {upgrade_book.path}")
            self.events.publish_event(BookDeleted(upgrade_book))

        self.events.publish_event(BookUpdated(book))
        logger.info(f"Imported {source.name} into series {series.name}")
        return book
