"""Book lifecycle: analysis, hashing, thumbnails, page delivery, deletion.

Thumbnail selection rules (per book):
- at most one GENERATED thumbnail exists;
- at most one thumbnail is selected among those whose bytes still exist;
- if thumbnails exist but none is selected, the first one gets selected.

Housekeeping restores these rules and runs after every thumbnail mutation
and lazily when the selected thumbnail is read. It is not locked: each run
re-derives the selection from what is stored.
"""

from __future__ import annotations

import dataclasses
import enum
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Collection, List, Optional, Tuple

from sqlalchemy.engine import Engine

from .analyzer import BookAnalyzer
from .database import session_scope
from .events import (
    BookDeleted,
    BookUpdated,
    EventPublisher,
    ReadProgressChanged,
    ReadProgressDeleted,
    ThumbnailBookAdded,
    ThumbnailBookDeleted,
)
from .exceptions import (
    BookFileNotAccessibleError,
    ImageConversionError,
    InvalidThumbnailError,
    ReadProgressError,
)
from .hasher import Hasher
from .images import ImageConverter, ImageType
from .logging_config import get_logger
from .models import (
    Book,
    Media,
    MediaPage,
    MediaStatus,
    ReadProgress,
    ThumbnailBook,
    ThumbnailType,
)
from .repository import Repository

logger = get_logger(__name__)


class MarkSelectedPreference(str, enum.Enum):
    YES = "YES"
    NO = "NO"
    IF_NONE_OR_GENERATED = "IF_NONE_OR_GENERATED"


@dataclasses.dataclass(frozen=True)
class BookPageContent:
    number: int
    content: bytes
    media_type: str


def _thumbnail_bytes(thumbnail: Optional[ThumbnailBook]) -> Optional[bytes]:
    if thumbnail is None:
        return None
    if thumbnail.thumbnail is not None:
        return thumbnail.thumbnail
    if thumbnail.url is not None:
        return Path(thumbnail.url).read_bytes()
    return None


class BookLifecycle:
    def __init__(
        self,
        engine: Engine,
        analyzer: BookAnalyzer,
        image_converter: ImageConverter,
        hasher: Hasher,
        events: EventPublisher,
        file_hashing: bool = True,
    ):
        self.engine = engine
        self.analyzer = analyzer
        self.image_converter = image_converter
        self.hasher = hasher
        self.events = events
        self.file_hashing = file_hashing

    def get_media(self, book_id: str) -> Tuple[Optional[Media], List[MediaPage]]:
        with session_scope(self.engine) as session:
            repo = Repository(session)
            return repo.get_media(book_id), repo.get_pages(book_id)

    # --- Analysis and hashing ---

    def analyze_and_persist(self, book: Book) -> bool:
        """Analyze the book file and store the result. True when READY."""
        logger.info(f"Analyze and persist book: {book.name}")
        media, pages = self.analyzer.analyze(book)

        with session_scope(self.engine) as session:
            repo = Repository(session)
            previous = repo.get_media(book.id)
            # Read progress is meaningless once the page count changes
            if (
                previous is not None
                and previous.status in (MediaStatus.OUTDATED, MediaStatus.READY)
                and previous.page_count != media.page_count
            ):
                if repo.find_read_progress_by_book(book.id):
                    logger.info(f"Number of pages differ for {book.name}, reset read progress")
                repo.delete_read_progress_by_books([book.id])
            repo.save_media(media, pages)
            repo.commit()

        self.events.publish_event(BookUpdated(book))
        return media.status == MediaStatus.READY

    def hash_and_persist(self, book: Book) -> None:
        if not self.file_hashing:
            logger.info("File hashing is disabled, it may have changed since the task was submitted, skipping")
            return

        if book.file_hash:
            logger.info(f"Book {book.name} already has a hash, skipping")
            return

        logger.info(f"Hash and persist book: {book.name}")
        file_hash = self.hasher.compute_hash(book.file_path)
        with session_scope(self.engine) as session:
            repo = Repository(session)
            current = repo.get_book(book.id)
            if current is None or current.file_hash:
                return
            current.file_hash = file_hash
            repo.save_book(current)
            repo.commit()
        book.file_hash = file_hash

    # --- Thumbnails ---

    def generate_thumbnail_and_persist(self, book: Book) -> None:
        logger.info(f"Generate thumbnail and persist for book: {book.name}")
        try:
            media, pages = self.get_media(book.id)
            thumbnail = self.analyzer.generate_thumbnail(book, media, pages)
            self.add_thumbnail_for_book(thumbnail, MarkSelectedPreference.IF_NONE_OR_GENERATED)
        except Exception:
            logger.exception(f"Error while creating thumbnail for {book.name}")

    def add_thumbnail_for_book(
        self, thumbnail: ThumbnailBook, mark_selected: MarkSelectedPreference
    ) -> None:
        if thumbnail.thumbnail is None and thumbnail.url is None:
            raise InvalidThumbnailError("Thumbnail needs either image bytes or a file url")

        with session_scope(self.engine) as session:
            repo = Repository(session)

            if thumbnail.type == ThumbnailType.GENERATED:
                # only one generated thumbnail is allowed
                repo.delete_thumbnails_by_book_and_type(thumbnail.book_id, ThumbnailType.GENERATED)
            elif thumbnail.type == ThumbnailType.SIDECAR:
                for existing in repo.find_thumbnails_by_book_and_type(thumbnail.book_id, ThumbnailType.SIDECAR):
                    if existing.url == thumbnail.url:
                        repo.delete_thumbnail(existing.id)

            thumbnail.selected = False
            repo.insert_thumbnail(thumbnail)

            if mark_selected == MarkSelectedPreference.YES:
                repo.mark_thumbnail_selected(thumbnail)
            elif mark_selected == MarkSelectedPreference.IF_NONE_OR_GENERATED:
                selected = repo.find_selected_thumbnail(thumbnail.book_id)
                if selected is None or selected.type == ThumbnailType.GENERATED:
                    repo.mark_thumbnail_selected(thumbnail)
                else:
                    self._housekeeping(repo, thumbnail.book_id)
            else:
                self._housekeeping(repo, thumbnail.book_id)

            repo.commit()

        self.events.publish_event(ThumbnailBookAdded(thumbnail))

    def delete_thumbnail_for_book(self, thumbnail: ThumbnailBook) -> None:
        if thumbnail.type != ThumbnailType.USER_UPLOADED:
            raise InvalidThumbnailError("Only uploaded thumbnails can be deleted")

        with session_scope(self.engine) as session:
            repo = Repository(session)
            repo.delete_thumbnail(thumbnail.id)
            self._housekeeping(repo, thumbnail.book_id)
            repo.commit()

        self.events.publish_event(ThumbnailBookDeleted(thumbnail))

    def get_thumbnail(self, book_id: str) -> Optional[ThumbnailBook]:
        with session_scope(self.engine) as session:
            repo = Repository(session)
            selected = repo.find_selected_thumbnail(book_id)
            if selected is not None and selected.exists():
                return selected

            self._housekeeping(repo, book_id)
            repo.commit()
            return repo.find_selected_thumbnail(book_id)

    def get_thumbnail_bytes(self, book_id: str) -> Optional[bytes]:
        return _thumbnail_bytes(self.get_thumbnail(book_id))

    def get_thumbnail_bytes_by_id(self, thumbnail_id: str) -> Optional[bytes]:
        with session_scope(self.engine) as session:
            thumbnail = Repository(session).get_thumbnail(thumbnail_id)
        return _thumbnail_bytes(thumbnail)

    def thumbnails_housekeeping(self, book_id: str) -> None:
        with session_scope(self.engine) as session:
            repo = Repository(session)
            self._housekeeping(repo, book_id)
            repo.commit()

    def _housekeeping(self, repo: Repository, book_id: str) -> None:
        logger.debug(f"House keeping thumbnails for book: {book_id}")
        remaining = []
        for thumbnail in repo.find_thumbnails_by_book(book_id):
            if thumbnail.exists():
                remaining.append(thumbnail)
            else:
                logger.warning(f"Thumbnail {thumbnail.url} doesn't exist, removing entry")
                repo.delete_thumbnail(thumbnail.id)

        selected = [t for t in remaining if t.selected]
        if len(selected) > 1:
            logger.info("More than one thumbnail is selected, removing extra ones")
            repo.mark_thumbnail_selected(selected[0])
        elif not selected and remaining:
            logger.info("Book has no selected thumbnail, choosing one automatically")
            repo.mark_thumbnail_selected(remaining[0])

    # --- Pages ---

    def get_book_page(
        self,
        book: Book,
        number: int,
        convert_to: Optional[ImageType] = None,
        resize_to: Optional[int] = None,
    ) -> BookPageContent:
        """Return page `number` (1-based), optionally resized or converted.

        Raises MediaNotReadyError, PageOutOfRangeError or ImageConversionError.
        Resizing always produces JPEG and takes precedence over convert_to.
        """
        media, pages = self.get_media(book.id)
        content = self.analyzer.get_page_content(book, media, pages, number)
        page_media_type = pages[number - 1].media_type

        if resize_to is not None:
            target = ImageType.JPEG
            try:
                resized = self.image_converter.resize_image(content, target.pil_format, resize_to)
            except Exception as exc:
                logger.exception(f"Resize page #{number} of book {book.name} to {resize_to}: failed")
                raise ImageConversionError(
                    f"Resize page #{number} of book {book.name} failed: {exc}",
                    ImageConversionError.CODEC_FAILURE,
                ) from exc
            return BookPageContent(number, resized, target.media_type)

        if convert_to is None or convert_to.media_type == page_media_type:
            if convert_to is not None:
                logger.debug(f"Page #{number} of book {book.name} is already {page_media_type}, no conversion")
            return BookPageContent(number, content, page_media_type)

        msg = f"Convert page #{number} of book {book.name} from {page_media_type} to {convert_to.media_type}"
        if page_media_type not in self.image_converter.supported_read_media_types:
            raise ImageConversionError(
                f"{msg}: unsupported read format {page_media_type}",
                ImageConversionError.UNSUPPORTED_READ,
            )
        if convert_to.media_type not in self.image_converter.supported_write_media_types:
            raise ImageConversionError(
                f"{msg}: unsupported write format {convert_to.media_type}",
                ImageConversionError.UNSUPPORTED_WRITE,
            )

        logger.info(msg)
        try:
            converted = self.image_converter.convert_image(content, convert_to.pil_format)
        except Exception as exc:
            logger.exception(f"{msg}: conversion failed")
            raise ImageConversionError(f"{msg}: {exc}", ImageConversionError.CODEC_FAILURE) from exc
        return BookPageContent(number, converted, convert_to.media_type)

    # --- Deletion ---

    def delete_one(self, book: Book) -> None:
        self.delete_many([book])

    def delete_many(self, books: Collection[Book]) -> None:
        """Remove books and everything they own in a single transaction."""
        book_ids = [b.id for b in books]
        if not book_ids:
            return
        logger.info(f"Delete book ids: {book_ids}")

        with session_scope(self.engine) as session:
            repo = Repository(session)
            self.delete_book_rows(repo, book_ids)
            repo.commit()

        for book in books:
            self.events.publish_event(BookDeleted(book))

    @staticmethod
    def delete_book_rows(repo: Repository, book_ids: Collection[str]) -> None:
        """Delete the rows of `book_ids` inside the caller's transaction. Nothing is committed."""
        repo.delete_read_progress_by_books(book_ids)
        repo.remove_books_from_all_read_lists(book_ids)
        repo.delete_media(book_ids)
        repo.delete_thumbnails_by_books(book_ids)
        repo.delete_book_metadata(book_ids)
        repo.delete_books(book_ids)

    def soft_delete_many(self, books: Collection[Book]) -> None:
        logger.info(f"Soft delete books: {[b.name for b in books]}")
        deleted_date = datetime.now(timezone.utc)
        with session_scope(self.engine) as session:
            repo = Repository(session)
            stored = repo.get_books([b.id for b in books])
            for book in stored:
                book.deleted_date = deleted_date
            repo.save_books(stored)
            repo.commit()

        for book in books:
            book.deleted_date = deleted_date
            self.events.publish_event(BookUpdated(book))

    def find_sidecar_files(self, book: Book) -> List[Path]:
        with session_scope(self.engine) as session:
            return [
                Path(t.url)
                for t in Repository(session).find_thumbnails_by_book_and_type(book.id, ThumbnailType.SIDECAR)
                if t.url
            ]

    def delete_book_files(self, book: Book, sidecars: Optional[List[Path]] = None) -> None:
        """Delete the book file, its sidecar thumbnails and an emptied folder.

        Nothing is touched when the book file is missing or read-only. Pass
        `sidecars` when the book rows are already gone from the database.
        """
        path = book.file_path
        if not path.exists() or not os.access(path, os.W_OK):
            raise BookFileNotAccessibleError(f"File is not accessible : {path}")

        if sidecars is None:
            sidecars = self.find_sidecar_files(book)
        sidecars = [p for p in sidecars if p.exists() and os.access(p, os.W_OK)]

        path.unlink(missing_ok=True)
        for sidecar in sidecars:
            sidecar.unlink(missing_ok=True)

        if path.parent.exists() and not any(path.parent.iterdir()):
            path.parent.rmdir()

    # --- Read progress ---

    def mark_read_progress(self, book: Book, user_id: str, page: int) -> ReadProgress:
        with session_scope(self.engine) as session:
            repo = Repository(session)
            pages = repo.get_pages_count(book.id)
            if page < 1 or page > pages:
                raise ReadProgressError(
                    f"Page argument ({page}) must be within 1 and book page count ({pages})"
                )
            progress = repo.save_read_progress(
                ReadProgress(book_id=book.id, user_id=user_id, page=page, completed=page == pages)
            )
            repo.commit()

        self.events.publish_event(ReadProgressChanged(progress))
        return progress

    def mark_read_progress_completed(self, book_id: str, user_id: str) -> ReadProgress:
        with session_scope(self.engine) as session:
            repo = Repository(session)
            pages = repo.get_pages_count(book_id)
            progress = repo.save_read_progress(
                ReadProgress(book_id=book_id, user_id=user_id, page=pages, completed=True)
            )
            repo.commit()

        self.events.publish_event(ReadProgressChanged(progress))
        return progress

    def delete_read_progress(self, book: Book, user_id: str) -> None:
        with session_scope(self.engine) as session:
            repo = Repository(session)
            progress = repo.get_read_progress(book.id, user_id)
            if progress is None:
                return
            repo.delete_read_progress(book.id, user_id)
            repo.commit()

        self.events.publish_event(ReadProgressDeleted(progress))
