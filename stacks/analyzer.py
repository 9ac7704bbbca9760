"""Book analysis: page inventory, first-page thumbnails and page extraction."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Sequence, Tuple

from .archive import detect_media_type, get_archive, page_media_type
from .config import ThumbnailConfig
from .exceptions import MediaNotReadyError, PageOutOfRangeError
from .images import ImageConverter
from .logging_config import get_logger
from .models import Book, Media, MediaPage, MediaStatus, ThumbnailBook, ThumbnailType
from .utils import short_path

logger = get_logger(__name__)

SUPPORTED_MEDIA_TYPES = ("application/zip", "application/x-rar-compressed")


class BookAnalyzer:
    def __init__(self, image_converter: ImageConverter, thumbnails: ThumbnailConfig):
        self.image_converter = image_converter
        self.thumbnails = thumbnails

    def analyze(self, book: Book) -> Tuple[Media, List[MediaPage]]:
        """Inspect the book file. Never raises: failures become ERROR media."""
        logger.info(f"Analyzing {short_path(book.file_path)}")
        now = datetime.now(timezone.utc)

        try:
            media_type = detect_media_type(book.file_path)
        except OSError as exc:
            logger.error(f"✗ {book.name} - cannot open file: {exc}")
            return Media(book_id=book.id, status=MediaStatus.ERROR, comment=str(exc), last_modified_at=now), []

        if media_type not in SUPPORTED_MEDIA_TYPES:
            logger.warning(f"✗ {book.name} - unsupported format")
            return (
                Media(book_id=book.id, status=MediaStatus.UNSUPPORTED, comment="Unsupported format", last_modified_at=now),
                [],
            )

        pages: List[MediaPage] = []
        try:
            with get_archive(book.file_path) as archive:
                for number, name in enumerate(archive.list_images(), start=1):
                    dimension = self.image_converter.get_dimension(archive.read(name))
                    pages.append(
                        MediaPage(
                            book_id=book.id,
                            number=number,
                            file_name=name,
                            media_type=page_media_type(name),
                            width=dimension[0] if dimension else None,
                            height=dimension[1] if dimension else None,
                        )
                    )
        except Exception as exc:
            # BadZipFile and rarfile errors do not share a base class
            logger.error(f"✗ {book.name} - CORRUPT: {exc}")
            return (
                Media(book_id=book.id, status=MediaStatus.ERROR, media_type=media_type, comment=str(exc), last_modified_at=now),
                [],
            )

        if not pages:
            return (
                Media(book_id=book.id, status=MediaStatus.ERROR, media_type=media_type, comment="Book has no pages", last_modified_at=now),
                [],
            )

        media = Media(
            book_id=book.id,
            status=MediaStatus.READY,
            media_type=media_type,
            page_count=len(pages),
            last_modified_at=now,
        )
        return media, pages

    def get_page_content(self, book: Book, media: Media, pages: Sequence[MediaPage], number: int) -> bytes:
        """Raw bytes of the 1-based page `number`."""
        if media is None or media.status != MediaStatus.READY:
            raise MediaNotReadyError(f"Book {book.id} does not have a ready media")
        if number < 1 or number > len(pages):
            raise PageOutOfRangeError(number, len(pages))

        with get_archive(book.file_path) as archive:
            return archive.read(pages[number - 1].file_name)

    def generate_thumbnail(self, book: Book, media: Media, pages: Sequence[MediaPage]) -> ThumbnailBook:
        logger.debug(f"Generate thumbnail for {book.name}")
        first_page = self.get_page_content(book, media, pages, 1)
        data = self.image_converter.make_thumbnail(
            first_page, self.thumbnails.width, self.thumbnails.height
        )
        return ThumbnailBook(book_id=book.id, type=ThumbnailType.GENERATED, thumbnail=data)
