"""Data Access Layer for Stacks.

Encapsulates database operations using SQLModel/SQLAlchemy. Every method
flushes but never commits: callers group the writes of one domain
transition and commit (or roll back) them as a unit.
"""

from __future__ import annotations

from collections.abc import Collection
from typing import Iterable, List, Optional, Sequence

from sqlmodel import Session, col, func, select

from .models import (
    Book,
    BookMetadata,
    BookMetadataAggregation,
    Library,
    Media,
    MediaPage,
    MediaStatus,
    ReadList,
    ReadListBook,
    ReadProgress,
    SearchEntry,
    Series,
    SeriesMetadata,
    ThumbnailBook,
    ThumbnailSeries,
    ThumbnailType,
)


class Repository:
    """Content store for libraries, series, books and their satellites."""

    def __init__(self, session: Session):
        self.session = session

    def commit(self) -> None:
        """Commit the current transaction. Callers control when to commit."""
        self.session.commit()

    def rollback(self) -> None:
        self.session.rollback()

    def _save(self, obj):
        self.session.add(obj)
        self.session.flush()
        return obj

    def _delete_all(self, rows: Iterable) -> int:
        count = 0
        for row in rows:
            self.session.delete(row)
            count += 1
        self.session.flush()
        return count

    # --- Libraries ---

    def get_library(self, library_id: str) -> Optional[Library]:
        return self.session.get(Library, library_id)

    def get_library_by_name(self, name: str) -> Optional[Library]:
        return self.session.exec(select(Library).where(Library.name == name)).first()

    def get_all_libraries(self) -> List[Library]:
        return list(self.session.exec(select(Library)).all())

    def save_library(self, library: Library) -> Library:
        return self._save(library)

    # --- Series ---

    def get_series(self, series_id: str) -> Optional[Series]:
        return self.session.get(Series, series_id)

    def get_series_by_path(self, path: str) -> Optional[Series]:
        return self.session.exec(select(Series).where(Series.path == path)).first()

    def find_series_by_library(
        self, library_id: str, include_deleted: bool = True
    ) -> List[Series]:
        statement = select(Series).where(Series.library_id == library_id)
        if not include_deleted:
            statement = statement.where(col(Series.deleted_date).is_(None))
        return list(self.session.exec(statement).all())

    def find_deleted_series(self, library_id: str) -> List[Series]:
        statement = select(Series).where(
            Series.library_id == library_id, col(Series.deleted_date).is_not(None)
        )
        return list(self.session.exec(statement).all())

    def save_series(self, series: Series) -> Series:
        return self._save(series)

    def delete_series(self, series_ids: Collection[str]) -> None:
        """Delete series rows and their satellites. Books must already be gone."""
        if not series_ids:
            return
        ids = list(series_ids)
        self._delete_all(
            self.session.exec(select(ThumbnailSeries).where(col(ThumbnailSeries.series_id).in_(ids)))
        )
        self._delete_all(
            self.session.exec(select(SeriesMetadata).where(col(SeriesMetadata.series_id).in_(ids)))
        )
        self._delete_all(
            self.session.exec(
                select(BookMetadataAggregation).where(col(BookMetadataAggregation.series_id).in_(ids))
            )
        )
        self._delete_all(self.session.exec(select(Series).where(col(Series.id).in_(ids))))

    def get_series_metadata(self, series_id: str) -> Optional[SeriesMetadata]:
        return self.session.get(SeriesMetadata, series_id)

    def save_series_metadata(self, metadata: SeriesMetadata) -> SeriesMetadata:
        return self._save(metadata)

    def get_aggregation(self, series_id: str) -> Optional[BookMetadataAggregation]:
        return self.session.get(BookMetadataAggregation, series_id)

    def save_aggregation(self, aggregation: BookMetadataAggregation) -> BookMetadataAggregation:
        return self._save(aggregation)

    # --- Books ---

    def get_book(self, book_id: str) -> Optional[Book]:
        return self.session.get(Book, book_id)

    def book_exists(self, book_id: str) -> bool:
        return self.session.get(Book, book_id) is not None

    def get_book_by_path(self, path: str) -> Optional[Book]:
        return self.session.exec(select(Book).where(Book.path == path)).first()

    def get_books(self, book_ids: Collection[str]) -> List[Book]:
        if not book_ids:
            return []
        return list(self.session.exec(select(Book).where(col(Book.id).in_(list(book_ids)))).all())

    def find_books_by_series(self, series_id: str, include_deleted: bool = False) -> List[Book]:
        statement = select(Book).where(Book.series_id == series_id)
        if not include_deleted:
            statement = statement.where(col(Book.deleted_date).is_(None))
        return list(self.session.exec(statement.order_by(Book.number, Book.name)).all())

    def find_books_by_library(self, library_id: str, include_deleted: bool = True) -> List[Book]:
        statement = select(Book).where(Book.library_id == library_id)
        if not include_deleted:
            statement = statement.where(col(Book.deleted_date).is_(None))
        return list(self.session.exec(statement).all())

    def find_deleted_books(self, library_id: str) -> List[Book]:
        statement = select(Book).where(
            Book.library_id == library_id, col(Book.deleted_date).is_not(None)
        )
        return list(self.session.exec(statement).all())

    def find_book_ids_by_media_status(
        self, library_id: str, statuses: Sequence[MediaStatus]
    ) -> List[str]:
        statement = (
            select(Book.id)
            .join(Media, Media.book_id == Book.id)
            .where(
                Book.library_id == library_id,
                col(Book.deleted_date).is_(None),
                col(Media.status).in_(list(statuses)),
            )
        )
        return list(self.session.exec(statement).all())

    def find_book_ids_by_media_type(
        self, library_id: str, media_types: Sequence[str]
    ) -> List[str]:
        statement = (
            select(Book.id)
            .join(Media, Media.book_id == Book.id)
            .where(
                Book.library_id == library_id,
                col(Book.deleted_date).is_(None),
                Media.status == MediaStatus.READY,
                col(Media.media_type).in_(list(media_types)),
            )
        )
        return list(self.session.exec(statement).all())

    def find_book_ids_without_hash(self, library_id: str) -> List[str]:
        statement = select(Book.id).where(
            Book.library_id == library_id,
            col(Book.deleted_date).is_(None),
            Book.file_hash == "",
        )
        return list(self.session.exec(statement).all())

    def find_book_ids_without_thumbnail(self, library_id: str) -> List[str]:
        with_thumbnail = select(ThumbnailBook.book_id)
        statement = select(Book.id).where(
            Book.library_id == library_id,
            col(Book.deleted_date).is_(None),
            col(Book.id).not_in(with_thumbnail),
        )
        return list(self.session.exec(statement).all())

    def count_books(self) -> int:
        return self.session.exec(select(func.count()).select_from(Book)).one()

    def save_book(self, book: Book) -> Book:
        return self._save(book)

    def save_books(self, books: Iterable[Book]) -> None:
        for book in books:
            self.session.add(book)
        self.session.flush()

    def delete_books(self, book_ids: Collection[str]) -> None:
        """Remove book rows. Satellites must be removed first."""
        self._delete_all(self.session.exec(select(Book).where(col(Book.id).in_(list(book_ids)))))

    # --- Media ---

    def get_media(self, book_id: str) -> Optional[Media]:
        return self.session.get(Media, book_id)

    def get_pages(self, book_id: str) -> List[MediaPage]:
        statement = select(MediaPage).where(MediaPage.book_id == book_id).order_by(MediaPage.number)
        return list(self.session.exec(statement).all())

    def get_pages_count(self, book_id: str) -> int:
        statement = select(func.count()).select_from(MediaPage).where(MediaPage.book_id == book_id)
        return self.session.exec(statement).one()

    def save_media(self, media: Media, pages: Optional[Sequence[MediaPage]] = None) -> Media:
        """Upsert media; when pages are given they replace the stored ones."""
        existing = self.session.get(Media, media.book_id)
        if existing is not None and existing is not media:
            for field in ("status", "media_type", "comment", "page_count", "last_modified_at"):
                setattr(existing, field, getattr(media, field))
            media = existing
        self._save(media)
        if pages is not None:
            self._delete_all(
                self.session.exec(select(MediaPage).where(MediaPage.book_id == media.book_id))
            )
            for page in pages:
                self.session.add(page)
            self.session.flush()
        return media

    def delete_media(self, book_ids: Collection[str]) -> None:
        ids = list(book_ids)
        self._delete_all(self.session.exec(select(MediaPage).where(col(MediaPage.book_id).in_(ids))))
        self._delete_all(self.session.exec(select(Media).where(col(Media.book_id).in_(ids))))

    # --- Book metadata ---

    def get_book_metadata(self, book_id: str) -> Optional[BookMetadata]:
        return self.session.get(BookMetadata, book_id)

    def find_book_metadata_by_series(self, series_id: str) -> List[BookMetadata]:
        statement = (
            select(BookMetadata)
            .join(Book, Book.id == BookMetadata.book_id)
            .where(Book.series_id == series_id, col(Book.deleted_date).is_(None))
            .order_by(BookMetadata.number_sort)
        )
        return list(self.session.exec(statement).all())

    def save_book_metadata(self, metadata: BookMetadata) -> BookMetadata:
        return self._save(metadata)

    def delete_book_metadata(self, book_ids: Collection[str]) -> None:
        self._delete_all(
            self.session.exec(select(BookMetadata).where(col(BookMetadata.book_id).in_(list(book_ids))))
        )

    # --- Book thumbnails ---

    def get_thumbnail(self, thumbnail_id: str) -> Optional[ThumbnailBook]:
        return self.session.get(ThumbnailBook, thumbnail_id)

    def find_thumbnails_by_book(self, book_id: str) -> List[ThumbnailBook]:
        statement = (
            select(ThumbnailBook)
            .where(ThumbnailBook.book_id == book_id)
            .order_by(ThumbnailBook.created_at, ThumbnailBook.id)
        )
        return list(self.session.exec(statement).all())

    def find_thumbnails_by_book_and_type(
        self, book_id: str, thumbnail_type: ThumbnailType
    ) -> List[ThumbnailBook]:
        return [t for t in self.find_thumbnails_by_book(book_id) if t.type == thumbnail_type]

    def find_selected_thumbnail(self, book_id: str) -> Optional[ThumbnailBook]:
        statement = (
            select(ThumbnailBook)
            .where(ThumbnailBook.book_id == book_id, ThumbnailBook.selected == True)  # noqa: E712
            .order_by(ThumbnailBook.created_at, ThumbnailBook.id)
        )
        return self.session.exec(statement).first()

    def insert_thumbnail(self, thumbnail: ThumbnailBook) -> ThumbnailBook:
        return self._save(thumbnail)

    def mark_thumbnail_selected(self, thumbnail: ThumbnailBook) -> None:
        """Select this thumbnail and deselect every other one of the book."""
        for other in self.find_thumbnails_by_book(thumbnail.book_id):
            other.selected = other.id == thumbnail.id
            self.session.add(other)
        self.session.flush()

    def delete_thumbnail(self, thumbnail_id: str) -> None:
        thumbnail = self.session.get(ThumbnailBook, thumbnail_id)
        if thumbnail is not None:
            self._delete_all([thumbnail])

    def delete_thumbnails_by_book_and_type(self, book_id: str, thumbnail_type: ThumbnailType) -> None:
        self._delete_all(self.find_thumbnails_by_book_and_type(book_id, thumbnail_type))

    def delete_thumbnails_by_books(self, book_ids: Collection[str]) -> None:
        self._delete_all(
            self.session.exec(select(ThumbnailBook).where(col(ThumbnailBook.book_id).in_(list(book_ids))))
        )

    # --- Series thumbnails ---

    def find_series_thumbnails(self, series_id: str) -> List[ThumbnailSeries]:
        statement = (
            select(ThumbnailSeries)
            .where(ThumbnailSeries.series_id == series_id)
            .order_by(ThumbnailSeries.created_at, ThumbnailSeries.id)
        )
        return list(self.session.exec(statement).all())

    def insert_series_thumbnail(self, thumbnail: ThumbnailSeries) -> ThumbnailSeries:
        return self._save(thumbnail)

    def delete_series_thumbnail(self, thumbnail: ThumbnailSeries) -> None:
        self._delete_all([thumbnail])

    def mark_series_thumbnail_selected(self, thumbnail: ThumbnailSeries) -> None:
        for other in self.find_series_thumbnails(thumbnail.series_id):
            other.selected = other.id == thumbnail.id
            self.session.add(other)
        self.session.flush()

    # --- Read progress ---

    def get_read_progress(self, book_id: str, user_id: str) -> Optional[ReadProgress]:
        return self.session.get(ReadProgress, (book_id, user_id))

    def find_read_progress_by_book(self, book_id: str) -> List[ReadProgress]:
        return list(self.session.exec(select(ReadProgress).where(ReadProgress.book_id == book_id)).all())

    def save_read_progress(self, progress: ReadProgress) -> ReadProgress:
        existing = self.get_read_progress(progress.book_id, progress.user_id)
        if existing is not None and existing is not progress:
            existing.page = progress.page
            existing.completed = progress.completed
            existing.read_date = progress.read_date
            progress = existing
        return self._save(progress)

    def delete_read_progress(self, book_id: str, user_id: str) -> None:
        progress = self.get_read_progress(book_id, user_id)
        if progress is not None:
            self._delete_all([progress])

    def delete_read_progress_by_books(self, book_ids: Collection[str]) -> None:
        self._delete_all(
            self.session.exec(select(ReadProgress).where(col(ReadProgress.book_id).in_(list(book_ids))))
        )

    # --- Read lists ---

    def get_read_list_by_name(self, name: str) -> Optional[ReadList]:
        return self.session.exec(select(ReadList).where(ReadList.name == name)).first()

    def save_read_list(self, read_list: ReadList) -> ReadList:
        return self._save(read_list)

    def find_read_list_book_ids(self, read_list_id: str) -> List[str]:
        statement = (
            select(ReadListBook.book_id)
            .where(ReadListBook.read_list_id == read_list_id)
            .order_by(ReadListBook.number)
        )
        return list(self.session.exec(statement).all())

    def find_read_lists_containing(self, book_id: str) -> List[ReadList]:
        statement = (
            select(ReadList)
            .join(ReadListBook, ReadListBook.read_list_id == ReadList.id)
            .where(ReadListBook.book_id == book_id)
        )
        return list(self.session.exec(statement).all())

    def add_book_to_read_list(self, read_list: ReadList, book_id: str, number: Optional[int] = None) -> None:
        if self.session.get(ReadListBook, (read_list.id, book_id)) is not None:
            return
        if number is None:
            number = len(self.find_read_list_book_ids(read_list.id)) + 1
        self._save(ReadListBook(read_list_id=read_list.id, book_id=book_id, number=number))

    def remove_books_from_all_read_lists(self, book_ids: Collection[str]) -> None:
        self._delete_all(
            self.session.exec(select(ReadListBook).where(col(ReadListBook.book_id).in_(list(book_ids))))
        )

    # --- Search index ---

    def delete_all_search_entries(self) -> int:
        return self._delete_all(self.session.exec(select(SearchEntry)))

    def insert_search_entries(self, entries: Iterable[SearchEntry]) -> None:
        for entry in entries:
            self.session.add(entry)
        self.session.flush()

    def search_entries(self, text: str, entity_type: Optional[str] = None) -> List[SearchEntry]:
        statement = select(SearchEntry).where(col(SearchEntry.text).ilike(f"%{text}%"))
        if entity_type is not None:
            statement = statement.where(SearchEntry.entity_type == entity_type)
        return list(self.session.exec(statement.order_by(SearchEntry.id)).all())
