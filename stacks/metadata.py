"""Book and series metadata refresh.

Book metadata comes from the ComicInfo.xml embedded in the archive and is
patched field by field, only for the capabilities the caller allows.
Series metadata is derived from the folder name and the series' books.
"""

from __future__ import annotations

from collections import Counter
from typing import Collection, List, Optional

from sqlalchemy.engine import Engine

from .comicinfo import ComicInfoPatch, read_comicinfo_from_archive
from .database import session_scope
from .events import BookUpdated, EventPublisher, SeriesUpdated
from .logging_config import get_logger
from .models import Book, BookMetadata, BookMetadataAggregation, ReadList, Series, SeriesMetadata
from .repository import Repository
from .tasks import BookMetadataPatchCapability as Capability
from .utils import as_utc

logger = get_logger(__name__)


def _join(values: Optional[List[str]]) -> str:
    return ",".join(values or [])


def _split(value: str) -> List[str]:
    return [v for v in value.split(",") if v]


def _number_sort(number: Optional[str]) -> Optional[float]:
    if number is None:
        return None
    try:
        return float(number.strip())
    except ValueError:
        return None


def _apply_patch(
    metadata: BookMetadata, patch: ComicInfoPatch, capabilities: Collection[Capability]
) -> None:
    if Capability.TITLE in capabilities and patch.title:
        metadata.title = patch.title
    if Capability.SUMMARY in capabilities and patch.summary:
        metadata.summary = patch.summary
    if Capability.NUMBER in capabilities and patch.number:
        metadata.number = patch.number
    if Capability.NUMBER_SORT in capabilities:
        number_sort = _number_sort(patch.number)
        if number_sort is not None:
            metadata.number_sort = number_sort
    if Capability.RELEASE_DATE in capabilities and patch.release_date:
        metadata.release_date = patch.release_date
    if Capability.AUTHORS in capabilities and patch.authors:
        metadata.authors = _join(patch.authors)
    if Capability.TAGS in capabilities and patch.tags:
        metadata.tags = _join(patch.tags)
    if Capability.ISBN in capabilities and patch.isbn:
        metadata.isbn = patch.isbn
    if patch.publisher:
        metadata.publisher = patch.publisher


class BookMetadataLifecycle:
    def __init__(self, engine: Engine, events: EventPublisher):
        self.engine = engine
        self.events = events

    def refresh_metadata(self, book: Book, capabilities: Collection[Capability]) -> None:
        logger.info(f"Refresh metadata for book: {book.name}")
        patch = read_comicinfo_from_archive(book.file_path)
        if patch is None:
            logger.debug(f"No ComicInfo.xml in {book.name}, nothing to refresh")
            return

        with session_scope(self.engine) as session:
            repo = Repository(session)
            metadata = repo.get_book_metadata(book.id) or BookMetadata(book_id=book.id, title=book.name)
            _apply_patch(metadata, patch, capabilities)
            repo.save_book_metadata(metadata)

            if Capability.READ_LISTS in capabilities:
                for name in patch.story_arcs or []:
                    read_list = repo.get_read_list_by_name(name)
                    if read_list is None:
                        logger.info(f"Creating read list: {name}")
                        read_list = repo.save_read_list(ReadList(name=name))
                    repo.add_book_to_read_list(read_list, book.id)
            repo.commit()

        self.events.publish_event(BookUpdated(book))


class SeriesMetadataLifecycle:
    def __init__(self, engine: Engine, events: EventPublisher):
        self.engine = engine
        self.events = events

    def refresh_metadata(self, series: Series) -> None:
        logger.info(f"Refresh metadata for series: {series.name}")
        with session_scope(self.engine) as session:
            repo = Repository(session)
            metadata = repo.get_series_metadata(series.id) or SeriesMetadata(
                series_id=series.id, title=series.name, title_sort=series.name
            )
            metadata.title = series.name
            metadata.title_sort = series.name

            publishers = Counter(
                m.publisher for m in repo.find_book_metadata_by_series(series.id) if m.publisher
            )
            if publishers:
                metadata.publisher = publishers.most_common(1)[0][0]

            repo.save_series_metadata(metadata)
            repo.commit()

        self.events.publish_event(SeriesUpdated(series))

    def aggregate_metadata(self, series: Series) -> None:
        """Roll the metadata of the series' books up to series level."""
        logger.info(f"Aggregate book metadata for series: {series.name}")
        with session_scope(self.engine) as session:
            repo = Repository(session)
            books_metadata = repo.find_book_metadata_by_series(series.id)

            authors: List[str] = []
            tags: List[str] = []
            for metadata in books_metadata:
                authors.extend(a for a in _split(metadata.authors) if a not in authors)
                tags.extend(t for t in _split(metadata.tags) if t not in tags)

            release_dates = [m.release_date for m in books_metadata if m.release_date is not None]
            first_with_summary = next((m for m in books_metadata if m.summary), None)

            aggregation = repo.get_aggregation(series.id) or BookMetadataAggregation(series_id=series.id)
            aggregation.authors = ",".join(authors)
            aggregation.tags = ",".join(tags)
            aggregation.release_date = min(release_dates, key=as_utc) if release_dates else None
            aggregation.summary = first_with_summary.summary if first_with_summary else None
            aggregation.summary_number = first_with_summary.number if first_with_summary else None
            repo.save_aggregation(aggregation)
            repo.commit()

        self.events.publish_event(SeriesUpdated(series))
