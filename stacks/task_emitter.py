"""Producer side of the task pipeline.

Every method builds task messages and puts them on the queue; nothing
waits for them to run.
"""

from __future__ import annotations

from typing import Collection, Iterable, Optional

from sqlalchemy.engine import Engine

from .converter import CONVERTIBLE_MEDIA_TYPES
from .database import session_scope
from .logging_config import get_logger
from .models import Library, MediaStatus
from .repository import Repository
from .task_queue import TaskQueue
from .tasks import (
    ALL_CAPABILITIES,
    DEFAULT_PRIORITY,
    HIGH_PRIORITY,
    LOWEST_PRIORITY,
    AggregateSeriesMetadata,
    AnalyzeBook,
    BookMetadataPatchCapability,
    ConvertBook,
    CopyMode,
    EmptyTrash,
    GenerateBookThumbnail,
    HashBook,
    ImportBook,
    RebuildIndex,
    RefreshBookLocalArtwork,
    RefreshBookMetadata,
    RefreshSeriesLocalArtwork,
    RefreshSeriesMetadata,
    RepairExtension,
    ScanLibrary,
    Task,
)

logger = get_logger(__name__)


class TaskEmitter:
    def __init__(self, task_queue: TaskQueue, engine: Engine):
        self.queue = task_queue
        self.engine = engine

    def submit(self, task: Task) -> bool:
        return self.queue.put(task)

    def _submit_all(self, tasks: Iterable[Task]) -> int:
        return sum(1 for task in tasks if self.queue.put(task))

    # --- Library level ---

    def scan_library(self, library_id: str, priority: int = HIGH_PRIORITY) -> None:
        self.submit(ScanLibrary(library_id, priority=priority))

    def scan_libraries(self, priority: int = DEFAULT_PRIORITY) -> None:
        with session_scope(self.engine) as session:
            libraries = Repository(session).get_all_libraries()
        for library in libraries:
            self.scan_library(library.id, priority)

    def empty_trash(self, library_id: str, priority: int = DEFAULT_PRIORITY) -> None:
        self.submit(EmptyTrash(library_id, priority=priority))

    def analyze_unknown_and_outdated_books(self, library: Library, priority: int = DEFAULT_PRIORITY) -> int:
        with session_scope(self.engine) as session:
            book_ids = Repository(session).find_book_ids_by_media_status(
                library.id, [MediaStatus.UNKNOWN, MediaStatus.OUTDATED]
            )
        count = self._submit_all(AnalyzeBook(book_id, priority=priority) for book_id in book_ids)
        logger.debug(f"Queued {count} books for analysis in {library.name}")
        return count

    def hash_books_without_hash(self, library: Library, priority: int = DEFAULT_PRIORITY) -> int:
        with session_scope(self.engine) as session:
            book_ids = Repository(session).find_book_ids_without_hash(library.id)
        return self._submit_all(HashBook(book_id, priority=priority) for book_id in book_ids)

    def repair_extensions(self, library: Library, priority: int = LOWEST_PRIORITY) -> int:
        with session_scope(self.engine) as session:
            book_ids = Repository(session).find_book_ids_by_media_status(library.id, [MediaStatus.READY])
        return self._submit_all(RepairExtension(book_id, priority=priority) for book_id in book_ids)

    def convert_books_to_cbz(self, library: Library, priority: int = LOWEST_PRIORITY) -> int:
        with session_scope(self.engine) as session:
            book_ids = Repository(session).find_book_ids_by_media_type(library.id, CONVERTIBLE_MEDIA_TYPES)
        return self._submit_all(ConvertBook(book_id, priority=priority) for book_id in book_ids)

    def generate_missing_thumbnails(self, library: Library, priority: int = DEFAULT_PRIORITY) -> int:
        with session_scope(self.engine) as session:
            book_ids = Repository(session).find_book_ids_without_thumbnail(library.id)
        return self._submit_all(GenerateBookThumbnail(book_id, priority=priority) for book_id in book_ids)

    def refresh_library_local_artwork(self, library: Library, priority: int = DEFAULT_PRIORITY) -> int:
        with session_scope(self.engine) as session:
            repo = Repository(session)
            book_ids = [b.id for b in repo.find_books_by_library(library.id, include_deleted=False)]
            series_ids = [s.id for s in repo.find_series_by_library(library.id, include_deleted=False)]
        count = self._submit_all(RefreshSeriesLocalArtwork(sid, priority=priority) for sid in series_ids)
        count += self._submit_all(RefreshBookLocalArtwork(bid, priority=priority) for bid in book_ids)
        return count

    # --- Book level ---

    def analyze_book(self, book_id: str, priority: int = DEFAULT_PRIORITY) -> None:
        self.submit(AnalyzeBook(book_id, priority=priority))

    def generate_book_thumbnail(self, book_id: str, priority: int = DEFAULT_PRIORITY) -> None:
        self.submit(GenerateBookThumbnail(book_id, priority=priority))

    def refresh_book_metadata(
        self,
        book_id: str,
        capabilities: Collection[BookMetadataPatchCapability] = ALL_CAPABILITIES,
        priority: int = DEFAULT_PRIORITY,
    ) -> None:
        self.submit(RefreshBookMetadata(book_id, frozenset(capabilities), priority=priority))

    def refresh_book_local_artwork(self, book_id: str, priority: int = DEFAULT_PRIORITY) -> None:
        self.submit(RefreshBookLocalArtwork(book_id, priority=priority))

    def hash_book(self, book_id: str, priority: int = DEFAULT_PRIORITY) -> None:
        self.submit(HashBook(book_id, priority=priority))

    def convert_book(self, book_id: str, priority: int = DEFAULT_PRIORITY) -> None:
        self.submit(ConvertBook(book_id, priority=priority))

    def repair_extension(self, book_id: str, priority: int = DEFAULT_PRIORITY) -> None:
        self.submit(RepairExtension(book_id, priority=priority))

    def import_book(
        self,
        source_file: str,
        series_id: str,
        copy_mode: CopyMode = CopyMode.COPY,
        destination_name: Optional[str] = None,
        upgrade_book_id: Optional[str] = None,
        priority: int = DEFAULT_PRIORITY,
    ) -> None:
        self.submit(
            ImportBook(
                series_id=series_id,
                source_file=source_file,
                copy_mode=copy_mode,
                destination_name=destination_name,
                upgrade_book_id=upgrade_book_id,
                priority=priority,
            )
        )

    # --- Series level ---

    def refresh_series_metadata(self, series_id: str, priority: int = DEFAULT_PRIORITY) -> None:
        self.submit(RefreshSeriesMetadata(series_id, priority=priority))

    def aggregate_series_metadata(self, series_id: str, priority: int = DEFAULT_PRIORITY) -> None:
        self.submit(AggregateSeriesMetadata(series_id, priority=priority))

    def refresh_series_local_artwork(self, series_id: str, priority: int = DEFAULT_PRIORITY) -> None:
        self.submit(RefreshSeriesLocalArtwork(series_id, priority=priority))

    # --- Global ---

    def rebuild_index(self, priority: int = DEFAULT_PRIORITY) -> None:
        self.submit(RebuildIndex(priority=priority))
