"""Task dispatcher: runs one task and queues its follow-ups.

handle_task never raises. A referenced entity that no longer exists is a
warning and the task counts as done (deletions race with queued work);
any exception from the lifecycle call is logged with its traceback and
reported as a FAILED result. Nothing is retried here.
"""

from __future__ import annotations

import dataclasses
import enum
import time
from pathlib import Path
from typing import Callable, Dict, Optional, Type

from sqlalchemy.engine import Engine

from .artwork import LocalArtworkLifecycle
from .book_lifecycle import BookLifecycle
from .converter import BookConverter
from .database import session_scope
from .importer import BookImporter
from .library_lifecycle import LibraryContentLifecycle
from .logging_config import get_logger
from .metadata import BookMetadataLifecycle, SeriesMetadataLifecycle
from .models import Book, Library, Series
from .repository import Repository
from .search import SearchIndexLifecycle
from .task_emitter import TaskEmitter
from .tasks import (
    LOWEST_PRIORITY,
    TASK_TYPES,
    AggregateSeriesMetadata,
    AnalyzeBook,
    ConvertBook,
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
from .utils import format_duration

logger = get_logger(__name__)


class TaskStatus(str, enum.Enum):
    COMPLETED = "COMPLETED"
    SKIPPED = "SKIPPED"  # referenced entity is gone
    FAILED = "FAILED"


@dataclasses.dataclass(frozen=True)
class TaskResult:
    task: Task
    status: TaskStatus
    duration: float
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.status != TaskStatus.FAILED


class TaskHandler:
    def __init__(
        self,
        engine: Engine,
        emitter: TaskEmitter,
        library_lifecycle: LibraryContentLifecycle,
        book_lifecycle: BookLifecycle,
        book_metadata_lifecycle: BookMetadataLifecycle,
        series_metadata_lifecycle: SeriesMetadataLifecycle,
        local_artwork_lifecycle: LocalArtworkLifecycle,
        book_importer: BookImporter,
        book_converter: BookConverter,
        search_index_lifecycle: SearchIndexLifecycle,
    ):
        self.engine = engine
        self.emitter = emitter
        self.library_lifecycle = library_lifecycle
        self.book_lifecycle = book_lifecycle
        self.book_metadata_lifecycle = book_metadata_lifecycle
        self.series_metadata_lifecycle = series_metadata_lifecycle
        self.local_artwork_lifecycle = local_artwork_lifecycle
        self.book_importer = book_importer
        self.book_converter = book_converter
        self.search_index_lifecycle = search_index_lifecycle

        self._handlers: Dict[Type[Task], Callable[..., bool]] = {
            ScanLibrary: self._scan_library,
            EmptyTrash: self._empty_trash,
            AnalyzeBook: self._analyze_book,
            GenerateBookThumbnail: self._generate_book_thumbnail,
            RefreshBookMetadata: self._refresh_book_metadata,
            RefreshSeriesMetadata: self._refresh_series_metadata,
            AggregateSeriesMetadata: self._aggregate_series_metadata,
            RefreshBookLocalArtwork: self._refresh_book_local_artwork,
            RefreshSeriesLocalArtwork: self._refresh_series_local_artwork,
            ImportBook: self._import_book,
            ConvertBook: self._convert_book,
            RepairExtension: self._repair_extension,
            HashBook: self._hash_book,
            RebuildIndex: self._rebuild_index,
        }
        missing = [t.__name__ for t in TASK_TYPES if t not in self._handlers]
        if missing:
            raise TypeError(f"No handler registered for task types: {', '.join(missing)}")

    def handle_task(self, task: Task) -> TaskResult:
        logger.info(f"Executing task: {task}")
        start = time.perf_counter()
        try:
            handler = self._handlers[type(task)]
            found = handler(task)
        except Exception as exc:
            duration = time.perf_counter() - start
            logger.exception(f"Task {task} execution failed after {format_duration(duration)}")
            return TaskResult(task, TaskStatus.FAILED, duration, exc)

        duration = time.perf_counter() - start
        if not found:
            return TaskResult(task, TaskStatus.SKIPPED, duration)
        logger.info(f"Task {task} executed in {format_duration(duration)}")
        return TaskResult(task, TaskStatus.COMPLETED, duration)

    # --- Entity lookup ---

    def _find_library(self, task: Task, library_id: str) -> Optional[Library]:
        with session_scope(self.engine) as session:
            library = Repository(session).get_library(library_id)
        if library is None:
            logger.warning(f"Cannot execute task {task}: Library does not exist")
        return library

    def _find_series(self, task: Task, series_id: str) -> Optional[Series]:
        with session_scope(self.engine) as session:
            series = Repository(session).get_series(series_id)
        if series is None:
            logger.warning(f"Cannot execute task {task}: Series does not exist")
        return series

    def _find_book(self, task: Task, book_id: str) -> Optional[Book]:
        with session_scope(self.engine) as session:
            book = Repository(session).get_book(book_id)
        if book is None:
            logger.warning(f"Cannot execute task {task}: Book does not exist")
        return book

    # --- Handlers (True when the entity was found) ---

    def _scan_library(self, task: ScanLibrary) -> bool:
        library = self._find_library(task, task.library_id)
        if library is None:
            return False

        result = self.library_lifecycle.scan_root_folder(library)
        self.emitter.analyze_unknown_and_outdated_books(library)
        if self.book_lifecycle.file_hashing:
            self.emitter.hash_books_without_hash(library)
        if library.repair_extensions:
            self.emitter.repair_extensions(library, LOWEST_PRIORITY)
        if library.convert_to_cbz:
            self.emitter.convert_books_to_cbz(library, LOWEST_PRIORITY)
        if library.import_local_artwork:
            for series_id in result.added_series_ids:
                self.emitter.refresh_series_local_artwork(series_id)
            for book_id in result.added_book_ids:
                self.emitter.refresh_book_local_artwork(book_id)
        if result.changed:
            self.emitter.rebuild_index(LOWEST_PRIORITY)
        return True

    def _empty_trash(self, task: EmptyTrash) -> bool:
        library = self._find_library(task, task.library_id)
        if library is None:
            return False
        self.library_lifecycle.empty_trash(library)
        return True

    def _analyze_book(self, task: AnalyzeBook) -> bool:
        book = self._find_book(task, task.book_id)
        if book is None:
            return False
        if self.book_lifecycle.analyze_and_persist(book):
            self.emitter.generate_book_thumbnail(book.id, priority=task.priority + 1)
            self.emitter.refresh_book_metadata(book.id, priority=task.priority + 1)
        return True

    def _generate_book_thumbnail(self, task: GenerateBookThumbnail) -> bool:
        book = self._find_book(task, task.book_id)
        if book is None:
            return False
        self.book_lifecycle.generate_thumbnail_and_persist(book)
        return True

    def _refresh_book_metadata(self, task: RefreshBookMetadata) -> bool:
        book = self._find_book(task, task.book_id)
        if book is None:
            return False
        self.book_metadata_lifecycle.refresh_metadata(book, task.capabilities)
        self.emitter.refresh_series_metadata(book.series_id, priority=task.priority - 1)
        return True

    def _refresh_series_metadata(self, task: RefreshSeriesMetadata) -> bool:
        series = self._find_series(task, task.series_id)
        if series is None:
            return False
        self.series_metadata_lifecycle.refresh_metadata(series)
        self.emitter.aggregate_series_metadata(series.id, priority=task.priority)
        return True

    def _aggregate_series_metadata(self, task: AggregateSeriesMetadata) -> bool:
        series = self._find_series(task, task.series_id)
        if series is None:
            return False
        self.series_metadata_lifecycle.aggregate_metadata(series)
        return True

    def _refresh_book_local_artwork(self, task: RefreshBookLocalArtwork) -> bool:
        book = self._find_book(task, task.book_id)
        if book is None:
            return False
        self.local_artwork_lifecycle.refresh_book_local_artwork(book)
        return True

    def _refresh_series_local_artwork(self, task: RefreshSeriesLocalArtwork) -> bool:
        series = self._find_series(task, task.series_id)
        if series is None:
            return False
        self.local_artwork_lifecycle.refresh_series_local_artwork(series)
        return True

    def _import_book(self, task: ImportBook) -> bool:
        series = self._find_series(task, task.series_id)
        if series is None:
            return False
        imported = self.book_importer.import_book(
            Path(task.source_file),
            series,
            task.copy_mode,
            task.destination_name,
            task.upgrade_book_id,
        )
        self.emitter.analyze_book(imported.id, priority=task.priority + 1)
        return True

    def _convert_book(self, task: ConvertBook) -> bool:
        book = self._find_book(task, task.book_id)
        if book is None:
            return False
        self.book_converter.convert_to_cbz(book)
        return True

    def _repair_extension(self, task: RepairExtension) -> bool:
        book = self._find_book(task, task.book_id)
        if book is None:
            return False
        self.book_converter.repair_extension(book)
        return True

    def _hash_book(self, task: HashBook) -> bool:
        book = self._find_book(task, task.book_id)
        if book is None:
            return False
        self.book_lifecycle.hash_and_persist(book)
        return True

    def _rebuild_index(self, task: RebuildIndex) -> bool:  # noqa: ARG002
        self.search_index_lifecycle.rebuild_index()
        return True
