"""Wiring of the Stacks services around one engine and one task queue."""

from __future__ import annotations

import dataclasses
from typing import Optional

from sqlalchemy.engine import Engine

from .analyzer import BookAnalyzer
from .artwork import LocalArtworkLifecycle
from .book_lifecycle import BookLifecycle
from .config import StacksConfig
from .converter import BookConverter
from .database import get_engine
from .events import EventPublisher
from .hasher import Hasher
from .images import ImageConverter
from .importer import BookImporter
from .library_lifecycle import LibraryContentLifecycle
from .metadata import BookMetadataLifecycle, SeriesMetadataLifecycle
from .search import SearchIndexLifecycle
from .task_emitter import TaskEmitter
from .task_handler import TaskHandler
from .task_queue import TaskQueue
from .workers import TaskWorkerPool


@dataclasses.dataclass
class Services:
    config: StacksConfig
    engine: Engine
    events: EventPublisher
    task_queue: TaskQueue
    emitter: TaskEmitter
    book_lifecycle: BookLifecycle
    library_lifecycle: LibraryContentLifecycle
    book_metadata_lifecycle: BookMetadataLifecycle
    series_metadata_lifecycle: SeriesMetadataLifecycle
    local_artwork_lifecycle: LocalArtworkLifecycle
    book_importer: BookImporter
    book_converter: BookConverter
    search_index_lifecycle: SearchIndexLifecycle
    task_handler: TaskHandler

    def worker_pool(self, workers: Optional[int] = None) -> TaskWorkerPool:
        return TaskWorkerPool(self.task_queue, self.task_handler, workers or self.config.tasks.workers)


def build_services(
    config: StacksConfig,
    engine: Optional[Engine] = None,
    events: Optional[EventPublisher] = None,
) -> Services:
    engine = engine or get_engine()
    events = events or EventPublisher()
    task_queue = TaskQueue()
    emitter = TaskEmitter(task_queue, engine)

    image_converter = ImageConverter(jpeg_quality=config.thumbnails.quality)
    analyzer = BookAnalyzer(image_converter, config.thumbnails)
    book_lifecycle = BookLifecycle(
        engine, analyzer, image_converter, Hasher(), events, file_hashing=config.tasks.file_hashing
    )
    library_lifecycle = LibraryContentLifecycle(engine, book_lifecycle, events, config.scanner)
    book_metadata_lifecycle = BookMetadataLifecycle(engine, events)
    series_metadata_lifecycle = SeriesMetadataLifecycle(engine, events)
    local_artwork_lifecycle = LocalArtworkLifecycle(engine, book_lifecycle)
    book_importer = BookImporter(engine, book_lifecycle, events)
    book_converter = BookConverter(engine, events)
    search_index_lifecycle = SearchIndexLifecycle(engine)

    task_handler = TaskHandler(
        engine,
        emitter,
        library_lifecycle,
        book_lifecycle,
        book_metadata_lifecycle,
        series_metadata_lifecycle,
        local_artwork_lifecycle,
        book_importer,
        book_converter,
        search_index_lifecycle,
    )

    return Services(
        config=config,
        engine=engine,
        events=events,
        task_queue=task_queue,
        emitter=emitter,
        book_lifecycle=book_lifecycle,
        library_lifecycle=library_lifecycle,
        book_metadata_lifecycle=book_metadata_lifecycle,
        series_metadata_lifecycle=series_metadata_lifecycle,
        local_artwork_lifecycle=local_artwork_lifecycle,
        book_importer=book_importer,
        book_converter=book_converter,
        search_index_lifecycle=search_index_lifecycle,
        task_handler=task_handler,
    )
