"""Domain events and the publisher that fans them out.

The publisher is passed to the lifecycle services explicitly. Delivery is
fire-and-forget: a failing listener is logged and the remaining listeners
still run.
"""

from __future__ import annotations

import dataclasses
import threading
from typing import Callable, List, Union

from .logging_config import get_logger
from .models import Book, ReadProgress, Series, ThumbnailBook

logger = get_logger(__name__)


@dataclasses.dataclass(frozen=True)
class BookUpdated:
    book: Book


@dataclasses.dataclass(frozen=True)
class BookDeleted:
    book: Book


@dataclasses.dataclass(frozen=True)
class SeriesUpdated:
    series: Series


@dataclasses.dataclass(frozen=True)
class ThumbnailBookAdded:
    thumbnail: ThumbnailBook


@dataclasses.dataclass(frozen=True)
class ThumbnailBookDeleted:
    thumbnail: ThumbnailBook


@dataclasses.dataclass(frozen=True)
class ReadProgressChanged:
    progress: ReadProgress


@dataclasses.dataclass(frozen=True)
class ReadProgressDeleted:
    progress: ReadProgress


DomainEvent = Union[
    BookUpdated,
    BookDeleted,
    SeriesUpdated,
    ThumbnailBookAdded,
    ThumbnailBookDeleted,
    ReadProgressChanged,
    ReadProgressDeleted,
]

Listener = Callable[[DomainEvent], None]


class EventPublisher:
    """Synchronous in-process notification sink."""

    def __init__(self) -> None:
        self._listeners: List[Listener] = []
        self._lock = threading.Lock()

    def subscribe(self, listener: Listener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def publish_event(self, event: DomainEvent) -> None:
        logger.debug(f"Publish {type(event).__name__}")
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(event)
            except Exception:
                logger.exception(f"Event listener failed on {type(event).__name__}")
