"""Background task definitions.

Tasks are small immutable messages naming the entity to work on. They are
never persisted: the queue hands each one to a single worker slot and the
task handler turns it into a lifecycle call (see task_handler.py).

Priorities are plain integers, lower runs first. LOWEST_PRIORITY marks
best-effort background work (extension repair, CBZ conversion).
"""

from __future__ import annotations

import abc
import dataclasses
import enum
from typing import FrozenSet, Optional, Union

HIGHEST_PRIORITY = 0
HIGH_PRIORITY = 2
DEFAULT_PRIORITY = 4
LOWEST_PRIORITY = 9


class BookMetadataPatchCapability(str, enum.Enum):
    """Which book metadata fields a refresh is allowed to overwrite."""

    TITLE = "TITLE"
    SUMMARY = "SUMMARY"
    NUMBER = "NUMBER"
    NUMBER_SORT = "NUMBER_SORT"
    RELEASE_DATE = "RELEASE_DATE"
    AUTHORS = "AUTHORS"
    TAGS = "TAGS"
    ISBN = "ISBN"
    READ_LISTS = "READ_LISTS"


ALL_CAPABILITIES: FrozenSet[BookMetadataPatchCapability] = frozenset(BookMetadataPatchCapability)


class CopyMode(str, enum.Enum):
    MOVE = "MOVE"
    COPY = "COPY"
    HARDLINK = "HARDLINK"


class Task(abc.ABC):
    """Base class of every task message."""

    priority: int

    @property
    @abc.abstractmethod
    def unique_id(self) -> str:
        """Identity of the work; a pending task with the same id makes a new one redundant."""

    def __str__(self) -> str:
        fields = ", ".join(
            f"{f.name}={getattr(self, f.name)!r}" for f in dataclasses.fields(self)
        )
        return f"{type(self).__name__}({fields})"


@dataclasses.dataclass(frozen=True)
class ScanLibrary(Task):
    library_id: str
    priority: int = DEFAULT_PRIORITY

    @property
    def unique_id(self) -> str:
        return f"SCAN_LIBRARY_{self.library_id}"


@dataclasses.dataclass(frozen=True)
class EmptyTrash(Task):
    library_id: str
    priority: int = DEFAULT_PRIORITY

    @property
    def unique_id(self) -> str:
        return f"EMPTY_TRASH_{self.library_id}"


@dataclasses.dataclass(frozen=True)
class AnalyzeBook(Task):
    book_id: str
    priority: int = DEFAULT_PRIORITY

    @property
    def unique_id(self) -> str:
        return f"ANALYZE_BOOK_{self.book_id}"


@dataclasses.dataclass(frozen=True)
class GenerateBookThumbnail(Task):
    book_id: str
    priority: int = DEFAULT_PRIORITY

    @property
    def unique_id(self) -> str:
        return f"GENERATE_BOOK_THUMBNAIL_{self.book_id}"


@dataclasses.dataclass(frozen=True)
class RefreshBookMetadata(Task):
    book_id: str
    capabilities: FrozenSet[BookMetadataPatchCapability] = ALL_CAPABILITIES
    priority: int = DEFAULT_PRIORITY

    @property
    def unique_id(self) -> str:
        return f"REFRESH_BOOK_METADATA_{self.book_id}"


@dataclasses.dataclass(frozen=True)
class RefreshSeriesMetadata(Task):
    series_id: str
    priority: int = DEFAULT_PRIORITY

    @property
    def unique_id(self) -> str:
        return f"REFRESH_SERIES_METADATA_{self.series_id}"


@dataclasses.dataclass(frozen=True)
class AggregateSeriesMetadata(Task):
    series_id: str
    priority: int = DEFAULT_PRIORITY

    @property
    def unique_id(self) -> str:
        return f"AGGREGATE_SERIES_METADATA_{self.series_id}"


@dataclasses.dataclass(frozen=True)
class RefreshBookLocalArtwork(Task):
    book_id: str
    priority: int = DEFAULT_PRIORITY

    @property
    def unique_id(self) -> str:
        return f"REFRESH_BOOK_LOCAL_ARTWORK_{self.book_id}"


@dataclasses.dataclass(frozen=True)
class RefreshSeriesLocalArtwork(Task):
    series_id: str
    priority: int = DEFAULT_PRIORITY

    @property
    def unique_id(self) -> str:
        return f"REFRESH_SERIES_LOCAL_ARTWORK_{self.series_id}"


@dataclasses.dataclass(frozen=True)
class ImportBook(Task):
    series_id: str
    source_file: str
    copy_mode: CopyMode = CopyMode.COPY
    destination_name: Optional[str] = None
    upgrade_book_id: Optional[str] = None
    priority: int = DEFAULT_PRIORITY

    @property
    def unique_id(self) -> str:
        return f"IMPORT_BOOK_{self.series_id}_{self.source_file}"


@dataclasses.dataclass(frozen=True)
class ConvertBook(Task):
    book_id: str
    priority: int = DEFAULT_PRIORITY

    @property
    def unique_id(self) -> str:
        return f"CONVERT_BOOK_{self.book_id}"


@dataclasses.dataclass(frozen=True)
class RepairExtension(Task):
    book_id: str
    priority: int = DEFAULT_PRIORITY

    @property
    def unique_id(self) -> str:
        return f"REPAIR_EXTENSION_{self.book_id}"


@dataclasses.dataclass(frozen=True)
class HashBook(Task):
    book_id: str
    priority: int = DEFAULT_PRIORITY

    @property
    def unique_id(self) -> str:
        return f"HASH_BOOK_{self.book_id}"


@dataclasses.dataclass(frozen=True)
class RebuildIndex(Task):
    priority: int = DEFAULT_PRIORITY

    @property
    def unique_id(self) -> str:
        return "REBUILD_INDEX"


TASK_TYPES = (
    ScanLibrary,
    EmptyTrash,
    AnalyzeBook,
    GenerateBookThumbnail,
    RefreshBookMetadata,
    RefreshSeriesMetadata,
    AggregateSeriesMetadata,
    RefreshBookLocalArtwork,
    RefreshSeriesLocalArtwork,
    ImportBook,
    ConvertBook,
    RepairExtension,
    HashBook,
    RebuildIndex,
)

AnyTask = Union[
    ScanLibrary,
    EmptyTrash,
    AnalyzeBook,
    GenerateBookThumbnail,
    RefreshBookMetadata,
    RefreshSeriesMetadata,
    AggregateSeriesMetadata,
    RefreshBookLocalArtwork,
    RefreshSeriesLocalArtwork,
    ImportBook,
    ConvertBook,
    RepairExtension,
    HashBook,
    RebuildIndex,
]
