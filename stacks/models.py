"""SQLModel database models for Stacks."""

import enum
import uuid
from pathlib import Path
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, LargeBinary
from sqlmodel import Field, SQLModel


def _new_id() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


class MediaStatus(str, enum.Enum):
    UNKNOWN = "UNKNOWN"
    ERROR = "ERROR"
    OUTDATED = "OUTDATED"
    READY = "READY"
    UNSUPPORTED = "UNSUPPORTED"


class ThumbnailType(str, enum.Enum):
    GENERATED = "GENERATED"
    SIDECAR = "SIDECAR"
    USER_UPLOADED = "USER_UPLOADED"


class Library(SQLModel, table=True):
    __tablename__ = "libraries"
    id: str = Field(default_factory=_new_id, primary_key=True)
    name: str = Field(unique=True)
    root: str
    repair_extensions: bool = False
    convert_to_cbz: bool = False
    import_local_artwork: bool = True
    created_at: datetime = Field(default_factory=_now)

    @property
    def path(self):
        return Path(self.root)


class Series(SQLModel, table=True):
    __tablename__ = "series"
    id: str = Field(default_factory=_new_id, primary_key=True)
    library_id: str = Field(foreign_key="libraries.id", index=True)
    name: str
    path: str = Field(unique=True, index=True)
    file_last_modified: Optional[datetime] = None
    deleted_date: Optional[datetime] = None
    created_at: datetime = Field(default_factory=_now)


class SeriesMetadata(SQLModel, table=True):
    __tablename__ = "series_metadata"
    series_id: str = Field(foreign_key="series.id", primary_key=True)
    title: str
    title_sort: str
    publisher: Optional[str] = None
    summary: Optional[str] = None
    status: str = "ONGOING"


class BookMetadataAggregation(SQLModel, table=True):
    """Book metadata rolled up at series level (authors, tags, dates)."""

    __tablename__ = "book_metadata_aggregation"
    series_id: str = Field(foreign_key="series.id", primary_key=True)
    authors: str = ""  # comma separated
    tags: str = ""  # comma separated
    release_date: Optional[datetime] = None
    summary: Optional[str] = None
    summary_number: Optional[str] = None


class Book(SQLModel, table=True):
    __tablename__ = "books"
    id: str = Field(default_factory=_new_id, primary_key=True)
    library_id: str = Field(foreign_key="libraries.id", index=True)
    series_id: str = Field(foreign_key="series.id", index=True)
    name: str
    path: str = Field(unique=True, index=True)
    number: int = 0
    file_size: int = 0
    file_last_modified: datetime
    file_hash: str = ""
    deleted_date: Optional[datetime] = None
    created_at: datetime = Field(default_factory=_now)

    @property
    def file_path(self):
        return Path(self.path)


class Media(SQLModel, table=True):
    __tablename__ = "media"
    book_id: str = Field(foreign_key="books.id", primary_key=True)
    status: MediaStatus = MediaStatus.UNKNOWN
    media_type: Optional[str] = None
    comment: Optional[str] = None
    page_count: int = 0
    last_modified_at: datetime = Field(default_factory=_now)


class MediaPage(SQLModel, table=True):
    __tablename__ = "media_pages"
    book_id: str = Field(foreign_key="media.book_id", primary_key=True)
    number: int = Field(primary_key=True)  # 1-based
    file_name: str
    media_type: str
    width: Optional[int] = None
    height: Optional[int] = None


class BookMetadata(SQLModel, table=True):
    __tablename__ = "book_metadata"
    book_id: str = Field(foreign_key="books.id", primary_key=True)
    title: str
    number: str = ""
    number_sort: float = 0
    summary: str = ""
    release_date: Optional[datetime] = None
    authors: str = ""  # comma separated
    tags: str = ""  # comma separated
    isbn: str = ""
    publisher: Optional[str] = None


class ThumbnailBook(SQLModel, table=True):
    __tablename__ = "thumbnail_books"
    id: str = Field(default_factory=_new_id, primary_key=True)
    book_id: str = Field(foreign_key="books.id", index=True)
    type: ThumbnailType
    selected: bool = False
    thumbnail: Optional[bytes] = Field(default=None, sa_column=Column(LargeBinary, nullable=True))
    url: Optional[str] = None
    created_at: datetime = Field(default_factory=_now)

    def exists(self) -> bool:
        """True when the thumbnail bytes are still reachable."""
        if self.thumbnail is not None:
            return True
        if self.url is not None:
            return Path(self.url).is_file()
        return False


class ThumbnailSeries(SQLModel, table=True):
    __tablename__ = "thumbnail_series"
    id: str = Field(default_factory=_new_id, primary_key=True)
    series_id: str = Field(foreign_key="series.id", index=True)
    url: str
    selected: bool = False
    created_at: datetime = Field(default_factory=_now)


class ReadProgress(SQLModel, table=True):
    __tablename__ = "read_progress"
    book_id: str = Field(foreign_key="books.id", primary_key=True)
    user_id: str = Field(primary_key=True)
    page: int
    completed: bool = False
    read_date: datetime = Field(default_factory=_now)


class ReadList(SQLModel, table=True):
    __tablename__ = "read_lists"
    id: str = Field(default_factory=_new_id, primary_key=True)
    name: str = Field(unique=True)
    created_at: datetime = Field(default_factory=_now)


class ReadListBook(SQLModel, table=True):
    # No foreign key on book_id: read lists only reference books.
    __tablename__ = "read_list_books"
    read_list_id: str = Field(foreign_key="read_lists.id", primary_key=True)
    book_id: str = Field(primary_key=True)
    number: int = 0


class SearchEntry(SQLModel, table=True):
    __tablename__ = "search_entries"
    id: Optional[int] = Field(default=None, primary_key=True)
    entity_type: str = Field(index=True)  # "book" or "series"
    entity_id: str = Field(index=True)
    text: str
