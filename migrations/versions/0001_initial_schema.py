"""Initial schema: libraries, series, books, media, thumbnails, read progress

Revision ID: 0001
Revises: None
Create Date: 2026-10-18 00:00:00
"""
from __future__ import annotations

import sqlalchemy as sa
from alembic import op

# revision identifiers
revision: str = "0001"
down_revision: str | None = None
branch_labels: str | None = None
depends_on: str | None = None

MEDIA_STATUS = sa.Enum("UNKNOWN", "ERROR", "OUTDATED", "READY", "UNSUPPORTED", name="mediastatus")
THUMBNAIL_TYPE = sa.Enum("GENERATED", "SIDECAR", "USER_UPLOADED", name="thumbnailtype")


def _table_exists(name: str) -> bool:
    """Check whether a table already exists in the database."""
    conn = op.get_bind()
    result = conn.execute(
        sa.text("SELECT 1 FROM sqlite_master WHERE type='table' AND name=:n"),
        {"n": name},
    )
    return result.fetchone() is not None


def upgrade() -> None:
    # Every CREATE is guarded by _table_exists so that the migration is
    # safe to run against a DB created by SQLModel.metadata.create_all().

    if not _table_exists("libraries"):
        op.create_table(
            "libraries",
            sa.Column("id", sa.String(), primary_key=True),
            sa.Column("name", sa.String(), unique=True, nullable=False),
            sa.Column("root", sa.String(), nullable=False),
            sa.Column("repair_extensions", sa.Boolean(), nullable=False, server_default="0"),
            sa.Column("convert_to_cbz", sa.Boolean(), nullable=False, server_default="0"),
            sa.Column("import_local_artwork", sa.Boolean(), nullable=False, server_default="1"),
            sa.Column("created_at", sa.DateTime(), nullable=False),
        )

    if not _table_exists("series"):
        op.create_table(
            "series",
            sa.Column("id", sa.String(), primary_key=True),
            sa.Column("library_id", sa.String(), sa.ForeignKey("libraries.id"), nullable=False),
            sa.Column("name", sa.String(), nullable=False),
            sa.Column("path", sa.String(), nullable=False),
            sa.Column("file_last_modified", sa.DateTime(), nullable=True),
            sa.Column("deleted_date", sa.DateTime(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
        )
        op.create_index("ix_series_library_id", "series", ["library_id"])
        op.create_index("ix_series_path", "series", ["path"], unique=True)

    if not _table_exists("series_metadata"):
        op.create_table(
            "series_metadata",
            sa.Column("series_id", sa.String(), sa.ForeignKey("series.id"), primary_key=True),
            sa.Column("title", sa.String(), nullable=False),
            sa.Column("title_sort", sa.String(), nullable=False),
            sa.Column("publisher", sa.String(), nullable=True),
            sa.Column("summary", sa.String(), nullable=True),
            sa.Column("status", sa.String(), nullable=False, server_default="ONGOING"),
        )

    if not _table_exists("book_metadata_aggregation"):
        op.create_table(
            "book_metadata_aggregation",
            sa.Column("series_id", sa.String(), sa.ForeignKey("series.id"), primary_key=True),
            sa.Column("authors", sa.String(), nullable=False, server_default=""),
            sa.Column("tags", sa.String(), nullable=False, server_default=""),
            sa.Column("release_date", sa.DateTime(), nullable=True),
            sa.Column("summary", sa.String(), nullable=True),
            sa.Column("summary_number", sa.String(), nullable=True),
        )

    if not _table_exists("books"):
        op.create_table(
            "books",
            sa.Column("id", sa.String(), primary_key=True),
            sa.Column("library_id", sa.String(), sa.ForeignKey("libraries.id"), nullable=False),
            sa.Column("series_id", sa.String(), sa.ForeignKey("series.id"), nullable=False),
            sa.Column("name", sa.String(), nullable=False),
            sa.Column("path", sa.String(), nullable=False),
            sa.Column("number", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("file_size", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("file_last_modified", sa.DateTime(), nullable=False),
            sa.Column("file_hash", sa.String(), nullable=False, server_default=""),
            sa.Column("deleted_date", sa.DateTime(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
        )
        op.create_index("ix_books_library_id", "books", ["library_id"])
        op.create_index("ix_books_series_id", "books", ["series_id"])
        op.create_index("ix_books_path", "books", ["path"], unique=True)

    if not _table_exists("media"):
        op.create_table(
            "media",
            sa.Column("book_id", sa.String(), sa.ForeignKey("books.id"), primary_key=True),
            sa.Column("status", MEDIA_STATUS, nullable=False),
            sa.Column("media_type", sa.String(), nullable=True),
            sa.Column("comment", sa.String(), nullable=True),
            sa.Column("page_count", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("last_modified_at", sa.DateTime(), nullable=False),
        )

    if not _table_exists("media_pages"):
        op.create_table(
            "media_pages",
            sa.Column("book_id", sa.String(), sa.ForeignKey("media.book_id"), primary_key=True),
            sa.Column("number", sa.Integer(), primary_key=True),
            sa.Column("file_name", sa.String(), nullable=False),
            sa.Column("media_type", sa.String(), nullable=False),
            sa.Column("width", sa.Integer(), nullable=True),
            sa.Column("height", sa.Integer(), nullable=True),
        )

    if not _table_exists("book_metadata"):
        op.create_table(
            "book_metadata",
            sa.Column("book_id", sa.String(), sa.ForeignKey("books.id"), primary_key=True),
            sa.Column("title", sa.String(), nullable=False),
            sa.Column("number", sa.String(), nullable=False, server_default=""),
            sa.Column("number_sort", sa.Float(), nullable=False, server_default="0"),
            sa.Column("summary", sa.String(), nullable=False, server_default=""),
            sa.Column("release_date", sa.DateTime(), nullable=True),
            sa.Column("authors", sa.String(), nullable=False, server_default=""),
            sa.Column("tags", sa.String(), nullable=False, server_default=""),
            sa.Column("isbn", sa.String(), nullable=False, server_default=""),
            sa.Column("publisher", sa.String(), nullable=True),
        )

    if not _table_exists("thumbnail_books"):
        op.create_table(
            "thumbnail_books",
            sa.Column("id", sa.String(), primary_key=True),
            sa.Column("book_id", sa.String(), sa.ForeignKey("books.id"), nullable=False),
            sa.Column("type", THUMBNAIL_TYPE, nullable=False),
            sa.Column("selected", sa.Boolean(), nullable=False, server_default="0"),
            sa.Column("thumbnail", sa.LargeBinary(), nullable=True),
            sa.Column("url", sa.String(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
        )
        op.create_index("ix_thumbnail_books_book_id", "thumbnail_books", ["book_id"])

    if not _table_exists("thumbnail_series"):
        op.create_table(
            "thumbnail_series",
            sa.Column("id", sa.String(), primary_key=True),
            sa.Column("series_id", sa.String(), sa.ForeignKey("series.id"), nullable=False),
            sa.Column("url", sa.String(), nullable=False),
            sa.Column("selected", sa.Boolean(), nullable=False, server_default="0"),
            sa.Column("created_at", sa.DateTime(), nullable=False),
        )
        op.create_index("ix_thumbnail_series_series_id", "thumbnail_series", ["series_id"])

    if not _table_exists("read_progress"):
        op.create_table(
            "read_progress",
            sa.Column("book_id", sa.String(), sa.ForeignKey("books.id"), primary_key=True),
            sa.Column("user_id", sa.String(), primary_key=True),
            sa.Column("page", sa.Integer(), nullable=False),
            sa.Column("completed", sa.Boolean(), nullable=False, server_default="0"),
            sa.Column("read_date", sa.DateTime(), nullable=False),
        )

    if not _table_exists("read_lists"):
        op.create_table(
            "read_lists",
            sa.Column("id", sa.String(), primary_key=True),
            sa.Column("name", sa.String(), unique=True, nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False),
        )

    if not _table_exists("read_list_books"):
        op.create_table(
            "read_list_books",
            sa.Column("read_list_id", sa.String(), sa.ForeignKey("read_lists.id"), primary_key=True),
            sa.Column("book_id", sa.String(), primary_key=True),
            sa.Column("number", sa.Integer(), nullable=False, server_default="0"),
        )

    if not _table_exists("search_entries"):
        op.create_table(
            "search_entries",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("entity_type", sa.String(), nullable=False),
            sa.Column("entity_id", sa.String(), nullable=False),
            sa.Column("text", sa.String(), nullable=False),
        )
        op.create_index("ix_search_entries_entity_type", "search_entries", ["entity_type"])
        op.create_index("ix_search_entries_entity_id", "search_entries", ["entity_id"])


def downgrade() -> None:
    # Reverse FK order: satellites first, then books, series, libraries.
    for table in (
        "search_entries",
        "read_list_books",
        "read_lists",
        "read_progress",
        "thumbnail_series",
        "thumbnail_books",
        "book_metadata",
        "media_pages",
        "media",
        "books",
        "book_metadata_aggregation",
        "series_metadata",
        "series",
        "libraries",
    ):
        op.drop_table(table)
