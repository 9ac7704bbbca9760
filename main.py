"""Stacks CLI entry point."""

from __future__ import annotations

import logging
import time
from collections import Counter
from pathlib import Path
from typing import Optional, Tuple

import typer
from sqlmodel import Session, func, select

from stacks.config import DEFAULT_CONFIG_PATH, StacksConfig, get_config, reset_config_cache, write_config
from stacks.container import Services, build_services
from stacks.database import get_engine, init_db, reset_database
from stacks.logging_config import setup_logging
from stacks.migrations import get_status, run_migrations, stamp_if_needed
from stacks.models import Book, Library, Media, Series, ThumbnailBook
from stacks.monitor import start_file_monitoring
from stacks.repository import Repository
from stacks.task_handler import TaskStatus
from stacks.tasks import HIGHEST_PRIORITY, CopyMode
from stacks.utils import format_duration


__version__ = "0.1.0"

app = typer.Typer(add_completion=False, help="Stacks comic library task engine")
logger = logging.getLogger("stacks")

STARTUP_BANNER = r"""
  ___  _             _
 / __|| |_  __ _  __| |__ ___
 \__ \|  _|/ _` |/ _| / /(_-<
 |___/ \__|\__,_|\__|_\_\/__/
"""


def _ensure_config() -> StacksConfig:
    try:
        return get_config()
    except FileNotFoundError:
        typer.echo("[ERROR] config.ini not found. Run: stacks init --library /path/to/comics")
        raise typer.Exit(code=1)


def _bootstrap() -> Tuple[Services, Library]:
    """Load config, prepare the database and register the configured library."""
    setup_logging()
    config = _ensure_config()
    init_db()
    stamp_if_needed()

    services = build_services(config)
    library = services.library_lifecycle.register_library(config.library)
    return services, library


def _drain(services: Services) -> None:
    """Run the worker pool until every queued task and its follow-ups are done."""
    queued = services.task_queue.qsize()
    if not queued:
        typer.echo("[INFO] Nothing to do.")
        return

    start = time.perf_counter()
    pool = services.worker_pool()
    pool.start()
    try:
        pool.wait_idle()
    finally:
        pool.stop()

    counts = Counter(result.status for result in pool.results)
    typer.echo(
        f"✓ {len(pool.results)} tasks in {format_duration(time.perf_counter() - start)}: "
        f"{counts[TaskStatus.COMPLETED]} completed, "
        f"{counts[TaskStatus.SKIPPED]} skipped, "
        f"{counts[TaskStatus.FAILED]} failed."
    )


@app.command()
def init(
    library: Path = typer.Option(..., "--library", help="Path to your comics folder"),
    name: str = typer.Option("My Comic Library", "--name", help="Library name"),
) -> None:
    """Initialize config.ini with default settings."""
    config_path = DEFAULT_CONFIG_PATH
    write_config(config_path, library, name)
    reset_config_cache()
    typer.echo(f"[OK] Config created at {config_path}")


@app.command()
def scan(
    empty_trash: bool = typer.Option(False, "--empty-trash", help="Purge removed books after the scan"),
) -> None:
    """Scan library and run the resulting analysis tasks."""
    services, library = _bootstrap()
    services.emitter.scan_library(library.id)
    _drain(services)

    if empty_trash:
        services.emitter.empty_trash(library.id)
        _drain(services)


@app.command()
def worker(
    no_watch: bool = typer.Option(False, "--no-watch", help="Disable file monitoring"),
) -> None:
    """Run the task workers until interrupted, rescanning on file changes."""
    typer.echo(typer.style(STARTUP_BANNER, fg=typer.colors.MAGENTA, bold=True))
    services, library = _bootstrap()

    # Migrations: stamp legacy DBs, then upgrade to head.
    current, head = get_status()
    if current != head:
        logger.info(f"Migrating database {current} -> {head} ...")
        run_migrations(backup=True)
        logger.info("Migration complete.")
    else:
        logger.info(f"Database at {head} (up to date).")

    pool = services.worker_pool()
    pool.start()

    # Initial scan on startup (populates DB if empty or picks up changes)
    logger.info("Running initial library scan...")
    services.emitter.scan_library(library.id)

    monitor = None
    if not no_watch and services.config.monitoring.enabled:
        monitor = start_file_monitoring(services.config, library, services.emitter)
    elif no_watch:
        logger.info("File monitoring disabled")

    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        pass
    finally:
        if monitor:
            monitor.stop()
        pool.stop()


@app.command()
def thumbnails(
    regenerate: bool = typer.Option(False, "--regenerate", help="Regenerate all thumbnails"),
) -> None:
    """Generate missing (or all) thumbnails."""
    services, library = _bootstrap()
    if regenerate:
        with Session(services.engine) as session:
            books = Repository(session).find_books_by_library(library.id, include_deleted=False)
        for book in books:
            services.emitter.generate_book_thumbnail(book.id)
    else:
        services.emitter.generate_missing_thumbnails(library)
    _drain(services)


@app.command(name="hash")
def hash_books() -> None:
    """Compute the file hash of books that have none."""
    services, library = _bootstrap()
    if not services.config.tasks.file_hashing:
        typer.echo("[INFO] File hashing is disabled in config.ini (tasks.file_hashing).")
        return
    services.emitter.hash_books_without_hash(library)
    _drain(services)


@app.command(name="empty-trash")
def empty_trash() -> None:
    """Permanently remove books and series that disappeared from disk."""
    services, library = _bootstrap()
    services.emitter.empty_trash(library.id)
    _drain(services)


@app.command(name="rebuild-index")
def rebuild_index() -> None:
    """Rebuild the search index."""
    services, _ = _bootstrap()
    services.emitter.rebuild_index(HIGHEST_PRIORITY)
    _drain(services)


@app.command(name="import")
def import_book(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Book file to import"),
    series: str = typer.Option(..., "--series", help="Target series id"),
    copy_mode: CopyMode = typer.Option(CopyMode.COPY, "--copy-mode", case_sensitive=False),
    name: Optional[str] = typer.Option(None, "--name", help="Destination file name, without extension"),
    upgrade: Optional[str] = typer.Option(None, "--upgrade", help="Id of the book this file replaces"),
) -> None:
    """Import a book file into a series."""
    services, _ = _bootstrap()
    services.emitter.import_book(
        str(file.resolve()),
        series,
        copy_mode=copy_mode,
        destination_name=name,
        upgrade_book_id=upgrade,
    )
    _drain(services)


@app.command()
def search(text: str = typer.Argument(..., help="Text to look for")) -> None:
    """Search books and series in the search index."""
    services, _ = _bootstrap()
    ids = services.search_index_lifecycle.search(text)
    with Session(services.engine) as session:
        repo = Repository(session)
        for entity_id in ids:
            book = repo.get_book(entity_id)
            if book is not None:
                typer.echo(f"  book    {book.id}  {book.name}")
                continue
            series = repo.get_series(entity_id)
            if series is not None:
                typer.echo(f"  series  {series.id}  {series.name}")
    typer.echo(f"{len(ids)} results")


@app.command()
def stats() -> None:
    """Show library statistics."""
    _ensure_config()
    init_db()

    with Session(get_engine()) as session:
        books = session.exec(select(Book).where(Book.deleted_date == None)).all()  # noqa: E711
        series_count = session.exec(
            select(func.count()).select_from(Series).where(Series.deleted_date == None)  # noqa: E711
        ).one()
        trashed = session.exec(
            select(func.count()).select_from(Book).where(Book.deleted_date != None)  # noqa: E711
        ).one()
        statuses = Counter(media.status.value for media in session.exec(select(Media)).all())
        with_thumbnail = session.exec(select(func.count(func.distinct(ThumbnailBook.book_id)))).one()

    total_size = sum(book.file_size for book in books)
    size_gb = total_size / (1024 ** 3)
    total_books = len(books)
    percent = (with_thumbnail / total_books * 100) if total_books else 0

    typer.echo("Library Statistics:")
    typer.echo(f"  Total books: {total_books}")
    typer.echo(f"  Total series: {series_count}")
    typer.echo(f"  In trash: {trashed}")
    typer.echo(f"  Total size: {size_gb:.1f} GB")
    typer.echo("  Media: " + ", ".join(f"{k} {v}" for k, v in sorted(statuses.items())))
    typer.echo(f"  Books with thumbnail: {with_thumbnail} / {total_books} ({percent:.0f}%)")


@app.command()
def migrate(
    check: bool = typer.Option(False, "--check", help="Print status and exit (1 if not at head)"),
) -> None:
    """Run pending database migrations (or check status with --check)."""
    setup_logging()
    _ensure_config()                    # config must exist before we touch the DB
    init_db()                           # ensure tables exist for a brand-new DB
    stamp_if_needed()

    current, head = get_status()

    if check:
        if current == head:
            typer.echo(f"[OK] Database at {head} (head).")
            raise typer.Exit(code=0)
        typer.echo(f"[WARN] Database behind, current: {current}, head: {head}")
        raise typer.Exit(code=1)

    if current == head:
        logger.info(f"Database already at {head} (head). Nothing to do.")
        raise typer.Exit(code=0)

    logger.info(f"Migrating database {current} -> {head} ...")
    run_migrations(backup=True)
    logger.info("Migration complete.")


@app.command()
def reset(
    confirm: bool = typer.Option(False, "--confirm", help="Confirm destructive reset"),
) -> None:
    """Reset the database and rescan the library."""
    if not confirm:
        typer.echo("[ERROR] This will delete your database, read progress included. Use --confirm.")
        raise typer.Exit(code=1)

    _ensure_config()
    reset_database()

    typer.echo("[INFO] Database reset. Rescanning library...")
    services, library = _bootstrap()
    services.emitter.scan_library(library.id)
    _drain(services)


if __name__ == "__main__":
    app()
