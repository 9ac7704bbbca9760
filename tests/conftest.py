import io
import zipfile
from pathlib import Path
from typing import List, Optional

import pytest
from PIL import Image

from stacks.config import LibraryConfig, StacksConfig, TaskConfig
from stacks.container import build_services
from stacks.database import init_db, make_engine, session_scope
from stacks.repository import Repository


def png_bytes(size=(10, 10), color="red") -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, color=color).save(buf, format="PNG")
    return buf.getvalue()


def jpeg_bytes(size=(10, 10), color="blue") -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, color=color).save(buf, format="JPEG")
    return buf.getvalue()


def create_cbz(path: Path, pages: int = 1, comicinfo: Optional[bytes] = None) -> Path:
    """Create a valid CBZ file with tiny PNG pages."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(path, "w") as zf:
        for number in range(1, pages + 1):
            zf.writestr(f"page{number:03d}.png", png_bytes(size=(10 + number, 20)))
        if comicinfo is not None:
            zf.writestr("ComicInfo.xml", comicinfo)
    return path


@pytest.fixture
def engine(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'library.db'}")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def library_dir(tmp_path) -> Path:
    lib = tmp_path / "lib"
    lib.mkdir()
    return lib


@pytest.fixture
def config(library_dir) -> StacksConfig:
    return StacksConfig(
        library=LibraryConfig(path=library_dir, name="Test Library", import_local_artwork=False),
        tasks=TaskConfig(workers=2),
    )


@pytest.fixture
def services(config, engine):
    return build_services(config, engine=engine)


@pytest.fixture
def library(services, config):
    return services.library_lifecycle.register_library(config.library)


@pytest.fixture
def received_events(services) -> List:
    events: List = []
    services.events.subscribe(events.append)
    return events


def scan_books(services, library):
    """Scan the library and return its books sorted by path."""
    services.library_lifecycle.scan_root_folder(library)
    with session_scope(services.engine) as session:
        books = Repository(session).find_books_by_library(library.id, include_deleted=False)
    return sorted(books, key=lambda b: b.path)


@pytest.fixture
def ready_book(services, library, library_dir):
    """A scanned and analyzed three page book."""
    create_cbz(library_dir / "Series" / "issue01.cbz", pages=3)
    book = scan_books(services, library)[0]
    assert services.book_lifecycle.analyze_and_persist(book)
    return book
