import pytest

from conftest import create_cbz, scan_books
from stacks import converter
from stacks.archive import MEDIA_TYPE_ZIP
from stacks.database import session_scope
from stacks.exceptions import ConversionError
from stacks.models import MediaStatus
from stacks.repository import Repository


@pytest.fixture
def misnamed_book(services, library, library_dir):
    """A zip archive stored with a .cbr extension, analyzed."""
    create_cbz(library_dir / "Series" / "issue01.cbr", pages=2)
    book = scan_books(services, library)[0]
    assert services.book_lifecycle.analyze_and_persist(book)
    services.book_lifecycle.hash_and_persist(book)
    return book


def _stored(services, book_id):
    with session_scope(services.engine) as session:
        repo = Repository(session)
        return repo.get_book(book_id), repo.get_media(book_id)


def test_repair_extension_renames_file(services, misnamed_book, library_dir):
    services.book_converter.repair_extension(misnamed_book)

    assert not (library_dir / "Series" / "issue01.cbr").exists()
    assert (library_dir / "Series" / "issue01.cbz").exists()
    book, media = _stored(services, misnamed_book.id)
    assert book.path.endswith("issue01.cbz")
    assert book.file_hash
    assert media.status == MediaStatus.READY


def test_repair_extension_refuses_to_overwrite(services, misnamed_book, library_dir):
    create_cbz(library_dir / "Series" / "issue01.cbz")

    with pytest.raises(ConversionError):
        services.book_converter.repair_extension(misnamed_book)

    assert (library_dir / "Series" / "issue01.cbr").exists()


def test_repair_extension_leaves_correct_books_alone(services, ready_book):
    services.book_converter.repair_extension(ready_book)

    book, _ = _stored(services, ready_book.id)
    assert book.path == ready_book.path


def test_convert_skips_zip_books(services, ready_book):
    services.book_converter.convert_to_cbz(ready_book)

    assert ready_book.file_path.exists()
    book, media = _stored(services, ready_book.id)
    assert book.path == ready_book.path
    assert media.status == MediaStatus.READY


def test_convert_skips_books_not_ready(services, library, library_dir):
    create_cbz(library_dir / "Series" / "issue01.cbr")
    book = scan_books(services, library)[0]

    services.book_converter.convert_to_cbz(book)

    assert book.file_path.exists()


def test_convert_writes_cbz_and_marks_outdated(services, misnamed_book, library_dir, monkeypatch):
    monkeypatch.setattr(converter, "CONVERTIBLE_MEDIA_TYPES", (MEDIA_TYPE_ZIP,))

    services.book_converter.convert_to_cbz(misnamed_book)

    assert not (library_dir / "Series" / "issue01.cbr").exists()
    book, media = _stored(services, misnamed_book.id)
    assert book.path.endswith("issue01.cbz")
    assert book.file_hash == ""
    assert media.status == MediaStatus.OUTDATED

    services.book_lifecycle.analyze_and_persist(book)
    _, media = _stored(services, misnamed_book.id)
    assert media.page_count == 2


def test_convert_rejects_page_count_mismatch(services, misnamed_book, library_dir, monkeypatch):
    monkeypatch.setattr(converter, "CONVERTIBLE_MEDIA_TYPES", (MEDIA_TYPE_ZIP,))
    with session_scope(services.engine) as session:
        repo = Repository(session)
        media = repo.get_media(misnamed_book.id)
        media.page_count = 5
        repo.save_media(media)
        repo.commit()

    with pytest.raises(ConversionError):
        services.book_converter.convert_to_cbz(misnamed_book)

    assert (library_dir / "Series" / "issue01.cbr").exists()
    assert not (library_dir / "Series" / "issue01.cbz").exists()
