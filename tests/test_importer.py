import pytest

from conftest import create_cbz, scan_books
from stacks import importer as importer_module
from stacks.database import session_scope
from stacks.exceptions import ImportBookError
from stacks.models import MediaStatus, ReadList
from stacks.repository import Repository
from stacks.tasks import CopyMode


@pytest.fixture
def series(services, ready_book):
    with session_scope(services.engine) as session:
        return Repository(session).get_series(ready_book.series_id)


@pytest.fixture
def incoming(tmp_path):
    return create_cbz(tmp_path / "incoming" / "Special.CBZ", pages=2)


def test_import_copies_file_into_series(services, series, incoming):
    book = services.book_importer.import_book(incoming, series)

    assert incoming.exists()
    assert book.file_path.exists()
    assert book.file_path.name == "Special.cbz"
    assert book.series_id == series.id
    with session_scope(services.engine) as session:
        repo = Repository(session)
        assert repo.get_media(book.id).status == MediaStatus.UNKNOWN
        assert repo.get_book_metadata(book.id).title == "Special"
        assert len(repo.find_books_by_series(series.id)) == 2


def test_import_move_with_destination_name(services, series, incoming):
    book = services.book_importer.import_book(incoming, series, CopyMode.MOVE, destination_name="issue02")

    assert not incoming.exists()
    assert book.name == "issue02"


def test_import_hardlink(services, series, incoming):
    book = services.book_importer.import_book(incoming, series, CopyMode.HARDLINK)

    assert incoming.exists()
    assert book.file_path.read_bytes() == incoming.read_bytes()


def test_import_rejects_missing_source(services, series, tmp_path):
    with pytest.raises(ImportBookError):
        services.book_importer.import_book(tmp_path / "nope.cbz", series)


def test_import_rejects_file_inside_library(services, series, library_dir):
    inside = create_cbz(library_dir / "Other" / "inside.cbz")

    with pytest.raises(ImportBookError):
        services.book_importer.import_book(inside, series)


def test_import_rejects_existing_destination(services, series, incoming):
    with pytest.raises(ImportBookError):
        services.book_importer.import_book(incoming, series, destination_name="issue01")


def test_import_rejects_upgrade_from_other_series(services, library, library_dir, series, incoming):
    create_cbz(library_dir / "Other" / "one.cbz")
    other = next(b for b in scan_books(services, library) if b.name == "one")

    with pytest.raises(ImportBookError):
        services.book_importer.import_book(incoming, series, upgrade_book_id=other.id)
    with pytest.raises(ImportBookError):
        services.book_importer.import_book(incoming, series, upgrade_book_id="missing")


def test_upgrade_in_place_carries_progress_and_read_lists(services, ready_book, series, tmp_path):
    services.book_lifecycle.mark_read_progress(ready_book, "reader", 2)
    with session_scope(services.engine) as session:
        repo = Repository(session)
        read_list = repo.save_read_list(ReadList(name="Favourites"))
        repo.add_book_to_read_list(read_list, ready_book.id)
        repo.commit()
    replacement = create_cbz(tmp_path / "incoming" / "better.cbz", pages=3)

    book = services.book_importer.import_book(
        replacement, series, destination_name="issue01", upgrade_book_id=ready_book.id
    )

    assert book.id != ready_book.id
    assert book.path == ready_book.path
    with session_scope(services.engine) as session:
        repo = Repository(session)
        assert repo.get_book(ready_book.id) is None
        assert repo.get_read_progress(book.id, "reader").page == 2
        assert repo.find_read_list_book_ids(read_list.id) == [book.id]


def test_upgrade_to_new_name_removes_old_file(services, ready_book, series, incoming):
    book = services.book_importer.import_book(incoming, series, upgrade_book_id=ready_book.id)

    assert not ready_book.file_path.exists()
    assert book.file_path.exists()
    with session_scope(services.engine) as session:
        assert [b.id for b in Repository(session).find_books_by_series(series.id)] == [book.id]


def test_failed_upgrade_transfer_keeps_existing_book(services, ready_book, series, incoming, monkeypatch):
    original = ready_book.file_path.read_bytes()

    def disk_full(*args, **kwargs):
        raise OSError("disk full")

    monkeypatch.setattr(importer_module.shutil, "copy2", disk_full)

    with pytest.raises(ImportBookError):
        services.book_importer.import_book(
            incoming, series, destination_name="issue01", upgrade_book_id=ready_book.id
        )

    assert ready_book.file_path.read_bytes() == original
    assert not ready_book.file_path.with_name("issue01.cbz.part").exists()
    with session_scope(services.engine) as session:
        assert Repository(session).get_book(ready_book.id) is not None


def test_failed_upgrade_record_keeps_old_book_and_progress(services, ready_book, series, incoming, monkeypatch):
    services.book_lifecycle.mark_read_progress(ready_book, "reader", 2)

    def broken(self, *args, **kwargs):
        raise RuntimeError("database is locked")

    monkeypatch.setattr(Repository, "save_book_metadata", broken)

    with pytest.raises(RuntimeError):
        services.book_importer.import_book(incoming, series, upgrade_book_id=ready_book.id)

    assert ready_book.file_path.exists()
    with session_scope(services.engine) as session:
        repo = Repository(session)
        assert repo.get_book(ready_book.id) is not None
        assert repo.get_read_progress(ready_book.id, "reader").page == 2
        assert [b.id for b in repo.find_books_by_series(series.id)] == [ready_book.id]
