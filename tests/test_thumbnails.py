"""Tests for thumbnail selection and housekeeping."""

from datetime import datetime, timezone

import pytest

from conftest import create_cbz, jpeg_bytes, scan_books
from stacks.book_lifecycle import MarkSelectedPreference
from stacks.database import session_scope
from stacks.events import ThumbnailBookAdded, ThumbnailBookDeleted
from stacks.exceptions import InvalidThumbnailError
from stacks.models import ThumbnailBook, ThumbnailType
from stacks.repository import Repository


def _thumbnails(services, book_id):
    with session_scope(services.engine) as session:
        return Repository(session).find_thumbnails_by_book(book_id)


def _uploaded(book_id):
    return ThumbnailBook(book_id=book_id, type=ThumbnailType.USER_UPLOADED, thumbnail=jpeg_bytes())


def test_generated_thumbnail_is_selected(services, ready_book, received_events):
    services.book_lifecycle.generate_thumbnail_and_persist(ready_book)

    thumbnails = _thumbnails(services, ready_book.id)
    assert len(thumbnails) == 1
    assert thumbnails[0].type == ThumbnailType.GENERATED
    assert thumbnails[0].selected
    assert thumbnails[0].thumbnail.startswith(b"\xff\xd8")
    assert any(isinstance(e, ThumbnailBookAdded) for e in received_events)


def test_regenerating_keeps_a_single_generated_thumbnail(services, ready_book):
    services.book_lifecycle.generate_thumbnail_and_persist(ready_book)
    services.book_lifecycle.generate_thumbnail_and_persist(ready_book)

    thumbnails = _thumbnails(services, ready_book.id)
    assert [t.type for t in thumbnails] == [ThumbnailType.GENERATED]
    assert thumbnails[0].selected


def test_mark_selected_yes_deselects_others(services, ready_book):
    services.book_lifecycle.generate_thumbnail_and_persist(ready_book)
    uploaded = _uploaded(ready_book.id)

    services.book_lifecycle.add_thumbnail_for_book(uploaded, MarkSelectedPreference.YES)

    selected = [t for t in _thumbnails(services, ready_book.id) if t.selected]
    assert [t.id for t in selected] == [uploaded.id]


def test_if_none_or_generated_does_not_replace_user_choice(services, ready_book, tmp_path):
    uploaded = _uploaded(ready_book.id)
    services.book_lifecycle.add_thumbnail_for_book(uploaded, MarkSelectedPreference.YES)
    sidecar_file = tmp_path / "issue01.jpg"
    sidecar_file.write_bytes(jpeg_bytes())

    services.book_lifecycle.add_thumbnail_for_book(
        ThumbnailBook(book_id=ready_book.id, type=ThumbnailType.SIDECAR, url=str(sidecar_file)),
        MarkSelectedPreference.IF_NONE_OR_GENERATED,
    )

    selected = [t for t in _thumbnails(services, ready_book.id) if t.selected]
    assert [t.id for t in selected] == [uploaded.id]


def test_if_none_or_generated_replaces_generated(services, ready_book, tmp_path):
    services.book_lifecycle.generate_thumbnail_and_persist(ready_book)
    sidecar_file = tmp_path / "issue01.jpg"
    sidecar_file.write_bytes(jpeg_bytes())
    sidecar = ThumbnailBook(book_id=ready_book.id, type=ThumbnailType.SIDECAR, url=str(sidecar_file))

    services.book_lifecycle.add_thumbnail_for_book(sidecar, MarkSelectedPreference.IF_NONE_OR_GENERATED)

    selected = [t for t in _thumbnails(services, ready_book.id) if t.selected]
    assert [t.id for t in selected] == [sidecar.id]


def test_mark_selected_no_still_selects_when_nothing_is(services, ready_book):
    uploaded = _uploaded(ready_book.id)

    services.book_lifecycle.add_thumbnail_for_book(uploaded, MarkSelectedPreference.NO)

    thumbnails = _thumbnails(services, ready_book.id)
    assert [t.selected for t in thumbnails] == [True]


def test_stale_sidecar_is_purged_on_read(services, ready_book, tmp_path):
    services.book_lifecycle.generate_thumbnail_and_persist(ready_book)
    sidecar_file = tmp_path / "issue01.jpg"
    sidecar_file.write_bytes(jpeg_bytes())
    services.book_lifecycle.add_thumbnail_for_book(
        ThumbnailBook(book_id=ready_book.id, type=ThumbnailType.SIDECAR, url=str(sidecar_file)),
        MarkSelectedPreference.YES,
    )
    sidecar_file.unlink()

    thumbnail = services.book_lifecycle.get_thumbnail(ready_book.id)

    assert thumbnail.type == ThumbnailType.GENERATED
    assert thumbnail.selected
    assert [t.type for t in _thumbnails(services, ready_book.id)] == [ThumbnailType.GENERATED]


def test_get_thumbnail_bytes(services, ready_book):
    assert services.book_lifecycle.get_thumbnail_bytes(ready_book.id) is None

    services.book_lifecycle.generate_thumbnail_and_persist(ready_book)

    assert services.book_lifecycle.get_thumbnail_bytes(ready_book.id).startswith(b"\xff\xd8")


def test_delete_only_user_uploaded_thumbnails(services, ready_book, received_events):
    services.book_lifecycle.generate_thumbnail_and_persist(ready_book)
    uploaded = _uploaded(ready_book.id)
    services.book_lifecycle.add_thumbnail_for_book(uploaded, MarkSelectedPreference.YES)
    generated = next(t for t in _thumbnails(services, ready_book.id) if t.type == ThumbnailType.GENERATED)

    with pytest.raises(InvalidThumbnailError):
        services.book_lifecycle.delete_thumbnail_for_book(generated)

    services.book_lifecycle.delete_thumbnail_for_book(uploaded)

    thumbnails = _thumbnails(services, ready_book.id)
    assert [(t.type, t.selected) for t in thumbnails] == [(ThumbnailType.GENERATED, True)]
    assert any(isinstance(e, ThumbnailBookDeleted) for e in received_events)


def test_thumbnail_generation_failure_is_logged_not_raised(services, library, library_dir):
    create_cbz(library_dir / "Series" / "unanalyzed.cbz")
    book = scan_books(services, library)[0]

    # media is still UNKNOWN, so there is no page to render
    services.book_lifecycle.generate_thumbnail_and_persist(book)

    assert _thumbnails(services, book.id) == []


def test_housekeeping_keeps_first_of_several_selected(services, ready_book):
    first = ThumbnailBook(
        book_id=ready_book.id,
        type=ThumbnailType.USER_UPLOADED,
        thumbnail=jpeg_bytes(),
        selected=True,
        created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )
    second = ThumbnailBook(
        book_id=ready_book.id,
        type=ThumbnailType.USER_UPLOADED,
        thumbnail=jpeg_bytes(),
        selected=True,
        created_at=datetime(2024, 1, 2, tzinfo=timezone.utc),
    )
    with session_scope(services.engine) as session:
        repo = Repository(session)
        repo.insert_thumbnail(first)
        repo.insert_thumbnail(second)
        repo.commit()

    services.book_lifecycle.thumbnails_housekeeping(ready_book.id)

    assert [t.id for t in _thumbnails(services, ready_book.id) if t.selected] == [first.id]


def test_thumbnail_without_bytes_or_url_is_rejected(services, ready_book):
    empty = ThumbnailBook(book_id=ready_book.id, type=ThumbnailType.USER_UPLOADED)

    with pytest.raises(InvalidThumbnailError):
        services.book_lifecycle.add_thumbnail_for_book(empty, MarkSelectedPreference.YES)

    assert _thumbnails(services, ready_book.id) == []
