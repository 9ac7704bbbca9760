"""Tests for page delivery: raw bytes, conversion and resize."""

from io import BytesIO

import pytest
from PIL import Image

from conftest import create_cbz, scan_books
from stacks.exceptions import ImageConversionError, MediaNotReadyError, PageOutOfRangeError
from stacks.images import ImageConverter, ImageType


def _size(content):
    with Image.open(BytesIO(content)) as im:
        return im.size


def test_original_page_bytes(services, ready_book):
    page = services.book_lifecycle.get_book_page(ready_book, 2)

    assert page.number == 2
    assert page.media_type == "image/png"
    assert _size(page.content) == (12, 20)


def test_same_format_returns_original_bytes(services, ready_book, monkeypatch):
    original = services.book_lifecycle.get_book_page(ready_book, 1).content

    def fail(*args, **kwargs):
        raise AssertionError("converter should not be called")

    monkeypatch.setattr(services.book_lifecycle.image_converter, "convert_image", fail)
    page = services.book_lifecycle.get_book_page(ready_book, 1, convert_to=ImageType.PNG)

    assert page.content == original
    assert page.media_type == "image/png"


def test_convert_page_to_jpeg(services, ready_book):
    page = services.book_lifecycle.get_book_page(ready_book, 1, convert_to=ImageType.JPEG)

    assert page.media_type == "image/jpeg"
    assert page.content.startswith(b"\xff\xd8")


def test_resize_produces_jpeg(services, ready_book):
    page = services.book_lifecycle.get_book_page(ready_book, 3, convert_to=ImageType.PNG, resize_to=10)

    assert page.media_type == "image/jpeg"
    assert max(_size(page.content)) == 10


@pytest.mark.parametrize("number", [0, 4])
def test_page_out_of_range(services, ready_book, number):
    with pytest.raises(PageOutOfRangeError) as excinfo:
        services.book_lifecycle.get_book_page(ready_book, number)

    assert excinfo.value.page_count == 3


def test_unanalyzed_book_is_not_ready(services, library, library_dir):
    create_cbz(library_dir / "Series" / "issue01.cbz")
    book = scan_books(services, library)[0]

    with pytest.raises(MediaNotReadyError):
        services.book_lifecycle.get_book_page(book, 1)


def test_unsupported_read_format(services, ready_book, monkeypatch):
    monkeypatch.setattr(ImageConverter, "supported_read_media_types", property(lambda self: frozenset()))

    with pytest.raises(ImageConversionError) as excinfo:
        services.book_lifecycle.get_book_page(ready_book, 1, convert_to=ImageType.JPEG)

    assert excinfo.value.reason == ImageConversionError.UNSUPPORTED_READ


def test_unsupported_write_format(services, ready_book, monkeypatch):
    monkeypatch.setattr(
        ImageConverter, "supported_write_media_types", property(lambda self: frozenset({"image/png"}))
    )

    with pytest.raises(ImageConversionError) as excinfo:
        services.book_lifecycle.get_book_page(ready_book, 1, convert_to=ImageType.WEBP)

    assert excinfo.value.reason == ImageConversionError.UNSUPPORTED_WRITE


def test_codec_failure(services, ready_book, monkeypatch):
    def broken(*args, **kwargs):
        raise ValueError("decoder exploded")

    monkeypatch.setattr(services.book_lifecycle.image_converter, "convert_image", broken)

    with pytest.raises(ImageConversionError) as excinfo:
        services.book_lifecycle.get_book_page(ready_book, 1, convert_to=ImageType.JPEG)

    assert excinfo.value.reason == ImageConversionError.CODEC_FAILURE
