"""Errors surfaced by Stacks operations.

Background tasks never let these escape (the task handler logs them); the
synchronous operations (page fetch, thumbnail deletion, file deletion,
read progress) raise them to the caller.
"""

from __future__ import annotations

from typing import Optional


class StacksError(Exception):
    """Base class. `code` is a stable identifier clients can match on."""

    code: Optional[str] = None

    def __init__(self, message: str, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class MediaNotReadyError(StacksError):
    """The book has not been analyzed successfully yet."""

    code = "ERR_MEDIA_NOT_READY"


class PageOutOfRangeError(StacksError, IndexError):
    code = "ERR_PAGE_OUT_OF_RANGE"

    def __init__(self, number: int, page_count: int) -> None:
        super().__init__(
            f"Page {number} is out of range, book has {page_count} pages"
        )
        self.number = number
        self.page_count = page_count


class ImageConversionError(StacksError):
    """Page conversion or resize failed.

    `reason` is one of UNSUPPORTED_READ, UNSUPPORTED_WRITE or CODEC_FAILURE.
    """

    UNSUPPORTED_READ = "unsupported_read"
    UNSUPPORTED_WRITE = "unsupported_write"
    CODEC_FAILURE = "codec_failure"

    code = "ERR_IMAGE_CONVERSION"

    def __init__(self, message: str, reason: str) -> None:
        super().__init__(message)
        self.reason = reason


class BookFileNotAccessibleError(StacksError, FileNotFoundError):
    code = "ERR_1018"


class InvalidThumbnailError(StacksError, ValueError):
    code = "ERR_INVALID_THUMBNAIL"


class ReadProgressError(StacksError, ValueError):
    code = "ERR_READ_PROGRESS"


class ImportBookError(StacksError):
    code = "ERR_IMPORT"


class ConversionError(StacksError):
    """A book could not be converted to CBZ or have its extension repaired."""

    code = "ERR_BOOK_CONVERSION"
