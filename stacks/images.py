"""Image conversion for page delivery and thumbnails (Pillow)."""

from __future__ import annotations

import enum
from io import BytesIO
from typing import FrozenSet

from PIL import Image, UnidentifiedImageError

from .logging_config import get_logger

logger = get_logger(__name__)


class ImageType(enum.Enum):
    """Output formats a page can be converted to: (media type, Pillow format)."""

    JPEG = ("image/jpeg", "JPEG")
    PNG = ("image/png", "PNG")
    WEBP = ("image/webp", "WEBP")

    @property
    def media_type(self) -> str:
        return self.value[0]

    @property
    def pil_format(self) -> str:
        return self.value[1]

    @classmethod
    def from_media_type(cls, media_type: str) -> "ImageType":
        for member in cls:
            if member.media_type == media_type:
                return member
        raise ValueError(f"No image type for {media_type}")


# Pillow format name -> media type for everything we accept as a page
_READ_FORMATS = {
    "JPEG": "image/jpeg",
    "PNG": "image/png",
    "WEBP": "image/webp",
    "GIF": "image/gif",
    "BMP": "image/bmp",
    "TIFF": "image/tiff",
}


class ImageConverter:
    """Decode, resize and re-encode page images."""

    def __init__(self, jpeg_quality: int = 85):
        self.jpeg_quality = jpeg_quality
        registered = set(Image.registered_extensions().values())
        self._readable = frozenset(
            media for fmt, media in _READ_FORMATS.items() if fmt in registered
        )
        self._writable = frozenset(
            t.media_type for t in ImageType if t.pil_format in Image.SAVE
        )

    @property
    def supported_read_media_types(self) -> FrozenSet[str]:
        return self._readable

    @property
    def supported_write_media_types(self) -> FrozenSet[str]:
        return self._writable

    def _encode(self, im: Image.Image, pil_format: str) -> bytes:
        if pil_format == "JPEG" and im.mode not in ("RGB", "L"):
            im = im.convert("RGB")
        out = BytesIO()
        if pil_format in ("JPEG", "WEBP"):
            im.save(out, format=pil_format, quality=self.jpeg_quality)
        else:
            im.save(out, format=pil_format)
        return out.getvalue()

    def convert_image(self, image_bytes: bytes, pil_format: str) -> bytes:
        """Re-encode image_bytes into pil_format (e.g. "PNG")."""
        try:
            with Image.open(BytesIO(image_bytes)) as im:
                im.load()
                return self._encode(im, pil_format)
        except (UnidentifiedImageError, OSError) as exc:
            raise ValueError(f"Cannot convert image to {pil_format}: {exc}") from exc

    def resize_image(self, image_bytes: bytes, pil_format: str, size: int) -> bytes:
        """Scale so the longest side is at most `size` pixels, then encode."""
        try:
            with Image.open(BytesIO(image_bytes)) as im:
                im.load()
                im.thumbnail((size, size))
                return self._encode(im, pil_format)
        except (UnidentifiedImageError, OSError) as exc:
            raise ValueError(f"Cannot resize image to {size}px: {exc}") from exc

    def make_thumbnail(self, image_bytes: bytes, width: int, height: int) -> bytes:
        """JPEG thumbnail bounded by width x height."""
        with Image.open(BytesIO(image_bytes)) as im:
            im = im.convert("RGB")
            im.thumbnail((width, height))
            out = BytesIO()
            im.save(out, format="JPEG", quality=self.jpeg_quality, optimize=True)
            return out.getvalue()

    def get_dimension(self, image_bytes: bytes):
        """Return (width, height) or None when the bytes are not a readable image."""
        try:
            with Image.open(BytesIO(image_bytes)) as im:
                return im.size
        except (UnidentifiedImageError, OSError):
            logger.debug("Could not read image dimensions")
            return None
