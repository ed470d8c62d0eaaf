"""
JPEG helpers: encoding through Pillow and header-only dimension probing.

Why this module exists:
- Every output page and every re-encoded PDF image goes through one encoder
  call with an explicit quality, so failures surface as CodecError.
- The PDF fast path needs width/height of an existing JPEG without decoding
  it, which only takes a walk over the marker segments.
"""

from __future__ import annotations

import io
from pathlib import Path
from typing import Tuple

from PIL import Image

from .utils import CodecError, UserError


# Final pages.
JPEG_QUALITY = 95
# Images re-encoded for embedding in a PDF.
PDF_JPEG_QUALITY = 100
# Transient preview files.
PREVIEW_JPEG_QUALITY = 80

_SOF_MARKERS = (
    set(range(0xC0, 0xC4))
    | set(range(0xC5, 0xC8))
    | set(range(0xC9, 0xCC))
    | set(range(0xCD, 0xD0))
)
_STANDALONE_MARKERS = {0xD8, 0xD9} | set(range(0xD0, 0xD8))


def is_jpeg_file(path: Path) -> bool:
    """Decide by extension, case-insensitively."""

    return path.suffix.lower() in {".jpg", ".jpeg"}


def encode_jpeg(image: Image.Image, quality: int) -> bytes:
    """
    Flatten to RGB (alpha is discarded) and encode as baseline JPEG.

    Raises CodecError instead of returning a partial buffer.
    """

    rgb = image if image.mode == "RGB" else image.convert("RGB")
    buffer = io.BytesIO()
    try:
        rgb.save(buffer, format="JPEG", quality=quality, optimize=True)
    except (OSError, ValueError) as exc:
        raise CodecError(f"JPEG encoding failed ({rgb.width}x{rgb.height}): {exc}") from exc
    return buffer.getvalue()


def write_jpeg(image: Image.Image, path: Path, quality: int = JPEG_QUALITY) -> None:
    """Encode and write in one step; I/O failures become UserError."""

    data = encode_jpeg(image, quality)
    try:
        path.write_bytes(data)
    except OSError as exc:
        raise UserError(f"Failed to write {path}: {exc}") from exc


def jpeg_dimensions(data: bytes) -> Tuple[int, int]:
    """
    Return (width, height) from the first Start-Of-Frame segment.

    SOF layout: FF Cn, length (2), precision (1), height (2), width (2).
    """

    if len(data) < 2 or data[0] != 0xFF or data[1] != 0xD8:
        raise CodecError("Not a JPEG stream (missing SOI marker).")

    i = 2
    while i + 4 < len(data):
        if data[i] != 0xFF:
            i += 1
            continue

        marker = data[i + 1]
        if marker in _SOF_MARKERS and i + 9 < len(data):
            height = (data[i + 5] << 8) | data[i + 6]
            width = (data[i + 7] << 8) | data[i + 8]
            return width, height

        if marker in _STANDALONE_MARKERS or marker == 0xFF:
            # 0xFF 0xFF is fill padding before a marker.
            i += 1 if marker == 0xFF else 2
            continue

        length = (data[i + 2] << 8) | data[i + 3]
        i += 2 + length

    raise CodecError("JPEG stream has no Start-Of-Frame segment.")


def read_jpeg_with_dimensions(path: Path) -> Tuple[bytes, int, int]:
    """Read a JPEG file and probe its size without decoding pixels."""

    try:
        data = path.read_bytes()
    except OSError as exc:
        raise UserError(f"Failed to read {path}: {exc}") from exc
    width, height = jpeg_dimensions(data)
    return data, width, height
