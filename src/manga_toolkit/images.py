"""
Load source images and build small previews.

Why this module exists:
- PSD files go through our own decoder, everything else through Pillow; the
  pipeline and PDF engine should not care which.
- Previews for a UI need either a data URL or a small JPEG on disk, with the
  original dimensions reported alongside.
"""

from __future__ import annotations

import base64
from pathlib import Path
from typing import Optional, Tuple

from PIL import Image, UnidentifiedImageError

from .cache import ResourceStore, default_store
from .jpeg import PREVIEW_JPEG_QUALITY, encode_jpeg, write_jpeg
from .psd import extract_thumbnail, load_psd
from .utils import DecodeError, ensure_dir, ensure_file_exists


# Data URLs are shown inline, so they are encoded at full quality.
DATA_URL_JPEG_QUALITY = 100


def is_psd(path: Path) -> bool:
    return path.suffix.lower() == ".psd"


def load_image(path: Path, store: Optional[ResourceStore] = None) -> Image.Image:
    """
    Decode any supported file into an RGBA Pillow image.

    When store is given, PSD decodes go through its cache; otherwise they are
    decoded fresh (the batch path, where each file is seen once).
    """

    ensure_file_exists(path, "Image")
    if is_psd(path):
        raster = store.images.load_psd(path) if store is not None else load_psd(path)
        return raster.to_image()

    try:
        with Image.open(path) as opened:
            opened.load()
            return opened.convert("RGBA")
    except UnidentifiedImageError as exc:
        raise DecodeError(f"Unrecognized image data in {path.name}: {exc}") from exc
    except (OSError, ValueError) as exc:
        raise DecodeError(f"Failed to load image {path}: {exc}") from exc


def _fit_within(image: Image.Image, max_size: int, resample: int) -> Image.Image:
    """Shrink so neither side exceeds max_size; smaller images pass through."""

    if image.width <= max_size and image.height <= max_size:
        return image
    resized = image.copy()
    resized.thumbnail((max_size, max_size), resample=resample)
    return resized


def _load_for_preview(
    path: Path,
    store: ResourceStore,
    use_thumbnail: bool,
) -> Tuple[Image.Image, int, int]:
    if use_thumbnail and is_psd(path):
        found = extract_thumbnail(path)
        if found is not None:
            return found
    image = load_image(path, store=store)
    return image, image.width, image.height


def preview_data_url(
    path: Path,
    max_size: int,
    store: Optional[ResourceStore] = None,
    use_thumbnail: bool = False,
) -> Tuple[int, int, str]:
    """
    Return (original_width, original_height, "data:image/jpeg;base64,...").

    use_thumbnail lets PSD previews come from the embedded thumbnail, which is
    much faster but low resolution.
    """

    store = store if store is not None else default_store()
    image, width, height = _load_for_preview(path, store, use_thumbnail)
    preview = _fit_within(image, max_size, Image.Resampling.BICUBIC)
    encoded = base64.b64encode(encode_jpeg(preview, DATA_URL_JPEG_QUALITY)).decode("ascii")
    return width, height, f"data:image/jpeg;base64,{encoded}"


def write_preview_file(
    path: Path,
    max_size: int,
    temp_dir: Path,
    store: Optional[ResourceStore] = None,
    use_thumbnail: bool = False,
) -> Tuple[int, int, Path]:
    """Write <stem>_preview.jpg into temp_dir; return original size and the path."""

    store = store if store is not None else default_store()
    image, width, height = _load_for_preview(path, store, use_thumbnail)
    preview = _fit_within(image, max_size, Image.Resampling.BILINEAR)

    ensure_dir(temp_dir)
    stem = path.stem or "preview"
    out_path = temp_dir / f"{stem}_preview.jpg"
    write_jpeg(preview, out_path, quality=PREVIEW_JPEG_QUALITY)
    return width, height, out_path

