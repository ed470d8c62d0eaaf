"""
Library entry points for callers that are not the CLI (a UI shell, scripts).

Everything here works on the process-wide ResourceStore unless a store is
passed explicitly.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from .batch import BatchResult, CancellationToken, ProgressEvent, run_batch
from .cache import ResourceStore, clear_proprietary_image_cache, default_store
from .images import preview_data_url, write_preview_file
from .options import PdfOptions, ProcessOptions, WorkInfo
from .pdf import generate_pdf
from .pipeline import process_one
from .raster import RasterImage
from .utils import ensure_file_exists


def decode_proprietary_image(path: Path, store: Optional[ResourceStore] = None) -> RasterImage:
    """Decode a PSD file through the store's cache."""

    path = Path(path)
    ensure_file_exists(path, "PSD file")
    store = store if store is not None else default_store()
    return store.images.load_psd(path)


__all__ = [
    "BatchResult",
    "CancellationToken",
    "PdfOptions",
    "ProcessOptions",
    "ProgressEvent",
    "RasterImage",
    "ResourceStore",
    "WorkInfo",
    "clear_proprietary_image_cache",
    "decode_proprietary_image",
    "generate_pdf",
    "preview_data_url",
    "process_one",
    "run_batch",
    "write_preview_file",
]
