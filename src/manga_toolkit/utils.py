"""
Shared utility helpers.

This module keeps the "sharp edges" (errors, validation and path handling) in
one place so the rest of the code can stay focused on image and PDF work.
"""

from __future__ import annotations

from pathlib import Path
from typing import List


SUPPORTED_EXTENSIONS = {".png", ".jpg", ".jpeg", ".gif", ".webp", ".psd", ".tif", ".tiff"}


class UserError(Exception):
    """Raised for user-facing problems that should show a clear message."""


class DecodeError(UserError):
    """An image could not be parsed (bad header, unsupported layout, corrupt data)."""


class GeometryError(UserError):
    """A crop rectangle collapsed to zero area after scaling and clamping."""


class CodecError(UserError):
    """JPEG encoding failed or a JPEG stream has malformed markers."""


class CancelledError(UserError):
    """The run was cancelled cooperatively; not a failure of any single file."""


def normalize_path(value: str) -> Path:
    """
    Convert user input to a Path.

    We do not resolve() here because we want to preserve relative paths in
    manifests and error messages.
    """

    return Path(value).expanduser()


def ensure_file_exists(path: Path, label: str) -> Path:
    """Validate that a path exists and is a file."""

    if not path.exists():
        raise UserError(f"{label} not found: {path}")
    if not path.is_file():
        raise UserError(f"{label} is not a file: {path}")
    return path


def ensure_input_dir(path: Path, label: str) -> Path:
    """Validate that a path exists and is a directory."""

    if not path.exists() or not path.is_dir():
        raise UserError(f"{label} not found: {path}")
    return path


def ensure_dir(path: Path) -> None:
    """Create a directory (and parents) if needed."""

    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise UserError(f"Failed to create directory {path}: {exc}") from exc


def ensure_file_path(path: Path, label: str) -> None:
    """Ensure a path is a file path (not an existing directory)."""

    if path.exists() and path.is_dir():
        raise UserError(f"{label} is a directory, not a file: {path}")


def validate_positive_int(value: int, label: str) -> int:
    """Common validation for options like --max_size or --workers."""

    if value <= 0:
        raise UserError(f"{label} must be a positive integer.")
    return value


def validate_range(value: int, low: int, high: int, label: str) -> int:
    """Ensure an integer option sits inside an inclusive range."""

    if value < low or value > high:
        raise UserError(f"{label} must be in the range [{low}, {high}].")
    return value


def is_supported_image(path: Path) -> bool:
    """Return True for the raster types the toolkit can load."""

    return path.suffix.lower() in SUPPORTED_EXTENSIONS


def collect_image_files(in_dir: Path, pattern: str = "*") -> List[str]:
    """
    Return supported image file names in stable order.

    Names (not paths) are returned because the batch and PDF entry points take
    an input folder plus a list of names inside it.
    """

    return sorted(
        path.name
        for path in in_dir.glob(pattern)
        if path.is_file() and is_supported_image(path)
    )


def unique_output_path(path: Path) -> Path:
    """
    Return path, or the first free "stem(N).suffix" sibling when it exists.

    Example: out.pdf -> out(1).pdf -> out(2).pdf
    """

    if not path.exists():
        return path
    counter = 1
    while True:
        candidate = path.with_name(f"{path.stem}({counter}){path.suffix}")
        if not candidate.exists():
            return candidate
        counter += 1
