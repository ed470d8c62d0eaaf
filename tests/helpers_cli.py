"""
Shared helpers for running manga-toolkit CLI entrypoints and building fixtures in tests.
"""

from __future__ import annotations

import importlib
import io
import shutil
import struct
import sys
from contextlib import contextmanager, redirect_stderr, redirect_stdout
from pathlib import Path
from typing import Iterator, List, Optional, Sequence
from uuid import uuid4


SRC_DIR = Path(__file__).resolve().parents[1] / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))


def _normalize_exit_code(value: object) -> int:
    """Normalize return values/SystemExit payloads into process-style int codes."""

    if value is None:
        return 0
    if isinstance(value, int):
        return value
    try:
        return int(value)
    except (TypeError, ValueError):
        return 1


def run_manga_toolkit_cli(argv: list[str]) -> tuple[int, str, str]:
    """
    Run manga-toolkit CLI in-process with isolated argv and captured stdio.

    Returns: (exit_code, stdout_text, stderr_text)
    """

    original_argv = list(sys.argv)
    stdout_stream = io.StringIO()
    stderr_stream = io.StringIO()
    exit_code = 0

    try:
        sys.argv = ["manga-toolkit", *argv]
        with redirect_stdout(stdout_stream), redirect_stderr(stderr_stream):
            cli_mod = importlib.import_module("manga_toolkit.cli")
            try:
                result = cli_mod.main(argv)
            except SystemExit as exc:
                exit_code = _normalize_exit_code(exc.code)
            else:
                exit_code = _normalize_exit_code(result)
    finally:
        sys.argv = original_argv

    return exit_code, stdout_stream.getvalue(), stderr_stream.getvalue()


@contextmanager
def capture_output() -> Iterator[tuple[io.StringIO, io.StringIO]]:
    """Capture stdout/stderr for test assertions without leaking console noise."""

    stdout_stream = io.StringIO()
    stderr_stream = io.StringIO()
    with redirect_stdout(stdout_stream), redirect_stderr(stderr_stream):
        yield stdout_stream, stderr_stream


@contextmanager
def workspace_temp_dir(prefix: str = "test") -> Iterator[Path]:
    """A scratch folder under .tmp_tests that is removed afterwards."""

    root = Path(__file__).resolve().parents[1] / ".tmp_tests"
    root.mkdir(parents=True, exist_ok=True)
    tmp = root / f"{prefix}_{uuid4().hex}"
    tmp.mkdir(parents=True, exist_ok=False)
    try:
        yield tmp
    finally:
        shutil.rmtree(tmp, ignore_errors=True)


def build_psd(
    width: int,
    height: int,
    planes: Sequence[bytes],
    color_mode: int = 3,
    version: int = 1,
    compression: int = 0,
    depth: int = 8,
    signature: bytes = b"8BPS",
    resources: bytes = b"",
    rle_rows: Optional[List[List[bytes]]] = None,
) -> bytes:
    """
    Assemble a minimal PSD/PSB byte string.

    planes are raw channel planes (compression 0). For compression 1 pass
    rle_rows: one list of PackBits-encoded rows per channel.
    """

    channels = len(planes) if rle_rows is None else len(rle_rows)
    header = signature + struct.pack(">H", version) + b"\x00" * 6
    header += struct.pack(">HIIHH", channels, height, width, depth, color_mode)

    body = struct.pack(">I", 0)  # color mode data
    body += struct.pack(">I", len(resources)) + resources
    body += struct.pack(">Q", 0) if version == 2 else struct.pack(">I", 0)
    body += struct.pack(">H", compression)

    if rle_rows is None:
        body += b"".join(planes)
    else:
        count_format = ">I" if version == 2 else ">H"
        for rows in rle_rows:
            for row in rows:
                body += struct.pack(count_format, len(row))
        for rows in rle_rows:
            body += b"".join(rows)
    return header + body


def thumbnail_resource(jpeg_data: bytes, resource_id: int = 1036) -> bytes:
    """One 8BIM image resource holding a JPEG thumbnail."""

    thumb_header = struct.pack(">IIIIIIHH", 1, 4, 4, 12, 48, len(jpeg_data), 24, 1)
    data = thumb_header + jpeg_data
    block = b"8BIM" + struct.pack(">H", resource_id) + b"\x00\x00"
    block += struct.pack(">I", len(data)) + data
    if len(data) % 2:
        block += b"\x00"
    return block
