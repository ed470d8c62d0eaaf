"""
Lightweight unit tests for parsing and validation helpers.

These are intentionally small, but they cover the most error-prone bits.
"""

from __future__ import annotations

import unittest

from helpers_cli import workspace_temp_dir

from manga_toolkit.jpeg import encode_jpeg, is_jpeg_file, jpeg_dimensions, read_jpeg_with_dimensions
from manga_toolkit.utils import (
    CodecError,
    UserError,
    collect_image_files,
    unique_output_path,
    validate_positive_int,
    validate_range,
)

from PIL import Image


class ValidationTests(unittest.TestCase):
    def test_positive_int(self) -> None:
        self.assertEqual(validate_positive_int(3, "--workers"), 3)
        with self.assertRaises(UserError):
            validate_positive_int(0, "--workers")

    def test_range(self) -> None:
        self.assertEqual(validate_range(100, 0, 100, "fill_opacity"), 100)
        with self.assertRaises(UserError):
            validate_range(101, 0, 100, "fill_opacity")


class PathHelperTests(unittest.TestCase):
    def test_collect_image_files_returns_only_supported_files_sorted(self) -> None:
        with workspace_temp_dir("utils") as root:
            (root / "b.png").write_bytes(b"x")
            (root / "a.PSD").write_bytes(b"x")
            (root / "notes.txt").write_bytes(b"x")
            (root / "c.jpg").mkdir()

            self.assertEqual(collect_image_files(root), ["a.PSD", "b.png"])
            self.assertEqual(collect_image_files(root, "b*"), ["b.png"])

    def test_unique_output_path(self) -> None:
        with workspace_temp_dir("utils") as root:
            target = root / "book.pdf"
            self.assertEqual(unique_output_path(target), target)
            target.write_bytes(b"x")
            self.assertEqual(unique_output_path(target).name, "book(1).pdf")
            (root / "book(1).pdf").write_bytes(b"x")
            self.assertEqual(unique_output_path(target).name, "book(2).pdf")


class JpegTests(unittest.TestCase):
    def test_dimensions_from_encoded_image(self) -> None:
        data = encode_jpeg(Image.new("RGBA", (37, 21), (1, 2, 3, 0)), quality=90)
        self.assertEqual(jpeg_dimensions(data), (37, 21))

    def test_dimensions_skip_app_segments(self) -> None:
        # SOI, APP0 (length 4, 2 payload bytes), fill byte, SOF0.
        data = bytes(
            [0xFF, 0xD8, 0xFF, 0xE0, 0x00, 0x04, 0x00, 0x00, 0xFF,
             0xFF, 0xC0, 0x00, 0x11, 0x08, 0x01, 0x02, 0x03, 0x04, 0x03]
        )
        self.assertEqual(jpeg_dimensions(data), (0x0304, 0x0102))

    def test_missing_soi(self) -> None:
        with self.assertRaises(CodecError):
            jpeg_dimensions(b"\x89PNG\r\n\x1a\n")

    def test_missing_sof(self) -> None:
        with self.assertRaises(CodecError):
            jpeg_dimensions(bytes([0xFF, 0xD8, 0xFF, 0xD9, 0x00, 0x00, 0x00]))

    def test_read_with_dimensions(self) -> None:
        with workspace_temp_dir("utils") as root:
            path = root / "page.JPG"
            Image.new("RGB", (12, 34)).save(path, format="JPEG")
            self.assertTrue(is_jpeg_file(path))
            data, width, height = read_jpeg_with_dimensions(path)
            self.assertEqual((width, height), (12, 34))
            self.assertEqual(data, path.read_bytes())


if __name__ == "__main__":
    unittest.main()
