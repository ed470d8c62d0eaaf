"""
PDF generation tests: page counts, page numbers, skipped pages and output naming.
"""

from __future__ import annotations

import io
import unittest
from pathlib import Path
from typing import List

from helpers_cli import workspace_temp_dir

import fitz  # PyMuPDF
from PIL import Image

from manga_toolkit.batch import CancellationToken
from manga_toolkit.cache import FontStore, ResourceStore
from manga_toolkit.manifest import ManifestRecorder
from manga_toolkit.options import PdfOptions, WorkInfo
from manga_toolkit.pdf import generate_pdf, load_page_source
from manga_toolkit.utils import CancelledError, UserError


# 350 px is one inch (72 pt) at the layout DPI.
PAGE_PX = (350, 700)
PADDING_PX = 175


def _write_pages(folder: Path, count: int, suffix: str = ".png") -> List[str]:
    names = []
    for index in range(count):
        name = f"p{index + 1:02d}{suffix}"
        Image.new("RGB", PAGE_PX, (240, 240, 240)).save(folder / name)
        names.append(name)
    return names


def _store() -> ResourceStore:
    return ResourceStore(fonts=FontStore(numeric_candidates=(), text_candidates=()))


def _recorder() -> ManifestRecorder:
    return ManifestRecorder(command="pdf", console_stream=io.StringIO())


def _page_words(path: Path) -> List[List[str]]:
    with fitz.open(str(path)) as doc:
        return [page.get_text().split() for page in doc]


class SinglePdfTests(unittest.TestCase):
    def test_one_page_per_image_with_numbers(self) -> None:
        with workspace_temp_dir("pdf") as tmp:
            names = _write_pages(tmp, 3)
            out = tmp / "book.pdf"
            options = PdfOptions(padding=PADDING_PX, add_nombre=True)

            written = generate_pdf(tmp, out, names, options, store=_store())

            self.assertEqual(written, out)
            self.assertEqual(_page_words(out), [["1"], ["2"], ["3"]])
            with fitz.open(str(out)) as doc:
                self.assertAlmostEqual(doc[0].rect.width, 144.0, places=1)
                self.assertAlmostEqual(doc[0].rect.height, 216.0, places=1)

    def test_no_numbers_without_padding(self) -> None:
        with workspace_temp_dir("pdf") as tmp:
            names = _write_pages(tmp, 2)
            out = tmp / "book.pdf"
            generate_pdf(tmp, out, names, PdfOptions(padding=0, add_nombre=True), store=_store())
            self.assertEqual(_page_words(out), [[], []])

    def test_existing_output_is_overwritten(self) -> None:
        with workspace_temp_dir("pdf") as tmp:
            names = _write_pages(tmp, 1)
            out = tmp / "book.pdf"
            out.write_bytes(b"old")
            written = generate_pdf(tmp, out, names, PdfOptions(), store=_store())
            self.assertEqual(written, out)
            self.assertTrue(out.read_bytes().startswith(b"%PDF"))

    def test_unloadable_page_is_skipped(self) -> None:
        with workspace_temp_dir("pdf") as tmp:
            names = _write_pages(tmp, 2)
            (tmp / "bad.png").write_bytes(b"garbage")
            recorder = _recorder()
            out = tmp / "book.pdf"

            generate_pdf(tmp, out, [names[0], "bad.png", names[1]], PdfOptions(), store=_store(), recorder=recorder)

            with fitz.open(str(out)) as doc:
                self.assertEqual(doc.page_count, 2)
            skipped = [a for a in recorder.actions if a["status"] == "skipped"]
            self.assertEqual([a["input"] for a in skipped], ["bad.png"])

    def test_no_loadable_pages_is_an_error(self) -> None:
        with workspace_temp_dir("pdf") as tmp:
            (tmp / "bad.png").write_bytes(b"garbage")
            with self.assertRaises(UserError):
                generate_pdf(tmp, tmp / "book.pdf", ["bad.png"], PdfOptions(), store=_store(), recorder=_recorder())
            self.assertFalse((tmp / "book.pdf").exists())

    def test_empty_file_list_is_rejected(self) -> None:
        with workspace_temp_dir("pdf") as tmp:
            with self.assertRaises(UserError):
                generate_pdf(tmp, tmp / "book.pdf", [], PdfOptions(), store=_store())


class SpreadPdfTests(unittest.TestCase):
    def _spread(self, **values) -> PdfOptions:
        base = {"is_spread": True, "padding": PADDING_PX, "gutter": 0}
        base.update(values)
        return PdfOptions(**base)

    def test_pairs_and_numbers(self) -> None:
        with workspace_temp_dir("pdf") as tmp:
            names = _write_pages(tmp, 3)
            out = tmp / "spread.pdf"
            generate_pdf(tmp, out, names, self._spread(add_nombre=True), store=_store())

            words = _page_words(out)
            self.assertEqual(len(words), 2)
            self.assertEqual(sorted(words[0]), ["1", "2"])
            self.assertEqual(words[1], ["3"])
            with fitz.open(str(out)) as doc:
                self.assertAlmostEqual(doc[0].rect.width, 72.0 * 2 + 72.0, places=1)
                self.assertAlmostEqual(doc[1].rect.width, 72.0 + 72.0, places=1)

    def test_white_page_first(self) -> None:
        with workspace_temp_dir("pdf") as tmp:
            names = _write_pages(tmp, 3)
            out = tmp / "spread.pdf"
            generate_pdf(tmp, out, names, self._spread(add_white_page=True, add_nombre=True), store=_store())

            words = _page_words(out)
            self.assertEqual(len(words), 2)
            self.assertEqual(words[0], ["1"])
            self.assertEqual(sorted(words[1]), ["2", "3"])

    def test_right_page_is_placed_right_of_left_page(self) -> None:
        with workspace_temp_dir("pdf") as tmp:
            names = _write_pages(tmp, 2)
            out = tmp / "spread.pdf"
            generate_pdf(tmp, out, names, self._spread(add_nombre=True), store=_store())

            with fitz.open(str(out)) as doc:
                positions = {
                    word[4]: word[0]
                    for word in doc[0].get_text("words")
                }
            self.assertGreater(positions["1"], positions["2"])

    def test_title_page_with_work_info(self) -> None:
        with workspace_temp_dir("pdf") as tmp:
            names = _write_pages(tmp, 1)
            out = tmp / "spread.pdf"
            options = self._spread(
                add_white_page=True,
                print_work_info=True,
                work_info=WorkInfo(title="Title", author_type=2, author1="Someone"),
            )
            generate_pdf(tmp, out, names, options, store=_store())
            with fitz.open(str(out)) as doc:
                self.assertEqual(doc.page_count, 1)
                self.assertEqual(len(doc[0].get_images()), 2)

    def test_existing_output_gets_numbered_name(self) -> None:
        with workspace_temp_dir("pdf") as tmp:
            names = _write_pages(tmp, 2)
            out = tmp / "spread.pdf"
            out.write_bytes(b"keep me")

            written = generate_pdf(tmp, out, names, self._spread(), store=_store())

            self.assertEqual(written.name, "spread(1).pdf")
            self.assertEqual(out.read_bytes(), b"keep me")

    def test_cancelled_before_start_writes_nothing(self) -> None:
        token = CancellationToken()
        token.cancel()
        with workspace_temp_dir("pdf") as tmp:
            names = _write_pages(tmp, 4)
            out = tmp / "spread.pdf"
            with self.assertRaises(CancelledError):
                generate_pdf(tmp, out, names, self._spread(), store=_store(), token=token, recorder=_recorder())
            self.assertFalse(out.exists())

    def test_failed_right_page_skips_pair(self) -> None:
        with workspace_temp_dir("pdf") as tmp:
            names = _write_pages(tmp, 4)
            (tmp / names[2]).write_bytes(b"garbage")
            out = tmp / "spread.pdf"
            generate_pdf(tmp, out, names, self._spread(), store=_store(), recorder=_recorder())
            with fitz.open(str(out)) as doc:
                self.assertEqual(doc.page_count, 1)

    def test_failed_left_page_leaves_side_empty(self) -> None:
        with workspace_temp_dir("pdf") as tmp:
            names = _write_pages(tmp, 2)
            (tmp / names[1]).write_bytes(b"garbage")
            out = tmp / "spread.pdf"
            generate_pdf(tmp, out, names, self._spread(), store=_store(), recorder=_recorder())
            with fitz.open(str(out)) as doc:
                self.assertEqual(doc.page_count, 1)
                self.assertEqual(len(doc[0].get_images()), 1)
                self.assertAlmostEqual(doc[0].rect.width, 72.0 + 72.0, places=1)


class PageSourceTests(unittest.TestCase):
    def test_jpeg_is_embedded_without_decoding(self) -> None:
        with workspace_temp_dir("pdf") as tmp:
            name = _write_pages(tmp, 1, suffix=".jpg")[0]
            source = load_page_source(tmp / name)
            self.assertEqual((source.width, source.height), PAGE_PX)
            self.assertEqual(source.stream, (tmp / name).read_bytes())

    def test_png_is_reencoded_as_jpeg(self) -> None:
        with workspace_temp_dir("pdf") as tmp:
            name = _write_pages(tmp, 1)[0]
            source = load_page_source(tmp / name, store=_store())
            self.assertTrue(source.stream.startswith(b"\xff\xd8"))


if __name__ == "__main__":
    unittest.main()
