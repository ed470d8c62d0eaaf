"""
Build print PDFs from page images with PyMuPDF.

Why this module exists:
- Page size follows each image at a fixed DPI, plus optional padding, so a
  document can mix page sizes (single mode) or spread sizes (spread mode).
- JPEG inputs are embedded as-is; other formats are decoded and re-encoded
  at maximum JPEG quality first.
- A page that cannot be loaded is logged and skipped rather than failing
  the whole document. Saving problems are fatal.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

import fitz  # PyMuPDF
from PIL import Image

from .batch import CancellationToken, ProgressEvent, ProgressSink
from .cache import ResourceStore, default_store
from .images import load_image
from .jpeg import PDF_JPEG_QUALITY, encode_jpeg, is_jpeg_file, read_jpeg_with_dimensions
from .manifest import ManifestRecorder, ensure_recorder
from .options import NombreSize, PdfOptions, WorkInfo
from .pdf_layout import (
    Placement,
    mm_to_pt,
    nombre_baseline_pt,
    nombre_font_size_pt,
    plan_spreads,
    px_to_mm,
    single_page_geometry,
    spread_geometry,
)
from .title_page import render_title_page
from .utils import (
    CancelledError,
    UserError,
    ensure_dir,
    ensure_file_path,
    ensure_input_dir,
    unique_output_path,
)


# PyMuPDF name of the built-in Helvetica.
NOMBRE_FONT = "helv"


@dataclass(frozen=True)
class PageSource:
    """JPEG bytes ready to embed, plus pixel size."""

    stream: bytes
    width: int
    height: int

    @classmethod
    def from_image(cls, image: Image.Image) -> "PageSource":
        return cls(encode_jpeg(image, PDF_JPEG_QUALITY), image.width, image.height)


def load_page_source(path: Path, store: Optional[ResourceStore] = None) -> PageSource:
    """JPEG files skip decoding entirely; their size comes from the SOF marker."""

    if is_jpeg_file(path):
        data, width, height = read_jpeg_with_dimensions(path)
        return PageSource(data, width, height)
    return PageSource.from_image(load_image(path, store=store))


class _Progress:
    def __init__(self, sink: Optional[ProgressSink], total: int, recorder: ManifestRecorder) -> None:
        self.sink = sink
        self.total = total
        self.recorder = recorder

    def __call__(self, completed: int, filename: str, phase: str) -> None:
        if self.sink is None:
            return
        try:
            self.sink(ProgressEvent(completed, self.total, filename, phase, 0))
        except Exception as exc:  # a broken sink must not affect the document
            self.recorder.log(f"Progress sink failed: {exc}", level="debug")


def _try_load(
    input_dir: Path,
    name: str,
    store: ResourceStore,
    recorder: ManifestRecorder,
) -> Optional[PageSource]:
    try:
        return load_page_source(input_dir / name, store=store)
    except UserError as exc:
        recorder.log(f"Skipping {name}: {exc}", level="warning")
        recorder.add_action(action="pdf_page", status="skipped", input=name, error=str(exc))
        return None


def _insert_image(page: fitz.Page, placement: Placement, page_height_mm: float, source: PageSource) -> None:
    page.insert_image(fitz.Rect(*placement.rect_pt(page_height_mm)), stream=source.stream)


def _insert_nombre(
    page: fitz.Page,
    text: str,
    center_x_mm: float,
    padding_mm: float,
    font_pt: float,
) -> None:
    """Center text horizontally on center_x_mm inside the bottom padding band."""

    text_width = fitz.get_text_length(text, fontname=NOMBRE_FONT, fontsize=font_pt)
    x = mm_to_pt(center_x_mm) - text_width / 2.0
    y = page.rect.height - nombre_baseline_pt(padding_mm, font_pt)
    page.insert_text(fitz.Point(x, y), text, fontsize=font_pt, fontname=NOMBRE_FONT, color=(0, 0, 0))


def _save(doc: fitz.Document, output_path: Path) -> None:
    if doc.page_count == 0:
        raise UserError("No pages could be added to the PDF.")
    ensure_dir(output_path.parent)
    try:
        doc.save(str(output_path), garbage=3, deflate=True)
    except Exception as exc:  # PyMuPDF raises its own error types
        raise UserError(f"Failed to save PDF {output_path}: {exc}") from exc


def generate_single_pdf(
    input_dir: Path,
    output_path: Path,
    file_names: Sequence[str],
    padding_mm: float,
    add_nombre: bool,
    nombre_size: NombreSize,
    store: Optional[ResourceStore] = None,
    progress: Optional[ProgressSink] = None,
    recorder: Optional[ManifestRecorder] = None,
) -> Path:
    """
    One image per page. Page numbers are 1-based positions in file_names.

    An existing output file is overwritten.
    """

    store = store if store is not None else default_store()
    recorder = ensure_recorder(recorder, "pdf")
    total = len(file_names)
    emit = _Progress(progress, total, recorder)
    draw_numbers = add_nombre and padding_mm > 0
    font_pt = nombre_font_size_pt(nombre_size)

    with fitz.open() as doc:
        for position, name in enumerate(file_names, start=1):
            emit(position, name, f"pdf: loading ({position}/{total})")
            source = _try_load(input_dir, name, store, recorder)
            if source is None:
                continue

            emit(position, name, f"pdf: adding page ({position}/{total})")
            geometry = single_page_geometry(source.width, source.height, padding_mm)
            page = doc.new_page(
                width=mm_to_pt(geometry.page_width_mm),
                height=mm_to_pt(geometry.page_height_mm),
            )
            _insert_image(page, geometry.image, geometry.page_height_mm, source)
            if draw_numbers:
                _insert_nombre(page, str(position), geometry.page_width_mm / 2.0, padding_mm, font_pt)

            recorder.add_action(action="pdf_page", status="written", input=name, page=position)

        emit(total, "", "pdf: saving")
        _save(doc, output_path)

    recorder.log(f"Wrote single-page PDF with {total} input(s) -> {output_path}")
    return output_path


def generate_spread_pdf(
    input_dir: Path,
    output_path: Path,
    file_names: Sequence[str],
    padding_mm: float,
    gutter_mm: float,
    add_white_page: bool,
    print_work_info: bool,
    work_info: Optional[WorkInfo],
    add_nombre: bool,
    nombre_size: NombreSize,
    store: Optional[ResourceStore] = None,
    token: Optional[CancellationToken] = None,
    progress: Optional[ProgressSink] = None,
    recorder: Optional[ManifestRecorder] = None,
) -> Path:
    """
    Two images per page, right then left (right-to-left reading).

    The token is checked before each spread; cancelling raises CancelledError
    and nothing is written. If the right image of a pair fails to load the
    whole pair is skipped; a failing left image leaves the left side empty.
    An existing output file is kept and a "name(N).pdf" path is used instead.
    """

    store = store if store is not None else default_store()
    recorder = ensure_recorder(recorder, "pdf")
    token = token if token is not None else CancellationToken()
    total = len(file_names)
    plans = plan_spreads(total, add_white_page)
    emit = _Progress(progress, total, recorder)
    draw_numbers = add_nombre and padding_mm > 0
    font_pt = nombre_font_size_pt(nombre_size)

    first: Optional[PageSource] = None
    if add_white_page:
        # The blank page takes its size from the first image.
        first = load_page_source(input_dir / file_names[0], store=store)

    with fitz.open() as doc:
        for plan in plans:
            if token.cancelled:
                recorder.log("PDF generation cancelled.", level="warning")
                raise CancelledError(f"cancelled ({plan.index}/{len(plans)} spreads added)")

            right_index = plan.right.file_index
            name = file_names[right_index] if right_index is not None else file_names[0]
            completed = (right_index or 0) + 1
            emit(completed, name, f"spread pdf: loading ({plan.index + 1}/{len(plans)})")

            if plan.right.is_blank:
                if first is None:
                    raise UserError("A blank page needs the first image to take its size from.")
                blank = render_title_page(first.width, first.height, work_info, print_work_info, store.fonts)
                right = PageSource.from_image(blank)
                recorder.add_action(action="pdf_page", status="written", input="(blank)", page=None)
            else:
                loaded = _try_load(input_dir, file_names[right_index], store, recorder)
                if loaded is None:
                    continue
                right = loaded

            left: Optional[PageSource] = None
            if plan.left is not None:
                if plan.left.file_index == 0 and first is not None:
                    left = first
                else:
                    left = _try_load(input_dir, file_names[plan.left.file_index], store, recorder)

            emit(completed, name, f"spread pdf: adding page ({plan.index + 1}/{len(plans)})")
            geometry = spread_geometry(
                (right.width, right.height),
                (left.width, left.height) if left is not None else None,
                gutter_mm,
                padding_mm,
            )
            page = doc.new_page(
                width=mm_to_pt(geometry.page_width_mm),
                height=mm_to_pt(geometry.page_height_mm),
            )
            _insert_image(page, geometry.right, geometry.page_height_mm, right)
            if left is not None and geometry.left is not None:
                _insert_image(page, geometry.left, geometry.page_height_mm, left)

            if draw_numbers:
                if plan.right.page_number is not None:
                    _insert_nombre(
                        page, str(plan.right.page_number), geometry.right.center_x_mm, padding_mm, font_pt
                    )
                if left is not None and geometry.left is not None and plan.left is not None:
                    _insert_nombre(
                        page, str(plan.left.page_number), geometry.left.center_x_mm, padding_mm, font_pt
                    )

            recorder.add_action(
                action="pdf_spread",
                status="written",
                spread=plan.index + 1,
                right=None if plan.right.is_blank else file_names[right_index],
                left=file_names[plan.left.file_index] if left is not None and plan.left else None,
            )

        emit(total, "", "spread pdf: saving")
        actual_path = unique_output_path(output_path)
        _save(doc, actual_path)

    recorder.log(f"Wrote spread PDF with {total} input(s) -> {actual_path}")
    return actual_path


def generate_pdf(
    input_dir: Path,
    output_path: Path,
    file_names: Sequence[str],
    pdf_options: PdfOptions,
    store: Optional[ResourceStore] = None,
    token: Optional[CancellationToken] = None,
    progress: Optional[ProgressSink] = None,
    recorder: Optional[ManifestRecorder] = None,
) -> Path:
    """
    Validate inputs, convert padding/gutter from pixels to mm, and dispatch.

    Returns the path actually written (spread mode may add a "(N)" suffix).
    """

    input_dir = Path(input_dir)
    output_path = Path(output_path)
    if not file_names:
        raise UserError("No files to put into the PDF.")
    ensure_input_dir(input_dir, "Input directory")
    ensure_file_path(output_path, "Output PDF")

    padding_mm = px_to_mm(pdf_options.padding)
    gutter_mm = px_to_mm(pdf_options.gutter)

    if pdf_options.is_spread:
        return generate_spread_pdf(
            input_dir,
            output_path,
            file_names,
            padding_mm=padding_mm,
            gutter_mm=gutter_mm,
            add_white_page=pdf_options.add_white_page,
            print_work_info=pdf_options.print_work_info,
            work_info=pdf_options.work_info,
            add_nombre=pdf_options.add_nombre,
            nombre_size=pdf_options.nombre_size,
            store=store,
            token=token,
            progress=progress,
            recorder=recorder,
        )
    return generate_single_pdf(
        input_dir,
        output_path,
        file_names,
        padding_mm=padding_mm,
        add_nombre=pdf_options.add_nombre,
        nombre_size=pdf_options.nombre_size,
        store=store,
        progress=progress,
        recorder=recorder,
    )
