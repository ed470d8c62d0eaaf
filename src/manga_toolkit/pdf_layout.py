"""
Page geometry for PDF output, with no PDF library involved.

Why this module exists:
- Every PDF page takes its size from the images on it (converted at a fixed
  DPI), so pages in one document can differ in size.
- Spread ordering (right page first, optional leading blank page) and page
  numbering are easy to get wrong; keeping them pure makes them testable.

Units: source pixels in, millimeters for layout, points for PyMuPDF.
Placements are measured from the page's bottom-left corner, the way a
printer describes them; ``Placement.rect_pt`` flips to PyMuPDF's top-left
origin.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Tuple

from .options import NombreSize


DEFAULT_DPI = 350.0
MM_PER_INCH = 25.4
PT_PER_INCH = 72.0

NOMBRE_FONT_PT = {
    NombreSize.SMALL: 7.0,
    NombreSize.MEDIUM: 9.0,
    NombreSize.LARGE: 12.0,
    NombreSize.XLARGE: 14.0,
}
# Helvetica digits are about 0.7 em tall; half of that centers them on a line.
NOMBRE_BASELINE_DROP = 0.35


def px_to_mm(px: float, dpi: float = DEFAULT_DPI) -> float:
    return px / dpi * MM_PER_INCH


def mm_to_px(mm: float, dpi: float = DEFAULT_DPI) -> int:
    return int(mm / MM_PER_INCH * dpi)


def mm_to_pt(mm: float) -> float:
    return mm / MM_PER_INCH * PT_PER_INCH


def nombre_font_size_pt(size: NombreSize) -> float:
    return NOMBRE_FONT_PT[size]


def nombre_baseline_pt(padding_mm: float, font_pt: float) -> float:
    """Baseline height above the page bottom that centers digits in the padding band."""

    return mm_to_pt(padding_mm) / 2.0 - font_pt * NOMBRE_BASELINE_DROP


@dataclass(frozen=True)
class Placement:
    """An image box on a page, in mm from the bottom-left corner."""

    x_mm: float
    bottom_mm: float
    width_mm: float
    height_mm: float

    @property
    def center_x_mm(self) -> float:
        return self.x_mm + self.width_mm / 2.0

    def rect_pt(self, page_height_mm: float) -> Tuple[float, float, float, float]:
        """(x0, y0, x1, y1) in points with a top-left origin."""

        x0 = mm_to_pt(self.x_mm)
        x1 = mm_to_pt(self.x_mm + self.width_mm)
        y1 = mm_to_pt(page_height_mm - self.bottom_mm)
        y0 = mm_to_pt(page_height_mm - self.bottom_mm - self.height_mm)
        return x0, y0, x1, y1


@dataclass(frozen=True)
class SinglePageGeometry:
    page_width_mm: float
    page_height_mm: float
    image: Placement


def single_page_geometry(
    width_px: int,
    height_px: int,
    padding_mm: float,
    dpi: float = DEFAULT_DPI,
) -> SinglePageGeometry:
    """Page = image plus padding on every side; image sits at (padding, padding)."""

    width_mm = px_to_mm(width_px, dpi)
    height_mm = px_to_mm(height_px, dpi)
    return SinglePageGeometry(
        page_width_mm=width_mm + padding_mm * 2.0,
        page_height_mm=height_mm + padding_mm * 2.0,
        image=Placement(padding_mm, padding_mm, width_mm, height_mm),
    )


@dataclass(frozen=True)
class SpreadSlot:
    """
    One half of a spread.

    file_index None is the generated blank (title) page; page_number None
    means no number is printed for the slot.
    """

    file_index: Optional[int]
    page_number: Optional[int]

    @property
    def is_blank(self) -> bool:
        return self.file_index is None


@dataclass(frozen=True)
class SpreadPlan:
    index: int
    right: SpreadSlot
    left: Optional[SpreadSlot]


def plan_spreads(count: int, add_white_page: bool) -> List[SpreadPlan]:
    """
    Pair files right-to-left: (0, 1), (2, 3), ...

    With add_white_page the first pair is (blank, 0), then (1, 2), ...
    Page numbers are file_index + 1; the blank page has none.
    """

    plans: List[SpreadPlan] = []
    file_index = -1 if add_white_page else 0
    while file_index < count:
        if file_index == -1:
            right = SpreadSlot(file_index=None, page_number=None)
        else:
            right = SpreadSlot(file_index=file_index, page_number=file_index + 1)

        left_index = file_index + 1
        left: Optional[SpreadSlot] = None
        if 0 <= left_index < count:
            left = SpreadSlot(file_index=left_index, page_number=left_index + 1)

        plans.append(SpreadPlan(index=len(plans), right=right, left=left))
        file_index += 2
    return plans


@dataclass(frozen=True)
class SpreadGeometry:
    page_width_mm: float
    page_height_mm: float
    right: Placement
    left: Optional[Placement]


def spread_geometry(
    right_px: Tuple[int, int],
    left_px: Optional[Tuple[int, int]],
    gutter_mm: float,
    padding_mm: float,
    dpi: float = DEFAULT_DPI,
) -> SpreadGeometry:
    """
    Size one spread page from its two images.

    width = right + left (0 if absent) + gutter + 2 * padding
    height = max(right, left) + 2 * padding
    The left image sits at the padding, the right image after left + gutter.
    Both are bottom-aligned on the padding.
    """

    right_w = px_to_mm(right_px[0], dpi)
    right_h = px_to_mm(right_px[1], dpi)
    if left_px is not None:
        left_w = px_to_mm(left_px[0], dpi)
        left_h = px_to_mm(left_px[1], dpi)
    else:
        left_w = 0.0
        left_h = 0.0

    right_x = padding_mm + left_w + gutter_mm
    return SpreadGeometry(
        page_width_mm=right_w + left_w + gutter_mm + padding_mm * 2.0,
        page_height_mm=max(right_h, left_h) + padding_mm * 2.0,
        right=Placement(right_x, padding_mm, right_w, right_h),
        left=Placement(padding_mm, padding_mm, left_w, left_h) if left_px is not None else None,
    )
