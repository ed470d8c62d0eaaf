"""
Render the blank page that opens a spread PDF, optionally with work info.

Layout (all sizes relative to page height):
- title block (title, subtitle, version) centered on 35% of the height
- label above the title block, author credit above the vertical middle
- every line centered horizontally by its advance width
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Tuple

from PIL import Image, ImageDraw

from .cache import FontKind, FontStore
from .options import WorkInfo


TITLE_CENTER_RATIO = 0.35
TITLE_LINE_HEIGHT = 1.6
SIDE_LINE_HEIGHT = 1.4
LABEL_GAP = 3.0  # in base sizes, between label block and title block
AUTHOR_GAP = 2.5  # in base sizes, between author block and page middle

BLACK = (0, 0, 0)
GRAY = (80, 80, 80)


@dataclass(frozen=True)
class TextLine:
    text: str
    size: float
    color: Tuple[int, int, int]


@dataclass(frozen=True)
class PlacedLine:
    line: TextLine
    top: float


def _block_height(lines: List[TextLine], line_height: float) -> float:
    return sum(line.size * line_height for line in lines)


def _stack(lines: List[TextLine], start: float, line_height: float) -> List[PlacedLine]:
    placed = []
    y = start
    for line in lines:
        placed.append(PlacedLine(line, y))
        y += line.size * line_height
    return placed


def layout_title_page(height: int, info: WorkInfo) -> List[PlacedLine]:
    """Compute the top edge of every non-empty line."""

    base = height / 30.0
    title_block = [
        TextLine(text, base * scale, BLACK)
        for text, scale in ((info.title, 2.0), (info.subtitle, 1.0), (info.version, 1.2))
        if text
    ]
    label_block = [TextLine(info.label, base * 0.7, GRAY)] if info.label else []
    author_text = info.author_line()
    author_block = [TextLine(author_text, base * 0.85, GRAY)] if author_text else []

    title_start = height * TITLE_CENTER_RATIO - _block_height(title_block, TITLE_LINE_HEIGHT) / 2.0
    placed = _stack(title_block, title_start, TITLE_LINE_HEIGHT)

    if label_block:
        label_start = title_start - base * LABEL_GAP - _block_height(label_block, SIDE_LINE_HEIGHT)
        placed.extend(_stack(label_block, label_start, SIDE_LINE_HEIGHT))

    if author_block:
        author_start = height / 2.0 - base * AUTHOR_GAP - _block_height(author_block, SIDE_LINE_HEIGHT)
        placed.extend(_stack(author_block, author_start, SIDE_LINE_HEIGHT))

    return placed


def render_title_page(
    width: int,
    height: int,
    work_info: Optional[WorkInfo],
    print_work_info: bool,
    fonts: FontStore,
) -> Image.Image:
    """White RGB page; text is drawn only when print_work_info and work_info are set."""

    page = Image.new("RGB", (width, height), (255, 255, 255))
    if not print_work_info or work_info is None:
        return page

    draw = ImageDraw.Draw(page)
    for placed in layout_title_page(height, work_info):
        font = fonts.font(FontKind.TEXT, round(placed.line.size))
        advance = font.getlength(placed.line.text)
        x = max(0, int((width - advance) / 2))
        draw.text((x, int(placed.top)), placed.line.text, fill=placed.line.color, font=font)
    return page
