"""
Per-image processing: trim handling, page-number stamp, resize, JPEG output.

Why this module exists:
- Scans are prepared at a reference resolution, but the files handed to us
  may be larger or smaller. Crop edges are rescaled per image before use.
- Tachikiri (bleed) handling has several modes: crop to the trim box, draw a
  1px trim line, or wash out the bleed area with a translucent fill.
- The stamped page number (nombre) sits in the bleed band below the trim box
  when there is one, otherwise just above the bottom edge.

Order of operations is fixed: trim handling, then stamp, then resize.
"""

from __future__ import annotations

from dataclasses import dataclass
import math
from pathlib import Path
from typing import List, Optional, Tuple

from PIL import Image, ImageDraw

from .cache import FontKind, FontStore, ResourceStore, default_store
from .images import load_image
from .jpeg import JPEG_QUALITY, write_jpeg
from .options import MarkColor, NombreSize, ProcessOptions, ResizeMode, TachikiriMode
from .utils import GeometryError


NOMBRE_FONT_PX = {
    NombreSize.SMALL: 80,
    NombreSize.MEDIUM: 120,
    NombreSize.LARGE: 160,
    NombreSize.XLARGE: 200,
}
NOMBRE_BOX_RGBA = (255, 255, 255, 210)
NOMBRE_TEXT_RGB = (60, 60, 60)
# Minimum gap between the stamp box and the bleed band edges.
NOMBRE_EDGE_GAP = 5


@dataclass(frozen=True)
class CropRect:
    """Trim box in image pixels; right/bottom are exclusive."""

    left: int
    top: int
    right: int
    bottom: int

    @property
    def width(self) -> int:
        return self.right - self.left

    @property
    def height(self) -> int:
        return self.bottom - self.top

    def as_box(self) -> Tuple[int, int, int, int]:
        return self.left, self.top, self.right, self.bottom


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _scale_factors(options: ProcessOptions, width: int, height: int) -> Tuple[float, float]:
    if options.reference_width > 0 and options.reference_height > 0:
        return width / options.reference_width, height / options.reference_height
    return 1.0, 1.0


def scale_crop_rect(options: ProcessOptions, width: int, height: int) -> CropRect:
    """
    Map reference-resolution crop edges onto an image of width x height.

    Edges are rounded then clamped so 0 <= left <= right <= width and
    0 <= top <= bottom <= height. An empty result raises GeometryError.
    """

    scale_x, scale_y = _scale_factors(options, width, height)
    left = min(_round_half_up(options.crop_left * scale_x), width)
    top = min(_round_half_up(options.crop_top * scale_y), height)
    right = max(min(_round_half_up(options.crop_right * scale_x), width), left)
    bottom = max(min(_round_half_up(options.crop_bottom * scale_y), height), top)

    rect = CropRect(left, top, right, bottom)
    if rect.width == 0 or rect.height == 0:
        raise GeometryError(
            f"Crop rectangle is empty for a {width}x{height} image "
            f"(left={left}, top={top}, right={right}, bottom={bottom})."
        )
    return rect


def draw_border(image: Image.Image, color: MarkColor) -> Image.Image:
    """Draw a 1px opaque line along all four image edges."""

    result = image.copy()
    draw = ImageDraw.Draw(result)
    draw.rectangle((0, 0, result.width - 1, result.height - 1), outline=color.rgb + (255,))
    return result


def draw_border_at(image: Image.Image, rect: CropRect, color: MarkColor) -> Image.Image:
    """Draw a 1px line on the inner edges of rect (rows top and bottom-1, columns left and right-1)."""

    result = image.copy()
    if rect.width <= 0 or rect.height <= 0:
        return result
    draw = ImageDraw.Draw(result)
    draw.rectangle(
        (rect.left, rect.top, rect.right - 1, rect.bottom - 1),
        outline=color.rgb + (255,),
    )
    return result


def fill_alpha(opacity: int) -> int:
    """Opacity percent (0-100) to an 8-bit alpha, truncating like 2.55 * opacity."""

    return opacity * 255 // 100


def _blend_table(color: MarkColor, opacity: int) -> List[int]:
    """Point table for RGBA: each channel moves toward the fill, alpha becomes opaque."""

    alpha = fill_alpha(opacity) / 255.0
    keep = 1.0 - alpha
    table: List[int] = []
    for channel in color.rgb:
        table.extend(int(value * keep + channel * alpha) for value in range(256))
    table.extend([255] * 256)
    return table


def outside_bands(rect: CropRect, width: int, height: int) -> List[Tuple[int, int, int, int]]:
    """
    The four non-overlapping boxes around rect: top, bottom, left, right.

    Left and right bands only span rows top..bottom so corners are covered
    exactly once.
    """

    bands = [
        (0, 0, width, rect.top),
        (0, rect.bottom, width, height),
        (0, rect.top, rect.left, rect.bottom),
        (rect.right, rect.top, width, rect.bottom),
    ]
    return [box for box in bands if box[2] > box[0] and box[3] > box[1]]


def fill_outside(image: Image.Image, rect: CropRect, color: MarkColor, opacity: int) -> Image.Image:
    """Blend color over everything outside rect; pixels inside rect are untouched."""

    result = image.convert("RGBA") if image.mode != "RGBA" else image.copy()
    table = _blend_table(color, opacity)
    for box in outside_bands(rect, result.width, result.height):
        result.paste(result.crop(box).point(table), box)
    return result


def nombre_margin(options: ProcessOptions, height: int, rect: Optional[CropRect] = None) -> int:
    """
    Height of the bleed band below the trim box, where the stamp goes.

    Cropping modes remove the band, so the margin is 0. With no trim handling
    only the vertical scale is applied to crop_bottom.
    """

    mode = options.tachikiri_type
    if mode is TachikiriMode.NONE:
        scale_y = height / options.reference_height if options.reference_height > 0 else 1.0
        bottom = min(_round_half_up(options.crop_bottom * scale_y), height)
        return height - bottom
    if mode.crops:
        return 0
    if rect is None:
        raise ValueError("rect is required for non-cropping modes")
    return height - rect.bottom


def nombre_box(
    image_width: int,
    image_height: int,
    text_width: float,
    font_px: int,
    margin: int,
) -> Tuple[int, int, int, int]:
    """Return (x, y, width, height) of the stamp background box."""

    padding_x = int(font_px * 0.5)
    padding_y = int(font_px * 0.3)
    box_width = int(text_width) + padding_x * 2
    box_height = font_px + padding_y * 2
    bottom_offset = int(font_px * 0.4)

    box_x = int((image_width - box_width) / 2)
    if 0 < margin < image_height // 2:
        band_top = image_height - margin
        centered = band_top + int((margin - box_height) / 2)
        box_y = min(max(centered, band_top + NOMBRE_EDGE_GAP), image_height - box_height - NOMBRE_EDGE_GAP)
    else:
        box_y = image_height - bottom_offset - box_height
    return box_x, box_y, box_width, box_height


def stamp_nombre(
    image: Image.Image,
    page_number: int,
    size: NombreSize,
    margin: int,
    fonts: FontStore,
) -> Image.Image:
    """Draw the page number on a translucent white box, centered horizontally."""

    font_px = NOMBRE_FONT_PX[size]
    font = fonts.font(FontKind.NUMERIC, font_px)
    text = str(page_number)
    text_width = font.getlength(text)

    box_x, box_y, box_width, box_height = nombre_box(
        image.width, image.height, text_width, font_px, margin
    )

    base = image.convert("RGBA") if image.mode != "RGBA" else image
    overlay = Image.new("RGBA", base.size, (0, 0, 0, 0))
    ImageDraw.Draw(overlay).rectangle(
        (box_x, box_y, box_x + box_width - 1, box_y + box_height - 1),
        fill=NOMBRE_BOX_RGBA,
    )
    result = Image.alpha_composite(base, overlay)

    ImageDraw.Draw(result).text(
        (box_x + box_width / 2, box_y + box_height / 2),
        text,
        fill=NOMBRE_TEXT_RGB + (255,),
        font=font,
        anchor="mm",
    )
    return result


def apply_resize(image: Image.Image, options: ProcessOptions) -> Image.Image:
    """Percent or fit-into-target resize; aspect ratio is kept in fixed mode."""

    if options.resize_mode is ResizeMode.NONE:
        return image

    width, height = image.size
    if options.resize_mode is ResizeMode.PERCENT:
        scale = options.resize_percent / 100.0
    else:
        target_width, target_height = options.resize_target
        scale = min(target_width / width, target_height / height)

    new_size = (
        max(1, _round_half_up(width * scale)),
        max(1, _round_half_up(height * scale)),
    )
    if new_size == image.size:
        return image
    return image.resize(new_size, Image.Resampling.BICUBIC)


def transform_image(
    image: Image.Image,
    options: ProcessOptions,
    page_number: int,
    fonts: FontStore,
) -> Image.Image:
    """Run trim handling, stamp and resize on an RGBA image."""

    source = image.convert("RGBA") if image.mode != "RGBA" else image
    width, height = source.size
    mode = options.tachikiri_type

    if mode is TachikiriMode.NONE:
        result = source
        rect = None
    else:
        rect = scale_crop_rect(options, width, height)
        if mode is TachikiriMode.CROP_ONLY:
            result = source.crop(rect.as_box())
        elif mode is TachikiriMode.CROP_AND_STROKE:
            result = draw_border(source.crop(rect.as_box()), options.stroke_color)
        elif mode is TachikiriMode.STROKE_ONLY:
            result = draw_border_at(source, rect, options.stroke_color)
        elif mode is TachikiriMode.FILL:
            result = fill_outside(source, rect, options.fill_color, options.fill_opacity)
        elif mode is TachikiriMode.FILL_AND_STROKE:
            filled = fill_outside(source, rect, options.fill_color, options.fill_opacity)
            result = draw_border_at(filled, rect, options.stroke_color)
        else:
            raise ValueError(f"Unhandled tachikiri mode: {mode}")

    if options.add_nombre:
        margin = nombre_margin(options, height, rect)
        result = stamp_nombre(result, page_number, options.nombre_size, margin, fonts)

    return apply_resize(result, options)


def process_one(
    input_path: Path,
    output_path: Path,
    options: ProcessOptions,
    page_number: int,
    store: Optional[ResourceStore] = None,
) -> None:
    """Load, transform and write one page as a final-quality JPEG."""

    store = store if store is not None else default_store()
    image = load_image(input_path)
    result = transform_image(image, options, page_number, store.fonts)
    write_jpeg(result, output_path, quality=JPEG_QUALITY)
