"""
Decoded pixel buffers.

RasterImage is what the layered decoder produces and what the image cache
stores: plain RGBA bytes plus dimensions, convertible to a Pillow image.
"""

from __future__ import annotations

from dataclasses import dataclass

from PIL import Image


@dataclass(frozen=True)
class RasterImage:
    """Row-major RGBA pixels, 4 bytes per pixel."""

    width: int
    height: int
    pixels: bytes

    def __post_init__(self) -> None:
        expected = self.width * self.height * 4
        if len(self.pixels) != expected:
            raise ValueError(
                f"RGBA buffer holds {len(self.pixels)} bytes, expected {expected} "
                f"for {self.width}x{self.height}"
            )

    def pixel(self, x: int, y: int) -> tuple[int, int, int, int]:
        offset = (y * self.width + x) * 4
        r, g, b, a = self.pixels[offset:offset + 4]
        return r, g, b, a

    def to_image(self) -> Image.Image:
        """Return a new, independent Pillow image in RGBA mode."""

        return Image.frombytes("RGBA", (self.width, self.height), self.pixels)

    @classmethod
    def from_image(cls, image: Image.Image) -> "RasterImage":
        rgba = image if image.mode == "RGBA" else image.convert("RGBA")
        return cls(width=rgba.width, height=rgba.height, pixels=rgba.tobytes())
