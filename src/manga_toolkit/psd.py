"""
Read the flattened composite out of Photoshop (PSD/PSB) files.

Why this module exists:
- Files saved with "maximize compatibility" carry a pre-merged copy of the
  document in the image-data section. Reading that copy directly is much
  faster than compositing layers.
- When the fast path cannot handle a file we fall back to psd-tools, which
  composites the layer stack itself.
- Previews can use the small JPEG thumbnail stored in the image resources.

Layout read here (big-endian):
  header (26 bytes): "8BPS", version, 6 reserved, channels, height, width,
  depth, color mode
  color mode data: u32 length + payload
  image resources: u32 length + payload
  layer and mask info: u32 length (u64 for PSB) + payload
  image data: u16 compression, then channel planes (raw or PackBits RLE)
"""

from __future__ import annotations

import io
import struct
from pathlib import Path
from typing import List, Optional, Tuple

from PIL import Image
from psd_tools import PSDImage

from .raster import RasterImage
from .utils import DecodeError, UserError


SIGNATURE = b"8BPS"
VERSION_PSD = 1
VERSION_PSB = 2
COLOR_MODE_GRAYSCALE = 1
COLOR_MODE_RGB = 3
COMPRESSION_RAW = 0
COMPRESSION_RLE = 1
THUMBNAIL_RESOURCE_IDS = {1033, 1036}
RESOURCE_SIGNATURE = b"8BIM"
# format, width, height, widthbytes, total size, compressed size, bpp, planes
THUMBNAIL_HEADER_SIZE = 28


class _Reader:
    """Cursor over an in-memory file that raises DecodeError on truncation."""

    def __init__(self, data: bytes) -> None:
        self.data = data
        self.pos = 0

    def read(self, count: int) -> bytes:
        end = self.pos + count
        if count < 0 or end > len(self.data):
            raise DecodeError(
                f"Unexpected end of file at offset {self.pos} (wanted {count} bytes)."
            )
        chunk = self.data[self.pos:end]
        self.pos = end
        return chunk

    def skip(self, count: int) -> None:
        self.read(count)

    def u16(self) -> int:
        return struct.unpack(">H", self.read(2))[0]

    def u32(self) -> int:
        return struct.unpack(">I", self.read(4))[0]

    def u64(self) -> int:
        return struct.unpack(">Q", self.read(8))[0]


def decode_packbits(data: bytes, size: int) -> bytes:
    """
    Decode one PackBits-compressed scanline into exactly size bytes.

    Control byte n (signed): 0..127 copies the next n+1 bytes, -127..-1
    repeats the next byte 1-n times, -128 is a no-op. Truncated input stops
    early and leaves the rest of the line zeroed.
    """

    out = bytearray(size)
    i = 0
    o = 0
    length = len(data)
    while i < length and o < size:
        n = data[i]
        i += 1
        if n < 128:
            count = n + 1
            chunk = data[i:i + count]
            take = min(len(chunk), size - o)
            out[o:o + take] = chunk[:take]
            i += count
            o += count
        elif n > 128:
            count = 257 - n
            if i >= length:
                break
            value = data[i]
            i += 1
            take = min(count, size - o)
            out[o:o + take] = bytes((value,)) * take
            o += count
        # n == 128 (-128) is a no-op.
    return bytes(out)


def _read_header(reader: _Reader) -> Tuple[int, int, int, int, int]:
    """Return (version, channels, height, width, color_mode) after validation."""

    if reader.read(4) != SIGNATURE:
        raise DecodeError("Not a PSD file (bad signature).")
    version = reader.u16()
    if version not in (VERSION_PSD, VERSION_PSB):
        raise DecodeError(f"Unsupported PSD version: {version}")
    reader.skip(6)
    channels = reader.u16()
    height = reader.u32()
    width = reader.u32()
    depth = reader.u16()
    if depth != 8:
        raise DecodeError(f"Unsupported bit depth: {depth} (only 8-bit is supported)")
    color_mode = reader.u16()
    if color_mode not in (COLOR_MODE_RGB, COLOR_MODE_GRAYSCALE):
        raise DecodeError(
            f"Unsupported color mode: {color_mode} (only RGB and grayscale are supported)"
        )
    return version, channels, height, width, color_mode


def _read_rle_planes(
    reader: _Reader,
    width: int,
    height: int,
    channels: int,
    keep: int,
    version: int,
) -> List[bytes]:
    """Decode PackBits planes; counts for every line of every channel come first."""

    total_rows = channels * height
    count_size = 4 if version == VERSION_PSB else 2
    count_format = ">I" if version == VERSION_PSB else ">H"
    raw_counts = reader.read(total_rows * count_size)
    row_lengths = [
        struct.unpack_from(count_format, raw_counts, index * count_size)[0]
        for index in range(total_rows)
    ]

    planes: List[bytes] = []
    for channel in range(keep):
        rows = []
        for row in range(height):
            compressed = reader.read(row_lengths[channel * height + row])
            rows.append(decode_packbits(compressed, width))
        planes.append(b"".join(rows))
    return planes


def _planes_to_raster(planes: List[bytes], width: int, height: int, color_mode: int) -> RasterImage:
    """Interleave channel planes into RGBA."""

    size = (width, height)
    layers = [Image.frombytes("L", size, plane) for plane in planes]
    opaque = Image.new("L", size, 255)

    if color_mode == COLOR_MODE_RGB:
        black = Image.new("L", size, 0)
        red = layers[0] if len(layers) > 0 else black
        green = layers[1] if len(layers) > 1 else black
        blue = layers[2] if len(layers) > 2 else black
        alpha = layers[3] if len(layers) > 3 else opaque
    else:
        gray = layers[0] if layers else Image.new("L", size, 0)
        red = green = blue = gray
        alpha = layers[1] if len(layers) > 1 else opaque

    merged = Image.merge("RGBA", (red, green, blue, alpha))
    return RasterImage.from_image(merged)


def decode_composite(data: bytes) -> RasterImage:
    """
    Decode the flattened image-data section of a PSD/PSB file.

    Raises DecodeError on any structural problem; no partial image is returned.
    """

    reader = _Reader(data)
    version, channels, height, width, color_mode = _read_header(reader)

    reader.skip(reader.u32())  # color mode data
    reader.skip(reader.u32())  # image resources
    layer_info_length = reader.u64() if version == VERSION_PSB else reader.u32()
    reader.skip(layer_info_length)

    compression = reader.u16()
    keep = min(channels, 4)
    pixels = width * height

    if compression == COMPRESSION_RAW:
        planes = [reader.read(pixels) for _ in range(keep)]
    elif compression == COMPRESSION_RLE:
        planes = _read_rle_planes(reader, width, height, channels, keep, version)
    else:
        raise DecodeError(f"Unsupported compression: {compression}")

    return _planes_to_raster(planes, width, height, color_mode)


def decode_with_layers(data: bytes) -> RasterImage:
    """Composite the layer stack with psd-tools (slow path)."""

    try:
        document = PSDImage.open(io.BytesIO(data))
        composite = document.composite()
    except Exception as exc:  # psd-tools raises a wide range of parse errors
        raise DecodeError(f"Layer compositing failed: {exc}") from exc
    if composite is None:
        raise DecodeError("Layer compositing produced no image.")
    return RasterImage.from_image(composite)


def _read_file(path: Path) -> bytes:
    try:
        return path.read_bytes()
    except OSError as exc:
        raise UserError(f"Failed to read {path}: {exc}") from exc


def load_psd(path: Path) -> RasterImage:
    """
    Decode a PSD file: composite section first, psd-tools as second attempt.

    Both attempts failing is terminal for this file.
    """

    data = _read_file(path)
    try:
        return decode_composite(data)
    except DecodeError as fast_error:
        try:
            return decode_with_layers(data)
        except DecodeError as slow_error:
            raise DecodeError(
                f"Failed to decode {path.name}: {fast_error}; fallback: {slow_error}"
            ) from slow_error


def extract_thumbnail(path: Path) -> Optional[Tuple[Image.Image, int, int]]:
    """
    Return (thumbnail, document_width, document_height) or None.

    Only JPEG thumbnails (format 1) in resources 1033/1036 are used; this is a
    preview shortcut and never part of the main decode path.
    """

    try:
        reader = _Reader(_read_file(path))
        if reader.read(4) != SIGNATURE:
            return None
        reader.skip(10)  # version + reserved + channels
        height = reader.u32()
        width = reader.u32()
        reader.skip(4)  # depth + color mode
        reader.skip(reader.u32())

        resources_end = reader.pos + reader.u32()
        while reader.pos < resources_end:
            if reader.read(4) != RESOURCE_SIGNATURE:
                return None
            resource_id = reader.u16()
            name_length = reader.read(1)[0]
            # Pascal string, padded so length byte + name is even.
            reader.skip(name_length if (name_length + 1) % 2 == 0 else name_length + 1)
            data_size = reader.u32()

            if resource_id in THUMBNAIL_RESOURCE_IDS:
                if reader.u32() != 1 or data_size < THUMBNAIL_HEADER_SIZE:
                    return None
                reader.skip(THUMBNAIL_HEADER_SIZE - 4)
                jpeg_data = reader.read(data_size - THUMBNAIL_HEADER_SIZE)
                with Image.open(io.BytesIO(jpeg_data)) as opened:
                    thumbnail = opened.convert("RGB")
                return thumbnail, width, height

            reader.skip(data_size + (data_size % 2))
    except (DecodeError, UserError, OSError):
        return None
    return None
