"""
Fonts and decoded-PSD cache shared by the pipeline, previews and PDF output.

Why this module exists:
- Font files are looked up once per store from a short list of system paths;
  the lookup result is kept even when nothing was found.
- Decoding a large PSD is slow, and previews ask for the same file repeatedly,
  so decoded pixels are kept in a small cache.
- Both live in a ResourceStore object that callers pass in explicitly, which
  keeps tests isolated from each other.
"""

from __future__ import annotations

from enum import Enum
import io
from pathlib import Path
import threading
from typing import Dict, Iterable, Optional, Sequence, Tuple

from PIL import ImageFont

from .psd import load_psd
from .raster import RasterImage


PSD_CACHE_CAPACITY = 10

NUMERIC_FONT_CANDIDATES: Tuple[str, ...] = (
    "C:\\Windows\\Fonts\\arial.ttf",
    "C:\\Windows\\Fonts\\Arial.ttf",
    "C:\\Windows\\Fonts\\segoeui.ttf",
    "C:\\Windows\\Fonts\\calibri.ttf",
    "/System/Library/Fonts/Supplemental/Arial.ttf",
    "/System/Library/Fonts/Helvetica.ttc",
    "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
    "/usr/share/fonts/TTF/DejaVuSans.ttf",
    "/usr/share/fonts/truetype/liberation/LiberationSans-Regular.ttf",
)

TEXT_FONT_CANDIDATES: Tuple[str, ...] = (
    "C:\\Windows\\Fonts\\YuGothB.ttc",
    "C:\\Windows\\Fonts\\YuGothM.ttc",
    "C:\\Windows\\Fonts\\yugothib.ttf",
    "C:\\Windows\\Fonts\\meiryob.ttc",
    "C:\\Windows\\Fonts\\meiryo.ttc",
    "C:\\Windows\\Fonts\\msgothic.ttc",
    "/System/Library/Fonts/ヒラギノ角ゴシック W6.ttc",
    "/System/Library/Fonts/Hiragino Sans GB.ttc",
    "/usr/share/fonts/opentype/noto/NotoSansCJK-Bold.ttc",
    "/usr/share/fonts/opentype/noto/NotoSansCJK-Regular.ttc",
    "/usr/share/fonts/noto-cjk/NotoSansCJK-Regular.ttc",
)


class FontKind(Enum):
    NUMERIC = "numeric"  # page numbers
    TEXT = "text"  # title page (Japanese capable)


def find_first_existing(candidates: Iterable[str]) -> Optional[Path]:
    """Return the first candidate path that exists, in list order."""

    for candidate in candidates:
        path = Path(candidate)
        if path.is_file():
            return path
    return None


class FontStore:
    """
    Lazily resolved font bytes plus sized Pillow fonts.

    Each kind is resolved at most once. When no candidate exists the store
    remembers that and hands out Pillow's built-in scalable font instead.
    """

    def __init__(
        self,
        numeric_candidates: Sequence[str] = NUMERIC_FONT_CANDIDATES,
        text_candidates: Sequence[str] = TEXT_FONT_CANDIDATES,
    ) -> None:
        self._candidates: Dict[FontKind, Tuple[str, ...]] = {
            FontKind.NUMERIC: tuple(numeric_candidates),
            FontKind.TEXT: tuple(text_candidates),
        }
        self._data: Dict[FontKind, Optional[bytes]] = {}
        self._sized: Dict[Tuple[FontKind, int], ImageFont.FreeTypeFont] = {}
        self._lock = threading.Lock()

    def font_data(self, kind: FontKind) -> Optional[bytes]:
        """Font file bytes for kind, or None when no candidate was found."""

        with self._lock:
            if kind not in self._data:
                self._data[kind] = self._read_first(kind)
            return self._data[kind]

    def _read_first(self, kind: FontKind) -> Optional[bytes]:
        path = find_first_existing(self._candidates[kind])
        if path is None:
            return None
        try:
            return path.read_bytes()
        except OSError:
            return None

    def font(self, kind: FontKind, size: int) -> ImageFont.FreeTypeFont:
        """Return a font of kind at size pixels."""

        size = max(1, int(size))
        key = (kind, size)
        with self._lock:
            cached = self._sized.get(key)
        if cached is not None:
            return cached

        data = self.font_data(kind)
        if data is None:
            loaded = ImageFont.load_default(size=size)
        else:
            loaded = ImageFont.truetype(io.BytesIO(data), size=size)

        with self._lock:
            return self._sized.setdefault(key, loaded)

    def has_font(self, kind: FontKind) -> bool:
        return self.font_data(kind) is not None


class ImageCache:
    """
    Path -> decoded RasterImage for PSD files.

    When the cache is full, every entry is dropped before the next insert.
    """

    def __init__(self, capacity: int = PSD_CACHE_CAPACITY) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self._entries: Dict[str, RasterImage] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, path: Path) -> Optional[RasterImage]:
        with self._lock:
            return self._entries.get(str(path))

    def put(self, path: Path, image: RasterImage) -> None:
        with self._lock:
            key = str(path)
            if key not in self._entries and len(self._entries) >= self.capacity:
                self._entries.clear()
            self._entries[key] = image

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def load_psd(self, path: Path) -> RasterImage:
        """Return the cached decode of path, decoding and inserting on a miss."""

        cached = self.get(path)
        if cached is not None:
            return cached
        decoded = load_psd(path)
        self.put(path, decoded)
        return decoded


class ResourceStore:
    """Fonts and PSD cache handed to the pipeline, previews and PDF engine."""

    def __init__(
        self,
        fonts: Optional[FontStore] = None,
        images: Optional[ImageCache] = None,
    ) -> None:
        self.fonts = fonts if fonts is not None else FontStore()
        self.images = images if images is not None else ImageCache()


_default_store: Optional[ResourceStore] = None
_default_lock = threading.Lock()


def default_store() -> ResourceStore:
    """Process-wide store used by the convenience API and the CLI."""

    global _default_store
    with _default_lock:
        if _default_store is None:
            _default_store = ResourceStore()
        return _default_store


def clear_proprietary_image_cache() -> None:
    """Drop all cached PSD decodes (call when the working folder changes)."""

    default_store().images.clear()
