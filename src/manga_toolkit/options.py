"""
Typed processing and PDF options.

Why this module exists:
- Mode and color tags arrive as strings from YAML, the CLI or a UI layer.
- We convert them once, at construction time, into closed enums so the
  pipeline can match them exhaustively and bad values fail early.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from enum import Enum, IntEnum
from typing import Any, Dict, Mapping, Optional, Tuple, Type, TypeVar

from .config import validate_keys
from .utils import UserError, validate_range


E = TypeVar("E", bound=Enum)

TARGET_RESIZE_WIDTH = 2250
TARGET_RESIZE_HEIGHT = 3000

# Starting values per PDF preset; explicit settings override them.
PDF_PRESET_VALUES: Dict[str, Dict[str, Any]] = {
    "b4_single": {"width_mm": 257.0, "height_mm": 364.0, "gutter": 0, "padding": 0, "is_spread": False},
    "b4_spread": {"width_mm": 257.0, "height_mm": 364.0, "gutter": 70, "padding": 150, "is_spread": True},
    "a4_single": {"width_mm": 210.0, "height_mm": 297.0, "gutter": 0, "padding": 0, "is_spread": False},
    "a4_spread": {"width_mm": 210.0, "height_mm": 297.0, "gutter": 70, "padding": 150, "is_spread": True},
    "custom": {},
}
PDF_PRESETS = set(PDF_PRESET_VALUES)


def parse_enum(enum_type: Type[E], value: Any, label: str, aliases: Optional[Dict[str, E]] = None) -> E:
    """Convert a raw value into enum_type or raise a UserError listing choices."""

    if isinstance(value, enum_type):
        return value
    if aliases and isinstance(value, str) and value in aliases:
        return aliases[value]
    try:
        return enum_type(value)
    except ValueError:
        choices = ", ".join(str(member.value) for member in enum_type)
        raise UserError(f"{label} must be one of: {choices} (got {value!r}).") from None


def require_bool(value: Any, key: str) -> bool:
    """Require a strict boolean value from config/CLI merge output."""

    if isinstance(value, bool):
        return value
    raise UserError(f"{key} must be true or false.")


def require_int(value: Any, key: str, minimum: int = 0) -> int:
    """Require a non-bool integer at or above minimum."""

    if isinstance(value, bool) or not isinstance(value, int):
        raise UserError(f"{key} must be an integer.")
    if value < minimum:
        raise UserError(f"{key} must be >= {minimum}.")
    return value


def _require_size_pair(value: Any, key: str) -> Tuple[int, int]:
    """Require a (width, height) pair of positive integers."""

    if not isinstance(value, (list, tuple)) or len(value) != 2:
        raise UserError(f"{key} must be two positive integers (width, height).")
    width = require_int(value[0], f"{key} width", minimum=1)
    height = require_int(value[1], f"{key} height", minimum=1)
    return width, height


class TachikiriMode(Enum):
    """How the area outside the trim rectangle is handled."""

    NONE = "none"
    CROP_ONLY = "crop_only"
    CROP_AND_STROKE = "crop_and_stroke"
    STROKE_ONLY = "stroke_only"
    FILL = "fill_white"
    FILL_AND_STROKE = "fill_and_stroke"

    @property
    def crops(self) -> bool:
        return self in (TachikiriMode.CROP_ONLY, TachikiriMode.CROP_AND_STROKE)


class ResizeMode(Enum):
    NONE = "none"
    PERCENT = "percent"
    FIXED = "fixed"


class MarkColor(Enum):
    """Colors available for border strokes and outside fills."""

    WHITE = "white"
    BLACK = "black"
    CYAN = "cyan"

    @property
    def rgb(self) -> Tuple[int, int, int]:
        return _MARK_RGB[self]


_MARK_RGB = {
    MarkColor.WHITE: (255, 255, 255),
    MarkColor.BLACK: (0, 0, 0),
    MarkColor.CYAN: (0, 255, 255),
}


class NombreSize(Enum):
    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"
    XLARGE = "xlarge"


class AuthorStyle(IntEnum):
    """How author names are printed on the title page."""

    SINGLE = 0  # "著　A"
    SPLIT = 1  # "作画　A　　原作　B"
    VERBATIM = 2


@dataclass(frozen=True)
class ProcessOptions:
    """
    Options shared by every image in a batch.

    Crop edges are expressed in the reference resolution; a reference of
    0x0 means the edges are already in image pixels.
    """

    crop_left: int = 0
    crop_top: int = 0
    crop_right: int = 0
    crop_bottom: int = 0
    tachikiri_type: TachikiriMode = TachikiriMode.NONE
    stroke_color: MarkColor = MarkColor.BLACK
    fill_color: MarkColor = MarkColor.WHITE
    fill_opacity: int = 100
    reference_width: int = 0
    reference_height: int = 0
    add_nombre: bool = False
    nombre_start_number: int = 1
    nombre_size: NombreSize = NombreSize.MEDIUM
    resize_mode: ResizeMode = ResizeMode.NONE
    resize_percent: int = 50
    resize_target: Tuple[int, int] = (TARGET_RESIZE_WIDTH, TARGET_RESIZE_HEIGHT)

    def __post_init__(self) -> None:
        for name in ("crop_left", "crop_top", "crop_right", "crop_bottom",
                     "reference_width", "reference_height"):
            require_int(getattr(self, name), name)
        require_int(self.nombre_start_number, "nombre_start_number")
        require_int(self.fill_opacity, "fill_opacity")
        validate_range(self.fill_opacity, 0, 100, "fill_opacity")
        require_int(self.resize_percent, "resize_percent", minimum=1)
        object.__setattr__(self, "resize_target", _require_size_pair(self.resize_target, "resize_target"))

        # Accept raw strings so callers can build options directly.
        object.__setattr__(
            self,
            "tachikiri_type",
            parse_enum(TachikiriMode, self.tachikiri_type, "tachikiri_type", _TACHIKIRI_ALIASES),
        )
        object.__setattr__(self, "stroke_color", parse_enum(MarkColor, self.stroke_color, "stroke_color"))
        object.__setattr__(self, "fill_color", parse_enum(MarkColor, self.fill_color, "fill_color"))
        object.__setattr__(self, "nombre_size", parse_enum(NombreSize, self.nombre_size, "nombre_size"))
        object.__setattr__(self, "resize_mode", parse_enum(ResizeMode, self.resize_mode, "resize_mode"))
        require_bool(self.add_nombre, "add_nombre")

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "ProcessOptions":
        """Build options from a config/JSON mapping, rejecting unknown keys."""

        allowed = {item.name for item in fields(cls)}
        validate_keys(dict(raw), allowed, "process options")
        return cls(**dict(raw))

    def to_mapping(self) -> Dict[str, Any]:
        """JSON/YAML-friendly view (enums as their string values)."""

        result: Dict[str, Any] = {}
        for item in fields(self):
            value = getattr(self, item.name)
            if isinstance(value, Enum):
                value = value.value
            elif isinstance(value, tuple):
                value = list(value)
            result[item.name] = value
        return result


_TACHIKIRI_ALIASES = {"crop": TachikiriMode.CROP_ONLY}


@dataclass(frozen=True)
class WorkInfo:
    """Work metadata printed on the generated title page."""

    label: str = ""
    author_type: AuthorStyle = AuthorStyle.SINGLE
    author1: str = ""
    author2: str = ""
    title: str = ""
    subtitle: str = ""
    version: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "author_type", parse_enum(AuthorStyle, self.author_type, "author_type"))

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "WorkInfo":
        allowed = {item.name for item in fields(cls)}
        validate_keys(dict(raw), allowed, "work_info")
        return cls(**dict(raw))

    def author_line(self) -> str:
        """Compose the author credit according to author_type."""

        if self.author_type is AuthorStyle.SINGLE:
            return f"著　{self.author1}" if self.author1 else ""
        if self.author_type is AuthorStyle.SPLIT:
            parts = []
            if self.author1:
                parts.append(f"作画　{self.author1}")
            if self.author2:
                parts.append(f"原作　{self.author2}")
            return "　　".join(parts)
        return self.author1


@dataclass(frozen=True)
class PdfOptions:
    """
    PDF layout options.

    gutter and padding are in source pixels and converted to millimeters at
    the layout DPI. width_mm/height_mm describe the preset and are recorded
    only; page size always follows the images.
    """

    preset: str = "custom"
    width_mm: float = 0.0
    height_mm: float = 0.0
    gutter: int = 0
    padding: int = 0
    is_spread: bool = False
    add_white_page: bool = False
    print_work_info: bool = False
    work_info: Optional[WorkInfo] = None
    add_nombre: bool = False
    nombre_size: NombreSize = NombreSize.MEDIUM

    def __post_init__(self) -> None:
        if self.preset not in PDF_PRESETS:
            raise UserError(f"preset must be one of: {', '.join(sorted(PDF_PRESETS))}.")
        require_int(self.gutter, "gutter")
        require_int(self.padding, "padding")
        for name in ("is_spread", "add_white_page", "print_work_info", "add_nombre"):
            require_bool(getattr(self, name), name)
        object.__setattr__(self, "nombre_size", parse_enum(NombreSize, self.nombre_size, "nombre_size"))
        if isinstance(self.work_info, Mapping):
            object.__setattr__(self, "work_info", WorkInfo.from_mapping(self.work_info))

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "PdfOptions":
        allowed = {item.name for item in fields(cls)}
        validate_keys(dict(raw), allowed, "pdf options")
        return cls(**dict(raw))

    @classmethod
    def from_preset(cls, preset: str, **overrides: Any) -> "PdfOptions":
        """Preset values first, then overrides."""

        if preset not in PDF_PRESET_VALUES:
            raise UserError(f"preset must be one of: {', '.join(sorted(PDF_PRESETS))}.")
        values = dict(PDF_PRESET_VALUES[preset])
        values.update(overrides)
        values["preset"] = preset
        return cls.from_mapping(values)
