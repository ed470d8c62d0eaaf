"""
Configuration helpers for YAML-backed command options.
"""

from __future__ import annotations

from copy import deepcopy
from pathlib import Path
from typing import Any

import yaml

from .utils import UserError, ensure_file_exists


# Keys shared by the process command that are not image options.
PROCESS_RUN_KEYS = {"glob", "workers", "manifest"}

DEFAULT_PROCESS: dict[str, Any] = {
    "glob": "*",
    "workers": 0,
    "manifest": None,
    "crop_left": 0,
    "crop_top": 0,
    "crop_right": 0,
    "crop_bottom": 0,
    "tachikiri_type": "none",
    "stroke_color": "black",
    "fill_color": "white",
    "fill_opacity": 100,
    "reference_width": 0,
    "reference_height": 0,
    "add_nombre": False,
    "nombre_start_number": 1,
    "nombre_size": "medium",
    "resize_mode": "none",
    "resize_percent": 50,
    "resize_target": [2250, 3000],
}

PDF_RUN_KEYS = {"glob", "manifest"}

DEFAULT_PDF: dict[str, Any] = {
    "glob": "*",
    "manifest": None,
    "preset": "custom",
    "width_mm": 0.0,
    "height_mm": 0.0,
    "gutter": 0,
    "padding": 0,
    "is_spread": False,
    "add_white_page": False,
    "print_work_info": False,
    "work_info": None,
    "add_nombre": False,
    "nombre_size": "medium",
}

SECTION_DEFAULTS: dict[str, dict[str, Any]] = {
    "process": DEFAULT_PROCESS,
    "pdf": DEFAULT_PDF,
}


def load_yaml(path: Path) -> dict[str, Any]:
    """Load a YAML file into a dictionary."""

    ensure_file_exists(path, "Config file")
    try:
        with path.open("r", encoding="utf-8") as handle:
            loaded = yaml.safe_load(handle)
    except yaml.YAMLError as exc:
        raise UserError(f"Failed to parse YAML config {path}: {exc}") from exc
    except OSError as exc:
        raise UserError(f"Failed to read config {path}: {exc}") from exc

    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise UserError(f"Config {path} must contain a YAML mapping/object at top level.")
    return loaded


def deep_merge(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    """
    Recursively merge dictionaries where overlay values win.
    """

    merged = deepcopy(base)
    for key, value in overlay.items():
        if (
            key in merged
            and isinstance(merged[key], dict)
            and isinstance(value, dict)
        ):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = deepcopy(value)
    return merged


def validate_keys(cfg: dict[str, Any], allowed: set[str], ctx: str) -> None:
    """
    Validate dictionary keys and fail fast on unknown entries.
    """

    unknown = sorted(key for key in cfg.keys() if key not in allowed)
    if unknown:
        allowed_list = ", ".join(sorted(allowed))
        unknown_list = ", ".join(unknown)
        raise UserError(
            f"Unknown keys in {ctx}: {unknown_list}. Allowed keys: {allowed_list}."
        )


def extract_section(loaded: dict[str, Any], section: str) -> dict[str, Any]:
    """Support either root config keys or a wrapper named after the command."""

    allowed = set(SECTION_DEFAULTS[section].keys())
    if section in loaded:
        raw_section = loaded[section]
        if not isinstance(raw_section, dict):
            raise UserError(f"config.{section} must be a mapping/object.")
        validate_keys(raw_section, allowed, f"config.{section}")
        return raw_section

    validate_keys(loaded, allowed, "config")
    return loaded


def split_run_keys(effective: dict[str, Any], run_keys: set[str]) -> tuple[dict[str, Any], dict[str, Any]]:
    """Separate command-level keys (glob, manifest, ...) from option keys."""

    run = {key: value for key, value in effective.items() if key in run_keys}
    rest = {key: value for key, value in effective.items() if key not in run_keys}
    return run, rest


def dump_default_yaml(section: str) -> str:
    """Serialize wrapped defaults for one command as YAML."""

    return yaml.safe_dump(
        {section: SECTION_DEFAULTS[section]},
        sort_keys=False,
        allow_unicode=True,
    ).rstrip()
