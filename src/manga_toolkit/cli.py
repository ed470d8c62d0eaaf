"""
Command-line interface for manga-toolkit.

This file focuses on parsing arguments and dispatching to the real work.
Keeping this separate makes the code easier to read and test.
"""

from __future__ import annotations

import argparse
import subprocess
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from . import __version__
from .config import (
    PDF_RUN_KEYS,
    PROCESS_RUN_KEYS,
    SECTION_DEFAULTS,
    deep_merge,
    dump_default_yaml,
    extract_section,
    load_yaml,
    split_run_keys,
)
from .manifest import ManifestRecorder
from .options import (
    PDF_PRESET_VALUES,
    MarkColor,
    NombreSize,
    PdfOptions,
    ProcessOptions,
    ResizeMode,
    TachikiriMode,
    require_int,
)
from .utils import UserError, collect_image_files, ensure_input_dir, normalize_path, validate_positive_int


TOP_LEVEL_EXAMPLES = """Examples:
  python -m manga_toolkit process --in_dir "scans" --out_dir "out\\jpg" --tachikiri fill_and_stroke --crop 100 150 2380 3358 --reference 2480 3508 --nombre
  python -m manga_toolkit pdf --in_dir "out\\jpg" --out_pdf "out\\book.pdf" --preset b4_spread --white-page --nombre
  python -m manga_toolkit decode --psd "scans\\p001.psd" --out "p001.png"
  python -m manga_toolkit preview --image "scans\\p001.psd" --max_size 800 --out_dir "tmp"
"""

PROCESS_EXAMPLES = """Examples:
  python -m manga_toolkit process --in_dir "scans" --out_dir "out\\jpg" --tachikiri crop_only --crop 100 150 2380 3358
  python -m manga_toolkit process --in_dir "scans" --out_dir "out\\jpg" --files p001.psd p002.psd --nombre --nombre_start 5
  python -m manga_toolkit process --dump-default-config
  python -m manga_toolkit process --in_dir "scans" --out_dir "out\\jpg" --config "configs\\process.yaml"
"""

PDF_EXAMPLES = """Examples:
  python -m manga_toolkit pdf --in_dir "out\\jpg" --out_pdf "out\\book_single.pdf" --padding 50 --nombre
  python -m manga_toolkit pdf --in_dir "out\\jpg" --out_pdf "out\\book_spread.pdf" --spread --gutter 70 --padding 150 --white-page
  python -m manga_toolkit pdf --dump-default-config
"""

_REFERENCE_KEYS = ("reference_width", "reference_height")
_CROP_KEYS = ("crop_left", "crop_top", "crop_right", "crop_bottom")


def _verbosity_from_args(args: argparse.Namespace) -> str:
    """Resolve global verbosity mode from top-level flags."""

    if getattr(args, "quiet", False):
        return "quiet"
    if getattr(args, "verbose", False):
        return "verbose"
    return "normal"


def _cli_overrides(args: argparse.Namespace, section: str) -> Dict[str, Any]:
    """Collect only the flags the user actually passed (others are SUPPRESSed)."""

    raw = vars(args)
    allowed = SECTION_DEFAULTS[section]
    overrides = {key: raw[key] for key in allowed if key in raw}
    if "crop" in raw:
        overrides.update(dict(zip(_CROP_KEYS, raw["crop"])))
    if "reference" in raw:
        overrides.update(dict(zip(_REFERENCE_KEYS, raw["reference"])))
    return overrides


def _build_effective_config(
    args: argparse.Namespace,
    section: str,
) -> tuple[Dict[str, Any], Path | None]:
    """Resolve defaults < (pdf preset) < YAML config < explicit CLI flags."""

    effective = deep_merge(SECTION_DEFAULTS[section], {})
    config_path: Path | None = None
    yaml_section: Dict[str, Any] = {}
    if hasattr(args, "config"):
        config_path = normalize_path(args.config)
        yaml_section = extract_section(load_yaml(config_path), section)

    cli_overrides = _cli_overrides(args, section)

    if section == "pdf":
        preset = cli_overrides.get("preset", yaml_section.get("preset", effective["preset"]))
        if preset not in PDF_PRESET_VALUES:
            raise UserError(f"preset must be one of: {', '.join(sorted(PDF_PRESET_VALUES))}.")
        effective = deep_merge(effective, PDF_PRESET_VALUES[preset])

    effective = deep_merge(effective, yaml_section)
    effective = deep_merge(effective, cli_overrides)
    return effective, config_path


def _add_common_run_args(parser: argparse.ArgumentParser, section: str) -> None:
    parser.add_argument(
        "--config",
        default=argparse.SUPPRESS,
        help=f"Optional YAML config ({section}: wrapper or root keys).",
    )
    parser.add_argument(
        "--dump-default-config",
        action="store_true",
        default=argparse.SUPPRESS,
        help=f"Print default {section} YAML config and exit.",
    )
    parser.add_argument(
        "--files",
        nargs="+",
        default=argparse.SUPPRESS,
        help="File names inside --in_dir, in page order (default: sorted supported images).",
    )
    parser.add_argument(
        "--glob",
        default=argparse.SUPPRESS,
        help='Glob pattern used when --files is not given (default: "*").',
    )
    parser.add_argument(
        "--manifest",
        default=argparse.SUPPRESS,
        help="Manifest path (default: next to the output).",
    )
    parser.add_argument(
        "--no-manifest",
        action="store_true",
        default=False,
        help="Do not write a manifest file.",
    )


def _choices(enum_type: Any) -> List[str]:
    return [member.value for member in enum_type]


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="manga-toolkit",
        description="Turn manga page scans into print-ready JPEG pages and PDFs.",
        epilog=TOP_LEVEL_EXAMPLES,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=__version__)
    verbosity_group = parser.add_mutually_exclusive_group()
    verbosity_group.add_argument(
        "--quiet",
        action="store_true",
        help="Suppress non-error console logs.",
    )
    verbosity_group.add_argument(
        "--verbose",
        action="store_true",
        help="Show debug-level console logs.",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    process = subparsers.add_parser(
        "process",
        help="Trim, stamp and resize page images into JPEGs.",
        epilog=PROCESS_EXAMPLES,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    process.add_argument(
        "--in_dir",
        default=argparse.SUPPRESS,
        help="Input folder of page images (required unless --dump-default-config).",
    )
    process.add_argument(
        "--out_dir",
        default=argparse.SUPPRESS,
        help="Output folder for JPEGs (required unless --dump-default-config).",
    )
    _add_common_run_args(process, "process")
    process.add_argument(
        "--workers",
        type=int,
        default=argparse.SUPPRESS,
        help="Worker threads (0 = twice the CPU count, at most 32).",
    )
    process.add_argument(
        "--tachikiri",
        dest="tachikiri_type",
        choices=_choices(TachikiriMode) + ["crop"],
        default=argparse.SUPPRESS,
        help="Bleed handling mode.",
    )
    process.add_argument(
        "--crop",
        nargs=4,
        type=int,
        metavar=("LEFT", "TOP", "RIGHT", "BOTTOM"),
        default=argparse.SUPPRESS,
        help="Trim box edges in reference pixels.",
    )
    process.add_argument(
        "--reference",
        nargs=2,
        type=int,
        metavar=("WIDTH", "HEIGHT"),
        default=argparse.SUPPRESS,
        help="Resolution the trim box was measured at (0 0 = image pixels).",
    )
    process.add_argument(
        "--stroke_color",
        choices=_choices(MarkColor),
        default=argparse.SUPPRESS,
        help="Color of the 1px trim line.",
    )
    process.add_argument(
        "--fill_color",
        choices=_choices(MarkColor),
        default=argparse.SUPPRESS,
        help="Color blended over the bleed area.",
    )
    process.add_argument(
        "--fill_opacity",
        type=int,
        default=argparse.SUPPRESS,
        help="Bleed fill opacity in percent (0-100).",
    )
    process.add_argument(
        "--nombre",
        dest="add_nombre",
        action="store_true",
        default=argparse.SUPPRESS,
        help="Stamp page numbers.",
    )
    process.add_argument(
        "--nombre_start",
        dest="nombre_start_number",
        type=int,
        default=argparse.SUPPRESS,
        help="Page number of the first file (default: 1).",
    )
    process.add_argument(
        "--nombre_size",
        choices=_choices(NombreSize),
        default=argparse.SUPPRESS,
        help="Page number size.",
    )
    process.add_argument(
        "--resize_mode",
        choices=_choices(ResizeMode),
        default=argparse.SUPPRESS,
        help="none, percent (see --resize_percent) or fixed (fit into --resize_target).",
    )
    process.add_argument(
        "--resize_percent",
        type=int,
        default=argparse.SUPPRESS,
        help="Scale for percent mode.",
    )
    process.add_argument(
        "--resize_target",
        nargs=2,
        type=int,
        metavar=("WIDTH", "HEIGHT"),
        default=argparse.SUPPRESS,
        help="Target box for fixed mode (default: 2250 3000).",
    )

    pdf = subparsers.add_parser(
        "pdf",
        help="Build a single-page or spread PDF from page images.",
        epilog=PDF_EXAMPLES,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    pdf.add_argument(
        "--in_dir",
        default=argparse.SUPPRESS,
        help="Input folder of page images (required unless --dump-default-config).",
    )
    pdf.add_argument(
        "--out_pdf",
        default=argparse.SUPPRESS,
        help="Output PDF path (required unless --dump-default-config).",
    )
    _add_common_run_args(pdf, "pdf")
    pdf.add_argument(
        "--preset",
        choices=sorted(PDF_PRESET_VALUES),
        default=argparse.SUPPRESS,
        help="Starting values for layout options.",
    )
    pdf.add_argument(
        "--spread",
        dest="is_spread",
        action="store_true",
        default=argparse.SUPPRESS,
        help="Two pages per PDF page, right to left.",
    )
    pdf.add_argument(
        "--gutter",
        type=int,
        default=argparse.SUPPRESS,
        help="Gap between spread pages in source pixels.",
    )
    pdf.add_argument(
        "--padding",
        type=int,
        default=argparse.SUPPRESS,
        help="Margin around images in source pixels.",
    )
    pdf.add_argument(
        "--white-page",
        dest="add_white_page",
        action="store_true",
        default=argparse.SUPPRESS,
        help="Start a spread PDF with a blank (title) page.",
    )
    pdf.add_argument(
        "--print-work-info",
        dest="print_work_info",
        action="store_true",
        default=argparse.SUPPRESS,
        help="Print work_info from the config on the blank page.",
    )
    pdf.add_argument(
        "--nombre",
        dest="add_nombre",
        action="store_true",
        default=argparse.SUPPRESS,
        help="Print page numbers in the bottom padding.",
    )
    pdf.add_argument(
        "--nombre_size",
        choices=_choices(NombreSize),
        default=argparse.SUPPRESS,
        help="Page number size.",
    )

    decode = subparsers.add_parser("decode", help="Decode a PSD file to PNG or JPEG.")
    decode.add_argument("--psd", required=True, help="Input PSD path.")
    decode.add_argument("--out", required=True, help="Output image path (.png, .jpg).")

    preview = subparsers.add_parser("preview", help="Write a small JPEG preview of an image.")
    preview.add_argument("--image", required=True, help="Input image path.")
    preview.add_argument("--out_dir", required=True, help="Folder for <stem>_preview.jpg.")
    preview.add_argument("--max_size", type=int, default=800, help="Longest side in pixels (default: 800).")
    preview.add_argument(
        "--thumbnail",
        action="store_true",
        help="Use the thumbnail embedded in PSD files when present.",
    )

    return parser


def _command_string(argv: list[str]) -> str:
    """Reconstruct a command string for the manifest."""

    # list2cmdline produces a Windows-friendly command representation.
    return subprocess.list2cmdline(argv)


def _command_argv_for_manifest(argv: list[str] | None) -> list[str]:
    """Choose argv used to record manifest command faithfully."""

    if argv is None:
        return list(sys.argv)
    return [sys.argv[0], *argv]


def _resolve_files(args: argparse.Namespace, in_dir: Path, pattern: str) -> List[str]:
    if hasattr(args, "files"):
        return list(args.files)
    files = collect_image_files(in_dir, pattern)
    if not files:
        raise UserError(f"No supported images matching {pattern!r} in {in_dir}.")
    return files


def _manifest_path(value: Any, default: Path) -> Path:
    return normalize_path(str(value)) if value else default


def _finish_manifest(
    recorder: ManifestRecorder,
    args: argparse.Namespace,
    manifest_path: Path,
    summary: Dict[str, Any],
) -> None:
    if args.no_manifest:
        return
    recorder.write_manifest(manifest_path, summary)


def _run_process(args: argparse.Namespace, command_string: str, verbosity: str) -> int:
    from .batch import run_batch

    if not hasattr(args, "in_dir") or not hasattr(args, "out_dir"):
        raise UserError("process requires --in_dir and --out_dir unless --dump-default-config is used.")

    effective, config_path = _build_effective_config(args, "process")
    run, option_values = split_run_keys(effective, PROCESS_RUN_KEYS)
    options = ProcessOptions.from_mapping(option_values)
    workers = require_int(run["workers"], "workers")

    in_dir = normalize_path(args.in_dir)
    out_dir = normalize_path(args.out_dir)
    ensure_input_dir(in_dir, "Input directory")
    files = _resolve_files(args, in_dir, str(run["glob"]))
    manifest_path = _manifest_path(run["manifest"], out_dir / "manifest.json")

    recorder = ManifestRecorder(
        command=command_string,
        options={
            **options.to_mapping(),
            "workers": workers,
            "config_path": str(config_path) if config_path else None,
            "verbosity": verbosity,
        },
        inputs={"in_dir": str(in_dir), "files": files},
        outputs={"out_dir": str(out_dir), "manifest": str(manifest_path)},
        verbosity=verbosity,
    )

    summary: Dict[str, Any] = {"files_found": len(files)}
    try:
        result = run_batch(in_dir, out_dir, files, options, workers=workers, recorder=recorder)
        summary.update(result.to_dict())
        summary["status"] = "ok" if not result.errors else "partial"
    except UserError as exc:
        recorder.log(str(exc), level="error")
        summary["status"] = "error"
        summary["error"] = str(exc)
        raise
    finally:
        _finish_manifest(recorder, args, manifest_path, summary)

    # Per-file errors were already logged by the recorder.
    return 0 if not result.errors else 1


def _run_pdf(args: argparse.Namespace, command_string: str, verbosity: str) -> int:
    from .pdf import generate_pdf

    if not hasattr(args, "in_dir") or not hasattr(args, "out_pdf"):
        raise UserError("pdf requires --in_dir and --out_pdf unless --dump-default-config is used.")

    effective, config_path = _build_effective_config(args, "pdf")
    run, option_values = split_run_keys(effective, PDF_RUN_KEYS)
    pdf_options = PdfOptions.from_mapping(option_values)

    in_dir = normalize_path(args.in_dir)
    out_pdf = normalize_path(args.out_pdf)
    ensure_input_dir(in_dir, "Input directory")
    files = _resolve_files(args, in_dir, str(run["glob"]))
    manifest_path = _manifest_path(run["manifest"], out_pdf.parent / f"{out_pdf.stem}_manifest.json")

    recorder = ManifestRecorder(
        command=command_string,
        options={
            **option_values,
            "config_path": str(config_path) if config_path else None,
            "verbosity": verbosity,
        },
        inputs={"in_dir": str(in_dir), "files": files},
        outputs={"pdf": str(out_pdf), "manifest": str(manifest_path)},
        verbosity=verbosity,
    )

    summary: Dict[str, Any] = {"files_found": len(files), "mode": "spread" if pdf_options.is_spread else "single"}
    try:
        written = generate_pdf(in_dir, out_pdf, files, pdf_options, recorder=recorder)
        recorder.outputs["pdf"] = str(written)
        summary["output"] = str(written)
        summary["status"] = "ok"
    except UserError as exc:
        recorder.log(str(exc), level="error")
        summary["status"] = "error"
        summary["error"] = str(exc)
        raise
    finally:
        _finish_manifest(recorder, args, manifest_path, summary)
    return 0


def _run_decode(args: argparse.Namespace, verbosity: str) -> int:
    from .api import decode_proprietary_image
    from .jpeg import write_jpeg

    psd_path = normalize_path(args.psd)
    out_path = normalize_path(args.out)
    recorder = ManifestRecorder(command="decode", verbosity=verbosity)

    raster = decode_proprietary_image(psd_path)
    image = raster.to_image()
    if out_path.suffix.lower() in {".jpg", ".jpeg"}:
        write_jpeg(image, out_path)
    else:
        try:
            image.save(out_path)
        except (OSError, ValueError) as exc:
            raise UserError(f"Failed to write {out_path}: {exc}") from exc
    recorder.log(f"Decoded {psd_path.name} ({raster.width}x{raster.height}) -> {out_path}")
    return 0


def _run_preview(args: argparse.Namespace, verbosity: str) -> int:
    from .images import write_preview_file

    image_path = normalize_path(args.image)
    out_dir = normalize_path(args.out_dir)
    max_size = validate_positive_int(args.max_size, "--max_size")
    recorder = ManifestRecorder(command="preview", verbosity=verbosity)

    width, height, written = write_preview_file(
        image_path, max_size, out_dir, use_thumbnail=args.thumbnail
    )
    recorder.log(f"Preview of {image_path.name} ({width}x{height}) -> {written}")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    try:
        command_string = _command_string(_command_argv_for_manifest(argv))
        verbosity = _verbosity_from_args(args)

        if args.command in SECTION_DEFAULTS and getattr(args, "dump_default_config", False):
            print(dump_default_yaml(args.command))
            return 0

        if args.command == "process":
            return _run_process(args, command_string, verbosity)
        if args.command == "pdf":
            return _run_pdf(args, command_string, verbosity)
        if args.command == "decode":
            return _run_decode(args, verbosity)
        if args.command == "preview":
            return _run_preview(args, verbosity)

        raise UserError("Unknown command. Use --help for usage.")
    except UserError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2
