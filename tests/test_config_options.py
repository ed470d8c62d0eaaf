"""
Config loading, merge precedence and typed option validation.
"""

from __future__ import annotations

import unittest

from helpers_cli import workspace_temp_dir

from manga_toolkit.config import deep_merge, dump_default_yaml, extract_section, load_yaml
from manga_toolkit.options import (
    AuthorStyle,
    MarkColor,
    NombreSize,
    PdfOptions,
    ProcessOptions,
    TachikiriMode,
    WorkInfo,
)
from manga_toolkit.utils import UserError


class ConfigTests(unittest.TestCase):
    def test_deep_merge_overlay_wins(self) -> None:
        merged = deep_merge({"a": 1, "nested": {"x": 1, "y": 2}}, {"nested": {"y": 3}, "b": 2})
        self.assertEqual(merged, {"a": 1, "b": 2, "nested": {"x": 1, "y": 3}})

    def test_wrapped_and_root_sections(self) -> None:
        self.assertEqual(extract_section({"process": {"workers": 2}}, "process"), {"workers": 2})
        self.assertEqual(extract_section({"padding": 10}, "pdf"), {"padding": 10})

    def test_unknown_keys_are_rejected(self) -> None:
        with self.assertRaises(UserError):
            extract_section({"process": {"crop_lefft": 1}}, "process")

    def test_load_yaml(self) -> None:
        with workspace_temp_dir("config") as tmp:
            path = tmp / "cfg.yaml"
            path.write_text("pdf:\n  preset: b4_spread\n  add_nombre: true\n", encoding="utf-8")
            self.assertEqual(load_yaml(path), {"pdf": {"preset": "b4_spread", "add_nombre": True}})

            path.write_text("- just\n- a list\n", encoding="utf-8")
            with self.assertRaises(UserError):
                load_yaml(path)

    def test_dump_default_yaml_is_wrapped(self) -> None:
        text = dump_default_yaml("process")
        self.assertTrue(text.startswith("process:"))
        self.assertIn("tachikiri_type: none", text)


class ProcessOptionsTests(unittest.TestCase):
    def test_strings_become_enums(self) -> None:
        options = ProcessOptions(
            tachikiri_type="fill_and_stroke",
            stroke_color="cyan",
            fill_color="black",
            nombre_size="xlarge",
        )
        self.assertIs(options.tachikiri_type, TachikiriMode.FILL_AND_STROKE)
        self.assertIs(options.stroke_color, MarkColor.CYAN)
        self.assertEqual(options.fill_color.rgb, (0, 0, 0))
        self.assertIs(options.nombre_size, NombreSize.XLARGE)

    def test_unknown_mode_lists_choices(self) -> None:
        with self.assertRaisesRegex(UserError, "fill_white"):
            ProcessOptions(tachikiri_type="bleed")

    def test_unknown_color(self) -> None:
        with self.assertRaises(UserError):
            ProcessOptions(stroke_color="magenta")

    def test_opacity_range(self) -> None:
        with self.assertRaises(UserError):
            ProcessOptions(fill_opacity=101)

    def test_negative_crop(self) -> None:
        with self.assertRaises(UserError):
            ProcessOptions(crop_left=-1)

    def test_mapping_round_trip_keeps_values(self) -> None:
        options = ProcessOptions(tachikiri_type="crop_only", resize_target=(100, 200))
        mapping = options.to_mapping()
        self.assertEqual(mapping["tachikiri_type"], "crop_only")
        self.assertEqual(mapping["resize_target"], [100, 200])
        self.assertEqual(ProcessOptions.from_mapping(mapping), options)

    def test_from_mapping_rejects_unknown_keys(self) -> None:
        with self.assertRaises(UserError):
            ProcessOptions.from_mapping({"dpi": 300})

    def test_malformed_resize_target(self) -> None:
        for value in (5, ["a", "b"], [100], [100, 0], [True, 100], "2250x3000"):
            with self.subTest(value=value):
                with self.assertRaises(UserError):
                    ProcessOptions.from_mapping({"resize_target": value})

    def test_resize_target_list_becomes_tuple(self) -> None:
        options = ProcessOptions.from_mapping({"resize_target": [1200, 1600]})
        self.assertEqual(options.resize_target, (1200, 1600))


class PdfOptionsTests(unittest.TestCase):
    def test_preset_values_then_overrides(self) -> None:
        options = PdfOptions.from_preset("b4_spread", padding=0)
        self.assertTrue(options.is_spread)
        self.assertEqual(options.gutter, 70)
        self.assertEqual(options.padding, 0)
        self.assertEqual(options.width_mm, 257.0)

    def test_unknown_preset(self) -> None:
        with self.assertRaises(UserError):
            PdfOptions(preset="letter")

    def test_work_info_from_mapping(self) -> None:
        options = PdfOptions.from_mapping(
            {"work_info": {"title": "T", "author_type": 1, "author1": "A", "author2": "B"}}
        )
        self.assertIsInstance(options.work_info, WorkInfo)
        self.assertIs(options.work_info.author_type, AuthorStyle.SPLIT)

    def test_bool_flags_are_strict(self) -> None:
        with self.assertRaises(UserError):
            PdfOptions(is_spread="yes")


class WorkInfoTests(unittest.TestCase):
    def test_author_line_styles(self) -> None:
        self.assertEqual(WorkInfo(author1="A").author_line(), "著　A")
        self.assertEqual(
            WorkInfo(author_type=1, author1="A", author2="B").author_line(),
            "作画　A　　原作　B",
        )
        self.assertEqual(WorkInfo(author_type=1, author2="B").author_line(), "原作　B")
        self.assertEqual(WorkInfo(author_type=2, author1="by A").author_line(), "by A")
        self.assertEqual(WorkInfo().author_line(), "")

    def test_invalid_author_type(self) -> None:
        with self.assertRaises(UserError):
            WorkInfo(author_type=5)


if __name__ == "__main__":
    unittest.main()
