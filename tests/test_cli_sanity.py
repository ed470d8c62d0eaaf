"""
CLI sanity checks for deterministic, quiet test behavior.
"""

from __future__ import annotations

import json
import unittest

from helpers_cli import run_manga_toolkit_cli, workspace_temp_dir

import fitz  # PyMuPDF
from PIL import Image


class CliSanityTests(unittest.TestCase):
    def test_help_is_clean_and_deterministic(self) -> None:
        exit_code, stdout_text, stderr_text = run_manga_toolkit_cli(["--help"])
        self.assertEqual(exit_code, 0)
        self.assertIn("usage:", f"{stdout_text}{stderr_text}".lower())
        self.assertNotIn("not allowed with argument", stderr_text)

    def test_dump_default_config(self) -> None:
        exit_code, stdout_text, _ = run_manga_toolkit_cli(["pdf", "--dump-default-config"])
        self.assertEqual(exit_code, 0)
        self.assertTrue(stdout_text.startswith("pdf:"))

    def test_missing_required_dirs_is_user_error(self) -> None:
        exit_code, _, stderr_text = run_manga_toolkit_cli(["process"])
        self.assertEqual(exit_code, 2)
        self.assertIn("Error:", stderr_text)

    def test_missing_input_dir(self) -> None:
        with workspace_temp_dir("cli") as tmp:
            exit_code, _, stderr_text = run_manga_toolkit_cli(
                ["pdf", "--in_dir", str(tmp / "nope"), "--out_pdf", str(tmp / "x.pdf")]
            )
        self.assertEqual(exit_code, 2)
        self.assertIn("not found", stderr_text)


class CliRunTests(unittest.TestCase):
    def test_process_then_pdf(self) -> None:
        with workspace_temp_dir("cli") as tmp:
            scans = tmp / "scans"
            scans.mkdir()
            for index in range(3):
                Image.new("RGB", (200, 300), (250, 250, 250)).save(scans / f"p{index}.png")
            out_dir = tmp / "jpg"

            exit_code, _, stderr_text = run_manga_toolkit_cli(
                [
                    "--quiet", "process",
                    "--in_dir", str(scans),
                    "--out_dir", str(out_dir),
                    "--tachikiri", "crop_only",
                    "--crop", "10", "10", "190", "290",
                ]
            )
            self.assertEqual(exit_code, 0, stderr_text)
            self.assertEqual(sorted(p.name for p in out_dir.glob("*.jpg")), ["p0.jpg", "p1.jpg", "p2.jpg"])
            manifest = json.loads((out_dir / "manifest.json").read_text(encoding="utf-8"))
            self.assertEqual(manifest["summary"]["processed"], 3)
            self.assertEqual(manifest["options"]["tachikiri_type"], "crop_only")

            out_pdf = tmp / "book.pdf"
            exit_code, _, stderr_text = run_manga_toolkit_cli(
                [
                    "--quiet", "pdf",
                    "--in_dir", str(out_dir),
                    "--out_pdf", str(out_pdf),
                    "--glob", "*.jpg",
                    "--spread",
                ]
            )
            self.assertEqual(exit_code, 0, stderr_text)
            with fitz.open(str(out_pdf)) as doc:
                self.assertEqual(doc.page_count, 2)
            self.assertTrue((tmp / "book_manifest.json").exists())

    def test_yaml_config_is_overridden_by_flags(self) -> None:
        with workspace_temp_dir("cli") as tmp:
            scans = tmp / "scans"
            scans.mkdir()
            Image.new("RGB", (100, 100)).save(scans / "p.png")
            config = tmp / "cfg.yaml"
            config.write_text("process:\n  tachikiri_type: crop_only\n  crop_right: 50\n  crop_bottom: 50\n", encoding="utf-8")

            exit_code, _, stderr_text = run_manga_toolkit_cli(
                [
                    "--quiet", "process",
                    "--in_dir", str(scans),
                    "--out_dir", str(tmp / "out"),
                    "--config", str(config),
                    "--tachikiri", "none",
                    "--no-manifest",
                ]
            )
            self.assertEqual(exit_code, 0, stderr_text)
            with Image.open(tmp / "out" / "p.jpg") as written:
                self.assertEqual(written.size, (100, 100))
            self.assertFalse((tmp / "out" / "manifest.json").exists())

    def test_bad_config_value_is_user_error(self) -> None:
        with workspace_temp_dir("cli") as tmp:
            scans = tmp / "scans"
            scans.mkdir()
            Image.new("RGB", (10, 10)).save(scans / "p.png")
            config = tmp / "cfg.yaml"
            config.write_text("process:\n  resize_target: 5\n", encoding="utf-8")

            exit_code, _, stderr_text = run_manga_toolkit_cli(
                [
                    "--quiet", "process",
                    "--in_dir", str(scans),
                    "--out_dir", str(tmp / "out"),
                    "--config", str(config),
                ]
            )
        self.assertEqual(exit_code, 2)
        self.assertIn("Error: resize_target", stderr_text)
        self.assertNotIn("Traceback", stderr_text)

    def test_failed_page_returns_one(self) -> None:
        with workspace_temp_dir("cli") as tmp:
            scans = tmp / "scans"
            scans.mkdir()
            (scans / "bad.png").write_bytes(b"garbage")

            exit_code, _, stderr_text = run_manga_toolkit_cli(
                ["--quiet", "process", "--in_dir", str(scans), "--out_dir", str(tmp / "out")]
            )
        self.assertEqual(exit_code, 1)
        self.assertIn("bad.png", stderr_text)


if __name__ == "__main__":
    unittest.main()
