"""
Manifest recording and logging.

Why this exists:
- Every CLI command writes a JSON manifest with inputs/outputs and a timeline.
- Logging goes through one place so messages are consistent and captured.
- Batch workers log from several threads, so the recorder serialises access.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
import json
from pathlib import Path
import sys
import threading
from typing import Any, Dict, List, Optional, TextIO

from . import __version__
from .utils import ensure_dir


TOOL_NAME = "manga-toolkit"


def _iso_now() -> str:
    """Return an ISO-8601 timestamp in UTC."""

    return datetime.now(timezone.utc).isoformat()


@dataclass
class ManifestRecorder:
    """
    Collect logs and actions, then write a single manifest JSON file.

    Core entry points accept an optional recorder; see ``ensure_recorder``.
    """

    command: str
    tool_name: str = TOOL_NAME
    tool_version: str = __version__
    options: Dict[str, Any] = field(default_factory=dict)
    inputs: Dict[str, Any] = field(default_factory=dict)
    outputs: Dict[str, Any] = field(default_factory=dict)
    verbosity: str = "normal"
    console_stream: TextIO = field(default_factory=lambda: sys.stderr)
    started_at: str = field(default_factory=_iso_now)
    logs: List[Dict[str, Any]] = field(default_factory=list)
    actions: List[Dict[str, Any]] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def log(self, message: str, level: str = "info") -> None:
        """Record a log message and also print it to the console."""

        entry = {"timestamp": _iso_now(), "level": level, "message": message}

        if self.verbosity == "quiet":
            should_print = level == "error"
        elif self.verbosity == "verbose":
            should_print = True
        else:
            should_print = level in {"info", "warning", "error"}

        with self._lock:
            self.logs.append(entry)
            if should_print:
                rendered = f"[{level}] {message}" if self.verbosity == "verbose" else message
                print(rendered, file=self.console_stream)

    def add_action(self, action: str, status: str, **details: Any) -> None:
        """
        Add an action record.

        Example action types: process_image, pdf_page, pdf_spread, decode_psd.
        """

        entry: Dict[str, Any] = {
            "timestamp": _iso_now(),
            "action": action,
            "status": status,
        }
        entry.update(details)
        with self._lock:
            self.actions.append(entry)

    def _summarize_actions(self) -> Dict[str, int]:
        """Count actions by status (written, skipped, error, etc.)."""

        counts: Dict[str, int] = {}
        for action in self.actions:
            status = action.get("status", "unknown")
            counts[status] = counts.get(status, 0) + 1
        return counts

    def build_manifest(self, summary: Dict[str, Any]) -> Dict[str, Any]:
        """Assemble the final manifest structure."""

        with self._lock:
            return {
                "tool": self.tool_name,
                "version": self.tool_version,
                "command": self.command,
                "started_at": self.started_at,
                "ended_at": _iso_now(),
                "options": self.options,
                "inputs": self.inputs,
                "outputs": self.outputs,
                "summary": summary,
                "action_counts": self._summarize_actions(),
                "actions": list(self.actions),
                "logs": list(self.logs),
            }

    def write_manifest(self, path: Path, summary: Dict[str, Any]) -> None:
        """Write the manifest JSON, creating the parent folder if needed."""

        ensure_dir(path.parent)
        manifest = self.build_manifest(summary)
        with path.open("w", encoding="utf-8") as handle:
            json.dump(manifest, handle, indent=2, ensure_ascii=True, default=str)


def ensure_recorder(recorder: Optional[ManifestRecorder], command: str) -> ManifestRecorder:
    """Return the caller's recorder, or a quiet one so library calls never print."""

    if recorder is not None:
        return recorder
    return ManifestRecorder(command=command, verbosity="quiet")
