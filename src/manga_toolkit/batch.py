"""
Process a folder of pages in parallel.

Why this module exists:
- A chapter is dozens of large scans; processing them one at a time is slow,
  so pages are fanned out over a thread pool (Pillow releases the GIL for the
  heavy work).
- One bad page must not sink the run: each page reports its own outcome and
  the coordinator collects them into a summary.
- A UI needs progress and a way to stop. Progress goes to a callable sink;
  stopping is cooperative through a CancellationToken checked before each
  page starts.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
import os
from pathlib import Path
import threading
from typing import Any, Callable, Dict, List, Optional, Sequence

from .cache import ResourceStore, default_store
from .manifest import ManifestRecorder, ensure_recorder
from .options import ProcessOptions
from .pipeline import process_one
from .utils import UserError, ensure_dir, ensure_input_dir


MAX_WORKERS = 32


class CancellationToken:
    """A shared stop flag. Pass the same token to a run and to whoever may cancel it."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    def reset(self) -> None:
        self._event.clear()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@dataclass(frozen=True)
class ProgressEvent:
    completed: int
    total: int
    filename: str
    phase: str
    in_flight: int


ProgressSink = Callable[[ProgressEvent], None]


@dataclass(frozen=True)
class ItemOutcome:
    """What one worker did with one page."""

    index: int
    filename: str
    output: Optional[Path] = None
    error: Optional[str] = None
    skipped: bool = False


@dataclass
class BatchResult:
    processed: int
    total: int
    errors: List[str] = field(default_factory=list)
    output_dir: Path = Path(".")
    cancelled: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "processed": self.processed,
            "total": self.total,
            "errors": list(self.errors),
            "output_dir": str(self.output_dir),
            "cancelled": self.cancelled,
        }


def default_worker_count() -> int:
    """Twice the logical CPU count, capped at MAX_WORKERS."""

    cpus = os.cpu_count() or 4
    return min(cpus * 2, MAX_WORKERS)


def output_name_for(file_name: str) -> Optional[str]:
    """
    Output file name for an input name: same stem, ".jpg" extension.

    Returns None for names that do not end in a file name (empty, ".", "..").
    """

    name = Path(file_name).name
    if not name or name in {".", ".."}:
        return None
    return Path(name).with_suffix(".jpg").name


def cancelled_message(done: int, total: int) -> str:
    return f"cancelled ({done}/{total} completed)"


class BatchExecutor:
    """
    Run the page pipeline over a list of files with a thread pool.

    Page numbers follow input order (start + index), not completion order.
    """

    def __init__(
        self,
        options: ProcessOptions,
        store: Optional[ResourceStore] = None,
        workers: int = 0,
        token: Optional[CancellationToken] = None,
        progress: Optional[ProgressSink] = None,
        recorder: Optional[ManifestRecorder] = None,
    ) -> None:
        if workers < 0:
            raise UserError("workers must be >= 0 (0 picks a default).")
        self.options = options
        self.store = store if store is not None else default_store()
        self.workers = workers or default_worker_count()
        self.token = token if token is not None else CancellationToken()
        self.progress = progress
        self.recorder = ensure_recorder(recorder, "process")

        self._lock = threading.Lock()
        self._completed = 0
        self._in_flight = 0
        self._total = 0

    def _emit(self, event: ProgressEvent) -> None:
        if self.progress is None:
            return
        try:
            self.progress(event)
        except Exception as exc:  # a broken sink must not affect processing
            self.recorder.log(f"Progress sink failed: {exc}", level="debug")

    def _start_item(self, filename: str) -> None:
        with self._lock:
            self._in_flight += 1
            event = ProgressEvent(
                completed=self._completed,
                total=self._total,
                filename=filename,
                phase=f"loading ({self._in_flight} in flight)",
                in_flight=self._in_flight,
            )
        self._emit(event)

    def _finish_item(self, filename: str) -> None:
        with self._lock:
            self._in_flight -= 1
            self._completed += 1
            completed = self._completed
            in_flight = self._in_flight
        phase = f"converted ({completed}/{self._total})"
        if in_flight > 0:
            phase = f"{phase} - {in_flight} in flight"
        self._emit(
            ProgressEvent(
                completed=completed,
                total=self._total,
                filename=filename,
                phase=phase,
                in_flight=in_flight,
            )
        )

    def _run_item(self, index: int, filename: str, input_dir: Path, output_dir: Path) -> ItemOutcome:
        if self.token.cancelled:
            return ItemOutcome(index=index, filename=filename, skipped=True)

        self._start_item(filename)
        output_name = output_name_for(filename)
        if output_name is None:
            self._finish_item(filename)
            return ItemOutcome(index=index, filename=filename, error=f"{filename}: invalid file name")

        output_path = output_dir / output_name
        page_number = self.options.nombre_start_number + index
        error: Optional[str] = None
        try:
            process_one(input_dir / filename, output_path, self.options, page_number, store=self.store)
        except UserError as exc:
            error = f"{filename}: {exc}"
        except Exception as exc:  # per-page failures never abort the batch
            error = f"{filename}: unexpected error: {exc}"
        finally:
            self._finish_item(filename)

        if error is not None:
            return ItemOutcome(index=index, filename=filename, error=error)
        return ItemOutcome(index=index, filename=filename, output=output_path)

    def run(self, input_dir: Path, output_dir: Path, file_names: Sequence[str]) -> BatchResult:
        """Process every file; always returns a summary unless validation fails."""

        if not file_names:
            raise UserError("No files selected for processing.")
        ensure_input_dir(input_dir, "Input directory")
        ensure_dir(output_dir)

        total = len(file_names)
        with self._lock:
            self._total = total
            self._completed = 0
            self._in_flight = 0

        self.recorder.log(
            f"Processing {total} file(s) from {input_dir} with {self.workers} worker(s)."
        )

        outcomes: List[ItemOutcome] = []
        with ThreadPoolExecutor(max_workers=self.workers) as pool:
            futures = [
                pool.submit(self._run_item, index, name, input_dir, output_dir)
                for index, name in enumerate(file_names)
            ]
            for future in as_completed(futures):
                outcome = future.result()
                outcomes.append(outcome)
                self._record(outcome, total)

        outcomes.sort(key=lambda item: item.index)
        processed = sum(1 for outcome in outcomes if not outcome.skipped)

        if self.token.cancelled:
            self.recorder.log(f"Processing cancelled after {processed}/{total} file(s).", level="warning")
            return BatchResult(
                processed=processed,
                total=total,
                errors=[cancelled_message(processed, total)],
                output_dir=output_dir,
                cancelled=True,
            )

        errors = [outcome.error for outcome in outcomes if outcome.error is not None]
        self.recorder.log(
            f"Processed {processed}/{total} file(s) with {len(errors)} error(s) -> {output_dir}"
        )
        return BatchResult(processed=processed, total=total, errors=errors, output_dir=output_dir)

    def _record(self, outcome: ItemOutcome, total: int) -> None:
        position = outcome.index + 1
        if outcome.skipped:
            self.recorder.add_action(action="process_image", status="skipped", input=outcome.filename)
        elif outcome.error is not None:
            self.recorder.log(outcome.error, level="error")
            self.recorder.add_action(
                action="process_image", status="error", input=outcome.filename, error=outcome.error
            )
        else:
            self.recorder.log(
                f"Processed {outcome.filename} ({position}/{total}) -> {outcome.output}",
                level="debug",
            )
            self.recorder.add_action(
                action="process_image",
                status="written",
                input=outcome.filename,
                output=str(outcome.output),
                page=self.options.nombre_start_number + outcome.index,
            )


def run_batch(
    input_dir: Path,
    output_dir: Path,
    file_names: Sequence[str],
    options: ProcessOptions,
    store: Optional[ResourceStore] = None,
    workers: int = 0,
    token: Optional[CancellationToken] = None,
    progress: Optional[ProgressSink] = None,
    recorder: Optional[ManifestRecorder] = None,
) -> BatchResult:
    """Convenience wrapper around BatchExecutor(...).run(...)."""

    executor = BatchExecutor(
        options,
        store=store,
        workers=workers,
        token=token,
        progress=progress,
        recorder=recorder,
    )
    return executor.run(Path(input_dir), Path(output_dir), file_names)
