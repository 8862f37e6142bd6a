"""Run context for structured estimation output.

Every command-line run uses RunContext to get:
  - Structured output directories: results/<dataset>/<variant>/<date>/data/
  - Automatic console log capture (run_log.txt)
  - Run metadata (run_info.json): git hash, timestamp, parameters
  - A `latest` symlink pointing to the most recent run

Usage:
    with RunContext(dataset="senate_118", variant="fixed_reference", params=vars(args)) as ctx:
        ideal_points.write_parquet(ctx.data_dir / "ideal_points.parquet")
        save_manifest(manifest, ctx.run_dir)
"""

from __future__ import annotations

import io
import json
import re
import subprocess
import sys
from datetime import datetime, timezone
from pathlib import Path
from types import TracebackType


def print_header(title: str) -> None:
    width = 80
    print(f"\n{'=' * width}")
    print(f"  {title}")
    print(f"{'=' * width}")


class _TeeStream:
    """Wraps a stream to duplicate output to both the original stream and a buffer.

    All print() output goes to both the console (so the user sees progress)
    and an internal StringIO buffer (captured for run_log.txt).
    """

    def __init__(self, original: io.TextIOBase) -> None:
        self._original = original
        self._buffer = io.StringIO()

    def write(self, data: str) -> int:
        self._original.write(data)
        self._buffer.write(data)
        return len(data)

    def flush(self) -> None:
        self._original.flush()

    def getvalue(self) -> str:
        return self._buffer.getvalue()


def _normalize_dataset(dataset: str) -> str:
    """Turn a dataset label into a safe directory name.

    Examples:
        "S118_votes"       -> "s118_votes"
        "Kansas House 2025" -> "kansas-house-2025"
        "../../etc"        -> "etc"
    """
    name = re.sub(r"[^a-z0-9._-]+", "-", dataset.strip().lower())
    name = name.strip(".-")
    return name or "dataset"


def _git_commit_hash() -> str:
    """Get the current git commit hash, or 'unknown' if not in a repo."""
    try:
        result = subprocess.run(
            ["git", "rev-parse", "HEAD"],
            capture_output=True,
            text=True,
            timeout=5,
        )
        if result.returncode == 0:
            return result.stdout.strip()
    except (FileNotFoundError, subprocess.TimeoutExpired):
        pass
    return "unknown"


class RunContext:
    """Context manager that sets up structured output for an estimation run.

    Creates the directory tree, captures console output, and writes
    metadata on exit.

    Attributes:
        dataset: Normalized dataset name (e.g. "s118_votes").
        variant: Model variant (e.g. "fixed_reference").
        params: Run parameters to record in run_info.json.
        run_dir: Root of this run's output (results/<dataset>/<variant>/<date>/).
        data_dir: Directory for parquet/NetCDF output.
    """

    def __init__(
        self,
        dataset: str,
        variant: str,
        params: dict | None = None,
        results_root: Path | None = None,
    ) -> None:
        self.dataset = _normalize_dataset(dataset)
        self.variant = variant
        self.params = params or {}

        root = results_root or Path("results")
        today = datetime.now(timezone.utc).strftime("%Y-%m-%d")

        self.run_dir = root / self.dataset / variant / today
        self.data_dir = self.run_dir / "data"

        # Parent of date dirs, where the `latest` symlink lives
        self._variant_dir = root / self.dataset / variant
        self._today = today
        self._tee: _TeeStream | None = None
        self._original_stdout: io.TextIOBase | None = None
        self._start_time: datetime | None = None
        self.failed = False

    def __enter__(self) -> RunContext:
        self.setup()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if exc_type is not None:
            self.failed = True
            print(f"\n  Run failed: {exc_type.__name__}: {exc_val}")
        self.finalize()

    def setup(self) -> None:
        """Create directories and start log capture."""
        self.data_dir.mkdir(parents=True, exist_ok=True)

        # Start capturing stdout
        self._original_stdout = sys.stdout
        self._tee = _TeeStream(sys.stdout)
        sys.stdout = self._tee  # type: ignore[assignment]
        self._start_time = datetime.now(timezone.utc)

    def finalize(self) -> None:
        """Write run_info.json, run_log.txt, and update latest symlink."""
        # Restore stdout before writing metadata (so our writes aren't captured)
        log_text = ""
        if self._tee is not None:
            log_text = self._tee.getvalue()
        if self._original_stdout is not None:
            sys.stdout = self._original_stdout  # type: ignore[assignment]

        log_path = self.run_dir / "run_log.txt"
        log_path.write_text(log_text, encoding="utf-8")

        end_time = datetime.now(timezone.utc)
        run_info = {
            "dataset": self.dataset,
            "variant": self.variant,
            "run_date": self._today,
            "timestamp_start": (self._start_time.isoformat() if self._start_time else None),
            "timestamp_end": end_time.isoformat(),
            "status": "failed" if self.failed else "ok",
            "git_commit": _git_commit_hash(),
            "python_version": sys.version,
            "params": self.params,
        }
        info_path = self.run_dir / "run_info.json"
        with open(info_path, "w") as f:
            json.dump(run_info, f, indent=2, default=str)

        # Only successful runs become `latest` (relative so it's portable)
        if self.failed:
            return
        latest = self._variant_dir / "latest"
        if latest.is_symlink() or latest.exists():
            latest.unlink()
        latest.symlink_to(self._today)
