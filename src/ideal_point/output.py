"""CSV and JSON output for estimation results."""

import csv
import json
from dataclasses import asdict, fields
from pathlib import Path

from ideal_point.models import LatentTraitEstimate


def save_estimates_csv(path: Path, estimates: list[LatentTraitEstimate]) -> None:
    """Write one row per legislator, in the order given (rank order from to_estimates)."""
    with open(path, "w", newline="", encoding="utf-8") as f:
        fieldnames = [fld.name for fld in fields(LatentTraitEstimate)]
        writer = csv.DictWriter(f, fieldnames=fieldnames)
        writer.writeheader()
        for est in estimates:
            writer.writerow(asdict(est))
    print(f"  Saved: {path.name} ({len(estimates)} rows)")


def save_manifest(manifest: dict, out_dir: Path, name: str = "filtering_manifest.json") -> Path:
    path = out_dir / name
    with open(path, "w") as f:
        json.dump(manifest, f, indent=2, default=str)
    print(f"  Saved: {path.name}")
    return path
