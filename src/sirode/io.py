"""Run artifact helpers.

Small utilities to create output folders and write a run's config, summary
and trajectory as JSON and CSV. Used by the run script to standardize the
contents of runs/.
"""


from pathlib import Path
import json
import csv
from typing import Dict, Iterable, Union

import numpy as np

from .model import Trajectory


def ensure_dir(path: Union[Path, str]) -> Path:
    path = Path(path)
    # Create output folder if needed.
    path.mkdir(parents=True, exist_ok=True)
    return path


def _to_builtin(value):
    """Convert NumPy scalars/arrays and Paths to JSON-friendly values."""
    if isinstance(value, np.generic):
        return value.item()
    if isinstance(value, np.ndarray):
        return value.tolist()
    if isinstance(value, Path):
        return str(value)
    return value


def save_json(path: Union[Path, str], payload: Dict) -> None:
    path = Path(path)
    with path.open("w", encoding="utf-8") as f:
        # Stable formatting helps diffs and reproducibility.
        json.dump(payload, f, indent=2, sort_keys=True, default=_to_builtin)


def save_csv(path: Union[Path, str], rows: Iterable[Dict]) -> None:
    path = Path(path)
    rows = list(rows)
    if not rows:
        # Avoid creating empty CSVs.
        return
    with path.open("w", newline="", encoding="utf-8") as f:
        # Use keys from the first row as column order, then append new keys seen later.
        fieldnames = list(rows[0].keys())
        seen = set(fieldnames)
        for row in rows[1:]:
            for key in row.keys():
                if key not in seen:
                    fieldnames.append(key)
                    seen.add(key)
        writer = csv.DictWriter(f, fieldnames=fieldnames)
        writer.writeheader()
        writer.writerows(rows)


def save_trajectory(path: Union[Path, str], trajectory: Trajectory) -> Path:
    """Write the trajectory as long-format CSV (time, compartment, value)."""
    path = Path(path)
    ensure_dir(path.parent)
    save_csv(path, trajectory.to_long_records())
    return path
