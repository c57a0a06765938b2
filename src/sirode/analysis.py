"""Trajectory summaries: epidemic peak, final size and conservation checks.

Every public function validates the trajectory it receives and raises
ValidationError on anything empty, misshapen or non-finite.
"""


from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional

import numpy as np
import peakutils as pk

from .exceptions import ValidationError
from .model import COMPARTMENTS, SIRParams, Trajectory


@dataclass(frozen=True)
class PeakSummary:
    time: float
    value: float
    S: float
    R: float
    index: int


def validate_trajectory(trajectory: Trajectory) -> Trajectory:
    """Check a trajectory is complete before summarizing it."""
    if not isinstance(trajectory, Trajectory):
        raise ValidationError(f"expected a Trajectory, got {type(trajectory).__name__}")
    if len(trajectory) == 0:
        raise ValidationError("trajectory is empty")
    if not np.all(np.isfinite(trajectory.times)):
        raise ValidationError("trajectory times must be finite")
    if np.any(np.diff(trajectory.times) <= 0):
        raise ValidationError("trajectory times must be strictly increasing")
    if not np.all(np.isfinite(trajectory.states)):
        raise ValidationError("trajectory contains non-finite values")
    return trajectory


def find_peak(trajectory: Trajectory, compartment: str = "I") -> PeakSummary:
    """Checkpoint where ``compartment`` is largest; ties go to the earliest time.

    A peak at the first checkpoint (e.g. a declining epidemic) is a valid answer.
    """
    validate_trajectory(trajectory)
    values = trajectory.column(compartment)
    # np.argmax returns the first occurrence of the maximum.
    idx = int(np.argmax(values))
    return PeakSummary(
        time=float(trajectory.times[idx]),
        value=float(values[idx]),
        S=float(trajectory.S[idx]),
        R=float(trajectory.R[idx]),
        index=idx,
    )


def local_peaks(
    trajectory: Trajectory, compartment: str = "I", thres: float = 0.5, min_dist: int = 1
) -> np.ndarray:
    """Indexes of interior local maxima above ``thres`` (fraction of the range)."""
    validate_trajectory(trajectory)
    values = np.asarray(trajectory.column(compartment), dtype=float)
    return np.asarray(pk.indexes(values, thres=thres, min_dist=min_dist), dtype=int)


def final_size(trajectory: Trajectory) -> float:
    """Individuals infected over the run: everyone who left S."""
    validate_trajectory(trajectory)
    return float(trajectory.S[0] - trajectory.S[-1])


def attack_rate(trajectory: Trajectory) -> float:
    """Final size as a fraction of the initial population."""
    validate_trajectory(trajectory)
    return final_size(trajectory) / float(trajectory.states[0].sum())


def conservation_error(trajectory: Trajectory) -> float:
    """Largest relative deviation of S + I + R from the initial total."""
    validate_trajectory(trajectory)
    totals = trajectory.states.sum(axis=1)
    return float(np.max(np.abs(totals - totals[0])) / totals[0])


def min_compartment_value(trajectory: Trajectory) -> float:
    validate_trajectory(trajectory)
    return float(np.min(trajectory.states))


def summarize(trajectory: Trajectory, params: Optional[SIRParams] = None) -> Dict[str, float]:
    """Flat dict of run summaries, suitable for JSON output."""
    peak = find_peak(trajectory)
    summary: Dict[str, float] = {
        "peak_time": peak.time,
        "peak_I": peak.value,
        "peak_S": peak.S,
        "peak_R": peak.R,
        "final_size": final_size(trajectory),
        "attack_rate": attack_rate(trajectory),
        "conservation_error": conservation_error(trajectory),
        "min_value": min_compartment_value(trajectory),
        "n_checkpoints": len(trajectory),
    }
    for name, value in zip(COMPARTMENTS, trajectory.final):
        summary[f"final_{name}"] = value
    if params is not None:
        r_0 = params.basic_reproduction_number
        summary["R0"] = r_0
        # Fraction immune needed to stop growth; zero when R0 <= 1.
        summary["herd_immunity_threshold"] = max(0.0, 1.0 - 1.0 / r_0)
    return summary
