"""Plotting utilities for SIR runs.

Reusable Matplotlib helpers to draw a trajectory (one line per
compartment) with the infection peak marked, and to save figures next to
the other run artifacts. Consumes the Trajectory and PeakSummary objects
produced by src.sirode; nothing here feeds back into the simulation.
"""

from __future__ import annotations

from pathlib import Path
from typing import Mapping, Optional, Sequence, Tuple

import numpy as np
import matplotlib.pyplot as plt

from src.sirode.analysis import PeakSummary
from src.sirode.io import ensure_dir
from src.sirode.model import COMPARTMENTS, Trajectory


COMPARTMENT_COLORS = {"S": "tab:blue", "I": "tab:red", "R": "tab:green"}


def save_figure(fig: plt.Figure, path: Path | str, dpi: int = 150) -> Path:
    """Save a Matplotlib figure and ensure the parent directory exists."""
    path = Path(path)
    ensure_dir(path.parent)
    fig.tight_layout()
    fig.savefig(path, dpi=dpi, bbox_inches="tight")
    return path


def plot_trajectory(
    trajectory: Trajectory,
    peak: Optional[PeakSummary] = None,
    compartments: Sequence[str] = COMPARTMENTS,
    title: Optional[str] = None,
    xlabel: str = "t",
    ylabel: str = "individuals",
    ax: Optional[plt.Axes] = None,
) -> plt.Axes:
    """Plot S, I, R against time; mark the peak if one is given."""
    ax = ax or plt.gca()
    for name in compartments:
        ax.plot(
            trajectory.times,
            trajectory.column(name),
            label=name,
            color=COMPARTMENT_COLORS.get(name),
        )
    if peak is not None:
        ax.axvline(peak.time, color="0.5", linestyle="--", linewidth=1)
        ax.scatter([peak.time], [peak.value], color=COMPARTMENT_COLORS["I"], zorder=3)
        ax.annotate(
            f"peak t={peak.time:g}\nI={peak.value:,.0f}",
            xy=(peak.time, peak.value),
            xytext=(8, -4),
            textcoords="offset points",
            fontsize=8,
        )
    if title:
        ax.set_title(title)
    ax.set_xlabel(xlabel)
    ax.set_ylabel(ylabel)
    ax.legend(fontsize=8)
    return ax


def plot_sweep(
    trajectories: Mapping[str, Trajectory],
    compartment: str = "I",
    title: Optional[str] = None,
    figsize: Tuple[float, float] = (6.0, 4.0),
) -> plt.Figure:
    """Overlay one compartment from several labeled runs."""
    fig, ax = plt.subplots(1, 1, figsize=figsize)
    for label, trajectory in trajectories.items():
        ax.plot(trajectory.times, np.asarray(trajectory.column(compartment)), label=label)
    ax.set_xlabel("t")
    ax.set_ylabel(f"{compartment}(t)")
    if title:
        ax.set_title(title)
    if trajectories:
        ax.legend(fontsize=8)
    return fig
