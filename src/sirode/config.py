"""Central defaults for SIR simulations.

Defines the Defaults dataclass with the reference scenario (initial
population, rates, time grid, output folder) and the SolverOptions
dataclass with the integrator tolerances and budgets. Imported by the
model, the CLI script and the tests so every run starts from the same
documented settings.
"""


from dataclasses import dataclass
import math
from pathlib import Path
from typing import Optional

import numpy as np

from .exceptions import ValidationError


# Reference scenario: one infected individual in a population of one million.
@dataclass(frozen=True)
class Defaults:
    t0: float = 0.0
    t1: float = 60.0
    dt: float = 1.0
    s0: float = 999_999.0
    i0: float = 1.0
    r0: float = 0.0
    beta: float = 1.0
    gamma: float = 0.1
    backend: str = "dopri5"
    runs_dir: Path = Path("runs")


# Shared defaults instance used across scripts.
DEFAULTS = Defaults()


@dataclass(frozen=True)
class SolverOptions:
    """Tolerances, step bounds and budgets for the adaptive integrator.

    rtol, atol:
        Local error per step must satisfy |err_i| <= atol + rtol * |y_i|
        (RMS over components).
    min_step:
        Smallest allowed internal step. 0 means the floating-point spacing
        at the current time.
    max_step:
        Largest allowed internal step.
    first_step:
        Initial step size; chosen automatically when None.
    max_steps:
        Maximum number of attempted steps (accepted plus rejected).
    max_wall_time:
        Maximum wall-clock seconds for one integration; None disables it.
    """

    rtol: float = 1e-6
    atol: float = 1e-6
    min_step: float = 0.0
    max_step: float = math.inf
    first_step: Optional[float] = None
    max_steps: Optional[int] = 100_000
    max_wall_time: Optional[float] = None

    def validate(self) -> "SolverOptions":
        """Raise ValidationError on inconsistent options, else return self."""
        if not (np.isfinite(self.rtol) and self.rtol > 0):
            raise ValidationError(f"rtol must be a positive finite number, got {self.rtol!r}")
        if not (np.isfinite(self.atol) and self.atol > 0):
            raise ValidationError(f"atol must be a positive finite number, got {self.atol!r}")
        if not (np.isfinite(self.min_step) and self.min_step >= 0):
            raise ValidationError(f"min_step must be non-negative, got {self.min_step!r}")
        if not self.max_step > 0:
            raise ValidationError(f"max_step must be positive, got {self.max_step!r}")
        if self.min_step > self.max_step:
            raise ValidationError("min_step must not exceed max_step")
        if self.first_step is not None and not (
            np.isfinite(self.first_step) and self.first_step > 0
        ):
            raise ValidationError(f"first_step must be positive, got {self.first_step!r}")
        if self.max_steps is not None and self.max_steps <= 0:
            raise ValidationError(f"max_steps must be positive, got {self.max_steps!r}")
        if self.max_wall_time is not None and not self.max_wall_time > 0:
            raise ValidationError(f"max_wall_time must be positive, got {self.max_wall_time!r}")
        return self


DEFAULT_SOLVER_OPTIONS = SolverOptions()


def default_time_grid(
    t0: float = DEFAULTS.t0, t1: float = DEFAULTS.t1, dt: float = DEFAULTS.dt
) -> np.ndarray:
    """Evenly spaced checkpoints from t0 to t1 inclusive."""
    if dt <= 0:
        raise ValidationError("dt must be positive")
    if t1 < t0:
        raise ValidationError("t1 must not be smaller than t0")
    n = int(round((t1 - t0) / dt))
    # Build from integer multiples so t1 is hit exactly for whole-number grids.
    return t0 + dt * np.arange(n + 1, dtype=float)
