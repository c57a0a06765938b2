"""SIR model: state and parameter records, right-hand side and simulation.

``run_simulation`` is the structured entry point (SIRState + SIRParams +
time grid). ``simulate_sir`` keeps the keyword-style signature used by the
scripts: rates, initial compartments and an evenly spaced grid.
Both return an immutable Trajectory sampled at the requested checkpoints.
"""


from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Dict, Iterator, List, NamedTuple, Optional, Sequence, Tuple, Union

import numpy as np

from .config import DEFAULTS, SolverOptions, default_time_grid
from .exceptions import ValidationError
from .integrate import Integrator, IntegrationStats, integrate, validate_time_grid


logger = logging.getLogger(__name__)

COMPARTMENTS = ("S", "I", "R")


class SIRState(NamedTuple):
    S: float
    I: float
    R: float

    @property
    def N(self) -> float:
        return self.S + self.I + self.R


@dataclass(frozen=True)
class SIRParams:
    """Transmission rate beta and recovery rate gamma (per unit time)."""

    beta: float
    gamma: float

    @property
    def basic_reproduction_number(self) -> float:
        return self.beta / self.gamma


def sir_rhs(t: float, y: np.ndarray, params: SIRParams) -> np.ndarray:
    """Derivatives (dS/dt, dI/dt, dR/dt) for frequency-dependent transmission."""
    S, I, R = y
    # Total population from the current state, not a fixed constant.
    N = S + I + R
    force = params.beta * I / N
    recovery = params.gamma * I
    return np.array([-force * S, force * S - recovery, recovery])


def validate_state(state: Sequence[float]) -> SIRState:
    if len(state) != 3:
        raise ValidationError(f"state must have 3 compartments (S, I, R), got {len(state)}")
    state = SIRState(*(float(v) for v in state))
    for name, value in zip(COMPARTMENTS, state):
        if not np.isfinite(value):
            raise ValidationError(f"{name} must be finite, got {value!r}")
        if value < 0:
            raise ValidationError(f"{name} must be non-negative, got {value!r}")
    if state.N <= 0:
        raise ValidationError(f"total population must be positive, got {state.N!r}")
    return state


def validate_params(params: SIRParams) -> SIRParams:
    for name in ("beta", "gamma"):
        value = getattr(params, name)
        if not np.isfinite(value):
            raise ValidationError(f"{name} must be finite, got {value!r}")
        if value <= 0:
            raise ValidationError(f"{name} must be positive, got {value!r}")
    return params


@dataclass(frozen=True, eq=False)
class Trajectory:
    """Checkpoint-aligned S, I, R values; arrays are read-only."""

    times: np.ndarray
    states: np.ndarray
    stats: IntegrationStats = field(default_factory=IntegrationStats, compare=False)

    def __post_init__(self) -> None:
        times = np.array(self.times, dtype=float)
        states = np.array(self.states, dtype=float)
        if states.ndim != 2 or states.shape[1] != 3 or states.shape[0] != times.shape[0]:
            raise ValidationError(
                f"states shape {states.shape} does not match {times.shape[0]} checkpoints x 3"
            )
        times.setflags(write=False)
        states.setflags(write=False)
        object.__setattr__(self, "times", times)
        object.__setattr__(self, "states", states)

    def __len__(self) -> int:
        return int(self.times.shape[0])

    def __iter__(self) -> Iterator[Tuple[float, SIRState]]:
        for t, row in zip(self.times, self.states):
            yield float(t), SIRState(*map(float, row))

    def at(self, t: float) -> SIRState:
        """State at an exact checkpoint; KeyError if t is not on the grid."""
        idx = np.flatnonzero(self.times == t)
        if idx.size == 0:
            raise KeyError(t)
        return SIRState(*map(float, self.states[idx[0]]))

    @property
    def S(self) -> np.ndarray:
        return self.states[:, 0]

    @property
    def I(self) -> np.ndarray:
        return self.states[:, 1]

    @property
    def R(self) -> np.ndarray:
        return self.states[:, 2]

    @property
    def initial(self) -> SIRState:
        return SIRState(*map(float, self.states[0]))

    @property
    def final(self) -> SIRState:
        return SIRState(*map(float, self.states[-1]))

    def column(self, compartment: str) -> np.ndarray:
        if compartment not in COMPARTMENTS:
            raise ValidationError(f"unknown compartment {compartment!r}")
        return self.states[:, COMPARTMENTS.index(compartment)]

    def as_dict(self) -> Dict[float, SIRState]:
        return dict(iter(self))

    def to_long_records(self) -> List[Dict[str, object]]:
        """Long format rows: one (time, compartment, value) row per cell."""
        rows = []
        for t, state in self:
            for name, value in zip(COMPARTMENTS, state):
                rows.append({"time": t, "compartment": name, "value": value})
        return rows


def run_simulation(
    state0: Union[SIRState, Sequence[float]],
    params: SIRParams,
    times: Sequence[float],
    t0: Optional[float] = None,
    options: Optional[SolverOptions] = None,
    method: Union[str, Integrator] = "dopri5",
) -> Trajectory:
    """Integrate the SIR equations from ``state0`` and sample at ``times``.

    ``t0`` defaults to the first checkpoint. All inputs are validated before
    any integration work starts.
    """
    state0 = validate_state(state0)
    params = validate_params(params)
    if t0 is None:
        grid = np.asarray(times, dtype=float)
        if grid.ndim != 1 or grid.size == 0:
            raise ValidationError("output times must be a non-empty 1-D sequence")
        t0 = float(grid[0])
    grid = validate_time_grid(t0, times)

    logger.debug(
        "Simulating SIR: N=%.6g beta=%.4g gamma=%.4g over [%g, %g] (%d checkpoints)",
        state0.N, params.beta, params.gamma, t0, grid[-1], grid.size,
    )
    result = integrate(sir_rhs, state0, t0, grid, params=params, options=options, method=method)
    return Trajectory(result.times, result.states, result.stats)


def simulate_sir(
    beta: float = DEFAULTS.beta,
    gamma: float = DEFAULTS.gamma,
    s0: float = DEFAULTS.s0,
    i0: float = DEFAULTS.i0,
    r0: float = DEFAULTS.r0,
    t0: Optional[float] = None,
    t1: float = DEFAULTS.t1,
    dt: float = DEFAULTS.dt,
    times: Optional[Sequence[float]] = None,
    options: Optional[SolverOptions] = None,
    method: Union[str, Integrator] = "dopri5",
) -> Trajectory:
    """Simulate SIR on an evenly spaced grid t0..t1 (or on ``times`` if given).

    The initial compartments are placed at ``t0``. Without ``t0`` that is
    ``DEFAULTS.t0`` for the generated grid, or the first of ``times``.
    """
    if times is None:
        start = DEFAULTS.t0 if t0 is None else t0
        grid = default_time_grid(start, t1, dt)
        t0 = start
    else:
        grid = times
    return run_simulation(
        SIRState(s0, i0, r0),
        SIRParams(beta, gamma),
        grid,
        t0=t0,
        options=options,
        method=method,
    )
