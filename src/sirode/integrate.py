"""Adaptive ODE integration onto caller-chosen checkpoints.

The integrator contract is: given ``rhs(t, y, params)``, an initial state
``y0`` at ``t0`` and a strictly increasing grid of output times, return the
state at every output time. Internal steps are chosen by error control and
are independent of the output grid; values at checkpoints that fall inside
a step come from the method's continuous extension.

Two backends implement the contract:

- ``DormandPrince``: embedded Runge-Kutta 5(4) with FSAL, mixed
  absolute/relative error control and 4th-order dense output.
- ``ScipyIntegrator``: the scipy solvers behind ``solve_ivp``, under the same
  interface, useful as a reference when checking results.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
import logging
import time
from typing import Any, Callable, Dict, Optional, Sequence, Type, Union

import numpy as np
from scipy.integrate import BDF, DOP853, LSODA, RK23, RK45, OdeSolver, Radau

from .config import DEFAULT_SOLVER_OPTIONS, SolverOptions
from .exceptions import BudgetExceededError, IntegrationError, ValidationError


logger = logging.getLogger(__name__)

RHS = Callable[[float, np.ndarray, Any], Sequence[float]]


@dataclass(frozen=True)
class IntegrationStats:
    n_accepted: int = 0
    n_rejected: int = 0
    n_rhs: int = 0
    last_step: float = 0.0

    def as_dict(self) -> Dict[str, float]:
        return asdict(self)


@dataclass
class _StepCounter:
    """Mutable tallies kept while a run is in progress."""

    n_accepted: int = 0
    n_rejected: int = 0
    n_rhs: int = 0
    last_step: float = 0.0

    def freeze(self) -> IntegrationStats:
        return IntegrationStats(self.n_accepted, self.n_rejected, self.n_rhs, self.last_step)


@dataclass(frozen=True)
class IntegrationResult:
    """States at the requested checkpoints, shape (T, n)."""

    times: np.ndarray
    states: np.ndarray
    stats: IntegrationStats


def validate_time_grid(t0: float, t_eval: Sequence[float]) -> np.ndarray:
    """Return t_eval as a float array or raise ValidationError."""
    if not np.isfinite(t0):
        raise ValidationError(f"t0 must be finite, got {t0!r}")
    times = np.asarray(t_eval, dtype=float)
    if times.ndim != 1:
        raise ValidationError("output times must be a 1-D sequence")
    if times.size == 0:
        raise ValidationError("output times must not be empty")
    if not np.all(np.isfinite(times)):
        raise ValidationError("output times must be finite")
    if np.any(np.diff(times) <= 0):
        raise ValidationError("output times must be strictly increasing (no duplicates)")
    if times[0] < t0:
        raise ValidationError(f"first output time {times[0]} precedes t0={t0}")
    return times


def validate_initial_state(y0: Sequence[float]) -> np.ndarray:
    y = np.array(y0, dtype=float)
    if y.ndim != 1 or y.size == 0:
        raise ValidationError("initial state must be a non-empty 1-D vector")
    if not np.all(np.isfinite(y)):
        raise ValidationError("initial state must be finite")
    return y


class Integrator:
    """Base class for integrators; subclasses implement ``_integrate``."""

    name = "base"

    def __init__(self, options: Optional[SolverOptions] = None) -> None:
        self.options = (options or DEFAULT_SOLVER_OPTIONS).validate()

    def integrate(
        self,
        rhs: RHS,
        y0: Sequence[float],
        t0: float,
        t_eval: Sequence[float],
        params: Any = None,
    ) -> IntegrationResult:
        """Integrate ``rhs`` from (t0, y0) and report the state at each of ``t_eval``."""
        y = validate_initial_state(y0)
        times = validate_time_grid(t0, t_eval)
        return self._integrate(rhs, y, float(t0), times, params)

    def _integrate(
        self, rhs: RHS, y0: np.ndarray, t0: float, times: np.ndarray, params: Any
    ) -> IntegrationResult:
        raise NotImplementedError


def _rms_norm(x: np.ndarray) -> float:
    return float(np.linalg.norm(x) / np.sqrt(x.size))


class DormandPrince(Integrator):
    """Dormand-Prince 5(4) with step-size control and dense output."""

    name = "dopri5"

    # Butcher tableau.
    C = np.array([0.0, 1 / 5, 3 / 10, 4 / 5, 8 / 9, 1.0])
    A = np.array([
        [0.0, 0.0, 0.0, 0.0, 0.0],
        [1 / 5, 0.0, 0.0, 0.0, 0.0],
        [3 / 40, 9 / 40, 0.0, 0.0, 0.0],
        [44 / 45, -56 / 15, 32 / 9, 0.0, 0.0],
        [19372 / 6561, -25360 / 2187, 64448 / 6561, -212 / 729, 0.0],
        [9017 / 3168, -355 / 33, 46732 / 5247, 49 / 176, -5103 / 18656],
    ])
    B = np.array([35 / 384, 0.0, 500 / 1113, 125 / 192, -2187 / 6784, 11 / 84])
    # Difference between the 5th and embedded 4th order weights, incl. the FSAL stage.
    E = np.array([
        71 / 57600, 0.0, -71 / 16695, 71 / 1920, -17253 / 339200, 22 / 525, -1 / 40
    ])
    # Coefficients of the 4th-order continuous extension (powers x, x^2, x^3, x^4).
    P = np.array([
        [1.0, -8048581381 / 2820520608, 8663915743 / 2820520608,
         -12715105075 / 11282082432],
        [0.0, 0.0, 0.0, 0.0],
        [0.0, 131558114200 / 32700410799, -68118460800 / 10900136933,
         87487479700 / 32700410799],
        [0.0, -1754552775 / 470086768, 14199869525 / 1410260304,
         -10690763975 / 1880347072],
        [0.0, 127303824393 / 49829197408, -318862633887 / 49829197408,
         701980252875 / 199316789632],
        [0.0, -282668133 / 205662961, 2019193451 / 616988883,
         -1453857185 / 822651844],
        [0.0, 40617522 / 29380423, -110615467 / 29380423, 69997945 / 29380423],
    ])

    ERROR_ORDER = 4
    SAFETY = 0.9
    MIN_FACTOR = 0.2
    MAX_FACTOR = 10.0

    def _eval(self, rhs: RHS, t: float, y: np.ndarray, params: Any, stats: _StepCounter) -> np.ndarray:
        stats.n_rhs += 1
        dy = np.asarray(rhs(t, y, params), dtype=float)
        if dy.shape != y.shape:
            raise ValidationError(
                f"rhs returned shape {dy.shape}, expected {y.shape}"
            )
        return dy

    def _initial_step(
        self, rhs: RHS, t0: float, y0: np.ndarray, f0: np.ndarray, params: Any,
        span: float, stats: _StepCounter,
    ) -> float:
        """Starting step from the size of the solution and its derivatives."""
        opts = self.options
        scale = opts.atol + np.abs(y0) * opts.rtol
        d0 = _rms_norm(y0 / scale)
        d1 = _rms_norm(f0 / scale)
        h0 = 1e-6 if d0 < 1e-5 or d1 < 1e-5 else 0.01 * d0 / d1
        h0 = min(h0, span)
        y1 = y0 + h0 * f0
        f1 = self._eval(rhs, t0 + h0, y1, params, stats)
        d2 = _rms_norm((f1 - f0) / scale) / h0
        if d1 <= 1e-15 and d2 <= 1e-15:
            h1 = max(1e-6, h0 * 1e-3)
        else:
            h1 = (0.01 / max(d1, d2)) ** (1 / (self.ERROR_ORDER + 1))
        return min(100 * h0, h1, span)

    def _step(
        self, rhs: RHS, t: float, y: np.ndarray, f: np.ndarray, h: float,
        params: Any, stats: _StepCounter,
    ):
        """One Runge-Kutta step; returns (y_new, f_new, K) with K of shape (7, n)."""
        K = np.empty((7, y.size))
        K[0] = f
        for s in range(1, 6):
            dy = h * (K[:s].T @ self.A[s, :s])
            K[s] = self._eval(rhs, t + self.C[s] * h, y + dy, params, stats)
        y_new = y + h * (K[:6].T @ self.B)
        f_new = self._eval(rhs, t + h, y_new, params, stats)
        K[6] = f_new
        return y_new, f_new, K

    def _error_norm(self, K: np.ndarray, h: float, y: np.ndarray, y_new: np.ndarray) -> float:
        opts = self.options
        with np.errstate(invalid="ignore", over="ignore"):
            err = h * (K.T @ self.E)
            scale = opts.atol + np.maximum(np.abs(y), np.abs(y_new)) * opts.rtol
            norm = _rms_norm(err / scale)
        return norm if np.isfinite(norm) else np.inf

    def _dense(self, t_query: float, t: float, y: np.ndarray, h: float, K: np.ndarray) -> np.ndarray:
        x = (t_query - t) / h
        powers = np.cumprod(np.full(4, x))
        return y + h * ((K.T @ self.P) @ powers)

    def _integrate(
        self, rhs: RHS, y0: np.ndarray, t0: float, times: np.ndarray, params: Any
    ) -> IntegrationResult:
        opts = self.options
        stats = _StepCounter()
        out = np.empty((times.size, y0.size))
        idx = 0

        # Checkpoints at t0 report the initial state unchanged.
        while idx < times.size and times[idx] == t0:
            out[idx] = y0
            idx += 1
        if idx == times.size:
            return IntegrationResult(times, out, stats.freeze())

        t_end = float(times[-1])
        t, y = t0, y0.copy()
        f = self._eval(rhs, t, y, params, stats)
        if opts.first_step is not None:
            h = opts.first_step
        else:
            h = self._initial_step(rhs, t, y, f, params, t_end - t, stats)
        h = min(max(h, opts.min_step), opts.max_step)

        def progress():
            if idx == 0:
                return None, None
            return float(times[idx - 1]), out[idx - 1].copy()

        started = time.perf_counter()
        step_rejected = False
        while idx < times.size:
            n_attempts = stats.n_accepted + stats.n_rejected
            if opts.max_steps is not None and n_attempts >= opts.max_steps:
                cp_time, cp_state = progress()
                logger.warning("Step budget of %d exhausted at t=%.6g", opts.max_steps, t)
                raise BudgetExceededError(
                    f"exceeded max_steps={opts.max_steps} at t={t:.6g}",
                    budget="max_steps", t_failed=t,
                    last_checkpoint_time=cp_time, last_checkpoint_state=cp_state,
                )
            if opts.max_wall_time is not None and time.perf_counter() - started > opts.max_wall_time:
                cp_time, cp_state = progress()
                logger.warning("Wall-time budget of %.3gs exhausted at t=%.6g", opts.max_wall_time, t)
                raise BudgetExceededError(
                    f"exceeded max_wall_time={opts.max_wall_time}s at t={t:.6g}",
                    budget="max_wall_time", t_failed=t,
                    last_checkpoint_time=cp_time, last_checkpoint_state=cp_state,
                )

            remaining = t_end - t
            min_step = max(opts.min_step, 10 * np.abs(np.nextafter(t, np.inf) - t))
            if h < min_step and h < remaining:
                cp_time, cp_state = progress()
                logger.warning("Step size %.3g fell below minimum %.3g at t=%.6g", h, min_step, t)
                raise IntegrationError(
                    f"step size {h:.3g} below minimum {min_step:.3g} at t={t:.6g}; "
                    "the system may be stiff or singular",
                    t_failed=t, last_checkpoint_time=cp_time, last_checkpoint_state=cp_state,
                )

            # Never step past the last checkpoint.
            if h >= remaining:
                h = remaining
                t_new = t_end
            else:
                t_new = t + h

            y_new, f_new, K = self._step(rhs, t, y, f, h, params, stats)
            err = self._error_norm(K, h, y, y_new)

            if err <= 1.0:
                if err == 0.0:
                    factor = self.MAX_FACTOR
                else:
                    factor = min(self.MAX_FACTOR, self.SAFETY * err ** (-1 / (self.ERROR_ORDER + 1)))
                if step_rejected:
                    factor = min(1.0, factor)

                while idx < times.size and times[idx] <= t_new:
                    if times[idx] == t_new:
                        out[idx] = y_new
                    else:
                        out[idx] = self._dense(times[idx], t, y, h, K)
                    idx += 1

                stats.n_accepted += 1
                stats.last_step = h
                t, y, f = t_new, y_new, f_new
                h = min(h * factor, opts.max_step)
                step_rejected = False
            else:
                stats.n_rejected += 1
                if np.isfinite(err):
                    factor = max(self.MIN_FACTOR, self.SAFETY * err ** (-1 / (self.ERROR_ORDER + 1)))
                else:
                    factor = self.MIN_FACTOR
                h *= factor
                step_rejected = True

        logger.debug(
            "%s finished: %d accepted, %d rejected, %d rhs evaluations",
            self.name, stats.n_accepted, stats.n_rejected, stats.n_rhs,
        )
        return IntegrationResult(times, out, stats.freeze())


SCIPY_SOLVERS: Dict[str, Type[OdeSolver]] = {
    "RK45": RK45,
    "RK23": RK23,
    "DOP853": DOP853,
    "Radau": Radau,
    "BDF": BDF,
    "LSODA": LSODA,
}
SCIPY_METHODS = tuple(SCIPY_SOLVERS)


class ScipyIntegrator(Integrator):
    """scipy's ``OdeSolver`` classes (the ones behind ``solve_ivp``) under the
    Integrator contract.

    The solver is stepped directly so budgets are checked between steps and
    checkpoints are filled from each step's dense output as it is accepted.
    ``max_steps`` counts accepted steps (scipy retries rejected ones
    internally); ``min_step`` is only forwarded to LSODA, the one scipy
    method that accepts it.
    """

    def __init__(self, method: str = "RK45", options: Optional[SolverOptions] = None) -> None:
        super().__init__(options)
        if method not in SCIPY_SOLVERS:
            raise ValidationError(f"unknown scipy method {method!r}; choose from {list(SCIPY_SOLVERS)}")
        self.method = method
        self.name = f"scipy-{method}"

    def _integrate(
        self, rhs: RHS, y0: np.ndarray, t0: float, times: np.ndarray, params: Any
    ) -> IntegrationResult:
        opts = self.options
        out = np.empty((times.size, y0.size))
        idx = 0
        while idx < times.size and times[idx] == t0:
            out[idx] = y0
            idx += 1
        if idx == times.size:
            return IntegrationResult(times, out, IntegrationStats())

        kwargs: Dict[str, Any] = {"rtol": opts.rtol, "atol": opts.atol, "max_step": opts.max_step}
        if opts.first_step is not None:
            kwargs["first_step"] = opts.first_step
        if self.method == "LSODA" and opts.min_step > 0:
            kwargs["min_step"] = opts.min_step
        solver = SCIPY_SOLVERS[self.method](
            lambda t, y: rhs(t, y, params), t0, y0, float(times[-1]), **kwargs
        )

        def progress():
            if idx == 0:
                return None, None
            return float(times[idx - 1]), out[idx - 1].copy()

        n_steps = 0
        started = time.perf_counter()
        while idx < times.size:
            if opts.max_steps is not None and n_steps >= opts.max_steps:
                cp_time, cp_state = progress()
                logger.warning("Step budget of %d exhausted at t=%.6g", opts.max_steps, solver.t)
                raise BudgetExceededError(
                    f"exceeded max_steps={opts.max_steps} at t={solver.t:.6g}",
                    budget="max_steps", t_failed=solver.t,
                    last_checkpoint_time=cp_time, last_checkpoint_state=cp_state,
                )
            if opts.max_wall_time is not None and time.perf_counter() - started > opts.max_wall_time:
                cp_time, cp_state = progress()
                logger.warning("Wall-time budget of %.3gs exhausted at t=%.6g", opts.max_wall_time, solver.t)
                raise BudgetExceededError(
                    f"exceeded max_wall_time={opts.max_wall_time}s at t={solver.t:.6g}",
                    budget="max_wall_time", t_failed=solver.t,
                    last_checkpoint_time=cp_time, last_checkpoint_state=cp_state,
                )

            message = solver.step()
            if solver.status == "failed":
                cp_time, cp_state = progress()
                logger.warning("%s failed: %s", self.name, message)
                raise IntegrationError(
                    f"{self.name} failed at t={solver.t:.6g}: {message}",
                    t_failed=solver.t, last_checkpoint_time=cp_time, last_checkpoint_state=cp_state,
                )
            n_steps += 1

            dense = None
            while idx < times.size and times[idx] <= solver.t:
                if times[idx] == solver.t:
                    out[idx] = solver.y
                else:
                    if dense is None:
                        dense = solver.dense_output()
                    out[idx] = dense(times[idx])
                idx += 1

        stats = IntegrationStats(
            n_accepted=n_steps,
            n_rhs=int(solver.nfev),
            last_step=float(solver.step_size or 0.0),
        )
        logger.debug("%s finished: %d steps, %d rhs evaluations", self.name, n_steps, stats.n_rhs)
        return IntegrationResult(times, out, stats)


INTEGRATORS: Dict[str, Type[Integrator]] = {"dopri5": DormandPrince}


def get_integrator(name: str = "dopri5", options: Optional[SolverOptions] = None) -> Integrator:
    """Build an integrator by name: ``dopri5`` or one of the solve_ivp methods."""
    if name in INTEGRATORS:
        return INTEGRATORS[name](options)
    if name in SCIPY_METHODS:
        return ScipyIntegrator(method=name, options=options)
    raise ValidationError(
        f"unknown integrator {name!r}; choose from {sorted(INTEGRATORS) + list(SCIPY_METHODS)}"
    )


def integrate(
    rhs: RHS,
    y0: Sequence[float],
    t0: float,
    t_eval: Sequence[float],
    params: Any = None,
    options: Optional[SolverOptions] = None,
    method: Union[str, Integrator] = "dopri5",
) -> IntegrationResult:
    """Convenience wrapper around ``get_integrator(method).integrate(...)``."""
    integrator = method if isinstance(method, Integrator) else get_integrator(method, options)
    return integrator.integrate(rhs, y0, t0, t_eval, params)
