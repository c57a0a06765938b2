"""Tests for src.sirode.integrate: step control, dense output and failures."""

import time

import numpy as np
import pytest

from src.sirode.config import SolverOptions
from src.sirode.exceptions import BudgetExceededError, IntegrationError, ValidationError
from src.sirode.integrate import (
    DormandPrince,
    Integrator,
    ScipyIntegrator,
    get_integrator,
    integrate,
    validate_time_grid,
)
from src.sirode.model import SIRParams, sir_rhs


def decay(t, y, k):
    return -k * y


def oscillator(t, y, params):
    return np.array([y[1], -y[0]])


def blow_up(t, y, params):
    # y' = y^2 with y(0)=1 is singular at t=1.
    return y ** 2


# ═══════════════════════════════════════════════════════════════════════
# Accuracy
# ═══════════════════════════════════════════════════════════════════════

def test_exponential_decay_matches_exact_solution():
    times = np.linspace(0.0, 5.0, 11)
    opts = SolverOptions(rtol=1e-10, atol=1e-12)
    result = integrate(decay, [2.0], 0.0, times, params=0.7, options=opts)
    exact = 2.0 * np.exp(-0.7 * times)
    np.testing.assert_allclose(result.states[:, 0], exact, rtol=1e-8)


def test_dense_output_between_internal_steps():
    # Checkpoints much denser than the internal steps must still be accurate.
    times = np.linspace(0.0, 1.0, 201)
    opts = SolverOptions(rtol=1e-8, atol=1e-10)
    result = DormandPrince(opts).integrate(decay, [1.0], 0.0, times, params=1.0)
    assert result.stats.n_accepted < times.size
    np.testing.assert_allclose(result.states[:, 0], np.exp(-times), rtol=1e-6)


def test_oscillator_over_several_periods():
    times = np.linspace(0.0, 4 * np.pi, 50)
    opts = SolverOptions(rtol=1e-10, atol=1e-10)
    result = integrate(oscillator, [1.0, 0.0], 0.0, times, options=opts)
    np.testing.assert_allclose(result.states[:, 0], np.cos(times), atol=1e-7)
    np.testing.assert_allclose(result.states[:, 1], -np.sin(times), atol=1e-7)


def test_agrees_with_scipy_on_sir():
    params = SIRParams(beta=1.0, gamma=0.1)
    y0 = [999_999.0, 1.0, 0.0]
    times = np.arange(0.0, 61.0)
    tight = SolverOptions(rtol=1e-10, atol=1e-8)
    ours = DormandPrince(tight).integrate(sir_rhs, y0, 0.0, times, params)
    ref = ScipyIntegrator("DOP853", tight).integrate(sir_rhs, y0, 0.0, times, params)
    np.testing.assert_allclose(ours.states, ref.states, rtol=1e-6, atol=1e-3)


def test_looser_tolerance_takes_fewer_steps():
    params = SIRParams(beta=1.0, gamma=0.1)
    y0 = [999_999.0, 1.0, 0.0]
    times = np.arange(0.0, 61.0)
    loose = DormandPrince(SolverOptions(rtol=1e-4, atol=1e-4)).integrate(sir_rhs, y0, 0.0, times, params)
    tight = DormandPrince(SolverOptions(rtol=1e-10, atol=1e-8)).integrate(sir_rhs, y0, 0.0, times, params)
    assert loose.stats.n_accepted < tight.stats.n_accepted


def test_max_step_bounds_internal_steps():
    times = np.array([0.0, 10.0])
    opts = SolverOptions(max_step=0.5)
    result = DormandPrince(opts).integrate(decay, [1.0], 0.0, times, params=0.1)
    assert result.stats.n_accepted >= 20
    assert result.stats.last_step <= 0.5


def test_stats_count_rhs_evaluations():
    result = integrate(decay, [1.0], 0.0, [0.0, 1.0, 2.0], params=1.0)
    stats = result.stats
    assert stats.n_accepted > 0
    # Six new stages per attempted step plus the start-up evaluations.
    assert stats.n_rhs == 6 * (stats.n_accepted + stats.n_rejected) + 2


# ═══════════════════════════════════════════════════════════════════════
# Grid handling
# ═══════════════════════════════════════════════════════════════════════

@pytest.mark.parametrize("method", ["dopri5", "RK45"])
def test_single_point_grid_returns_initial_state(method):
    result = integrate(decay, [3.5], 0.0, [0.0], params=1.0, method=method)
    assert result.states.shape == (1, 1)
    assert result.states[0, 0] == 3.5


def test_first_checkpoint_after_t0():
    times = np.array([1.0, 2.0])
    result = integrate(decay, [1.0], 0.0, times, params=1.0, options=SolverOptions(rtol=1e-9, atol=1e-12))
    np.testing.assert_allclose(result.states[:, 0], np.exp(-times), rtol=1e-7)


def test_last_checkpoint_hit_exactly_without_overshoot():
    seen = []

    def rhs(t, y, params):
        seen.append(t)
        return -y

    integrate(rhs, [1.0], 0.0, [0.0, 0.3], params=None)
    assert max(seen) <= 0.3


@pytest.mark.parametrize(
    "times",
    [[], [0.0, 2.0, 1.0], [0.0, 1.0, 1.0], [0.0, np.nan], [0.0, np.inf], [-1.0, 0.0], [[0.0, 1.0]]],
)
def test_invalid_time_grids_rejected(times):
    with pytest.raises(ValidationError):
        validate_time_grid(0.0, times)


def test_invalid_grid_rejected_before_any_rhs_call():
    calls = []

    def rhs(t, y, params):
        calls.append(t)
        return -y

    with pytest.raises(ValidationError):
        integrate(rhs, [1.0], 0.0, [0.0, 2.0, 1.0])
    assert calls == []


@pytest.mark.parametrize("y0", [[], [np.nan], [[1.0, 2.0]]])
def test_invalid_initial_state_rejected(y0):
    with pytest.raises(ValidationError):
        integrate(decay, y0, 0.0, [0.0, 1.0], params=1.0)


def test_rhs_shape_mismatch_rejected():
    with pytest.raises(ValidationError):
        integrate(lambda t, y, p: [0.0, 0.0], [1.0], 0.0, [0.0, 1.0])


# ═══════════════════════════════════════════════════════════════════════
# Failures and budgets
# ═══════════════════════════════════════════════════════════════════════

def test_step_collapse_reports_progress():
    opts = SolverOptions(min_step=1e-3)
    with pytest.raises(IntegrationError) as excinfo:
        integrate(blow_up, [1.0], 0.0, [0.0, 0.5, 2.0], options=opts)
    err = excinfo.value
    assert err.last_checkpoint_time == 0.5
    assert err.last_checkpoint_state[0] == pytest.approx(2.0, rel=1e-4)
    assert 0.5 < err.t_failed < 1.0


def test_step_budget_is_a_resource_error():
    params = SIRParams(beta=1.0, gamma=0.1)
    opts = SolverOptions(max_steps=3)
    with pytest.raises(BudgetExceededError) as excinfo:
        integrate(sir_rhs, [999_999.0, 1.0, 0.0], 0.0, np.arange(0.0, 61.0), params, options=opts)
    assert excinfo.value.budget == "max_steps"
    assert not isinstance(excinfo.value, IntegrationError)


def test_wall_time_budget():
    def slow_decay(t, y, params):
        time.sleep(0.005)
        return -y

    opts = SolverOptions(max_wall_time=0.01, max_step=0.1)
    with pytest.raises(BudgetExceededError) as excinfo:
        integrate(slow_decay, [1.0], 0.0, [0.0, 5.0], options=opts)
    assert excinfo.value.budget == "max_wall_time"


@pytest.mark.parametrize("method", ["RK45", "LSODA"])
def test_scipy_step_budget_reports_progress(method):
    opts = SolverOptions(max_steps=2)
    backend = ScipyIntegrator(method, opts)
    with pytest.raises(BudgetExceededError) as excinfo:
        backend.integrate(decay, [1.0], 0.0, [0.0, 1e-6, 10.0], params=1.0)
    err = excinfo.value
    assert err.budget == "max_steps"
    assert err.last_checkpoint_time == 1e-6
    assert err.last_checkpoint_state[0] == pytest.approx(np.exp(-1e-6), rel=1e-6)
    assert 1e-6 <= err.t_failed < 10.0


def test_scipy_backend_fills_checkpoints_from_dense_output():
    times = np.linspace(0.0, 2.0, 41)
    opts = SolverOptions(rtol=1e-9, atol=1e-12)
    result = ScipyIntegrator("DOP853", opts).integrate(decay, [1.0], 0.0, times, params=1.0)
    np.testing.assert_allclose(result.states[:, 0], np.exp(-times), rtol=1e-7)
    assert 0 < result.stats.n_accepted < times.size
    assert result.stats.n_rhs > result.stats.n_accepted


def test_scipy_unknown_method():
    with pytest.raises(ValidationError):
        ScipyIntegrator("Euler")


def test_stats_are_frozen():
    result = integrate(decay, [1.0], 0.0, [0.0, 1.0], params=1.0)
    with pytest.raises(AttributeError):
        result.stats.n_accepted = 0
    assert result.stats.as_dict()["n_accepted"] == result.stats.n_accepted


# ═══════════════════════════════════════════════════════════════════════
# Backends
# ═══════════════════════════════════════════════════════════════════════

def test_get_integrator_by_name():
    assert isinstance(get_integrator("dopri5"), DormandPrince)
    scipy_backend = get_integrator("LSODA")
    assert isinstance(scipy_backend, ScipyIntegrator)
    assert scipy_backend.method == "LSODA"


def test_get_integrator_unknown_name():
    with pytest.raises(ValidationError):
        get_integrator("euler")


def test_base_integrator_is_abstract():
    with pytest.raises(NotImplementedError):
        Integrator().integrate(decay, [1.0], 0.0, [0.0, 1.0], params=1.0)


def test_integrator_validates_options():
    with pytest.raises(ValidationError):
        DormandPrince(SolverOptions(rtol=-1.0))
