"""Error taxonomy for SIR simulations.

Validation problems are raised before any integration work starts.
Numerical failures and budget overruns are raised mid-run and carry the
last checkpoint that was successfully produced, so callers can see how far
the simulation got before it stopped.
"""

from __future__ import annotations

from typing import Optional

import numpy as np


class SIRError(Exception):
    """Base class for every error raised by this package."""


class ValidationError(SIRError, ValueError):
    """Invalid inputs (population, rates, time grid, solver options)."""


class _ProgressMixin:
    """Shared progress fields for errors raised during integration."""

    def _set_progress(
        self,
        t_failed: float,
        last_checkpoint_time: Optional[float],
        last_checkpoint_state: Optional[np.ndarray],
    ) -> None:
        self.t_failed = float(t_failed)
        self.last_checkpoint_time = last_checkpoint_time
        self.last_checkpoint_state = (
            None if last_checkpoint_state is None else np.array(last_checkpoint_state, dtype=float)
        )


class IntegrationError(_ProgressMixin, SIRError, RuntimeError):
    """Step size collapsed below the minimum while still violating tolerance."""

    def __init__(
        self,
        message: str,
        t_failed: float,
        last_checkpoint_time: Optional[float] = None,
        last_checkpoint_state: Optional[np.ndarray] = None,
    ) -> None:
        super().__init__(message)
        self._set_progress(t_failed, last_checkpoint_time, last_checkpoint_state)


class BudgetExceededError(_ProgressMixin, SIRError, RuntimeError):
    """Step count or wall-clock budget exhausted before the last checkpoint."""

    def __init__(
        self,
        message: str,
        budget: str,
        t_failed: float,
        last_checkpoint_time: Optional[float] = None,
        last_checkpoint_state: Optional[np.ndarray] = None,
    ) -> None:
        super().__init__(message)
        # "max_steps" or "max_wall_time"
        self.budget = budget
        self._set_progress(t_failed, last_checkpoint_time, last_checkpoint_state)
