"""Deterministic SIR simulation.

Provides a small namespace that re-exports the model, integrator and
analysis helpers so scripts and notebooks can import from src.sirode
without deep module paths.
"""


from .config import DEFAULTS, SolverOptions  # noqa: F401
from .exceptions import (  # noqa: F401
    SIRError,
    ValidationError,
    IntegrationError,
    BudgetExceededError,
)
from .integrate import DormandPrince, ScipyIntegrator, get_integrator, integrate  # noqa: F401
from .model import SIRParams, SIRState, Trajectory, run_simulation, simulate_sir, sir_rhs  # noqa: F401
from .analysis import PeakSummary, find_peak, local_peaks, summarize  # noqa: F401
from .sweep import run_sweep  # noqa: F401
