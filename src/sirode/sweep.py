"""Run independent SIR simulations concurrently.

Each run owns its own state, so parameter sets can be farmed out to a
thread or process pool. Results come back in input order; the first
failing run re-raises its error in the caller.
"""


from __future__ import annotations

from concurrent.futures import Executor, ProcessPoolExecutor, ThreadPoolExecutor
import logging
from typing import List, Optional, Sequence

from .config import SolverOptions
from .model import SIRParams, SIRState, Trajectory, run_simulation


logger = logging.getLogger(__name__)


def _run_one(
    state0: SIRState,
    params: SIRParams,
    times: Sequence[float],
    options: Optional[SolverOptions],
    method: str,
) -> Trajectory:
    # Module-level so process pools can pickle it.
    return run_simulation(state0, params, times, options=options, method=method)


def run_sweep(
    state0: SIRState,
    param_sets: Sequence[SIRParams],
    times: Sequence[float],
    options: Optional[SolverOptions] = None,
    method: str = "dopri5",
    max_workers: Optional[int] = None,
    use_processes: bool = False,
) -> List[Trajectory]:
    """Simulate every parameter set from the same initial state and grid."""
    param_sets = list(param_sets)
    if not param_sets:
        return []
    pool_cls = ProcessPoolExecutor if use_processes else ThreadPoolExecutor
    logger.info(
        "Sweep: %d parameter sets on %s (max_workers=%s)",
        len(param_sets), pool_cls.__name__, max_workers,
    )
    pool: Executor
    with pool_cls(max_workers=max_workers) as pool:
        futures = [
            pool.submit(_run_one, state0, params, times, options, method)
            for params in param_sets
        ]
        return [future.result() for future in futures]
