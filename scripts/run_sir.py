"""Simulate one SIR epidemic and report its peak.

Integrates the SIR equations on a daily (or --dt) grid, logs the infection
peak and summary statistics, and writes a run folder under runs/ with
config.json, summary.json, trajectory.csv (long format) and run.log.
Optionally also runs a beta sweep and saves figures.
Typical usage:
  python scripts/run_sir.py --beta 1.0 --gamma 0.1 --save-plots
  python scripts/run_sir.py --sweep-beta 0.3 0.5 1.0 --workers 3
"""


from __future__ import annotations

import argparse
from datetime import datetime
import logging
from pathlib import Path
import sys
import time
from typing import List, Optional

from src.sirode.analysis import find_peak, summarize
from src.sirode.config import DEFAULTS, SolverOptions, default_time_grid
from src.sirode.exceptions import SIRError
from src.sirode.integrate import SCIPY_METHODS
from src.sirode.io import ensure_dir, save_csv, save_json, save_trajectory
from src.sirode.logging_utils import setup_logging
from src.sirode.model import SIRParams, SIRState, run_simulation
from src.sirode.sweep import run_sweep


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    # CLI options control the scenario, solver settings and outputs.
    parser = argparse.ArgumentParser(description="Simulate an SIR epidemic.")
    parser.add_argument("--s0", type=float, default=DEFAULTS.s0)
    parser.add_argument("--i0", type=float, default=DEFAULTS.i0)
    parser.add_argument("--r0", type=float, default=DEFAULTS.r0)
    parser.add_argument("--beta", type=float, default=DEFAULTS.beta)
    parser.add_argument("--gamma", type=float, default=DEFAULTS.gamma)
    parser.add_argument("--t0", type=float, default=DEFAULTS.t0)
    parser.add_argument("--t1", type=float, default=DEFAULTS.t1)
    parser.add_argument("--dt", type=float, default=DEFAULTS.dt)
    parser.add_argument(
        "--method", type=str, default=DEFAULTS.backend, choices=["dopri5", *SCIPY_METHODS]
    )
    parser.add_argument("--rtol", type=float, default=SolverOptions.rtol)
    parser.add_argument("--atol", type=float, default=SolverOptions.atol)
    parser.add_argument("--min-step", type=float, default=SolverOptions.min_step)
    parser.add_argument("--max-step", type=float, default=SolverOptions.max_step)
    parser.add_argument("--max-steps", type=int, default=SolverOptions.max_steps)
    parser.add_argument("--max-wall-time", type=float, default=None)
    parser.add_argument("--sweep-beta", type=float, nargs="+", default=None)
    parser.add_argument("--workers", type=int, default=None)
    parser.add_argument("--save-plots", action="store_true")
    parser.add_argument("--out-dir", type=str, default=None)
    parser.add_argument("--log-level", type=str, default="INFO")
    parser.add_argument("--log-file", type=str, default=None)
    parser.add_argument("--no-log-file", action="store_true")
    parser.add_argument("--no-console-log", action="store_true")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = _parse_args(argv)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    out_dir = Path(args.out_dir) if args.out_dir else DEFAULTS.runs_dir / f"sir_{timestamp}"
    ensure_dir(out_dir)

    log_file = None
    if not args.no_log_file:
        log_file = Path(args.log_file) if args.log_file else out_dir / "run.log"
    setup_logging(level=args.log_level, log_file=log_file, console=not args.no_console_log)
    logger = logging.getLogger(__name__)

    logger.info("SIR run start")
    logger.info("Output dir: %s", out_dir)

    state0 = SIRState(args.s0, args.i0, args.r0)
    params = SIRParams(args.beta, args.gamma)
    options = SolverOptions(
        rtol=args.rtol,
        atol=args.atol,
        min_step=args.min_step,
        max_step=args.max_step,
        max_steps=args.max_steps,
        max_wall_time=args.max_wall_time,
    )
    logger.info(
        "Config: S0=%g I0=%g R0=%g beta=%g gamma=%g t=[%g, %g] dt=%g method=%s rtol=%g atol=%g",
        args.s0, args.i0, args.r0, args.beta, args.gamma,
        args.t0, args.t1, args.dt, args.method, args.rtol, args.atol,
    )

    # Persist run configuration before integrating so failed runs are traceable.
    config = vars(args).copy()
    config.update({"timestamp": timestamp})
    save_json(out_dir / "config.json", config)

    try:
        times = default_time_grid(args.t0, args.t1, args.dt)
        start = time.perf_counter()
        trajectory = run_simulation(state0, params, times, options=options, method=args.method)
        elapsed = time.perf_counter() - start
    except SIRError as exc:
        logger.error("Simulation failed: %s", exc)
        last_t = getattr(exc, "last_checkpoint_time", None)
        if last_t is not None:
            logger.error("Last completed checkpoint: t=%g", last_t)
        return 1

    peak = find_peak(trajectory)
    logger.info(
        "Peak infections at t=%g: I=%.1f (S=%.1f, R=%.1f)", peak.time, peak.value, peak.S, peak.R
    )
    summary = summarize(trajectory, params)
    summary.update(trajectory.stats.as_dict())
    summary["elapsed_sec"] = elapsed
    logger.info(
        "Steps: %d accepted, %d rejected, %d rhs evaluations (%.3fs)",
        trajectory.stats.n_accepted, trajectory.stats.n_rejected,
        trajectory.stats.n_rhs, elapsed,
    )
    save_json(out_dir / "summary.json", summary)
    save_trajectory(out_dir / "trajectory.csv", trajectory)
    logger.info("Saved trajectory to %s", out_dir / "trajectory.csv")

    sweep = {}
    if args.sweep_beta:
        param_sets = [SIRParams(beta, args.gamma) for beta in args.sweep_beta]
        try:
            results = run_sweep(
                state0, param_sets, times,
                options=options, method=args.method, max_workers=args.workers,
            )
        except SIRError as exc:
            logger.error("Sweep failed: %s", exc)
            return 1
        rows = []
        for sweep_params, sweep_traj in zip(param_sets, results):
            sweep_peak = find_peak(sweep_traj)
            rows.append({
                "beta": sweep_params.beta,
                "gamma": sweep_params.gamma,
                "R0": sweep_params.basic_reproduction_number,
                "peak_time": sweep_peak.time,
                "peak_I": sweep_peak.value,
            })
            sweep[f"beta={sweep_params.beta:g}"] = sweep_traj
        save_csv(out_dir / "sweep.csv", rows)
        logger.info("Saved sweep of %d runs to %s", len(rows), out_dir / "sweep.csv")

    if args.save_plots:
        import matplotlib

        matplotlib.use("Agg")
        import matplotlib.pyplot as plt

        from src.visualization import visualize as viz

        plot_dir = ensure_dir(out_dir / "figures")
        fig, ax = plt.subplots(1, 1, figsize=(7, 4))
        viz.plot_trajectory(
            trajectory, peak=peak, ax=ax,
            title=f"SIR beta={args.beta:g} gamma={args.gamma:g}",
        )
        viz.save_figure(fig, plot_dir / "trajectory.png")
        plt.close(fig)
        if sweep:
            fig = viz.plot_sweep(sweep, title="Infected by beta")
            viz.save_figure(fig, plot_dir / "sweep.png")
            plt.close(fig)
        logger.info("Saved figures to %s", plot_dir)

    logger.info("SIR run done")
    return 0


if __name__ == "__main__":
    sys.exit(main())
