"""Top-level package for sir-ode.

Project code lives under `src/`. The simulation core lives under
`src.sirode` (model, integrator, analysis, sweeps, run I/O) and plotting
helpers under `src.visualization`.
"""

# Package marker; keep this module lightweight.
