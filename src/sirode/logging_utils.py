"""Root logging for ``scripts/run_sir.py`` and interactive sessions.

A run writes the same records to the console and to ``run.log`` inside its
run folder, so a summary or a solver failure can be read back later next to
``config.json``. Library modules only call ``logging.getLogger(__name__)``;
handlers are attached here and nowhere else.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Optional, Union


LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Plotting libraries log font and backend lookups at DEBUG.
NOISY_LOGGERS = ("matplotlib", "PIL")


def _resolve_level(level: Union[str, int]) -> int:
    """Accept ``"debug"``/``"INFO"`` style names or a numeric level."""
    if isinstance(level, int):
        return level
    return getattr(logging, str(level).upper(), logging.INFO)


def setup_logging(
    level: Union[str, int] = "INFO",
    log_file: Optional[Union[str, Path]] = None,
    console: bool = True,
    quiet: Iterable[str] = NOISY_LOGGERS,
) -> logging.Logger:
    """Configure the root logger for one simulation run.

    Args:
        level: threshold for the root logger and its handlers.
        log_file: optional path (usually ``<run_dir>/run.log``); parent
            folders are created.
        console: also log to stderr.
        quiet: third-party loggers held at WARNING or above whatever
            ``level`` is, so ``--log-level debug`` shows the integrator and
            not the plotting stack.

    Returns:
        The root logger.
    """
    logger = logging.getLogger()
    resolved_level = _resolve_level(level)

    # Calling again (one process, several runs) replaces the old handlers.
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    logger.setLevel(resolved_level)
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    handlers = []
    if console:
        handlers.append(logging.StreamHandler())
    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path, encoding="utf-8"))

    for handler in handlers:
        handler.setLevel(resolved_level)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    for name in quiet:
        logging.getLogger(name).setLevel(max(resolved_level, logging.WARNING))

    return logger
