import logging

import matplotlib
import pytest

# Headless backend for every test that draws.
matplotlib.use("Agg")

from src.sirode.model import SIRParams, SIRState, simulate_sir  # noqa: E402


@pytest.fixture(scope="session")
def reference_trajectory():
    """The one-in-a-million outbreak with beta=1, gamma=0.1 over 60 days."""
    return simulate_sir()


@pytest.fixture
def reference_state():
    return SIRState(999_999.0, 1.0, 0.0)


@pytest.fixture
def reference_params():
    return SIRParams(beta=1.0, gamma=0.1)


@pytest.fixture
def restore_root_logging():
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    for handler in handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.setLevel(level)
