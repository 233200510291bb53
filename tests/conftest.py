"""
Pytest configuration for erythro_sim tests.
"""
import os
import sys

import matplotlib
import pytest

matplotlib.use("Agg")

# Make the package importable without installing it
repo_root = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
sys.path.insert(0, repo_root)


@pytest.fixture
def default_params():
    from erythro_sim.model import ParameterSet
    return ParameterSet(a1=0.1, b1=0.15, a2=0.1, b2=1.0, a3=100, b3=0.1, g3=-1, SC=1000)


@pytest.fixture
def nominal_state():
    from erythro_sim.model import State
    return State(RBC=1000, O2=100, EPO=10)


@pytest.fixture
def base_scenario():
    """Default base scenario over the full 0-70 h grid."""
    from erythro_sim.scenario import build_base_scenario
    return build_base_scenario()


@pytest.fixture
def short_scenario():
    """Default parameters and state over a short 0-10 h grid, for fast sweeps."""
    from erythro_sim.scenario import build_base_scenario
    return build_base_scenario(grid={'start': 0.0, 'end': 10.0, 'step': 0.1})


@pytest.fixture(autouse=True)
def restore_warning_capture():
    """The CLI routes warnings into logging; undo that after every test."""
    import logging
    yield
    logging.captureWarnings(False)
    logging.getLogger("py.warnings").handlers.clear()
