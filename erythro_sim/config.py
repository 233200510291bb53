"""
Configuration
=============
Default model parameters, initial state, time grid and solver settings, plus
the named sweep families run by the command-line entry point.

A base scenario can also be read from a JSON file:

    {
        "params": {"a1": 0.1, "b1": 0.15, ...},
        "initial_state": {"RBC": 1000, "O2": 100, "EPO": 10},
        "grid": {"start": 0, "end": 70, "step": 0.1},
        "solver": {"method": "LSODA", "rtol": 1e-8}
    }

`grid` and `solver` are optional and fall back to the defaults below;
`params` and `initial_state` are required.
"""
import json
import logging
from pathlib import Path
from typing import Any, Dict, Union

from erythro_sim.errors import ConfigurationError

logger = logging.getLogger(__name__)

# =============================================================================
# --- Base scenario ---
# =============================================================================

# Baseline model parameters (steady state near RBC=1000, O2=100, EPO=10).
DEFAULT_PARAMS: Dict[str, float] = {
    'a1': 0.1,  'b1': 0.15,
    'a2': 0.1,  'b2': 1.0,
    'a3': 100,  'b3': 0.1,
    'g3': -1,   'SC': 1000,
}

DEFAULT_INITIAL_STATE: Dict[str, float] = {'RBC': 1000, 'O2': 100, 'EPO': 10}

# Hours
DEFAULT_GRID: Dict[str, float] = {'start': 0.0, 'end': 70.0, 'step': 0.1}

# Fixed tolerances so that identical inputs reproduce identical trajectories.
DEFAULT_SOLVER: Dict[str, Any] = {
    'method': 'LSODA',
    'rtol': 1e-8,
    'atol': 1e-10,
    'max_steps': 100_000,
}

# =============================================================================
# --- Sweep families ---
# =============================================================================

# One initial value lowered at a time.
DECREASED_INITIAL_CONDITIONS = [
    ('RBC', 700),
    ('O2', 70),
    ('EPO', 5),
]

# One parameter changed at a time.
PARAMETER_CHANGES = [
    ('a1', 0.05),
    ('b1', 0.2),
    ('a2', 0.08),
    ('b2', 1.2),
    ('a3', 150),
    ('b3', 0.05),
    ('g3', -0.5),
    ('SC', 800),
]

# Named multi-field changes; the name is the label of the run.
COMBINED_CHANGES: Dict[str, Dict[str, float]] = {
    'anemia (low RBC, low SC)': {'RBC': 700, 'SC': 800},
    'hypoxia (low O2, low a2)': {'O2': 50, 'a2': 0.08},
    'EPO deficiency (low EPO, low a3)': {'EPO': 2, 'a3': 50},
}


def load_base_config(path: Union[str, Path]) -> Dict[str, Dict[str, Any]]:
    """
    Read a base-scenario JSON file.

    Returns a dict with the keys 'params', 'initial_state', 'grid' and
    'solver'. Raises ConfigurationError when the file cannot be read or a
    required section is missing.
    """
    path = Path(path)
    logger.info(f"Loading base scenario from: {path}")
    try:
        with open(path, encoding='utf-8') as f:
            raw = json.load(f)
    except FileNotFoundError as e:
        raise ConfigurationError(f"Config file not found: {path}") from e
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Config file {path} is not valid JSON: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigurationError(f"Config file {path} must contain a JSON object")

    for section in ('params', 'initial_state'):
        if section not in raw:
            raise ConfigurationError(f"Config file {path} has no '{section}' section")
    for section in ('params', 'initial_state', 'grid', 'solver'):
        if section in raw and not isinstance(raw[section], dict):
            raise ConfigurationError(f"Section '{section}' in {path} must be a JSON object")

    return {
        'params': dict(raw['params']),
        'initial_state': dict(raw['initial_state']),
        'grid': {**DEFAULT_GRID, **raw.get('grid', {})},
        'solver': {**DEFAULT_SOLVER, **raw.get('solver', {})},
    }
