"""
erythro_sim: RBC / O2 / EPO feedback model, integrator and scenario sweeps.
"""
from erythro_sim.errors import (
    ConfigurationError, ErythroSimError, IntegrationFailure, ValidationError,
)
from erythro_sim.integrator import SolverSettings, Trajectory, integrate, integrate_scenario
from erythro_sim.model import (
    PARAMETER_NAMES, STATE_NAMES, ParameterSet, State, derivatives, equilibrium, hill,
)
from erythro_sim.scenario import (
    CombinedDelta, FieldDelta, Scenario, TimeGrid, apply_delta, build_base_scenario,
    validate_scenario,
)
from erythro_sim.sweep import (
    ScenarioResult, ScenarioStatus, SweepResult, default_sweeps, one_at_a_time,
    percent_deltas, run_scenario, run_sweep,
)

__version__ = "0.1.0"
