"""
Time integration of the feedback model over a fixed reporting grid.

The solver is stepped one internal step at a time and the reporting grid is
read off each step's dense output, so internal step sizes never depend on the
grid spacing. Tolerances are fixed per run; the same inputs and settings give
the same trajectory bit for bit.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

import numpy as np
from scipy.integrate import BDF, DOP853, LSODA, RK23, RK45, Radau

from erythro_sim import config
from erythro_sim.errors import IntegrationFailure, ValidationError
from erythro_sim.model import STATE_NAMES, ParameterSet, State, derivatives
from erythro_sim.scenario import Scenario, TimeGrid

logger = logging.getLogger(__name__)

SOLVERS = {
    'LSODA': LSODA,
    'RK45': RK45,
    'RK23': RK23,
    'DOP853': DOP853,
    'Radau': Radau,
    'BDF': BDF,
}


@dataclass(frozen=True)
class SolverSettings:
    method: str = config.DEFAULT_SOLVER['method']
    rtol: float = config.DEFAULT_SOLVER['rtol']
    atol: float = config.DEFAULT_SOLVER['atol']
    max_steps: int = config.DEFAULT_SOLVER['max_steps']

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> "SolverSettings":
        settings = cls(**{**config.DEFAULT_SOLVER, **values})
        settings.validate()
        return settings

    def validate(self) -> None:
        if self.method not in SOLVERS:
            raise ValidationError(
                f"Unknown solver '{self.method}'; expected one of {', '.join(SOLVERS)}"
            )
        if not (self.rtol > 0 and self.atol > 0):
            raise ValidationError(f"Tolerances must be positive (rtol={self.rtol}, atol={self.atol})")
        if self.max_steps < 1:
            raise ValidationError(f"max_steps must be at least 1, got {self.max_steps}")


@dataclass
class Trajectory:
    """One sample per grid point: `states[i]` is (RBC, O2, EPO) at `times[i]`."""
    times: np.ndarray
    states: np.ndarray

    def __len__(self) -> int:
        return len(self.times)

    @property
    def series(self) -> Dict[str, np.ndarray]:
        return {name: self.states[:, i] for i, name in enumerate(STATE_NAMES)}

    @property
    def final(self) -> State:
        return State.from_sequence(self.states[-1])


def integrate(initial: State, params: ParameterSet, grid: TimeGrid,
              settings: Optional[SolverSettings] = None) -> Trajectory:
    """
    Advance `initial` over `grid` under parameter set `params`.

    Raises IntegrationFailure, carrying the last accepted (time, state) and
    the grid samples produced so far, when the derivative or the state becomes
    non-finite, when the solver reports failure, or when `max_steps` internal
    steps have not reached the end of the grid.
    """
    settings = settings or SolverSettings()
    settings.validate()

    times = grid.times()
    y0 = initial.as_array()
    samples = np.empty((len(times), len(y0)))
    samples[0] = y0
    filled = 1

    def rhs(t, y):
        return derivatives(t, y, params)

    def failure(message, t, y):
        return IntegrationFailure(
            message, float(t), State.from_sequence(y),
            partial_times=times[:filled].copy(),
            partial_states=samples[:filled].copy(),
        )

    if not np.all(np.isfinite(rhs(times[0], y0))):
        raise failure("Non-finite derivative at the initial state", times[0], y0)

    solver = SOLVERS[settings.method](
        rhs, times[0], y0, times[-1], rtol=settings.rtol, atol=settings.atol
    )
    last_t, last_y = times[0], y0
    n_steps = 0

    while filled < len(times):
        if n_steps >= settings.max_steps:
            raise failure(
                f"No convergence within {settings.max_steps} internal steps", last_t, last_y
            )

        message = solver.step()
        n_steps += 1

        if solver.status == 'failed':
            raise failure(f"{settings.method} solver failed: {message}", last_t, last_y)
        if not np.all(np.isfinite(solver.y)):
            raise failure(f"Non-finite state reached after t={last_t:g}", last_t, last_y)

        dense = None
        while filled < len(times) and times[filled] <= solver.t:
            if times[filled] == solver.t:
                samples[filled] = solver.y
            else:
                if dense is None:
                    dense = solver.dense_output()
                samples[filled] = dense(times[filled])
            filled += 1

        last_t, last_y = solver.t, solver.y.copy()

        if solver.status == 'finished' and filled < len(times):
            # Only the end point can be left over, and only through round-off.
            if filled == len(times) - 1 and np.isclose(times[filled], solver.t):
                samples[filled] = solver.y
                filled += 1
            else:
                raise failure(f"Solver stopped early at t={solver.t:g}", last_t, last_y)

    logger.debug(
        f"{settings.method}: {n_steps} internal steps, {solver.nfev} RHS evaluations, "
        f"{len(times)} samples"
    )
    return Trajectory(times=times, states=samples)


def integrate_scenario(scenario: Scenario,
                       settings: Optional[SolverSettings] = None) -> Trajectory:
    return integrate(scenario.initial, scenario.params, scenario.grid, settings)
