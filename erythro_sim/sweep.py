"""
Sweep harness: run the base scenario and one scenario per delta, and collect
labeled results in input order.

Every delta is applied to a fresh copy of the base scenario. A scenario that
fails validation or integration is marked FAILED with its error message; the
remaining scenarios still run. Only a broken base scenario (ConfigurationError)
stops the sweep, and it does so before anything is integrated.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from multiprocessing import Pool
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from erythro_sim import config
from erythro_sim.errors import ConfigurationError, IntegrationFailure, ValidationError
from erythro_sim.integrator import SolverSettings, Trajectory, integrate_scenario
from erythro_sim.model import PARAMETER_NAMES, STATE_NAMES
from erythro_sim.scenario import (
    CombinedDelta, Delta, FieldDelta, Scenario, apply_delta, validate_scenario,
)

logger = logging.getLogger(__name__)


class ScenarioStatus(Enum):
    PENDING = 'pending'
    RUNNING = 'running'
    COMPLETED = 'completed'
    FAILED = 'failed'


# Allowed lifecycle moves. PENDING -> FAILED covers scenarios rejected by
# validation before they ever reach the solver.
_TRANSITIONS = {
    ScenarioStatus.PENDING: {ScenarioStatus.RUNNING, ScenarioStatus.FAILED},
    ScenarioStatus.RUNNING: {ScenarioStatus.COMPLETED, ScenarioStatus.FAILED},
    ScenarioStatus.COMPLETED: set(),
    ScenarioStatus.FAILED: set(),
}


def _empty_series() -> Dict[str, np.ndarray]:
    return {name: np.empty(0) for name in STATE_NAMES}


@dataclass
class ScenarioResult:
    """Outcome of one sweep entry."""
    label: str
    status: ScenarioStatus = ScenarioStatus.PENDING
    times: np.ndarray = field(default_factory=lambda: np.empty(0))
    series: Dict[str, np.ndarray] = field(default_factory=_empty_series)
    error: Optional[str] = None
    failed_at: Optional[float] = None

    def _move(self, new: ScenarioStatus) -> None:
        if new not in _TRANSITIONS[self.status]:
            raise RuntimeError(
                f"Scenario '{self.label}' cannot go from {self.status.value} to {new.value}"
            )
        self.status = new

    def start(self) -> None:
        self._move(ScenarioStatus.RUNNING)

    def complete(self, trajectory: Trajectory) -> None:
        self._move(ScenarioStatus.COMPLETED)
        self.times = trajectory.times
        self.series = trajectory.series

    def fail(self, error: Exception) -> None:
        self._move(ScenarioStatus.FAILED)
        self.error = f"{type(error).__name__}: {error}"
        if isinstance(error, IntegrationFailure):
            # Keep what was computed before the failure; the status says it is partial.
            self.failed_at = error.time
            self.times = error.partial_times
            self.series = {
                name: error.partial_states[:, i] for i, name in enumerate(STATE_NAMES)
            }

    @property
    def ok(self) -> bool:
        return self.status is ScenarioStatus.COMPLETED

    def final(self) -> Dict[str, float]:
        if len(self.times) == 0:
            return {name: float('nan') for name in STATE_NAMES}
        return {name: float(values[-1]) for name, values in self.series.items()}

    def to_frame(self) -> pd.DataFrame:
        """Long-format table, one row per sample (one NaN row if there are none)."""
        if len(self.times) == 0:
            data = {'time': [np.nan], **{name: [np.nan] for name in STATE_NAMES}}
        else:
            data = {'time': self.times, **self.series}
        df = pd.DataFrame(data)
        df.insert(0, 'label', self.label)
        df.insert(1, 'status', self.status.value)
        df.insert(2, 'error', self.error)
        return df


@dataclass
class SweepResult:
    """Ordered results: the base run first, then one entry per delta."""
    results: List[ScenarioResult]

    def __iter__(self) -> Iterator[ScenarioResult]:
        return iter(self.results)

    def __len__(self) -> int:
        return len(self.results)

    def __getitem__(self, key: Union[int, str]) -> ScenarioResult:
        if isinstance(key, str):
            matches = [r for r in self.results if r.label == key]
            if not matches:
                raise KeyError(key)
            if len(matches) > 1:
                raise KeyError(f"{key!r} labels {len(matches)} results; index by position instead")
            return matches[0]
        return self.results[key]

    @property
    def labels(self) -> List[str]:
        return [r.label for r in self.results]

    @property
    def completed(self) -> List[ScenarioResult]:
        return [r for r in self.results if r.status is ScenarioStatus.COMPLETED]

    @property
    def failed(self) -> List[ScenarioResult]:
        return [r for r in self.results if r.status is ScenarioStatus.FAILED]

    def to_frame(self) -> pd.DataFrame:
        return pd.concat([r.to_frame() for r in self.results], ignore_index=True)


# =============================================================================
# --- Delta builders ---
# =============================================================================

def one_at_a_time(name: str, values: Iterable[float]) -> List[FieldDelta]:
    """One FieldDelta per value of a single field."""
    return [FieldDelta(name, value) for value in values]


def percent_deltas(base: Scenario, names: Optional[Sequence[str]] = None,
                   fractions: Sequence[float] = (-0.1, 0.1)) -> List[FieldDelta]:
    """
    One-at-a-time relative changes of parameters around `base`,
    e.g. the default -10 % / +10 % scan of every parameter.
    """
    names = PARAMETER_NAMES if names is None else names
    values = {**base.initial.as_dict(), **base.params.as_dict()}
    deltas = []
    for name in names:
        if name not in values:
            raise ValidationError(f"Unknown field {name!r}")
        for fraction in fractions:
            deltas.append(FieldDelta(name, values[name] * (1.0 + fraction)))
    return deltas


def default_sweeps() -> Dict[str, List[Delta]]:
    """Named delta families from the configuration module."""
    return {
        'initial': [FieldDelta(name, value) for name, value in config.DECREASED_INITIAL_CONDITIONS],
        'parameters': [FieldDelta(name, value) for name, value in config.PARAMETER_CHANGES],
        'combined': [CombinedDelta(name, changes) for name, changes in config.COMBINED_CHANGES.items()],
    }


# =============================================================================
# --- Execution ---
# =============================================================================

def run_scenario(scenario: Scenario, settings: Optional[SolverSettings] = None) -> ScenarioResult:
    """Integrate one validated scenario and return its terminal result."""
    result = ScenarioResult(scenario.label)
    result.start()
    try:
        trajectory = integrate_scenario(scenario, settings)
    except IntegrationFailure as e:
        result.fail(e)
    else:
        result.complete(trajectory)
    return result


def _run_job(job: Tuple[Scenario, Optional[SolverSettings]]) -> ScenarioResult:
    # Module-level so that Pool can pickle it.
    scenario, settings = job
    return run_scenario(scenario, settings)


def run_sweep(base: Scenario, deltas: Sequence[Delta],
              settings: Optional[SolverSettings] = None,
              workers: Optional[int] = None) -> SweepResult:
    """
    Run `base` and one scenario per delta.

    Args:
        base: Validated base scenario; its label names the base run.
        deltas: FieldDelta / CombinedDelta entries, applied independently.
        settings: Solver settings shared by every run.
        workers: Number of worker processes. None or 1 runs sequentially.

    Returns:
        SweepResult ordered as [base, *deltas].
    """
    try:
        validate_scenario(base)
        if settings is not None:
            settings.validate()
    except ValidationError as e:
        raise ConfigurationError(f"Cannot run sweep: {e}") from e

    entries: List[Tuple[str, Optional[Scenario], Optional[Exception]]] = [(base.label, base, None)]
    for delta in deltas:
        label = getattr(delta, 'label', repr(delta))
        try:
            entries.append((label, apply_delta(base, delta), None))
        except ValidationError as e:
            entries.append((label, None, e))

    labels = [label for label, _, _ in entries]
    if len(set(labels)) != len(labels):
        logger.warning("Sweep contains duplicate labels; look those results up by position")

    slots: List[Optional[ScenarioResult]] = [None] * len(entries)
    jobs: List[Tuple[int, Scenario]] = []
    for index, (label, scenario, error) in enumerate(entries):
        if error is not None:
            result = ScenarioResult(label)
            result.fail(error)
            logger.warning(f"Scenario '{label}' rejected: {error}")
            slots[index] = result
        else:
            jobs.append((index, scenario))

    logger.info(
        f"Running sweep: {len(jobs)} scenario(s), {len(entries) - len(jobs)} rejected, "
        f"workers={workers or 1}"
    )

    job_args = [(scenario, settings) for _, scenario in jobs]
    if workers and workers > 1 and len(jobs) > 1:
        with Pool(processes=min(workers, len(jobs))) as pool:
            outcomes = pool.map(_run_job, job_args)
    else:
        outcomes = [_run_job(args) for args in job_args]

    for (index, _), outcome in zip(jobs, outcomes):
        slots[index] = outcome
        if outcome.ok:
            logger.debug(f"Scenario '{outcome.label}' completed")
        else:
            logger.warning(f"Scenario '{outcome.label}' failed: {outcome.error}")

    sweep = SweepResult(results=slots)
    logger.info(f"Sweep finished: {len(sweep.completed)} completed, {len(sweep.failed)} failed")
    return sweep
