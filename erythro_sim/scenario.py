"""
Scenarios and scenario deltas.

A Scenario bundles an initial state, a parameter set, a time grid and a
label. Deltas describe how a sweep entry differs from the base scenario and
are always applied to a fresh copy of it.
"""
import dataclasses
import logging
import math
from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Union

import numpy as np

from erythro_sim import config
from erythro_sim.errors import ConfigurationError, ValidationError
from erythro_sim.model import PARAMETER_NAMES, STATE_NAMES, ParameterSet, State

logger = logging.getLogger(__name__)

# Parameters that are rates or scales and must not be negative.
NON_NEGATIVE_PARAMETERS = ('a1', 'b1', 'a2', 'b2', 'a3', 'b3', 'SC')

DELTA_FIELDS = STATE_NAMES + PARAMETER_NAMES


@dataclass(frozen=True)
class TimeGrid:
    """Reporting grid start, start+step, ... up to end (hours)."""
    start: float = 0.0
    end: float = 70.0
    step: float = 0.1

    def validate(self) -> None:
        for name in ('start', 'end', 'step'):
            if not math.isfinite(getattr(self, name)):
                raise ValidationError(f"Time grid {name} must be finite, got {getattr(self, name)}")
        if self.step <= 0:
            raise ValidationError(f"Time step must be positive, got {self.step}")
        if self.end <= self.start:
            raise ValidationError(
                f"Time grid must be increasing: end={self.end} <= start={self.start}"
            )

    def times(self) -> np.ndarray:
        self.validate()
        # Tolerate round-off in the number of steps, e.g. 70 / 0.1.
        n_steps = int(math.floor((self.end - self.start) / self.step + 1e-9))
        return self.start + self.step * np.arange(n_steps + 1)


@dataclass(frozen=True)
class Scenario:
    initial: State
    params: ParameterSet
    grid: TimeGrid
    label: str = 'base'

    def with_changes(self, changes: Mapping[str, float], label: str) -> "Scenario":
        """
        Copy of this scenario with some state/parameter fields replaced.
        The receiver is never modified.
        """
        unknown = [name for name in changes if name not in DELTA_FIELDS]
        if unknown:
            raise ValidationError(
                f"Unknown field(s) {', '.join(map(repr, unknown))}; "
                f"expected one of {', '.join(DELTA_FIELDS)}"
            )
        try:
            values = {k: float(v) for k, v in changes.items()}
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Delta values must be numbers: {dict(changes)}") from e
        state_changes = {k: v for k, v in values.items() if k in STATE_NAMES}
        param_changes = {k: v for k, v in values.items() if k in PARAMETER_NAMES}
        return dataclasses.replace(
            self,
            initial=dataclasses.replace(self.initial, **state_changes),
            params=dataclasses.replace(self.params, **param_changes),
            label=label,
        )


@dataclass(frozen=True)
class FieldDelta:
    """Change a single initial value or parameter."""
    field: str
    value: float

    @property
    def label(self) -> str:
        return f"{self.field}={format_value(self.value)}"

    @property
    def changes(self) -> Dict[str, float]:
        return {self.field: self.value}


@dataclass(frozen=True)
class CombinedDelta:
    """Change several fields at once, under a caller-chosen name."""
    name: str
    changes: Dict[str, float]

    def __post_init__(self):
        object.__setattr__(self, 'changes', dict(self.changes))

    @property
    def label(self) -> str:
        return self.name


Delta = Union[FieldDelta, CombinedDelta]


def format_value(value) -> str:
    """
    Label text for a delta value: 15 significant digits, so distinct inputs
    keep distinct labels, with integral values shown without a decimal point.
    """
    if isinstance(value, bool) or not isinstance(value, (int, float, np.integer, np.floating)):
        return str(value)
    value = float(value)
    if value.is_integer() and abs(value) < 1e15:
        return str(int(value))
    return f"{value:.15g}"


def validate_scenario(scenario: Scenario) -> None:
    """Reject malformed scenarios before any integration starts."""
    scenario.grid.validate()

    for name, value in scenario.initial.as_dict().items():
        if not math.isfinite(value):
            raise ValidationError(f"Initial {name} must be finite, got {value}")
        if value < 0:
            raise ValidationError(f"Initial {name} must be non-negative, got {value}")

    for name, value in scenario.params.as_dict().items():
        if not math.isfinite(value):
            raise ValidationError(f"Parameter {name} must be finite, got {value}")
        if name in NON_NEGATIVE_PARAMETERS and value < 0:
            raise ValidationError(f"Parameter {name} must be non-negative, got {value}")


def apply_delta(base: Scenario, delta: Delta) -> Scenario:
    """Apply one delta to a fresh copy of `base` and validate the result."""
    if isinstance(delta, CombinedDelta):
        if not delta.name:
            raise ValidationError("Combined delta needs a non-empty name")
        if not delta.changes:
            raise ValidationError(f"Combined delta '{delta.name}' changes no fields")
    elif not isinstance(delta, FieldDelta):
        raise ValidationError(f"Unsupported delta type: {type(delta).__name__}")

    scenario = base.with_changes(delta.changes, label=delta.label)
    validate_scenario(scenario)
    return scenario


def build_base_scenario(params: Optional[Mapping[str, float]] = None,
                        initial_state: Optional[Mapping[str, float]] = None,
                        grid: Optional[Mapping[str, float]] = None,
                        label: str = 'base') -> Scenario:
    """
    Build and validate the base scenario of a sweep.

    Anything wrong with the base is fatal, so every failure surfaces as
    ConfigurationError.
    """
    params = config.DEFAULT_PARAMS if params is None else params
    initial_state = config.DEFAULT_INITIAL_STATE if initial_state is None else initial_state
    grid = config.DEFAULT_GRID if grid is None else grid

    try:
        scenario = Scenario(
            initial=State.from_mapping(initial_state),
            params=ParameterSet.from_mapping(params),
            grid=TimeGrid(**{k: float(v) for k, v in grid.items()}),
            label=label,
        )
        validate_scenario(scenario)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid base scenario: {e}") from e
    except (TypeError, ValueError, AttributeError) as e:
        raise ConfigurationError(f"Invalid time grid {grid!r}: {e}") from e

    logger.debug(f"Base scenario: {scenario}")
    return scenario
