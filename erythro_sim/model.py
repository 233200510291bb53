"""
RBC / O2 / EPO feedback model.

Three coupled ODEs:

    dRBC = a1 * SC * (1 + 0.5 * EPO^4 / (k^4 + EPO^4)) - b1 * RBC
    dO2  = a2 * RBC - b2 * O2
    dEPO = a3 * O2^g3 - b3 * EPO

EPO stimulates red cell production through a saturating Hill term, red cells
carry oxygen, and oxygen suppresses EPO production through a power law with a
(typically negative) exponent g3.

With g3 < 0 the O2^g3 term diverges as O2 -> 0. That singularity is part of
the idealised model (acute hypoxia drives an unbounded EPO signal) and is
returned as inf, not clipped.
"""
from dataclasses import dataclass, fields, asdict
from typing import Dict, Mapping, Sequence, Tuple

import numpy as np
from scipy.optimize import brentq

from erythro_sim.errors import ConfigurationError, ValidationError

HILL_K = 2.0      # half-saturation EPO level
HILL_N = 4        # Hill exponent
EPO_GAIN = 0.5    # maximal fractional boost of RBC production by EPO


@dataclass(frozen=True)
class State:
    """Red cell count, oxygen level and EPO concentration."""
    RBC: float
    O2: float
    EPO: float

    @classmethod
    def from_mapping(cls, values: Mapping[str, float]) -> "State":
        missing = [name for name in STATE_NAMES if name not in values]
        if missing:
            raise ConfigurationError(f"Missing initial value(s): {', '.join(missing)}")
        unknown = sorted(set(values) - set(STATE_NAMES))
        if unknown:
            raise ValidationError(f"Unknown state variable(s): {', '.join(unknown)}")
        try:
            return cls(**{name: float(values[name]) for name in STATE_NAMES})
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Initial values must be numbers: {dict(values)}") from e

    @classmethod
    def from_sequence(cls, values: Sequence[float]) -> "State":
        rbc, o2, epo = values
        return cls(float(rbc), float(o2), float(epo))

    def as_array(self) -> np.ndarray:
        return np.array([self.RBC, self.O2, self.EPO], dtype=float)

    def as_dict(self) -> Dict[str, float]:
        return asdict(self)


@dataclass(frozen=True)
class ParameterSet:
    """
    Production/clearance coefficients of the feedback loop.

    a1, b1: red cell production and clearance
    a2, b2: oxygen production per red cell and oxygen consumption
    a3, b3: EPO production and clearance
    g3:     exponent of the O2 -> EPO power law
    SC:     stem-cell scale of red cell production
    """
    a1: float
    b1: float
    a2: float
    b2: float
    a3: float
    b3: float
    g3: float
    SC: float

    @classmethod
    def from_mapping(cls, values: Mapping[str, float]) -> "ParameterSet":
        missing = [name for name in PARAMETER_NAMES if name not in values]
        if missing:
            raise ConfigurationError(f"Missing required parameter(s): {', '.join(missing)}")
        unknown = sorted(set(values) - set(PARAMETER_NAMES))
        if unknown:
            raise ValidationError(f"Unknown parameter(s): {', '.join(unknown)}")
        try:
            return cls(**{name: float(values[name]) for name in PARAMETER_NAMES})
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Parameters must be numbers: {dict(values)}") from e

    def as_dict(self) -> Dict[str, float]:
        return asdict(self)


STATE_NAMES: Tuple[str, ...] = tuple(f.name for f in fields(State))
PARAMETER_NAMES: Tuple[str, ...] = tuple(f.name for f in fields(ParameterSet))


def hill(x, k: float = HILL_K, n: int = HILL_N):
    """Saturating activation x^n / (k^n + x^n), in [0, 1) for x >= 0."""
    xn = np.power(x, n)
    return xn / (k ** n + xn)


def derivatives(t: float, state: Sequence[float], p: ParameterSet) -> np.ndarray:
    """
    Right-hand side of the RBC / O2 / EPO system.

    `t` is accepted for solver compatibility only; the system is autonomous.
    """
    rbc, o2, epo = state

    production = p.a1 * p.SC * (1.0 + EPO_GAIN * hill(epo))
    d_rbc = production - p.b1 * rbc
    d_o2 = p.a2 * rbc - p.b2 * o2
    d_epo = p.a3 * np.power(np.float64(o2), p.g3) - p.b3 * epo

    return np.array([d_rbc, d_o2, d_epo], dtype=float)


def equilibrium(p: ParameterSet) -> State:
    """
    Exact steady state of the system for parameter set `p`.

    At steady state O2 = a2/b2 * RBC and EPO = a3 * O2^g3 / b3, which leaves a
    scalar equation in RBC. Because the Hill term lies in [0, 1], the root is
    bracketed by [a1*SC/b1, 1.5*a1*SC/b1].
    """
    positive = {'a1': p.a1, 'SC': p.SC, 'a2': p.a2, 'a3': p.a3,
                'b1': p.b1, 'b2': p.b2, 'b3': p.b3}
    non_positive = [name for name, value in positive.items() if not value > 0]
    if non_positive:
        raise ValidationError(
            f"Equilibrium requires strictly positive {', '.join(non_positive)}"
        )

    def o2_of(rbc):
        return p.a2 / p.b2 * rbc

    def epo_of(rbc):
        return p.a3 * o2_of(rbc) ** p.g3 / p.b3

    def residual(rbc):
        return p.a1 * p.SC * (1.0 + EPO_GAIN * hill(epo_of(rbc))) - p.b1 * rbc

    low = p.a1 * p.SC / p.b1
    high = (1.0 + EPO_GAIN) * low
    rbc = brentq(residual, low, high, xtol=1e-12)
    return State(RBC=float(rbc), O2=float(o2_of(rbc)), EPO=float(epo_of(rbc)))
