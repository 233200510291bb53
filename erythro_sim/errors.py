"""
Error taxonomy for scenario validation, integration and sweep configuration.
"""
from typing import Optional

import numpy as np


class ErythroSimError(Exception):
    """Base class for all errors raised by erythro_sim."""


class ValidationError(ErythroSimError):
    """A scenario or delta is malformed. Aborts only that scenario."""


class ConfigurationError(ErythroSimError):
    """The base scenario cannot be built. Aborts the whole sweep."""


class IntegrationFailure(ErythroSimError):
    """
    The solver could not advance the state.

    Carries the last accepted time and state, plus the samples already
    written to the reporting grid before the failure.
    """

    def __init__(self, message: str, time: float, state,
                 partial_times: Optional[np.ndarray] = None,
                 partial_states: Optional[np.ndarray] = None):
        super().__init__(f"{message} (last valid t={time:g})")
        self.message = message
        self.time = time
        self.state = state
        self.partial_times = partial_times if partial_times is not None else np.empty(0)
        self.partial_states = partial_states if partial_states is not None else np.empty((0, 3))
