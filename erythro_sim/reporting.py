"""
Tables and plots for sweep results.

Nothing here feeds back into the simulation; it only reads SweepResult.
"""
import math
from typing import Optional, Sequence

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd

from erythro_sim.model import STATE_NAMES
from erythro_sim.sweep import SweepResult

AXIS_LABELS = {
    'RBC': 'RBC – Red blood cells',
    'O2': 'O2 – Oxygen',
    'EPO': 'EPO – Erythropoietin',
}


def format_hours(hours: float) -> str:
    """Decimal hours as 'H hrs M mins', e.g. 1.75 -> '1 hrs 45 mins'."""
    if not math.isfinite(hours) or hours < 0:
        raise ValueError(f"Hours must be a finite non-negative number, got {hours}")
    whole = int(math.floor(hours))
    minutes = int(round((hours - whole) * 60))
    if minutes == 60:
        whole, minutes = whole + 1, 0
    return f"{whole} hrs {minutes} mins"


def summary_table(sweep: SweepResult, variable: str, times: Sequence[float]) -> pd.DataFrame:
    """
    Values of one state variable at selected times, one row per scenario.

    Values are linearly interpolated from the trajectory. Times outside a
    scenario's samples (e.g. after a failure) are NaN.
    """
    if variable not in STATE_NAMES:
        raise KeyError(f"Unknown variable {variable!r}; expected one of {', '.join(STATE_NAMES)}")

    columns = [format_hours(t) for t in times]
    rows = {}
    for result in sweep:
        if len(result.times) == 0:
            rows[result.label] = [np.nan] * len(times)
            continue
        values = np.interp(times, result.times, result.series[variable],
                           left=np.nan, right=np.nan)
        rows[result.label] = list(values)

    df = pd.DataFrame.from_dict(rows, orient='index', columns=columns)
    df.index.name = 'scenario'
    return df


def final_values(sweep: SweepResult) -> pd.DataFrame:
    """Last sample of every scenario, with its status."""
    df = pd.DataFrame.from_dict(
        {r.label: {'status': r.status.value, **r.final()} for r in sweep},
        orient='index',
    )
    df.index.name = 'scenario'
    return df


def plot_sweep(sweep: SweepResult, variables: Sequence[str] = STATE_NAMES,
               path: Optional[str] = None, title: Optional[str] = None):
    """
    One panel per state variable, one line per scenario. The base run is
    drawn first as a thick dark line so that deltas read against it.
    """
    fig, axes = plt.subplots(len(variables), 1, figsize=(9, 3.2 * len(variables)), sharex=True)
    axes = np.atleast_1d(axes)

    for i, result in enumerate(sweep):
        if len(result.times) == 0:
            continue
        style = dict(color='#222222', lw=2.5) if i == 0 else dict(lw=1.5)
        if not result.ok:
            style['linestyle'] = ':'
        for ax, name in zip(axes, variables):
            ax.plot(result.times, result.series[name], label=result.label, **style)

    for ax, name in zip(axes, variables):
        ax.set_ylabel(AXIS_LABELS.get(name, name), fontsize=11)
        ax.grid(True, linestyle=':', color='#CCCCCC')
        ax.spines['top'].set_visible(False)
        ax.spines['right'].set_visible(False)

    axes[-1].set_xlabel('Time (hours)', fontsize=11)
    axes[0].legend(loc='upper left', bbox_to_anchor=(1.01, 1), fontsize=9)
    if title:
        fig.suptitle(title, fontsize=14)
    fig.tight_layout()

    if path:
        fig.savefig(path, dpi=150, bbox_inches='tight')
    return fig
