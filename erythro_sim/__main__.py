"""
Command-line sweep runner.

    python -m erythro_sim --family initial --plot results/initial.png

Runs the base scenario plus the selected delta families, writes all
trajectories to one long-format CSV, and prints the final-value table.
"""
import argparse
import logging
import os
from typing import List, Optional

from erythro_sim import config
from erythro_sim.errors import ConfigurationError, ValidationError
from erythro_sim.integrator import SolverSettings
from erythro_sim.logging_config import setup_logging
from erythro_sim.reporting import final_values, plot_sweep, summary_table
from erythro_sim.scenario import build_base_scenario
from erythro_sim.sweep import default_sweeps, percent_deltas, run_sweep

logger = logging.getLogger("erythro_sim")

FAMILIES = ('initial', 'parameters', 'combined', 'percent')


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="RBC / O2 / EPO feedback sweep runner")
    p.add_argument("--config", type=str, default=None,
                   help="JSON file with params, initial_state and optional grid/solver")
    p.add_argument("--family", choices=FAMILIES + ('all',), action="append",
                   help="Delta family to run (repeatable, default: all except percent)")
    p.add_argument("--end", type=float, default=None, help="Override grid end (hours)")
    p.add_argument("--step", type=float, default=None, help="Override grid step (hours)")
    p.add_argument("--workers", type=int, default=None)
    p.add_argument("--summary-times", type=str, default="1,6,24,70",
                   help="Comma-separated hours for the RBC summary table")
    p.add_argument("--out-csv", type=str, default="results/sweep.csv")
    p.add_argument("--plot", type=str, default=None, help="Save a PNG of all trajectories")
    p.add_argument("--log-level", type=str, default="INFO")
    p.add_argument("--log-file", type=str, default=None)
    p.add_argument("--no-capture-warnings", action="store_true",
                   help="Leave numpy RuntimeWarnings on stderr instead of the log")
    return p.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = _parse_args(argv)
    setup_logging(getattr(logging, args.log_level.upper(), logging.INFO), args.log_file,
                  capture_warnings=not args.no_capture_warnings)

    try:
        if args.config:
            cfg = config.load_base_config(args.config)
        else:
            cfg = {
                'params': config.DEFAULT_PARAMS,
                'initial_state': config.DEFAULT_INITIAL_STATE,
                'grid': dict(config.DEFAULT_GRID),
                'solver': config.DEFAULT_SOLVER,
            }
        grid = dict(cfg['grid'])
        if args.end is not None:
            grid['end'] = args.end
        if args.step is not None:
            grid['step'] = args.step
        base = build_base_scenario(cfg['params'], cfg['initial_state'], grid)
        try:
            settings = SolverSettings.from_mapping(cfg['solver'])
        except (TypeError, ValidationError) as e:
            raise ConfigurationError(f"Invalid solver settings: {e}") from e
    except ConfigurationError as e:
        logger.error(str(e))
        return 2

    families = args.family or ['initial', 'parameters', 'combined']
    if 'all' in families:
        families = list(FAMILIES)

    sweeps = default_sweeps()
    deltas = []
    for family in families:
        if family == 'percent':
            deltas.extend(percent_deltas(base))
        else:
            deltas.extend(sweeps[family])

    sweep = run_sweep(base, deltas, settings=settings, workers=args.workers)

    out_dir = os.path.dirname(args.out_csv)
    if out_dir:
        os.makedirs(out_dir, exist_ok=True)
    sweep.to_frame().to_csv(args.out_csv, index=False)
    logger.info(f"Wrote {len(sweep)} scenarios -> {args.out_csv}")

    if args.plot:
        plot_dir = os.path.dirname(args.plot)
        if plot_dir:
            os.makedirs(plot_dir, exist_ok=True)
        plot_sweep(sweep, path=args.plot, title="RBC / O2 / EPO sweep")
        logger.info(f"Saved plot -> {args.plot}")

    times = [float(x) for x in args.summary_times.split(",") if x.strip()]
    times = [t for t in times if base.grid.start <= t <= base.grid.end]

    print("\n" + "=" * 70)
    print("           FINAL VALUES")
    print("=" * 70)
    print(final_values(sweep).round(4))
    if times:
        print("\n" + "=" * 70)
        print("           RBC OVER TIME")
        print("=" * 70)
        print(summary_table(sweep, 'RBC', times).round(2))
    print("=" * 70 + "\n")

    return 0 if not sweep.failed else 1


if __name__ == "__main__":
    raise SystemExit(main())
