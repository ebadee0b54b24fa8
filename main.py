"""CLI entrypoint for the time-discrete race simulator."""

from __future__ import annotations

import argparse
import logging
import sys
import time

from f1_racesim import __version__
from f1_racesim.config import DEFAULT_PARFILE, SimOpts, load_sim_pars
from f1_racesim.core.errors import ConfigurationError
from f1_racesim.core.handle_race import handle_race


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="A time-discrete race simulator.",
    )
    parser.add_argument(
        "-p",
        "--parfile",
        default=str(DEFAULT_PARFILE),
        help="Path to the simulation parameter file (YAML or JSON).",
    )
    parser.add_argument(
        "-t",
        "--timestep-size",
        type=float,
        default=0.2,
        help="Time step size in seconds, within [0.001, 1.0] (default: 0.2).",
    )
    parser.add_argument(
        "-r",
        "--realtime-factor",
        type=float,
        default=None,
        help="Simulate in real time, sped up by this factor within [0.1, 100.0].",
    )
    parser.add_argument(
        "-d",
        "--debug",
        action="store_true",
        help="Enable debug output.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """Simulate the race described by the parameter file and print the result."""
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(levelname)s: %(name)s: %(message)s",
    )

    try:
        sim_opts = SimOpts(
            timestep_size=args.timestep_size,
            realtime_factor=args.realtime_factor,
            debug=args.debug,
        )
        sim_pars = load_sim_pars(args.parfile)
    except (FileNotFoundError, ConfigurationError) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1

    print(f"Race simulator v{__version__}")
    print("=" * 56)
    print(f"Track : {sim_pars.track.name} {sim_pars.race_pars.season}")
    print(f"Laps  : {sim_pars.race_pars.tot_no_laps}")
    print(f"Cars  : {', '.join(str(no) for no in sim_pars.race_pars.participants)}")
    print("-" * 56)

    t_start = time.perf_counter()
    try:
        result = handle_race(
            sim_pars,
            timestep_size=sim_opts.timestep_size,
            realtime_factor=sim_opts.realtime_factor,
            debug=sim_opts.debug,
        )
    except ConfigurationError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1
    t_elapsed = time.perf_counter() - t_start

    print(f"\nSimulation finished in {t_elapsed:.3f}s.\n")
    result.print_lap_and_race_times()

    print("\nFinal classification:")
    labels = {pair.car_no: pair.label for pair in result.car_driver_pairs}
    for pos, car_no in enumerate(result.final_classification, start=1):
        print(f"  P{pos:02d}: {labels[car_no]}")

    return 0


if __name__ == "__main__":
    sys.exit(main() or 0)
