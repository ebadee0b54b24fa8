"""Driver loop that runs a race from start to finish."""

from __future__ import annotations

import logging
import math
import time
from collections.abc import Callable
from typing import TYPE_CHECKING

from f1_racesim.core.errors import SimulationInvariantError
from f1_racesim.core.race import Race, RaceState
from f1_racesim.core.race_result import RaceResult

if TYPE_CHECKING:
    from f1_racesim.config import SimPars

logger = logging.getLogger(__name__)

RUNAWAY_FACTOR: float = 10.0  # allowed multiple of a slow race duration
STATUS_INTERVAL: float = 1.0  # s of race time between status messages


def max_no_timesteps(race: Race) -> int:
    """Upper bound on the number of time steps a race may take.

    Every lap is assumed to be driven at the slower of the reference lap
    time and the pit lane lap time, stretched by :data:`RUNAWAY_FACTOR`.
    """
    laptime_bound = max(race.track.t_base, race.track.pit_lane_laptime)
    return math.ceil(
        RUNAWAY_FACTOR
        * (race.race_pars.tot_no_laps + 1)
        * laptime_bound
        / race.timestep_size
    )


def _simulate_timestep(race: Race, max_ticks: int) -> None:
    if race.tick >= max_ticks:
        raise SimulationInvariantError(
            f"Race did not finish within {max_ticks} time steps.", tick=race.tick
        )
    race.simulate_timestep()


def handle_race(
    sim_pars: SimPars,
    timestep_size: float,
    realtime_factor: float | None = None,
    callback: Callable[[RaceState], None] | None = None,
    debug: bool = False,
) -> RaceResult:
    """Create a race from the parameters and simulate it until all cars finished.

    Args:
        sim_pars: Simulation parameters.
        timestep_size: Duration of a time step (s).
        realtime_factor: If given, every time step is stretched to
            ``timestep_size / realtime_factor`` seconds of wall-clock time.
            Otherwise the race is simulated as fast as possible.
        callback: Called with a snapshot of the race after every time step.
        debug: Log additional information about the race.

    Returns:
        The lap and race times of all cars.

    Raises:
        ConfigurationError: If the parameters are invalid.
        SimulationInvariantError: If the race state breaks an invariant or
            the race does not finish.
    """
    race = Race(
        sim_pars.race_pars,
        sim_pars.track,
        sim_pars.drivers,
        sim_pars.car_pars,
        timestep_size,
    )
    max_ticks = max_no_timesteps(race)

    if realtime_factor is None:
        while not race.all_finished:
            _simulate_timestep(race, max_ticks)
            if callback is not None:
                callback(race.get_race_state())
    else:
        t_interval = timestep_size / realtime_factor
        t_last_status = 0.0

        while not race.all_finished:
            t_start = time.perf_counter()

            _simulate_timestep(race, max_ticks)
            if callback is not None:
                callback(race.get_race_state())

            if race.cur_racetime >= t_last_status + STATUS_INTERVAL - 1e-6:
                logger.info(
                    "Simulating... race time %.3fs, leader in lap %d.",
                    race.cur_racetime,
                    min(race.cur_lap_leader, race.race_pars.tot_no_laps),
                )
                t_last_status = race.cur_racetime

            t_sleep = t_interval - (time.perf_counter() - t_start)
            if t_sleep > 0.0:
                time.sleep(t_sleep)
            else:
                logger.warning("Could not keep up with real time (%.3fs late).", -t_sleep)

    if debug:
        logger.debug(
            "Estimated time loss for driving through the pit lane (w/o standstill): %.2fs",
            race.track.pit_drive_timeloss,
        )

    return race.get_race_result()
