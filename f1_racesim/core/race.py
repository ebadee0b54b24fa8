"""Time-discrete race orchestration.

The race advances in fixed time steps.  Each call of
:meth:`Race.simulate_timestep` runs seven stages in a fixed order:

1. advance the race clock;
2. compute the current lap time of every car, including race start, duel,
   DRS and pit lane effects, then enforce the minimum temporal distance
   between cars that may not overtake;
3. advance every car according to its lap time;
4. pit standstill entry and exit (pit boxes in front of the finish line);
5. lap transitions: leader lap, chequered flag, lap and race times, tire
   and fuel bookkeeping, pit stops;
6. pit standstill entry and exit (pit boxes behind the finish line);
7. state transitions of every car, pit bookkeeping, duel losers and the
   ranking.

Cars that crossed the line after the chequered flag are finished.  They are
frozen in place and no longer interact with the others, but keep their slot
in the ranking.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum

import numpy as np

from f1_racesim.core.car import Car, CarPars
from f1_racesim.core.driver import Driver
from f1_racesim.core.errors import ConfigurationError, SimulationInvariantError
from f1_racesim.core.race_result import CarDriverPair, RaceResult
from f1_racesim.core.state_handler import State, StateHandler
from f1_racesim.core.track import Track, lap_distance

logger = logging.getLogger(__name__)

T_RESTORE_MIN_DIST: float = 3.0  # s to restore the minimum distance

# ---------------------------------------------------------------------------
# Parameters and snapshots
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RacePars:
    """Race-wide parameters.

    Attributes:
        season: Season of the race.
        tot_no_laps: Number of laps.
        drs_allowed_lap: First lap of the leader in which DRS may be used.
        min_t_dist: Minimum temporal distance to the car in front (s).
        t_duel: Time loss over all overtaking zones while duelling (s).
        t_overtake_loser: Time loss of a duelling car that could not pass (s).
        drs_window: Temporal distance at a DRS measurement point up to which
            DRS is armed (s).
        use_drs: Switch DRS on or off.
        participants: Numbers of the cars taking part.
    """

    season: int
    tot_no_laps: int
    drs_allowed_lap: int
    min_t_dist: float
    t_duel: float
    t_overtake_loser: float
    drs_window: float
    use_drs: bool
    participants: tuple[int, ...]

    def __post_init__(self) -> None:
        """Validate race parameters."""
        object.__setattr__(self, "participants", tuple(self.participants))
        if self.tot_no_laps < 1:
            raise ConfigurationError("tot_no_laps must be >= 1.")
        if self.drs_allowed_lap < 1:
            raise ConfigurationError("drs_allowed_lap must be >= 1.")
        for name in ("min_t_dist", "t_duel", "t_overtake_loser", "drs_window"):
            if getattr(self, name) < 0.0:
                raise ConfigurationError(f"{name} must be >= 0.0.")
        if not self.participants:
            raise ConfigurationError("At least one participant is required.")
        if len(set(self.participants)) != len(self.participants):
            raise ConfigurationError("Participants must be unique.")


class FlagState(str, Enum):
    GREEN = "G"
    CHEQUERED = "C"


@dataclass(frozen=True)
class CarState:
    """Snapshot of a single car, as shown in a live timing screen."""

    car_no: int
    driver_initials: str
    rank: int
    lap: int
    race_prog: float
    racetime: float
    state: State
    compound: str
    tire_age: int
    drs_armed: bool
    drs_active: bool
    finished: bool
    gap_to_leader: float
    gap_to_front: float


@dataclass(frozen=True)
class RaceState:
    """Snapshot of the race after a time step.

    Attributes:
        racetime: Race clock (s).
        flag_state: Current flag.
        car_states: One entry per car, in rank order.
    """

    racetime: float
    flag_state: FlagState
    car_states: tuple[CarState, ...]


def _car_pairs(idxs: list[int]) -> list[tuple[int, int]]:
    """Cyclic ``(front, rear)`` pairs of cars ordered front to rear."""
    return [(idxs[k], idxs[(k + 1) % len(idxs)]) for k in range(len(idxs))]


# ---------------------------------------------------------------------------
# Race
# ---------------------------------------------------------------------------


class Race:
    """A race between the participating cars, simulated in fixed time steps.

    Args:
        race_pars: Race parameters.
        track: Track the race is held on.
        drivers: Available drivers keyed by initials.
        car_pars: Car parameters keyed by car number (may contain cars that
            do not participate).
        timestep_size: Duration of a time step (s).

    Raises:
        ConfigurationError: If the parameters do not describe a race that
            can be simulated.
    """

    def __init__(
        self,
        race_pars: RacePars,
        track: Track,
        drivers: Mapping[str, Driver],
        car_pars: Mapping[int, CarPars],
        timestep_size: float,
    ) -> None:
        if timestep_size <= 0.0:
            raise ConfigurationError("timestep_size must be > 0.0.")
        if not drivers:
            raise ConfigurationError("At least one driver is required.")
        missing = [car_no for car_no in race_pars.participants if car_no not in car_pars]
        if missing:
            raise ConfigurationError(f"Car parameters are missing for cars {missing}.")

        self.race_pars: RacePars = race_pars
        self.track: Track = track
        self.drivers: dict[str, Driver] = dict(drivers)
        self.timestep_size: float = timestep_size

        pars_list = sorted(
            (car_pars[car_no] for car_no in race_pars.participants),
            key=lambda pars: pars.car_no,
        )
        grid = [pars.p_grid for pars in pars_list]
        if len(set(grid)) != len(grid):
            raise ConfigurationError("Grid positions must be unique.")
        self._check_pit_geometry(pars_list)

        self.cars: list[Car] = []
        for pars in pars_list:
            start_driver = pars.strategy[0].driver_initials
            if start_driver not in self.drivers:
                raise ConfigurationError(
                    f"Car {pars.car_no}: driver {start_driver} is not defined."
                )
            sh = StateHandler(
                track,
                track.grid_position(pars.p_grid),
                race_pars.use_drs,
                race_pars.drs_window,
                car_no=pars.car_no,
            )
            car = Car(pars, self.drivers[start_driver], sh)
            self._check_car(car)
            self.cars.append(car)

        no_cars = len(self.cars)
        self.laptimes: np.ndarray = np.full((no_cars, race_pars.tot_no_laps + 1), np.nan)
        self.racetimes: np.ndarray = np.full((no_cars, race_pars.tot_no_laps + 1), np.nan)
        self.laptimes[:, 0] = 0.0
        self.racetimes[:, 0] = 0.0
        self.race_finished: np.ndarray = np.zeros(no_cars, dtype=bool)
        self.finish_times: np.ndarray = np.full(no_cars, np.inf)
        self.cur_laptimes: np.ndarray = np.zeros(no_cars)

        self.flag_state: FlagState = FlagState.GREEN
        self.cur_lap_leader: int = 1
        self.cur_racetime: float = 0.0
        self.tick: int = 0
        self._rank_idxs: list[int] = []
        self._update_ranking()

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _check_pit_geometry(self, pars_list: list[CarPars]) -> None:
        """Check that pit lane boundaries cannot be skipped within a step."""
        track = self.track
        pit_entry = track.pit_zone[0]
        vel_max = max(driver.vel_max for driver in self.drivers.values()) / 3.6
        d_step = vel_max * self.timestep_size

        if lap_distance(pit_entry, 0.0, track.length) <= d_step:
            raise ConfigurationError(
                "Pit entry is too close to the finish line for the chosen time step size."
            )
        for pars in pars_list:
            if not track.in_pit_zone(pars.pit_location):
                raise ConfigurationError(
                    f"Car {pars.car_no}: pit location is not within the pit zone."
                )
            if (pars.pit_location < pit_entry) != track.pits_aft_finishline:
                raise ConfigurationError(
                    f"Car {pars.car_no}: pit location is not on the side of the "
                    "finish line given by pits_aft_finishline."
                )
            if lap_distance(pit_entry, pars.pit_location, track.length) <= d_step:
                raise ConfigurationError(
                    f"Car {pars.car_no}: pit location is too close to the pit entry "
                    "for the chosen time step size."
                )

    def _check_car(self, car: Car) -> None:
        for initials, compounds in car.strategy_drivers():
            driver = self.drivers.get(initials)
            if driver is None:
                raise ConfigurationError(
                    f"Car {car.car_no}: driver {initials} is not defined."
                )
            for compound in sorted(compounds):
                driver.get_degr_pars(compound)
        car.pars.check_fuel(self.race_pars.tot_no_laps)

    # ------------------------------------------------------------------
    # Time step
    # ------------------------------------------------------------------

    def simulate_timestep(self) -> None:
        """Advance the race by one time step.

        Raises:
            SimulationInvariantError: If the race state breaks an invariant.
        """
        try:
            self.tick += 1
            self.cur_racetime = self.tick * self.timestep_size

            self._calc_cur_laptimes()

            for i, car in self._active_cars():
                car.sh.update_race_prog(self.cur_laptimes[i], self.timestep_size)

            if not self.track.pits_aft_finishline:
                self._handle_pit_standstill()

            self._handle_lap_transitions()

            if self.track.pits_aft_finishline:
                self._handle_pit_standstill()

            duelling = [car.sh.duel_active for car in self.cars]
            self._handle_state_transitions()
            self._handle_pit_bookkeeping()
            self._check_overtake_losers(duelling)
            self._update_ranking()
        except SimulationInvariantError as exc:
            if exc.tick is None:
                exc.tick = self.tick
            raise

    def _active_cars(self) -> list[tuple[int, Car]]:
        return [(i, car) for i, car in enumerate(self.cars) if not self.race_finished[i]]

    def _calc_cur_laptimes(self) -> None:
        """Compute the lap time every unfinished car drives in this step."""
        track = self.track
        pars = self.race_pars
        dt = self.timestep_size

        for i, car in self._active_cars():
            sh = car.sh
            if sh.in_standstill:
                t_driving = sh.check_leaves_standstill(dt)
                if t_driving is None:
                    laptime = math.inf
                else:
                    # only the driving part of the step moves the car
                    laptime = track.pit_lane_laptime * dt / t_driving
            elif sh.state is State.PIT_LANE:
                laptime = track.pit_lane_laptime
            else:
                laptime = car.calc_th_laptime(track)
                if sh.race_start_active:
                    laptime += track.t_loss_firstlap / track.turn_1_lap_frac
                if sh.duel_active:
                    laptime += pars.t_duel / track.overtaking_zones_lap_frac
                if sh.drs_active:
                    laptime += track.t_drseffect / track.overtaking_zones_lap_frac
                if car.t_loss_pending > 0.0:
                    t_loss = min(car.t_loss_pending, 0.5 * dt)
                    car.t_loss_pending -= t_loss
                    laptime *= dt / (dt - t_loss)
            self.cur_laptimes[i] = laptime

        self._keep_min_distances()

    def _keep_min_distances(self) -> None:
        """Slow down cars that would get too close to the car in front.

        Pairs are processed in track order, starting with the car that has
        the biggest gap in front of it, so a slowed car passes its new lap
        time on to the car behind within the same step.
        """
        idxs = [i for i, car in self._active_cars() if not car.sh.in_pit]
        if len(idxs) < 2:
            return

        order = self._order_on_track(idxs)
        gaps = [self._delta_lap_frac(front, rear, 0.0) for front, rear in _car_pairs(order)]
        start = (int(np.argmax(gaps)) + 1) % len(order)
        order = order[start:] + order[:start]

        min_t_dist = self.race_pars.min_t_dist
        for front, rear in _car_pairs(order)[:-1]:
            if self.cars[rear].sh.overtaking_allowed:
                continue
            if self._delta_t(front, rear, self.timestep_size) >= min_t_dist:
                continue
            delta_t_cur = self._delta_t(front, rear, 0.0)
            t_gap_add = (min_t_dist - delta_t_cur) / T_RESTORE_MIN_DIST * self.cur_laptimes[rear]
            self.cur_laptimes[rear] = max(
                self.cur_laptimes[rear], self.cur_laptimes[front] + t_gap_add
            )

    def _handle_pit_standstill(self) -> None:
        """Stop cars at their pit box and release them when the stop is over."""
        dt = self.timestep_size
        for i, car in self._active_cars():
            sh = car.sh
            if sh.in_standstill:
                if sh.check_leaves_standstill(dt) is None:
                    sh.decrement_t_standstill(dt)
                else:
                    sh.deact_pit_standstill()
            elif (
                sh.state is State.PIT_LANE
                and not car.pit_stop_done
                and sh.passed_this_step(car.pit_location)
            ):
                t_part_drive = (
                    sh.dist_driven_before(car.pit_location)
                    / self.track.length
                    * self.cur_laptimes[i]
                )
                sh.act_pit_standstill(
                    dt - t_part_drive, car.t_add_pit_standstill(car.pit_inlap)
                )
                sh.place_at(car.pit_location)
                car.pit_stop_done = True

    def _handle_lap_transitions(self) -> None:
        tot_no_laps = self.race_pars.tot_no_laps

        # leader lap first, a lapped car crossing the line after the leader
        # finished must see the chequered flag
        for car in self.cars:
            if car.sh.compl_lap_cur >= self.cur_lap_leader:
                self.cur_lap_leader = car.sh.compl_lap_cur + 1

        if self.cur_lap_leader > tot_no_laps and self.flag_state is not FlagState.CHEQUERED:
            self.flag_state = FlagState.CHEQUERED
            logger.info("Chequered flag after %.3fs.", self.cur_racetime)

        for i, car in self._active_cars():
            sh = car.sh
            if not sh.new_lap:
                continue

            lap = sh.compl_lap_cur
            t_part_old = (1.0 - sh.lap_fracs[0]) * self.cur_laptimes[i]
            t_crossing = self.cur_racetime - self.timestep_size + t_part_old

            if lap <= tot_no_laps:
                self.laptimes[i, lap] = t_crossing - self.racetimes[i, lap - 1]
                self.racetimes[i, lap] = t_crossing

            if self.flag_state is FlagState.CHEQUERED:
                self.race_finished[i] = True
                self.finish_times[i] = t_crossing
                logger.info(
                    "Car %s finished after %d laps in %.3fs.", car.car_no, lap, t_crossing
                )

            car.drive_lap()

            # the stop is applied at the line, wherever the pit box is located
            if sh.in_pit and car.pit_inlap == lap:
                car.perform_pitstop(lap, self.drivers)

    def _handle_state_transitions(self) -> None:
        idxs = [i for i, _ in self._active_cars()]
        if not idxs:
            return

        pars = self.race_pars
        pairs = _car_pairs(self._order_on_track(idxs))
        delta_ts = [self._delta_t(front, rear, 0.0) for front, rear in pairs]
        contest = [self._contestable(front, rear) for front, rear in pairs]
        drs_enabled = pars.use_drs and self.cur_lap_leader >= pars.drs_allowed_lap

        # pair k holds the car in front of car ``rear``, pair k + 1 the one behind
        for k, (_, rear) in enumerate(pairs):
            j = (k + 1) % len(pairs)
            car = self.cars[rear]
            car.sh.check_state_transition(
                delta_t_front=delta_ts[k],
                delta_t_rear=delta_ts[j],
                pit_this_lap=car.pit_this_lap(car.sh.compl_lap_cur + 1),
                contest_front=contest[k],
                contest_rear=contest[j],
                drs_enabled=drs_enabled,
            )

    def _handle_pit_bookkeeping(self) -> None:
        for _, car in self._active_cars():
            if car.sh.in_pit and car.pit_inlap is None:
                car.enter_pit(car.sh.compl_lap_cur + 1)
                logger.debug(
                    "Car %s: pit stop in lap %d, estimated drive time loss %.3fs.",
                    car.car_no,
                    car.pit_inlap,
                    self.track.pit_drive_timeloss,
                )
            elif not car.sh.in_pit and car.pit_inlap is not None:
                car.leave_pit()

    def _check_overtake_losers(self, duelling: list[bool]) -> None:
        """Penalise duelling cars that leave a zone still stuck behind."""
        idxs = [i for i, car in self._active_cars() if not car.sh.in_pit]
        if len(idxs) < 2:
            return

        min_t_dist = self.race_pars.min_t_dist
        for front, rear in _car_pairs(self._order_on_track(idxs)):
            car = self.cars[rear]
            if not duelling[rear] or car.sh.duel_active or car.sh.state is not State.NORMAL:
                continue
            if self._contestable(front, rear) and self._delta_t(front, rear, 0.0) < min_t_dist:
                car.t_loss_pending += self.race_pars.t_overtake_loser
                logger.debug(
                    "Car %s could not pass car %s.", car.car_no, self.cars[front].car_no
                )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _order_on_track(self, idxs: list[int]) -> list[int]:
        """Order cars by descending track position, grid position on ties."""
        s_cur = np.array([self.cars[i].sh.s_tracks[1] for i in idxs])
        p_grid = np.array([self.cars[i].p_grid for i in idxs])
        return [idxs[k] for k in np.lexsort((p_grid, -s_cur))]

    def _delta_lap_frac(self, front: int, rear: int, timestep_size: float) -> float:
        """Spatial distance (lap fraction) between two cars.

        For ``timestep_size > 0.0`` both cars are first projected forward by
        that time using their current lap times.
        """
        lap_frac_front = (
            self.cars[front].sh.lap_fracs[1] + timestep_size / self.cur_laptimes[front]
        ) % 1.0
        lap_frac_rear = (
            self.cars[rear].sh.lap_fracs[1] + timestep_size / self.cur_laptimes[rear]
        ) % 1.0
        if lap_frac_front >= lap_frac_rear:
            return lap_frac_front - lap_frac_rear
        return lap_frac_front + 1.0 - lap_frac_rear

    def _delta_t(self, front: int, rear: int, timestep_size: float) -> float:
        """Time the rear car needs to reach the position of the front car."""
        laptime_rear = self.cur_laptimes[rear]
        if front == rear or not math.isfinite(laptime_rear):
            return math.inf
        return self._delta_lap_frac(front, rear, timestep_size) * laptime_rear

    def _contestable(self, front: int, rear: int) -> bool:
        """Check if two neighbouring cars fight for position.

        Cars in the pit lane and cars a lap apart are not contested.
        """
        if front == rear:
            return False
        sh_front = self.cars[front].sh
        sh_rear = self.cars[rear].sh
        if sh_front.in_pit or sh_rear.in_pit:
            return False
        return 0.0 <= sh_front.race_prog - sh_rear.race_prog < 1.0

    def _rank_prog(self, idx: int) -> float:
        if self.race_finished[idx]:
            return float(self.cars[idx].sh.compl_lap_cur)
        return self.cars[idx].sh.race_prog

    def _update_ranking(self) -> None:
        prog = np.array([self._rank_prog(i) for i in range(len(self.cars))])
        p_grid = np.array([car.p_grid for car in self.cars])
        self._rank_idxs = [int(k) for k in np.lexsort((p_grid, self.finish_times, -prog))]

    def _gap(self, front: int, rear: int) -> float:
        if self.race_finished[front] and self.race_finished[rear]:
            return float(self.finish_times[rear] - self.finish_times[front])
        delta_prog = self._rank_prog(front) - self._rank_prog(rear)
        return delta_prog * self.cars[rear].calc_th_laptime(self.track)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def ranking(self) -> list[int]:
        """Car numbers in rank order."""
        return [self.cars[i].car_no for i in self._rank_idxs]

    @property
    def all_finished(self) -> bool:
        return bool(self.race_finished.all())

    def get_race_state(self) -> RaceState:
        """Return a snapshot of every car, in rank order."""
        leader = self._rank_idxs[0]
        car_states = []
        for rank, i in enumerate(self._rank_idxs, start=1):
            car = self.cars[i]
            finished = bool(self.race_finished[i])
            front = self._rank_idxs[rank - 2] if rank > 1 else i
            car_states.append(
                CarState(
                    car_no=car.car_no,
                    driver_initials=car.driver.initials,
                    rank=rank,
                    lap=car.sh.compl_lap_cur if finished else car.sh.compl_lap_cur + 1,
                    race_prog=self._rank_prog(i),
                    racetime=float(self.finish_times[i]) if finished else self.cur_racetime,
                    state=car.sh.state,
                    compound=car.tireset.compound,
                    tire_age=car.tireset.age_tot,
                    drs_armed=car.sh.drs_armed,
                    drs_active=car.sh.drs_active,
                    finished=finished,
                    gap_to_leader=self._gap(leader, i),
                    gap_to_front=self._gap(front, i),
                )
            )
        return RaceState(
            racetime=self.cur_racetime,
            flag_state=self.flag_state,
            car_states=tuple(car_states),
        )

    def get_race_result(self) -> RaceResult:
        return RaceResult(
            tot_no_laps=self.race_pars.tot_no_laps,
            car_driver_pairs=tuple(
                CarDriverPair(car.car_no, car.driver.initials) for car in self.cars
            ),
            laptimes=self.laptimes.copy(),
            racetimes=self.racetimes.copy(),
        )
