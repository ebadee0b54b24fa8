"""Per-car state machine and race progress for the time-discrete simulator.

States:

* ``RACESTART`` -- active once from the grid until turn 1.  Overtaking is
  allowed and minimum distances need not be kept.
* ``NORMAL`` -- between two overtaking zones.
* ``OVERTAKING_ZONE`` -- inside an overtaking zone.
* ``PIT_LANE`` -- driving through the pit lane.
* ``PIT_STANDSTILL`` -- stationary in the pit box.  Entered and left only by
  the race, which knows the pit stop timing.

Transitions are position-triggered.  They are evaluated once per time step,
after the race progress was updated, by walking through the distance covered
in the step and handling every crossed boundary in the order it was passed.
"""

from __future__ import annotations

import logging
from enum import Enum

from f1_racesim.core.errors import SimulationInvariantError
from f1_racesim.core.track import Track

logger = logging.getLogger(__name__)


class State(str, Enum):
    RACESTART = "racestart"
    NORMAL = "normal"
    OVERTAKING_ZONE = "overtaking_zone"
    PIT_LANE = "pit_lane"
    PIT_STANDSTILL = "pit_standstill"


# Boundary events, listed in the order they are handled at equal positions.
_EV_TURN_1 = "turn_1"
_EV_DRS_POINT = "drs_point"
_EV_PIT_ENTRY = "pit_entry"
_EV_ZONE_START = "zone_start"
_EV_ZONE_END = "zone_end"
_EV_PIT_EXIT = "pit_exit"

_EVENT_PRIORITY: dict[str, int] = {
    _EV_TURN_1: 0,
    _EV_DRS_POINT: 1,
    _EV_PIT_ENTRY: 2,
    _EV_ZONE_START: 3,
    _EV_ZONE_END: 4,
    _EV_PIT_EXIT: 5,
}


class StateHandler:
    """State machine and race progress of a single car.

    Attributes:
        state: Current state.
        act_zone_idx: Overtaking zone that comes next (``NORMAL``) or that
            the car is in (``OVERTAKING_ZONE``).
        race_start_active: True until the car passes turn 1.
        overtaking_allowed: Minimum distance to the car in front is not
            enforced while True.
        drs_armed: Car was within the DRS window at the last measurement
            point and waits for the next zone.
        drs_active: DRS is open (only inside overtaking zones).
        duel_active: Car fights for position in the current zone.
        t_standstill_left: Remaining standstill time of the pit stop (s).
    """

    def __init__(
        self,
        track: Track,
        s_track_start: float,
        use_drs: bool,
        drs_window: float,
        car_no: int | None = None,
    ) -> None:
        if not -track.length < s_track_start < track.length:
            raise ValueError(
                f"Start position {s_track_start:.3f}m is not within (-length, length)."
            )
        self._track: Track = track
        self._use_drs: bool = use_drs
        self._drs_window: float = drs_window
        self.car_no: int | None = car_no

        # race progress (s coordinate can be negative at the race start)
        self.s_track_prev: float = s_track_start
        self.s_track_cur: float = s_track_start
        self.compl_lap_prev: int = 0
        self.compl_lap_cur: int = 0

        self.state: State = State.RACESTART
        self.act_zone_idx: int = 0
        self.t_standstill_left: float = 0.0
        self.race_start_active: bool = True
        self.overtaking_allowed: bool = True
        self.drs_armed: bool = False
        self.drs_active: bool = False
        self.duel_active: bool = False

    # ------------------------------------------------------------------
    # Race progress
    # ------------------------------------------------------------------

    @property
    def in_pit(self) -> bool:
        return self.state in (State.PIT_LANE, State.PIT_STANDSTILL)

    @property
    def in_standstill(self) -> bool:
        return self.state is State.PIT_STANDSTILL

    @property
    def new_lap(self) -> bool:
        """True if the car crossed the finish line in the current step.

        Moving from the negative to the positive side at the race start does
        not count as a new lap.
        """
        return self.compl_lap_cur > self.compl_lap_prev

    @property
    def race_prog(self) -> float:
        """Race progress in laps (can be negative at the race start)."""
        return self.compl_lap_cur + self.s_track_cur / self._track.length

    @property
    def s_tracks(self) -> tuple[float, float]:
        """Previous and current s coordinate, mapped into ``[0, length)``."""
        length = self._track.length
        return self.s_track_prev % length, self.s_track_cur % length

    @property
    def lap_fracs(self) -> tuple[float, float]:
        """Previous and current lap fraction, always in ``[0, 1)``."""
        s_prev, s_cur = self.s_tracks
        return s_prev / self._track.length, s_cur / self._track.length

    def _s_cur_unwrapped(self) -> float:
        if self.new_lap:
            return self.s_track_cur + self._track.length
        return self.s_track_cur

    def _crossing(self, s_track: float, s_from: float) -> float | None:
        """Unwrapped position at which ``s_track`` was passed after ``s_from``.

        Only the distance covered in the current step is considered.
        """
        s_cur = self._s_cur_unwrapped()
        for s_cand in (s_track, s_track + self._track.length):
            if s_from < s_cand <= s_cur:
                return s_cand
        return None

    def passed_this_step(self, s_track: float) -> bool:
        """Check if the car passed ``s_track`` within the current step."""
        return self._crossing(s_track, self.s_track_prev) is not None

    def dist_driven_before(self, s_track: float) -> float:
        """Distance driven in the current step before passing ``s_track``."""
        s_cand = self._crossing(s_track, self.s_track_prev)
        if s_cand is None:
            raise SimulationInvariantError(
                f"Position {s_track:.3f}m was not passed in this step.", self.car_no
            )
        return s_cand - self.s_track_prev

    def update_race_prog(self, cur_laptime: float, timestep_size: float) -> None:
        """Advance the race progress according to the current lap time."""
        self.compl_lap_prev = self.compl_lap_cur
        self.s_track_prev = self.s_track_cur

        # an infinite lap time (standstill) yields no progress
        self.s_track_cur += timestep_size / cur_laptime * self._track.length

        if self.s_track_cur >= self._track.length:
            self.compl_lap_cur += 1
            self.s_track_cur -= self._track.length

    def place_at(self, s_track: float) -> None:
        """Put the car on a position passed within the current step.

        Used to stop the car exactly at its pit box.  If the position lies in
        front of a finish line crossed in this step, the lap transition is
        reverted.
        """
        if not 0.0 <= s_track < self._track.length:
            raise SimulationInvariantError(
                f"Position must be in [0.0, track_length), but is {s_track:.3f}m.",
                self.car_no,
            )
        s_cand = self._crossing(s_track, self.s_track_prev)
        if s_cand is None:
            raise SimulationInvariantError(
                f"Cannot place car at {s_track:.3f}m, it was not passed in this step.",
                self.car_no,
            )
        if s_cand < self._track.length:
            self.compl_lap_cur = self.compl_lap_prev
        self.s_track_cur = s_track

    # ------------------------------------------------------------------
    # Pit standstill (driven by the race)
    # ------------------------------------------------------------------

    def act_pit_standstill(self, t_standstill: float, t_standstill_target: float) -> None:
        """Enter the standstill after standing ``t_standstill`` in this step.

        If the car already stood longer than the target, the remaining time
        is negative and the overshoot is driven in the next step.
        """
        if self.state is not State.PIT_LANE:
            raise SimulationInvariantError(
                f"Tried to enter pit standstill from state {self.state.value}.",
                self.car_no,
            )
        self.state = State.PIT_STANDSTILL
        self.t_standstill_left = t_standstill_target - t_standstill

    def check_leaves_standstill(self, timestep_size: float) -> float | None:
        """Return the driving time if the car leaves standstill in this step.

        The driving time exceeds ``timestep_size`` if the standstill was
        already over within the step the car arrived at its pit box.
        """
        if self.state is not State.PIT_STANDSTILL:
            raise SimulationInvariantError(
                "Checked standstill release without being in standstill.", self.car_no
            )
        if self.t_standstill_left >= timestep_size:
            return None
        return timestep_size - self.t_standstill_left

    def decrement_t_standstill(self, timestep_size: float) -> None:
        if self.state is not State.PIT_STANDSTILL:
            raise SimulationInvariantError(
                "Decremented standstill time without being in standstill.", self.car_no
            )
        self.t_standstill_left -= timestep_size
        if self.t_standstill_left < 0.0:
            raise SimulationInvariantError(
                "Standstill countdown dropped below zero.", self.car_no
            )

    def deact_pit_standstill(self) -> None:
        """Release the car from standstill back into the pit lane."""
        if self.state is not State.PIT_STANDSTILL:
            raise SimulationInvariantError(
                "Tried to leave pit standstill without being in standstill.", self.car_no
            )
        self.state = State.PIT_LANE
        self.t_standstill_left = 0.0

    # ------------------------------------------------------------------
    # State transitions
    # ------------------------------------------------------------------

    def _pending_events(self, pit_this_lap: bool) -> list[tuple[str, float]]:
        track = self._track
        if self.state is State.RACESTART:
            return [(_EV_TURN_1, track.turn_1)]
        if self.state is State.NORMAL:
            events = [
                (_EV_DRS_POINT, track.drs_measurement_points[self.act_zone_idx]),
                (_EV_ZONE_START, track.overtaking_zones[self.act_zone_idx][0]),
            ]
            if pit_this_lap:
                events.append((_EV_PIT_ENTRY, track.pit_zone[0]))
            return events
        if self.state is State.OVERTAKING_ZONE:
            events = [(_EV_ZONE_END, track.overtaking_zones[self.act_zone_idx][1])]
            if pit_this_lap:
                events.append((_EV_PIT_ENTRY, track.pit_zone[0]))
            return events
        if self.state is State.PIT_LANE:
            return [(_EV_PIT_EXIT, track.pit_zone[1])]
        return []

    def _next_event(
        self,
        s_from: float,
        pit_this_lap: bool,
        handled: set[tuple[str, float]],
    ) -> tuple[str, float] | None:
        """Return the first boundary passed at or after ``s_from``."""
        candidates: list[tuple[float, int, str]] = []
        for event, s_track in self._pending_events(pit_this_lap):
            s_cand = self._crossing(s_track, self.s_track_prev)
            if s_cand is None or s_cand < s_from or (event, s_cand) in handled:
                continue
            candidates.append((s_cand, _EVENT_PRIORITY[event], event))
        if not candidates:
            return None
        s_cand, _, event = min(candidates)
        return event, s_cand

    def _set_state_by_position(self, s_track: float) -> None:
        """Set state and zone from a position (after turn 1 or the pit exit)."""
        zone_idx, inside = self._track.locate_zone(s_track % self._track.length)
        self.act_zone_idx = zone_idx
        self.state = State.OVERTAKING_ZONE if inside else State.NORMAL
        self.overtaking_allowed = inside

    def check_state_transition(
        self,
        delta_t_front: float,
        delta_t_rear: float,
        pit_this_lap: bool,
        contest_front: bool,
        contest_rear: bool,
        drs_enabled: bool,
    ) -> None:
        """Apply all state transitions caused by the current step.

        Args:
            delta_t_front: Temporal distance to the car in front (s).
            delta_t_rear: Temporal distance to the car behind (s).
            pit_this_lap: True if the car's strategy pits in the current lap.
            contest_front: True if the car in front can be duelled, i.e. it
                is not being lapped and not in the pit lane.
            contest_rear: Same for the car behind.
            drs_enabled: True if DRS may be opened (allowed lap reached).
        """
        s_from = self.s_track_prev
        handled: set[tuple[str, float]] = set()
        # every boundary can be passed at most twice in one step
        max_events = 2 * len(_EVENT_PRIORITY) * (len(self._track.overtaking_zones) + 1)

        for _ in range(max_events):
            nxt = self._next_event(s_from, pit_this_lap, handled)
            if nxt is None:
                return
            event, s_cand = nxt
            handled.add(nxt)
            s_from = s_cand

            if event == _EV_TURN_1:
                self.race_start_active = False
                self._set_state_by_position(s_cand)

            elif event == _EV_DRS_POINT:
                if delta_t_front <= self._drs_window:
                    self.drs_armed = True

            elif event == _EV_PIT_ENTRY:
                self.state = State.PIT_LANE
                self.overtaking_allowed = False
                self.drs_armed = False
                self.drs_active = False
                self.duel_active = False
                logger.debug("Car %s enters the pit lane.", self.car_no)

            elif event == _EV_ZONE_START:
                self.state = State.OVERTAKING_ZONE
                self.overtaking_allowed = True
                if self._use_drs and drs_enabled and self.drs_armed:
                    self.drs_active = True
                # lapped cars and cars in the pit lane are not duelled
                if (delta_t_front <= self._drs_window and contest_front) or (
                    delta_t_rear <= self._drs_window and contest_rear
                ):
                    self.duel_active = True
                self.drs_armed = False

            elif event == _EV_ZONE_END:
                self.state = State.NORMAL
                self.act_zone_idx = (self.act_zone_idx + 1) % len(
                    self._track.overtaking_zones
                )
                self.overtaking_allowed = False
                self.drs_active = False
                self.duel_active = False

            elif event == _EV_PIT_EXIT:
                self._set_state_by_position(s_cand)
                logger.debug("Car %s leaves the pit lane.", self.car_no)

        raise SimulationInvariantError(
            "State transitions did not settle within one step.", self.car_no
        )
