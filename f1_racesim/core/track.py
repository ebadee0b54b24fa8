"""Track model for the time-discrete race simulator.

All positions use one coordinate: the distance ``s`` (m) along the lap,
measured from the finish line, in ``[0, length)``.  Intervals such as the pit
zone or an overtaking zone may wrap across the finish line, in which case
their start is greater than their end.
"""

from __future__ import annotations

from dataclasses import dataclass

from f1_racesim.core.errors import ConfigurationError


def lap_distance(s_start: float, s_end: float, length: float) -> float:
    """Distance driven from ``s_start`` to ``s_end``, wrapping at the line."""
    if s_start <= s_end:
        return s_end - s_start
    return length - s_start + s_end


def in_interval(s: float, s_start: float, s_end: float) -> bool:
    """Check if ``s`` lies in ``[s_start, s_end)``, wrapping at the line."""
    if s_start <= s_end:
        return s_start <= s < s_end
    return s >= s_start or s < s_end


@dataclass(frozen=True)
class Track:
    """Immutable representation of a race track.

    Attributes:
        name: Track name.
        t_q: Best qualifying lap time (s).
        t_gap_racepace: Gap between ``t_q`` and the best race lap (s).
        s_mass: Lap time mass sensitivity (s/kg).
        t_drseffect: Lap time change using DRS in all zones (s, <= 0).
        pit_speedlimit: Speed limit in the pit lane (m/s).
        t_loss_firstlap: Lap time loss due to the standing start (s).
        d_per_gridpos: Distance between two grid positions (m, <= 0).
        d_first_gridpos: Distance of the first grid position to the finish
            line (m, either sign).
        length: Track length (m).
        real_length_pit_zone: Real length of the pit lane (m).
        s12: Boundary between sectors 1 and 2 (m).
        s23: Boundary between sectors 2 and 3 (m).
        drs_measurement_points: One DRS measurement point per overtaking
            zone, located in front of that zone (m).
        turn_1: Distance between the finish line and turn 1 (m).
        pit_zone: Pit lane entry and exit (m).
        pits_aft_finishline: True if the pit boxes are located after the
            finish line.
        overtaking_zones: ``(start, end)`` of every overtaking zone, ordered
            by start; only the last one may wrap across the finish line.
    """

    name: str
    t_q: float
    t_gap_racepace: float
    s_mass: float
    t_drseffect: float
    pit_speedlimit: float
    t_loss_firstlap: float
    d_per_gridpos: float
    d_first_gridpos: float
    length: float
    real_length_pit_zone: float
    s12: float
    s23: float
    drs_measurement_points: tuple[float, ...]
    turn_1: float
    pit_zone: tuple[float, float]
    pits_aft_finishline: bool
    overtaking_zones: tuple[tuple[float, float], ...]

    def __post_init__(self) -> None:
        """Normalise sequences to tuples and validate the geometry."""
        object.__setattr__(
            self, "drs_measurement_points", tuple(float(s) for s in self.drs_measurement_points)
        )
        object.__setattr__(self, "pit_zone", tuple(float(s) for s in self.pit_zone))
        object.__setattr__(
            self,
            "overtaking_zones",
            tuple((float(zone[0]), float(zone[1])) for zone in self.overtaking_zones),
        )

        if not self.name:
            raise ConfigurationError("Track name must not be empty.")
        if self.length <= 0.0:
            raise ConfigurationError("length must be > 0.0.")
        if self.t_q <= 0.0:
            raise ConfigurationError("t_q must be > 0.0.")
        if self.s_mass < 0.0:
            raise ConfigurationError("s_mass must be >= 0.0.")
        if self.t_drseffect > 0.0:
            raise ConfigurationError("t_drseffect must be <= 0.0.")
        if self.pit_speedlimit <= 0.0:
            raise ConfigurationError("pit_speedlimit must be > 0.0.")
        if self.real_length_pit_zone <= 0.0:
            raise ConfigurationError("real_length_pit_zone must be > 0.0.")
        if self.d_per_gridpos > 0.0:
            raise ConfigurationError("d_per_gridpos must be <= 0.0.")
        if not 0.0 < self.s12 < self.s23 < self.length:
            raise ConfigurationError(
                "Sector boundaries must fulfill 0.0 < s12 < s23 < length."
            )
        if not 0.0 < self.turn_1 < self.length:
            raise ConfigurationError("turn_1 is not within (0.0, length).")
        if self.turn_1 <= self.d_first_gridpos:
            raise ConfigurationError("turn_1 must be located after the first grid position.")

        self._check_in_track("Pit zone entry or exit", self.pit_zone)
        if len(self.pit_zone) != 2 or self.pit_zone[0] == self.pit_zone[1]:
            raise ConfigurationError("Pit zone must consist of two distinct positions.")
        # pit stops are applied when crossing the line inside the pit lane
        if self.pit_zone[0] < self.pit_zone[1]:
            raise ConfigurationError("Pit zone must cross the finish line.")

        self._check_overtaking_zones()

        if len(self.drs_measurement_points) != len(self.overtaking_zones):
            raise ConfigurationError(
                "There must be exactly one DRS measurement point per overtaking zone."
            )
        self._check_in_track("A DRS measurement point", self.drs_measurement_points)
        for i, s_drs in enumerate(self.drs_measurement_points):
            prev_end = self.overtaking_zones[i - 1][1]
            if not in_interval(s_drs, prev_end, self.overtaking_zones[i][0]):
                raise ConfigurationError(
                    f"DRS measurement point {s_drs:.1f}m is not located between "
                    f"overtaking zone {i} and the zone in front of it."
                )

    def _check_in_track(self, what: str, positions: tuple[float, ...]) -> None:
        if any(s < 0.0 or s >= self.length for s in positions):
            raise ConfigurationError(
                f"{what} is not within the required range [0.0, length)."
            )

    def _check_overtaking_zones(self) -> None:
        zones = self.overtaking_zones
        if not zones:
            raise ConfigurationError("At least one overtaking zone is required.")
        for zone in zones:
            self._check_in_track("An overtaking zone entry or exit", zone)
            if zone[0] == zone[1]:
                raise ConfigurationError("Overtaking zone entry and exit must differ.")
        for i in range(len(zones) - 1):
            if zones[i][0] > zones[i][1]:
                raise ConfigurationError(
                    "Only the last overtaking zone may cross the finish line."
                )
            if zones[i + 1][0] < zones[i][1]:
                raise ConfigurationError(
                    f"Overtaking zones {i} and {i + 1} overlap or are not ordered."
                )
        # the last zone must end before the first one starts (next lap)
        if len(zones) > 1 and zones[-1][0] > zones[-1][1] and zones[-1][1] > zones[0][0]:
            raise ConfigurationError("The last overtaking zone overlaps the first one.")

    # -- derived quantities ---------------------------------------------------

    @property
    def t_base(self) -> float:
        """Reference race lap time (s)."""
        return self.t_q + self.t_gap_racepace

    @property
    def track_length_pit_zone(self) -> float:
        """Track distance covered when driving through the pit lane (m)."""
        return lap_distance(self.pit_zone[0], self.pit_zone[1], self.length)

    @property
    def overtaking_zones_lap_frac(self) -> float:
        return (
            sum(lap_distance(z[0], z[1], self.length) for z in self.overtaking_zones)
            / self.length
        )

    @property
    def turn_1_lap_frac(self) -> float:
        """Lap fraction from the first grid position to turn 1."""
        return (self.turn_1 - self.d_first_gridpos) / self.length

    @property
    def pit_lane_laptime(self) -> float:
        """Virtual lap time while driving through the pit lane (s).

        The real pit lane can be longer or shorter than its projection on the
        track coordinate, which is compensated by scaling the lap time.
        """
        return (
            self.length
            / self.pit_speedlimit
            * self.real_length_pit_zone
            / self.track_length_pit_zone
        )

    @property
    def pit_drive_timeloss(self) -> float:
        """Approximate time loss driving through the pit lane, w/o standstill."""
        pit_zone_lap_frac = self.track_length_pit_zone / self.length
        return (
            self.real_length_pit_zone / self.pit_speedlimit
            - self.t_base * 1.04 * pit_zone_lap_frac
        )

    def grid_position(self, p_grid: int) -> float:
        """Start coordinate for a grid position (negative behind the line)."""
        return self.d_first_gridpos + (p_grid - 1) * self.d_per_gridpos

    def in_pit_zone(self, s: float) -> bool:
        return in_interval(s, self.pit_zone[0], self.pit_zone[1])

    def locate_zone(self, s: float) -> tuple[int, bool]:
        """Return the overtaking zone relevant at position ``s``.

        Returns:
            ``(zone_idx, inside)``: the index of the zone containing ``s`` and
            True, or the index of the next zone ahead and False.
        """
        for i, (s_start, s_end) in enumerate(self.overtaking_zones):
            if in_interval(s, s_start, s_end):
                return i, True
        for i, (s_start, _) in enumerate(self.overtaking_zones):
            if s < s_start:
                return i, False
        return 0, False
