"""Car model for the time-discrete race simulator.

A car aggregates its parameters, the active driver, the mounted tireset and
the state handler tracking its race progress.  Pit stops follow a strategy:
an ordered list of entries keyed by in-lap.  The entry with in-lap 0 holds
the start configuration.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass

from f1_racesim.core.driver import Driver
from f1_racesim.core.errors import ConfigurationError, SimulationInvariantError
from f1_racesim.core.state_handler import StateHandler
from f1_racesim.core.tireset import Tireset
from f1_racesim.core.track import Track

logger = logging.getLogger(__name__)

_FUEL_TOL: float = 1e-9  # kg

# ---------------------------------------------------------------------------
# Parameters
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StrategyEntry:
    """A scheduled pit stop action.

    Attributes:
        inlap: In-lap of the pit stop (0 for the start configuration).
        tire_start_age: Age of the tires when they are fitted (laps).
        compound: Compound fitted in the stop (``None`` for no tire change).
        refuel_mass: Fuel mass added in the stop (kg).
        driver_initials: Driver for the next stint (``None`` for no change).
    """

    inlap: int
    tire_start_age: int = 0
    compound: str | None = None
    refuel_mass: float = 0.0
    driver_initials: str | None = None

    def __post_init__(self) -> None:
        """Validate strategy entry parameters."""
        if self.inlap < 0:
            raise ConfigurationError("inlap must be >= 0.")
        if self.tire_start_age < 0:
            raise ConfigurationError("tire_start_age must be >= 0.")
        if self.refuel_mass < 0.0:
            raise ConfigurationError("refuel_mass must be >= 0.0.")
        # empty strings mean "no change"
        if self.compound == "":
            object.__setattr__(self, "compound", None)
        if self.driver_initials == "":
            object.__setattr__(self, "driver_initials", None)


@dataclass(frozen=True)
class CarPars:
    """Immutable car parameters.

    Attributes:
        car_no: Car number, e.g. 77.
        team: Team operating the car.
        manufacturer: Manufacturer of the car.
        color: Hex code of the team colour.
        t_car: Time loss per lap due to car abilities (s).
        m_fuel: Fuel mass at the race start (kg).
        b_fuel_per_lap: Fuel consumption per lap (kg/lap).
        pit_location: Location of the pit box (m, within the pit lane).
        strategy: Strategy entries ordered by in-lap.
        p_grid: Grid position at the race start.
        t_pit_tirechange: Standstill time to change tires (s).
        t_pit_refuel_per_kg: Standstill time per kg of fuel added (s/kg).
        t_pit_driverchange: Standstill time to change drivers (s).
        m_fuel_max: Fuel capacity (kg).  Defaults to the start fuel mass.
    """

    car_no: int
    team: str
    manufacturer: str
    color: str
    t_car: float
    m_fuel: float
    b_fuel_per_lap: float
    pit_location: float
    strategy: tuple[StrategyEntry, ...]
    p_grid: int
    t_pit_tirechange: float | None = None
    t_pit_refuel_per_kg: float | None = None
    t_pit_driverchange: float | None = None
    m_fuel_max: float | None = None

    def __post_init__(self) -> None:
        """Validate car parameters and the strategy."""
        object.__setattr__(self, "strategy", tuple(self.strategy))
        if self.m_fuel_max is None:
            object.__setattr__(self, "m_fuel_max", self.m_fuel)

        if self.p_grid < 1:
            raise ConfigurationError(f"Car {self.car_no}: p_grid must be >= 1.")
        if self.m_fuel < 0.0 or self.b_fuel_per_lap < 0.0:
            raise ConfigurationError(
                f"Car {self.car_no}: fuel mass and consumption must be >= 0.0."
            )
        if self.m_fuel > self.m_fuel_max:
            raise ConfigurationError(
                f"Car {self.car_no}: start fuel mass exceeds the fuel capacity."
            )
        for name in ("t_pit_tirechange", "t_pit_refuel_per_kg", "t_pit_driverchange"):
            value = getattr(self, name)
            if value is not None and value < 0.0:
                raise ConfigurationError(f"Car {self.car_no}: {name} must be >= 0.0.")

        self._check_strategy()

    def _check_strategy(self) -> None:
        strategy = self.strategy
        if not strategy:
            raise ConfigurationError(
                f"Car {self.car_no}: there must be at least one strategy entry "
                "that contains the start configuration."
            )
        first = strategy[0]
        if (
            first.inlap != 0
            or first.compound is None
            or first.driver_initials is None
            or first.refuel_mass != 0.0
        ):
            raise ConfigurationError(
                f"Car {self.car_no}: the first strategy entry does not fulfill the "
                "requirements (inlap 0, start compound and driver defined, "
                "refuel mass 0.0)."
            )

        for i in range(1, len(strategy)):
            entry = strategy[i]
            if entry.inlap <= strategy[i - 1].inlap:
                raise ConfigurationError(
                    f"Car {self.car_no}: the inlap of strategy entry {i + 1} is less "
                    "or equal to that of the previous entry."
                )
            if entry.compound is not None and self.t_pit_tirechange is None:
                raise ConfigurationError(
                    f"Car {self.car_no}: tire change at inlap {entry.inlap} but "
                    "t_pit_tirechange is not set."
                )
            if entry.refuel_mass > 0.0 and self.t_pit_refuel_per_kg is None:
                raise ConfigurationError(
                    f"Car {self.car_no}: refueling at inlap {entry.inlap} but "
                    "t_pit_refuel_per_kg is not set."
                )
            if entry.driver_initials is not None and self.t_pit_driverchange is None:
                raise ConfigurationError(
                    f"Car {self.car_no}: driver change at inlap {entry.inlap} but "
                    "t_pit_driverchange is not set."
                )

    def check_fuel(self, tot_no_laps: int) -> None:
        """Check that the fuel never runs out or exceeds the capacity.

        Raises:
            ConfigurationError: If the strategy cannot be driven as planned.
        """
        m_fuel = self.m_fuel
        lap_done = 0
        for entry in self.strategy[1:] + (StrategyEntry(inlap=tot_no_laps),):
            laps = min(entry.inlap, tot_no_laps) - lap_done
            m_fuel -= laps * self.b_fuel_per_lap
            lap_done += laps
            if m_fuel < -_FUEL_TOL:
                raise ConfigurationError(
                    f"Car {self.car_no}: fuel runs out before the end of lap "
                    f"{min(entry.inlap, tot_no_laps)}."
                )
            if entry.inlap > tot_no_laps:
                break
            m_fuel += entry.refuel_mass
            if m_fuel > self.m_fuel_max + _FUEL_TOL:
                raise ConfigurationError(
                    f"Car {self.car_no}: refueling at inlap {entry.inlap} exceeds the "
                    f"fuel capacity of {self.m_fuel_max:.1f}kg."
                )


# ---------------------------------------------------------------------------
# Car
# ---------------------------------------------------------------------------


class Car:
    """Mutable race state of one car.

    Attributes:
        pars: Static car parameters.
        driver: Active driver.
        tireset: Mounted tireset.
        sh: State handler holding the race progress.
        m_fuel: Current fuel mass (kg).
        pit_inlap: In-lap of the pit stop in progress (``None`` outside the
            pit lane).
        pit_stop_done: True once the car stood in its box in the current
            pit lane visit.
        t_loss_pending: Time loss (s) still to be applied after losing a duel.
    """

    def __init__(self, pars: CarPars, driver: Driver, sh: StateHandler) -> None:
        start_entry = pars.strategy[0]
        if driver.initials != start_entry.driver_initials:
            raise ConfigurationError(
                f"Car {pars.car_no}: start driver must be {start_entry.driver_initials}."
            )
        self.pars: CarPars = pars
        self.driver: Driver = driver
        self.sh: StateHandler = sh
        self.tireset: Tireset = Tireset(start_entry.compound, start_entry.tire_start_age)
        self.m_fuel: float = pars.m_fuel
        self.pit_inlap: int | None = None
        self.pit_stop_done: bool = False
        self.t_loss_pending: float = 0.0
        self._applied_inlaps: set[int] = {0}

    @property
    def car_no(self) -> int:
        return self.pars.car_no

    @property
    def p_grid(self) -> int:
        return self.pars.p_grid

    @property
    def pit_location(self) -> float:
        return self.pars.pit_location

    def calc_basic_timeloss(self, s_mass: float) -> float:
        """Time loss due to car and driver abilities, tires and fuel mass."""
        degr_pars = self.driver.get_degr_pars(self.tireset.compound)
        return (
            self.pars.t_car
            + self.driver.t_offset
            + self.tireset.t_add_tireset(degr_pars)
            + self.m_fuel * s_mass
        )

    def calc_th_laptime(self, track: Track) -> float:
        """Lap time on a free track, without interactions (s)."""
        return track.t_base + self.calc_basic_timeloss(track.s_mass)

    def drive_lap(self) -> None:
        """Age the tires by a lap and burn the fuel of the lap."""
        self.m_fuel -= self.pars.b_fuel_per_lap
        if self.m_fuel < -_FUEL_TOL:
            raise SimulationInvariantError(
                f"Remaining fuel mass is negative ({self.m_fuel:.3f}kg).", self.car_no
            )
        # floating point residue of an exactly planned fuel load
        self.m_fuel = max(self.m_fuel, 0.0)
        self.tireset.drive_lap()

    # -- strategy ---------------------------------------------------------------

    def pit_this_lap(self, cur_lap: int) -> bool:
        """Check if the strategy schedules a pit stop in the given lap."""
        return any(entry.inlap == cur_lap for entry in self.pars.strategy[1:])

    def get_strategy_entry(self, inlap: int) -> StrategyEntry:
        for entry in self.pars.strategy:
            if entry.inlap == inlap:
                return entry
        raise SimulationInvariantError(
            f"No strategy entry belongs to inlap {inlap}.", self.car_no
        )

    def enter_pit(self, inlap: int) -> None:
        self.pit_inlap = inlap
        self.pit_stop_done = False

    def leave_pit(self) -> None:
        if self.pit_inlap is not None and self.pit_inlap not in self._applied_inlaps:
            raise SimulationInvariantError(
                f"Left the pit lane without performing the stop of inlap {self.pit_inlap}.",
                self.car_no,
            )
        self.pit_inlap = None
        self.pit_stop_done = False

    def t_add_pit_standstill(self, inlap: int) -> float:
        """Standstill time of the pit stop belonging to the in-lap (s).

        The times of all actions performed in the stop are added up.
        """
        entry = self.get_strategy_entry(inlap)
        t_standstill = 0.0
        if entry.compound is not None:
            t_standstill += self.pars.t_pit_tirechange
        if entry.refuel_mass > 0.0:
            t_standstill += entry.refuel_mass * self.pars.t_pit_refuel_per_kg
        if entry.driver_initials is not None:
            t_standstill += self.pars.t_pit_driverchange
        return t_standstill

    def perform_pitstop(self, inlap: int, drivers: Mapping[str, Driver]) -> None:
        """Change tires, refuel and change drivers as scheduled for the in-lap."""
        if inlap in self._applied_inlaps:
            raise SimulationInvariantError(
                f"Strategy entry of inlap {inlap} was already applied.", self.car_no
            )
        entry = self.get_strategy_entry(inlap)

        if entry.compound is not None:
            self.tireset = Tireset(entry.compound, entry.tire_start_age)

        if entry.refuel_mass > 0.0:
            self.m_fuel += entry.refuel_mass
            if self.m_fuel > self.pars.m_fuel_max + _FUEL_TOL:
                raise SimulationInvariantError(
                    f"Fuel mass {self.m_fuel:.3f}kg exceeds the capacity.", self.car_no
                )

        if entry.driver_initials is not None:
            self.driver = drivers[entry.driver_initials]

        self._applied_inlaps.add(inlap)
        logger.debug(
            "Car %s: pit stop of inlap %d performed (compound %s, driver %s).",
            self.car_no,
            inlap,
            self.tireset.compound,
            self.driver.initials,
        )

    def strategy_drivers(self) -> list[tuple[str, set[str]]]:
        """Compounds each driver of the strategy may run, for validation.

        Returns:
            Pairs of driver initials and the compounds mounted while that
            driver is in the car.
        """
        result: dict[str, set[str]] = {}
        driver = self.pars.strategy[0].driver_initials
        compound = self.pars.strategy[0].compound
        result.setdefault(driver, set()).add(compound)
        for entry in self.pars.strategy[1:]:
            if entry.compound is not None:
                compound = entry.compound
            if entry.driver_initials is not None:
                driver = entry.driver_initials
            result.setdefault(driver, set()).add(compound)
        return list(result.items())
