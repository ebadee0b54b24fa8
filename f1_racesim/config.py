"""Parameter file loader and simulation options for the race simulator.

A parameter file holds four sections:

* ``race_pars`` -- race-wide parameters (:class:`RacePars`);
* ``track_pars`` -- track geometry and lap time base (:class:`Track`);
* ``driver_pars_all`` -- drivers keyed by initials;
* ``car_pars_all`` -- cars keyed by car number.

Files are read with ``yaml.safe_load``; JSON parameter files are valid YAML
and load the same way.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from f1_racesim.core.car import CarPars, StrategyEntry
from f1_racesim.core.driver import Driver
from f1_racesim.core.errors import ConfigurationError
from f1_racesim.core.race import RacePars
from f1_racesim.core.tireset import DegradationPars
from f1_racesim.core.track import Track

DATA_DIR: Path = Path(__file__).resolve().parent.parent / "data"
SIM_PARS_DIR: Path = DATA_DIR / "sim_pars"
DEFAULT_PARFILE: Path = SIM_PARS_DIR / "pars_Shanghai_2019.yaml"

_SECTIONS: tuple[str, ...] = ("race_pars", "track_pars", "driver_pars_all", "car_pars_all")

_RACE_FIELDS: tuple[str, ...] = (
    "season",
    "tot_no_laps",
    "drs_allowed_lap",
    "min_t_dist",
    "t_duel",
    "t_overtake_loser",
    "drs_window",
    "use_drs",
    "participants",
)

_TRACK_NUMERIC_FIELDS: tuple[str, ...] = (
    "t_q",
    "t_gap_racepace",
    "s_mass",
    "t_drseffect",
    "pit_speedlimit",
    "t_loss_firstlap",
    "d_per_gridpos",
    "d_first_gridpos",
    "length",
    "real_length_pit_zone",
    "s12",
    "s23",
    "turn_1",
)

_TRACK_FIELDS: tuple[str, ...] = (
    "name",
    *_TRACK_NUMERIC_FIELDS,
    "drs_measurement_points",
    "pit_zone",
    "pits_aft_finishline",
    "overtaking_zones",
)

_DRIVER_FIELDS: tuple[str, ...] = (
    "name",
    "t_driver",
    "t_teamorder",
    "vel_max",
    "degr_pars_all",
)

_DEGR_FIELDS: tuple[str, ...] = ("degr_model", "t_add_coldtires", "k_0")

_DEGR_COEFFS: tuple[str, ...] = (
    "k_1_lin",
    "k_1_quad",
    "k_2_quad",
    "k_1_cub",
    "k_2_cub",
    "k_3_cub",
    "k_1_ln",
    "k_2_ln",
)

_CAR_FIELDS: tuple[str, ...] = (
    "team",
    "manufacturer",
    "color",
    "t_car",
    "m_fuel",
    "b_fuel_per_lap",
    "pit_location",
    "strategy",
    "p_grid",
)

_CAR_OPTIONAL_FIELDS: tuple[str, ...] = (
    "t_pit_tirechange",
    "t_pit_refuel_per_kg",
    "t_pit_driverchange",
    "m_fuel_max",
)

# ---------------------------------------------------------------------------
# Containers
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SimPars:
    """All parameters required to set up a race.

    Attributes:
        race_pars: Race-wide parameters.
        track: Track of the race.
        drivers: Drivers keyed by initials.
        car_pars: Car parameters keyed by car number.
    """

    race_pars: RacePars
    track: Track
    drivers: dict[str, Driver]
    car_pars: dict[int, CarPars]


@dataclass(frozen=True)
class SimOpts:
    """Options of a simulation run.

    Attributes:
        timestep_size: Duration of a time step (s), in ``[0.001, 1.0]``.
        realtime_factor: Simulate in real time, sped up by this factor, in
            ``[0.1, 100.0]``.  ``None`` simulates as fast as possible.
        debug: Enable debug output.
    """

    timestep_size: float = 0.2
    realtime_factor: float | None = None
    debug: bool = False

    def __post_init__(self) -> None:
        """Validate option ranges."""
        if not 0.001 <= self.timestep_size <= 1.0:
            raise ConfigurationError(
                f"timestep_size is {self.timestep_size:.3f}s, which is not within "
                "the range [0.001, 1.0]s."
            )
        if self.realtime_factor is not None and not 0.1 <= self.realtime_factor <= 100.0:
            raise ConfigurationError(
                f"realtime_factor is {self.realtime_factor:.3f}, which is not within "
                "the range [0.1, 100.0]."
            )


# ---------------------------------------------------------------------------
# Field helpers
# ---------------------------------------------------------------------------


def _require(entry: Any, fields: tuple[str, ...], what: str) -> None:
    if not isinstance(entry, dict):
        raise ConfigurationError(f"{what} must be a mapping, got {type(entry).__name__}")
    for field in fields:
        if field not in entry:
            raise ConfigurationError(f"{what} is missing required field '{field}'")


def _number(entry: dict, field: str, what: str) -> float:
    val = entry[field]
    if isinstance(val, bool) or not isinstance(val, (int, float)):
        raise ConfigurationError(
            f"{what}: '{field}' must be numeric, got {type(val).__name__}"
        )
    return float(val)


def _optional_number(entry: dict, field: str, what: str) -> float | None:
    if entry.get(field) is None:
        return None
    return _number(entry, field, what)


def _integer(entry: dict, field: str, what: str) -> int:
    val = entry[field]
    if isinstance(val, bool) or not isinstance(val, int):
        raise ConfigurationError(
            f"{what}: '{field}' must be an integer, got {type(val).__name__}"
        )
    return val


def _flag(entry: dict, field: str, what: str) -> bool:
    val = entry[field]
    if not isinstance(val, bool):
        raise ConfigurationError(f"{what}: '{field}' must be a boolean, got {type(val).__name__}")
    return val


def _numbers(values: Any, field: str, what: str) -> list[float]:
    if not isinstance(values, list):
        raise ConfigurationError(f"{what}: '{field}' must be a list")
    return [_number({field: val}, field, what) for val in values]


# ---------------------------------------------------------------------------
# Section parsers
# ---------------------------------------------------------------------------


def _parse_race_pars(entry: Any) -> RacePars:
    what = "race_pars"
    _require(entry, _RACE_FIELDS, what)
    participants = entry["participants"]
    if not isinstance(participants, list):
        raise ConfigurationError(f"{what}: 'participants' must be a list")
    return RacePars(
        season=_integer(entry, "season", what),
        tot_no_laps=_integer(entry, "tot_no_laps", what),
        drs_allowed_lap=_integer(entry, "drs_allowed_lap", what),
        min_t_dist=_number(entry, "min_t_dist", what),
        t_duel=_number(entry, "t_duel", what),
        t_overtake_loser=_number(entry, "t_overtake_loser", what),
        drs_window=_number(entry, "drs_window", what),
        use_drs=_flag(entry, "use_drs", what),
        participants=tuple(
            _integer({"participants": car_no}, "participants", what) for car_no in participants
        ),
    )


def _parse_track(entry: Any) -> Track:
    what = "track_pars"
    _require(entry, _TRACK_FIELDS, what)
    zones = entry["overtaking_zones"]
    if not isinstance(zones, list) or any(
        not isinstance(zone, list) or len(zone) != 2 for zone in zones
    ):
        raise ConfigurationError(f"{what}: 'overtaking_zones' must be a list of [start, end] pairs")
    pit_zone = _numbers(entry["pit_zone"], "pit_zone", what)
    if len(pit_zone) != 2:
        raise ConfigurationError(f"{what}: 'pit_zone' must be an [entry, exit] pair")
    return Track(
        name=str(entry["name"]),
        **{field: _number(entry, field, what) for field in _TRACK_NUMERIC_FIELDS},
        drs_measurement_points=tuple(
            _numbers(entry["drs_measurement_points"], "drs_measurement_points", what)
        ),
        pit_zone=(pit_zone[0], pit_zone[1]),
        pits_aft_finishline=_flag(entry, "pits_aft_finishline", what),
        overtaking_zones=tuple(
            tuple(_numbers(zone, "overtaking_zones", what)) for zone in zones
        ),
    )


def _parse_degr_pars(entry: Any, what: str) -> DegradationPars:
    _require(entry, _DEGR_FIELDS, what)
    coeffs = {field: _optional_number(entry, field, what) for field in _DEGR_COEFFS}
    warmup_laps = _integer(entry, "warmup_laps", what) if "warmup_laps" in entry else 1
    return DegradationPars(
        degr_model=str(entry["degr_model"]),
        t_add_coldtires=_number(entry, "t_add_coldtires", what),
        k_0=_number(entry, "k_0", what),
        warmup_laps=warmup_laps,
        **coeffs,
    )


def _parse_driver(initials: str, entry: Any) -> Driver:
    what = f"Driver {initials}"
    _require(entry, _DRIVER_FIELDS, what)
    if entry.get("initials", initials) != initials:
        raise ConfigurationError(f"{what}: initials do not match the entry key")
    degr_pars_all = entry["degr_pars_all"]
    if not isinstance(degr_pars_all, dict):
        raise ConfigurationError(f"{what}: 'degr_pars_all' must be a mapping")
    return Driver(
        initials=initials,
        name=str(entry["name"]),
        t_driver=_number(entry, "t_driver", what),
        t_teamorder=_number(entry, "t_teamorder", what),
        vel_max=_number(entry, "vel_max", what),
        degr_pars_all={
            str(compound): _parse_degr_pars(pars, f"{what}, compound {compound}")
            for compound, pars in degr_pars_all.items()
        },
    )


def _parse_strategy_entry(entry: Any, what: str) -> StrategyEntry:
    _require(entry, ("inlap",), what)
    compound = entry.get("compound")
    driver_initials = entry.get("driver_initials")
    return StrategyEntry(
        inlap=_integer(entry, "inlap", what),
        tire_start_age=_integer(entry, "tire_start_age", what) if "tire_start_age" in entry else 0,
        compound=None if compound is None else str(compound),
        refuel_mass=_number(entry, "refuel_mass", what) if "refuel_mass" in entry else 0.0,
        driver_initials=None if driver_initials is None else str(driver_initials),
    )


def _parse_car_pars(car_no: Any, entry: Any) -> CarPars:
    what = f"Car {car_no}"
    # JSON object keys are strings
    if isinstance(car_no, str) and car_no.isdigit():
        car_no = int(car_no)
    if isinstance(car_no, bool) or not isinstance(car_no, int):
        raise ConfigurationError(f"{what}: car numbers must be integers")
    _require(entry, _CAR_FIELDS, what)
    if entry.get("car_no", car_no) != car_no:
        raise ConfigurationError(f"{what}: car_no does not match the entry key")
    strategy = entry["strategy"]
    if not isinstance(strategy, list):
        raise ConfigurationError(f"{what}: 'strategy' must be a list")
    return CarPars(
        car_no=car_no,
        team=str(entry["team"]),
        manufacturer=str(entry["manufacturer"]),
        color=str(entry["color"]),
        t_car=_number(entry, "t_car", what),
        m_fuel=_number(entry, "m_fuel", what),
        b_fuel_per_lap=_number(entry, "b_fuel_per_lap", what),
        pit_location=_number(entry, "pit_location", what),
        strategy=tuple(
            _parse_strategy_entry(step, f"{what}, strategy entry {idx + 1}")
            for idx, step in enumerate(strategy)
        ),
        p_grid=_integer(entry, "p_grid", what),
        **{field: _optional_number(entry, field, what) for field in _CAR_OPTIONAL_FIELDS},
    )


def _with_context(what: str, build, *args):
    """Call ``build`` and prefix configuration errors with ``what``."""
    try:
        return build(*args)
    except ConfigurationError as exc:
        if str(exc).startswith(what):
            raise
        raise ConfigurationError(f"{what}: {exc}") from exc


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def parse_sim_pars(data: Any) -> SimPars:
    """Build validated simulation parameters from a decoded parameter file.

    Args:
        data: Mapping with the sections ``race_pars``, ``track_pars``,
            ``driver_pars_all`` and ``car_pars_all``.

    Returns:
        The simulation parameters.

    Raises:
        ConfigurationError: If a section or field is missing, has the wrong
            type or an out-of-range value.
    """
    _require(data, _SECTIONS, "Parameter file")
    for section in ("driver_pars_all", "car_pars_all"):
        if not isinstance(data[section], dict):
            raise ConfigurationError(f"'{section}' must be a mapping")

    race_pars = _with_context("race_pars", _parse_race_pars, data["race_pars"])
    track = _with_context("track_pars", _parse_track, data["track_pars"])
    drivers = {
        str(initials): _with_context(f"Driver {initials}", _parse_driver, str(initials), entry)
        for initials, entry in data["driver_pars_all"].items()
    }
    car_pars = {}
    for car_no, entry in data["car_pars_all"].items():
        pars = _with_context(f"Car {car_no}", _parse_car_pars, car_no, entry)
        car_pars[pars.car_no] = pars
    return SimPars(race_pars=race_pars, track=track, drivers=drivers, car_pars=car_pars)


def load_sim_pars(path: Path | str | None = None) -> SimPars:
    """Load simulation parameters from a YAML (or JSON) file.

    Args:
        path: Optional override for the parameter file path.  Defaults to
            the bundled Shanghai 2019 parameter file.

    Returns:
        The validated simulation parameters.

    Raises:
        FileNotFoundError: If the parameter file does not exist.
        ConfigurationError: If the file content is invalid.
    """
    parfile = Path(path) if path is not None else DEFAULT_PARFILE
    if not parfile.exists():
        raise FileNotFoundError(f"Parameter file not found: {parfile}")

    with open(parfile, encoding="utf-8") as fh:
        data = yaml.safe_load(fh)

    return parse_sim_pars(data)
