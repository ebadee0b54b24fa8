"""Tests for parameter file loading and simulation options."""

import json
from pathlib import Path

import pytest
import yaml

from f1_racesim.config import (
    DEFAULT_PARFILE,
    SimOpts,
    load_sim_pars,
    parse_sim_pars,
)
from f1_racesim.core.errors import ConfigurationError
from f1_racesim.core.tireset import DegradationModel

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


def _sample_data() -> dict:
    with open(DEFAULT_PARFILE, encoding="utf-8") as fh:
        return yaml.safe_load(fh)


def _write_yaml(tmp_path: Path, data: dict) -> Path:
    path = tmp_path / "pars.yaml"
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return path


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


def test_load_sample_file() -> None:
    """The bundled parameter file describes the Shanghai 2019 race."""
    sim_pars = load_sim_pars()

    assert sim_pars.track.name == "Shanghai"
    assert sim_pars.track.pit_zone == (5200.0, 350.0)
    assert sim_pars.race_pars.tot_no_laps == 56
    assert sim_pars.race_pars.participants == (44, 77)
    assert set(sim_pars.drivers) == {"BOT", "HAM"}
    assert set(sim_pars.car_pars) == {44, 77}

    bot = sim_pars.drivers["BOT"]
    assert set(bot.degr_pars_all) == {"A3", "A4", "A5"}
    assert bot.degr_pars_all["A5"].degr_model is DegradationModel.LIN

    car_77 = sim_pars.car_pars[77]
    assert car_77.p_grid == 1
    assert car_77.m_fuel_max == pytest.approx(car_77.m_fuel)
    assert [entry.inlap for entry in car_77.strategy] == [0, 21]
    assert car_77.strategy[0].driver_initials == "BOT"
    assert car_77.strategy[1].compound == "A4"
    assert car_77.strategy[1].driver_initials is None
    assert sim_pars.car_pars[44].strategy[1].inlap == 24


def test_missing_file() -> None:
    with pytest.raises(FileNotFoundError):
        load_sim_pars(Path("/nonexistent/pars.yaml"))


def test_json_parameter_file(tmp_path: Path) -> None:
    """JSON files load as well, with car numbers as string keys."""
    path = tmp_path / "pars.json"
    path.write_text(json.dumps(_sample_data()), encoding="utf-8")
    sim_pars = load_sim_pars(path)
    assert set(sim_pars.car_pars) == {44, 77}


def test_missing_section(tmp_path: Path) -> None:
    data = _sample_data()
    del data["track_pars"]
    with pytest.raises(ConfigurationError, match="missing required field 'track_pars'"):
        load_sim_pars(_write_yaml(tmp_path, data))


def test_missing_car_field() -> None:
    data = _sample_data()
    del data["car_pars_all"][77]["p_grid"]
    with pytest.raises(ConfigurationError, match="Car 77 is missing required field 'p_grid'"):
        parse_sim_pars(data)


def test_non_numeric_field() -> None:
    data = _sample_data()
    data["track_pars"]["length"] = "long"
    with pytest.raises(ConfigurationError, match="'length' must be numeric"):
        parse_sim_pars(data)


def test_boolean_is_not_a_number() -> None:
    data = _sample_data()
    data["race_pars"]["min_t_dist"] = True
    with pytest.raises(ConfigurationError, match="min_t_dist"):
        parse_sim_pars(data)


def test_invalid_track_names_section() -> None:
    """Validation errors of a section are prefixed with its name."""
    data = _sample_data()
    data["track_pars"]["overtaking_zones"] = [[3850.0, 4500.0], [4400.0, 300.0]]
    with pytest.raises(ConfigurationError, match="^track_pars: .*overlap"):
        parse_sim_pars(data)


def test_invalid_strategy_names_car() -> None:
    data = _sample_data()
    data["car_pars_all"][44]["strategy"][1]["inlap"] = 0
    with pytest.raises(ConfigurationError, match="^Car 44: .*less or equal"):
        parse_sim_pars(data)


def test_missing_degradation_coefficient() -> None:
    data = _sample_data()
    del data["driver_pars_all"]["HAM"]["degr_pars_all"]["A4"]["k_1_lin"]
    with pytest.raises(ConfigurationError, match="Driver HAM.*k_1_lin"):
        parse_sim_pars(data)


def test_optional_strategy_fields_default() -> None:
    data = _sample_data()
    entry = data["car_pars_all"][77]["strategy"][1]
    del entry["tire_start_age"]
    del entry["refuel_mass"]
    sim_pars = parse_sim_pars(data)
    assert sim_pars.car_pars[77].strategy[1].tire_start_age == 0
    assert sim_pars.car_pars[77].strategy[1].refuel_mass == 0.0


def test_configuration_error_is_value_error() -> None:
    assert issubclass(ConfigurationError, ValueError)


def test_sim_opts_ranges() -> None:
    """Time step size and real-time factor are range checked."""
    assert SimOpts().timestep_size == pytest.approx(0.2)
    SimOpts(timestep_size=0.001, realtime_factor=100.0)

    with pytest.raises(ConfigurationError, match="timestep_size"):
        SimOpts(timestep_size=2.0)
    with pytest.raises(ConfigurationError, match="realtime_factor"):
        SimOpts(realtime_factor=0.01)
