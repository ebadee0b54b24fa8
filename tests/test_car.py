"""Tests for car parameters, lap time composition, fuel and pit stops."""

from dataclasses import replace

import pytest

from f1_racesim.core.car import Car, CarPars, StrategyEntry
from f1_racesim.core.driver import Driver
from f1_racesim.core.errors import ConfigurationError, SimulationInvariantError
from f1_racesim.core.state_handler import StateHandler
from f1_racesim.core.tireset import DegradationPars
from f1_racesim.core.track import Track

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


def _sample_track() -> Track:
    return Track(
        name="Shanghai",
        t_q=91.5,
        t_gap_racepace=3.5,
        s_mass=0.03,
        t_drseffect=-0.6,
        pit_speedlimit=22.22,
        t_loss_firstlap=3.0,
        d_per_gridpos=-8.0,
        d_first_gridpos=-50.0,
        length=5451.0,
        real_length_pit_zone=550.0,
        s12=1200.0,
        s23=3800.0,
        drs_measurement_points=[3300.0, 4900.0],
        turn_1=450.0,
        pit_zone=[5200.0, 350.0],
        pits_aft_finishline=True,
        overtaking_zones=[[3850.0, 4500.0], [5100.0, 300.0]],
    )


def _make_driver(initials: str, t_driver: float = 0.1) -> Driver:
    return Driver(
        initials=initials,
        name=f"Driver {initials}",
        t_driver=t_driver,
        t_teamorder=0.05,
        vel_max=320.0,
        degr_pars_all={
            "A4": DegradationPars("lin", 1.0, 0.5, k_1_lin=0.06),
            "A5": DegradationPars("lin", 0.8, 0.0, k_1_lin=0.09),
        },
    )


def _sample_drivers() -> dict[str, Driver]:
    return {"BOT": _make_driver("BOT"), "VER": _make_driver("VER", t_driver=0.3)}


def _sample_car_pars(**overrides) -> CarPars:
    pars = {
        "car_no": 77,
        "team": "Mercedes",
        "manufacturer": "Mercedes",
        "color": "#00D2BE",
        "t_car": 0.2,
        "m_fuel": 100.0,
        "b_fuel_per_lap": 1.8,
        "pit_location": 120.0,
        "strategy": (
            StrategyEntry(inlap=0, tire_start_age=2, compound="A5", driver_initials="BOT"),
            StrategyEntry(inlap=21, compound="A4"),
        ),
        "p_grid": 1,
        "t_pit_tirechange": 2.5,
        "m_fuel_max": 110.0,
    }
    pars.update(overrides)
    return CarPars(**pars)


def _make_car(pars: CarPars | None = None) -> Car:
    pars = pars or _sample_car_pars()
    drivers = _sample_drivers()
    sh = StateHandler(_sample_track(), -50.0, use_drs=True, drs_window=1.0, car_no=pars.car_no)
    return Car(pars, drivers[pars.strategy[0].driver_initials], sh)


# ---------------------------------------------------------------------------
# Parameters
# ---------------------------------------------------------------------------


def test_fuel_capacity_defaults_to_start_fuel() -> None:
    pars = _sample_car_pars(m_fuel_max=None)
    assert pars.m_fuel_max == pytest.approx(100.0)


def test_empty_strings_mean_no_change() -> None:
    entry = StrategyEntry(inlap=5, compound="", driver_initials="")
    assert entry.compound is None
    assert entry.driver_initials is None


def test_first_entry_must_be_start_configuration() -> None:
    with pytest.raises(ConfigurationError, match="first strategy entry"):
        _sample_car_pars(strategy=(StrategyEntry(inlap=1, compound="A5", driver_initials="BOT"),))
    with pytest.raises(ConfigurationError, match="first strategy entry"):
        _sample_car_pars(strategy=(StrategyEntry(inlap=0, compound="A5"),))


def test_inlaps_strictly_increasing() -> None:
    strategy = (
        StrategyEntry(inlap=0, compound="A5", driver_initials="BOT"),
        StrategyEntry(inlap=20, compound="A4"),
        StrategyEntry(inlap=20, compound="A5"),
    )
    with pytest.raises(ConfigurationError, match="less or equal"):
        _sample_car_pars(strategy=strategy)


def test_action_without_cost_rejected() -> None:
    """A tire change needs the tire change time."""
    with pytest.raises(ConfigurationError, match="t_pit_tirechange"):
        _sample_car_pars(t_pit_tirechange=None)


def test_check_fuel() -> None:
    """Fuel must last the race and never exceed the capacity."""
    pars = _sample_car_pars()
    pars.check_fuel(55)

    with pytest.raises(ConfigurationError, match="fuel runs out"):
        pars.check_fuel(56)

    refuel = (
        StrategyEntry(inlap=0, compound="A5", driver_initials="BOT"),
        StrategyEntry(inlap=30, refuel_mass=20.0),
    )
    _sample_car_pars(strategy=refuel, t_pit_refuel_per_kg=0.1).check_fuel(60)

    overfill = (
        StrategyEntry(inlap=0, compound="A5", driver_initials="BOT"),
        StrategyEntry(inlap=2, refuel_mass=20.0),
    )
    with pytest.raises(ConfigurationError, match="capacity"):
        _sample_car_pars(strategy=overfill, t_pit_refuel_per_kg=0.1).check_fuel(60)


def test_strategy_entries_after_race_end_ignored_in_fuel_check() -> None:
    pars = _sample_car_pars()
    pars.check_fuel(10)


# ---------------------------------------------------------------------------
# Car
# ---------------------------------------------------------------------------


def test_start_configuration() -> None:
    car = _make_car()
    assert car.tireset.compound == "A5"
    assert car.tireset.age_tot == 2
    assert car.driver.initials == "BOT"
    assert car.m_fuel == pytest.approx(100.0)


def test_start_driver_must_match() -> None:
    pars = _sample_car_pars()
    sh = StateHandler(_sample_track(), -50.0, use_drs=True, drs_window=1.0)
    with pytest.raises(ConfigurationError, match="start driver"):
        Car(pars, _sample_drivers()["VER"], sh)


def test_theoretical_laptime() -> None:
    """Lap time is the track base plus car, driver, tire and fuel losses."""
    car = _make_car()
    track = _sample_track()
    expected_loss = 0.2 + 0.15 + 0.09 * 2 + 0.8 + 100.0 * 0.03
    assert car.calc_basic_timeloss(track.s_mass) == pytest.approx(expected_loss)
    assert car.calc_th_laptime(track) == pytest.approx(95.0 + expected_loss)


def test_drive_lap_ages_tires_and_burns_fuel() -> None:
    car = _make_car()
    car.drive_lap()
    assert car.tireset.age_tot == 3
    assert car.m_fuel == pytest.approx(98.2)
    expected_loss = 0.2 + 0.15 + 0.09 * 3 + 98.2 * 0.03
    assert car.calc_basic_timeloss(0.03) == pytest.approx(expected_loss)


def test_negative_fuel_is_invariant_violation() -> None:
    car = _make_car()
    car.m_fuel = 1.0
    with pytest.raises(SimulationInvariantError, match="fuel"):
        car.drive_lap()


def test_pit_this_lap_ignores_start_entry() -> None:
    car = _make_car()
    assert car.pit_this_lap(21)
    assert not car.pit_this_lap(0)
    assert not car.pit_this_lap(20)


def test_get_strategy_entry() -> None:
    car = _make_car()
    assert car.get_strategy_entry(21).compound == "A4"
    with pytest.raises(SimulationInvariantError, match="inlap 5"):
        car.get_strategy_entry(5)


def test_standstill_sums_all_actions() -> None:
    strategy = (
        StrategyEntry(inlap=0, compound="A5", driver_initials="BOT"),
        StrategyEntry(inlap=10, compound="A4", refuel_mass=10.0, driver_initials="VER"),
    )
    car = _make_car(
        _sample_car_pars(
            strategy=strategy,
            t_pit_refuel_per_kg=0.1,
            t_pit_driverchange=5.0,
        )
    )
    assert car.t_add_pit_standstill(10) == pytest.approx(2.5 + 1.0 + 5.0)


def test_perform_pitstop() -> None:
    """A stop fits the new tires at their start age and swaps the driver."""
    strategy = (
        StrategyEntry(inlap=0, tire_start_age=2, compound="A5", driver_initials="BOT"),
        StrategyEntry(inlap=10, tire_start_age=1, compound="A4", refuel_mass=5.0, driver_initials="VER"),
    )
    car = _make_car(
        _sample_car_pars(
            strategy=strategy,
            t_pit_refuel_per_kg=0.1,
            t_pit_driverchange=5.0,
        )
    )
    for _ in range(10):
        car.drive_lap()
    car.enter_pit(10)
    car.perform_pitstop(10, _sample_drivers())

    assert car.tireset.compound == "A4"
    assert car.tireset.age_tot == 1
    assert car.tireset.age_cur_stint == 0
    assert car.driver.initials == "VER"
    assert car.m_fuel == pytest.approx(100.0 - 18.0 + 5.0)

    car.leave_pit()
    assert car.pit_inlap is None


def test_pitstop_applied_once() -> None:
    car = _make_car()
    car.enter_pit(21)
    car.perform_pitstop(21, _sample_drivers())
    with pytest.raises(SimulationInvariantError, match="already applied"):
        car.perform_pitstop(21, _sample_drivers())


def test_leaving_pit_without_stop_is_invariant_violation() -> None:
    car = _make_car()
    car.enter_pit(21)
    with pytest.raises(SimulationInvariantError, match="without performing"):
        car.leave_pit()


def test_refuel_over_capacity_is_invariant_violation() -> None:
    strategy = (
        StrategyEntry(inlap=0, compound="A5", driver_initials="BOT"),
        StrategyEntry(inlap=1, refuel_mass=20.0),
    )
    car = _make_car(_sample_car_pars(strategy=strategy, t_pit_refuel_per_kg=0.1))
    car.drive_lap()
    with pytest.raises(SimulationInvariantError, match="capacity"):
        car.perform_pitstop(1, _sample_drivers())


def test_strategy_drivers() -> None:
    strategy = (
        StrategyEntry(inlap=0, compound="A5", driver_initials="BOT"),
        StrategyEntry(inlap=10, driver_initials="VER"),
        StrategyEntry(inlap=20, compound="A4"),
    )
    car = _make_car(_sample_car_pars(strategy=strategy, t_pit_driverchange=5.0))
    assert dict(car.strategy_drivers()) == {"BOT": {"A5"}, "VER": {"A5", "A4"}}


def test_replace_revalidates() -> None:
    pars = _sample_car_pars()
    with pytest.raises(ConfigurationError, match="p_grid"):
        replace(pars, p_grid=0)
