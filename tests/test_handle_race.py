"""Tests for the race driver loop, real-time mode and result tables."""

import importlib
import logging
import math
from dataclasses import replace

import numpy as np
import pytest

from f1_racesim.config import SimPars, load_sim_pars
from f1_racesim.core.errors import SimulationInvariantError
from f1_racesim.core.handle_race import handle_race, max_no_timesteps
from f1_racesim.core.race import Race, RaceState

# the package re-exports handle_race, which shadows the module attribute
handle_race_module = importlib.import_module("f1_racesim.core.handle_race")

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


def _short_race(tot_no_laps: int = 3) -> SimPars:
    """Sample parameters shortened to a few laps without pit stops."""
    sim_pars = load_sim_pars()
    car_pars = {
        car_no: replace(pars, strategy=pars.strategy[:1])
        for car_no, pars in sim_pars.car_pars.items()
    }
    race_pars = replace(sim_pars.race_pars, tot_no_laps=tot_no_laps)
    return replace(sim_pars, race_pars=race_pars, car_pars=car_pars)


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


def test_full_race_result() -> None:
    """A batch run of the sample race returns complete result tables."""
    result = handle_race(load_sim_pars(), timestep_size=0.5)

    assert result.tot_no_laps == 56
    assert [pair.car_no for pair in result.car_driver_pairs] == [44, 77]
    assert list(result.completed_laps) == [56, 56]
    assert not np.isnan(result.racetimes).any()
    assert sorted(result.final_classification) == [44, 77]


def test_result_dataframes() -> None:
    result = handle_race(_short_race(), timestep_size=0.5)
    laptimes, racetimes = result.to_dataframes()

    assert list(laptimes.columns) == ["44 (HAM)", "77 (BOT)"]
    assert laptimes.index.name == "lap"
    assert len(laptimes) == 4
    assert laptimes.iloc[0].tolist() == [0.0, 0.0]
    np.testing.assert_allclose(
        racetimes.iloc[-1].to_numpy(), laptimes.sum().to_numpy()
    )


def test_callback_receives_every_step() -> None:
    """The callback is called once per time step with increasing race times."""
    states: list[RaceState] = []
    handle_race(_short_race(1), timestep_size=0.5, callback=states.append)

    racetimes = [state.racetime for state in states]
    assert racetimes == sorted(racetimes)
    assert racetimes[0] == pytest.approx(0.5)
    assert np.diff(racetimes) == pytest.approx(0.5)
    assert all(car_state.finished for car_state in states[-1].car_states)
    assert not all(car_state.finished for car_state in states[-2].car_states)


def test_max_no_timesteps() -> None:
    sim_pars = _short_race(5)
    race = Race(
        sim_pars.race_pars,
        sim_pars.track,
        sim_pars.drivers,
        sim_pars.car_pars,
        0.5,
    )
    laptime_bound = max(sim_pars.track.t_base, sim_pars.track.pit_lane_laptime)
    assert max_no_timesteps(race) == math.ceil(10.0 * 6 * laptime_bound / 0.5)


def test_runaway_race_aborted(monkeypatch: pytest.MonkeyPatch) -> None:
    """A race exceeding the step bound raises instead of looping forever."""
    monkeypatch.setattr(handle_race_module, "RUNAWAY_FACTOR", 0.01)
    with pytest.raises(SimulationInvariantError, match="did not finish"):
        handle_race(_short_race(5), timestep_size=0.5)


def test_realtime_mode_logs_status(caplog: pytest.LogCaptureFixture) -> None:
    """Real-time runs produce the same result and report their progress."""
    caplog.set_level(logging.INFO, logger="f1_racesim.core.handle_race")
    sim_pars = _short_race(1)

    realtime = handle_race(sim_pars, timestep_size=1.0, realtime_factor=100.0)
    batch = handle_race(sim_pars, timestep_size=1.0)

    np.testing.assert_allclose(realtime.racetimes, batch.racetimes)
    assert any("Simulating..." in record.getMessage() for record in caplog.records)


def test_debug_reports_pit_drive_timeloss(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.DEBUG, logger="f1_racesim.core.handle_race")
    sim_pars = _short_race(1)

    handle_race(sim_pars, timestep_size=0.5, debug=True)

    messages = [record.getMessage() for record in caplog.records]
    expected = f"{sim_pars.track.pit_drive_timeloss:.2f}s"
    assert any("pit lane" in msg and msg.endswith(expected) for msg in messages)


def test_no_debug_output_by_default(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.DEBUG, logger="f1_racesim.core.handle_race")
    handle_race(_short_race(1), timestep_size=0.5)
    assert not any(
        "pit lane" in record.getMessage()
        for record in caplog.records
        if record.name == "f1_racesim.core.handle_race"
    )
