"""Core modules of the time-discrete race simulator."""

from f1_racesim.core.car import Car, CarPars, StrategyEntry
from f1_racesim.core.driver import Driver
from f1_racesim.core.errors import ConfigurationError, SimulationInvariantError
from f1_racesim.core.handle_race import handle_race, max_no_timesteps
from f1_racesim.core.race import CarState, FlagState, Race, RacePars, RaceState
from f1_racesim.core.race_result import CarDriverPair, RaceResult
from f1_racesim.core.state_handler import State, StateHandler
from f1_racesim.core.tireset import DegradationModel, DegradationPars, Tireset
from f1_racesim.core.track import Track, in_interval, lap_distance

__all__ = [
    "Car",
    "CarDriverPair",
    "CarPars",
    "CarState",
    "ConfigurationError",
    "DegradationModel",
    "DegradationPars",
    "Driver",
    "FlagState",
    "Race",
    "RacePars",
    "RaceResult",
    "RaceState",
    "SimulationInvariantError",
    "State",
    "StateHandler",
    "StrategyEntry",
    "Tireset",
    "Track",
    "handle_race",
    "in_interval",
    "lap_distance",
    "max_no_timesteps",
]
