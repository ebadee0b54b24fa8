"""Lap and race time tables of a simulated race.

Times are stored per car and lap in arrays of shape ``(no_cars, tot_no_laps
+ 1)``.  Column 0 belongs to the start and is zero; laps a car did not
complete (lapped cars) are NaN.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
import pandas as pd


@dataclass(frozen=True)
class CarDriverPair:
    """Car number and the initials of the driver who finished the race."""

    car_no: int
    driver_initials: str

    @property
    def label(self) -> str:
        return f"{self.car_no} ({self.driver_initials})"


@dataclass
class RaceResult:
    """Outcome of a simulated race.

    Attributes:
        tot_no_laps: Scheduled number of laps.
        car_driver_pairs: One entry per car, ordered like the array rows
            (by car number).
        laptimes: Lap times (s), shape ``(no_cars, tot_no_laps + 1)``.
        racetimes: Race time (s) at the end of each lap, same shape.
    """

    tot_no_laps: int
    car_driver_pairs: tuple[CarDriverPair, ...]
    laptimes: np.ndarray
    racetimes: np.ndarray

    def __post_init__(self) -> None:
        """Validate array shapes."""
        self.car_driver_pairs = tuple(self.car_driver_pairs)
        expected = (len(self.car_driver_pairs), self.tot_no_laps + 1)
        for name in ("laptimes", "racetimes"):
            if getattr(self, name).shape != expected:
                raise ValueError(
                    f"{name} must have shape {expected}, got {getattr(self, name).shape}."
                )

    @property
    def completed_laps(self) -> np.ndarray:
        """Number of laps each car completed."""
        return np.sum(~np.isnan(self.racetimes), axis=1) - 1

    @property
    def final_classification(self) -> list[int]:
        """Car numbers ordered by completed laps, then by race time."""
        laps = self.completed_laps
        last_racetimes = self.racetimes[np.arange(len(laps)), laps]
        order = np.lexsort((last_racetimes, -laps))
        return [self.car_driver_pairs[k].car_no for k in order]

    def to_dataframes(self) -> tuple[pd.DataFrame, pd.DataFrame]:
        """Return lap times and race times as DataFrames indexed by lap.

        Columns are labelled ``"<car_no> (<initials>)"``.
        """
        columns = [pair.label for pair in self.car_driver_pairs]
        index = pd.RangeIndex(self.tot_no_laps + 1, name="lap")
        laptimes = pd.DataFrame(self.laptimes.T, index=index, columns=columns)
        racetimes = pd.DataFrame(self.racetimes.T, index=index, columns=columns)
        return laptimes, racetimes

    def print_lap_and_race_times(self) -> None:
        laptimes, racetimes = self.to_dataframes()
        with pd.option_context("display.max_rows", None, "display.max_columns", None):
            print("RESULT: Lap times")
            print(laptimes.to_string(float_format="{:.3f}".format))
            print()
            print("RESULT: Race times")
            print(racetimes.to_string(float_format="{:.3f}".format))
