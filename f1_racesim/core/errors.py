"""Error types for the time-discrete race simulator.

Two families exist:

* ``ConfigurationError`` -- raised while building the simulation from its
  parameters, before the first time step runs.
* ``SimulationInvariantError`` -- raised during a time step when the race
  state breaks an invariant.  This always indicates a logic fault and is
  never recovered from.
"""

from __future__ import annotations


class ConfigurationError(ValueError):
    """Invalid or inconsistent simulation parameters."""


class SimulationInvariantError(RuntimeError):
    """A race state invariant was violated during a time step.

    Attributes:
        invariant: Description of the violated invariant.
        car_no: Number of the affected car (``None`` if race-wide).
        tick: Index of the time step in which the violation occurred.
            Filled in by the race if the raising component does not know it.
    """

    def __init__(
        self,
        invariant: str,
        car_no: int | None = None,
        tick: int | None = None,
    ) -> None:
        self.invariant: str = invariant
        self.car_no: int | None = car_no
        self.tick: int | None = tick
        super().__init__(invariant)

    def __str__(self) -> str:
        tick = "?" if self.tick is None else str(self.tick)
        car = "-" if self.car_no is None else str(self.car_no)
        return f"tick {tick}, car {car}: {self.invariant}"
