"""Driver model for the time-discrete race simulator.

A driver carries its own degradation table: the parameters of a compound
depend on who drives the car.  Swapping drivers during a pit stop therefore
changes the active coefficients of the mounted tireset.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from f1_racesim.core.errors import ConfigurationError
from f1_racesim.core.tireset import DegradationPars


@dataclass(frozen=True)
class Driver:
    """Immutable representation of a race driver.

    Attributes:
        initials: Unique driver initials, e.g. ``"BOT"``.
        name: Full name.
        t_driver: Time loss per lap due to driver abilities (s).
        t_teamorder: Team order time delta per lap (s, either sign).
        vel_max: Maximum velocity in qualifying (km/h).
        degr_pars_all: Degradation parameters per compound identifier.
    """

    initials: str
    name: str
    t_driver: float
    t_teamorder: float
    vel_max: float
    degr_pars_all: dict[str, DegradationPars] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Validate driver parameters."""
        if not self.initials:
            raise ConfigurationError("Driver initials must not be empty.")
        if self.vel_max <= 0.0:
            raise ConfigurationError(
                f"Driver {self.initials}: vel_max must be > 0.0."
            )
        if not self.degr_pars_all:
            raise ConfigurationError(
                f"Driver {self.initials}: no degradation parameters given."
            )

    @property
    def t_offset(self) -> float:
        """Driver and team order time delta per lap."""
        return self.t_driver + self.t_teamorder

    def get_degr_pars(self, compound: str) -> DegradationPars:
        """Return the degradation parameters for the given compound.

        Raises:
            ConfigurationError: If the driver has no entry for the compound.
        """
        try:
            return self.degr_pars_all[compound]
        except KeyError:
            raise ConfigurationError(
                f"Driver {self.initials}: degradation parameters are not "
                f"available for compound '{compound}'."
            ) from None
