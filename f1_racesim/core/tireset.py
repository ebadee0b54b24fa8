"""Tire degradation model for the time-discrete race simulator.

Degradation parameters are a tagged record: ``degr_model`` selects which of
the coefficient fields are used.  The parameters belong to a driver (see
:mod:`f1_racesim.core.driver`), so a driver change alters the degradation of
the mounted tireset without touching its age.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum

from f1_racesim.core.errors import ConfigurationError

# ---------------------------------------------------------------------------
# Degradation parameters
# ---------------------------------------------------------------------------


class DegradationModel(str, Enum):
    """Supported tire degradation models."""

    LIN = "lin"
    QUAD = "quad"
    CUB = "cub"
    LN = "ln"


# Coefficients each model requires (besides k_0).
_REQUIRED_COEFFS: dict[DegradationModel, tuple[str, ...]] = {
    DegradationModel.LIN: ("k_1_lin",),
    DegradationModel.QUAD: ("k_1_quad", "k_2_quad"),
    DegradationModel.CUB: ("k_1_cub", "k_2_cub", "k_3_cub"),
    DegradationModel.LN: ("k_1_ln", "k_2_ln"),
}


@dataclass(frozen=True)
class DegradationPars:
    """Degradation parameters of one compound under one driver.

    The time loss at a total tire age ``age`` (laps) is:

        * ``lin``:  k_0 + k_1_lin * age
        * ``quad``: k_0 + k_1_quad * age + k_2_quad * age**2
        * ``cub``:  k_0 + k_1_cub * age + k_2_cub * age**2 + k_3_cub * age**3
        * ``ln``:   k_0 + k_1_ln * ln(k_2_ln * age + 1)

    Attributes:
        degr_model: Model tag.
        t_add_coldtires: Time loss (s) while the tires are not warmed up.
        k_0: Offset of the compound for fresh tires (s).
        warmup_laps: Number of laps into a stint for which the cold tire
            loss applies.
    """

    degr_model: DegradationModel
    t_add_coldtires: float
    k_0: float
    k_1_lin: float | None = None
    k_1_quad: float | None = None
    k_2_quad: float | None = None
    k_1_cub: float | None = None
    k_2_cub: float | None = None
    k_3_cub: float | None = None
    k_1_ln: float | None = None
    k_2_ln: float | None = None
    warmup_laps: int = 1

    def __post_init__(self) -> None:
        """Validate that the tagged model has all its coefficients."""
        try:
            model = DegradationModel(self.degr_model)
        except ValueError as exc:
            raise ConfigurationError(
                f"Unknown degradation model '{self.degr_model}'."
            ) from exc
        object.__setattr__(self, "degr_model", model)

        for name in _REQUIRED_COEFFS[model]:
            if getattr(self, name) is None:
                raise ConfigurationError(
                    f"Missing parameter {name} for degradation model '{model.value}'."
                )
        if self.t_add_coldtires < 0.0:
            raise ConfigurationError("t_add_coldtires must be >= 0.0.")
        if self.warmup_laps < 0:
            raise ConfigurationError("warmup_laps must be >= 0.")

    def calc_tire_degr(self, age: float) -> float:
        """Return the degradation time loss (s) at the given total tire age."""
        if self.degr_model is DegradationModel.LIN:
            return self.k_0 + self.k_1_lin * age
        if self.degr_model is DegradationModel.QUAD:
            return self.k_0 + self.k_1_quad * age + self.k_2_quad * age**2
        if self.degr_model is DegradationModel.CUB:
            return (
                self.k_0
                + self.k_1_cub * age
                + self.k_2_cub * age**2
                + self.k_3_cub * age**3
            )
        return self.k_0 + self.k_1_ln * math.log(self.k_2_ln * age + 1.0)


# ---------------------------------------------------------------------------
# Tireset
# ---------------------------------------------------------------------------


class Tireset:
    """A mounted set of tires.

    Attributes:
        compound: Compound identifier, e.g. ``"A4"``.
        age_tot: Total age in laps, including the age at mounting.
        age_cur_stint: Laps driven on this set in the current stint.
    """

    __slots__ = ("compound", "age_tot", "age_cur_stint")

    def __init__(self, compound: str, age_tot: int = 0) -> None:
        if not compound:
            raise ConfigurationError("Tire compound must be non-empty.")
        if age_tot < 0:
            raise ConfigurationError("Tire start age must be >= 0.")
        self.compound: str = compound
        self.age_tot: int = age_tot
        self.age_cur_stint: int = 0

    def drive_lap(self) -> None:
        """Advance tire age by one lap."""
        self.age_cur_stint += 1
        self.age_tot += 1

    def t_add_tireset(self, degr_pars: DegradationPars) -> float:
        """Return the current time loss due to degradation and cold tires."""
        t_add = degr_pars.calc_tire_degr(float(self.age_tot))
        if self.age_cur_stint < degr_pars.warmup_laps:
            t_add += degr_pars.t_add_coldtires
        return t_add
