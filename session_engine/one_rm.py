"""One-rep-max estimation formulas.

The active formula is a user setting (see :mod:`session_engine.settings`);
the PB detector only needs a ``(weight, reps) -> estimate`` callable, which
:func:`get_formula` provides.
"""

from __future__ import annotations

import math
from enum import IntEnum
from typing import Callable

OneRmFormula = Callable[[float, int], float]


class OneRm(IntEnum):
    EPLEY = 0
    BRZYCKI = 1
    LOMBARDI = 2
    LANDER = 3
    MAYHEW = 4
    OCONNER = 5
    WATHAN = 6


def _epley(weight: float, reps: int) -> float:
    return weight * (1 + reps / 30)


def _brzycki(weight: float, reps: int) -> float:
    # the formula diverges at 37 reps
    return weight * 36 / max(37 - reps, 1)


def _lombardi(weight: float, reps: int) -> float:
    return weight * reps ** 0.10


def _lander(weight: float, reps: int) -> float:
    return 100 * weight / (101.3 - 2.67123 * reps)


def _mayhew(weight: float, reps: int) -> float:
    return 100 * weight / (52.2 + 41.9 * math.exp(-0.055 * reps))


def _oconner(weight: float, reps: int) -> float:
    return weight * (1 + reps / 40)


def _wathan(weight: float, reps: int) -> float:
    return 100 * weight / (48.8 + 53.8 * math.exp(-0.075 * reps))


_FORMULAS: dict[OneRm, OneRmFormula] = {
    OneRm.EPLEY: _epley,
    OneRm.BRZYCKI: _brzycki,
    OneRm.LOMBARDI: _lombardi,
    OneRm.LANDER: _lander,
    OneRm.MAYHEW: _mayhew,
    OneRm.OCONNER: _oconner,
    OneRm.WATHAN: _wathan,
}


def get_one_rm(weight: float, reps: int, formula: OneRm = OneRm.EPLEY) -> float:
    """Return the estimated 1RM for ``weight`` lifted ``reps`` times.

    A single rep is its own max.  Results are rounded to one decimal so
    equal lifts compare equal regardless of floating point noise.
    """

    if reps <= 1:
        return round(float(weight), 1)
    return round(_FORMULAS[OneRm(formula)](weight, reps), 1)


def get_formula(formula: OneRm | int = OneRm.EPLEY) -> OneRmFormula:
    """Return an estimator bound to ``formula``."""

    selected = OneRm(formula)
    return lambda weight, reps: get_one_rm(weight, reps, selected)
