"""Personal best detection for newly performed sets."""

from __future__ import annotations

from typing import Iterable, List

from session_engine.models import PB, ExerciseSet
from session_engine.one_rm import OneRmFormula, get_formula

WEIGHT = "weight"
VOLUME = "volume"
ONE_RM = "one_rm"
LAPS = "laps"


def detect_pbs(
    exercise_name: str,
    new_set: ExerciseSet,
    history: Iterable[ExerciseSet],
    one_rm: OneRmFormula | None = None,
) -> List[PB]:
    """Return the personal bests ``new_set`` sets for ``exercise_name``.

    ``history`` must not contain ``new_set`` itself.  Seed sets are ignored
    whatever their values.  Each dimension is judged on its own, so a single
    set can produce several records, and a value that only ties the best
    recorded value is not a record.
    """

    estimate = one_rm or get_formula()
    performed = [it for it in history if not it.initial]
    weight, reps, laps = new_set.weight, new_set.reps, new_set.laps
    pbs: List[PB] = []

    if weight:
        if not any(it.weight and it.weight >= weight for it in performed):
            pbs.append(PB(exercise_name, WEIGHT, weight))

    if weight and reps:
        volume = weight * reps
        if not any(
            it.weight and it.reps and it.weight * it.reps >= volume
            for it in performed
        ):
            pbs.append(PB(exercise_name, VOLUME, volume))

        best = estimate(weight, reps)
        if not any(
            it.weight and it.reps and estimate(it.weight, it.reps) >= best
            for it in performed
        ):
            pbs.append(PB(exercise_name, ONE_RM, best))

    if laps:
        if not any(it.laps and it.laps >= laps for it in performed):
            pbs.append(PB(exercise_name, LAPS, laps))

    return pbs
