"""Set and exercise sequencing for an active workout.

Supersets are performed round-robin per set index: set 1 of every member,
then set 2 of every member and so on.  The group ends only when the last
member finishes its final set.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional

from session_engine import DEFAULT_SUPERSET_SIZE
from session_engine.models import Superset, WorkoutExercise


@dataclass(frozen=True)
class Position:
    """Where the user is in the workout.

    ``workout_exercise_number`` is a 0-based index into the session's
    exercise instance ids and ``set_number`` is 1-based.
    """

    workout_exercise_number: int = 0
    set_number: int = 1
    superset: Optional[Superset] = None

    def to_dict(self) -> dict:
        return {
            "workout_exercise_number": self.workout_exercise_number,
            "set_number": self.set_number,
            "superset": self.superset.to_dict() if self.superset else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Position":
        return cls(
            workout_exercise_number=data.get("workout_exercise_number", 0),
            set_number=data.get("set_number", 1),
            superset=Superset.from_dict(data.get("superset")),
        )


def advance(position: Position, set_count: int) -> Position:
    """Return the position following a completed set.

    ``set_count`` is the number of sets of the exercise instance the set was
    recorded for.
    """

    k = position.workout_exercise_number
    set_number = position.set_number
    superset = position.superset

    if superset is None:
        if set_number >= set_count:
            return Position(k + 1, 1, None)
        return Position(k, set_number + 1, None)

    size, current = superset.size, superset.current
    if set_number >= set_count and current == size:
        return Position(k + 1, 1, None)
    if current == size:
        return Position(k - (size - 1), set_number + 1, Superset(size=size, current=1))
    return Position(k + 1, set_number, Superset(size=size, current=current + 1))


def enter_exercise(
    position: Position,
    workout_exercise: WorkoutExercise,
    superset_size: int = DEFAULT_SUPERSET_SIZE,
) -> Position:
    """Apply the rules for arriving at ``workout_exercise``.

    Outside a superset the set number restarts at 1, and an instance flagged
    as a superset opens a new group.  Inside a superset the position is left
    alone so the round-robin can continue.
    """

    if position.superset is not None:
        return position
    superset = (
        Superset(size=superset_size, current=1) if workout_exercise.superset else None
    )
    return replace(position, set_number=1, superset=superset)


def is_finished(position: Position, id_count: int) -> bool:
    """Return ``True`` once every exercise instance has been passed."""

    return position.workout_exercise_number >= id_count
