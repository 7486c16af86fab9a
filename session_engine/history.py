"""Read-only views over recorded workouts.

Seed sets (``initial=True``) are templates copied forward for convenience;
none of the views here ever report them as performed.
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, List

from session_engine.models import ExerciseSet, WorkoutHistory
from session_engine.store import EntityStore


def _history_sort_key(item: ExerciseSet):
    # newest day first, then set order within the day
    date = item.date or datetime.min
    return (-date.toordinal(), item.set_number or 0, date)


def sort_history(sets: Iterable[ExerciseSet]) -> List[ExerciseSet]:
    """Return ``sets`` ordered by workout day (newest first) then set number."""

    return sorted(sets, key=_history_sort_key)


def exercise_history(store: EntityStore, exercise_id: int) -> List[ExerciseSet]:
    """Return every performed set of ``exercise_id``."""

    sets = store.query("exercise_sets", "exercise_id", exercise_id)
    return sort_history(it for it in sets if not it.initial)


def has_recorded_sets(store: EntityStore, workout_exercise_ids: List[int]) -> bool:
    """Return ``True`` if any instance references a performed set."""

    instances = store.bulk_get("workout_exercises", workout_exercise_ids)
    set_ids = [sid for inst in instances if inst for sid in inst.set_ids]
    sets = store.bulk_get("exercise_sets", set_ids)
    return any(it is not None and not it.initial for it in sets)


def get_session_history(
    store: EntityStore, user_name: str, limit: int | None = None
) -> List[WorkoutHistory]:
    """Return completed workouts of ``user_name``, most recent first."""

    items = sorted(
        store.query("workout_history", "user_name", user_name),
        key=lambda h: h.date,
        reverse=True,
    )
    return items[:limit] if limit is not None else items


def get_session_details(store: EntityStore, history_id: int) -> dict:
    """Return the exercises and performed sets of one completed workout.

    The mapping contains ``workout_name``, ``date`` and ``exercises``; each
    exercise entry has its ``name`` and the list of performed ``sets``.  An
    unknown ``history_id`` yields an empty mapping.
    """

    record = store.get("workout_history", history_id)
    if record is None:
        return {}
    instances = store.bulk_get("workout_exercises", record.workout_exercise_ids)
    exercises: list[dict] = []
    for inst in instances:
        if inst is None:
            continue
        exercise = store.get("exercises", inst.exercise_id)
        sets = [
            it
            for it in store.bulk_get("exercise_sets", inst.set_ids)
            if it is not None and not it.initial
        ]
        exercises.append(
            {
                "name": exercise.name if exercise else "",
                "sets": sets,
            }
        )
    return {
        "workout_name": record.workout_name,
        "date": record.date,
        "exercises": exercises,
    }
