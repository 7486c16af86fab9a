"""Record types stored in the entity store and carried by a session.

Every record converts to a JSON-friendly ``dict`` with :meth:`to_dict` and
back with :meth:`from_dict`.  Datetimes are written as ISO-8601 strings so
the same representation is used by the store and by the recovery snapshot.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from datetime import datetime
from enum import IntEnum
from typing import Any, Dict, List, Optional

# Measured dimensions of a set.  ``None`` means the dimension is not tracked
# for the exercise, which is different from a tracked value of zero.
SET_DIMENSIONS = (
    "weight",
    "reps",
    "time",
    "distance",
    "laps",
    "rpe",
    "rir",
    "rest",
    "cues",
)


class SetType(IntEnum):
    WORK = 0
    WARMUP = 1
    DROP = 2
    FAILURE = 3


class Side(IntEnum):
    LEFT = 1
    RIGHT = 2


def _dt_to_str(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _dt_from_str(value: Any) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


@dataclass(frozen=True)
class Exercise:
    id: int
    name: str
    tags: List[str] = field(default_factory=list)
    description: str = ""

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "tags": list(self.tags),
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Exercise":
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            tags=list(data.get("tags", [])),
            description=data.get("description", ""),
        )


@dataclass(frozen=True)
class Workout:
    id: int
    name: str
    workout_exercise_ids: List[int] = field(default_factory=list)
    days_of_week: List[int] = field(default_factory=list)
    color: Optional[str] = None
    order: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "workout_exercise_ids": list(self.workout_exercise_ids),
            "days_of_week": list(self.days_of_week),
            "color": self.color,
            "order": self.order,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Workout":
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            workout_exercise_ids=list(data.get("workout_exercise_ids", [])),
            days_of_week=list(data.get("days_of_week", [])),
            color=data.get("color"),
            order=data.get("order"),
        )


@dataclass(frozen=True)
class WorkoutExercise:
    """One exercise instance inside a workout.

    Instances are never edited once stored.  Changing ``set_ids`` goes
    through :meth:`with_set_ids`, which returns a copy under a new id so the
    stored record keeps describing exactly the sets that existed before.
    """

    id: int
    exercise_id: int
    set_ids: List[int] = field(default_factory=list)
    superset: bool = False

    def with_set_ids(self, new_id: int, set_ids: List[int]) -> "WorkoutExercise":
        return replace(self, id=new_id, set_ids=list(set_ids))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "exercise_id": self.exercise_id,
            "set_ids": list(self.set_ids),
            "superset": self.superset,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "WorkoutExercise":
        return cls(
            id=data["id"],
            exercise_id=data["exercise_id"],
            set_ids=list(data.get("set_ids", [])),
            superset=bool(data.get("superset", False)),
        )


@dataclass(frozen=True)
class ExerciseSet:
    id: int
    exercise_id: int
    type: SetType = SetType.WORK
    side: Optional[Side] = None
    weight: Optional[float] = None
    reps: Optional[int] = None
    time: Optional[float] = None
    distance: Optional[float] = None
    laps: Optional[int] = None
    rpe: Optional[float] = None
    rir: Optional[int] = None
    rest: Optional[int] = None
    cues: Optional[str] = None
    initial: bool = False
    date: Optional[datetime] = None
    set_number: Optional[int] = None

    def tracked_dimensions(self) -> List[str]:
        """Return the names of the dimensions present on this set."""

        return [name for name in SET_DIMENSIONS if getattr(self, name) is not None]

    def copy(self, **changes: Any) -> "ExerciseSet":
        return replace(self, **changes)

    def to_dict(self) -> dict:
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        data["type"] = int(self.type)
        data["side"] = int(self.side) if self.side is not None else None
        data["date"] = _dt_to_str(self.date)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "ExerciseSet":
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known}
        values["type"] = SetType(values.get("type") or 0)
        side = values.get("side")
        values["side"] = Side(side) if side else None
        values["date"] = _dt_from_str(values.get("date"))
        values["initial"] = bool(values.get("initial", False))
        return cls(**values)


@dataclass(frozen=True)
class WorkoutHistory:
    id: int
    user_name: str
    date: datetime
    workout_name: str
    workout_exercise_ids: List[int] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_name": self.user_name,
            "date": _dt_to_str(self.date),
            "workout_name": self.workout_name,
            "workout_exercise_ids": list(self.workout_exercise_ids),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "WorkoutHistory":
        return cls(
            id=data["id"],
            user_name=data.get("user_name", ""),
            date=_dt_from_str(data["date"]),
            workout_name=data.get("workout_name", ""),
            workout_exercise_ids=list(data.get("workout_exercise_ids", [])),
        )


@dataclass(frozen=True)
class Superset:
    """Exercises grouped for round-robin execution.

    ``current`` is the 1-based member that is active and always lies within
    ``1..size``.
    """

    size: int
    current: int = 1

    def __post_init__(self) -> None:
        if self.size < 1 or not 1 <= self.current <= self.size:
            raise ValueError(
                f"Invalid superset state current={self.current} size={self.size}"
            )

    def to_dict(self) -> dict:
        return {"size": self.size, "current": self.current}

    @classmethod
    def from_dict(cls, data: dict | None) -> "Superset | None":
        if not data:
            return None
        return cls(size=data["size"], current=data["current"])


@dataclass(frozen=True)
class PB:
    exercise: str
    record_type: str
    value: float

    def to_dict(self) -> dict:
        return {
            "exercise": self.exercise,
            "record_type": self.record_type,
            "value": self.value,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PB":
        return cls(data["exercise"], data["record_type"], data["value"])


@dataclass(frozen=True)
class PostWorkout:
    time_started: datetime
    time_finished: datetime
    workout_name: str
    pbs: List[PB] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "time_started": _dt_to_str(self.time_started),
            "time_finished": _dt_to_str(self.time_finished),
            "workout_name": self.workout_name,
            "pbs": [pb.to_dict() for pb in self.pbs],
        }

    @classmethod
    def from_dict(cls, data: dict | None) -> "PostWorkout | None":
        if not data:
            return None
        return cls(
            time_started=_dt_from_str(data["time_started"]),
            time_finished=_dt_from_str(data["time_finished"]),
            workout_name=data.get("workout_name", ""),
            pbs=[PB.from_dict(pb) for pb in data.get("pbs", [])],
        )


# Table name -> record class, used by the store to rebuild records.
RECORD_TYPES: Dict[str, type] = {
    "exercises": Exercise,
    "workouts": Workout,
    "workout_exercises": WorkoutExercise,
    "exercise_sets": ExerciseSet,
    "workout_history": WorkoutHistory,
}
