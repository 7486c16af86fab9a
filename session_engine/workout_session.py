"""The live workout session.

:class:`WorkoutSession` owns every piece of state of the workout being
performed: which exercise instance and set are active, the superset round,
personal bests found so far, the rest countdown and the templates reused
within the session.  Each mutating method persists a recovery snapshot once
its effects are applied, so the session can be resumed after the app is
closed or crashes.

Mutations are ignored while the session is not :attr:`~WorkoutSession.ready`
and whenever what they refer to is missing (no active workout, no current
exercise instance).  Errors from the entity store propagate to the caller
and leave the in-memory state exactly as it was.
"""

from __future__ import annotations

import logging
import time
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from session_engine import FREE_TRAINING_NAME, settings
from session_engine.history import exercise_history, has_recorded_sets
from session_engine.models import (
    PB,
    Exercise,
    ExerciseSet,
    PostWorkout,
    Superset,
    Workout,
    WorkoutExercise,
    WorkoutHistory,
)
from session_engine.one_rm import OneRmFormula, get_formula
from session_engine.pbs import detect_pbs
from session_engine.progression import Position, advance, enter_exercise, is_finished
from session_engine.recovery import SessionRecovery
from session_engine.rest_timer import RestTimer
from session_engine.store import EntityStore, StoreError, new_id

SET_TABLES = ("exercise_sets", "workout_exercises")


def _ts_to_str(value: float) -> str:
    return datetime.fromtimestamp(value, timezone.utc).isoformat()


def _ts_from_str(value: str) -> float:
    return datetime.fromisoformat(value).timestamp()


def _optional(cls, data):
    return cls.from_dict(data) if data else None


class WorkoutSession:
    """Controller for the workout currently being performed."""

    def __init__(
        self,
        store: EntityStore,
        recovery: SessionRecovery | None = None,
        *,
        user_name: str | None = None,
        one_rm: OneRmFormula | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.user_name = user_name or settings.get_value("user_name")
        self.recovery = recovery or SessionRecovery(user_name=self.user_name)
        self._one_rm = one_rm
        self._clock = clock
        self.ready = False
        self.post_workout: Optional[PostWorkout] = None
        self._clear_session()

    # ------------------------------------------------------------------
    # State helpers
    # ------------------------------------------------------------------

    def _clear_session(self) -> None:
        """Drop all per-workout state."""

        self.time_updated: float = self._clock()
        self.following_workout: Optional[Workout] = None
        self.current_workout: Optional[Workout] = None
        self.workout_exercise_ids: List[int] = []
        self.current_workout_history: Optional[WorkoutHistory] = None
        self.current_workout_exercise: Optional[WorkoutExercise] = None
        self.focused_exercise: Optional[Exercise] = None
        self.current_set: Optional[ExerciseSet] = None
        self.current_exercise_history: List[ExerciseSet] = []
        self.position = Position()
        self.rest = RestTimer()
        self.pbs: List[PB] = []
        self.stored_exercises: Dict[int, int] = {}
        self.show_finished = False

    def _now_dt(self) -> datetime:
        return datetime.fromtimestamp(self._clock())

    def _touch(self) -> None:
        self.time_updated = self._clock()

    def _blank_history(self, name: str | None = None) -> WorkoutHistory:
        return WorkoutHistory(
            id=new_id(),
            user_name=self.user_name,
            date=self._now_dt(),
            workout_name=name or FREE_TRAINING_NAME,
            workout_exercise_ids=[],
        )

    def _one_rm_formula(self) -> OneRmFormula:
        if self._one_rm is not None:
            return self._one_rm
        return get_formula(settings.get_value("one_rm") or 0)

    def _persist(self) -> None:
        if self.ready:
            self.recovery.save(self.export_state())

    def _has_current_exercise(self, operation: str) -> bool:
        if (
            self.ready
            and self.current_workout is not None
            and self.current_workout_history is not None
            and self.current_workout_exercise is not None
        ):
            return True
        logging.debug("%s ignored: no active exercise", operation)
        return False

    def _set_ids(self, ids: List[int]) -> None:
        self.workout_exercise_ids = ids
        if self.current_workout_history is not None:
            self.current_workout_history = replace(
                self.current_workout_history, workout_exercise_ids=list(ids)
            )

    def _replace_instance(self, old_id: int, instance: WorkoutExercise) -> None:
        """Swap ``old_id`` for ``instance`` at the current list position.

        The same instance may appear more than once, so the slot is taken
        from the position rather than searched for.
        """

        ids = list(self.workout_exercise_ids)
        slot = self.position.workout_exercise_number
        if not (0 <= slot < len(ids) and ids[slot] == old_id):
            slot = ids.index(old_id)
        ids[slot] = instance.id
        self._set_ids(ids)
        if self.current_workout_exercise and self.current_workout_exercise.id == old_id:
            self.current_workout_exercise = instance

    def _ensure_stored(self, instance: WorkoutExercise) -> None:
        if self.store.get("workout_exercises", instance.id) is None:
            self.store.put("workout_exercises", instance)

    # ------------------------------------------------------------------
    # Derived state
    # ------------------------------------------------------------------

    def _load_focused_exercise(self) -> None:
        inst = self.current_workout_exercise
        if inst is None:
            return
        if self.focused_exercise is None or self.focused_exercise.id != inst.exercise_id:
            exercise = self.store.get("exercises", inst.exercise_id)
            if exercise is not None:
                self.focused_exercise = exercise

    def _load_current_set(self) -> None:
        """Load the set template for the current set number.

        An earlier instance of the same exercise in this session takes
        precedence over the instance's own seed set.
        """

        inst = self.current_workout_exercise
        idx = self.position.set_number - 1
        if inst is None or not 0 <= idx < len(inst.set_ids):
            self.current_set = None
            return
        template = None
        stored_id = self.stored_exercises.get(inst.exercise_id)
        if stored_id is not None and stored_id != inst.id:
            stored = self.store.get("workout_exercises", stored_id)
            if stored is not None and idx < len(stored.set_ids):
                template = self.store.get("exercise_sets", stored.set_ids[idx])
        if template is None:
            template = self.store.get("exercise_sets", inst.set_ids[idx])
        self.current_set = template

    def _refresh_history(self) -> None:
        inst = self.current_workout_exercise
        if inst is None or self.current_workout_history is None:
            self.current_exercise_history = []
            return
        self.current_exercise_history = exercise_history(self.store, inst.exercise_id)

    def _enter_current_exercise(self) -> None:
        """Load the instance at the current position and apply entry rules."""

        if self.current_workout is None:
            self.current_workout_exercise = None
            self.current_set = None
            return
        if is_finished(self.position, len(self.workout_exercise_ids)):
            self.show_finished = True
            self.current_workout_exercise = None
            self.current_set = None
            return
        self.show_finished = False
        inst = self.store.get(
            "workout_exercises",
            self.workout_exercise_ids[self.position.workout_exercise_number],
        )
        if inst is None:
            logging.warning(
                "Workout exercise %s is missing from the store",
                self.workout_exercise_ids[self.position.workout_exercise_number],
            )
            return
        self.position = enter_exercise(self.position, inst)
        self.current_workout_exercise = inst
        self._load_focused_exercise()
        self._load_current_set()
        self._refresh_history()

    # ------------------------------------------------------------------
    # Read accessors
    # ------------------------------------------------------------------

    @property
    def current_workout_exercise_number(self) -> int:
        return self.position.workout_exercise_number

    @property
    def current_set_number(self) -> int:
        return self.position.set_number

    @property
    def superset(self) -> Optional[Superset]:
        return self.position.superset

    @property
    def time_started(self) -> Optional[datetime]:
        history = self.current_workout_history
        return history.date if history else None

    @property
    def is_active(self) -> bool:
        return self.current_workout_history is not None

    @property
    def workout_finished(self) -> bool:
        """``True`` once the last exercise instance has been passed."""

        return self.show_finished

    @property
    def rest_time(self) -> float:
        return self.rest.duration

    def rest_remaining(self, now: float | None = None) -> float:
        return self.rest.remaining(self._clock() if now is None else now)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(self) -> None:
        """Restore a saved session, then open the session for mutations.

        Restoring happens in two phases.  First every saved field is put
        back as it was, except the set number.  Then state derived from the
        store is reloaded, the set number is applied last and
        :attr:`ready` is set.  Nothing in between runs the effects of
        arriving at an exercise, so a restored superset or set number is
        never reset.
        """

        if self.ready:
            return
        state = self.recovery.load()
        if state is None:
            self.ready = True
            return
        try:
            set_number = self._restore_fields(state)
            self._rehydrate(set_number, state.get("current_set") is None)
        except (AttributeError, KeyError, TypeError, ValueError, IndexError):
            logging.exception("Discarding unusable session recovery")
            self.recovery.clear()
            self._clear_session()
            self.post_workout = None
            self.ready = True
            return
        self.ready = True
        logging.info(
            "Recovered workout session at exercise %s set %s",
            self.current_workout_exercise_number,
            self.current_set_number,
        )

    def _restore_fields(self, state: dict) -> int:
        self.time_updated = _ts_from_str(state["time_updated"])
        self.following_workout = _optional(Workout, state.get("following_workout"))
        self.current_workout = _optional(Workout, state.get("current_workout"))
        self.workout_exercise_ids = [int(i) for i in state.get("workout_exercise_ids", [])]
        self.current_workout_history = _optional(
            WorkoutHistory, state.get("current_workout_history")
        )
        self.current_workout_exercise = _optional(
            WorkoutExercise, state.get("current_workout_exercise")
        )
        self.focused_exercise = _optional(Exercise, state.get("focused_exercise"))
        self.current_set = _optional(ExerciseSet, state.get("current_set"))
        position = Position.from_dict(state["position"])
        self.position = replace(position, set_number=1)
        self.rest = RestTimer.from_dict(state.get("rest"))
        self.pbs = [PB.from_dict(pb) for pb in state.get("pbs", [])]
        # older snapshots store an empty list when nothing was recorded
        stored = state.get("stored_exercises") or {}
        self.stored_exercises = {int(k): int(v) for k, v in stored.items()}
        self.post_workout = PostWorkout.from_dict(state.get("post_workout"))
        self.show_finished = bool(state.get("show_finished", False))
        return position.set_number

    def _rehydrate(self, set_number: int, reload_set: bool) -> None:
        if (
            self.current_workout_exercise is None
            and self.current_workout is not None
            and not is_finished(self.position, len(self.workout_exercise_ids))
        ):
            self.current_workout_exercise = self.store.get(
                "workout_exercises",
                self.workout_exercise_ids[self.position.workout_exercise_number],
            )
        self._load_focused_exercise()
        self._refresh_history()
        self.position = replace(self.position, set_number=set_number)
        if reload_set:
            self._load_current_set()

    def start_workout(self, following_workout: Workout | None = None) -> None:
        """Begin a new session, optionally following a stored workout."""

        if not self.ready:
            return
        self._clear_session()
        self.current_workout_history = self._blank_history(
            following_workout.name if following_workout else None
        )
        self.following_workout = following_workout
        if following_workout is not None:
            workout = self.store.get("workouts", following_workout.id) or following_workout
            self.current_workout = workout
            self._set_ids(list(workout.workout_exercise_ids))
        self._enter_current_exercise()
        logging.info("Started workout %s", self.current_workout_history.workout_name)
        self._persist()

    def stop_workout(self) -> None:
        """Finish the session and record it if any set was performed.

        Calling this again once the session is cleared does nothing.
        """

        if not self.ready or self.current_workout_history is None:
            return
        ids = list(self.workout_exercise_ids)
        history = replace(self.current_workout_history, workout_exercise_ids=ids)
        recorded = has_recorded_sets(self.store, ids)
        if recorded:
            self.store.put("workout_history", history)
        self.post_workout = PostWorkout(
            time_started=history.date,
            time_finished=self._now_dt(),
            workout_name=history.workout_name,
            pbs=list(self.pbs),
        )
        self._clear_session()
        logging.info(
            "Stopped workout %s (%s)",
            history.workout_name,
            "saved" if recorded else "discarded, no sets recorded",
        )
        self._persist()

    def logout(self) -> None:
        """Forget the session and its recovery files without recording it."""

        self._clear_session()
        self.post_workout = None
        self.recovery.clear()

    def tick(self, now: float | None = None) -> None:
        """Evaluate the time based conditions of the session.

        Called from the shared periodic clock.  An expired rest is cleared,
        and an idle session is stopped once the configured threshold has
        passed without any mutation.
        """

        if not self.ready:
            return
        now = self._clock() if now is None else now
        if self.rest.expired(now):
            self.rest.stop()
            self._persist()
        if (
            self.is_active
            and settings.get_value("autostop")
            and now - self.time_updated > settings.get_value("autostop_seconds")
        ):
            logging.info("Stopping workout idle since %s", _ts_to_str(self.time_updated))
            try:
                self.stop_workout()
            except StoreError:
                logging.exception("Automatic stop failed, retrying on the next tick")

    # ------------------------------------------------------------------
    # Set mutations
    # ------------------------------------------------------------------

    def save_set(self, exercise_set: ExerciseSet) -> None:
        """Record ``exercise_set`` as performed for the current position.

        The set is written under a fresh id together with a copy of the
        owning exercise instance whose slot points at it, in one store
        transaction.  Personal bests are judged against the history as it
        was before this set.  Position, personal bests and the rest timer
        change only once the transaction has committed.
        """

        if not self._has_current_exercise("save_set"):
            return
        inst = self.current_workout_exercise
        idx = self.position.set_number - 1
        if not 0 <= idx < len(inst.set_ids):
            logging.debug("save_set ignored: no slot for set %s", idx + 1)
            return

        now = self._clock()
        saved = exercise_set.copy(
            id=new_id(),
            exercise_id=inst.exercise_id,
            initial=False,
            date=datetime.fromtimestamp(now),
            set_number=self.position.set_number,
        )
        previous = [
            it for it in exercise_history(self.store, inst.exercise_id) if it.id != saved.id
        ]
        self._load_focused_exercise()
        name = self.focused_exercise.name if self.focused_exercise else ""
        new_pbs = detect_pbs(name, saved, previous, self._one_rm_formula())

        set_ids = list(inst.set_ids)
        set_ids[idx] = saved.id
        updated = inst.with_set_ids(new_id(), set_ids)
        with self.store.transaction(SET_TABLES) as tx:
            tx.put("exercise_sets", saved)
            tx.put("workout_exercises", updated)

        self._replace_instance(inst.id, updated)
        self.stored_exercises[inst.exercise_id] = updated.id
        self.pbs.extend(new_pbs)
        self._touch()
        before = self.position.workout_exercise_number
        self.position = advance(self.position, len(updated.set_ids))
        if saved.rest:
            self.rest.start(saved.rest, now)
        if self.position.workout_exercise_number == before:
            self._load_current_set()
            self._refresh_history()
        else:
            self._enter_current_exercise()
        self._persist()

    def add_set(self) -> None:
        """Append a planned set copied from the current one and move to it."""

        if not self._has_current_exercise("add_set") or self.current_set is None:
            return
        inst = self.current_workout_exercise
        planned = self.current_set.copy(
            id=new_id(), initial=True, date=None, set_number=None
        )
        updated = inst.with_set_ids(new_id(), inst.set_ids + [planned.id])
        with self.store.transaction(SET_TABLES) as tx:
            tx.put("exercise_sets", planned)
            tx.put("workout_exercises", updated)

        self._replace_instance(inst.id, updated)
        self.position = replace(
            self.position, set_number=len(updated.set_ids), superset=None
        )
        self._touch()
        self._load_current_set()
        self._persist()

    def remove_set(self) -> None:
        """Drop the set slot at the current set number.

        The last remaining set of an instance cannot be removed.
        """

        if not self._has_current_exercise("remove_set") or self.current_set is None:
            return
        inst = self.current_workout_exercise
        if len(inst.set_ids) <= 1:
            return
        idx = self.position.set_number - 1
        set_ids = [sid for i, sid in enumerate(inst.set_ids) if i != idx]
        updated = inst.with_set_ids(new_id(), set_ids)
        with self.store.transaction(["workout_exercises"]) as tx:
            tx.put("workout_exercises", updated)

        self._replace_instance(inst.id, updated)
        self.position = replace(
            self.position,
            set_number=max(1, self.position.set_number - 1),
            superset=None,
        )
        self._touch()
        self._load_current_set()
        self._persist()

    # ------------------------------------------------------------------
    # Exercise mutations
    # ------------------------------------------------------------------

    def add_exercise(self, workout_exercise: WorkoutExercise) -> None:
        """Append ``workout_exercise`` and make it the current exercise.

        Without a current workout a free training workout is opened, which
        also starts a session if none is active.
        """

        if not self.ready:
            return
        self._ensure_stored(workout_exercise)
        if self.current_workout is None:
            history = self.current_workout_history
            self._clear_session()
            ids = [workout_exercise.id]
            self.current_workout = Workout(
                id=new_id(), name=FREE_TRAINING_NAME, workout_exercise_ids=ids
            )
            self.current_workout_history = history or self._blank_history()
        else:
            ids = list(self.workout_exercise_ids) + [workout_exercise.id]
            self.current_workout = replace(
                self.current_workout, name=FREE_TRAINING_NAME, workout_exercise_ids=ids
            )
        self.current_workout_history = replace(
            self.current_workout_history, workout_name=FREE_TRAINING_NAME
        )
        self._set_ids(ids)
        self.position = Position(len(ids) - 1, 1, None)
        self._touch()
        self._enter_current_exercise()
        self._persist()

    def replace_exercise(self, workout_exercise: WorkoutExercise) -> None:
        """Swap the current exercise instance for ``workout_exercise``."""

        if not self._has_current_exercise("replace_exercise"):
            return
        self._ensure_stored(workout_exercise)
        self._replace_instance(self.current_workout_exercise.id, workout_exercise)
        self.current_workout_exercise = workout_exercise
        self.position = replace(self.position, set_number=1, superset=None)
        self._touch()
        self._load_focused_exercise()
        self._load_current_set()
        self._refresh_history()
        self._persist()

    def record_exercise_template(self, exercise_id: int, workout_exercise_id: int) -> None:
        """Use ``workout_exercise_id`` as the set template for ``exercise_id``."""

        if not self.ready:
            return
        self.stored_exercises[exercise_id] = workout_exercise_id
        self._load_current_set()
        self._persist()

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def set_current_set_number(self, set_number: int) -> None:
        if not self._has_current_exercise("set_current_set_number"):
            return
        count = len(self.current_workout_exercise.set_ids)
        self.position = replace(self.position, set_number=min(max(set_number, 1), count))
        self._load_current_set()
        self._persist()

    def set_current_workout_exercise_number(self, number: int) -> None:
        """Move to exercise instance ``number``.

        ``number`` equal to the number of instances selects the finished
        position.
        """

        if not self.ready or self.current_workout is None:
            return
        number = min(max(number, 0), len(self.workout_exercise_ids))
        self.position = replace(self.position, workout_exercise_number=number)
        self._enter_current_exercise()
        self._persist()

    def set_show_finished(self, value: bool) -> None:
        if not self.ready:
            return
        self.show_finished = value
        self._persist()

    # ------------------------------------------------------------------
    # Rest
    # ------------------------------------------------------------------

    def start_rest(self, seconds: float) -> None:
        if not self.ready:
            return
        self.rest.start(seconds, self._clock())
        self._touch()
        self._persist()

    def stop_rest(self) -> None:
        if not self.ready:
            return
        self.rest.stop()
        self._touch()
        self._persist()

    def set_rest_time(self, seconds: float) -> None:
        """Change the length of the running rest, never below zero."""

        if not self.ready:
            return
        self.rest.set_duration(seconds)
        self._persist()

    def refetch_history(self) -> None:
        if not self.ready:
            return
        self._refresh_history()

    # ------------------------------------------------------------------
    # Persistence helpers
    # ------------------------------------------------------------------

    def export_state(self) -> dict:
        """Return a JSON-serialisable snapshot of the session."""

        def dump(record):
            return record.to_dict() if record is not None else None

        return {
            "time_updated": _ts_to_str(self.time_updated),
            "following_workout": dump(self.following_workout),
            "current_workout": dump(self.current_workout),
            "workout_exercise_ids": list(self.workout_exercise_ids),
            "current_workout_history": dump(self.current_workout_history),
            "current_workout_exercise": dump(self.current_workout_exercise),
            "focused_exercise": dump(self.focused_exercise),
            "current_set": dump(self.current_set),
            "position": self.position.to_dict(),
            "rest": self.rest.to_dict(),
            "pbs": [pb.to_dict() for pb in self.pbs],
            "stored_exercises": {
                str(k): v for k, v in self.stored_exercises.items()
            },
            "post_workout": dump(self.post_workout),
            "show_finished": self.show_finished,
        }
