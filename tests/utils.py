from session_engine.models import Exercise, ExerciseSet, Workout, WorkoutExercise
from session_engine.store import EntityStore, new_id


class FakeClock:
    """Manually advanced replacement for ``time.time``."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def create_exercise(store: EntityStore, name: str) -> Exercise:
    exercise = Exercise(id=new_id(), name=name)
    store.put("exercises", exercise)
    return exercise


def create_instance(
    store: EntityStore,
    exercise: Exercise,
    sets: int = 3,
    superset: bool = False,
    **dimensions,
) -> WorkoutExercise:
    """Store an exercise instance with ``sets`` seed sets."""

    set_ids = []
    for _ in range(sets):
        seed = ExerciseSet(id=new_id(), exercise_id=exercise.id, initial=True, **dimensions)
        store.put("exercise_sets", seed)
        set_ids.append(seed.id)
    instance = WorkoutExercise(
        id=new_id(), exercise_id=exercise.id, set_ids=set_ids, superset=superset
    )
    store.put("workout_exercises", instance)
    return instance


def create_workout(store: EntityStore, name: str, instances) -> Workout:
    workout = Workout(
        id=new_id(), name=name, workout_exercise_ids=[i.id for i in instances]
    )
    store.put("workouts", workout)
    return workout
