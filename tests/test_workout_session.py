import sqlite3

import pytest

from session_engine import FREE_TRAINING_NAME, settings
from session_engine import store as store_module
from session_engine.models import Superset
from session_engine.progression import Position
from session_engine.store import StoreError
from tests.utils import create_exercise, create_instance, create_workout


def _position(session):
    return Position(
        session.current_workout_exercise_number,
        session.current_set_number,
        session.superset,
    )


def test_free_training_scenario(store, session):
    session.start_workout()
    squat = create_exercise(store, "Squat")
    session.add_exercise(create_instance(store, squat, sets=3, weight=0, reps=0))
    assert session.current_workout.name == FREE_TRAINING_NAME

    session.save_set(session.current_set.copy(weight=100, reps=5))
    assert _position(session) == Position(0, 2)
    assert sorted(pb.record_type for pb in session.pbs) == ["one_rm", "volume", "weight"]

    session.save_set(session.current_set.copy(weight=90, reps=5))
    assert _position(session) == Position(0, 3)
    assert len(session.pbs) == 3

    session.save_set(session.current_set.copy(weight=100, reps=5))
    assert len(session.pbs) == 3
    assert session.workout_finished
    assert session.current_workout_exercise is None


def test_save_set_replaces_instance_identity(store, session):
    bench = create_exercise(store, "Bench Press")
    inst = create_instance(store, bench, sets=2, weight=60, reps=8)
    other = create_instance(store, create_exercise(store, "Row"), sets=1)
    session.start_workout(create_workout(store, "Push", [inst, other]))

    session.save_set(session.current_set.copy(weight=62.5))
    new_id = session.workout_exercise_ids[0]
    assert new_id != inst.id
    assert inst.id not in session.workout_exercise_ids
    assert session.workout_exercise_ids[1] == other.id
    assert session.current_workout_history.workout_exercise_ids == session.workout_exercise_ids

    # the old record still describes the sets as they were
    assert store.get("workout_exercises", inst.id) == inst
    updated = store.get("workout_exercises", new_id)
    saved = store.get("exercise_sets", updated.set_ids[0])
    assert not saved.initial
    assert saved.weight == 62.5
    assert saved.set_number == 1
    assert updated.set_ids[1] == inst.set_ids[1]


def test_add_and_remove_set_churn_identity(store, session):
    bench = create_exercise(store, "Bench Press")
    inst = create_instance(store, bench, sets=3, weight=60, reps=8)
    session.start_workout(create_workout(store, "Push", [inst]))

    session.add_set()
    after_add = session.current_workout_exercise
    assert after_add.id != inst.id
    assert session.workout_exercise_ids == [after_add.id]
    assert len(after_add.set_ids) == 4
    assert session.current_set_number == 4
    assert session.current_set.initial
    assert session.current_set.weight == 60

    session.set_current_set_number(2)
    session.remove_set()
    after_remove = session.current_workout_exercise
    assert after_remove.id not in (inst.id, after_add.id)
    assert session.workout_exercise_ids == [after_remove.id]
    assert after_remove.set_ids == [after_add.set_ids[0]] + after_add.set_ids[2:]
    assert session.current_set_number == 1


def test_last_set_cannot_be_removed(store, session):
    inst = create_instance(store, create_exercise(store, "Plank"), sets=1, time=60)
    session.start_workout(create_workout(store, "Core", [inst]))
    session.remove_set()
    assert session.workout_exercise_ids == [inst.id]


def test_superset_sequence_through_session(store, session):
    a = create_instance(store, create_exercise(store, "Curl"), sets=2, superset=True, weight=10, reps=10)
    b = create_instance(store, create_exercise(store, "Pushdown"), sets=2, weight=20, reps=10)
    c = create_instance(store, create_exercise(store, "Plank"), sets=1, time=60)
    session.start_workout(create_workout(store, "Arms", [a, b, c]))
    assert _position(session) == Position(0, 1, Superset(size=2, current=1))

    seen = []
    for _ in range(4):
        session.save_set(session.current_set)
        seen.append(_position(session))
    assert seen == [
        Position(1, 1, Superset(size=2, current=2)),
        Position(0, 2, Superset(size=2, current=1)),
        Position(1, 2, Superset(size=2, current=2)),
        Position(2, 1, None),
    ]
    assert session.current_set.time == 60
    assert not session.workout_finished


def test_in_session_template_reuse(store, session):
    squat = create_exercise(store, "Squat")
    first = create_instance(store, squat, sets=1, weight=60, reps=5)
    again = create_instance(store, squat, sets=2, weight=60, reps=5)
    session.start_workout(create_workout(store, "Legs", [first, again]))

    session.save_set(session.current_set.copy(weight=80))
    assert session.current_workout_exercise.id == again.id
    assert session.current_set.weight == 80
    assert not session.current_set.initial

    session.set_current_set_number(2)
    assert session.current_set.weight == 60
    assert session.current_set.initial


def test_store_failure_leaves_state_untouched(store, session, monkeypatch):
    inst = create_instance(store, create_exercise(store, "Squat"), sets=2, weight=60, reps=5)
    session.start_workout(create_workout(store, "Legs", [inst]))
    before = session.export_state()

    real_put = store_module._put_record

    def failing_put(conn, table, record):
        if table == "workout_exercises":
            raise sqlite3.OperationalError("database is locked")
        return real_put(conn, table, record)

    monkeypatch.setattr(store_module, "_put_record", failing_put)
    with pytest.raises(StoreError):
        session.save_set(session.current_set.copy(weight=100, rest=60))

    assert session.export_state() == before
    assert session.pbs == []
    assert not session.rest.running
    assert store.query("exercise_sets", "exercise_id", inst.exercise_id) == [
        store.get("exercise_sets", sid) for sid in inst.set_ids
    ]


def test_save_set_starts_rest(store, session, clock):
    inst = create_instance(store, create_exercise(store, "Squat"), sets=2, weight=60, reps=5)
    session.start_workout(create_workout(store, "Legs", [inst]))
    session.save_set(session.current_set.copy(rest=90))
    clock.advance(30)
    assert session.rest_remaining() == 60
    session.set_rest_time(100)
    assert session.rest_remaining() == 70
    session.stop_rest()
    assert session.rest_remaining() == 0


def test_save_set_without_rest_leaves_timer_alone(store, session):
    inst = create_instance(store, create_exercise(store, "Squat"), sets=2, weight=60, reps=5)
    session.start_workout(create_workout(store, "Legs", [inst]))
    session.save_set(session.current_set.copy(rest=0))
    assert not session.rest.running


def test_stop_workout_is_idempotent(store, session):
    inst = create_instance(store, create_exercise(store, "Squat"), sets=2, weight=60, reps=5)
    session.start_workout(create_workout(store, "Legs", [inst]))
    session.save_set(session.current_set.copy(weight=100))
    pbs = list(session.pbs)

    session.stop_workout()
    summary = session.post_workout
    session.stop_workout()

    records = store.query("workout_history", "user_name", "Tester")
    assert len(records) == 1
    assert records[0].workout_name == "Legs"
    assert records[0].workout_exercise_ids[0] != inst.id
    assert session.post_workout is summary
    assert summary.pbs == pbs
    assert summary.workout_name == "Legs"
    assert not session.is_active
    assert session.pbs == []


def test_stop_without_sets_discards_history(store, session):
    inst = create_instance(store, create_exercise(store, "Squat"), sets=2, weight=60, reps=5)
    session.start_workout(create_workout(store, "Legs", [inst]))
    session.stop_workout()
    assert store.query("workout_history", "user_name", "Tester") == []
    assert session.post_workout is not None


def test_idle_session_is_stopped_on_tick(store, session, clock):
    inst = create_instance(store, create_exercise(store, "Squat"), sets=2, weight=60, reps=5)
    session.start_workout(create_workout(store, "Legs", [inst]))
    session.save_set(session.current_set)
    clock.advance(3600)
    session.tick()
    assert session.is_active
    clock.advance(1)
    session.tick()
    assert not session.is_active
    assert len(store.query("workout_history", "user_name", "Tester")) == 1
    # an explicit stop racing the automatic one does nothing
    session.stop_workout()
    assert len(store.query("workout_history", "user_name", "Tester")) == 1


def test_autostop_follows_settings(store, session, clock):
    settings.set_value("autostop", False)
    session.start_workout()
    clock.advance(10_000)
    session.tick()
    assert session.is_active

    settings.set_value("autostop", True)
    settings.set_value("autostop_seconds", 60)
    session.start_workout()
    clock.advance(61)
    session.tick()
    assert not session.is_active


def test_tick_clears_expired_rest(session, clock):
    session.start_workout()
    session.start_rest(30)
    clock.advance(31)
    session.tick()
    assert not session.rest.running
    assert session.is_active


def test_start_clears_pbs_and_superset(store, session):
    a = create_instance(store, create_exercise(store, "Curl"), sets=2, superset=True, weight=10, reps=10)
    b = create_instance(store, create_exercise(store, "Pushdown"), sets=2, weight=20, reps=10)
    workout = create_workout(store, "Arms", [a, b])
    session.start_workout(workout)
    session.save_set(session.current_set)
    assert session.pbs

    session.start_workout()
    assert session.pbs == []
    assert session.superset is None
    assert session.current_workout is None


def test_add_exercise_to_followed_workout(store, session):
    inst = create_instance(store, create_exercise(store, "Squat"), sets=1, weight=60, reps=5)
    session.start_workout(create_workout(store, "Legs", [inst]))
    extra = create_instance(store, create_exercise(store, "Lunge"), sets=2, reps=10)

    session.add_exercise(extra)
    assert session.workout_exercise_ids == [inst.id, extra.id]
    assert _position(session) == Position(1, 1)
    assert session.focused_exercise.name == "Lunge"
    assert session.current_workout_history.workout_name == FREE_TRAINING_NAME


def test_add_exercise_without_session_opens_free_training(store, session):
    inst = create_instance(store, create_exercise(store, "Squat"), sets=1, weight=60, reps=5)
    session.add_exercise(inst)
    assert session.is_active
    assert session.current_workout.workout_exercise_ids == [inst.id]
    assert session.current_workout_history.workout_name == FREE_TRAINING_NAME


def test_replace_exercise(store, session):
    a = create_instance(store, create_exercise(store, "Curl"), sets=2, superset=True, weight=10, reps=10)
    b = create_instance(store, create_exercise(store, "Pushdown"), sets=2, weight=20, reps=10)
    session.start_workout(create_workout(store, "Arms", [a, b]))
    hammer = create_instance(store, create_exercise(store, "Hammer Curl"), sets=3, weight=12, reps=10)

    session.replace_exercise(hammer)
    assert session.workout_exercise_ids == [hammer.id, b.id]
    assert session.superset is None
    assert session.current_set_number == 1
    assert session.focused_exercise.name == "Hammer Curl"
    assert session.current_set.weight == 12


def test_navigation(store, session):
    a = create_instance(store, create_exercise(store, "Squat"), sets=3, weight=60, reps=5)
    b = create_instance(store, create_exercise(store, "Lunge"), sets=2, reps=10)
    session.start_workout(create_workout(store, "Legs", [a, b]))

    session.set_current_set_number(10)
    assert session.current_set_number == 3
    session.set_current_workout_exercise_number(1)
    assert _position(session) == Position(1, 1)
    assert session.focused_exercise.name == "Lunge"
    session.set_current_workout_exercise_number(5)
    assert session.workout_finished
    session.set_current_workout_exercise_number(0)
    assert not session.workout_finished
    assert session.focused_exercise.name == "Squat"


def test_operations_without_exercise_are_ignored(session):
    session.save_set(None)
    session.add_set()
    session.remove_set()
    session.set_current_set_number(2)
    session.stop_workout()
    assert not session.is_active
    assert session.post_workout is None


def test_history_excludes_seed_sets(store, session):
    squat = create_exercise(store, "Squat")
    inst = create_instance(store, squat, sets=2, weight=500, reps=1)
    session.start_workout(create_workout(store, "Legs", [inst]))
    assert session.current_exercise_history == []

    session.save_set(session.current_set.copy(weight=100))
    assert [s.weight for s in session.current_exercise_history] == [100]
    assert session.pbs[0].value == 100


def test_repeated_instance_is_replaced_at_current_slot(store, session):
    inst = create_instance(store, create_exercise(store, "Squat"), sets=2, weight=60, reps=5)
    session.start_workout()
    session.add_exercise(inst)
    session.add_exercise(inst)
    assert session.workout_exercise_ids == [inst.id, inst.id]

    session.save_set(session.current_set.copy(weight=80))
    first, second = session.workout_exercise_ids
    assert first == inst.id
    assert second != inst.id
    assert second == session.current_workout_exercise.id
    saved = store.get("exercise_sets", store.get("workout_exercises", second).set_ids[0])
    assert saved.weight == 80

    session.set_current_workout_exercise_number(0)
    session.add_set()
    assert inst.id not in session.workout_exercise_ids
    assert session.workout_exercise_ids[1] == second


def test_failed_automatic_stop_is_retried(store, session, clock, monkeypatch):
    inst = create_instance(store, create_exercise(store, "Squat"), sets=2, weight=60, reps=5)
    session.start_workout(create_workout(store, "Legs", [inst]))
    session.save_set(session.current_set)
    clock.advance(3601)

    real_put = store_module._put_record

    def failing_put(conn, table, record):
        if table == "workout_history":
            raise sqlite3.OperationalError("disk I/O error")
        return real_put(conn, table, record)

    monkeypatch.setattr(store_module, "_put_record", failing_put)
    session.tick()
    assert session.is_active
    assert session.post_workout is None

    monkeypatch.setattr(store_module, "_put_record", real_put)
    session.tick()
    assert not session.is_active
    assert len(store.query("workout_history", "user_name", "Tester")) == 1
