from __future__ import annotations

import sys
from datetime import date
from pathlib import Path

import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from db.database import Base  # noqa: E402
from db.models import User  # noqa: E402
from services import exercise_catalog  # noqa: E402
from services.exercise_catalog import BUILTIN_EXERCISES, BuiltinExerciseCatalog, ExerciseCatalog  # noqa: E402
from services.weekly_training import load_weekly_analysis  # noqa: E402
from services.workout_plan_service import ExerciseIndexError, InvalidDayError, WorkoutPlanStore  # noqa: E402


def _new_db():
    engine = create_engine("sqlite:///:memory:", connect_args={"check_same_thread": False})
    Base.metadata.create_all(bind=engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)()


def _new_user(db) -> User:
    user = User(username="lifter", display_name="Lifter")
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def _by_name(name: str):
    return next(ex for ex in BUILTIN_EXERCISES if ex.name == name)


def test_add_exercise_creates_day_plan_with_duration_and_groups():
    db = _new_db()
    user = _new_user(db)
    store = WorkoutPlanStore(db)

    store.add_exercise(user.id, "monday", _by_name("Push-ups"), 3, 12)
    plan = store.add_exercise(user.id, "Monday", _by_name("Bench Press"), 4, 8, rest_seconds=120)
    db.commit()

    assert plan.day_of_week == "Monday"
    assert [item.name for item in plan.exercises] == ["Push-ups", "Bench Press"]
    assert plan.target_muscle_groups == ["chest"]
    assert plan.estimated_duration_min == pytest.approx(3 * 3 + 4 * 4)
    assert list(store.get_weekly_plan(user.id)) == ["Monday"]


def test_complete_remove_and_summary():
    db = _new_db()
    user = _new_user(db)
    store = WorkoutPlanStore(db)
    store.add_exercise(user.id, "Tuesday", _by_name("Pull-ups"))
    store.add_exercise(user.id, "Tuesday", _by_name("Squats"))

    store.mark_exercise_completed(user.id, "Tuesday", 0, weight_kg=5, today=date(2026, 10, 20))
    summary = store.day_summary(user.id, "tue")
    assert summary == {
        "day_of_week": "Tuesday",
        "planned": 2,
        "completed": 1,
        "progress_pct": 50,
        "estimated_duration_min": 18.0,
    }

    plan = store.remove_exercise(user.id, "Tuesday", 1)
    assert [item.name for item in plan.exercises] == ["Pull-ups"]
    assert plan.target_muscle_groups == ["lats"]

    with pytest.raises(ExerciseIndexError):
        store.remove_exercise(user.id, "Tuesday", 5)
    with pytest.raises(InvalidDayError):
        store.get_day_plan(user.id, "Funday")


def test_roll_over_week_clears_stale_completions():
    db = _new_db()
    user = _new_user(db)
    store = WorkoutPlanStore(db)
    store.add_exercise(user.id, "Monday", _by_name("Plank"))
    store.mark_exercise_completed(user.id, "Monday", 0, today=date(2026, 10, 12))

    assert store.roll_over_week(user.id, date(2026, 10, 16)) == 0
    assert load_weekly_analysis(store, user.id, date(2026, 10, 16)).total_workouts == 1

    assert store.roll_over_week(user.id, date(2026, 10, 21)) == 1
    assert load_weekly_analysis(store, user.id, date(2026, 10, 21)).total_workouts == 0


def test_builtin_catalog_filters():
    catalog = BuiltinExerciseCatalog()
    assert [ex.name for ex in catalog.search("chest", "beginner")] == ["Push-ups"]
    assert [ex.name for ex in catalog.search(name="curl")] == ["Bicep Curls", "Hammer Curls"]
    assert catalog.search("tentacles") == []
    assert len(catalog.search()) == 10


def test_remote_catalog_parses_nested_payload():
    exercise_catalog.reset_circuit()
    payload = {
        "success": True,
        "data": {
            "exercises": [
                {
                    "exerciseId": "abc",
                    "name": "Cable Crossover",
                    "bodyParts": ["chest"],
                    "targetMuscles": ["pectorals"],
                    "equipments": ["cable"],
                    "instructions": ["Step one", "Step two"],
                },
                {"exerciseId": "def", "name": "Lat Pull", "bodyParts": ["back"], "targetMuscles": ["lats"]},
            ]
        },
    }
    transport = httpx.MockTransport(lambda request: httpx.Response(200, json=payload))
    catalog = ExerciseCatalog(base_url="https://catalog.test/api/v1", remote_enabled=True, transport=transport)

    results = catalog.search("chest")
    assert [ex.id for ex in results] == ["abc"]
    assert results[0].difficulty == "beginner"
    assert results[0].instructions == "Step one Step two"
    assert catalog.search("back", "intermediate")[0].name == "Lat Pull"


def test_remote_catalog_falls_back_to_builtin_on_error():
    exercise_catalog.reset_circuit()
    transport = httpx.MockTransport(lambda request: httpx.Response(503, text="down"))
    catalog = ExerciseCatalog(base_url="https://catalog.test/api/v1", remote_enabled=True, transport=transport)

    results = catalog.search("waist", "beginner")
    assert [ex.name for ex in results] == ["Plank", "Crunches"]
    exercise_catalog.reset_circuit()
