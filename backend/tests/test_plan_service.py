from __future__ import annotations

import json
import sys
from datetime import date, datetime, timedelta
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from db.database import Base  # noqa: E402
from db.models import (  # noqa: E402
    ExerciseLog,
    FoodLog,
    HealthPlan,
    HydrationLog,
    SleepLog,
    User,
    UserSettings,
)
from services.goal_stores import GoalStores, SleepTarget  # noqa: E402
from services.plan_service import (  # noqa: E402
    PlanGenerationError,
    UserNotFoundError,
    count_history_entries,
    generate_plan,
    get_current_plan,
    plan_to_dict,
    switch_plan,
)


def _new_db():
    engine = create_engine("sqlite:///:memory:", connect_args={"check_same_thread": False})
    Base.metadata.create_all(bind=engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)()


def _new_user(db, username: str = "plan_tester", health_goal: str = "Improve Fitness") -> User:
    user = User(username=username, display_name="Plan Tester")
    user.settings = UserSettings(
        age=30,
        sex="male",
        height_cm=170,
        current_weight_kg=70,
        activity_level="moderate",
        health_goal=health_goal,
        timezone="UTC",
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def _seed_history(db, user_id: int) -> None:
    now = datetime(2026, 10, 18, 12, 0)
    db.add(FoodLog(user_id=user_id, logged_at=now, items=json.dumps([{"name": "oats"}]), calories=350))
    db.add(HydrationLog(user_id=user_id, logged_at=now, amount_ml=500))
    db.add(SleepLog(user_id=user_id, sleep_start=now - timedelta(hours=8), sleep_end=now, duration_minutes=480))
    db.add(ExerciseLog(user_id=user_id, logged_at=now, exercise_type="run", duration_minutes=30))
    db.commit()


def test_generate_plan_writes_every_target_store():
    db = _new_db()
    user = _new_user(db)

    plan = generate_plan(db, user, "Improve Fitness", on_date=date(2026, 10, 19))
    db.commit()

    stores = GoalStores.for_session(db)
    nutrition = stores.nutrition.get_goals(user.id, date(2026, 10, 19))
    hydration = stores.hydration.get_goals(user.id)
    sleep = stores.sleep.get_goals(user.id)

    assert nutrition is not None and nutrition.calorie_goal == 2507
    assert hydration is not None and hydration.daily_target_ml == 2450
    assert sleep == SleepTarget(target_sleep_minutes=480, target_bedtime="22:00", target_wake_time="06:00")
    payload = plan_to_dict(plan)
    assert payload["health_goal"] == "Improve Fitness"
    assert payload["workouts_per_week"] == 4
    assert payload["recommended_focus"] == ["cardio", "full body", "core", "legs"]


def test_better_sleep_wake_time_is_nine_hours_after_bedtime():
    db = _new_db()
    user = _new_user(db, "sleeper", health_goal="Better Sleep")
    generate_plan(db, user)
    db.commit()

    sleep = GoalStores.for_session(db).sleep.get_goals(user.id)
    assert sleep.target_sleep_minutes == 540
    assert sleep.target_wake_time == "07:00"


def test_nutrition_goals_carry_forward_and_keep_history():
    db = _new_db()
    user = _new_user(db)
    generate_plan(db, user, "Improve Fitness", on_date=date(2026, 10, 1))
    switch_plan(db, user.id, "Lose Weight", on_date=date(2026, 10, 10))
    db.commit()

    nutrition = GoalStores.for_session(db).nutrition
    assert nutrition.get_goals(user.id, date(2026, 9, 30)) is None
    assert nutrition.get_goals(user.id, date(2026, 10, 5)).calorie_goal == 2507
    assert nutrition.get_goals(user.id, date(2026, 10, 12)).calorie_goal == 2006


def test_switch_plan_preserves_history_and_replaces_plan():
    db = _new_db()
    user = _new_user(db)
    generate_plan(db, user)
    db.commit()
    _seed_history(db, user.id)
    before = count_history_entries(db, user.id)

    plan = switch_plan(db, user.id, "Build Muscle")
    db.commit()

    assert count_history_entries(db, user.id) == before == {"meals": 1, "water": 1, "sleep": 1, "workouts": 1}
    assert db.query(HealthPlan).filter(HealthPlan.user_id == user.id).count() == 1
    assert get_current_plan(db, user.id).id == plan.id
    assert plan.health_goal == "Build Muscle"
    db.refresh(user)
    assert user.settings.health_goal == "Build Muscle"


def test_switch_to_unknown_goal_keeps_declared_label():
    db = _new_db()
    user = _new_user(db)
    generate_plan(db, user, on_date=date(2026, 10, 19))
    db.commit()

    plan = switch_plan(db, user.id, "Run a Marathon", on_date=date(2026, 10, 19))
    db.commit()

    stores = GoalStores.for_session(db)
    db.refresh(user)
    assert plan.health_goal == user.settings.health_goal == "Run a Marathon"
    assert stores.hydration.get_goals(user.id).health_goal == "Run a Marathon"
    # Coefficients still come from the default policy.
    assert plan.workouts_per_week == 3
    assert json.loads(plan.nutrition_goals)["calorie_goal"] == 2507


def test_stored_nutrition_goals_carry_user_id():
    db = _new_db()
    user = _new_user(db)
    plan = generate_plan(db, user, on_date=date(2026, 10, 19))
    db.commit()

    assert json.loads(plan.nutrition_goals)["user_id"] == user.id
    assert GoalStores.for_session(db).nutrition.get_goals(user.id, date(2026, 10, 20)).user_id == user.id


def test_switch_plan_leaves_other_users_alone():
    db = _new_db()
    first = _new_user(db, "first")
    second = _new_user(db, "second")
    generate_plan(db, first)
    generate_plan(db, second)
    db.commit()

    switch_plan(db, first.id, "Reduce Stress")
    db.commit()

    assert get_current_plan(db, second.id).health_goal == "Improve Fitness"


def test_switch_plan_unknown_user():
    db = _new_db()
    with pytest.raises(UserNotFoundError):
        switch_plan(db, 999, "Lose Weight")


def test_get_current_plan_prefers_most_recent_duplicate():
    db = _new_db()
    user = _new_user(db)
    older = generate_plan(db, user)
    older.created_at = datetime(2026, 1, 1)
    newer = generate_plan(db, user, "Lose Weight")
    newer.created_at = datetime(2026, 6, 1)
    db.commit()

    assert get_current_plan(db, user.id).id == newer.id
    assert get_current_plan(db, 12345) is None


class _FailingSleepStore:
    def set_goals(self, user_id, value):  # noqa: ANN001
        raise RuntimeError("sleep store offline")


def test_partial_failure_raises_and_rolls_back():
    db = _new_db()
    user = _new_user(db)
    stores = GoalStores.for_session(db)
    stores.sleep = _FailingSleepStore()

    with pytest.raises(PlanGenerationError) as excinfo:
        generate_plan(db, user, stores=stores)
    db.rollback()

    assert excinfo.value.failed_target == "sleep"
    assert excinfo.value.completed == ["nutrition", "hydration"]
    assert GoalStores.for_session(db).hydration.get_goals(user.id) is None
    assert get_current_plan(db, user.id) is None
