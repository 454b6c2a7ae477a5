from __future__ import annotations

import json
import logging
from datetime import date
from typing import Any

from sqlalchemy.orm import Session

from db.models import (
    ExerciseLog,
    FoodLog,
    HealthPlan,
    HydrationLog,
    SleepLog,
    User,
    UserSettings,
)
from services.goal_policy import DEFAULT_POLICY_TABLE, GoalPolicyTable
from services.goal_stores import GoalStores, HydrationTarget, SleepTarget
from services.target_calculator import PersonalizedTargets, UserSnapshot, calculate_targets

logger = logging.getLogger(__name__)

_HISTORY_MODELS = {
    "meals": FoodLog,
    "water": HydrationLog,
    "sleep": SleepLog,
    "workouts": ExerciseLog,
}


class PlanGenerationError(RuntimeError):
    def __init__(self, failed_target: str, completed: list[str], cause: Exception):
        self.failed_target = failed_target
        self.completed = list(completed)
        self.cause = cause
        super().__init__(f"Failed to write {failed_target} targets: {cause}")


class UserNotFoundError(LookupError):
    pass


def _settings_for(db: Session, user_id: int) -> UserSettings | None:
    return db.query(UserSettings).filter(UserSettings.user_id == user_id).first()


def generate_plan(
    db: Session,
    user: User,
    health_goal: str | None = None,
    *,
    stores: GoalStores | None = None,
    policies: GoalPolicyTable = DEFAULT_POLICY_TABLE,
    on_date: date | None = None,
) -> HealthPlan:
    """Compute targets for ``user`` and write them to every goal store.

    Writes are flushed but not committed. The first failing write stops the
    sequence and raises ``PlanGenerationError``; the caller should roll back.
    """
    settings_row = user.settings if user.settings is not None else _settings_for(db, user.id)
    snapshot = UserSnapshot.from_settings(settings_row, health_goal)
    targets = calculate_targets(snapshot, policies=policies, on_date=on_date, user_id=user.id)
    stores = stores or GoalStores.for_session(db)

    steps = [
        ("nutrition", lambda: stores.nutrition.set_goals(user.id, targets.nutrition)),
        (
            "hydration",
            lambda: stores.hydration.set_goals(
                user.id,
                HydrationTarget(
                    daily_target_ml=targets.water_ml,
                    based_on_weight_kg=snapshot.weight_kg,
                    health_goal=targets.health_goal,
                    activity_level=snapshot.activity_level,
                ),
            ),
        ),
        ("sleep", lambda: stores.sleep.set_goals(user.id, SleepTarget.from_hours(targets.sleep_hours))),
        ("plan", lambda: _insert_plan(db, user.id, targets)),
    ]

    completed: list[str] = []
    plan: HealthPlan | None = None
    for name, write in steps:
        try:
            result = write()
        except Exception as exc:
            logger.error(
                f"Plan generation for user {user.id} failed at '{name}' "
                f"(completed: {', '.join(completed) or 'none'}): {exc}"
            )
            raise PlanGenerationError(name, completed, exc) from exc
        completed.append(name)
        if name == "plan":
            plan = result

    logger.info(f"Generated '{targets.health_goal}' plan for user {user.id}")
    return plan


def _insert_plan(db: Session, user_id: int, targets: PersonalizedTargets) -> HealthPlan:
    plan = HealthPlan(
        user_id=user_id,
        health_goal=targets.health_goal,
        nutrition_goals=json.dumps(targets.nutrition.to_dict()),
        workouts_per_week=targets.workouts_per_week,
        recommended_focus=json.dumps(list(targets.recommended_focus)),
        hydration_goal_ml=targets.water_ml,
        sleep_goal_hours=targets.sleep_hours,
    )
    db.add(plan)
    db.flush()
    return plan


def clear_plans(db: Session, user_id: int) -> int:
    """Two-phase delete of the user's plans: collect ids, then delete them."""
    plan_ids = [row.id for row in db.query(HealthPlan.id).filter(HealthPlan.user_id == user_id).all()]
    if not plan_ids:
        return 0
    deleted = db.query(HealthPlan).filter(HealthPlan.id.in_(plan_ids)).delete(synchronize_session=False)
    return int(deleted or 0)


def switch_plan(
    db: Session,
    user_id: int,
    new_health_goal: str,
    *,
    stores: GoalStores | None = None,
    policies: GoalPolicyTable = DEFAULT_POLICY_TABLE,
    on_date: date | None = None,
) -> HealthPlan:
    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise UserNotFoundError(f"User {user_id} not found")

    removed = clear_plans(db, user_id)

    settings_row = user.settings if user.settings is not None else _settings_for(db, user_id)
    if settings_row is None:
        settings_row = UserSettings(user_id=user_id)
        db.add(settings_row)
        user.settings = settings_row
    settings_row.health_goal = new_health_goal
    db.flush()

    logger.info(f"Switching user {user_id} to '{new_health_goal}' (removed {removed} plan(s))")
    return generate_plan(db, user, new_health_goal, stores=stores, policies=policies, on_date=on_date)


def get_current_plan(db: Session, user_id: int) -> HealthPlan | None:
    return (
        db.query(HealthPlan)
        .filter(HealthPlan.user_id == user_id)
        .order_by(HealthPlan.created_at.desc(), HealthPlan.id.desc())
        .first()
    )


def count_history_entries(db: Session, user_id: int) -> dict[str, int]:
    return {
        family: int(db.query(model).filter(model.user_id == user_id).count())
        for family, model in _HISTORY_MODELS.items()
    }


def plan_to_dict(plan: HealthPlan) -> dict[str, Any]:
    return {
        "id": plan.id,
        "user_id": plan.user_id,
        "health_goal": plan.health_goal,
        "nutrition_goals": json.loads(plan.nutrition_goals or "{}"),
        "workouts_per_week": plan.workouts_per_week,
        "recommended_focus": json.loads(plan.recommended_focus or "[]"),
        "hydration_goal_ml": plan.hydration_goal_ml,
        "sleep_goal_hours": plan.sleep_goal_hours,
        "created_at": plan.created_at.isoformat() if plan.created_at else None,
        "updated_at": plan.updated_at.isoformat() if plan.updated_at else None,
    }
