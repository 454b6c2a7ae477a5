from __future__ import annotations

from dataclasses import asdict
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from api.deps import get_target_user
from db.database import get_db
from db.models import User
from services.goal_policy import DEFAULT_POLICY_TABLE, GoalPolicy
from services.goal_stores import GoalStores
from services.plan_service import (
    PlanGenerationError,
    UserNotFoundError,
    count_history_entries,
    get_current_plan,
    plan_to_dict,
    switch_plan,
)
from services.target_calculator import InvalidBiometricsError
from utils.datetime_utils import today_for_tz


router = APIRouter(tags=["plan"])


class SwitchPlanRequest(BaseModel):
    health_goal: str


def _goal_payload(label: str, policy: GoalPolicy) -> dict:
    return {"label": label, **asdict(policy), "recommended_focus": list(policy.recommended_focus)}


@router.get("/health-goals")
def list_health_goals():
    return {
        "default": DEFAULT_POLICY_TABLE.default_goal,
        "goals": [
            _goal_payload(label, DEFAULT_POLICY_TABLE.resolve(label))
            for label in DEFAULT_POLICY_TABLE.labels()
        ],
    }


@router.get("/users/{user_id}/plan")
def current_plan(user: User = Depends(get_target_user), db: Session = Depends(get_db)):
    plan = get_current_plan(db, user.id)
    if plan is None:
        raise HTTPException(status_code=404, detail="No plan generated yet")
    return plan_to_dict(plan)


@router.post("/users/{user_id}/plan/switch")
def switch_user_plan(
    req: SwitchPlanRequest,
    user: User = Depends(get_target_user),
    db: Session = Depends(get_db),
):
    goal = (req.health_goal or "").strip()
    if not goal:
        raise HTTPException(status_code=400, detail="health_goal is required")
    try:
        plan = switch_plan(db, user.id, goal)
    except UserNotFoundError as exc:
        db.rollback()
        raise HTTPException(status_code=404, detail=str(exc))
    except InvalidBiometricsError as exc:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(exc))
    except PlanGenerationError as exc:
        db.rollback()
        raise HTTPException(status_code=502, detail=str(exc))
    db.commit()
    return {
        "plan": plan_to_dict(plan),
        "goal_recognized": DEFAULT_POLICY_TABLE.is_known(goal),
        "history": count_history_entries(db, user.id),
    }


@router.get("/users/{user_id}/targets")
def current_targets(
    on_date: Optional[date] = None,
    user: User = Depends(get_target_user),
    db: Session = Depends(get_db),
):
    tz_name = user.settings.timezone if user.settings else None
    day = on_date or today_for_tz(tz_name)
    stores = GoalStores.for_session(db)
    nutrition = stores.nutrition.get_goals(user.id, day)
    hydration = stores.hydration.get_goals(user.id, day)
    sleep = stores.sleep.get_goals(user.id, day)
    return {
        "date": day.isoformat(),
        "nutrition": nutrition.to_dict() if nutrition else None,
        "hydration": asdict(hydration) if hydration else None,
        "sleep": asdict(sleep) if sleep else None,
    }
