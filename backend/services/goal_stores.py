from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import date

from sqlalchemy.orm import Session

from db.models import DailyNutritionGoal, HydrationGoal, SleepGoal
from services.target_calculator import DailyNutritionGoals, TargetMeals
from utils.datetime_utils import add_hours_to_clock, today_utc


DEFAULT_BEDTIME = "22:00"


@dataclass(frozen=True)
class HydrationTarget:
    daily_target_ml: int
    based_on_weight_kg: float | None = None
    health_goal: str | None = None
    activity_level: str | None = None


@dataclass(frozen=True)
class SleepTarget:
    target_sleep_minutes: int
    target_bedtime: str = DEFAULT_BEDTIME
    target_wake_time: str = "06:00"
    max_naps_per_day: int = 1
    max_nap_minutes: int = 30

    @classmethod
    def from_hours(cls, hours: float, bedtime: str = DEFAULT_BEDTIME) -> "SleepTarget":
        return cls(
            target_sleep_minutes=int(round(hours * 60)),
            target_bedtime=bedtime,
            target_wake_time=add_hours_to_clock(bedtime, hours),
        )


class NutritionGoalStore:
    """One row per user per day; later dates never overwrite earlier ones."""

    def __init__(self, db: Session):
        self.db = db

    def set_goals(self, user_id: int, goals: DailyNutritionGoals) -> DailyNutritionGoal:
        key = goals.goal_date.isoformat()
        row = (
            self.db.query(DailyNutritionGoal)
            .filter(DailyNutritionGoal.user_id == user_id, DailyNutritionGoal.goal_date == key)
            .first()
        )
        if row is None:
            row = DailyNutritionGoal(user_id=user_id, goal_date=key)
            self.db.add(row)
        row.calorie_goal = goals.calorie_goal
        row.protein_goal = goals.protein_goal
        row.carbs_goal = goals.carbs_goal
        row.fat_goal = goals.fat_goal
        row.target_meals = json.dumps(
            {
                "breakfast": goals.target_meals.breakfast,
                "lunch": goals.target_meals.lunch,
                "dinner": goals.target_meals.dinner,
                "snacks": goals.target_meals.snacks,
            }
        )
        self.db.flush()
        return row

    def get_goals(self, user_id: int, on_date: date | None = None) -> DailyNutritionGoals | None:
        key = (on_date or today_utc()).isoformat()
        row = (
            self.db.query(DailyNutritionGoal)
            .filter(DailyNutritionGoal.user_id == user_id, DailyNutritionGoal.goal_date <= key)
            .order_by(DailyNutritionGoal.goal_date.desc())
            .first()
        )
        if row is None:
            return None
        try:
            meals = json.loads(row.target_meals or "{}")
        except json.JSONDecodeError:
            meals = {}
        return DailyNutritionGoals(
            goal_date=date.fromisoformat(row.goal_date),
            user_id=row.user_id,
            calorie_goal=row.calorie_goal,
            protein_goal=row.protein_goal,
            carbs_goal=row.carbs_goal,
            fat_goal=row.fat_goal,
            target_meals=TargetMeals(
                breakfast=int(meals.get("breakfast", 1)),
                lunch=int(meals.get("lunch", 1)),
                dinner=int(meals.get("dinner", 1)),
                snacks=int(meals.get("snacks", 2)),
            ),
        )


class HydrationGoalStore:
    def __init__(self, db: Session):
        self.db = db

    def set_goals(self, user_id: int, target: HydrationTarget) -> HydrationGoal:
        row = self.db.query(HydrationGoal).filter(HydrationGoal.user_id == user_id).first()
        if row is None:
            row = HydrationGoal(user_id=user_id)
            self.db.add(row)
        row.daily_target_ml = target.daily_target_ml
        row.based_on_weight_kg = target.based_on_weight_kg
        row.health_goal = target.health_goal
        row.activity_level = target.activity_level
        self.db.flush()
        return row

    def get_goals(self, user_id: int, on_date: date | None = None) -> HydrationTarget | None:
        _ = on_date
        row = self.db.query(HydrationGoal).filter(HydrationGoal.user_id == user_id).first()
        if row is None:
            return None
        return HydrationTarget(
            daily_target_ml=row.daily_target_ml,
            based_on_weight_kg=row.based_on_weight_kg,
            health_goal=row.health_goal,
            activity_level=row.activity_level,
        )


class SleepGoalStore:
    def __init__(self, db: Session):
        self.db = db

    def set_goals(self, user_id: int, target: SleepTarget) -> SleepGoal:
        row = self.db.query(SleepGoal).filter(SleepGoal.user_id == user_id).first()
        if row is None:
            row = SleepGoal(user_id=user_id)
            self.db.add(row)
        row.target_sleep_minutes = target.target_sleep_minutes
        row.target_bedtime = target.target_bedtime
        row.target_wake_time = target.target_wake_time
        row.max_naps_per_day = target.max_naps_per_day
        row.max_nap_minutes = target.max_nap_minutes
        self.db.flush()
        return row

    def get_goals(self, user_id: int, on_date: date | None = None) -> SleepTarget | None:
        _ = on_date
        row = self.db.query(SleepGoal).filter(SleepGoal.user_id == user_id).first()
        if row is None:
            return None
        return SleepTarget(
            target_sleep_minutes=row.target_sleep_minutes,
            target_bedtime=row.target_bedtime,
            target_wake_time=row.target_wake_time,
            max_naps_per_day=row.max_naps_per_day if row.max_naps_per_day is not None else 1,
            max_nap_minutes=row.max_nap_minutes if row.max_nap_minutes is not None else 30,
        )


@dataclass
class GoalStores:
    nutrition: NutritionGoalStore
    hydration: HydrationGoalStore
    sleep: SleepGoalStore

    @classmethod
    def for_session(cls, db: Session) -> "GoalStores":
        return cls(
            nutrition=NutritionGoalStore(db),
            hydration=HydrationGoalStore(db),
            sleep=SleepGoalStore(db),
        )
