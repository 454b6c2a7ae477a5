from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field
from datetime import date
from typing import Any

from services.goal_policy import DEFAULT_POLICY_TABLE, GoalPolicyTable
from services.physiology import bmr, tdee
from utils.datetime_utils import today_utc


DEFAULT_WEIGHT_KG = 70.0
DEFAULT_HEIGHT_CM = 170.0
DEFAULT_AGE_YEARS = 30
DEFAULT_SEX = "male"
DEFAULT_ACTIVITY_LEVEL = "moderate"
DEFAULT_WATER_ML = 2000

VALID_SEXES = {"male", "female"}


class InvalidBiometricsError(ValueError):
    """Raised when a stored or submitted biometric value cannot be used."""


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _checked_positive(name: str, value: Any, default: float) -> float:
    if value is None:
        return default
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise InvalidBiometricsError(f"{name} must be a number") from exc
    if not math.isfinite(number) or number <= 0:
        raise InvalidBiometricsError(f"{name} must be a positive finite number")
    return number


@dataclass(frozen=True)
class UserSnapshot:
    weight_kg: float = DEFAULT_WEIGHT_KG
    height_cm: float = DEFAULT_HEIGHT_CM
    age_years: float = DEFAULT_AGE_YEARS
    sex: str = DEFAULT_SEX
    activity_level: str = DEFAULT_ACTIVITY_LEVEL
    health_goal: str | None = None

    @classmethod
    def build(
        cls,
        *,
        weight_kg: Any = None,
        height_cm: Any = None,
        age_years: Any = None,
        sex: str | None = None,
        activity_level: str | None = None,
        health_goal: str | None = None,
    ) -> "UserSnapshot":
        """Fill missing values with defaults and reject unusable ones."""
        sex_value = (sex or "").strip().lower() or DEFAULT_SEX
        if sex_value not in VALID_SEXES:
            raise InvalidBiometricsError("sex must be 'male' or 'female'")
        return cls(
            weight_kg=_checked_positive("weight_kg", weight_kg, DEFAULT_WEIGHT_KG),
            height_cm=_checked_positive("height_cm", height_cm, DEFAULT_HEIGHT_CM),
            age_years=_checked_positive("age_years", age_years, DEFAULT_AGE_YEARS),
            sex=sex_value,
            activity_level=(activity_level or "").strip() or DEFAULT_ACTIVITY_LEVEL,
            health_goal=health_goal,
        )

    @classmethod
    def from_settings(cls, settings: Any, health_goal: str | None = None) -> "UserSnapshot":
        if settings is None:
            return cls.build(health_goal=health_goal)
        return cls.build(
            weight_kg=getattr(settings, "current_weight_kg", None),
            height_cm=getattr(settings, "height_cm", None),
            age_years=getattr(settings, "age", None),
            sex=getattr(settings, "sex", None),
            activity_level=getattr(settings, "activity_level", None),
            health_goal=health_goal if health_goal is not None else getattr(settings, "health_goal", None),
        )


@dataclass(frozen=True)
class TargetMeals:
    breakfast: int = 1
    lunch: int = 1
    dinner: int = 1
    snacks: int = 2


@dataclass(frozen=True)
class DailyNutritionGoals:
    goal_date: date
    calorie_goal: int
    protein_goal: int
    carbs_goal: int
    fat_goal: int
    target_meals: TargetMeals = field(default_factory=TargetMeals)
    user_id: int | None = None

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["goal_date"] = self.goal_date.isoformat()
        return payload


@dataclass(frozen=True)
class PersonalizedTargets:
    health_goal: str
    policy_label: str
    bmr_kcal: float
    tdee_kcal: float
    nutrition: DailyNutritionGoals
    water_ml: int
    sleep_hours: float
    workouts_per_week: int
    recommended_focus: tuple[str, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "health_goal": self.health_goal,
            "policy_label": self.policy_label,
            "bmr_kcal": round(self.bmr_kcal, 2),
            "tdee_kcal": round(self.tdee_kcal, 2),
            "nutrition": self.nutrition.to_dict(),
            "water_ml": self.water_ml,
            "sleep_hours": self.sleep_hours,
            "workouts_per_week": self.workouts_per_week,
            "recommended_focus": list(self.recommended_focus),
        }


def calculate_nutrition_goals(
    snapshot: UserSnapshot,
    health_goal: str | None,
    *,
    policies: GoalPolicyTable = DEFAULT_POLICY_TABLE,
    on_date: date | None = None,
    user_id: int | None = None,
) -> DailyNutritionGoals:
    policy = policies.resolve(health_goal)
    energy = tdee(bmr(snapshot.weight_kg, snapshot.height_cm, snapshot.age_years, snapshot.sex), snapshot.activity_level)

    calorie_goal = _round_half_up(energy * policy.calorie_multiplier)
    protein_goal = _round_half_up(snapshot.weight_kg * policy.protein_per_kg)
    # Carbs and fat are derived from the already rounded calorie goal.
    carbs_goal = _round_half_up(calorie_goal * policy.carbs_pct / 4)
    fat_goal = _round_half_up(calorie_goal * policy.fat_pct / 9)
    snacks = 3 if policies.is_mass_gain(health_goal) else 2

    return DailyNutritionGoals(
        goal_date=on_date or today_utc(),
        calorie_goal=calorie_goal,
        protein_goal=protein_goal,
        carbs_goal=carbs_goal,
        fat_goal=fat_goal,
        target_meals=TargetMeals(snacks=snacks),
        user_id=user_id,
    )


def recommended_water_intake(
    snapshot: UserSnapshot | None,
    health_goal: str | None,
    *,
    policies: GoalPolicyTable = DEFAULT_POLICY_TABLE,
) -> int:
    if snapshot is None:
        return DEFAULT_WATER_ML
    return _round_half_up(snapshot.weight_kg * policies.resolve(health_goal).water_per_kg_ml)


def recommended_sleep_hours(health_goal: str | None, *, policies: GoalPolicyTable = DEFAULT_POLICY_TABLE) -> float:
    return policies.resolve(health_goal).sleep_hours


def recommended_workouts_per_week(health_goal: str | None, *, policies: GoalPolicyTable = DEFAULT_POLICY_TABLE) -> int:
    return policies.resolve(health_goal).workout_days_per_week


def calculate_targets(
    snapshot: UserSnapshot,
    health_goal: str | None = None,
    *,
    policies: GoalPolicyTable = DEFAULT_POLICY_TABLE,
    on_date: date | None = None,
    user_id: int | None = None,
) -> PersonalizedTargets:
    goal = health_goal if health_goal is not None else snapshot.health_goal
    resting = bmr(snapshot.weight_kg, snapshot.height_cm, snapshot.age_years, snapshot.sex)
    policy = policies.resolve(goal)
    policy_label = policies.resolved_label(goal)
    # An unknown goal keeps its own label; only the coefficients fall back.
    return PersonalizedTargets(
        health_goal=(goal or "").strip() or policy_label,
        policy_label=policy_label,
        bmr_kcal=resting,
        tdee_kcal=tdee(resting, snapshot.activity_level),
        nutrition=calculate_nutrition_goals(snapshot, goal, policies=policies, on_date=on_date, user_id=user_id),
        water_ml=recommended_water_intake(snapshot, goal, policies=policies),
        sleep_hours=recommended_sleep_hours(goal, policies=policies),
        workouts_per_week=recommended_workouts_per_week(goal, policies=policies),
        recommended_focus=policy.recommended_focus,
    )
