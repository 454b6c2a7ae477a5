"""Basal and total daily energy expenditure estimates.

Plain arithmetic with no rounding or validation; callers that accept user
input are expected to check biometrics first (see ``target_calculator``).
"""
from __future__ import annotations

ACTIVITY_LEVELS: tuple[str, ...] = (
    "sedentary",
    "light",
    "moderate",
    "active",
    "extremely active",
)

ACTIVITY_MULTIPLIERS: dict[str, float] = {
    "sedentary": 1.2,
    "light": 1.375,
    "moderate": 1.55,
    "active": 1.725,
    "extremely active": 1.9,
}

DEFAULT_ACTIVITY_MULTIPLIER = 1.2


def normalize_activity_level(activity_level: str | None) -> str:
    cleaned = (activity_level or "").strip().lower().replace("_", " ").replace("-", " ")
    return " ".join(cleaned.split())


def bmr(weight_kg: float, height_cm: float, age_years: float, sex: str | None) -> float:
    """Mifflin-St Jeor resting energy in kcal/day."""
    base = 10 * weight_kg + 6.25 * height_cm - 5 * age_years
    if (sex or "").strip().lower() == "male":
        return base + 5
    return base - 161


def activity_multiplier(activity_level: str | None) -> float:
    return ACTIVITY_MULTIPLIERS.get(normalize_activity_level(activity_level), DEFAULT_ACTIVITY_MULTIPLIER)


def tdee(bmr_kcal: float, activity_level: str | None) -> float:
    return bmr_kcal * activity_multiplier(activity_level)
