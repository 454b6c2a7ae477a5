from __future__ import annotations

import logging
import statistics
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Mapping, Protocol

from utils.datetime_utils import WEEKDAY_NAMES, next_weekday_name, normalize_day_name

logger = logging.getLogger(__name__)

TRACKABLE_MUSCLE_GROUPS: tuple[str, ...] = ("chest", "back", "upper arms", "lower legs", "waist")

# Checked in order, so multi-word and more specific keywords come first.
_EXERCISE_KEYWORDS: tuple[tuple[str, str], ...] = (
    ("leg raise", "waist"),
    ("mountain climber", "waist"),
    ("russian twist", "waist"),
    ("leg curl", "lower legs"),
    ("leg press", "lower legs"),
    ("high knee", "cardio"),
    ("jumping jack", "cardio"),
    ("jump rope", "cardio"),
    ("rowing machine", "cardio"),
    ("burpee", "cardio"),
    ("squat", "lower legs"),
    ("lunge", "lower legs"),
    ("deadlift", "lower legs"),
    ("calf", "lower legs"),
    ("glute", "lower legs"),
    ("step-up", "lower legs"),
    ("hip thrust", "lower legs"),
    ("overhead press", "upper arms"),
    ("shoulder press", "upper arms"),
    ("military press", "upper arms"),
    ("kickback", "upper arms"),
    ("skull crusher", "upper arms"),
    ("push-up", "chest"),
    ("push up", "chest"),
    ("pushup", "chest"),
    ("bench", "chest"),
    ("press", "chest"),
    ("chest", "chest"),
    ("fly", "chest"),
    ("pec", "chest"),
    ("pull-up", "back"),
    ("pull up", "back"),
    ("pullup", "back"),
    ("chin-up", "back"),
    ("chin up", "back"),
    ("pulldown", "back"),
    ("row", "back"),
    ("back", "back"),
    ("tricep", "upper arms"),
    ("bicep", "upper arms"),
    ("curl", "upper arms"),
    ("dip", "upper arms"),
    ("arm", "upper arms"),
    ("leg", "lower legs"),
    ("plank", "waist"),
    ("crunch", "waist"),
    ("sit-up", "waist"),
    ("sit up", "waist"),
    ("situp", "waist"),
    ("abdominal", "waist"),
    ("abs", "waist"),
    ("core", "waist"),
    ("run", "cardio"),
    ("jog", "cardio"),
    ("sprint", "cardio"),
    ("cycl", "cardio"),
    ("bike", "cardio"),
    ("hiit", "cardio"),
    ("cardio", "cardio"),
)


def muscle_group_for_exercise(name: str | None) -> str | None:
    lowered = (name or "").strip().lower()
    if not lowered:
        return None
    for keyword, group in _EXERCISE_KEYWORDS:
        if keyword in lowered:
            return group
    return None


class WeeklyPlanSource(Protocol):
    def get_weekly_plan(self, user_id: int) -> Mapping[str, Any]:
        ...


@dataclass(frozen=True)
class WeeklyTrainingAnalysis:
    tomorrow: str
    completed_days: tuple[str, ...] = ()
    trained_muscle_groups: tuple[str, ...] = ()
    total_workouts: int = 0
    tomorrow_has_exercises: bool = False
    tomorrow_exercise_count: int = 0
    last_workout_day: str | None = None
    completion_rate: float = 0.0
    consistency_score: float = 0.0

    @property
    def rest_days(self) -> int:
        return 7 - self.total_workouts

    @property
    def untrained_groups(self) -> list[str]:
        return [group for group in TRACKABLE_MUSCLE_GROUPS if group not in self.trained_muscle_groups]

    @classmethod
    def empty(cls, tomorrow: str) -> "WeeklyTrainingAnalysis":
        return cls(tomorrow=tomorrow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "tomorrow": self.tomorrow,
            "completed_days": list(self.completed_days),
            "trained_muscle_groups": list(self.trained_muscle_groups),
            "total_workouts": self.total_workouts,
            "rest_days": self.rest_days,
            "tomorrow_has_exercises": self.tomorrow_has_exercises,
            "tomorrow_exercise_count": self.tomorrow_exercise_count,
            "last_workout_day": self.last_workout_day,
            "completion_rate": self.completion_rate,
            "consistency_score": self.consistency_score,
        }


def _exercises_of(day_plan: Any) -> list[Any]:
    if day_plan is None:
        return []
    exercises = day_plan.get("exercises") if isinstance(day_plan, Mapping) else getattr(day_plan, "exercises", None)
    return list(exercises or [])


def _is_completed(item: Any) -> bool:
    if isinstance(item, Mapping):
        return bool(item.get("completed"))
    return bool(getattr(item, "completed", False))


def _name_of(item: Any) -> str:
    if isinstance(item, Mapping):
        exercise = item.get("exercise")
        if isinstance(exercise, Mapping):
            return str(exercise.get("name") or "")
        return str(item.get("name") or "")
    return str(getattr(item, "name", "") or "")


def _body_part_of(item: Any) -> str:
    if isinstance(item, Mapping):
        exercise = item.get("exercise")
        if isinstance(exercise, Mapping):
            return str(exercise.get("body_part") or "").lower()
        return str(item.get("body_part") or "").lower()
    exercise = getattr(item, "exercise", None)
    return str(getattr(exercise, "body_part", "") or "").lower()


def _consistency(per_day_completed: list[int]) -> float:
    # 1 - coefficient of variation of completed exercises across training days.
    if len(per_day_completed) < 2:
        return 1.0 if per_day_completed else 0.0
    mean = statistics.fmean(per_day_completed)
    if mean <= 0:
        return 0.0
    spread = statistics.pstdev(per_day_completed) / mean
    return round(max(0.0, min(1.0, 1.0 - spread)), 2)


def analyze_weekly_training(weekly_plan: Mapping[str, Any], today: date) -> WeeklyTrainingAnalysis:
    """Reduce a day-name -> day-plan mapping into this week's training picture."""
    by_day: dict[str, Any] = {}
    for key, plan in (weekly_plan or {}).items():
        day = normalize_day_name(str(key))
        if day is not None:
            by_day[day] = plan

    tomorrow = next_weekday_name(today)
    tomorrow_count = len(_exercises_of(by_day.get(tomorrow)))

    completed_days: list[str] = []
    groups: list[str] = []
    per_day_completed: list[int] = []
    ratios: list[float] = []
    for day in WEEKDAY_NAMES:
        if day == tomorrow:
            continue
        exercises = _exercises_of(by_day.get(day))
        if not exercises:
            continue
        done = [item for item in exercises if _is_completed(item)]
        ratios.append(len(done) / len(exercises))
        if not done:
            continue
        completed_days.append(day)
        per_day_completed.append(len(done))
        for item in done:
            group = muscle_group_for_exercise(_name_of(item))
            if group is None and _body_part_of(item) in (*TRACKABLE_MUSCLE_GROUPS, "cardio"):
                group = _body_part_of(item)
            if group and group not in groups:
                groups.append(group)

    return WeeklyTrainingAnalysis(
        tomorrow=tomorrow,
        completed_days=tuple(completed_days),
        trained_muscle_groups=tuple(groups),
        total_workouts=len(completed_days),
        tomorrow_has_exercises=tomorrow_count > 0,
        tomorrow_exercise_count=tomorrow_count,
        last_workout_day=completed_days[-1] if completed_days else None,
        completion_rate=round(statistics.fmean(ratios), 2) if ratios else 0.0,
        consistency_score=_consistency(per_day_completed),
    )


def load_weekly_analysis(source: WeeklyPlanSource, user_id: int, today: date) -> WeeklyTrainingAnalysis:
    try:
        weekly_plan = source.get_weekly_plan(user_id)
        return analyze_weekly_training(weekly_plan, today)
    except Exception as exc:
        logger.warning(f"Weekly training analysis unavailable for user {user_id}: {exc}")
        return WeeklyTrainingAnalysis.empty(next_weekday_name(today))
