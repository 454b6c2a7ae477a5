from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field
from datetime import date
from typing import Any

from sqlalchemy.orm import Session

from db.models import DayWorkoutPlan
from services.exercise_catalog import Exercise
from utils.datetime_utils import WEEKDAY_NAMES, normalize_day_name, start_of_week, utcnow

logger = logging.getLogger(__name__)

DEFAULT_SETS = 3
DEFAULT_REPS = 10
DEFAULT_REST_SECONDS = 60


class InvalidDayError(ValueError):
    pass


class ExerciseIndexError(LookupError):
    pass


@dataclass
class PlannedExercise:
    exercise: Exercise
    sets: int = DEFAULT_SETS
    reps: int = DEFAULT_REPS
    duration_min: float | None = None
    rest_seconds: int = DEFAULT_REST_SECONDS
    weight_kg: float | None = None
    notes: str | None = None
    completed: bool = False
    completed_at: str | None = None

    @property
    def name(self) -> str:
        return self.exercise.name

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["exercise"] = self.exercise.to_dict()
        return payload

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PlannedExercise":
        return cls(
            exercise=Exercise.from_dict(data.get("exercise") or {}),
            sets=int(data.get("sets") or DEFAULT_SETS),
            reps=int(data.get("reps") or DEFAULT_REPS),
            duration_min=data.get("duration_min"),
            rest_seconds=int(data.get("rest_seconds") if data.get("rest_seconds") is not None else DEFAULT_REST_SECONDS),
            weight_kg=data.get("weight_kg"),
            notes=data.get("notes"),
            completed=bool(data.get("completed")),
            completed_at=data.get("completed_at"),
        )


@dataclass
class DayPlan:
    day_of_week: str
    plan_name: str
    exercises: list[PlannedExercise] = field(default_factory=list)
    target_muscle_groups: list[str] = field(default_factory=list)
    estimated_duration_min: float = 0.0

    @property
    def completed_count(self) -> int:
        return sum(1 for item in self.exercises if item.completed)

    def to_dict(self) -> dict[str, Any]:
        return {
            "day_of_week": self.day_of_week,
            "plan_name": self.plan_name,
            "exercises": [item.to_dict() for item in self.exercises],
            "target_muscle_groups": list(self.target_muscle_groups),
            "estimated_duration_min": round(self.estimated_duration_min, 1),
        }


def _safe_json_list(raw: str | None) -> list[Any]:
    if not raw:
        return []
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return []
    return parsed if isinstance(parsed, list) else []


def _row_to_day_plan(row: DayWorkoutPlan) -> DayPlan:
    return DayPlan(
        day_of_week=row.day_of_week,
        plan_name=row.plan_name,
        exercises=[PlannedExercise.from_dict(item) for item in _safe_json_list(row.exercises) if isinstance(item, dict)],
        target_muscle_groups=[str(m) for m in _safe_json_list(row.target_muscle_groups)],
        estimated_duration_min=float(row.estimated_duration_min or 0),
    )


def _write_day_plan(row: DayWorkoutPlan, plan: DayPlan) -> None:
    row.plan_name = plan.plan_name
    row.exercises = json.dumps([item.to_dict() for item in plan.exercises], ensure_ascii=True)
    row.target_muscle_groups = json.dumps(plan.target_muscle_groups, ensure_ascii=True)
    row.estimated_duration_min = plan.estimated_duration_min


def _exercise_minutes(item: PlannedExercise) -> float:
    return item.sets * (2 + item.rest_seconds / 60)


class WorkoutPlanStore:
    """Per-user weekly workout plan, one row per weekday."""

    def __init__(self, db: Session):
        self.db = db

    def _day_key(self, day: str) -> str:
        name = normalize_day_name(day)
        if name is None:
            raise InvalidDayError(f"Unknown day of week: {day!r}")
        return name

    def _row(self, user_id: int, day: str) -> DayWorkoutPlan | None:
        return (
            self.db.query(DayWorkoutPlan)
            .filter(DayWorkoutPlan.user_id == user_id, DayWorkoutPlan.day_of_week == day)
            .first()
        )

    def get_weekly_plan(self, user_id: int) -> dict[str, DayPlan]:
        rows = self.db.query(DayWorkoutPlan).filter(DayWorkoutPlan.user_id == user_id).all()
        by_day = {row.day_of_week: _row_to_day_plan(row) for row in rows}
        return {day: by_day[day] for day in WEEKDAY_NAMES if day in by_day}

    def get_day_plan(self, user_id: int, day: str) -> DayPlan | None:
        row = self._row(user_id, self._day_key(day))
        return _row_to_day_plan(row) if row else None

    def add_exercise(
        self,
        user_id: int,
        day: str,
        exercise: Exercise,
        sets: int = DEFAULT_SETS,
        reps: int = DEFAULT_REPS,
        duration_min: float | None = None,
        rest_seconds: int = DEFAULT_REST_SECONDS,
        weight_kg: float | None = None,
        notes: str | None = None,
    ) -> DayPlan:
        if sets <= 0 or reps <= 0 or rest_seconds < 0:
            raise ValueError("sets and reps must be positive and rest_seconds non-negative")
        day_key = self._day_key(day)
        row = self._row(user_id, day_key)
        if row is None:
            row = DayWorkoutPlan(user_id=user_id, day_of_week=day_key, plan_name=f"{day_key} Workout")
            self.db.add(row)
            plan = DayPlan(day_of_week=day_key, plan_name=row.plan_name)
        else:
            plan = _row_to_day_plan(row)

        item = PlannedExercise(
            exercise=exercise,
            sets=sets,
            reps=reps,
            duration_min=duration_min,
            rest_seconds=rest_seconds,
            weight_kg=weight_kg,
            notes=notes,
        )
        plan.exercises.append(item)
        muscle = exercise.muscle or exercise.body_part
        if muscle and muscle not in plan.target_muscle_groups:
            plan.target_muscle_groups.append(muscle)
        plan.estimated_duration_min += _exercise_minutes(item)
        _write_day_plan(row, plan)
        self.db.flush()
        return plan

    def remove_exercise(self, user_id: int, day: str, index: int) -> DayPlan:
        day_key = self._day_key(day)
        row = self._row(user_id, day_key)
        plan = _row_to_day_plan(row) if row else None
        if plan is None or not 0 <= index < len(plan.exercises):
            raise ExerciseIndexError(f"No exercise {index} planned for {day_key}")
        plan.exercises.pop(index)
        plan.target_muscle_groups = []
        for item in plan.exercises:
            muscle = item.exercise.muscle or item.exercise.body_part
            if muscle and muscle not in plan.target_muscle_groups:
                plan.target_muscle_groups.append(muscle)
        plan.estimated_duration_min = sum(_exercise_minutes(item) for item in plan.exercises)
        _write_day_plan(row, plan)
        self.db.flush()
        return plan

    def mark_exercise_completed(
        self,
        user_id: int,
        day: str,
        index: int,
        weight_kg: float | None = None,
        notes: str | None = None,
        today: date | None = None,
    ) -> DayPlan:
        day_key = self._day_key(day)
        row = self._row(user_id, day_key)
        plan = _row_to_day_plan(row) if row else None
        if plan is None or not 0 <= index < len(plan.exercises):
            raise ExerciseIndexError(f"No exercise {index} planned for {day_key}")
        item = plan.exercises[index]
        item.completed = True
        item.completed_at = utcnow().isoformat()
        if weight_kg is not None:
            item.weight_kg = weight_kg
        if notes:
            item.notes = notes
        row.week_start = start_of_week(today or utcnow().date()).isoformat()
        _write_day_plan(row, plan)
        self.db.flush()
        return plan

    def roll_over_week(self, user_id: int, today: date) -> int:
        """Clear completion flags left over from an earlier week."""
        current_week = start_of_week(today).isoformat()
        reset = 0
        rows = self.db.query(DayWorkoutPlan).filter(DayWorkoutPlan.user_id == user_id).all()
        for row in rows:
            if not row.week_start or row.week_start >= current_week:
                continue
            plan = _row_to_day_plan(row)
            for item in plan.exercises:
                item.completed = False
                item.completed_at = None
            _write_day_plan(row, plan)
            row.week_start = None
            reset += 1
        if reset:
            self.db.flush()
            logger.info(f"Reset weekly progress on {reset} day plan(s) for user {user_id}")
        return reset

    def day_summary(self, user_id: int, day: str) -> dict[str, Any]:
        day_key = self._day_key(day)
        plan = self.get_day_plan(user_id, day_key)
        planned = len(plan.exercises) if plan else 0
        completed = plan.completed_count if plan else 0
        return {
            "day_of_week": day_key,
            "planned": planned,
            "completed": completed,
            "progress_pct": round(completed / planned * 100) if planned else 0,
            "estimated_duration_min": round(plan.estimated_duration_min, 1) if plan else 0,
        }
