from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable, Protocol, Sequence

from ai.providers import AIProvider, get_provider
from ai.suggestion_parser import (
    ALLOWED_FOCUS,
    SUGGESTION_SYSTEM_PROMPT,
    ParseFailure,
    build_suggestion_prompt,
    normalize_focus,
    parse_suggestion_response,
)
from config import settings
from services.exercise_catalog import Exercise, ExerciseSearch
from services.suggestion_cache import SuggestionCache, suggestion_cache_key
from services.weekly_training import TRACKABLE_MUSCLE_GROUPS, WeeklyTrainingAnalysis
from services.workout_plan_service import DEFAULT_REPS, DEFAULT_REST_SECONDS, DEFAULT_SETS, DayPlan
from utils.datetime_utils import WEEKDAY_NAMES
from utils.encryption import decrypt_credential

logger = logging.getLogger(__name__)

VALIDATION_STATUSES = {"validated", "rule-based", "fallback"}

FULL_DAY_EXERCISES = 3
REST_AFTER_WORKOUTS = 5
MAX_FOCUS_AREAS = 3
MAX_EXERCISES_PER_FOCUS = 3
MAX_SUGGESTED_EXERCISES = 8
SEARCH_DIFFICULTY = "beginner"

FOCUS_SEARCH_TERMS: dict[str, tuple[str, ...]] = {
    "chest": ("chest",),
    "back": ("back",),
    "upper arms": ("upper arms",),
    "lower legs": ("lower legs",),
    "waist": ("waist",),
    "cardio": ("cardio",),
}

_EMERGENCY_ROTATION: dict[str, tuple[str, ...]] = {
    "Monday": ("chest", "upper arms"),
    "Tuesday": ("back", "upper arms"),
    "Wednesday": ("lower legs",),
    "Thursday": ("waist", "cardio"),
    "Friday": ("chest", "back"),
    "Saturday": ("cardio", "lower legs"),
    "Sunday": (),
}


@dataclass
class WorkoutSuggestion:
    day_of_week: str
    recommended_focus: list[str]
    suggested_exercises: list[Exercise]
    reasoning: str
    validation_status: str

    @property
    def is_rest(self) -> bool:
        return not self.recommended_focus

    def to_dict(self) -> dict[str, Any]:
        return {
            "day_of_week": self.day_of_week,
            "recommended_focus": list(self.recommended_focus),
            "suggested_exercises": [ex.to_dict() for ex in self.suggested_exercises],
            "reasoning": self.reasoning,
            "validation_status": self.validation_status,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "WorkoutSuggestion":
        status = str(data.get("validation_status") or "")
        if status not in VALIDATION_STATUSES:
            raise ValueError(f"Unknown validation status: {status!r}")
        return cls(
            day_of_week=str(data["day_of_week"]),
            recommended_focus=[str(f) for f in data.get("recommended_focus") or []],
            suggested_exercises=[Exercise.from_dict(ex) for ex in data.get("suggested_exercises") or []],
            reasoning=str(data.get("reasoning") or ""),
            validation_status=status,
        )


@dataclass
class SuggestionContext:
    user_id: int
    analysis: WeeklyTrainingAnalysis
    catalog: ExerciseSearch
    provider: AIProvider | None = None
    health_goal: str | None = None
    ai_timeout_s: float = field(default_factory=lambda: float(settings.AI_REQUEST_TIMEOUT_SECONDS))


Tier = Callable[[SuggestionContext], Awaitable["WorkoutSuggestion | None"]]


async def first_successful(tiers: Sequence[Tier], context: SuggestionContext) -> WorkoutSuggestion | None:
    """Run tiers in order and return the first non-None result.

    A tier that raises is logged and treated as a miss.
    """
    for tier in tiers:
        name = getattr(tier, "__name__", repr(tier))
        try:
            result = await tier(context)
        except Exception as exc:
            logger.warning(f"Suggestion tier '{name}' failed for user {context.user_id}: {exc}")
            continue
        if result is not None:
            return result
        logger.info(f"Suggestion tier '{name}' produced no result for user {context.user_id}")
    return None


async def enrich_focus(catalog: ExerciseSearch, focus: Iterable[str]) -> list[Exercise]:
    """Look up concrete exercises for up to three focus areas."""
    selected: list[Exercise] = []
    seen_ids: set[str] = set()
    for area in list(focus)[:MAX_FOCUS_AREAS]:
        terms = FOCUS_SEARCH_TERMS.get(normalize_focus(area), (normalize_focus(area),))
        per_area = 0
        for term in terms:
            if per_area >= MAX_EXERCISES_PER_FOCUS:
                break
            results = await asyncio.to_thread(catalog.search, term, SEARCH_DIFFICULTY)
            for exercise in results:
                if per_area >= MAX_EXERCISES_PER_FOCUS:
                    break
                if not exercise.is_complete or exercise.id in seen_ids:
                    continue
                seen_ids.add(exercise.id)
                selected.append(exercise)
                per_area += 1
    return selected[:MAX_SUGGESTED_EXERCISES]


def _rest(day: str, reasoning: str, status: str) -> WorkoutSuggestion:
    return WorkoutSuggestion(
        day_of_week=day,
        recommended_focus=[],
        suggested_exercises=[],
        reasoning=reasoning,
        validation_status=status,
    )


async def ai_tier(ctx: SuggestionContext) -> WorkoutSuggestion | None:
    analysis = ctx.analysis
    if ctx.provider is None:
        return None
    if analysis.tomorrow_exercise_count >= FULL_DAY_EXERCISES:
        # A full day is always a rest recommendation; the rule tier owns it.
        return None

    should_train = analysis.total_workouts < REST_AFTER_WORKOUTS
    prompt = build_suggestion_prompt(analysis, should_train, ctx.health_goal)
    text = await asyncio.wait_for(ctx.provider.complete(prompt, system=SUGGESTION_SYSTEM_PROMPT), timeout=ctx.ai_timeout_s)

    parsed = parse_suggestion_response(text)
    if isinstance(parsed, ParseFailure):
        logger.warning(f"AI suggestion rejected for user {ctx.user_id}: {parsed.reason}")
        return None
    if parsed.dropped_focus:
        logger.info(f"Dropped non-whitelisted focus labels: {', '.join(parsed.dropped_focus)}")
    if not parsed.focus:
        return None

    exercises = await enrich_focus(ctx.catalog, parsed.focus)
    if not exercises:
        logger.warning(f"AI focus {list(parsed.focus)} matched no catalog exercises")
        return None
    return WorkoutSuggestion(
        day_of_week=analysis.tomorrow,
        recommended_focus=list(parsed.focus),
        suggested_exercises=exercises,
        reasoning=parsed.reasoning,
        validation_status="validated",
    )


def rule_decision(analysis: WeeklyTrainingAnalysis) -> tuple[list[str], str]:
    count = analysis.tomorrow_exercise_count
    if count >= FULL_DAY_EXERCISES:
        return [], (
            f"You already have {count} exercises planned for {analysis.tomorrow}. "
            "No extra work is needed; focus on recovery around that session."
        )
    if count >= 1:
        return ["waist"], (
            f"{analysis.tomorrow} already has {count} exercise{'s' if count != 1 else ''} planned. "
            "A little core work rounds it out without overloading the day."
        )
    if analysis.total_workouts >= REST_AFTER_WORKOUTS:
        return [], (
            f"You've completed {analysis.total_workouts} workouts this week. "
            "Tomorrow is a good day for rest and recovery."
        )
    if analysis.total_workouts <= 1:
        return ["chest", "back"], (
            "Let's get back into your routine with the two largest upper-body muscle groups."
        )
    untrained = analysis.untrained_groups
    if untrained:
        focus = untrained[:2]
        return focus, f"Focus on {' and '.join(focus)} since they haven't been trained this week yet."
    return ["cardio", "waist"], (
        "Great work training every muscle group this week! Cardio and core make a good active recovery day."
    )


async def rule_tier(ctx: SuggestionContext) -> WorkoutSuggestion | None:
    focus, reasoning = rule_decision(ctx.analysis)
    if not focus:
        return _rest(ctx.analysis.tomorrow, reasoning, "rule-based")
    exercises = await enrich_focus(ctx.catalog, focus)
    if not exercises:
        return None
    return WorkoutSuggestion(
        day_of_week=ctx.analysis.tomorrow,
        recommended_focus=focus,
        suggested_exercises=exercises,
        reasoning=reasoning,
        validation_status="rule-based",
    )


def emergency_suggestion(analysis: WeeklyTrainingAnalysis) -> WorkoutSuggestion:
    day = analysis.tomorrow if analysis.tomorrow in WEEKDAY_NAMES else WEEKDAY_NAMES[0]
    if analysis.tomorrow_exercise_count >= FULL_DAY_EXERCISES:
        return _rest(day, f"{day} is already fully planned; stick with that session.", "fallback")
    focus = list(_EMERGENCY_ROTATION.get(day, ()))
    if not focus:
        return _rest(day, f"{day} is a rest day. Take time to recover and prepare for the week ahead.", "fallback")
    return WorkoutSuggestion(
        day_of_week=day,
        recommended_focus=focus,
        suggested_exercises=[],
        reasoning=f"Following a balanced weekly routine, {day} is a good day for {' and '.join(focus)} training.",
        validation_status="fallback",
    )


DEFAULT_TIERS: tuple[Tier, ...] = (ai_tier, rule_tier)


def resolve_provider(user_settings: Any) -> AIProvider | None:
    """Build the user's AI provider, or None when no usable credential is stored."""
    if user_settings is None:
        return None
    api_key = decrypt_credential(getattr(user_settings, "api_key_encrypted", None))
    if not api_key:
        return None
    name = (getattr(user_settings, "ai_provider", None) or settings.DEFAULT_AI_PROVIDER).strip().lower()
    try:
        return get_provider(name, api_key, getattr(user_settings, "ai_model", None))
    except ValueError as exc:
        logger.warning(f"Ignoring AI credential: {exc}")
        return None


def _analysis_inputs(analysis: WeeklyTrainingAnalysis) -> dict[str, Any]:
    """The analysis fields the tiers decide on; a cached entry is only valid while they match."""
    return {
        "tomorrow_exercise_count": analysis.tomorrow_exercise_count,
        "total_workouts": analysis.total_workouts,
        "trained_muscle_groups": sorted(analysis.trained_muscle_groups),
    }


def _read_cached(cache: SuggestionCache, key: str, analysis: WeeklyTrainingAnalysis) -> WorkoutSuggestion | None:
    try:
        payload = cache.get(key)
        if payload is None:
            return None
        cached = WorkoutSuggestion.from_dict(payload)
    except Exception as exc:
        logger.warning(f"Ignoring unreadable suggestion cache entry '{key}': {exc}")
        return None
    if payload.get("analysis_inputs") != _analysis_inputs(analysis):
        logger.info(f"Cached suggestion '{key}' predates a plan change; regenerating")
        return None
    return cached


async def generate_tomorrow_suggestion(
    user_id: int,
    analysis: WeeklyTrainingAnalysis,
    *,
    catalog: ExerciseSearch,
    provider: AIProvider | None = None,
    cache: SuggestionCache | None = None,
    force_refresh: bool = False,
    health_goal: str | None = None,
    tiers: Sequence[Tier] = DEFAULT_TIERS,
) -> WorkoutSuggestion:
    """Recommend tomorrow's session. Never raises."""
    key = suggestion_cache_key(user_id, analysis.tomorrow)
    if cache is not None and not force_refresh:
        cached = _read_cached(cache, key, analysis)
        if cached is not None:
            return cached

    ctx = SuggestionContext(
        user_id=user_id,
        analysis=analysis,
        catalog=catalog,
        provider=provider,
        health_goal=health_goal,
    )
    suggestion = await first_successful(tiers, ctx)
    if suggestion is None:
        logger.warning(f"All suggestion tiers failed for user {user_id}; using weekly rotation")
        suggestion = emergency_suggestion(analysis)

    if cache is not None:
        try:
            entry = {**suggestion.to_dict(), "analysis_inputs": _analysis_inputs(analysis)}
            cache.set(key, entry, settings.SUGGESTION_CACHE_TTL_HOURS)
        except Exception as exc:
            logger.warning(f"Could not cache suggestion '{key}': {exc}")
    return suggestion


def clear_suggestion_cache(cache: SuggestionCache, user_id: int, day_of_week: str | None = None) -> None:
    days = [day_of_week] if day_of_week else list(WEEKDAY_NAMES)
    for day in days:
        try:
            cache.delete(suggestion_cache_key(user_id, day))
        except Exception as exc:
            logger.warning(f"Could not clear suggestion cache for user {user_id} ({day}): {exc}")


class DayPlanWriter(Protocol):
    def get_day_plan(self, user_id: int, day: str) -> DayPlan | None:
        ...

    def add_exercise(self, user_id: int, day: str, exercise: Exercise, sets: int, reps: int, **kwargs: Any) -> Any:
        ...


@dataclass(frozen=True)
class ApplySuggestionResult:
    added: int
    duplicates: int
    failed: int
    added_names: tuple[str, ...] = ()
    duplicate_names: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "added": self.added,
            "duplicates": self.duplicates,
            "failed": self.failed,
            "added_names": list(self.added_names),
            "duplicate_names": list(self.duplicate_names),
        }


def _name_key(name: str | None) -> str:
    return " ".join((name or "").strip().lower().split())


def apply_suggestion(
    store: DayPlanWriter,
    user_id: int,
    suggestion: WorkoutSuggestion,
    *,
    cache: SuggestionCache | None = None,
) -> ApplySuggestionResult:
    """Add suggested exercises to the suggested day, skipping names already there."""
    day_plan = store.get_day_plan(user_id, suggestion.day_of_week)
    existing = {_name_key(item.name) for item in (day_plan.exercises if day_plan else [])}

    added: list[str] = []
    duplicates: list[str] = []
    failed = 0
    for exercise in suggestion.suggested_exercises:
        key = _name_key(exercise.name)
        if key in existing:
            duplicates.append(exercise.name)
            continue
        try:
            store.add_exercise(
                user_id,
                suggestion.day_of_week,
                exercise,
                DEFAULT_SETS,
                DEFAULT_REPS,
                rest_seconds=DEFAULT_REST_SECONDS,
            )
        except Exception as exc:
            failed += 1
            logger.warning(f"Could not add '{exercise.name}' to {suggestion.day_of_week} for user {user_id}: {exc}")
            continue
        existing.add(key)
        added.append(exercise.name)

    if cache is not None and added:
        clear_suggestion_cache(cache, user_id, suggestion.day_of_week)
    return ApplySuggestionResult(
        added=len(added),
        duplicates=len(duplicates),
        failed=failed,
        added_names=tuple(added),
        duplicate_names=tuple(duplicates),
    )

