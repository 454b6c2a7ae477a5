import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from api.deps import get_exercise_catalog, get_target_user
from db.database import get_db
from db.models import User
from services.exercise_catalog import Exercise, ExerciseCatalog
from services.suggestion_cache import DbSuggestionCache
from services.suggestion_service import (
    WorkoutSuggestion,
    apply_suggestion,
    clear_suggestion_cache,
    generate_tomorrow_suggestion,
    resolve_provider,
)
from services.weekly_training import load_weekly_analysis
from services.workout_plan_service import (
    DEFAULT_REPS,
    DEFAULT_REST_SECONDS,
    DEFAULT_SETS,
    ExerciseIndexError,
    InvalidDayError,
    WorkoutPlanStore,
)
from utils.datetime_utils import today_for_tz

router = APIRouter(tags=["workouts"])
logger = logging.getLogger(__name__)


class ExercisePayload(BaseModel):
    id: str
    name: str
    body_part: str
    target: str
    muscle: Optional[str] = None
    difficulty: str = "beginner"
    equipment: str = "body weight"
    instructions: str = ""
    gif_url: Optional[str] = None


class AddExerciseRequest(BaseModel):
    exercise: ExercisePayload
    sets: int = DEFAULT_SETS
    reps: int = DEFAULT_REPS
    duration_min: Optional[float] = None
    rest_seconds: int = DEFAULT_REST_SECONDS
    weight_kg: Optional[float] = None
    notes: Optional[str] = None


class CompleteExerciseRequest(BaseModel):
    weight_kg: Optional[float] = None
    notes: Optional[str] = None


class SuggestionRequest(BaseModel):
    force_refresh: bool = False


class ApplySuggestionRequest(BaseModel):
    suggestion: Optional[dict] = None


def _today(user: User):
    return today_for_tz(user.settings.timezone if user.settings else None)


def _to_exercise(payload: ExercisePayload) -> Exercise:
    return Exercise(
        id=payload.id,
        name=payload.name.strip(),
        body_part=payload.body_part.strip().lower(),
        target=payload.target.strip().lower(),
        muscle=(payload.muscle or payload.body_part).strip().lower(),
        difficulty=payload.difficulty.strip().lower(),
        equipment=payload.equipment,
        instructions=payload.instructions,
        gif_url=payload.gif_url,
    )


@router.get("/exercises")
def search_exercises(
    body_part: Optional[str] = None,
    difficulty: Optional[str] = None,
    name: Optional[str] = None,
    catalog: ExerciseCatalog = Depends(get_exercise_catalog),
):
    return {"exercises": [ex.to_dict() for ex in catalog.search(body_part, difficulty, name)]}


@router.get("/users/{user_id}/workouts/week")
def weekly_plan(user: User = Depends(get_target_user), db: Session = Depends(get_db)):
    store = WorkoutPlanStore(db)
    store.roll_over_week(user.id, _today(user))
    db.commit()
    return {"days": {day: plan.to_dict() for day, plan in store.get_weekly_plan(user.id).items()}}


@router.post("/users/{user_id}/workouts/{day}/exercises", status_code=201)
def add_exercise(
    day: str,
    req: AddExerciseRequest,
    user: User = Depends(get_target_user),
    db: Session = Depends(get_db),
):
    try:
        plan = WorkoutPlanStore(db).add_exercise(
            user.id,
            day,
            _to_exercise(req.exercise),
            sets=req.sets,
            reps=req.reps,
            duration_min=req.duration_min,
            rest_seconds=req.rest_seconds,
            weight_kg=req.weight_kg,
            notes=req.notes,
        )
    except ValueError as exc:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(exc))
    clear_suggestion_cache(DbSuggestionCache(db), user.id)
    db.commit()
    return plan.to_dict()


@router.post("/users/{user_id}/workouts/{day}/exercises/{index}/complete")
def complete_exercise(
    day: str,
    index: int,
    req: CompleteExerciseRequest,
    user: User = Depends(get_target_user),
    db: Session = Depends(get_db),
):
    try:
        plan = WorkoutPlanStore(db).mark_exercise_completed(
            user.id, day, index, weight_kg=req.weight_kg, notes=req.notes, today=_today(user)
        )
    except InvalidDayError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except ExerciseIndexError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    clear_suggestion_cache(DbSuggestionCache(db), user.id)
    db.commit()
    return plan.to_dict()


@router.delete("/users/{user_id}/workouts/{day}/exercises/{index}")
def remove_exercise(
    day: str,
    index: int,
    user: User = Depends(get_target_user),
    db: Session = Depends(get_db),
):
    try:
        plan = WorkoutPlanStore(db).remove_exercise(user.id, day, index)
    except InvalidDayError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except ExerciseIndexError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    clear_suggestion_cache(DbSuggestionCache(db), user.id)
    db.commit()
    return plan.to_dict()


@router.get("/users/{user_id}/workouts/{day}/summary")
def day_summary(day: str, user: User = Depends(get_target_user), db: Session = Depends(get_db)):
    try:
        return WorkoutPlanStore(db).day_summary(user.id, day)
    except InvalidDayError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


@router.get("/users/{user_id}/workouts/analysis")
def weekly_analysis(user: User = Depends(get_target_user), db: Session = Depends(get_db)):
    return load_weekly_analysis(WorkoutPlanStore(db), user.id, _today(user)).to_dict()


@router.post("/users/{user_id}/workouts/suggestion")
async def tomorrow_suggestion(
    req: SuggestionRequest,
    user: User = Depends(get_target_user),
    db: Session = Depends(get_db),
    catalog: ExerciseCatalog = Depends(get_exercise_catalog),
):
    store = WorkoutPlanStore(db)
    today = _today(user)
    store.roll_over_week(user.id, today)
    analysis = load_weekly_analysis(store, user.id, today)
    suggestion = await generate_tomorrow_suggestion(
        user.id,
        analysis,
        catalog=catalog,
        provider=resolve_provider(user.settings),
        cache=DbSuggestionCache(db),
        force_refresh=req.force_refresh,
        health_goal=user.settings.health_goal if user.settings else None,
    )
    db.commit()
    return {"analysis": analysis.to_dict(), "suggestion": suggestion.to_dict()}


@router.post("/users/{user_id}/workouts/suggestion/apply")
async def apply_tomorrow_suggestion(
    req: ApplySuggestionRequest,
    user: User = Depends(get_target_user),
    db: Session = Depends(get_db),
    catalog: ExerciseCatalog = Depends(get_exercise_catalog),
):
    store = WorkoutPlanStore(db)
    cache = DbSuggestionCache(db)
    if req.suggestion is not None:
        try:
            suggestion = WorkoutSuggestion.from_dict(req.suggestion)
        except (KeyError, TypeError, ValueError) as exc:
            raise HTTPException(status_code=400, detail=f"Invalid suggestion: {exc}")
    else:
        analysis = load_weekly_analysis(store, user.id, _today(user))
        suggestion = await generate_tomorrow_suggestion(
            user.id,
            analysis,
            catalog=catalog,
            provider=resolve_provider(user.settings),
            cache=cache,
            health_goal=user.settings.health_goal if user.settings else None,
        )
    try:
        result = apply_suggestion(store, user.id, suggestion, cache=cache)
    except InvalidDayError as exc:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(exc))
    db.commit()
    logger.info(
        f"Applied suggestion for user {user.id} on {suggestion.day_of_week}: "
        f"{result.added} added, {result.duplicates} duplicates, {result.failed} failed"
    )
    return {"day_of_week": suggestion.day_of_week, **result.to_dict()}


@router.delete("/users/{user_id}/workouts/suggestion/cache", status_code=204)
def clear_cached_suggestions(user: User = Depends(get_target_user), db: Session = Depends(get_db)):
    clear_suggestion_cache(DbSuggestionCache(db), user.id)
    db.commit()
