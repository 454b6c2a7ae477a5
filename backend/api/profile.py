import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ai.providers import SUPPORTED_PROVIDERS
from api.deps import get_target_user
from db.database import get_db
from db.models import User, UserSettings
from services.plan_service import PlanGenerationError, generate_plan, plan_to_dict, switch_plan
from services.target_calculator import InvalidBiometricsError, UserSnapshot
from utils.encryption import decrypt_credential, encrypt_credential, mask_credential

router = APIRouter(prefix="/users", tags=["users"])
logger = logging.getLogger(__name__)

PROFILE_FIELDS = ("age", "sex", "height_cm", "current_weight_kg", "activity_level", "timezone")


class ProfileFields(BaseModel):
    age: Optional[int] = None
    sex: Optional[str] = None
    height_cm: Optional[float] = None
    current_weight_kg: Optional[float] = None
    activity_level: Optional[str] = None
    timezone: Optional[str] = None


class CreateUserRequest(ProfileFields):
    username: str
    display_name: Optional[str] = None
    health_goal: Optional[str] = None


class ProfileUpdate(ProfileFields):
    regenerate_plan: bool = True


class AISettingsUpdate(BaseModel):
    ai_provider: str  # 'google' | 'openai' | 'anthropic'
    api_key: Optional[str] = None
    ai_model: Optional[str] = None


def _profile_payload(user: User) -> dict:
    s = user.settings
    key = decrypt_credential(s.api_key_encrypted) if s else None
    return {
        "id": user.id,
        "username": user.username,
        "display_name": user.display_name,
        "age": s.age if s else None,
        "sex": s.sex if s else None,
        "height_cm": s.height_cm if s else None,
        "current_weight_kg": s.current_weight_kg if s else None,
        "activity_level": s.activity_level if s else None,
        "health_goal": s.health_goal if s else None,
        "timezone": s.timezone if s else None,
        "ai_provider": s.ai_provider if s else None,
        "ai_model": s.ai_model if s else None,
        "has_api_key": bool(key),
        "api_key_hint": mask_credential(key),
    }


def _apply_profile(s: UserSettings, fields: ProfileFields) -> None:
    for name in PROFILE_FIELDS:
        value = getattr(fields, name)
        if value is None:
            continue
        if isinstance(value, str):
            value = value.strip()
            if name == "sex":
                value = value.lower()
        setattr(s, name, value)


@router.post("", status_code=201)
def create_user(req: CreateUserRequest, db: Session = Depends(get_db)):
    username = " ".join((req.username or "").strip().split()).lower()
    if not username:
        raise HTTPException(status_code=400, detail="Username is required")
    if db.query(User).filter(User.username == username).first():
        raise HTTPException(status_code=409, detail="Username already taken")

    user = User(username=username, display_name=(req.display_name or req.username).strip())
    settings_row = UserSettings(health_goal=req.health_goal or "General Health")
    _apply_profile(settings_row, req)
    user.settings = settings_row
    db.add(user)
    try:
        UserSnapshot.from_settings(settings_row)
        db.flush()
        plan = generate_plan(db, user, settings_row.health_goal)
    except InvalidBiometricsError as exc:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(exc))
    except PlanGenerationError as exc:
        db.rollback()
        raise HTTPException(status_code=502, detail=str(exc))
    db.commit()
    db.refresh(user)
    return {"user": _profile_payload(user), "plan": plan_to_dict(plan)}


@router.get("/{user_id}")
def get_user(user: User = Depends(get_target_user)):
    return _profile_payload(user)


@router.put("/{user_id}/profile")
def update_profile(
    update: ProfileUpdate,
    user: User = Depends(get_target_user),
    db: Session = Depends(get_db),
):
    s = user.settings
    if s is None:
        s = UserSettings(user_id=user.id)
        user.settings = s
        db.add(s)
    _apply_profile(s, update)

    plan = None
    try:
        UserSnapshot.from_settings(s)
        db.flush()
        if update.regenerate_plan:
            plan = switch_plan(db, user.id, s.health_goal or "General Health")
    except InvalidBiometricsError as exc:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(exc))
    except PlanGenerationError as exc:
        db.rollback()
        raise HTTPException(status_code=502, detail=str(exc))
    db.commit()
    db.refresh(user)
    return {"user": _profile_payload(user), "plan": plan_to_dict(plan) if plan else None}


@router.put("/{user_id}/ai-settings")
def update_ai_settings(
    update: AISettingsUpdate,
    user: User = Depends(get_target_user),
    db: Session = Depends(get_db),
):
    provider = (update.ai_provider or "").strip().lower()
    if provider not in SUPPORTED_PROVIDERS:
        raise HTTPException(status_code=400, detail=f"Unsupported AI provider: {update.ai_provider}")
    s = user.settings
    if s is None:
        s = UserSettings(user_id=user.id)
        user.settings = s
        db.add(s)
    s.ai_provider = provider
    s.ai_model = (update.ai_model or "").strip() or None
    if update.api_key is not None:
        s.api_key_encrypted = encrypt_credential(update.api_key) if update.api_key.strip() else None
    db.commit()
    logger.info(f"Updated AI settings for user {user.id} (provider={provider})")
    return _profile_payload(user)
