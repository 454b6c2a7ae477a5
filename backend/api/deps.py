from fastapi import Depends, HTTPException
from sqlalchemy.orm import Session

from db.database import get_db
from db.models import User
from services.exercise_catalog import ExerciseCatalog


def get_target_user(user_id: int, db: Session = Depends(get_db)) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


def get_exercise_catalog() -> ExerciseCatalog:
    return ExerciseCatalog()
