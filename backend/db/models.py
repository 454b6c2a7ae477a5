from datetime import datetime
from sqlalchemy import (
    Column, Integer, Text, Float, Boolean, ForeignKey, Index,
    DateTime,
)
from sqlalchemy.orm import relationship
from db.database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(Text, unique=True, nullable=False)
    display_name = Column(Text, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    settings = relationship("UserSettings", back_populates="user", uselist=False, cascade="all, delete-orphan")


class UserSettings(Base):
    __tablename__ = "user_settings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, unique=True)
    ai_provider = Column(Text, nullable=False, default="google")
    api_key_encrypted = Column(Text)
    ai_model = Column(Text)
    age = Column(Integer)
    sex = Column(Text)  # male | female
    height_cm = Column(Float)
    current_weight_kg = Column(Float)
    activity_level = Column(Text, default="moderate")
    health_goal = Column(Text, default="General Health")
    timezone = Column(Text, default="UTC")
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="settings")


class DailyNutritionGoal(Base):
    __tablename__ = "daily_nutrition_goals"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    goal_date = Column(Text, nullable=False)  # YYYY-MM-DD
    calorie_goal = Column(Integer, nullable=False)
    protein_goal = Column(Integer, nullable=False)
    carbs_goal = Column(Integer, nullable=False)
    fat_goal = Column(Integer, nullable=False)
    target_meals = Column(Text, nullable=False)  # JSON object
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class HydrationGoal(Base):
    __tablename__ = "hydration_goals"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, unique=True)
    daily_target_ml = Column(Integer, nullable=False)
    based_on_weight_kg = Column(Float)
    health_goal = Column(Text)
    activity_level = Column(Text)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class SleepGoal(Base):
    __tablename__ = "sleep_goals"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, unique=True)
    target_sleep_minutes = Column(Integer, nullable=False)
    target_bedtime = Column(Text, nullable=False)  # HH:MM
    target_wake_time = Column(Text, nullable=False)  # HH:MM
    max_naps_per_day = Column(Integer, default=1)
    max_nap_minutes = Column(Integer, default=30)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class HealthPlan(Base):
    __tablename__ = "health_plans"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    health_goal = Column(Text, nullable=False)
    nutrition_goals = Column(Text, nullable=False)  # JSON object
    workouts_per_week = Column(Integer, nullable=False)
    recommended_focus = Column(Text, nullable=False)  # JSON array
    hydration_goal_ml = Column(Integer, nullable=False)
    sleep_goal_hours = Column(Float, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class DayWorkoutPlan(Base):
    __tablename__ = "day_workout_plans"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    day_of_week = Column(Text, nullable=False)  # Monday .. Sunday
    plan_name = Column(Text, nullable=False)
    exercises = Column(Text, nullable=False, default="[]")  # JSON array
    target_muscle_groups = Column(Text, nullable=False, default="[]")  # JSON array
    estimated_duration_min = Column(Float, nullable=False, default=0)
    week_start = Column(Text)  # YYYY-MM-DD (Monday) of the week completions belong to
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class SuggestionCache(Base):
    __tablename__ = "suggestion_cache"

    id = Column(Integer, primary_key=True, autoincrement=True)
    cache_key = Column(Text, nullable=False, unique=True)
    payload_json = Column(Text, nullable=False)
    cached_at = Column(DateTime, default=datetime.utcnow)


class FoodLog(Base):
    __tablename__ = "food_log"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    logged_at = Column(DateTime, nullable=False)
    meal_label = Column(Text)
    items = Column(Text, nullable=False)  # JSON array
    calories = Column(Float)
    protein_g = Column(Float)
    carbs_g = Column(Float)
    fat_g = Column(Float)
    notes = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)


class HydrationLog(Base):
    __tablename__ = "hydration_log"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    logged_at = Column(DateTime, nullable=False)
    amount_ml = Column(Float, nullable=False)
    source = Column(Text)
    notes = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)


class ExerciseLog(Base):
    __tablename__ = "exercise_log"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    logged_at = Column(DateTime, nullable=False)
    exercise_type = Column(Text, nullable=False)
    duration_minutes = Column(Integer)
    details = Column(Text)  # JSON
    calories_burned = Column(Float)
    notes = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)


class SleepLog(Base):
    __tablename__ = "sleep_log"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    sleep_start = Column(DateTime)
    sleep_end = Column(DateTime)
    duration_minutes = Column(Integer)
    quality = Column(Text)
    notes = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)


# Indexes
Index("idx_nutrition_goals_user_date", DailyNutritionGoal.user_id, DailyNutritionGoal.goal_date, unique=True)
Index("idx_health_plans_user_created", HealthPlan.user_id, HealthPlan.created_at)
Index("idx_day_workout_plans_user_day", DayWorkoutPlan.user_id, DayWorkoutPlan.day_of_week, unique=True)
Index("idx_suggestion_cache_cached_at", SuggestionCache.cached_at)
Index("idx_food_log_user_date", FoodLog.user_id, FoodLog.logged_at)
Index("idx_hydration_log_user_date", HydrationLog.user_id, HydrationLog.logged_at)
Index("idx_exercise_log_user_date", ExerciseLog.user_id, ExerciseLog.logged_at)
Index("idx_sleep_log_user_date", SleepLog.user_id, SleepLog.sleep_start)
