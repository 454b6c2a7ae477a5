from __future__ import annotations

import json
import sys
from datetime import datetime
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from api.deps import get_exercise_catalog  # noqa: E402
from db.database import Base, get_db  # noqa: E402
from db.models import FoodLog  # noqa: E402
from main import app  # noqa: E402
from services.exercise_catalog import BuiltinExerciseCatalog  # noqa: E402
from utils.datetime_utils import next_weekday_name, today_for_tz  # noqa: E402


@pytest.fixture()
def client_and_sessions():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    def _override_get_db():
        db = TestingSession()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_exercise_catalog] = lambda: BuiltinExerciseCatalog()
    try:
        yield TestClient(app), TestingSession
    finally:
        app.dependency_overrides.clear()


def _create_user(client: TestClient, **overrides) -> dict:
    body = {
        "username": "Casey",
        "age": 30,
        "sex": "male",
        "height_cm": 170,
        "current_weight_kg": 70,
        "activity_level": "moderate",
        "health_goal": "Improve Fitness",
        "timezone": "UTC",
    }
    body.update(overrides)
    return client.post("/api/users", json=body)


def test_create_user_generates_plan_and_targets(client_and_sessions):
    client, _ = client_and_sessions
    res = _create_user(client)
    assert res.status_code == 201, res.text
    payload = res.json()
    user_id = payload["user"]["id"]
    assert payload["plan"]["nutrition_goals"]["calorie_goal"] == 2507
    assert payload["user"]["has_api_key"] is False

    targets = client.get(f"/api/users/{user_id}/targets").json()
    assert targets["nutrition"]["protein_goal"] == 98
    assert targets["hydration"]["daily_target_ml"] == 2450
    assert targets["sleep"]["target_wake_time"] == "06:00"

    assert _create_user(client).status_code == 409


def test_invalid_biometrics_are_rejected(client_and_sessions):
    client, _ = client_and_sessions
    res = _create_user(client, current_weight_kg=-5)
    assert res.status_code == 400
    assert client.get("/api/users/1").status_code == 404


def test_switch_plan_keeps_logged_history(client_and_sessions):
    client, TestingSession = client_and_sessions
    user_id = _create_user(client).json()["user"]["id"]
    with TestingSession() as db:
        db.add(FoodLog(user_id=user_id, logged_at=datetime(2026, 10, 18, 8, 0), items=json.dumps(["eggs"])))
        db.commit()

    res = client.post(f"/api/users/{user_id}/plan/switch", json={"health_goal": "Lose Weight"})
    assert res.status_code == 200, res.text
    body = res.json()
    assert body["plan"]["health_goal"] == "Lose Weight"
    assert body["goal_recognized"] is True
    assert body["history"]["meals"] == 1

    current = client.get(f"/api/users/{user_id}/plan").json()
    assert current["id"] == body["plan"]["id"]
    assert client.get(f"/api/users/{user_id}/targets").json()["nutrition"]["calorie_goal"] == 2006


def test_full_tomorrow_gets_rest_and_apply_reports_duplicates(client_and_sessions):
    client, _ = client_and_sessions
    user_id = _create_user(client).json()["user"]["id"]
    tomorrow = next_weekday_name(today_for_tz("UTC"))

    catalog = client.get("/api/exercises", params={"body_part": "waist"}).json()["exercises"]
    assert [ex["name"] for ex in catalog] == ["Plank", "Crunches", "Mountain Climbers"]
    for exercise in catalog:
        res = client.post(f"/api/users/{user_id}/workouts/{tomorrow}/exercises", json={"exercise": exercise})
        assert res.status_code == 201, res.text

    res = client.post(f"/api/users/{user_id}/workouts/suggestion", json={"force_refresh": True})
    assert res.status_code == 200, res.text
    body = res.json()
    assert body["analysis"]["tomorrow_exercise_count"] == 3
    assert body["suggestion"]["recommended_focus"] == []

    suggestion = {
        "day_of_week": tomorrow,
        "recommended_focus": ["waist"],
        "suggested_exercises": catalog[:1] + [client.get("/api/exercises", params={"name": "squats"}).json()["exercises"][0]],
        "reasoning": "Core and legs.",
        "validation_status": "rule-based",
    }
    first = client.post(f"/api/users/{user_id}/workouts/suggestion/apply", json={"suggestion": suggestion}).json()
    assert (first["added"], first["duplicates"], first["failed"]) == (1, 1, 0)
    second = client.post(f"/api/users/{user_id}/workouts/suggestion/apply", json={"suggestion": suggestion}).json()
    assert (second["added"], second["duplicates"]) == (0, 2)

    week = client.get(f"/api/users/{user_id}/workouts/week").json()["days"]
    assert len(week[tomorrow]["exercises"]) == 4


def test_complete_exercise_and_unknown_index(client_and_sessions):
    client, _ = client_and_sessions
    user_id = _create_user(client).json()["user"]["id"]
    exercise = client.get("/api/exercises", params={"name": "push"}).json()["exercises"][0]
    client.post(f"/api/users/{user_id}/workouts/Monday/exercises", json={"exercise": exercise, "sets": 4})

    done = client.post(f"/api/users/{user_id}/workouts/Monday/exercises/0/complete", json={"weight_kg": 0})
    assert done.status_code == 200
    assert done.json()["exercises"][0]["completed"] is True
    assert client.post(f"/api/users/{user_id}/workouts/Monday/exercises/3/complete", json={}).status_code == 404
    assert client.delete(f"/api/users/{user_id}/workouts/Someday/exercises/0").status_code == 400


def test_ai_settings_store_encrypted_key(client_and_sessions):
    client, _ = client_and_sessions
    user_id = _create_user(client).json()["user"]["id"]

    res = client.put(f"/api/users/{user_id}/ai-settings", json={"ai_provider": "google", "api_key": "AIza-test-key-1234"})
    assert res.status_code == 200
    assert res.json()["has_api_key"] is True
    assert res.json()["api_key_hint"] == "AIza...1234"
    assert client.put(f"/api/users/{user_id}/ai-settings", json={"ai_provider": "acme"}).status_code == 400


def test_health_endpoint_and_security_headers(client_and_sessions):
    client, _ = client_and_sessions
    res = client.get("/api/health")
    assert res.status_code == 200
    assert res.json()["status"] == "ok"
    assert res.headers["X-Content-Type-Options"] == "nosniff"


def test_suggestion_follows_plan_changes_without_force_refresh(client_and_sessions):
    client, _ = client_and_sessions
    user_id = _create_user(client).json()["user"]["id"]
    tomorrow = next_weekday_name(today_for_tz("UTC"))

    first = client.post(f"/api/users/{user_id}/workouts/suggestion", json={}).json()
    assert first["suggestion"]["recommended_focus"] == ["chest", "back"]

    squats = client.get("/api/exercises", params={"name": "squats"}).json()["exercises"][0]
    client.post(f"/api/users/{user_id}/workouts/{tomorrow}/exercises", json={"exercise": squats})

    second = client.post(f"/api/users/{user_id}/workouts/suggestion", json={}).json()
    assert second["analysis"]["tomorrow_exercise_count"] == 1
    assert second["suggestion"]["recommended_focus"] == ["waist"]


def test_health_goals_lists_every_policy(client_and_sessions):
    client, _ = client_and_sessions
    body = client.get("/api/health-goals").json()
    labels = [goal["label"] for goal in body["goals"]]
    assert body["default"] == "General Health"
    assert "Run a Marathon" not in labels
    assert {"Lose Weight", "Build Muscle", "General Health"} <= set(labels)
    assert len(labels) == 8
