from __future__ import annotations

import sys
from pathlib import Path


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from ai.suggestion_parser import (  # noqa: E402
    ParseFailure,
    ParseSuccess,
    build_suggestion_prompt,
    extract_first_json_object,
    parse_suggestion_response,
)
from services.weekly_training import WeeklyTrainingAnalysis  # noqa: E402


def test_parses_fenced_json_and_filters_focus():
    text = """Here you go:
```json
{"shouldWorkout": true, "focus": ["Chest", "triceps", "upper_arms", "chest"], "reasoning": "Upper body is fresh."}
```"""
    result = parse_suggestion_response(text)
    assert isinstance(result, ParseSuccess)
    assert result.should_workout is True
    assert result.focus == ("chest", "upper arms")
    assert result.dropped_focus == ("triceps",)
    assert result.reasoning == "Upper body is fresh."


def test_extracts_first_object_from_prose():
    text = 'Sure! {"shouldWorkout": false, "focus": ["cardio"], "reasoning": "Rest {really}."} and {"other": 1}'
    result = parse_suggestion_response(text)
    assert isinstance(result, ParseSuccess)
    assert result.should_workout is False
    assert result.focus == ()
    assert extract_first_json_object("no braces here") is None


def test_rejects_missing_or_mistyped_required_fields():
    assert isinstance(parse_suggestion_response('{"focus": ["chest"], "reasoning": "x"}'), ParseFailure)
    assert isinstance(parse_suggestion_response('{"shouldWorkout": "yes", "reasoning": "x"}'), ParseFailure)
    assert isinstance(parse_suggestion_response('{"shouldWorkout": true, "reasoning": 5}'), ParseFailure)
    assert isinstance(parse_suggestion_response('{"shouldWorkout": true, "reasoning": "x",}'), ParseFailure)
    assert isinstance(parse_suggestion_response(""), ParseFailure)


def test_non_list_focus_is_treated_as_empty():
    result = parse_suggestion_response('{"shouldWorkout": true, "focus": "chest", "reasoning": "x"}')
    assert isinstance(result, ParseSuccess)
    assert result.focus == ()


def test_prompt_lists_whitelist_and_train_flag():
    analysis = WeeklyTrainingAnalysis(
        tomorrow="Friday",
        completed_days=("Monday",),
        trained_muscle_groups=("chest",),
        total_workouts=1,
    )
    prompt = build_suggestion_prompt(analysis, should_train=True, health_goal="Build Muscle")
    assert "tomorrow (Friday)" in prompt
    assert "chest, back, upper arms, lower legs, waist, cardio" in prompt
    assert "Should train tomorrow: yes" in prompt
    assert "Health goal: Build Muscle" in prompt
