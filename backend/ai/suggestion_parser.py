"""Prompt construction and response parsing for AI workout suggestions."""
from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Union

ALLOWED_FOCUS: tuple[str, ...] = ("chest", "back", "upper arms", "lower legs", "waist", "cardio")

SUGGESTION_SYSTEM_PROMPT = "You are a professional fitness trainer. Return only valid JSON, no explanation."

SUGGESTION_PROMPT_TEMPLATE = """Analyze the user's training this week and recommend what they should do tomorrow ({tomorrow}).

WEEKLY ANALYSIS:
- Days worked out: {completed_days}
- Muscle groups trained: {trained_groups}
- Total workouts completed: {total_workouts}
- Rest days taken: {rest_days}
- Last workout day: {last_workout_day}
- Exercises already planned for tomorrow: {tomorrow_count}
- Should train tomorrow: {should_train}
{goal_line}
RULES:
1. Do not train the same muscle groups on consecutive days.
2. Aim for 3-5 workouts per week.
3. Every major muscle group should be trained during the week.
4. Recommend rest after 5 or more workouts this week.

FOCUS OPTIONS (use only these): {focus_options}

Return ONLY valid JSON:
{{"shouldWorkout": true/false, "focus": ["focus option", ...] or [], "reasoning": "2-3 sentences"}}"""


@dataclass(frozen=True)
class ParseSuccess:
    should_workout: bool
    focus: tuple[str, ...]
    reasoning: str
    dropped_focus: tuple[str, ...] = ()


@dataclass(frozen=True)
class ParseFailure:
    reason: str


ParseResult = Union[ParseSuccess, ParseFailure]


def normalize_focus(label: Any) -> str:
    text = str(label or "").strip().lower().replace("_", " ").replace("-", " ")
    return " ".join(text.split())


def build_suggestion_prompt(analysis: Any, should_train: bool, health_goal: str | None = None) -> str:
    goal_line = f"- Health goal: {health_goal}\n" if health_goal else ""
    return SUGGESTION_PROMPT_TEMPLATE.format(
        tomorrow=analysis.tomorrow,
        completed_days=", ".join(analysis.completed_days) or "None this week",
        trained_groups=", ".join(analysis.trained_muscle_groups) or "None this week",
        total_workouts=analysis.total_workouts,
        rest_days=analysis.rest_days,
        last_workout_day=analysis.last_workout_day or "None this week",
        tomorrow_count=analysis.tomorrow_exercise_count,
        should_train="yes" if should_train else "no",
        goal_line=goal_line,
        focus_options=", ".join(ALLOWED_FOCUS),
    )


def _strip_code_fences(text: str) -> str:
    if "```" not in text:
        return text
    parts = text.split("```")
    # Prefer the first fenced block; fall back to the raw text if it is empty.
    block = parts[1] if len(parts) >= 3 else parts[-1]
    if block.lstrip().lower().startswith("json"):
        block = block.lstrip()[4:]
    return block.strip() or text


def extract_first_json_object(text: str) -> str | None:
    """Return the first balanced ``{...}`` span, ignoring braces inside strings."""
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for idx in range(start, len(text)):
            ch = text[idx]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return text[start: idx + 1]
        start = text.find("{", start + 1)
    return None


def parse_suggestion_response(text: str | None) -> ParseResult:
    raw = (text or "").strip()
    if not raw:
        return ParseFailure("empty response")
    candidate = extract_first_json_object(_strip_code_fences(raw))
    if candidate is None:
        return ParseFailure("no JSON object found")
    try:
        parsed = json.loads(candidate)
    except json.JSONDecodeError as exc:
        return ParseFailure(f"invalid JSON: {exc.msg}")
    if not isinstance(parsed, dict):
        return ParseFailure("response is not a JSON object")

    should_workout = parsed.get("shouldWorkout")
    reasoning = parsed.get("reasoning")
    if not isinstance(should_workout, bool):
        return ParseFailure("shouldWorkout missing or not a boolean")
    if not isinstance(reasoning, str):
        return ParseFailure("reasoning missing or not a string")

    raw_focus = parsed.get("focus")
    if not isinstance(raw_focus, list):
        raw_focus = []
    kept: list[str] = []
    dropped: list[str] = []
    for label in raw_focus:
        normalized = normalize_focus(label)
        if normalized in ALLOWED_FOCUS:
            if normalized not in kept:
                kept.append(normalized)
        else:
            dropped.append(str(label))
    if not should_workout:
        kept = []
    return ParseSuccess(
        should_workout=should_workout,
        focus=tuple(kept),
        reasoning=reasoning.strip(),
        dropped_focus=tuple(dropped),
    )
