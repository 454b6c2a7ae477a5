from __future__ import annotations

import logging
import threading
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Protocol

import httpx

from config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Exercise:
    id: str
    name: str
    body_part: str
    target: str
    muscle: str
    difficulty: str = "beginner"
    equipment: str = "body weight"
    instructions: str = ""
    gif_url: str | None = None
    secondary_muscles: tuple[str, ...] = field(default_factory=tuple)

    @property
    def is_complete(self) -> bool:
        return bool(self.name and self.target and self.body_part)

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["secondary_muscles"] = list(self.secondary_muscles)
        return payload

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Exercise":
        return cls(
            id=str(data.get("id") or ""),
            name=str(data.get("name") or ""),
            body_part=str(data.get("body_part") or ""),
            target=str(data.get("target") or ""),
            muscle=str(data.get("muscle") or ""),
            difficulty=str(data.get("difficulty") or "beginner"),
            equipment=str(data.get("equipment") or "body weight"),
            instructions=str(data.get("instructions") or ""),
            gif_url=data.get("gif_url"),
            secondary_muscles=tuple(data.get("secondary_muscles") or ()),
        )


class ExerciseSearch(Protocol):
    def search(
        self,
        body_part: str | None = None,
        difficulty: str | None = None,
        name: str | None = None,
    ) -> list[Exercise]:
        ...


def _ex(id_, name, body_part, equipment, target, muscle, difficulty, instructions) -> Exercise:
    return Exercise(
        id=id_,
        name=name,
        body_part=body_part,
        target=target,
        muscle=muscle,
        difficulty=difficulty,
        equipment=equipment,
        instructions=instructions,
    )


BUILTIN_EXERCISES: tuple[Exercise, ...] = (
    _ex("1", "Push-ups", "chest", "body weight", "pectorals", "chest", "beginner",
        "From a plank with hands slightly wider than shoulders, lower until the chest nearly touches the floor, then press up."),
    _ex("2", "Bench Press", "chest", "barbell", "pectorals", "chest", "intermediate",
        "Lie under the bar, grip wider than shoulders, lower the bar to the chest and press it back up."),
    _ex("3", "Incline Dumbbell Press", "chest", "dumbbell", "pectorals", "chest", "intermediate",
        "On an incline bench, press the dumbbells up and together, then lower them slowly to chest level."),
    _ex("4", "Pull-ups", "back", "body weight", "lats", "lats", "intermediate",
        "Hang with arms extended, pull until the chin clears the bar, lower under control."),
    _ex("5", "Bent-over Rows", "back", "barbell", "lats", "lats", "intermediate",
        "Hinge at the hips holding a barbell overhand, row it to the lower chest squeezing the shoulder blades."),
    _ex("6", "Lat Pulldowns", "back", "cable", "lats", "lats", "beginner",
        "Seated at the machine with a wide grip, pull the bar to the chest keeping the back straight."),
    _ex("7", "Bicep Curls", "upper arms", "dumbbell", "biceps", "biceps", "beginner",
        "Palms forward, curl the dumbbells to the shoulders and lower slowly."),
    _ex("8", "Tricep Dips", "upper arms", "body weight", "triceps", "triceps", "intermediate",
        "Support yourself on bars or a bench, bend the arms to lower, then push back up."),
    _ex("9", "Hammer Curls", "upper arms", "dumbbell", "biceps", "biceps", "beginner",
        "With a neutral grip, curl the dumbbells up keeping palms facing each other."),
    _ex("10", "Squats", "lower legs", "body weight", "quadriceps", "quadriceps", "beginner",
        "Feet shoulder-width apart, sit the hips back and down, then return to standing."),
    _ex("11", "Lunges", "lower legs", "body weight", "quadriceps", "quadriceps", "beginner",
        "Step forward and lower until both knees reach 90 degrees, push back to start."),
    _ex("12", "Deadlifts", "lower legs", "barbell", "glutes", "quadriceps", "intermediate",
        "Bar over mid-foot, hinge to grip it and stand by extending hips and knees together."),
    _ex("13", "Plank", "waist", "body weight", "abs", "abdominals", "beginner",
        "Rest on the forearms and hold a straight line from head to heels."),
    _ex("14", "Crunches", "waist", "body weight", "abs", "abdominals", "beginner",
        "On your back with knees bent, lift the shoulders off the floor by contracting the abs."),
    _ex("15", "Mountain Climbers", "waist", "body weight", "abs", "abdominals", "intermediate",
        "From a plank, drive the knees to the chest alternately at a running pace."),
    _ex("16", "Jumping Jacks", "cardio", "body weight", "cardiovascular system", "cardio", "beginner",
        "Jump feet apart while raising the arms overhead, then return to start."),
    _ex("17", "Burpees", "cardio", "body weight", "cardiovascular system", "cardio", "expert",
        "Squat, kick back to a plank, push-up, jump the feet in and jump up with arms overhead."),
    _ex("18", "High Knees", "cardio", "body weight", "cardiovascular system", "cardio", "beginner",
        "Run in place bringing the knees to hip height and pumping the arms."),
)

_BODY_PART_ALIASES: dict[str, tuple[str, ...]] = {
    "back": ("back", "upper back", "lower back", "lats"),
    "chest": ("chest", "pectorals"),
    "shoulders": ("shoulders", "delts", "deltoids"),
    "arms": ("biceps", "triceps", "forearms", "upper arms", "lower arms"),
    "legs": ("quadriceps", "hamstrings", "glutes", "calves", "upper legs", "lower legs"),
    "abs": ("abs", "core", "abdominals", "waist"),
    "cardio": ("cardio", "cardiovascular"),
}

_ADVANCED_TARGETS = {"cardiovascular system", "spine", "upper back"}
_INTERMEDIATE_TARGETS = {"lats", "delts", "traps", "triceps"}


def difficulty_for_target(target: str | None) -> str:
    cleaned = (target or "").strip().lower()
    if cleaned in _ADVANCED_TARGETS:
        return "expert"
    if cleaned in _INTERMEDIATE_TARGETS:
        return "intermediate"
    return "beginner"


def _filter(
    exercises: list[Exercise],
    body_part: str | None,
    difficulty: str | None,
    name: str | None,
    *,
    fuzzy_body_part: bool,
) -> list[Exercise]:
    out = exercises
    if body_part and body_part.strip().lower() != "all":
        wanted = body_part.strip().lower()
        if fuzzy_body_part:
            aliases = _BODY_PART_ALIASES.get(wanted, ())
            out = [
                ex for ex in out
                if wanted in ex.body_part.lower() or any(alias in ex.body_part.lower() for alias in aliases)
            ]
        else:
            out = [ex for ex in out if ex.body_part.lower() == wanted]
    if difficulty:
        wanted_difficulty = difficulty.strip().lower()
        out = [ex for ex in out if ex.difficulty == wanted_difficulty]
    if name:
        needle = name.strip().lower()
        out = [ex for ex in out if needle in ex.name.lower()]
    return out


class BuiltinExerciseCatalog:
    """Offline catalog used when the remote service is unavailable."""

    max_results = 10

    def __init__(self, exercises: tuple[Exercise, ...] = BUILTIN_EXERCISES):
        self.exercises = list(exercises)

    def search(
        self,
        body_part: str | None = None,
        difficulty: str | None = None,
        name: str | None = None,
    ) -> list[Exercise]:
        return _filter(self.exercises, body_part, difficulty, name, fuzzy_body_part=False)[: self.max_results]


# Circuit breaker shared by every remote catalog instance in the process.
_CB_LOCK = threading.Lock()
_CB_STATE: dict[str, float | int] = {"failures": 0, "open_until": 0.0}


def _cb_should_allow() -> bool:
    with _CB_LOCK:
        return float(_CB_STATE.get("open_until", 0.0)) <= time.monotonic()


def _cb_record_success() -> None:
    with _CB_LOCK:
        _CB_STATE["failures"] = 0
        _CB_STATE["open_until"] = 0.0


def _cb_record_failure() -> None:
    threshold = max(int(settings.EXERCISE_CATALOG_CIRCUIT_FAIL_THRESHOLD), 1)
    open_seconds = max(int(settings.EXERCISE_CATALOG_CIRCUIT_OPEN_SECONDS), 5)
    with _CB_LOCK:
        failures = int(_CB_STATE.get("failures", 0)) + 1
        _CB_STATE["failures"] = failures
        if failures >= threshold:
            _CB_STATE["open_until"] = time.monotonic() + open_seconds


def reset_circuit() -> None:
    _cb_record_success()


def _extract_items(data: Any) -> list[dict[str, Any]]:
    """Pull the exercise list out of the handful of shapes the API has used."""
    if isinstance(data, list):
        return [item for item in data if isinstance(item, dict)]
    if not isinstance(data, dict):
        return []
    for key in ("data", "exercises", "results"):
        inner = data.get(key)
        if isinstance(inner, list):
            return [item for item in inner if isinstance(item, dict)]
        if isinstance(inner, dict):
            nested = _extract_items(inner)
            if nested:
                return nested
    return []


def _first(value: Any) -> str:
    if isinstance(value, list):
        return str(value[0]) if value else ""
    return str(value or "")


def _convert(item: dict[str, Any]) -> Exercise | None:
    name = str(item.get("name") or "").strip()
    if not name:
        return None
    body_part = (str(item.get("bodyPart") or "") or _first(item.get("bodyParts"))).strip()
    target = (str(item.get("target") or "") or _first(item.get("targetMuscles"))).strip()
    instructions = item.get("instructions")
    if isinstance(instructions, list):
        instructions = " ".join(str(step) for step in instructions)
    secondary = item.get("secondaryMuscles") or []
    return Exercise(
        id=str(item.get("exerciseId") or item.get("id") or name.lower()),
        name=name,
        body_part=body_part,
        target=target,
        muscle=body_part,
        difficulty=difficulty_for_target(target),
        equipment=(str(item.get("equipment") or "") or _first(item.get("equipments"))).strip() or "body weight",
        instructions=str(instructions or ""),
        gif_url=item.get("gifUrl") or None,
        secondary_muscles=tuple(str(m) for m in secondary if m) if isinstance(secondary, list) else (),
    )


class ExerciseCatalog:
    """Remote ExerciseDB search with the built-in catalog as fallback."""

    def __init__(
        self,
        *,
        base_url: str | None = None,
        timeout_s: float | None = None,
        remote_enabled: bool | None = None,
        fallback: ExerciseSearch | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        self.base_url = (base_url or settings.EXERCISE_CATALOG_BASE_URL).rstrip("/")
        self.timeout_s = timeout_s if timeout_s is not None else settings.EXERCISE_CATALOG_TIMEOUT_SECONDS
        self.remote_enabled = settings.EXERCISE_CATALOG_REMOTE_ENABLED if remote_enabled is None else remote_enabled
        self.fallback = fallback or BuiltinExerciseCatalog()
        self._transport = transport

    def _fetch_remote(self) -> list[Exercise]:
        with httpx.Client(timeout=self.timeout_s, follow_redirects=True, transport=self._transport) as client:
            resp = client.get(
                f"{self.base_url}/exercises",
                params={"limit": settings.EXERCISE_CATALOG_FETCH_LIMIT},
                headers={"Accept": "application/json"},
            )
            resp.raise_for_status()
            data = resp.json()
        converted = [ex for ex in (_convert(item) for item in _extract_items(data)) if ex is not None]
        if not converted:
            raise ValueError("exercise catalog response contained no exercises")
        return converted

    def search(
        self,
        body_part: str | None = None,
        difficulty: str | None = None,
        name: str | None = None,
    ) -> list[Exercise]:
        if not self.remote_enabled or not _cb_should_allow():
            return self.fallback.search(body_part, difficulty, name)
        try:
            exercises = self._fetch_remote()
            _cb_record_success()
        except (httpx.HTTPError, ValueError) as exc:
            _cb_record_failure()
            logger.warning(f"Exercise catalog unavailable, using built-in exercises: {exc}")
            return self.fallback.search(body_part, difficulty, name)
        filtered = _filter(exercises, body_part, difficulty, name, fuzzy_body_part=True)
        return filtered[: max(int(settings.EXERCISE_CATALOG_MAX_RESULTS), 1)]
