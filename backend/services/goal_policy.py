from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Iterable, Mapping


DEFAULT_GOAL = "General Health"
MASS_GAIN_GOALS = frozenset({"Gain Weight", "Build Muscle"})


@dataclass(frozen=True)
class GoalPolicy:
    """Per-goal coefficients.

    ``carbs_pct`` and ``fat_pct`` are shares of calories; protein is sized by
    body weight, so the three macros are not expected to add up to 100%.
    """

    calorie_multiplier: float
    protein_per_kg: float
    carbs_pct: float
    fat_pct: float
    water_per_kg_ml: float
    sleep_hours: float
    workout_days_per_week: int
    recommended_focus: tuple[str, ...] = ("full body",)


_DEFAULT_POLICIES: dict[str, GoalPolicy] = {
    "Lose Weight": GoalPolicy(0.8, 1.6, 0.35, 0.25, 35, 8, 4, ("cardio", "full body", "core")),
    "Gain Weight": GoalPolicy(1.2, 1.8, 0.45, 0.25, 40, 8, 5, ("chest", "back", "legs", "shoulders")),
    "Build Muscle": GoalPolicy(1.1, 2.0, 0.40, 0.25, 40, 8, 5, ("chest", "back", "legs", "shoulders", "arms")),
    "Improve Fitness": GoalPolicy(1.0, 1.4, 0.50, 0.20, 35, 8, 4, ("cardio", "full body", "core", "legs")),
    "Maintain Weight": GoalPolicy(1.0, 1.2, 0.45, 0.25, 35, 8, 3),
    "Better Sleep": GoalPolicy(1.0, 1.2, 0.40, 0.30, 30, 9, 3),
    "Reduce Stress": GoalPolicy(1.0, 1.2, 0.45, 0.25, 35, 8, 3),
    DEFAULT_GOAL: GoalPolicy(1.0, 1.2, 0.45, 0.25, 35, 8, 3),
}


class GoalPolicyTable:
    """Read-only goal label -> policy lookup with a default fallback."""

    def __init__(self, policies: Mapping[str, GoalPolicy], default_goal: str = DEFAULT_GOAL):
        if default_goal not in policies:
            raise ValueError(f"Default goal '{default_goal}' missing from policy table")
        self._policies = MappingProxyType(dict(policies))
        self.default_goal = default_goal

    @property
    def policies(self) -> Mapping[str, GoalPolicy]:
        return self._policies

    @property
    def default(self) -> GoalPolicy:
        return self._policies[self.default_goal]

    def is_known(self, label: str | None) -> bool:
        return bool(label) and label in self._policies

    def resolve(self, label: str | None) -> GoalPolicy:
        # Exact match only; anything else silently gets the default.
        if label and label in self._policies:
            return self._policies[label]
        return self.default

    def resolved_label(self, label: str | None) -> str:
        return label if self.is_known(label) else self.default_goal

    def labels(self) -> list[str]:
        return list(self._policies.keys())

    def is_mass_gain(self, label: str | None, mass_gain_goals: Iterable[str] = MASS_GAIN_GOALS) -> bool:
        return (label or "") in set(mass_gain_goals)


DEFAULT_POLICY_TABLE = GoalPolicyTable(_DEFAULT_POLICIES)
