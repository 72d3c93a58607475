"""Skill levels, trail difficulties and the preference table.

SkillLevel and Difficulty are ordinal: the gap between a skier's skill and a
trail's difficulty drives traversal willingness, so both enums share the same
0..3 scale.

PreferenceTable answers three questions for a (skill, difficulty) pair:
- How much does this skier like this difficulty? (preference in [0, 1])
- Is it a real option at all? (allowed, otherwise a hard block)
- Is it only acceptable in desperation? (desperate-only)
"""

from dataclasses import dataclass, field
from enum import IntEnum

from skiresort_flow.constants import SkillConfig


class SkillLevel(IntEnum):
    """Skier ability, ordinal."""

    BEGINNER = 0
    INTERMEDIATE = 1
    ADVANCED = 2
    EXPERT = 3

    @property
    def key(self) -> str:
        """Lowercase name used as key in SkillConfig tables."""
        return SkillConfig.SKILL_LEVELS[self.value]

    @staticmethod
    def from_key(key: str) -> "SkillLevel":
        """Parse 'beginner' / 'intermediate' / 'advanced' / 'expert'."""
        return SkillLevel(SkillConfig.SKILL_LEVELS.index(key.lower()))


class Difficulty(IntEnum):
    """Trail difficulty class, ordinal and aligned with SkillLevel."""

    GREEN = 0
    BLUE = 1
    BLACK = 2
    DOUBLE_BLACK = 3

    @property
    def key(self) -> str:
        """Lowercase name used as key in SkillConfig tables."""
        return SkillConfig.DIFFICULTIES[self.value]

    @staticmethod
    def from_key(key: str) -> "Difficulty":
        """Parse 'green' / 'blue' / 'black' / 'double_black'."""
        return Difficulty(SkillConfig.DIFFICULTIES.index(key.lower()))


assert len(SkillLevel) == len(SkillConfig.SKILL_LEVELS)
assert len(Difficulty) == len(SkillConfig.DIFFICULTIES)


def _default_preferences() -> dict[SkillLevel, dict[Difficulty, float]]:
    return {
        skill: {diff: SkillConfig.PREFERENCES[skill.key][diff.key] for diff in Difficulty} for skill in SkillLevel
    }


def _default_allowed() -> dict[SkillLevel, frozenset[Difficulty]]:
    return {
        skill: frozenset(Difficulty.from_key(k) for k in SkillConfig.ALLOWED[skill.key]) for skill in SkillLevel
    }


def _default_desperate() -> dict[SkillLevel, frozenset[Difficulty]]:
    return {
        skill: frozenset(Difficulty.from_key(k) for k in SkillConfig.DESPERATE_ONLY[skill.key])
        for skill in SkillLevel
    }


@dataclass
class PreferenceTable:
    """Skill x difficulty preferences with hard-block and desperate-only sets.

    Defaults come from SkillConfig. Missing entries are treated as a
    preference of 0 and as not allowed.

    Attributes:
        preferences: Innate preference per (skill, difficulty)
        allowed: Difficulties each skill may take at all
        desperate_only: Allowed difficulties that score only the desperate constant
    """

    preferences: dict[SkillLevel, dict[Difficulty, float]] = field(default_factory=_default_preferences)
    allowed: dict[SkillLevel, frozenset[Difficulty]] = field(default_factory=_default_allowed)
    desperate_only: dict[SkillLevel, frozenset[Difficulty]] = field(default_factory=_default_desperate)

    def __post_init__(self) -> None:
        """Validate preference range."""
        for skill, row in self.preferences.items():
            for diff, value in row.items():
                if not 0.0 <= value <= 1.0:
                    raise ValueError(f"Preference for {skill.name}/{diff.name} must be in [0, 1], got {value}")

    def get_preference(self, skill: SkillLevel, difficulty: Difficulty) -> float:
        """Innate preference of a skill level for a difficulty."""
        return self.preferences.get(skill, {}).get(difficulty, 0.0)

    def is_allowed(self, skill: SkillLevel, difficulty: Difficulty) -> bool:
        """False means a hard block: the candidate scores exactly 0."""
        return difficulty in self.allowed.get(skill, frozenset())

    def is_desperate_only(self, skill: SkillLevel, difficulty: Difficulty) -> bool:
        """True if allowed only as a last resort."""
        return difficulty in self.desperate_only.get(skill, frozenset())
