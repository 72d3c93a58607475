"""AgentContext - Per-skier decision state.

Everything the Decision Engine needs to know about one agent: who it is, how
good it is, where its plan points next, what it has already used, and its
fixed personality.

Personality offsets are a pure function of the agent id: the same id always
yields the same eight offsets, so a skier's character survives respawns and
simulation restarts.
"""

from dataclasses import dataclass, field

import numpy as np

from skiresort_flow.constants import DecisionConfig
from skiresort_flow.model.goal import Goal, PathStep
from skiresort_flow.model.skill import SkillLevel


@dataclass(frozen=True)
class PersonalityOffsets:
    """Additive offsets applied to the eight scoring weights.

    Attributes:
        difficulty: Offset for the difficulty preference weight
        downstream: Offset for the downstream value weight
        deficit: Offset for the traffic deficit weight
        goal: Offset for the goal alignment weight
        novelty: Offset for the novelty weight
        crowding: Offset for the crowding penalty weight
        traversal: Offset for the traversal willingness weight
        herding: Offset for the herding penalty weight
    """

    difficulty: float = 0.0
    downstream: float = 0.0
    deficit: float = 0.0
    goal: float = 0.0
    novelty: float = 0.0
    crowding: float = 0.0
    traversal: float = 0.0
    herding: float = 0.0

    @staticmethod
    def seed_for(agent_id: int) -> int:
        """Deterministic, non-negative generator seed for an agent id."""
        seed = agent_id * DecisionConfig.PERSONALITY_SEED_MULTIPLIER + DecisionConfig.PERSONALITY_SEED_OFFSET
        return seed & 0xFFFFFFFF

    @classmethod
    def generate(cls, agent_id: int, magnitude: float = DecisionConfig.PERSONALITY_MAGNITUDE) -> "PersonalityOffsets":
        """Draw the eight offsets uniformly in [-magnitude, magnitude].

        Args:
            agent_id: Agent identifier (the only source of randomness)
            magnitude: Half-width of the offset range

        Returns:
            PersonalityOffsets, identical for identical inputs.
        """
        rng = np.random.default_rng(cls.seed_for(agent_id))
        values = rng.uniform(-1.0, 1.0, size=DecisionConfig.PERSONALITY_SLOTS) * magnitude
        return cls(*(float(v) for v in values))

    def as_tuple(self) -> tuple[float, ...]:
        return (
            self.difficulty,
            self.downstream,
            self.deficit,
            self.goal,
            self.novelty,
            self.crowding,
            self.traversal,
            self.herding,
        )


@dataclass
class AgentContext:
    """Decision state of a single agent.

    Attributes:
        id: Agent identifier
        skill: Skill level
        goal: Current route from the external planner (None = no plan)
        trails_skied: Trails used at least once (novelty)
        lifts_ridden: Lifts used at least once (novelty)
        personality_offsets: Fixed per-agent weight perturbation, derived from id
        has_urgent_need: Set by the external needs model; prefer a lodge after the run
        desired_runs: Runs before the agent is done (None = ski forever)
        runs_completed: Runs started so far
        is_finished: True once the agent has stopped skiing
        personality_magnitude: Half-width of the personality offset range
    """

    id: int
    skill: SkillLevel
    goal: Goal | None = None
    trails_skied: set[int] = field(default_factory=set)
    lifts_ridden: set[int] = field(default_factory=set)
    personality_offsets: PersonalityOffsets = field(init=False)
    has_urgent_need: bool = False
    desired_runs: int | None = None
    runs_completed: int = 0
    is_finished: bool = False
    personality_magnitude: float = field(default=DecisionConfig.PERSONALITY_MAGNITUDE, repr=False)

    def __post_init__(self) -> None:
        """Derive personality from id (never regenerated afterwards)."""
        self.personality_offsets = PersonalityOffsets.generate(agent_id=self.id, magnitude=self.personality_magnitude)

    @property
    def current_goal_step(self) -> PathStep | None:
        """Next step of the current goal, None when there is no active goal."""
        if self.goal is None:
            return None
        return self.goal.current_step()

    @property
    def goal_trail_id(self) -> int | None:
        """Trail the current goal step asks for, if it is a trail step."""
        step = self.current_goal_step
        return step.entity_id if step is not None and step.is_trail else None

    @property
    def goal_lift_id(self) -> int | None:
        """Lift the current goal step asks for, if it is a lift step."""
        step = self.current_goal_step
        return step.entity_id if step is not None and step.is_lift else None

    @property
    def goal_is_stale(self) -> bool:
        """True when there is no goal or it has nothing left to follow."""
        return self.goal is None or self.goal.is_stale

    def wants_to_keep_skiing(self) -> bool:
        """False once desired_runs is reached."""
        if self.is_finished:
            return False
        return self.desired_runs is None or self.runs_completed < self.desired_runs

    def __repr__(self) -> str:
        return f"AgentContext(id={self.id}, {self.skill.key}, runs={self.runs_completed}, goal={self.goal!r})"
