"""Runtime configuration for a flow simulation.

FlowConfig bundles every tunable knob of the decision core. Defaults are read
from constants.py; a host overrides individual values with
FlowConfig(...), FlowConfig.with_overrides(...) or FlowConfig.from_dict(...)
and passes the instance explicitly to FlowSimulation.initialize().
"""

import dataclasses
from dataclasses import dataclass, field
from typing import Any

from skiresort_flow.constants import (
    ControllerConfig,
    DecisionConfig,
    LookaheadConfig,
    MotionConfig,
    SearchConfig,
    TrafficConfig,
)
from skiresort_flow.model.agent_context import PersonalityOffsets
from skiresort_flow.model.skill import PreferenceTable


@dataclass(frozen=True)
class DecisionWeights:
    """Weights of the eight scoring factors.

    Attributes:
        difficulty: Direct difficulty preference (bonus)
        downstream: Downstream terrain value (bonus)
        deficit: Traffic deficit, under-used edges (bonus)
        goal: Alignment with the current goal step (bonus)
        novelty: Edge never used by this agent (bonus)
        crowding: Current occupancy over capacity (penalty)
        traversal: Willingness to cruise easier terrain as transit (bonus)
        herding: Share of recent intents on this edge (penalty)
    """

    difficulty: float = DecisionConfig.WEIGHT_DIFFICULTY
    downstream: float = DecisionConfig.WEIGHT_DOWNSTREAM
    deficit: float = DecisionConfig.WEIGHT_DEFICIT
    goal: float = DecisionConfig.WEIGHT_GOAL
    novelty: float = DecisionConfig.WEIGHT_NOVELTY
    crowding: float = DecisionConfig.WEIGHT_CROWDING
    traversal: float = DecisionConfig.WEIGHT_TRAVERSAL
    herding: float = DecisionConfig.WEIGHT_HERDING

    def perturbed(self, offsets: PersonalityOffsets) -> "DecisionWeights":
        """Return weights shifted by an agent's personality offsets."""
        return DecisionWeights(
            difficulty=self.difficulty + offsets.difficulty,
            downstream=self.downstream + offsets.downstream,
            deficit=self.deficit + offsets.deficit,
            goal=self.goal + offsets.goal,
            novelty=self.novelty + offsets.novelty,
            crowding=self.crowding + offsets.crowding,
            traversal=self.traversal + offsets.traversal,
            herding=self.herding + offsets.herding,
        )


@dataclass(frozen=True)
class FlowConfig:
    """All recognised options of the decision core.

    Decision:
        temperature, min_temperature, weights, chaos_probability, score_floor,
        desperate_score, hard_block_logit_penalty, personality_magnitude

    Lookahead:
        lookahead_depth, depth_discounts

    Search radii:
        trail_start_search_radius, lift_search_radius, goal_lift_walk_radius,
        goal_trail_radius, junction_detection_radius, network_snap_radius,
        base_radius, lodge_search_radius

    Motion:
        walk_speed, lift_speed, base_ski_speed, anti_teleport_safety_factor,
        lateral_drift_speed, max_lateral_ratio

    Controller:
        lodge_visit_chance, replan_after_every_run, replan_at_lift_top

    Traffic:
        recent_intent_window
    """

    # Decision
    temperature: float = DecisionConfig.TEMPERATURE
    min_temperature: float = DecisionConfig.MIN_TEMPERATURE
    weights: DecisionWeights = field(default_factory=DecisionWeights)
    chaos_probability: float = DecisionConfig.CHAOS_PROBABILITY
    score_floor: float = DecisionConfig.SCORE_FLOOR
    desperate_score: float = DecisionConfig.DESPERATE_SCORE
    hard_block_logit_penalty: float = DecisionConfig.HARD_BLOCK_LOGIT_PENALTY
    personality_magnitude: float = DecisionConfig.PERSONALITY_MAGNITUDE
    preferences: PreferenceTable = field(default_factory=PreferenceTable)

    # Lookahead
    lookahead_depth: int = LookaheadConfig.MAX_DEPTH
    depth_discounts: tuple[float, ...] = LookaheadConfig.DEPTH_DISCOUNTS

    # Search radii
    trail_start_search_radius: float = SearchConfig.TRAIL_START_SEARCH_RADIUS
    lift_search_radius: float = SearchConfig.LIFT_SEARCH_RADIUS
    goal_lift_walk_radius: float = SearchConfig.GOAL_LIFT_WALK_RADIUS
    goal_trail_radius: float = SearchConfig.GOAL_TRAIL_RADIUS
    junction_detection_radius: float = SearchConfig.JUNCTION_DETECTION_RADIUS
    network_snap_radius: float = SearchConfig.NETWORK_SNAP_RADIUS
    base_radius: float = SearchConfig.BASE_RADIUS
    lodge_search_radius: float = SearchConfig.LODGE_SEARCH_RADIUS

    # Motion
    walk_speed: float = MotionConfig.WALK_SPEED
    lift_speed: float = MotionConfig.LIFT_SPEED
    base_ski_speed: float = MotionConfig.BASE_SKI_SPEED
    anti_teleport_safety_factor: float = MotionConfig.ANTI_TELEPORT_SAFETY_FACTOR
    lateral_drift_speed: float = MotionConfig.LATERAL_DRIFT_SPEED
    max_lateral_ratio: float = MotionConfig.MAX_LATERAL_RATIO

    # Controller
    lodge_visit_chance: float = ControllerConfig.LODGE_VISIT_CHANCE
    replan_after_every_run: bool = ControllerConfig.REPLAN_AFTER_EVERY_RUN
    replan_at_lift_top: bool = ControllerConfig.REPLAN_AT_LIFT_TOP

    # Traffic
    recent_intent_window: int = TrafficConfig.RECENT_INTENT_WINDOW

    def __post_init__(self) -> None:
        """Validate knob ranges."""
        if self.temperature < 0:
            raise ValueError(f"temperature cannot be negative, got {self.temperature}")
        if self.min_temperature <= 0:
            raise ValueError(f"min_temperature must be positive, got {self.min_temperature}")
        for name in ("chaos_probability", "lodge_visit_chance"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be in [0, 1], got {value}")
        if not self.depth_discounts:
            raise ValueError("depth_discounts cannot be empty")
        if any(a <= b for a, b in zip(self.depth_discounts, self.depth_discounts[1:])):
            raise ValueError(f"depth_discounts must be strictly decreasing, got {self.depth_discounts}")
        if self.lookahead_depth < 0:
            raise ValueError(f"lookahead_depth cannot be negative, got {self.lookahead_depth}")
        if not 0.0 < self.max_lateral_ratio < 1.0:
            raise ValueError(f"max_lateral_ratio must be in (0, 1), got {self.max_lateral_ratio}")
        if self.recent_intent_window < 1:
            raise ValueError(f"recent_intent_window must be at least 1, got {self.recent_intent_window}")
        if min(self.walk_speed, self.lift_speed, self.base_ski_speed) <= 0:
            raise ValueError("Speeds must be positive")

    @property
    def effective_temperature(self) -> float:
        """Temperature floored at min_temperature."""
        return max(self.temperature, self.min_temperature)

    @property
    def max_speed(self) -> float:
        """Anti-teleport speed cap: fastest motion constant times the safety factor."""
        return max(self.walk_speed, self.lift_speed, self.base_ski_speed) * self.anti_teleport_safety_factor

    def with_overrides(self, **overrides: Any) -> "FlowConfig":
        """Copy with some fields replaced (validated again)."""
        return dataclasses.replace(self, **overrides)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FlowConfig":
        """Build from a flat dict; a nested 'weights' dict maps to DecisionWeights.

        Unknown keys raise ValueError so typos do not pass silently.
        """
        known = {f.name for f in dataclasses.fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown FlowConfig option(s): {sorted(unknown)}")
        kwargs = dict(data)
        if isinstance(kwargs.get("weights"), dict):
            kwargs["weights"] = DecisionWeights(**kwargs["weights"])
        if "depth_discounts" in kwargs:
            kwargs["depth_discounts"] = tuple(kwargs["depth_discounts"])
        return cls(**kwargs)
