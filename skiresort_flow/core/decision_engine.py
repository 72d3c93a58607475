"""DecisionEngine - One scoring and selection model for every routing decision.

The same engine answers "which trail next?" (at a lift top, at a trail end),
"which lift next?" and "leave the current trail here?", so all routing
decisions share one consistent model.

Scoring (trails):
    0                        if the skill/difficulty pair is hard-blocked
    desperate_score          if it is desperate-only
    otherwise, with personality-perturbed weights w:
        pref*w.difficulty + downstream*w.downstream + deficit*w.deficit
        + goal*w.goal + novelty*w.novelty - crowding*w.crowding
        + traversal*w.traversal - herding*w.herding
    floored at score_floor.

Scoring (lifts) replaces preference/downstream/traversal with the best trail
decision value at the lift top (weighted by w.difficulty).

Selection:
    p_i = exp((s_i - max s) / T) / sum_j exp((s_j - max s) / T), T >= epsilon
    One uniform draw walks the cumulative distribution. With a small
    probability the scores are ignored and a candidate is drawn uniformly.
    Hard-blocked candidates get an extra logit penalty whenever something
    else is available, so they stay possible but exponentially unlikely.

The engine never writes to TrafficState. Firing "intended" events is the
caller's job, right after a choice is made.
"""

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Sequence, TypeVar

import numpy as np
from scipy.special import softmax

from skiresort_flow.constants import DecisionConfig
from skiresort_flow.model.skill import Difficulty, SkillLevel

if TYPE_CHECKING:
    from skiresort_flow.core.downstream import DownstreamEvaluator
    from skiresort_flow.core.traffic_state import TrafficState
    from skiresort_flow.model.agent_context import AgentContext
    from skiresort_flow.model.flow_config import DecisionWeights, FlowConfig
    from skiresort_flow.model.lift import Lift
    from skiresort_flow.model.trail import Trail

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class ScoreFactors:
    """Raw (unweighted) factor values for one candidate.

    Attributes:
        preference: Direct difficulty preference (trails) or best trail value at the top (lifts)
        downstream: Downstream terrain value (trails only)
        deficit: Traffic deficit signal
        goal: 1.0 if the candidate is the current goal step
        novelty: 1.0 if the agent never used the candidate
        crowding: Traffic crowding signal
        traversal: Transit willingness (trails only)
        herding: Recent popularity signal
    """

    preference: float = 0.0
    downstream: float = 0.0
    deficit: float = 0.0
    goal: float = 0.0
    novelty: float = 0.0
    crowding: float = 0.0
    traversal: float = 0.0
    herding: float = 0.0

    def combine(self, weights: "DecisionWeights") -> float:
        """Weighted sum, bonuses minus penalties (not floored)."""
        return (
            self.preference * weights.difficulty
            + self.downstream * weights.downstream
            + self.deficit * weights.deficit
            + self.goal * weights.goal
            + self.novelty * weights.novelty
            - self.crowding * weights.crowding
            + self.traversal * weights.traversal
            - self.herding * weights.herding
        )


class DecisionEngine:
    """Scores candidates and selects one by temperature-controlled softmax.

    Collaborators are injected once; every method is a pure function of its
    arguments and the current collaborator state.

    Example:
        engine = DecisionEngine(config=config, traffic=traffic, downstream=evaluator)
        trail = engine.choose_trail(candidates=trails, context=agent, rng=rng)
        if trail is not None:
            traffic.on_trail_intended(agent_id=agent.id, trail_id=trail.id)
    """

    def __init__(
        self,
        config: "FlowConfig",
        traffic: "TrafficState",
        downstream: "DownstreamEvaluator",
    ) -> None:
        """Initialize engine.

        Args:
            config: Weights, temperature, floors, chaos probability, preference table
            traffic: Read-only source of deficit, crowding and herding signals
            downstream: Lookahead values for trails and lifts
        """
        self.config = config
        self.traffic = traffic
        self.downstream = downstream

    # =========================================================================
    # Pure Helpers
    # =========================================================================

    @staticmethod
    def traversal_score(skill: SkillLevel, difficulty: Difficulty) -> float:
        """Willingness to use a trail purely as transit.

        At or below skill: clamp01(0.3 + 0.2 * gap), growing with the gap and
        plateauing at 1. One class above: a small constant. Two or more above: 0.

        Args:
            skill: Skill level of the agent
            difficulty: Difficulty of the trail

        Returns:
            Score in [0, 1].
        """
        if difficulty <= skill:
            gap = int(skill) - int(difficulty)
            return min(max(DecisionConfig.TRAVERSAL_BASE + gap * DecisionConfig.TRAVERSAL_GAP_BONUS, 0.0), 1.0)
        if int(difficulty) == int(skill) + 1:
            return DecisionConfig.TRAVERSAL_ONE_ABOVE
        return 0.0

    @staticmethod
    def softmax_probabilities(
        scores: Sequence[float],
        temperature: float,
        min_temperature: float = DecisionConfig.MIN_TEMPERATURE,
        hard_block_penalty: float = DecisionConfig.HARD_BLOCK_LOGIT_PENALTY,
    ) -> np.ndarray:
        """Numerically stable softmax over scores.

        Args:
            scores: Candidate scores (0 marks a hard block)
            temperature: Softmax temperature, floored at min_temperature
            min_temperature: Lower bound avoiding division by zero
            hard_block_penalty: Extra logit subtracted from hard-blocked candidates
                when at least one candidate is not blocked

        Returns:
            Probabilities summing to 1, one per score. Empty array for no scores.
        """
        values = np.asarray(scores, dtype=np.float64)
        if values.size == 0:
            return values
        temp = max(temperature, min_temperature)
        logits = (values - values.max()) / temp
        blocked = values <= 0.0
        if blocked.any() and not blocked.all():
            logits = np.where(blocked, logits - hard_block_penalty, logits)
        return softmax(logits)

    @staticmethod
    def sample_index(probabilities: np.ndarray, rng: np.random.Generator) -> int:
        """Draw one index by walking the cumulative distribution with a single uniform value."""
        cumulative = np.cumsum(probabilities)
        roll = rng.random() * cumulative[-1]
        idx = int(np.searchsorted(cumulative, roll, side="right"))
        return min(idx, len(probabilities) - 1)

    # =========================================================================
    # Scoring
    # =========================================================================

    def trail_factors(self, trail: "Trail", context: "AgentContext") -> ScoreFactors:
        """Raw factor values for a trail candidate."""
        prefs = self.config.preferences
        return ScoreFactors(
            preference=prefs.get_preference(context.skill, trail.difficulty),
            downstream=self.downstream.evaluate_downstream(skill=context.skill, trail=trail),
            deficit=self.traffic.get_trail_deficit(trail.id),
            goal=1.0 if context.goal_trail_id == trail.id else 0.0,
            novelty=0.0 if trail.id in context.trails_skied else 1.0,
            crowding=self.traffic.get_trail_crowding(trail.id),
            traversal=self.traversal_score(context.skill, trail.difficulty),
            herding=self.traffic.get_trail_recent_popularity(trail.id),
        )

    def lift_factors(self, lift: "Lift", context: "AgentContext") -> ScoreFactors:
        """Raw factor values for a lift candidate."""
        return ScoreFactors(
            preference=self.downstream.best_trail_value_from_lift(skill=context.skill, lift=lift),
            deficit=self.traffic.get_lift_deficit(lift.id),
            goal=1.0 if context.goal_lift_id == lift.id else 0.0,
            novelty=0.0 if lift.id in context.lifts_ridden else 1.0,
            crowding=self.traffic.get_lift_crowding(lift.id),
            herding=self.traffic.get_lift_recent_popularity(lift.id),
        )

    def weights_for(self, context: "AgentContext") -> "DecisionWeights":
        """Configured weights perturbed by the agent's personality."""
        return self.config.weights.perturbed(context.personality_offsets)

    def score_trail(self, trail: "Trail", context: "AgentContext") -> float:
        """Score a trail for an agent.

        Returns:
            Exactly 0 for a hard block, the desperate score for desperate-only
            pairs, otherwise the weighted factor sum floored at score_floor.
        """
        prefs = self.config.preferences
        if not prefs.is_allowed(context.skill, trail.difficulty):
            return 0.0
        if prefs.is_desperate_only(context.skill, trail.difficulty):
            return self.config.desperate_score
        score = self.trail_factors(trail=trail, context=context).combine(self.weights_for(context))
        return max(score, self.config.score_floor)

    def score_lift(self, lift: "Lift", context: "AgentContext") -> float:
        """Score a lift for an agent (never hard-blocked), floored at score_floor."""
        factors = self.lift_factors(lift=lift, context=context)
        w = self.weights_for(context)
        score = (
            factors.preference * w.difficulty
            + factors.deficit * w.deficit
            + factors.goal * w.goal
            + factors.novelty * w.novelty
            - factors.crowding * w.crowding
            - factors.herding * w.herding
        )
        return max(score, self.config.score_floor)

    # =========================================================================
    # Selection
    # =========================================================================

    def choose(
        self,
        candidates: Sequence[T],
        scorer: Callable[[T], float],
        rng: np.random.Generator,
        temperature: float | None = None,
        describe: Callable[[T], str] = repr,
        agent_id: int | None = None,
    ) -> T | None:
        """Pick one candidate.

        Args:
            candidates: Options (trails or lifts)
            scorer: Score function for one candidate
            rng: Random generator (one uniform draw for the wildcard check, one for selection)
            temperature: Overrides the configured temperature
            describe: Label for debug logging
            agent_id: For debug logging only

        Returns:
            The chosen candidate, or None when there are no candidates.
        """
        if not candidates:
            return None
        if len(candidates) == 1:
            return candidates[0]

        if rng.random() < self.config.chaos_probability:
            choice = candidates[int(rng.integers(len(candidates)))]
            logger.debug(f"Agent {agent_id} wildcard pick: {describe(choice)}")
            return choice

        temp = self.config.temperature if temperature is None else temperature
        scores = [scorer(c) for c in candidates]
        probabilities = self.softmax_probabilities(
            scores=scores,
            temperature=temp,
            min_temperature=self.config.min_temperature,
            hard_block_penalty=self.config.hard_block_logit_penalty,
        )
        idx = self.sample_index(probabilities=probabilities, rng=rng)

        if logger.isEnabledFor(logging.DEBUG):
            lines = "".join(
                f"\n  {'>>>' if i == idx else '   '} {describe(c)}: {s:.3f} (p={p:.3f})"
                for i, (c, s, p) in enumerate(zip(candidates, scores, probabilities))
            )
            logger.debug(f"Agent {agent_id} choice (T={max(temp, self.config.min_temperature):.2f}):{lines}")
        return candidates[idx]

    def choose_trail(
        self,
        candidates: Sequence["Trail"],
        context: "AgentContext",
        rng: np.random.Generator,
    ) -> "Trail | None":
        """Choose the next trail for an agent (None if no candidates)."""
        return self.choose(
            candidates=candidates,
            scorer=lambda trail: self.score_trail(trail=trail, context=context),
            rng=rng,
            describe=lambda trail: f"Trail {trail.id} ({trail.difficulty.key})",
            agent_id=context.id,
        )

    def choose_lift(
        self,
        candidates: Sequence["Lift"],
        context: "AgentContext",
        rng: np.random.Generator,
    ) -> "Lift | None":
        """Choose the next lift for an agent (None if no candidates)."""
        return self.choose(
            candidates=candidates,
            scorer=lambda lift: self.score_lift(lift=lift, context=context),
            rng=rng,
            describe=lambda lift: f"Lift {lift.id}",
            agent_id=context.id,
        )

    # =========================================================================
    # Mid-Run Exits
    # =========================================================================

    def continue_value(self, trail: "Trail", context: "AgentContext") -> float:
        """Value of staying on the current trail."""
        return self.downstream.decision_value(skill=context.skill, trail=trail, weights=self.weights_for(context))

    def trail_exit_value(self, trail: "Trail", context: "AgentContext") -> float:
        """Value of switching onto another trail: decision value plus novelty, deficit and goal bonuses."""
        w = self.weights_for(context)
        base = self.downstream.decision_value(skill=context.skill, trail=trail, weights=w)
        if base <= 0.0:
            return 0.0
        bonus = self.traffic.get_trail_deficit(trail.id) * w.deficit
        if trail.id not in context.trails_skied:
            bonus += w.novelty
        if context.goal_trail_id == trail.id:
            bonus += w.goal
        return base + bonus

    def lift_exit_value(self, lift: "Lift", context: "AgentContext") -> float:
        """Value of leaving the trail for a lift: best trail at its top plus novelty, deficit and goal bonuses."""
        w = self.weights_for(context)
        base = self.downstream.best_trail_value_from_lift(skill=context.skill, lift=lift)
        if base <= 0.0:
            return 0.0
        bonus = self.traffic.get_lift_deficit(lift.id) * w.deficit
        if lift.id not in context.lifts_ridden:
            bonus += w.novelty
        if context.goal_lift_id == lift.id:
            bonus += w.goal
        return base + bonus

    def should_take_exit(
        self,
        continue_value: float,
        exit_value: float,
        rng: np.random.Generator,
        temperature: float | None = None,
    ) -> bool:
        """Binary softmax between continuing (index 0) and exiting (index 1).

        An exit worth 0 (nothing allowed there) is never taken.
        """
        if exit_value <= 0.0:
            return False
        probabilities = self.softmax_probabilities(
            scores=[max(continue_value, self.config.score_floor), exit_value],
            temperature=self.config.temperature if temperature is None else temperature,
            min_temperature=self.config.min_temperature,
            hard_block_penalty=self.config.hard_block_logit_penalty,
        )
        return self.sample_index(probabilities=probabilities, rng=rng) == 1
