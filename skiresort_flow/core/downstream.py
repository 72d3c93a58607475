"""DownstreamEvaluator - Bounded, memoized lookahead over the trail network.

Answers "if a skier enters this trail, what is the best terrain it can reach
afterwards, and how far away is it?". Without it skiers never take a connector
trail that does not match their own preference but leads somewhere good, and
never notice dead ends.

Algorithm (evaluate_downstream):
    1. Memoized per (skill, trail id, hop budget). The cache is only cleared
       by invalidate(), which the topology owner calls after any mutation.
    2. A trail with fewer than 2 points, an exhausted hop budget or a trail
       already visited in the current call contributes 0 (cycle guard).
    3. Visited sets live for one top-level call only.
    4. discount = DEPTH_DISCOUNTS[min(hop, len) - 1], hop = total - remaining + 1
    5. Next trails from the trail end: via lifts whose bottom is near the end
       (trails starting near each lift top), and trails starting near the end
       or structurally connected to it.
    6. Each allowed next trail is worth preference * discount; it is also
       recursed into with one hop less. The maximum over everything wins.
    7. 0 means dead end: nothing allowed is reachable.

Terminates on any cyclic topology through visited sets plus the hop budget.
"""

import logging
from typing import TYPE_CHECKING

from skiresort_flow.model.skill import SkillLevel

if TYPE_CHECKING:
    from skiresort_flow.model.flow_config import DecisionWeights, FlowConfig
    from skiresort_flow.model.lift import Lift
    from skiresort_flow.model.resort_network import ResortNetwork
    from skiresort_flow.model.trail import Trail

logger = logging.getLogger(__name__)


class DownstreamEvaluator:
    """Lookahead values for trails and lifts, per skill level.

    Example:
        evaluator = DownstreamEvaluator(network=network, config=FlowConfig())
        value = evaluator.evaluate_downstream(skill=SkillLevel.EXPERT, trail=connector)
        network.add_change_listener(lambda _: evaluator.invalidate())
    """

    def __init__(self, network: "ResortNetwork", config: "FlowConfig") -> None:
        """Initialize evaluator.

        Args:
            network: Topology to search (read-only)
            config: Supplies preference table, search radii, depth and discounts
        """
        self._network = network
        self._config = config
        self._preferences = config.preferences
        self._cache: dict[tuple[SkillLevel, int, int], float] = {}
        self._lift_cache: dict[tuple[SkillLevel, int], float] = {}
        self.cache_hits = 0
        self.cache_misses = 0

    # =========================================================================
    # Cache
    # =========================================================================

    def invalidate(self) -> None:
        """Drop all memoized values. Must be called after any topology change."""
        if self._cache or self._lift_cache:
            logger.debug(f"Invalidating downstream cache ({len(self._cache)} trail, {len(self._lift_cache)} lift)")
        self._cache.clear()
        self._lift_cache.clear()

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    # =========================================================================
    # Depth Discount
    # =========================================================================

    def depth_discount(self, total_depth: int, remaining: int) -> float:
        """Discount for terrain found with `remaining` hops left out of `total_depth`.

        Args:
            total_depth: Hop budget of the top-level call
            remaining: Hops left at the current recursion level

        Returns:
            Discount from the configured table; hops beyond the table use its last entry.
        """
        return self.discount_for_hop(hop=total_depth - remaining + 1)

    def discount_for_hop(self, hop: int) -> float:
        """Discount for a 1-based hop distance (hop 1 = directly reachable)."""
        table = self._config.depth_discounts
        idx = min(max(hop, 1), len(table)) - 1
        return table[idx]

    # =========================================================================
    # Downstream Search
    # =========================================================================

    def evaluate_downstream(self, skill: SkillLevel, trail: "Trail", max_hops: int | None = None) -> float:
        """Best discounted preference reachable after a trail.

        Args:
            skill: Skill level of the evaluating agent
            trail: Trail the agent would enter
            max_hops: Hop budget (defaults to the configured lookahead depth)

        Returns:
            Value >= 0. Exactly 0 when no allowed terrain is reachable (dead end).
        """
        hops = self._config.lookahead_depth if max_hops is None else max_hops
        key = (skill, trail.id, hops)
        cached = self._cache.get(key)
        if cached is not None:
            self.cache_hits += 1
            return cached

        self.cache_misses += 1
        value = self._search(
            skill=skill,
            trail=trail,
            remaining=hops,
            total_depth=hops,
            visited_trails=set(),
            visited_lifts=set(),
        )
        self._cache[key] = value
        return value

    def _search(
        self,
        skill: SkillLevel,
        trail: "Trail",
        remaining: int,
        total_depth: int,
        visited_trails: set[int],
        visited_lifts: set[int],
    ) -> float:
        if remaining <= 0 or len(trail.points) < 2 or trail.id in visited_trails:
            return 0.0
        visited_trails.add(trail.id)

        discount = self.depth_discount(total_depth=total_depth, remaining=remaining)
        best = 0.0

        # (a) Lifts near the trail end, then trails from each lift top
        for lift in self._lifts_after(trail):
            if lift.id in visited_lifts:
                continue
            visited_lifts.add(lift.id)
            for next_trail in self._trails_from_lift_top(lift):
                best = max(
                    best,
                    self._value_of_next(
                        skill, next_trail, discount, remaining, total_depth, visited_trails, visited_lifts
                    ),
                )

        # (b) Trails continuing directly from the trail end
        for next_trail in self._trails_after(trail):
            best = max(
                best,
                self._value_of_next(skill, next_trail, discount, remaining, total_depth, visited_trails, visited_lifts),
            )

        return best

    def _value_of_next(
        self,
        skill: SkillLevel,
        next_trail: "Trail",
        discount: float,
        remaining: int,
        total_depth: int,
        visited_trails: set[int],
        visited_lifts: set[int],
    ) -> float:
        if next_trail.id in visited_trails:
            return 0.0
        if not self._preferences.is_allowed(skill, next_trail.difficulty):
            return 0.0
        value = self._preferences.get_preference(skill, next_trail.difficulty) * discount
        if remaining > 1:
            deeper = self._search(
                skill=skill,
                trail=next_trail,
                remaining=remaining - 1,
                total_depth=total_depth,
                visited_trails=visited_trails,
                visited_lifts=visited_lifts,
            )
            value = max(value, deeper)
        return value

    # =========================================================================
    # Neighbourhood
    # =========================================================================

    def _lifts_after(self, trail: "Trail") -> list["Lift"]:
        """Lifts boardable at the trail end (spatial within lift radius, plus structural)."""
        nearby = self._network.lifts_with_bottom_near(trail.end, self._config.lift_search_radius)
        lifts = {lift.id: lift for lift in nearby}
        for lift_id in self._network.lifts_from_trail(trail.id):
            lift = self._network.get_lift(lift_id)
            if lift is not None:
                lifts.setdefault(lift.id, lift)
        return [lifts[k] for k in sorted(lifts)]

    def _trails_from_lift_top(self, lift: "Lift") -> list["Trail"]:
        """Trails starting at a lift top (spatial within trail-start radius, plus structural)."""
        trails = {
            t.id: t for t in self._network.trails_starting_near(lift.top, self._config.trail_start_search_radius)
        }
        for trail_id in self._network.trails_from_lift(lift.id):
            trail = self._network.get_trail(trail_id)
            if trail is not None:
                trails.setdefault(trail.id, trail)
        return [trails[k] for k in sorted(trails)]

    def _trails_after(self, trail: "Trail") -> list["Trail"]:
        """Trails continuing from the trail end, excluding the trail itself."""
        trails = {
            t.id: t
            for t in self._network.trails_starting_near(
                trail.end, self._config.trail_start_search_radius, exclude_id=trail.id
            )
        }
        for trail_id in self._network.trails_from_trail(trail.id):
            next_trail = self._network.get_trail(trail_id)
            if next_trail is not None and next_trail.id != trail.id:
                trails.setdefault(next_trail.id, next_trail)
        return [trails[k] for k in sorted(trails)]

    # =========================================================================
    # Decision Values
    # =========================================================================

    def decision_value(self, skill: SkillLevel, trail: "Trail", weights: "DecisionWeights | None" = None) -> float:
        """Additive value of entering a trail: preference plus downstream terrain.

        Args:
            skill: Skill level
            trail: Trail being valued
            weights: Weights for the two terms (defaults to configured weights)

        Returns:
            0 if disallowed, the desperate score if desperate-only, otherwise
            preference * w_difficulty + downstream * w_downstream.
        """
        if not self._preferences.is_allowed(skill, trail.difficulty):
            return 0.0
        if self._preferences.is_desperate_only(skill, trail.difficulty):
            return self._config.desperate_score
        w = weights if weights is not None else self._config.weights
        preference = self._preferences.get_preference(skill, trail.difficulty)
        downstream = self.evaluate_downstream(skill=skill, trail=trail)
        return preference * w.difficulty + downstream * w.downstream

    def best_trail_value_from_lift(self, skill: SkillLevel, lift: "Lift") -> float:
        """Best decision value among trails starting at a lift's top station.

        Args:
            skill: Skill level
            lift: Lift being valued

        Returns:
            Maximum decision_value over trails at the top; 0 if none.
        """
        key = (skill, lift.id)
        cached = self._lift_cache.get(key)
        if cached is not None:
            return cached
        value = max((self.decision_value(skill=skill, trail=t) for t in self._trails_from_lift_top(lift)), default=0.0)
        self._lift_cache[key] = value
        return value

    def trails_at_lift_top(self, lift: "Lift") -> list["Trail"]:
        """Trails reachable from a lift top (used by controllers for desperation checks)."""
        return self._trails_from_lift_top(lift)
