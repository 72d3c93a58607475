"""Goal - Multi-hop route produced by an external planner.

The planner is a black box: it receives an AgentContext and returns an
ordered list of steps (ride this lift, ski that trail, ...). The agent
controller consumes the goal step by step and asks for a new one when it is
stale (cursor exhausted) or invalidated (topology changed, agent deviated).
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from skiresort_flow.model.agent_context import AgentContext


class StepType(Enum):
    """Kind of edge a goal step refers to."""

    RIDE_LIFT = "ride_lift"
    SKI_TRAIL = "ski_trail"


@dataclass(frozen=True)
class PathStep:
    """One step of a planned route.

    Attributes:
        step_type: RIDE_LIFT or SKI_TRAIL
        entity_id: Lift or trail id
        name: Optional display name
    """

    step_type: StepType
    entity_id: int
    name: str = ""

    @property
    def is_lift(self) -> bool:
        return self.step_type is StepType.RIDE_LIFT

    @property
    def is_trail(self) -> bool:
        return self.step_type is StepType.SKI_TRAIL

    def matches_lift(self, lift_id: int) -> bool:
        """True if this step asks to ride the given lift."""
        return self.is_lift and self.entity_id == lift_id

    def matches_trail(self, trail_id: int) -> bool:
        """True if this step asks to ski the given trail."""
        return self.is_trail and self.entity_id == trail_id


@dataclass
class Goal:
    """Ordered route with a cursor.

    Attributes:
        planned_path: Steps in travel order
        destination_trail_id: Trail the route was planned for (None if unknown)
        current_index: Cursor into planned_path
        is_complete: True once the cursor moved past the last step
    """

    planned_path: list[PathStep] = field(default_factory=list)
    destination_trail_id: int | None = None
    current_index: int = 0
    is_complete: bool = False

    def __post_init__(self) -> None:
        """Empty routes are complete from the start."""
        if not self.planned_path:
            self.is_complete = True

    def current_step(self) -> PathStep | None:
        """Step the agent should take next, or None when exhausted."""
        if self.is_complete or self.current_index >= len(self.planned_path):
            return None
        return self.planned_path[self.current_index]

    def next_step(self) -> PathStep | None:
        """Step after the current one, if any."""
        idx = self.current_index + 1
        if self.is_complete or idx >= len(self.planned_path):
            return None
        return self.planned_path[idx]

    def advance_to_next_step(self) -> None:
        """Move the cursor forward; marks the goal complete after the last step."""
        if self.is_complete:
            return
        self.current_index += 1
        if self.current_index >= len(self.planned_path):
            self.is_complete = True

    @property
    def is_stale(self) -> bool:
        """True when there is nothing left to follow."""
        return self.current_step() is None

    def references_lift(self, lift_id: int) -> bool:
        """True if any remaining step rides the lift."""
        return any(s.matches_lift(lift_id) for s in self.planned_path[self.current_index :])

    def references_trail(self, trail_id: int) -> bool:
        """True if any remaining step skis the trail."""
        return any(s.matches_trail(trail_id) for s in self.planned_path[self.current_index :])

    def __repr__(self) -> str:
        return (
            f"Goal(step {self.current_index}/{len(self.planned_path)}, "
            f"dest={self.destination_trail_id}, complete={self.is_complete})"
        )


class GoalPlanner(Protocol):
    """External long-horizon planner."""

    def plan_new_goal(self, context: "AgentContext") -> Goal | None:
        """Return a fresh route for the agent, or None if nothing sensible exists."""
        ...
