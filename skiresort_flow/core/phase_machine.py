"""Per-agent phase state machine.

Uses python-statemachine for the five activity phases of a skier:
- Clear state definitions backed by the Phase enum
- Explicit event-driven transitions (illegal ones raise TransitionNotAllowed)
- before_* hooks that keep the current edge ids in the model
- A listener that logs every transition

States:
    WALKING_TO_LIFT: On foot towards a lift bottom (initial)
    RIDING_LIFT: Travelling up a lift
    SKIING_TRAIL: Descending a trail
    WALKING_TO_LODGE: On foot towards a lodge
    IN_LODGE: Resting inside a lodge

Transitions:
    WALKING_TO_LIFT -> RIDING_LIFT: board_lift
    RIDING_LIFT -> SKIING_TRAIL: start_trail
    SKIING_TRAIL -> SKIING_TRAIL: switch_trail (trail end connection, crossing, junction)
    SKIING_TRAIL / IN_LODGE / WALKING_TO_LODGE / RIDING_LIFT / WALKING_TO_LIFT
        -> WALKING_TO_LIFT: walk_to_lift (new destination, lift exit, rescue)
    SKIING_TRAIL -> WALKING_TO_LODGE: head_to_lodge
    WALKING_TO_LODGE -> IN_LODGE: enter_lodge

The per-run sets of evaluated exits are cleared exactly when the current edge
changes, so every exit candidate is evaluated at most once per run.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from statemachine import State, StateMachine
from statemachine.exceptions import TransitionNotAllowed

logger = logging.getLogger(__name__)


class Phase(Enum):
    """Activity phase of an agent."""

    WALKING_TO_LIFT = "walking_to_lift"
    RIDING_LIFT = "riding_lift"
    SKIING_TRAIL = "skiing_trail"
    WALKING_TO_LODGE = "walking_to_lodge"
    IN_LODGE = "in_lodge"


@dataclass
class MotionState:
    """Model of the phase machine: which edge an agent is on and what it already considered.

    Note: The 'state' field is managed by python-statemachine when this
    object is passed as the model. It stores the current Phase.

    Attributes:
        agent_id: Owner (for logging)
        state: Current phase value (managed by the machine)
        current_trail_id: Trail being skied
        current_lift_id: Lift being ridden
        target_lift_id: Lift being walked to
        target_lodge_id: Lodge being walked to or rested in
        evaluated_lift_ids: Lift bottoms already considered as exits this run
        evaluated_trail_ids: Trail starts / crossings already considered this run
        lodge_time_remaining_s: Rest time left while in a lodge
    """

    agent_id: int = -1
    state: Phase | None = None
    current_trail_id: int | None = None
    current_lift_id: int | None = None
    target_lift_id: int | None = None
    target_lodge_id: int | None = None
    evaluated_lift_ids: set[int] = field(default_factory=set)
    evaluated_trail_ids: set[int] = field(default_factory=set)
    lodge_time_remaining_s: float = 0.0

    def clear_evaluated_exits(self) -> None:
        self.evaluated_lift_ids.clear()
        self.evaluated_trail_ids.clear()

    def __repr__(self) -> str:
        return (
            f"MotionState(agent={self.agent_id}, state={self.state}, "
            f"trail={self.current_trail_id}, lift={self.current_lift_id}, "
            f"target_lift={self.target_lift_id}, lodge={self.target_lodge_id})"
        )


class PhaseTransitionLogger:
    """Listener that logs every phase transition.

    Usage:
        sm = PhaseStateMachine(context=MotionState(agent_id=7))
        sm.add_listener(PhaseTransitionLogger())
    """

    def after_transition(self, event: str, source: State, target: State, model: MotionState) -> None:
        logger.info(f"[AGENT {model.agent_id}] {source.name} --({event})--> {target.name}")


class PhaseStateMachine(StateMachine):
    """Phase machine of one agent. See module docstring for the transition table."""

    # ==========================================================================
    # State Definitions
    # ==========================================================================

    walking_to_lift = State("WalkingToLift", value=Phase.WALKING_TO_LIFT, initial=True)
    riding_lift = State("RidingLift", value=Phase.RIDING_LIFT)
    skiing_trail = State("SkiingTrail", value=Phase.SKIING_TRAIL)
    walking_to_lodge = State("WalkingToLodge", value=Phase.WALKING_TO_LODGE)
    in_lodge = State("InLodge", value=Phase.IN_LODGE)

    # ==========================================================================
    # Transitions
    # ==========================================================================

    board_lift = walking_to_lift.to(riding_lift)
    start_trail = riding_lift.to(skiing_trail)
    switch_trail = skiing_trail.to(skiing_trail)
    walk_to_lift = (
        skiing_trail.to(walking_to_lift)
        | in_lodge.to(walking_to_lift)
        | walking_to_lodge.to(walking_to_lift)
        | riding_lift.to(walking_to_lift)
        | walking_to_lift.to(walking_to_lift)
    )
    head_to_lodge = skiing_trail.to(walking_to_lodge)
    enter_lodge = walking_to_lodge.to(in_lodge)

    # ==========================================================================
    # State Check Properties
    # ==========================================================================

    @property
    def phase(self) -> Phase:
        """Current phase as enum."""
        return self.current_state.value

    @property
    def is_skiing(self) -> bool:
        return self.skiing_trail.is_active

    @property
    def is_riding(self) -> bool:
        return self.riding_lift.is_active

    @property
    def is_in_lodge(self) -> bool:
        return self.in_lodge.is_active

    # ==========================================================================
    # Transition Actions (before_* hooks)
    # ==========================================================================

    def _set_trail(self, trail_id: int | None) -> None:
        if trail_id != self.context.current_trail_id:
            self.context.clear_evaluated_exits()
        self.context.current_trail_id = trail_id

    def before_board_lift(self, lift_id: int | None = None) -> None:
        """Action before boarding: the walked-to lift becomes the current lift."""
        self.context.current_lift_id = lift_id if lift_id is not None else self.context.target_lift_id
        self.context.target_lift_id = None
        self._set_trail(None)

    def before_start_trail(self, trail_id: int) -> None:
        """Action before starting a trail at a lift top."""
        self.context.current_lift_id = None
        self._set_trail(trail_id)

    def before_switch_trail(self, trail_id: int) -> None:
        """Action before moving onto another trail without stopping."""
        self._set_trail(trail_id)

    def before_walk_to_lift(self, lift_id: int | None = None) -> None:
        """Action before walking to a lift bottom."""
        self.context.target_lift_id = lift_id
        self.context.current_lift_id = None
        self._set_trail(None)

    def before_head_to_lodge(self, lodge_id: int) -> None:
        """Action before walking to a lodge."""
        self.context.target_lodge_id = lodge_id
        self._set_trail(None)

    def before_enter_lodge(self, rest_duration_s: float) -> None:
        """Action before entering a lodge: start the rest timer."""
        self.context.lodge_time_remaining_s = rest_duration_s

    # ==========================================================================
    # Exit Hooks
    # ==========================================================================

    def on_exit_in_lodge(self) -> None:
        """Hook: Leaving the lodge."""
        self.context.target_lodge_id = None
        self.context.lodge_time_remaining_s = 0.0

    def on_exit_walking_to_lodge(self, target: State) -> None:
        """Hook: Giving up on the lodge (anything but entering it)."""
        if target.value is not Phase.IN_LODGE:
            self.context.target_lodge_id = None

    # ==========================================================================
    # Initialization
    # ==========================================================================

    def __init__(self, context: MotionState | None = None, start_value: Phase | None = None) -> None:
        """Initialize state machine with model pattern.

        Args:
            context: Shared context/model (creates new if None)
            start_value: Optional initial phase (for restoring state)
        """
        model = context or MotionState()
        super().__init__(model=model, start_value=start_value)

    # ==========================================================================
    # Utility Methods
    # ==========================================================================

    @property
    def context(self) -> MotionState:
        """Alias for model."""
        return self.model

    def get_state_name(self) -> str:
        return self.current_state.name

    def __repr__(self) -> str:
        return f"PhaseStateMachine(state={self.get_state_name()}, model={self.context!r})"

    def try_transition(self, event: str, **kwargs: Any) -> bool:
        """Attempt a transition, returning success/failure.

        Args:
            event: Transition event name
            **kwargs: Arguments for the before_* action

        Returns:
            True if transition succeeded, False otherwise.
        """
        try:
            self.send(event, **kwargs)
            return True
        except TransitionNotAllowed:
            logger.warning(
                f"[AGENT {self.context.agent_id}] Transition '{event}' not allowed from {self.get_state_name()}"
            )
            return False

    @staticmethod
    def create(agent_id: int, add_logger: bool = True) -> tuple["PhaseStateMachine", MotionState]:
        """Factory method to create a machine with its model and optional logging listener.

        Args:
            agent_id: Owner of the machine
            add_logger: If True, adds PhaseTransitionLogger.

        Returns:
            Tuple of (PhaseStateMachine, MotionState)
        """
        context = MotionState(agent_id=agent_id)
        sm = PhaseStateMachine(context=context)
        if add_logger:
            sm.add_listener(PhaseTransitionLogger())
        return sm, context
