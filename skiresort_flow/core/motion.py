"""MotionController - Per-agent kinematics for every phase.

Moves one agent along its current edge and reports completion flags; it never
decides anything. The controller reads the flags and fires phase transitions.

Per phase:
    Walking (to lift or lodge): straight line at walk speed, arrival within 0.5 m.
    Riding: fraction += lift_speed / lift_length * dt, endpoints interpolated.
    Skiing: distance += base_speed * lerp(0.6, 1.8, clamp01(slope / 45)) * dt,
        position sampled on the centerline and offset laterally by Perlin drift.
    In lodge: stationary.

Anti-teleport:
    The reported position moves towards the phase target by at most
    max_speed * dt per tick (max_speed = fastest speed * safety factor), so a
    retargeted agent glides instead of jumping. teleport() is the one explicit
    exception, used for stranded rescues.

Heading always comes from the path tangent (or lift / walk direction), never
from the position delta, so it stays stable when the smoothed position lags.
"""

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np

from skiresort_flow.constants import MotionConfig
from skiresort_flow.core.noise import PerlinNoise
from skiresort_flow.core.phase_machine import Phase

if TYPE_CHECKING:
    from skiresort_flow.model.flow_config import FlowConfig
    from skiresort_flow.model.lift import Lift
    from skiresort_flow.model.trail import Trail

logger = logging.getLogger(__name__)


def _move_towards(current: np.ndarray, target: np.ndarray, max_step: float) -> np.ndarray:
    delta = target - current
    dist = float(np.linalg.norm(delta))
    if dist <= max_step or dist < 1e-12:
        return target.copy()
    return current + delta * (max_step / dist)


def _horizontal_heading(direction: np.ndarray) -> np.ndarray | None:
    horizontal = np.array([direction[0], direction[1], 0.0])
    norm = float(np.linalg.norm(horizontal))
    if norm < 1e-9:
        return None
    return horizontal / norm


@dataclass
class MotionFlags:
    """Completion flags raised by one advance() call.

    Attributes:
        reached_lift_bottom: Walking agent arrived at its target lift
        reached_lift_top: Riding agent arrived at the top station
        reached_trail_end: Skiing agent reached the trail end
        reached_walk_target: Walking agent arrived at a lodge (or other walk target)
    """

    reached_lift_bottom: bool = False
    reached_lift_top: bool = False
    reached_trail_end: bool = False
    reached_walk_target: bool = False

    @property
    def any(self) -> bool:
        return self.reached_lift_bottom or self.reached_lift_top or self.reached_trail_end or self.reached_walk_target


class MotionController:
    """Position, progress and heading of a single agent.

    Example:
        motion = MotionController(agent_id=3, config=FlowConfig(), noise=PerlinNoise(seed=1))
        motion.teleport(base.as_array())
        motion.set_walk_target(lift.bottom.as_array())
        flags = motion.advance(Phase.WALKING_TO_LIFT, dt=0.1)
    """

    def __init__(self, agent_id: int, config: "FlowConfig", noise: PerlinNoise) -> None:
        """Initialize motion at the origin.

        Args:
            agent_id: Owner; selects the agent's noise row
            config: Speeds, drift and safety factor
            noise: Shared deterministic noise source
        """
        self.agent_id = agent_id
        self._config = config
        self._noise = noise

        self.target_position = np.zeros(3)
        self.position = np.zeros(3)
        self.heading = np.array([0.0, 1.0, 0.0])
        self._initialized = False

        self.walk_target: np.ndarray | None = None
        self.trail: "Trail | None" = None
        self.distance_along = 0.0
        self.lift: "Lift | None" = None
        self.lift_progress = 0.0
        self.lateral_offset = 0.0

    # =========================================================================
    # Targets
    # =========================================================================

    def set_walk_target(self, target: np.ndarray) -> None:
        """Start walking towards a point (lift bottom or lodge)."""
        self.walk_target = np.asarray(target, dtype=np.float64).copy()
        self.trail = None
        self.lift = None

    def set_lift(self, lift: "Lift") -> None:
        """Board a lift at its bottom station."""
        self.lift = lift
        self.lift_progress = 0.0
        self.trail = None
        self.walk_target = None
        self.target_position = lift.bottom.as_array()

    def set_trail(self, trail: "Trail", start_distance: float = 0.0) -> None:
        """Start skiing a trail at a distance along it (0 = its start)."""
        self.trail = trail
        self.distance_along = min(max(start_distance, 0.0), trail.length_m)
        self.lift = None
        self.walk_target = None
        self.target_position = trail.sample(self.distance_along).position

    def switch_trail(self, trail: "Trail", position: np.ndarray | None = None) -> float:
        """Move onto another trail at the point closest to a position.

        Args:
            trail: Trail to continue on
            position: Where the agent is (defaults to the current target position)

        Returns:
            Distance along the new trail where skiing resumes.
        """
        at = self.target_position if position is None else np.asarray(position, dtype=np.float64)
        start = trail.closest_distance_to(at)
        self.set_trail(trail, start_distance=start)
        return start

    def teleport(self, position: np.ndarray) -> None:
        """Place the agent without smoothing (spawn, stranded rescue)."""
        self.target_position = np.asarray(position, dtype=np.float64).copy()
        self.position = self.target_position.copy()
        self._initialized = True

    # =========================================================================
    # Queries
    # =========================================================================

    @property
    def trail_fraction(self) -> float:
        """Progress along the current trail in [0, 1] (0 without a trail)."""
        if self.trail is None or self.trail.length_m <= 0:
            return 0.0
        return self.distance_along / self.trail.length_m

    def ski_speed(self, trail: "Trail", distance: float) -> float:
        """Ski speed at a point, scaled by the local slope into the speed band."""
        slope = trail.slope_deg_at(distance)
        t = min(max(slope / MotionConfig.SLOPE_SPEED_MAX_DEG, 0.0), 1.0)
        multiplier = MotionConfig.SLOPE_SPEED_MIN_MULTIPLIER + t * (
            MotionConfig.SLOPE_SPEED_MAX_MULTIPLIER - MotionConfig.SLOPE_SPEED_MIN_MULTIPLIER
        )
        return self._config.base_ski_speed * multiplier

    # =========================================================================
    # Advance
    # =========================================================================

    def advance(self, phase: Phase, dt: float) -> MotionFlags:
        """Advance one tick in the given phase.

        Args:
            phase: Current phase of the agent
            dt: Time step in seconds (non-positive dt moves nothing)

        Returns:
            MotionFlags for the controller.
        """
        flags = MotionFlags()
        if dt > 0:
            if phase is Phase.WALKING_TO_LIFT:
                flags.reached_lift_bottom = self._advance_walk(dt)
            elif phase is Phase.WALKING_TO_LODGE:
                flags.reached_walk_target = self._advance_walk(dt)
            elif phase is Phase.RIDING_LIFT:
                flags.reached_lift_top = self._advance_lift(dt)
            elif phase is Phase.SKIING_TRAIL:
                flags.reached_trail_end = self._advance_trail(dt)
        self._smooth(dt)
        return flags

    def _advance_walk(self, dt: float) -> bool:
        if self.walk_target is None:
            return False
        delta = self.walk_target - self.target_position
        direction = _horizontal_heading(delta)
        if direction is not None:
            self.heading = direction
        self.target_position = _move_towards(self.target_position, self.walk_target, self._config.walk_speed * dt)
        return float(np.linalg.norm(self.walk_target - self.target_position)) <= MotionConfig.WALK_ARRIVAL_RADIUS

    def _advance_lift(self, dt: float) -> bool:
        if self.lift is None:
            return False
        length = self.lift.length_m
        if length <= 0:
            self.lift_progress = 1.0
        else:
            self.lift_progress = min(self.lift_progress + self._config.lift_speed / length * dt, 1.0)
        self.target_position = self.lift.position_at(self.lift_progress)
        direction = _horizontal_heading(self.lift.direction)
        if direction is not None:
            self.heading = direction
        return self.lift_progress >= 1.0

    def _advance_trail(self, dt: float) -> bool:
        trail = self.trail
        if trail is None:
            return False
        length = trail.length_m
        self.distance_along = min(self.distance_along + self.ski_speed(trail, self.distance_along) * dt, length)
        sample = trail.sample(self.distance_along)

        direction = _horizontal_heading(sample.tangent)
        if direction is not None:
            self.heading = direction

        self._update_lateral(dt)
        half_width = trail.width_m / 2.0
        perpendicular = np.array([-self.heading[1], self.heading[0], 0.0])
        self.target_position = sample.position + perpendicular * (self.lateral_offset * half_width)
        return self.distance_along >= length

    def _update_lateral(self, dt: float) -> None:
        desired = self._noise.value(
            x=self.distance_along * MotionConfig.LATERAL_NOISE_SCALE,
            y=self.agent_id * MotionConfig.LATERAL_NOISE_SEED_SCALE,
        )
        limit = self._config.max_lateral_ratio
        desired = min(max(desired, -limit), limit)
        step = self._config.lateral_drift_speed * dt
        delta = min(max(desired - self.lateral_offset, -step), step)
        self.lateral_offset = min(max(self.lateral_offset + delta, -limit), limit)

    def _smooth(self, dt: float) -> None:
        if not self._initialized:
            self.position = self.target_position.copy()
            self._initialized = True
            return
        self.position = _move_towards(self.position, self.target_position, self._config.max_speed * max(dt, 0.0))

    def __repr__(self) -> str:
        x, y, z = self.position
        return f"MotionController(agent={self.agent_id}, pos=({x:.1f}, {y:.1f}, {z:.1f}))"
