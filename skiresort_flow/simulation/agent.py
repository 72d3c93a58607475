"""AgentController - Phase dispatch and fallback ladder for one skier.

Wires one agent's decision context, motion and phase machine to the shared
decision engine, traffic state and network. Motion raises completion flags;
the controller reacts to them with exactly one decision and one transition.

Trail end (first rule that applies wins):
    1. Urgent need, or lodge visit chance -> nearest lodge with space in range
    2. Replan if the goal is stale or replanning after every run is enabled;
       finish if the agent no longer wants to ski
    3. Goal step: RideLift within walk radius, or SkiTrail starting nearby
    4. Scored choice among nearby lifts that lead to allowed terrain
    5. Desperation: any nearby lift with trails at its top
    6. Structural trail-to-trail connections
    7. Trail starts within snap radius
    8. Near a base area -> new destination
    9. Stranded -> teleport to base, new destination

Lift top: optional replan, choose among trails starting at the top (falling
back to structural connections), advance the goal on a match, clear it on a
deviation.

Traffic events: intended right after a choice, entered when boarding or
starting, completed at the natural end, exited on an early leave or removal.
"""

import logging
from typing import TYPE_CHECKING, Callable

import numpy as np

from skiresort_flow.constants import MotionConfig
from skiresort_flow.core.motion import MotionController, MotionFlags
from skiresort_flow.core.phase_machine import Phase, PhaseStateMachine
from skiresort_flow.core.traffic_state import EdgeKind
from skiresort_flow.model.path_point import PathPoint

if TYPE_CHECKING:
    from skiresort_flow.core.decision_engine import DecisionEngine
    from skiresort_flow.core.noise import PerlinNoise
    from skiresort_flow.core.traffic_state import TrafficState
    from skiresort_flow.model.agent_context import AgentContext
    from skiresort_flow.model.flow_config import FlowConfig
    from skiresort_flow.model.goal import GoalPlanner
    from skiresort_flow.model.lift import Lift
    from skiresort_flow.model.resort_network import ResortNetwork
    from skiresort_flow.model.trail import Trail
    from skiresort_flow.simulation.lodges import LodgeOccupancy

logger = logging.getLogger(__name__)


class AgentController:
    """Per-agent controller: motion, phase machine and routing decisions.

    Collaborators are shared across all agents of a simulation; the context,
    motion and phase machine belong to this agent alone.
    """

    def __init__(
        self,
        context: "AgentContext",
        network: "ResortNetwork",
        engine: "DecisionEngine",
        traffic: "TrafficState",
        lodges: "LodgeOccupancy",
        config: "FlowConfig",
        noise: "PerlinNoise",
        rng: np.random.Generator,
        goal_planner: "GoalPlanner | None" = None,
    ) -> None:
        """Initialize controller (call spawn() to place the agent).

        Args:
            context: Decision state of the agent
            network: Resort topology (read-only)
            engine: Shared decision engine
            traffic: Shared traffic state (event sink)
            lodges: Shared lodge guest bookkeeping
            config: Runtime knobs
            noise: Shared noise source for lateral drift
            rng: Shared simulation generator
            goal_planner: External route planner (None = purely local decisions)
        """
        self.context = context
        self.network = network
        self.engine = engine
        self.traffic = traffic
        self.lodges = lodges
        self.config = config
        self.rng = rng
        self.goal_planner = goal_planner

        self.machine, self.state = PhaseStateMachine.create(agent_id=context.id)
        self.motion = MotionController(agent_id=context.id, config=config, noise=noise)

        # Edge this agent is physically counted on in TrafficState
        self._occupied: tuple[EdgeKind, int] | None = None

        self._handlers: dict[Phase, Callable[[MotionFlags, float], None]] = {
            Phase.WALKING_TO_LIFT: self._handle_walking_to_lift,
            Phase.RIDING_LIFT: self._handle_riding_lift,
            Phase.SKIING_TRAIL: self._handle_skiing_trail,
            Phase.WALKING_TO_LODGE: self._handle_walking_to_lodge,
            Phase.IN_LODGE: self._handle_in_lodge,
        }

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def agent_id(self) -> int:
        return self.context.id

    @property
    def phase(self) -> Phase:
        return self.machine.phase

    @property
    def is_finished(self) -> bool:
        return self.context.is_finished

    @property
    def position(self) -> np.ndarray:
        return self.motion.position

    def _here(self) -> PathPoint:
        return PathPoint.from_array(self.motion.target_position)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def spawn(self, position: PathPoint | None = None) -> None:
        """Place the agent and send it towards its first lift.

        Args:
            position: Spawn point (defaults to the first base area, then the first lift bottom)
        """
        start = position
        if start is None and self.network.base_points:
            start = self.network.base_points[0]
        if start is None:
            lifts = self.network.valid_lifts()
            start = lifts[0].bottom if lifts else PathPoint(0.0, 0.0, 0.0)
        self.motion.teleport(start.as_array())
        logger.info(f"Spawned agent {self.agent_id} ({self.context.skill.key}) at {start!r}")
        self.choose_new_destination()

    def release(self) -> None:
        """Leave whatever edge or lodge the agent occupies (removal)."""
        self._leave_edge(completed=False)
        self.lodges.leave(self.state.target_lodge_id, self.agent_id)

    def finish(self, reason: str) -> None:
        """Mark the agent as done; the simulation removes it after the tick."""
        if not self.context.is_finished:
            self.context.is_finished = True
            logger.info(f"Agent {self.agent_id} finished: {reason} (runs: {self.context.runs_completed})")

    # =========================================================================
    # Tick
    # =========================================================================

    def advance(self, dt: float) -> MotionFlags:
        """Pass 1: move only, no decisions."""
        return self.motion.advance(self.phase, dt)

    def resolve(self, flags: MotionFlags, dt: float) -> None:
        """Pass 2: react to motion flags in the current phase."""
        if self.context.is_finished:
            return
        self._handlers[self.phase](flags, dt)

    # =========================================================================
    # Traffic Bookkeeping
    # =========================================================================

    def _enter_trail(self, trail: "Trail") -> None:
        self.traffic.on_trail_entered(agent_id=self.agent_id, trail_id=trail.id)
        self._occupied = (EdgeKind.TRAIL, trail.id)
        self.context.trails_skied.add(trail.id)

    def _enter_lift(self, lift: "Lift") -> None:
        self.traffic.on_lift_entered(agent_id=self.agent_id, lift_id=lift.id)
        self._occupied = (EdgeKind.LIFT, lift.id)
        self.context.lifts_ridden.add(lift.id)

    def _leave_edge(self, completed: bool) -> None:
        if self._occupied is None:
            return
        kind, edge_id = self._occupied
        self._occupied = None
        if kind is EdgeKind.TRAIL:
            if completed:
                self.traffic.on_trail_completed(agent_id=self.agent_id, trail_id=edge_id)
            else:
                self.traffic.on_trail_exited(agent_id=self.agent_id, trail_id=edge_id)
        elif completed:
            self.traffic.on_lift_completed(agent_id=self.agent_id, lift_id=edge_id)
        else:
            self.traffic.on_lift_exited(agent_id=self.agent_id, lift_id=edge_id)

    # =========================================================================
    # Shared Actions
    # =========================================================================

    def _replan(self) -> None:
        if self.goal_planner is None:
            return
        self.context.goal = self.goal_planner.plan_new_goal(self.context)
        if self.context.goal is not None:
            logger.info(f"Agent {self.agent_id} replanned: {self.context.goal!r}")

    def _walk_to_lift(self, lift: "Lift") -> None:
        self.traffic.on_lift_intended(agent_id=self.agent_id, lift_id=lift.id)
        self.machine.try_transition("walk_to_lift", lift_id=lift.id)
        self.motion.set_walk_target(lift.bottom.as_array())

    def _switch_to_trail(self, trail: "Trail", position: np.ndarray) -> None:
        """Continue skiing on another trail from the closest point to a position."""
        self.traffic.on_trail_intended(agent_id=self.agent_id, trail_id=trail.id)
        self._enter_trail(trail)
        self.machine.try_transition("switch_trail", trail_id=trail.id)
        start = self.motion.switch_trail(trail, position)
        logger.debug(f"Agent {self.agent_id} continues on trail {trail.id} at {start:.1f}m")

    def choose_new_destination(self, rescue: bool = False) -> None:
        """Plan a new goal and walk to its first lift (or the lift nearest the base).

        Args:
            rescue: Teleport to the nearest base area first (stranded agents)
        """
        if not self.context.wants_to_keep_skiing():
            self.finish("desired runs reached")
            return

        if rescue:
            base = self.network.nearest_base(self._here())
            if base is not None:
                logger.warning(f"Agent {self.agent_id} stranded at {self._here()!r}, teleporting to base")
                self.motion.teleport(base.as_array())
            else:
                logger.warning(f"Agent {self.agent_id} stranded at {self._here()!r} and resort has no base")

        self._replan()

        lift = None
        goal = self.context.goal
        if goal is not None:
            for step in goal.planned_path[goal.current_index :]:
                if step.is_lift:
                    lift = self.network.get_lift(step.entity_id)
                    break

        if lift is None:
            here = self._here()
            anchor = self.network.nearest_base(here) or here
            lift = self.network.nearest_lift_bottom(anchor)

        if lift is None:
            logger.warning(f"Agent {self.agent_id} has no lift to go to")
            self.finish("no lifts")
            return

        logger.debug(f"Agent {self.agent_id} new destination: lift {lift.id}")
        self._walk_to_lift(lift)

    # =========================================================================
    # Phase Handlers
    # =========================================================================

    def _handle_walking_to_lift(self, flags: MotionFlags, dt: float) -> None:
        lift = self.network.get_lift(self.state.target_lift_id)
        if lift is None:
            self.choose_new_destination()
            return
        if not flags.reached_lift_bottom:
            return

        goal = self.context.goal
        if goal is not None and self.context.goal_lift_id == lift.id:
            goal.advance_to_next_step()

        self._enter_lift(lift)
        self.machine.try_transition("board_lift", lift_id=lift.id)
        self.motion.set_lift(lift)

    def _handle_riding_lift(self, flags: MotionFlags, dt: float) -> None:
        if not flags.reached_lift_top:
            return
        lift = self.network.get_lift(self.state.current_lift_id)
        self._leave_edge(completed=True)
        if lift is None:
            self.choose_new_destination()
            return

        if self.config.replan_at_lift_top and self.context.goal_is_stale:
            self._replan()

        candidates = self.network.trails_starting_near(lift.top, self.config.trail_start_search_radius)
        if not candidates:
            candidates = [
                t for t in (self.network.get_trail(tid) for tid in self.network.trails_from_lift(lift.id)) if t
            ]
        if not candidates:
            logger.warning(f"Agent {self.agent_id}: no trails at lift {lift.id} top")
            self.choose_new_destination()
            return

        goal_trail_id = self.context.goal_trail_id
        trail = self.engine.choose_trail(candidates=candidates, context=self.context, rng=self.rng)
        if goal_trail_id is not None:
            if trail.id == goal_trail_id:
                self.context.goal.advance_to_next_step()
            else:
                logger.debug(f"Agent {self.agent_id} deviated from goal trail {goal_trail_id}")
                self.context.goal = None

        self.traffic.on_trail_intended(agent_id=self.agent_id, trail_id=trail.id)
        self._enter_trail(trail)
        self.machine.try_transition("start_trail", trail_id=trail.id)
        self.motion.set_trail(trail)
        self.context.runs_completed += 1

    def _handle_skiing_trail(self, flags: MotionFlags, dt: float) -> None:
        trail = self.network.get_trail(self.state.current_trail_id)
        if trail is None:
            self._leave_edge(completed=False)
            self.choose_new_destination()
            return
        if flags.reached_trail_end:
            self._on_trail_finished(trail)
        else:
            self._try_mid_run_exit(trail)

    def _handle_walking_to_lodge(self, flags: MotionFlags, dt: float) -> None:
        lodge = self.network.get_lodge(self.state.target_lodge_id)
        if lodge is None:
            self.choose_new_destination()
            return
        if not flags.reached_walk_target:
            return
        if self.lodges.try_enter(lodge=lodge, agent_id=self.agent_id):
            self.context.has_urgent_need = False
            self.machine.try_transition("enter_lodge", rest_duration_s=lodge.rest_duration_s)
        else:
            self.choose_new_destination()

    def _handle_in_lodge(self, flags: MotionFlags, dt: float) -> None:
        lodge = self.network.get_lodge(self.state.target_lodge_id)
        if lodge is not None:
            self.state.lodge_time_remaining_s -= dt
            if self.state.lodge_time_remaining_s > 0:
                return
            self.motion.teleport(lodge.position.as_array())
        self.lodges.leave(self.state.target_lodge_id, self.agent_id)
        self.choose_new_destination()

    # =========================================================================
    # Trail End Ladder
    # =========================================================================

    def _on_trail_finished(self, trail: "Trail") -> None:
        self._leave_edge(completed=True)
        end = trail.end
        end_position = end.as_array()
        cfg = self.config
        ctx = self.context

        # 1. Lodge
        if ctx.has_urgent_need or self.rng.random() < cfg.lodge_visit_chance:
            lodges = [lg for lg in self.network.lodges_near(end, cfg.lodge_search_radius) if self.lodges.has_space(lg)]
            if lodges:
                lodge = lodges[0]
                self.machine.try_transition("head_to_lodge", lodge_id=lodge.id)
                self.motion.set_walk_target(lodge.position.as_array())
                logger.debug(f"Agent {self.agent_id} heading to lodge {lodge.id}")
                return

        # 2. Replan
        if ctx.goal_is_stale or cfg.replan_after_every_run:
            if not ctx.wants_to_keep_skiing():
                self.finish("desired runs reached")
                return
            self._replan()

        # 3. Goal step
        goal_lift = self.network.get_lift(ctx.goal_lift_id)
        if goal_lift is not None:
            if end.distance_to(goal_lift.bottom) <= cfg.goal_lift_walk_radius:
                self._walk_to_lift(goal_lift)
                return
            logger.debug(f"Agent {self.agent_id} goal lift {goal_lift.id} out of reach, dropping goal")
            ctx.goal = None

        goal_trail = self.network.get_trail(ctx.goal_trail_id)
        if goal_trail is not None and goal_trail.id != trail.id:
            if goal_trail.distance_to_start(end) <= cfg.goal_trail_radius:
                ctx.goal.advance_to_next_step()
                self._switch_to_trail(goal_trail, end_position)
                return

        # 4. Scored lift choice
        nearby_lifts = self.network.lifts_with_bottom_near(end, cfg.lift_search_radius)
        worthwhile = [
            lift
            for lift in nearby_lifts
            if self.engine.downstream.best_trail_value_from_lift(skill=ctx.skill, lift=lift) > 0.0
        ]
        lift = self.engine.choose_lift(candidates=worthwhile, context=ctx, rng=self.rng)

        # 5. Desperation
        if lift is None:
            desperate = [lf for lf in nearby_lifts if self.engine.downstream.trails_at_lift_top(lf)]
            if desperate:
                logger.debug(f"Agent {self.agent_id} taking a desperate lift choice")
                lift = self.engine.choose(
                    candidates=desperate,
                    scorer=lambda _: cfg.desperate_score,
                    rng=self.rng,
                    agent_id=self.agent_id,
                )

        if lift is not None:
            self._walk_to_lift(lift)
            return

        # 6. Structural trail connections
        connected = [
            t for t in (self.network.get_trail(tid) for tid in self.network.trails_from_trail(trail.id)) if t
        ]
        connected = [t for t in connected if t.id != trail.id]
        next_trail = self.engine.choose_trail(candidates=connected, context=ctx, rng=self.rng)

        # 7. Trail starts within snap radius
        if next_trail is None:
            nearby = self.network.trails_starting_near(end, cfg.network_snap_radius, exclude_id=trail.id)
            next_trail = self.engine.choose_trail(candidates=nearby, context=ctx, rng=self.rng)

        if next_trail is not None:
            self._switch_to_trail(next_trail, end_position)
            return

        # 8. Base area
        base = self.network.nearest_base(end)
        if base is not None and end.distance_to(base) <= cfg.base_radius:
            logger.debug(f"Agent {self.agent_id} reached base after {ctx.runs_completed} runs")
            self.choose_new_destination()
            return

        # 9. Stranded
        self.choose_new_destination(rescue=True)

    # =========================================================================
    # Mid-Run Exits
    # =========================================================================

    def _try_mid_run_exit(self, trail: "Trail") -> None:
        """Evaluate junctions passed while skiing; each candidate at most once per run."""
        fraction = self.motion.trail_fraction
        if not MotionConfig.EXIT_WINDOW_START < fraction < MotionConfig.EXIT_WINDOW_END:
            return

        radius = self.config.junction_detection_radius
        distance = self.motion.distance_along
        center = trail.sample(distance).position
        here = PathPoint.from_array(center)
        evaluated_lifts = self.state.evaluated_lift_ids
        evaluated_trails = self.state.evaluated_trail_ids
        continue_value: float | None = None

        for lift in self.network.lifts_with_bottom_near(here, radius):
            if lift.id in evaluated_lifts:
                continue
            evaluated_lifts.add(lift.id)
            if continue_value is None:
                continue_value = self.engine.continue_value(trail=trail, context=self.context)
            exit_value = self.engine.lift_exit_value(lift=lift, context=self.context)
            logger.debug(
                f"Agent {self.agent_id} exit check lift {lift.id}: {exit_value:.3f} vs stay {continue_value:.3f}"
            )
            if self.engine.should_take_exit(continue_value=continue_value, exit_value=exit_value, rng=self.rng):
                self._leave_edge(completed=False)
                self._walk_to_lift(lift)
                return

        candidates: list["Trail"] = list(self.network.trails_starting_near(here, radius, exclude_id=trail.id))
        for crossing in self.network.crossings_on(trail.id):
            if abs(crossing.distance_along - distance) <= radius:
                other = self.network.get_trail(crossing.other_trail_id)
                if other is not None:
                    candidates.append(other)

        for other in candidates:
            if other.id in evaluated_trails or other.id == trail.id:
                continue
            evaluated_trails.add(other.id)
            if continue_value is None:
                continue_value = self.engine.continue_value(trail=trail, context=self.context)
            exit_value = self.engine.trail_exit_value(trail=other, context=self.context)
            logger.debug(
                f"Agent {self.agent_id} exit check trail {other.id}: {exit_value:.3f} vs stay {continue_value:.3f}"
            )
            if self.engine.should_take_exit(continue_value=continue_value, exit_value=exit_value, rng=self.rng):
                self._leave_edge(completed=False)
                self._switch_to_trail(other, center)
                return

    # =========================================================================
    # Topology Changes
    # =========================================================================

    def on_topology_changed(self) -> None:
        """Drop goals and edges that no longer exist; stranded agents pick a new destination."""
        goal = self.context.goal
        if goal is not None:
            for step in goal.planned_path[goal.current_index :]:
                missing = (
                    self.network.get_lift(step.entity_id) is None
                    if step.is_lift
                    else self.network.get_trail(step.entity_id) is None
                )
                if missing:
                    logger.info(f"Agent {self.agent_id} goal references removed edge {step.entity_id}, clearing")
                    self.context.goal = None
                    break

        if self.context.is_finished:
            return
        phase = self.phase
        if phase is Phase.SKIING_TRAIL and self.network.get_trail(self.state.current_trail_id) is None:
            self._leave_edge(completed=False)
            self.choose_new_destination()
        elif phase is Phase.RIDING_LIFT and self.network.get_lift(self.state.current_lift_id) is None:
            self._leave_edge(completed=False)
            self.choose_new_destination()
        elif phase is Phase.WALKING_TO_LIFT and self.network.get_lift(self.state.target_lift_id) is None:
            self.choose_new_destination()
        elif phase in (Phase.WALKING_TO_LODGE, Phase.IN_LODGE) and self.network.get_lodge(
            self.state.target_lodge_id
        ) is None:
            self.lodges.leave(self.state.target_lodge_id, self.agent_id)
            self.choose_new_destination()

    def __repr__(self) -> str:
        return f"AgentController(id={self.agent_id}, phase={self.phase.name}, state={self.state!r})"
