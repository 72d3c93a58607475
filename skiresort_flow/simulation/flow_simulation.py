"""FlowSimulation - Owner of all shared state and the two-phase tick.

Architecture Overview
---------------------
One FlowSimulation owns exactly one instance of every shared collaborator
(no globals): TrafficState, DownstreamEvaluator, DecisionEngine, lodge
bookkeeping, a noise source and a seeded generator. Agents are processed in
insertion order, so every decision sees the intents of agents that decided
earlier in the same tick.

Tick:
    Pass 1: advance motion for every agent and collect completion flags.
    Pass 2: resolve flags in agent order (decisions, traffic events, transitions).
    Finished agents are removed after pass 2.

Topology changes reach the simulation through the network's change listener:
the downstream cache is invalidated, new edges are registered with traffic,
and agents drop goals or edges that disappeared.
"""

import logging
from typing import TYPE_CHECKING, Any

import numpy as np

from skiresort_flow.core.decision_engine import DecisionEngine
from skiresort_flow.core.downstream import DownstreamEvaluator
from skiresort_flow.core.motion import MotionFlags
from skiresort_flow.core.noise import PerlinNoise
from skiresort_flow.core.traffic_state import TrafficState
from skiresort_flow.model.agent_context import AgentContext
from skiresort_flow.model.flow_config import FlowConfig
from skiresort_flow.simulation.agent import AgentController
from skiresort_flow.simulation.lodges import LodgeOccupancy

if TYPE_CHECKING:
    from skiresort_flow.model.goal import GoalPlanner
    from skiresort_flow.model.path_point import PathPoint
    from skiresort_flow.model.resort_network import ResortNetwork
    from skiresort_flow.model.skill import SkillLevel

logger = logging.getLogger(__name__)


class FlowSimulation:
    """Visitor flow over one resort network.

    Example:
        sim = FlowSimulation()
        sim.initialize(network=network, config=FlowConfig(temperature=1.0), seed=42)
        sim.add_agent(agent_id=1, skill=SkillLevel.INTERMEDIATE)
        for _ in range(600):
            sim.tick(dt=0.1)
    """

    def __init__(self) -> None:
        self.network: "ResortNetwork | None" = None
        self.config = FlowConfig()
        self.goal_planner: "GoalPlanner | None" = None
        self.traffic = TrafficState()
        self.lodges = LodgeOccupancy()
        self.downstream: DownstreamEvaluator | None = None
        self.engine: DecisionEngine | None = None
        self.noise = PerlinNoise(seed=0)
        self.rng = np.random.default_rng()
        self.agents: dict[int, AgentController] = {}
        self.time_s = 0.0
        self.tick_count = 0

    # =========================================================================
    # Initialization
    # =========================================================================

    def initialize(
        self,
        network: "ResortNetwork",
        config: FlowConfig | None = None,
        goal_planner: "GoalPlanner | None" = None,
        seed: int | None = None,
    ) -> None:
        """(Re)build every shared collaborator for a network.

        Existing agents are dropped. Safe to call repeatedly.

        Args:
            network: Resort topology
            config: Runtime knobs (defaults to FlowConfig())
            goal_planner: External route planner (None = local decisions only)
            seed: Seed for the simulation generator and noise (None = nondeterministic)
        """
        if self.network is not None:
            self.network.remove_change_listener(self._on_network_changed)

        self.network = network
        self.config = config or FlowConfig()
        self.goal_planner = goal_planner
        self.rng = np.random.default_rng(seed)
        self.noise = PerlinNoise(seed=0 if seed is None else seed)

        self.traffic = TrafficState(recent_intent_window=self.config.recent_intent_window)
        self.traffic.register_network(network)
        self.lodges = LodgeOccupancy()
        self.downstream = DownstreamEvaluator(network=network, config=self.config)
        self.engine = DecisionEngine(config=self.config, traffic=self.traffic, downstream=self.downstream)

        self.agents = {}
        self.time_s = 0.0
        self.tick_count = 0

        network.add_change_listener(self._on_network_changed)
        logger.info(f"Initialized flow simulation on {network!r} (seed={seed})")

    def _require_initialized(self) -> "ResortNetwork":
        if self.network is None or self.engine is None:
            raise RuntimeError("FlowSimulation.initialize() must be called first")
        return self.network

    # =========================================================================
    # Agents
    # =========================================================================

    def add_agent(
        self,
        agent_id: int,
        skill: "SkillLevel",
        desired_runs: int | None = None,
        position: "PathPoint | None" = None,
    ) -> AgentController:
        """Create, spawn and register an agent.

        Args:
            agent_id: Unique id (also seeds the agent's personality)
            skill: Skill level
            desired_runs: Runs before the agent leaves (None = ski forever)
            position: Spawn point (defaults to the first base area)

        Returns:
            The agent's controller.

        Raises:
            ValueError: If an agent with this id already exists.
        """
        network = self._require_initialized()
        if agent_id in self.agents:
            raise ValueError(f"Agent {agent_id} already exists")

        context = AgentContext(
            id=agent_id,
            skill=skill,
            desired_runs=desired_runs,
            personality_magnitude=self.config.personality_magnitude,
        )
        controller = AgentController(
            context=context,
            network=network,
            engine=self.engine,
            traffic=self.traffic,
            lodges=self.lodges,
            config=self.config,
            noise=self.noise,
            rng=self.rng,
            goal_planner=self.goal_planner,
        )
        self.agents[agent_id] = controller
        controller.spawn(position=position)
        return controller

    def remove_agent(self, agent_id: int) -> bool:
        """Remove an agent, firing exited for the edge it occupies.

        Returns:
            True if the agent existed.
        """
        controller = self.agents.pop(agent_id, None)
        if controller is None:
            return False
        controller.release()
        logger.info(f"Removed agent {agent_id}")
        return True

    def get_agent(self, agent_id: int) -> AgentController | None:
        return self.agents.get(agent_id)

    # =========================================================================
    # Tick
    # =========================================================================

    def tick(self, dt: float) -> list[int]:
        """Advance the whole simulation by dt seconds.

        Args:
            dt: Time step in seconds

        Returns:
            Ids of agents that finished and were removed this tick.
        """
        self._require_initialized()
        controllers = list(self.agents.values())

        flags: list[MotionFlags] = [controller.advance(dt) for controller in controllers]
        for controller, agent_flags in zip(controllers, flags):
            controller.resolve(agent_flags, dt)

        finished = [c.agent_id for c in controllers if c.is_finished]
        for agent_id in finished:
            self.remove_agent(agent_id)

        self.time_s += dt
        self.tick_count += 1
        return finished

    # =========================================================================
    # Topology Changes
    # =========================================================================

    def _on_network_changed(self, network: "ResortNetwork") -> None:
        self.on_topology_changed()

    def on_topology_changed(self) -> None:
        """Invalidate lookahead, register new edges and repair agents after a topology mutation."""
        network = self._require_initialized()
        self.downstream.invalidate()
        self.traffic.register_network(network)
        for lodge_id in [lid for lid in self.lodges.lodge_ids() if network.get_lodge(lid) is None]:
            self.lodges.drop_lodge(lodge_id)
        for controller in list(self.agents.values()):
            controller.on_topology_changed()

    # =========================================================================
    # Reporting
    # =========================================================================

    def snapshot(self) -> dict[str, Any]:
        """Positions, headings and phases of all agents plus traffic, for hosts."""
        return {
            "time_s": self.time_s,
            "tick": self.tick_count,
            "agents": [
                {
                    "id": c.agent_id,
                    "skill": c.context.skill.key,
                    "phase": c.phase.value,
                    "position": [float(v) for v in c.position],
                    "heading": [float(v) for v in c.motion.heading],
                    "trail_id": c.state.current_trail_id,
                    "lift_id": c.state.current_lift_id,
                    "runs": c.context.runs_completed,
                }
                for c in self.agents.values()
            ],
            "traffic": self.traffic.snapshot(),
        }

    def __repr__(self) -> str:
        return f"FlowSimulation(agents={len(self.agents)}, t={self.time_s:.1f}s, network={self.network!r})"
