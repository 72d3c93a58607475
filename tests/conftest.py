"""Shared pytest fixtures for skiresort_flow tests.

Provides a small synthetic resort and reusable decision collaborators.
All fixtures use explicit geometry with documented rationale.

COORDINATE SYSTEM:
    Local metric frame: x east, y north (up the mountain), elevation in meters.
    The base area sits at the origin at 1000m. Every endpoint that should
    connect lies within 25m (network snap radius) of its partner, so the
    structural and the spatial lookups agree.

RESORT LAYOUT (build_resort_network):

            T3 start (490,1000)  Lift 2 top (500,1000)  T4 start (510,1000)
                  |                                          \\
    T2 start (-10,800) Lift 1 top (0,800) T1 start (10,800)   \\ T4 (double black)
        |                        \\                            |
        | T2 (blue)               \\ T1 (green)  x T3         |
        |                          \\-----------> Lift 2 bottom (500,400)
        v                                 T3 (black)
    Lift 1 bottom (0,10), base (0,0), lodge (15,30)  <-- T3 end

    - Lift 1 -> T1 (green connector) -> Lift 2 -> T3 (black) / T4 (double black)
    - Lift 1 -> T2 (blue home run) -> Lift 1 (cycle)
    - Lift 2 -> T4 -> Lift 2 (cycle)
    - T1 and T3 cross once, mid-run on both trails
"""

import numpy as np
import pytest

from skiresort_flow.core.decision_engine import DecisionEngine
from skiresort_flow.core.downstream import DownstreamEvaluator
from skiresort_flow.core.traffic_state import TrafficState
from skiresort_flow.model.agent_context import AgentContext
from skiresort_flow.model.flow_config import FlowConfig
from skiresort_flow.model.goal import Goal, PathStep, StepType
from skiresort_flow.model.lift import Lift
from skiresort_flow.model.lodge import Lodge
from skiresort_flow.model.path_point import PathPoint
from skiresort_flow.model.resort_network import ResortNetwork
from skiresort_flow.model.skill import Difficulty, PreferenceTable, SkillLevel
from skiresort_flow.model.trail import Trail

# =============================================================================
# IDS
# =============================================================================

BASE_CHAIR = 1
UPPER_CHAIR = 2

MEADOW = 1  # green connector Lift 1 -> Lift 2
HOME_RUN = 2  # blue, Lift 1 -> Lift 1
RIDGE = 3  # black, Lift 2 -> Lift 1
COULOIR = 4  # double black, Lift 2 -> Lift 2

BASE_LODGE = 1


# =============================================================================
# NETWORK BUILDERS
# =============================================================================


def base_chair() -> Lift:
    """Base area to the first top station. Length ~885m, rise 400m."""
    return Lift(
        id=BASE_CHAIR,
        name="Base Chair",
        bottom=PathPoint(x=0.0, y=10.0, elevation=1000.0),
        top=PathPoint(x=0.0, y=800.0, elevation=1400.0),
    )


def upper_chair() -> Lift:
    """Mid station to the summit. Bottom is 11m from the Meadow end."""
    return Lift(
        id=UPPER_CHAIR,
        name="Upper Chair",
        bottom=PathPoint(x=500.0, y=400.0, elevation=1200.0),
        top=PathPoint(x=500.0, y=1000.0, elevation=1600.0),
    )


def meadow() -> Trail:
    """Green connector from the Base Chair top down to the Upper Chair bottom (~656m)."""
    return Trail(
        id=MEADOW,
        name="Meadow",
        difficulty=Difficulty.GREEN,
        points=[
            PathPoint(x=10.0, y=800.0, elevation=1400.0),
            PathPoint(x=300.0, y=600.0, elevation=1300.0),
            PathPoint(x=495.0, y=410.0, elevation=1200.0),
        ],
    )


def home_run() -> Trail:
    """Blue run from the Base Chair top back to its bottom (~881m, ~27 deg)."""
    return Trail(
        id=HOME_RUN,
        name="Home Run",
        difficulty=Difficulty.BLUE,
        points=[
            PathPoint(x=-10.0, y=800.0, elevation=1400.0),
            PathPoint(x=-50.0, y=400.0, elevation=1200.0),
            PathPoint(x=-5.0, y=20.0, elevation=1000.0),
        ],
    )


def ridge() -> Trail:
    """Black run from the summit to the base, crossing Meadow at (382, 520)."""
    return Trail(
        id=RIDGE,
        name="Ridge",
        difficulty=Difficulty.BLACK,
        points=[
            PathPoint(x=490.0, y=1000.0, elevation=1600.0),
            PathPoint(x=450.0, y=700.0, elevation=1400.0),
            PathPoint(x=300.0, y=300.0, elevation=1150.0),
            PathPoint(x=10.0, y=25.0, elevation=1005.0),
        ],
    )


def couloir() -> Trail:
    """Double black from the summit back to the Upper Chair bottom."""
    return Trail(
        id=COULOIR,
        name="Couloir",
        difficulty=Difficulty.DOUBLE_BLACK,
        points=[
            PathPoint(x=510.0, y=1000.0, elevation=1600.0),
            PathPoint(x=650.0, y=700.0, elevation=1350.0),
            PathPoint(x=505.0, y=420.0, elevation=1205.0),
        ],
    )


def base_lodge(capacity: int = 20) -> Lodge:
    """Lodge at the base, ~22m from the Home Run end and ~6m from the Ridge end."""
    return Lodge(
        id=BASE_LODGE,
        name="Base Lodge",
        position=PathPoint(x=15.0, y=30.0, elevation=1002.0),
        capacity=capacity,
        rest_duration_s=30.0,
    )


def build_resort_network() -> ResortNetwork:
    """Two lifts, four trails of every difficulty, one crossing, one lodge, one base."""
    network = ResortNetwork()
    network.add_base_point(PathPoint(x=0.0, y=0.0, elevation=1000.0))
    network.add_lift(base_chair())
    network.add_lift(upper_chair())
    for trail in (meadow(), home_run(), ridge(), couloir()):
        network.add_trail(trail)
    network.add_lodge(base_lodge())
    return network


def build_home_run_network(lodge_capacity: int = 20) -> ResortNetwork:
    """Single loop: Base Chair -> Home Run -> Base Chair, plus the base lodge.

    Every decision in this network has exactly one candidate, so agent
    behaviour is deterministic apart from the lodge visit chance.
    """
    network = ResortNetwork()
    network.add_base_point(PathPoint(x=0.0, y=0.0, elevation=1000.0))
    network.add_lift(base_chair())
    network.add_trail(home_run())
    network.add_lodge(base_lodge(capacity=lodge_capacity))
    return network


def build_engine(
    network: ResortNetwork, config: FlowConfig | None = None
) -> tuple[DecisionEngine, TrafficState, DownstreamEvaluator]:
    """Wire a decision engine with fresh traffic and lookahead for a network."""
    config = config or FlowConfig()
    traffic = TrafficState(recent_intent_window=config.recent_intent_window)
    traffic.register_network(network)
    downstream = DownstreamEvaluator(network=network, config=config)
    engine = DecisionEngine(config=config, traffic=traffic, downstream=downstream)
    return engine, traffic, downstream


# =============================================================================
# GOAL PLANNER
# =============================================================================


class ScriptedGoalPlanner:
    """Goal planner returning the same fixed path for every request.

    Records how often it was asked, so tests can check when replanning happens.
    """

    def __init__(self, steps: list[PathStep]) -> None:
        self.steps = steps
        self.calls = 0

    def plan_new_goal(self, context: AgentContext) -> Goal | None:
        self.calls += 1
        if not self.steps:
            return None
        return Goal(planned_path=list(self.steps), destination_trail_id=self.steps[-1].entity_id)


def summit_goal_steps() -> list[PathStep]:
    """Base Chair -> Meadow -> Upper Chair -> Couloir."""
    return [
        PathStep(StepType.RIDE_LIFT, BASE_CHAIR, "Base Chair"),
        PathStep(StepType.SKI_TRAIL, MEADOW, "Meadow"),
        PathStep(StepType.RIDE_LIFT, UPPER_CHAIR, "Upper Chair"),
        PathStep(StepType.SKI_TRAIL, COULOIR, "Couloir"),
    ]


# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture
def resort() -> ResortNetwork:
    """Full synthetic resort (see module docstring)."""
    return build_resort_network()


@pytest.fixture
def home_run_resort() -> ResortNetwork:
    """Single-loop resort with one lift, one trail and a lodge."""
    return build_home_run_network()


@pytest.fixture
def config() -> FlowConfig:
    """Default runtime knobs."""
    return FlowConfig()


@pytest.fixture
def rng() -> np.random.Generator:
    """Seeded generator so sampled decisions are reproducible."""
    return np.random.default_rng(12345)


@pytest.fixture
def engine(resort: ResortNetwork, config: FlowConfig) -> DecisionEngine:
    """Decision engine over the full resort with empty traffic."""
    engine, _, _ = build_engine(resort, config)
    return engine


@pytest.fixture
def beginner() -> AgentContext:
    return AgentContext(id=1, skill=SkillLevel.BEGINNER)


@pytest.fixture
def expert() -> AgentContext:
    return AgentContext(id=2, skill=SkillLevel.EXPERT)


@pytest.fixture
def blue_desperate_preferences() -> PreferenceTable:
    """Default table, but beginners may take blue only as a last resort."""
    table = PreferenceTable()
    table.desperate_only = dict(table.desperate_only)
    table.desperate_only[SkillLevel.BEGINNER] = frozenset({Difficulty.BLUE})
    return table


@pytest.fixture
def summit_planner() -> ScriptedGoalPlanner:
    """Planner that always sends agents up both lifts to the Couloir."""
    return ScriptedGoalPlanner(steps=summit_goal_steps())
