"""Data model classes for the resort network and the agents moving through it.

Separates Geometry (where things are) from Topology (how things connect):
- PathPoint: Geometry atom (x, y, elevation)
- Trail: Directed ski run (ordered PathPoints, difficulty, width)
- Lift: One-way uphill edge (bottom and top station, raw capacity)
- Lodge: Rest-capable structure
- ResortNetwork: Topology owner with spatial and structural queries
- SkillLevel / Difficulty / PreferenceTable: Skill-to-terrain preferences
- Goal / PathStep / GoalPlanner: Routes produced by the external planner
- AgentContext / PersonalityOffsets: Per-agent decision state
- FlowConfig / DecisionWeights: Runtime configuration knobs
"""

from skiresort_flow.model.agent_context import AgentContext, PersonalityOffsets
from skiresort_flow.model.flow_config import DecisionWeights, FlowConfig
from skiresort_flow.model.goal import Goal, GoalPlanner, PathStep, StepType
from skiresort_flow.model.lift import Lift
from skiresort_flow.model.lodge import Lodge
from skiresort_flow.model.path_point import PathPoint
from skiresort_flow.model.resort_network import ResortNetwork, TrailCrossing
from skiresort_flow.model.skill import Difficulty, PreferenceTable, SkillLevel
from skiresort_flow.model.trail import Trail, TrailSample

__all__ = [
    "PathPoint",
    "Trail",
    "TrailSample",
    "Lift",
    "Lodge",
    "ResortNetwork",
    "TrailCrossing",
    "SkillLevel",
    "Difficulty",
    "PreferenceTable",
    "Goal",
    "GoalPlanner",
    "PathStep",
    "StepType",
    "AgentContext",
    "PersonalityOffsets",
    "DecisionWeights",
    "FlowConfig",
]
