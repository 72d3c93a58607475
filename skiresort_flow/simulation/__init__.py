"""Agent controllers and the simulation loop.

- FlowSimulation: Owns shared state, runs the two-phase tick
- AgentController: Phase dispatch and fallback ladder for one agent
- LodgeOccupancy: Lodge guest bookkeeping
"""

from skiresort_flow.simulation.agent import AgentController
from skiresort_flow.simulation.flow_simulation import FlowSimulation
from skiresort_flow.simulation.lodges import LodgeOccupancy

__all__ = [
    "FlowSimulation",
    "AgentController",
    "LodgeOccupancy",
]
