"""Core decision, traffic and motion classes.

This module provides the per-decision backbone of the flow simulation:
- TrafficState: Occupancy, deficit, crowding and herding signals per edge
- DownstreamEvaluator: Bounded, memoized lookahead over the network
- DecisionEngine: Scoring and softmax selection for every routing decision
- MotionController: Per-agent kinematics with anti-teleport smoothing
- PhaseStateMachine: Activity phases of an agent (python-statemachine)
- PerlinNoise: Deterministic gradient noise for lateral drift
"""

from skiresort_flow.core.decision_engine import DecisionEngine, ScoreFactors
from skiresort_flow.core.downstream import DownstreamEvaluator
from skiresort_flow.core.motion import MotionController, MotionFlags
from skiresort_flow.core.noise import PerlinNoise
from skiresort_flow.core.phase_machine import MotionState, Phase, PhaseStateMachine, PhaseTransitionLogger
from skiresort_flow.core.traffic_state import EdgeKind, TrafficRecord, TrafficState

__all__ = [
    # Traffic
    "TrafficState",
    "TrafficRecord",
    "EdgeKind",
    # Lookahead
    "DownstreamEvaluator",
    # Decisions
    "DecisionEngine",
    "ScoreFactors",
    # Motion
    "MotionController",
    "MotionFlags",
    "PerlinNoise",
    # Phases
    "Phase",
    "PhaseStateMachine",
    "PhaseTransitionLogger",
    "MotionState",
]
