"""Ski Resort Flow - Visitor-flow decision core for ski resorts.

Simulates how skiers move through a resort: which lift or trail they pick
next, how they spread over under-used terrain, and how they physically move
along trails, lifts and walkways.

Modules:
    model: Data structures (PathPoint, Trail, Lift, Lodge, ResortNetwork, AgentContext, FlowConfig)
    core: Decision backbone (TrafficState, DownstreamEvaluator, DecisionEngine, MotionController,
          PhaseStateMachine)
    simulation: Agent controllers and the FlowSimulation tick

Example:
    from skiresort_flow.model import FlowConfig, ResortNetwork, SkillLevel
    from skiresort_flow.simulation import FlowSimulation
"""
