"""Tests for skiresort_flow model classes.

Tests: PathPoint, Trail, Lift, Lodge, Goal, PersonalityOffsets, AgentContext,
PreferenceTable, FlowConfig, ResortNetwork
Focus: Validation, geometry helpers, spatial queries, change notification

Note: Geometry of the synthetic resort is documented in conftest.py.
"""

import importlib.util

import numpy as np
import pytest

from skiresort_flow import constants
from skiresort_flow.model.agent_context import AgentContext, PersonalityOffsets
from skiresort_flow.model.flow_config import DecisionWeights, FlowConfig
from skiresort_flow.model.goal import Goal, PathStep, StepType
from skiresort_flow.model.lift import Lift
from skiresort_flow.model.lodge import Lodge
from skiresort_flow.model.path_point import PathPoint
from skiresort_flow.model.resort_network import ResortNetwork
from skiresort_flow.model.skill import Difficulty, PreferenceTable, SkillLevel
from skiresort_flow.model.trail import Trail

from conftest import (
    BASE_CHAIR,
    COULOIR,
    HOME_RUN,
    MEADOW,
    RIDGE,
    UPPER_CHAIR,
    base_chair,
    home_run,
    meadow,
)


def _straight_trail(drop_m: float, length_xy: float = 100.0) -> Trail:
    """Single-segment trail heading +x with a given elevation drop."""
    return Trail(
        id=99,
        name="Straight",
        difficulty=Difficulty.BLUE,
        points=[
            PathPoint(x=0.0, y=0.0, elevation=1000.0),
            PathPoint(x=length_xy, y=0.0, elevation=1000.0 - drop_m),
        ],
    )


# =============================================================================
# CONSTANTS
# =============================================================================


class TestConstants:
    """Module-level consistency checks run at import time."""

    def test_module_executes_cleanly(self) -> None:
        """Class-body tables and the asserts that follow them evaluate without error."""
        spec = importlib.util.spec_from_file_location("constants_fresh", constants.__file__)
        module = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(module)
        assert module.SkillConfig.SKILL_LEVELS == constants.SkillConfig.SKILL_LEVELS

    def test_skill_tables_complete(self) -> None:
        cfg = constants.SkillConfig
        for skill in cfg.SKILL_LEVELS:
            assert set(cfg.PREFERENCES[skill]) == set(cfg.DIFFICULTIES)
            assert cfg.ALLOWED[skill] <= set(cfg.DIFFICULTIES)
            assert cfg.DESPERATE_ONLY[skill] <= cfg.ALLOWED[skill]


# =============================================================================
# PATH POINT
# =============================================================================


class TestPathPoint:
    """PathPoint - 3D position in the local metric frame."""

    def test_rejects_nan(self) -> None:
        """NaN coordinates never enter the model."""
        with pytest.raises(ValueError, match="NaN"):
            PathPoint(x=float("nan"), y=0.0, elevation=0.0)

    def test_distance_is_3d(self) -> None:
        """3-4-12 gives 13."""
        a = PathPoint(x=0.0, y=0.0, elevation=0.0)
        b = PathPoint(x=3.0, y=4.0, elevation=12.0)
        assert a.distance_to(b) == pytest.approx(13.0)

    def test_array_roundtrip(self) -> None:
        point = PathPoint(x=1.5, y=-2.0, elevation=1234.0)
        assert PathPoint.from_array(point.as_array()) == point


# =============================================================================
# TRAIL
# =============================================================================


class TestTrail:
    """Trail - polyline geometry, sampling and slope."""

    def test_length_is_sum_of_3d_segments(self) -> None:
        """3-4-0 segment followed by a 0-0-5 drop segment."""
        trail = Trail(
            id=1,
            name="L",
            difficulty=Difficulty.GREEN,
            points=[
                PathPoint(x=0.0, y=0.0, elevation=10.0),
                PathPoint(x=3.0, y=4.0, elevation=10.0),
                PathPoint(x=3.0, y=4.0, elevation=5.0),
            ],
        )
        assert trail.length_m == pytest.approx(10.0)

    def test_single_point_trail_is_invalid(self) -> None:
        trail = Trail(id=1, name="Stub", difficulty=Difficulty.GREEN, points=[PathPoint(0.0, 0.0, 0.0)])
        assert not trail.is_valid
        assert trail.length_m == 0.0

    def test_closed_trail_is_invalid(self) -> None:
        trail = meadow()
        trail.is_open = False
        assert not trail.is_valid

    def test_rejects_non_positive_width(self) -> None:
        with pytest.raises(ValueError, match="width"):
            Trail(id=1, name="W", difficulty=Difficulty.GREEN, points=[], width_m=0.0)

    def test_sample_clamps_to_ends(self) -> None:
        """Distances outside [0, length] map to the end points."""
        trail = _straight_trail(drop_m=0.0)
        assert np.allclose(trail.sample(-5.0).position, [0.0, 0.0, 1000.0])
        assert np.allclose(trail.sample(1e6).position, [100.0, 0.0, 1000.0])

    def test_sample_interpolates_with_unit_tangent(self) -> None:
        trail = _straight_trail(drop_m=0.0)
        sample = trail.sample(25.0)
        assert np.allclose(sample.position, [25.0, 0.0, 1000.0])
        assert np.allclose(sample.tangent, [1.0, 0.0, 0.0])
        assert sample.segment_index == 0

    def test_slope_degrees(self) -> None:
        """Equal drop and horizontal run is 45 degrees; flat is 0."""
        assert _straight_trail(drop_m=100.0).slope_deg_at(10.0) == pytest.approx(45.0)
        assert _straight_trail(drop_m=0.0).slope_deg_at(10.0) == pytest.approx(0.0)

    def test_closest_distance_projects_onto_segment(self) -> None:
        """A point 5m beside the centerline at x=40 projects to 40m along."""
        trail = _straight_trail(drop_m=0.0)
        assert trail.closest_distance_to(np.array([40.0, 5.0, 1000.0])) == pytest.approx(40.0)

    def test_traffic_capacity_has_minimum(self) -> None:
        """One slot per 50m, at least 2."""
        assert _straight_trail(drop_m=0.0, length_xy=20.0).traffic_capacity == 2.0
        assert _straight_trail(drop_m=0.0, length_xy=500.0).traffic_capacity == pytest.approx(10.0)

    def test_dict_roundtrip(self) -> None:
        trail = home_run()
        restored = Trail.from_dict(trail.to_dict())
        assert restored.difficulty is Difficulty.BLUE
        assert restored.length_m == pytest.approx(trail.length_m)


# =============================================================================
# LIFT / LODGE
# =============================================================================


class TestLift:
    """Lift - straight cable between two stations."""

    def test_position_at_fraction(self) -> None:
        lift = base_chair()
        assert np.allclose(lift.position_at(0.0), lift.bottom.as_array())
        assert np.allclose(lift.position_at(1.0), lift.top.as_array())
        assert np.allclose(lift.position_at(2.0), lift.top.as_array())

    def test_direction_is_unit(self) -> None:
        assert np.linalg.norm(base_chair().direction) == pytest.approx(1.0)

    def test_rejects_non_positive_capacity(self) -> None:
        with pytest.raises(ValueError, match="capacity"):
            Lift(id=1, name="X", bottom=PathPoint(0, 0, 0), top=PathPoint(0, 1, 1), capacity=0.0)

    def test_degenerate_lift_is_invalid(self) -> None:
        lift = Lift(id=1, name="X", bottom=PathPoint(0, 0, 0), top=PathPoint(0, 0, 0))
        assert not lift.is_valid

    def test_traffic_capacity(self) -> None:
        """1200 pph -> 6 slots; tiny lifts keep one slot."""
        assert base_chair().traffic_capacity == pytest.approx(6.0)
        tiny = Lift(id=3, name="T", bottom=PathPoint(0, 0, 0), top=PathPoint(0, 1, 1), capacity=50.0)
        assert tiny.traffic_capacity == 1.0


class TestLodge:
    def test_rejects_zero_capacity(self) -> None:
        with pytest.raises(ValueError, match="capacity"):
            Lodge(id=1, name="L", position=PathPoint(0, 0, 0), capacity=0)

    def test_from_dict_defaults(self) -> None:
        lodge = Lodge.from_dict({"id": 4, "position": [1.0, 2.0, 3.0]})
        assert lodge.capacity == 20
        assert lodge.rest_duration_s == 30.0


# =============================================================================
# GOAL
# =============================================================================


class TestGoal:
    """Goal - ordered route with a cursor."""

    def test_advance_walks_steps_then_completes(self) -> None:
        goal = Goal(
            planned_path=[PathStep(StepType.RIDE_LIFT, 1), PathStep(StepType.SKI_TRAIL, 2)],
            destination_trail_id=2,
        )
        assert goal.current_step().matches_lift(1)
        goal.advance_to_next_step()
        assert goal.current_step().matches_trail(2)
        goal.advance_to_next_step()
        assert goal.is_complete
        assert goal.is_stale
        assert goal.current_step() is None

    def test_empty_goal_is_complete(self) -> None:
        assert Goal().is_complete

    def test_references_only_remaining_steps(self) -> None:
        goal = Goal(planned_path=[PathStep(StepType.RIDE_LIFT, 1), PathStep(StepType.SKI_TRAIL, 2)])
        goal.advance_to_next_step()
        assert not goal.references_lift(1)
        assert goal.references_trail(2)


# =============================================================================
# AGENT CONTEXT
# =============================================================================


class TestAgentContext:
    """AgentContext - per-agent decision state."""

    def test_personality_is_deterministic_per_id(self) -> None:
        a = AgentContext(id=42, skill=SkillLevel.BEGINNER)
        b = AgentContext(id=42, skill=SkillLevel.EXPERT)
        assert a.personality_offsets == b.personality_offsets

    def test_personality_differs_between_ids(self) -> None:
        assert PersonalityOffsets.generate(agent_id=1) != PersonalityOffsets.generate(agent_id=2)

    def test_personality_within_magnitude(self) -> None:
        for agent_id in range(50):
            offsets = PersonalityOffsets.generate(agent_id=agent_id, magnitude=0.3)
            assert all(-0.3 <= v <= 0.3 for v in offsets.as_tuple())

    def test_goal_step_accessors(self) -> None:
        ctx = AgentContext(id=1, skill=SkillLevel.INTERMEDIATE)
        assert ctx.goal_is_stale
        ctx.goal = Goal(planned_path=[PathStep(StepType.RIDE_LIFT, 5), PathStep(StepType.SKI_TRAIL, 7)])
        assert ctx.goal_lift_id == 5
        assert ctx.goal_trail_id is None
        ctx.goal.advance_to_next_step()
        assert ctx.goal_trail_id == 7

    def test_wants_to_keep_skiing_until_desired_runs(self) -> None:
        ctx = AgentContext(id=1, skill=SkillLevel.BEGINNER, desired_runs=2)
        ctx.runs_completed = 1
        assert ctx.wants_to_keep_skiing()
        ctx.runs_completed = 2
        assert not ctx.wants_to_keep_skiing()

    def test_unlimited_runs(self) -> None:
        ctx = AgentContext(id=1, skill=SkillLevel.BEGINNER)
        ctx.runs_completed = 10_000
        assert ctx.wants_to_keep_skiing()


# =============================================================================
# PREFERENCES / CONFIG
# =============================================================================


class TestPreferenceTable:
    """PreferenceTable - innate preference, hard blocks and desperate-only pairs."""

    def test_default_hard_blocks(self) -> None:
        table = PreferenceTable()
        assert not table.is_allowed(SkillLevel.BEGINNER, Difficulty.DOUBLE_BLACK)
        assert not table.is_allowed(SkillLevel.BEGINNER, Difficulty.BLACK)
        assert not table.is_allowed(SkillLevel.INTERMEDIATE, Difficulty.DOUBLE_BLACK)
        assert table.is_allowed(SkillLevel.EXPERT, Difficulty.GREEN)

    def test_default_preferences(self) -> None:
        table = PreferenceTable()
        assert table.get_preference(SkillLevel.BEGINNER, Difficulty.GREEN) == pytest.approx(0.75)
        assert table.get_preference(SkillLevel.EXPERT, Difficulty.DOUBLE_BLACK) == pytest.approx(0.58)

    def test_rejects_preference_out_of_range(self) -> None:
        with pytest.raises(ValueError, match="Preference"):
            PreferenceTable(preferences={SkillLevel.BEGINNER: {Difficulty.GREEN: 1.5}})

    def test_custom_desperate_only(self, blue_desperate_preferences: PreferenceTable) -> None:
        assert blue_desperate_preferences.is_desperate_only(SkillLevel.BEGINNER, Difficulty.BLUE)
        assert not blue_desperate_preferences.is_desperate_only(SkillLevel.INTERMEDIATE, Difficulty.BLUE)


class TestFlowConfig:
    """FlowConfig - validated runtime knobs."""

    def test_rejects_negative_temperature(self) -> None:
        with pytest.raises(ValueError, match="temperature"):
            FlowConfig(temperature=-1.0)

    def test_rejects_chaos_out_of_range(self) -> None:
        with pytest.raises(ValueError, match="chaos_probability"):
            FlowConfig(chaos_probability=1.5)

    def test_rejects_non_decreasing_discounts(self) -> None:
        with pytest.raises(ValueError, match="depth_discounts"):
            FlowConfig(depth_discounts=(1.0, 1.0, 0.5))

    def test_effective_temperature_floor(self) -> None:
        assert FlowConfig(temperature=0.0).effective_temperature == pytest.approx(0.01)

    def test_max_speed_uses_safety_factor(self) -> None:
        """Fastest constant (ski 5 m/s) times 2."""
        assert FlowConfig().max_speed == pytest.approx(10.0)

    def test_from_dict_nested_weights(self) -> None:
        config = FlowConfig.from_dict({"temperature": 0.5, "weights": {"deficit": 1.0}})
        assert config.temperature == 0.5
        assert config.weights.deficit == 1.0
        assert config.weights.goal == DecisionWeights().goal

    def test_from_dict_rejects_unknown_keys(self) -> None:
        with pytest.raises(ValueError, match="Unknown"):
            FlowConfig.from_dict({"temprature": 0.5})

    def test_with_overrides_validates(self) -> None:
        with pytest.raises(ValueError):
            FlowConfig().with_overrides(lodge_visit_chance=2.0)

    def test_perturbed_weights_add_offsets(self) -> None:
        offsets = PersonalityOffsets(difficulty=0.1, herding=-0.2)
        weights = DecisionWeights().perturbed(offsets)
        assert weights.difficulty == pytest.approx(1.1)
        assert weights.herding == pytest.approx(1.3)


# =============================================================================
# RESORT NETWORK
# =============================================================================


class TestResortNetwork:
    """ResortNetwork - topology, spatial lookups and change notification."""

    def test_trails_starting_near_lift_tops(self, resort: ResortNetwork) -> None:
        lower = {t.id for t in resort.trails_starting_near(resort.lifts[BASE_CHAIR].top, radius=50.0)}
        upper = {t.id for t in resort.trails_starting_near(resort.lifts[UPPER_CHAIR].top, radius=50.0)}
        assert lower == {MEADOW, HOME_RUN}
        assert upper == {RIDGE, COULOIR}

    def test_trails_starting_near_excludes_id(self, resort: ResortNetwork) -> None:
        top = resort.lifts[BASE_CHAIR].top
        trails = resort.trails_starting_near(top, radius=50.0, exclude_id=MEADOW)
        assert [t.id for t in trails] == [HOME_RUN]

    def test_lifts_with_bottom_near_trail_ends(self, resort: ResortNetwork) -> None:
        assert [lift.id for lift in resort.lifts_with_bottom_near(resort.trails[MEADOW].end, 50.0)] == [UPPER_CHAIR]
        assert [lift.id for lift in resort.lifts_with_bottom_near(resort.trails[HOME_RUN].end, 50.0)] == [BASE_CHAIR]

    def test_structural_connections(self, resort: ResortNetwork) -> None:
        assert sorted(resort.trails_from_lift(BASE_CHAIR)) == [MEADOW, HOME_RUN]
        assert resort.lifts_from_trail(RIDGE) == [BASE_CHAIR]
        assert resort.lifts_from_trail(COULOIR) == [UPPER_CHAIR]
        assert resort.trails_from_trail(HOME_RUN) == []

    def test_crossing_found_mid_run(self, resort: ResortNetwork) -> None:
        """Meadow and Ridge cross once, away from either trail's ends."""
        on_meadow = resort.crossings_on(MEADOW)
        on_ridge = resort.crossings_on(RIDGE)
        assert [c.other_trail_id for c in on_meadow] == [RIDGE]
        assert [c.other_trail_id for c in on_ridge] == [MEADOW]
        meadow_trail = resort.trails[MEADOW]
        fraction = on_meadow[0].distance_along / meadow_trail.length_m
        assert 0.5 < fraction < 0.9

    def test_crossing_point_lies_on_both_trails(self, resort: ResortNetwork) -> None:
        crossing = resort.crossings_on(MEADOW)[0]
        ridge_at = resort.trails[RIDGE].sample(crossing.other_distance_along).position
        assert np.hypot(*(crossing.point.as_array() - ridge_at)[:2]) < 1.0

    def test_no_crossings_at_shared_endpoints(self) -> None:
        """A trail ending on another trail's start is a junction, not a crossing."""
        network = ResortNetwork()
        network.add_trail(_straight_trail(drop_m=20.0))
        network.add_trail(
            Trail(
                id=100,
                name="Continuation",
                difficulty=Difficulty.GREEN,
                points=[PathPoint(100.0, 0.0, 980.0), PathPoint(200.0, 0.0, 960.0)],
            )
        )
        assert network.crossings_on(99) == []
        assert network.crossings_on(100) == []
        assert network.trails_from_trail(99) == [100]

    def test_nearest_base_and_lift(self, resort: ResortNetwork) -> None:
        here = PathPoint(x=20.0, y=-10.0, elevation=1000.0)
        assert resort.nearest_base(here) == PathPoint(0.0, 0.0, 1000.0)
        assert resort.nearest_lift_bottom(here).id == BASE_CHAIR

    def test_nearest_base_none_without_bases(self) -> None:
        assert ResortNetwork().nearest_base(PathPoint(0.0, 0.0, 0.0)) is None

    def test_lodges_near(self, resort: ResortNetwork) -> None:
        end = resort.trails[HOME_RUN].end
        assert [lodge.id for lodge in resort.lodges_near(end, 30.0)] == [1]
        assert resort.lodges_near(resort.trails[MEADOW].end, 30.0) == []

    def test_duplicate_ids_rejected(self, resort: ResortNetwork) -> None:
        with pytest.raises(ValueError):
            resort.add_trail(meadow())
        with pytest.raises(ValueError):
            resort.add_lift(base_chair())

    def test_change_listener_fires_and_index_rebuilds(self, resort: ResortNetwork) -> None:
        """Removing a lift notifies listeners and later queries see the new topology."""
        calls: list[int] = []
        resort.add_change_listener(lambda network: calls.append(network.revision))
        assert resort.lifts_from_trail(MEADOW) == [UPPER_CHAIR]

        assert resort.remove_lift(UPPER_CHAIR)
        assert len(calls) == 1
        assert resort.lifts_from_trail(MEADOW) == []
        assert resort.get_lift(UPPER_CHAIR) is None

    def test_remove_unknown_returns_false(self, resort: ResortNetwork) -> None:
        assert not resort.remove_trail(1234)
        assert not resort.remove_lodge(1234)

    def test_closed_trail_hidden_from_queries(self, resort: ResortNetwork) -> None:
        top = resort.lifts[BASE_CHAIR].top
        assert sorted(t.id for t in resort.trails_starting_near(top, 50.0)) == [MEADOW, HOME_RUN]

        assert resort.set_trail_open(HOME_RUN, is_open=False)
        assert resort.get_trail(HOME_RUN) is None
        assert [t.id for t in resort.trails_starting_near(top, 50.0)] == [MEADOW]

        resort.set_trail_open(HOME_RUN, is_open=True)
        assert sorted(t.id for t in resort.trails_starting_near(top, 50.0)) == [MEADOW, HOME_RUN]

    def test_open_state_change_notifies_listeners(self, resort: ResortNetwork) -> None:
        calls: list[int] = []
        resort.add_change_listener(lambda network: calls.append(network.revision))

        resort.set_lift_open(UPPER_CHAIR, is_open=False)
        assert len(calls) == 1
        assert resort.lifts_from_trail(MEADOW) == []

        resort.set_lift_open(UPPER_CHAIR, is_open=False)
        assert len(calls) == 1
        assert not resort.set_trail_open(1234, is_open=False)

    def test_dict_roundtrip(self, resort: ResortNetwork) -> None:
        restored = ResortNetwork.from_dict(resort.to_dict())
        assert restored.get_stats()["total_trails"] == 4
        assert sorted(restored.trails_from_lift(BASE_CHAIR)) == [MEADOW, HOME_RUN]
        assert len(restored.base_points) == 1
