"""Tests for TrafficState.

Tests: occupancy bookkeeping, deficit / crowding signals, recent-intent herding
Focus: Occupancy returns to its starting value after every enter/leave pair,
intents never touch occupancy, unknown edges read as neutral.
"""

import pytest
from hypothesis import given, settings, strategies as st

from skiresort_flow.core.traffic_state import TrafficState
from skiresort_flow.model.resort_network import ResortNetwork

from conftest import BASE_CHAIR, HOME_RUN, MEADOW


class TestTrafficOccupancy:
    """Entered / completed / exited events."""

    def test_enter_then_complete_restores_occupancy(self) -> None:
        traffic = TrafficState()
        traffic.register_trail(trail_id=1, capacity=4.0)
        traffic.on_trail_entered(agent_id=1, trail_id=1)
        assert traffic.get_trail_occupancy(1) == 1
        traffic.on_trail_completed(agent_id=1, trail_id=1)
        assert traffic.get_trail_occupancy(1) == 0

    def test_exit_is_symmetric_to_complete(self) -> None:
        traffic = TrafficState()
        traffic.register_lift(lift_id=1, capacity=2.0)
        traffic.on_lift_entered(agent_id=1, lift_id=1)
        traffic.on_lift_exited(agent_id=1, lift_id=1)
        assert traffic.get_lift_occupancy(1) == 0

    def test_occupancy_never_negative(self) -> None:
        traffic = TrafficState()
        traffic.register_trail(trail_id=1, capacity=4.0)
        traffic.on_trail_completed(agent_id=1, trail_id=1)
        assert traffic.get_trail_occupancy(1) == 0

    def test_intent_does_not_change_occupancy(self) -> None:
        traffic = TrafficState()
        traffic.register_trail(trail_id=1, capacity=4.0)
        traffic.on_trail_intended(agent_id=1, trail_id=1)
        assert traffic.get_trail_occupancy(1) == 0
        assert traffic.get_trail_deficit(1) == pytest.approx(1.0)

    def test_trails_and_lifts_with_same_id_are_separate(self) -> None:
        traffic = TrafficState()
        traffic.register_trail(trail_id=1, capacity=4.0)
        traffic.register_lift(lift_id=1, capacity=4.0)
        traffic.on_lift_entered(agent_id=1, lift_id=1)
        assert traffic.get_trail_occupancy(1) == 0
        assert traffic.get_lift_occupancy(1) == 1

    def test_reregistering_keeps_occupancy(self) -> None:
        traffic = TrafficState()
        traffic.register_trail(trail_id=1, capacity=4.0)
        traffic.on_trail_entered(agent_id=1, trail_id=1)
        traffic.register_trail(trail_id=1, capacity=8.0)
        assert traffic.get_trail_occupancy(1) == 1
        assert traffic.get_trail_crowding(1) == pytest.approx(0.125)

    def test_rejects_non_positive_capacity(self) -> None:
        with pytest.raises(ValueError, match="capacity"):
            TrafficState().register_trail(trail_id=1, capacity=0.0)

    @given(events=st.lists(st.booleans(), max_size=60))
    @settings(max_examples=30)
    def test_balanced_events_return_to_zero(self, events: list[bool]) -> None:
        """Any sequence of enters, each later matched by a leave, ends at zero occupancy."""
        traffic = TrafficState()
        traffic.register_trail(trail_id=7, capacity=3.0)
        inside = 0
        for agent_id, enter in enumerate(events):
            if enter:
                traffic.on_trail_entered(agent_id=agent_id, trail_id=7)
                inside += 1
            elif inside:
                traffic.on_trail_exited(agent_id=agent_id, trail_id=7)
                inside -= 1
            assert traffic.get_trail_occupancy(7) == inside
        for agent_id in range(inside):
            traffic.on_trail_completed(agent_id=agent_id, trail_id=7)
        assert traffic.get_trail_occupancy(7) == 0


class TestTrafficSignals:
    """Deficit, crowding and herding signals."""

    def test_deficit_and_crowding_at_capacity(self) -> None:
        """Full edge: deficit 0, crowding 1. Over capacity: negative deficit."""
        traffic = TrafficState()
        traffic.register_trail(trail_id=1, capacity=2.0)
        traffic.on_trail_entered(agent_id=1, trail_id=1)
        assert traffic.get_trail_deficit(1) == pytest.approx(0.5)
        traffic.on_trail_entered(agent_id=2, trail_id=1)
        assert traffic.get_trail_deficit(1) == pytest.approx(0.0)
        assert traffic.get_trail_crowding(1) == pytest.approx(1.0)
        traffic.on_trail_entered(agent_id=3, trail_id=1)
        assert traffic.get_trail_deficit(1) == pytest.approx(-0.5)

    def test_unknown_edges_are_neutral(self) -> None:
        traffic = TrafficState()
        assert traffic.get_trail_deficit(99) == 0.0
        assert traffic.get_lift_crowding(99) == 0.0
        assert traffic.get_trail_recent_popularity(99) == 0.0
        traffic.on_trail_entered(agent_id=1, trail_id=99)
        assert traffic.get_trail_occupancy(99) == 0

    def test_popularity_is_share_of_window(self) -> None:
        """Each kind divides by its own window: 2 of 3 lift intents, 1 of 1 trail intent."""
        traffic = TrafficState(recent_intent_window=4)
        traffic.on_lift_intended(agent_id=1, lift_id=1)
        traffic.on_lift_intended(agent_id=2, lift_id=1)
        traffic.on_lift_intended(agent_id=3, lift_id=2)
        traffic.on_trail_intended(agent_id=4, trail_id=1)
        assert traffic.get_lift_recent_popularity(1) == pytest.approx(2 / 3)
        assert traffic.get_lift_recent_popularity(2) == pytest.approx(1 / 3)
        assert traffic.get_trail_recent_popularity(1) == pytest.approx(1.0)

    def test_lift_intents_do_not_dilute_trail_window(self) -> None:
        traffic = TrafficState(recent_intent_window=10)
        for agent_id in range(5):
            traffic.on_trail_intended(agent_id=agent_id, trail_id=1)
        for agent_id in range(10):
            traffic.on_lift_intended(agent_id=agent_id, lift_id=agent_id)
        assert traffic.get_trail_recent_popularity(1) == pytest.approx(1.0)
        assert traffic.get_lift_recent_popularity(1) == pytest.approx(0.1)

    def test_same_id_in_both_kinds_is_counted_separately(self) -> None:
        traffic = TrafficState()
        traffic.on_trail_intended(agent_id=1, trail_id=3)
        traffic.on_lift_intended(agent_id=1, lift_id=4)
        assert traffic.get_lift_recent_popularity(3) == 0.0
        assert traffic.get_trail_recent_popularity(4) == 0.0
        assert traffic.snapshot()["recent_intents"] == {"trail": [3], "lift": [4]}

    def test_window_forgets_oldest_intents(self) -> None:
        traffic = TrafficState(recent_intent_window=2)
        traffic.on_lift_intended(agent_id=1, lift_id=1)
        traffic.on_lift_intended(agent_id=2, lift_id=2)
        traffic.on_lift_intended(agent_id=3, lift_id=2)
        assert traffic.get_lift_recent_popularity(1) == 0.0
        assert traffic.get_lift_recent_popularity(2) == pytest.approx(1.0)

    def test_register_network_uses_derived_capacity(self, resort: ResortNetwork) -> None:
        traffic = TrafficState()
        traffic.register_network(resort)
        assert traffic.is_registered_trail(MEADOW)
        assert traffic.is_registered_lift(BASE_CHAIR)
        snapshot = traffic.snapshot()
        assert snapshot["lifts"][BASE_CHAIR]["capacity"] == pytest.approx(6.0)
        home_run_capacity = resort.trails[HOME_RUN].length_m / 50.0
        assert snapshot["trails"][HOME_RUN]["capacity"] == pytest.approx(home_run_capacity)

    def test_clear_drops_everything(self) -> None:
        traffic = TrafficState()
        traffic.register_trail(trail_id=1, capacity=2.0)
        traffic.on_trail_intended(agent_id=1, trail_id=1)
        traffic.clear()
        assert not traffic.is_registered_trail(1)
        assert traffic.get_trail_recent_popularity(1) == 0.0
