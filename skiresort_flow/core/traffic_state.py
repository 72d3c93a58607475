"""TrafficState - Single source of truth for how busy each edge is.

Feeds two opposite forces in the scoring model:
- Balancing: deficit = (capacity - occupancy) / capacity, a signed bonus
  that pulls skiers toward under-used edges.
- Avoidance: crowding = occupancy / capacity (unbounded penalty) and
  herding = share of the last K intents of the same edge kind (trail or
  lift) that chose an edge.

Occupancy counts agents physically on an edge and is only changed by the
entered / completed / exited events. Intents are forward-looking reservations
recorded the moment a decision is made, so agents deciding later in the
same tick see the choice of earlier ones (no thundering herd onto the same
stale low-load edge). Intents never change occupancy.

Unknown edge ids always produce a neutral 0 signal.
"""

import logging
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from skiresort_flow.constants import TrafficConfig

if TYPE_CHECKING:
    from skiresort_flow.model.resort_network import ResortNetwork

logger = logging.getLogger(__name__)


class EdgeKind(Enum):
    """Which id space an edge id belongs to."""

    TRAIL = "trail"
    LIFT = "lift"


@dataclass
class TrafficRecord:
    """Load bookkeeping for one edge.

    Attributes:
        capacity: Slot count (positive)
        occupancy: Agents currently traversing (never negative)
    """

    capacity: float
    occupancy: int = 0

    @property
    def deficit(self) -> float:
        """Signed under-use: positive = room to spare, negative = over-subscribed."""
        return (self.capacity - self.occupancy) / self.capacity

    @property
    def crowding(self) -> float:
        """Load factor, unbounded above."""
        return self.occupancy / self.capacity


class TrafficState:
    """Per-edge capacity / occupancy records plus one intent window per edge kind.

    Example:
        traffic = TrafficState()
        traffic.register_trail(trail_id=3, capacity=4.0)
        traffic.on_trail_intended(agent_id=7, trail_id=3)
        traffic.on_trail_entered(agent_id=7, trail_id=3)
        traffic.get_trail_crowding(3)  # 0.25
    """

    def __init__(self, recent_intent_window: int = TrafficConfig.RECENT_INTENT_WINDOW) -> None:
        """Initialize empty traffic state.

        Args:
            recent_intent_window: Size K of each recent-intent ring buffer (one for trails, one for lifts)
        """
        self._records: dict[tuple[EdgeKind, int], TrafficRecord] = {}
        self._recent_intents: dict[EdgeKind, deque[int]] = {
            kind: deque(maxlen=recent_intent_window) for kind in EdgeKind
        }

    # =========================================================================
    # Registration
    # =========================================================================

    def _register(self, kind: EdgeKind, edge_id: int, capacity: float) -> None:
        if capacity <= 0:
            raise ValueError(f"{kind.value} {edge_id} capacity must be positive, got {capacity}")
        record = self._records.get((kind, edge_id))
        if record is None:
            self._records[(kind, edge_id)] = TrafficRecord(capacity=capacity)
        else:
            record.capacity = capacity

    def register_trail(self, trail_id: int, capacity: float) -> None:
        """Create or update a trail record (occupancy kept on update)."""
        self._register(EdgeKind.TRAIL, trail_id, capacity)

    def register_lift(self, lift_id: int, capacity: float) -> None:
        """Create or update a lift record (occupancy kept on update)."""
        self._register(EdgeKind.LIFT, lift_id, capacity)

    def register_network(self, network: "ResortNetwork") -> None:
        """Register every valid trail and lift using their derived traffic capacity."""
        for trail in network.valid_trails():
            self.register_trail(trail_id=trail.id, capacity=trail.traffic_capacity)
        for lift in network.valid_lifts():
            self.register_lift(lift_id=lift.id, capacity=lift.traffic_capacity)
        logger.info(f"Registered traffic for {len(self._records)} edges")

    def clear(self) -> None:
        """Drop all records and intents (topology rebuild)."""
        self._records.clear()
        for window in self._recent_intents.values():
            window.clear()

    def is_registered_trail(self, trail_id: int) -> bool:
        return (EdgeKind.TRAIL, trail_id) in self._records

    def is_registered_lift(self, lift_id: int) -> bool:
        return (EdgeKind.LIFT, lift_id) in self._records

    # =========================================================================
    # Events
    # =========================================================================

    def _intend(self, kind: EdgeKind, agent_id: int, edge_id: int) -> None:
        self._recent_intents[kind].append(edge_id)
        logger.debug(f"Agent {agent_id} intends {kind.value} {edge_id}")

    def _enter(self, kind: EdgeKind, edge_id: int) -> None:
        record = self._records.get((kind, edge_id))
        if record is not None:
            record.occupancy += 1

    def _leave(self, kind: EdgeKind, edge_id: int) -> None:
        record = self._records.get((kind, edge_id))
        if record is not None and record.occupancy > 0:
            record.occupancy -= 1

    def on_trail_intended(self, agent_id: int, trail_id: int) -> None:
        """Agent decided to ski a trail (herding signal only)."""
        self._intend(EdgeKind.TRAIL, agent_id, trail_id)

    def on_lift_intended(self, agent_id: int, lift_id: int) -> None:
        """Agent decided to ride a lift (herding signal only)."""
        self._intend(EdgeKind.LIFT, agent_id, lift_id)

    def on_trail_entered(self, agent_id: int, trail_id: int) -> None:
        """Agent started skiing a trail."""
        self._enter(EdgeKind.TRAIL, trail_id)

    def on_trail_completed(self, agent_id: int, trail_id: int) -> None:
        """Agent reached the end of a trail."""
        self._leave(EdgeKind.TRAIL, trail_id)

    def on_trail_exited(self, agent_id: int, trail_id: int) -> None:
        """Agent left a trail before its end (mid-run exit, removal)."""
        self._leave(EdgeKind.TRAIL, trail_id)

    def on_lift_entered(self, agent_id: int, lift_id: int) -> None:
        """Agent boarded a lift."""
        self._enter(EdgeKind.LIFT, lift_id)

    def on_lift_completed(self, agent_id: int, lift_id: int) -> None:
        """Agent reached the lift top."""
        self._leave(EdgeKind.LIFT, lift_id)

    def on_lift_exited(self, agent_id: int, lift_id: int) -> None:
        """Agent left a lift before the top (removal)."""
        self._leave(EdgeKind.LIFT, lift_id)

    # =========================================================================
    # Signals
    # =========================================================================

    def _deficit(self, kind: EdgeKind, edge_id: int) -> float:
        record = self._records.get((kind, edge_id))
        return record.deficit if record is not None else 0.0

    def _crowding(self, kind: EdgeKind, edge_id: int) -> float:
        record = self._records.get((kind, edge_id))
        return record.crowding if record is not None else 0.0

    def _popularity(self, kind: EdgeKind, edge_id: int) -> float:
        window = self._recent_intents[kind]
        if not window:
            return 0.0
        return window.count(edge_id) / len(window)

    def get_trail_deficit(self, trail_id: int) -> float:
        """(capacity - occupancy) / capacity; 0 for unknown trails."""
        return self._deficit(EdgeKind.TRAIL, trail_id)

    def get_lift_deficit(self, lift_id: int) -> float:
        """(capacity - occupancy) / capacity; 0 for unknown lifts."""
        return self._deficit(EdgeKind.LIFT, lift_id)

    def get_trail_crowding(self, trail_id: int) -> float:
        """occupancy / capacity; 0 for unknown trails."""
        return self._crowding(EdgeKind.TRAIL, trail_id)

    def get_lift_crowding(self, lift_id: int) -> float:
        """occupancy / capacity; 0 for unknown lifts."""
        return self._crowding(EdgeKind.LIFT, lift_id)

    def get_trail_recent_popularity(self, trail_id: int) -> float:
        """Share of the recent trail intents that chose this trail, in [0, 1]."""
        return self._popularity(EdgeKind.TRAIL, trail_id)

    def get_lift_recent_popularity(self, lift_id: int) -> float:
        """Share of the recent lift intents that chose this lift, in [0, 1]."""
        return self._popularity(EdgeKind.LIFT, lift_id)

    def get_trail_occupancy(self, trail_id: int) -> int:
        record = self._records.get((EdgeKind.TRAIL, trail_id))
        return record.occupancy if record is not None else 0

    def get_lift_occupancy(self, lift_id: int) -> int:
        record = self._records.get((EdgeKind.LIFT, lift_id))
        return record.occupancy if record is not None else 0

    def snapshot(self) -> dict[str, Any]:
        """Summary of all records for hosts and logging."""
        return {
            "trails": {
                edge_id: {"capacity": r.capacity, "occupancy": r.occupancy, "deficit": r.deficit}
                for (kind, edge_id), r in sorted(self._records.items(), key=lambda item: item[0][1])
                if kind is EdgeKind.TRAIL
            },
            "lifts": {
                edge_id: {"capacity": r.capacity, "occupancy": r.occupancy, "deficit": r.deficit}
                for (kind, edge_id), r in sorted(self._records.items(), key=lambda item: item[0][1])
                if kind is EdgeKind.LIFT
            },
            "recent_intents": {kind.value: list(window) for kind, window in self._recent_intents.items()},
        }

    def __repr__(self) -> str:
        recent = sum(len(window) for window in self._recent_intents.values())
        return f"TrafficState(edges={len(self._records)}, recent={recent})"
