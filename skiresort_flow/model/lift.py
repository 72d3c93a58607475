"""Lift - One-way uphill edge between a bottom and a top station.

Lifts are strictly two-endpoint edges. Riding advances a 0-1 fraction at
lift_speed / length per second and interpolates linearly between stations.
"""

from dataclasses import dataclass
from typing import Any

import numpy as np

from skiresort_flow.constants import TrafficConfig
from skiresort_flow.model.path_point import PathPoint


@dataclass
class Lift:
    """A ski lift.

    Attributes:
        id: Stable integer identifier
        name: Display name
        bottom: Bottom (boarding) station
        top: Top (unloading) station
        capacity: Raw hourly capacity (persons per hour)
        is_open: False when the lift is closed (toggle via ResortNetwork.set_lift_open)

    Example:
        lift = Lift(
            id=1,
            name="Alpine Express",
            bottom=PathPoint(0, 0, 1800),
            top=PathPoint(0, 900, 2300),
            capacity=1200,
        )
    """

    id: int
    name: str
    bottom: PathPoint
    top: PathPoint
    capacity: float = 1200.0
    is_open: bool = True

    def __post_init__(self) -> None:
        """Validate data after initialization."""
        if self.capacity <= 0:
            raise ValueError(f"Lift {self.id} capacity must be positive, got {self.capacity}")

    @property
    def length_m(self) -> float:
        """Straight-line distance between stations."""
        return self.bottom.distance_to(self.top)

    @property
    def vertical_rise_m(self) -> float:
        """Elevation gain from bottom to top."""
        return self.top.elevation - self.bottom.elevation

    @property
    def points(self) -> list[PathPoint]:
        """Path as a two-point list (bottom, top)."""
        return [self.bottom, self.top]

    @property
    def is_valid(self) -> bool:
        """Open and with distinct stations."""
        return self.is_open and self.length_m > 0.0

    @property
    def traffic_capacity(self) -> float:
        """Slot count used by TrafficState."""
        return max(self.capacity / TrafficConfig.LIFT_CAPACITY_DIVISOR, TrafficConfig.MIN_LIFT_CAPACITY)

    def position_at(self, fraction: float) -> np.ndarray:
        """Interpolated position at a 0-1 fraction along the lift.

        Args:
            fraction: 0 = bottom station, 1 = top station (clamped)

        Returns:
            Position [x, y, elevation].
        """
        fraction = min(max(fraction, 0.0), 1.0)
        a = self.bottom.as_array()
        return a + (self.top.as_array() - a) * fraction

    @property
    def direction(self) -> np.ndarray:
        """Unit vector from bottom to top (zero vector for degenerate lifts)."""
        delta = self.top.as_array() - self.bottom.as_array()
        norm = np.linalg.norm(delta)
        return delta / norm if norm > 1e-9 else np.zeros(3)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a plain dict."""
        return {
            "id": self.id,
            "name": self.name,
            "bottom": [self.bottom.x, self.bottom.y, self.bottom.elevation],
            "top": [self.top.x, self.top.y, self.top.elevation],
            "capacity": self.capacity,
            "is_open": self.is_open,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Lift":
        """Build a Lift from a dict produced by to_dict()."""
        bottom = data["bottom"]
        top = data["top"]
        return cls(
            id=int(data["id"]),
            name=data.get("name", f"Lift {data['id']}"),
            bottom=PathPoint(x=bottom[0], y=bottom[1], elevation=bottom[2]),
            top=PathPoint(x=top[0], y=top[1], elevation=top[2]),
            capacity=float(data.get("capacity", 1200.0)),
            is_open=bool(data.get("is_open", True)),
        )

    def __repr__(self) -> str:
        return f"Lift(id={self.id}, {self.length_m:.0f}m, rise={self.vertical_rise_m:.0f}m)"
