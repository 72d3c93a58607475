"""Lodge - Rest-capable structure skiers can walk into between runs."""

from dataclasses import dataclass
from typing import Any

from skiresort_flow.constants import LodgeConfig
from skiresort_flow.model.path_point import PathPoint


@dataclass
class Lodge:
    """A lodge with limited seats.

    Attributes:
        id: Stable integer identifier
        name: Display name
        position: Entrance position
        capacity: Number of skiers that can rest at the same time
        rest_duration_s: Time a skier stays inside
    """

    id: int
    name: str
    position: PathPoint
    capacity: int = LodgeConfig.CAPACITY
    rest_duration_s: float = LodgeConfig.REST_DURATION_S

    def __post_init__(self) -> None:
        """Validate data after initialization."""
        if self.capacity < 1:
            raise ValueError(f"Lodge {self.id} capacity must be at least 1, got {self.capacity}")
        if self.rest_duration_s < 0:
            raise ValueError(f"Lodge {self.id} rest duration cannot be negative")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Lodge":
        """Build a Lodge from a plain dict."""
        pos = data["position"]
        return cls(
            id=int(data["id"]),
            name=data.get("name", f"Lodge {data['id']}"),
            position=PathPoint(x=pos[0], y=pos[1], elevation=pos[2]),
            capacity=int(data.get("capacity", LodgeConfig.CAPACITY)),
            rest_duration_s=float(data.get("rest_duration_s", LodgeConfig.REST_DURATION_S)),
        )

    def __repr__(self) -> str:
        return f"Lodge(id={self.id}, cap={self.capacity})"
