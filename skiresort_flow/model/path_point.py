"""PathPoint - The fundamental geometry atom of the resort network.

A PathPoint represents a single location in a local metric frame:
x (east), y (north) and elevation (up), all in the same length unit.

Used by:
- Trail (ordered list of PathPoints for geometry)
- Lift (bottom and top stations)
- Lodge (entrance position)
"""

from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True)
class PathPoint:
    """A point in the resort's local 3D frame.

    Attributes:
        x: East coordinate
        y: North coordinate
        elevation: Height above the frame origin

    Example:
        point = PathPoint(x=120.0, y=-40.0, elevation=2400.0)
    """

    x: float
    y: float
    elevation: float

    def __post_init__(self) -> None:
        """Validate data after initialization."""
        if np.isnan(self.x) or np.isnan(self.y) or np.isnan(self.elevation):
            raise ValueError(f"PathPoint cannot have NaN coordinates: ({self.x}, {self.y}, {self.elevation})")

    @property
    def xy(self) -> tuple[float, float]:
        """Return (x, y) tuple - horizontal position, Shapely order."""
        return (self.x, self.y)

    def as_array(self) -> np.ndarray:
        """Return the point as a float64 array [x, y, elevation]."""
        return np.array([self.x, self.y, self.elevation], dtype=np.float64)

    @staticmethod
    def from_array(values: np.ndarray) -> "PathPoint":
        """Build a PathPoint from any 3-element sequence."""
        return PathPoint(x=float(values[0]), y=float(values[1]), elevation=float(values[2]))

    def distance_to(self, other: "PathPoint") -> float:
        """Calculate 3D Euclidean distance to another point.

        Args:
            other: Another PathPoint to measure distance to

        Returns:
            Straight-line distance in length units.
        """
        return float(np.linalg.norm(self.as_array() - other.as_array()))

    def horizontal_distance_to(self, other: "PathPoint") -> float:
        """Distance ignoring elevation."""
        return float(np.hypot(self.x - other.x, self.y - other.y))

    def __repr__(self) -> str:
        return f"PathPoint(x={self.x:.1f}, y={self.y:.1f}, elev={self.elevation:.1f})"
