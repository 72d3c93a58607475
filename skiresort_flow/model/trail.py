"""Trail - Directed ski run edge of the resort network.

A Trail is an ordered polyline of PathPoints, skied from the first point to
the last. Geometry is immutable for the lifetime of the object; all derived
metrics (arc length, cumulative distances, Shapely line) are cached on first
access.

Motion samples a trail by distance along it (length units, not a 0-1
fraction), so speed is independent of trail length:

    cumulative[i] = sum of segment lengths up to point i
    segment k contains distance d  <=>  cumulative[k] <= d < cumulative[k+1]
"""

import logging
from dataclasses import dataclass
from functools import cached_property
from typing import Any

import numpy as np
from shapely.geometry import LineString

from skiresort_flow.constants import MotionConfig, TrafficConfig
from skiresort_flow.model.path_point import PathPoint
from skiresort_flow.model.skill import Difficulty

logger = logging.getLogger(__name__)


@dataclass
class TrailSample:
    """Result of sampling a trail at a distance.

    Attributes:
        position: Centerline position [x, y, elevation]
        tangent: Unit direction of travel of the containing segment (3D)
        segment_index: Index of the containing segment
    """

    position: np.ndarray
    tangent: np.ndarray
    segment_index: int


@dataclass
class Trail:
    """A directed ski trail.

    Attributes:
        id: Stable integer identifier
        name: Display name
        difficulty: Difficulty class (ordinal)
        points: Ordered path points, top to bottom
        width_m: Skiable width, used to bound lateral drift
        is_open: False when the trail is closed (toggle via ResortNetwork.set_trail_open)

    Example:
        trail = Trail(
            id=3,
            name="Panorama",
            difficulty=Difficulty.BLUE,
            points=[PathPoint(0, 0, 2400), PathPoint(0, -300, 2300)],
        )
    """

    id: int
    name: str
    difficulty: Difficulty
    points: list[PathPoint]
    width_m: float = MotionConfig.DEFAULT_TRAIL_WIDTH
    is_open: bool = True

    def __post_init__(self) -> None:
        """Validate data after initialization."""
        if self.width_m <= 0:
            raise ValueError(f"Trail {self.id} width must be positive, got {self.width_m}")
        if len(self.points) < 2:
            logger.warning(f"Trail {self.id} has {len(self.points)} point(s) and will be treated as invalid")

    # =========================================================================
    # Geometry
    # =========================================================================

    @cached_property
    def points_array(self) -> np.ndarray:
        """Points as an (N, 3) float64 array."""
        if not self.points:
            return np.zeros((0, 3), dtype=np.float64)
        return np.array([[p.x, p.y, p.elevation] for p in self.points], dtype=np.float64)

    @cached_property
    def cumulative_distances(self) -> np.ndarray:
        """Arc length from the start to each point, shape (N,), first entry 0."""
        if len(self.points) < 2:
            return np.zeros(len(self.points), dtype=np.float64)
        seg_lengths = np.linalg.norm(np.diff(self.points_array, axis=0), axis=1)
        return np.concatenate(([0.0], np.cumsum(seg_lengths)))

    @property
    def length_m(self) -> float:
        """Total 3D arc length."""
        if len(self.points) < 2:
            return 0.0
        return float(self.cumulative_distances[-1])

    @property
    def is_valid(self) -> bool:
        """Open, at least two points and a positive length."""
        return self.is_open and len(self.points) >= 2 and self.length_m > 0.0

    @property
    def start(self) -> PathPoint | None:
        """First point of the trail."""
        return self.points[0] if self.points else None

    @property
    def end(self) -> PathPoint | None:
        """Last point of the trail."""
        return self.points[-1] if self.points else None

    @cached_property
    def line_2d(self) -> LineString | None:
        """Horizontal footprint as a Shapely LineString (None if invalid)."""
        if len(self.points) < 2:
            return None
        return LineString([p.xy for p in self.points])

    @property
    def traffic_capacity(self) -> float:
        """Slot count used by TrafficState: one slot per METERS_PER_SLOT, with a minimum."""
        return max(self.length_m / TrafficConfig.TRAIL_METERS_PER_SLOT, TrafficConfig.MIN_TRAIL_CAPACITY)

    # =========================================================================
    # Sampling
    # =========================================================================

    def segment_index_at(self, distance: float) -> int:
        """Index of the segment containing a distance along the trail.

        Args:
            distance: Distance from the trail start (clamped to [0, length])

        Returns:
            Segment index in [0, N-2]. Returns 0 for trails without segments.
        """
        n_segments = len(self.points) - 1
        if n_segments < 1:
            return 0
        idx = int(np.searchsorted(self.cumulative_distances, distance, side="right")) - 1
        return min(max(idx, 0), n_segments - 1)

    def sample(self, distance: float) -> TrailSample:
        """Centerline position and direction at a distance along the trail.

        Args:
            distance: Distance from the trail start; clamped to [0, length]

        Returns:
            TrailSample with interpolated position, unit tangent and segment index.
        """
        if len(self.points) < 2:
            position = self.points_array[0].copy() if self.points else np.zeros(3)
            return TrailSample(position=position, tangent=np.array([0.0, 1.0, 0.0]), segment_index=0)

        distance = min(max(distance, 0.0), self.length_m)
        idx = self.segment_index_at(distance)
        a = self.points_array[idx]
        b = self.points_array[idx + 1]
        seg_start = self.cumulative_distances[idx]
        seg_len = self.cumulative_distances[idx + 1] - seg_start
        local_t = (distance - seg_start) / seg_len if seg_len > 1e-3 else 0.0

        direction = b - a
        norm = np.linalg.norm(direction)
        tangent = direction / norm if norm > 1e-9 else np.array([0.0, 1.0, 0.0])
        return TrailSample(position=a + (b - a) * local_t, tangent=tangent, segment_index=idx)

    def slope_deg_at(self, distance: float) -> float:
        """Steepness of the segment containing a distance, in degrees.

        Uses the absolute elevation change over horizontal distance of the
        containing segment. Vertical drops count as 90 degrees.

        Args:
            distance: Distance from the trail start

        Returns:
            Slope angle in [0, 90]. DEFAULT_SLOPE_DEG for trails without segments.
        """
        if len(self.points) < 2:
            return MotionConfig.DEFAULT_SLOPE_DEG
        idx = self.segment_index_at(distance)
        a = self.points_array[idx]
        b = self.points_array[idx + 1]
        horizontal = float(np.hypot(b[0] - a[0], b[1] - a[1]))
        drop = float(a[2] - b[2])
        if horizontal < 0.01:
            return 90.0 if drop > 0 else 0.0
        return float(np.degrees(np.arctan2(abs(drop), horizontal)))

    def closest_distance_to(self, position: np.ndarray) -> float:
        """Distance along the trail of the point closest to a position.

        Projects the position onto every segment (clamped to the segment) and
        keeps the nearest projection.

        Args:
            position: World position [x, y, elevation]

        Returns:
            Distance from the trail start of the closest point, in [0, length].
        """
        if len(self.points) < 2:
            return 0.0
        a = self.points_array[:-1]
        b = self.points_array[1:]
        ab = b - a
        seg_len = np.linalg.norm(ab, axis=1)
        safe_len = np.where(seg_len > 1e-9, seg_len, 1.0)
        direction = ab / safe_len[:, None]
        proj = np.clip(np.einsum("ij,ij->i", position - a, direction), 0.0, seg_len)
        closest = a + direction * proj[:, None]
        dists = np.linalg.norm(closest - position, axis=1)
        best = int(np.argmin(dists))
        return float(self.cumulative_distances[best] + proj[best])

    @cached_property
    def planar_cumulative_distances(self) -> np.ndarray:
        """Horizontal arc length from the start to each point, shape (N,)."""
        if len(self.points) < 2:
            return np.zeros(len(self.points), dtype=np.float64)
        seg_lengths = np.linalg.norm(np.diff(self.points_array[:, :2], axis=0), axis=1)
        return np.concatenate(([0.0], np.cumsum(seg_lengths)))

    def distance_from_planar(self, planar_distance: float) -> float:
        """Convert a horizontal distance along the footprint to a 3D distance along the trail.

        Shapely measures along the 2D footprint; motion measures along the 3D
        path. Both are linear within a segment, so the conversion is exact.

        Args:
            planar_distance: Distance along line_2d (e.g. from LineString.project)

        Returns:
            Matching distance along the 3D path, in [0, length].
        """
        if len(self.points) < 2:
            return 0.0
        planar = self.planar_cumulative_distances
        planar_distance = min(max(planar_distance, 0.0), float(planar[-1]))
        idx = int(np.searchsorted(planar, planar_distance, side="right")) - 1
        idx = min(max(idx, 0), len(self.points) - 2)
        seg_planar = planar[idx + 1] - planar[idx]
        t = (planar_distance - planar[idx]) / seg_planar if seg_planar > 1e-9 else 0.0
        seg_3d = self.cumulative_distances[idx + 1] - self.cumulative_distances[idx]
        return float(self.cumulative_distances[idx] + t * seg_3d)

    def distance_to_start(self, point: PathPoint) -> float:
        """3D distance from a point to the trail's first point (inf if empty)."""
        if self.start is None:
            return float("inf")
        return point.distance_to(self.start)

    # =========================================================================
    # Serialization
    # =========================================================================

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a plain dict."""
        return {
            "id": self.id,
            "name": self.name,
            "difficulty": self.difficulty.key,
            "points": [[p.x, p.y, p.elevation] for p in self.points],
            "width_m": self.width_m,
            "is_open": self.is_open,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Trail":
        """Build a Trail from a dict produced by to_dict()."""
        return cls(
            id=int(data["id"]),
            name=data.get("name", f"Trail {data['id']}"),
            difficulty=Difficulty.from_key(data["difficulty"]),
            points=[PathPoint(x=p[0], y=p[1], elevation=p[2]) for p in data["points"]],
            width_m=float(data.get("width_m", MotionConfig.DEFAULT_TRAIL_WIDTH)),
            is_open=bool(data.get("is_open", True)),
        )

    def __repr__(self) -> str:
        return f"Trail(id={self.id}, {self.difficulty.key}, {len(self.points)} pts, {self.length_m:.0f}m)"
