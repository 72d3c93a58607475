"""ResortNetwork - Topology of trails, lifts, lodges and base areas.

Owns every structure of the resort and answers the spatial and structural
questions the decision core asks:
- Edge lookup by id
- Trails starting near a point, lift bottoms near a point, lodges near a point
- Structural connections (lift top -> trails, trail end -> trails / lifts)
- Trail crossings (where two trail footprints intersect mid-run)

Spatial queries use Shapely STRtree indexes (2D prefilter with dwithin),
followed by an exact 3D distance check. Indexes and connections are rebuilt
lazily after any mutation.

The decision core never mutates the network. The topology owner calls
add_*/remove_*; every mutation bumps `revision` and notifies change
listeners so that caches (downstream values, goals) can be invalidated.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable

import numpy as np
from shapely import STRtree, get_parts
from shapely.geometry import LineString, Point

from skiresort_flow.constants import SearchConfig
from skiresort_flow.model.lift import Lift
from skiresort_flow.model.lodge import Lodge
from skiresort_flow.model.path_point import PathPoint
from skiresort_flow.model.trail import Trail

logger = logging.getLogger(__name__)

# Crossings closer than this to a trail's own start or end are junctions, not crossings
_ENDPOINT_TOLERANCE = 1.0


@dataclass(frozen=True)
class TrailCrossing:
    """Point where another trail's footprint crosses this trail.

    Attributes:
        trail_id: Trail the crossing is seen from
        other_trail_id: Trail that can be switched onto
        distance_along: Distance along trail_id where the crossing lies
        other_distance_along: Distance along other_trail_id of the same point
        point: Crossing position on trail_id (3D)
    """

    trail_id: int
    other_trail_id: int
    distance_along: float
    other_distance_along: float
    point: PathPoint


class _PointIndex:
    """STRtree over station points with an exact 3D radius filter."""

    def __init__(self, entries: list[tuple[int, PathPoint]]) -> None:
        self.ids = [entry_id for entry_id, _ in entries]
        self.points = [point for _, point in entries]
        self.tree = STRtree([Point(p.x, p.y) for p in self.points]) if entries else None

    def query(self, point: PathPoint, radius: float) -> list[tuple[int, float]]:
        """Return (id, 3D distance) pairs within radius, nearest first."""
        if self.tree is None or radius < 0:
            return []
        hits = self.tree.query(Point(point.x, point.y), predicate="dwithin", distance=radius)
        found = []
        for idx in np.asarray(hits).tolist():
            dist = point.distance_to(self.points[idx])
            if dist <= radius:
                found.append((self.ids[idx], dist))
        found.sort(key=lambda pair: (pair[1], pair[0]))
        return found


class ResortNetwork:
    """Trails, lifts, lodges and base areas of one resort.

    Example:
        network = ResortNetwork()
        network.add_lift(lift)
        network.add_trail(trail)
        trails = network.trails_starting_near(lift.top, radius=50.0)
    """

    def __init__(self, snap_radius: float = SearchConfig.NETWORK_SNAP_RADIUS) -> None:
        """Initialize an empty network.

        Args:
            snap_radius: Max distance for structural connections between edges
        """
        self.trails: dict[int, Trail] = {}
        self.lifts: dict[int, Lift] = {}
        self.lodges: dict[int, Lodge] = {}
        self.base_points: list[PathPoint] = []
        self.snap_radius = snap_radius
        self.revision = 0

        self._listeners: list[Callable[["ResortNetwork"], None]] = []
        self._dirty = True
        self._trail_starts = _PointIndex([])
        self._lift_bottoms = _PointIndex([])
        self._lodge_points = _PointIndex([])
        self._lift_to_trails: dict[int, list[int]] = {}
        self._trail_to_trails: dict[int, list[int]] = {}
        self._trail_to_lifts: dict[int, list[int]] = {}
        self._crossings: dict[int, list[TrailCrossing]] = {}

    # =========================================================================
    # Change Notification
    # =========================================================================

    def add_change_listener(self, callback: Callable[["ResortNetwork"], None]) -> None:
        """Register a callback invoked after every topology mutation."""
        self._listeners.append(callback)

    def remove_change_listener(self, callback: Callable[["ResortNetwork"], None]) -> None:
        """Unregister a change callback (no-op if unknown)."""
        if callback in self._listeners:
            self._listeners.remove(callback)

    def _mark_changed(self, reason: str) -> None:
        self.revision += 1
        self._dirty = True
        logger.info(f"Topology changed (rev {self.revision}): {reason}")
        for callback in list(self._listeners):
            callback(self)

    # =========================================================================
    # Mutations
    # =========================================================================

    def add_trail(self, trail: Trail) -> None:
        """Add a trail.

        Raises:
            ValueError: If a trail with the same id exists.
        """
        if trail.id in self.trails:
            raise ValueError(f"Trail {trail.id} already exists")
        self.trails[trail.id] = trail
        self._mark_changed(f"added {trail!r}")

    def remove_trail(self, trail_id: int) -> bool:
        """Remove a trail. Returns False if not found."""
        trail = self.trails.pop(trail_id, None)
        if trail is None:
            return False
        self._mark_changed(f"removed {trail!r}")
        return True

    def add_lift(self, lift: Lift) -> None:
        """Add a lift.

        Raises:
            ValueError: If a lift with the same id exists.
        """
        if lift.id in self.lifts:
            raise ValueError(f"Lift {lift.id} already exists")
        self.lifts[lift.id] = lift
        self._mark_changed(f"added {lift!r}")

    def remove_lift(self, lift_id: int) -> bool:
        """Remove a lift. Returns False if not found."""
        lift = self.lifts.pop(lift_id, None)
        if lift is None:
            return False
        self._mark_changed(f"removed {lift!r}")
        return True

    def set_trail_open(self, trail_id: int, is_open: bool) -> bool:
        """Open or close a trail. Returns False if not found.

        Closed trails disappear from lookups and near queries like removed ones,
        but keep their id and geometry for reopening.
        """
        trail = self.trails.get(trail_id)
        if trail is None:
            return False
        if trail.is_open != is_open:
            trail.is_open = is_open
            self._mark_changed(f"{'opened' if is_open else 'closed'} {trail!r}")
        return True

    def set_lift_open(self, lift_id: int, is_open: bool) -> bool:
        """Open or close a lift. Returns False if not found."""
        lift = self.lifts.get(lift_id)
        if lift is None:
            return False
        if lift.is_open != is_open:
            lift.is_open = is_open
            self._mark_changed(f"{'opened' if is_open else 'closed'} {lift!r}")
        return True

    def add_lodge(self, lodge: Lodge) -> None:
        """Add a lodge.

        Raises:
            ValueError: If a lodge with the same id exists.
        """
        if lodge.id in self.lodges:
            raise ValueError(f"Lodge {lodge.id} already exists")
        self.lodges[lodge.id] = lodge
        self._mark_changed(f"added {lodge!r}")

    def remove_lodge(self, lodge_id: int) -> bool:
        """Remove a lodge. Returns False if not found."""
        lodge = self.lodges.pop(lodge_id, None)
        if lodge is None:
            return False
        self._mark_changed(f"removed {lodge!r}")
        return True

    def add_base_point(self, point: PathPoint) -> None:
        """Add a base area (spawn point and rescue destination)."""
        self.base_points.append(point)
        self._mark_changed(f"added base at {point!r}")

    # =========================================================================
    # Lookup
    # =========================================================================

    def get_trail(self, trail_id: int | None) -> Trail | None:
        """Valid trail by id, None if unknown or invalid."""
        if trail_id is None:
            return None
        trail = self.trails.get(trail_id)
        return trail if trail is not None and trail.is_valid else None

    def get_lift(self, lift_id: int | None) -> Lift | None:
        """Valid lift by id, None if unknown or invalid."""
        if lift_id is None:
            return None
        lift = self.lifts.get(lift_id)
        return lift if lift is not None and lift.is_valid else None

    def get_lodge(self, lodge_id: int | None) -> Lodge | None:
        """Lodge by id, None if unknown."""
        if lodge_id is None:
            return None
        return self.lodges.get(lodge_id)

    def valid_trails(self) -> list[Trail]:
        """All valid trails, ordered by id."""
        return [t for _, t in sorted(self.trails.items()) if t.is_valid]

    def valid_lifts(self) -> list[Lift]:
        """All valid lifts, ordered by id."""
        return [lift for _, lift in sorted(self.lifts.items()) if lift.is_valid]

    # =========================================================================
    # Spatial Queries
    # =========================================================================

    def trails_starting_near(self, point: PathPoint, radius: float, exclude_id: int | None = None) -> list[Trail]:
        """Valid trails whose first point lies within radius (3D), nearest first.

        Args:
            point: Query position
            radius: Search radius
            exclude_id: Trail id to leave out (typically the current trail)

        Returns:
            Trails sorted by distance to their start.
        """
        self._ensure_index()
        return [
            self.trails[tid] for tid, _ in self._trail_starts.query(point=point, radius=radius) if tid != exclude_id
        ]

    def lifts_with_bottom_near(self, point: PathPoint, radius: float) -> list[Lift]:
        """Valid lifts whose bottom station lies within radius (3D), nearest first."""
        self._ensure_index()
        return [self.lifts[lid] for lid, _ in self._lift_bottoms.query(point=point, radius=radius)]

    def lodges_near(self, point: PathPoint, radius: float) -> list[Lodge]:
        """Lodges within radius (3D), nearest first."""
        self._ensure_index()
        return [self.lodges[lid] for lid, _ in self._lodge_points.query(point=point, radius=radius)]

    def nearest_base(self, point: PathPoint) -> PathPoint | None:
        """Closest base area, or None if the resort has no base."""
        if not self.base_points:
            return None
        return min(self.base_points, key=lambda base: point.distance_to(base))

    def nearest_lift_bottom(self, point: PathPoint) -> Lift | None:
        """Valid lift whose bottom station is closest to a point (any distance)."""
        lifts = self.valid_lifts()
        if not lifts:
            return None
        return min(lifts, key=lambda lift: (point.distance_to(lift.bottom), lift.id))

    # =========================================================================
    # Structural Connections
    # =========================================================================

    def trails_from_lift(self, lift_id: int) -> list[int]:
        """Trail ids starting within snap radius of a lift's top station."""
        self._ensure_index()
        return list(self._lift_to_trails.get(lift_id, []))

    def trails_from_trail(self, trail_id: int) -> list[int]:
        """Trail ids starting within snap radius of a trail's end."""
        self._ensure_index()
        return list(self._trail_to_trails.get(trail_id, []))

    def lifts_from_trail(self, trail_id: int) -> list[int]:
        """Lift ids whose bottom is within snap radius of a trail's end."""
        self._ensure_index()
        return list(self._trail_to_lifts.get(trail_id, []))

    def crossings_on(self, trail_id: int) -> list[TrailCrossing]:
        """Crossings seen from a trail, ordered by distance along it."""
        self._ensure_index()
        return list(self._crossings.get(trail_id, []))

    # =========================================================================
    # Index Rebuild
    # =========================================================================

    def _ensure_index(self) -> None:
        if self._dirty:
            self.rebuild_connections()

    def rebuild_connections(self) -> None:
        """Rebuild spatial indexes, structural connections and crossings."""
        trails = self.valid_trails()
        lifts = self.valid_lifts()

        self._trail_starts = _PointIndex([(t.id, t.start) for t in trails])
        self._lift_bottoms = _PointIndex([(lift.id, lift.bottom) for lift in lifts])
        self._lodge_points = _PointIndex([(lodge.id, lodge.position) for _, lodge in sorted(self.lodges.items())])
        self._dirty = False

        self._lift_to_trails = {
            lift.id: [tid for tid, _ in self._trail_starts.query(point=lift.top, radius=self.snap_radius)]
            for lift in lifts
        }
        self._trail_to_trails = {
            t.id: [tid for tid, _ in self._trail_starts.query(point=t.end, radius=self.snap_radius) if tid != t.id]
            for t in trails
        }
        self._trail_to_lifts = {
            t.id: [lid for lid, _ in self._lift_bottoms.query(point=t.end, radius=self.snap_radius)] for t in trails
        }
        self._crossings = self._find_crossings(trails=trails)

        n_links = sum(len(v) for v in self._lift_to_trails.values()) + sum(
            len(v) for v in self._trail_to_trails.values()
        )
        n_crossings = sum(len(v) for v in self._crossings.values()) // 2
        logger.info(
            f"Rebuilt network rev {self.revision}: {len(trails)} trails, {len(lifts)} lifts, "
            f"{n_links} connections, {n_crossings} crossings"
        )

    def _find_crossings(self, trails: list[Trail]) -> dict[int, list[TrailCrossing]]:
        """Intersect every pair of trail footprints.

        Uses an STRtree over the footprints to only intersect candidate pairs.
        Intersections near a trail's own start or end are skipped on that
        trail's side (those are handled as junctions).
        """
        crossings: dict[int, list[TrailCrossing]] = {t.id: [] for t in trails}
        if len(trails) < 2:
            return crossings

        lines = [t.line_2d for t in trails]
        tree = STRtree(lines)
        for i, trail_a in enumerate(trails):
            for j in np.asarray(tree.query(lines[i], predicate="intersects")).tolist():
                if j <= i:
                    continue
                trail_b = trails[j]
                for xy in self._intersection_points(lines[i], lines[j]):
                    self._add_crossing(crossings, trail_a, trail_b, xy)
                    self._add_crossing(crossings, trail_b, trail_a, xy)

        for items in crossings.values():
            items.sort(key=lambda c: c.distance_along)
        return crossings

    @staticmethod
    def _intersection_points(line_a: LineString, line_b: LineString) -> list[tuple[float, float]]:
        """Representative (x, y) of each part of a footprint intersection."""
        points = []
        for part in get_parts(line_a.intersection(line_b)):
            if part.is_empty:
                continue
            if part.geom_type == "Point":
                points.append((part.x, part.y))
            else:
                # Overlapping stretch: use where the overlap begins
                x, y = part.coords[0][:2]
                points.append((x, y))
        return points

    @staticmethod
    def _add_crossing(
        crossings: dict[int, list[TrailCrossing]],
        trail: Trail,
        other: Trail,
        xy: tuple[float, float],
    ) -> None:
        point_2d = Point(xy)
        along = trail.distance_from_planar(trail.line_2d.project(point_2d))
        other_along = other.distance_from_planar(other.line_2d.project(point_2d))
        if along <= _ENDPOINT_TOLERANCE or along >= trail.length_m - _ENDPOINT_TOLERANCE:
            return
        if other_along >= other.length_m - _ENDPOINT_TOLERANCE:
            return
        position = trail.sample(along).position
        crossings[trail.id].append(
            TrailCrossing(
                trail_id=trail.id,
                other_trail_id=other.id,
                distance_along=along,
                other_distance_along=other_along,
                point=PathPoint.from_array(position),
            )
        )

    # =========================================================================
    # Statistics & Serialization
    # =========================================================================

    def get_stats(self) -> dict[str, Any]:
        """Counts and total lengths."""
        trails = self.valid_trails()
        lifts = self.valid_lifts()
        return {
            "revision": self.revision,
            "total_trails": len(trails),
            "total_lifts": len(lifts),
            "total_lodges": len(self.lodges),
            "total_bases": len(self.base_points),
            "total_trail_length_m": sum(t.length_m for t in trails),
            "total_lift_length_m": sum(lift.length_m for lift in lifts),
        }

    def to_dict(self) -> dict[str, Any]:
        """Serialize the network to a JSON-compatible dict."""
        return {
            "snap_radius": self.snap_radius,
            "trails": [t.to_dict() for _, t in sorted(self.trails.items())],
            "lifts": [lift.to_dict() for _, lift in sorted(self.lifts.items())],
            "lodges": [
                {
                    "id": lodge.id,
                    "name": lodge.name,
                    "position": [lodge.position.x, lodge.position.y, lodge.position.elevation],
                    "capacity": lodge.capacity,
                    "rest_duration_s": lodge.rest_duration_s,
                }
                for _, lodge in sorted(self.lodges.items())
            ],
            "base_points": [[b.x, b.y, b.elevation] for b in self.base_points],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ResortNetwork":
        """Deserialize a network produced by to_dict() (no listeners attached)."""
        network = cls(snap_radius=float(data.get("snap_radius", SearchConfig.NETWORK_SNAP_RADIUS)))
        for trail_data in data.get("trails", []):
            trail = Trail.from_dict(data=trail_data)
            network.trails[trail.id] = trail
        for lift_data in data.get("lifts", []):
            lift = Lift.from_dict(data=lift_data)
            network.lifts[lift.id] = lift
        for lodge_data in data.get("lodges", []):
            lodge = Lodge.from_dict(data=lodge_data)
            network.lodges[lodge.id] = lodge
        network.base_points = [PathPoint(x=b[0], y=b[1], elevation=b[2]) for b in data.get("base_points", [])]
        network._dirty = True
        return network

    def __repr__(self) -> str:
        return (
            f"ResortNetwork(rev={self.revision}, trails={len(self.trails)}, "
            f"lifts={len(self.lifts)}, lodges={len(self.lodges)})"
        )
