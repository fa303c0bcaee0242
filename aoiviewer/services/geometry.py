"""AOI geometry normalization: ring closing, simplification, bounds checks.

Geometries arrive as one of three GeoJSON shapes discriminated on ``type``
(``Point``, ``Polygon``, ``MultiPolygon``).  The pipeline applied before an
AOI is stored is::

    close_rings -> simplify -> validate_bounds

All functions here are pure: they return new geometry objects and never
mutate their input, so they are safe to call from concurrent requests.

Simplification is Douglas-Peucker in raw (lng, lat) degree space with no
projection correction.  At the default tolerance of 1e-4 degrees (~11 m at
the equator) the distortion at high latitudes is negligible for hand-drawn
AOIs.
"""

from __future__ import annotations

import logging
from typing import Annotated, Callable, Iterator, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter

logger = logging.getLogger(__name__)

DEFAULT_TOLERANCE_DEG = 1e-4
MIN_RING_POINTS = 4

Position = tuple[float, float]
Ring = Annotated[list[Position], Field(min_length=MIN_RING_POINTS)]


class PointGeometry(BaseModel):
    type: Literal["Point"]
    coordinates: Position


class PolygonGeometry(BaseModel):
    type: Literal["Polygon"]
    coordinates: list[Ring]


class MultiPolygonGeometry(BaseModel):
    type: Literal["MultiPolygon"]
    coordinates: list[list[Ring]]


Geometry = Annotated[
    Union[PointGeometry, PolygonGeometry, MultiPolygonGeometry],
    Field(discriminator="type"),
]

_geometry_adapter: TypeAdapter[Geometry] = TypeAdapter(Geometry)


class OutOfBoundsError(ValueError):
    """Raised when a geometry has a coordinate outside WGS84 bounds."""


def parse_geometry(data: object) -> Geometry:
    """Validate a raw GeoJSON geometry mapping into a typed geometry."""
    return _geometry_adapter.validate_python(data)


# ---------------------------------------------------------------------------
# Ring helpers
# ---------------------------------------------------------------------------


def _is_closed(ring: list[Position]) -> bool:
    return ring[0][0] == ring[-1][0] and ring[0][1] == ring[-1][1]


def close_ring(ring: list[Position]) -> list[Position]:
    """Return *ring* with its first position appended if it is not closed."""
    if not ring or _is_closed(ring):
        return list(ring)
    return [*ring, (ring[0][0], ring[0][1])]


def _sq_seg_dist(p: Position, a: Position, b: Position) -> float:
    """Squared distance from *p* to the segment *a*-*b*."""
    x, y = a
    dx = b[0] - x
    dy = b[1] - y

    if dx != 0 or dy != 0:
        t = ((p[0] - x) * dx + (p[1] - y) * dy) / (dx * dx + dy * dy)
        if t > 1:
            x, y = b
        elif t > 0:
            x += dx * t
            y += dy * t

    dx = p[0] - x
    dy = p[1] - y
    return dx * dx + dy * dy


def _farthest_point(
    points: list[Position], first: int, last: int, sq_tolerance: float
) -> int | None:
    """Index of the interior point farthest from the chord, if beyond tolerance.

    Returns ``None`` when no interior point exceeds *sq_tolerance*; index 0
    is a legitimate answer and is never confused with "not found".
    """
    max_sq_dist = sq_tolerance
    index = None
    for i in range(first + 1, last):
        sq_dist = _sq_seg_dist(points[i], points[first], points[last])
        if sq_dist > max_sq_dist:
            index = i
            max_sq_dist = sq_dist
    return index


def simplify_ring(
    ring: list[Position], tolerance: float = DEFAULT_TOLERANCE_DEG
) -> list[Position]:
    """Douglas-Peucker simplification of a single ring.

    The ring endpoints are fixed anchors.  Rings with four or fewer points
    come back unchanged, and if simplification would leave fewer than four
    points the (closed) input ring is returned instead.
    """
    if len(ring) <= MIN_RING_POINTS:
        return list(ring)

    points = close_ring(ring)
    sq_tolerance = tolerance * tolerance

    keep = [False] * len(points)
    keep[0] = keep[-1] = True

    # Explicit stack instead of recursion; rings can hold thousands of points.
    stack = [(0, len(points) - 1)]
    while stack:
        first, last = stack.pop()
        if last - first < 2:
            continue
        index = _farthest_point(points, first, last, sq_tolerance)
        if index is None:
            continue
        keep[index] = True
        stack.append((first, index))
        stack.append((index, last))

    simplified = [p for p, kept in zip(points, keep) if kept]
    if len(simplified) < MIN_RING_POINTS:
        return points
    return simplified


# ---------------------------------------------------------------------------
# Geometry-level operations
# ---------------------------------------------------------------------------


def _map_rings(
    geometry: Geometry, fn: Callable[[list[Position]], list[Position]]
) -> Geometry:
    if geometry.type == "Point":
        return geometry.model_copy()
    if geometry.type == "Polygon":
        return geometry.model_copy(
            update={"coordinates": [fn(ring) for ring in geometry.coordinates]}
        )
    if geometry.type == "MultiPolygon":
        return geometry.model_copy(
            update={
                "coordinates": [
                    [fn(ring) for ring in polygon]
                    for polygon in geometry.coordinates
                ]
            }
        )
    raise TypeError(f"Unsupported geometry type: {geometry.type!r}")


def _iter_positions(geometry: Geometry) -> Iterator[Position]:
    if geometry.type == "Point":
        yield geometry.coordinates
    elif geometry.type == "Polygon":
        for ring in geometry.coordinates:
            yield from ring
    elif geometry.type == "MultiPolygon":
        for polygon in geometry.coordinates:
            for ring in polygon:
                yield from ring
    else:
        raise TypeError(f"Unsupported geometry type: {geometry.type!r}")


def close_rings(geometry: Geometry) -> Geometry:
    """Close every ring of a Polygon or MultiPolygon. Points pass through."""
    return _map_rings(geometry, close_ring)


def simplify(
    geometry: Geometry, tolerance_deg: float = DEFAULT_TOLERANCE_DEG
) -> Geometry:
    """Simplify every ring independently with Douglas-Peucker."""
    return _map_rings(geometry, lambda ring: simplify_ring(ring, tolerance_deg))


def _in_bounds(position: Position) -> bool:
    lng, lat = position
    return -180 <= lng <= 180 and -90 <= lat <= 90


def validate_bounds(geometry: Geometry) -> bool:
    """True when every position lies within [-180, 180] x [-90, 90]."""
    return all(_in_bounds(p) for p in _iter_positions(geometry))


def count_positions(geometry: Geometry) -> int:
    return sum(1 for _ in _iter_positions(geometry))


def normalize(
    geometry: Geometry, tolerance_deg: float = DEFAULT_TOLERANCE_DEG
) -> Geometry:
    """Close, simplify and bounds-check *geometry* ahead of storage.

    Raises:
        OutOfBoundsError: if any coordinate falls outside WGS84 bounds.
    """
    closed = close_rings(geometry)
    simplified = simplify(closed, tolerance_deg)
    if not validate_bounds(simplified):
        raise OutOfBoundsError("Coordinates out of bounds")

    before = count_positions(closed)
    after = count_positions(simplified)
    if after < before:
        logger.debug(
            "Simplified %s from %d to %d positions", geometry.type, before, after
        )
    return simplified
