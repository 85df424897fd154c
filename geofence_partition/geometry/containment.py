"""
Point-in-Polygon Module
=======================

Stateless containment logic plus the vertex marshaling pair used when
polygons travel to and from persistence.

Boundary rule:
    Even-odd crossing test with latitude as y and longitude as x. An edge
    (i, j) is counted when ``(lat_i > lat) != (lat_j > lat)`` and the point's
    longitude is strictly less than the edge's longitude at that latitude.
    For an axis-aligned box this puts the minimum-latitude and
    minimum-longitude edges inside and the maximum edges outside. The scalar
    and vectorised entry points share this single implementation.
"""

import numpy as np
from typing import Any, Iterable, List, Mapping, Sequence, Tuple, Union

from geofence_partition.geometry.shapes import LatLng, Polygon

VertexLike = Union[Sequence[float], Mapping[str, Any]]


def contains_points(
    polygon: Polygon,
    lats: np.ndarray,
    longs: np.ndarray
) -> np.ndarray:
    """
    Test many points against one polygon in a single pass over its edges.

    Args:
        polygon: Polygon geometry
        lats: Array of point latitudes
        longs: Array of point longitudes (same length as lats)

    Returns:
        Boolean mask of shape (N,) where True = inside polygon
    """
    y = np.asarray(lats, dtype=np.float64)
    x = np.asarray(longs, dtype=np.float64)
    if y.shape != x.shape:
        raise ValueError(f"lats and longs must have equal shape, got {y.shape} and {x.shape}")

    inside = np.zeros(y.shape, dtype=bool)
    if y.size == 0:
        return inside

    poly_y = polygon.lats
    poly_x = polygon.longs
    count = len(polygon)

    j = count - 1
    for i in range(count):
        yi, xi = poly_y[i], poly_x[i]
        yj, xj = poly_y[j], poly_x[j]

        crosses = (yi > y) != (yj > y)
        if yi != yj:
            x_intersect = (xj - xi) * (y - yi) / (yj - yi) + xi
            inside ^= crosses & (x < x_intersect)

        j = i

    return inside


def contains(point: Union[LatLng, Tuple[float, float]], polygon: Polygon) -> bool:
    """
    Check if a single (lat, long) point lies inside the polygon.

    Args:
        point: (lat, long) coordinates
        polygon: Polygon geometry

    Returns:
        True if point is inside polygon, False otherwise
    """
    lat, long = point
    mask = contains_points(polygon, np.array([lat]), np.array([long]))
    return bool(mask[0])


def vertices_of(polygon: Polygon) -> List[Tuple[float, float]]:
    """Ordered (lat, long) vertices, without a repeated closing vertex."""
    return [(float(lat), float(long)) for lat, long in polygon.vertices]


def polygon_from(vertices: Iterable[VertexLike]) -> Polygon:
    """
    Build a Polygon from persisted vertices.

    Accepts (lat, long) pairs or mappings with ``lat`` and ``long``/``lng``
    keys.

    Raises:
        ValueError: Fewer than three vertices, or a vertex that does not parse
    """
    pairs = [_as_pair(vertex) for vertex in vertices]
    if len(pairs) < 3:
        raise ValueError(f"Polygon must have at least 3 vertices, got {len(pairs)}")
    return Polygon(vertices=np.array(pairs, dtype=np.float64))


def _as_pair(vertex: VertexLike) -> Tuple[float, float]:
    try:
        if isinstance(vertex, Mapping):
            long = vertex['long'] if 'long' in vertex else vertex['lng']
            return float(vertex['lat']), float(long)
        lat, long = vertex
        return float(lat), float(long)
    except KeyError as e:
        raise ValueError(f"Missing vertex field: {e}")
    except (TypeError, ValueError) as e:
        raise ValueError(f"Invalid vertex {vertex!r}: {e}")
