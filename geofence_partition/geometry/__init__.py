"""
Geometry Layer
==============

Bounded Context: Pure geometric shapes and spatial queries.

Responsibilities:
- Polygon representation (immutable)
- Point-in-polygon tests (scalar and vectorised, one boundary rule)
- Vertex marshaling to/from persistence
- NO state, NO assignment, NO I/O
"""

from geofence_partition.geometry.shapes import LatLng, Polygon
from geofence_partition.geometry.containment import (
    contains,
    contains_points,
    polygon_from,
    vertices_of,
)

__all__ = [
    "LatLng",
    "Polygon",
    "contains",
    "contains_points",
    "polygon_from",
    "vertices_of",
]
