"""
Filter Expression Codec
=======================

A partition's child record-set is scoped by a filter expression that embeds
the persisted geometry id:

    IsInPolygon('<geometryId>',Lat,Long)

The expression is the wire contract with the host record store and the only
place the geometry reference is recovered from on startup, so the format is
kept bit-exact.
"""

import re
from typing import Optional

FILTER_TEMPLATE = "IsInPolygon('{geometry_id}',Lat,Long)"

_FILTER_PATTERN = re.compile(r"IsInPolygon.'(.+)',Lat,Long", re.IGNORECASE)


def create_filter(geometry_id: str) -> str:
    """
    Build the child record-set filter for a persisted geometry.

    Raises:
        ValueError: If geometry_id is empty or contains a single quote
    """
    if not geometry_id:
        raise ValueError("geometry_id cannot be empty")
    if "'" in geometry_id:
        raise ValueError(f"geometry_id cannot contain quotes: {geometry_id!r}")
    return FILTER_TEMPLATE.format(geometry_id=geometry_id)


def get_polygon_id_from_filter(filter_expr: Optional[str]) -> Optional[str]:
    """
    Recover the geometry id from a filter expression.

    Returns:
        The embedded geometry id, or None when the child is not a geometry
        partition.
    """
    if not filter_expr:
        return None
    match = _FILTER_PATTERN.search(filter_expr)
    if match is None:
        return None
    return match.group(1)
