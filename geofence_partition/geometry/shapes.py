"""
Geometric Shapes Module
========================

Pure geometric representations - NO state, NO side effects.

Design:
- Immutable shapes (frozen dataclass pattern)
- Vertices kept as a read-only Nx2 array of (lat, long)
- Closing vertex optional (polygons close implicitly)
"""

import numpy as np
from dataclasses import dataclass
from typing import NamedTuple, Tuple


class LatLng(NamedTuple):
    """A geographic coordinate in degrees."""

    lat: float
    long: float


@dataclass(frozen=True)
class Polygon:
    """
    Immutable polygon over (lat, long) vertices.

    The boundary is closed implicitly: the last vertex connects back to the
    first. A trailing vertex that repeats the first one is stripped.

    Attributes:
        vertices: Nx2 array of (lat, long), N >= 3
    """

    vertices: np.ndarray

    def __post_init__(self):
        """Normalise and validate vertices."""
        vertices = np.asarray(self.vertices, dtype=np.float64)

        if vertices.ndim != 2 or vertices.shape[1] != 2:
            raise ValueError(f"vertices must be Nx2 array, got shape {vertices.shape}")
        if not np.all(np.isfinite(vertices)):
            raise ValueError("Polygon vertices must be finite numbers")

        if len(vertices) > 1 and np.array_equal(vertices[0], vertices[-1]):
            vertices = vertices[:-1]

        if len(vertices) < 3:
            raise ValueError(f"Polygon must have at least 3 vertices, got {len(vertices)}")

        vertices = vertices.copy()
        vertices.flags.writeable = False
        object.__setattr__(self, 'vertices', vertices)

    @property
    def lats(self) -> np.ndarray:
        return self.vertices[:, 0]

    @property
    def longs(self) -> np.ndarray:
        return self.vertices[:, 1]

    def bounds(self) -> Tuple[float, float, float, float]:
        """Return (min_lat, min_long, max_lat, max_long)."""
        min_lat, min_long = self.vertices.min(axis=0)
        max_lat, max_long = self.vertices.max(axis=0)
        return float(min_lat), float(min_long), float(max_lat), float(max_long)

    def __len__(self) -> int:
        return len(self.vertices)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Polygon):
            return NotImplemented
        return np.array_equal(self.vertices, other.vertices)

    def __hash__(self) -> int:
        return hash(self.vertices.tobytes())

    def __repr__(self) -> str:
        return f"Polygon(vertices={len(self.vertices)})"

