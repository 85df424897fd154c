"""
External Collaborators
======================

Protocols for the capabilities the engine drives but does not own:

- SheetService: host record store (child record-sets, persisted geometry)
- MapCanvas: polygon overlays and point markers
- PartitionView: side panel listing partitions and the counters

Host payloads are converted to the frozen ChildEntry / ChildInfo types at the
boundary.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence, Tuple

from geofence_partition.geometry.shapes import LatLng

Vertices = List[Tuple[float, float]]


@dataclass(frozen=True)
class ChildEntry:
    """A child record-set of the current sheet."""

    id: str
    name: str
    filter_expr: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ChildEntry':
        """
        Deserialize from a host payload.

        Accepts both snake_case keys and the host's ``SheetId`` / ``Name`` /
        ``Filter`` keys.
        """
        try:
            child_id = data['id'] if 'id' in data else data['SheetId']
            name = data.get('name', data.get('Name', ''))
            filter_expr = data.get('filter_expr', data.get('Filter'))
        except KeyError as e:
            raise ValueError(f"Missing required ChildEntry field: {e}")
        return cls(id=str(child_id), name=str(name), filter_expr=filter_expr)


@dataclass(frozen=True)
class ChildInfo:
    """Summary of a child record-set."""

    record_count: int

    def __post_init__(self):
        if self.record_count < 0:
            raise ValueError(f"record_count must be >= 0, got {self.record_count}")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ChildInfo':
        try:
            count = data['record_count'] if 'record_count' in data else data['CountRecords']
            return cls(record_count=int(count))
        except KeyError as e:
            raise ValueError(f"Missing required ChildInfo field: {e}")
        except (TypeError, ValueError) as e:
            raise ValueError(f"Invalid ChildInfo data: {e}")


class SheetService(Protocol):
    """Host record store operations used by the engine."""

    def create_child_from_filter(self, name: str, filter_expr: str) -> str:
        """Create a child record-set scoped by filter_expr; returns its id."""
        ...

    def delete_child(self, child_id: str) -> None:
        ...

    def get_child_info(self, child_id: str) -> ChildInfo:
        ...

    def persist_geometry(self, name: str, vertices: Vertices) -> str:
        """Store polygon vertices; returns the geometry id."""
        ...

    def update_geometry(self, geometry_id: str, name: str, vertices: Vertices) -> None:
        ...

    def get_geometry(self, geometry_id: str) -> Optional[Vertices]:
        """Stored vertices, or None when nothing is stored under the id."""
        ...

    def delete_geometry(self, geometry_id: str) -> None:
        ...

    def list_children(self) -> List[ChildEntry]:
        ...


class MapCanvas(Protocol):
    """Map overlay and marker operations."""

    def draw_polygon(self, vertices: Vertices, color: Optional[str] = None) -> Any:
        """Draw an overlay; returns an opaque handle."""
        ...

    def remove_polygon(self, handle: Any) -> None:
        ...

    def fill_polygon(self, handle: Any, color: str) -> None:
        """Apply a partition color to an overlay the user drew."""
        ...

    def on_polygon_edited(self, handle: Any, callback: Callable[[Vertices], None]) -> None:
        """Invoke callback with the new vertices whenever a vertex is moved or inserted."""
        ...

    def set_polygon_opacity(self, handle: Any, opacity: float) -> None:
        ...

    def add_markers(self, points: Sequence[Tuple[str, LatLng]]) -> None:
        ...

    def clear_markers(self) -> None:
        ...

    def set_marker_opacity(self, record_ids: Sequence[str], opacity: float) -> None:
        ...

    def update_cluster_view(self, visible_points: Sequence[LatLng]) -> None:
        ...

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until the canvas finished its initial render."""
        ...


class PartitionView(Protocol):
    """Side panel listing partitions and the aggregate counters."""

    def partition_added(self, partition: Any, member_count: int) -> None:
        ...

    def partition_updated(self, partition: Any, member_count: int) -> None:
        ...

    def partition_removed(self, partition_id: str) -> None:
        ...

    def counters_changed(self, counters: Any) -> None:
        ...


class NullPartitionView:
    """PartitionView that ignores every update."""

    def partition_added(self, partition: Any, member_count: int) -> None:
        pass

    def partition_updated(self, partition: Any, member_count: int) -> None:
        pass

    def partition_removed(self, partition_id: str) -> None:
        pass

    def counters_changed(self, counters: Any) -> None:
        pass
