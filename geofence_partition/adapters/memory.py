"""
In-Memory Collaborators
=======================

SheetService and MapCanvas implementations that need no host: the sheet
service keeps children and geometry in dicts, the canvas records every call
it receives in order.

Used offline (demo script) and to exercise the engine without a real record
store or map.
"""

import itertools
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Tuple

from geofence_partition.filters import get_polygon_id_from_filter
from geofence_partition.geometry.shapes import LatLng
from geofence_partition.services import ChildEntry, ChildInfo, Vertices


class InMemorySheetService:
    """
    Thread-safe SheetService over dicts.

    Child record counts are computed by an optional ``count_for`` callback
    receiving the stored vertices (e.g. ``lambda v: records.count_in(polygon_from(v))``),
    since the real host evaluates the filter itself.

    Failure injection:
        service.fail_on('create_child_from_filter')        # every call raises
        service.fail_on('get_geometry', key='geo-2')       # only for that id
    """

    def __init__(
        self,
        count_for: Optional[Callable[[Vertices], int]] = None,
        latency: float = 0.0,
    ):
        self._children: Dict[str, ChildEntry] = {}
        self._geometries: Dict[str, Tuple[str, Vertices]] = {}
        self._child_ids = itertools.count(1)
        self._geometry_ids = itertools.count(1)
        self._failures: Dict[str, Optional[Set[str]]] = {}
        self._count_for = count_for
        self._latency = latency
        self._lock = threading.Lock()
        self.calls: List[Tuple[str, Tuple[Any, ...]]] = []

    # Failure injection -------------------------------------------------

    def fail_on(self, operation: str, key: Optional[str] = None) -> None:
        with self._lock:
            if key is None:
                self._failures[operation] = None
            else:
                keys = self._failures.setdefault(operation, set())
                if keys is not None:
                    keys.add(key)

    def clear_failures(self) -> None:
        with self._lock:
            self._failures.clear()

    def _enter(self, operation: str, *args: Any) -> None:
        if self._latency:
            time.sleep(self._latency)
        with self._lock:
            self.calls.append((operation, args))
            if operation in self._failures:
                keys = self._failures[operation]
                if keys is None or (args and args[0] in keys):
                    raise RuntimeError(f"{operation} rejected by host")

    # Seeding -----------------------------------------------------------

    def add_child(self, child_id: str, name: str, filter_expr: Optional[str]) -> ChildEntry:
        entry = ChildEntry(id=child_id, name=name, filter_expr=filter_expr)
        with self._lock:
            self._children[child_id] = entry
        return entry

    def add_geometry(self, geometry_id: str, name: str, vertices: Vertices) -> None:
        with self._lock:
            self._geometries[geometry_id] = (name, list(vertices))

    # SheetService ------------------------------------------------------

    def create_child_from_filter(self, name: str, filter_expr: str) -> str:
        self._enter('create_child_from_filter', name, filter_expr)
        with self._lock:
            child_id = f"child-{next(self._child_ids)}"
            self._children[child_id] = ChildEntry(id=child_id, name=name, filter_expr=filter_expr)
        return child_id

    def delete_child(self, child_id: str) -> None:
        self._enter('delete_child', child_id)
        with self._lock:
            if child_id not in self._children:
                raise KeyError(f"Child '{child_id}' not found")
            del self._children[child_id]

    def get_child_info(self, child_id: str) -> ChildInfo:
        self._enter('get_child_info', child_id)
        with self._lock:
            entry = self._children.get(child_id)
            if entry is None:
                raise KeyError(f"Child '{child_id}' not found")
            stored = None
            geometry_id = get_polygon_id_from_filter(entry.filter_expr)
            if geometry_id is not None and geometry_id in self._geometries:
                stored = self._geometries[geometry_id][1]
        count = 0
        if self._count_for and stored:
            try:
                count = self._count_for(stored)
            except ValueError:
                # stored vertices do not form a polygon; the host filter matches nothing
                count = 0
        return ChildInfo(record_count=count)

    def persist_geometry(self, name: str, vertices: Vertices) -> str:
        self._enter('persist_geometry', name, vertices)
        with self._lock:
            geometry_id = f"geo-{next(self._geometry_ids)}"
            self._geometries[geometry_id] = (name, list(vertices))
        return geometry_id

    def update_geometry(self, geometry_id: str, name: str, vertices: Vertices) -> None:
        self._enter('update_geometry', geometry_id, name, vertices)
        with self._lock:
            if geometry_id not in self._geometries:
                raise KeyError(f"Geometry '{geometry_id}' not found")
            self._geometries[geometry_id] = (name, list(vertices))

    def get_geometry(self, geometry_id: str) -> Optional[Vertices]:
        self._enter('get_geometry', geometry_id)
        with self._lock:
            stored = self._geometries.get(geometry_id)
        return None if stored is None else list(stored[1])

    def delete_geometry(self, geometry_id: str) -> None:
        self._enter('delete_geometry', geometry_id)
        with self._lock:
            self._geometries.pop(geometry_id, None)

    def list_children(self) -> List[ChildEntry]:
        self._enter('list_children')
        with self._lock:
            return list(self._children.values())

    # Introspection -----------------------------------------------------

    def has_child(self, child_id: str) -> bool:
        with self._lock:
            return child_id in self._children

    def has_geometry(self, geometry_id: str) -> bool:
        with self._lock:
            return geometry_id in self._geometries

    def call_names(self) -> List[str]:
        with self._lock:
            return [name for name, _ in self.calls]


@dataclass(frozen=True)
class CanvasCall:
    """One recorded canvas call."""

    sequence: int
    operation: str
    args: Tuple[Any, ...]
    timestamp: float


class RecordingMapCanvas:
    """
    MapCanvas that records calls instead of drawing.

    Handles are sequential integers. ``edit(handle, vertices)`` simulates a
    user moving a vertex by firing the callbacks registered with
    on_polygon_edited.
    """

    def __init__(self, ready: bool = True):
        self.calls: List[CanvasCall] = []
        self.polygons: Dict[int, Dict[str, Any]] = {}
        self.markers: Dict[str, LatLng] = {}
        self.marker_opacity: Dict[str, float] = {}
        self.cluster_points: List[LatLng] = []
        self.ready = threading.Event()
        if ready:
            self.ready.set()

        self._handles = itertools.count(1)
        self._edit_callbacks: Dict[int, List[Callable[[Vertices], None]]] = {}
        self._sequence = itertools.count(1)
        self._lock = threading.Lock()

    def _record(self, operation: str, *args: Any) -> None:
        with self._lock:
            self.calls.append(CanvasCall(
                sequence=next(self._sequence),
                operation=operation,
                args=args,
                timestamp=time.monotonic(),
            ))

    def draw_polygon(self, vertices: Vertices, color: Optional[str] = None) -> int:
        handle = next(self._handles)
        self._record('draw_polygon', handle, list(vertices), color)
        self.polygons[handle] = {'vertices': list(vertices), 'color': color, 'opacity': 1.0}
        return handle

    def remove_polygon(self, handle: int) -> None:
        self._record('remove_polygon', handle)
        self.polygons.pop(handle, None)
        self._edit_callbacks.pop(handle, None)

    def fill_polygon(self, handle: int, color: str) -> None:
        self._record('fill_polygon', handle, color)
        if handle in self.polygons:
            self.polygons[handle]['color'] = color

    def on_polygon_edited(self, handle: int, callback: Callable[[Vertices], None]) -> None:
        self._record('on_polygon_edited', handle)
        self._edit_callbacks.setdefault(handle, []).append(callback)

    def set_polygon_opacity(self, handle: int, opacity: float) -> None:
        self._record('set_polygon_opacity', handle, opacity)
        if handle in self.polygons:
            self.polygons[handle]['opacity'] = opacity

    def add_markers(self, points: Sequence[Tuple[str, LatLng]]) -> None:
        self._record('add_markers', len(points))
        for record_id, point in points:
            self.markers[record_id] = point
            self.marker_opacity[record_id] = 1.0

    def clear_markers(self) -> None:
        self._record('clear_markers')
        self.markers.clear()
        self.marker_opacity.clear()

    def set_marker_opacity(self, record_ids: Sequence[str], opacity: float) -> None:
        self._record('set_marker_opacity', list(record_ids), opacity)
        for record_id in record_ids:
            self.marker_opacity[record_id] = opacity

    def update_cluster_view(self, visible_points: Sequence[LatLng]) -> None:
        self._record('update_cluster_view', len(visible_points))
        self.cluster_points = list(visible_points)

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        self._record('wait_until_ready', timeout)
        return self.ready.wait(timeout)

    # Simulation --------------------------------------------------------

    def user_draws(self, vertices: Vertices) -> int:
        """Simulate the drawing tool completing an overlay."""
        handle = next(self._handles)
        self._record('user_draws', handle, list(vertices))
        self.polygons[handle] = {'vertices': list(vertices), 'color': None, 'opacity': 1.0}
        return handle

    def edit(self, handle: int, vertices: Vertices) -> None:
        """Simulate a vertex move/insert on an overlay."""
        self.polygons[handle]['vertices'] = list(vertices)
        for callback in list(self._edit_callbacks.get(handle, [])):
            callback(list(vertices))

    def operations(self, name: Optional[str] = None) -> List[CanvasCall]:
        with self._lock:
            if name is None:
                return list(self.calls)
            return [c for c in self.calls if c.operation == name]
