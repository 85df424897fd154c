"""
Partition Engine Module
=======================

Bounded Context: Partition lifecycle and record assignment.

Design:
- Orchestrator: owns PartitionStore and assignment state; nothing else mutates them
- Geometry persistence -> filter -> child record-set, strictly in that order
- All-or-nothing: a failed SheetService call leaves store and assignment untouched
- One re-entrant lock serialises every engine mutation

Candidate lifecycle during creation:

    DRAWING -> VALIDATING -> AWAITING_NAME -> PERSISTING -> COMMITTED
                   |               |
                   +-- EmptyRegionError / EmptyNameError --> overlay discarded

Dependencies:
- geofence_partition.geometry (containment, marshaling)
- geofence_partition.records (working set, assignment state)
- geofence_partition.store (partition storage)
"""

import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from geofence_partition.config import EngineConfig
from geofence_partition.errors import (
    DuplicateIdError,
    EmptyNameError,
    EmptyRegionError,
    GeofenceError,
    InvalidFilterError,
    SheetServiceError,
)
from geofence_partition.filters import create_filter
from geofence_partition.geometry.containment import polygon_from, vertices_of
from geofence_partition.geometry.shapes import Polygon
from geofence_partition.logging import LogEvent, StructuredLogger, create_logger
from geofence_partition.palette import ColorAssigner
from geofence_partition.records.assignment import AssignmentState, Counters
from geofence_partition.records.record_set import Record, RecordSet
from geofence_partition.services import MapCanvas, NullPartitionView, PartitionView, SheetService, Vertices
from geofence_partition.store import Partition, PartitionStore

PolygonLike = Union[Polygon, Vertices]


class CandidateState(str, Enum):
    """State of a polygon being turned into a partition."""
    DRAWING = "drawing"
    VALIDATING = "validating"
    AWAITING_NAME = "awaiting_name"
    PERSISTING = "persisting"
    COMMITTED = "committed"


@dataclass(frozen=True)
class CreationResult:
    """
    Outcome of begin_create for a polygon that contains records.

    Attributes:
        state: Always AWAITING_NAME (empty regions raise instead)
        polygon: Validated polygon
        records: Records inside the polygon
    """

    state: CandidateState
    polygon: Polygon
    records: List[Record] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.records)


@dataclass(frozen=True)
class RestoredPartition:
    """A partition rebuilt from persisted data, with its host record count."""

    partition: Partition
    record_count: int


class PartitionEngine:
    """
    Create, edit and delete partitions while keeping assignment consistent.

    Usage:
        engine = (
            EngineBuilder()
            .with_records(records)
            .with_sheet_service(sheets)
            .with_canvas(canvas)
            .build()
        )

        candidate = engine.begin_create(vertices)   # EmptyRegionError if empty
        partition = engine.confirm_create(candidate.polygon, "West", candidate.records)
        engine.edit(partition.id, new_vertices)
        engine.delete(partition.id)
        print(engine.counters())
    """

    def __init__(
        self,
        records: RecordSet,
        sheet_service: SheetService,
        canvas: MapCanvas,
        view: Optional[PartitionView] = None,
        config: Optional[EngineConfig] = None,
        colors: Optional[ColorAssigner] = None,
        logger: Optional[StructuredLogger] = None,
    ):
        self.config = config or EngineConfig()
        self._records = records
        self._sheets = sheet_service
        self._canvas = canvas
        self._view = view or NullPartitionView()
        self._colors = colors or ColorAssigner()
        self._logger = logger or create_logger("engine", self.config.logging_level)

        self._store = PartitionStore()
        self._assignment = AssignmentState(records)
        self._overlays: Dict[str, Any] = {}
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def begin_create(self, polygon: PolygonLike) -> CreationResult:
        """
        Validate a freshly drawn polygon.

        Never mutates store or assignment state.

        Raises:
            EmptyRegionError: If no record lies inside the polygon
        """
        polygon = _as_polygon(polygon)
        records = self._records.records_in(polygon)

        if not records:
            self._logger.warning(
                event=LogEvent.PARTITION_REJECTED_EMPTY_REGION,
                message="No records found in polygon",
                metadata={'vertices': len(polygon)}
            )
            raise EmptyRegionError(len(polygon))

        self._logger.debug(
            event=LogEvent.PARTITION_CANDIDATE,
            message="Polygon awaiting name",
            metadata={'record_count': len(records)}
        )
        return CreationResult(
            state=CandidateState.AWAITING_NAME,
            polygon=polygon,
            records=records,
        )

    def confirm_create(
        self,
        polygon: PolygonLike,
        name: Optional[str],
        records_in_region: Sequence[Union[Record, str]],
        handle: Any = None,
    ) -> Partition:
        """
        Persist and commit a named partition.

        Args:
            polygon: Partition boundary
            name: Partition name; None means the naming step was cancelled
            records_in_region: Records (or record ids) to mark hidden
            handle: Existing overlay for the polygon; one is drawn when omitted

        Returns:
            The committed Partition

        Raises:
            EmptyNameError: If name is None or blank
            SheetServiceError: If persisting geometry or creating the child failed
            DuplicateIdError: If the host reissued an id already in the store
                (the new child and geometry are deleted again)
        """
        polygon = _as_polygon(polygon)
        if name is None or not name.strip():
            self._logger.warning(
                event=LogEvent.PARTITION_REJECTED_EMPTY_NAME,
                message="Partition name can't be empty",
                metadata={'cancelled': name is None}
            )
            raise EmptyNameError("Partition name can't be empty")
        name = name.strip()

        record_ids = [r.id if isinstance(r, Record) else str(r) for r in records_in_region]
        vertices = vertices_of(polygon)

        with self._lock:
            geometry_id = self._call('persist_geometry', self._sheets.persist_geometry, name, vertices)
            try:
                filter_expr = create_filter(str(geometry_id))
                child_id = self._call(
                    'create_child_from_filter',
                    self._sheets.create_child_from_filter,
                    name,
                    filter_expr,
                )
            except (SheetServiceError, ValueError):
                self._discard_orphan_geometry(geometry_id)
                raise

            partition = Partition(
                id=str(child_id),
                name=name,
                geometry_id=str(geometry_id),
                polygon=polygon,
                color=self._colors.next_color(),
            )
            try:
                self._store.insert(partition)
            except DuplicateIdError:
                self._discard_orphan_child(partition.id)
                self._discard_orphan_geometry(geometry_id)
                raise
            self._assignment.hide(record_ids)

            if handle is None:
                handle = self._canvas.draw_polygon(vertices, partition.color)
            else:
                self._canvas.fill_polygon(handle, partition.color)
            self._bind_overlay(partition.id, handle)

            self._logger.info(
                event=LogEvent.PARTITION_CREATED,
                message=f"Partition '{name}' created",
                metadata={
                    'partition_id': partition.id,
                    'geometry_id': partition.geometry_id,
                    'member_count': len(record_ids),
                }
            )
            self._view.partition_added(partition, len(record_ids))
            self._refresh()

        return partition

    def handle_drawn_polygon(
        self,
        handle: Any,
        vertices: PolygonLike,
        ask_name: Callable[[CreationResult], Optional[str]],
    ) -> Partition:
        """
        Run the draw-complete flow for a user-drawn overlay.

        The overlay is removed from the canvas when the shape is not a valid
        polygon, the region is empty, the name is cancelled or blank, or
        persistence fails; the error is then re-raised for the caller to report.

        Args:
            handle: Overlay the user just drew
            vertices: Its vertices
            ask_name: Called with the candidate; returns a name or None
        """
        try:
            candidate = self.begin_create(vertices)
            name = ask_name(candidate)
            return self.confirm_create(candidate.polygon, name, candidate.records, handle=handle)
        except (ValueError, SheetServiceError, DuplicateIdError):
            self._canvas.remove_polygon(handle)
            raise

    def create_filtered_child(self, name: Optional[str], filter_text: Optional[str]) -> str:
        """
        Create a child record-set from free filter text.

        The child is not a geometry partition and does not enter the store.

        Raises:
            InvalidFilterError: If filter_text is blank
            EmptyNameError: If name is None or blank
            SheetServiceError: If the host rejected the request
        """
        if not filter_text or not filter_text.strip():
            raise InvalidFilterError("Invalid Filter")
        if name is None or not name.strip():
            raise EmptyNameError("Invalid Name")

        child_id = self._call(
            'create_child_from_filter',
            self._sheets.create_child_from_filter,
            name.strip(),
            filter_text,
        )
        self._logger.info(
            event=LogEvent.FILTERED_CHILD_CREATED,
            message=f"Child '{name.strip()}' created from filter",
            metadata={'child_id': child_id, 'filter': filter_text}
        )
        return child_id

    # ------------------------------------------------------------------
    # Edit / delete / visibility
    # ------------------------------------------------------------------

    def edit(self, partition_id: str, new_polygon: PolygonLike) -> int:
        """
        Apply a boundary change and re-persist it under the same geometry id.

        Membership is recomputed from scratch: records that left the region
        become visible, records now inside become hidden.

        Returns:
            Number of records inside the new boundary

        Raises:
            NotFoundError: If partition_id is unknown
            SheetServiceError: If the geometry update failed (nothing applied)
        """
        polygon = _as_polygon(new_polygon)

        with self._lock:
            partition = self._store.get(partition_id)
            self._call(
                'update_geometry',
                self._sheets.update_geometry,
                partition.geometry_id,
                partition.name,
                vertices_of(polygon),
            )

            old_ids = set(self._records.ids_in(partition.polygon))
            new_ids = self._records.ids_in(polygon)
            left = sorted(old_ids.difference(new_ids))

            self._assignment.reveal(left)
            self._assignment.hide(new_ids)
            partition.polygon = polygon

            if not partition.visible:
                self._canvas.set_marker_opacity(left, 1.0)
                self._canvas.set_marker_opacity(new_ids, self.config.dimmed_opacity)

            self._logger.info(
                event=LogEvent.PARTITION_EDITED,
                message=f"Partition '{partition.name}' boundary updated",
                metadata={
                    'partition_id': partition_id,
                    'member_count': len(new_ids),
                    'released': len(left),
                }
            )
            self._view.partition_updated(partition, len(new_ids))
            self._refresh()

        return len(new_ids)

    def delete(self, partition_id: str) -> Partition:
        """
        Delete a partition with its child record-set and persisted geometry.

        Confirmation happens upstream; the engine does not prompt. If the
        child was deleted but the geometry delete failed, a retry only
        deletes the geometry.

        Returns:
            The removed Partition

        Raises:
            NotFoundError: If partition_id is unknown
            SheetServiceError: If either delete failed (store untouched)
        """
        with self._lock:
            partition = self._store.get(partition_id)
            if not partition.child_deleted:
                self._call('delete_child', self._sheets.delete_child, partition.id)
                partition.child_deleted = True
            self._call('delete_geometry', self._sheets.delete_geometry, partition.geometry_id)

            self._store.remove(partition_id)
            member_ids = self._records.ids_in(partition.polygon)
            self._assignment.reveal(member_ids)

            handle = self._overlays.pop(partition_id, None)
            if handle is not None:
                self._canvas.remove_polygon(handle)
            if not partition.visible:
                self._canvas.set_marker_opacity(member_ids, 1.0)

            self._logger.info(
                event=LogEvent.PARTITION_DELETED,
                message=f"Partition '{partition.name}' deleted",
                metadata={'partition_id': partition_id, 'released': len(member_ids)}
            )
            self._view.partition_removed(partition_id)
            self._refresh()

        return partition

    def set_partition_visibility(self, partition_id: str, visible: bool) -> None:
        """
        Dim (visible=False) or restore a partition overlay and its markers.

        Assignment state and counters are not affected.
        """
        with self._lock:
            partition = self._store.get(partition_id)
            partition.visible = visible
            opacity = 1.0 if visible else self.config.dimmed_opacity

            handle = self._overlays.get(partition_id)
            if handle is not None:
                self._canvas.set_polygon_opacity(handle, opacity)
            member_ids = self._records.ids_in(partition.polygon)
            self._canvas.set_marker_opacity(member_ids, opacity)

            self._logger.debug(
                event=LogEvent.PARTITION_VISIBILITY_CHANGED,
                message=f"Partition '{partition.name}' {'shown' if visible else 'dimmed'}",
                metadata={'partition_id': partition_id, 'opacity': opacity}
            )
            self._view.partition_updated(partition, len(member_ids))

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    def load_markers(self) -> None:
        """Place one marker per record and refresh the cluster view."""
        with self._lock:
            self._canvas.clear_markers()
            self._canvas.add_markers([(r.id, r.point) for r in self._records])
            self._logger.debug(
                event=LogEvent.MARKERS_LOADED,
                message="Markers added",
                metadata={'markers': len(self._records)}
            )
            self._refresh()

    def apply_reconciled(self, restored: Sequence[RestoredPartition]) -> List[Partition]:
        """
        Commit partitions rebuilt from persisted data in one batch.

        Inserts every partition atomically, then draws each overlay and
        updates the view once per partition, followed by a single counters
        and cluster refresh.

        Raises:
            DuplicateIdError: If a restored id is already present (nothing inserted)
        """
        with self._lock:
            partitions = [item.partition for item in restored]
            for partition in partitions:
                if not partition.color:
                    partition.color = self._colors.next_color()

            self._store.insert_many(partitions)
            for partition in partitions:
                self._assignment.hide(self._records.ids_in(partition.polygon))

            for item in restored:
                partition = item.partition
                handle = self._canvas.draw_polygon(vertices_of(partition.polygon), partition.color)
                self._bind_overlay(partition.id, handle)
                self._view.partition_added(partition, item.record_count)

            self._refresh()

        return partitions

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def counters(self) -> Counters:
        with self._lock:
            return self._assignment.counters()

    def partitions(self) -> List[Partition]:
        return self._store.all()

    def partition(self, partition_id: str) -> Partition:
        return self._store.get(partition_id)

    def member_count(self, partition_id: str) -> int:
        """Records currently inside the partition's boundary."""
        return self._records.count_in(self._store.get(partition_id).polygon)

    def visible_records(self) -> List[Record]:
        """Records not claimed by any partition."""
        with self._lock:
            return [r for r in self._records if not self._assignment.is_hidden(r.id)]

    def is_hidden(self, record_id: str) -> bool:
        with self._lock:
            return self._assignment.is_hidden(record_id)

    def overlay_of(self, partition_id: str) -> Any:
        with self._lock:
            return self._overlays.get(partition_id)

    @property
    def records(self) -> RecordSet:
        return self._records

    def __len__(self) -> int:
        return len(self._store)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _bind_overlay(self, partition_id: str, handle: Any) -> None:
        self._overlays[partition_id] = handle
        self._canvas.on_polygon_edited(
            handle,
            lambda vertices: self._on_overlay_edited(partition_id, vertices),
        )

    def _on_overlay_edited(self, partition_id: str, vertices: Vertices) -> None:
        try:
            self.edit(partition_id, vertices)
        except (GeofenceError, ValueError) as e:
            self._logger.warning(
                event=LogEvent.PARTITION_EDIT_REJECTED,
                message="Overlay edit not applied",
                metadata={'partition_id': partition_id, 'error': str(e)}
            )

    def _refresh(self) -> None:
        counters = self._assignment.counters()
        visible = self._records.points(self._assignment.visible_ids())
        self._canvas.update_cluster_view(visible)
        self._view.counters_changed(counters)

    def _call(self, operation: str, fn: Callable[..., Any], *args: Any) -> Any:
        try:
            return fn(*args)
        except SheetServiceError:
            raise
        except Exception as e:
            self._logger.error(
                event=LogEvent.SHEET_REQUEST_FAILED,
                message=f"{operation} failed",
                metadata={'operation': operation},
                exc_info=e
            )
            raise SheetServiceError(operation, str(e)) from e

    def _discard_orphan_child(self, child_id: str) -> None:
        try:
            self._sheets.delete_child(child_id)
        except Exception as e:
            self._logger.error(
                event=LogEvent.ORPHAN_CLEANUP_FAILED,
                message="Could not delete child of failed create",
                metadata={'child_id': child_id},
                exc_info=e
            )

    def _discard_orphan_geometry(self, geometry_id: str) -> None:
        try:
            self._sheets.delete_geometry(geometry_id)
        except Exception as e:
            self._logger.error(
                event=LogEvent.ORPHAN_CLEANUP_FAILED,
                message="Could not delete geometry of failed create",
                metadata={'geometry_id': geometry_id},
                exc_info=e
            )


class EngineBuilder:
    """
    Builder for PartitionEngine.

    Design:
    - Fluent API for construction
    - Fail-fast validation
    - Sensible defaults (NullPartitionView, default EngineConfig)

    Usage:
        engine = (
            EngineBuilder()
            .with_records(RecordSet.from_columns(contents))
            .with_sheet_service(sheets)
            .with_canvas(canvas)
            .with_config(EngineConfig.from_yaml(path))
            .build()
        )
    """

    def __init__(self):
        self._records: RecordSet | None = None
        self._sheet_service: SheetService | None = None
        self._canvas: MapCanvas | None = None
        self._view: PartitionView | None = None
        self._config: EngineConfig | None = None
        self._colors: ColorAssigner | None = None

    def with_records(self, records: RecordSet) -> "EngineBuilder":
        self._records = records
        return self

    def with_sheet_service(self, sheet_service: SheetService) -> "EngineBuilder":
        self._sheet_service = sheet_service
        return self

    def with_canvas(self, canvas: MapCanvas) -> "EngineBuilder":
        self._canvas = canvas
        return self

    def with_view(self, view: PartitionView) -> "EngineBuilder":
        self._view = view
        return self

    def with_config(self, config: EngineConfig) -> "EngineBuilder":
        self._config = config
        return self

    def with_colors(self, colors: ColorAssigner) -> "EngineBuilder":
        self._colors = colors
        return self

    def build(self) -> PartitionEngine:
        """
        Raises:
            ValueError: If records, sheet service or canvas is missing
        """
        if self._records is None:
            raise ValueError("Record set is required (use .with_records())")
        if self._sheet_service is None:
            raise ValueError("Sheet service is required (use .with_sheet_service())")
        if self._canvas is None:
            raise ValueError("Map canvas is required (use .with_canvas())")

        return PartitionEngine(
            records=self._records,
            sheet_service=self._sheet_service,
            canvas=self._canvas,
            view=self._view,
            config=self._config,
            colors=self._colors,
        )


def _as_polygon(polygon: PolygonLike) -> Polygon:
    if isinstance(polygon, Polygon):
        return polygon
    return polygon_from(polygon)
