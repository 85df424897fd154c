"""
Geofence Partition Engine v1.0
==============================

Bounded Context: Partitioning a sheet's geolocated records into named,
user-drawn polygonal regions.

Architecture:

    geofence_partition/
    ├── geometry/          # Pure geometry (immutable, stateless)
    │   ├── shapes.py      # LatLng, Polygon
    │   └── containment.py # contains(), vertices_of(), polygon_from()
    │
    ├── records/           # Working set & assignment (stateful)
    │   ├── record_set.py  # Record, RecordSet
    │   └── assignment.py  # AssignmentState, Counters
    │
    ├── store.py           # Partition, PartitionStore
    ├── engine.py          # PartitionEngine (create/edit/delete), EngineBuilder
    ├── reconciliation.py  # ReconciliationCoordinator (fan-out, join, batch)
    ├── filters.py         # IsInPolygon filter codec
    ├── services.py        # SheetService / MapCanvas / PartitionView protocols
    └── adapters/          # In-memory collaborators

Usage:

    from geofence_partition import (
        EngineBuilder, RecordSet, ReconciliationCoordinator,
    )

    records = RecordSet.from_columns(sheet_contents)
    engine = (
        EngineBuilder()
        .with_records(records)
        .with_sheet_service(sheets)
        .with_canvas(canvas)
        .build()
    )
    engine.load_markers()
    ReconciliationCoordinator(engine, sheets, canvas).reconcile()

    candidate = engine.begin_create(drawn_vertices)
    partition = engine.confirm_create(candidate.polygon, "West", candidate.records)
    print(engine.counters())
"""

# Geometry Layer (immutable, stateless)
from geofence_partition.geometry import (
    LatLng,
    Polygon,
    contains,
    contains_points,
    polygon_from,
    vertices_of,
)

# Records Layer (stateful)
from geofence_partition.records import AssignmentState, Counters, Record, RecordSet

# Store
from geofence_partition.store import Partition, PartitionStore

# Engine (orchestration)
from geofence_partition.engine import (
    CandidateState,
    CreationResult,
    EngineBuilder,
    PartitionEngine,
    RestoredPartition,
)
from geofence_partition.reconciliation import (
    ChildOutcome,
    OutcomeKind,
    ReconciliationCoordinator,
    ReconciliationReport,
)

# Codec, collaborators, config, errors
from geofence_partition.filters import create_filter, get_polygon_id_from_filter
from geofence_partition.services import (
    ChildEntry,
    ChildInfo,
    MapCanvas,
    NullPartitionView,
    PartitionView,
    SheetService,
)
from geofence_partition.config import EngineConfig
from geofence_partition.errors import (
    DuplicateIdError,
    EmptyNameError,
    EmptyRegionError,
    GeofenceError,
    InvalidFilterError,
    NotFoundError,
    SheetServiceError,
)

__all__ = [
    # Geometry
    "LatLng",
    "Polygon",
    "contains",
    "contains_points",
    "polygon_from",
    "vertices_of",
    # Records
    "Record",
    "RecordSet",
    "AssignmentState",
    "Counters",
    # Store
    "Partition",
    "PartitionStore",
    # Engine
    "CandidateState",
    "CreationResult",
    "EngineBuilder",
    "PartitionEngine",
    "RestoredPartition",
    # Reconciliation
    "ChildOutcome",
    "OutcomeKind",
    "ReconciliationCoordinator",
    "ReconciliationReport",
    # Codec
    "create_filter",
    "get_polygon_id_from_filter",
    # Collaborators
    "ChildEntry",
    "ChildInfo",
    "MapCanvas",
    "NullPartitionView",
    "PartitionView",
    "SheetService",
    # Config & errors
    "EngineConfig",
    "DuplicateIdError",
    "EmptyNameError",
    "EmptyRegionError",
    "GeofenceError",
    "InvalidFilterError",
    "NotFoundError",
    "SheetServiceError",
]

__version__ = "1.0.0"
