"""
Structured Log Event Types
==========================

Typed event names for structured logging.

Event Naming Convention:
    <component>.<category>.<action>

    component: records, partition, reconcile, sheet
    category: created, rejected, fetch
    action: empty_region, failed, ...

Example Log Query (CloudWatch Insights):
    fields @timestamp, event, metadata.partition_id
    | filter event = "partition.deleted"
"""

from enum import Enum


class LogEvent(str, Enum):
    """
    Typed log event names for structured logging.

    Categories:
    - records.*: Working set loading
    - partition.*: Create/edit/delete lifecycle
    - reconcile.*: Startup reconciliation pass
    - sheet.*: SheetService interactions
    """

    # ========== Record Events ==========
    RECORDS_LOADED = "records.loaded"
    """Working set parsed from host rows."""

    RECORDS_DROPPED = "records.dropped"
    """Rows dropped because their coordinates did not parse."""

    MARKERS_LOADED = "records.markers_loaded"
    """One marker per record handed to the canvas."""

    # ========== Partition Events ==========
    PARTITION_CANDIDATE = "partition.candidate"
    """Drawn polygon validated, awaiting a name."""

    PARTITION_REJECTED_EMPTY_REGION = "partition.rejected.empty_region"
    """Drawn polygon contains no records."""

    PARTITION_REJECTED_EMPTY_NAME = "partition.rejected.empty_name"
    """Naming step cancelled or blank."""

    PARTITION_CREATED = "partition.created"
    """Partition persisted and committed."""

    PARTITION_EDITED = "partition.edited"
    """Partition boundary changed and re-persisted."""

    PARTITION_EDIT_REJECTED = "partition.edit_rejected"
    """Overlay edit event could not be applied."""

    PARTITION_DELETED = "partition.deleted"
    """Partition and its persisted resources deleted."""

    PARTITION_VISIBILITY_CHANGED = "partition.visibility_changed"
    """Partition overlay dimmed or restored."""

    FILTERED_CHILD_CREATED = "partition.filtered_child_created"
    """Child record-set created from free filter text."""

    # ========== Reconciliation Events ==========
    RECONCILE_STARTED = "reconcile.started"
    """Reconciliation pass dispatched its fetches."""

    RECONCILE_MISSING = "reconcile.missing"
    """Child has no geometry filter or its geometry is gone."""

    RECONCILE_FETCH_FAILED = "reconcile.fetch.failed"
    """A child info or geometry fetch raised."""

    RECONCILE_CANVAS_TIMEOUT = "reconcile.canvas.timeout"
    """Canvas did not signal ready in time; rendering proceeds."""

    RECONCILE_COMPLETED = "reconcile.completed"
    """All fetches joined and partitions rendered in one batch."""

    # ========== Error Events ==========
    SHEET_REQUEST_FAILED = "sheet.request.failed"
    """SheetService call raised."""

    ORPHAN_CLEANUP_FAILED = "sheet.orphan_cleanup.failed"
    """Could not delete a child or geometry left behind by a failed create."""

