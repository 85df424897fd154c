"""
Records Layer
=============

Bounded Context: The sheet's working set and its assignment state.

Responsibilities:
- Parse host rows into an immutable RecordSet
- Answer containment queries (which records lie inside a polygon)
- Track hidden/visible per record and produce Counters snapshots
"""

from geofence_partition.records.record_set import Record, RecordSet
from geofence_partition.records.assignment import AssignmentState, Counters

__all__ = [
    "Record",
    "RecordSet",
    "AssignmentState",
    "Counters",
]
