"""
Structured Logging for Geofence Partitions
==========================================

Bounded Context: Observability

JSON-structured logging for the partition engine and its reconciliation pass.

Design:
- JSON output (one object per line)
- Typed events (enums prevent typos)
- Contextual metadata (partition_id, geometry_id, counts)

Public API
----------
    LogEvent: Typed event names (enum)
    StructuredLogger: JSON logger implementation
    create_logger: Factory function

Example:
    >>> from geofence_partition.logging import create_logger, LogEvent
    >>> logger = create_logger("engine")
    >>> logger.info(
    ...     event=LogEvent.PARTITION_CREATED,
    ...     message="Partition created",
    ...     metadata={'partition_id': 'c-1', 'member_count': 12}
    ... )

Output:
    {
        "timestamp": "2026-10-18T15:30:45.123456+00:00",
        "level": "INFO",
        "component": "engine",
        "event": "partition.created",
        "message": "Partition created",
        "metadata": {"partition_id": "c-1", "member_count": 12}
    }
"""

from .events import LogEvent
from .structured import StructuredLogger, create_logger

__all__ = [
    'LogEvent',
    'StructuredLogger',
    'create_logger',
]
