"""
Adapters
========

Collaborator implementations that run without a host application.
"""

from geofence_partition.adapters.memory import (
    CanvasCall,
    InMemorySheetService,
    RecordingMapCanvas,
)

__all__ = [
    "CanvasCall",
    "InMemorySheetService",
    "RecordingMapCanvas",
]
