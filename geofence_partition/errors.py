"""
Error Taxonomy
==============

Validation failures (EmptyRegionError, EmptyNameError, InvalidFilterError)
are raised synchronously to the caller, which discards any in-progress
overlay. Store violations (DuplicateIdError, NotFoundError) signal programming
errors: ids are issued by the host and unique by construction.
SheetServiceError wraps whatever a collaborator raised.

Malformed coordinates and missing geometry are not exceptions: rows are
dropped at load and missing geometry is counted by reconciliation.
"""


class GeofenceError(Exception):
    """Base class for partition engine errors."""


class EmptyRegionError(GeofenceError, ValueError):
    """Raised when a drawn polygon contains no records."""

    def __init__(self, vertex_count: int):
        super().__init__(f"No records found in polygon ({vertex_count} vertices)")
        self.vertex_count = vertex_count


class EmptyNameError(GeofenceError, ValueError):
    """Raised when the naming step is cancelled or returns a blank name."""


class InvalidFilterError(GeofenceError, ValueError):
    """Raised when free filter text is blank."""


class DuplicateIdError(GeofenceError, KeyError):
    """Raised when a partition id is already present in the store."""

    def __init__(self, partition_id: str):
        super().__init__(f"Partition '{partition_id}' already exists")
        self.partition_id = partition_id


class NotFoundError(GeofenceError, KeyError):
    """Raised when a partition id is unknown."""

    def __init__(self, partition_id: str):
        super().__init__(f"Partition '{partition_id}' not found")
        self.partition_id = partition_id


class SheetServiceError(GeofenceError):
    """
    A SheetService call failed.

    Attributes:
        operation: Name of the SheetService method that raised
    """

    def __init__(self, operation: str, message: str):
        super().__init__(f"{operation} failed: {message}")
        self.operation = operation
