"""
Partition Store - Thread-safe partition storage.

This module provides the PartitionStore class which holds partitions indexed
by their host-issued id. It enforces id uniqueness at its boundary and does
no geometric computation and no I/O: callers own any overlay or persisted
resource tied to a partition they remove.

Thread Safety:
- Uses threading.Lock for protecting the partition dict
- all() returns a snapshot list
"""

import threading
from dataclasses import dataclass
from typing import Dict, Iterable, List

from geofence_partition.errors import DuplicateIdError, NotFoundError
from geofence_partition.geometry.shapes import Polygon


@dataclass
class Partition:
    """
    A named polygonal region backed by a child record-set.

    Attributes:
        id: Child record-set id issued by SheetService
        name: User-supplied name
        geometry_id: Persisted geometry id embedded in the child's filter
        polygon: Current boundary (replaced on edit)
        visible: Overlay display state (False = dimmed)
        color: Presentation color (hex)
        child_deleted: Child record-set already deleted by an interrupted delete
    """

    id: str
    name: str
    geometry_id: str
    polygon: Polygon
    visible: bool = True
    color: str = ""
    child_deleted: bool = False


class PartitionStore:
    """
    Identity-indexed storage of Partition records.

    Thread Safety Guarantees:
    - insert(), insert_many(), remove(): Write operations (acquire lock)
    - get(), all(): Read operations (acquire lock briefly)

    Usage:
        store = PartitionStore()
        store.insert(partition)
        store.get(partition.id)
        removed = store.remove(partition.id)
    """

    def __init__(self):
        """Initialize empty store."""
        self._partitions: Dict[str, Partition] = {}
        self._lock = threading.Lock()

    def insert(self, partition: Partition) -> None:
        """
        Add a partition.

        Raises:
            DuplicateIdError: If partition.id already exists
        """
        with self._lock:
            if partition.id in self._partitions:
                raise DuplicateIdError(partition.id)
            self._partitions[partition.id] = partition

    def insert_many(self, partitions: Iterable[Partition]) -> None:
        """
        Add several partitions atomically: either all are inserted or none.

        Raises:
            DuplicateIdError: If any id clashes with the store or the batch
        """
        batch = list(partitions)
        with self._lock:
            seen = set(self._partitions)
            for partition in batch:
                if partition.id in seen:
                    raise DuplicateIdError(partition.id)
                seen.add(partition.id)
            for partition in batch:
                self._partitions[partition.id] = partition

    def get(self, partition_id: str) -> Partition:
        """
        Raises:
            NotFoundError: If partition_id does not exist
        """
        with self._lock:
            try:
                return self._partitions[partition_id]
            except KeyError:
                raise NotFoundError(partition_id) from None

    def remove(self, partition_id: str) -> Partition:
        """
        Remove and return a partition.

        Raises:
            NotFoundError: If partition_id does not exist
        """
        with self._lock:
            try:
                return self._partitions.pop(partition_id)
            except KeyError:
                raise NotFoundError(partition_id) from None

    def all(self) -> List[Partition]:
        """Snapshot of all partitions (order not significant)."""
        with self._lock:
            return list(self._partitions.values())

    def clear(self) -> None:
        with self._lock:
            self._partitions.clear()

    def __contains__(self, partition_id: object) -> bool:
        with self._lock:
            return partition_id in self._partitions

    def __len__(self) -> int:
        with self._lock:
            return len(self._partitions)
