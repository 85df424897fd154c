"""
Assignment State Module
=======================

Stateful accumulator for per-record assignment.

Design:
- Mutable state (set of hidden record ids)
- Immutable snapshots (Counters)
- One binary flag per record: hidden (claimed by a partition) or visible

Known limitation:
    A record inside two overlapping partitions is tracked by a single flag,
    not by the set of partitions containing it. Revealing one partition's
    members reveals the shared records too (last writer wins).
"""

import math
from dataclasses import dataclass, asdict
from typing import Dict, Iterable, List, Set

from geofence_partition.records.record_set import RecordSet


@dataclass(frozen=True)
class Counters:
    """
    Immutable assignment counters snapshot.

    Attributes:
        total: Records in the working set
        assigned: total - unassigned
        unassigned: Records still visible
        percent_assigned: 100 * assigned / total rounded half-up, 0 when total == 0
    """

    total: int = 0
    assigned: int = 0
    unassigned: int = 0
    percent_assigned: int = 0

    @classmethod
    def compute(cls, total: int, unassigned: int) -> "Counters":
        assigned = total - unassigned
        if total == 0:
            percent = 0
        else:
            # Half-up rounding
            percent = int(math.floor(100 * assigned / total + 0.5))
        return cls(
            total=total,
            assigned=assigned,
            unassigned=unassigned,
            percent_assigned=percent,
        )

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)

    def __str__(self) -> str:
        return f"{self.assigned}/{self.total} assigned ({self.percent_assigned}%)"


class AssignmentState:
    """
    Hidden/visible flag per record of a RecordSet.

    Usage:
        state = AssignmentState(records)
        state.hide(records.ids_in(polygon))
        counters = state.counters()
    """

    def __init__(self, records: RecordSet):
        self._records = records
        self._hidden: Set[str] = set()

    def hide(self, record_ids: Iterable[str]) -> int:
        """Mark records hidden; returns how many changed state."""
        before = len(self._hidden)
        self._hidden.update(rid for rid in record_ids if rid in self._records)
        return len(self._hidden) - before

    def reveal(self, record_ids: Iterable[str]) -> int:
        """Mark records visible; returns how many changed state."""
        before = len(self._hidden)
        self._hidden.difference_update(record_ids)
        return before - len(self._hidden)

    def is_hidden(self, record_id: str) -> bool:
        return record_id in self._hidden

    def visible_ids(self) -> List[str]:
        """Ids of unassigned records, in working-set order."""
        return [rid for rid in self._records.ids if rid not in self._hidden]

    def counters(self) -> Counters:
        total = len(self._records)
        return Counters.compute(total=total, unassigned=total - len(self._hidden))

    def reset(self) -> None:
        self._hidden.clear()
