"""
Reconciliation Module
=====================

Bounded Context: Rebuilding partitions from persisted child record-sets on
startup.

Design:
- Fan-out: child info and geometry fetched concurrently for every child
- Join barrier: nothing touches the store or the canvas until every fetch
  has reported (success or soft failure)
- Batch: partitions committed and drawn in one pass, then one counters refresh
- Canvas readiness is an explicit signal, not a fixed delay

Outcomes per child:
- RESTORED: filter names a geometry that was found
- MISSING: no IsInPolygon filter, or the geometry id resolves to nothing
- FAILED: a fetch raised (logged, counted, never aborts the pass)

Fetches are not cancellable and have no timeout; a hung fetch stalls the join.
"""

from concurrent.futures import ALL_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from geofence_partition.config import EngineConfig
from geofence_partition.engine import PartitionEngine, RestoredPartition
from geofence_partition.errors import SheetServiceError
from geofence_partition.filters import get_polygon_id_from_filter
from geofence_partition.geometry.containment import polygon_from
from geofence_partition.logging import LogEvent, StructuredLogger, create_logger
from geofence_partition.services import ChildEntry, ChildInfo, MapCanvas, SheetService
from geofence_partition.store import Partition


class OutcomeKind(str, Enum):
    """Result of reconciling one child record-set."""
    RESTORED = "restored"
    MISSING = "missing"
    FAILED = "failed"


@dataclass(frozen=True)
class ChildOutcome:
    """
    What happened to one child during reconciliation.

    Attributes:
        child: The child entry
        kind: RESTORED, MISSING or FAILED
        geometry_id: Geometry id recovered from the filter (None if no match)
        record_count: Host record count (RESTORED only)
        error: Failure description (FAILED only)
    """

    child: ChildEntry
    kind: OutcomeKind
    geometry_id: Optional[str] = None
    record_count: int = 0
    error: Optional[str] = None


@dataclass(frozen=True)
class ReconciliationReport:
    """
    Summary of one reconciliation pass.

    Invariant: len(restored) + missing + failed == number of children.
    """

    restored: List[Partition] = field(default_factory=list)
    missing: int = 0
    failed: int = 0
    outcomes: List[ChildOutcome] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.restored) + self.missing + self.failed

    def to_dict(self) -> Dict[str, Any]:
        return {
            'restored': [p.id for p in self.restored],
            'missing': self.missing,
            'failed': self.failed,
        }


@dataclass
class _PendingChild:
    child: ChildEntry
    geometry_id: str
    info: Future
    geometry: Future


class ReconciliationCoordinator:
    """
    Parallel fetch-and-join that rebuilds the engine's partitions.

    Usage:
        coordinator = ReconciliationCoordinator(engine, sheets, canvas, config)
        report = coordinator.reconcile()   # uses sheets.list_children()
        print(report.to_dict())
    """

    def __init__(
        self,
        engine: PartitionEngine,
        sheet_service: SheetService,
        canvas: MapCanvas,
        config: Optional[EngineConfig] = None,
        logger: Optional[StructuredLogger] = None,
    ):
        self.config = config or engine.config
        self._engine = engine
        self._sheets = sheet_service
        self._canvas = canvas
        self._logger = logger or create_logger("reconcile", self.config.logging_level)

    def reconcile(
        self,
        children: Optional[Iterable[Union[ChildEntry, Dict[str, Any]]]] = None
    ) -> ReconciliationReport:
        """
        Rebuild partitions from persisted children.

        Args:
            children: Child entries (or host payload dicts); fetched with
                list_children() when omitted

        Returns:
            ReconciliationReport with restored partitions and soft-failure counts

        Raises:
            SheetServiceError: If listing children failed
            DuplicateIdError: If a restored id is already in the store
        """
        entries = self._entries(children)
        outcomes, restored = self._fetch_all(entries)

        if not self._canvas.wait_until_ready(self.config.ready_timeout):
            self._logger.warning(
                event=LogEvent.RECONCILE_CANVAS_TIMEOUT,
                message="Canvas not ready before timeout, rendering anyway",
                metadata={'ready_timeout': self.config.ready_timeout}
            )

        partitions = self._engine.apply_reconciled(restored)

        report = ReconciliationReport(
            restored=partitions,
            missing=sum(1 for o in outcomes if o.kind == OutcomeKind.MISSING),
            failed=sum(1 for o in outcomes if o.kind == OutcomeKind.FAILED),
            outcomes=outcomes,
        )
        self._logger.info(
            event=LogEvent.RECONCILE_COMPLETED,
            message="Reconciled partitions",
            metadata=report.to_dict()
        )
        return report

    def _entries(
        self,
        children: Optional[Iterable[Union[ChildEntry, Dict[str, Any]]]]
    ) -> List[ChildEntry]:
        if children is None:
            try:
                children = self._sheets.list_children()
            except Exception as e:
                self._logger.error(
                    event=LogEvent.SHEET_REQUEST_FAILED,
                    message="list_children failed",
                    exc_info=e
                )
                raise SheetServiceError('list_children', str(e)) from e

        return [
            child if isinstance(child, ChildEntry) else ChildEntry.from_dict(child)
            for child in children
        ]

    def _fetch_all(
        self,
        entries: List[ChildEntry]
    ) -> Tuple[List[ChildOutcome], List[RestoredPartition]]:
        """Dispatch every fetch, wait for all of them, then classify."""
        outcomes: List[ChildOutcome] = []
        pending: List[_PendingChild] = []

        with ThreadPoolExecutor(
            max_workers=self.config.fetch_workers,
            thread_name_prefix="reconcile",
        ) as pool:
            for child in entries:
                geometry_id = get_polygon_id_from_filter(child.filter_expr)
                if geometry_id is None:
                    outcomes.append(ChildOutcome(child=child, kind=OutcomeKind.MISSING))
                    continue
                pending.append(_PendingChild(
                    child=child,
                    geometry_id=geometry_id,
                    info=pool.submit(self._sheets.get_child_info, child.id),
                    geometry=pool.submit(self._sheets.get_geometry, geometry_id),
                ))

            self._logger.info(
                event=LogEvent.RECONCILE_STARTED,
                message="Fetching persisted partitions",
                metadata={'children': len(entries), 'dispatched': len(pending)}
            )

            futures = [f for p in pending for f in (p.info, p.geometry)]
            wait(futures, return_when=ALL_COMPLETED)

        restored: List[RestoredPartition] = []
        for item in pending:
            outcome, partition = self._classify(item)
            outcomes.append(outcome)
            if partition is not None:
                restored.append(RestoredPartition(partition=partition, record_count=outcome.record_count))

        for outcome in outcomes:
            if outcome.kind == OutcomeKind.MISSING:
                self._logger.debug(
                    event=LogEvent.RECONCILE_MISSING,
                    message="Child is not a geometry partition",
                    metadata={'child_id': outcome.child.id, 'geometry_id': outcome.geometry_id}
                )

        return outcomes, restored

    def _classify(self, item: _PendingChild) -> Tuple[ChildOutcome, Optional[Partition]]:
        child = item.child
        try:
            info = item.info.result()
            vertices = item.geometry.result()
            if not isinstance(info, ChildInfo):
                info = ChildInfo.from_dict(info)
        except Exception as e:
            self._logger.error(
                event=LogEvent.RECONCILE_FETCH_FAILED,
                message="Fetch failed, partition omitted",
                metadata={'child_id': child.id, 'geometry_id': item.geometry_id},
                exc_info=e
            )
            outcome = ChildOutcome(
                child=child,
                kind=OutcomeKind.FAILED,
                geometry_id=item.geometry_id,
                error=str(e),
            )
            return outcome, None

        if vertices is None:
            return ChildOutcome(child=child, kind=OutcomeKind.MISSING, geometry_id=item.geometry_id), None

        try:
            polygon = polygon_from(vertices)
        except ValueError:
            return ChildOutcome(child=child, kind=OutcomeKind.MISSING, geometry_id=item.geometry_id), None

        partition = Partition(
            id=child.id,
            name=child.name,
            geometry_id=item.geometry_id,
            polygon=polygon,
        )
        outcome = ChildOutcome(
            child=child,
            kind=OutcomeKind.RESTORED,
            geometry_id=item.geometry_id,
            record_count=info.record_count,
        )
        return outcome, partition
