"""
Reconciliation Tests
====================

Startup rebuild of partitions from persisted children: classification,
join barrier before any canvas mutation, canvas readiness, batching.

Usage:
    pytest test_reconciliation.py
"""

import threading
import time

import pytest

from geofence_partition import (
    DuplicateIdError,
    EngineBuilder,
    EngineConfig,
    OutcomeKind,
    RecordSet,
    ReconciliationCoordinator,
    SheetServiceError,
    create_filter,
    polygon_from,
)
from geofence_partition.adapters import InMemorySheetService, RecordingMapCanvas

ROWS = [
    {"RecId": "r1", "Lat": 0, "Long": 0},
    {"RecId": "r2", "Lat": 0.5, "Long": 0.5},
    {"RecId": "r3", "Lat": 10, "Long": 10},
    {"RecId": "r4", "Lat": 20, "Long": 20},
]
RECORDS = RecordSet.load(ROWS)

WEST = [(-1, -1), (-1, 1), (1, 1), (1, -1)]
CENTER = [(9, 9), (9, 11), (11, 11), (11, 9)]


class TimedSheetService(InMemorySheetService):
    """Records when every fetch returned."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.finished = []

    def get_child_info(self, child_id):
        try:
            return super().get_child_info(child_id)
        finally:
            self.finished.append(time.monotonic())

    def get_geometry(self, geometry_id):
        try:
            return super().get_geometry(geometry_id)
        finally:
            self.finished.append(time.monotonic())


class RecordingView:
    def __init__(self):
        self.added = []
        self.counters = []

    def partition_added(self, partition, member_count):
        self.added.append((partition.id, member_count))

    def partition_updated(self, partition, member_count):
        pass

    def partition_removed(self, partition_id):
        pass

    def counters_changed(self, counters):
        self.counters.append(counters)


def count_in_records(vertices):
    return RECORDS.count_in(polygon_from(vertices))


def build_engine(sheets=None, canvas=None, config=None):
    sheets = sheets or InMemorySheetService(count_for=count_in_records)
    canvas = canvas or RecordingMapCanvas()
    view = RecordingView()
    engine = (
        EngineBuilder()
        .with_records(RECORDS)
        .with_sheet_service(sheets)
        .with_canvas(canvas)
        .with_view(view)
        .with_config(config or EngineConfig())
        .build()
    )
    coordinator = ReconciliationCoordinator(engine, sheets, canvas)
    return engine, coordinator, sheets, canvas, view


def seed_partition(sheets, child_id, geometry_id, vertices):
    sheets.add_geometry(geometry_id, child_id.upper(), vertices)
    sheets.add_child(child_id, child_id.upper(), create_filter(geometry_id))


def test_restores_partitions_and_classifies_the_rest():
    engine, coordinator, sheets, canvas, view = build_engine()
    seed_partition(sheets, "west", "geo-west", WEST)
    sheets.add_child("gone", "Gone", create_filter("geo-deleted"))
    sheets.add_child("plain", "Plain", "Lat > 0")
    seed_partition(sheets, "broken", "geo-broken", CENTER)
    sheets.fail_on("get_geometry", key="geo-broken")

    report = coordinator.reconcile()

    assert [p.id for p in report.restored] == ["west"]
    assert report.missing == 2
    assert report.failed == 1
    assert report.total == 4

    kinds = {o.child.id: o.kind for o in report.outcomes}
    assert kinds == {
        "west": OutcomeKind.RESTORED,
        "gone": OutcomeKind.MISSING,
        "plain": OutcomeKind.MISSING,
        "broken": OutcomeKind.FAILED,
    }

    partition = engine.partition("west")
    assert partition.name == "WEST"
    assert partition.geometry_id == "geo-west"
    assert partition.polygon == polygon_from(WEST)
    assert partition.color.startswith("#")
    assert engine.is_hidden("r1") and engine.is_hidden("r2")
    assert engine.counters().assigned == 2
    assert view.added == [("west", 2)]


@pytest.mark.parametrize("total,unresolvable", [(1, 0), (5, 2), (8, 8)])
def test_restored_count_is_children_minus_unresolvable(total, unresolvable):
    engine, coordinator, sheets, _, _ = build_engine()
    for i in range(total):
        if i < unresolvable:
            sheets.add_child(f"c{i}", f"C{i}", create_filter(f"missing-{i}"))
        else:
            seed_partition(sheets, f"c{i}", f"geo-{i}", WEST)

    report = coordinator.reconcile()

    assert len(report.restored) == total - unresolvable
    assert report.missing == unresolvable
    assert len(engine) == total - unresolvable


def test_no_canvas_mutation_before_last_fetch():
    sheets = TimedSheetService(count_for=count_in_records, latency=0.02)
    engine, _, _, canvas, _ = build_engine(sheets=sheets)
    coordinator = ReconciliationCoordinator(engine, sheets, canvas, EngineConfig(fetch_workers=4))
    for i in range(6):
        seed_partition(sheets, f"p{i}", f"geo-{i}", CENTER if i % 2 else WEST)

    coordinator.reconcile()

    assert len(sheets.finished) == 12
    last_fetch = max(sheets.finished)
    mutations = [c for c in canvas.operations() if c.operation != "wait_until_ready"]
    assert mutations
    assert all(c.timestamp >= last_fetch for c in mutations)


def test_single_cluster_refresh_per_pass():
    engine, coordinator, sheets, canvas, view = build_engine()
    seed_partition(sheets, "west", "geo-west", WEST)
    seed_partition(sheets, "center", "geo-center", CENTER)

    coordinator.reconcile()

    assert len(canvas.operations("draw_polygon")) == 2
    assert len(canvas.operations("update_cluster_view")) == 1
    assert len(view.counters) == 1
    assert view.counters[0].assigned == 3
    assert canvas.cluster_points == [(20.0, 20.0)]


def test_waits_for_canvas_ready_signal():
    canvas = RecordingMapCanvas(ready=False)
    engine, coordinator, sheets, _, _ = build_engine(canvas=canvas)
    seed_partition(sheets, "west", "geo-west", WEST)

    worker = threading.Thread(target=coordinator.reconcile)
    worker.start()
    time.sleep(0.1)

    assert canvas.operations("draw_polygon") == []
    assert len(engine) == 0

    canvas.ready.set()
    worker.join(timeout=5)

    assert not worker.is_alive()
    assert len(canvas.operations("draw_polygon")) == 1
    assert len(engine) == 1


def test_canvas_timeout_still_renders():
    canvas = RecordingMapCanvas(ready=False)
    engine, coordinator, sheets, _, _ = build_engine(canvas=canvas, config=EngineConfig(ready_timeout=0.05))
    seed_partition(sheets, "west", "geo-west", WEST)

    report = coordinator.reconcile()

    assert len(report.restored) == 1
    assert canvas.operations("wait_until_ready")[0].args == (0.05,)
    assert len(canvas.operations("draw_polygon")) == 1


def test_malformed_geometry_counts_as_missing():
    engine, coordinator, sheets, _, _ = build_engine()
    sheets.add_geometry("geo-line", "Line", [(0, 0), (1, 1)])
    sheets.add_child("line", "Line", create_filter("geo-line"))

    report = coordinator.reconcile()

    assert report.restored == []
    assert report.missing == 1
    assert report.failed == 0
    assert len(engine) == 0


def test_child_info_for_degenerate_geometry_counts_nothing():
    sheets = InMemorySheetService(count_for=count_in_records)
    sheets.add_geometry("geo-line", "Line", [(0, 0), (1, 1)])
    sheets.add_child("line", "Line", create_filter("geo-line"))

    assert sheets.get_child_info("line").record_count == 0


def test_failed_child_info_counts_as_failed():
    engine, coordinator, sheets, _, _ = build_engine()
    seed_partition(sheets, "west", "geo-west", WEST)
    seed_partition(sheets, "center", "geo-center", CENTER)
    sheets.fail_on("get_child_info", key="center")

    report = coordinator.reconcile()

    assert [p.id for p in report.restored] == ["west"]
    assert report.failed == 1
    failed = [o for o in report.outcomes if o.kind == OutcomeKind.FAILED][0]
    assert "rejected by host" in failed.error


def test_accepts_host_payload_dicts():
    engine, coordinator, sheets, _, _ = build_engine()
    seed_partition(sheets, "west", "geo-west", WEST)

    report = coordinator.reconcile([
        {"SheetId": "west", "Name": "West", "Filter": create_filter("geo-west")},
        {"SheetId": "plain", "Name": "Plain", "Filter": None},
    ])

    assert [p.id for p in report.restored] == ["west"]
    assert report.missing == 1
    assert "list_children" not in sheets.call_names()


def test_list_children_failure_raises():
    _, coordinator, sheets, canvas, _ = build_engine()
    sheets.fail_on("list_children")

    with pytest.raises(SheetServiceError):
        coordinator.reconcile()
    assert canvas.calls == []


def test_duplicate_restore_rejected_atomically():
    engine, coordinator, sheets, _, _ = build_engine()
    seed_partition(sheets, "west", "geo-west", WEST)
    coordinator.reconcile()
    seed_partition(sheets, "center", "geo-center", CENTER)

    with pytest.raises(DuplicateIdError):
        coordinator.reconcile()

    assert [p.id for p in engine.partitions()] == ["west"]
    assert not engine.is_hidden("r3")


def test_no_children():
    engine, coordinator, _, canvas, _ = build_engine()

    report = coordinator.reconcile()

    assert report.total == 0
    assert report.to_dict() == {"restored": [], "missing": 0, "failed": 0}
    assert len(canvas.operations("update_cluster_view")) == 1
