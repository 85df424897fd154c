"""
Partition Engine Tests
======================

Create / edit / delete / visibility flows against the in-memory sheet
service and the recording canvas.

Usage:
    pytest test_engine.py
"""

import pytest

from geofence_partition import (
    CandidateState,
    Counters,
    DuplicateIdError,
    EmptyNameError,
    EmptyRegionError,
    EngineBuilder,
    EngineConfig,
    InvalidFilterError,
    NotFoundError,
    Partition,
    RecordSet,
    RestoredPartition,
    SheetServiceError,
    create_filter,
    polygon_from,
)
from geofence_partition.adapters import InMemorySheetService, RecordingMapCanvas

WEST = [(-1, -1), (-1, 1), (1, 1), (1, -1)]
WIDE_WEST = [(-2, -2), (-2, 2), (2, 2), (2, -2)]
NOWHERE = [(50, 50), (50, 51), (51, 51), (51, 50)]


class RecordingView:
    """PartitionView that keeps every notification."""

    def __init__(self):
        self.added = []
        self.updated = []
        self.removed = []
        self.counters = []

    def partition_added(self, partition, member_count):
        self.added.append((partition.id, member_count))

    def partition_updated(self, partition, member_count):
        self.updated.append((partition.id, member_count))

    def partition_removed(self, partition_id):
        self.removed.append(partition_id)

    def counters_changed(self, counters):
        self.counters.append(counters)


def make_engine(rows, config=None):
    records = RecordSet.load(rows)
    sheets = InMemorySheetService()
    canvas = RecordingMapCanvas()
    view = RecordingView()
    builder = (
        EngineBuilder()
        .with_records(records)
        .with_sheet_service(sheets)
        .with_canvas(canvas)
        .with_view(view)
    )
    if config is not None:
        builder = builder.with_config(config)
    return builder.build(), sheets, canvas, view


def two_records():
    return make_engine([
        {"RecId": "r1", "Lat": 0, "Long": 0},
        {"RecId": "r2", "Lat": 10, "Long": 10},
    ])


def three_in_a_row(config=None):
    return make_engine([
        {"RecId": "r1", "Lat": 0, "Long": 0},
        {"RecId": "r2", "Lat": 0, "Long": 2},
        {"RecId": "r3", "Lat": 0, "Long": 4},
    ], config)


def create(engine, vertices, name):
    candidate = engine.begin_create(vertices)
    return engine.confirm_create(candidate.polygon, name, candidate.records)


# ----------------------------------------------------------------------
# Creation
# ----------------------------------------------------------------------


def test_create_partition_scenario():
    engine, sheets, canvas, view = two_records()

    candidate = engine.begin_create(WEST)
    assert candidate.state == CandidateState.AWAITING_NAME
    assert candidate.count == 1

    partition = engine.confirm_create(candidate.polygon, "West", candidate.records)

    assert engine.counters() == Counters(total=2, assigned=1, unassigned=1, percent_assigned=50)
    assert engine.is_hidden("r1")
    assert not engine.is_hidden("r2")
    assert [p.id for p in engine.partitions()] == [partition.id]
    assert partition.name == "West"
    assert partition.color.startswith("#")
    assert view.added == [(partition.id, 1)]
    assert view.counters[-1].percent_assigned == 50


def test_create_persists_geometry_then_child_with_filter():
    engine, sheets, canvas, _ = two_records()

    partition = create(engine, WEST, "West")

    assert sheets.call_names() == ["persist_geometry", "create_child_from_filter"]
    _, args = sheets.calls[1]
    assert args == ("West", create_filter(partition.geometry_id))
    assert sheets.has_child(partition.id)
    assert sheets.get_geometry(partition.geometry_id) == WEST


def test_create_draws_overlay_and_refreshes_cluster_view():
    engine, _, canvas, _ = two_records()

    partition = create(engine, WEST, "West")

    handle = engine.overlay_of(partition.id)
    assert canvas.polygons[handle]["color"] == partition.color
    assert [op.operation for op in canvas.operations()] == [
        "draw_polygon", "on_polygon_edited", "update_cluster_view",
    ]
    assert canvas.cluster_points == [(10.0, 10.0)]


def test_empty_region_leaves_state_unchanged():
    engine, sheets, canvas, view = two_records()

    with pytest.raises(EmptyRegionError):
        engine.begin_create(NOWHERE)

    assert len(engine) == 0
    assert engine.counters() == Counters(2, 0, 2, 0)
    assert sheets.calls == []
    assert canvas.calls == []
    assert view.added == []


@pytest.mark.parametrize("name", [None, "", "   "])
def test_empty_name_rejected_without_side_effects(name):
    engine, sheets, _, _ = two_records()
    candidate = engine.begin_create(WEST)

    with pytest.raises(EmptyNameError):
        engine.confirm_create(candidate.polygon, name, candidate.records)

    assert len(engine) == 0
    assert engine.counters().assigned == 0
    assert sheets.calls == []


def test_name_is_trimmed():
    engine, _, _, _ = two_records()

    partition = create(engine, WEST, "  West  ")

    assert partition.name == "West"


def test_failed_child_creation_is_all_or_nothing():
    engine, sheets, canvas, view = two_records()
    sheets.fail_on("create_child_from_filter")
    candidate = engine.begin_create(WEST)

    with pytest.raises(SheetServiceError) as exc_info:
        engine.confirm_create(candidate.polygon, "West", candidate.records)

    assert exc_info.value.operation == "create_child_from_filter"
    assert len(engine) == 0
    assert engine.counters().assigned == 0
    assert canvas.calls == []
    assert view.added == []
    # geometry persisted before the failure is cleaned up
    assert sheets.call_names()[-1] == "delete_geometry"
    assert not sheets.has_geometry("geo-1")


def test_failed_geometry_persist_stops_before_child():
    engine, sheets, _, _ = two_records()
    sheets.fail_on("persist_geometry")

    with pytest.raises(SheetServiceError):
        create(engine, WEST, "West")

    assert sheets.call_names() == ["persist_geometry"]
    assert len(engine) == 0


def test_handle_drawn_polygon_fills_user_overlay():
    engine, _, canvas, _ = two_records()
    handle = canvas.user_draws(WEST)

    partition = engine.handle_drawn_polygon(handle, WEST, lambda candidate: "West")

    assert engine.overlay_of(partition.id) == handle
    assert canvas.polygons[handle]["color"] == partition.color
    assert canvas.operations("draw_polygon") == []


def test_handle_drawn_polygon_removes_overlay_on_empty_region():
    engine, _, canvas, _ = two_records()
    handle = canvas.user_draws(NOWHERE)
    asked = []

    with pytest.raises(EmptyRegionError):
        engine.handle_drawn_polygon(handle, NOWHERE, asked.append)

    assert asked == []
    assert handle not in canvas.polygons


def test_handle_drawn_polygon_removes_overlay_on_cancel():
    engine, _, canvas, _ = two_records()
    handle = canvas.user_draws(WEST)

    with pytest.raises(EmptyNameError):
        engine.handle_drawn_polygon(handle, WEST, lambda candidate: None)

    assert handle not in canvas.polygons
    assert len(engine) == 0


def test_handle_drawn_polygon_removes_overlay_on_degenerate_shape():
    engine, sheets, canvas, _ = two_records()
    line = [(0, 0), (1, 1)]
    handle = canvas.user_draws(line)

    with pytest.raises(ValueError):
        engine.handle_drawn_polygon(handle, line, lambda candidate: "Line")

    assert handle not in canvas.polygons
    assert sheets.calls == []


def test_duplicate_child_id_cleans_up_host_resources():
    engine, sheets, canvas, view = two_records()
    existing = Partition(id="child-1", name="Restored", geometry_id="geo-seed", polygon=polygon_from(WIDE_WEST))
    engine.apply_reconciled([RestoredPartition(partition=existing, record_count=1)])
    before = engine.counters()
    handle = canvas.user_draws(WEST)

    with pytest.raises(DuplicateIdError):
        engine.handle_drawn_polygon(handle, WEST, lambda candidate: "West")

    assert engine.partitions() == [existing]
    assert engine.counters() == before
    assert sheets.call_names()[-2:] == ["delete_child", "delete_geometry"]
    assert not sheets.has_geometry("geo-1")
    assert handle not in canvas.polygons
    assert view.added == [("child-1", 1)]


def test_create_filtered_child():
    engine, sheets, _, _ = two_records()

    child_id = engine.create_filtered_child(" Northern ", "Lat > 5")

    assert sheets.has_child(child_id)
    assert sheets.calls[-1] == ("create_child_from_filter", ("Northern", "Lat > 5"))
    assert len(engine) == 0
    assert engine.counters().assigned == 0


def test_create_filtered_child_validation_order():
    engine, sheets, _, _ = two_records()

    with pytest.raises(InvalidFilterError, match="Invalid Filter"):
        engine.create_filtered_child("", "  ")
    with pytest.raises(EmptyNameError, match="Invalid Name"):
        engine.create_filtered_child("  ", "Lat > 5")
    assert sheets.calls == []


# ----------------------------------------------------------------------
# Edit
# ----------------------------------------------------------------------


def test_edit_grow_and_shrink():
    engine, sheets, _, view = three_in_a_row()
    partition = create(engine, WEST, "West")
    grown = [(-1, -1), (-1, 3), (1, 3), (1, -1)]
    moved = [(-1, 1.5), (-1, 3), (1, 3), (1, 1.5)]

    assert engine.edit(partition.id, grown) == 2
    assert engine.is_hidden("r1") and engine.is_hidden("r2")
    assert engine.counters().unassigned == 1

    assert engine.edit(partition.id, moved) == 1
    assert not engine.is_hidden("r1")
    assert engine.is_hidden("r2")
    assert engine.counters() == Counters(3, 1, 2, 33)

    assert engine.partition(partition.id).polygon == polygon_from(moved)
    assert sheets.get_geometry(partition.geometry_id) == moved
    assert view.updated[-1] == (partition.id, 1)


def test_edit_keeps_geometry_id():
    engine, sheets, _, _ = three_in_a_row()
    partition = create(engine, WEST, "West")
    geometry_id = partition.geometry_id

    engine.edit(partition.id, WIDE_WEST)

    assert engine.partition(partition.id).geometry_id == geometry_id
    assert sheets.calls[-1][0] == "update_geometry"
    assert sheets.calls[-1][1][0] == geometry_id


def test_edit_failure_leaves_state_unchanged():
    engine, sheets, _, _ = three_in_a_row()
    partition = create(engine, WEST, "West")
    sheets.fail_on("update_geometry")

    with pytest.raises(SheetServiceError):
        engine.edit(partition.id, [(-1, -1), (-1, 3), (1, 3), (1, -1)])

    assert engine.partition(partition.id).polygon == polygon_from(WEST)
    assert not engine.is_hidden("r2")


def test_edit_unknown_partition():
    engine, _, _, _ = three_in_a_row()

    with pytest.raises(NotFoundError):
        engine.edit("nope", WEST)


def test_overlay_edit_on_canvas_updates_partition():
    engine, _, canvas, _ = three_in_a_row()
    partition = create(engine, WEST, "West")
    handle = engine.overlay_of(partition.id)

    canvas.edit(handle, [(-1, -1), (-1, 5), (1, 5), (1, -1)])

    assert engine.member_count(partition.id) == 3
    assert engine.counters().unassigned == 0


def test_rejected_overlay_edit_is_logged_not_raised():
    engine, sheets, canvas, _ = three_in_a_row()
    partition = create(engine, WEST, "West")
    sheets.fail_on("update_geometry")

    canvas.edit(engine.overlay_of(partition.id), [(-1, -1), (-1, 5), (1, 5), (1, -1)])

    assert engine.member_count(partition.id) == 1
    assert engine.counters().unassigned == 2


# ----------------------------------------------------------------------
# Delete
# ----------------------------------------------------------------------


def test_delete_reveals_members_and_removes_everything():
    engine, sheets, canvas, view = two_records()
    partition = create(engine, WEST, "West")
    handle = engine.overlay_of(partition.id)

    removed = engine.delete(partition.id)

    assert removed.id == partition.id
    assert len(engine) == 0
    assert engine.counters() == Counters(2, 0, 2, 0)
    assert sheets.call_names()[-2:] == ["delete_child", "delete_geometry"]
    assert not sheets.has_child(partition.id)
    assert not sheets.has_geometry(partition.geometry_id)
    assert handle not in canvas.polygons
    assert view.removed == [partition.id]


def test_failed_delete_keeps_partition():
    engine, sheets, canvas, _ = two_records()
    partition = create(engine, WEST, "West")
    sheets.fail_on("delete_child")

    with pytest.raises(SheetServiceError):
        engine.delete(partition.id)

    assert partition.id in [p.id for p in engine.partitions()]
    assert engine.is_hidden("r1")
    assert engine.overlay_of(partition.id) in canvas.polygons


def test_delete_retry_after_geometry_delete_failed():
    engine, sheets, _, _ = two_records()
    partition = create(engine, WEST, "West")
    sheets.fail_on("delete_geometry")

    with pytest.raises(SheetServiceError) as exc_info:
        engine.delete(partition.id)

    assert exc_info.value.operation == "delete_geometry"
    assert not sheets.has_child(partition.id)
    assert engine.is_hidden("r1")
    assert len(engine) == 1

    sheets.clear_failures()
    engine.delete(partition.id)

    assert len(engine) == 0
    assert not engine.is_hidden("r1")
    assert not sheets.has_geometry(partition.geometry_id)
    assert sheets.call_names().count("delete_child") == 1


def test_delete_overlapping_partition_reveals_shared_records():
    engine, _, _, _ = two_records()
    first = create(engine, WEST, "West")
    create(engine, WIDE_WEST, "Wider West")
    assert engine.counters().assigned == 1

    engine.delete(first.id)

    # r1 is still inside "Wider West" but the single hidden flag was cleared
    assert not engine.is_hidden("r1")
    assert engine.counters().assigned == 0


def test_delete_unknown_partition():
    engine, sheets, _, _ = two_records()

    with pytest.raises(NotFoundError):
        engine.delete("nope")
    assert sheets.calls == []


# ----------------------------------------------------------------------
# Visibility
# ----------------------------------------------------------------------


def test_dimming_does_not_touch_counters():
    engine, _, canvas, _ = two_records()
    engine.load_markers()
    partition = create(engine, WEST, "West")
    before = engine.counters()

    engine.set_partition_visibility(partition.id, False)

    assert engine.counters() == before
    assert not engine.partition(partition.id).visible
    assert canvas.polygons[engine.overlay_of(partition.id)]["opacity"] == 0.2
    assert canvas.marker_opacity["r1"] == 0.2
    assert canvas.marker_opacity["r2"] == 1.0

    engine.set_partition_visibility(partition.id, True)

    assert engine.counters() == before
    assert canvas.marker_opacity["r1"] == 1.0


def test_dimmed_opacity_from_config():
    engine, _, canvas, _ = three_in_a_row(EngineConfig(dimmed_opacity=0.5))
    partition = create(engine, WEST, "West")

    engine.set_partition_visibility(partition.id, False)
    engine.edit(partition.id, [(-1, -1), (-1, 3), (1, 3), (1, -1)])

    assert canvas.marker_opacity["r2"] == 0.5

    engine.delete(partition.id)

    assert canvas.marker_opacity["r1"] == 1.0
    assert canvas.marker_opacity["r2"] == 1.0


# ----------------------------------------------------------------------
# Markers / builder
# ----------------------------------------------------------------------


def test_load_markers():
    engine, _, canvas, view = two_records()

    engine.load_markers()

    assert set(canvas.markers) == {"r1", "r2"}
    assert len(canvas.cluster_points) == 2
    assert view.counters[-1] == Counters(2, 0, 2, 0)


def test_builder_requires_collaborators():
    records = RecordSet.load([])

    with pytest.raises(ValueError, match="Record set"):
        EngineBuilder().build()
    with pytest.raises(ValueError, match="Sheet service"):
        EngineBuilder().with_records(records).build()
    with pytest.raises(ValueError, match="Map canvas"):
        EngineBuilder().with_records(records).with_sheet_service(InMemorySheetService()).build()


def test_empty_working_set_counters():
    engine, _, _, _ = make_engine([])

    assert engine.counters() == Counters(0, 0, 0, 0)
    with pytest.raises(EmptyRegionError):
        engine.begin_create(WEST)
