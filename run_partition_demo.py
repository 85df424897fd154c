"""
Partition Engine Demo
=====================

Runs the partition engine end to end against the in-memory collaborators:

1. Load the working set (sheet contents JSON, or a built-in sample)
2. Reconcile one previously persisted partition and one plain child
3. Draw, name and commit a new partition
4. Edit its boundary, dim it, delete it

Usage:
    python run_partition_demo.py
    python run_partition_demo.py --config engine.example.yaml --contents sheet.json
"""

import argparse
import json
from pathlib import Path

from geofence_partition import (
    EngineBuilder,
    EngineConfig,
    RecordSet,
    ReconciliationCoordinator,
    create_filter,
    polygon_from,
)
from geofence_partition.adapters import InMemorySheetService, RecordingMapCanvas

SAMPLE_CONTENTS = {
    "RecId": ["r1", "r2", "r3", "r4", "r5", "r6"],
    "Lat": ["47.610", "47.612", "47.615", "47.620", "47.622", "not-a-number"],
    "Long": ["-122.330", "-122.332", "-122.335", "-122.340", "-122.342", "-122.300"],
}

PERSISTED_VERTICES = [(47.605, -122.338), (47.605, -122.328), (47.6135, -122.328), (47.6135, -122.338)]
DRAWN_VERTICES = [(47.614, -122.345), (47.614, -122.333), (47.625, -122.333), (47.625, -122.345)]
EDITED_VERTICES = [(47.618, -122.345), (47.618, -122.333), (47.625, -122.333), (47.625, -122.345)]


def parse_args():
    parser = argparse.ArgumentParser(description="Geofence partition engine demo")
    parser.add_argument("--config", type=Path, help="EngineConfig YAML file")
    parser.add_argument("--contents", type=Path, help="Columnar sheet contents JSON")
    return parser.parse_args()


def main():
    args = parse_args()
    config = EngineConfig.from_yaml(args.config) if args.config else EngineConfig()

    contents = SAMPLE_CONTENTS
    if args.contents:
        with open(args.contents) as f:
            contents = json.load(f)

    records = RecordSet.from_columns(
        contents,
        id_field=config.id_field,
        lat_field=config.lat_field,
        long_field=config.long_field,
    )

    sheets = InMemorySheetService(count_for=lambda v: records.count_in(polygon_from(v)))
    sheets.add_geometry("geo-seed", "Downtown", PERSISTED_VERTICES)
    sheets.add_child("child-seed", "Downtown", create_filter("geo-seed"))
    sheets.add_child("child-plain", "Everyone", "Lat > 0")

    canvas = RecordingMapCanvas()
    engine = (
        EngineBuilder()
        .with_records(records)
        .with_sheet_service(sheets)
        .with_canvas(canvas)
        .with_config(config)
        .build()
    )

    print("🗺️  Loading markers and reconciling...")
    engine.load_markers()
    report = ReconciliationCoordinator(engine, sheets, canvas).reconcile()
    print(f"  Restored: {len(report.restored)}, missing: {report.missing}, failed: {report.failed}")
    print(f"  {engine.counters()}")

    print("\n✏️  Drawing a new partition...")
    handle = canvas.user_draws(DRAWN_VERTICES)
    partition = engine.handle_drawn_polygon(handle, DRAWN_VERTICES, lambda candidate: "North")
    print(f"  Created '{partition.name}' ({partition.id}) with {engine.member_count(partition.id)} records")
    print(f"  {engine.counters()}")

    print("\n📐 Editing its boundary...")
    canvas.edit(handle, EDITED_VERTICES)
    print(f"  Now {engine.member_count(partition.id)} records")
    print(f"  {engine.counters()}")

    engine.set_partition_visibility(partition.id, False)

    print("\n🗑️  Deleting it...")
    engine.delete(partition.id)
    print(f"  {engine.counters()}")

    print("\n✓ Demo completed")
    print(json.dumps(engine.counters().to_dict(), indent=2))


if __name__ == "__main__":
    main()
