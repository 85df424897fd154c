"""
Record Set Module
=================

The immutable working set of geolocated records for one sheet.

Design:
- Loaded once, never mutated
- Coordinates held in numpy arrays for one vectorised scan per query
- Rows whose coordinates do not parse are dropped, never surfaced
"""

import math
import numpy as np
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence

from geofence_partition.geometry.containment import contains_points
from geofence_partition.geometry.shapes import LatLng, Polygon
from geofence_partition.logging import LogEvent, create_logger

logger = create_logger("records")


@dataclass(frozen=True)
class Record:
    """A geolocated record; ids are unique within a RecordSet."""

    id: str
    lat: float
    long: float

    @property
    def point(self) -> LatLng:
        return LatLng(self.lat, self.long)


class RecordSet:
    """
    Fixed collection of records answering "which records lie inside P".

    Every query is a linear scan. Queries run on draw-complete, edit-complete
    and deletion, never per frame.

    Usage:
        records = RecordSet.from_columns(sheet_contents)
        ids = records.ids_in(polygon)
        assert len(ids) == records.count_in(polygon)
    """

    def __init__(self, records: Sequence[Record]):
        self._records: List[Record] = list(records)
        self._by_id: Dict[str, Record] = {}
        for record in self._records:
            if record.id in self._by_id:
                raise ValueError(f"Duplicate record id '{record.id}'")
            self._by_id[record.id] = record

        self._ids = np.array([r.id for r in self._records], dtype=object)
        self._lats = np.array([r.lat for r in self._records], dtype=np.float64)
        self._longs = np.array([r.long for r in self._records], dtype=np.float64)

    @classmethod
    def load(
        cls,
        raw_rows: Iterable[Mapping[str, Any]],
        id_field: str = "RecId",
        lat_field: str = "Lat",
        long_field: str = "Long",
    ) -> "RecordSet":
        """
        Parse host rows into a RecordSet.

        Rows whose lat/long fail numeric parse (or are not finite), or that
        carry no id, are dropped from the working set entirely.

        Args:
            raw_rows: Iterable of row mappings
            id_field: Column holding the record id
            lat_field: Column holding latitude
            long_field: Column holding longitude

        Raises:
            ValueError: If two kept rows share an id
        """
        records = []
        dropped = 0

        for row in raw_rows:
            record = _parse_row(row, id_field, lat_field, long_field)
            if record is None:
                dropped += 1
                continue
            records.append(record)

        if dropped:
            logger.debug(
                event=LogEvent.RECORDS_DROPPED,
                message="Dropped rows with unparseable coordinates",
                metadata={'dropped': dropped}
            )

        record_set = cls(records)
        logger.info(
            event=LogEvent.RECORDS_LOADED,
            message="Loaded working set",
            metadata={'records': len(record_set)}
        )
        return record_set

    @classmethod
    def from_columns(
        cls,
        contents: Mapping[str, Sequence[Any]],
        id_field: str = "RecId",
        lat_field: str = "Lat",
        long_field: str = "Long",
    ) -> "RecordSet":
        """
        Load from columnar sheet contents, e.g.
        ``{"RecId": [...], "Lat": [...], "Long": [...]}``.
        """
        try:
            columns = (contents[id_field], contents[lat_field], contents[long_field])
        except KeyError as e:
            raise ValueError(f"Sheet contents missing column: {e}")

        rows = (
            {id_field: rec_id, lat_field: lat, long_field: long}
            for rec_id, lat, long in zip(*columns)
        )
        return cls.load(rows, id_field=id_field, lat_field=lat_field, long_field=long_field)

    def mask_in(self, polygon: Polygon) -> np.ndarray:
        """Boolean mask over the working set, True = inside polygon."""
        return contains_points(polygon, self._lats, self._longs)

    def records_in(self, polygon: Polygon) -> List[Record]:
        mask = self.mask_in(polygon)
        return [self._records[i] for i in np.flatnonzero(mask)]

    def ids_in(self, polygon: Polygon) -> List[str]:
        return list(self._ids[self.mask_in(polygon)])

    def count_in(self, polygon: Polygon) -> int:
        return int(np.count_nonzero(self.mask_in(polygon)))

    def get(self, record_id: str) -> Optional[Record]:
        return self._by_id.get(record_id)

    def points(self, record_ids: Optional[Iterable[str]] = None) -> List[LatLng]:
        """Coordinates of the given records (all records when omitted)."""
        if record_ids is None:
            return [r.point for r in self._records]
        return [self._by_id[rid].point for rid in record_ids if rid in self._by_id]

    @property
    def ids(self) -> List[str]:
        return [r.id for r in self._records]

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[Record]:
        return iter(self._records)

    def __contains__(self, record_id: object) -> bool:
        return record_id in self._by_id

    def __repr__(self) -> str:
        return f"RecordSet(records={len(self._records)})"


def _parse_row(
    row: Mapping[str, Any],
    id_field: str,
    lat_field: str,
    long_field: str,
) -> Optional[Record]:
    rec_id = row.get(id_field)
    if rec_id is None or str(rec_id) == "":
        return None
    try:
        lat = float(row.get(lat_field))
        long = float(row.get(long_field))
    except (TypeError, ValueError):
        return None
    if not (math.isfinite(lat) and math.isfinite(long)):
        return None
    return Record(id=str(rec_id), lat=lat, long=long)
