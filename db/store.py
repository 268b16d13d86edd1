"""
Record Store

The two-table row store the tracker core reads and writes. The core only
sees the RecordStore interface; SqlRecordStore implements it on the
peewee tables in db.models.records.

Rows are addressed by 1-based position. Deleting a row shifts the rows
below it up by one, exactly like deleting a spreadsheet row, so callers
removing several rows must go from the highest position down.
"""

import uuid
from abc import ABC, abstractmethod
from contextlib import AbstractContextManager, contextmanager
from typing import Iterator, Optional

from core.logging import get_logger
from db.base import connection, db
from db.models.records import BeatmapRowBase, DataRow, HistoryRow
from db.models.run_lock import RECORD_TABLES_LOCK, RunLock
from db.models.tracker_meta import TrackerMeta
from schemas.records import BeatmapRecord, HistoryEntry


class RecordStore(ABC):
    """Abstract Data/History row store."""

    # --- Data table -------------------------------------------------------

    @abstractmethod
    def data_rows(self) -> list[tuple[int, BeatmapRecord]]:
        """All Data rows in position order."""

    @abstractmethod
    def get_data_row(self, row: int) -> Optional[BeatmapRecord]:
        """The record at `row`, or None past the end."""

    @abstractmethod
    def set_data_row(self, row: int, record: BeatmapRecord) -> None:
        """Overwrite the record columns at `row`, padding with blank rows if needed."""

    @abstractmethod
    def append_data_row(
        self, record: BeatmapRecord, source_url: Optional[str] = None
    ) -> int:
        """Add a row after the last one and return its position."""

    @abstractmethod
    def delete_data_row(self, row: int) -> None:
        """Remove the row at `row` and shift later rows up."""

    @abstractmethod
    def last_data_row(self) -> int:
        """Position of the last Data row (0 when empty)."""

    @abstractmethod
    def tracking_inputs(self) -> list[tuple[int, Optional[str]]]:
        """(row, tracking link) for every Data row."""

    @abstractmethod
    def existing_beatmap_ids(self) -> set[int]:
        """Beatmap ids currently in the Data table."""

    @abstractmethod
    def sort_data(self) -> None:
        """Reorder Data by star rating ascending, blank rows last."""

    # --- History table ----------------------------------------------------

    @abstractmethod
    def history_rows(self) -> list[tuple[int, HistoryEntry]]:
        """All History rows in position order."""

    @abstractmethod
    def append_history_row(self, entry: HistoryEntry) -> int:
        """Add a History row and return its position."""

    @abstractmethod
    def sort_history(self) -> None:
        """Reorder History by score date, then star rating, both ascending."""

    # --- Side channel -----------------------------------------------------

    @abstractmethod
    def get_meta(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    def set_meta(self, key: str, value: str) -> None:
        pass

    @abstractmethod
    def transaction(self) -> AbstractContextManager:
        """Scope in which all writes commit or roll back together."""


def _sort_key_none_last(*values):
    """Tuple key that orders None after every real value."""
    return tuple((value is None, value) for value in values)


class SqlRecordStore(RecordStore):
    """RecordStore on the peewee proxy database."""

    def __init__(self):
        self.log = get_logger("record_store")

    # --- helpers ----------------------------------------------------------

    @staticmethod
    def _last_row(model: type[BeatmapRowBase]) -> int:
        last = model.select(model.row).order_by(model.row.desc()).first()
        return last.row if last else 0

    @staticmethod
    def _renumber(model: type[BeatmapRowBase], ordered: list[BeatmapRowBase]) -> None:
        with db.atomic():
            for position, instance in enumerate(ordered, start=1):
                if instance.row != position:
                    model.update(row=position).where(model.id == instance.id).execute()

    # --- Data table -------------------------------------------------------

    def data_rows(self) -> list[tuple[int, BeatmapRecord]]:
        return [(r.row, r.to_record()) for r in DataRow.select().order_by(DataRow.row)]

    def get_data_row(self, row: int) -> Optional[BeatmapRecord]:
        instance = DataRow.get_or_none(DataRow.row == row)
        return instance.to_record() if instance else None

    def set_data_row(self, row: int, record: BeatmapRecord) -> None:
        if row < 1:
            raise ValueError(f"Row positions start at 1, got {row}")

        values = DataRow.values_from_record(record)
        with db.atomic():
            updated = DataRow.update(**values).where(DataRow.row == row).execute()
            if updated:
                return
            # Writing past the end leaves blank rows in between
            for blank_row in range(self._last_row(DataRow) + 1, row):
                DataRow.create(row=blank_row)
            DataRow.create(row=row, **values)

    def append_data_row(
        self, record: BeatmapRecord, source_url: Optional[str] = None
    ) -> int:
        with db.atomic():
            row = self._last_row(DataRow) + 1
            DataRow.create(row=row, source_url=source_url, **DataRow.values_from_record(record))
        return row

    def delete_data_row(self, row: int) -> None:
        with db.atomic():
            deleted = DataRow.delete().where(DataRow.row == row).execute()
            if not deleted:
                raise IndexError(f"Data row {row} does not exist")
            # Shift rows up one at a time, lowest first, so no two rows
            # ever share a position
            below = list(
                DataRow.select(DataRow.id, DataRow.row)
                .where(DataRow.row > row)
                .order_by(DataRow.row)
            )
            for instance in below:
                DataRow.update(row=instance.row - 1).where(DataRow.id == instance.id).execute()
        self.log.debug("data_row_deleted", row=row)

    def last_data_row(self) -> int:
        return self._last_row(DataRow)

    def tracking_inputs(self) -> list[tuple[int, Optional[str]]]:
        return [
            (r.row, r.source_url)
            for r in DataRow.select(DataRow.row, DataRow.source_url).order_by(DataRow.row)
        ]

    def existing_beatmap_ids(self) -> set[int]:
        return {
            r.beatmap_id
            for r in DataRow.select(DataRow.beatmap_id).where(DataRow.beatmap_id.is_null(False))
        }

    def sort_data(self) -> None:
        ordered = sorted(
            DataRow.select().order_by(DataRow.row),
            key=lambda r: _sort_key_none_last(r.star_rating),
        )
        self._renumber(DataRow, ordered)

    # --- History table ----------------------------------------------------

    def history_rows(self) -> list[tuple[int, HistoryEntry]]:
        return [(r.row, r.to_entry()) for r in HistoryRow.select().order_by(HistoryRow.row)]

    def append_history_row(self, entry: HistoryEntry) -> int:
        with db.atomic():
            row = self._last_row(HistoryRow) + 1
            HistoryRow.create(row=row, **HistoryRow.values_from_entry(entry))
        return row

    def sort_history(self) -> None:
        ordered = sorted(
            HistoryRow.select().order_by(HistoryRow.row),
            key=lambda r: _sort_key_none_last(r.score_date, r.star_rating),
        )
        self._renumber(HistoryRow, ordered)

    # --- Side channel -----------------------------------------------------

    def get_meta(self, key: str) -> Optional[str]:
        return TrackerMeta.get_value(key)

    def set_meta(self, key: str, value: str) -> None:
        TrackerMeta.set_value(key, value)

    def transaction(self) -> AbstractContextManager:
        return db.atomic()


@contextmanager
def exclusive_access(operation: str, ttl_seconds: int) -> Iterator[None]:
    """
    Connection, run lock and transaction for a one-off store operation.

    Pipelines get the same guarantees from BasePipeline.run_sync.

    Raises:
        RunLockHeldError: If a run currently holds the record tables
    """
    holder = f"{operation}:{uuid.uuid4()}"
    with connection():
        with RunLock.hold(RECORD_TABLES_LOCK, holder, ttl_seconds):
            with db.atomic():
                yield
