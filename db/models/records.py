"""
Data and History Tables

Position-addressed row tables backing the record store. `row` is the
1-based position of a row in its table; positions stay contiguous, so
deleting a row shifts every later row up by one (see db.store).

Linked cells are split into label and url columns.
"""

from datetime import datetime
from typing import Any, Optional

from peewee import (
    AutoField,
    CharField,
    DateField,
    DateTimeField,
    FloatField,
    IntegerField,
    TextField,
)

from db.base import BaseModel
from schemas.records import BeatmapRecord, HistoryEntry, Link

_LINK_COLUMNS = ("beatmap", "mapper", "player")

_PLAIN_COLUMNS = (
    "background_url",
    "star_rating",
    "length_seconds",
    "bpm",
    "cs",
    "ar",
    "od",
    "hp",
    "beatmap_id",
    "beatmapset_id",
    "ranked_date",
    "score_date",
    "rank",
    "mods",
    "current_combo",
    "max_combo",
)


class BeatmapRowBase(BaseModel):
    """Columns shared by the Data and History tables."""

    id = AutoField(primary_key=True)
    row = IntegerField(index=True)

    background_url = CharField(max_length=255, null=True)
    beatmap_label = TextField(null=True)
    beatmap_url = CharField(max_length=255, null=True)
    star_rating = FloatField(null=True)
    length_seconds = IntegerField(null=True)
    bpm = FloatField(null=True)
    cs = FloatField(null=True)
    ar = FloatField(null=True)
    od = FloatField(null=True)
    hp = FloatField(null=True)
    mapper_label = CharField(max_length=100, null=True)
    mapper_url = CharField(max_length=255, null=True)
    beatmap_id = IntegerField(null=True, index=True)
    beatmapset_id = IntegerField(null=True)
    ranked_date = DateField(null=True)
    player_label = CharField(max_length=100, null=True)
    player_url = CharField(max_length=255, null=True)
    score_date = DateField(null=True)
    rank = CharField(max_length=4, null=True)
    mods = CharField(max_length=40, null=True)
    current_combo = IntegerField(null=True)
    max_combo = IntegerField(null=True)

    updated_at = DateTimeField(default=datetime.utcnow)

    def save(self, *args, **kwargs):
        """Override save to auto-update updated_at timestamp."""
        self.updated_at = datetime.utcnow()
        return super().save(*args, **kwargs)

    def _column_values(self) -> dict[str, Any]:
        values: dict[str, Any] = {name: getattr(self, name) for name in _PLAIN_COLUMNS}
        for name in _LINK_COLUMNS:
            label = getattr(self, f"{name}_label")
            url = getattr(self, f"{name}_url")
            values[name] = Link(label=label or "", url=url) if url else None
        return values

    @staticmethod
    def _field_values(record) -> dict[str, Any]:
        values: dict[str, Any] = {name: getattr(record, name) for name in _PLAIN_COLUMNS}
        for name in _LINK_COLUMNS:
            link: Optional[Link] = getattr(record, name)
            values[f"{name}_label"] = link.label if link else None
            values[f"{name}_url"] = link.url if link else None
        return values


class DataRow(BeatmapRowBase):
    """
    A row of the Data table: one tracked beatmap without an FC.

    Attributes:
        source_url: The tracking input, i.e. the link the row was created
            from. Kept when the record columns are rewritten.
        error_message: Set only on error placeholder rows
    """

    days_ranked = IntegerField(null=True)
    percent_fc = FloatField(null=True)
    error_message = CharField(max_length=255, null=True)
    source_url = CharField(max_length=255, null=True)

    class Meta:
        table_name = "data_rows"

    def __repr__(self) -> str:
        return f"<DataRow(row={self.row}, beatmap_id={self.beatmap_id})>"

    def to_record(self) -> BeatmapRecord:
        return BeatmapRecord(
            **self._column_values(),
            days_ranked=self.days_ranked,
            percent_fc=self.percent_fc,
            error_message=self.error_message,
        )

    @classmethod
    def values_from_record(cls, record: BeatmapRecord) -> dict[str, Any]:
        values = cls._field_values(record)
        values["days_ranked"] = record.days_ranked
        values["percent_fc"] = record.percent_fc
        values["error_message"] = record.error_message
        return values


class HistoryRow(BeatmapRowBase):
    """A row of the History table: one beatmap that has been FC'd."""

    days_to_fc = IntegerField(null=True)

    class Meta:
        table_name = "history_rows"

    def __repr__(self) -> str:
        return f"<HistoryRow(row={self.row}, beatmap_id={self.beatmap_id})>"

    def to_entry(self) -> HistoryEntry:
        return HistoryEntry(**self._column_values(), days_to_fc=self.days_to_fc)

    @classmethod
    def values_from_entry(cls, entry: HistoryEntry) -> dict[str, Any]:
        values = cls._field_values(entry)
        values["days_to_fc"] = entry.days_to_fc
        return values
