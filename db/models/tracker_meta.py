"""
Tracker Meta Table

Small key-value side channel: the "Last Updated" marker and whether the
daily schedule is installed.
"""

from datetime import datetime
from typing import Optional

from peewee import CharField, DateTimeField, TextField

from db.base import BaseModel

LAST_UPDATED_KEY = "last_updated"
SCHEDULE_INSTALLED_KEY = "schedule_installed"


class TrackerMeta(BaseModel):
    key = CharField(max_length=50, primary_key=True)
    value = TextField()
    updated_at = DateTimeField(default=datetime.utcnow)

    class Meta:
        table_name = "tracker_meta"

    def __repr__(self) -> str:
        return f"<TrackerMeta(key={self.key}, value={self.value!r})>"

    @classmethod
    def get_value(cls, key: str) -> Optional[str]:
        meta = cls.get_or_none(cls.key == key)
        return meta.value if meta else None

    @classmethod
    def set_value(cls, key: str, value: str) -> None:
        """Insert or overwrite a value."""
        (
            cls.insert(key=key, value=value, updated_at=datetime.utcnow())
            .on_conflict(
                conflict_target=[cls.key],
                preserve=[cls.value, cls.updated_at],
            )
            .execute()
        )
