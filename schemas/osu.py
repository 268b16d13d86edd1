"""
osu! API v1 payload models

The v1 API returns every value as a string ("max_combo": "1024") and
timestamps as "YYYY-MM-DD HH:MM:SS" in UTC. These models coerce both.
"""

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

OSU_DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"


def parse_osu_datetime(value) -> Optional[datetime]:
    """Parse a v1 timestamp as an aware UTC datetime; None for blanks."""
    if value is None or isinstance(value, datetime):
        if isinstance(value, datetime) and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value
    text = str(value).strip()
    if not text:
        return None
    return datetime.strptime(text, OSU_DATETIME_FORMAT).replace(tzinfo=timezone.utc)


class Score(BaseModel):
    """One leaderboard entry from get_scores."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    user_id: int = 0
    username: str = ""
    combo: int = Field(default=0, alias="maxcombo")
    rank: str = ""
    mods: int = Field(default=0, alias="enabled_mods")
    played_at: Optional[datetime] = Field(default=None, alias="date")

    @field_validator("played_at", mode="before")
    @classmethod
    def _parse_date(cls, v):
        try:
            return parse_osu_datetime(v)
        except ValueError:
            # Some leaderboards report ranks without a usable date
            return None

    @field_validator("user_id", "combo", "mods", mode="before")
    @classmethod
    def _blank_int(cls, v):
        if v is None or (isinstance(v, str) and not v.strip()):
            return 0
        return v


class BeatmapMetadata(BaseModel):
    """One beatmap from get_beatmaps."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    beatmap_id: int
    beatmapset_id: int
    title: str = ""
    artist: str = ""
    version: str = ""
    creator: str = ""
    creator_id: int = 0
    star_rating: float = Field(default=0.0, alias="difficultyrating")
    cs: float = Field(default=0.0, alias="diff_size")
    ar: float = Field(default=0.0, alias="diff_approach")
    od: float = Field(default=0.0, alias="diff_overall")
    hp: float = Field(default=0.0, alias="diff_drain")
    total_length: int = 0
    bpm: float = 0.0
    max_combo: int = 0
    approved: int = 0
    approved_date: datetime

    @field_validator("approved_date", mode="before")
    @classmethod
    def _parse_approved_date(cls, v):
        parsed = parse_osu_datetime(v)
        if parsed is None:
            raise ValueError("approved_date is empty")
        return parsed

    @field_validator("max_combo", "creator_id", "total_length", "approved", mode="before")
    @classmethod
    def _blank_int(cls, v):
        if v is None or (isinstance(v, str) and not v.strip()):
            return 0
        return v
