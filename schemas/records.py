"""
Tracker record models

A BeatmapRecord is one row of the Data table, a HistoryEntry one row of
the History table. Linked cells carry their label and target URL as
separate fields; turning them into hyperlinks is the presentation
layer's job.
"""

from datetime import date
from typing import Optional

from pydantic import BaseModel


class Link(BaseModel):
    """Display label plus target URL."""

    label: str
    url: str


class BestScoreSummary(BaseModel):
    """The single leaderboard entry chosen to represent a beatmap."""

    user_id: int = 0
    username: str = ""
    player: Optional[Link] = None
    mods: str = ""
    combo: int = 0
    rank: str = ""
    score_date: Optional[date] = None
    percent_fc: float = 0.0


def format_length(total_seconds: Optional[int]) -> str:
    """Seconds as M:SS."""
    if total_seconds is None:
        return ""
    minutes, seconds = divmod(int(total_seconds), 60)
    return f"{minutes}:{seconds:02d}"


def format_date(value: Optional[date]) -> str:
    """Date as M/D/YYYY, the format shown in the tracker tables."""
    if value is None:
        return ""
    return f"{value.month}/{value.day}/{value.year}"


class _BeatmapColumns(BaseModel):
    """Columns shared by Data and History rows."""

    background_url: Optional[str] = None
    beatmap: Optional[Link] = None
    star_rating: Optional[float] = None
    length_seconds: Optional[int] = None
    bpm: Optional[float] = None
    cs: Optional[float] = None
    ar: Optional[float] = None
    od: Optional[float] = None
    hp: Optional[float] = None
    mapper: Optional[Link] = None
    beatmap_id: Optional[int] = None
    beatmapset_id: Optional[int] = None
    ranked_date: Optional[date] = None
    player: Optional[Link] = None
    score_date: Optional[date] = None
    rank: Optional[str] = None
    mods: Optional[str] = None
    current_combo: Optional[int] = None
    max_combo: Optional[int] = None

    @property
    def length(self) -> str:
        return format_length(self.length_seconds)

    @property
    def beatmap_url(self) -> str:
        return self.beatmap.url if self.beatmap else ""


class BeatmapRecord(_BeatmapColumns):
    """
    One tracked, not-yet-FC'd beatmap (21 columns).

    An error placeholder has only `error_message` set. A record with every
    field empty is a blank row and is skipped by all scans.
    """

    days_ranked: Optional[int] = None
    percent_fc: Optional[float] = None
    error_message: Optional[str] = None

    @classmethod
    def error(cls, message: str = "API Error") -> "BeatmapRecord":
        return cls(error_message=message)

    @property
    def is_error(self) -> bool:
        return self.error_message is not None

    @property
    def is_blank(self) -> bool:
        return all(value in (None, "") for value in self.model_dump().values())


class HistoryEntry(_BeatmapColumns):
    """One archived beatmap (20 columns): days_to_fc replaces days_ranked, no percent FC."""

    days_to_fc: Optional[int] = None
