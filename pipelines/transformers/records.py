"""
Record Builder

Pure functions that turn upstream beatmap metadata and leaderboard scores
into tracker rows, and Data rows into History entries.
"""

import math
from datetime import date, datetime, timezone
from typing import Optional, Sequence

from pipelines.transformers.fc import DEFAULT_SCORE_WINDOW, select_best_score
from schemas.osu import BeatmapMetadata, Score
from schemas.records import BeatmapRecord, HistoryEntry, Link

SECONDS_PER_DAY = 24 * 60 * 60

OSU_WEB_BASE_URL = "https://osu.ppy.sh"
OSU_ASSETS_BASE_URL = "https://assets.ppy.sh"


def beatmap_url(
    beatmapset_id: int, beatmap_id: int, web_base_url: str = OSU_WEB_BASE_URL
) -> str:
    """Canonical link to a beatmap difficulty."""
    return f"{web_base_url}/beatmapsets/{beatmapset_id}#osu/{beatmap_id}"


def user_url(user_id: int, web_base_url: str = OSU_WEB_BASE_URL) -> str:
    return f"{web_base_url}/users/{user_id}/osu"


def cover_url(beatmapset_id: int, assets_base_url: str = OSU_ASSETS_BASE_URL) -> str:
    return f"{assets_base_url}/beatmaps/{beatmapset_id}/covers/cover.jpg"


def days_ranked(ranked_at: datetime, now: Optional[datetime] = None) -> int:
    """Whole days since ranking, rounded up: ceil(|now - ranked_at| / 1 day)."""
    now = now or datetime.now(timezone.utc)
    if ranked_at.tzinfo is None:
        ranked_at = ranked_at.replace(tzinfo=timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    elapsed = abs((now - ranked_at).total_seconds())
    return math.ceil(elapsed / SECONDS_PER_DAY)


def days_to_fc(ranked_date: date, score_date: date) -> int:
    """Calendar days between the ranked date and the FC's date."""
    return abs((score_date - ranked_date).days)


def build_record(
    metadata: BeatmapMetadata,
    scores: Sequence[Score],
    now: Optional[datetime] = None,
    score_window: int = DEFAULT_SCORE_WINDOW,
    web_base_url: str = OSU_WEB_BASE_URL,
    assets_base_url: str = OSU_ASSETS_BASE_URL,
) -> BeatmapRecord:
    """
    Compose one Data row from beatmap metadata and its leaderboard.

    No I/O; `now` fixes the clock for days_ranked.
    """
    best = select_best_score(
        scores,
        metadata.max_combo,
        window=score_window,
        web_base_url=web_base_url,
    )
    url = beatmap_url(metadata.beatmapset_id, metadata.beatmap_id, web_base_url)

    return BeatmapRecord(
        background_url=cover_url(metadata.beatmapset_id, assets_base_url),
        beatmap=Link(
            label=f"{metadata.artist}\n{metadata.title}\n[{metadata.version}]",
            url=url,
        ),
        star_rating=metadata.star_rating,
        length_seconds=metadata.total_length,
        bpm=metadata.bpm,
        cs=metadata.cs,
        ar=metadata.ar,
        od=metadata.od,
        hp=metadata.hp,
        mapper=Link(
            label=metadata.creator,
            url=user_url(metadata.creator_id, web_base_url),
        ),
        beatmap_id=metadata.beatmap_id,
        beatmapset_id=metadata.beatmapset_id,
        ranked_date=metadata.approved_date.astimezone(timezone.utc).date(),
        days_ranked=days_ranked(metadata.approved_date, now),
        player=best.player,
        score_date=best.score_date,
        rank=best.rank,
        mods=best.mods,
        current_combo=best.combo,
        max_combo=metadata.max_combo,
        percent_fc=best.percent_fc,
    )


def to_history_entry(record: BeatmapRecord) -> HistoryEntry:
    """
    Convert a Data row into a History entry.

    days_to_fc is recomputed from the ranked and score dates; when either
    is missing it stays empty.
    """
    columns = record.model_dump(exclude={"days_ranked", "percent_fc", "error_message"})
    entry = HistoryEntry.model_validate(columns)
    if record.ranked_date and record.score_date:
        entry.days_to_fc = days_to_fc(record.ranked_date, record.score_date)
    return entry
