from datetime import date, datetime, timedelta, timezone

import pytest

from pipelines.transformers.records import (
    beatmap_url,
    build_record,
    cover_url,
    days_ranked,
    days_to_fc,
    to_history_entry,
    user_url,
)
from schemas.osu import BeatmapMetadata, Score
from schemas.records import BeatmapRecord, format_date, format_length
from tests.factories import beatmap_payload, score_payload, stored_record

RANKED_AT = datetime(2020, 1, 1, tzinfo=timezone.utc)


def test_days_to_fc():
    assert days_to_fc(date(2020, 1, 1), date(2020, 1, 31)) == 30
    assert days_to_fc(date(2020, 1, 31), date(2020, 1, 1)) == 30


def test_days_ranked_rounds_up():
    assert days_ranked(RANKED_AT, now=RANKED_AT + timedelta(days=30)) == 30
    assert days_ranked(RANKED_AT, now=RANKED_AT + timedelta(days=30, seconds=1)) == 31
    assert days_ranked(RANKED_AT, now=RANKED_AT + timedelta(hours=1)) == 1


def test_days_ranked_accepts_naive_datetimes():
    assert days_ranked(datetime(2020, 1, 1), now=datetime(2020, 1, 3)) == 2


def test_canonical_urls():
    assert beatmap_url(1001, 1) == "https://osu.ppy.sh/beatmapsets/1001#osu/1"
    assert user_url(42) == "https://osu.ppy.sh/users/42/osu"
    assert cover_url(1001) == "https://assets.ppy.sh/beatmaps/1001/covers/cover.jpg"


def test_formatting_helpers():
    assert format_length(245) == "4:05"
    assert format_length(59) == "0:59"
    assert format_length(None) == ""
    assert format_date(date(2020, 1, 5)) == "1/5/2020"
    assert format_date(None) == ""


class TestBuildRecord:
    def setup_method(self):
        self.metadata = BeatmapMetadata.model_validate(beatmap_payload(20, beatmapset_id=10))

    def test_near_fc_score(self):
        scores = [Score.model_validate(score_payload(combo=999, rank="S"))]
        record = build_record(self.metadata, scores, now=RANKED_AT + timedelta(days=10))

        assert record.percent_fc == pytest.approx(99.9)
        assert record.current_combo == 999
        assert record.max_combo == 1000
        assert record.rank == "S"
        assert record.mods == "NM"
        assert record.days_ranked == 10
        assert record.score_date == date(2020, 1, 31)
        assert record.ranked_date == date(2020, 1, 1)

    def test_columns_from_metadata(self):
        record = build_record(self.metadata, [], now=RANKED_AT + timedelta(days=1))

        assert record.beatmap.url == "https://osu.ppy.sh/beatmapsets/10#osu/20"
        assert record.beatmap.label == "Artist\nSong 20\n[Insane]"
        assert record.background_url == "https://assets.ppy.sh/beatmaps/10/covers/cover.jpg"
        assert record.mapper.label == "Mapper"
        assert record.mapper.url == "https://osu.ppy.sh/users/42/osu"
        assert record.star_rating == pytest.approx(5.25)
        assert record.length == "4:05"
        assert (record.cs, record.ar, record.od, record.hp) == (4.0, 9.3, 8.5, 6.0)
        assert record.bpm == 180
        assert record.beatmap_id == 20
        assert record.beatmapset_id == 10

    def test_no_scores(self):
        record = build_record(self.metadata, [], now=RANKED_AT + timedelta(days=1))
        assert record.player is None
        assert record.current_combo == 0
        assert record.percent_fc == 0
        assert not record.is_error
        assert not record.is_blank

    def test_custom_base_urls(self):
        record = build_record(
            self.metadata,
            [],
            now=RANKED_AT,
            web_base_url="http://osu.test",
            assets_base_url="http://assets.test",
        )
        assert record.beatmap.url == "http://osu.test/beatmapsets/10#osu/20"
        assert record.background_url == "http://assets.test/beatmaps/10/covers/cover.jpg"


def test_to_history_entry_recomputes_days_to_fc():
    record = stored_record(1, days_ranked=45)
    entry = to_history_entry(record)

    assert entry.days_to_fc == 30
    assert entry.beatmap == record.beatmap
    assert entry.player == record.player
    assert entry.current_combo == record.current_combo
    assert not hasattr(entry, "percent_fc")


def test_to_history_entry_without_score_date():
    entry = to_history_entry(stored_record(1, score_date=None))
    assert entry.days_to_fc is None


def test_error_record():
    record = BeatmapRecord.error()
    assert record.is_error
    assert record.error_message == "API Error"
    assert not record.is_blank
    assert BeatmapRecord().is_blank
