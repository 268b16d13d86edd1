from datetime import datetime, timedelta, timezone

import pytest

from db.models.pipeline_run import PipelineRun
from db.models.run_lock import RECORD_TABLES_LOCK, RunLock
from db.models.tracker_meta import LAST_UPDATED_KEY
from pipelines import get_pipeline, list_pipelines, run_pipeline_sync
from pipelines.discover import DiscoverBeatmapsPipeline
from pipelines.refresh import RefreshBeatmapsPipeline, last_updated_text
from schemas.common import ApiStatus
from schemas.records import BeatmapRecord
from tests.factories import FakeExtractor, beatmap_payload, days_ago, score_payload, stored_record


def _link(beatmap_id):
    return f"https://osu.ppy.sh/beatmapsets/{beatmap_id + 1000}#osu/{beatmap_id}"


def _track(store, *beatmap_ids):
    for beatmap_id in beatmap_ids:
        store.append_data_row(BeatmapRecord(), source_url=_link(beatmap_id))


def _ids(rows):
    return [record.beatmap_id for _, record in rows]


def test_registry():
    names = [info["name"] for info in list_pipelines()]
    assert names == ["refresh_all", "discover_new", "move_fcs_to_history"]


def test_unknown_pipeline(store):
    with pytest.raises(KeyError):
        get_pipeline("nope", store)


def test_api_pipelines_need_an_extractor(store, test_settings):
    with pytest.raises(ValueError):
        RefreshBeatmapsPipeline(store, None, test_settings)


def test_last_updated_text():
    assert last_updated_text(datetime(2024, 3, 1, 23, 0)) == "Last Updated: 2/29/2024"


class TestRefresh:
    def test_rebuilds_rows(self, store, test_settings):
        _track(store, 1, 2)
        extractor = FakeExtractor(
            beatmaps={1: beatmap_payload(1, star_rating="6.0"), 2: beatmap_payload(2)},
            scores={1: [score_payload(combo=400, rank="A")], 2: [score_payload(combo=10, rank="B")]},
        )

        result = run_pipeline_sync("refresh_all", store, extractor, test_settings)

        assert result.status == ApiStatus.SUCCESS.value
        assert result.message.startswith("Refresh complete! Updated 2 beatmap(s).")
        rows = store.data_rows()
        assert _ids(rows) == [1, 2]
        assert rows[0][1].current_combo == 400
        assert store.tracking_inputs() == [(1, _link(1)), (2, _link(2))]

    def test_moves_fcs_after_refresh(self, store, test_settings):
        _track(store, 1, 2, 3)
        extractor = FakeExtractor(
            beatmaps={
                1: beatmap_payload(1),
                2: beatmap_payload(2),
                3: beatmap_payload(3, approved_date=days_ago(5)),
            },
            scores={
                1: [score_payload(combo=1000, rank="S")],
                2: [score_payload(combo=100, rank="A")],
                3: [score_payload(combo=1000, rank="X")],
            },
        )

        result = run_pipeline_sync("refresh_all", store, extractor, test_settings)

        assert result.status == ApiStatus.SUCCESS.value
        assert _ids(store.data_rows()) == [2]
        assert _ids(store.history_rows()) == [1]
        assert "Moved 1 beatmap(s) with FCs to History (30+ days old)." in result.message
        assert "Deleted 1 beatmap(s) with FCs (less than 30 days old)." in result.message
        assert result.records_processed == 5

    def test_error_rows_keep_position(self, store, test_settings):
        _track(store, 1, 2)
        extractor = FakeExtractor(beatmaps={1: beatmap_payload(1), 2: "oops"})

        result = run_pipeline_sync("refresh_all", store, extractor, test_settings)

        assert "1 could not be fetched" in result.message
        assert store.get_data_row(2).error_message == "API Error"
        assert store.tracking_inputs()[1] == (2, _link(2))

    def test_writes_last_updated_and_run_record(self, store, test_settings):
        _track(store, 1)
        extractor = FakeExtractor(beatmaps={1: beatmap_payload(1)})

        result = run_pipeline_sync("refresh_all", store, extractor, test_settings)

        assert store.get_meta(LAST_UPDATED_KEY).startswith("Last Updated: ")
        run = PipelineRun.get(PipelineRun.pipeline_name == "refresh_all")
        assert run.status == "success"
        assert run.summary == result.message

    def test_nothing_to_refresh(self, store, test_settings):
        store.append_data_row(BeatmapRecord(), source_url="not a link")

        result = run_pipeline_sync("refresh_all", store, FakeExtractor(), test_settings)

        assert result.message == "No valid beatmap IDs found to refresh."

    def test_batch_failure_rolls_back(self, store, test_settings):
        _track(store, 1, 2)
        store.set_data_row(1, stored_record(1, current_combo=5))
        before = store.data_rows()
        extractor = FakeExtractor(beatmaps={1: beatmap_payload(1)}, failing=[2])

        result = run_pipeline_sync("refresh_all", store, extractor, test_settings)

        assert result.status == ApiStatus.ERROR.value
        assert "beatmap 2" in result.message
        assert store.data_rows() == before
        assert store.get_meta(LAST_UPDATED_KEY) is None
        assert RunLock.get_or_none(RunLock.name == RECORD_TABLES_LOCK) is None
        assert PipelineRun.get(PipelineRun.pipeline_name == "refresh_all").status == "failed"

    def test_refused_while_locked(self, store, test_settings):
        _track(store, 1)
        RunLock.acquire(RECORD_TABLES_LOCK, "other-run", ttl_seconds=60)
        extractor = FakeExtractor(beatmaps={1: beatmap_payload(1)})

        result = run_pipeline_sync("refresh_all", store, extractor, test_settings)

        assert result.status == ApiStatus.ERROR.value
        assert "Another run is already using 'record_tables'" in result.message
        assert extractor.beatmap_calls == []
        assert RunLock.get_by_id(RECORD_TABLES_LOCK).holder == "other-run"


class TestDiscover:
    def test_adds_new_beatmaps(self, store, test_settings):
        extractor = FakeExtractor(
            discovered=[
                beatmap_payload(10, beatmapset_id=500, star_rating="6.5"),
                beatmap_payload(11, beatmapset_id=500, star_rating="4.5"),
            ],
            scores={10: [score_payload(combo=900)], 11: []},
        )

        result = run_pipeline_sync("discover_new", store, extractor, test_settings)

        assert result.status == ApiStatus.SUCCESS.value
        assert result.message.startswith("Added 2 newly ranked beatmap(s).")
        assert "Skipped 0 beatmap(s) with FCs." in result.message
        # Sorted by star rating after the append
        assert _ids(store.data_rows()) == [11, 10]
        assert store.tracking_inputs() == [
            (1, "https://osu.ppy.sh/beatmapsets/500#osu/11"),
            (2, "https://osu.ppy.sh/beatmapsets/500#osu/10"),
        ]
        # Metadata and leaderboards were fetched once, during screening
        assert extractor.beatmap_calls == []
        assert sorted(extractor.score_calls) == ["10", "11"]
        assert store.get_meta(LAST_UPDATED_KEY) is not None

    def test_asks_for_yesterday(self, store, test_settings):
        extractor = FakeExtractor()

        run_pipeline_sync("discover_new", store, extractor, test_settings)

        expected = (datetime.now(timezone.utc) - timedelta(days=1)).date()
        assert extractor.since_calls == [expected]

    def test_fc_beatmaps_are_never_inserted(self, store, test_settings):
        extractor = FakeExtractor(
            discovered=[beatmap_payload(10), beatmap_payload(11)],
            scores={10: [score_payload(combo=999, rank="S")], 11: [score_payload(combo=5)]},
        )

        result = run_pipeline_sync("discover_new", store, extractor, test_settings)

        assert _ids(store.data_rows()) == [11]
        assert store.history_rows() == []
        assert "Skipped 1 beatmap(s) with FCs." in result.message
        assert _link(10) in result.message

    def test_no_beatmaps(self, store, test_settings):
        result = run_pipeline_sync("discover_new", store, FakeExtractor(), test_settings)
        assert result.message == "No new ranked beatmaps found in the past day."

    def test_only_qualified(self, store, test_settings):
        extractor = FakeExtractor(discovered=[beatmap_payload(10, approved="3")])

        result = run_pipeline_sync("discover_new", store, extractor, test_settings)

        assert result.message == (
            "No new ranked beatmaps found in the past day (only qualified/other status found)."
        )

    def test_already_tracked(self, store, test_settings):
        store.append_data_row(stored_record(10, current_combo=1))
        extractor = FakeExtractor(discovered=[beatmap_payload(10)])

        result = run_pipeline_sync("discover_new", store, extractor, test_settings)

        assert result.message == "All newly ranked beatmaps are already being tracked."
        assert extractor.score_calls == []

    def test_all_have_fcs(self, store, test_settings):
        extractor = FakeExtractor(
            discovered=[beatmap_payload(10)],
            scores={10: [score_payload(combo=1000, rank="SH")]},
        )

        result = run_pipeline_sync("discover_new", store, extractor, test_settings)

        assert result.message == "All newly ranked beatmaps already have FCs."
        assert store.data_rows() == []

    def test_leaderboard_failure_counts_as_empty(self, store, test_settings):
        extractor = FakeExtractor(discovered=[beatmap_payload(10)], failing=[10])

        result = run_pipeline_sync("discover_new", store, extractor, test_settings)

        assert result.status == ApiStatus.SUCCESS.value
        record = store.get_data_row(1)
        assert record.beatmap_id == 10
        assert record.current_combo == 0

    def test_non_object_entries_are_ignored(self, store, test_settings):
        extractor = FakeExtractor(discovered=["junk", None, 7, beatmap_payload(10)])

        result = run_pipeline_sync("discover_new", store, extractor, test_settings)

        assert result.status == ApiStatus.SUCCESS.value
        assert _ids(store.data_rows()) == [10]

    def test_only_non_object_entries(self, store, test_settings):
        extractor = FakeExtractor(discovered=["junk", ["nested"]])

        result = run_pipeline_sync("discover_new", store, extractor, test_settings)

        assert result.status == ApiStatus.SUCCESS.value
        assert result.message == (
            "No new ranked beatmaps found in the past day (only qualified/other status found)."
        )

    def test_discover_needs_extractor(self, store, test_settings):
        with pytest.raises(ValueError):
            DiscoverBeatmapsPipeline(store, None, test_settings)


class TestMoveFCs:
    def test_runs_without_extractor(self, store, test_settings):
        store.append_data_row(stored_record(1, days_ranked=40))
        store.append_data_row(stored_record(2, current_combo=10))

        result = run_pipeline_sync("move_fcs_to_history", store, None, test_settings)

        assert result.status == ApiStatus.SUCCESS.value
        assert _ids(store.data_rows()) == [2]
        assert _ids(store.history_rows()) == [1]
        assert result.details["moved"] == [_link(1)]

    def test_nothing_found(self, store, test_settings):
        store.append_data_row(stored_record(1, current_combo=10))

        result = run_pipeline_sync("move_fcs_to_history", store, None, test_settings)

        assert result.message == "No beatmaps with FCs found."
        assert store.get_meta(LAST_UPDATED_KEY) is None
