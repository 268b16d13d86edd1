import json
from datetime import datetime, timezone

import pytest

from core.errors import BatchFetchError
from core.resilience import NetworkError
from pipelines.ingestion import (
    API_ERROR,
    INVALID_BEATMAP_ID,
    IngestionJob,
    extract_beatmap_id,
    ingest_jobs,
    parse_metadata,
    parse_scores,
)
from schemas.osu import BeatmapMetadata
from schemas.records import BeatmapRecord
from tests.factories import FakeExtractor, beatmap_payload, score_payload

NOW = datetime(2020, 3, 1, tzinfo=timezone.utc)


def _jobs(ids, **kwargs):
    return [IngestionJob(target_row=row, beatmap_id=str(i), **kwargs) for row, i in enumerate(ids, 1)]


def _ingest(jobs, extractor, **kwargs):
    return ingest_jobs(jobs, extractor, chunk_size=15, score_window=50, now=NOW, **kwargs)


@pytest.mark.parametrize(
    "link, expected",
    [
        ("https://osu.ppy.sh/beatmapsets/1001#osu/1", "1"),
        ("https://osu.ppy.sh/b/129891", "129891"),
        ("  https://osu.ppy.sh/beatmaps/75 ", "75"),
        ("https://osu.ppy.sh/beatmapsets/1001", "1001"),
        ("https://osu.ppy.sh/beatmapsets/", None),
        ("", None),
        (None, None),
    ],
)
def test_extract_beatmap_id(link, expected):
    assert extract_beatmap_id(link) == expected


class TestParsing:
    def test_unparseable_metadata(self):
        result = parse_metadata("<html>", "1")
        assert isinstance(result, BeatmapRecord)
        assert result.error_message == API_ERROR

    def test_metadata_not_a_list(self):
        assert parse_metadata('{"error": "x"}', "1").error_message == API_ERROR

    def test_metadata_empty_list(self):
        assert parse_metadata("[]", "1").error_message == INVALID_BEATMAP_ID

    def test_metadata_missing_fields(self):
        assert parse_metadata('[{"title": "x"}]', "1").error_message == API_ERROR

    def test_metadata_ok(self):
        result = parse_metadata(json.dumps([beatmap_payload(1)]), "1")
        assert isinstance(result, BeatmapMetadata)
        assert result.max_combo == 1000

    def test_scores_lenient(self):
        assert parse_scores("not json", "1") == []
        assert parse_scores('{"error": "x"}', "1") == []

    def test_invalid_score_entries_dropped(self):
        body = json.dumps([score_payload(combo=10), {"maxcombo": "lots"}, score_payload(combo=20)])
        assert [s.combo for s in parse_scores(body, "1")] == [10, 20]


class TestIngestJobs:
    def test_chunked_batches(self):
        ids = list(range(1, 17))
        extractor = FakeExtractor(
            beatmaps={i: beatmap_payload(i) for i in ids},
            scores={i: [score_payload()] for i in ids},
        )

        results = _ingest(_jobs(ids), extractor)

        assert extractor.batches == [15, 15, 1, 1]
        assert len(results) == 16

    def test_results_keep_job_order(self):
        ids = [1, 2, 3, 4]
        extractor = FakeExtractor(
            beatmaps={i: beatmap_payload(i) for i in ids},
            delays={1: 0.05, 2: 0.02},
        )

        results = _ingest(_jobs(ids), extractor)

        assert [r.record.beatmap_id for r in results] == ids
        assert [r.job.target_row for r in results] == [1, 2, 3, 4]

    def test_builds_records(self):
        extractor = FakeExtractor(
            beatmaps={5: beatmap_payload(5)},
            scores={5: [score_payload(combo=500, rank="A")]},
        )

        (result,) = _ingest(_jobs([5]), extractor)

        assert result.record.current_combo == 500
        assert result.record.rank == "A"
        assert result.record.days_ranked == 60
        assert result.writeback_url is None

    def test_degraded_jobs_do_not_abort(self):
        extractor = FakeExtractor(
            beatmaps={1: beatmap_payload(1), 2: "garbage", 4: beatmap_payload(4)},
            scores={4: "also garbage"},
        )

        results = _ingest(_jobs([1, 2, 3, 4]), extractor)

        assert results[0].record.beatmap_id == 1
        assert results[1].record.error_message == API_ERROR
        assert results[2].record.error_message == INVALID_BEATMAP_ID
        assert results[3].record.beatmap_id == 4
        assert results[3].record.current_combo == 0

    def test_prefetched_data_skips_fetches(self):
        metadata = BeatmapMetadata.model_validate(beatmap_payload(9))
        extractor = FakeExtractor(scores={9: [score_payload()]})

        (result,) = _ingest(
            [IngestionJob(target_row=None, beatmap_id="9", metadata=metadata)], extractor
        )

        assert extractor.beatmap_calls == []
        assert extractor.score_calls == ["9"]
        assert result.record.beatmap_id == 9

        extractor = FakeExtractor()
        _ingest(
            [IngestionJob(target_row=None, beatmap_id="9", metadata=metadata, scores=[])],
            extractor,
        )
        assert extractor.beatmap_calls == []
        assert extractor.score_calls == []
        assert extractor.batches == []

    def test_writeback_url(self):
        extractor = FakeExtractor(beatmaps={3: beatmap_payload(3, beatmapset_id=77)})

        (result,) = _ingest(_jobs([3], wants_writeback=True), extractor)

        assert result.writeback_url == "https://osu.ppy.sh/beatmapsets/77#osu/3"

    def test_transport_failure_is_fatal(self):
        ids = list(range(1, 20))
        extractor = FakeExtractor(
            beatmaps={i: beatmap_payload(i) for i in ids},
            failing=[17],
        )

        with pytest.raises(BatchFetchError) as excinfo:
            _ingest(_jobs(ids), extractor)

        error = excinfo.value
        assert error.kind == "metadata"
        assert error.chunk_index == 1
        assert error.beatmap_id == "17"
        assert isinstance(error.__cause__, NetworkError)

    def test_score_failure_names_kind(self):
        extractor = FakeExtractor(beatmaps={1: beatmap_payload(1)}, failing=[])
        extractor.get_scores_raw = _raise_network

        with pytest.raises(BatchFetchError) as excinfo:
            _ingest(_jobs([1]), extractor)

        assert excinfo.value.kind == "scores"
        assert excinfo.value.chunk_index == 0


def _raise_network(beatmap_id):
    raise NetworkError(f"timeout on {beatmap_id}")
