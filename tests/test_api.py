import pytest
from fastapi.testclient import TestClient

import core.pipeline_auth
from db.models.run_lock import RECORD_TABLES_LOCK, RunLock
from db.models.tracker_meta import LAST_UPDATED_KEY
from db.store import SqlRecordStore
from main import app
from schemas.records import BeatmapRecord
from services.runtime import TrackerRuntime
from tests.factories import FakeExtractor, beatmap_payload, score_payload, stored_record

AUTH = {"Authorization": "Bearer test-token"}


@pytest.fixture
def extractor():
    return FakeExtractor(
        beatmaps={5: beatmap_payload(5)},
        scores={5: [score_payload(combo=100, rank="A")]},
    )


@pytest.fixture
def client(file_database, extractor, test_settings, monkeypatch):
    monkeypatch.setattr(core.pipeline_auth, "settings", test_settings)
    store = SqlRecordStore()
    app.state.runtime = TrackerRuntime(settings=test_settings, store=store, extractor=extractor)
    # Requests are handled on other threads; let them open their own connections
    file_database.close()
    yield TestClient(app)
    del app.state.runtime


def _seed(file_database, *records):
    with file_database.connection_context():
        store = SqlRecordStore()
        for record in records:
            store.append_data_row(record)


def _data_ids(file_database):
    with file_database.connection_context():
        return [r.beatmap_id for _, r in SqlRecordStore().data_rows()]


def test_health_is_open(client, file_database):
    with file_database.connection_context():
        SqlRecordStore().set_meta(LAST_UPDATED_KEY, "Last Updated: 1/1/2024")

    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.json()["last_updated"] == "Last Updated: 1/1/2024"


class TestAuth:
    def test_missing_token(self, client):
        assert client.post("/v1/commands/refresh").status_code in (401, 403)

    def test_wrong_token(self, client):
        response = client.post("/v1/commands/refresh", headers={"Authorization": "Bearer nope"})
        assert response.status_code == 401

    def test_token_not_configured(self, client, test_settings, monkeypatch):
        unconfigured = test_settings.model_copy(update={"pipeline_api_token": None})
        monkeypatch.setattr(core.pipeline_auth, "settings", unconfigured)

        assert client.post("/v1/commands/refresh", headers=AUTH).status_code == 500


def test_list_commands(client):
    response = client.get("/v1/commands/", headers=AUTH)

    assert response.status_code == 200
    body = response.json()
    assert [p["name"] for p in body["pipelines"]] == [
        "refresh_all",
        "discover_new",
        "move_fcs_to_history",
    ]
    assert "move-row" in body["commands"]
    assert "untrack" in body["commands"]


def test_refresh(client, file_database):
    with file_database.connection_context():
        SqlRecordStore().append_data_row(
            BeatmapRecord(), source_url="https://osu.ppy.sh/beatmapsets/1005#osu/5"
        )

    response = client.post("/v1/commands/refresh", headers=AUTH)

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "success"
    assert body["message"].startswith("Refresh complete! Updated 1 beatmap(s).")
    assert body["data"]["records_processed"] == 1
    assert _data_ids(file_database) == [5]


def test_move_fcs(client, file_database):
    _seed(file_database, stored_record(1, days_ranked=40), stored_record(2, current_combo=3))

    response = client.post("/v1/commands/move-fcs", headers=AUTH)

    assert response.status_code == 200
    assert "Moved 1 beatmap(s) with FCs to History" in response.json()["message"]
    assert _data_ids(file_database) == [2]


def test_run_in_progress_reports_error(client, file_database):
    with file_database.connection_context():
        RunLock.acquire(RECORD_TABLES_LOCK, "other", ttl_seconds=60)

    response = client.post("/v1/commands/move-fcs", headers=AUTH)

    assert response.json()["status"] == "error"
    assert "Another run is already using" in response.json()["message"]


class TestMoveRow:
    def test_moves_row(self, client, file_database):
        _seed(file_database, stored_record(1, current_combo=3), stored_record(2, current_combo=3))

        response = client.post("/v1/commands/move-row", params={"row": "1"}, headers=AUTH)

        assert response.status_code == 200
        assert response.json()["message"] == "Successfully moved row 1 to History."
        assert _data_ids(file_database) == [2]

    @pytest.mark.parametrize("row", ["abc", "0", "3"])
    def test_rejects_bad_rows(self, client, file_database, row):
        _seed(file_database, stored_record(1, current_combo=3), stored_record(2, current_combo=3))

        response = client.post("/v1/commands/move-row", params={"row": row}, headers=AUTH)

        assert response.status_code == 400
        assert response.json()["error_code"] == "INVALID_INPUT"
        assert _data_ids(file_database) == [1, 2]

    def test_conflict_while_locked(self, client, file_database):
        _seed(file_database, stored_record(1, current_combo=3))
        with file_database.connection_context():
            RunLock.acquire(RECORD_TABLES_LOCK, "refresh", ttl_seconds=60)

        response = client.post("/v1/commands/move-row", params={"row": "1"}, headers=AUTH)

        assert response.status_code == 409
        assert response.json()["error_code"] == "RUN_IN_PROGRESS"

    def test_row_is_required(self, client):
        response = client.post("/v1/commands/move-row", headers=AUTH)
        assert response.status_code == 422


def test_sort_history(client):
    response = client.post("/v1/commands/sort-history", headers=AUTH)

    assert response.status_code == 200
    assert response.json()["message"].startswith("History has been sorted")


class TestTrack:
    def test_tracks_link(self, client, file_database):
        link = "https://osu.ppy.sh/beatmapsets/1005#osu/5"

        response = client.post("/v1/commands/track", params={"link": link}, headers=AUTH)

        assert response.status_code == 200
        assert response.json()["message"] == f"Now tracking {link}."
        assert _data_ids(file_database) == [5]

    def test_duplicate_link(self, client, file_database):
        _seed(file_database, stored_record(5, current_combo=3))

        response = client.post(
            "/v1/commands/track",
            params={"link": "https://osu.ppy.sh/b/5"},
            headers=AUTH,
        )

        assert response.status_code == 400
        assert response.json()["message"] == "Beatmap 5 is already being tracked."

    def test_link_without_id(self, client):
        response = client.post(
            "/v1/commands/track",
            params={"link": "https://osu.ppy.sh/beatmapsets/"},
            headers=AUTH,
        )

        assert response.status_code == 400

class TestUntrack:
    def test_untracks_by_link(self, client, file_database):
        _seed(file_database, stored_record(5, current_combo=3), stored_record(6, current_combo=3))

        response = client.post(
            "/v1/commands/untrack",
            params={"link": "https://osu.ppy.sh/beatmapsets/1005#osu/5"},
            headers=AUTH,
        )

        assert response.status_code == 200
        assert response.json()["message"] == "Stopped tracking beatmap 5."
        assert _data_ids(file_database) == [6]

    def test_untracks_by_row(self, client, file_database):
        _seed(file_database, stored_record(5, current_combo=3), stored_record(6, current_combo=3))

        response = client.post("/v1/commands/untrack", params={"row": "2"}, headers=AUTH)

        assert response.status_code == 200
        assert response.json()["message"] == "Stopped tracking row 2 (beatmap 6)."
        assert _data_ids(file_database) == [5]

    def test_unknown_beatmap(self, client, file_database):
        _seed(file_database, stored_record(5, current_combo=3))

        response = client.post("/v1/commands/untrack", params={"link": "7"}, headers=AUTH)

        assert response.status_code == 400
        assert response.json()["message"] == "Beatmap 7 is not being tracked."
        assert _data_ids(file_database) == [5]

    @pytest.mark.parametrize("params", [{}, {"link": "5", "row": "1"}])
    def test_needs_exactly_one_target(self, client, file_database, params):
        _seed(file_database, stored_record(5, current_combo=3))

        response = client.post("/v1/commands/untrack", params=params, headers=AUTH)

        assert response.status_code == 400
        assert _data_ids(file_database) == [5]


def test_schedule_disabled(client):
    response = client.post("/v1/commands/schedule/install", headers=AUTH)
    assert response.status_code == 503
