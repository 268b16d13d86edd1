import pytest
from peewee import SqliteDatabase

from core.settings import Settings
from db.base import db
from db.models import DataRow, HistoryRow, PipelineRun, RunLock, TrackerMeta
from db.store import SqlRecordStore

MODELS = [DataRow, HistoryRow, TrackerMeta, PipelineRun, RunLock]


def _bind(database: SqliteDatabase):
    db.initialize(database)
    database.connect()
    database.create_tables(MODELS)
    return database


@pytest.fixture
def database():
    """In-memory SQLite bound to the model proxy (one connection, this thread only)."""
    test_db = _bind(SqliteDatabase(":memory:"))
    yield test_db
    test_db.close()


@pytest.fixture
def file_database(tmp_path):
    """File-backed SQLite for code that touches the database from worker threads."""
    test_db = _bind(SqliteDatabase(str(tmp_path / "tracker.db")))
    yield test_db
    if not test_db.is_closed():
        test_db.close()


@pytest.fixture
def store(database):
    return SqlRecordStore()


@pytest.fixture
def test_settings():
    return Settings(
        _env_file=None,
        osu_api_key="test-key",
        pipeline_api_token="test-token",
        run_lock_ttl_seconds=60,
        scheduler_enabled=False,
    )
