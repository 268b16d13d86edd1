from contextlib import contextmanager

from peewee import DatabaseProxy, Model
from playhouse.db_url import connect

# Bound to a concrete database by init_db(); tests bind an in-memory SQLite
db = DatabaseProxy()


class BaseModel(Model):
    class Meta:
        database = db


def bind_database(database_url: str):
    """Create the database for `database_url` and bind the proxy to it."""
    database = connect(database_url)
    db.initialize(database)
    return database


# Function to initialize database connection
def init_db(database_url: str):
    """Initialize database connection and create tables if they don't exist."""
    bind_database(database_url)
    db.connect(reuse_if_open=True)

    # Import models the tracker writes to or reads from
    from .models import DataRow, HistoryRow, TrackerMeta, PipelineRun, RunLock

    # Create tables if they don't exist (safe=True is idempotent)
    db.create_tables([
        # Record tables
        DataRow, HistoryRow,
        # Side channel (Last Updated marker, schedule state)
        TrackerMeta,
        # Audit and run control
        PipelineRun, RunLock,
    ], safe=True)


@contextmanager
def connection():
    """
    Connection for the current thread for the duration of a block.

    Peewee connections are thread-local. A connection that was already
    open when the block started is left open.
    """
    opened = db.is_closed()
    if opened:
        db.connect()
    try:
        yield db
    finally:
        if opened and not db.is_closed():
            db.close()


# Function to close database connection
def close_db():
    """Close database connection."""
    if not db.is_closed():
        db.close()
