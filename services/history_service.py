"""
History operations

Manual moves into History and History sorting. Each call takes the
record-tables lock and runs in one transaction.
"""

import re

from core.errors import InvalidRowError
from core.logging import get_logger
from core.settings import Settings, settings
from db.store import RecordStore, exclusive_access
from pipelines.reconcile import archive_row

log = get_logger("history_service")

_ROW_PATTERN = re.compile(r"[+-]?\d+")

FIRST_DATA_ROW = 1


def parse_row_number(raw_input: object, last_row: int) -> int:
    """
    Validate a user-supplied Data row number.

    Raises:
        InvalidRowError: If the input is not a whole number, is before the
            first data row, or is past the last one
    """
    text = str(raw_input).strip() if raw_input is not None else ""
    if not _ROW_PATTERN.fullmatch(text):
        raise InvalidRowError(f"Row '{text}' is not a valid number.", raw_input)

    row = int(text)
    if row < FIRST_DATA_ROW:
        raise InvalidRowError(
            f"Row {row} is not a valid data row. Data starts at row {FIRST_DATA_ROW}.",
            raw_input,
        )
    if row > last_row:
        raise InvalidRowError(
            f"Row {row} does not exist. Last row is {last_row}.",
            raw_input,
        )
    return row


def move_row_to_history(
    store: RecordStore,
    raw_input: object,
    app_settings: Settings = settings,
) -> str:
    """
    Move one Data row to History by its row number.

    Nothing is changed when the input is rejected.

    Returns:
        Confirmation message

    Raises:
        InvalidRowError: For unusable input
        RunLockHeldError: If a run is in progress
    """
    with exclusive_access("move_row", app_settings.run_lock_ttl_seconds):
        row = parse_row_number(raw_input, store.last_data_row())
        entry = archive_row(store, row)
        store.sort_history()

    log.info("row_moved_to_history", row=row, beatmap_id=entry.beatmap_id)
    return f"Successfully moved row {row} to History."


def sort_history(store: RecordStore, app_settings: Settings = settings) -> str:
    with exclusive_access("sort_history", app_settings.run_lock_ttl_seconds):
        store.sort_history()

    return (
        "History has been sorted by score date, then by star rating "
        "(both oldest/lowest to newest/highest)."
    )
