"""
Tracking by link

Adds a single user-supplied beatmap link to the Data table, or drops a
tracked beatmap from it again.
"""

from core.errors import InvalidLinkError
from core.logging import get_logger
from core.settings import Settings, settings
from db.store import RecordStore, exclusive_access
from pipelines.extractors.osu_api import OsuApiExtractor
from pipelines.ingestion import IngestionJob, extract_beatmap_id, ingest_jobs
from schemas.records import BeatmapRecord
from services.history_service import parse_row_number

log = get_logger("tracking_service")


def tracked_ids(store: RecordStore) -> set[int]:
    """Ids in the beatmap id column plus ids in tracking links (error rows have only the latter)."""
    ids = set(store.existing_beatmap_ids())
    for _, link in store.tracking_inputs():
        beatmap_id = extract_beatmap_id(link)
        if beatmap_id is not None:
            ids.add(int(beatmap_id))
    return ids


def track_beatmap(
    store: RecordStore,
    extractor: OsuApiExtractor,
    link: str,
    app_settings: Settings = settings,
) -> str:
    """
    Start tracking the beatmap a link points to.

    The link is kept as the row's tracking input, the row is built from
    the API and Data is re-sorted.

    Returns:
        Confirmation message

    Raises:
        InvalidLinkError: If the link has no beatmap id or it is already tracked
        BatchFetchError: If the upstream request fails
    """
    link = (link or "").strip()
    beatmap_id = extract_beatmap_id(link)
    if beatmap_id is None:
        raise InvalidLinkError(f"No beatmap ID found in '{link}'.")

    with exclusive_access("track_beatmap", app_settings.run_lock_ttl_seconds):
        if int(beatmap_id) in tracked_ids(store):
            raise InvalidLinkError(f"Beatmap {beatmap_id} is already being tracked.")

        row = store.append_data_row(BeatmapRecord(), source_url=link)
        [result] = ingest_jobs(
            [IngestionJob(target_row=row, beatmap_id=beatmap_id)],
            extractor,
            chunk_size=app_settings.ingest_chunk_size,
            score_window=app_settings.score_window,
            web_base_url=app_settings.osu_web_base_url,
            assets_base_url=app_settings.osu_assets_base_url,
        )
        store.set_data_row(row, result.record)
        store.sort_data()

    if result.record.is_error:
        log.warning("tracked_beatmap_unavailable", beatmap_id=beatmap_id, error=result.record.error_message)
        return f"Added beatmap {beatmap_id}, but it could not be fetched: {result.record.error_message}."

    log.info("beatmap_tracked", beatmap_id=beatmap_id)
    return f"Now tracking {result.record.beatmap_url}."


def rows_tracking(store: RecordStore, beatmap_id: int) -> list[int]:
    """Data rows holding `beatmap_id`, by id column or tracking link, highest first."""
    rows = {row for row, record in store.data_rows() if record.beatmap_id == beatmap_id}
    for row, link in store.tracking_inputs():
        linked_id = extract_beatmap_id(link)
        if linked_id is not None and int(linked_id) == beatmap_id:
            rows.add(row)
    return sorted(rows, reverse=True)


def untrack_beatmap(
    store: RecordStore,
    target: str,
    app_settings: Settings = settings,
) -> str:
    """
    Stop tracking a beatmap given its link or bare id.

    Every Data row for the beatmap is deleted; History is left alone.

    Raises:
        InvalidLinkError: If the input has no beatmap id or it is not tracked
    """
    target = (target or "").strip()
    beatmap_id = extract_beatmap_id(target)
    if beatmap_id is None:
        raise InvalidLinkError(f"No beatmap ID found in '{target}'.")

    with exclusive_access("untrack_beatmap", app_settings.run_lock_ttl_seconds):
        rows = rows_tracking(store, int(beatmap_id))
        if not rows:
            raise InvalidLinkError(f"Beatmap {beatmap_id} is not being tracked.")
        for row in rows:
            store.delete_data_row(row)

    log.info("beatmap_untracked", beatmap_id=beatmap_id, rows=rows)
    return f"Stopped tracking beatmap {beatmap_id}."


def untrack_row(
    store: RecordStore,
    raw_input: object,
    app_settings: Settings = settings,
) -> str:
    """
    Stop tracking whatever Data row `raw_input` names.

    Raises:
        InvalidRowError: For unusable input
    """
    with exclusive_access("untrack_row", app_settings.run_lock_ttl_seconds):
        row = parse_row_number(raw_input, store.last_data_row())
        record = store.get_data_row(row)
        store.delete_data_row(row)

    log.info("row_untracked", row=row, beatmap_id=record.beatmap_id)
    if record.beatmap_id is None:
        return f"Stopped tracking row {row}."
    return f"Stopped tracking row {row} (beatmap {record.beatmap_id})."
