"""
Refresh All Beatmaps Pipeline

Rebuilds every tracked Data row from the upstream API, then moves rows
that have since been FC'd out of Data.
"""

from datetime import datetime, timedelta

from core.logging import get_logger
from db.models.tracker_meta import LAST_UPDATED_KEY
from db.store import RecordStore
from pipelines.base import BasePipeline
from pipelines.config import PipelineConfig
from pipelines.context import PipelineContext
from pipelines.ingestion import IngestionJob, extract_beatmap_id, ingest_jobs
from pipelines.reconcile import reconcile_store
from schemas.records import format_date

log = get_logger("refresh")


def last_updated_text(now: datetime) -> str:
    """Marker text naming the day before `now`."""
    yesterday = (now - timedelta(days=1)).date()
    return f"Last Updated: {format_date(yesterday)}"


def mark_last_updated(store: RecordStore, now: datetime) -> str:
    text = last_updated_text(now)
    store.set_meta(LAST_UPDATED_KEY, text)
    log.info("last_updated_marked", value=text)
    return text


def refresh_jobs(store: RecordStore) -> tuple[list[IngestionJob], int]:
    """
    One job per Data row whose tracking link ends in a beatmap id.

    Returns:
        Tuple of (jobs in row order, number of rows skipped)
    """
    jobs = []
    skipped = 0
    for row, link in store.tracking_inputs():
        beatmap_id = extract_beatmap_id(link)
        if beatmap_id is None:
            skipped += 1
            continue
        jobs.append(IngestionJob(target_row=row, beatmap_id=beatmap_id))
    return jobs, skipped


class RefreshBeatmapsPipeline(BasePipeline):
    """
    Re-fetches metadata and leaderboards for every tracked beatmap.

    Rows are rewritten in place, so tracking links and positions are kept.
    Afterwards FC'd rows are archived or deleted and the Last Updated
    marker is written.
    """

    config = PipelineConfig(
        name="refresh_all",
        display_name="Refresh All Beatmaps",
        description="Rebuilds every Data row from the osu! API and moves FCs out of Data",
        target_table="data_rows",
    )

    def execute(self, ctx: PipelineContext) -> None:
        jobs, skipped = refresh_jobs(self.store)
        if skipped:
            ctx.log.warning("rows_without_beatmap_id", count=skipped)

        if not jobs:
            ctx.add_message("No valid beatmap IDs found to refresh.")
            return

        ctx.log.info("refresh_jobs_built", jobs=len(jobs), skipped=skipped)
        results = ingest_jobs(
            jobs,
            self.extractor,
            chunk_size=self.settings.ingest_chunk_size,
            score_window=self.settings.score_window,
            now=ctx.now(),
            web_base_url=self.settings.osu_web_base_url,
            assets_base_url=self.settings.osu_assets_base_url,
        )

        errors = 0
        for result in results:
            self.store.set_data_row(result.job.target_row, result.record)
            if result.record.is_error:
                errors += 1
        ctx.increment_records(len(results))

        headline = f"Refresh complete! Updated {len(jobs)} beatmap(s)."
        if errors:
            headline += f" {errors} could not be fetched."
        if skipped:
            headline += f" Skipped {skipped} row(s) without a beatmap ID."
        ctx.add_message(headline)

        outcome = reconcile_store(self.store, self.settings.archive_after_days)
        ctx.increment_records(outcome.changed)
        for message in outcome.messages():
            ctx.add_message(message)

        ctx.details.update(updated=len(results), errors=errors, skipped=skipped)

    def after_execute(self, ctx: PipelineContext) -> None:
        mark_last_updated(self.store, ctx.now())
