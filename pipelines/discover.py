"""
Discover New Beatmaps Pipeline

Adds beatmaps ranked since yesterday to the Data table, unless a top
player has already FC'd them.
"""

from datetime import datetime, timedelta, timezone

from pydantic import ValidationError

from core.logging import get_logger
from pipelines.base import BasePipeline
from pipelines.config import PipelineConfig
from pipelines.context import PipelineContext
from pipelines.extractors.osu_api import APPROVED_RANKED
from pipelines.ingestion import IngestionJob, ingest_jobs, validate_scores
from pipelines.refresh import mark_last_updated
from pipelines.transformers.fc import is_full_combo
from pipelines.transformers.records import beatmap_url
from schemas.osu import BeatmapMetadata, Score

log = get_logger("discover")


class DiscoverBeatmapsPipeline(BasePipeline):
    """
    Daily discovery of newly ranked standard beatmaps.

    Each candidate's leaderboard is fetched up front; maps that already
    have an FC are skipped, the rest are ingested with the prefetched
    metadata and scores, appended, and Data is re-sorted.
    """

    config = PipelineConfig(
        name="discover_new",
        display_name="Discover New Beatmaps",
        description="Adds beatmaps ranked since yesterday that nobody has FC'd",
        target_table="data_rows",
    )

    def _scores_or_empty(self, beatmap_id: str) -> list[Score]:
        try:
            raw_scores = self.extractor.get_scores(beatmap_id)
        except Exception as e:
            log.warning("discovery_scores_failed", beatmap_id=beatmap_id, error=str(e))
            return []
        return validate_scores(raw_scores, beatmap_id)

    def execute(self, ctx: PipelineContext) -> None:
        since = (datetime.now(timezone.utc) - timedelta(days=1)).date()
        beatmaps = self.extractor.get_beatmaps_since(since)

        if not beatmaps:
            ctx.add_message("No new ranked beatmaps found in the past day.")
            return

        entries = [b for b in beatmaps if isinstance(b, dict)]
        if len(entries) < len(beatmaps):
            ctx.log.warning("discovered_entries_malformed", count=len(beatmaps) - len(entries))
        ranked = [b for b in entries if str(b.get("approved", "")) == str(APPROVED_RANKED)]
        if not ranked:
            ctx.add_message(
                "No new ranked beatmaps found in the past day (only qualified/other status found)."
            )
            return

        existing = self.store.existing_beatmap_ids()
        candidates: list[BeatmapMetadata] = []
        for raw in ranked:
            try:
                metadata = BeatmapMetadata.model_validate(raw)
            except ValidationError:
                ctx.log.warning("discovered_beatmap_invalid", beatmap_id=raw.get("beatmap_id"))
                continue
            if metadata.beatmap_id not in existing:
                candidates.append(metadata)

        if not candidates:
            ctx.add_message("All newly ranked beatmaps are already being tracked.")
            return

        leaderboards = self.extractor.fetch_all(
            self._scores_or_empty,
            [str(m.beatmap_id) for m in candidates],
        )

        jobs: list[IngestionJob] = []
        skipped: list[BeatmapMetadata] = []
        for metadata, scores in zip(candidates, leaderboards):
            if any(is_full_combo(score, metadata.max_combo) for score in scores):
                skipped.append(metadata)
                continue
            jobs.append(
                IngestionJob(
                    target_row=None,
                    beatmap_id=str(metadata.beatmap_id),
                    metadata=metadata,
                    scores=scores,
                    wants_writeback=True,
                )
            )

        web = self.settings.osu_web_base_url
        skipped_urls = [beatmap_url(m.beatmapset_id, m.beatmap_id, web) for m in skipped]
        ctx.details["skipped"] = skipped_urls

        if not jobs:
            ctx.add_message("All newly ranked beatmaps already have FCs.")
            return

        results = ingest_jobs(
            jobs,
            self.extractor,
            chunk_size=self.settings.ingest_chunk_size,
            score_window=self.settings.score_window,
            now=ctx.now(),
            web_base_url=web,
            assets_base_url=self.settings.osu_assets_base_url,
        )
        for result in results:
            self.store.append_data_row(result.record, source_url=result.writeback_url)
        self.store.sort_data()
        ctx.increment_records(len(results))

        added_urls = [result.writeback_url for result in results]
        ctx.details["added"] = added_urls

        added = [f"Added {len(results)} newly ranked beatmap(s)."]
        added += ["", "Newly added beatmaps:", *added_urls]
        ctx.add_message("\n".join(added))

        skipped_message = [f"Skipped {len(skipped)} beatmap(s) with FCs."]
        if skipped_urls:
            skipped_message += ["", "Skipped beatmaps:", *skipped_urls]
        ctx.add_message("\n".join(skipped_message))

    def after_execute(self, ctx: PipelineContext) -> None:
        mark_last_updated(self.store, ctx.now())
