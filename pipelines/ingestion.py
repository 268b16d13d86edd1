"""
Ingestion

Turns a list of beatmap jobs into tracker rows. Jobs are processed in
fixed-size chunks; within a chunk all metadata fetches go out together,
then all score fetches. Every request waits on the extractor's rate
limiter, which is the only throttle.

A malformed response degrades its own job to an error row. A fetch that
raises aborts the whole run with BatchFetchError.
"""

import json
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Iterator, Optional, Sequence, TypeVar

from pydantic import ValidationError

from core.errors import BatchFetchError
from core.logging import get_logger
from core.settings import settings
from pipelines.extractors.osu_api import FetchFailure, OsuApiExtractor
from pipelines.transformers.records import beatmap_url, build_record
from schemas.osu import BeatmapMetadata, Score
from schemas.records import BeatmapRecord

log = get_logger("ingestion")

T = TypeVar("T")

API_ERROR = "API Error"
INVALID_BEATMAP_ID = "Invalid beatmap ID"

# Tracking links end in the beatmap id: https://osu.ppy.sh/beatmapsets/1#osu/2
BEATMAP_ID_PATTERN = re.compile(r"\d+$")


@dataclass
class IngestionJob:
    """
    One beatmap to (re)build.

    Attributes:
        target_row: Data row the result is written to (None for rows the
            caller appends)
        beatmap_id: Upstream beatmap id as it appears in the tracking link
        metadata: Prefetched metadata; skips the metadata fetch
        scores: Prefetched leaderboard; skips the score fetch
        wants_writeback: Produce the canonical beatmap URL for the tracking column
    """

    target_row: Optional[int]
    beatmap_id: str
    metadata: Optional[BeatmapMetadata] = None
    scores: Optional[list[Score]] = None
    wants_writeback: bool = False


@dataclass
class IngestionResult:
    job: IngestionJob
    record: BeatmapRecord
    writeback_url: Optional[str] = None


def extract_beatmap_id(link: Optional[str]) -> Optional[str]:
    """Trailing digits of a tracking link, or None."""
    if not link:
        return None
    match = BEATMAP_ID_PATTERN.search(str(link).strip())
    return match.group(0) if match else None


def chunked(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


def parse_metadata(body: str, beatmap_id: str) -> BeatmapMetadata | BeatmapRecord:
    """
    Parse a get_beatmaps body.

    Returns the metadata, or an error placeholder record when the body is
    unparseable ("API Error") or lists no beatmap ("Invalid beatmap ID").
    """
    try:
        beatmaps = json.loads(body)
    except json.JSONDecodeError:
        log.warning("metadata_unparseable", beatmap_id=beatmap_id)
        return BeatmapRecord.error(API_ERROR)

    if not isinstance(beatmaps, list):
        log.warning("metadata_unparseable", beatmap_id=beatmap_id, payload_type=type(beatmaps).__name__)
        return BeatmapRecord.error(API_ERROR)
    if not beatmaps:
        log.warning("beatmap_not_found", beatmap_id=beatmap_id)
        return BeatmapRecord.error(INVALID_BEATMAP_ID)

    try:
        return BeatmapMetadata.model_validate(beatmaps[0])
    except ValidationError as e:
        log.warning("metadata_invalid", beatmap_id=beatmap_id, errors=e.error_count())
        return BeatmapRecord.error(API_ERROR)


def parse_scores(body: str, beatmap_id: str) -> list[Score]:
    """Parse a get_scores body leniently; anything unusable counts as no scores."""
    try:
        raw_scores = json.loads(body)
    except json.JSONDecodeError:
        log.warning("scores_unparseable", beatmap_id=beatmap_id)
        return []
    if not isinstance(raw_scores, list):
        log.warning("scores_unparseable", beatmap_id=beatmap_id, payload_type=type(raw_scores).__name__)
        return []
    return validate_scores(raw_scores, beatmap_id)


def validate_scores(raw_scores: list, beatmap_id: str) -> list[Score]:
    """Validate leaderboard entries, dropping the ones that do not fit."""
    scores = []
    for position, raw in enumerate(raw_scores):
        try:
            scores.append(Score.model_validate(raw))
        except ValidationError:
            log.warning("score_invalid", beatmap_id=beatmap_id, position=position)
    return scores


def _fetch_batch(
    extractor: OsuApiExtractor,
    kind: str,
    chunk_index: int,
    beatmap_ids: list[str],
) -> list[str]:
    fetch = extractor.get_beatmap_raw if kind == "metadata" else extractor.get_scores_raw
    try:
        return extractor.fetch_all(fetch, beatmap_ids)
    except FetchFailure as failure:
        log.error(
            "batch_fetch_failed",
            kind=kind,
            chunk=chunk_index,
            beatmap_id=failure.beatmap_id,
            error=str(failure.error),
        )
        raise BatchFetchError(kind, chunk_index, failure.beatmap_id, failure.error) from failure.error


def _resolve_job(
    job: IngestionJob,
    metadata_body: Optional[str],
    scores_body: Optional[str],
    now: datetime,
    score_window: int,
    web_base_url: str,
    assets_base_url: str,
) -> IngestionResult:
    metadata = job.metadata
    if metadata is None:
        parsed = parse_metadata(metadata_body or "", job.beatmap_id)
        if isinstance(parsed, BeatmapRecord):
            return IngestionResult(job=job, record=parsed)
        metadata = parsed

    scores = job.scores
    if scores is None:
        scores = parse_scores(scores_body or "", job.beatmap_id)

    record = build_record(
        metadata,
        scores,
        now=now,
        score_window=score_window,
        web_base_url=web_base_url,
        assets_base_url=assets_base_url,
    )
    writeback_url = None
    if job.wants_writeback:
        writeback_url = beatmap_url(metadata.beatmapset_id, metadata.beatmap_id, web_base_url)
    return IngestionResult(job=job, record=record, writeback_url=writeback_url)


def ingest_jobs(
    jobs: Sequence[IngestionJob],
    extractor: OsuApiExtractor,
    chunk_size: int = settings.ingest_chunk_size,
    score_window: int = settings.score_window,
    now: Optional[datetime] = None,
    web_base_url: str = settings.osu_web_base_url,
    assets_base_url: str = settings.osu_assets_base_url,
) -> list[IngestionResult]:
    """
    Build one record per job.

    Args:
        jobs: Jobs in the order their rows should be written
        extractor: Upstream client (shared rate limiter and worker pool)
        chunk_size: Jobs per chunk
        now: Clock for days ranked; defaults to the current time

    Returns:
        Results in job order, regardless of fetch completion order

    Raises:
        BatchFetchError: If any batched fetch raised
    """
    now = now or datetime.now().astimezone()
    results: list[IngestionResult] = []
    chunks = list(chunked(list(jobs), chunk_size))

    for chunk_index, chunk in enumerate(chunks):
        need_metadata = [job.beatmap_id for job in chunk if job.metadata is None]
        need_scores = [job.beatmap_id for job in chunk if job.scores is None]

        metadata_bodies = iter(_fetch_batch(extractor, "metadata", chunk_index, need_metadata))
        score_bodies = iter(_fetch_batch(extractor, "scores", chunk_index, need_scores))

        for job in chunk:
            metadata_body = next(metadata_bodies) if job.metadata is None else None
            scores_body = next(score_bodies) if job.scores is None else None
            results.append(
                _resolve_job(
                    job,
                    metadata_body,
                    scores_body,
                    now,
                    score_window,
                    web_base_url,
                    assets_base_url,
                )
            )

        log.info(
            "chunk_ingested",
            chunk=chunk_index + 1,
            chunks=len(chunks),
            jobs=len(chunk),
            metadata_fetched=len(need_metadata),
            scores_fetched=len(need_scores),
        )

    return results
