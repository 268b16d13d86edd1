"""
Tracker runtime

The explicitly constructed dependencies every entry point shares: the
record store, the upstream client holding the API key, and (for the
server) the daily schedule.
"""

from dataclasses import dataclass
from typing import Optional

from apscheduler.schedulers.base import BaseScheduler

from core.rate_limit import build_rate_limiter
from core.settings import Settings, require_api_key
from db.store import RecordStore, SqlRecordStore
from pipelines import run_pipeline_sync
from pipelines.extractors.osu_api import OsuApiExtractor
from schemas.pipeline import PipelineResult
from services.schedule_service import DailySchedule


@dataclass
class TrackerRuntime:
    settings: Settings
    store: RecordStore
    extractor: OsuApiExtractor
    schedule: Optional[DailySchedule] = None

    def run(self, pipeline_name: str) -> PipelineResult:
        return run_pipeline_sync(pipeline_name, self.store, self.extractor, self.settings)

    def run_refresh(self) -> PipelineResult:
        return self.run("refresh_all")

    def run_discover(self) -> PipelineResult:
        return self.run("discover_new")


def build_runtime(
    app_settings: Settings,
    scheduler: Optional[BaseScheduler] = None,
    store: Optional[RecordStore] = None,
    extractor: Optional[OsuApiExtractor] = None,
) -> TrackerRuntime:
    """
    Wire up the runtime.

    Raises:
        ConfigurationError: If no extractor is given and OSU_API_KEY is missing
    """
    if extractor is None:
        extractor = OsuApiExtractor(
            api_key=require_api_key(app_settings),
            base_url=app_settings.osu_api_base_url,
            rate_limiter=build_rate_limiter(
                app_settings.api_rate_limit_per_minute,
                app_settings.api_rate_limit_per_second,
                app_settings.api_rate_limit_max_wait_seconds,
            ),
            max_workers=app_settings.fetch_workers,
            timeout=app_settings.http_timeout,
        )

    runtime = TrackerRuntime(
        settings=app_settings,
        store=store or SqlRecordStore(),
        extractor=extractor,
    )
    if scheduler is not None:
        runtime.schedule = DailySchedule(
            scheduler,
            runtime.store,
            run_refresh=runtime.run_refresh,
            run_discover=runtime.run_discover,
            app_settings=app_settings,
        )
    return runtime
