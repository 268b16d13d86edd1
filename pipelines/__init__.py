"""
Pipeline Registry and Exports

Registry of the tracker runs and helpers for running them by name.
"""

from typing import Optional, Type

from core.logging import get_logger
from core.settings import Settings, settings
from db.store import RecordStore
from pipelines.base import BasePipeline
from pipelines.config import PipelineConfig
from pipelines.context import PipelineContext
from pipelines.discover import DiscoverBeatmapsPipeline
from pipelines.extractors.osu_api import OsuApiExtractor
from pipelines.reconcile import MoveFCsToHistoryPipeline
from pipelines.refresh import RefreshBeatmapsPipeline
from schemas.pipeline import PipelineResult


# Registry of all available pipelines
PIPELINE_REGISTRY: dict[str, Type[BasePipeline]] = {
    # Daily schedule: refresh at night, discovery just after midnight
    "refresh_all": RefreshBeatmapsPipeline,
    "discover_new": DiscoverBeatmapsPipeline,
    # Manual
    "move_fcs_to_history": MoveFCsToHistoryPipeline,
}


def get_pipeline(
    name: str,
    store: RecordStore,
    extractor: Optional[OsuApiExtractor] = None,
    app_settings: Settings = settings,
) -> BasePipeline:
    """
    Get a pipeline instance by name.

    Raises:
        KeyError: If pipeline name not found
    """
    if name not in PIPELINE_REGISTRY:
        available = ", ".join(PIPELINE_REGISTRY.keys())
        raise KeyError(f"Unknown pipeline '{name}'. Available: {available}")

    return PIPELINE_REGISTRY[name](store, extractor, app_settings)


def run_pipeline_sync(
    name: str,
    store: RecordStore,
    extractor: Optional[OsuApiExtractor] = None,
    app_settings: Settings = settings,
) -> PipelineResult:
    """Run a pipeline by name on the calling thread."""
    get_logger("pipeline").info("running_pipeline", pipeline=name)
    return get_pipeline(name, store, extractor, app_settings).run_sync()


async def run_pipeline(
    name: str,
    store: RecordStore,
    extractor: Optional[OsuApiExtractor] = None,
    app_settings: Settings = settings,
) -> PipelineResult:
    """Run a pipeline by name in a worker thread."""
    return await get_pipeline(name, store, extractor, app_settings).run()


def list_pipelines() -> list[dict]:
    return [cls.get_info() for cls in PIPELINE_REGISTRY.values()]


__all__ = [
    "BasePipeline",
    "PipelineConfig",
    "PipelineContext",
    "RefreshBeatmapsPipeline",
    "DiscoverBeatmapsPipeline",
    "MoveFCsToHistoryPipeline",
    "PIPELINE_REGISTRY",
    "get_pipeline",
    "run_pipeline_sync",
    "run_pipeline",
    "list_pipelines",
]
