"""
Base Pipeline

Abstract base class for tracker runs.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import ClassVar, Optional

from core.settings import Settings, settings
from db.base import connection, db
from db.models.run_lock import RunLock
from db.store import RecordStore
from pipelines.config import PipelineConfig
from pipelines.context import PipelineContext
from pipelines.extractors.osu_api import OsuApiExtractor
from schemas.pipeline import PipelineResult


class BasePipeline(ABC):
    """
    Abstract base class for tracker runs.

    Provides:
    - Exclusive access to the record tables via the run lock
    - Run tracking via PipelineContext
    - One transaction around execute(): a failed run leaves no partial writes
    - Thread-based execution to avoid blocking the async event loop

    The record store and the upstream extractor are passed in by the
    entry point; pipelines never build their own.

    Subclasses must implement:
    - config: PipelineConfig class attribute
    - execute(): The actual run logic (synchronous)

    Example:
        class SortDataPipeline(BasePipeline):
            config = PipelineConfig(
                name="sort_data",
                display_name="Sort Data",
                description="Re-sorts the Data table by star rating",
                target_table="data_rows",
                needs_api=False,
            )

            def execute(self, ctx: PipelineContext) -> None:
                self.store.sort_data()
                ctx.add_message("Data sorted.")
    """

    config: ClassVar[PipelineConfig]

    def __init__(
        self,
        store: RecordStore,
        extractor: Optional[OsuApiExtractor] = None,
        app_settings: Settings = settings,
    ):
        self._validate_config()
        if self.config.needs_api and extractor is None:
            raise ValueError(f"{self.__class__.__name__} needs an OsuApiExtractor")
        self.store = store
        self.extractor = extractor
        self.settings = app_settings

    def _validate_config(self) -> None:
        if not hasattr(self.__class__, "config") or self.__class__.config is None:
            raise ValueError(
                f"{self.__class__.__name__} must define a 'config' class attribute"
            )

    @abstractmethod
    def execute(self, ctx: PipelineContext) -> None:
        """
        Run the pipeline logic.

        Runs inside a transaction while the run lock is held. Blocking I/O
        is safe to call directly.

        Raises:
            Any exception rolls back the transaction and fails the run
        """
        pass

    def run_sync(self) -> PipelineResult:
        """
        Run the full lifecycle synchronously.

        Used directly by the CLI and the scheduler, and via asyncio.to_thread()
        by run(). Manages its own DB connection since Peewee connections are
        thread-local.
        """
        with connection():
            ctx = PipelineContext(self.config.name, timezone=self.settings.timezone)
            try:
                lease = RunLock.acquire(
                    self.config.lock_name,
                    holder=str(ctx.run_id),
                    ttl_seconds=self.settings.run_lock_ttl_seconds,
                )
            except Exception as e:
                return ctx.mark_failed(e)

            try:
                ctx.start_tracking()
                try:
                    with db.atomic():
                        self.before_execute(ctx)
                        self.execute(ctx)
                        self.after_execute(ctx)
                    return ctx.mark_success()
                except Exception as e:
                    return ctx.mark_failed(e)
            finally:
                RunLock.release(lease.name, lease.holder)

    async def run(self) -> PipelineResult:
        """
        Run the pipeline with full lifecycle management.

        The whole run (DB and HTTP I/O) executes in a thread pool worker.
        """
        return await asyncio.to_thread(self.run_sync)

    def before_execute(self, ctx: PipelineContext) -> None:
        """Hook called before execute(), inside the transaction."""
        pass

    def after_execute(self, ctx: PipelineContext) -> None:
        """Hook called after a successful execute(), inside the transaction."""
        pass

    @classmethod
    def get_name(cls) -> str:
        return cls.config.name

    @classmethod
    def get_info(cls) -> dict:
        return {
            "name": cls.config.name,
            "display_name": cls.config.display_name,
            "description": cls.config.description,
            "target_table": cls.config.target_table,
        }

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(name={self.config.name})>"
