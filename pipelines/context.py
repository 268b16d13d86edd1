"""
Pipeline Context

Run tracking, logging, timing and the user-facing summary of one run.
"""

from __future__ import annotations

import traceback
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

import pytz

from core.logging import get_logger
from core.settings import settings
from db.models.pipeline_run import PipelineRun
from schemas.common import ApiStatus
from schemas.pipeline import PipelineResult


@dataclass
class PipelineContext:
    """
    Execution context for one tracker run.

    Holds the correlation/run id, the PipelineRun audit row, timing, a
    counter of rows touched and the summary lines shown to the user.

    Usage:
        ctx = PipelineContext("refresh_all")
        ctx.start_tracking()
        try:
            ctx.increment_records(10)
            ctx.add_message("Refresh complete! Updated 10 beatmap(s).")
            return ctx.mark_success()
        except Exception as e:
            return ctx.mark_failed(e)
    """

    pipeline_name: str
    timezone: str = settings.timezone
    run_id: uuid.UUID = field(default_factory=uuid.uuid4)
    started_at: Optional[datetime] = None
    records_processed: int = 0
    messages: list[str] = field(default_factory=list)
    details: dict[str, Any] = field(default_factory=dict)

    _db_run: Optional[PipelineRun] = field(default=None, repr=False)
    _log: Any = field(default=None, repr=False)

    def __post_init__(self):
        self._tz = pytz.timezone(self.timezone)
        if self.started_at is None:
            self.started_at = datetime.now(self._tz)
        self._log = get_logger("pipeline").bind(
            pipeline=self.pipeline_name,
            run_id=str(self.run_id),
        )

    @property
    def log(self):
        """Get the bound logger for this context."""
        return self._log

    def now(self) -> datetime:
        """Current time in the tracker's timezone."""
        return datetime.now(self._tz)

    def start_tracking(self) -> None:
        """Create the PipelineRun row and adopt its id."""
        self._db_run = PipelineRun.start_run(self.pipeline_name)
        self.run_id = self._db_run.id
        self._log = self._log.bind(run_id=str(self.run_id))
        self._log.info("pipeline_started")

    def increment_records(self, count: int = 1) -> None:
        self.records_processed += count

    def add_message(self, message: str) -> None:
        """Append a block to the user-facing summary."""
        if message:
            self.messages.append(message)

    @property
    def summary(self) -> str:
        return "\n\n".join(self.messages)

    def mark_success(self, message: Optional[str] = None) -> PipelineResult:
        completed_at = datetime.now(self._tz)
        duration = (completed_at - self.started_at).total_seconds()
        summary = message or self.summary or f"{self.pipeline_name} completed successfully"

        if self._db_run:
            self._db_run.mark_success(
                records_processed=self.records_processed,
                summary=summary,
            )

        self._log.info(
            "pipeline_completed",
            records_processed=self.records_processed,
            duration_seconds=duration,
        )

        return PipelineResult(
            status=ApiStatus.SUCCESS,
            message=summary,
            started_at=self.started_at.isoformat(),
            completed_at=completed_at.isoformat(),
            duration_seconds=duration,
            records_processed=self.records_processed,
            details=self.details or None,
        )

    def mark_failed(self, error: Exception) -> PipelineResult:
        """
        Mark the run failed.

        The message is the error's own text, so user-facing errors (lock
        held, missing row) read the same here as they do when raised.
        """
        completed_at = datetime.now(self._tz)
        duration = (completed_at - self.started_at).total_seconds()
        error_msg = f"{type(error).__name__}: {str(error)}"
        tb = traceback.format_exc()

        if self._db_run:
            self._db_run.mark_failed(error_msg)

        self._log.error(
            "pipeline_failed",
            error=error_msg,
            traceback=tb,
        )

        return PipelineResult(
            status=ApiStatus.ERROR,
            message=f"{self.pipeline_name} failed: {error}",
            started_at=self.started_at.isoformat(),
            completed_at=completed_at.isoformat(),
            duration_seconds=duration,
            error=f"{error_msg}\n{tb}",
        )
