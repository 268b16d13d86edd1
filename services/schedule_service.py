"""
Daily schedule

The two daily runs (refresh in the evening, discovery just after
midnight) as APScheduler cron jobs. They are installed and removed as a
pair, and whether they are installed is kept in the meta table so a
restarted server picks the schedule back up.
"""

from typing import Any, Callable, Optional

import pytz
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.schedulers.base import BaseScheduler
from apscheduler.triggers.cron import CronTrigger

from core.logging import get_logger
from core.settings import Settings, settings
from db.base import connection
from db.models.tracker_meta import SCHEDULE_INSTALLED_KEY
from db.store import RecordStore

log = get_logger("schedule_service")

REFRESH_JOB_ID = "daily_refresh"
DISCOVER_JOB_ID = "daily_discover"
SCHEDULE_JOB_IDS = (REFRESH_JOB_ID, DISCOVER_JOB_ID)


def create_scheduler(app_settings: Settings = settings) -> BackgroundScheduler:
    return BackgroundScheduler(timezone=pytz.timezone(app_settings.timezone))


class DailySchedule:
    """
    Installs and removes the daily jobs on a scheduler.

    Args:
        scheduler: Scheduler the jobs are added to
        store: Where the installed flag is kept
        run_refresh: Called by the refresh job
        run_discover: Called by the discovery job
    """

    def __init__(
        self,
        scheduler: BaseScheduler,
        store: RecordStore,
        run_refresh: Callable[[], Any],
        run_discover: Callable[[], Any],
        app_settings: Settings = settings,
    ):
        self.scheduler = scheduler
        self.store = store
        self.run_refresh = run_refresh
        self.run_discover = run_discover
        self.settings = app_settings
        self.tz = pytz.timezone(app_settings.timezone)

    def _add_daily_job(self, func: Callable[[], Any], job_id: str, hour: int) -> None:
        self.scheduler.add_job(
            func,
            trigger=CronTrigger(hour=hour, minute=0, timezone=self.tz),
            id=job_id,
            replace_existing=True,
            coalesce=True,
            max_instances=1,
            misfire_grace_time=600,
        )

    def _set_installed(self, installed: bool) -> None:
        with connection():
            self.store.set_meta(SCHEDULE_INSTALLED_KEY, "1" if installed else "0")

    def install(self) -> str:
        """Install both jobs, replacing any existing pair."""
        self._add_daily_job(self.run_refresh, REFRESH_JOB_ID, self.settings.refresh_hour)
        self._add_daily_job(self.run_discover, DISCOVER_JOB_ID, self.settings.discover_hour)
        self._set_installed(True)

        log.info(
            "schedule_installed",
            refresh_hour=self.settings.refresh_hour,
            discover_hour=self.settings.discover_hour,
            timezone=self.settings.timezone,
        )
        return (
            f"Daily schedule installed: refresh at {self.settings.refresh_hour:02d}:00 "
            f"and discovery at {self.settings.discover_hour:02d}:00 ({self.settings.timezone})."
        )

    def remove(self) -> str:
        """Remove both jobs."""
        removed = 0
        for job_id in SCHEDULE_JOB_IDS:
            try:
                self.scheduler.remove_job(job_id)
                removed += 1
            except JobLookupError:
                continue
        self._set_installed(False)

        log.info("schedule_removed", removed=removed)
        return f"Removed {removed} scheduled job(s)."

    def is_installed(self) -> bool:
        with connection():
            return self.store.get_meta(SCHEDULE_INSTALLED_KEY) == "1"

    def restore(self) -> bool:
        """Reinstall the jobs on startup if they were installed before."""
        if not self.is_installed():
            return False
        self.install()
        log.info("schedule_restored")
        return True

    def next_runs(self) -> dict[str, Optional[str]]:
        """Next fire time per installed job."""
        runs = {}
        for job_id in SCHEDULE_JOB_IDS:
            job = self.scheduler.get_job(job_id)
            if job is not None:
                next_run = getattr(job, "next_run_time", None)
                runs[job_id] = next_run.isoformat() if next_run else None
        return runs
