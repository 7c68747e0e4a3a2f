import logging
from datetime import datetime, timezone
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from config import Settings, get_settings
from database import Database
from models import utcnow
from periods import add_months, month_start
from services import reconcile_budgets

logger = logging.getLogger(__name__)


def months_to_reconcile(now=None) -> list[tuple[int, int]]:
    first = month_start(now or utcnow())
    previous = add_months(first, -1)
    return [(previous.year, previous.month), (first.year, first.month)]


class SchedulerManager:
    def __init__(self, database: Database, settings: Optional[Settings] = None) -> None:
        settings = settings or get_settings()
        self.database = database
        self.scheduler = BackgroundScheduler(timezone=settings.timezone)

    def _run_job(self, source: str = "manual") -> int:
        logger.info(f"scheduler_run: source={source}")
        with self.database.session_scope() as session:
            count = reconcile_budgets(session, months_to_reconcile())
        logger.info(f"scheduler_run: source={source} budgets_reconciled={count}")
        return count

    def _add_jobs(self) -> None:
        # Startup catch-up runs on the scheduler thread, not in the caller.
        trigger = DateTrigger(run_date=datetime.now(timezone.utc))
        self.scheduler.add_job(
            self._run_job,
            trigger,
            args=["startup"],
            id="budgets_startup",
            replace_existing=True,
            misfire_grace_time=300,
        )

        trigger = CronTrigger(hour=3, minute=15)
        self.scheduler.add_job(
            self._run_job,
            trigger,
            args=["daily_03:15"],
            id="budgets_daily",
            replace_existing=True,
            misfire_grace_time=3600,
        )

        trigger = IntervalTrigger(hours=1)
        self.scheduler.add_job(
            self._run_job,
            trigger,
            args=["hourly_safety_net"],
            id="budgets_hourly_safety",
            replace_existing=True,
            misfire_grace_time=300,
        )

    def start(self) -> None:
        self._add_jobs()
        self.scheduler.start()
        logger.info("Scheduler started with daily 03:15 and hourly safety net")

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
