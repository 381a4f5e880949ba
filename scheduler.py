import logging
from typing import Callable, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from sqlalchemy.orm import Session

from config import get_settings
from database import session_scope
from ingestion import EmailParser, SmsParser
from notifications import NotificationService
from services import InsightsService


logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class SchedulerManager:
    def __init__(self, notifier: Optional[NotificationService] = None) -> None:
        settings = get_settings()
        self.scheduler = BackgroundScheduler(timezone=settings.timezone)
        self.notifier = notifier or NotificationService()

    def _run_step(self, job: str, step: str, fn: Callable[[Session], object]) -> None:
        try:
            with session_scope() as session:
                result = fn(session)
            logger.info(f"scheduler_step: job={job} step={step} result={result}")
        except Exception:
            logger.exception(f"scheduler_step_failed: job={job} step={step}")

    def run_daily(self) -> None:
        logger.info("scheduler_run: job=daily")
        self._run_step("daily", "email_sync", EmailParser().sync_all_users)
        self._run_step("daily", "sms_sync", SmsParser().sync_all_users)
        self._run_step(
            "daily",
            "insights",
            lambda session: InsightsService(session, self.notifier).run_daily(),
        )
        logger.info("scheduler_done: job=daily")

    def run_weekly(self) -> None:
        logger.info("scheduler_run: job=weekly")
        self._run_step(
            "weekly",
            "insights",
            lambda session: InsightsService(session, self.notifier).run_weekly(),
        )
        self._run_step("weekly", "reports", self.notifier.send_weekly_reports)
        logger.info("scheduler_done: job=weekly")

    def run_monthly(self) -> None:
        logger.info("scheduler_run: job=monthly")
        self._run_step(
            "monthly",
            "insights",
            lambda session: InsightsService(session, self.notifier).run_monthly(),
        )
        self._run_step("monthly", "reports", self.notifier.send_monthly_reports)
        logger.info("scheduler_done: job=monthly")

    def start(self) -> None:
        self.scheduler.add_job(
            self.run_daily,
            CronTrigger(hour=9, minute=0),
            id="insights_daily",
            replace_existing=True,
            misfire_grace_time=3600,
        )
        self.scheduler.add_job(
            self.run_weekly,
            CronTrigger(day_of_week="mon", hour=10, minute=0),
            id="insights_weekly",
            replace_existing=True,
            misfire_grace_time=3600,
        )
        self.scheduler.add_job(
            self.run_monthly,
            CronTrigger(day=1, hour=0, minute=0),
            id="insights_monthly",
            replace_existing=True,
            misfire_grace_time=3600,
        )
        self.scheduler.start()
        logger.info(
            "Scheduler started with daily 09:00, weekly Monday 10:00 and monthly "
            "day-1 00:00 jobs"
        )

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
