"""APScheduler job definitions for the hourly price and daily-summary ticks."""

import logging
from typing import Callable, Optional, Union

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from goldwatch.app import GoldWatchApp
from goldwatch.config import ScheduleConfig
from goldwatch.notifiers.whatsapp import WhatsAppSession

logger = logging.getLogger(__name__)

PRICE_JOB_ID = "price_refresh"
DAILY_JOB_ID = "daily_check"
SESSION_JOB_ID = "whatsapp_session_sync"


def _guard(name: str, func: Callable[[], object]) -> Callable[[], None]:
    """Log job failures so one bad tick never stops the scheduler."""

    def job() -> None:
        logger.info(f"Running scheduled {name}")
        try:
            result = func()
        except Exception as e:
            logger.exception(f"Scheduled {name} failed: {e}")
            return
        error = getattr(result, "error", None)
        if error:
            logger.warning(f"Scheduled {name} finished with error: {error}")

    job.__name__ = name
    return job


def setup_scheduler(
    app: GoldWatchApp,
    schedule: ScheduleConfig,
    blocking: bool = True,
    whatsapp_session: Optional[WhatsAppSession] = None,
) -> Union[BlockingScheduler, BackgroundScheduler]:
    """
    Setup and configure APScheduler.

    Args:
        app: Pipeline the jobs drive
        schedule: Cron expressions and timezone
        blocking: Run in the foreground; use False when an HTTP server
            owns the main thread
        whatsapp_session: Session to keep in step with its gateway, so a
            QR scan after startup makes the channel usable

    Returns:
        Configured (not started) scheduler
    """
    scheduler_cls = BlockingScheduler if blocking else BackgroundScheduler
    scheduler = scheduler_cls(timezone=schedule.timezone)

    scheduler.add_job(
        _guard("price refresh", app.run_price_tick),
        CronTrigger.from_crontab(schedule.price_refresh, timezone=schedule.timezone),
        id=PRICE_JOB_ID,
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )
    scheduler.add_job(
        _guard("daily summary check", app.run_daily_tick),
        CronTrigger.from_crontab(schedule.daily_check, timezone=schedule.timezone),
        id=DAILY_JOB_ID,
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )

    if whatsapp_session is not None:
        scheduler.add_job(
            _guard("WhatsApp session sync", whatsapp_session.sync),
            IntervalTrigger(seconds=schedule.whatsapp_sync_seconds),
            id=SESSION_JOB_ID,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )

    logger.info(
        f"Scheduled price refresh '{schedule.price_refresh}' and daily check "
        f"'{schedule.daily_check}' ({schedule.timezone})"
    )
    return scheduler
