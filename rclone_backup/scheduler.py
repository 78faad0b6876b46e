"""
APScheduler configuration for unattended backup runs.

A single cron-triggered job runs the backup. Overlapping runs inside one
scheduler process are prevented by the job defaults; runs from separate
processes against the same remote are not coordinated.
"""

import logging
from typing import Callable

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger

from rclone_backup.config import ConfigError


logger = logging.getLogger(__name__)

JOB_ID = 'backup_run'


def build_trigger(cron_expression: str, timezone: str = 'UTC') -> CronTrigger:
    """
    Parse a crontab expression.

    Raises:
        ConfigError: If the expression is invalid
    """
    try:
        return CronTrigger.from_crontab(cron_expression, timezone=timezone)
    except ValueError as e:
        raise ConfigError(f"Invalid schedule '{cron_expression}': {e}")


def create_scheduler(run_func: Callable[[], None], cron_expression: str, timezone: str = 'UTC') -> BlockingScheduler:
    """
    Create a scheduler that runs run_func on a cron schedule.

    Args:
        run_func: Callable executing one backup run
        cron_expression: Standard 5-field crontab expression
        timezone: Timezone the expression is evaluated in

    Returns:
        Configured, not yet started BlockingScheduler

    Raises:
        ConfigError: If the cron expression is invalid
    """
    trigger = build_trigger(cron_expression, timezone)

    job_defaults = {
        'coalesce': True,  # Combine multiple pending runs into one
        'max_instances': 1,  # Never overlap runs
        'misfire_grace_time': 300  # 5 minutes grace period for misfires
    }

    scheduler = BlockingScheduler(job_defaults=job_defaults, timezone=timezone)
    scheduler.add_job(
        func=_run_wrapper,
        args=[run_func],
        trigger=trigger,
        id=JOB_ID,
        name='Scheduled backup',
        replace_existing=True
    )

    logger.info(f"Scheduled backup ({cron_expression}, {timezone})")
    return scheduler


def _run_wrapper(run_func: Callable[[], None]):
    """Keep the scheduler alive when a run fails."""
    try:
        run_func()
    except Exception as e:
        logger.error(f"Scheduled backup failed: {e}")
