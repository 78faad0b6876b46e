"""
Unit tests for scheduler (rclone_backup/scheduler.py).

Tests APScheduler configuration and the scheduled job wrapper.
"""

import logging
from unittest.mock import MagicMock, patch

import pytest
from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger

from rclone_backup import scheduler as scheduler_module
from rclone_backup.config import ConfigError


class TestBuildTrigger:
    """Test cron expression parsing."""

    def test_valid_expression(self):
        trigger = scheduler_module.build_trigger('30 3 * * 1')

        assert isinstance(trigger, CronTrigger)
        assert "minute='30'" in str(trigger)
        assert "hour='3'" in str(trigger)

    @pytest.mark.parametrize("expression", ['0 2 * *', 'not a cron', '99 * * * *'])
    def test_invalid_expression(self, expression):
        with pytest.raises(ConfigError, match='Invalid schedule'):
            scheduler_module.build_trigger(expression)


class TestCreateScheduler:
    """Test scheduler creation."""

    def test_returns_unstarted_blocking_scheduler(self):
        scheduler = scheduler_module.create_scheduler(MagicMock(), '0 2 * * *')

        assert isinstance(scheduler, BlockingScheduler)
        assert not scheduler.running

    def test_single_job_registered(self):
        run_func = MagicMock()

        scheduler = scheduler_module.create_scheduler(run_func, '0 2 * * *')
        job = scheduler.get_job(scheduler_module.JOB_ID)

        assert job is not None
        assert job.name == 'Scheduled backup'
        assert job.args == (run_func,)
        assert job.func is scheduler_module._run_wrapper
        assert "hour='2'" in str(job.trigger)

    @patch('rclone_backup.scheduler.BlockingScheduler')
    def test_scheduler_configuration(self, mock_scheduler_class):
        mock_scheduler = MagicMock()
        mock_scheduler_class.return_value = mock_scheduler

        result = scheduler_module.create_scheduler(MagicMock(), '0 2 * * *', timezone='UTC')

        assert result == mock_scheduler
        call_kwargs = mock_scheduler_class.call_args[1]
        assert call_kwargs['timezone'] == 'UTC'
        assert call_kwargs['job_defaults']['max_instances'] == 1
        assert call_kwargs['job_defaults']['coalesce'] is True
        assert call_kwargs['job_defaults']['misfire_grace_time'] == 300

        add_kwargs = mock_scheduler.add_job.call_args[1]
        assert add_kwargs['id'] == scheduler_module.JOB_ID
        assert add_kwargs['replace_existing'] is True

    def test_invalid_expression_raises_config_error(self):
        with pytest.raises(ConfigError):
            scheduler_module.create_scheduler(MagicMock(), 'every day')


class TestRunWrapper:
    """Test the job wrapper."""

    def test_calls_run_func(self):
        run_func = MagicMock()

        scheduler_module._run_wrapper(run_func)

        run_func.assert_called_once_with()

    def test_failure_is_logged_not_raised(self, caplog):
        run_func = MagicMock(side_effect=RuntimeError('upload refused'))

        with caplog.at_level(logging.ERROR, logger='rclone_backup.scheduler'):
            scheduler_module._run_wrapper(run_func)

        assert 'Scheduled backup failed: upload refused' in caplog.text
