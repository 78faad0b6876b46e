"""
Backup executor - orchestrates the complete backup workflow.

Workflow:
1. Preflight: validate configuration, tools and disk space
2. Create compressed archive in a private temporary directory
3. Upload archive to the remote
4. Cleanup temporary files (always, on success and failure)
5. List remote backups and classify them by retention policy
6. Confirm and delete backups that fell out of retention

Steps 1-3 are fatal on failure. Steps 5 and 6 never fail the run: a remote
listing error is treated as "no backups", and deletions are attempted one by
one with failures only logged.
"""

import os
import shutil
import logging
import tempfile
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Optional

from rclone_backup.config import Config, ConfigError
from .compression import TarArchiver, CompressionError, get_archive_size, get_directory_size
from .naming import build_identifier, parse_listing
from .retention import RetentionResult, classify
from .storage import TransportError, create_transport


logger = logging.getLogger(__name__)


class RunStage(Enum):
    IDLE = 'idle'
    PREFLIGHT = 'preflight'
    ARCHIVING = 'archiving'
    UPLOADING = 'uploading'
    UPLOADED = 'uploaded'
    RETENTION_EVALUATED = 'retention evaluated'
    CONFIRMING_DELETION = 'confirming deletion'
    DELETING = 'deleting'
    DONE = 'done'


class BackupRunError(Exception):
    """Raised when a backup run fails at a fatal stage."""

    def __init__(self, stage: RunStage, message: str):
        super().__init__(message)
        self.stage = stage

    def __str__(self):
        return f"Backup failed during {self.stage.value}: {self.args[0]}"


class BackupExecutor:
    """
    Orchestrates one backup run.

    The archiver, transport and confirmation prompt are injected so runs can
    be driven by in-memory fakes. confirm(count) must return True to allow
    deleting count backups; without it, deletions are skipped unless
    config.auto_confirm is set.
    """

    def __init__(
        self,
        config: Config,
        archiver=None,
        transport=None,
        confirm: Optional[Callable[[int], bool]] = None,
        today: Optional[date] = None
    ):
        """
        Initialize backup executor.

        Args:
            config: Run configuration
            archiver: Archiver collaborator (default: TarArchiver)
            transport: Transport collaborator (default: from config)
            confirm: Deletion confirmation callback
            today: Backup date (default: local date when archiving starts)
        """
        self.config = config
        self.archiver = archiver or TarArchiver(config.compression_level)
        self.transport = transport
        self.confirm = confirm
        self.today = today
        self.stage = RunStage.IDLE
        self.temp_dir = None
        self.archive_path = None
        self.archive_size = None
        self.logs = []

    def execute(self) -> Dict[str, Any]:
        """
        Execute the backup run.

        Returns:
            Summary dict:
            {
                'status': 'success',
                'stage': str,
                'archive': str,
                'archive_size': int,
                'kept': Dict[str, str],
                'to_delete': List[str],
                'deleted': List[str],
                'delete_failed': List[str],
                'confirmed': bool,
                'logs': List[str]
            }

        Raises:
            BackupRunError: If preflight, archiving or upload fails
        """
        self._log(f"Starting backup of {self.config.source_dir}")

        summary = {
            'status': 'success',
            'archive': None,
            'archive_size': None,
            'kept': {},
            'to_delete': [],
            'deleted': [],
            'delete_failed': [],
            'confirmed': False,
        }

        try:
            self._preflight()
            self._create_archive()
            summary['archive'] = os.path.basename(self.archive_path)
            summary['archive_size'] = self.archive_size
            self._upload()
        except BackupRunError as e:
            self._log(str(e), logging.ERROR)
            raise
        finally:
            self._cleanup()

        result = self.evaluate_retention()
        summary['kept'] = {record.identifier: decision.value
                           for record, decision in result.decisions if decision.is_kept}
        summary['to_delete'] = [record.identifier for record in result.to_delete]

        confirmed, deleted, failed = self._apply_retention(result)
        summary['confirmed'] = confirmed
        summary['deleted'] = deleted
        summary['delete_failed'] = failed

        self.stage = RunStage.DONE
        self._log("Backup run finished")

        summary['stage'] = self.stage.value
        summary['logs'] = self.logs
        return summary

    def _preflight(self):
        """Fail before any side effect if the run cannot succeed."""
        self.stage = RunStage.PREFLIGHT

        try:
            self.config.validate()
        except ConfigError as e:
            raise BackupRunError(self.stage, str(e)) from e

        for key, value in self.config.to_dict().items():
            self._log(f"{key}: {value}", logging.DEBUG)

        self._ensure_transport()

        try:
            self.archiver.check_available()
            self.transport.check_available()
        except (CompressionError, TransportError) as e:
            raise BackupRunError(self.stage, str(e)) from e

        self._check_disk_space()

    def _ensure_transport(self):
        if self.transport is not None:
            return
        try:
            self.transport = create_transport(self.config)
        except (ValueError, TransportError) as e:
            raise BackupRunError(self.stage, str(e)) from e

    def _check_disk_space(self):
        """Require twice the source size free where the archive is built."""
        try:
            required = get_directory_size(self.config.source_dir) * 2
            available = shutil.disk_usage(self.config.temp_dir).free
        except (CompressionError, OSError) as e:
            raise BackupRunError(self.stage, f"Failed to check disk space: {e}") from e

        if available < required:
            raise BackupRunError(
                self.stage,
                f"Not enough disk space in {self.config.temp_dir}. "
                f"Required: {required // 1024}KB, Available: {available // 1024}KB"
            )

    def _create_archive(self):
        self.stage = RunStage.ARCHIVING

        archive_name = build_identifier(self.today or date.today(), self.config.prefix)

        try:
            self.temp_dir = tempfile.mkdtemp(prefix='rclone_backup_', dir=self.config.temp_dir)
            archive_path = os.path.join(self.temp_dir, archive_name)

            self._log(f"Creating archive: {archive_name} (level {self.config.compression_level})")
            self.archive_path = self.archiver.create_archive(
                self.config.source_dir,
                archive_path,
                self.config.compression_level
            )
            self.archive_size = get_archive_size(self.archive_path)
        except (CompressionError, ValueError, OSError) as e:
            raise BackupRunError(self.stage, str(e)) from e

        self._log(f"Archive created: {archive_name} ({self.archive_size / 1024 / 1024:.2f} MB)")

    def _upload(self):
        self.stage = RunStage.UPLOADING
        self._log(f"Uploading {os.path.basename(self.archive_path)} to {self.transport.destination}")

        try:
            self.transport.upload(self.archive_path)
        except TransportError as e:
            raise BackupRunError(self.stage, str(e)) from e

        self.stage = RunStage.UPLOADED
        self._log("Upload successful")

    def evaluate_retention(self) -> RetentionResult:
        """
        List the remote and classify its backups.

        Listing failures are logged and treated as an empty remote.
        """
        self._ensure_transport()
        destination = self.transport.destination
        self._log(f"Starting remote backup retention management for {destination}")

        try:
            raw_names = self.transport.list()
        except TransportError as e:
            self._log(f"Failed to list remote backups: {e}", logging.WARNING)
            raw_names = []

        records = parse_listing(raw_names, self.config.prefix)
        if records:
            self._log(f"Found {len(records)} remote backups for prefix '{self.config.prefix}'")
        else:
            self._log(f"No remote backups found at {destination} matching the pattern")

        result = classify(
            records,
            self.config.keep_daily,
            self.config.keep_weekly,
            self.config.keep_monthly
        )

        self._log("--- Retention Summary")
        self._log(f"Daily to keep: {self.config.keep_daily}. Found qualifying: {result.daily_count}")
        self._log(f"Weekly to keep: {self.config.keep_weekly} (distinct weeks). Found qualifying: {result.weekly_count}")
        self._log(f"Monthly to keep: {self.config.keep_monthly} (distinct months). Found qualifying: {result.monthly_count}")

        self.stage = RunStage.RETENTION_EVALUATED
        return result

    def _apply_retention(self, result: RetentionResult):
        """
        Confirm and delete backups outside retention.

        Returns:
            (confirmed, deleted names, names that failed to delete)
        """
        to_delete = result.to_delete
        if not to_delete:
            self._log("No backups to delete according to the retention policy")
            return False, [], []

        self._log(f"Backups to delete ({len(to_delete)}):")
        for record in to_delete:
            self._log(f"  {record.identifier}")

        self.stage = RunStage.CONFIRMING_DELETION
        if self.config.auto_confirm:
            self._log("Auto-confirmation enabled. Proceeding with deletion")
        elif self.confirm is None:
            self._log("No confirmation available and auto-confirmation disabled. Skipping deletion",
                      logging.WARNING)
            return False, [], []
        elif not self.confirm(len(to_delete)):
            self._log("Deletion aborted by user")
            return False, [], []

        self.stage = RunStage.DELETING
        deleted = []
        failed = []

        for record in to_delete:
            try:
                self.transport.delete(record.identifier)
                deleted.append(record.identifier)
                self._log(f"Deleted {record.identifier}")
            except TransportError as e:
                failed.append(record.identifier)
                self._log(f"Error deleting {record.identifier}: {e}", logging.ERROR)

        self._log(f"Deletion finished: {len(deleted)} deleted, {len(failed)} failed")
        return True, deleted, failed

    def _cleanup(self):
        """Remove temporary directory and files."""
        if self.temp_dir and os.path.exists(self.temp_dir):
            try:
                shutil.rmtree(self.temp_dir)
                self._log("Cleaned up temporary directory")
            except OSError as e:
                self._log(f"Failed to cleanup temp directory: {e}", logging.WARNING)

    def _log(self, message: str, level: int = logging.INFO):
        """
        Record a run log line and emit it through logging.

        Args:
            message: Log message
            level: logging level
        """
        timestamp = datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M:%S UTC')
        self.logs.append(f"[{timestamp}] [{logging.getLevelName(level)}] {message}")
        logger.log(level, message)


def execute_backup(config: Config, confirm: Optional[Callable[[int], bool]] = None) -> Dict[str, Any]:
    """
    Run one backup with production collaborators.

    Args:
        config: Run configuration
        confirm: Deletion confirmation callback

    Returns:
        Summary dict from BackupExecutor.execute()

    Raises:
        BackupRunError: If a fatal stage fails
    """
    executor = BackupExecutor(config, confirm=confirm)
    return executor.execute()


def plan_retention(config: Config, transport=None) -> RetentionResult:
    """
    Classify the current remote backups without changing anything.

    Raises:
        BackupRunError: If configuration is invalid or the transport is
            unavailable
    """
    try:
        config.validate(require_source=False)
    except ConfigError as e:
        raise BackupRunError(RunStage.PREFLIGHT, str(e)) from e

    executor = BackupExecutor(config, transport=transport)
    executor.stage = RunStage.PREFLIGHT
    executor._ensure_transport()

    try:
        executor.transport.check_available()
    except TransportError as e:
        raise BackupRunError(RunStage.PREFLIGHT, str(e)) from e

    return executor.evaluate_retention()
