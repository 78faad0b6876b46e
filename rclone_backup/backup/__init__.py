"""
Backup module for rclone-backup.

This module handles the core backup functionality including:
- Archive naming and remote listing parsing
- Compression
- Transports (rclone, S3 and local)
- Retention classification
- Execution orchestration
"""

from .executor import BackupExecutor, BackupRunError, RunStage
from .naming import BackupRecord, build_identifier, extract_date, parse_listing
from .compression import TarArchiver, create_archive
from .storage import RcloneTransport, S3Transport, LocalTransport, create_transport
from .retention import RetentionDecision, RetentionResult, classify

__all__ = [
    'BackupExecutor',
    'BackupRunError',
    'RunStage',
    'BackupRecord',
    'build_identifier',
    'extract_date',
    'parse_listing',
    'TarArchiver',
    'create_archive',
    'RcloneTransport',
    'S3Transport',
    'LocalTransport',
    'create_transport',
    'RetentionDecision',
    'RetentionResult',
    'classify'
]
