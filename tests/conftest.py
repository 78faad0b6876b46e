"""
Shared pytest fixtures for rclone-backup tests.

This module provides fixtures for:
- Source directories to back up
- Run configuration
- In-memory fakes for the archiver and transport collaborators
- Mock fixtures for external services (S3, rclone)
"""

import os
from unittest.mock import MagicMock, patch

import pytest
import boto3
from moto import mock_aws

from rclone_backup.config import Config
from rclone_backup.backup.compression import CompressionError
from rclone_backup.backup.storage import TransportError


class FakeTransport:
    """In-memory flat remote folder."""

    destination = 'fake:backups'

    def __init__(self, entries=None):
        self.entries = list(entries or [])
        self.uploaded = []
        self.deleted = []
        self.delete_attempts = []
        self.list_calls = 0
        self.available = True
        self.fail_upload = False
        self.fail_list = False
        self.fail_deletes = set()

    def check_available(self):
        if not self.available:
            raise TransportError("rclone command not found. Please install rclone.")
        return True

    def upload(self, local_path):
        if self.fail_upload:
            raise TransportError("upload refused")
        assert os.path.exists(local_path)
        name = os.path.basename(local_path)
        self.uploaded.append(name)
        self.entries.append(name)
        return name

    def list(self):
        self.list_calls += 1
        if self.fail_list:
            raise TransportError("listing refused")
        return list(self.entries)

    def delete(self, name):
        self.delete_attempts.append(name)
        if name in self.fail_deletes:
            raise TransportError(f"cannot delete {name}")
        self.entries.remove(name)
        self.deleted.append(name)


class FakeArchiver:
    """Writes a small placeholder file instead of a real archive."""

    def __init__(self):
        self.calls = []
        self.fail = False
        self.partial_paths = []

    def check_available(self):
        return True

    def create_archive(self, source_dir, destination_path, compression_level=6):
        self.calls.append((source_dir, destination_path, compression_level))
        with open(destination_path, 'wb') as f:
            f.write(b'archive')
        if self.fail:
            self.partial_paths.append(destination_path)
            raise CompressionError("tar exploded")
        return destination_path


@pytest.fixture
def source_dir(tmp_path):
    """
    Create a directory to back up.

    Creates:
    - data/file1.txt
    - data/file2.log
    - data/nested/file3.txt
    """
    data = tmp_path / 'data'
    data.mkdir()
    (data / 'file1.txt').write_text('Test content 1')
    (data / 'file2.log').write_text('Test log content')

    nested = data / 'nested'
    nested.mkdir()
    (nested / 'file3.txt').write_text('Nested test content')

    return data


@pytest.fixture
def work_dir(tmp_path):
    """Directory where archives are built."""
    path = tmp_path / 'work'
    path.mkdir()
    return path


@pytest.fixture
def config(source_dir, work_dir):
    """Valid configuration with small retention counts."""
    return Config(
        remote_name='remote',
        remote_path='backups',
        source_dir=str(source_dir),
        temp_dir=str(work_dir),
        keep_daily=2,
        keep_weekly=1,
        keep_monthly=1
    )


@pytest.fixture
def fake_transport():
    return FakeTransport()


@pytest.fixture
def fake_archiver():
    return FakeArchiver()


@pytest.fixture
def env_file(tmp_path):
    """
    Write a .env file and return a factory taking its lines.
    """
    def _write(*lines):
        path = tmp_path / 'backup.env'
        path.write_text('\n'.join(lines) + '\n')
        return str(path)
    return _write


@pytest.fixture
def mock_s3():
    """
    Mock AWS S3 service using moto.

    Creates a test bucket 'test-bucket' in us-east-1 region.
    """
    with mock_aws():
        s3 = boto3.resource('s3', region_name='us-east-1')
        s3.create_bucket(Bucket='test-bucket')
        yield s3


@pytest.fixture
def mock_rclone():
    """
    Mock subprocess.run for rclone invocations.

    Returns the mock; by default every command succeeds with empty output.
    """
    with patch('rclone_backup.backup.storage.subprocess.run') as mock_run:
        mock_run.return_value = MagicMock(returncode=0, stdout='', stderr='')
        yield mock_run
