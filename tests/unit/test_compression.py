"""
Unit tests for compression module (rclone_backup/backup/compression.py).

Tests tar.gz archive creation and the TarArchiver collaborator.
"""

import os
import tarfile
from unittest.mock import patch

import pytest

from rclone_backup.backup.compression import (
    TarArchiver,
    create_archive,
    get_archive_size,
    get_directory_size,
    CompressionError
)


class TestCreateArchive:
    """Test create_archive function."""

    def test_creates_gzip_tarball(self, source_dir, tmp_path):
        archive_path = str(tmp_path / '2024-01-15.tar.gz')

        result = create_archive(str(source_dir), archive_path)

        assert result == archive_path
        assert os.path.getsize(archive_path) > 0
        with tarfile.open(archive_path, 'r:gz') as tar:
            assert tar.getmembers()

    def test_members_rooted_at_basename(self, source_dir, tmp_path):
        archive_path = str(tmp_path / 'out.tar.gz')

        create_archive(str(source_dir), archive_path)

        with tarfile.open(archive_path, 'r:gz') as tar:
            names = tar.getnames()

        assert 'data' in names
        assert 'data/file1.txt' in names
        assert 'data/nested/file3.txt' in names
        assert all(name == 'data' or name.startswith('data/') for name in names)

    def test_trailing_slash_in_source(self, source_dir, tmp_path):
        archive_path = str(tmp_path / 'out.tar.gz')

        create_archive(str(source_dir) + os.sep, archive_path)

        with tarfile.open(archive_path, 'r:gz') as tar:
            assert 'data/file1.txt' in tar.getnames()

    def test_ownership_normalized(self, source_dir, tmp_path):
        archive_path = str(tmp_path / 'out.tar.gz')

        create_archive(str(source_dir), archive_path)

        with tarfile.open(archive_path, 'r:gz') as tar:
            for member in tar.getmembers():
                assert member.uid == 0
                assert member.gid == 0
                assert member.uname == ''
                assert member.gname == ''

    def test_content_preserved(self, source_dir, tmp_path):
        archive_path = str(tmp_path / 'out.tar.gz')

        create_archive(str(source_dir), archive_path)

        with tarfile.open(archive_path, 'r:gz') as tar:
            content = tar.extractfile('data/nested/file3.txt').read()
        assert content == b'Nested test content'

    def test_compression_level_passed_to_tarfile(self, source_dir, tmp_path):
        archive_path = str(tmp_path / 'out.tar.gz')

        with patch('rclone_backup.backup.compression.tarfile.open', wraps=tarfile.open) as mock_open:
            create_archive(str(source_dir), archive_path, compression_level=9)

        mock_open.assert_called_once_with(archive_path, 'w:gz', compresslevel=9)

    @pytest.mark.parametrize("level", [0, 10, -1])
    def test_invalid_compression_level(self, source_dir, tmp_path, level):
        with pytest.raises(ValueError, match='compression level'):
            create_archive(str(source_dir), str(tmp_path / 'out.tar.gz'), compression_level=level)

    def test_missing_source(self, tmp_path):
        with pytest.raises(CompressionError, match='does not exist'):
            create_archive(str(tmp_path / 'missing'), str(tmp_path / 'out.tar.gz'))

    def test_partial_archive_removed_on_failure(self, source_dir, tmp_path):
        archive_path = tmp_path / 'out.tar.gz'

        with patch('rclone_backup.backup.compression.tarfile.TarFile.add', side_effect=OSError('disk full')):
            with pytest.raises(CompressionError, match='disk full'):
                create_archive(str(source_dir), str(archive_path))

        assert not archive_path.exists()

    def test_unwritable_destination(self, source_dir, tmp_path):
        with pytest.raises(CompressionError):
            create_archive(str(source_dir), str(tmp_path / 'no' / 'such' / 'dir' / 'out.tar.gz'))


class TestTarArchiver:
    """Test the archiver collaborator."""

    def test_uses_configured_level(self, source_dir, tmp_path):
        archiver = TarArchiver(compression_level=3)

        with patch('rclone_backup.backup.compression.create_archive') as mock_create:
            archiver.create_archive(str(source_dir), str(tmp_path / 'out.tar.gz'))

        mock_create.assert_called_once_with(str(source_dir), str(tmp_path / 'out.tar.gz'), 3)

    def test_explicit_level_wins(self, source_dir, tmp_path):
        archiver = TarArchiver(compression_level=3)

        with patch('rclone_backup.backup.compression.create_archive') as mock_create:
            archiver.create_archive(str(source_dir), str(tmp_path / 'out.tar.gz'), 8)

        assert mock_create.call_args[0][2] == 8

    def test_always_available(self):
        assert TarArchiver().check_available() is True


class TestSizes:
    """Test size helpers."""

    def test_get_archive_size(self, tmp_path):
        path = tmp_path / 'a.tar.gz'
        path.write_bytes(b'x' * 1234)

        assert get_archive_size(str(path)) == 1234

    def test_get_archive_size_missing(self, tmp_path):
        with pytest.raises(CompressionError, match='Archive not found'):
            get_archive_size(str(tmp_path / 'missing.tar.gz'))

    def test_get_directory_size(self, source_dir):
        expected = len('Test content 1') + len('Test log content') + len('Nested test content')

        assert get_directory_size(str(source_dir)) == expected

    def test_get_directory_size_empty(self, tmp_path):
        empty = tmp_path / 'empty'
        empty.mkdir()

        assert get_directory_size(str(empty)) == 0
