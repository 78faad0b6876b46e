"""
Archive creation for backups.

Archives are gzip-compressed tarballs whose members are rooted at the
source directory's base name. Ownership is normalized (uid/gid 0, no user
or group names) so archives restore the same way on any host.
"""

import os
import tarfile
import logging
from pathlib import Path


logger = logging.getLogger(__name__)


class CompressionError(Exception):
    """Raised when archive creation fails."""
    pass


def create_archive(source_dir: str, destination_path: str, compression_level: int = 6) -> str:
    """
    Create a tar.gz archive of a directory.

    Args:
        source_dir: Directory to archive
        destination_path: Full path of the archive file to write
        compression_level: gzip level, 1 (fastest) to 9 (smallest)

    Returns:
        destination_path

    Raises:
        CompressionError: If archive creation fails
        ValueError: If compression_level is outside 1-9
    """
    if not 1 <= compression_level <= 9:
        raise ValueError(f"Invalid compression level: {compression_level}. Must be between 1 and 9")

    source = Path(source_dir)
    if not source.is_dir():
        raise CompressionError(f"Source directory does not exist: {source_dir}")

    try:
        with tarfile.open(destination_path, 'w:gz', compresslevel=compression_level) as tar:
            tar.add(str(source), arcname=source.resolve().name, recursive=True, filter=_normalize_owner)
        return destination_path
    except Exception as e:
        # Clean up partial archive on failure
        if os.path.exists(destination_path):
            try:
                os.remove(destination_path)
            except OSError as cleanup_error:
                logger.warning(f"Failed to remove partial archive {destination_path}: {cleanup_error}")
        raise CompressionError(f"Failed to create archive: {e}")


def _normalize_owner(member: tarfile.TarInfo) -> tarfile.TarInfo:
    member.uid = 0
    member.gid = 0
    member.uname = ''
    member.gname = ''
    return member


def get_archive_size(archive_path: str) -> int:
    """
    Get the size of an archive file in bytes.

    Raises:
        CompressionError: If file doesn't exist or cannot be accessed
    """
    try:
        return os.path.getsize(archive_path)
    except FileNotFoundError:
        raise CompressionError(f"Archive not found: {archive_path}")
    except OSError as e:
        raise CompressionError(f"Failed to get archive size: {e}")


def get_directory_size(directory: str) -> int:
    """
    Total size in bytes of the regular files under a directory.

    Raises:
        CompressionError: If the directory cannot be walked
    """
    total = 0

    def _raise(error: OSError):
        raise CompressionError(f"Failed to read {directory}: {error}")

    for root, _dirs, files in os.walk(directory, onerror=_raise):
        for name in files:
            path = os.path.join(root, name)
            if os.path.islink(path):
                continue
            try:
                total += os.path.getsize(path)
            except OSError:
                # File vanished between listing and stat
                continue

    return total


class TarArchiver:
    """
    Archiver collaborator used by the backup executor.

    Archives are built in-process with tarfile, so no external tools are
    required.
    """

    def __init__(self, compression_level: int = 6):
        self.compression_level = compression_level

    def check_available(self):
        """Archiving needs only the standard library; always available."""
        return True

    def create_archive(self, source_dir: str, destination_path: str, compression_level: int = None) -> str:
        if compression_level is None:
            compression_level = self.compression_level
        return create_archive(source_dir, destination_path, compression_level)
