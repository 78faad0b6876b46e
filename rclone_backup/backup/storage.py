"""
Transports for shipping backup archives to remote storage.

Supports:
- RcloneTransport: Any rclone remote, via the rclone command line tool
- S3Transport: AWS S3 (or compatible) bucket via boto3
- LocalTransport: A directory on a mounted filesystem

Every transport treats its destination as a flat folder of archive files:
upload() places a file by its base name, list() returns base names, and
delete() removes one name.
"""

import os
import shutil
import logging
import subprocess
from pathlib import Path
from typing import List, Optional

import boto3
from boto3.exceptions import S3UploadFailedError
from boto3.s3.transfer import TransferConfig
from botocore.exceptions import ClientError, BotoCoreError


logger = logging.getLogger(__name__)


class TransportError(Exception):
    """Raised when a transport operation fails."""
    pass


class RcloneTransport:
    """
    Transport backed by the rclone command line tool.

    The destination is '<remote_name>:<remote_path>', exactly as rclone
    expects it.
    """

    def __init__(self, remote_name: str, remote_path: str = './', binary: str = 'rclone'):
        """
        Initialize rclone transport.

        Args:
            remote_name: Name of a remote configured in rclone
            remote_path: Folder on the remote
            binary: rclone executable name or path
        """
        self.remote_name = remote_name
        self.remote_path = remote_path
        self.binary = binary

    @property
    def destination(self) -> str:
        return f"{self.remote_name}:{self.remote_path}"

    def _entry(self, name: str = '') -> str:
        destination = self.destination
        if not destination.endswith((':', '/')):
            destination += '/'
        return destination + name

    def check_available(self):
        """
        Raises:
            TransportError: If the rclone executable cannot be found
        """
        if shutil.which(self.binary) is None:
            raise TransportError(f"{self.binary} command not found. Please install rclone.")
        return True

    def _run(self, *args: str) -> str:
        command = [self.binary, *args]
        logger.debug(f"Running: {' '.join(command)}")

        try:
            proc = subprocess.run(command, capture_output=True, text=True, check=False)
        except OSError as e:
            raise TransportError(f"Failed to run {self.binary}: {e}")

        if proc.returncode != 0:
            detail = (proc.stderr or proc.stdout or '').strip()
            raise TransportError(
                f"rclone {args[0]} failed (exit {proc.returncode}): {detail}"
            )
        return proc.stdout

    def upload(self, local_path: str) -> str:
        """
        Copy a local archive into the destination folder.

        Returns:
            Name of the uploaded entry

        Raises:
            TransportError: If the file is missing or rclone fails
        """
        if not os.path.exists(local_path):
            raise TransportError(f"Local file not found: {local_path}")

        self._run('copy', local_path, self._entry())
        return os.path.basename(local_path)

    def list(self) -> List[str]:
        """
        List file names in the destination folder.

        Raises:
            TransportError: If rclone fails
        """
        output = self._run('lsf', self._entry(), '--files-only')
        return [line for line in output.splitlines() if line.strip()]

    def delete(self, name: str):
        """
        Delete one entry from the destination folder.

        Raises:
            TransportError: If rclone fails
        """
        self._run('deletefile', self._entry(name))


class S3Transport:
    """
    Transport for AWS S3.

    Archives are stored directly under a key prefix:
    {key_prefix}{filename}

    Credentials come from the standard AWS credential chain.
    """

    # 100MB
    MULTIPART_THRESHOLD = 100 * 1024 * 1024

    def __init__(self, bucket_name: str, key_prefix: str = '', region: Optional[str] = None):
        """
        Initialize S3 transport.

        Args:
            bucket_name: S3 bucket name
            key_prefix: Folder inside the bucket ('' for the bucket root)
            region: AWS region (default: from the AWS configuration)
        """
        self.bucket_name = bucket_name
        self.key_prefix = _normalize_key_prefix(key_prefix)
        self.region = region

        try:
            self.s3_client = boto3.client('s3', region_name=region)
        except (BotoCoreError, ValueError) as e:
            raise TransportError(f"Failed to initialize S3 client: {e}")

    @property
    def destination(self) -> str:
        return f"s3://{self.bucket_name}/{self.key_prefix}"

    def check_available(self):
        """
        Raises:
            TransportError: If the bucket does not exist or is not accessible
        """
        try:
            self.s3_client.head_bucket(Bucket=self.bucket_name)
            return True
        except ClientError as e:
            error_code = e.response.get('Error', {}).get('Code', 'Unknown')
            if error_code == '404':
                raise TransportError(f"Bucket does not exist: {self.bucket_name}")
            elif error_code == '403':
                raise TransportError(f"Access denied to bucket: {self.bucket_name}")
            else:
                raise TransportError(f"S3 connection test failed ({error_code}): {e}")
        except BotoCoreError as e:
            raise TransportError(f"Failed to connect to S3: {e}")

    def upload(self, local_path: str) -> str:
        """
        Upload an archive. Large files go through multipart upload.

        Returns:
            Name of the uploaded entry

        Raises:
            TransportError: If upload fails
        """
        if not os.path.exists(local_path):
            raise TransportError(f"Local file not found: {local_path}")

        filename = os.path.basename(local_path)
        s3_key = f"{self.key_prefix}{filename}"

        try:
            self.s3_client.upload_file(
                local_path,
                self.bucket_name,
                s3_key,
                Config=TransferConfig(multipart_threshold=self.MULTIPART_THRESHOLD)
            )
            return filename
        except ClientError as e:
            error_code = e.response.get('Error', {}).get('Code', 'Unknown')
            raise TransportError(f"S3 upload failed ({error_code}): {e}")
        except (BotoCoreError, S3UploadFailedError) as e:
            raise TransportError(f"S3 upload failed: {e}")

    def list(self) -> List[str]:
        """
        List archive names directly under the key prefix.

        Raises:
            TransportError: If listing fails
        """
        try:
            names = []
            paginator = self.s3_client.get_paginator('list_objects_v2')

            for page in paginator.paginate(Bucket=self.bucket_name, Prefix=self.key_prefix, Delimiter='/'):
                for obj in page.get('Contents', []):
                    name = obj['Key'][len(self.key_prefix):]
                    if name:
                        names.append(name)

            return names

        except ClientError as e:
            error_code = e.response.get('Error', {}).get('Code', 'Unknown')
            raise TransportError(f"S3 list failed ({error_code}): {e}")
        except BotoCoreError as e:
            raise TransportError(f"Failed to list S3 objects: {e}")

    def delete(self, name: str):
        """
        Delete one archive.

        Raises:
            TransportError: If deletion fails
        """
        try:
            self.s3_client.delete_object(
                Bucket=self.bucket_name,
                Key=f"{self.key_prefix}{name}"
            )
        except ClientError as e:
            error_code = e.response.get('Error', {}).get('Code', 'Unknown')
            raise TransportError(f"S3 delete failed ({error_code}): {e}")
        except BotoCoreError as e:
            raise TransportError(f"Failed to delete from S3: {e}")


class LocalTransport:
    """
    Transport that stores archives in a local directory.

    Useful for NAS mounts or a second disk.
    """

    def __init__(self, base_path: str):
        self.base_path = Path(base_path)

    @property
    def destination(self) -> str:
        return str(self.base_path)

    def check_available(self):
        """
        Raises:
            TransportError: If the destination exists but is not a directory
        """
        if self.base_path.exists() and not self.base_path.is_dir():
            raise TransportError(f"Destination is not a directory: {self.base_path}")
        return True

    def upload(self, local_path: str) -> str:
        """
        Copy archive into the destination directory.

        Raises:
            TransportError: If the copy fails
        """
        if not os.path.exists(local_path):
            raise TransportError(f"Local file not found: {local_path}")

        filename = os.path.basename(local_path)

        try:
            self.base_path.mkdir(parents=True, exist_ok=True)
            shutil.copy2(local_path, self.base_path / filename)
            return filename
        except PermissionError as e:
            raise TransportError(f"Permission denied writing to {self.base_path}: {e}")
        except OSError as e:
            raise TransportError(f"Failed to store locally: {e}")

    def list(self) -> List[str]:
        """
        List file names in the destination directory.

        Raises:
            TransportError: If listing fails
        """
        if not self.base_path.exists():
            return []

        try:
            return sorted(item.name for item in self.base_path.iterdir() if item.is_file())
        except OSError as e:
            raise TransportError(f"Failed to list local files: {e}")

    def delete(self, name: str):
        """
        Delete a file from the destination directory.

        Raises:
            TransportError: If deletion fails
        """
        full_path = self.base_path / name

        try:
            if full_path.exists():
                full_path.unlink()
        except PermissionError as e:
            raise TransportError(f"Permission denied deleting {full_path}: {e}")
        except OSError as e:
            raise TransportError(f"Failed to delete local file: {e}")


def _normalize_key_prefix(path: str) -> str:
    """'./backups' -> 'backups/', './' -> ''."""
    parts = [part for part in path.replace('\\', '/').split('/') if part not in ('', '.')]
    if not parts:
        return ''
    return '/'.join(parts) + '/'


def create_transport(config):
    """
    Create the transport configured for a run.

    Args:
        config: Config instance

    Returns:
        Transport instance

    Raises:
        ValueError: If the transport type is unknown
    """
    if config.transport == 'rclone':
        return RcloneTransport(config.remote_name, config.remote_path)
    elif config.transport == 's3':
        return S3Transport(config.remote_name, config.remote_path, region=config.aws_region)
    elif config.transport == 'local':
        return LocalTransport(os.path.join(config.remote_name, config.remote_path))
    else:
        raise ValueError(f"Unknown transport type: {config.transport}")
