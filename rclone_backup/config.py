"""
Configuration for rclone-backup.

Settings are read from a .env file and the process environment. Values from
the .env file take precedence over the environment, and explicit overrides
(command line options) take precedence over both.
"""

import os
import tempfile
from pathlib import Path
from typing import Optional, Dict, Any

from dotenv import dotenv_values


DEFAULT_CONFIG_FILES = [
    os.path.join('~', '.config', 'rclone-backup', '.env'),
    os.path.join('/etc', 'rclone-backup', '.env'),
]

DEFAULT_REMOTE_TARGET_PATH = './'
DEFAULT_KEEP_DAILY = 7
DEFAULT_KEEP_WEEKLY = 4
DEFAULT_KEEP_MONTHLY = 6
DEFAULT_COMPRESSION_LEVEL = 6
DEFAULT_SCHEDULE = '0 2 * * *'

TRANSPORT_TYPES = ('rclone', 's3', 'local')

_TRUE_VALUES = ('1', 'true', 'yes', 'on')
_FALSE_VALUES = ('0', 'false', 'no', 'off', '')


class ConfigError(Exception):
    """Raised when configuration is missing or invalid."""
    pass


class Config:
    """Settings for a backup run."""

    def __init__(
        self,
        remote_name: str = '',
        remote_path: str = DEFAULT_REMOTE_TARGET_PATH,
        prefix: str = '',
        keep_daily: int = DEFAULT_KEEP_DAILY,
        keep_weekly: int = DEFAULT_KEEP_WEEKLY,
        keep_monthly: int = DEFAULT_KEEP_MONTHLY,
        compression_level: int = DEFAULT_COMPRESSION_LEVEL,
        auto_confirm: bool = False,
        source_dir: Optional[str] = None,
        transport: str = 'rclone',
        aws_region: Optional[str] = None,
        temp_dir: Optional[str] = None,
        log_level: str = 'INFO',
        log_file: Optional[str] = None,
        schedule: str = DEFAULT_SCHEDULE,
        config_file: Optional[str] = None
    ):
        self.remote_name = remote_name
        self.remote_path = remote_path
        self.prefix = prefix
        self.keep_daily = keep_daily
        self.keep_weekly = keep_weekly
        self.keep_monthly = keep_monthly
        self.compression_level = compression_level
        self.auto_confirm = auto_confirm
        self.source_dir = source_dir
        self.transport = transport
        self.aws_region = aws_region
        self.temp_dir = temp_dir or tempfile.gettempdir()
        self.log_level = log_level
        self.log_file = log_file
        self.schedule = schedule
        self.config_file = config_file

    @classmethod
    def from_env(cls, env_file: Optional[str] = None, environ: Optional[Dict[str, str]] = None, **overrides) -> 'Config':
        """
        Build configuration from a .env file and the environment.

        Args:
            env_file: Explicit .env path. Falls back to BACKUP_CONFIG_FILE and
                then the default locations.
            environ: Environment mapping (default: os.environ)
            **overrides: Attribute values that win over file and environment.
                None values are ignored.

        Returns:
            Config instance (not yet validated)

        Raises:
            ConfigError: If a value cannot be parsed, or an explicitly named
                config file does not exist
        """
        environ = dict(os.environ if environ is None else environ)

        config_file = find_config_file(env_file or environ.get('BACKUP_CONFIG_FILE'))
        values = dict(environ)
        if config_file:
            values.update({k: v for k, v in dotenv_values(config_file).items() if v is not None})

        remote_name = values.get('RCLONE_REMOTE_NAME') or values.get('REMOTE_NAME', '')

        kwargs = {
            'remote_name': remote_name.strip(),
            'remote_path': values.get('REMOTE_TARGET_PATH') or DEFAULT_REMOTE_TARGET_PATH,
            'prefix': values.get('BACKUP_PREFIX', ''),
            'keep_daily': _parse_int(values, 'KEEP_DAILY', DEFAULT_KEEP_DAILY),
            'keep_weekly': _parse_int(values, 'KEEP_WEEKLY', DEFAULT_KEEP_WEEKLY),
            'keep_monthly': _parse_int(values, 'KEEP_MONTHLY', DEFAULT_KEEP_MONTHLY),
            'compression_level': _parse_int(values, 'COMPRESSION_LEVEL', DEFAULT_COMPRESSION_LEVEL),
            'auto_confirm': _parse_bool(values, 'AUTO_CONFIRM', False),
            'transport': (values.get('TRANSPORT') or 'rclone').lower(),
            'aws_region': values.get('AWS_REGION') or None,
            'temp_dir': values.get('TEMP_DIR') or None,
            'log_level': (values.get('LOG_LEVEL') or 'INFO').upper(),
            'log_file': values.get('LOG_FILE') or None,
            'schedule': values.get('BACKUP_SCHEDULE') or DEFAULT_SCHEDULE,
            'config_file': config_file,
        }
        kwargs.update({k: v for k, v in overrides.items() if v is not None})

        return cls(**kwargs)

    def validate(self, require_source: bool = True):
        """
        Validate settings before any side effect happens.

        Args:
            require_source: Whether source_dir must be set (False for
                read-only commands that never archive)

        Raises:
            ConfigError: On the first invalid setting
        """
        if not self.remote_name:
            raise ConfigError(
                "RCLONE_REMOTE_NAME is not set. Add it to the config file or environment."
            )

        if self.transport not in TRANSPORT_TYPES:
            raise ConfigError(
                f"Invalid transport: {self.transport}. Valid options: {list(TRANSPORT_TYPES)}"
            )

        if '..' in Path(self.remote_path).parts:
            raise ConfigError("Remote path cannot contain '..'")

        if '/' in self.prefix or '\\' in self.prefix:
            raise ConfigError(f"Backup prefix cannot contain path separators: {self.prefix!r}")

        for name in ('keep_daily', 'keep_weekly', 'keep_monthly'):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool) or value < 0:
                raise ConfigError(f"{name.upper()} must be a non-negative integer, got {value!r}")

        if (not isinstance(self.compression_level, int)
                or isinstance(self.compression_level, bool)
                or not 1 <= self.compression_level <= 9):
            raise ConfigError("COMPRESSION_LEVEL must be between 1 and 9")

        if require_source:
            if not self.source_dir:
                raise ConfigError("Source directory is mandatory")
            if not os.path.isdir(self.source_dir):
                raise ConfigError(f"Source directory '{self.source_dir}' not found")

    @property
    def remote_destination(self) -> str:
        """Human-readable destination, for logs."""
        if self.transport == 'rclone':
            return f"{self.remote_name}:{self.remote_path}"
        if self.transport == 's3':
            return f"s3://{self.remote_name}/{self.remote_path.strip('./')}"
        return os.path.join(self.remote_name, self.remote_path)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'source_dir': self.source_dir,
            'transport': self.transport,
            'remote_name': self.remote_name,
            'remote_path': self.remote_path,
            'remote_destination': self.remote_destination,
            'prefix': self.prefix,
            'keep_daily': self.keep_daily,
            'keep_weekly': self.keep_weekly,
            'keep_monthly': self.keep_monthly,
            'compression_level': self.compression_level,
            'auto_confirm': self.auto_confirm,
        }


def find_config_file(explicit: Optional[str] = None) -> Optional[str]:
    """
    Locate the .env file to read.

    Args:
        explicit: Path given on the command line or via BACKUP_CONFIG_FILE

    Returns:
        Path of the config file, or None if no default file exists

    Raises:
        ConfigError: If an explicit path was given and does not exist
    """
    if explicit:
        path = os.path.expanduser(explicit)
        if not os.path.isfile(path):
            raise ConfigError(f"Configuration file '{explicit}' not found")
        return path

    for candidate in DEFAULT_CONFIG_FILES:
        path = os.path.expanduser(candidate)
        if os.path.isfile(path):
            return path

    return None


def _parse_int(values: Dict[str, str], key: str, default: int) -> int:
    raw = values.get(key)
    if raw is None or raw.strip() == '':
        return default
    try:
        return int(raw.strip())
    except ValueError:
        raise ConfigError(f"{key} must be an integer, got {raw!r}")


def _parse_bool(values: Dict[str, str], key: str, default: bool) -> bool:
    raw = values.get(key)
    if raw is None:
        return default
    lowered = raw.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ConfigError(f"{key} must be a boolean (true/false), got {raw!r}")
