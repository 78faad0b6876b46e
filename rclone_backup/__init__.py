import os
import logging
from logging.handlers import RotatingFileHandler
from typing import Optional

from rclone_backup.config import ConfigError


__version__ = '1.0.0'

LOG_LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR')


def configure_logging(level: str = 'INFO', log_file: Optional[str] = None):
    """
    Configure application logging.

    Args:
        level: One of DEBUG, INFO, WARNING, ERROR
        log_file: Optional path of a rotating log file

    Raises:
        ConfigError: If level is not a supported log level
    """
    level_name = (level or 'INFO').upper()
    if level_name not in LOG_LEVELS:
        raise ConfigError(
            f"Invalid log level '{level}'. Must be one of: {', '.join(LOG_LEVELS)}"
        )
    log_level = getattr(logging, level_name)

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(logging.Formatter(
        '[%(asctime)s] %(levelname)s in %(module)s: %(message)s'
    ))
    handlers = [console_handler]

    # File handler
    if log_file:
        log_dir = os.path.dirname(os.path.abspath(log_file))
        os.makedirs(log_dir, exist_ok=True)

        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=10485760,  # 10MB
            backupCount=10
        )
        file_handler.setLevel(log_level)
        file_handler.setFormatter(logging.Formatter(
            '[%(asctime)s] %(levelname)s [%(name)s.%(funcName)s:%(lineno)d] %(message)s'
        ))
        handlers.append(file_handler)

    # Replaces handlers installed by any earlier call
    logging.basicConfig(level=log_level, handlers=handlers, force=True)

    logging.getLogger(__name__).debug(f"Logging configured (level: {level_name})")
