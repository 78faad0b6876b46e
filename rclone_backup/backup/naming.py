"""
Archive naming and remote listing parsing.

Archive identifiers follow a fixed grammar:

    YYYY-MM-DD[_PREFIX].tar.gz[.bin]

The prefix separates independent backup streams that share one remote
folder. Parsing a listing only ever returns entries of the configured
stream, newest first.
"""

import re
import logging
from dataclasses import dataclass
from datetime import date
from typing import Iterable, List, Optional, Tuple


logger = logging.getLogger(__name__)

ARCHIVE_EXTENSION = '.tar.gz'
ENCRYPTED_EXTENSION = '.bin'

_DATE_PREFIX = re.compile(r'^(\d{4})-(0[1-9]|1[0-2])-(0[1-9]|[12]\d|3[01])')
_ANY_STREAM = re.compile(r'^\d{4}-\d{2}-\d{2}(?:_[^/\\]+)?\.tar\.gz(?:\.bin)?$')


@dataclass(frozen=True)
class BackupRecord:
    """One remote backup entry."""

    identifier: str
    date: date
    prefix: str = ''

    @property
    def week_key(self) -> Tuple[int, int]:
        """ISO (year, week) the backup falls into."""
        iso = self.date.isocalendar()
        return iso[0], iso[1]

    @property
    def month_key(self) -> Tuple[int, int]:
        return self.date.year, self.date.month


def build_identifier(day: Optional[date] = None, prefix: str = '') -> str:
    """
    Build the archive identifier for a backup.

    Args:
        day: Backup date (default: today's local date)
        prefix: Optional stream prefix

    Returns:
        Identifier such as '2024-01-15.tar.gz' or '2024-01-15_web.tar.gz'
    """
    if day is None:
        day = date.today()

    stamp = f"{day.year:04d}-{day.month:02d}-{day.day:02d}"
    if prefix:
        return f"{stamp}_{prefix}{ARCHIVE_EXTENSION}"
    return f"{stamp}{ARCHIVE_EXTENSION}"


def extract_date(identifier: str) -> Optional[date]:
    """
    Extract the leading YYYY-MM-DD date from an identifier.

    Returns None if the identifier does not start with a date-shaped
    prefix, or if the digits do not form a real calendar date.
    """
    match = _DATE_PREFIX.match(identifier)
    if not match:
        return None

    year, month, day = (int(part) for part in match.groups())
    try:
        return date(year, month, day)
    except ValueError:
        return None


def identifier_pattern(prefix: str = '') -> re.Pattern:
    """
    Compile the match pattern for one backup stream.

    The prefix is matched literally. With no prefix, names carrying any
    prefix are rejected.
    """
    prefix_part = f"_{re.escape(prefix)}" if prefix else ''
    return re.compile(
        r'^\d{4}-\d{2}-\d{2}'
        + prefix_part
        + re.escape(ARCHIVE_EXTENSION)
        + f"(?:{re.escape(ENCRYPTED_EXTENSION)})?$"
    )


def parse_listing(raw_names: Iterable[str], prefix: str = '') -> List[BackupRecord]:
    """
    Turn a raw remote listing into backup records.

    Args:
        raw_names: Entry names as returned by the transport
        prefix: Configured backup prefix ('' for none)

    Returns:
        Records in descending date order. Entries sharing a date keep their
        listing order.
    """
    pattern = identifier_pattern(prefix)
    records = []

    for name in raw_names:
        if not name.strip():
            continue

        # Names are matched exactly as listed; they are also the delete keys
        if not pattern.fullmatch(name):
            if _ANY_STREAM.fullmatch(name):
                logger.debug(f"Ignoring backup of another stream: {name!r}")
            else:
                logger.warning(f"Ignoring malformed remote entry: {name!r}")
            continue

        backup_date = extract_date(name)
        if backup_date is None:
            logger.warning(f"Could not parse date from '{name}'. Skipping for retention.")
            continue

        records.append(BackupRecord(identifier=name, date=backup_date, prefix=prefix))

    # sorted() is stable with reverse=True, so same-date entries keep input order
    return sorted(records, key=lambda record: record.date, reverse=True)
