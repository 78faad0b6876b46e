"""
Tiered retention classification for backup sets.

Records are walked newest first. Each record is offered to the monthly,
weekly and daily buckets in that order, and every bucket gets to decide
independently: one backup can take its month's slot, its week's slot and a
daily slot at the same time. A record admitted by no bucket is deleted.

Records whose date could not be parsed never reach this module, so they
are neither counted nor deleted.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Sequence, Set, Tuple

from .naming import BackupRecord


logger = logging.getLogger(__name__)


class RetentionDecision(Enum):
    """Outcome for a single record, by bucket priority."""

    KEPT_MONTHLY = 'kept-monthly'
    KEPT_WEEKLY = 'kept-weekly'
    KEPT_DAILY = 'kept-daily'
    DELETE = 'delete'

    @property
    def is_kept(self) -> bool:
        return self is not RetentionDecision.DELETE


@dataclass
class RetentionResult:
    """
    Classification of a backup set.

    Attributes:
        decisions: (record, decision) pairs in input order
        monthly_count: Records admitted to the monthly bucket
        weekly_count: Records admitted to the weekly bucket
        daily_count: Records admitted to the daily bucket
    """

    decisions: List[Tuple[BackupRecord, RetentionDecision]] = field(default_factory=list)
    monthly_count: int = 0
    weekly_count: int = 0
    daily_count: int = 0

    @property
    def kept(self) -> List[BackupRecord]:
        return [record for record, decision in self.decisions if decision.is_kept]

    @property
    def to_delete(self) -> List[BackupRecord]:
        return [record for record, decision in self.decisions if not decision.is_kept]

    def decision_for(self, identifier: str) -> RetentionDecision:
        """
        Look up the decision for an identifier.

        Raises:
            KeyError: If the identifier was not classified
        """
        for record, decision in self.decisions:
            if record.identifier == identifier:
                return decision
        raise KeyError(identifier)

    def summary(self) -> Dict[str, str]:
        """Identifier -> decision value, for reporting."""
        return {record.identifier: decision.value for record, decision in self.decisions}


@dataclass
class _Buckets:
    """Accumulator threaded through one classification pass."""

    keep_daily: int
    keep_weekly: int
    keep_monthly: int
    daily: int = 0
    weeks: Set[Tuple[int, int]] = field(default_factory=set)
    months: Set[Tuple[int, int]] = field(default_factory=set)

    def admit_monthly(self, record: BackupRecord) -> bool:
        if len(self.months) >= self.keep_monthly or record.month_key in self.months:
            return False
        self.months.add(record.month_key)
        return True

    def admit_weekly(self, record: BackupRecord) -> bool:
        if len(self.weeks) >= self.keep_weekly or record.week_key in self.weeks:
            return False
        self.weeks.add(record.week_key)
        return True

    def admit_daily(self) -> bool:
        if self.daily >= self.keep_daily:
            return False
        self.daily += 1
        return True


def classify(
    records: Sequence[BackupRecord],
    keep_daily: int,
    keep_weekly: int,
    keep_monthly: int
) -> RetentionResult:
    """
    Partition backup records into kept and deleted.

    Args:
        records: Backup records in descending date order
        keep_daily: Number of most recent backups to keep
        keep_weekly: Number of distinct ISO weeks to keep one backup for
        keep_monthly: Number of distinct months to keep one backup for

    Returns:
        RetentionResult with one decision per input record

    Raises:
        ValueError: If a count is negative or records are not newest first
    """
    for name, value in (('keep_daily', keep_daily), ('keep_weekly', keep_weekly), ('keep_monthly', keep_monthly)):
        if value < 0:
            raise ValueError(f"{name} must not be negative: {value}")

    records = list(records)
    for newer, older in zip(records, records[1:]):
        if older.date > newer.date:
            raise ValueError(
                f"Records must be in descending date order: "
                f"{newer.identifier} precedes {older.identifier}"
            )

    buckets = _Buckets(keep_daily=keep_daily, keep_weekly=keep_weekly, keep_monthly=keep_monthly)
    result = RetentionResult()

    for record in records:
        # All three checks run for every record; no short-circuit
        monthly = buckets.admit_monthly(record)
        weekly = buckets.admit_weekly(record)
        daily = buckets.admit_daily()

        if monthly:
            decision = RetentionDecision.KEPT_MONTHLY
        elif weekly:
            decision = RetentionDecision.KEPT_WEEKLY
        elif daily:
            decision = RetentionDecision.KEPT_DAILY
        else:
            decision = RetentionDecision.DELETE

        logger.debug(f"{record.identifier}: {decision.value}")
        result.decisions.append((record, decision))

    result.monthly_count = len(buckets.months)
    result.weekly_count = len(buckets.weeks)
    result.daily_count = buckets.daily

    return result
