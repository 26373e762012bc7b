"""Overdue fine policy.

A loan accrues ``rate`` currency units for every whole day past its due date.
Returns on or before the due date cost nothing. The comparison date may be a
real return date or "now", so the same function shows the projected fine for a
loan that is still out.
"""

from datetime import datetime, timedelta
from typing import Optional

from config import settings
from models import utcnow

SECONDS_PER_DAY = timedelta(days=1).total_seconds()


def days_overdue(due_date: datetime, as_of: Optional[datetime] = None) -> int:
    """Whole days between due_date and as_of, floored; 0 when not late."""
    as_of = as_of or utcnow()
    if as_of <= due_date:
        return 0
    return int((as_of - due_date).total_seconds() // SECONDS_PER_DAY)


def calculate_fine(due_date: datetime, as_of: Optional[datetime] = None, rate: Optional[int] = None) -> int:
    if rate is None:
        rate = settings.FINE_PER_DAY
    return days_overdue(due_date, as_of) * rate


def transaction_fine(txn, as_of: Optional[datetime] = None, rate: Optional[int] = None) -> int:
    # returned loans are fined up to the return date, open ones up to now
    return calculate_fine(txn.due_date, txn.return_date or as_of, rate)
