# ledger/accrual.py
"""Simple-interest accrual for lending records.

The same function is used when a record is written and when the frontend asks
for a preview, so both always agree to the last rupee.
"""
import math
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from .exceptions import InvalidAccrualInput

DAYS_IN_YEAR = 365  # fixed, no leap-year adjustment
MAX_RATE = Decimal('100')
SECONDS_IN_DAY = 24 * 60 * 60


@dataclass(frozen=True)
class Accrual:
    interest: Decimal
    total: Decimal
    days: int


def to_decimal(value, field):
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise InvalidAccrualInput(f"{field} must be a number, got {value!r}")
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise InvalidAccrualInput(f"{field} must be a number, got {value!r}")


def elapsed_days(start_date, renewal_date):
    """Whole days between the two dates, rounded up for partial days."""
    if not isinstance(start_date, date) or not isinstance(renewal_date, date):
        raise InvalidAccrualInput("start_date and renewal_date must be dates")
    if isinstance(start_date, datetime) != isinstance(renewal_date, datetime):
        raise InvalidAccrualInput("start_date and renewal_date must both be dates or both be datetimes")

    if isinstance(start_date, datetime):
        try:
            seconds = (renewal_date - start_date).total_seconds()
        except TypeError:
            # naive vs aware
            raise InvalidAccrualInput("start_date and renewal_date must share a timezone awareness")
        return math.ceil(seconds / SECONDS_IN_DAY)
    return (renewal_date - start_date).days


def accrue(amount, rate_of_interest, start_date, renewal_date):
    amount = to_decimal(amount, 'amount')
    rate = to_decimal(rate_of_interest, 'rate_of_interest')

    if not amount.is_finite() or amount <= 0:
        raise InvalidAccrualInput(f"amount must be greater than 0, got {amount}")
    if not rate.is_finite() or rate < 0 or rate > MAX_RATE:
        raise InvalidAccrualInput(f"rate_of_interest must be between 0 and 100, got {rate}")

    days = elapsed_days(start_date, renewal_date)
    if days <= 0 or renewal_date <= start_date:
        raise InvalidAccrualInput("renewal_date must be after start_date")

    # amount * rate * (days / 365) / 100, divided once to keep full precision
    raw_interest = amount * rate * days / (DAYS_IN_YEAR * 100)
    interest = raw_interest.quantize(Decimal('1'), rounding=ROUND_HALF_UP)

    return Accrual(interest=interest, total=amount + interest, days=days)
