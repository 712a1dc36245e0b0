"""
Debt valuation - flat interest amounts and lifecycle status derivation.

Every function here is pure: the result depends only on the arguments, so it
can be called inline on every read of a debt.
"""

import math
from collections import namedtuple
from datetime import date, datetime, time
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

PENDING = 'PENDING'
OVERDUE = 'OVERDUE'
PAID = 'PAID'
DEBT_STATUSES = (PENDING, OVERDUE, PAID)

# Remaining balances at or below one cent count as settled
SETTLEMENT_EPSILON = Decimal('0.01')
CENT = Decimal('0.01')

SECONDS_PER_DAY = 24 * 60 * 60


class InvalidInput(ValueError):
    """Raised when valuation arguments are malformed."""


Valuation = namedtuple('Valuation', ['owed_amount', 'remaining_amount', 'status'])


def to_decimal(value, field='amount'):
    if isinstance(value, Decimal):
        return value
    if value is None or isinstance(value, bool):
        raise InvalidInput(f'{field} is required')
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise InvalidInput(f'{field} must be a number')


def to_money(value, field='amount'):
    """Parse ``value`` and round it to cents, the scale amounts are stored with."""
    amount = to_decimal(value, field)
    if not amount.is_finite():
        raise InvalidInput(f'{field} must be a number')
    try:
        return amount.quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise InvalidInput(f'{field} is too large')


def parse_due_date(value):
    """Return the due date as a datetime; bare dates mean midnight of that day."""
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, time.min)
    if isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith('Z'):
            text = text[:-1]
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            raise InvalidInput(f'Invalid due date: {value}')
        # Stored datetimes are naive UTC
        if parsed.tzinfo is not None:
            parsed = parsed.replace(tzinfo=None) - parsed.utcoffset()
        return parsed
    raise InvalidInput('Due date is required')


def owed_amount(principal, rate):
    """Principal plus a one-off percentage fee, never compounded."""
    principal = to_decimal(principal, 'principal')
    rate = to_decimal(rate, 'interest rate')
    if principal <= 0:
        raise InvalidInput('Principal must be positive')
    if rate < 0:
        raise InvalidInput('Interest rate cannot be negative')
    return principal + principal * (rate / Decimal(100))


def is_settled(remaining):
    return to_decimal(remaining) <= SETTLEMENT_EPSILON


def derive_status(due_date, now, current_status=None):
    if current_status == PAID:
        return PAID
    if now > parse_due_date(due_date):
        return OVERDUE
    return PENDING


def valuate(principal, rate, due_date, now, total_active_payments=0, current_status=None):
    """Project the amount and status of a debt at ``now``.

    Returns a ``Valuation``. A PAID debt keeps its status and reports nothing
    remaining; a remaining amount within ``SETTLEMENT_EPSILON`` is reported as
    zero, and the caller that owns the write decides whether to mark it PAID.
    """
    owed = owed_amount(principal, rate)
    due = parse_due_date(due_date)
    paid = to_decimal(total_active_payments or 0, 'payments total')

    status = derive_status(due, now, current_status)
    remaining = owed - paid
    if status == PAID or remaining <= SETTLEMENT_EPSILON:
        remaining = Decimal('0')

    return Valuation(owed, remaining, status)


def days_overdue(due_date, now):
    """Whole days past due, rounded up; 0 when not yet due."""
    delta = (now - parse_due_date(due_date)).total_seconds()
    if delta <= 0:
        return 0
    return math.ceil(delta / SECONDS_PER_DAY)


def days_until_due(due_date, now):
    """Whole days left before the due date, rounded up; 0 once it has passed."""
    delta = (parse_due_date(due_date) - now).total_seconds()
    if delta <= 0:
        return 0
    return math.ceil(delta / SECONDS_PER_DAY)


def days_since(moment, now):
    """Whole days elapsed since ``moment``, rounded down."""
    return math.floor((now - moment).total_seconds() / SECONDS_PER_DAY)
