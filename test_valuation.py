from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest

from valuation import (
    InvalidInput, OVERDUE, PAID, PENDING,
    days_overdue, days_since, days_until_due, derive_status,
    owed_amount, parse_due_date, to_money, valuate,
)

NOW = datetime(2025, 3, 10, 9, 0)


def test_flat_interest_is_a_one_off_fee():
    assert owed_amount(1000, 10) == Decimal('1100')
    assert owed_amount('250.50', 0) == Decimal('250.50')


def test_owed_amount_does_not_grow_with_time():
    due = NOW - timedelta(days=30)
    early = valuate(1000, 10, due, NOW)
    late = valuate(1000, 10, due, NOW + timedelta(days=365))
    assert early.owed_amount == late.owed_amount == Decimal('1100')


@pytest.mark.parametrize('principal, rate', [(0, 10), (-5, 10), (100, -1), (None, 5), ('abc', 5)])
def test_invalid_amounts_are_rejected(principal, rate):
    with pytest.raises(InvalidInput):
        owed_amount(principal, rate)


def test_status_follows_due_date():
    due = datetime(2025, 3, 10, 12, 0)
    assert derive_status(due, NOW) == PENDING
    assert derive_status(due, due) == PENDING
    assert derive_status(due, due + timedelta(seconds=1)) == OVERDUE


def test_paid_status_is_terminal():
    past_due = NOW - timedelta(days=10)
    assert derive_status(past_due, NOW, PAID) == PAID

    valuation = valuate(1000, 10, past_due, NOW, total_active_payments=0, current_status=PAID)
    assert valuation.status == PAID
    assert valuation.remaining_amount == 0


def test_valuation_is_idempotent():
    due = NOW + timedelta(days=3)
    first = valuate(1000, 10, due, NOW, Decimal('300'), PENDING)
    second = valuate(1000, 10, due, NOW, Decimal('300'), first.status)
    assert first == second
    assert first.remaining_amount == Decimal('800')


def test_remaining_within_a_cent_is_reported_as_zero():
    due = NOW + timedelta(days=3)
    valuation = valuate(1000, 10, due, NOW, Decimal('1099.99'))
    assert valuation.remaining_amount == 0
    # The caller owns the write that marks the debt paid
    assert valuation.status == PENDING


def test_bare_date_means_midnight():
    assert parse_due_date(date(2025, 3, 10)) == datetime(2025, 3, 10, 0, 0)
    assert parse_due_date('2025-03-10') == datetime(2025, 3, 10, 0, 0)
    assert derive_status(date(2025, 3, 10), datetime(2025, 3, 10, 0, 0, 1)) == OVERDUE


def test_iso_strings_are_converted_to_naive_utc():
    assert parse_due_date('2025-03-10T12:00:00Z') == datetime(2025, 3, 10, 12, 0)
    assert parse_due_date('2025-03-10T14:00:00+02:00') == datetime(2025, 3, 10, 12, 0)


@pytest.mark.parametrize('value', [None, '', 'not a date', 42])
def test_invalid_due_dates_are_rejected(value):
    with pytest.raises(InvalidInput):
        parse_due_date(value)


def test_day_counters():
    due = datetime(2025, 3, 1, 0, 0)
    assert days_overdue(due, NOW) == 10
    assert days_overdue(NOW + timedelta(hours=1), NOW) == 0
    assert days_until_due(NOW + timedelta(days=2, hours=1), NOW) == 3
    assert days_until_due(due, NOW) == 0
    assert days_since(NOW - timedelta(days=2, hours=23), NOW) == 2


def test_overdue_debt_without_payments_owes_full_amount():
    valuation = valuate(100, 50, NOW - timedelta(days=1), NOW)
    assert valuation == (Decimal('150'), Decimal('150'), OVERDUE)


def test_full_payment_leaves_nothing_remaining():
    valuation = valuate(100, 50, NOW + timedelta(days=1), NOW, Decimal('150'))
    assert valuation.owed_amount == Decimal('150')
    assert valuation.remaining_amount == 0


def test_amounts_are_rounded_to_cents():
    assert to_money('10.005') == Decimal('10.01')
    assert to_money(0.004) == Decimal('0.00')
    assert to_money(7) == Decimal('7.00')
    for bad in ('NaN', 'Infinity', 'ten', None):
        with pytest.raises(InvalidInput):
            to_money(bad)
