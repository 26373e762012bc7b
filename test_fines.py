from datetime import datetime, timedelta

from fines import calculate_fine, days_overdue, transaction_fine
from models import Transaction

DUE = datetime(2024, 1, 16, 9, 0, 0)
RATE = 5


def test_no_fine_on_or_before_due_date():
    assert calculate_fine(DUE, DUE - timedelta(days=3), RATE) == 0
    assert calculate_fine(DUE, DUE, RATE) == 0


def test_fine_counts_whole_days():
    assert calculate_fine(DUE, DUE + timedelta(days=1), RATE) == RATE
    assert calculate_fine(DUE, DUE + timedelta(days=10), RATE) == 10 * RATE


def test_partial_days_are_floored():
    assert calculate_fine(DUE, DUE + timedelta(hours=23, minutes=59), RATE) == 0
    assert calculate_fine(DUE, DUE + timedelta(days=1, hours=23), RATE) == RATE


def test_fine_steps_up_once_per_day():
    amounts = [calculate_fine(DUE, DUE + timedelta(days=d, hours=1), RATE) for d in range(1, 8)]
    assert amounts == sorted(amounts)
    assert all(b - a == RATE for a, b in zip(amounts, amounts[1:]))


def test_default_rate_is_five_per_day():
    assert calculate_fine(DUE, DUE + timedelta(days=2)) == 10


def test_days_overdue():
    assert days_overdue(DUE, DUE + timedelta(days=4, hours=5)) == 4
    assert days_overdue(DUE, DUE - timedelta(days=1)) == 0


def test_transaction_fine_prefers_return_date():
    txn = Transaction(
        id="t1",
        book_id="b",
        user_id="u",
        issue_date=DUE - timedelta(days=15),
        due_date=DUE,
        return_date=DUE + timedelta(days=2),
        status="returned",
    )
    # returned two days late; a later "now" does not keep accruing
    assert transaction_fine(txn, as_of=DUE + timedelta(days=30), rate=RATE) == 2 * RATE


def test_transaction_fine_accrues_while_open():
    txn = Transaction(
        id="t1",
        book_id="b",
        user_id="u",
        issue_date=DUE - timedelta(days=15),
        due_date=DUE,
        return_date=None,
        status="issued",
    )
    assert transaction_fine(txn, as_of=DUE + timedelta(days=3), rate=RATE) == 3 * RATE
