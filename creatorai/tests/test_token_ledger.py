"""
Token ledger tests.

Covers the atomic deduction contract: balance never negative, exactly
floor(balance / cost) of N concurrent deductions succeed, and plan changes
apply as compare-and-set.
"""
import threading
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.sql.dml import Insert

from creatorai.core.database import get_db_session, users
from creatorai.core.errors import NotFoundError, ValidationError
from creatorai.features.tokens.ledger import Deducted, InsufficientBalance, TokenLedger
from creatorai.models.plan import Plan


def _concurrent_deducts(ledger, user_id, amount, workers):
    barrier = threading.Barrier(workers)

    def _run(_):
        barrier.wait()
        return ledger.try_deduct(user_id, amount)

    with ThreadPoolExecutor(max_workers=workers) as pool:
        return list(pool.map(_run, range(workers)))


def test_ensure_subscription_creates_free_row(ledger):
    now = datetime(2026, 1, 1, tzinfo=timezone.utc)
    snapshot = ledger.ensure_subscription("fresh_user", now=now)

    assert snapshot.plan is Plan.FREE
    assert snapshot.tokens_remaining == 20
    assert snapshot.tokens_monthly_limit == 20
    assert snapshot.tokens_reset_at == now + timedelta(days=30)
    assert snapshot.subscribed is False


def test_ensure_subscription_creates_missing_user_row(ledger):
    ledger.ensure_subscription("billing_only_user")
    with get_db_session() as session:
        row = session.execute(select(users).where(users.c.user_id == "billing_only_user")).first()
    assert row is not None


def test_ensure_subscription_reraises_integrity_error_without_row():
    missing = MagicMock()
    missing.first.return_value = None

    def execute(statement):
        if isinstance(statement, Insert):
            raise IntegrityError("INSERT", {}, Exception("foreign key violation"))
        return missing

    session = MagicMock()
    session.execute.side_effect = execute
    session.begin_nested.return_value.__exit__.return_value = False

    @contextmanager
    def session_factory():
        yield session

    with pytest.raises(IntegrityError):
        TokenLedger(session_factory=session_factory).ensure_subscription("ghost")


def test_ensure_subscription_is_idempotent(ledger, make_user):
    make_user("user_1", tokens=7)
    snapshot = ledger.ensure_subscription("user_1")
    assert snapshot.tokens_remaining == 7


def test_deduct_sequence_until_insufficient(ledger, make_user):
    make_user("user_1", tokens=15)

    first = ledger.try_deduct("user_1", 10)
    assert first == Deducted(amount=10, new_balance=5)

    second = ledger.try_deduct("user_1", 5)
    assert second == Deducted(amount=5, new_balance=0)

    third = ledger.try_deduct("user_1", 1)
    assert isinstance(third, InsufficientBalance)
    assert third.ok is False
    assert third.required == 1
    assert third.available == 0
    assert ledger.get_balance("user_1") == 0


def test_fresh_allowance_three_fives_then_ten_is_insufficient(ledger, make_user):
    make_user("user_1")
    snapshot = ledger.get_subscription("user_1")
    assert (snapshot.tokens_remaining, snapshot.tokens_monthly_limit) == (20, 20)

    balances = [ledger.try_deduct("user_1", 5).new_balance for _ in range(3)]
    assert balances == [15, 10, 5]

    outcome = ledger.try_deduct("user_1", 10)
    assert outcome == InsufficientBalance(required=10, available=5)
    assert ledger.get_balance("user_1") == 5


def test_insufficient_deduct_leaves_balance_unchanged(ledger, make_user):
    make_user("user_1", tokens=3)
    outcome = ledger.try_deduct("user_1", 5)
    assert not outcome.ok
    assert ledger.get_balance("user_1") == 3


def test_zero_cost_deduct_reports_balance(ledger, make_user):
    make_user("user_1", tokens=4)
    outcome = ledger.try_deduct("user_1", 0)
    assert outcome == Deducted(amount=0, new_balance=4)


def test_negative_deduct_rejected(ledger, make_user):
    make_user("user_1")
    with pytest.raises(ValidationError):
        ledger.try_deduct("user_1", -1)


def test_deduct_without_subscription_raises(ledger):
    with pytest.raises(NotFoundError):
        ledger.try_deduct("ghost", 1)


def test_concurrent_deducts_never_overspend(ledger, make_user):
    make_user("user_1", tokens=7)

    results = _concurrent_deducts(ledger, "user_1", 2, workers=10)

    successes = [r for r in results if r.ok]
    assert len(successes) == 3
    assert ledger.get_balance("user_1") == 1
    assert sorted(r.new_balance for r in successes) == [1, 3, 5]


def test_two_concurrent_full_balance_requests_one_wins(ledger, make_user):
    make_user("user_1", tokens=5)

    results = _concurrent_deducts(ledger, "user_1", 5, workers=2)

    assert sum(1 for r in results if r.ok) == 1
    loser = next(r for r in results if not r.ok)
    assert loser.available == 0
    assert ledger.get_balance("user_1") == 0


def test_refund_credits_back(ledger, make_user):
    make_user("user_1", tokens=10)
    ledger.try_deduct("user_1", 5)
    assert ledger.refund("user_1", 5) == 10


def test_reset_to_limit(ledger, make_user):
    make_user("user_1", plan=Plan.CREATOR, tokens=3)
    assert ledger.reset_to_limit("user_1") == 500


def test_set_plan_with_reset(ledger, make_user):
    make_user("user_1", tokens=2)
    applied = ledger.set_plan("user_1", Plan.PRO, 2000, True, expected_plan=Plan.FREE)

    assert applied is True
    snapshot = ledger.get_subscription("user_1")
    assert snapshot.plan is Plan.PRO
    assert snapshot.tokens_remaining == 2000
    assert snapshot.tokens_monthly_limit == 2000


def test_set_plan_without_reset_keeps_balance(ledger, make_user):
    make_user("user_1", plan=Plan.PRO, tokens=1500)
    ledger.set_plan("user_1", Plan.FREE, 20, False)

    snapshot = ledger.get_subscription("user_1")
    assert snapshot.plan is Plan.FREE
    assert snapshot.tokens_remaining == 1500
    assert snapshot.tokens_monthly_limit == 20


def test_set_plan_compare_and_set_rejects_stale_plan(ledger, make_user):
    make_user("user_1", plan=Plan.CREATOR)
    applied = ledger.set_plan("user_1", Plan.PRO, 2000, True, expected_plan=Plan.FREE)

    assert applied is False
    assert ledger.get_subscription("user_1").plan is Plan.CREATOR


def test_customer_ref_roundtrip(ledger, make_user):
    make_user("user_1")
    ledger.attach_customer_ref("user_1", "cus_123")
    assert ledger.find_user_by_customer_ref("cus_123") == "user_1"
    assert ledger.find_user_by_customer_ref("cus_missing") is None


def test_reset_due_only_touches_passed_boundaries():
    ledger = TokenLedger(cycle_days=30)
    start = datetime(2026, 1, 1, tzinfo=timezone.utc)
    ledger.ensure_subscription("due_user", now=start - timedelta(days=31))
    ledger.ensure_subscription("fresh_user", now=start)
    ledger.try_deduct("due_user", 15)
    ledger.try_deduct("fresh_user", 15)

    assert ledger.count_due(start) == 1
    assert ledger.reset_due(start) == 1

    due = ledger.get_subscription("due_user")
    assert due.tokens_remaining == 20
    assert due.tokens_reset_at == start + timedelta(days=30)
    assert ledger.get_balance("fresh_user") == 5
