"""
Token ledger.

The subscription row is the only shared mutable resource per user. Every
write here is a single UPDATE whose WHERE clause carries the precondition,
so concurrent deductions, plan changes and resets never lose updates:

- try_deduct: decrement only while tokens_remaining >= amount
- set_plan: compare-and-set on the plan observed by the caller
- reset_to_limit / reset_due / refund: arithmetic in SQL, never in Python
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, ContextManager, Optional, Union

from sqlalchemy import insert, select, update, or_, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from creatorai.core.config import settings
from creatorai.core.database import get_db_session, subscriptions, users
from creatorai.core.errors import NotFoundError, ValidationError
from creatorai.models.plan import Plan, token_limit_for
from creatorai.models.subscription import SubscriptionSnapshot


logger = logging.getLogger(__name__)

SessionFactory = Callable[[], ContextManager[Session]]


@dataclass(frozen=True)
class Deducted:
    amount: int
    new_balance: int
    ok: bool = True


@dataclass(frozen=True)
class InsufficientBalance:
    required: int
    available: int
    ok: bool = False


DeductResult = Union[Deducted, InsufficientBalance]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _snapshot(row) -> SubscriptionSnapshot:
    return SubscriptionSnapshot(
        user_id=row.user_id,
        plan=Plan(row.plan),
        tokens_remaining=row.tokens_remaining,
        tokens_monthly_limit=row.tokens_monthly_limit,
        plan_expiry=row.plan_expiry,
        billing_customer_ref=row.billing_customer_ref,
        billing_subscription_ref=row.billing_subscription_ref,
        tokens_reset_at=row.tokens_reset_at,
    )


def _select_subscription(session: Session, user_id: str):
    return session.execute(
        select(subscriptions).where(subscriptions.c.user_id == user_id)
    ).first()


def _ensure_user_row(session: Session, user_id: str) -> None:
    """Subscriptions reference app_users; billing may see a user before the API does."""
    exists = session.execute(select(users.c.user_id).where(users.c.user_id == user_id)).first()
    if exists is not None:
        return
    try:
        with session.begin_nested():
            session.execute(insert(users).values(user_id=user_id))
    except IntegrityError:
        if session.execute(select(users.c.user_id).where(users.c.user_id == user_id)).first() is None:
            raise


class TokenLedger:
    """Authoritative per-user token balance backed by the `subscriptions` table."""

    def __init__(self, session_factory: Optional[SessionFactory] = None, cycle_days: Optional[int] = None):
        self._session = session_factory or get_db_session
        self.cycle_days = cycle_days if cycle_days is not None else settings.TOKEN_RESET_CYCLE_DAYS

    def ensure_subscription(self, user_id: str, now: Optional[datetime] = None) -> SubscriptionSnapshot:
        """Create the FREE subscription row on first sight of a user. Idempotent."""
        now = now or _utcnow()
        limit = token_limit_for(Plan.FREE)
        with self._session() as session:
            row = _select_subscription(session, user_id)
            if row is None:
                _ensure_user_row(session, user_id)
                try:
                    with session.begin_nested():
                        session.execute(
                            insert(subscriptions).values(
                                user_id=user_id,
                                plan=Plan.FREE.value,
                                tokens_remaining=limit,
                                tokens_monthly_limit=limit,
                                tokens_reset_at=now + timedelta(days=self.cycle_days),
                            )
                        )
                    logger.info("[ledger] subscription created", extra={"user_id": user_id, "plan": Plan.FREE.value})
                except IntegrityError:
                    # Only a concurrent create of the same row is tolerated
                    if _select_subscription(session, user_id) is None:
                        raise
                row = _select_subscription(session, user_id)
            return _snapshot(row)

    def get_subscription(self, user_id: str) -> SubscriptionSnapshot:
        with self._session() as session:
            row = session.execute(
                select(subscriptions).where(subscriptions.c.user_id == user_id)
            ).first()
        if row is None:
            raise NotFoundError(f"No subscription for user {user_id}")
        return _snapshot(row)

    def get_balance(self, user_id: str) -> int:
        return self.get_subscription(user_id).tokens_remaining

    def try_deduct(self, user_id: str, amount: int) -> DeductResult:
        """
        Atomically spend `amount` tokens if the balance covers it.

        Returns:
            Deducted with the post-deduction balance, or InsufficientBalance
            (an expected outcome, not an error)

        Raises:
            ValidationError: If amount is negative
            NotFoundError: If the user has no subscription row
        """
        if amount < 0:
            raise ValidationError("amount must be >= 0")

        with self._session() as session:
            if amount == 0:
                balance = self._read_balance(session, user_id)
                return Deducted(amount=0, new_balance=balance)

            result = session.execute(
                update(subscriptions)
                .where(
                    subscriptions.c.user_id == user_id,
                    subscriptions.c.tokens_remaining >= amount,
                )
                .values(tokens_remaining=subscriptions.c.tokens_remaining - amount)
            )
            # Read inside the same transaction: our row lock is still held
            balance = self._read_balance(session, user_id)
            if result.rowcount == 1:
                outcome: DeductResult = Deducted(amount=amount, new_balance=balance)
            else:
                outcome = InsufficientBalance(required=amount, available=balance)

        if outcome.ok:
            logger.info(
                "[ledger] deducted",
                extra={"user_id": user_id, "amount": amount, "balance": outcome.new_balance},
            )
        else:
            logger.info(
                "[ledger] insufficient balance",
                extra={"user_id": user_id, "amount": amount, "balance": outcome.available},
            )
        return outcome

    def refund(self, user_id: str, amount: int) -> int:
        """Return tokens after a provider-side failure. Returns the new balance."""
        if amount <= 0:
            raise ValidationError("refund amount must be > 0")
        with self._session() as session:
            result = session.execute(
                update(subscriptions)
                .where(subscriptions.c.user_id == user_id)
                .values(tokens_remaining=subscriptions.c.tokens_remaining + amount)
            )
            if result.rowcount == 0:
                raise NotFoundError(f"No subscription for user {user_id}")
            balance = self._read_balance(session, user_id)
        logger.info("[ledger] refunded", extra={"user_id": user_id, "amount": amount, "balance": balance})
        return balance

    def reset_to_limit(self, user_id: str) -> int:
        """Unconditionally restore the balance to the plan's monthly limit."""
        with self._session() as session:
            result = session.execute(
                update(subscriptions)
                .where(subscriptions.c.user_id == user_id)
                .values(tokens_remaining=subscriptions.c.tokens_monthly_limit)
            )
            if result.rowcount == 0:
                raise NotFoundError(f"No subscription for user {user_id}")
            balance = self._read_balance(session, user_id)
        logger.info("[ledger] reset to limit", extra={"user_id": user_id, "balance": balance})
        return balance

    def set_plan(
        self,
        user_id: str,
        plan: Plan,
        new_limit: int,
        reset_balance: bool,
        *,
        expected_plan: Optional[Plan] = None,
        plan_expiry: Optional[datetime] = None,
        billing_subscription_ref: Optional[str] = None,
    ) -> bool:
        """
        Apply a plan change in one statement.

        Args:
            expected_plan: Plan the caller based its decision on; the update
                only applies while the row still holds it
            reset_balance: Set tokens_remaining to new_limit (upgrades only)

        Returns:
            True if the row was updated, False if `expected_plan` no longer matched
        """
        values = {
            "plan": Plan(plan).value,
            "tokens_monthly_limit": new_limit,
            "plan_expiry": plan_expiry,
            "billing_subscription_ref": billing_subscription_ref,
        }
        if reset_balance:
            values["tokens_remaining"] = new_limit

        conditions = [subscriptions.c.user_id == user_id]
        if expected_plan is not None:
            conditions.append(subscriptions.c.plan == Plan(expected_plan).value)

        with self._session() as session:
            result = session.execute(update(subscriptions).where(*conditions).values(**values))
        applied = result.rowcount == 1
        if applied:
            logger.info(
                "[ledger] plan set",
                extra={"user_id": user_id, "plan": Plan(plan).value, "balance": new_limit if reset_balance else None},
            )
        return applied

    def attach_customer_ref(self, user_id: str, customer_ref: str) -> None:
        with self._session() as session:
            session.execute(
                update(subscriptions)
                .where(subscriptions.c.user_id == user_id)
                .values(billing_customer_ref=customer_ref)
            )

    def find_user_by_customer_ref(self, customer_ref: str) -> Optional[str]:
        with self._session() as session:
            return session.execute(
                select(subscriptions.c.user_id).where(subscriptions.c.billing_customer_ref == customer_ref)
            ).scalar_one_or_none()

    def count_due(self, now: Optional[datetime] = None) -> int:
        now = now or _utcnow()
        with self._session() as session:
            return session.execute(
                select(func.count()).select_from(subscriptions).where(self._due_clause(now))
            ).scalar_one()

    def reset_due(self, now: Optional[datetime] = None) -> int:
        """
        Reset every subscription whose cycle boundary has passed.

        Returns:
            Number of subscriptions reset
        """
        now = now or _utcnow()
        with self._session() as session:
            result = session.execute(
                update(subscriptions)
                .where(self._due_clause(now))
                .values(
                    tokens_remaining=subscriptions.c.tokens_monthly_limit,
                    tokens_reset_at=now + timedelta(days=self.cycle_days),
                )
            )
        return result.rowcount

    @staticmethod
    def _due_clause(now: datetime):
        return or_(subscriptions.c.tokens_reset_at.is_(None), subscriptions.c.tokens_reset_at <= now)

    @staticmethod
    def _read_balance(session: Session, user_id: str) -> int:
        balance = session.execute(
            select(subscriptions.c.tokens_remaining).where(subscriptions.c.user_id == user_id)
        ).scalar_one_or_none()
        if balance is None:
            raise NotFoundError(f"No subscription for user {user_id}")
        return balance


def get_ledger() -> TokenLedger:
    """FastAPI dependency; tests swap it through app.dependency_overrides."""
    return TokenLedger()
