from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Callable, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from config import get_settings
from models import (
    Account,
    Alert,
    Budget,
    Goal,
    Insight,
    MonthlyAggregate,
    MonthlyCategoryTotal,
    Transaction,
    User,
    new_id,
)
from schemas import (
    AccountRecord,
    AlertRecord,
    BudgetRecord,
    GoalRecord,
    InsightRecord,
    MonthlyStatsRecord,
    TransactionIn,
    TransactionRecord,
    UserRecord,
)

logger = logging.getLogger(__name__)

DEFAULT_CATEGORY = "Other"
DEFAULT_STATUS = "completed"
CATEGORY_MAX_LENGTH = 100


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def amount_to_cents(amount: Decimal | float | int) -> int:
    value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    return int((value * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def cents_to_amount(cents: int) -> float:
    return cents / 100


def month_key(moment: datetime) -> str:
    return moment.strftime("%Y-%m")


def normalize_category(raw: Optional[str]) -> str:
    clean = re.sub(r"\s+", " ", (raw or "")).strip()
    if not clean:
        return DEFAULT_CATEGORY
    return clean[:CATEGORY_MAX_LENGTH]


def user_record(user: User) -> UserRecord:
    return UserRecord(
        id=user.id,
        name=user.name,
        email=user.email,
        level=user.level,
        xp=user.xp,
        university=user.university,
        major=user.major,
        student_id=user.student_id,
        graduation_year=user.graduation_year,
    )


def account_record(account: Account) -> AccountRecord:
    return AccountRecord(
        id=account.id,
        name=account.name,
        type=account.type,
        institution=account.institution,
        balance=cents_to_amount(account.balance_cents),
    )


def transaction_record(txn: Transaction) -> TransactionRecord:
    return TransactionRecord(
        id=txn.id,
        account_id=txn.account_id,
        amount=cents_to_amount(txn.amount_cents),
        description=txn.description,
        category=txn.category,
        date=txn.date,
        merchant=txn.merchant,
        status=txn.status,
        created_at=txn.created_at,
    )


def budget_record(budget: Budget) -> BudgetRecord:
    return BudgetRecord(
        id=budget.id,
        name=budget.name,
        category=budget.category,
        limit=cents_to_amount(budget.limit_cents),
        spent=cents_to_amount(budget.spent_cents),
        color=budget.color,
        start_date=budget.start_date,
        end_date=budget.end_date,
    )


def goal_record(goal: Goal) -> GoalRecord:
    return GoalRecord(
        id=goal.id,
        name=goal.name,
        description=goal.description,
        target_amount=cents_to_amount(goal.target_amount_cents),
        current_amount=cents_to_amount(goal.current_amount_cents),
        target_date=goal.target_date,
        priority=goal.priority,
        is_completed=goal.is_completed,
    )


def alert_record(alert: Alert) -> AlertRecord:
    return AlertRecord(
        id=alert.id,
        type=alert.type,
        title=alert.title,
        message=alert.message,
        severity=alert.severity,
        timestamp=alert.timestamp,
        is_read=alert.is_read,
    )


def insight_record(insight: Insight) -> InsightRecord:
    return InsightRecord(
        id=insight.id,
        type=insight.type,
        category=insight.category,
        title=insight.title,
        description=insight.description,
        impact=insight.impact,
        potential_savings=cents_to_amount(insight.potential_savings_cents),
    )


def monthly_stats_record(aggregate: MonthlyAggregate) -> MonthlyStatsRecord:
    return MonthlyStatsRecord(
        month=aggregate.month,
        income=cents_to_amount(aggregate.income_cents),
        expenses=cents_to_amount(aggregate.expense_cents),
        savings=cents_to_amount(aggregate.income_cents - aggregate.expense_cents),
        categories={
            total.category: cents_to_amount(total.amount_cents)
            for total in aggregate.category_totals
        },
    )


class AggregateUpdater:
    """Keeps account balances and monthly aggregates in step with transactions.

    Each transaction is applied at most once: ``aggregated_at`` is stamped on
    the transaction in the same database transaction as the increments, so a
    replay of an already applied transaction is a no-op. The caller owns the
    commit.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    def apply(self, txn: Transaction) -> bool:
        if txn.aggregated_at is not None:
            logger.info(f"aggregates_skipped: transaction={txn.id} reason=already_applied")
            return False

        month = month_key(txn.date)
        self._increment_balance(txn.account_id, txn.amount_cents)
        self._increment_month(month, txn.amount_cents, normalize_category(txn.category))
        txn.aggregated_at = utcnow()
        self.session.flush()
        logger.info(
            f"aggregates_applied: transaction={txn.id} account={txn.account_id} "
            f"month={month} amount_cents={txn.amount_cents}"
        )
        return True

    def apply_pending(self) -> int:
        pending = self.session.scalars(
            select(Transaction)
            .where(Transaction.aggregated_at.is_(None))
            .order_by(Transaction.created_at)
        ).all()
        applied = sum(1 for txn in pending if self.apply(txn))
        self.session.commit()
        return applied

    def _increment_balance(self, account_id: str, amount_cents: int) -> None:
        result = self.session.execute(
            update(Account)
            .where(Account.id == account_id)
            .values(balance_cents=Account.balance_cents + amount_cents)
        )
        if not result.rowcount:
            logger.warning(f"balance_update_skipped: account={account_id} reason=not_found")

    def _increment_month(self, month: str, amount_cents: int, category: str) -> None:
        magnitude = abs(amount_cents)
        if amount_cents > 0:
            values = {"income_cents": MonthlyAggregate.income_cents + magnitude}
            initial = {"income_cents": magnitude, "expense_cents": 0}
        else:
            values = {"expense_cents": MonthlyAggregate.expense_cents + magnitude}
            initial = {"income_cents": 0, "expense_cents": magnitude}

        self._increment_or_insert(
            update(MonthlyAggregate)
            .where(MonthlyAggregate.month == month)
            .values(**values),
            lambda: MonthlyAggregate(month=month, **initial),
        )
        self._increment_or_insert(
            update(MonthlyCategoryTotal)
            .where(
                MonthlyCategoryTotal.month == month,
                MonthlyCategoryTotal.category == category,
            )
            .values(amount_cents=MonthlyCategoryTotal.amount_cents + magnitude),
            lambda: MonthlyCategoryTotal(
                month=month, category=category, amount_cents=magnitude
            ),
        )

    def _increment_or_insert(self, stmt, make_row: Callable[[], Any]) -> None:
        if self.session.execute(stmt).rowcount:
            return
        try:
            with self.session.begin_nested():
                self.session.add(make_row())
        except IntegrityError:
            # another writer inserted the row between our update and insert
            self.session.execute(stmt)


class IngestService:
    def __init__(
        self, session: Session, default_account_id: Optional[str] = None
    ) -> None:
        self.session = session
        self.default_account_id = (
            default_account_id or get_settings().default_account_id
        )

    def normalize(self, data: TransactionIn) -> Transaction:
        return Transaction(
            id=new_id(),
            account_id=data.account_id or self.default_account_id,
            amount_cents=amount_to_cents(data.amount),
            description=data.description or "",
            category=normalize_category(data.category),
            date=data.date,
            merchant=data.merchant or "",
            status=data.status or DEFAULT_STATUS,
            created_at=utcnow(),
        )

    def ingest(self, data: TransactionIn) -> Transaction:
        txn = self.normalize(data)
        try:
            self.session.add(txn)
            self.session.flush()
            AggregateUpdater(self.session).apply(txn)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        self.session.refresh(txn)
        logger.info(
            f"transaction_ingested: id={txn.id} account={txn.account_id} "
            f"month={month_key(txn.date)} amount_cents={txn.amount_cents}"
        )
        return txn


class FinanceQueryService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get_user(self) -> Optional[User]:
        return self.session.scalar(select(User).limit(1))

    def list_accounts(self) -> list[Account]:
        return list(self.session.scalars(select(Account)).all())

    def list_transactions(self, account_id: Optional[str] = None) -> list[Transaction]:
        stmt = select(Transaction)
        if account_id:
            stmt = stmt.where(Transaction.account_id == account_id)
        stmt = stmt.order_by(Transaction.date.desc(), Transaction.created_at.desc())
        return list(self.session.scalars(stmt).all())

    def list_budgets(self) -> list[Budget]:
        return list(self.session.scalars(select(Budget)).all())

    def list_goals(self) -> list[Goal]:
        return list(self.session.scalars(select(Goal)).all())

    def list_alerts(self) -> list[Alert]:
        stmt = select(Alert).order_by(Alert.timestamp.desc())
        return list(self.session.scalars(stmt).all())

    def list_insights(self) -> list[Insight]:
        return list(self.session.scalars(select(Insight)).all())

    def get_monthly_stats(self, month: str) -> Optional[MonthlyAggregate]:
        return self.session.scalar(
            select(MonthlyAggregate)
            .options(selectinload(MonthlyAggregate.category_totals))
            .where(MonthlyAggregate.month == month)
        )


class SeedService:
    """Replaces the store contents with a snapshot document.

    The snapshot uses the same camelCase layout the API serves, with
    ``monthlyStats`` keyed by month. Seeded transactions are stamped as
    already aggregated since the snapshot's balances and monthly stats
    include them.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    def clear(self) -> None:
        for model in (
            MonthlyCategoryTotal,
            MonthlyAggregate,
            Transaction,
            Alert,
            Insight,
            Goal,
            Budget,
            Account,
            User,
        ):
            self.session.execute(delete(model))

    def seed(self, snapshot: dict[str, Any]) -> dict[str, int]:
        self.clear()
        now = utcnow()
        counts: dict[str, int] = {}

        user_data = snapshot.get("user")
        users = [user_data] if user_data else []
        for raw in users:
            record = UserRecord.model_validate(raw)
            self.session.add(User(**record.model_dump()))
        counts["users"] = len(users)

        accounts = snapshot.get("accounts") or []
        for raw in accounts:
            record = AccountRecord.model_validate(raw)
            self.session.add(
                Account(
                    id=record.id,
                    name=record.name,
                    type=record.type,
                    institution=record.institution,
                    balance_cents=amount_to_cents(record.balance),
                )
            )
        counts["accounts"] = len(accounts)

        transactions = snapshot.get("transactions") or []
        for raw in transactions:
            record = TransactionRecord.model_validate(raw)
            self.session.add(
                Transaction(
                    id=record.id,
                    account_id=record.account_id,
                    amount_cents=amount_to_cents(record.amount),
                    description=record.description,
                    category=normalize_category(record.category),
                    date=record.date,
                    merchant=record.merchant,
                    status=record.status,
                    created_at=record.created_at or now,
                    aggregated_at=now,
                )
            )
        counts["transactions"] = len(transactions)

        budgets = snapshot.get("budgets") or []
        for raw in budgets:
            record = BudgetRecord.model_validate(raw)
            self.session.add(
                Budget(
                    id=record.id,
                    name=record.name,
                    category=record.category,
                    limit_cents=amount_to_cents(record.limit),
                    spent_cents=amount_to_cents(record.spent),
                    color=record.color,
                    start_date=record.start_date,
                    end_date=record.end_date,
                )
            )
        counts["budgets"] = len(budgets)

        goals = snapshot.get("goals") or []
        for raw in goals:
            record = GoalRecord.model_validate(raw)
            self.session.add(
                Goal(
                    id=record.id,
                    name=record.name,
                    description=record.description,
                    target_amount_cents=amount_to_cents(record.target_amount),
                    current_amount_cents=amount_to_cents(record.current_amount),
                    target_date=record.target_date,
                    priority=record.priority,
                    is_completed=record.is_completed,
                )
            )
        counts["goals"] = len(goals)

        alerts = snapshot.get("alerts") or []
        for raw in alerts:
            record = AlertRecord.model_validate(raw)
            self.session.add(
                Alert(
                    id=record.id,
                    type=record.type,
                    title=record.title,
                    message=record.message,
                    severity=record.severity,
                    timestamp=record.timestamp,
                    is_read=record.is_read,
                )
            )
        counts["alerts"] = len(alerts)

        insights = snapshot.get("insights") or []
        for raw in insights:
            record = InsightRecord.model_validate(raw)
            self.session.add(
                Insight(
                    id=record.id,
                    type=record.type,
                    category=record.category,
                    title=record.title,
                    description=record.description,
                    impact=record.impact,
                    potential_savings_cents=amount_to_cents(record.potential_savings),
                )
            )
        counts["insights"] = len(insights)

        monthly = snapshot.get("monthlyStats") or {}
        for month, stats in monthly.items():
            record = MonthlyStatsRecord.model_validate({**stats, "month": month})
            self.session.add(
                MonthlyAggregate(
                    month=record.month,
                    income_cents=amount_to_cents(record.income),
                    expense_cents=amount_to_cents(record.expenses),
                )
            )
            self.session.flush()
            for category, amount in record.categories.items():
                self.session.add(
                    MonthlyCategoryTotal(
                        month=record.month,
                        category=normalize_category(category),
                        amount_cents=amount_to_cents(amount),
                    )
                )
        counts["monthlyStats"] = len(monthly)

        self.session.commit()
        logger.info(
            "store_seeded: "
            + " ".join(f"{name}={count}" for name, count in counts.items())
        )
        return counts
