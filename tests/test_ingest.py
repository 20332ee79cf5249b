from datetime import datetime

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from database import Base
from models import Account, MonthlyAggregate, MonthlyCategoryTotal, Transaction
from schemas import TransactionIn
from services import AggregateUpdater, FinanceQueryService, IngestService


def make_session(*accounts: Account) -> Session:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    session = Session(engine)
    session.add_all(accounts)
    session.commit()
    return session


def category_total(session: Session, month: str, category: str) -> int:
    return session.scalar(
        select(MonthlyCategoryTotal.amount_cents).where(
            MonthlyCategoryTotal.month == month,
            MonthlyCategoryTotal.category == category,
        )
    )


def test_ingest_applies_defaults_to_optional_fields() -> None:
    session = make_session(Account(id="acc1", balance_cents=0))

    txn = IngestService(session, default_account_id="acc1").ingest(
        TransactionIn(amount=-12.5, date="2024-01-15")
    )

    assert txn.account_id == "acc1"
    assert txn.amount_cents == -1250
    assert txn.description == ""
    assert txn.category == "Other"
    assert txn.merchant == ""
    assert txn.status == "completed"
    assert txn.date == datetime(2024, 1, 15)
    assert txn.created_at is not None
    assert len(txn.id) == 32


def test_example_expense_updates_balance_and_month() -> None:
    session = make_session(Account(id="acc1", balance_cents=10_000))

    IngestService(session).ingest(
        TransactionIn(
            accountId="acc1", amount=-25.50, date="2024-01-15", category="Food"
        )
    )

    assert session.get(Account, "acc1").balance_cents == 7_450
    aggregate = FinanceQueryService(session).get_monthly_stats("2024-01")
    assert aggregate.expense_cents == 2_550
    assert aggregate.income_cents == 0
    assert category_total(session, "2024-01", "Food") == 2_550


def test_income_increments_income_and_absolute_category_total() -> None:
    session = make_session(Account(id="acc2", balance_cents=0))
    service = IngestService(session)

    service.ingest(
        TransactionIn(accountId="acc2", amount=1200, date="2024-03-01", category="Salary")
    )
    service.ingest(
        TransactionIn(accountId="acc2", amount="-200.10", date="2024-03-09", category="Salary")
    )

    aggregate = FinanceQueryService(session).get_monthly_stats("2024-03")
    assert aggregate.income_cents == 120_000
    assert aggregate.expense_cents == 20_010
    assert category_total(session, "2024-03", "Salary") == 140_010
    assert session.get(Account, "acc2").balance_cents == 99_990


def test_offset_dates_are_bucketed_by_utc_month() -> None:
    session = make_session(Account(id="acc1", balance_cents=0))

    txn = IngestService(session).ingest(
        TransactionIn(accountId="acc1", amount=-5, date="2024-01-31T23:30:00-02:00")
    )

    assert txn.date == datetime(2024, 2, 1, 1, 30)
    assert FinanceQueryService(session).get_monthly_stats("2024-01") is None
    assert FinanceQueryService(session).get_monthly_stats("2024-02").expense_cents == 500


def test_replaying_an_applied_transaction_changes_nothing() -> None:
    session = make_session(Account(id="acc1", balance_cents=0))
    txn = IngestService(session).ingest(
        TransactionIn(accountId="acc1", amount=-40, date="2024-05-02", category="Books")
    )

    assert AggregateUpdater(session).apply(txn) is False
    session.commit()

    assert session.get(Account, "acc1").balance_cents == -4_000
    assert FinanceQueryService(session).get_monthly_stats("2024-05").expense_cents == 4_000
    assert category_total(session, "2024-05", "Books") == 4_000


def test_apply_pending_catches_up_unaggregated_transactions() -> None:
    session = make_session(Account(id="acc1", balance_cents=1_000))
    session.add(
        Transaction(
            id="legacy1",
            account_id="acc1",
            amount_cents=-300,
            category="Food",
            date=datetime(2024, 2, 10),
        )
    )
    session.commit()

    updater = AggregateUpdater(session)
    assert updater.apply_pending() == 1
    assert updater.apply_pending() == 0

    assert session.get(Account, "acc1").balance_cents == 700
    assert session.get(Transaction, "legacy1").aggregated_at is not None


def test_storage_failure_during_aggregation_rolls_back_the_insert(monkeypatch) -> None:
    session = make_session(Account(id="acc1", balance_cents=10_000))

    def fail(self, month, amount_cents, category):
        raise SQLAlchemyError("aggregate write failed")

    monkeypatch.setattr(AggregateUpdater, "_increment_month", fail)

    with pytest.raises(SQLAlchemyError):
        IngestService(session).ingest(
            TransactionIn(accountId="acc1", amount=-10, date="2024-01-20")
        )

    assert session.scalars(select(Transaction)).all() == []
    assert session.get(Account, "acc1").balance_cents == 10_000


def test_unknown_account_still_counts_toward_monthly_aggregate() -> None:
    session = make_session(Account(id="acc1", balance_cents=500))

    txn = IngestService(session).ingest(
        TransactionIn(accountId="ghost", amount=-3, date="2024-04-04")
    )

    assert txn.account_id == "ghost"
    assert session.get(Account, "acc1").balance_cents == 500
    assert FinanceQueryService(session).get_monthly_stats("2024-04").expense_cents == 300


def test_category_text_is_stored_as_a_value_not_a_field() -> None:
    session = make_session(Account(id="acc1", balance_cents=0))

    IngestService(session).ingest(
        TransactionIn(accountId="acc1", amount=-7, date="2024-06-01", category="income")
    )
    IngestService(session).ingest(
        TransactionIn(accountId="acc1", amount=-2, date="2024-06-01", category="  $set.month  ")
    )

    aggregate = FinanceQueryService(session).get_monthly_stats("2024-06")
    assert aggregate.month == "2024-06"
    assert aggregate.income_cents == 0
    assert aggregate.expense_cents == 900
    assert {t.category: t.amount_cents for t in aggregate.category_totals} == {
        "income": 700,
        "$set.month": 200,
    }
    assert len(session.scalars(select(MonthlyAggregate)).all()) == 1
