from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional, Sequence, Union

from client import FinanceApiClient, FinanceApiError
from config import get_settings
from csv_utils import export_transactions
from scheduler import SchedulerManager
from simulated_feed import (
    EVENT_GOAL_PROGRESS,
    EVENT_NEW_ALERT,
    EVENT_NEW_TRANSACTION,
    SimulatedEventFeed,
)
from snapshot import load_snapshot

logger = logging.getLogger(__name__)

Record = dict[str, Any]


@dataclass
class FinanceSnapshot:
    user: Optional[Record] = None
    accounts: list[Record] = field(default_factory=list)
    transactions: list[Record] = field(default_factory=list)
    budgets: list[Record] = field(default_factory=list)
    goals: list[Record] = field(default_factory=list)
    alerts: list[Record] = field(default_factory=list)
    insights: list[Record] = field(default_factory=list)
    monthly_stats: Optional[Record] = None
    is_loading: bool = True
    error: Optional[str] = None


def _parse_when(value: Any) -> datetime:
    if not value:
        return datetime.min
    try:
        parsed = datetime.fromisoformat(str(value).strip())
    except ValueError:
        return datetime.min
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _number(value: Any) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


class FinanceDataCache:
    """Client-side mirror of the finance collections.

    ``refresh()`` replaces the whole snapshot, so events applied from the
    simulated feed last until the next poll at most.
    """

    POLL_JOB_ID = "finance_cache_poll"

    def __init__(
        self,
        api: Optional[FinanceApiClient] = None,
        *,
        scheduler: Optional[SchedulerManager] = None,
        feed: Optional[SimulatedEventFeed] = None,
        stats_month: Optional[str] = None,
        poll_interval_secs: Optional[float] = None,
        fallback: Optional[dict[str, Any]] = None,
    ) -> None:
        settings = get_settings()
        self.api = api or FinanceApiClient()
        self.scheduler = scheduler or SchedulerManager()
        self.feed = feed or SimulatedEventFeed(self.scheduler)
        self.stats_month = (
            stats_month
            or settings.stats_month
            or datetime.now(timezone.utc).strftime("%Y-%m")
        )
        self.poll_interval_secs = poll_interval_secs or settings.poll_interval_secs
        self.export_dir = settings.export_dir
        self._fallback = fallback
        self.snapshot = FinanceSnapshot()

        self.feed.on(EVENT_NEW_TRANSACTION, self._on_new_transaction)
        self.feed.on(EVENT_NEW_ALERT, self._on_new_alert)
        self.feed.on(EVENT_GOAL_PROGRESS, self._on_goal_progress)

    # refresh cycle

    async def refresh(self) -> FinanceSnapshot:
        self.snapshot.is_loading = True
        self.snapshot.error = None
        try:
            (
                user,
                accounts,
                transactions,
                budgets,
                goals,
                alerts,
                insights,
                monthly_stats,
            ) = await asyncio.gather(
                self.api.get_user(),
                self.api.get_accounts(),
                self.api.get_transactions(),
                self.api.get_budgets(),
                self.api.get_goals(),
                self.api.get_alerts(),
                self.api.get_insights(),
                self.api.get_monthly_stats(self.stats_month),
            )
        except FinanceApiError as exc:
            logger.warning(f"cache_refresh_failed: falling back to bundled snapshot error={exc}")
            self.snapshot = self._fallback_snapshot(str(exc))
            return self.snapshot

        self.snapshot = FinanceSnapshot(
            user=user,
            accounts=accounts or [],
            transactions=transactions or [],
            budgets=budgets or [],
            goals=goals or [],
            alerts=alerts or [],
            insights=insights or [],
            monthly_stats=monthly_stats,
            is_loading=False,
            error=None,
        )
        logger.info(
            f"cache_refreshed: transactions={len(self.snapshot.transactions)} "
            f"alerts={len(self.snapshot.alerts)} month={self.stats_month}"
        )
        return self.snapshot

    def _fallback_snapshot(self, error: str) -> FinanceSnapshot:
        if self._fallback is None:
            self._fallback = load_snapshot()
        data = self._fallback
        monthly = data.get("monthlyStats") or {}
        stats = monthly.get(self.stats_month)
        return FinanceSnapshot(
            user=data.get("user"),
            accounts=list(data.get("accounts") or []),
            transactions=list(data.get("transactions") or []),
            budgets=list(data.get("budgets") or []),
            goals=list(data.get("goals") or []),
            alerts=list(data.get("alerts") or []),
            insights=list(data.get("insights") or []),
            monthly_stats={"month": self.stats_month, **stats} if stats else None,
            is_loading=False,
            error=error,
        )

    async def start(self) -> None:
        self.scheduler.add_interval_job(
            self.refresh, self.poll_interval_secs, self.POLL_JOB_ID
        )
        self.feed.start()
        await self.refresh()

    def stop(self) -> None:
        self.scheduler.remove_job(self.POLL_JOB_ID)
        self.feed.stop()
        self.scheduler.stop()

    async def close(self) -> None:
        self.stop()
        self.feed.off(EVENT_NEW_TRANSACTION, self._on_new_transaction)
        self.feed.off(EVENT_NEW_ALERT, self._on_new_alert)
        self.feed.off(EVENT_GOAL_PROGRESS, self._on_goal_progress)
        await self.api.aclose()

    @property
    def realtime_enabled(self) -> bool:
        return self.feed.enabled

    def toggle_realtime(self) -> bool:
        if self.feed.enabled:
            self.feed.disable()
        else:
            self.feed.enable()
        return self.feed.enabled

    # simulated feed handlers

    def _on_new_transaction(self, txn: Record) -> None:
        self.snapshot.transactions = [txn, *self.snapshot.transactions]

    def _on_new_alert(self, alert: Record) -> None:
        self.snapshot.alerts = [alert, *self.snapshot.alerts]

    def _on_goal_progress(self, update: Record) -> None:
        self.snapshot.goals = [
            {**goal, "currentAmount": update.get("newAmount")}
            if goal.get("id") == update.get("goalId")
            else goal
            for goal in self.snapshot.goals
        ]

    # views

    def categories(self) -> list[str]:
        return sorted(
            {t.get("category") for t in self.snapshot.transactions if t.get("category")}
        )

    def filter_transactions(
        self,
        query: str = "",
        category: str = "all",
        sort_order: str = "desc",
    ) -> list[Record]:
        needle = query.lower()

        def matches(txn: Record) -> bool:
            text_hit = (
                needle in str(txn.get("description") or "").lower()
                or needle in str(txn.get("merchant") or "").lower()
            )
            category_hit = category == "all" or txn.get("category") == category
            return text_hit and category_hit

        return sorted(
            (t for t in self.snapshot.transactions if matches(t)),
            key=lambda t: _parse_when(t.get("date")),
            reverse=sort_order != "asc",
        )

    def transaction_summary(
        self, transactions: Optional[Sequence[Record]] = None
    ) -> dict[str, float]:
        txns = self.snapshot.transactions if transactions is None else transactions
        amounts = [_number(t.get("amount")) for t in txns]
        return {
            "count": len(txns),
            "income": round(sum(a for a in amounts if a > 0), 2),
            "expenses": round(abs(sum(a for a in amounts if a < 0)), 2),
        }

    def total_balance(self) -> float:
        return round(sum(_number(a.get("balance")) for a in self.snapshot.accounts), 2)

    def budget_totals(self) -> dict[str, float]:
        limit = sum(_number(b.get("limit")) for b in self.snapshot.budgets)
        spent = sum(_number(b.get("spent")) for b in self.snapshot.budgets)
        on_track = [
            b
            for b in self.snapshot.budgets
            if _number(b.get("limit")) and _number(b.get("spent")) / _number(b.get("limit")) < 0.8
        ]
        budgets = len(self.snapshot.budgets)
        return {
            "limit": round(limit, 2),
            "spent": round(spent, 2),
            "remaining": round(limit - spent, 2),
            "on_track_pct": round(len(on_track) / budgets * 100) if budgets else 0,
        }

    def goal_stats(self) -> dict[str, float]:
        goals = self.snapshot.goals
        progress = [
            _number(g.get("currentAmount")) / _number(g.get("targetAmount"))
            for g in goals
            if _number(g.get("targetAmount"))
        ]
        return {
            "completed": sum(1 for g in goals if g.get("isCompleted")),
            "saved": round(sum(_number(g.get("currentAmount")) for g in goals), 2),
            "average_progress_pct": (
                round(sum(progress) / len(progress) * 100) if progress else 0
            ),
        }

    # exports

    def _export_path(
        self, stem: str, suffix: str, output_dir: Optional[Union[str, Path]]
    ) -> Path:
        directory = Path(output_dir) if output_dir else self.export_dir
        directory.mkdir(parents=True, exist_ok=True)
        today = datetime.now(timezone.utc).date().isoformat()
        return directory / f"{stem}_{today}.{suffix}"

    async def export_csv(
        self,
        transactions: Optional[Sequence[Record]] = None,
        output_dir: Optional[Union[str, Path]] = None,
    ) -> Path:
        txns = list(transactions or [])
        if not txns:
            try:
                txns = await self.api.get_transactions()
            except FinanceApiError as exc:
                logger.warning(f"csv_export_fetch_failed: error={exc}")
                txns = list(transactions or [])
        path = self._export_path("transactions", "csv", output_dir)
        path.write_bytes(export_transactions(txns).encode("utf-8"))
        logger.info(f"csv_exported: path={path} rows={len(txns)}")
        return path

    async def export_json(self, output_dir: Optional[Union[str, Path]] = None) -> Path:
        user, accounts, transactions, budgets, goals = await asyncio.gather(
            self.api.get_user(),
            self.api.get_accounts(),
            self.api.get_transactions(),
            self.api.get_budgets(),
            self.api.get_goals(),
        )
        document = {
            "user": user,
            "accounts": accounts,
            "transactions": transactions,
            "budgets": budgets,
            "goals": goals,
            "exportDate": datetime.now(timezone.utc)
            .isoformat(timespec="milliseconds")
            .replace("+00:00", "Z"),
        }
        path = self._export_path("finance_data", "json", output_dir)
        path.write_text(json.dumps(document, indent=2, ensure_ascii=False), encoding="utf-8")
        logger.info(f"json_exported: path={path}")
        return path
