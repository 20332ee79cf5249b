"""Simulated finance events for local development.

Nothing here talks to the server: events are generated on local timers and
handed to in-process listeners. Treat it as a demo feed, not a push channel.
"""

from __future__ import annotations

import logging
import random
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from scheduler import SchedulerManager

logger = logging.getLogger(__name__)

EVENT_NEW_TRANSACTION = "transaction:new"
EVENT_NEW_ALERT = "alert:new"
EVENT_GOAL_PROGRESS = "goal:progress"

MERCHANTS = ["Campus Cafe", "BookMart", "Gas Station", "Online Store", "Restaurant"]
CATEGORIES = [
    "Food & Dining",
    "Education",
    "Transportation",
    "Entertainment",
    "Groceries",
]
ALERT_TEMPLATES = [
    {
        "type": "budget_warning",
        "title": "Budget Alert",
        "message": "Approaching monthly limit",
        "severity": "warning",
    },
    {
        "type": "goal_milestone",
        "title": "Goal Progress",
        "message": "You're making great progress!",
        "severity": "success",
    },
]

# (low, high) bounds in seconds; each feed picks its interval once per start
INTERVALS = {
    EVENT_NEW_TRANSACTION: (15.0, 25.0),
    EVENT_NEW_ALERT: (30.0, 45.0),
    EVENT_GOAL_PROGRESS: (20.0, 30.0),
}

Listener = Callable[[dict[str, Any]], None]


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace(
        "+00:00", "Z"
    )


class SimulatedEventFeed:
    def __init__(
        self,
        scheduler: Optional[SchedulerManager] = None,
        *,
        rng: Optional[random.Random] = None,
        account_id: str = "acc1",
        goal_id: str = "goal1",
    ) -> None:
        self.scheduler = scheduler or SchedulerManager()
        self.rng = rng or random.Random()
        self.account_id = account_id
        self.goal_id = goal_id
        self.enabled = False
        self._listeners: dict[str, list[Listener]] = {}
        self._generators: dict[str, Callable[[], dict[str, Any]]] = {
            EVENT_NEW_TRANSACTION: self.generate_transaction,
            EVENT_NEW_ALERT: self.generate_alert,
            EVENT_GOAL_PROGRESS: self.generate_goal_update,
        }

    def on(self, event: str, callback: Listener) -> None:
        self._listeners.setdefault(event, []).append(callback)

    def off(self, event: str, callback: Listener) -> None:
        listeners = self._listeners.get(event)
        if listeners and callback in listeners:
            listeners.remove(callback)

    def emit(self, event: str, payload: dict[str, Any]) -> None:
        for callback in list(self._listeners.get(event, [])):
            callback(payload)

    def enable(self) -> None:
        self.enabled = True
        logger.info("simulated_feed: enabled")

    def disable(self) -> None:
        self.enabled = False
        logger.info("simulated_feed: disabled")

    def start(self) -> None:
        for event, (low, high) in INTERVALS.items():
            self.scheduler.add_interval_job(
                self.tick,
                self.rng.uniform(low, high),
                self._job_id(event),
                args=[event],
            )
        self.scheduler.start()

    def stop(self) -> None:
        for event in INTERVALS:
            self.scheduler.remove_job(self._job_id(event))

    async def tick(self, event: str) -> None:
        if not self.enabled:
            return
        payload = self._generators[event]()
        logger.info(f"simulated_event: type={event} id={payload.get('id', payload.get('goalId'))}")
        self.emit(event, payload)

    def generate_transaction(self) -> dict[str, Any]:
        return {
            "id": f"tx_{uuid.uuid4().hex[:12]}",
            "accountId": self.account_id,
            "amount": -round(self.rng.random() * 50 + 5, 2),
            "description": self.rng.choice(MERCHANTS),
            "category": self.rng.choice(CATEGORIES),
            "date": _now_iso(),
            "merchant": self.rng.choice(MERCHANTS),
            "status": "completed",
        }

    def generate_alert(self) -> dict[str, Any]:
        template = self.rng.choice(ALERT_TEMPLATES)
        return {
            **template,
            "id": f"alert_{uuid.uuid4().hex[:12]}",
            "timestamp": _now_iso(),
            "isRead": False,
        }

    def generate_goal_update(self) -> dict[str, Any]:
        return {
            "goalId": self.goal_id,
            "newAmount": round(self.rng.random() * 100 + 100),
            "timestamp": _now_iso(),
        }

    @staticmethod
    def _job_id(event: str) -> str:
        return f"simulated_{event.replace(':', '_')}"
