import asyncio
import random

from simulated_feed import (
    CATEGORIES,
    EVENT_GOAL_PROGRESS,
    EVENT_NEW_ALERT,
    EVENT_NEW_TRANSACTION,
    MERCHANTS,
    SimulatedEventFeed,
)


def test_generated_transaction_is_a_small_expense() -> None:
    feed = SimulatedEventFeed(rng=random.Random(7), account_id="acc1")

    for _ in range(20):
        txn = feed.generate_transaction()
        assert -55 <= txn["amount"] <= -5
        assert txn["accountId"] == "acc1"
        assert txn["category"] in CATEGORIES
        assert txn["merchant"] in MERCHANTS
        assert txn["date"].endswith("Z")
        assert txn["id"].startswith("tx_")


def test_generated_alert_and_goal_update() -> None:
    feed = SimulatedEventFeed(rng=random.Random(3), goal_id="goal2")

    alert = feed.generate_alert()
    assert alert["severity"] in {"warning", "success"}
    assert alert["isRead"] is False

    update = feed.generate_goal_update()
    assert update["goalId"] == "goal2"
    assert 100 <= update["newAmount"] <= 200


def test_listeners_can_subscribe_and_unsubscribe() -> None:
    feed = SimulatedEventFeed()
    received = []
    feed.on(EVENT_NEW_ALERT, received.append)

    feed.emit(EVENT_NEW_ALERT, {"id": "a1"})
    feed.off(EVENT_NEW_ALERT, received.append)
    feed.emit(EVENT_NEW_ALERT, {"id": "a2"})

    assert received == [{"id": "a1"}]


def test_ticks_only_emit_while_enabled() -> None:
    feed = SimulatedEventFeed(rng=random.Random(1))
    received = []
    feed.on(EVENT_NEW_TRANSACTION, received.append)
    feed.on(EVENT_GOAL_PROGRESS, received.append)

    asyncio.run(feed.tick(EVENT_NEW_TRANSACTION))
    assert received == []

    feed.enable()
    asyncio.run(feed.tick(EVENT_NEW_TRANSACTION))
    asyncio.run(feed.tick(EVENT_GOAL_PROGRESS))
    assert len(received) == 2
    assert received[1]["goalId"] == "goal1"

    feed.disable()
    asyncio.run(feed.tick(EVENT_NEW_TRANSACTION))
    assert len(received) == 2
