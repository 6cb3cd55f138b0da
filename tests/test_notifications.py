from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone

import httpx
import pytest

from frameshop.domain.orders import Order, OrderStatus, OrderType
from frameshop.notifications.dispatcher import NotificationDispatcher
from frameshop.notifications.senders import LoggingNotificationSender, WebhookNotificationSender

NOW = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


def _order(order_id: str = "o-1", status: OrderStatus = OrderStatus.PREPPED) -> Order:
    return Order(
        id=order_id,
        tracking_id=f"TRK-{order_id}",
        customer_id="c-1",
        description="Frame",
        order_type=OrderType.FRAME,
        price=50.0,
        due_date="2024-03-05",
        created_at=NOW,
        updated_at=NOW,
        status=status,
    )


class FlakySender:
    def __init__(self, failures: int = 0) -> None:
        self.failures = failures
        self.attempts = 0
        self.delivered: list[str] = []

    async def send_status_update(self, order: Order) -> None:
        self.attempts += 1
        if self.failures:
            self.failures -= 1
            raise ConnectionError("provider down")
        self.delivered.append(order.id)


class BlockingSender:
    def __init__(self) -> None:
        self.release = asyncio.Event()

    async def send_status_update(self, order: Order) -> None:
        await self.release.wait()


@pytest.mark.asyncio
async def test_dispatcher_delivers_in_order() -> None:
    sender = FlakySender()
    dispatcher = NotificationDispatcher(sender)

    assert dispatcher.send_status_update(_order("o-1")) is True
    assert dispatcher.send_status_update(_order("o-2")) is True
    await dispatcher.join()
    await dispatcher.stop()

    assert sender.delivered == ["o-1", "o-2"]
    assert dispatcher.stats.delivered == 2
    assert dispatcher.stats.queued == 2


@pytest.mark.asyncio
async def test_dispatcher_retries_then_delivers() -> None:
    sender = FlakySender(failures=2)
    dispatcher = NotificationDispatcher(sender, max_retries=2, retry_delay_seconds=0)

    dispatcher.send_status_update(_order())
    await dispatcher.join()
    await dispatcher.stop()

    assert sender.attempts == 3
    assert dispatcher.stats.delivered == 1
    assert dispatcher.stats.failed == 0


@pytest.mark.asyncio
async def test_dispatcher_gives_up_after_retries() -> None:
    sender = FlakySender(failures=10)
    dispatcher = NotificationDispatcher(sender, max_retries=1, retry_delay_seconds=0)

    dispatcher.send_status_update(_order())
    await dispatcher.join()
    await dispatcher.stop()

    assert sender.attempts == 2
    assert dispatcher.stats.failed == 1


@pytest.mark.asyncio
async def test_full_queue_drops_without_blocking() -> None:
    sender = BlockingSender()
    dispatcher = NotificationDispatcher(sender, queue_size=1)

    assert dispatcher.send_status_update(_order("o-1")) is True
    await asyncio.sleep(0)  # worker takes o-1 and blocks in the sender
    assert dispatcher.send_status_update(_order("o-2")) is True
    assert dispatcher.send_status_update(_order("o-3")) is False

    assert dispatcher.stats.dropped == 1
    sender.release.set()
    await dispatcher.join()
    await dispatcher.stop()


def test_enqueue_without_running_loop() -> None:
    dispatcher = NotificationDispatcher(FlakySender())
    assert dispatcher.send_status_update(_order()) is True
    assert dispatcher.pending == 1


@pytest.mark.asyncio
async def test_logging_sender(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level("INFO", logger="frameshop.notifications.senders"):
        await LoggingNotificationSender().send_status_update(_order())
    assert "TRK-o-1" in caplog.text
    assert "PREPPED" in caplog.text


@pytest.mark.asyncio
async def test_webhook_sender_posts_snapshot() -> None:
    seen: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        return httpx.Response(204)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        sender = WebhookNotificationSender("https://hooks.example.com/frames", client=client)
        await sender.send_status_update(_order(status=OrderStatus.READY_FOR_PICKUP))

    assert seen[0]["status"] == "READY_FOR_PICKUP"
    assert seen[0]["tracking_id"] == "TRK-o-1"
    assert seen[0]["event"] == "order.status_updated"


@pytest.mark.asyncio
async def test_webhook_sender_raises_on_error_status() -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(500))
    async with httpx.AsyncClient(transport=transport) as client:
        sender = WebhookNotificationSender("https://hooks.example.com/frames", client=client)
        with pytest.raises(httpx.HTTPStatusError):
            await sender.send_status_update(_order())
