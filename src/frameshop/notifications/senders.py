"""Notification senders."""

from __future__ import annotations

import logging

import httpx

from frameshop.domain.orders import Order

logger = logging.getLogger(__name__)


def order_snapshot(order: Order) -> dict[str, object]:
    return {
        "event": "order.status_updated",
        "order_id": order.id,
        "tracking_id": order.tracking_id,
        "customer_id": order.customer_id,
        "status": order.status.value,
        "due_date": order.due_date,
        "updated_at": order.updated_at.isoformat(),
    }


class LoggingNotificationSender:
    """Writes each status update to the log instead of contacting the customer."""

    async def send_status_update(self, order: Order) -> None:
        logger.info(
            "Status update for %s (customer %s): %s",
            order.tracking_id,
            order.customer_id,
            order.status.value,
        )


class WebhookNotificationSender:
    def __init__(
        self,
        url: str,
        *,
        timeout_seconds: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._url = url
        self._timeout = timeout_seconds
        self._client = client

    async def send_status_update(self, order: Order) -> None:
        payload = order_snapshot(order)
        if self._client is not None:
            resp = await self._client.post(self._url, json=payload, timeout=self._timeout)
            resp.raise_for_status()
        else:
            async with httpx.AsyncClient() as client:
                resp = await client.post(self._url, json=payload, timeout=self._timeout)
                resp.raise_for_status()
        logger.debug("Webhook accepted status update for order %s", order.id)
