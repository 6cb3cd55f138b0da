"""Notification interfaces."""

from __future__ import annotations

from typing import Protocol

from frameshop.domain.orders import Order


class StatusNotifier(Protocol):
    """Hands off a status-update notification without waiting for delivery."""

    def send_status_update(self, order: Order) -> bool: ...


class NotificationSender(Protocol):
    """Delivers one status-update notification (email/SMS/webhook...)."""

    async def send_status_update(self, order: Order) -> None: ...


class NullNotifier:
    def send_status_update(self, order: Order) -> bool:
        return False
