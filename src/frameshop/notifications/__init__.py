from frameshop.notifications.base import NotificationSender, NullNotifier, StatusNotifier
from frameshop.notifications.dispatcher import DispatchStats, NotificationDispatcher
from frameshop.notifications.senders import (
    LoggingNotificationSender,
    WebhookNotificationSender,
    order_snapshot,
)

__all__ = [
    "DispatchStats",
    "LoggingNotificationSender",
    "NotificationDispatcher",
    "NotificationSender",
    "NullNotifier",
    "StatusNotifier",
    "WebhookNotificationSender",
    "order_snapshot",
]
