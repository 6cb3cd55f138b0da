"""Application context assembly."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache

from frameshop.config import Settings, load_settings
from frameshop.notifications.base import NotificationSender
from frameshop.notifications.dispatcher import NotificationDispatcher
from frameshop.notifications.senders import LoggingNotificationSender, WebhookNotificationSender
from frameshop.ordering.authorization import OverrideAuthorizationGate
from frameshop.ordering.catalog import DEFAULT_PATTERNS, compile_catalog, load_material_catalog
from frameshop.ordering.detector import DuplicateOrderDetector
from frameshop.ordering.service import MaterialOrderingService
from frameshop.store.base import OrderStore
from frameshop.store.sqlite import SqliteOrderStore
from frameshop.utils.time import Clock, SystemClock
from frameshop.workflow.intake import OrderIntake
from frameshop.workflow.locks import KeyedLocks
from frameshop.workflow.status_machine import OrderStatusMachine

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    """Application-wide dependency container.

    Built once at startup and shared by every request handler.
    """

    settings: Settings
    clock: Clock
    store: OrderStore
    dispatcher: NotificationDispatcher
    status_machine: OrderStatusMachine
    intake: OrderIntake
    detector: DuplicateOrderDetector
    gate: OverrideAuthorizationGate
    ordering: MaterialOrderingService


def build_app_context(
    settings: Settings,
    *,
    store: OrderStore | None = None,
    clock: Clock | None = None,
    sender: NotificationSender | None = None,
) -> AppContext:
    clock = clock or SystemClock()
    if store is None:
        store = SqliteOrderStore(settings.storage.sqlite_path, wal=settings.storage.sqlite_wal)

    if sender is None:
        if settings.notifications.webhook_url:
            sender = WebhookNotificationSender(
                settings.notifications.webhook_url,
                timeout_seconds=settings.notifications.timeout_seconds,
            )
        else:
            sender = LoggingNotificationSender()
    dispatcher = NotificationDispatcher(
        sender,
        queue_size=settings.notifications.queue_size,
        max_retries=settings.notifications.max_retries,
        retry_delay_seconds=settings.notifications.retry_delay_seconds,
    )

    patterns = DEFAULT_PATTERNS
    if settings.ordering.catalog_path:
        patterns = compile_catalog(load_material_catalog(settings.ordering.catalog_path))
        logger.info(
            "Loaded %d material pattern(s) from %s", len(patterns), settings.ordering.catalog_path
        )

    status_machine = OrderStatusMachine(
        store,
        dispatcher,
        clock,
        enforce_transitions=settings.workflow.enforce_transitions,
    )
    detector = DuplicateOrderDetector(
        store,
        clock,
        window_hours=settings.ordering.duplicate_window_hours,
        max_daily_orders_per_vendor=settings.ordering.max_daily_orders_per_vendor,
        similarity_threshold=settings.ordering.similarity_threshold,
        patterns=patterns,
        query_timeout_seconds=settings.storage.query_timeout_seconds,
    )
    gate = OverrideAuthorizationGate(settings.ordering.override_code)

    return AppContext(
        settings=settings,
        clock=clock,
        store=store,
        dispatcher=dispatcher,
        status_machine=status_machine,
        intake=OrderIntake(store, status_machine, dispatcher, clock),
        detector=detector,
        gate=gate,
        ordering=MaterialOrderingService(
            store, detector, gate, status_machine, clock, KeyedLocks()
        ),
    )


@lru_cache(maxsize=1)
def get_app_context() -> AppContext:
    """Get or create the process-wide application context."""
    return build_app_context(load_settings())
