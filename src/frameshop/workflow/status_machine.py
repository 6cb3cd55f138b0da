"""Order status lifecycle with an append-only history."""

from __future__ import annotations

import logging
from uuid import uuid4

from frameshop.domain.errors import (
    InvalidTransitionError,
    OrderNotFoundError,
    OrderValidationError,
)
from frameshop.domain.orders import (
    INITIAL_STATUS,
    MaterialOrderAuditRecord,
    Order,
    OrderStatus,
    StatusHistoryEntry,
)
from frameshop.notifications.base import NullNotifier, StatusNotifier
from frameshop.store.base import OrderStore
from frameshop.utils.masking import sanitize_log_value
from frameshop.utils.time import Clock, SystemClock

logger = logging.getLogger(__name__)

DEFAULT_ACTOR = "system"

_S = OrderStatus

# Forward shop-floor flow plus the corrections the counter staff make
# (re-ordering damaged materials, re-opening a pickup).  Only consulted when
# transitions are enforced.
ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    _S.ORDER_PROCESSED: frozenset({_S.MATERIALS_ORDERED, _S.MYSTERY_UNCLAIMED}),
    _S.MATERIALS_ORDERED: frozenset({_S.MATERIALS_ARRIVED, _S.ORDER_PROCESSED}),
    _S.MATERIALS_ARRIVED: frozenset({_S.FRAME_CUT, _S.MAT_CUT, _S.MATERIALS_ORDERED}),
    _S.FRAME_CUT: frozenset({_S.MAT_CUT, _S.PREPPED, _S.MATERIALS_ORDERED}),
    _S.MAT_CUT: frozenset({_S.FRAME_CUT, _S.PREPPED, _S.MATERIALS_ORDERED}),
    _S.PREPPED: frozenset({_S.READY_FOR_PICKUP, _S.COMPLETED}),
    _S.COMPLETED: frozenset({_S.READY_FOR_PICKUP, _S.PICKED_UP}),
    _S.READY_FOR_PICKUP: frozenset({_S.PICKED_UP, _S.COMPLETED, _S.MYSTERY_UNCLAIMED}),
    _S.MYSTERY_UNCLAIMED: frozenset({_S.READY_FOR_PICKUP, _S.PICKED_UP}),
    _S.PICKED_UP: frozenset(),
}


def coerce_status(value: OrderStatus | str) -> OrderStatus:
    try:
        return OrderStatus(value)
    except ValueError as exc:
        raise OrderValidationError(f"Unknown order status: {value!r}") from exc


def is_transition_allowed(from_status: OrderStatus, to_status: OrderStatus) -> bool:
    return to_status in ALLOWED_TRANSITIONS.get(from_status, frozenset())


class OrderStatusMachine:
    """Applies status changes so that each one leaves exactly one history entry."""

    def __init__(
        self,
        store: OrderStore,
        notifier: StatusNotifier | None = None,
        clock: Clock | None = None,
        *,
        enforce_transitions: bool = False,
    ) -> None:
        self._store = store
        self._notifier = notifier or NullNotifier()
        self._clock = clock or SystemClock()
        self._enforce_transitions = enforce_transitions

    async def transition_status(
        self,
        order_id: str,
        new_status: OrderStatus | str,
        actor: str | None = None,
        reason: str | None = None,
        *,
        material_audit: MaterialOrderAuditRecord | None = None,
    ) -> StatusHistoryEntry | None:
        """Move ``order_id`` to ``new_status``.

        Returns the new history entry, or ``None`` when the order already had
        that status (nothing is written apart from ``material_audit``).
        ``material_audit`` is committed in the same transaction as the status
        change.
        """
        target = coerce_status(new_status)
        changed_by = actor.strip() if actor and actor.strip() else DEFAULT_ACTOR

        order = await self._store.get_order(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)

        current = order.status
        if target == current:
            logger.debug("Order %s already %s; no history written", order_id, target.value)
            if material_audit is not None:
                await self._store.append_material_order_audit(material_audit)
            return None

        if self._enforce_transitions and not is_transition_allowed(current, target):
            raise InvalidTransitionError(current.value, target.value)

        now = self._clock.now()
        entry = StatusHistoryEntry(
            id=uuid4().hex,
            order_id=order_id,
            from_status=current,
            to_status=target,
            changed_by=changed_by,
            reason=reason,
            created_at=now,
        )
        updated = await self._store.apply_status_transition(
            order_id,
            current,
            entry,
            completed_at=now if target == OrderStatus.COMPLETED else None,
            material_audit=material_audit,
        )
        logger.info(
            "Order %s status %s -> %s by %s",
            order_id,
            current.value,
            target.value,
            sanitize_log_value(changed_by),
        )
        self._notify(updated)
        return entry

    async def record_creation(self, order: Order, actor: str | None = None) -> StatusHistoryEntry:
        """Write the creation entry (no previous status) for a newly stored order."""
        entry = self.creation_entry(order, actor)
        await self._store.create_status_history(entry)
        return entry

    def creation_entry(self, order: Order, actor: str | None = None) -> StatusHistoryEntry:
        return StatusHistoryEntry(
            id=uuid4().hex,
            order_id=order.id,
            from_status=None,
            to_status=INITIAL_STATUS,
            changed_by=actor.strip() if actor and actor.strip() else DEFAULT_ACTOR,
            reason="Order created",
            created_at=self._clock.now(),
        )

    async def current_status(self, order_id: str) -> OrderStatus:
        order = await self._store.get_order(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        return order.status

    async def history(self, order_id: str) -> list[StatusHistoryEntry]:
        if await self._store.get_order(order_id) is None:
            raise OrderNotFoundError(order_id)
        return await self._store.get_status_history(order_id)

    def _notify(self, order: Order) -> None:
        try:
            self._notifier.send_status_update(order)
        except Exception:
            logger.exception("Failed to queue status notification for order %s", order.id)
