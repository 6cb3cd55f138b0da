"""Material ordering: risk gate, override verification and per-order processing."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from datetime import timedelta
from uuid import uuid4

from frameshop.domain.errors import (
    ConcurrentUpdateError,
    FrameshopError,
    OrderNotFoundError,
    OrderValidationError,
)
from frameshop.domain.orders import (
    DuplicateOrderCheck,
    MaterialOrderAuditRecord,
    MaterialOrderResult,
    OrderStatus,
    RiskLevel,
)
from frameshop.ordering.authorization import OverrideAuthorizationGate
from frameshop.ordering.detector import DuplicateOrderDetector
from frameshop.ordering.materials import build_order_details
from frameshop.store.base import OrderStore
from frameshop.utils.masking import sanitize_log_value
from frameshop.utils.time import Clock, SystemClock
from frameshop.workflow.locks import KeyedLocks
from frameshop.workflow.status_machine import OrderStatusMachine

logger = logging.getLogger(__name__)

MATERIALS_ORDERED_REASON = "Materials ordered"
UNAUTHORIZED_MESSAGE = "UNAUTHORIZED: Invalid management override code"
SYSTEM_ERROR_MESSAGE = "Material ordering failed due to system error"

_OVERRIDE_CAUSES = {
    RiskLevel.HIGH: "Similar orders recently placed.",
    RiskLevel.MEDIUM: "Vendor daily order limit reached.",
}


def override_required_message(check: DuplicateOrderCheck) -> str:
    if check.is_duplicate:
        cause = "Duplicate orders found."
    elif check.risk_level == RiskLevel.CRITICAL:
        cause = "Duplicate check unavailable."
    else:
        cause = _OVERRIDE_CAUSES.get(check.risk_level, "Review required.")
    return f"MANAGEMENT OVERRIDE REQUIRED: {check.risk_level.value} risk detected. {cause}"


def normalize_order_ids(order_ids: Sequence[str] | None) -> list[str]:
    """Strip ids and drop repeats, keeping first-seen order."""
    if order_ids is None or isinstance(order_ids, str) or not order_ids:
        raise OrderValidationError("order_ids must be a non-empty list of order ids")
    normalized: dict[str, None] = {}
    for order_id in order_ids:
        if not isinstance(order_id, str) or not order_id.strip():
            raise OrderValidationError("order_ids must not contain blank values")
        normalized[order_id.strip()] = None
    return list(normalized)


class MaterialOrderingService:
    def __init__(
        self,
        store: OrderStore,
        detector: DuplicateOrderDetector,
        gate: OverrideAuthorizationGate,
        status_machine: OrderStatusMachine,
        clock: Clock | None = None,
        locks: KeyedLocks | None = None,
    ) -> None:
        self._store = store
        self._detector = detector
        self._gate = gate
        self._status_machine = status_machine
        self._clock = clock or SystemClock()
        self._locks = locks or KeyedLocks()

    async def check_duplicate_orders(self, order_ids: Sequence[str]) -> DuplicateOrderCheck:
        return await self._detector.check_duplicate_orders(normalize_order_ids(order_ids))

    async def recent_ordering_activity(
        self, hours: float | None = None
    ) -> list[MaterialOrderAuditRecord]:
        if hours is None:
            since = self._detector.window_start()
        else:
            if hours <= 0:
                raise OrderValidationError("hours must be positive")
            since = self._clock.now() - timedelta(hours=hours)
        return await self._store.query_audit_log(since)

    async def process_material_order(
        self,
        order_ids: Sequence[str],
        actor_id: str,
        override_code: str | None = None,
        override_reason: str | None = None,
    ) -> MaterialOrderResult:
        """Order materials for a batch of orders.

        Never raises: every outcome, including internal failures, is reported
        through the returned ``MaterialOrderResult``.
        """
        try:
            ids, actor, reason = self._validate(
                order_ids, actor_id, override_code, override_reason
            )
        except OrderValidationError as exc:
            return MaterialOrderResult(success=False, message=f"VALIDATION ERROR: {exc}")

        try:
            return await self._process(ids, actor, override_code, reason)
        except Exception:
            logger.exception("Material ordering failed for actor %s", sanitize_log_value(actor))
            return MaterialOrderResult(
                success=False,
                message=SYSTEM_ERROR_MESSAGE,
                requires_override=True,
                duplicate_check=DuplicateOrderCheck.fail_safe(),
            )

    @staticmethod
    def _validate(
        order_ids: Sequence[str],
        actor_id: str,
        override_code: str | None,
        override_reason: str | None,
    ) -> tuple[list[str], str, str | None]:
        ids = normalize_order_ids(order_ids)
        if not isinstance(actor_id, str) or not actor_id.strip():
            raise OrderValidationError("actor_id is required")
        reason = override_reason.strip() if override_reason else None
        if override_code and not reason:
            raise OrderValidationError("an override reason is required with an override code")
        return ids, actor_id.strip(), reason

    async def _process(
        self,
        order_ids: list[str],
        actor: str,
        override_code: str | None,
        override_reason: str | None,
    ) -> MaterialOrderResult:
        check = await self._detector.check_duplicate_orders(order_ids)

        overridden = False
        if check.requires_override:
            if not override_code:
                return MaterialOrderResult(
                    success=False,
                    message=override_required_message(check),
                    requires_override=True,
                    duplicate_check=check,
                )
            if not self._gate.verify_management_authorization(
                override_code, actor, override_reason
            ):
                return MaterialOrderResult(
                    success=False,
                    message=UNAUTHORIZED_MESSAGE,
                    requires_override=True,
                    duplicate_check=check,
                )
            overridden = True

        outcomes = await asyncio.gather(
            *(
                self._order_materials(order_id, actor, overridden, override_reason)
                for order_id in order_ids
            ),
            return_exceptions=True,
        )

        succeeded: list[str] = []
        failed: dict[str, str] = {}
        for order_id, outcome in zip(order_ids, outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, FrameshopError):
                    logger.error(
                        "Unexpected error ordering materials for order %s",
                        order_id,
                        exc_info=outcome,
                    )
                failed[order_id] = str(outcome) or type(outcome).__name__
            else:
                succeeded.append(order_id)

        message = f"Successfully ordered materials for {len(succeeded)} orders"
        if failed:
            message += f", {len(failed)} failed"
        if overridden:
            message += " (Management Override Used)"

        logger.info(
            "Material order by %s: %d succeeded, %d failed, risk=%s, overridden=%s",
            sanitize_log_value(actor),
            len(succeeded),
            len(failed),
            check.risk_level.value,
            overridden,
        )
        return MaterialOrderResult(
            success=bool(succeeded),
            message=message,
            requires_override=False,
            duplicate_check=check,
            succeeded=succeeded,
            failed=failed,
        )

    async def _order_materials(
        self,
        order_id: str,
        actor: str,
        overridden: bool,
        override_reason: str | None,
    ) -> None:
        async with self._locks.hold(order_id):
            order = await self._store.get_order(order_id)
            if order is None:
                raise OrderNotFoundError(order_id)

            # An authorized override accepts whatever is already in the window.
            if not overridden:
                placed = await self._store.query_audit_log(
                    self._detector.window_start(), order_ids=[order_id]
                )
                if placed:
                    raise ConcurrentUpdateError(
                        f"Materials for order {order_id} were ordered by a concurrent request"
                    )

            now = self._clock.now()
            record = MaterialOrderAuditRecord(
                id=uuid4().hex,
                order_id=order_id,
                ordered_by=actor,
                ordered_at=now,
                was_overridden=overridden,
                order_details=build_order_details(
                    order,
                    ordered_by=actor,
                    was_overridden=overridden,
                    ordered_at=now,
                    patterns=self._detector.patterns,
                ),
            )
            await self._status_machine.transition_status(
                order_id,
                OrderStatus.MATERIALS_ORDERED,
                actor,
                override_reason if overridden else MATERIALS_ORDERED_REASON,
                material_audit=record,
            )
