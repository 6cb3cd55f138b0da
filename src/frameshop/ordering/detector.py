"""Duplicate and risk classification for material-ordering batches."""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from collections.abc import Sequence
from datetime import datetime, timedelta

from frameshop.domain.orders import DuplicateOrderCheck, MaterialOrderAuditRecord, RiskLevel
from frameshop.ordering.catalog import DEFAULT_PATTERNS, MaterialPattern
from frameshop.ordering.materials import (
    MaterialRef,
    extract_materials,
    material_similarity,
    materials_from_details,
    parse_order_details,
    vendors_from_details,
)
from frameshop.store.base import OrderStore
from frameshop.utils.time import Clock, SystemClock

logger = logging.getLogger(__name__)


class DuplicateOrderDetector:
    """Classifies a proposed batch against the recent material-order audit log.

    Checks run in order and the first hit wins: an exact duplicate id is
    CRITICAL, similar materials are HIGH, a saturated vendor is MEDIUM.
    Any failure to complete the check produces the fail-safe CRITICAL result.
    """

    def __init__(
        self,
        store: OrderStore,
        clock: Clock | None = None,
        *,
        window_hours: int = 24,
        max_daily_orders_per_vendor: int = 5,
        similarity_threshold: float = 0.8,
        patterns: Sequence[MaterialPattern] = DEFAULT_PATTERNS,
        query_timeout_seconds: float = 5.0,
    ) -> None:
        self._store = store
        self._clock = clock or SystemClock()
        self._window = timedelta(hours=window_hours)
        self._vendor_cap = max_daily_orders_per_vendor
        self._similarity_threshold = similarity_threshold
        self._patterns = tuple(patterns)
        self._query_timeout = query_timeout_seconds

    @property
    def patterns(self) -> tuple[MaterialPattern, ...]:
        return self._patterns

    def window_start(self) -> datetime:
        return self._clock.now() - self._window

    async def check_duplicate_orders(self, order_ids: Sequence[str]) -> DuplicateOrderCheck:
        try:
            return await asyncio.wait_for(self._classify(list(order_ids)), self._query_timeout)
        except asyncio.TimeoutError:
            logger.error(
                "Duplicate check timed out after %.1fs; treating batch as critical risk",
                self._query_timeout,
            )
            return DuplicateOrderCheck.fail_safe()
        except Exception:
            logger.exception("Duplicate check failed; treating batch as critical risk")
            return DuplicateOrderCheck.fail_safe()

    async def _classify(self, order_ids: list[str]) -> DuplicateOrderCheck:
        recent = await self._store.query_audit_log(self.window_start())

        requested = set(order_ids)
        duplicates = [record for record in recent if record.order_id in requested]
        if duplicates:
            logger.warning(
                "Duplicate material order attempt for %d order(s)",
                len({record.order_id for record in duplicates}),
            )
            return DuplicateOrderCheck(
                is_duplicate=True,
                existing_orders=duplicates,
                requires_override=True,
                risk_level=RiskLevel.CRITICAL,
            )

        if not recent:
            return DuplicateOrderCheck.low_risk()

        candidates = await self._candidate_materials(order_ids)
        recent_details = [(record, parse_order_details(record.order_details)) for record in recent]

        similar = self._similar_records(candidates, recent_details)
        if similar:
            logger.warning("Similar materials ordered recently (%d record(s))", len(similar))
            return DuplicateOrderCheck(
                is_duplicate=False,
                existing_orders=similar,
                requires_override=True,
                risk_level=RiskLevel.HIGH,
            )

        if self._vendor_limit_reached(candidates, recent_details):
            return DuplicateOrderCheck(
                is_duplicate=False,
                existing_orders=[],
                requires_override=True,
                risk_level=RiskLevel.MEDIUM,
            )

        return DuplicateOrderCheck.low_risk()

    async def _candidate_materials(self, order_ids: list[str]) -> list[list[MaterialRef]]:
        candidates: list[list[MaterialRef]] = []
        for order_id in order_ids:
            order = await self._store.get_order(order_id)
            if order is None:
                continue
            candidates.append(extract_materials(order.notes, self._patterns))
        return candidates

    def _similar_records(
        self,
        candidates: list[list[MaterialRef]],
        recent: list[tuple[MaterialOrderAuditRecord, dict[str, object]]],
    ) -> list[MaterialOrderAuditRecord]:
        matches: list[MaterialOrderAuditRecord] = []
        for record, details in recent:
            previous = materials_from_details(details)
            if any(
                material_similarity(materials, previous) > self._similarity_threshold
                for materials in candidates
            ):
                matches.append(record)
        return matches

    def _vendor_limit_reached(
        self,
        candidates: list[list[MaterialRef]],
        recent: list[tuple[MaterialOrderAuditRecord, dict[str, object]]],
    ) -> bool:
        counts: Counter[str] = Counter()
        for _record, details in recent:
            counts.update(vendors_from_details(details))

        for vendor in {m.vendor for materials in candidates for m in materials}:
            if counts[vendor] >= self._vendor_cap:
                logger.warning(
                    "Vendor %s already has %d material order(s) in the window",
                    vendor,
                    counts[vendor],
                )
                return True
        return False
