"""Order store interface consumed by the workflow core."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import datetime
from typing import Protocol

from frameshop.domain.orders import (
    Customer,
    Material,
    MaterialOrderAuditRecord,
    Order,
    OrderStatus,
    StatusHistoryEntry,
)

# Fields callers may change through ``update_order``.  Status is deliberately
# absent: it only moves through ``apply_status_transition``.
UPDATABLE_ORDER_FIELDS = frozenset(
    {
        "description",
        "notes",
        "internal_notes",
        "priority",
        "order_type",
        "due_date",
        "estimated_hours",
        "price",
        "deposit",
        "complexity",
    }
)


class OrderStore(Protocol):
    async def create_customer(self, customer: Customer) -> Customer: ...

    async def get_customer(self, customer_id: str) -> Customer | None: ...

    async def list_customers(self) -> list[Customer]: ...

    async def create_order(
        self,
        order: Order,
        initial_history: StatusHistoryEntry | None = None,
    ) -> Order: ...

    async def get_order(self, order_id: str) -> Order | None: ...

    async def list_orders(self, status: OrderStatus | None = None) -> list[Order]: ...

    async def get_order_by_tracking_id(self, tracking_id: str) -> Order | None: ...

    async def search_orders(self, query: str) -> list[Order]: ...

    async def update_order(self, order_id: str, fields: Mapping[str, object]) -> Order: ...

    async def create_status_history(self, entry: StatusHistoryEntry) -> StatusHistoryEntry: ...

    async def get_status_history(self, order_id: str) -> list[StatusHistoryEntry]: ...

    async def apply_status_transition(
        self,
        order_id: str,
        expected_from: OrderStatus,
        entry: StatusHistoryEntry,
        *,
        completed_at: datetime | None = None,
        material_audit: MaterialOrderAuditRecord | None = None,
    ) -> Order: ...

    async def query_audit_log(
        self,
        since: datetime,
        order_ids: Sequence[str] | None = None,
    ) -> list[MaterialOrderAuditRecord]: ...

    async def append_material_order_audit(
        self, record: MaterialOrderAuditRecord
    ) -> MaterialOrderAuditRecord: ...

    async def create_material(self, material: Material) -> Material: ...

    async def list_materials(self, order_id: str) -> list[Material]: ...

    def close(self) -> None: ...
