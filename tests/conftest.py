from __future__ import annotations

import asyncio
import contextlib
import json
import os
from datetime import date, datetime, timedelta, timezone
from uuid import uuid4

import pytest

from frameshop.domain.orders import (
    Customer,
    MaterialOrderAuditRecord,
    Order,
    OrderStatus,
    OrderType,
)
from frameshop.ordering.materials import MaterialRef
from frameshop.store.sqlite import SqliteOrderStore
from frameshop.utils.time import FixedClock


START = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


def pytest_sessionstart(session: pytest.Session) -> None:
    # Keep a developer's .env override secret out of unit test runs.
    os.environ.pop("FRAMESHOP_OVERRIDE_CODE", None)


@pytest.fixture(autouse=True)
def _close_default_event_loop() -> None:
    yield
    policy = asyncio.get_event_loop_policy()
    local = getattr(policy, "_local", None)
    loop = getattr(local, "_loop", None) if local is not None else None
    if loop is not None and not loop.is_running() and not loop.is_closed():
        with contextlib.suppress(Exception):
            loop.close()
    if loop is not None:
        with contextlib.suppress(Exception):
            policy.set_event_loop(None)


class RecordingNotifier:
    def __init__(self) -> None:
        self.orders: list[Order] = []

    def send_status_update(self, order: Order) -> bool:
        self.orders.append(order)
        return True


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(START)


@pytest.fixture
def store(tmp_path):
    sqlite_store = SqliteOrderStore(str(tmp_path / "orders.db"))
    yield sqlite_store
    sqlite_store.close()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def make_customer(store, clock):
    async def _make(email: str | None = None) -> Customer:
        now = clock.now()
        customer = Customer(
            id=uuid4().hex,
            name="Ada Framer",
            email=email or f"{uuid4().hex[:8]}@example.com",
            created_at=now,
            updated_at=now,
        )
        return await store.create_customer(customer)

    return _make


@pytest.fixture
def make_order(store, clock, make_customer):
    """Store an order directly (no history entry) and return it."""

    async def _make(
        notes: str | None = None,
        *,
        order_id: str | None = None,
        status: OrderStatus = OrderStatus.ORDER_PROCESSED,
        due_date: date | None = None,
        estimated_hours: float = 3.0,
        complexity: int = 5,
        completed_at: datetime | None = None,
    ) -> Order:
        customer = await make_customer()
        now = clock.now()
        order = Order(
            id=order_id or uuid4().hex,
            tracking_id=f"TRK-{uuid4().hex[:10]}",
            customer_id=customer.id,
            description="Walnut frame for a watercolour",
            order_type=OrderType.FRAME,
            price=180.0,
            due_date=(due_date or (now.date() + timedelta(days=7))).isoformat(),
            created_at=now,
            updated_at=now,
            status=status,
            notes=notes,
            estimated_hours=estimated_hours,
            complexity=complexity,
            completed_at=completed_at,
        )
        return await store.create_order(order)

    return _make


@pytest.fixture
def make_audit(store, clock):
    """Append a material-order audit record naming ``materials``."""

    async def _make(
        order_id: str,
        materials: list[MaterialRef] | None = None,
        *,
        ordered_at: datetime | None = None,
        details: str | None = None,
    ) -> MaterialOrderAuditRecord:
        materials = materials or []
        if details is None:
            details = json.dumps(
                {
                    "materials": [m.to_dict() for m in materials],
                    "vendors": list(dict.fromkeys(m.vendor for m in materials)),
                }
            )
        record = MaterialOrderAuditRecord(
            id=uuid4().hex,
            order_id=order_id,
            ordered_by="staff-1",
            ordered_at=ordered_at or clock.now(),
            was_overridden=False,
            order_details=details,
        )
        return await store.append_material_order_audit(record)

    return _make
