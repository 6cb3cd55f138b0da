from __future__ import annotations

import sqlite3
from datetime import date, timedelta
from uuid import uuid4
from unittest.mock import patch

import pytest

from frameshop.domain.errors import OrderNotFoundError, OrderValidationError, TransientStoreError
from frameshop.domain.orders import Material, OrderStatus, Priority
from frameshop.store.sqlite import SqliteOrderStore


def test_schema_created(tmp_path) -> None:
    store = SqliteOrderStore(str(tmp_path / "nested" / "orders.db"))
    try:
        tables = {
            row["name"]
            for row in store.fetch_all("SELECT name FROM sqlite_master WHERE type='table'", ())
        }
    finally:
        store.close()
    assert {"customers", "orders", "status_history", "material_order_audit", "materials"} <= tables


def test_in_memory_store() -> None:
    store = SqliteOrderStore(":memory:")
    assert store.fetch_one("SELECT COUNT(*) AS n FROM orders", ())["n"] == 0
    store.close()
    store.close()


@pytest.mark.asyncio
async def test_order_round_trip(store, make_order) -> None:
    order = await make_order("Frame: R123")

    loaded = await store.get_order(order.id)

    assert loaded == order


@pytest.mark.asyncio
async def test_duplicate_customer_email_rejected(make_customer) -> None:
    await make_customer("same@example.com")
    with pytest.raises(OrderValidationError):
        await make_customer("same@example.com")


@pytest.mark.asyncio
async def test_list_orders_filters_by_status(store, make_order) -> None:
    await make_order()
    done = await make_order(status=OrderStatus.COMPLETED)

    assert [o.id for o in await store.list_orders(OrderStatus.COMPLETED)] == [done.id]
    assert len(await store.list_orders()) == 2


@pytest.mark.asyncio
async def test_update_order_fields(store, clock, make_order) -> None:
    order = await make_order()

    updated = await store.update_order(order.id, {"notes": "Mat: C9", "priority": Priority.HIGH})

    assert updated.notes == "Mat: C9"
    assert updated.priority == Priority.HIGH
    assert updated.status == OrderStatus.ORDER_PROCESSED


@pytest.mark.asyncio
async def test_update_order_rejects_status(store, make_order) -> None:
    order = await make_order()
    with pytest.raises(OrderValidationError, match="status transition"):
        await store.update_order(order.id, {"status": "PREPPED"})


@pytest.mark.asyncio
async def test_update_order_rejects_unknown_field(store, make_order) -> None:
    order = await make_order()
    with pytest.raises(OrderValidationError):
        await store.update_order(order.id, {"tracking_id": "TRK-x"})


@pytest.mark.asyncio
async def test_update_missing_order(store) -> None:
    with pytest.raises(OrderNotFoundError):
        await store.update_order("missing", {"notes": "x"})


@pytest.mark.asyncio
async def test_query_audit_log_window_and_filter(store, clock, make_audit) -> None:
    old = await make_audit("o-1", ordered_at=clock.now() - timedelta(hours=30))
    recent_a = await make_audit("o-1")
    recent_b = await make_audit("o-2")
    since = clock.now() - timedelta(hours=24)

    assert [r.id for r in await store.query_audit_log(since)] == [recent_a.id, recent_b.id]
    assert [r.id for r in await store.query_audit_log(since, order_ids=["o-2"])] == [
        recent_b.id
    ]
    assert await store.query_audit_log(since, order_ids=[]) == []
    everything = await store.query_audit_log(clock.now() - timedelta(days=2))
    assert old.id in {r.id for r in everything}


@pytest.mark.asyncio
async def test_sqlite_errors_become_transient(store) -> None:
    with patch.object(store, "fetch_all", side_effect=sqlite3.OperationalError("locked")):
        with pytest.raises(TransientStoreError, match="locked"):
            await store.list_orders()


@pytest.mark.asyncio
async def test_update_order_stores_due_date_as_iso(store, make_order) -> None:
    order = await make_order()

    updated = await store.update_order(order.id, {"due_date": date(2024, 4, 2)})

    assert updated.due_date == "2024-04-02"
    row = store.fetch_one("SELECT due_date FROM orders WHERE id = ?", (order.id,))
    assert row["due_date"] == "2024-04-02"


@pytest.mark.asyncio
async def test_get_order_by_tracking_id(store, make_order) -> None:
    order = await make_order()

    assert await store.get_order_by_tracking_id(order.tracking_id) == order
    assert await store.get_order_by_tracking_id("TRK-missing") is None


@pytest.mark.asyncio
async def test_search_orders_matches_several_columns(store, clock, make_order) -> None:
    first = await make_order()
    clock.advance(minutes=1)
    second = await make_order(status=OrderStatus.PREPPED)
    await store.update_order(second.id, {"description": "Oak shadowbox"})

    assert [o.id for o in await store.search_orders("walnut")] == [first.id]
    assert [o.id for o in await store.search_orders("prepped")] == [second.id]
    assert [o.id for o in await store.search_orders("ada fram")] == [second.id, first.id]
    assert [o.id for o in await store.search_orders(first.tracking_id)] == [first.id]


@pytest.mark.asyncio
async def test_search_orders_treats_wildcards_literally(store, make_order) -> None:
    await make_order()

    assert await store.search_orders("%") == []
    assert await store.search_orders("walnut_frame") == []


@pytest.mark.asyncio
async def test_list_customers_newest_first(store, clock, make_customer) -> None:
    older = await make_customer()
    clock.advance(minutes=5)
    newer = await make_customer()

    assert [c.id for c in await store.list_customers()] == [newer.id, older.id]


@pytest.mark.asyncio
async def test_materials_round_trip(store, clock, make_order) -> None:
    order = await make_order()
    material = Material(
        id=uuid4().hex,
        order_id=order.id,
        material_type="moulding",
        subtype="walnut",
        quantity=12.5,
        unit="ft",
        supplier="Roma Moulding",
        cost=87.5,
        created_at=clock.now(),
        updated_at=clock.now(),
    )

    await store.create_material(material)

    assert await store.list_materials(order.id) == [material]
    assert await store.list_materials("other") == []


@pytest.mark.asyncio
async def test_material_for_missing_order_rejected(store, clock) -> None:
    material = Material(
        id=uuid4().hex,
        order_id="missing",
        material_type="glazing",
        quantity=1,
        unit="sheet",
        cost=20,
        created_at=clock.now(),
        updated_at=clock.now(),
    )
    with pytest.raises(OrderNotFoundError):
        await store.create_material(material)
