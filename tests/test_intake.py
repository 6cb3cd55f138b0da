from __future__ import annotations

import re
from datetime import date

import pytest
from pydantic import ValidationError

from frameshop.domain.errors import OrderNotFoundError, OrderValidationError
from frameshop.domain.orders import OrderStatus, OrderType, Priority
from frameshop.workflow.intake import NewCustomer, NewMaterial, NewOrder, OrderIntake
from frameshop.workflow.status_machine import OrderStatusMachine


@pytest.fixture
def intake(store, notifier, clock) -> OrderIntake:
    machine = OrderStatusMachine(store, notifier, clock)
    return OrderIntake(store, machine, notifier, clock)


def _new_order(customer_id: str, **overrides) -> NewOrder:
    data = {
        "customer_id": customer_id,
        "description": "Shadowbox for a jersey",
        "order_type": "SHADOWBOX",
        "due_date": "2024-03-15",
        "price": 420,
        "notes": "Frame: L5501",
    }
    data.update(overrides)
    return NewOrder.model_validate(data)


@pytest.mark.asyncio
async def test_create_customer_normalizes_email(intake, store) -> None:
    customer = await intake.create_customer(
        NewCustomer(name="  Grace Hopper ", email="Grace@Example.COM")
    )

    assert customer.name == "Grace Hopper"
    assert customer.email == "grace@example.com"
    assert await store.get_customer(customer.id) == customer


@pytest.mark.asyncio
async def test_duplicate_customer_email(intake) -> None:
    await intake.create_customer(NewCustomer(name="A", email="a@example.com"))
    with pytest.raises(OrderValidationError):
        await intake.create_customer(NewCustomer(name="B", email="A@example.com"))


def test_new_customer_rejects_bad_email() -> None:
    with pytest.raises(ValidationError):
        NewCustomer(name="A", email="not-an-email")


@pytest.mark.asyncio
async def test_create_order_writes_initial_history(intake, store, notifier, make_customer) -> None:
    customer = await make_customer()

    order = await intake.create_order(_new_order(customer.id), actor="counter-2")

    assert order.status == OrderStatus.ORDER_PROCESSED
    assert order.order_type == OrderType.SHADOWBOX
    assert order.due_date == "2024-03-15"
    assert order.estimated_hours == 3.0
    assert order.complexity == 5
    assert re.fullmatch(r"TRK-\d+-[0-9A-F]{4}", order.tracking_id)

    history = await store.get_status_history(order.id)
    assert len(history) == 1
    assert history[0].from_status is None
    assert history[0].to_status == OrderStatus.ORDER_PROCESSED
    assert history[0].changed_by == "counter-2"
    assert [o.id for o in notifier.orders] == [order.id]


@pytest.mark.asyncio
async def test_create_order_unknown_customer(intake, store) -> None:
    with pytest.raises(OrderNotFoundError, match="Customer not found"):
        await intake.create_order(_new_order("nobody"))

    assert await store.list_orders() == []


@pytest.mark.parametrize(
    "overrides",
    [
        {"price": -1},
        {"complexity": 11},
        {"order_type": "POSTER"},
        {"due_date": "next week"},
    ],
)
def test_new_order_validation(overrides) -> None:
    with pytest.raises(ValidationError):
        _new_order("c-1", **overrides)


def test_new_order_parses_due_date() -> None:
    assert _new_order("c-1").due_date == date(2024, 3, 15)


@pytest.mark.asyncio
async def test_update_order_writes_only_given_fields(intake, store, notifier, make_order) -> None:
    order = await make_order("Frame: R123")

    updated = await intake.update_order(
        order.id, {"due_date": "2024-04-02", "priority": "URGENT", "deposit": None}
    )

    assert updated.due_date == "2024-04-02"
    assert updated.priority == Priority.URGENT
    assert updated.deposit is None
    assert updated.notes == "Frame: R123"
    assert updated.status == OrderStatus.ORDER_PROCESSED
    assert await store.get_status_history(order.id) == []
    assert notifier.orders == []


@pytest.mark.asyncio
async def test_update_order_rejects_status(intake, make_order) -> None:
    order = await make_order()
    with pytest.raises(OrderValidationError, match="status transition"):
        await intake.update_order(order.id, {"status": "PREPPED"})


@pytest.mark.asyncio
async def test_update_order_rejects_unknown_field(intake, make_order) -> None:
    order = await make_order()
    with pytest.raises(OrderValidationError, match="tracking_id"):
        await intake.update_order(order.id, {"tracking_id": "TRK-1"})


@pytest.mark.asyncio
async def test_update_order_cannot_clear_required_field(intake, make_order) -> None:
    order = await make_order()
    with pytest.raises(ValidationError):
        await intake.update_order(order.id, {"description": None})


@pytest.mark.asyncio
async def test_update_unknown_order(intake) -> None:
    with pytest.raises(OrderNotFoundError):
        await intake.update_order("missing", {"notes": "x"})


@pytest.mark.asyncio
async def test_materials_are_recorded_per_order(intake, make_order) -> None:
    order = await make_order()
    other = await make_order()

    added = await intake.add_material(
        order.id,
        NewMaterial(material_type="mat board", quantity=2, unit="sheet", cost=18.0),
    )

    assert added.order_id == order.id
    assert await intake.materials_for_order(order.id) == [added]
    assert await intake.materials_for_order(other.id) == []


@pytest.mark.asyncio
async def test_materials_for_unknown_order(intake) -> None:
    material = NewMaterial(material_type="glazing", quantity=1, unit="sheet", cost=9.5)
    with pytest.raises(OrderNotFoundError):
        await intake.add_material("missing", material)
    with pytest.raises(OrderNotFoundError):
        await intake.materials_for_order("missing")


@pytest.mark.asyncio
async def test_track_order_returns_customer_view(intake, make_order) -> None:
    order = await make_order()

    summary = await intake.track_order(f" {order.tracking_id} ")

    assert summary.tracking_id == order.tracking_id
    assert summary.status == OrderStatus.ORDER_PROCESSED
    assert summary.due_date == order.due_date
    assert summary.description == order.description
    assert summary.customer_name == "Ada Framer"


@pytest.mark.asyncio
async def test_track_unknown_order(intake) -> None:
    with pytest.raises(OrderNotFoundError):
        await intake.track_order("TRK-missing")
