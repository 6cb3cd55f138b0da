"""Customer and order intake, order maintenance and customer tracking."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import date
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator

from frameshop.domain.errors import OrderNotFoundError, OrderValidationError
from frameshop.domain.orders import (
    INITIAL_STATUS,
    Customer,
    Material,
    Order,
    OrderType,
    Priority,
    TrackingSummary,
)
from frameshop.notifications.base import NullNotifier, StatusNotifier
from frameshop.store.base import OrderStore
from frameshop.utils.time import Clock, SystemClock
from frameshop.workflow.status_machine import OrderStatusMachine

logger = logging.getLogger(__name__)


class NewCustomer(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    email: str = Field(min_length=3, max_length=320)
    phone: str | None = Field(default=None, max_length=40)
    address: str | None = Field(default=None, max_length=500)

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("name must not be blank")
        return value

    @field_validator("email")
    @classmethod
    def _validate_email(cls, value: str) -> str:
        value = value.strip().lower()
        local, _, domain = value.partition("@")
        if not local or "." not in domain:
            raise ValueError("email must look like name@example.com")
        return value


class NewOrder(BaseModel):
    customer_id: str = Field(min_length=1)
    description: str = Field(min_length=1, max_length=2000)
    order_type: OrderType
    due_date: date
    price: float = Field(ge=0)
    priority: Priority = Priority.MEDIUM
    notes: str | None = None
    internal_notes: str | None = None
    estimated_hours: float = Field(default=3.0, ge=0)
    deposit: float | None = Field(default=None, ge=0)
    complexity: int = Field(default=5, ge=1, le=10)


class OrderUpdate(BaseModel):
    """Partial order change; only fields present in the payload are written."""

    description: str | None = Field(default=None, min_length=1, max_length=2000)
    order_type: OrderType | None = None
    due_date: date | None = None
    price: float | None = Field(default=None, ge=0)
    priority: Priority | None = None
    notes: str | None = None
    internal_notes: str | None = None
    estimated_hours: float | None = Field(default=None, ge=0)
    deposit: float | None = Field(default=None, ge=0)
    complexity: int | None = Field(default=None, ge=1, le=10)

    @field_validator(
        "description",
        "order_type",
        "due_date",
        "price",
        "priority",
        "estimated_hours",
        "complexity",
    )
    @classmethod
    def _not_null(cls, value: object) -> object:
        if value is None:
            raise ValueError("field cannot be cleared")
        return value


class NewMaterial(BaseModel):
    material_type: str = Field(min_length=1, max_length=100)
    quantity: float = Field(ge=0)
    unit: str = Field(min_length=1, max_length=40)
    cost: float = Field(ge=0)
    subtype: str | None = Field(default=None, max_length=100)
    supplier: str | None = Field(default=None, max_length=200)
    notes: str | None = Field(default=None, max_length=2000)


class OrderIntake:
    def __init__(
        self,
        store: OrderStore,
        status_machine: OrderStatusMachine,
        notifier: StatusNotifier | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._store = store
        self._status_machine = status_machine
        self._notifier = notifier or NullNotifier()
        self._clock = clock or SystemClock()

    async def create_customer(self, data: NewCustomer) -> Customer:
        now = self._clock.now()
        customer = Customer(
            id=uuid4().hex,
            name=data.name,
            email=data.email,
            phone=data.phone,
            address=data.address,
            created_at=now,
            updated_at=now,
        )
        await self._store.create_customer(customer)
        logger.info("Customer %s created", customer.id)
        return customer

    async def create_order(self, data: NewOrder, actor: str | None = None) -> Order:
        """Store a new order in its initial status together with its creation entry."""
        if await self._store.get_customer(data.customer_id) is None:
            raise OrderNotFoundError(data.customer_id, kind="Customer")

        now = self._clock.now()
        order = Order(
            id=uuid4().hex,
            tracking_id=self._tracking_id(),
            customer_id=data.customer_id,
            description=data.description,
            order_type=data.order_type,
            price=data.price,
            due_date=data.due_date.isoformat(),
            created_at=now,
            updated_at=now,
            status=INITIAL_STATUS,
            priority=data.priority,
            notes=data.notes,
            internal_notes=data.internal_notes,
            estimated_hours=data.estimated_hours,
            deposit=data.deposit,
            complexity=data.complexity,
        )
        entry = self._status_machine.creation_entry(order, actor)
        await self._store.create_order(order, initial_history=entry)
        logger.info("Order %s created with tracking id %s", order.id, order.tracking_id)

        try:
            self._notifier.send_status_update(order)
        except Exception:
            logger.exception("Failed to queue creation notification for order %s", order.id)
        return order

    async def update_order(self, order_id: str, changes: Mapping[str, object]) -> Order:
        """Apply a partial update.  Status is not accepted here."""
        unknown = set(changes) - set(OrderUpdate.model_fields)
        if "status" in unknown:
            raise OrderValidationError(
                "Order status must be changed through a status transition"
            )
        if unknown:
            raise OrderValidationError(f"Unknown order fields: {', '.join(sorted(unknown))}")

        fields = OrderUpdate.model_validate(dict(changes)).model_dump(exclude_unset=True)
        order = await self._store.update_order(order_id, fields)
        if fields:
            logger.info("Order %s updated: %s", order_id, ", ".join(sorted(fields)))
        return order

    async def add_material(self, order_id: str, data: NewMaterial) -> Material:
        if await self._store.get_order(order_id) is None:
            raise OrderNotFoundError(order_id)
        now = self._clock.now()
        material = Material(
            id=uuid4().hex,
            order_id=order_id,
            material_type=data.material_type,
            subtype=data.subtype,
            quantity=data.quantity,
            unit=data.unit,
            supplier=data.supplier,
            cost=data.cost,
            notes=data.notes,
            created_at=now,
            updated_at=now,
        )
        return await self._store.create_material(material)

    async def materials_for_order(self, order_id: str) -> list[Material]:
        if await self._store.get_order(order_id) is None:
            raise OrderNotFoundError(order_id)
        return await self._store.list_materials(order_id)

    async def track_order(self, tracking_id: str) -> TrackingSummary:
        order = await self._store.get_order_by_tracking_id(tracking_id.strip())
        if order is None:
            raise OrderNotFoundError(tracking_id)
        customer = await self._store.get_customer(order.customer_id)
        return TrackingSummary(
            tracking_id=order.tracking_id,
            status=order.status,
            due_date=order.due_date,
            description=order.description,
            customer_name=customer.name if customer else "",
        )

    def _tracking_id(self) -> str:
        millis = int(self._clock.now().timestamp() * 1000)
        return f"TRK-{millis}-{uuid4().hex[:4].upper()}"
