"""Order status workflow."""

from frameshop.workflow.intake import (
    NewCustomer,
    NewMaterial,
    NewOrder,
    OrderIntake,
    OrderUpdate,
)
from frameshop.workflow.locks import KeyedLocks
from frameshop.workflow.status_machine import (
    ALLOWED_TRANSITIONS,
    DEFAULT_ACTOR,
    OrderStatusMachine,
    coerce_status,
    is_transition_allowed,
)

__all__ = [
    "ALLOWED_TRANSITIONS",
    "DEFAULT_ACTOR",
    "KeyedLocks",
    "NewCustomer",
    "NewMaterial",
    "NewOrder",
    "OrderIntake",
    "OrderStatusMachine",
    "OrderUpdate",
    "coerce_status",
    "is_transition_allowed",
]
