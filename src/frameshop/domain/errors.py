"""Domain exceptions."""

from __future__ import annotations


class FrameshopError(Exception):
    """Base class for order workflow errors."""


class OrderNotFoundError(FrameshopError):
    """Raised when a referenced order (or customer) does not exist."""

    def __init__(self, order_id: str, kind: str = "Order") -> None:
        super().__init__(f"{kind} not found: {order_id}")
        self.order_id = order_id
        self.kind = kind


class OrderValidationError(FrameshopError, ValueError):
    """Raised for malformed input before any store access."""


class InvalidTransitionError(OrderValidationError):
    """Raised in strict mode for a status change outside the allowed table."""

    def __init__(self, from_status: str, to_status: str) -> None:
        super().__init__(f"Transition {from_status} -> {to_status} is not allowed")
        self.from_status = from_status
        self.to_status = to_status


class TransientStoreError(FrameshopError):
    """Raised when the order store cannot complete a read or write."""


class ConcurrentUpdateError(FrameshopError):
    """Raised when another request changed the order first."""
