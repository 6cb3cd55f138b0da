"""Order domain records and errors."""

from frameshop.domain.errors import (
    ConcurrentUpdateError,
    FrameshopError,
    InvalidTransitionError,
    OrderNotFoundError,
    OrderValidationError,
    TransientStoreError,
)
from frameshop.domain.orders import (
    INITIAL_STATUS,
    Customer,
    DuplicateOrderCheck,
    Material,
    MaterialOrderAuditRecord,
    MaterialOrderResult,
    Order,
    OrderStatus,
    OrderType,
    Priority,
    RiskLevel,
    StatusHistoryEntry,
    TrackingSummary,
)

__all__ = [
    "INITIAL_STATUS",
    "ConcurrentUpdateError",
    "Customer",
    "DuplicateOrderCheck",
    "FrameshopError",
    "InvalidTransitionError",
    "Material",
    "MaterialOrderAuditRecord",
    "MaterialOrderResult",
    "Order",
    "OrderNotFoundError",
    "OrderStatus",
    "OrderType",
    "OrderValidationError",
    "Priority",
    "RiskLevel",
    "StatusHistoryEntry",
    "TrackingSummary",
    "TransientStoreError",
]
