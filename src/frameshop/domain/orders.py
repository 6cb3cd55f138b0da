"""Order, history and material-ordering records."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class OrderStatus(str, Enum):
    ORDER_PROCESSED = "ORDER_PROCESSED"
    MATERIALS_ORDERED = "MATERIALS_ORDERED"
    MATERIALS_ARRIVED = "MATERIALS_ARRIVED"
    FRAME_CUT = "FRAME_CUT"
    MAT_CUT = "MAT_CUT"
    PREPPED = "PREPPED"
    READY_FOR_PICKUP = "READY_FOR_PICKUP"
    COMPLETED = "COMPLETED"
    PICKED_UP = "PICKED_UP"
    MYSTERY_UNCLAIMED = "MYSTERY_UNCLAIMED"


INITIAL_STATUS = OrderStatus.ORDER_PROCESSED


class Priority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"


class OrderType(str, Enum):
    FRAME = "FRAME"
    MAT = "MAT"
    SHADOWBOX = "SHADOWBOX"


class RiskLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


@dataclass
class Customer:
    id: str
    name: str
    email: str
    created_at: datetime
    updated_at: datetime
    phone: str | None = None
    address: str | None = None


@dataclass
class Order:
    id: str
    tracking_id: str
    customer_id: str
    description: str
    order_type: OrderType
    price: float
    due_date: str
    created_at: datetime
    updated_at: datetime
    status: OrderStatus = INITIAL_STATUS
    priority: Priority = Priority.MEDIUM
    notes: str | None = None
    internal_notes: str | None = None
    estimated_hours: float = 0.0
    deposit: float | None = None
    complexity: int = 5
    completed_at: datetime | None = None


@dataclass(frozen=True)
class StatusHistoryEntry:
    id: str
    order_id: str
    from_status: OrderStatus | None
    to_status: OrderStatus
    changed_by: str
    created_at: datetime
    reason: str | None = None


@dataclass(frozen=True)
class MaterialOrderAuditRecord:
    id: str
    order_id: str
    ordered_by: str
    ordered_at: datetime
    was_overridden: bool
    order_details: str


@dataclass
class DuplicateOrderCheck:
    """Risk classification for a proposed material-ordering batch."""

    is_duplicate: bool
    existing_orders: list[MaterialOrderAuditRecord]
    requires_override: bool
    risk_level: RiskLevel

    @classmethod
    def fail_safe(cls) -> "DuplicateOrderCheck":
        """Result used whenever the check itself could not be completed."""
        return cls(
            is_duplicate=False,
            existing_orders=[],
            requires_override=True,
            risk_level=RiskLevel.CRITICAL,
        )

    @classmethod
    def low_risk(cls) -> "DuplicateOrderCheck":
        return cls(
            is_duplicate=False,
            existing_orders=[],
            requires_override=False,
            risk_level=RiskLevel.LOW,
        )


@dataclass
class MaterialOrderResult:
    success: bool
    message: str
    requires_override: bool | None = None
    duplicate_check: DuplicateOrderCheck | None = None
    succeeded: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)


@dataclass
class Material:
    """A material line (moulding, mat board, glazing...) recorded against an order."""

    id: str
    order_id: str
    material_type: str
    quantity: float
    unit: str
    cost: float
    created_at: datetime
    updated_at: datetime
    subtype: str | None = None
    supplier: str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class TrackingSummary:
    """What a customer may see when looking an order up by tracking id."""

    tracking_id: str
    status: OrderStatus
    due_date: str
    description: str
    customer_name: str
