"""Workload figures over the current order book."""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date

from frameshop.domain.orders import Order, OrderStatus

INACTIVE_STATUSES = frozenset(
    {OrderStatus.MYSTERY_UNCLAIMED, OrderStatus.COMPLETED, OrderStatus.PICKED_UP}
)
FINISHED_STATUSES = frozenset({OrderStatus.COMPLETED, OrderStatus.PICKED_UP})


@dataclass
class WorkloadMetrics:
    total_orders: int
    total_hours: float
    average_complexity: float
    on_time_percentage: float
    overdue_orders: int
    status_counts: dict[str, int] = field(default_factory=dict)


def workload_metrics(orders: Iterable[Order], today: date) -> WorkloadMetrics:
    """Summarise active work and the on-time rate of finished orders.

    Active orders are those not yet completed, picked up or written off as
    unclaimed.  The on-time rate is the share of finished orders completed on
    or before their due date (100.0 when nothing has finished).
    """
    orders = list(orders)
    active = [order for order in orders if order.status not in INACTIVE_STATUSES]

    total_hours = round(sum(order.estimated_hours for order in active), 2)
    average_complexity = (
        round(sum(order.complexity for order in active) / len(active), 2) if active else 0.0
    )
    overdue = sum(1 for order in active if date.fromisoformat(order.due_date) < today)

    finished = [order for order in orders if order.status in FINISHED_STATUSES]
    on_time = sum(
        1
        for order in finished
        if order.completed_at is not None
        and order.completed_at.date() <= date.fromisoformat(order.due_date)
    )
    on_time_percentage = round(100.0 * on_time / len(finished), 1) if finished else 100.0

    counts = Counter(order.status.value for order in active)
    return WorkloadMetrics(
        total_orders=len(active),
        total_hours=total_hours,
        average_complexity=average_complexity,
        on_time_percentage=on_time_percentage,
        overdue_orders=overdue,
        status_counts=dict(sorted(counts.items())),
    )
