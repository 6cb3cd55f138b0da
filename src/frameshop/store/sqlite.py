"""SQLite implementation of the order store."""

from __future__ import annotations

import asyncio
import sqlite3
import threading
from collections.abc import Mapping, Sequence
from datetime import date, datetime
from enum import Enum
from pathlib import Path
from typing import Callable, TypeVar

from frameshop.domain.errors import (
    ConcurrentUpdateError,
    OrderNotFoundError,
    OrderValidationError,
    TransientStoreError,
)
from frameshop.domain.orders import (
    Customer,
    Material,
    MaterialOrderAuditRecord,
    Order,
    OrderStatus,
    OrderType,
    Priority,
    StatusHistoryEntry,
)
from frameshop.store.base import UPDATABLE_ORDER_FIELDS
from frameshop.utils.time import from_iso, to_iso, utc_now

_SqlValue = str | bytes | int | float | None
_SqlParams = Sequence[_SqlValue] | Mapping[str, _SqlValue]

_T = TypeVar("_T")


class SqliteOrderStore:
    def __init__(self, path: str, wal: bool = True) -> None:
        if path != ":memory:":
            Path(path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._closed = False
        if wal and path != ":memory:":
            self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA foreign_keys=ON")
        self._init_schema()

    def _init_schema(self) -> None:
        self._conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS customers (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                email TEXT NOT NULL UNIQUE,
                phone TEXT,
                address TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS orders (
                id TEXT PRIMARY KEY,
                tracking_id TEXT NOT NULL UNIQUE,
                customer_id TEXT NOT NULL,
                description TEXT NOT NULL,
                notes TEXT,
                internal_notes TEXT,
                status TEXT NOT NULL,
                priority TEXT NOT NULL,
                order_type TEXT NOT NULL,
                due_date TEXT NOT NULL,
                estimated_hours REAL NOT NULL DEFAULT 0,
                price REAL NOT NULL,
                deposit REAL,
                complexity INTEGER NOT NULL DEFAULT 5,
                completed_at TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                FOREIGN KEY(customer_id) REFERENCES customers(id)
            );

            CREATE TABLE IF NOT EXISTS status_history (
                id TEXT PRIMARY KEY,
                order_id TEXT NOT NULL,
                from_status TEXT,
                to_status TEXT NOT NULL,
                changed_by TEXT NOT NULL,
                reason TEXT,
                created_at TEXT NOT NULL,
                FOREIGN KEY(order_id) REFERENCES orders(id)
            );

            CREATE TABLE IF NOT EXISTS material_order_audit (
                id TEXT PRIMARY KEY,
                order_id TEXT NOT NULL,
                ordered_by TEXT NOT NULL,
                ordered_at TEXT NOT NULL,
                was_overridden INTEGER NOT NULL,
                order_details TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS materials (
                id TEXT PRIMARY KEY,
                order_id TEXT NOT NULL,
                material_type TEXT NOT NULL,
                subtype TEXT,
                quantity REAL NOT NULL,
                unit TEXT NOT NULL,
                supplier TEXT,
                cost REAL NOT NULL,
                notes TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                FOREIGN KEY(order_id) REFERENCES orders(id)
            );

            CREATE INDEX IF NOT EXISTS idx_orders_status ON orders(status);
            CREATE INDEX IF NOT EXISTS idx_orders_customer_id ON orders(customer_id);
            CREATE INDEX IF NOT EXISTS idx_status_history_order_id
                ON status_history(order_id, created_at);
            CREATE INDEX IF NOT EXISTS idx_material_audit_ordered_at
                ON material_order_audit(ordered_at);
            CREATE INDEX IF NOT EXISTS idx_material_audit_order_id
                ON material_order_audit(order_id);
            CREATE INDEX IF NOT EXISTS idx_materials_order_id ON materials(order_id);
            """
        )
        self._conn.commit()

    # -- sync primitives -------------------------------------------------

    def execute(self, query: str, params: _SqlParams) -> int:
        with self._lock:
            try:
                cur = self._conn.execute(query, params)
                self._conn.commit()
            except sqlite3.Error:
                self._conn.rollback()
                raise
            return cur.rowcount

    def fetch_one(self, query: str, params: _SqlParams) -> sqlite3.Row | None:
        with self._lock:
            cur = self._conn.execute(query, params)
            return cur.fetchone()

    def fetch_all(self, query: str, params: _SqlParams) -> list[sqlite3.Row]:
        with self._lock:
            cur = self._conn.execute(query, params)
            return cur.fetchall()

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._conn.close()
            self._closed = True

    async def _run(self, func: Callable[..., _T], *args: object) -> _T:
        return await asyncio.to_thread(self._guarded, func, *args)

    @staticmethod
    def _guarded(func: Callable[..., _T], *args: object) -> _T:
        try:
            return func(*args)
        except sqlite3.Error as exc:
            raise TransientStoreError(f"Order store unavailable: {exc}") from exc

    # -- customers -------------------------------------------------------

    async def create_customer(self, customer: Customer) -> Customer:
        return await self._run(self._create_customer, customer)

    def _create_customer(self, customer: Customer) -> Customer:
        try:
            self.execute(
                """
                INSERT INTO customers (id, name, email, phone, address, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    customer.id,
                    customer.name,
                    customer.email,
                    customer.phone,
                    customer.address,
                    to_iso(customer.created_at),
                    to_iso(customer.updated_at),
                ),
            )
        except sqlite3.IntegrityError as exc:
            raise OrderValidationError(
                f"Customer with email {customer.email} already exists"
            ) from exc
        return customer

    async def get_customer(self, customer_id: str) -> Customer | None:
        row = await self._run(
            self.fetch_one, "SELECT * FROM customers WHERE id = ?", (customer_id,)
        )
        return _row_to_customer(row) if row is not None else None

    async def list_customers(self) -> list[Customer]:
        rows = await self._run(
            self.fetch_all, "SELECT * FROM customers ORDER BY created_at DESC, rowid DESC", ()
        )
        return [_row_to_customer(row) for row in rows]

    # -- orders ----------------------------------------------------------

    async def create_order(
        self,
        order: Order,
        initial_history: StatusHistoryEntry | None = None,
    ) -> Order:
        return await self._run(self._create_order, order, initial_history)

    def _create_order(self, order: Order, initial_history: StatusHistoryEntry | None) -> Order:
        with self._lock:
            try:
                self._conn.execute(
                    """
                    INSERT INTO orders (
                        id, tracking_id, customer_id, description, notes, internal_notes,
                        status, priority, order_type, due_date, estimated_hours, price,
                        deposit, complexity, completed_at, created_at, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        order.id,
                        order.tracking_id,
                        order.customer_id,
                        order.description,
                        order.notes,
                        order.internal_notes,
                        order.status.value,
                        order.priority.value,
                        order.order_type.value,
                        order.due_date,
                        order.estimated_hours,
                        order.price,
                        order.deposit,
                        order.complexity,
                        to_iso(order.completed_at) if order.completed_at else None,
                        to_iso(order.created_at),
                        to_iso(order.updated_at),
                    ),
                )
                if initial_history is not None:
                    self._insert_history(initial_history)
                self._conn.commit()
            except sqlite3.IntegrityError as exc:
                self._conn.rollback()
                raise OrderValidationError(f"Order could not be created: {exc}") from exc
            except sqlite3.Error:
                self._conn.rollback()
                raise
        return order

    async def get_order(self, order_id: str) -> Order | None:
        row = await self._run(self.fetch_one, "SELECT * FROM orders WHERE id = ?", (order_id,))
        return _row_to_order(row) if row is not None else None

    async def list_orders(self, status: OrderStatus | None = None) -> list[Order]:
        if status is None:
            rows = await self._run(
                self.fetch_all, "SELECT * FROM orders ORDER BY created_at", ()
            )
        else:
            rows = await self._run(
                self.fetch_all,
                "SELECT * FROM orders WHERE status = ? ORDER BY created_at",
                (OrderStatus(status).value,),
            )
        return [_row_to_order(row) for row in rows]

    async def get_order_by_tracking_id(self, tracking_id: str) -> Order | None:
        row = await self._run(
            self.fetch_one, "SELECT * FROM orders WHERE tracking_id = ?", (tracking_id,)
        )
        return _row_to_order(row) if row is not None else None

    async def search_orders(self, query: str) -> list[Order]:
        """Case-insensitive substring match on tracking id, description, status
        and customer name."""
        pattern = "%" + _escape_like(query) + "%"
        rows = await self._run(
            self.fetch_all,
            """
            SELECT o.* FROM orders AS o
            JOIN customers AS c ON c.id = o.customer_id
            WHERE o.tracking_id LIKE :q ESCAPE '\\'
               OR o.description LIKE :q ESCAPE '\\'
               OR o.status LIKE :q ESCAPE '\\'
               OR c.name LIKE :q ESCAPE '\\'
            ORDER BY o.created_at DESC, o.rowid DESC
            """,
            {"q": pattern},
        )
        return [_row_to_order(row) for row in rows]

    async def update_order(self, order_id: str, fields: Mapping[str, object]) -> Order:
        unknown = set(fields) - UPDATABLE_ORDER_FIELDS
        if "status" in unknown:
            raise OrderValidationError("Order status must be changed through a status transition")
        if unknown:
            raise OrderValidationError(f"Unknown order fields: {', '.join(sorted(unknown))}")
        return await self._run(self._update_order, order_id, dict(fields))

    def _update_order(self, order_id: str, fields: dict[str, object]) -> Order:
        if fields:
            assignments = ", ".join(f"{name} = ?" for name in sorted(fields))
            values = [_to_sql(fields[name]) for name in sorted(fields)]
            rowcount = self.execute(
                f"UPDATE orders SET {assignments}, updated_at = ? WHERE id = ?",
                (*values, to_iso(utc_now()), order_id),
            )
            if rowcount != 1:
                raise OrderNotFoundError(order_id)
        row = self.fetch_one("SELECT * FROM orders WHERE id = ?", (order_id,))
        if row is None:
            raise OrderNotFoundError(order_id)
        return _row_to_order(row)

    # -- status history --------------------------------------------------

    async def create_status_history(self, entry: StatusHistoryEntry) -> StatusHistoryEntry:
        return await self._run(self._create_status_history, entry)

    def _create_status_history(self, entry: StatusHistoryEntry) -> StatusHistoryEntry:
        with self._lock:
            try:
                self._insert_history(entry)
                self._conn.commit()
            except sqlite3.Error:
                self._conn.rollback()
                raise
        return entry

    async def get_status_history(self, order_id: str) -> list[StatusHistoryEntry]:
        rows = await self._run(
            self.fetch_all,
            "SELECT * FROM status_history WHERE order_id = ? ORDER BY created_at, rowid",
            (order_id,),
        )
        return [_row_to_history(row) for row in rows]

    async def apply_status_transition(
        self,
        order_id: str,
        expected_from: OrderStatus,
        entry: StatusHistoryEntry,
        *,
        completed_at: datetime | None = None,
        material_audit: MaterialOrderAuditRecord | None = None,
    ) -> Order:
        """Update status, append history and optional audit record in one transaction.

        The update only applies while the stored status still equals
        ``expected_from``; otherwise nothing is written.
        """
        return await self._run(
            self._apply_status_transition,
            order_id,
            expected_from,
            entry,
            completed_at,
            material_audit,
        )

    def _apply_status_transition(
        self,
        order_id: str,
        expected_from: OrderStatus,
        entry: StatusHistoryEntry,
        completed_at: datetime | None,
        material_audit: MaterialOrderAuditRecord | None,
    ) -> Order:
        with self._lock:
            try:
                cursor = self._conn.execute(
                    """
                    UPDATE orders
                    SET status = ?, updated_at = ?, completed_at = COALESCE(?, completed_at)
                    WHERE id = ? AND status = ?
                    """,
                    (
                        entry.to_status.value,
                        to_iso(entry.created_at),
                        to_iso(completed_at) if completed_at else None,
                        order_id,
                        expected_from.value,
                    ),
                )
                if cursor.rowcount != 1:
                    self._conn.rollback()
                    current = self._conn.execute(
                        "SELECT status FROM orders WHERE id = ?", (order_id,)
                    ).fetchone()
                    if current is None:
                        raise OrderNotFoundError(order_id)
                    raise ConcurrentUpdateError(
                        f"Order {order_id} moved to {current['status']} before "
                        f"{expected_from.value} -> {entry.to_status.value} was applied"
                    )
                self._insert_history(entry)
                if material_audit is not None:
                    self._insert_audit(material_audit)
                self._conn.commit()
            except sqlite3.Error:
                self._conn.rollback()
                raise
            row = self._conn.execute("SELECT * FROM orders WHERE id = ?", (order_id,)).fetchone()
        return _row_to_order(row)

    def _insert_history(self, entry: StatusHistoryEntry) -> None:
        self._conn.execute(
            """
            INSERT INTO status_history (
                id, order_id, from_status, to_status, changed_by, reason, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                entry.id,
                entry.order_id,
                entry.from_status.value if entry.from_status else None,
                entry.to_status.value,
                entry.changed_by,
                entry.reason,
                to_iso(entry.created_at),
            ),
        )

    # -- material order audit log ----------------------------------------

    async def query_audit_log(
        self,
        since: datetime,
        order_ids: Sequence[str] | None = None,
    ) -> list[MaterialOrderAuditRecord]:
        query = "SELECT * FROM material_order_audit WHERE ordered_at >= ?"
        params: list[_SqlValue] = [to_iso(since)]
        if order_ids is not None:
            if not order_ids:
                return []
            placeholders = ",".join("?" for _ in order_ids)
            query += f" AND order_id IN ({placeholders})"
            params.extend(order_ids)
        query += " ORDER BY ordered_at, rowid"
        rows = await self._run(self.fetch_all, query, params)
        return [_row_to_audit(row) for row in rows]

    async def append_material_order_audit(
        self, record: MaterialOrderAuditRecord
    ) -> MaterialOrderAuditRecord:
        return await self._run(self._append_audit, record)

    def _append_audit(self, record: MaterialOrderAuditRecord) -> MaterialOrderAuditRecord:
        with self._lock:
            try:
                self._insert_audit(record)
                self._conn.commit()
            except sqlite3.Error:
                self._conn.rollback()
                raise
        return record

    def _insert_audit(self, record: MaterialOrderAuditRecord) -> None:
        self._conn.execute(
            """
            INSERT INTO material_order_audit (
                id, order_id, ordered_by, ordered_at, was_overridden, order_details
            ) VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                record.id,
                record.order_id,
                record.ordered_by,
                to_iso(record.ordered_at),
                1 if record.was_overridden else 0,
                record.order_details,
            ),
        )

    # -- order materials -------------------------------------------------

    async def create_material(self, material: Material) -> Material:
        return await self._run(self._create_material, material)

    def _create_material(self, material: Material) -> Material:
        try:
            self.execute(
                """
                INSERT INTO materials (
                    id, order_id, material_type, subtype, quantity, unit, supplier,
                    cost, notes, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    material.id,
                    material.order_id,
                    material.material_type,
                    material.subtype,
                    material.quantity,
                    material.unit,
                    material.supplier,
                    material.cost,
                    material.notes,
                    to_iso(material.created_at),
                    to_iso(material.updated_at),
                ),
            )
        except sqlite3.IntegrityError as exc:
            raise OrderNotFoundError(material.order_id) from exc
        return material

    async def list_materials(self, order_id: str) -> list[Material]:
        rows = await self._run(
            self.fetch_all,
            "SELECT * FROM materials WHERE order_id = ? ORDER BY created_at, rowid",
            (order_id,),
        )
        return [_row_to_material(row) for row in rows]


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _to_sql(value: object) -> _SqlValue:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return to_iso(value)
    if isinstance(value, date):
        return value.isoformat()
    return value  # type: ignore[return-value]


def _optional_dt(value: str | None) -> datetime | None:
    return from_iso(value) if value else None


def _row_to_customer(row: sqlite3.Row) -> Customer:
    return Customer(
        id=row["id"],
        name=row["name"],
        email=row["email"],
        phone=row["phone"],
        address=row["address"],
        created_at=from_iso(row["created_at"]),
        updated_at=from_iso(row["updated_at"]),
    )


def _row_to_order(row: sqlite3.Row) -> Order:
    return Order(
        id=row["id"],
        tracking_id=row["tracking_id"],
        customer_id=row["customer_id"],
        description=row["description"],
        notes=row["notes"],
        internal_notes=row["internal_notes"],
        status=OrderStatus(row["status"]),
        priority=Priority(row["priority"]),
        order_type=OrderType(row["order_type"]),
        due_date=row["due_date"],
        estimated_hours=row["estimated_hours"],
        price=row["price"],
        deposit=row["deposit"],
        complexity=row["complexity"],
        completed_at=_optional_dt(row["completed_at"]),
        created_at=from_iso(row["created_at"]),
        updated_at=from_iso(row["updated_at"]),
    )


def _row_to_history(row: sqlite3.Row) -> StatusHistoryEntry:
    return StatusHistoryEntry(
        id=row["id"],
        order_id=row["order_id"],
        from_status=OrderStatus(row["from_status"]) if row["from_status"] else None,
        to_status=OrderStatus(row["to_status"]),
        changed_by=row["changed_by"],
        reason=row["reason"],
        created_at=from_iso(row["created_at"]),
    )


def _row_to_audit(row: sqlite3.Row) -> MaterialOrderAuditRecord:
    return MaterialOrderAuditRecord(
        id=row["id"],
        order_id=row["order_id"],
        ordered_by=row["ordered_by"],
        ordered_at=from_iso(row["ordered_at"]),
        was_overridden=bool(row["was_overridden"]),
        order_details=row["order_details"],
    )


def _row_to_material(row: sqlite3.Row) -> Material:
    return Material(
        id=row["id"],
        order_id=row["order_id"],
        material_type=row["material_type"],
        subtype=row["subtype"],
        quantity=row["quantity"],
        unit=row["unit"],
        supplier=row["supplier"],
        cost=row["cost"],
        notes=row["notes"],
        created_at=from_iso(row["created_at"]),
        updated_at=from_iso(row["updated_at"]),
    )
