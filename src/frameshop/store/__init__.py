"""Order persistence."""

from frameshop.store.base import UPDATABLE_ORDER_FIELDS, OrderStore
from frameshop.store.sqlite import SqliteOrderStore

__all__ = ["UPDATABLE_ORDER_FIELDS", "OrderStore", "SqliteOrderStore"]
