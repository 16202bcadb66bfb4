"""
Storage module exports.
"""

from orders.store.base import MessageLog, OrderStore, PendingConfirmationIndex, StoreError
from orders.store.sqlite import SQLiteOrderRepository

__all__ = [
    "OrderStore",
    "PendingConfirmationIndex",
    "MessageLog",
    "StoreError",
    "SQLiteOrderRepository",
]
