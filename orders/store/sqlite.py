"""
SQLite-backed order repository.

Implements OrderStore, PendingConfirmationIndex and MessageLog over a single
database file so that the order-status update and the pending-row deletion
can share one transaction.

Tables:
- providers
- orders             (items and delivery times stored as JSON)
- pending_orders     (UNIQUE(order_id, provider_phone))
- whatsapp_messages  (UNIQUE(message_id), NULL ids allowed for outbound)

Every operation either completes or raises StoreError. Callers decide what
a failure means.
"""

import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator, List, Optional

from orders.store.base import MessageLog, OrderStore, PendingConfirmationIndex, StoreError
from orders.types import (
    OPEN_PENDING_STATUSES,
    MessageStatus,
    Order,
    OrderItem,
    OrderStatus,
    PendingConfirmation,
    Provider,
    WhatsAppMessageRecord,
)

logger = logging.getLogger(__name__)

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS providers (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        name TEXT NOT NULL,
        contact_name TEXT,
        phone TEXT NOT NULL,
        created_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_providers_phone ON providers(phone)",
    """
    CREATE TABLE IF NOT EXISTS orders (
        id TEXT PRIMARY KEY,
        provider_id TEXT NOT NULL,
        user_id TEXT NOT NULL,
        order_number TEXT NOT NULL,
        items TEXT NOT NULL,
        total_amount REAL NOT NULL DEFAULT 0,
        currency TEXT NOT NULL DEFAULT 'ARS',
        desired_delivery_date TEXT,
        desired_delivery_time TEXT NOT NULL DEFAULT '[]',
        payment_method TEXT,
        notes TEXT,
        status TEXT NOT NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS pending_orders (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        order_id TEXT NOT NULL,
        provider_id TEXT,
        user_id TEXT,
        provider_phone TEXT NOT NULL,
        status TEXT NOT NULL,
        notes TEXT,
        template_message_id TEXT,
        created_at TEXT NOT NULL,
        UNIQUE(order_id, provider_phone)
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_pending_phone_created
    ON pending_orders(provider_phone, created_at)
    """,
    """
    CREATE TABLE IF NOT EXISTS whatsapp_messages (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        message_id TEXT UNIQUE,
        direction TEXT NOT NULL,
        contact TEXT NOT NULL,
        content TEXT NOT NULL,
        message_type TEXT NOT NULL DEFAULT 'text',
        media_ref TEXT,
        status TEXT NOT NULL,
        error_details TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_messages_contact ON whatsapp_messages(contact)",
)

_OPEN_PLACEHOLDERS = ", ".join("?" for _ in OPEN_PENDING_STATUSES)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class SQLiteOrderRepository(OrderStore, PendingConfirmationIndex, MessageLog):
    """
    Single-file store for providers, orders, pending confirmations and messages.

    A fresh connection is opened per operation. ':memory:' keeps one shared
    connection instead, since each new in-memory connection is a new database.
    """

    def __init__(self, db_path: Optional[str] = None):
        """
        Args:
            db_path: Path to SQLite database file. None means ':memory:'.
        """
        self.db_path = db_path or ":memory:"
        self._shared: Optional[sqlite3.Connection] = None
        if self.db_path == ":memory:":
            self._shared = sqlite3.connect(":memory:", check_same_thread=False)
            self._shared.row_factory = sqlite3.Row
        self._initialize_db()

    # ------------------------------------------------------------------
    # connection handling
    # ------------------------------------------------------------------

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        if self._shared is not None:
            yield self._shared
            return

        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    def _initialize_db(self) -> None:
        try:
            with self._connection() as conn:
                if self.db_path != ":memory:":
                    conn.execute("PRAGMA journal_mode=WAL")
                    conn.execute("PRAGMA synchronous=FULL")
                for statement in _SCHEMA:
                    conn.execute(statement)
                conn.commit()
            logger.debug(f"SQLite order store initialized: {self.db_path}")
        except sqlite3.Error as e:
            logger.error(f"Failed to initialize SQLite order store: {e}")
            raise StoreError(f"Failed to initialize database: {e}") from e

    def close(self) -> None:
        if self._shared is not None:
            self._shared.close()
            self._shared = None

    # ------------------------------------------------------------------
    # providers
    # ------------------------------------------------------------------

    def create_provider(self, provider: Provider) -> Provider:
        created_at = provider.created_at or datetime.now(timezone.utc)
        try:
            with self._connection() as conn:
                conn.execute(
                    """
                    INSERT INTO providers (id, user_id, name, contact_name, phone, created_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (
                        provider.id,
                        provider.user_id,
                        provider.name,
                        provider.contact_name,
                        provider.phone,
                        created_at.isoformat(),
                    ),
                )
                conn.commit()
        except sqlite3.IntegrityError as e:
            raise StoreError(f"Provider {provider.id} already exists") from e
        except sqlite3.Error as e:
            logger.error(f"SQLite error creating provider {provider.id}: {e}")
            raise StoreError(f"Failed to create provider: {e}") from e

        logger.info(f"Provider created: id={provider.id}, phone={provider.phone}")
        provider.created_at = created_at
        return provider

    def get_provider(self, provider_id: str) -> Optional[Provider]:
        row = self._fetch_one("SELECT * FROM providers WHERE id = ?", (provider_id,))
        return self._row_to_provider(row) if row else None

    def find_provider_by_phone(self, phone: str) -> Optional[Provider]:
        row = self._fetch_one(
            "SELECT * FROM providers WHERE phone = ? ORDER BY created_at DESC LIMIT 1",
            (phone,),
        )
        return self._row_to_provider(row) if row else None

    # ------------------------------------------------------------------
    # orders
    # ------------------------------------------------------------------

    def create_order(self, order: Order) -> Order:
        now = datetime.now(timezone.utc)
        order.created_at = order.created_at or now
        order.updated_at = now
        try:
            with self._connection() as conn:
                conn.execute(
                    """
                    INSERT INTO orders (
                        id, provider_id, user_id, order_number, items, total_amount,
                        currency, desired_delivery_date, desired_delivery_time,
                        payment_method, notes, status, created_at, updated_at
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        order.id,
                        order.provider_id,
                        order.user_id,
                        order.order_number,
                        json.dumps([item.to_dict() for item in order.items]),
                        order.total_amount,
                        order.currency,
                        order.desired_delivery_date,
                        json.dumps(list(order.desired_delivery_time)),
                        order.payment_method,
                        order.notes,
                        order.status,
                        order.created_at.isoformat(),
                        order.updated_at.isoformat(),
                    ),
                )
                conn.commit()
        except sqlite3.IntegrityError as e:
            raise StoreError(f"Order {order.id} already exists") from e
        except sqlite3.Error as e:
            logger.error(f"SQLite error creating order {order.id}: {e}")
            raise StoreError(f"Failed to create order: {e}") from e

        logger.info(
            f"Order created: id={order.id}, number={order.order_number}",
            extra={"order_id": order.id, "provider_id": order.provider_id},
        )
        return order

    def get_order(self, order_id: str) -> Optional[Order]:
        row = self._fetch_one("SELECT * FROM orders WHERE id = ?", (order_id,))
        return self._row_to_order(row) if row else None

    def update_order_status(self, order_id: str, status: OrderStatus) -> bool:
        changed = self._execute(
            "UPDATE orders SET status = ?, updated_at = ? WHERE id = ?",
            (status, _now(), order_id),
        )
        if changed:
            logger.info(f"Order {order_id} status -> {status}")
        return changed > 0

    def mark_paid(self, order_id: str) -> bool:
        changed = self._execute(
            "UPDATE orders SET status = 'paid', updated_at = ? WHERE id = ? AND status = 'confirmed'",
            (_now(), order_id),
        )
        if changed:
            logger.info(f"Order {order_id} marked paid")
        return changed == 1

    # ------------------------------------------------------------------
    # pending confirmations
    # ------------------------------------------------------------------

    def create(
        self,
        order_id: str,
        provider_phone: str,
        provider_id: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> PendingConfirmation:
        # Same (order, phone) pair again: replace, newest wins
        try:
            with self._connection() as conn:
                conn.execute(
                    """
                    INSERT INTO pending_orders
                        (order_id, provider_id, user_id, provider_phone, status, notes, created_at)
                    VALUES (?, ?, ?, ?, 'pending_confirmation', NULL, ?)
                    ON CONFLICT(order_id, provider_phone)
                    DO UPDATE SET
                        provider_id = excluded.provider_id,
                        user_id = excluded.user_id,
                        status = 'pending_confirmation',
                        notes = NULL,
                        template_message_id = NULL,
                        created_at = excluded.created_at
                    """,
                    (order_id, provider_id, user_id, provider_phone, _now()),
                )
                conn.commit()
                row = conn.execute(
                    "SELECT * FROM pending_orders WHERE order_id = ? AND provider_phone = ?",
                    (order_id, provider_phone),
                ).fetchone()
        except sqlite3.Error as e:
            logger.error(f"SQLite error creating pending confirmation for {order_id}: {e}")
            raise StoreError(f"Failed to create pending confirmation: {e}") from e

        pending = self._row_to_pending(row)
        logger.info(
            f"Pending confirmation stored: id={pending.id}, order={order_id}, phone={provider_phone}"
        )
        return pending

    def find(self, provider_phone: str) -> Optional[PendingConfirmation]:
        row = self._fetch_one(
            f"""
            SELECT * FROM pending_orders
            WHERE provider_phone = ? AND status IN ({_OPEN_PLACEHOLDERS})
            ORDER BY created_at DESC, id DESC
            LIMIT 1
            """,
            (provider_phone, *OPEN_PENDING_STATUSES),
        )
        return self._row_to_pending(row) if row else None

    def list_open(self, provider_phone: Optional[str] = None) -> List[PendingConfirmation]:
        query = f"SELECT * FROM pending_orders WHERE status IN ({_OPEN_PLACEHOLDERS})"
        params: tuple = OPEN_PENDING_STATUSES
        if provider_phone:
            query += " AND provider_phone = ?"
            params = (*params, provider_phone)
        query += " ORDER BY created_at DESC, id DESC"
        return [self._row_to_pending(row) for row in self._fetch_all(query, params)]

    def remove(self, pending_id: int) -> bool:
        return self._execute("DELETE FROM pending_orders WHERE id = ?", (pending_id,)) > 0

    def claim(self, pending_id: int) -> bool:
        changed = self._execute(
            f"""
            UPDATE pending_orders SET status = 'processing'
            WHERE id = ? AND status IN ({_OPEN_PLACEHOLDERS})
            """,
            (pending_id, *OPEN_PENDING_STATUSES),
        )
        return changed == 1

    def release(self, pending_id: int) -> bool:
        changed = self._execute(
            """
            UPDATE pending_orders SET status = 'pending_confirmation'
            WHERE id = ? AND status = 'processing'
            """,
            (pending_id,),
        )
        return changed == 1

    def attach_template_message(self, pending_id: int, message_id: str) -> bool:
        changed = self._execute(
            "UPDATE pending_orders SET template_message_id = ? WHERE id = ?",
            (message_id, pending_id),
        )
        return changed == 1

    def mark_manual_activation(
        self,
        provider_phone: str,
        notes: str,
        template_message_id: Optional[str] = None,
    ) -> Optional[int]:
        row = None
        if template_message_id:
            row = self._fetch_one(
                f"""
                SELECT * FROM pending_orders
                WHERE template_message_id = ? AND provider_phone = ?
                    AND status IN ({_OPEN_PLACEHOLDERS})
                """,
                (template_message_id, provider_phone, *OPEN_PENDING_STATUSES),
            )
        pending = self._row_to_pending(row) if row else self.find(provider_phone)
        if pending is None:
            return None
        self._execute(
            """
            UPDATE pending_orders SET status = 'manual_activation_required', notes = ?
            WHERE id = ? AND status = 'pending_confirmation'
            """,
            (notes, pending.id),
        )
        return pending.id

    def complete_confirmation(
        self, pending_id: int, order_id: str, order_status: OrderStatus
    ) -> bool:
        try:
            with self._connection() as conn:
                with conn:
                    cursor = conn.execute(
                        "UPDATE orders SET status = ?, updated_at = ? WHERE id = ?",
                        (order_status, _now(), order_id),
                    )
                    if cursor.rowcount == 0:
                        return False
                    conn.execute("DELETE FROM pending_orders WHERE id = ?", (pending_id,))
        except sqlite3.Error as e:
            logger.error(
                f"SQLite error completing confirmation pending={pending_id}, order={order_id}: {e}"
            )
            raise StoreError(f"Failed to complete confirmation: {e}") from e

        logger.info(f"Order {order_id} -> {order_status}, pending {pending_id} removed")
        return True

    # ------------------------------------------------------------------
    # message log
    # ------------------------------------------------------------------

    def record_inbound(
        self,
        message_id: str,
        contact: str,
        content: str,
        message_type: str = "text",
        media_ref: Optional[str] = None,
    ) -> bool:
        now = _now()
        try:
            with self._connection() as conn:
                conn.execute(
                    """
                    INSERT INTO whatsapp_messages (
                        message_id, direction, contact, content, message_type,
                        media_ref, status, created_at, updated_at
                    )
                    VALUES (?, 'inbound', ?, ?, ?, ?, 'received', ?, ?)
                    """,
                    (message_id, contact, content, message_type, media_ref, now, now),
                )
                conn.commit()
        except sqlite3.IntegrityError:
            logger.info(f"Inbound message already recorded: {message_id}")
            return False
        except sqlite3.Error as e:
            logger.error(f"SQLite error recording inbound message {message_id}: {e}")
            raise StoreError(f"Failed to record inbound message: {e}") from e
        return True

    def record_outbound(
        self,
        message_id: Optional[str],
        contact: str,
        content: str,
        message_type: str = "text",
    ) -> WhatsAppMessageRecord:
        now = _now()
        try:
            with self._connection() as conn:
                cursor = conn.execute(
                    """
                    INSERT INTO whatsapp_messages (
                        message_id, direction, contact, content, message_type,
                        status, created_at, updated_at
                    )
                    VALUES (?, 'outbound', ?, ?, ?, 'sent', ?, ?)
                    """,
                    (message_id, contact, content, message_type, now, now),
                )
                conn.commit()
                row_id = cursor.lastrowid
        except sqlite3.Error as e:
            logger.error(f"SQLite error recording outbound message to {contact}: {e}")
            raise StoreError(f"Failed to record outbound message: {e}") from e

        return WhatsAppMessageRecord(
            id=row_id,
            message_id=message_id,
            direction="outbound",
            contact=contact,
            content=content,
            message_type=message_type,
            status="sent",
            created_at=_parse_ts(now),
            updated_at=_parse_ts(now),
        )

    def update_status(
        self,
        message_id: str,
        status: MessageStatus,
        error_details: Optional[str] = None,
    ) -> bool:
        changed = self._execute(
            """
            UPDATE whatsapp_messages
            SET status = ?, error_details = COALESCE(?, error_details), updated_at = ?
            WHERE message_id = ?
            """,
            (status, error_details, _now(), message_id),
        )
        return changed > 0

    def list_for_contact(self, contact: str, limit: int = 50) -> List[WhatsAppMessageRecord]:
        rows = self._fetch_all(
            """
            SELECT * FROM whatsapp_messages WHERE contact = ?
            ORDER BY created_at ASC, id ASC
            LIMIT ?
            """,
            (contact, limit),
        )
        return [self._row_to_message(row) for row in rows]

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    def _fetch_one(self, query: str, params: tuple) -> Optional[sqlite3.Row]:
        try:
            with self._connection() as conn:
                return conn.execute(query, params).fetchone()
        except sqlite3.Error as e:
            logger.error(f"SQLite read failed: {e}")
            raise StoreError(f"Database read failed: {e}") from e

    def _fetch_all(self, query: str, params: tuple) -> List[sqlite3.Row]:
        try:
            with self._connection() as conn:
                return conn.execute(query, params).fetchall()
        except sqlite3.Error as e:
            logger.error(f"SQLite read failed: {e}")
            raise StoreError(f"Database read failed: {e}") from e

    def _execute(self, query: str, params: tuple) -> int:
        try:
            with self._connection() as conn:
                cursor = conn.execute(query, params)
                conn.commit()
                return cursor.rowcount
        except sqlite3.Error as e:
            logger.error(f"SQLite write failed: {e}")
            raise StoreError(f"Database write failed: {e}") from e

    @staticmethod
    def _row_to_provider(row: sqlite3.Row) -> Provider:
        return Provider(
            id=row["id"],
            user_id=row["user_id"],
            name=row["name"],
            contact_name=row["contact_name"],
            phone=row["phone"],
            created_at=_parse_ts(row["created_at"]),
        )

    @staticmethod
    def _row_to_order(row: sqlite3.Row) -> Order:
        return Order(
            id=row["id"],
            provider_id=row["provider_id"],
            user_id=row["user_id"],
            order_number=row["order_number"],
            items=[OrderItem.from_dict(item) for item in json.loads(row["items"])],
            total_amount=row["total_amount"],
            currency=row["currency"],
            desired_delivery_date=row["desired_delivery_date"],
            desired_delivery_time=json.loads(row["desired_delivery_time"] or "[]"),
            payment_method=row["payment_method"],
            notes=row["notes"],
            status=row["status"],
            created_at=_parse_ts(row["created_at"]),
            updated_at=_parse_ts(row["updated_at"]),
        )

    @staticmethod
    def _row_to_pending(row: sqlite3.Row) -> PendingConfirmation:
        return PendingConfirmation(
            id=row["id"],
            order_id=row["order_id"],
            provider_id=row["provider_id"],
            user_id=row["user_id"],
            provider_phone=row["provider_phone"],
            status=row["status"],
            notes=row["notes"],
            template_message_id=row["template_message_id"],
            created_at=_parse_ts(row["created_at"]),
        )

    @staticmethod
    def _row_to_message(row: sqlite3.Row) -> WhatsAppMessageRecord:
        return WhatsAppMessageRecord(
            id=row["id"],
            message_id=row["message_id"],
            direction=row["direction"],
            contact=row["contact"],
            content=row["content"],
            message_type=row["message_type"],
            media_ref=row["media_ref"],
            status=row["status"],
            error_details=row["error_details"],
            created_at=_parse_ts(row["created_at"]),
            updated_at=_parse_ts(row["updated_at"]),
        )
