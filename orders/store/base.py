"""
Abstract storage boundaries.

The correlator, the responder and the notifier depend only on these
interfaces, never on SQLite.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from orders.types import (
    MessageStatus,
    Order,
    OrderStatus,
    PendingConfirmation,
    Provider,
    WhatsAppMessageRecord,
)


class StoreError(Exception):
    """Underlying database operation failed."""
    pass


class OrderStore(ABC):
    """Providers and orders."""

    @abstractmethod
    def create_provider(self, provider: Provider) -> Provider:
        raise NotImplementedError

    @abstractmethod
    def get_provider(self, provider_id: str) -> Optional[Provider]:
        raise NotImplementedError

    @abstractmethod
    def find_provider_by_phone(self, phone: str) -> Optional[Provider]:
        raise NotImplementedError

    @abstractmethod
    def create_order(self, order: Order) -> Order:
        raise NotImplementedError

    @abstractmethod
    def get_order(self, order_id: str) -> Optional[Order]:
        raise NotImplementedError

    @abstractmethod
    def update_order_status(self, order_id: str, status: OrderStatus) -> bool:
        """Set order status. Returns False if the order does not exist."""
        raise NotImplementedError

    @abstractmethod
    def mark_paid(self, order_id: str) -> bool:
        """Move a confirmed order to 'paid'. Returns False for any other status."""
        raise NotImplementedError


class PendingConfirmationIndex(ABC):
    """
    Maps dispatched order notifications to the provider phone expected to reply.

    At most one row exists per (order_id, provider_phone). When several
    orders are waiting on the same phone, the most recent one wins.
    """

    @abstractmethod
    def create(
        self,
        order_id: str,
        provider_phone: str,
        provider_id: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> PendingConfirmation:
        """Insert and commit. The row is readable once this returns."""
        raise NotImplementedError

    @abstractmethod
    def find(self, provider_phone: str) -> Optional[PendingConfirmation]:
        """Most recent open row for the phone, or None."""
        raise NotImplementedError

    @abstractmethod
    def remove(self, pending_id: int) -> bool:
        """Delete the row. Returns False if it was already gone."""
        raise NotImplementedError

    @abstractmethod
    def claim(self, pending_id: int) -> bool:
        """Move an open row to 'processing'. Only one caller can win."""
        raise NotImplementedError

    @abstractmethod
    def release(self, pending_id: int) -> bool:
        """Return a claimed row to 'pending_confirmation'."""
        raise NotImplementedError

    @abstractmethod
    def attach_template_message(self, pending_id: int, message_id: str) -> bool:
        """Remember which template notification opened the row."""
        raise NotImplementedError

    @abstractmethod
    def mark_manual_activation(
        self,
        provider_phone: str,
        notes: str,
        template_message_id: Optional[str] = None,
    ) -> Optional[int]:
        """
        Flag an open row for the phone. Returns its id, if any.

        The row opened by template_message_id is flagged when it is still
        open. Otherwise the most recent open row for the phone is flagged.
        """
        raise NotImplementedError

    @abstractmethod
    def list_open(self, provider_phone: Optional[str] = None) -> List[PendingConfirmation]:
        raise NotImplementedError

    @abstractmethod
    def complete_confirmation(
        self, pending_id: int, order_id: str, order_status: OrderStatus
    ) -> bool:
        """
        Set the order status and delete the pending row atomically.

        Returns False (and changes nothing) if the order does not exist.
        """
        raise NotImplementedError


class MessageLog(ABC):
    """Append-only WhatsApp message log."""

    @abstractmethod
    def record_inbound(
        self,
        message_id: str,
        contact: str,
        content: str,
        message_type: str = "text",
        media_ref: Optional[str] = None,
    ) -> bool:
        """Log an inbound message. Returns False if the id was already logged."""
        raise NotImplementedError

    @abstractmethod
    def record_outbound(
        self,
        message_id: Optional[str],
        contact: str,
        content: str,
        message_type: str = "text",
    ) -> WhatsAppMessageRecord:
        raise NotImplementedError

    @abstractmethod
    def update_status(
        self,
        message_id: str,
        status: MessageStatus,
        error_details: Optional[str] = None,
    ) -> bool:
        raise NotImplementedError

    @abstractmethod
    def list_for_contact(self, contact: str, limit: int = 50) -> List[WhatsAppMessageRecord]:
        raise NotImplementedError
