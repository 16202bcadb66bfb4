"""
Infrastructure initialization and bootstrap.

Singleton pattern for wiring store, sender, classifier and the
confirmation services from configuration.
"""

from typing import Optional

from orders.classifier import ReplyClassifier
from orders.correlator import ConfirmationCorrelator
from orders.notifier import OrderNotifier
from orders.responder import OrderDetailResponder
from orders.store import SQLiteOrderRepository
from transport.whatsapp.sender import MessageSender

from .config import InfraConfig, get_config


class InfraBootstrap:
    """
    Bootstrap infrastructure based on configuration.

    Singleton pattern - single instance per process.
    """

    _instance: Optional["InfraBootstrap"] = None

    def __init__(self, config: Optional[InfraConfig] = None):
        """Initialize bootstrap with configuration."""
        self.config = config or get_config()
        self.store: SQLiteOrderRepository = self.config.create_store()
        self.sender: MessageSender = self.config.create_sender()
        self.classifier: ReplyClassifier = self.config.create_classifier()

        self.responder = OrderDetailResponder(
            sender=self.sender,
            pending_index=self.store,
            message_log=self.store,
        )
        self.correlator = ConfirmationCorrelator(
            orders=self.store,
            pending_index=self.store,
            message_log=self.store,
            classifier=self.classifier,
            responder=self.responder,
            country_code=self.config.country_code,
        )
        self.notifier = OrderNotifier(
            orders=self.store,
            pending_index=self.store,
            message_log=self.store,
            sender=self.sender,
            template_name=self.config.order_template_name,
            template_language=self.config.order_template_language,
        )

    @classmethod
    def get_instance(cls, config: Optional[InfraConfig] = None) -> "InfraBootstrap":
        """
        Get singleton instance.

        Args:
            config: Optional custom configuration (only used first time)

        Returns:
            Singleton InfraBootstrap instance
        """
        if cls._instance is None:
            cls._instance = cls(config)
        return cls._instance

    @classmethod
    def reset(cls):
        """Reset singleton (for testing)."""
        if cls._instance is not None:
            cls._instance.store.close()
        cls._instance = None

    def get_correlator(self) -> ConfirmationCorrelator:
        return self.correlator

    def get_notifier(self) -> OrderNotifier:
        return self.notifier

    def get_store(self) -> SQLiteOrderRepository:
        return self.store

    def __repr__(self) -> str:
        """String representation showing configured backends."""
        return (
            f"InfraBootstrap(db={self.config.database_path}, "
            f"sender={self.config.sender_backend}, "
            f"classifier={self.config.reply_classifier})"
        )


def bootstrap_infrastructure(config: Optional[InfraConfig] = None) -> InfraBootstrap:
    """
    Bootstrap all infrastructure backends.

    Args:
        config: Optional custom configuration

    Returns:
        InfraBootstrap instance with all services wired
    """
    return InfraBootstrap.get_instance(config)
