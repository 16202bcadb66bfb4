"""
Infrastructure configuration system.

Environment-based backend selection with sensible defaults.
"""

import os
from dataclasses import dataclass
from typing import Literal, Optional

from config import Config
from orders.classifier import AnyReplyClassifier, KeywordReplyClassifier, ReplyClassifier
from orders.store import SQLiteOrderRepository
from transport.whatsapp.sender import CloudAPISender, MessageSender, StubSender

SenderBackendType = Literal["cloud", "stub"]
ClassifierBackendType = Literal["keyword", "any"]


@dataclass
class InfraConfig:
    """Infrastructure configuration from environment."""

    # Storage
    database_path: str

    # Outbound messaging
    sender_backend: SenderBackendType
    whatsapp_access_token: Optional[str]
    whatsapp_phone_number_id: Optional[str]
    whatsapp_api_base_url: str
    whatsapp_api_version: str

    # Confirmation flow
    reply_classifier: ClassifierBackendType
    order_template_name: str
    order_template_language: str
    country_code: str

    @classmethod
    def from_env(cls) -> "InfraConfig":
        """
        Load configuration from environment variables.

        Defaults:
        - storage: ./orders.db
        - sender: cloud (SENDER_BACKEND=stub for simulation mode)
        - classifier: keyword (REPLY_CLASSIFIER=any confirms on any reply)
        """
        return cls(
            database_path=os.getenv("DATABASE_PATH", "./orders.db"),
            sender_backend=os.getenv("SENDER_BACKEND", "cloud"),  # type: ignore
            whatsapp_access_token=Config.WHATSAPP_ACCESS_TOKEN or None,
            whatsapp_phone_number_id=Config.WHATSAPP_PHONE_NUMBER_ID or None,
            whatsapp_api_base_url=Config.WHATSAPP_API_BASE_URL,
            whatsapp_api_version=Config.WHATSAPP_API_VERSION,
            reply_classifier=os.getenv("REPLY_CLASSIFIER", "keyword"),  # type: ignore
            order_template_name=Config.ORDER_TEMPLATE_NAME,
            order_template_language=Config.ORDER_TEMPLATE_LANGUAGE,
            country_code=Config.DEFAULT_COUNTRY_CODE,
        )

    @classmethod
    def for_testing(cls, database_path: str = ":memory:") -> "InfraConfig":
        """Stub sender, keyword classifier, throwaway database."""
        return cls(
            database_path=database_path,
            sender_backend="stub",
            whatsapp_access_token=None,
            whatsapp_phone_number_id=None,
            whatsapp_api_base_url="https://graph.facebook.com",
            whatsapp_api_version="v18.0",
            reply_classifier="keyword",
            order_template_name="evio_orden",
            order_template_language="es_AR",
            country_code="54",
        )

    def create_store(self) -> SQLiteOrderRepository:
        """Create the order repository."""
        return SQLiteOrderRepository(db_path=self.database_path)

    def create_sender(self) -> MessageSender:
        """Create outbound sender based on configuration."""
        if self.sender_backend == "stub":
            return StubSender()
        return CloudAPISender(
            access_token=self.whatsapp_access_token,
            phone_number_id=self.whatsapp_phone_number_id,
            base_url=self.whatsapp_api_base_url,
            api_version=self.whatsapp_api_version,
        )

    def create_classifier(self) -> ReplyClassifier:
        """Create reply classifier based on configuration."""
        if self.reply_classifier == "any":
            return AnyReplyClassifier()
        return KeywordReplyClassifier()


def get_config() -> InfraConfig:
    """Get infrastructure configuration from the environment."""
    return InfraConfig.from_env()
