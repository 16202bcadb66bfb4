"""
Provider order-confirmation domain.

Exports the data model, phone normalization and reply classification.
Store, responder, correlator and notifier are imported from their modules.

Example usage:
    from orders import KeywordReplyClassifier, ReplyClassification

    classifier = KeywordReplyClassifier()
    classifier.classify("dale, confirmo") is ReplyClassification.AFFIRMATIVE
"""

from .classifier import AnyReplyClassifier, KeywordReplyClassifier, ReplyClassifier
from .phone import PhoneNumberError, normalize_phone, try_normalize_phone
from .types import (
    CorrelationOutcome,
    CorrelationResult,
    Order,
    OrderItem,
    PendingConfirmation,
    Provider,
    ReplyClassification,
    WhatsAppMessageRecord,
)

__all__ = [
    "Order",
    "OrderItem",
    "Provider",
    "PendingConfirmation",
    "WhatsAppMessageRecord",
    "ReplyClassification",
    "CorrelationOutcome",
    "CorrelationResult",
    "ReplyClassifier",
    "KeywordReplyClassifier",
    "AnyReplyClassifier",
    "normalize_phone",
    "try_normalize_phone",
    "PhoneNumberError",
]
