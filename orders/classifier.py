"""
Provider reply classification.

Decides whether a free-text WhatsApp reply confirms, rejects, or says
nothing about the pending order. Keyword containment only: no grammar,
no scoring. Ambiguous or sarcastic replies get misclassified.
"""

import re
import unicodedata
from abc import ABC, abstractmethod
from typing import Iterable, Optional, Tuple

from orders.types import PendingConfirmation, ReplyClassification

DEFAULT_AFFIRMATIVE_KEYWORDS: Tuple[str, ...] = (
    "si",
    "confirmo",
    "confirmado",
    "confirmada",
    "ok",
    "okay",
    "dale",
    "de acuerdo",
    "perfecto",
    "listo",
    "va",
    "acepto",
    "recibido",
)

DEFAULT_NEGATIVE_KEYWORDS: Tuple[str, ...] = (
    "no confirmo",
    "no puedo",
    "no podemos",
    "no tengo",
    "no tenemos",
    "no hay stock",
    "no va",
    "rechazo",
    "rechazado",
    "cancelar",
    "cancelo",
    "cancelado",
    "sin stock",
    "imposible",
)

_NON_WORD = re.compile(r"[^a-z0-9]+")


def normalize_reply(body: str) -> str:
    """
    Lowercase, strip accents and collapse punctuation to single spaces.

    "¡Sí, CONFIRMO!" -> "si confirmo"
    """
    if not body:
        return ""
    decomposed = unicodedata.normalize("NFKD", body.lower())
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return _NON_WORD.sub(" ", stripped).strip()


class ReplyClassifier(ABC):
    """
    Abstract classification boundary.
    The correlator depends ONLY on this interface.
    """

    @abstractmethod
    def classify(
        self,
        body: str,
        pending: Optional[PendingConfirmation] = None,
    ) -> ReplyClassification:
        """Classify an inbound reply for the matched pending confirmation."""
        raise NotImplementedError


class KeywordReplyClassifier(ReplyClassifier):
    """
    Case- and accent-insensitive keyword containment.

    A keyword matches when it appears in the normalized body as whole
    words, so "si" matches "si, mañana" but not "sin stock". Negative
    keywords are checked first: "no, no confirmo" is a rejection.

    A bare "no" is not a negative keyword. Replies like "si, no hay
    problema" must still confirm.
    """

    def __init__(
        self,
        affirmative: Iterable[str] = DEFAULT_AFFIRMATIVE_KEYWORDS,
        negative: Iterable[str] = DEFAULT_NEGATIVE_KEYWORDS,
    ):
        self.affirmative = tuple(normalize_reply(k) for k in affirmative if normalize_reply(k))
        self.negative = tuple(normalize_reply(k) for k in negative if normalize_reply(k))

    def classify(
        self,
        body: str,
        pending: Optional[PendingConfirmation] = None,
    ) -> ReplyClassification:
        padded = f" {normalize_reply(body)} "
        if not padded.strip():
            return ReplyClassification.UNRECOGNIZED

        if any(f" {keyword} " in padded for keyword in self.negative):
            return ReplyClassification.NEGATIVE

        if any(f" {keyword} " in padded for keyword in self.affirmative):
            return ReplyClassification.AFFIRMATIVE

        return ReplyClassification.UNRECOGNIZED


class AnyReplyClassifier(ReplyClassifier):
    """Any non-empty reply confirms the order."""

    def classify(
        self,
        body: str,
        pending: Optional[PendingConfirmation] = None,
    ) -> ReplyClassification:
        if body and body.strip():
            return ReplyClassification.AFFIRMATIVE
        return ReplyClassification.UNRECOGNIZED
