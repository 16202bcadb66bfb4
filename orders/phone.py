"""
Phone number normalization.

Providers, pending confirmations and inbound senders must share one key
format or replies never correlate. Rule: +<country code> followed by the
last 10 national digits, with the Argentine mobile "9" dropped.

    "+54 9 11 2345-6789" -> "+541123456789"
    "5491123456789"      -> "+541123456789"
    "(011) 2345 6789"    -> rejected (11 national digits)
    "11 2345 6789"       -> "+541123456789"
"""

import re

_STRIP = re.compile(r"[\s\-().+]")


class PhoneNumberError(ValueError):
    """Phone number cannot be normalized."""
    pass


def normalize_phone(raw: str, country_code: str = "54") -> str:
    """
    Normalize a phone number to +<cc>XXXXXXXXXX.

    Args:
        raw: Phone number in any common format
        country_code: Country calling code without "+"

    Returns:
        Normalized phone number

    Raises:
        PhoneNumberError: Input is empty or does not have 10 national digits
    """
    if not raw or not isinstance(raw, str):
        raise PhoneNumberError("Empty phone number")

    cleaned = _STRIP.sub("", raw)

    if cleaned.startswith(country_code) and len(cleaned) > 10:
        cleaned = cleaned[len(country_code):]

    # Mobile prefix used by WhatsApp for Argentine numbers
    if cleaned.startswith("9") and len(cleaned) == 11:
        cleaned = cleaned[1:]

    if not re.fullmatch(r"\d{10}", cleaned):
        raise PhoneNumberError(f"Invalid phone number: {raw!r}")

    return f"+{country_code}{cleaned}"


def try_normalize_phone(raw: str, country_code: str = "54") -> str:
    """Normalize if possible, else return the input with a leading '+'."""
    try:
        return normalize_phone(raw, country_code)
    except PhoneNumberError:
        cleaned = _STRIP.sub("", raw or "")
        return f"+{cleaned}" if cleaned else ""
