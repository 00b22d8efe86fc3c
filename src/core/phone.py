"""
Kenyan MSISDN helpers.

Daraja expects ``2547XXXXXXXX`` / ``2541XXXXXXXX``; customers type
``07...``, ``+254...`` or ``254...`` with spaces and dashes.
"""

from __future__ import annotations

import re

_STRIP_CHARS = re.compile(r"[\s\-()]")
_LOCAL = re.compile(r"^0[17]\d{8}$")
_INTERNATIONAL = re.compile(r"^\+?254[17]\d{8}$")
_BARE = re.compile(r"^[17]\d{8}$")


def sanitize_phone(phone: str) -> str:
    """Remove spaces, dashes and parentheses."""
    if not phone:
        return ""
    return _STRIP_CHARS.sub("", phone)


def is_valid_kenyan_phone(phone: str) -> bool:
    """Return True for Safaricom/Airtel style 07/01 numbers in any accepted format."""
    cleaned = sanitize_phone(phone)
    return bool(
        _LOCAL.match(cleaned)
        or _INTERNATIONAL.match(cleaned)
        or _BARE.match(cleaned)
    )


def normalize_phone(phone: str) -> str:
    """Convert a valid number to the gateway format ``254XXXXXXXXX``.

    Raises:
        ValueError: If the number does not pass ``is_valid_kenyan_phone``.
    """
    cleaned = sanitize_phone(phone)
    if not is_valid_kenyan_phone(cleaned):
        raise ValueError(f"Invalid Kenyan phone number: {phone!r}")
    if cleaned.startswith("+"):
        return cleaned[1:]
    if cleaned.startswith("254"):
        return cleaned
    if cleaned.startswith("0"):
        return "254" + cleaned[1:]
    return "254" + cleaned


def format_phone_for_display(phone: str) -> str:
    """``254712345678`` / ``+254712345678`` -> ``0712345678``."""
    cleaned = sanitize_phone(phone)
    if cleaned.startswith("+254"):
        return "0" + cleaned[4:]
    if cleaned.startswith("254") and len(cleaned) == 12:
        return "0" + cleaned[3:]
    return cleaned
