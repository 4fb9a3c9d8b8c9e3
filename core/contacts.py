"""
core/contacts.py -- Contact address helpers: format checks and log masking.

A contact is either a mobile number (exactly 10 digits, first digit 6-9) or an
email address. Anything that is not a mobile number is treated as email.

mask_contact() must wrap every contact or username that reaches a log line.
Revealing more than the first two and last two characters leaks PII.
"""

from __future__ import annotations

import re
from typing import Optional

MOBILE_RE = re.compile(r"^[6-9]\d{9}$")


def is_mobile(contact: str) -> bool:
    """Return True if contact looks like a mobile number."""
    return bool(MOBILE_RE.match(contact))


def normalize_contact(contact: str) -> str:
    """Strip whitespace; lowercase anything that is not a mobile number."""
    stripped = contact.strip()
    return stripped if is_mobile(stripped) else stripped.lower()


def mask_contact(value: Optional[str]) -> str:
    """Mask a contact or username for logging: '9876543210' -> '98****10'."""
    if value is None or len(value) <= 4:
        return "****"
    return f"{value[:2]}****{value[-2:]}"
