"""
Phone number helpers shared by the import transforms and duplicate matching.

Only North American shaped numbers (10 digits, or 11 digits with a leading
country code) are re-rendered; any other value is handed back untouched.
"""

import re
from typing import Any, Optional
import logging

logger = logging.getLogger(__name__)

_NON_DIGITS = re.compile(r'\D')


def phone_digits(value: Any) -> str:
    """Return only the digits of ``value`` ('' for None)."""
    if value is None:
        return ""
    return _NON_DIGITS.sub('', str(value))


def normalize_phone(value: Any) -> Optional[str]:
    """
    Normalize a phone number for duplicate matching.

    Returns the digits-only form, or None when the value holds no digits.
    """
    digits = phone_digits(value)
    return digits or None


def _format_local_number(local_number: str) -> str:
    return f"({local_number[:3]}) {local_number[3:6]}-{local_number[6:]}"


def format_phone_number(value: str) -> str:
    """
    Render a phone number in the canonical CRM display format.

    Handles various input formats:
    - 555-123-4567, 555.123.4567, 5551234567  -> (555) 123-4567
    - 1 555 123 4567, +1-555-123-4567          -> +1 (555) 123-4567

    Anything that does not reduce to 10 or 11 digits is returned unchanged.
    Re-formatting an already formatted value yields the same string.
    """
    digits = phone_digits(value)

    if len(digits) == 10:
        return _format_local_number(digits)
    if len(digits) == 11:
        return f"+{digits[0]} {_format_local_number(digits[1:])}"

    if digits:
        logger.debug("Phone value '%s' has %d digits; leaving it unformatted", value, len(digits))
    return value
