"""
Per-value transforms applied to mapped cells while an import executes.
"""
import logging

from advisor_crm.api.schemas.imports import ColumnTransform
from advisor_crm.utils.phone import format_phone_number

logger = logging.getLogger(__name__)

_TRANSFORMS = {
    ColumnTransform.NONE: lambda value: value,
    ColumnTransform.UPPERCASE: str.upper,
    ColumnTransform.LOWERCASE: str.lower,
    ColumnTransform.PHONE_FORMAT: format_phone_number,
}


def apply_transform(raw_value: str, transform: ColumnTransform) -> str:
    """
    Apply ``transform`` to a single cell value.

    Never raises: empty values pass through as-is, and if a transform fails on
    unexpected input the original value is returned so the row can still be
    imported.
    """
    if not raw_value:
        return raw_value

    handler = _TRANSFORMS.get(transform)
    if handler is None:
        logger.warning("Unknown transform %r; keeping value unchanged", transform)
        return raw_value

    try:
        return handler(raw_value)
    except Exception as exc:
        logger.warning("Transform %s failed for value %r: %s", transform, raw_value, exc)
        return raw_value
