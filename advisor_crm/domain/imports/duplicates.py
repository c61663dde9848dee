"""
Duplicate detection for imported client rows.

A row matches an existing client when its best available email (lowercased,
trimmed) or phone (digits only) equals one of that client's normalized
contact points. Each row is resolved independently against the clients that
existed before the import job started; rows in the same file are not
de-duplicated against each other.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple
import logging

from advisor_crm.api.schemas.imports import DuplicateStrategy, TargetField
from advisor_crm.db.clients import normalize_email
from advisor_crm.utils.phone import normalize_phone

logger = logging.getLogger(__name__)

# Lookup order when a row carries several emails/phones
EMAIL_MATCH_PRIORITY = (
    TargetField.HOME_EMAIL,
    TargetField.PERSONAL_EMAIL,
    TargetField.WORK_EMAIL,
    TargetField.OTHER_EMAIL,
    TargetField.HOME_EMAIL_2,
)
PHONE_MATCH_PRIORITY = (
    TargetField.CELLULAR_PHONE,
    TargetField.HOME_PHONE,
    TargetField.WORK_PHONE,
    TargetField.OTHER_PHONE,
)


class DuplicateAction(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    SKIP = "skip"


@dataclass(frozen=True)
class Resolution:
    action: DuplicateAction
    existing_record_id: Optional[str] = None


def match_keys(mapped_row: Dict[TargetField, str]) -> Tuple[Optional[str], Optional[str]]:
    """Return the normalized (email, phone) used to look up an existing client."""
    email = next(
        (normalize_email(mapped_row.get(f)) for f in EMAIL_MATCH_PRIORITY if normalize_email(mapped_row.get(f))),
        None,
    )
    phone = next(
        (normalize_phone(mapped_row.get(f)) for f in PHONE_MATCH_PRIORITY if normalize_phone(mapped_row.get(f))),
        None,
    )
    return email, phone


def resolve_duplicate(
    mapped_row: Dict[TargetField, str],
    strategy: DuplicateStrategy,
    client_store,
    *,
    import_job_id: Optional[str] = None,
) -> Resolution:
    """
    Decide whether a row creates a new client, updates a matching one, or is skipped.

    - skip: matched rows are skipped, others created
    - update: matched rows update the earliest-created match, others created
    - create_new: always create, no lookup is made
    """
    if strategy == DuplicateStrategy.CREATE_NEW:
        return Resolution(DuplicateAction.CREATE)

    email, phone = match_keys(mapped_row)
    if not email and not phone:
        return Resolution(DuplicateAction.CREATE)

    existing = client_store.find_by_normalized_email_or_phone(
        email,
        phone,
        exclude_import_job_id=import_job_id,
    )
    if not existing:
        return Resolution(DuplicateAction.CREATE)

    if strategy == DuplicateStrategy.SKIP:
        return Resolution(DuplicateAction.SKIP, existing["id"])
    return Resolution(DuplicateAction.UPDATE, existing["id"])
