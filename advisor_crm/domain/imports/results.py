"""
Per-row outcomes of an import and their aggregation into an ``ImportResult``.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from advisor_crm.api.schemas.imports import ImportErrorDetail, ImportResult


class RowOutcomeKind(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    SKIPPED = "skipped"
    ERRORED = "errored"


@dataclass(frozen=True)
class RowOutcome:
    """Classification of one data row. ``row`` is 1-based, header excluded."""
    row: int
    kind: RowOutcomeKind
    message: Optional[str] = None
    record_id: Optional[str] = None

    @classmethod
    def created(cls, row: int, record_id: str) -> "RowOutcome":
        return cls(row, RowOutcomeKind.CREATED, record_id=record_id)

    @classmethod
    def updated(cls, row: int, record_id: str) -> "RowOutcome":
        return cls(row, RowOutcomeKind.UPDATED, record_id=record_id)

    @classmethod
    def skipped(cls, row: int, record_id: Optional[str] = None) -> "RowOutcome":
        return cls(row, RowOutcomeKind.SKIPPED, record_id=record_id)

    @classmethod
    def errored(cls, row: int, message: str) -> "RowOutcome":
        return cls(row, RowOutcomeKind.ERRORED, message=message)


def error_details(outcomes: Iterable[RowOutcome]) -> List[Dict[str, Any]]:
    """All row errors in source-file order, as plain dicts for persistence."""
    errored = sorted((o for o in outcomes if o.kind == RowOutcomeKind.ERRORED), key=lambda o: o.row)
    return [{"row": o.row, "message": o.message or "Unknown error"} for o in errored]


def summarize_outcomes(outcomes: Iterable[RowOutcome], *, error_limit: int = 10) -> ImportResult:
    """
    Fold row outcomes into the result returned to the caller.

    Errors are ordered by row number regardless of the order outcomes were
    produced in, and only the first ``error_limit`` are included;
    ``error_count`` always reflects the true total.
    """
    outcomes = list(outcomes)
    counts = {kind: 0 for kind in RowOutcomeKind}
    for outcome in outcomes:
        counts[outcome.kind] += 1

    errors = error_details(outcomes)
    return ImportResult(
        total_processed=len(outcomes),
        success_count=counts[RowOutcomeKind.CREATED] + counts[RowOutcomeKind.UPDATED],
        error_count=counts[RowOutcomeKind.ERRORED],
        skipped_count=counts[RowOutcomeKind.SKIPPED],
        errors=[ImportErrorDetail(**error) for error in errors[:max(error_limit, 0)]],
    )
