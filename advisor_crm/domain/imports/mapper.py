"""
Column mapping: propose CRM targets for spreadsheet headers and turn a chosen
mapping into the per-row field extraction used during execution.
"""
from typing import Callable, Dict, List, NamedTuple, Sequence, Tuple
import logging

from advisor_crm.api.schemas.imports import ColumnMapping, ColumnTransform, TargetField
from advisor_crm.domain.imports.errors import MappingValidationError
from advisor_crm.domain.imports.transforms import apply_transform

logger = logging.getLogger(__name__)


def _contains_any(*needles: str) -> Callable[[str], bool]:
    return lambda header: any(needle in header for needle in needles)


def _is_name(header: str) -> bool:
    return "name" in header and "file" not in header


def _is_work_phone(header: str) -> bool:
    return _contains_any("phone", "cell", "mobile")(header) and _contains_any("work", "office")(header)


# Evaluated top to bottom against the lowercased header; first match wins.
MAPPING_RULES: List[Tuple[Callable[[str], bool], TargetField, ColumnTransform]] = [
    (_is_name, TargetField.NAME, ColumnTransform.NONE),
    (_contains_any("email", "e-mail"), TargetField.HOME_EMAIL, ColumnTransform.LOWERCASE),
    (_is_work_phone, TargetField.WORK_PHONE, ColumnTransform.PHONE_FORMAT),
    (_contains_any("phone", "cell", "mobile"), TargetField.CELLULAR_PHONE, ColumnTransform.PHONE_FORMAT),
    (_contains_any("status"), TargetField.STATUS, ColumnTransform.NONE),
    (_contains_any("id", "client no", "client #"), TargetField.CLIENT_ID, ColumnTransform.UPPERCASE),
]


def propose_column_mapping(header: str) -> ColumnMapping:
    lowered = (header or "").lower()
    for predicate, target_field, transform in MAPPING_RULES:
        if predicate(lowered):
            return ColumnMapping(source_column=header, target_field=target_field, transform=transform)
    return ColumnMapping(source_column=header, target_field=TargetField.SKIP, transform=ColumnTransform.NONE)


def propose_mapping(headers: Sequence[str]) -> List[ColumnMapping]:
    """Suggest one mapping per header using case-insensitive name heuristics."""
    return [propose_column_mapping(header) for header in headers]


class FieldSource(NamedTuple):
    index: int
    transform: ColumnTransform


def validate_mappings(mappings: Sequence[ColumnMapping], headers: Sequence[str]) -> None:
    """
    Ensure the mapping can be executed against the job's headers.

    Exactly one column must be mapped to the client name, and that column has
    to exist in the uploaded file.

    Raises:
        MappingValidationError
    """
    name_mappings = [m for m in mappings if m.target_field == TargetField.NAME]
    if not name_mappings:
        raise MappingValidationError("A column must be mapped to the Name field before importing.")
    if len(name_mappings) > 1:
        columns = ", ".join(f"'{m.source_column}'" for m in name_mappings)
        raise MappingValidationError(f"Only one column can be mapped to Name; got {columns}.")
    if name_mappings[0].source_column not in headers:
        raise MappingValidationError(
            f"Column '{name_mappings[0].source_column}' mapped to Name is not present in the uploaded file."
        )


def build_field_sources(mappings: Sequence[ColumnMapping], headers: Sequence[str]) -> Dict[TargetField, FieldSource]:
    """
    Resolve each mapped target field to its column position in the file.

    Skipped columns and columns missing from the headers are ignored. When two
    columns target the same field, the later mapping wins.
    """
    header_positions = {}
    for position, header in enumerate(headers):
        header_positions.setdefault(header, position)

    sources: Dict[TargetField, FieldSource] = {}
    for mapping in mappings:
        if mapping.target_field == TargetField.SKIP:
            continue
        position = header_positions.get(mapping.source_column)
        if position is None:
            logger.warning(
                "Ignoring mapping for unknown column '%s' -> %s",
                mapping.source_column,
                mapping.target_field.value,
            )
            continue
        if mapping.target_field in sources:
            logger.info("Column '%s' overrides earlier mapping for %s", mapping.source_column, mapping.target_field.value)
        sources[mapping.target_field] = FieldSource(position, mapping.transform)
    return sources


def extract_mapped_row(row: Sequence[str], sources: Dict[TargetField, FieldSource]) -> Dict[TargetField, str]:
    """Pull every mapped field out of ``row`` and apply its transform."""
    mapped: Dict[TargetField, str] = {}
    for target_field, source in sources.items():
        raw_value = row[source.index] if source.index < len(row) else ""
        mapped[target_field] = apply_transform((raw_value or "").strip(), source.transform).strip()
    return mapped
