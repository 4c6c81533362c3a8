"""
Row Validation Service
Field-level contracts for raw spreadsheet rows

Each record kind is described by a tuple of FieldRule objects. Validation
collects every problem in a row instead of stopping at the first one, and
never writes to the audit log (the import pipeline does).
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple
import math
import re

from cyclecount.core.config import settings
from cyclecount.models.enums import InventoryStatus

ISO_DATE_PATTERN = re.compile(r"[0-9]{4}-[0-9]{2}-[0-9]{2}")
INTEGER_PATTERN = re.compile(r"[+-]?[0-9]+")

INVENTORY_IMPORT = "InventoryImport"


# Cell predicates


def is_missing(value: Any) -> bool:
    """Empty cells: None, NaN or blank text. Zero counts as present."""
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    if isinstance(value, str) and not value.strip():
        return True
    return False


def is_integer(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    if isinstance(value, float):
        return math.isfinite(value) and value.is_integer()
    if isinstance(value, str):
        return INTEGER_PATTERN.fullmatch(value.strip()) is not None
    return False


def is_iso_date(value: Any) -> bool:
    if isinstance(value, (date, datetime)):
        return True
    if isinstance(value, str):
        return ISO_DATE_PATTERN.fullmatch(value) is not None
    return False


def cell_text(value: Any) -> str:
    """Render a cell as stripped text; integral floats lose their '.0'"""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value).strip()


# Field rules


@dataclass(frozen=True)
class FieldRule:
    """
    Contract for one column of a raw row

    validator is a pure predicate run on present cells; a False result
    yields `message` formatted with the offending value.
    """
    column: str
    attribute: str
    kind: str = "string"  # string, integer, date, enum
    required: bool = False
    default: Any = None
    default_factory: Optional[Callable[[], Any]] = None
    choices: Tuple[str, ...] = ()
    validator: Optional[Callable[[Any], bool]] = None
    message: Optional[str] = None


INVENTORY_IMPORT_FIELDS: Tuple[FieldRule, ...] = (
    FieldRule("Location", "location", required=True),
    FieldRule("Bin", "bin", required=True),
    FieldRule("PalletID", "pallet_id", required=True),
    FieldRule("ItemNumber", "item_number", required=True),
    FieldRule(
        "SystemQuantity", "system_quantity", kind="integer", required=True,
        validator=is_integer,
        message="SystemQuantity must be a number, got: {value}",
    ),
    FieldRule("Description", "description", default=""),
    FieldRule("UOM", "uom", default_factory=lambda: settings.DEFAULT_UOM),
    FieldRule(
        "ExpiryDate", "expiry_date", kind="date",
        validator=is_iso_date,
        message="ExpiryDate must be YYYY-MM-DD format, got: {value}",
    ),
    FieldRule(
        "Status", "status", kind="enum",
        default=InventoryStatus.active.value,
        choices=tuple(s.value for s in InventoryStatus),
    ),
)

SCHEMAS: Dict[str, Tuple[FieldRule, ...]] = {
    INVENTORY_IMPORT: INVENTORY_IMPORT_FIELDS,
}


def required_columns(kind: str = INVENTORY_IMPORT) -> List[str]:
    return [rule.column for rule in SCHEMAS[kind] if rule.required]


@dataclass
class RowValidationResult:
    """Typed fields for an accepted row, or the reasons it was refused"""
    fields: Optional[Dict[str, Any]] = None
    errors: List[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


def check_row(row: Mapping[str, Any], rules: Tuple[FieldRule, ...]) -> List[str]:
    """Structural checks: required columns first, then per-field predicates"""
    errors = []

    for rule in rules:
        if rule.required and is_missing(row.get(rule.column)):
            errors.append(f"Missing required column: {rule.column}")

    for rule in rules:
        value = row.get(rule.column)
        if rule.validator is None or is_missing(value):
            continue
        if not rule.validator(value):
            errors.append(rule.message.format(value=value))

    return errors


def validate_inventory_row(row: Mapping[str, Any]) -> List[str]:
    """
    Validate one raw inventory row

    Returns a list of human-readable errors; empty when the row is valid.
    Extra columns are ignored.
    """
    return check_row(row, INVENTORY_IMPORT_FIELDS)


def _coerce(rule: FieldRule, value: Any) -> Tuple[Any, Optional[str]]:
    if rule.kind == "integer":
        number = int(value) if not isinstance(value, str) else int(value.strip())
        if number < 0:
            return None, f"{rule.column} must be a non-negative integer, got: {value}"
        return number, None

    if rule.kind == "date":
        text = cell_text(value)
        try:
            return date.fromisoformat(text), None
        except ValueError:
            return None, f"{rule.column} is not a valid calendar date, got: {value}"

    if rule.kind == "enum":
        text = cell_text(value)
        if text not in rule.choices:
            return None, f"{rule.column} must be one of {', '.join(rule.choices)}, got: {value}"
        return text, None

    return cell_text(value), None


def validate_row(row: Mapping[str, Any], kind: str = INVENTORY_IMPORT) -> RowValidationResult:
    """
    Validate and type-coerce one raw row for a record kind

    Coercion runs only when the structural checks pass, so a row reports
    either structural problems or value problems.
    """
    rules = SCHEMAS[kind]
    errors = check_row(row, rules)
    if errors:
        return RowValidationResult(errors=errors)

    fields: Dict[str, Any] = {}
    for rule in rules:
        value = row.get(rule.column)
        if is_missing(value):
            fields[rule.attribute] = rule.default_factory() if rule.default_factory else rule.default
            continue
        coerced, error = _coerce(rule, value)
        if error:
            errors.append(error)
        else:
            fields[rule.attribute] = coerced

    if errors:
        return RowValidationResult(errors=errors)
    return RowValidationResult(fields=fields)
