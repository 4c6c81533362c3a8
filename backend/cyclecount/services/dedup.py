"""
Deduplication Service
Removes repeated pallets from an upload by (PalletID, Bin)
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Set, Tuple

from cyclecount.schemas.inventory import DUPLICATE_REASON
from cyclecount.services.validation import cell_text

RowKey = Tuple[str, str]


def row_key(row: Mapping[str, Any]) -> RowKey:
    """Composite identity of a raw inventory row"""
    return (cell_text(row.get("PalletID")), cell_text(row.get("Bin")))


@dataclass
class DeduplicationResult:
    """
    unique holds the caller's row objects; duplicates are annotated copies

    unique_indices are the input positions of the kept rows.
    """
    unique: List[Mapping[str, Any]] = field(default_factory=list)
    duplicates: List[Dict[str, Any]] = field(default_factory=list)
    unique_indices: List[int] = field(default_factory=list)

    @property
    def deduplication_count(self) -> int:
        return len(self.duplicates)


def deduplicate_rows(
    rows: Iterable[Mapping[str, Any]],
    existing_keys: Iterable[RowKey] = (),
) -> DeduplicationResult:
    """
    Keep the first row for each (PalletID, Bin) pair

    Later rows with the same pair are rejected even when other columns
    differ. The same pallet in another bin is a separate row. Keys in
    `existing_keys` (already imported pallets) count as seen.
    """
    seen: Set[RowKey] = set(existing_keys)
    result = DeduplicationResult()

    for index, row in enumerate(rows):
        key = row_key(row)
        if key in seen:
            result.duplicates.append({**row, "reason": DUPLICATE_REASON})
            continue
        seen.add(key)
        result.unique.append(row)
        result.unique_indices.append(index)

    return result
