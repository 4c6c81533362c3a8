"""
Inventory Service
Reads uploaded inventory files and imports them as immutable records

Pipeline: read rows -> validate each row -> deduplicate valid rows ->
build one batch of InventoryImportRecord -> persist -> audit.
"""

from pathlib import Path
from typing import Any, BinaryIO, Dict, Iterable, List, Mapping, Optional, Sequence, Union
import csv
import io
import logging
import uuid
import zipfile

import pandas as pd

from cyclecount.core.clock import Clock, SystemClock
from cyclecount.core.config import settings
from cyclecount.core.exceptions import ImportFailed, InvalidScope, RecordNotFound, StorageFailed
from cyclecount.models.enums import AuditUser, Table
from cyclecount.repositories.record_store import RecordStore
from cyclecount.schemas.inventory import (
    DUPLICATE_REASON,
    VALIDATION_REASON,
    ImportResult,
    InventoryImportRecord,
    RejectedRow,
)
from cyclecount.services.audit_service import AuditLogger
from cyclecount.services.dedup import deduplicate_rows
from cyclecount.services.validation import is_missing, validate_row

logger = logging.getLogger(__name__)

CSV_EXTENSIONS = {".csv"}
EXCEL_EXTENSIONS = {".xlsx", ".xls"}

Source = Union[str, Path, BinaryIO]

# First data row in a spreadsheet; row 1 is the header
FIRST_DATA_ROW = 2


def filter_bins(bins: Iterable[str], prefix: Optional[str] = None) -> List[str]:
    """Sorted bin codes, optionally restricted to a prefix such as 'A-'"""
    codes = sorted(set(bins))
    if prefix:
        codes = [code for code in codes if code.startswith(prefix)]
    return codes


def _clean_cell(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, pd.Timestamp):
        return None if pd.isna(value) else value.date().isoformat()
    if isinstance(value, float) and pd.isna(value):
        return None
    return value


def _read_csv(stream: BinaryIO) -> List[Dict[str, Any]]:
    text_stream = io.TextIOWrapper(stream, encoding="utf-8-sig", newline="")
    try:
        reader = csv.DictReader(text_stream)
        return [
            {str(k).strip(): v for k, v in raw.items() if k is not None}
            for raw in reader
        ]
    finally:
        # Leave the caller's handle open
        text_stream.detach()


def _read_excel(source: Union[Path, BinaryIO]) -> List[Dict[str, Any]]:
    frame = pd.read_excel(source, dtype=object)
    frame.columns = [str(c).strip() for c in frame.columns]
    return [
        {column: _clean_cell(value) for column, value in record.items()}
        for record in frame.to_dict(orient="records")
    ]


class InventoryService:
    """Inventory import and scope lookups"""

    def __init__(self, store: RecordStore, audit: AuditLogger, clock: Optional[Clock] = None):
        self.store = store
        self.audit = audit
        self.clock = clock or SystemClock()

    # Reading

    def read_rows(self, source: Source, file_name: Optional[str] = None) -> List[Dict[str, Any]]:
        """
        Load the full content of an uploaded file into raw rows

        Supports .csv and .xlsx/.xls. Raises ImportFailed (after an ERROR
        audit entry) when the file cannot be read.
        """
        name = file_name or (str(source) if isinstance(source, (str, Path)) else "upload")
        extension = Path(name).suffix.lower()

        try:
            if extension not in CSV_EXTENSIONS | EXCEL_EXTENSIONS:
                raise ValueError(f"unsupported file type '{extension or name}'")

            if isinstance(source, (str, Path)):
                with open(source, "rb") as handle:
                    rows = self._read_stream(handle, extension)
            else:
                source.seek(0)
                rows = self._read_stream(source, extension)
        except (OSError, UnicodeDecodeError, csv.Error, ValueError, zipfile.BadZipFile, ImportError) as exc:
            logger.warning(f"Could not read {name}: {exc}")
            self.audit.log_error("File import failed", exc, file_name=name)
            raise ImportFailed(name, str(exc)) from exc

        if len(rows) > settings.MAX_UPLOAD_ROWS:
            error = ImportFailed(name, f"{len(rows)} rows exceeds the limit of {settings.MAX_UPLOAD_ROWS}")
            self.audit.log_error("File import failed", error, file_name=name)
            raise error

        logger.info(f"Read {len(rows)} rows from {name}")
        return rows

    def _read_stream(self, stream: BinaryIO, extension: str) -> List[Dict[str, Any]]:
        if extension in CSV_EXTENSIONS:
            return _read_csv(stream)
        return _read_excel(stream)

    # Import

    def import_rows(
        self,
        rows: Sequence[Mapping[str, Any]],
        file_name: Optional[str] = None,
    ) -> ImportResult:
        """
        Validate, deduplicate and persist one batch of raw rows

        Invalid and duplicate rows are returned in `rejected`; they never
        stop the import of the other rows. Blank rows are skipped.
        """
        imported_at = self.clock.now()
        batch_id = f"BATCH-{imported_at:%Y%m%d%H%M%S}-{uuid.uuid4().hex[:6]}"

        rejected: List[RejectedRow] = []
        valid = []  # (row_number, row, fields)

        for row_number, row in enumerate(rows, start=FIRST_DATA_ROW):
            if all(is_missing(v) for v in row.values()):
                continue
            result = validate_row(row)
            if not result.is_valid:
                rejected.append(RejectedRow(
                    row_number=row_number,
                    row=dict(row),
                    reason=VALIDATION_REASON,
                    errors=result.errors,
                ))
                continue
            valid.append((row_number, row, result.fields))

        existing_keys = {record.key for record in self.inventory()}
        dedup = deduplicate_rows([row for _, row, _ in valid], existing_keys=existing_keys)
        kept = set(dedup.unique_indices)

        records: List[InventoryImportRecord] = []
        for index, (row_number, row, fields) in enumerate(valid):
            if index not in kept:
                rejected.append(RejectedRow(
                    row_number=row_number,
                    row=dict(row),
                    reason=DUPLICATE_REASON,
                    errors=[DUPLICATE_REASON],
                ))
                continue
            records.append(InventoryImportRecord(
                **fields,
                imported_at=imported_at,
                import_batch=batch_id,
            ))

        try:
            self.store.put_many(
                Table.inventory_import,
                {record.id: record.model_dump(mode="json") for record in records},
            )
        except StorageFailed as exc:
            self.audit.log_error(
                "Inventory import failed",
                exc,
                file_name=file_name,
                import_batch=batch_id,
                record_count=len(records),
            )
            raise

        rejected.sort(key=lambda r: r.row_number)
        result = ImportResult(
            import_batch=batch_id,
            file_name=file_name,
            imported_at=imported_at,
            records=records,
            rejected=rejected,
        )

        logger.info(
            f"Imported {result.record_count} records from {file_name or 'rows'} "
            f"({result.rejected_count} rejected, {result.duplicate_count} duplicates)"
        )
        self.audit.log(
            AuditUser.SYSTEM,
            "Inventory imported",
            details={
                "file_name": file_name,
                "record_count": result.record_count,
                "rejected_count": result.rejected_count,
                "duplicate_count": result.duplicate_count,
                "import_batch": batch_id,
            },
        )
        return result

    def import_file(self, source: Source, file_name: Optional[str] = None) -> ImportResult:
        name = file_name or (str(source) if isinstance(source, (str, Path)) else None)
        rows = self.read_rows(source, file_name=name)
        return self.import_rows(rows, file_name=name)

    # Scope lookups

    def inventory(self) -> List[InventoryImportRecord]:
        return [InventoryImportRecord.model_validate(r) for r in self.store.scan(Table.inventory_import)]

    def list_locations(self) -> List[str]:
        return sorted({record.location for record in self.inventory()})

    def list_bins(self, location: str, prefix: Optional[str] = None) -> List[str]:
        return filter_bins(
            (record.bin for record in self.inventory() if record.location == location),
            prefix=prefix,
        )

    def scoped_inventory(self, location: str, bins: Optional[Iterable[str]] = None) -> List[InventoryImportRecord]:
        """Records of a location, optionally restricted to a set of bins"""
        bin_set = set(bins) if bins is not None else None
        return [
            record for record in self.inventory()
            if record.location == location and (bin_set is None or record.bin in bin_set)
        ]

    def find_pallet(
        self,
        location: str,
        pallet_id: str,
        bins: Iterable[str],
        bin: Optional[str] = None,
    ) -> InventoryImportRecord:
        """
        Import record for a pallet within a location and bin scope

        `bin` is needed only when the pallet sits in more than one of the
        scoped bins.
        """
        scope = [bin] if bin else list(bins)
        matches = [r for r in self.scoped_inventory(location, scope) if r.pallet_id == pallet_id]
        if not matches:
            raise RecordNotFound(Table.inventory_import.value, pallet_id)
        if len(matches) > 1:
            raise InvalidScope(
                f"Pallet {pallet_id} is in bins {sorted(r.bin for r in matches)}; specify the bin",
                location=location,
                bins=[r.bin for r in matches],
            )
        return matches[0]
