"""
tests/test_inventory_import.py

Inventory import: reading CSV and Excel uploads, validation and
deduplication of the batch, persistence and audit, scope lookups.
"""

from __future__ import annotations

import io

import pandas as pd
import pytest
from sqlalchemy import event
from sqlalchemy.exc import SQLAlchemyError

from cyclecount.core.config import settings
from cyclecount.core.exceptions import ImportFailed, InvalidScope, RecordNotFound, StorageFailed
from cyclecount.models.enums import AuditUser, InventoryStatus, Table
from cyclecount.models.record import StoredRecord
from cyclecount.services.inventory_service import filter_bins
from cyclecount.services.pipeline import CountingPipeline

CSV_CONTENT = (
    "Location,Bin,PalletID,ItemNumber,SystemQuantity,ExpiryDate,UOM\n"
    "Area-A,A-1,PAL-001,SKU-1001,50,2026-12-31,Case\n"
    "Area-A,A-1,PAL-002,SKU-1002,75,,\n"
    "Area-A,A-1,PAL-001,SKU-1001,50,,\n"
    ",,,,,,\n"
    "Area-A,A-2,PAL-003,SKU-1003,abc,,\n"
)


class TestImportRows:
    def test_valid_rows_become_records(self, pipeline, sample_rows) -> None:
        result = pipeline.inventory.import_rows(sample_rows, file_name="inventory.csv")

        assert result.record_count == 5
        assert result.rejected_count == 0
        assert [(r.pallet_id, r.bin) for r in result.records] == [
            ("PAL-001", "A-1"),
            ("PAL-002", "A-1"),
            ("PAL-001", "A-2"),
            ("PAL-003", "A-3"),
            ("PAL-004", "B-1"),
        ]

    def test_records_share_one_batch(self, pipeline, sample_rows, clock) -> None:
        started = clock.current

        result = pipeline.inventory.import_rows(sample_rows)

        assert result.import_batch.startswith("BATCH-20260201100000-")
        assert {r.import_batch for r in result.records} == {result.import_batch}
        assert {r.imported_at for r in result.records} == {started}

    def test_defaults_applied(self, pipeline, sample_rows) -> None:
        record = pipeline.inventory.import_rows(sample_rows[:1]).records[0]

        assert record.uom == "Unit"
        assert record.description == ""
        assert record.expiry_date is None
        assert record.status == InventoryStatus.active

    def test_invalid_rows_are_rejected_with_row_numbers(self, pipeline, sample_rows) -> None:
        sample_rows[1]["SystemQuantity"] = "lots"
        del sample_rows[3]["ItemNumber"]

        result = pipeline.inventory.import_rows(sample_rows)

        assert result.record_count == 3
        assert [(r.row_number, r.reason) for r in result.rejected] == [
            (3, "Validation failed"),
            (5, "Validation failed"),
        ]
        assert result.rejected[0].errors == ["SystemQuantity must be a number, got: lots"]
        assert result.rejected[1].errors == ["Missing required column: ItemNumber"]

    def test_duplicates_within_file(self, pipeline, sample_rows) -> None:
        rows = sample_rows + [dict(sample_rows[0], SystemQuantity=999)]

        result = pipeline.inventory.import_rows(rows)

        assert result.record_count == 5
        assert result.duplicate_count == 1
        assert result.rejected[0].row_number == 7
        kept = next(r for r in result.records if r.key == ("PAL-001", "A-1"))
        assert kept.system_quantity == 50

    def test_duplicates_against_stored_records(self, imported, sample_rows) -> None:
        result = imported.inventory.import_rows(sample_rows)

        assert result.record_count == 0
        assert result.duplicate_count == 5
        assert len(imported.inventory.inventory()) == 5

    def test_invalid_row_does_not_count_as_seen(self, pipeline, sample_rows) -> None:
        bad = dict(sample_rows[0], SystemQuantity="x")

        result = pipeline.inventory.import_rows([bad, sample_rows[0]])

        assert result.record_count == 1
        assert result.duplicate_count == 0

    def test_blank_rows_are_skipped(self, pipeline, sample_rows) -> None:
        blank = {"Location": "", "Bin": None, "PalletID": "  ", "ItemNumber": float("nan"), "SystemQuantity": None}

        result = pipeline.inventory.import_rows([sample_rows[0], blank, sample_rows[1]])

        assert result.record_count == 2
        assert result.rejected_count == 0

    def test_records_are_persisted(self, pipeline, sample_rows, store) -> None:
        result = pipeline.inventory.import_rows(sample_rows)

        stored = store.scan(Table.inventory_import)
        assert sorted(r["id"] for r in stored) == sorted(r.id for r in result.records)

    def test_import_is_audited(self, pipeline, sample_rows) -> None:
        rows = sample_rows + [dict(sample_rows[0])]

        result = pipeline.inventory.import_rows(rows, file_name="inventory.csv")

        entry = pipeline.audit.trail[-1]
        assert entry.user == AuditUser.SYSTEM
        assert entry.action == "Inventory imported"
        assert entry.session_id is None
        assert entry.details == {
            "file_name": "inventory.csv",
            "record_count": 5,
            "rejected_count": 1,
            "duplicate_count": 1,
            "import_batch": result.import_batch,
        }

    def test_storage_failure_is_audited_and_raised(self, flaky_store, clock, sample_rows) -> None:
        flaky_store.fail_tables = {Table.inventory_import.value}
        pipeline = CountingPipeline(flaky_store, clock)

        with pytest.raises(StorageFailed):
            pipeline.inventory.import_rows(sample_rows, file_name="inventory.csv")

        entry = pipeline.audit.trail[-1]
        assert entry.user == AuditUser.ERROR
        assert entry.action == "Inventory import failed"
        assert entry.details["code"] == "STORAGE_FAILED"
        assert entry.details["record_count"] == 5

    def test_storage_failure_mid_batch_writes_nothing(self, sql_store, clock, sample_rows) -> None:
        pipeline = CountingPipeline(sql_store, clock)
        inserted = []

        def fail_third_insert(mapper, connection, target) -> None:
            if target.table_name == Table.inventory_import.value:
                inserted.append(target.record_key)
                if len(inserted) == 3:
                    raise SQLAlchemyError("disk full")

        event.listen(StoredRecord, "before_insert", fail_third_insert)
        try:
            with pytest.raises(StorageFailed):
                pipeline.inventory.import_rows(sample_rows, file_name="inventory.csv")
        finally:
            event.remove(StoredRecord, "before_insert", fail_third_insert)

        assert len(inserted) == 3
        assert pipeline.inventory.inventory() == []

        retried = pipeline.inventory.import_rows(sample_rows, file_name="inventory.csv")
        assert retried.record_count == 5
        assert retried.duplicate_count == 0

    def test_same_row_object_twice_is_a_duplicate(self, pipeline, sample_rows) -> None:
        row = sample_rows[0]

        result = pipeline.inventory.import_rows([row, row])

        assert result.record_count == 1
        assert result.duplicate_count == 1
        assert [r.row_number for r in result.rejected] == [3]
        keys = [record.key for record in pipeline.inventory.inventory()]
        assert keys == [("PAL-001", "A-1")]


class TestReadFiles:
    def test_csv_file(self, pipeline, tmp_path) -> None:
        path = tmp_path / "inventory.csv"
        path.write_text(CSV_CONTENT, encoding="utf-8")

        result = pipeline.inventory.import_file(path)

        assert result.record_count == 2
        assert result.duplicate_count == 1
        assert result.rejected_count == 2
        first = result.records[0]
        assert first.system_quantity == 50
        assert first.uom == "Case"
        assert first.expiry_date.isoformat() == "2026-12-31"

    def test_csv_with_byte_order_mark(self, pipeline) -> None:
        upload = io.BytesIO(("\ufeff" + CSV_CONTENT).encode("utf-8"))

        rows = pipeline.inventory.read_rows(upload, file_name="inventory.csv")

        assert rows[0]["Location"] == "Area-A"
        assert not upload.closed

    def test_excel_file(self, pipeline, tmp_path, sample_rows) -> None:
        path = tmp_path / "inventory.xlsx"
        frame = pd.DataFrame(sample_rows)
        frame["ExpiryDate"] = [pd.Timestamp("2026-12-31"), None, None, None, None]
        frame.to_excel(path, index=False)

        result = pipeline.inventory.import_file(path)

        assert result.record_count == 5
        assert result.records[0].expiry_date.isoformat() == "2026-12-31"
        assert result.records[1].expiry_date is None
        assert result.records[4].system_quantity == 120

    def test_excel_stream(self, pipeline, sample_rows) -> None:
        buffer = io.BytesIO()
        pd.DataFrame(sample_rows).to_excel(buffer, index=False)

        result = pipeline.inventory.import_file(buffer, file_name="upload.xlsx")

        assert result.record_count == 5
        assert result.file_name == "upload.xlsx"

    def test_unsupported_extension(self, pipeline, tmp_path) -> None:
        path = tmp_path / "inventory.txt"
        path.write_text(CSV_CONTENT, encoding="utf-8")

        with pytest.raises(ImportFailed) as exc_info:
            pipeline.inventory.import_file(path)

        assert "unsupported file type" in exc_info.value.reason

    def test_missing_file(self, pipeline, tmp_path) -> None:
        with pytest.raises(ImportFailed):
            pipeline.inventory.import_file(tmp_path / "missing.csv")

    def test_corrupt_workbook(self, pipeline) -> None:
        with pytest.raises(ImportFailed):
            pipeline.inventory.read_rows(io.BytesIO(b"not a workbook"), file_name="broken.xlsx")

    def test_read_failure_is_audited(self, pipeline, tmp_path) -> None:
        with pytest.raises(ImportFailed):
            pipeline.inventory.import_file(tmp_path / "missing.csv")

        entry = pipeline.audit.trail[-1]
        assert entry.user == AuditUser.ERROR
        assert entry.action == "File import failed"
        assert entry.details["file_name"].endswith("missing.csv")
        assert pipeline.inventory.inventory() == []

    def test_row_limit(self, pipeline, monkeypatch) -> None:
        monkeypatch.setattr(settings, "MAX_UPLOAD_ROWS", 1)
        upload = io.BytesIO(CSV_CONTENT.encode("utf-8"))

        with pytest.raises(ImportFailed) as exc_info:
            pipeline.inventory.read_rows(upload, file_name="inventory.csv")

        assert "exceeds the limit" in exc_info.value.reason


class TestScopeLookups:
    def test_locations(self, imported) -> None:
        assert imported.inventory.list_locations() == ["Area-A", "Area-B"]

    def test_bins_of_location(self, imported) -> None:
        assert imported.inventory.list_bins("Area-A") == ["A-1", "A-2", "A-3"]
        assert imported.inventory.list_bins("Area-C") == []

    def test_bin_prefix_filter(self) -> None:
        assert filter_bins(["B-2", "A-1", "A-10", "B-1", "A-1"], prefix="A-") == ["A-1", "A-10"]
        assert filter_bins(["B-1", "A-1"]) == ["A-1", "B-1"]

    def test_scoped_inventory(self, imported) -> None:
        records = imported.inventory.scoped_inventory("Area-A", ["A-1", "A-3"])

        assert sorted(r.key for r in records) == [
            ("PAL-001", "A-1"),
            ("PAL-002", "A-1"),
            ("PAL-003", "A-3"),
        ]

    def test_find_pallet(self, imported) -> None:
        record = imported.inventory.find_pallet("Area-A", "PAL-003", bins=["A-3"])
        assert record.system_quantity == 100

    def test_find_pallet_outside_bins(self, imported) -> None:
        with pytest.raises(RecordNotFound):
            imported.inventory.find_pallet("Area-A", "PAL-003", bins=["A-1"])

    def test_pallet_in_two_bins_needs_the_bin(self, imported) -> None:
        with pytest.raises(InvalidScope):
            imported.inventory.find_pallet("Area-A", "PAL-001", bins=["A-1", "A-2"])

        record = imported.inventory.find_pallet("Area-A", "PAL-001", bins=["A-1", "A-2"], bin="A-2")
        assert record.system_quantity == 20
