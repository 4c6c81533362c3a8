"""
Shared fixtures: deterministic clock, in-memory pipeline, sample rows.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from cyclecount.core.clock import Clock
from cyclecount.core.database import init_db, session_factory
from cyclecount.core.exceptions import StorageFailed
from cyclecount.models.enums import Table
from cyclecount.repositories.record_store import InMemoryRecordStore, SQLAlchemyRecordStore
from cyclecount.services.pipeline import CountingPipeline

START = datetime(2026, 2, 1, 10, 0, 0, tzinfo=timezone.utc)


class StepClock(Clock):
    """Returns the current instant, then moves forward by `step`."""

    def __init__(self, start: datetime = START, step: timedelta = timedelta(seconds=1)) -> None:
        self.current = start
        self.step = step

    def now(self) -> datetime:
        value = self.current
        self.current = self.current + self.step
        return value

    def advance(self, seconds: float) -> None:
        self.current = self.current + timedelta(seconds=seconds)


@pytest.fixture()
def clock() -> StepClock:
    return StepClock()


@pytest.fixture()
def store() -> InMemoryRecordStore:
    return InMemoryRecordStore()


@pytest.fixture()
def sql_store() -> SQLAlchemyRecordStore:
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    yield SQLAlchemyRecordStore(session_factory(engine))
    engine.dispose()


@pytest.fixture()
def pipeline(store, clock) -> CountingPipeline:
    return CountingPipeline(store, clock)


@pytest.fixture()
def sample_rows() -> list[dict]:
    return [
        {"Location": "Area-A", "Bin": "A-1", "PalletID": "PAL-001", "ItemNumber": "SKU-1001", "SystemQuantity": 50},
        {"Location": "Area-A", "Bin": "A-1", "PalletID": "PAL-002", "ItemNumber": "SKU-1002", "SystemQuantity": 75},
        {"Location": "Area-A", "Bin": "A-2", "PalletID": "PAL-001", "ItemNumber": "SKU-1001", "SystemQuantity": 20},
        {"Location": "Area-A", "Bin": "A-3", "PalletID": "PAL-003", "ItemNumber": "SKU-1003", "SystemQuantity": 100},
        {"Location": "Area-B", "Bin": "B-1", "PalletID": "PAL-004", "ItemNumber": "SKU-2001", "SystemQuantity": 120},
    ]


@pytest.fixture()
def imported(pipeline, sample_rows):
    """Pipeline with sample_rows already imported."""
    pipeline.inventory.import_rows(sample_rows, file_name="inventory.csv")
    return pipeline


@pytest.fixture()
def record_for(pipeline):
    """Look up an imported record by (pallet_id, bin)."""

    def _find(pallet_id: str, bin: str):
        return next(
            r for r in pipeline.inventory.inventory()
            if r.pallet_id == pallet_id and r.bin == bin
        )

    return _find


class FlakyStore(InMemoryRecordStore):
    """In-memory store whose writes to selected tables fail."""

    def __init__(self, fail_tables=()) -> None:
        super().__init__()
        self.fail_tables = {t.value if isinstance(t, Table) else t for t in fail_tables}

    def put(self, table, key, record) -> None:
        self._check(table)
        super().put(table, key, record)

    def put_many(self, table, records) -> None:
        self._check(table)
        super().put_many(table, records)

    def _check(self, table) -> None:
        name = table.value if isinstance(table, Table) else table
        if name in self.fail_tables:
            raise StorageFailed(name, "put", "disk full")


@pytest.fixture()
def flaky_store() -> FlakyStore:
    return FlakyStore()
