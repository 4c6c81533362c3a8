"""
Record store implementations for the four pipeline tables.

A record store is a key-sorted table store: ``get``/``put``/``scan`` over
``InventoryImport``, ``CountSessions``, ``CountActions`` and ``AuditLog``.
Records are plain JSON-compatible dicts; typed models are built by callers.
"""

from __future__ import annotations

import copy
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from cyclecount.core.exceptions import ImmutableRecordError, StorageFailed
from cyclecount.models.enums import APPEND_ONLY_TABLES, Table
from cyclecount.models.record import StoredRecord

logger = logging.getLogger(__name__)

Record = Dict[str, Any]
Predicate = Callable[[Record], bool]

TABLE_NAMES = frozenset(t.value for t in Table)


def _table_name(table: str | Table) -> str:
    name = table.value if isinstance(table, Table) else table
    if name not in TABLE_NAMES:
        raise StorageFailed(str(name), "lookup", "unknown table")
    return name


class RecordStore(ABC):
    """
    Storage abstraction for pipeline records.
    """

    @abstractmethod
    def get(self, table: str | Table, key: str) -> Optional[Record]:
        """
        Return the record stored under ``key`` or None.
        """

    @abstractmethod
    def put(self, table: str | Table, key: str, record: Record) -> None:
        """
        Store ``record`` under ``key``.

        Raises ImmutableRecordError when ``key`` already exists in an
        append-only table.
        """

    @abstractmethod
    def put_many(self, table: str | Table, records: Dict[str, Record]) -> None:
        """
        Store every ``key -> record`` pair of ``records`` or none of them.

        Raises ImmutableRecordError, before anything is written, when one
        of the keys already exists in an append-only table.
        """

    @abstractmethod
    def scan(self, table: str | Table, predicate: Optional[Predicate] = None) -> List[Record]:
        """
        Return records matching ``predicate`` in key order.
        """


class InMemoryRecordStore(RecordStore):
    """
    Dict-backed store for tests and ephemeral hosts.
    """

    def __init__(self) -> None:
        self._tables: Dict[str, Dict[str, Record]] = {name: {} for name in TABLE_NAMES}

    def get(self, table: str | Table, key: str) -> Optional[Record]:
        record = self._tables[_table_name(table)].get(key)
        return copy.deepcopy(record) if record is not None else None

    def put(self, table: str | Table, key: str, record: Record) -> None:
        name = _table_name(table)
        rows = self._tables[name]
        if name in APPEND_ONLY_TABLES and key in rows:
            raise ImmutableRecordError(name, key)
        rows[key] = copy.deepcopy(record)

    def put_many(self, table: str | Table, records: Dict[str, Record]) -> None:
        name = _table_name(table)
        rows = self._tables[name]
        if name in APPEND_ONLY_TABLES:
            for key in records:
                if key in rows:
                    raise ImmutableRecordError(name, key)
        staged = {key: copy.deepcopy(record) for key, record in records.items()}
        rows.update(staged)

    def scan(self, table: str | Table, predicate: Optional[Predicate] = None) -> List[Record]:
        rows = self._tables[_table_name(table)]
        matched = []
        for key in sorted(rows):
            record = rows[key]
            if predicate is None or predicate(record):
                matched.append(copy.deepcopy(record))
        return matched


class SQLAlchemyRecordStore(RecordStore):
    """
    Persist records into the ``stored_records`` table.

    Each call opens a short-lived ORM session and commits or rolls back
    before closing it.
    """

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def get(self, table: str | Table, key: str) -> Optional[Record]:
        name = _table_name(table)
        db: Session = self._session_factory()
        try:
            row = db.get(StoredRecord, (name, key))
            return copy.deepcopy(row.payload) if row is not None else None
        except SQLAlchemyError as exc:
            logger.exception("Failed to read %s/%s", name, key)
            raise StorageFailed(name, "get", str(exc)) from exc
        finally:
            db.close()

    def put(self, table: str | Table, key: str, record: Record) -> None:
        name = _table_name(table)
        db: Session = self._session_factory()
        try:
            row = db.get(StoredRecord, (name, key))
            if row is None:
                db.add(StoredRecord(table_name=name, record_key=key, payload=copy.deepcopy(record)))
            elif name in APPEND_ONLY_TABLES:
                raise ImmutableRecordError(name, key)
            else:
                row.payload = copy.deepcopy(record)
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            logger.exception("Failed to write %s/%s", name, key)
            raise StorageFailed(name, "put", str(exc)) from exc
        finally:
            db.close()

    def put_many(self, table: str | Table, records: Dict[str, Record]) -> None:
        name = _table_name(table)
        db: Session = self._session_factory()
        try:
            for key, record in records.items():
                row = db.get(StoredRecord, (name, key))
                if row is None:
                    db.add(StoredRecord(table_name=name, record_key=key, payload=copy.deepcopy(record)))
                elif name in APPEND_ONLY_TABLES:
                    raise ImmutableRecordError(name, key)
                else:
                    row.payload = copy.deepcopy(record)
            db.commit()
        except ImmutableRecordError:
            db.rollback()
            raise
        except SQLAlchemyError as exc:
            db.rollback()
            logger.exception("Failed to write %d records to %s", len(records), name)
            raise StorageFailed(name, "put", str(exc)) from exc
        finally:
            db.close()

    def scan(self, table: str | Table, predicate: Optional[Predicate] = None) -> List[Record]:
        name = _table_name(table)
        db: Session = self._session_factory()
        try:
            rows = db.execute(
                select(StoredRecord)
                .where(StoredRecord.table_name == name)
                .order_by(StoredRecord.record_key)
            ).scalars().all()
            payloads = [copy.deepcopy(row.payload) for row in rows]
        except SQLAlchemyError as exc:
            logger.exception("Failed to scan %s", name)
            raise StorageFailed(name, "scan", str(exc)) from exc
        finally:
            db.close()
        if predicate is None:
            return payloads
        return [record for record in payloads if predicate(record)]
