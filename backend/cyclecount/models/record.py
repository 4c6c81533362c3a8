"""
Stored Record Model
Key-sorted table store: one row per (table, key) with a JSON payload
"""

from sqlalchemy import Column, String, DateTime, JSON, event
from datetime import datetime, timezone

from cyclecount.core.database import Base
from cyclecount.models.enums import APPEND_ONLY_TABLES


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StoredRecord(Base):
    """
    Stored Record model

    Holds records for the InventoryImport, CountSessions, CountActions and
    AuditLog tables. Rows of append-only tables are insert-only: updates and
    deletes are blocked by the listeners below.
    """
    __tablename__ = "stored_records"

    table_name = Column(String(64), primary_key=True)
    record_key = Column(String(255), primary_key=True)
    payload = Column(JSON, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    def __repr__(self):
        return f"<StoredRecord(table='{self.table_name}', key='{self.record_key}')>"

    def is_append_only(self) -> bool:
        """Check if this row belongs to an append-only table"""
        return self.table_name in APPEND_ONLY_TABLES


@event.listens_for(StoredRecord, 'before_update')
def block_append_only_update(mapper, connection, target):
    """Prevent updates to rows of append-only tables"""
    if target.is_append_only():
        raise ValueError(
            f"{target.table_name} records are immutable. "
            "Write a new record instead of replacing it."
        )


@event.listens_for(StoredRecord, 'before_delete')
def block_append_only_delete(mapper, connection, target):
    """Prevent deletion of rows of append-only tables"""
    if target.is_append_only():
        raise ValueError(f"{target.table_name} records cannot be deleted.")
