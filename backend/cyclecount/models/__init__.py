"""
Models Package
SQLAlchemy models and shared enumerations for the cycle count backend
"""

from cyclecount.models.enums import (
    InventoryStatus,
    SessionStatus,
    ActionStatus,
    AuditUser,
    Table,
    APPEND_ONLY_TABLES,
)
from cyclecount.models.record import StoredRecord

__all__ = [
    # Enums
    "InventoryStatus",
    "SessionStatus",
    "ActionStatus",
    "AuditUser",
    "Table",
    "APPEND_ONLY_TABLES",

    # Storage (append-only tables are IMMUTABLE)
    "StoredRecord",
]
