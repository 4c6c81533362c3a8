"""
Repositories Package
Record store collaborators
"""

from cyclecount.repositories.record_store import (
    RecordStore,
    InMemoryRecordStore,
    SQLAlchemyRecordStore,
)

__all__ = [
    "RecordStore",
    "InMemoryRecordStore",
    "SQLAlchemyRecordStore",
]
