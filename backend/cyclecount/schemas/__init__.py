"""
Schemas Package
Pydantic models for pipeline records and request/response validation
"""

from cyclecount.schemas.inventory import (
    DUPLICATE_REASON,
    VALIDATION_REASON,
    InventoryImportRecord,
    RejectedRow,
    ImportResult,
    LocationBinsResponse,
)

from cyclecount.schemas.session import (
    CountSession,
    CountAction,
    SessionCreate,
    CountCreate,
)

from cyclecount.schemas.audit import AuditLogEntry

from cyclecount.schemas.reports import (
    VarianceStats,
    SessionMetrics,
    SessionReportResponse,
)

__all__ = [
    # Inventory
    "DUPLICATE_REASON",
    "VALIDATION_REASON",
    "InventoryImportRecord",
    "RejectedRow",
    "ImportResult",
    "LocationBinsResponse",

    # Sessions
    "CountSession",
    "CountAction",
    "SessionCreate",
    "CountCreate",

    # Audit
    "AuditLogEntry",

    # Reports
    "VarianceStats",
    "SessionMetrics",
    "SessionReportResponse",
]
