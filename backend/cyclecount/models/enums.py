"""
Enumerations shared by records, storage and the API
"""

import enum


class InventoryStatus(str, enum.Enum):
    """Import record status enumeration"""
    active = "Active"
    inactive = "Inactive"
    pending = "Pending"


class SessionStatus(str, enum.Enum):
    """
    Count session lifecycle

    Forward only: in-progress -> completed -> submitted
    """
    in_progress = "in-progress"
    completed = "completed"
    submitted = "submitted"


class ActionStatus(str, enum.Enum):
    """Count action status enumeration"""
    confirmed = "confirmed"
    flagged = "flagged"
    pending_review = "pending_review"


class AuditUser(str, enum.Enum):
    """Entity performing an audited action"""
    USER = "USER"
    SYSTEM = "SYSTEM"
    ERROR = "ERROR"


class Table(str, enum.Enum):
    """Record store tables"""
    inventory_import = "InventoryImport"
    count_sessions = "CountSessions"
    count_actions = "CountActions"
    audit_log = "AuditLog"


# Tables whose records may be written once and never replaced
APPEND_ONLY_TABLES = frozenset({
    Table.inventory_import.value,
    Table.count_actions.value,
    Table.audit_log.value,
})
