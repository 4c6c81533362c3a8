"""
Typed Exceptions
Error kinds raised by the reconciliation pipeline

    CycleCountError (base)
    |
    +-- ScopeError
    |   +-- InvalidScope
    |   +-- OutOfScope
    |
    +-- SessionStateError
    |   +-- InvalidTransition
    |   +-- SessionClosed
    |
    +-- InvalidQuantity
    +-- NotFoundError
    |   +-- SessionNotFound
    |   +-- RecordNotFound
    |
    +-- PipelineIOError
        +-- ImportFailed
        +-- StorageFailed
            +-- ImmutableRecordError

Recoverable errors are raised before any state change. PipelineIOError
subclasses are audited as ERROR entries by the component that raises them.
Row validation problems and duplicate rows are collected, not raised
(see RejectedRow in cyclecount.schemas.inventory).
"""

from typing import Any, Dict, Iterable, Optional


class CycleCountError(Exception):
    """
    Base exception for all pipeline errors

    Subclasses carry a `code` class attribute for machine-readable handling.
    """

    code: str = "CYCLE_COUNT_ERROR"

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": str(self)}


# Scope


class ScopeError(CycleCountError):
    code: str = "SCOPE_ERROR"


class InvalidScope(ScopeError):
    """Session scope is empty or matches no inventory."""

    code: str = "INVALID_SCOPE"

    def __init__(self, message: str, location: Optional[str] = None, bins: Iterable[str] = ()):
        self.location = location
        self.bins = list(bins)
        super().__init__(message)


class OutOfScope(ScopeError):
    """Pallet does not belong to the session's location and bins."""

    code: str = "OUT_OF_SCOPE"

    def __init__(self, session_id: str, pallet_id: str, reason: str):
        self.session_id = session_id
        self.pallet_id = pallet_id
        self.reason = reason
        super().__init__(f"Pallet {pallet_id} is out of scope for session {session_id}: {reason}")


# Session lifecycle


class SessionStateError(CycleCountError):
    code: str = "SESSION_STATE_ERROR"


class InvalidTransition(SessionStateError):
    """Lifecycle transition not allowed from the current status."""

    code: str = "INVALID_TRANSITION"

    def __init__(self, session_id: str, from_status: str, to_status: str):
        self.session_id = session_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Session {session_id} cannot move from '{from_status}' to '{to_status}'"
        )


class SessionClosed(SessionStateError):
    """Counts can only be recorded while a session is in progress."""

    code: str = "SESSION_CLOSED"

    def __init__(self, session_id: str, status: str):
        self.session_id = session_id
        self.status = status
        super().__init__(f"Session {session_id} is {status}; counts are no longer accepted")


# Count input


class InvalidQuantity(CycleCountError):
    code: str = "INVALID_QUANTITY"

    def __init__(self, value: Any):
        self.value = value
        super().__init__(f"Counted quantity must be a non-negative integer, got: {value!r}")


# Lookups


class NotFoundError(CycleCountError):
    code: str = "NOT_FOUND"


class SessionNotFound(NotFoundError):
    code: str = "SESSION_NOT_FOUND"

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session not found: {session_id}")


class RecordNotFound(NotFoundError):
    code: str = "RECORD_NOT_FOUND"

    def __init__(self, table: str, key: str):
        self.table = table
        self.key = key
        super().__init__(f"{table} record not found: {key}")


# Collaborator I/O


class PipelineIOError(CycleCountError):
    code: str = "IO_ERROR"


class ImportFailed(PipelineIOError):
    """Uploaded file could not be read into rows."""

    code: str = "IMPORT_FAILED"

    def __init__(self, file_name: str, reason: str):
        self.file_name = file_name
        self.reason = reason
        super().__init__(f"Import of {file_name} failed: {reason}")


class StorageFailed(PipelineIOError):
    """Record store read or write failed."""

    code: str = "STORAGE_FAILED"

    def __init__(self, table: str, operation: str, reason: str):
        self.table = table
        self.operation = operation
        self.reason = reason
        super().__init__(f"Storage {operation} on {table} failed: {reason}")


class ImmutableRecordError(StorageFailed):
    """Attempt to overwrite or delete a record in an append-only table."""

    code: str = "IMMUTABLE_RECORD"

    def __init__(self, table: str, key: str, operation: str = "put"):
        self.key = key
        super().__init__(table, operation, f"record {key} is immutable")
