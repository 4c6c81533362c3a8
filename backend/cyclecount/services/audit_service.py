"""
Audit Service
Append-only audit trail for every state change in the pipeline

The logger writes each entry through to the AuditLog table. Audit logging
must never break the operation that triggered it: a failed write is kept
pending, reported as an ERROR entry, and retried by flush().
"""

from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence
import csv
import io
import json
import logging

from cyclecount.core.clock import Clock, SystemClock
from cyclecount.models.enums import AuditUser, Table
from cyclecount.repositories.record_store import RecordStore
from cyclecount.schemas.audit import AuditLogEntry

logger = logging.getLogger(__name__)

EXPORT_COLUMNS = ["log_id", "session_id", "timestamp", "user", "action", "details"]
AUDIT_WRITE_FAILED = "Audit log write failed"


class AuditTrail:
    """
    Append-only, time-ordered sequence of audit entries

    There is no operation to replace or remove an entry.
    """

    def __init__(self, entries: Iterable[AuditLogEntry] = ()):
        self._entries: List[AuditLogEntry] = []
        for entry in entries:
            self.append(entry)

    def append(self, entry: AuditLogEntry) -> None:
        if self._entries and entry.timestamp < self._entries[-1].timestamp:
            raise ValueError(
                f"Audit entry {entry.log_id} is older than the last entry in the trail"
            )
        self._entries.append(entry)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[AuditLogEntry]:
        return iter(tuple(self._entries))

    def __getitem__(self, index):
        if isinstance(index, slice):
            return tuple(self._entries[index])
        return self._entries[index]

    @property
    def last_timestamp(self) -> Optional[datetime]:
        return self._entries[-1].timestamp if self._entries else None

    @property
    def next_sequence(self) -> int:
        return self._entries[-1].sequence + 1 if self._entries else 1

    def recent(self, limit: int = 30) -> List[AuditLogEntry]:
        """Most recent entries, newest first"""
        if limit <= 0:
            return []
        return list(reversed(self._entries[-limit:]))

    def for_session(self, session_id: str) -> List[AuditLogEntry]:
        return [e for e in self._entries if e.session_id == session_id]


class AuditLogger:
    """Creates audit entries; invoked by every other component"""

    def __init__(
        self,
        store: Optional[RecordStore] = None,
        clock: Optional[Clock] = None,
        trail: Optional[AuditTrail] = None,
    ):
        self.store = store
        self.clock = clock or SystemClock()
        self.trail = trail if trail is not None else AuditTrail()
        self._pending: List[AuditLogEntry] = []

    @property
    def pending(self) -> Sequence[AuditLogEntry]:
        """Entries not yet persisted"""
        return tuple(self._pending)

    def log(
        self,
        user: AuditUser,
        action: str,
        session_id: Optional[str] = None,
        details: Optional[Mapping[str, Any]] = None,
    ) -> Optional[AuditLogEntry]:
        """
        Append an entry to the trail and persist it

        Returns the new entry, or None when the input could not be turned
        into an entry at all. Never raises.
        """
        try:
            entry = self._append(user, action, session_id, details)
        except Exception:
            logger.exception(f"Dropped audit entry '{action}'")
            return None

        self._persist(entry)
        return entry

    def log_error(
        self,
        action: str,
        error: BaseException,
        session_id: Optional[str] = None,
        **details: Any,
    ) -> Optional[AuditLogEntry]:
        """ERROR entry carrying the error message in details.error"""
        payload = {"error": str(error), **details}
        code = getattr(error, "code", None)
        if code:
            payload["code"] = code
        return self.log(AuditUser.ERROR, action, session_id=session_id, details=payload)

    def recent(self, limit: int = 30) -> List[AuditLogEntry]:
        return self.trail.recent(limit)

    def flush(self) -> int:
        """Retry pending writes; returns how many were persisted"""
        if self.store is None or not self._pending:
            return 0

        written = 0
        still_pending = []
        for entry in self._pending:
            try:
                self.store.put(Table.audit_log, entry.log_id, entry.model_dump(mode="json"))
                written += 1
            except Exception:
                logger.exception(f"Audit entry {entry.log_id} still not persisted")
                still_pending.append(entry)
        self._pending = still_pending

        if written:
            logger.info(f"Flushed {written} pending audit entries")
        return written

    def restore(self) -> int:
        """Load entries already in the store into an empty trail"""
        if self.store is None or len(self.trail):
            return 0
        self.trail = load_trail(self.store)
        return len(self.trail)

    def _append(self, user, action, session_id, details) -> AuditLogEntry:
        timestamp = self.clock.now()
        last = self.trail.last_timestamp
        if last is not None and timestamp < last:
            timestamp = last

        entry = AuditLogEntry(
            session_id=session_id,
            timestamp=timestamp,
            user=AuditUser(user),
            action=action,
            details=dict(details or {}),
            sequence=self.trail.next_sequence,
        )
        self.trail.append(entry)

        level = logging.ERROR if entry.user == AuditUser.ERROR else logging.INFO
        logger.log(level, f"[{entry.user.value}] {entry.action} session={entry.session_id} details={entry.details}")
        return entry

    def _persist(self, entry: AuditLogEntry) -> None:
        if self.store is None:
            return
        try:
            self.store.put(Table.audit_log, entry.log_id, entry.model_dump(mode="json"))
        except Exception as exc:
            logger.exception(f"Failed to persist audit entry {entry.log_id}")
            self._pending.append(entry)
            if entry.action == AUDIT_WRITE_FAILED:
                return
            try:
                failure = self._append(
                    AuditUser.ERROR,
                    AUDIT_WRITE_FAILED,
                    entry.session_id,
                    {"error": str(exc), "log_id": entry.log_id, "action": entry.action},
                )
            except Exception:
                logger.exception("Could not record audit write failure")
                return
            self._persist(failure)


def load_trail(store: RecordStore) -> AuditTrail:
    """Rebuild the trail from the AuditLog table in write order"""
    entries = [AuditLogEntry.model_validate(r) for r in store.scan(Table.audit_log)]
    entries.sort(key=lambda e: (e.timestamp, e.sequence))
    return AuditTrail(entries)


# Export


def _export_row(entry: AuditLogEntry) -> Dict[str, Any]:
    return entry.model_dump(mode="json", exclude={"sequence"})


def export_json(entries: Iterable[AuditLogEntry], lines: bool = False) -> str:
    """Array of objects, or one object per line when `lines` is set"""
    rows = [_export_row(e) for e in entries]
    if lines:
        return "".join(json.dumps(row, ensure_ascii=False) + "\n" for row in rows)
    return json.dumps(rows, ensure_ascii=False, indent=2)


def export_csv(entries: Iterable[AuditLogEntry]) -> str:
    """CSV with the details mapping JSON-encoded in one column"""
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=EXPORT_COLUMNS, lineterminator="\n")
    writer.writeheader()
    for entry in entries:
        row = _export_row(entry)
        row["details"] = json.dumps(row["details"], ensure_ascii=False, sort_keys=True)
        row["session_id"] = row["session_id"] or ""
        writer.writerow(row)
    return buffer.getvalue()


def write_export(entries: Iterable[AuditLogEntry], path: Path, fmt: str = "json") -> Path:
    """Write an export file (UTF-8) for compliance hand-off"""
    if fmt == "csv":
        content = export_csv(entries)
    elif fmt in ("json", "jsonl"):
        content = export_json(entries, lines=fmt == "jsonl")
    else:
        raise ValueError(f"Unsupported export format: {fmt}")

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    logger.info(f"Exported audit log to {path}")
    return path
