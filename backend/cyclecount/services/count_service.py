"""
Count Service
Turns operator observations into immutable count actions

Re-count policy: supersede. Counting a pallet again in the same session
writes a new action that names the earlier one; the earlier action stays in
the store and the audit trail, and the newest action is the effective one.
"""

from typing import Dict, List, Optional, Sequence
import logging

from cyclecount.core.clock import Clock, SystemClock
from cyclecount.core.exceptions import (
    InvalidQuantity,
    OutOfScope,
    SessionClosed,
    StorageFailed,
)
from cyclecount.models.enums import ActionStatus, AuditUser, Table
from cyclecount.repositories.record_store import RecordStore
from cyclecount.schemas.inventory import InventoryImportRecord
from cyclecount.schemas.session import CountAction, CountSession
from cyclecount.services.audit_service import AuditLogger

logger = logging.getLogger(__name__)


def effective_actions(actions: Sequence[CountAction]) -> List[CountAction]:
    """
    Actions not superseded by a later re-count

    Ordered by when each pallet was first counted, so re-counts keep the
    pallet's place in variance tables.
    """
    superseded = {a.supersedes for a in actions if a.supersedes}
    first_counted: Dict[tuple, object] = {}
    for action in sorted(actions, key=lambda a: a.timestamp):
        first_counted.setdefault((action.pallet_id, action.bin), action.timestamp)

    current = [a for a in actions if a.action_id not in superseded]
    current.sort(key=lambda a: first_counted[(a.pallet_id, a.bin)])
    return current


def load_session_actions(store: RecordStore, session_id: str) -> List[CountAction]:
    """All actions of a session in time order, superseded ones included"""
    records = store.scan(Table.count_actions, lambda r: r.get("session_id") == session_id)
    actions = [CountAction.model_validate(r) for r in records]
    actions.sort(key=lambda a: a.timestamp)
    return actions


class CountService:
    """Records counts against an open session"""

    def __init__(self, store: RecordStore, audit: AuditLogger, clock: Optional[Clock] = None):
        self.store = store
        self.audit = audit
        self.clock = clock or SystemClock()

    def record_count(
        self,
        session: CountSession,
        pallet_id: str,
        import_record: InventoryImportRecord,
        counted_quantity: int,
        user_id: str,
        flagged: bool = False,
        notes: Optional[str] = None,
        mark_for_review: bool = False,
    ) -> CountAction:
        """
        Record one observation of a pallet

        Raises InvalidQuantity, OutOfScope or SessionClosed (in that order)
        before anything is written.
        """
        if isinstance(counted_quantity, bool) or not isinstance(counted_quantity, int) or counted_quantity < 0:
            raise InvalidQuantity(counted_quantity)

        if import_record.pallet_id != pallet_id:
            raise OutOfScope(session.session_id, pallet_id, f"import record is for pallet {import_record.pallet_id}")
        if import_record.bin not in session.bins:
            raise OutOfScope(session.session_id, pallet_id, f"bin {import_record.bin} is not in the session")
        if import_record.location != session.location:
            raise OutOfScope(session.session_id, pallet_id, f"location {import_record.location} is not {session.location}")

        if not session.is_open():
            raise SessionClosed(session.session_id, session.status.value)

        previous = self._effective_action(session.session_id, pallet_id, import_record.bin)
        is_flagged = bool(flagged or mark_for_review)

        action = CountAction(
            session_id=session.session_id,
            pallet_id=pallet_id,
            bin=import_record.bin,
            item_number=import_record.item_number,
            system_quantity=import_record.system_quantity,
            counted_quantity=counted_quantity,
            timestamp=self.clock.now(),
            user_id=user_id,
            flagged=is_flagged,
            notes=notes,
            status=ActionStatus.flagged if is_flagged else ActionStatus.confirmed,
            supersedes=previous.action_id if previous else None,
        )

        completed_count = session.completed_count
        variance_count = session.variance_count
        if previous is None:
            completed_count += 1
            if action.variance != 0:
                variance_count += 1

        updated = session.model_copy(update={
            "completed_count": completed_count,
            "variance_count": variance_count,
        })

        # Counters first: a stored action must always be reflected in them
        try:
            self.store.put(Table.count_sessions, updated.session_id, updated.model_dump(mode="json"))
            try:
                self.store.put(Table.count_actions, action.action_id, action.model_dump(mode="json"))
            except StorageFailed:
                self._restore_session(session)
                raise
        except StorageFailed as exc:
            self.audit.log_error("Count not saved", exc, session_id=session.session_id, pallet_id=pallet_id)
            raise

        session.completed_count = completed_count
        session.variance_count = variance_count

        details = {
            "pallet_id": pallet_id,
            "bin": action.bin,
            "system_qty": action.system_quantity,
            "counted_qty": action.counted_quantity,
            "variance": action.variance,
            "flagged": action.flagged,
            "user_id": user_id,
        }
        if previous is not None:
            details["supersedes"] = previous.action_id
        self.audit.log(
            AuditUser.USER,
            "Pallet recounted" if previous else "Pallet counted",
            session_id=session.session_id,
            details=details,
        )
        return action

    def session_actions(self, session_id: str) -> List[CountAction]:
        return load_session_actions(self.store, session_id)

    def effective_actions(self, session_id: str) -> List[CountAction]:
        return effective_actions(self.session_actions(session_id))

    def _restore_session(self, session: CountSession) -> None:
        try:
            self.store.put(Table.count_sessions, session.session_id, session.model_dump(mode="json"))
        except StorageFailed:
            logger.exception(f"Could not restore counters of session {session.session_id}")

    def _effective_action(self, session_id: str, pallet_id: str, bin: str) -> Optional[CountAction]:
        for action in self.effective_actions(session_id):
            if action.pallet_id == pallet_id and action.bin == bin:
                return action
        return None
