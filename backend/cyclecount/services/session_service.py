"""
Session Service
Opens count sessions and moves them through their lifecycle
"""

from typing import Dict, Iterable, List, Optional, Sequence
import logging

from cyclecount.core.clock import Clock, SystemClock
from cyclecount.core.config import settings
from cyclecount.core.exceptions import (
    InvalidScope,
    InvalidTransition,
    SessionNotFound,
    StorageFailed,
)
from cyclecount.models.enums import AuditUser, SessionStatus, Table
from cyclecount.repositories.record_store import RecordStore
from cyclecount.schemas.inventory import InventoryImportRecord
from cyclecount.schemas.session import CountSession
from cyclecount.services.audit_service import AuditLogger
from cyclecount.services.count_service import effective_actions, load_session_actions
from cyclecount.services.metrics_service import MetricsService

logger = logging.getLogger(__name__)

# Forward-only lifecycle
ALLOWED_TRANSITIONS: Dict[SessionStatus, SessionStatus] = {
    SessionStatus.in_progress: SessionStatus.completed,
    SessionStatus.completed: SessionStatus.submitted,
}


def normalize_bins(bins: Iterable[str]) -> List[str]:
    """Strip, drop blanks and repeats, keep first-seen order"""
    seen = []
    for bin_code in bins or ():
        code = str(bin_code).strip()
        if code and code not in seen:
            seen.append(code)
    return seen


class SessionService:
    """Count Session Management"""

    def __init__(
        self,
        store: RecordStore,
        audit: AuditLogger,
        clock: Optional[Clock] = None,
        metrics: Optional[MetricsService] = None,
    ):
        self.store = store
        self.audit = audit
        self.clock = clock or SystemClock()
        self.metrics = metrics or MetricsService(self.clock)

    def open_session(
        self,
        location: str,
        bins: Iterable[str],
        user_id: str,
        scoped_inventory: Sequence[InventoryImportRecord],
    ) -> CountSession:
        """
        Open a counting pass over a location and set of bins

        total_pallets is fixed here from the records in scope and is not
        recomputed later, even if more inventory is imported.
        """
        bin_list = normalize_bins(bins)
        if not bin_list:
            raise InvalidScope("At least one bin must be selected", location=location)

        location_records = [r for r in scoped_inventory if r.location == location]
        if not location_records:
            raise InvalidScope(f"No inventory found for location {location}", location=location, bins=bin_list)

        total_pallets = sum(1 for r in location_records if r.bin in bin_list)

        now = self.clock.now()
        session = CountSession(
            session_id=self._new_session_id(now),
            timestamp=now,
            location=location,
            bins=bin_list,
            user_id=user_id,
            start_time=now,
            status=SessionStatus.in_progress,
            total_pallets=total_pallets,
        )
        self._save(session, "Session not started")

        logger.info(f"Session {session.session_id} started: {location} {bin_list} ({total_pallets} pallets)")
        self.audit.log(
            AuditUser.SYSTEM,
            "Session started",
            session_id=session.session_id,
            details={
                "location": location,
                "bins": bin_list,
                "user_id": user_id,
                "total_pallets": total_pallets,
            },
        )
        return session

    def complete_session(self, session: CountSession) -> CountSession:
        """Stop counting; end_time is set"""
        self._check_transition(session, SessionStatus.completed)

        end_time = self.clock.now()
        self._save(
            session.model_copy(update={"end_time": end_time, "status": SessionStatus.completed}),
            "Session not completed",
        )
        session.end_time = end_time
        session.status = SessionStatus.completed

        self.audit.log(
            AuditUser.SYSTEM,
            "Session completed",
            session_id=session.session_id,
            details={
                "completed_count": session.completed_count,
                "variance_count": session.variance_count,
                "total_pallets": session.total_pallets,
            },
        )
        return session

    def submit_session(self, session: CountSession) -> CountSession:
        """Final, terminal state; audits a metrics snapshot"""
        self._check_transition(session, SessionStatus.submitted)

        self._save(
            session.model_copy(update={"status": SessionStatus.submitted}),
            "Session not submitted",
        )
        session.status = SessionStatus.submitted

        actions = effective_actions(load_session_actions(self.store, session.session_id))
        session_metrics = self.metrics.session_metrics(session, actions)
        stats = self.metrics.variance_stats(actions)

        self.audit.log(
            AuditUser.SYSTEM,
            "Session submitted",
            session_id=session.session_id,
            details={
                "metrics": session_metrics.model_dump(mode="json"),
                "total_variance": stats.total_variance,
                "variance_count": stats.variance_count,
                "accuracy_percentage": stats.accuracy_percentage,
            },
        )
        return session

    def get_session(self, session_id: str) -> CountSession:
        record = self.store.get(Table.count_sessions, session_id)
        if record is None:
            raise SessionNotFound(session_id)
        return CountSession.model_validate(record)

    def list_sessions(self, status: Optional[SessionStatus] = None) -> List[CountSession]:
        sessions = [CountSession.model_validate(r) for r in self.store.scan(Table.count_sessions)]
        if status is not None:
            sessions = [s for s in sessions if s.status == status]
        return sorted(sessions, key=lambda s: s.timestamp)

    def _check_transition(self, session: CountSession, target: SessionStatus) -> None:
        if ALLOWED_TRANSITIONS.get(session.status) != target:
            logger.warning(
                f"Rejected transition {session.status.value} -> {target.value} for {session.session_id}"
            )
            raise InvalidTransition(session.session_id, session.status.value, target.value)

    def _new_session_id(self, now) -> str:
        """SES-<epoch ms>; bumped past ids already taken"""
        millis = int(now.timestamp() * 1000)
        while True:
            session_id = f"{settings.SESSION_ID_PREFIX}-{millis}"
            if self.store.get(Table.count_sessions, session_id) is None:
                return session_id
            millis += 1

    def _save(self, session: CountSession, failure_action: str) -> None:
        try:
            self.store.put(Table.count_sessions, session.session_id, session.model_dump(mode="json"))
        except StorageFailed as exc:
            self.audit.log_error(failure_action, exc, session_id=session.session_id)
            raise
