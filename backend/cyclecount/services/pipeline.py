"""
Pipeline
Process-wide state for one running application: store, audit trail, clock

Created at application start and injected into the services; close()
flushes pending audit entries to storage.
"""

from typing import Optional
import logging


from cyclecount.core.clock import Clock, SystemClock
from cyclecount.core.config import Settings, settings as default_settings
from cyclecount.core.database import build_engine, init_db, session_factory
from cyclecount.repositories.record_store import (
    InMemoryRecordStore,
    RecordStore,
    SQLAlchemyRecordStore,
)
from cyclecount.services.audit_service import AuditLogger
from cyclecount.services.count_service import CountService
from cyclecount.services.inventory_service import InventoryService
from cyclecount.services.metrics_service import MetricsService
from cyclecount.services.session_service import SessionService

logger = logging.getLogger(__name__)


class CountingPipeline:
    """Wires the reconciliation components around one store"""

    def __init__(self, store: RecordStore, clock: Optional[Clock] = None):
        self.store = store
        self.clock = clock or SystemClock()
        self.audit = AuditLogger(store, self.clock)
        self.metrics = MetricsService(self.clock)
        self.inventory = InventoryService(store, self.audit, self.clock)
        self.sessions = SessionService(store, self.audit, self.clock, self.metrics)
        self.counts = CountService(store, self.audit, self.clock)

    @classmethod
    def from_settings(cls, config: Optional[Settings] = None, clock: Optional[Clock] = None) -> "CountingPipeline":
        """Build the store named by STORAGE_BACKEND"""
        config = config or default_settings
        if config.STORAGE_BACKEND == "memory":
            store = InMemoryRecordStore()
        elif config.STORAGE_BACKEND == "sqlite":
            engine = build_engine(config.DATABASE_URL)
            init_db(engine)
            store = SQLAlchemyRecordStore(session_factory(engine))
        else:
            raise ValueError(f"Unknown STORAGE_BACKEND: {config.STORAGE_BACKEND}")

        logger.info(f"Using {config.STORAGE_BACKEND} record store")
        return cls(store, clock)

    def open(self) -> "CountingPipeline":
        """Reload the audit trail persisted by earlier runs"""
        restored = self.audit.restore()
        if restored:
            logger.info(f"Restored {restored} audit entries")
        return self

    def close(self) -> None:
        """Flush audit entries that could not be written earlier"""
        self.audit.flush()
        if self.audit.pending:
            logger.warning(f"{len(self.audit.pending)} audit entries could not be persisted")
