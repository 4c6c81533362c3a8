"""
Services Package
Business logic services
"""

from cyclecount.services.audit_service import AuditLogger, AuditTrail
from cyclecount.services.count_service import CountService
from cyclecount.services.inventory_service import InventoryService
from cyclecount.services.metrics_service import MetricsService, format_duration
from cyclecount.services.pipeline import CountingPipeline
from cyclecount.services.session_service import SessionService

__all__ = [
    "AuditLogger",
    "AuditTrail",
    "CountService",
    "InventoryService",
    "MetricsService",
    "format_duration",
    "CountingPipeline",
    "SessionService",
]
