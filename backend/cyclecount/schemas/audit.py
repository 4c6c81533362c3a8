"""
Audit Log Schemas
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, Optional
from datetime import datetime
import uuid

from cyclecount.models.enums import AuditUser


class AuditLogEntry(BaseModel):
    """
    Audit Log Entry - IMMUTABLE

    Entries are appended to the audit trail and never updated or deleted.
    """
    model_config = ConfigDict(frozen=True)

    log_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    session_id: Optional[str] = None
    timestamp: datetime
    user: AuditUser
    action: str
    details: Dict[str, Any] = {}
    # Position in the trail; breaks ties between equal timestamps
    sequence: int = 0
