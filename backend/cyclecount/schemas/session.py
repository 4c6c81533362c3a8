"""
Count Session Schemas
"""

from pydantic import BaseModel, ConfigDict, Field, computed_field
from typing import List, Optional
from datetime import datetime
import uuid

from cyclecount.models.enums import ActionStatus, SessionStatus


class CountSession(BaseModel):
    """
    Count Session
    One counting pass over a location and a set of bins

    Workflow:
    1. Open session (start_time set, total_pallets fixed)
    2. Record counts (completed_count / variance_count grow)
    3. Complete session (end_time set)
    4. Submit session (terminal)
    """
    model_config = ConfigDict(validate_assignment=True)

    session_id: str
    timestamp: datetime
    location: str
    bins: List[str] = Field(..., min_length=1)
    user_id: str
    start_time: datetime
    end_time: Optional[datetime] = None
    status: SessionStatus = SessionStatus.in_progress
    total_pallets: int = Field(..., ge=0)
    completed_count: int = Field(default=0, ge=0)
    variance_count: int = Field(default=0, ge=0)

    def is_open(self) -> bool:
        """Check if counts are still accepted"""
        return self.status == SessionStatus.in_progress


class CountAction(BaseModel):
    """
    Count Action
    One immutable observation of one pallet within a session

    variance is derived from counted and system quantities on every read.
    A re-count writes a new action that names the one it supersedes.
    """
    model_config = ConfigDict(frozen=True)

    action_id: str = Field(default_factory=lambda: f"ACT-{uuid.uuid4().hex}")
    session_id: str
    pallet_id: str
    bin: str
    item_number: str
    system_quantity: int = Field(..., ge=0)
    counted_quantity: int = Field(..., ge=0)
    timestamp: datetime
    user_id: str
    flagged: bool = False
    notes: Optional[str] = None
    status: ActionStatus = ActionStatus.confirmed
    supersedes: Optional[str] = None

    @computed_field
    @property
    def variance(self) -> int:
        """Counted minus system (signed)"""
        return self.counted_quantity - self.system_quantity


class SessionCreate(BaseModel):
    """Open session request"""
    location: str = Field(..., min_length=1)
    bins: List[str]
    user_id: str = Field(..., min_length=1)


class CountCreate(BaseModel):
    """Record count request"""
    pallet_id: str = Field(..., min_length=1)
    bin: Optional[str] = None  # required when the pallet sits in several scoped bins
    counted_quantity: int
    user_id: str = Field(..., min_length=1)
    flagged: bool = False
    mark_for_review: bool = False
    notes: Optional[str] = None
