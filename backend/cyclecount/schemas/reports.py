"""
Reports Schemas
"""

from pydantic import BaseModel, computed_field
from typing import List, Optional

from cyclecount.schemas.session import CountAction


class VarianceStats(BaseModel):
    """
    Variance breakdown over a set of count actions

    accuracy_percentage is None when there are no actions to measure.
    """
    total_actions: int
    total_variance: int
    positive_variances: List[CountAction] = []
    negative_variances: List[CountAction] = []
    zero_variances: List[CountAction] = []
    variance_count: int
    accuracy_percentage: Optional[str] = None

    @computed_field
    @property
    def positive_count(self) -> int:
        return len(self.positive_variances)

    @computed_field
    @property
    def negative_count(self) -> int:
        return len(self.negative_variances)

    @computed_field
    @property
    def zero_count(self) -> int:
        return len(self.zero_variances)


class SessionMetrics(BaseModel):
    """Progress and duration of one session"""
    session_id: str
    location: str
    bins_count: int
    total_pallets: int
    counted_pallets: int
    completion_percentage: Optional[str] = None
    duration_seconds: int
    duration_formatted: str
    variance_count: int
    flagged_count: int


class SessionReportResponse(BaseModel):
    """Metrics snapshot for summary screens and reports"""
    metrics: SessionMetrics
    variance: VarianceStats
