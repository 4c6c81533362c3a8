"""
Metrics Service
Variance statistics and session progress
"""

from datetime import datetime
from typing import Optional, Sequence
import math

from cyclecount.core.clock import Clock, SystemClock
from cyclecount.schemas.reports import SessionMetrics, VarianceStats
from cyclecount.schemas.session import CountAction, CountSession


def _percentage(part: int, whole: int) -> Optional[str]:
    """part / whole * 100 with two decimals; None when whole is zero"""
    if whole == 0:
        return None
    return f"{part / whole * 100:.2f}"


def format_duration(seconds: int) -> str:
    """
    Render seconds as '<h>h <m>m <s>s', dropping leading zero units

    45 -> '45s', 125 -> '2m 5s', 3665 -> '1h 1m 5s'
    """
    hours, remainder = divmod(int(seconds), 3600)
    minutes, secs = divmod(remainder, 60)

    if hours > 0:
        return f"{hours}h {minutes}m {secs}s"
    if minutes > 0:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


class MetricsService:
    """Aggregates count actions into report figures"""

    def __init__(self, clock: Optional[Clock] = None):
        self.clock = clock or SystemClock()

    def variance_stats(self, actions: Sequence[CountAction]) -> VarianceStats:
        """Bucket actions by variance sign"""
        positive = [a for a in actions if a.variance > 0]
        negative = [a for a in actions if a.variance < 0]
        zero = [a for a in actions if a.variance == 0]

        return VarianceStats(
            total_actions=len(actions),
            total_variance=sum(a.variance for a in actions),
            positive_variances=positive,
            negative_variances=negative,
            zero_variances=zero,
            variance_count=len(positive) + len(negative),
            accuracy_percentage=_percentage(len(zero), len(actions)),
        )

    def session_metrics(
        self,
        session: CountSession,
        actions: Sequence[CountAction],
        now: Optional[datetime] = None,
    ) -> SessionMetrics:
        """Progress of a session; open sessions are measured up to now"""
        end = session.end_time or now or self.clock.now()
        duration_seconds = max(0, math.floor((end - session.start_time).total_seconds()))

        return SessionMetrics(
            session_id=session.session_id,
            location=session.location,
            bins_count=len(session.bins),
            total_pallets=session.total_pallets,
            counted_pallets=len(actions),
            completion_percentage=_percentage(len(actions), session.total_pallets),
            duration_seconds=duration_seconds,
            duration_formatted=format_duration(duration_seconds),
            variance_count=sum(1 for a in actions if a.variance != 0),
            flagged_count=sum(1 for a in actions if a.flagged),
        )


# Module-level helpers for callers without an injected clock


def variance_stats(actions: Sequence[CountAction]) -> VarianceStats:
    return MetricsService().variance_stats(actions)


def session_metrics(session: CountSession, actions: Sequence[CountAction], now: Optional[datetime] = None) -> SessionMetrics:
    return MetricsService().session_metrics(session, actions, now=now)
