"""
Count Session Endpoints
"""

from fastapi import APIRouter, Depends, status
from typing import List, Optional

from cyclecount.api.deps import get_pipeline, get_session_or_404
from cyclecount.models.enums import SessionStatus
from cyclecount.schemas.reports import SessionReportResponse
from cyclecount.schemas.session import CountAction, CountCreate, CountSession, SessionCreate
from cyclecount.services.pipeline import CountingPipeline

router = APIRouter()


@router.post("/", response_model=CountSession, status_code=status.HTTP_201_CREATED)
def open_session(
    session_data: SessionCreate,
    pipeline: CountingPipeline = Depends(get_pipeline),
):
    """Open a counting session over a location and bins"""
    return pipeline.sessions.open_session(
        location=session_data.location,
        bins=session_data.bins,
        user_id=session_data.user_id,
        scoped_inventory=pipeline.inventory.scoped_inventory(session_data.location),
    )


@router.get("/", response_model=List[CountSession])
def list_sessions(
    session_status: Optional[SessionStatus] = None,
    pipeline: CountingPipeline = Depends(get_pipeline),
):
    """List sessions, oldest first"""
    return pipeline.sessions.list_sessions(session_status)


@router.get("/{session_id}", response_model=CountSession)
def get_session(session: CountSession = Depends(get_session_or_404)):
    """Get session by ID"""
    return session


@router.post("/{session_id}/complete", response_model=CountSession)
def complete_session(
    session: CountSession = Depends(get_session_or_404),
    pipeline: CountingPipeline = Depends(get_pipeline),
):
    """Finish counting"""
    return pipeline.sessions.complete_session(session)


@router.post("/{session_id}/submit", response_model=CountSession)
def submit_session(
    session: CountSession = Depends(get_session_or_404),
    pipeline: CountingPipeline = Depends(get_pipeline),
):
    """Submit a completed session"""
    return pipeline.sessions.submit_session(session)


@router.post("/{session_id}/counts", response_model=CountAction, status_code=status.HTTP_201_CREATED)
def record_count(
    count_data: CountCreate,
    session: CountSession = Depends(get_session_or_404),
    pipeline: CountingPipeline = Depends(get_pipeline),
):
    """Record one pallet count; counting a pallet again supersedes the earlier count"""
    import_record = pipeline.inventory.find_pallet(
        session.location,
        count_data.pallet_id,
        bins=session.bins,
        bin=count_data.bin,
    )
    return pipeline.counts.record_count(
        session,
        count_data.pallet_id,
        import_record,
        count_data.counted_quantity,
        count_data.user_id,
        flagged=count_data.flagged,
        notes=count_data.notes,
        mark_for_review=count_data.mark_for_review,
    )


@router.get("/{session_id}/actions", response_model=List[CountAction])
def list_actions(
    include_superseded: bool = False,
    session: CountSession = Depends(get_session_or_404),
    pipeline: CountingPipeline = Depends(get_pipeline),
):
    """Count actions for the variance table"""
    if include_superseded:
        return pipeline.counts.session_actions(session.session_id)
    return pipeline.counts.effective_actions(session.session_id)


@router.get("/{session_id}/metrics", response_model=SessionReportResponse)
def session_metrics(
    session: CountSession = Depends(get_session_or_404),
    pipeline: CountingPipeline = Depends(get_pipeline),
):
    """Progress, duration and variance breakdown"""
    actions = pipeline.counts.effective_actions(session.session_id)
    return SessionReportResponse(
        metrics=pipeline.metrics.session_metrics(session, actions),
        variance=pipeline.metrics.variance_stats(actions),
    )
