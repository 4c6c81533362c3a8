"""
API Dependencies
"""

from fastapi import Depends, Request

from cyclecount.schemas.session import CountSession
from cyclecount.services.pipeline import CountingPipeline


def get_pipeline(request: Request) -> CountingPipeline:
    """
    Pipeline dependency
    Usage: pipeline: CountingPipeline = Depends(get_pipeline)
    """
    return request.app.state.pipeline


def get_session_or_404(
    session_id: str,
    pipeline: CountingPipeline = Depends(get_pipeline),
) -> CountSession:
    """Load a session by path id; SessionNotFound maps to 404"""
    return pipeline.sessions.get_session(session_id)
