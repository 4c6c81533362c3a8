"""
Audit Log Endpoints
"""

from fastapi import APIRouter, Depends, Query
from fastapi.responses import PlainTextResponse
from pathlib import Path
from typing import List, Optional

from cyclecount.api.deps import get_pipeline
from cyclecount.core.config import settings
from cyclecount.core.exceptions import StorageFailed
from cyclecount.models.enums import Table
from cyclecount.schemas.audit import AuditLogEntry
from cyclecount.services.audit_service import export_csv, export_json, write_export
from cyclecount.services.pipeline import CountingPipeline

router = APIRouter()

EXPORT_MEDIA_TYPES = {
    "json": "application/json",
    "jsonl": "application/x-ndjson",
    "csv": "text/csv",
}


@router.get("/", response_model=List[AuditLogEntry])
def recent_entries(
    limit: int = Query(default=settings.AUDIT_RECENT_LIMIT, ge=1, le=1000),
    session_id: Optional[str] = None,
    pipeline: CountingPipeline = Depends(get_pipeline),
):
    """Most recent audit entries, newest first"""
    if session_id:
        return list(reversed(pipeline.audit.trail.for_session(session_id)))[:limit]
    return pipeline.audit.recent(limit)


@router.get("/export")
def export_entries(
    format: str = Query(default="json", pattern="^(json|jsonl|csv)$"),
    pipeline: CountingPipeline = Depends(get_pipeline),
):
    """Full audit log for compliance hand-off"""
    entries = list(pipeline.audit.trail)
    if format == "csv":
        content = export_csv(entries)
    else:
        content = export_json(entries, lines=format == "jsonl")

    return PlainTextResponse(
        content,
        media_type=EXPORT_MEDIA_TYPES[format],
        headers={"Content-Disposition": f'attachment; filename="audit_log.{format}"'},
    )


@router.post("/export")
def save_export(
    format: str = Query(default="json", pattern="^(json|jsonl|csv)$"),
    pipeline: CountingPipeline = Depends(get_pipeline),
):
    """Write the full audit log to EXPORT_DIR"""
    entries = list(pipeline.audit.trail)
    file_name = f"audit_log_{pipeline.clock.now():%Y%m%d%H%M%S}.{format}"
    try:
        path = write_export(entries, Path(settings.EXPORT_DIR) / file_name, fmt=format)
    except OSError as exc:
        error = StorageFailed(Table.audit_log.value, "export", str(exc))
        pipeline.audit.log_error("Audit export failed", error, file_name=file_name)
        raise error from exc
    return {"path": str(path), "entries": len(entries), "format": format}
