"""
Inventory Import Endpoints
"""

from fastapi import APIRouter, Depends, File, Query, UploadFile
from typing import List, Optional
import io

from cyclecount.api.deps import get_pipeline
from cyclecount.schemas.inventory import ImportResult, InventoryImportRecord, LocationBinsResponse
from cyclecount.services.pipeline import CountingPipeline

router = APIRouter()


@router.post("/imports", response_model=ImportResult)
def upload_inventory(
    file: UploadFile = File(...),
    pipeline: CountingPipeline = Depends(get_pipeline),
):
    """Import an inventory spreadsheet (.csv or .xlsx)"""
    try:
        content = io.BytesIO(file.file.read())
    finally:
        file.file.close()
    return pipeline.inventory.import_file(content, file_name=file.filename)


@router.get("/inventory/locations", response_model=List[str])
def list_locations(pipeline: CountingPipeline = Depends(get_pipeline)):
    """Locations present in imported inventory"""
    return pipeline.inventory.list_locations()


@router.get("/inventory/locations/{location}/bins", response_model=LocationBinsResponse)
def list_location_bins(
    location: str,
    prefix: Optional[str] = Query(default=None, description="Only bins starting with this prefix"),
    pipeline: CountingPipeline = Depends(get_pipeline),
):
    """Bins of a location available for counting"""
    bins = pipeline.inventory.list_bins(location, prefix=prefix)
    return LocationBinsResponse(
        location=location,
        bins=bins,
        pallet_count=len(pipeline.inventory.scoped_inventory(location, bins)),
    )


@router.get("/inventory/locations/{location}/pallets", response_model=List[InventoryImportRecord])
def list_location_pallets(
    location: str,
    bins: Optional[List[str]] = Query(default=None),
    pipeline: CountingPipeline = Depends(get_pipeline),
):
    """Expected pallets of a location, optionally restricted to bins"""
    return pipeline.inventory.scoped_inventory(location, bins)
