"""
Inventory Import Schemas
"""

from pydantic import BaseModel, ConfigDict, Field, computed_field
from typing import Any, Dict, List, Optional, Tuple
from datetime import date, datetime
import uuid

from cyclecount.models.enums import InventoryStatus

DUPLICATE_REASON = "Duplicate PalletID+Bin"
VALIDATION_REASON = "Validation failed"


class InventoryImportRecord(BaseModel):
    """
    One expected pallet from an uploaded inventory file

    Immutable once imported; newer data arrives as a new import batch.
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    location: str = Field(..., min_length=1)
    bin: str = Field(..., min_length=1)
    pallet_id: str = Field(..., min_length=1)
    item_number: str = Field(..., min_length=1)
    system_quantity: int = Field(..., ge=0)
    description: str = ""
    uom: str = "Unit"
    expiry_date: Optional[date] = None
    status: InventoryStatus = InventoryStatus.active
    imported_at: datetime
    import_batch: str

    @property
    def key(self) -> Tuple[str, str]:
        """Identity within the import table: (pallet_id, bin)"""
        return (self.pallet_id, self.bin)


class RejectedRow(BaseModel):
    """Raw row that did not make it into the import"""
    row_number: int
    row: Dict[str, Any]
    reason: str
    errors: List[str] = []


class ImportResult(BaseModel):
    """Outcome of one upload"""
    import_batch: str
    file_name: Optional[str] = None
    imported_at: datetime
    records: List[InventoryImportRecord] = []
    rejected: List[RejectedRow] = []

    @computed_field
    @property
    def record_count(self) -> int:
        return len(self.records)

    @computed_field
    @property
    def rejected_count(self) -> int:
        return len(self.rejected)

    @computed_field
    @property
    def duplicate_count(self) -> int:
        return sum(1 for r in self.rejected if r.reason == DUPLICATE_REASON)


class LocationBinsResponse(BaseModel):
    """Bins available for counting in one location"""
    location: str
    bins: List[str]
    pallet_count: int
