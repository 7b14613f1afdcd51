# grist_invoice_sync/grist_api/schemas.py
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field

# A row: column id -> cell value. `id` is the Grist rowId (absent for rows not yet created).
Record = Dict[str, Any]
# Column-oriented payload used on the wire: column id -> list of cell values.
TableData = Dict[str, List[Any]]
# Column id -> acceptable values.
Filters = Dict[str, List[Any]]


# --- Orchestrator responses ---
class CopyInfo(BaseModel):
    """What is known about the copy of an invoice in its destination document."""
    model_config = ConfigDict(populate_by_name=True)

    doc_url: str = Field(..., alias="docUrl")
    doc_name: Optional[str] = Field(None, alias="docName")
    last_sync_timestamp: Optional[float] = Field(None, alias="lastSyncTimestamp")
    invoice_date: Optional[float] = Field(None, alias="invoiceDate")
    total: Optional[float] = None


class SyncResult(BaseModel):
    id: int = Field(..., description="rowId of the invoice in the destination document.")


class ErrorResponse(BaseModel):
    error: str
