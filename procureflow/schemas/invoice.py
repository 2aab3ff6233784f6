import uuid
from datetime import date
from typing import Optional
from pydantic import BaseModel, Field


class InvoiceCreate(BaseModel):
    po_id: Optional[uuid.UUID] = None
    vendor_id: uuid.UUID
    invoice_number: str = Field(..., min_length=1, max_length=100)
    issue_date: date
    total_cents: int = Field(..., ge=1)


class InvoiceResponse(BaseModel):
    id: str
    po_id: Optional[str] = None
    vendor_id: str
    invoice_number: str
    issue_date: str
    status: str
    total_cents: int
    created_at: str
    updated_at: str

    model_config = {"from_attributes": True}
