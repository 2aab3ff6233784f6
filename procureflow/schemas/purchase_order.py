import uuid
from typing import Optional
from pydantic import BaseModel


class PurchaseOrderCreate(BaseModel):
    pr_id: Optional[uuid.UUID] = None
    vendor_id: uuid.UUID


class PurchaseOrderResponse(BaseModel):
    id: str
    pr_id: Optional[str] = None
    vendor_id: str
    status: str
    total_cents: int
    approved_at: Optional[str] = None
    approved_by_id: Optional[str] = None
    created_at: str
    updated_at: str

    model_config = {"from_attributes": True}
