import uuid
from typing import List, Optional
from pydantic import BaseModel, Field


class PrLineItemCreate(BaseModel):
    description: str = Field(..., min_length=2, max_length=500)
    quantity: int = Field(..., ge=1, le=999999)
    unit_price_cents: int = Field(..., ge=1)
    asset_category: Optional[str] = Field(None, max_length=50)


class PurchaseRequestCreate(BaseModel):
    cost_center_id: uuid.UUID
    description: str = Field(..., min_length=3, max_length=1000)
    line_items: List[PrLineItemCreate] = Field(..., min_length=1, max_length=100)


class PrLineItemResponse(BaseModel):
    id: str
    line_number: int
    description: str
    quantity: int
    unit_price_cents: int
    asset_category: Optional[str] = None

    model_config = {"from_attributes": True}


class PurchaseRequestResponse(BaseModel):
    id: str
    requester_id: str
    cost_center_id: str
    description: str
    status: str
    total_cents: int
    line_items: List[PrLineItemResponse] = []
    created_at: str
    updated_at: str

    model_config = {"from_attributes": True}
