import uuid
from typing import Optional
from pydantic import BaseModel, EmailStr, Field


class CostCenterCreate(BaseModel):
    code: str = Field(..., min_length=2, max_length=50)
    name: str = Field(..., min_length=2, max_length=200)
    owner_id: Optional[uuid.UUID] = None


class CostCenterResponse(BaseModel):
    id: str
    code: str
    name: str
    owner_id: Optional[str] = None
    created_at: str


class VendorCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=200)
    tax_id: Optional[str] = Field(None, max_length=50)
    contact_email: Optional[EmailStr] = None


class VendorResponse(BaseModel):
    id: str
    name: str
    tax_id: Optional[str] = None
    contact_email: Optional[str] = None
    created_at: str
