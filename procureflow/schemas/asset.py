import uuid
from datetime import date
from typing import Any, List, Literal, Optional
from pydantic import BaseModel, Field

MovementType = Literal["TRANSFER", "MAINTENANCE", "WRITE_OFF", "LOSS"]


class AssetLedgerUpsert(BaseModel):
    equipment_id: uuid.UUID
    cost_center_id: uuid.UUID
    acquisition_date: date
    acquisition_value_cents: int = Field(..., ge=1)
    depreciation_method: Literal["STRAIGHT_LINE"] = "STRAIGHT_LINE"
    useful_life_months: int = Field(..., ge=1)
    residual_value_cents: int = Field(0, ge=0)


class AssetMovementCreate(BaseModel):
    equipment_id: uuid.UUID
    type: MovementType
    from_cost_center_id: Optional[uuid.UUID] = None
    to_cost_center_id: Optional[uuid.UUID] = None
    reason: str = Field(..., min_length=3, max_length=1000)
    metadata: Optional[dict[str, Any]] = None


class AssetMovementResponse(BaseModel):
    id: str
    equipment_id: str
    asset_ledger_id: str
    type: str
    from_cost_center_id: Optional[str] = None
    to_cost_center_id: Optional[str] = None
    reason: str
    actor_id: str
    metadata: Optional[dict[str, Any]] = None
    ts: str


class AssetLedgerResponse(BaseModel):
    id: str
    equipment_id: str
    cost_center_id: str
    acquisition_date: str
    acquisition_value_cents: int
    depreciation_method: str
    useful_life_months: int
    residual_value_cents: int
    status: str
    recent_movements: List[AssetMovementResponse] = []


class DepreciationLine(BaseModel):
    ledger_id: str
    equipment_id: str
    asset_tag: str
    cost_center_id: str
    cost_center_code: str
    acquisition_date: str
    acquisition_value_cents: int
    residual_value_cents: int
    useful_life_months: int
    depreciation_method: str
    monthly_depreciation_cents: float
    months_elapsed: int
    accumulated_depreciation_cents: float
    book_value_cents: float
    status: str
