from typing import Literal, Optional
from pydantic import BaseModel, Field


class ApprovalDecisionRequest(BaseModel):
    decision: Literal["APPROVE", "REJECT"]
    notes: Optional[str] = Field(None, max_length=1000)


class ApproverInfo(BaseModel):
    id: str
    name: Optional[str] = None
    email: str


class ApprovalResponse(BaseModel):
    id: str
    entity_type: str
    entity_id: str
    step: int
    approver_id: str
    status: str
    decision_notes: Optional[str] = None
    decided_at: Optional[str] = None
    created_at: str
    approver: Optional[ApproverInfo] = None

    model_config = {"from_attributes": True}


class ApprovalDecisionResponse(ApprovalResponse):
    entity_status: Optional[str] = None
    replayed: bool = False
