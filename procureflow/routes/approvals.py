"""
Approvals API routes: list an entity's approval chain.

``submit_decision`` is shared by the PR, PO and invoice routers, which expose
``POST /{id}/decision`` for their own entity type.
"""

import uuid
from typing import Literal, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from procureflow.database import get_db
from procureflow.middleware.auth import get_current_user
from procureflow.models.approval import Approval
from procureflow.models.user import User
from procureflow.schemas.approval import (
    ApprovalDecisionRequest,
    ApprovalDecisionResponse,
    ApprovalResponse,
    ApproverInfo,
)
from procureflow.services.approval_service import decide_approval, list_approvals
from procureflow.services.audit_service import emit_audit_event

logger = structlog.get_logger()
router = APIRouter()


def _approval_data(a: Approval, approver: Optional[User] = None) -> dict:
    data = {
        "id": str(a.id),
        "entity_type": a.entity_type,
        "entity_id": str(a.entity_id),
        "step": a.step,
        "approver_id": str(a.approver_id),
        "status": a.status,
        "decision_notes": a.decision_notes,
        "decided_at": a.decided_at.isoformat() if a.decided_at else None,
        "created_at": a.created_at.isoformat() if a.created_at else "",
    }
    if approver:
        data["approver"] = ApproverInfo(
            id=str(approver.id), name=approver.name, email=approver.email
        )
    return data


async def submit_decision(
    db: AsyncSession,
    background_tasks: BackgroundTasks,
    current_user: dict,
    entity_type: str,
    entity_id: uuid.UUID,
    body: ApprovalDecisionRequest,
    idempotency_key: Optional[str],
) -> ApprovalDecisionResponse:
    result = await decide_approval(
        db,
        current_user["user_id"],
        entity_type,
        entity_id,
        body.decision,
        body.notes,
        idempotency_key,
    )

    # Runs after the response, i.e. after get_db() committed
    if not result.replayed:
        background_tasks.add_task(
            emit_audit_event,
            action=f"APPROVAL_{result.approval.status}",
            entity_type=entity_type,
            entity_id=str(entity_id),
            actor_id=str(current_user["user_id"]),
            before_state={"status": "PENDING", "step": result.approval.step},
            after_state={"status": result.approval.status, "step": result.approval.step},
            actor_email=current_user.get("email"),
        )
        if result.entity_status:
            background_tasks.add_task(
                emit_audit_event,
                action=f"{entity_type}_{result.entity_status}",
                entity_type=entity_type,
                entity_id=str(entity_id),
                actor_id=str(current_user["user_id"]),
                after_state={"status": result.entity_status},
                actor_email=current_user.get("email"),
            )

    return ApprovalDecisionResponse(
        **_approval_data(result.approval),
        entity_status=result.entity_status,
        replayed=result.replayed,
    )


@router.get("", response_model=list[ApprovalResponse])
async def list_entity_approvals(
    entity_type: Literal["PR", "PO", "INVOICE"] = Query(...),
    entity_id: uuid.UUID = Query(...),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Approval chain for one entity, ordered by step."""
    rows = await list_approvals(db, entity_type, entity_id)
    return [ApprovalResponse(**_approval_data(a, approver)) for a, approver in rows]
