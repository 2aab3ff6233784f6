import uuid
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Header, Response, status
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from procureflow.database import get_db
from procureflow.middleware.auth import get_current_user
from procureflow.models.purchase_order import PurchaseOrder
from procureflow.routes.approvals import submit_decision
from procureflow.schemas.approval import ApprovalDecisionRequest, ApprovalDecisionResponse
from procureflow.schemas.purchase_order import PurchaseOrderCreate, PurchaseOrderResponse
from procureflow.services.audit_service import emit_audit_event
from procureflow.services.governed_entity import ENTITY_PO, ENTITY_PR
from procureflow.services.procurement_service import create_purchase_order, get_purchase_order

logger = structlog.get_logger()
router = APIRouter()


def _to_response(po: PurchaseOrder) -> PurchaseOrderResponse:
    return PurchaseOrderResponse(
        id=str(po.id),
        pr_id=str(po.pr_id) if po.pr_id else None,
        vendor_id=str(po.vendor_id),
        status=po.status,
        total_cents=po.total_cents,
        approved_at=po.approved_at.isoformat() if po.approved_at else None,
        approved_by_id=str(po.approved_by_id) if po.approved_by_id else None,
        created_at=po.created_at.isoformat() if po.created_at else "",
        updated_at=po.updated_at.isoformat() if po.updated_at else "",
    )


@router.post("", response_model=PurchaseOrderResponse, status_code=status.HTTP_201_CREATED)
async def create_po(
    body: PurchaseOrderCreate,
    response: Response,
    background_tasks: BackgroundTasks,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key", max_length=255),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    po, created = await create_purchase_order(
        db, current_user["user_id"], body, idempotency_key
    )

    if created:
        background_tasks.add_task(
            emit_audit_event,
            action="PO_CREATED",
            entity_type=ENTITY_PO,
            entity_id=str(po.id),
            actor_id=str(current_user["user_id"]),
            after_state={"status": po.status, "total_cents": po.total_cents},
            actor_email=current_user.get("email"),
        )
        if po.pr_id:
            background_tasks.add_task(
                emit_audit_event,
                action="PR_CONVERTED_TO_PO",
                entity_type=ENTITY_PR,
                entity_id=str(po.pr_id),
                actor_id=str(current_user["user_id"]),
                before_state={"status": "APPROVED"},
                after_state={"status": "CONVERTED_TO_PO"},
                actor_email=current_user.get("email"),
            )
    else:
        response.headers["X-Idempotent-Replayed"] = "true"

    return _to_response(po)


@router.get("/{po_id}", response_model=PurchaseOrderResponse)
async def get_po(
    po_id: uuid.UUID,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return _to_response(await get_purchase_order(db, po_id))


@router.post("/{po_id}/decision", response_model=ApprovalDecisionResponse)
async def decide_po(
    po_id: uuid.UUID,
    body: ApprovalDecisionRequest,
    background_tasks: BackgroundTasks,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key", max_length=255),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await submit_decision(
        db, background_tasks, current_user, ENTITY_PO, po_id, body, idempotency_key
    )
