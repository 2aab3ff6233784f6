import uuid
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Header, Response, status
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from procureflow.database import get_db
from procureflow.middleware.auth import get_current_user
from procureflow.models.purchase_request import PurchaseRequest, PrLineItem
from procureflow.routes.approvals import submit_decision
from procureflow.schemas.approval import ApprovalDecisionRequest, ApprovalDecisionResponse
from procureflow.schemas.purchase_request import (
    PurchaseRequestCreate,
    PurchaseRequestResponse,
    PrLineItemResponse,
)
from procureflow.services.audit_service import emit_audit_event
from procureflow.services.governed_entity import ENTITY_PR
from procureflow.services.procurement_service import (
    create_purchase_request,
    get_line_items,
    get_purchase_request,
)

logger = structlog.get_logger()
router = APIRouter()


def _line_to_response(li: PrLineItem) -> PrLineItemResponse:
    return PrLineItemResponse(
        id=str(li.id),
        line_number=li.line_number,
        description=li.description,
        quantity=li.quantity,
        unit_price_cents=li.unit_price_cents,
        asset_category=li.asset_category,
    )


def _to_response(pr: PurchaseRequest, line_items: list[PrLineItem]) -> PurchaseRequestResponse:
    return PurchaseRequestResponse(
        id=str(pr.id),
        requester_id=str(pr.requester_id),
        cost_center_id=str(pr.cost_center_id),
        description=pr.description,
        status=pr.status,
        total_cents=pr.total_cents,
        line_items=[_line_to_response(li) for li in line_items],
        created_at=pr.created_at.isoformat() if pr.created_at else "",
        updated_at=pr.updated_at.isoformat() if pr.updated_at else "",
    )


@router.post("", response_model=PurchaseRequestResponse, status_code=status.HTTP_201_CREATED)
async def create_pr(
    body: PurchaseRequestCreate,
    response: Response,
    background_tasks: BackgroundTasks,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key", max_length=255),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    pr, created = await create_purchase_request(
        db, current_user["user_id"], body, idempotency_key
    )

    if created:
        background_tasks.add_task(
            emit_audit_event,
            action="PR_SUBMITTED",
            entity_type=ENTITY_PR,
            entity_id=str(pr.id),
            actor_id=str(current_user["user_id"]),
            after_state={"status": pr.status, "total_cents": pr.total_cents},
            actor_email=current_user.get("email"),
        )
    else:
        response.headers["X-Idempotent-Replayed"] = "true"

    line_items = await get_line_items(db, pr.id)
    return _to_response(pr, line_items)


@router.get("/{pr_id}", response_model=PurchaseRequestResponse)
async def get_pr(
    pr_id: uuid.UUID,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    pr = await get_purchase_request(db, pr_id)
    line_items = await get_line_items(db, pr.id)
    return _to_response(pr, line_items)


@router.post("/{pr_id}/decision", response_model=ApprovalDecisionResponse)
async def decide_pr(
    pr_id: uuid.UUID,
    body: ApprovalDecisionRequest,
    background_tasks: BackgroundTasks,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key", max_length=255),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Approve or reject the current step of the PR's approval chain."""
    return await submit_decision(
        db, background_tasks, current_user, ENTITY_PR, pr_id, body, idempotency_key
    )
