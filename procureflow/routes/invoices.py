import uuid
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Header, Response, status
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from procureflow.database import get_db
from procureflow.middleware.auth import get_current_user
from procureflow.models.invoice import Invoice
from procureflow.routes.approvals import submit_decision
from procureflow.schemas.approval import ApprovalDecisionRequest, ApprovalDecisionResponse
from procureflow.schemas.invoice import InvoiceCreate, InvoiceResponse
from procureflow.services.audit_service import emit_audit_event
from procureflow.services.governed_entity import ENTITY_INVOICE
from procureflow.services.procurement_service import create_invoice, get_invoice

logger = structlog.get_logger()
router = APIRouter()


def _to_response(inv: Invoice) -> InvoiceResponse:
    return InvoiceResponse(
        id=str(inv.id),
        po_id=str(inv.po_id) if inv.po_id else None,
        vendor_id=str(inv.vendor_id),
        invoice_number=inv.invoice_number,
        issue_date=inv.issue_date.isoformat(),
        status=inv.status,
        total_cents=inv.total_cents,
        created_at=inv.created_at.isoformat() if inv.created_at else "",
        updated_at=inv.updated_at.isoformat() if inv.updated_at else "",
    )


@router.post("", response_model=InvoiceResponse, status_code=status.HTTP_201_CREATED)
async def register_invoice(
    body: InvoiceCreate,
    response: Response,
    background_tasks: BackgroundTasks,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key", max_length=255),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    invoice, created = await create_invoice(
        db, current_user["user_id"], body, idempotency_key
    )

    if created:
        background_tasks.add_task(
            emit_audit_event,
            action="INVOICE_REGISTERED",
            entity_type=ENTITY_INVOICE,
            entity_id=str(invoice.id),
            actor_id=str(current_user["user_id"]),
            after_state={
                "status": invoice.status,
                "invoice_number": invoice.invoice_number,
                "total_cents": invoice.total_cents,
            },
            actor_email=current_user.get("email"),
        )
    else:
        response.headers["X-Idempotent-Replayed"] = "true"

    return _to_response(invoice)


@router.get("/{invoice_id}", response_model=InvoiceResponse)
async def get_invoice_detail(
    invoice_id: uuid.UUID,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return _to_response(await get_invoice(db, invoice_id))


@router.post("/{invoice_id}/decision", response_model=ApprovalDecisionResponse)
async def decide_invoice(
    invoice_id: uuid.UUID,
    body: ApprovalDecisionRequest,
    background_tasks: BackgroundTasks,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key", max_length=255),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await submit_decision(
        db, background_tasks, current_user, ENTITY_INVOICE, invoice_id, body, idempotency_key
    )
