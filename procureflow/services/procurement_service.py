"""
Procurement document factories: PR, PO and Invoice creation.

Every factory accepts an optional caller idempotency key. A key that already
belongs to a record returns that record untouched. Otherwise references are
validated, the root record is inserted and its approval chain built inside a
single savepoint, so a document is never visible without its chain. A unique
violation on the key (a concurrent duplicate that committed first) rolls the
savepoint back and returns the winner.

All functions use the caller's session (no commit). get_db() auto-commits.
"""

import uuid
from typing import Awaitable, Callable, Optional, TypeVar

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from fastapi import HTTPException, status as http_status
import structlog

from procureflow.models.cost_center import CostCenter
from procureflow.models.invoice import Invoice
from procureflow.models.purchase_order import PurchaseOrder
from procureflow.models.purchase_request import PurchaseRequest, PrLineItem
from procureflow.models.vendor import Vendor
from procureflow.schemas.invoice import InvoiceCreate
from procureflow.schemas.purchase_order import PurchaseOrderCreate
from procureflow.schemas.purchase_request import PurchaseRequestCreate
from procureflow.services.approval_service import build_approval_chain
from procureflow.services.approver_resolver import ApproverResolver, resolve_approvers
from procureflow.services.governed_entity import (
    ENTITY_INVOICE,
    ENTITY_PO,
    ENTITY_PR,
    GOVERNED_ENTITIES,
    transition_status,
)

logger = structlog.get_logger()

T = TypeVar("T")


async def _find_by_key(session: AsyncSession, model: type[T], idempotency_key: str) -> Optional[T]:
    result = await session.execute(
        select(model).where(model.idempotency_key == idempotency_key)
    )
    return result.scalar_one_or_none()


async def _get_or_404(session: AsyncSession, model: type[T], entity_id, label: str) -> T:
    result = await session.execute(select(model).where(model.id == entity_id))
    record = result.scalar_one_or_none()
    if not record:
        raise HTTPException(
            status_code=http_status.HTTP_404_NOT_FOUND,
            detail=f"{label} not found",
        )
    return record


async def _insert_or_fetch(
    session: AsyncSession,
    model: type[T],
    idempotency_key: Optional[str],
    build: Callable[[], Awaitable[T]],
) -> tuple[T, bool]:
    try:
        async with session.begin_nested():
            return await build(), True
    except IntegrityError:
        if not idempotency_key:
            raise
        existing = await _find_by_key(session, model, idempotency_key)
        if existing is None:
            raise
        logger.info(
            "idempotent_create_lost_race",
            model=model.__tablename__,
            id=str(existing.id),
        )
        return existing, False


# ---------- PURCHASE REQUEST ----------


async def create_purchase_request(
    session: AsyncSession,
    requester_id: uuid.UUID,
    body: PurchaseRequestCreate,
    idempotency_key: Optional[str] = None,
    resolver: ApproverResolver = resolve_approvers,
) -> tuple[PurchaseRequest, bool]:
    if not body.line_items:
        raise HTTPException(
            status_code=http_status.HTTP_400_BAD_REQUEST,
            detail="Purchase request must contain at least one line item",
        )

    if idempotency_key:
        existing = await _find_by_key(session, PurchaseRequest, idempotency_key)
        if existing:
            logger.info("pr_idempotent_replay", pr_id=str(existing.id))
            return existing, False

    await _get_or_404(session, CostCenter, body.cost_center_id, "Cost center")

    total_cents = sum(li.quantity * li.unit_price_cents for li in body.line_items)

    async def build() -> PurchaseRequest:
        pr = PurchaseRequest(
            requester_id=requester_id,
            cost_center_id=body.cost_center_id,
            description=body.description,
            status=GOVERNED_ENTITIES[ENTITY_PR].initial_status,
            total_cents=total_cents,
            idempotency_key=idempotency_key,
        )
        session.add(pr)
        await session.flush()

        for idx, li_data in enumerate(body.line_items, start=1):
            session.add(
                PrLineItem(
                    pr_id=pr.id,
                    line_number=idx,
                    description=li_data.description,
                    quantity=li_data.quantity,
                    unit_price_cents=li_data.unit_price_cents,
                    asset_category=li_data.asset_category,
                )
            )
        await session.flush()

        await build_approval_chain(
            session, ENTITY_PR, pr.id, requester_id, resolver=resolver
        )
        return pr

    pr, created = await _insert_or_fetch(session, PurchaseRequest, idempotency_key, build)
    if created:
        logger.info("pr_created", pr_id=str(pr.id), total_cents=pr.total_cents)
    return pr, created


async def get_purchase_request(session: AsyncSession, pr_id: uuid.UUID) -> PurchaseRequest:
    return await _get_or_404(session, PurchaseRequest, pr_id, "Purchase request")


async def get_line_items(session: AsyncSession, pr_id: uuid.UUID) -> list[PrLineItem]:
    result = await session.execute(
        select(PrLineItem).where(PrLineItem.pr_id == pr_id).order_by(PrLineItem.line_number)
    )
    return list(result.scalars().all())


# ---------- PURCHASE ORDER ----------


async def create_purchase_order(
    session: AsyncSession,
    actor_id: uuid.UUID,
    body: PurchaseOrderCreate,
    idempotency_key: Optional[str] = None,
    resolver: ApproverResolver = resolve_approvers,
) -> tuple[PurchaseOrder, bool]:
    """
    Create a DRAFT PO, optionally from an APPROVED PR.

    The source PR moves to CONVERTED_TO_PO in the same transaction, so one PR
    yields at most one PO. Approvers are resolved for the PR's requester.
    """
    if idempotency_key:
        existing = await _find_by_key(session, PurchaseOrder, idempotency_key)
        if existing:
            logger.info("po_idempotent_replay", po_id=str(existing.id))
            return existing, False

    await _get_or_404(session, Vendor, body.vendor_id, "Vendor")

    pr: Optional[PurchaseRequest] = None
    if body.pr_id:
        pr = await _get_or_404(session, PurchaseRequest, body.pr_id, "Purchase request")
        if pr.status != GOVERNED_ENTITIES[ENTITY_PR].approved_status:
            raise HTTPException(
                status_code=http_status.HTTP_409_CONFLICT,
                detail={
                    "error": {
                        "code": "PR_NOT_APPROVED",
                        "message": "Purchase request must be approved before creating a PO",
                        "pr_status": pr.status,
                    }
                },
            )

    requester_id = pr.requester_id if pr else actor_id

    async def build() -> PurchaseOrder:
        po = PurchaseOrder(
            pr_id=pr.id if pr else None,
            vendor_id=body.vendor_id,
            status=GOVERNED_ENTITIES[ENTITY_PO].initial_status,
            total_cents=pr.total_cents if pr else 0,
            idempotency_key=idempotency_key,
        )
        session.add(po)
        await session.flush()

        if pr:
            await transition_status(session, ENTITY_PR, pr.id, "CONVERTED_TO_PO")

        await build_approval_chain(
            session, ENTITY_PO, po.id, requester_id, resolver=resolver
        )
        return po

    po, created = await _insert_or_fetch(session, PurchaseOrder, idempotency_key, build)
    if created:
        logger.info("po_created", po_id=str(po.id), pr_id=str(po.pr_id) if po.pr_id else None)
    return po, created


async def get_purchase_order(session: AsyncSession, po_id: uuid.UUID) -> PurchaseOrder:
    return await _get_or_404(session, PurchaseOrder, po_id, "Purchase order")


# ---------- INVOICE ----------


async def create_invoice(
    session: AsyncSession,
    actor_id: uuid.UUID,
    body: InvoiceCreate,
    idempotency_key: Optional[str] = None,
    resolver: ApproverResolver = resolve_approvers,
) -> tuple[Invoice, bool]:
    if idempotency_key:
        existing = await _find_by_key(session, Invoice, idempotency_key)
        if existing:
            logger.info("invoice_idempotent_replay", invoice_id=str(existing.id))
            return existing, False

    await _get_or_404(session, Vendor, body.vendor_id, "Vendor")

    requester_id = actor_id
    if body.po_id:
        po = await _get_or_404(session, PurchaseOrder, body.po_id, "Purchase order")
        if po.pr_id:
            pr = await _get_or_404(session, PurchaseRequest, po.pr_id, "Purchase request")
            requester_id = pr.requester_id

    async def build() -> Invoice:
        invoice = Invoice(
            po_id=body.po_id,
            vendor_id=body.vendor_id,
            invoice_number=body.invoice_number,
            issue_date=body.issue_date,
            total_cents=body.total_cents,
            status=GOVERNED_ENTITIES[ENTITY_INVOICE].initial_status,
            idempotency_key=idempotency_key,
        )
        session.add(invoice)
        await session.flush()

        await build_approval_chain(
            session, ENTITY_INVOICE, invoice.id, requester_id, resolver=resolver
        )
        return invoice

    invoice, created = await _insert_or_fetch(session, Invoice, idempotency_key, build)
    if created:
        logger.info(
            "invoice_registered",
            invoice_id=str(invoice.id),
            invoice_number=invoice.invoice_number,
        )
    return invoice, created


async def get_invoice(session: AsyncSession, invoice_id: uuid.UUID) -> Invoice:
    return await _get_or_404(session, Invoice, invoice_id, "Invoice")
