"""
Governed entities: the documents whose status is driven by an approval chain.

PR, PO and Invoice share one state machine shape: an initial status, an
approved and a rejected terminal, plus (for PR) the conversion into a PO.
Each type is described once in ``GOVERNED_ENTITIES``; every status change
goes through ``transition_status`` which applies it as a conditional UPDATE
on the expected source status.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from fastapi import HTTPException, status as http_status
import structlog

from procureflow.models.invoice import Invoice
from procureflow.models.purchase_order import PurchaseOrder
from procureflow.models.purchase_request import PurchaseRequest

logger = structlog.get_logger()

ENTITY_PR = "PR"
ENTITY_PO = "PO"
ENTITY_INVOICE = "INVOICE"


@dataclass(frozen=True)
class GovernedEntity:
    entity_type: str
    model: type
    label: str
    initial_status: str
    approved_status: str
    rejected_status: str
    transitions: dict[str, frozenset[str]] = field(default_factory=dict)
    stamps_approver: bool = False

    def chain_prefix(self, entity_id) -> str:
        return f"approval:{self.entity_type.lower()}:{entity_id}"

    def can_transition(self, current: str, target: str) -> bool:
        return target in self.transitions.get(current, frozenset())


GOVERNED_ENTITIES: dict[str, GovernedEntity] = {
    ENTITY_PR: GovernedEntity(
        entity_type=ENTITY_PR,
        model=PurchaseRequest,
        label="Purchase request",
        initial_status="SUBMITTED",
        approved_status="APPROVED",
        rejected_status="REJECTED",
        transitions={
            "SUBMITTED": frozenset({"APPROVED", "REJECTED"}),
            "APPROVED": frozenset({"CONVERTED_TO_PO"}),
        },
    ),
    ENTITY_PO: GovernedEntity(
        entity_type=ENTITY_PO,
        model=PurchaseOrder,
        label="Purchase order",
        initial_status="DRAFT",
        approved_status="APPROVED",
        rejected_status="REJECTED",
        transitions={"DRAFT": frozenset({"APPROVED", "REJECTED"})},
        stamps_approver=True,
    ),
    ENTITY_INVOICE: GovernedEntity(
        entity_type=ENTITY_INVOICE,
        model=Invoice,
        label="Invoice",
        initial_status="REGISTERED",
        approved_status="APPROVED",
        rejected_status="REJECTED",
        transitions={"REGISTERED": frozenset({"APPROVED", "REJECTED"})},
    ),
}


def get_governed_entity(entity_type: str) -> GovernedEntity:
    governed = GOVERNED_ENTITIES.get(entity_type)
    if governed is None:
        raise HTTPException(
            status_code=http_status.HTTP_400_BAD_REQUEST,
            detail={
                "error": {
                    "code": "UNKNOWN_ENTITY_TYPE",
                    "message": f"Unknown entity type '{entity_type}'",
                }
            },
        )
    return governed


async def transition_status(
    session: AsyncSession,
    entity_type: str,
    entity_id: uuid.UUID,
    target: str,
    **values,
) -> str:
    """
    Move a governed entity to ``target``. Returns the previous status.

    Raises 404 if the entity does not exist and 409 if the transition is not
    allowed from its current status or another transaction changed the status
    first. Caller owns the transaction.
    """
    governed = get_governed_entity(entity_type)
    model = governed.model

    result = await session.execute(select(model.status).where(model.id == entity_id))
    current: Optional[str] = result.scalar_one_or_none()
    if current is None:
        raise HTTPException(
            status_code=http_status.HTTP_404_NOT_FOUND,
            detail=f"{governed.label} not found",
        )

    if not governed.can_transition(current, target):
        raise HTTPException(
            status_code=http_status.HTTP_409_CONFLICT,
            detail={
                "error": {
                    "code": "INVALID_STATE_TRANSITION",
                    "message": f"{governed.label} cannot move from {current} to {target}",
                }
            },
        )

    updated = await session.execute(
        update(model)
        .where(model.id == entity_id, model.status == current)
        .values(status=target, **values)
    )
    if updated.rowcount == 0:
        raise HTTPException(
            status_code=http_status.HTTP_409_CONFLICT,
            detail={
                "error": {
                    "code": "INVALID_STATE_TRANSITION",
                    "message": f"{governed.label} status changed concurrently",
                }
            },
        )

    logger.info(
        "entity_status_changed",
        entity_type=entity_type,
        entity_id=str(entity_id),
        before=current,
        after=target,
    )
    return current


async def mark_approved(
    session: AsyncSession,
    entity_type: str,
    entity_id: uuid.UUID,
    actor_id: uuid.UUID,
) -> str:
    governed = get_governed_entity(entity_type)
    values = {}
    if governed.stamps_approver:
        values = {"approved_at": datetime.utcnow(), "approved_by_id": actor_id}
    return await transition_status(
        session, entity_type, entity_id, governed.approved_status, **values
    )


async def mark_rejected(
    session: AsyncSession, entity_type: str, entity_id: uuid.UUID
) -> str:
    governed = get_governed_entity(entity_type)
    return await transition_status(
        session, entity_type, entity_id, governed.rejected_status
    )
