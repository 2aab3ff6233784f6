"""
Approval service: chain construction, step processing.

A chain is the ordered set of Approval rows for one governed entity
(steps 1..N). The current step is never stored: it is always the lowest
PENDING step, re-read under a row lock for every decision.

All functions use the caller's session (no commit). get_db() auto-commits.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import select, update, func
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from fastapi import HTTPException, status as http_status
import structlog

from procureflow.models.approval import Approval
from procureflow.models.user import User
from procureflow.services.approver_resolver import ApproverResolver, resolve_approvers
from procureflow.services.governed_entity import (
    get_governed_entity,
    mark_approved,
    mark_rejected,
)

logger = structlog.get_logger()

PENDING = "PENDING"
APPROVED = "APPROVED"
REJECTED = "REJECTED"

DECISION_APPROVE = "APPROVE"
DECISION_REJECT = "REJECT"

# Chain slot keys live under this prefix; callers may not use it
CHAIN_KEY_PREFIX = "approval:"

_DIALECT_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


@dataclass
class DecisionResult:
    approval: Approval
    replayed: bool = False
    entity_status: Optional[str] = None


def _approval_error(
    code: str, message: str, status_code: int = http_status.HTTP_409_CONFLICT
) -> HTTPException:
    return HTTPException(
        status_code=status_code,
        detail={"error": {"code": code, "message": message}},
    )


def _insert_ignoring_conflicts(session: AsyncSession, values: dict):
    dialect = session.get_bind().dialect.name
    insert_fn = _DIALECT_INSERTS.get(dialect)
    if insert_fn is None:
        raise RuntimeError(f"Upsert not supported for dialect '{dialect}'")
    return insert_fn(Approval).values(**values).on_conflict_do_nothing()


async def get_chain(
    session: AsyncSession, entity_type: str, entity_id: uuid.UUID
) -> list[Approval]:
    result = await session.execute(
        select(Approval)
        .where(Approval.entity_type == entity_type, Approval.entity_id == entity_id)
        .order_by(Approval.step)
    )
    return list(result.scalars().all())


async def build_approval_chain(
    session: AsyncSession,
    entity_type: str,
    entity_id: uuid.UUID,
    requester_id: uuid.UUID,
    idempotency_prefix: Optional[str] = None,
    resolver: ApproverResolver = resolve_approvers,
) -> list[Approval]:
    """
    Create PENDING Approval rows for the entity, one per resolved approver.

    Each slot is inserted with ON CONFLICT DO NOTHING under the key
    ``<prefix>:step:<n>``, so building the same chain twice leaves the
    existing rows untouched.
    """
    governed = get_governed_entity(entity_type)
    prefix = idempotency_prefix or governed.chain_prefix(entity_id)

    approvers = await resolver(session, requester_id)

    for step, approver_id in enumerate(approvers, start=1):
        await session.execute(
            _insert_ignoring_conflicts(
                session,
                {
                    "id": uuid.uuid4(),
                    "entity_type": entity_type,
                    "entity_id": entity_id,
                    "step": step,
                    "approver_id": approver_id,
                    "status": PENDING,
                    "idempotency_key": f"{prefix}:step:{step}",
                    "created_at": datetime.utcnow(),
                },
            )
        )

    chain = await get_chain(session, entity_type, entity_id)
    logger.info(
        "approval_chain_built",
        entity_type=entity_type,
        entity_id=str(entity_id),
        steps=len(chain),
    )
    return chain


async def _find_by_key(session: AsyncSession, idempotency_key: str) -> Optional[Approval]:
    result = await session.execute(
        select(Approval)
        .where(Approval.idempotency_key == idempotency_key)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _replay(
    session: AsyncSession,
    idempotency_key: str,
    entity_type: str,
    entity_id: uuid.UUID,
) -> Optional[DecisionResult]:
    existing = await _find_by_key(session, idempotency_key)
    if existing is None:
        return None
    if existing.entity_type != entity_type or existing.entity_id != entity_id:
        raise _approval_error(
            "IDEMPOTENCY_KEY_REUSED",
            "Idempotency-Key was already used for a different entity",
        )
    logger.info(
        "approval_decision_replayed",
        entity_type=entity_type,
        entity_id=str(entity_id),
        step=existing.step,
    )
    return DecisionResult(approval=existing, replayed=True)


async def _lock_pending(
    session: AsyncSession, entity_type: str, entity_id: uuid.UUID
) -> list[Approval]:
    """SELECT FOR UPDATE on the entity's PENDING rows, lowest step first."""
    result = await session.execute(
        select(Approval)
        .where(
            Approval.entity_type == entity_type,
            Approval.entity_id == entity_id,
            Approval.status == PENDING,
        )
        .order_by(Approval.step)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def count_pending(
    session: AsyncSession, entity_type: str, entity_id: uuid.UUID
) -> int:
    result = await session.execute(
        select(func.count(Approval.id)).where(
            Approval.entity_type == entity_type,
            Approval.entity_id == entity_id,
            Approval.status == PENDING,
        )
    )
    return int(result.scalar() or 0)


async def decide_approval(
    session: AsyncSession,
    actor_id: uuid.UUID,
    entity_type: str,
    entity_id: uuid.UUID,
    decision: str,
    notes: Optional[str] = None,
    idempotency_key: Optional[str] = None,
) -> DecisionResult:
    """
    Record ``actor_id``'s decision on the current step of the entity's chain.

    Raises 400 if no step is pending, 403 if the actor is not the current
    step's approver, 409 if the step was decided concurrently.
    REJECT auto-rejects every remaining step and rejects the entity;
    APPROVE on the last pending step approves the entity.
    """
    governed = get_governed_entity(entity_type)
    if decision not in (DECISION_APPROVE, DECISION_REJECT):
        raise _approval_error(
            "INVALID_DECISION",
            f"Decision must be {DECISION_APPROVE} or {DECISION_REJECT}",
            http_status.HTTP_400_BAD_REQUEST,
        )

    if idempotency_key:
        if idempotency_key.startswith(CHAIN_KEY_PREFIX):
            raise _approval_error(
                "IDEMPOTENCY_KEY_RESERVED",
                f"Idempotency-Key may not start with '{CHAIN_KEY_PREFIX}'",
                http_status.HTTP_400_BAD_REQUEST,
            )
        replayed = await _replay(session, idempotency_key, entity_type, entity_id)
        if replayed:
            return replayed

    pending = await _lock_pending(session, entity_type, entity_id)

    if idempotency_key:
        # A retry with the same key may have committed while we waited on the lock
        replayed = await _replay(session, idempotency_key, entity_type, entity_id)
        if replayed:
            return replayed

    if not pending:
        raise _approval_error(
            "NO_PENDING_APPROVALS",
            "There are no pending approvals for this item",
            http_status.HTTP_400_BAD_REQUEST,
        )

    current = pending[0]
    if current.approver_id != actor_id:
        raise HTTPException(
            status_code=http_status.HTTP_403_FORBIDDEN,
            detail={
                "error": {
                    "code": "APPROVAL_NOT_YOUR_TURN",
                    "message": "You are not the current approver for this step",
                }
            },
        )

    now = datetime.utcnow()
    values = {
        "status": APPROVED if decision == DECISION_APPROVE else REJECTED,
        "decided_at": now,
        "decision_notes": notes,
    }
    if idempotency_key:
        values["idempotency_key"] = idempotency_key

    try:
        async with session.begin_nested():
            result = await session.execute(
                update(Approval)
                .where(Approval.id == current.id, Approval.status == PENDING)
                .values(**values)
            )
    except IntegrityError:
        # Same key committed by a concurrent call for this entity
        if idempotency_key:
            replayed = await _replay(session, idempotency_key, entity_type, entity_id)
            if replayed:
                return replayed
        raise

    if result.rowcount == 0:
        raise _approval_error(
            "APPROVAL_ALREADY_DECIDED",
            "This approval step is no longer pending",
        )

    entity_status = None
    if decision == DECISION_REJECT:
        await session.execute(
            update(Approval)
            .where(
                Approval.entity_type == entity_type,
                Approval.entity_id == entity_id,
                Approval.status == PENDING,
            )
            .values(
                status=REJECTED,
                decided_at=now,
                decision_notes=f"Auto-rejected after rejection at step {current.step}",
            )
        )
        await mark_rejected(session, entity_type, entity_id)
        entity_status = governed.rejected_status
    elif await count_pending(session, entity_type, entity_id) == 0:
        await mark_approved(session, entity_type, entity_id, actor_id)
        entity_status = governed.approved_status

    await session.flush()
    await session.refresh(current)

    logger.info(
        "approval_decided",
        entity_type=entity_type,
        entity_id=str(entity_id),
        step=current.step,
        decision=decision,
        actor_id=str(actor_id),
        entity_status=entity_status,
    )
    return DecisionResult(approval=current, entity_status=entity_status)


async def list_approvals(
    session: AsyncSession, entity_type: str, entity_id: uuid.UUID
) -> list[tuple[Approval, User]]:
    """Chain for the entity, ordered by step, with each approver's identity."""
    get_governed_entity(entity_type)
    result = await session.execute(
        select(Approval, User)
        .join(User, User.id == Approval.approver_id)
        .where(Approval.entity_type == entity_type, Approval.entity_id == entity_id)
        .order_by(Approval.step)
    )
    return [(row[0], row[1]) for row in result.all()]
