"""
Approval engine against a real (in-memory SQLite) database.

Covers chain completeness, idempotent creation and decisions, sequential
enforcement, rejection cascade, terminal approval, PO/invoice chains and
the lost-race paths of concurrent decisions and creations.
"""

import uuid
from datetime import date
from unittest.mock import patch

import pytest
from fastapi import HTTPException
from sqlalchemy import func, select, update

from procureflow.models.approval import Approval
from procureflow.models.purchase_order import PurchaseOrder
from procureflow.models.purchase_request import PrLineItem, PurchaseRequest
from procureflow.schemas.invoice import InvoiceCreate
from procureflow.schemas.purchase_order import PurchaseOrderCreate
from procureflow.schemas.purchase_request import PrLineItemCreate, PurchaseRequestCreate
from procureflow.services import approval_service, procurement_service
from procureflow.services.approval_service import (
    build_approval_chain,
    decide_approval,
    get_chain,
    list_approvals,
)
from procureflow.services.governed_entity import ENTITY_INVOICE, ENTITY_PO, ENTITY_PR
from procureflow.services.procurement_service import (
    create_invoice,
    create_purchase_order,
    create_purchase_request,
)


def _pr_body(directory, quantity: int = 2, unit_price_cents: int = 100) -> PurchaseRequestCreate:
    return PurchaseRequestCreate(
        cost_center_id=directory.cost_center,
        description="Team laptops",
        line_items=[
            PrLineItemCreate(
                description="Laptop", quantity=quantity, unit_price_cents=unit_price_cents
            )
        ],
    )


async def _submit_pr(db, directory, idempotency_key=None) -> PurchaseRequest:
    pr, _ = await create_purchase_request(
        db, directory.requester, _pr_body(directory), idempotency_key
    )
    await db.commit()
    return pr


async def _approve_pr(db, directory, pr_id) -> None:
    await decide_approval(db, directory.manager, ENTITY_PR, pr_id, "APPROVE")
    await decide_approval(db, directory.finance, ENTITY_PR, pr_id, "APPROVE")
    await db.commit()


async def _status(db, model, entity_id) -> str:
    result = await db.execute(select(model.status).where(model.id == entity_id))
    return result.scalar_one()


async def _count(db, model, *criteria) -> int:
    result = await db.execute(select(func.count(model.id)).where(*criteria))
    return result.scalar_one()


async def _chain_statuses(db, entity_type, entity_id) -> list[str]:
    result = await db.execute(
        select(Approval.status)
        .where(Approval.entity_type == entity_type, Approval.entity_id == entity_id)
        .order_by(Approval.step)
    )
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_submitted_pr_gets_manager_then_finance_chain(db, directory):
    pr = await _submit_pr(db, directory)

    assert pr.status == "SUBMITTED"
    assert pr.total_cents == 200
    assert await _count(db, PrLineItem, PrLineItem.pr_id == pr.id) == 1

    chain = await get_chain(db, ENTITY_PR, pr.id)
    assert [a.step for a in chain] == [1, 2]
    assert [a.approver_id for a in chain] == [directory.manager, directory.finance]
    assert all(a.status == "PENDING" for a in chain)
    assert [a.idempotency_key for a in chain] == [
        f"approval:pr:{pr.id}:step:1",
        f"approval:pr:{pr.id}:step:2",
    ]


@pytest.mark.asyncio
async def test_pr_creation_with_same_key_returns_same_pr(db, directory):
    first, created_first = await create_purchase_request(
        db, directory.requester, _pr_body(directory), "pr-key-1"
    )
    await db.commit()
    second, created_second = await create_purchase_request(
        db, directory.requester, _pr_body(directory, quantity=5), "pr-key-1"
    )
    await db.commit()

    assert created_first is True
    assert created_second is False
    assert second.id == first.id
    assert second.total_cents == 200
    assert await _count(db, PurchaseRequest) == 1
    assert await _count(db, Approval, Approval.entity_id == first.id) == 2


@pytest.mark.asyncio
async def test_building_chain_twice_leaves_slots_untouched(db, directory):
    pr = await _submit_pr(db, directory)
    await decide_approval(db, directory.manager, ENTITY_PR, pr.id, "APPROVE")
    await db.commit()

    chain = await build_approval_chain(db, ENTITY_PR, pr.id, directory.requester)
    await db.commit()

    assert [a.step for a in chain] == [1, 2]
    assert [a.status for a in chain] == ["APPROVED", "PENDING"]


@pytest.mark.asyncio
async def test_pr_with_unknown_cost_center_is_404(db, directory):
    body = _pr_body(directory)
    body.cost_center_id = uuid.uuid4()

    with pytest.raises(HTTPException) as exc_info:
        await create_purchase_request(db, directory.requester, body)

    assert exc_info.value.status_code == 404
    assert await _count(db, PurchaseRequest) == 0


# ---------------------------------------------------------------------------
# Decisions
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_pr_approved_only_after_last_step(db, directory):
    pr = await _submit_pr(db, directory)

    first = await decide_approval(db, directory.manager, ENTITY_PR, pr.id, "APPROVE", "ok")
    await db.commit()
    assert first.approval.step == 1
    assert first.approval.status == "APPROVED"
    assert first.approval.decision_notes == "ok"
    assert first.entity_status is None
    assert await _status(db, PurchaseRequest, pr.id) == "SUBMITTED"

    second = await decide_approval(db, directory.finance, ENTITY_PR, pr.id, "APPROVE")
    await db.commit()
    assert second.approval.step == 2
    assert second.entity_status == "APPROVED"
    assert await _status(db, PurchaseRequest, pr.id) == "APPROVED"


@pytest.mark.asyncio
async def test_second_approver_cannot_jump_the_queue(db, directory):
    pr = await _submit_pr(db, directory)
    pr_id = pr.id

    with pytest.raises(HTTPException) as exc_info:
        await decide_approval(db, directory.finance, ENTITY_PR, pr_id, "APPROVE")
    await db.rollback()

    assert exc_info.value.status_code == 403
    assert exc_info.value.detail["error"]["code"] == "APPROVAL_NOT_YOUR_TURN"
    assert await _chain_statuses(db, ENTITY_PR, pr_id) == ["PENDING", "PENDING"]


@pytest.mark.asyncio
async def test_outsider_cannot_decide(db, directory):
    pr = await _submit_pr(db, directory)

    with pytest.raises(HTTPException) as exc_info:
        await decide_approval(db, directory.requester, ENTITY_PR, pr.id, "APPROVE")

    assert exc_info.value.status_code == 403


@pytest.mark.asyncio
async def test_rejection_cascades_to_remaining_steps(db, directory):
    pr = await _submit_pr(db, directory)

    result = await decide_approval(
        db, directory.manager, ENTITY_PR, pr.id, "REJECT", "Over budget"
    )
    await db.commit()

    assert result.entity_status == "REJECTED"
    assert await _status(db, PurchaseRequest, pr.id) == "REJECTED"

    chain = await get_chain(db, ENTITY_PR, pr.id)
    assert [a.status for a in chain] == ["REJECTED", "REJECTED"]
    assert chain[0].decision_notes == "Over budget"
    assert chain[1].decision_notes == "Auto-rejected after rejection at step 1"
    assert chain[1].decided_at is not None

    # F can no longer act
    with pytest.raises(HTTPException) as exc_info:
        await decide_approval(db, directory.finance, ENTITY_PR, pr.id, "APPROVE")
    assert exc_info.value.status_code == 400
    assert exc_info.value.detail["error"]["code"] == "NO_PENDING_APPROVALS"


@pytest.mark.asyncio
async def test_rejection_at_last_step(db, directory):
    pr = await _submit_pr(db, directory)
    await decide_approval(db, directory.manager, ENTITY_PR, pr.id, "APPROVE")
    result = await decide_approval(db, directory.finance, ENTITY_PR, pr.id, "REJECT")
    await db.commit()

    assert result.entity_status == "REJECTED"
    chain = await get_chain(db, ENTITY_PR, pr.id)
    assert [a.status for a in chain] == ["APPROVED", "REJECTED"]


@pytest.mark.asyncio
async def test_fully_approved_entity_has_nothing_pending(db, directory):
    pr = await _submit_pr(db, directory)
    await _approve_pr(db, directory, pr.id)

    with pytest.raises(HTTPException) as exc_info:
        await decide_approval(db, directory.finance, ENTITY_PR, pr.id, "REJECT")

    assert exc_info.value.detail["error"]["code"] == "NO_PENDING_APPROVALS"


@pytest.mark.asyncio
async def test_decision_replay_returns_first_result(db, directory):
    pr = await _submit_pr(db, directory)

    first = await decide_approval(
        db, directory.manager, ENTITY_PR, pr.id, "APPROVE", "first", "decide-1"
    )
    await db.commit()
    replay = await decide_approval(
        db, directory.manager, ENTITY_PR, pr.id, "REJECT", "second", "decide-1"
    )
    await db.commit()

    assert replay.replayed is True
    assert replay.approval.id == first.approval.id
    assert replay.approval.status == "APPROVED"
    assert replay.approval.decision_notes == "first"

    chain = await get_chain(db, ENTITY_PR, pr.id)
    assert [a.status for a in chain] == ["APPROVED", "PENDING"]
    assert chain[0].idempotency_key == "decide-1"
    assert await _status(db, PurchaseRequest, pr.id) == "SUBMITTED"


@pytest.mark.asyncio
async def test_decision_key_for_another_entity_conflicts(db, directory):
    pr_a = await _submit_pr(db, directory)
    pr_b = await _submit_pr(db, directory)
    await decide_approval(db, directory.manager, ENTITY_PR, pr_a.id, "APPROVE", None, "shared")
    await db.commit()

    with pytest.raises(HTTPException) as exc_info:
        await decide_approval(db, directory.manager, ENTITY_PR, pr_b.id, "APPROVE", None, "shared")

    assert exc_info.value.status_code == 409
    assert exc_info.value.detail["error"]["code"] == "IDEMPOTENCY_KEY_REUSED"


@pytest.mark.asyncio
async def test_chain_slot_prefix_is_reserved(db, directory):
    pr = await _submit_pr(db, directory)

    with pytest.raises(HTTPException) as exc_info:
        await decide_approval(
            db, directory.manager, ENTITY_PR, pr.id, "APPROVE", None,
            f"approval:pr:{pr.id}:step:2",
        )

    assert exc_info.value.detail["error"]["code"] == "IDEMPOTENCY_KEY_RESERVED"


@pytest.mark.asyncio
async def test_list_approvals_includes_approver_identity(db, directory):
    pr = await _submit_pr(db, directory)

    rows = await list_approvals(db, ENTITY_PR, pr.id)

    assert [(a.step, u.email) for a, u in rows] == [(1, "m@acme.test"), (2, "f@acme.test")]


# ---------------------------------------------------------------------------
# Purchase orders and invoices
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_po_from_submitted_pr_is_rejected_without_side_effects(db, directory):
    pr = await _submit_pr(db, directory)
    pr_id = pr.id

    with pytest.raises(HTTPException) as exc_info:
        await create_purchase_order(
            db, directory.admin, PurchaseOrderCreate(pr_id=pr_id, vendor_id=directory.vendor)
        )
    await db.rollback()

    assert exc_info.value.status_code == 409
    assert exc_info.value.detail["error"]["code"] == "PR_NOT_APPROVED"
    assert await _count(db, PurchaseOrder) == 0
    assert await _count(db, Approval, Approval.entity_type == ENTITY_PO) == 0
    assert await _status(db, PurchaseRequest, pr_id) == "SUBMITTED"


@pytest.mark.asyncio
async def test_po_from_approved_pr_converts_it(db, directory):
    pr = await _submit_pr(db, directory)
    await _approve_pr(db, directory, pr.id)

    po, created = await create_purchase_order(
        db, directory.admin, PurchaseOrderCreate(pr_id=pr.id, vendor_id=directory.vendor)
    )
    await db.commit()

    assert created
    assert po.status == "DRAFT"
    assert po.total_cents == 200
    assert await _status(db, PurchaseRequest, pr.id) == "CONVERTED_TO_PO"

    # Chain resolved for the PR's requester, not the PO creator
    chain = await get_chain(db, ENTITY_PO, po.id)
    assert [a.approver_id for a in chain] == [directory.manager, directory.finance]

    # A converted PR cannot be converted again
    with pytest.raises(HTTPException) as exc_info:
        await create_purchase_order(
            db, directory.admin, PurchaseOrderCreate(pr_id=pr.id, vendor_id=directory.vendor)
        )
    assert exc_info.value.status_code == 409


@pytest.mark.asyncio
async def test_po_approval_stamps_approver(db, directory):
    po, _ = await create_purchase_order(
        db, directory.requester, PurchaseOrderCreate(vendor_id=directory.vendor)
    )
    await db.commit()
    assert po.total_cents == 0

    await decide_approval(db, directory.manager, ENTITY_PO, po.id, "APPROVE")
    result = await decide_approval(db, directory.finance, ENTITY_PO, po.id, "APPROVE")
    await db.commit()

    assert result.entity_status == "APPROVED"
    refreshed = await db.get(PurchaseOrder, po.id, populate_existing=True)
    assert refreshed.status == "APPROVED"
    assert refreshed.approved_by_id == directory.finance
    assert refreshed.approved_at is not None


@pytest.mark.asyncio
async def test_po_replay_does_not_convert_twice(db, directory):
    pr = await _submit_pr(db, directory)
    await _approve_pr(db, directory, pr.id)
    body = PurchaseOrderCreate(pr_id=pr.id, vendor_id=directory.vendor)

    first, _ = await create_purchase_order(db, directory.admin, body, "po-key")
    await db.commit()
    second, created = await create_purchase_order(db, directory.admin, body, "po-key")
    await db.commit()

    assert created is False
    assert second.id == first.id
    assert await _count(db, PurchaseOrder) == 1


@pytest.mark.asyncio
async def test_invoice_chain_and_rejection(db, directory):
    invoice, created = await create_invoice(
        db,
        directory.requester,
        InvoiceCreate(
            vendor_id=directory.vendor,
            invoice_number="INV-001",
            issue_date=date(2026, 3, 1),
            total_cents=5_000,
        ),
        "inv-key",
    )
    await db.commit()

    assert created
    assert invoice.status == "REGISTERED"
    assert len(await get_chain(db, ENTITY_INVOICE, invoice.id)) == 2

    result = await decide_approval(db, directory.manager, ENTITY_INVOICE, invoice.id, "REJECT")
    await db.commit()
    assert result.entity_status == "REJECTED"


@pytest.mark.asyncio
async def test_finance_requester_approves_own_single_step_chain(db, directory):
    pr, _ = await create_purchase_request(db, directory.finance, _pr_body(directory))
    await db.commit()

    chain = await get_chain(db, ENTITY_PR, pr.id)
    assert [a.approver_id for a in chain] == [directory.finance]

    result = await decide_approval(db, directory.finance, ENTITY_PR, pr.id, "APPROVE")
    await db.commit()
    assert result.entity_status == "APPROVED"


# ---------------------------------------------------------------------------
# Concurrent writers
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_step_decided_by_concurrent_call_is_already_decided(db, directory):
    pr = await _submit_pr(db, directory)
    pr_id = pr.id
    original_lock = approval_service._lock_pending

    async def lock_then_lose_race(session, entity_type, entity_id):
        pending = await original_lock(session, entity_type, entity_id)
        # Another writer decides the step between our read and our update
        await session.execute(
            update(Approval)
            .where(Approval.id == pending[0].id)
            .values(status="APPROVED"),
            execution_options={"synchronize_session": False},
        )
        return pending

    with patch.object(approval_service, "_lock_pending", lock_then_lose_race):
        with pytest.raises(HTTPException) as exc_info:
            await decide_approval(db, directory.manager, ENTITY_PR, pr_id, "APPROVE")
    await db.rollback()

    assert exc_info.value.status_code == 409
    assert exc_info.value.detail["error"]["code"] == "APPROVAL_ALREADY_DECIDED"
    assert await _chain_statuses(db, ENTITY_PR, pr_id) == ["PENDING", "PENDING"]


@pytest.mark.asyncio
async def test_decision_key_committed_concurrently_replays_winner(db, directory):
    pr = await _submit_pr(db, directory)
    pr_id = pr.id
    # The winning call stored the key on the entity's step-2 row
    await db.execute(
        update(Approval)
        .where(Approval.entity_id == pr_id, Approval.step == 2)
        .values(idempotency_key="decision-race"),
        execution_options={"synchronize_session": False},
    )
    await db.commit()

    original_replay = approval_service._replay
    calls = []

    async def miss_until_conflict(session, idempotency_key, entity_type, entity_id):
        calls.append(idempotency_key)
        if len(calls) <= 2:
            return None
        return await original_replay(session, idempotency_key, entity_type, entity_id)

    with patch.object(approval_service, "_replay", miss_until_conflict):
        result = await decide_approval(
            db, directory.manager, ENTITY_PR, pr_id, "APPROVE",
            idempotency_key="decision-race",
        )
    await db.commit()

    assert len(calls) == 3
    assert result.replayed is True
    assert result.approval.step == 2
    assert await _chain_statuses(db, ENTITY_PR, pr_id) == ["PENDING", "PENDING"]


@pytest.mark.asyncio
async def test_create_with_key_committed_concurrently_returns_winner(db, directory):
    first = await _submit_pr(db, directory, idempotency_key="pr-race")
    first_id = first.id
    original_find = procurement_service._find_by_key
    calls = []

    async def miss_first_lookup(session, model, idempotency_key):
        calls.append(idempotency_key)
        if len(calls) == 1:
            return None
        return await original_find(session, model, idempotency_key)

    with patch.object(procurement_service, "_find_by_key", miss_first_lookup):
        second, created = await create_purchase_request(
            db, directory.requester, _pr_body(directory), "pr-race"
        )
    await db.commit()

    assert len(calls) == 2
    assert created is False
    assert second.id == first_id
    assert await _count(db, PurchaseRequest) == 1
    assert await _count(db, PrLineItem) == 1
    assert await _count(
        db, Approval, Approval.entity_type == ENTITY_PR, Approval.entity_id == first_id
    ) == 2
