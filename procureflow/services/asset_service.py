"""
Asset ledger service: ledger upsert, movement registration, depreciation.

Movements are bookkeeping only and are not gated by approvals.
"""

import uuid
from dataclasses import dataclass
from datetime import date
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from fastapi import HTTPException, status as http_status
import structlog

from procureflow.models.asset import AssetLedger, AssetMovement, Equipment
from procureflow.models.cost_center import CostCenter
from procureflow.schemas.asset import AssetLedgerUpsert, AssetMovementCreate

logger = structlog.get_logger()

RECENT_MOVEMENTS = 5

# Movement type → resulting ledger status
_STATUS_BY_MOVEMENT = {
    "TRANSFER": "TRANSFERRED",
    "WRITE_OFF": "WRITTEN_OFF",
    "LOSS": "LOST",
}


@dataclass
class DepreciationFigures:
    monthly: float
    months_elapsed: int
    accumulated: float
    book_value: float


async def _require(session: AsyncSession, model, entity_id, label: str):
    result = await session.execute(select(model).where(model.id == entity_id))
    record = result.scalar_one_or_none()
    if not record:
        raise HTTPException(
            status_code=http_status.HTTP_404_NOT_FOUND,
            detail=f"{label} not found",
        )
    return record


async def get_ledger_for_equipment(
    session: AsyncSession, equipment_id: uuid.UUID
) -> Optional[AssetLedger]:
    result = await session.execute(
        select(AssetLedger).where(AssetLedger.equipment_id == equipment_id)
    )
    return result.scalar_one_or_none()


async def upsert_asset_ledger(session: AsyncSession, body: AssetLedgerUpsert) -> AssetLedger:
    """Create the equipment's ledger, or overwrite its acquisition data."""
    await _require(session, Equipment, body.equipment_id, "Equipment")
    await _require(session, CostCenter, body.cost_center_id, "Cost center")

    ledger = await get_ledger_for_equipment(session, body.equipment_id)
    created = ledger is None
    if created:
        ledger = AssetLedger(equipment_id=body.equipment_id, status="ACTIVE")
        session.add(ledger)

    ledger.cost_center_id = body.cost_center_id
    ledger.acquisition_date = body.acquisition_date
    ledger.acquisition_value_cents = body.acquisition_value_cents
    ledger.depreciation_method = body.depreciation_method
    ledger.useful_life_months = body.useful_life_months
    ledger.residual_value_cents = body.residual_value_cents

    await session.flush()
    logger.info(
        "asset_ledger_upserted",
        ledger_id=str(ledger.id),
        equipment_id=str(body.equipment_id),
        created=created,
    )
    return ledger


async def register_asset_movement(
    session: AsyncSession, actor_id: uuid.UUID, body: AssetMovementCreate
) -> AssetMovement:
    ledger = await get_ledger_for_equipment(session, body.equipment_id)
    if not ledger:
        raise HTTPException(
            status_code=http_status.HTTP_404_NOT_FOUND,
            detail="Asset ledger not found",
        )

    for cc_id in (body.from_cost_center_id, body.to_cost_center_id):
        if cc_id:
            await _require(session, CostCenter, cc_id, "Cost center")

    movement = AssetMovement(
        equipment_id=body.equipment_id,
        asset_ledger_id=ledger.id,
        type=body.type,
        from_cost_center_id=body.from_cost_center_id,
        to_cost_center_id=body.to_cost_center_id,
        reason=body.reason,
        actor_id=actor_id,
        metadata_json=body.metadata,
    )
    session.add(movement)

    before = ledger.status
    if body.type == "TRANSFER":
        # A transfer without destination is recorded but leaves the ledger as is
        if body.to_cost_center_id:
            ledger.cost_center_id = body.to_cost_center_id
            ledger.status = _STATUS_BY_MOVEMENT["TRANSFER"]
    elif body.type in _STATUS_BY_MOVEMENT:
        ledger.status = _STATUS_BY_MOVEMENT[body.type]

    await session.flush()
    logger.info(
        "asset_movement_registered",
        movement_id=str(movement.id),
        ledger_id=str(ledger.id),
        type=body.type,
        status_before=before,
        status_after=ledger.status,
    )
    return movement


async def list_asset_ledgers(
    session: AsyncSession,
) -> list[tuple[AssetLedger, list[AssetMovement]]]:
    """Ledgers newest first, each with its latest movements."""
    result = await session.execute(
        select(AssetLedger).order_by(AssetLedger.created_at.desc())
    )
    ledgers = list(result.scalars().all())

    # Batch load movements for all ledgers in one query to avoid N+1
    movement_map: dict = {}
    ledger_ids = [ledger.id for ledger in ledgers]
    if ledger_ids:
        mv_result = await session.execute(
            select(AssetMovement)
            .where(AssetMovement.asset_ledger_id.in_(ledger_ids))
            .order_by(AssetMovement.ts.desc())
        )
        for mv in mv_result.scalars().all():
            bucket = movement_map.setdefault(mv.asset_ledger_id, [])
            if len(bucket) < RECENT_MOVEMENTS:
                bucket.append(mv)

    return [(ledger, movement_map.get(ledger.id, [])) for ledger in ledgers]


def months_between(start: date, end: date) -> int:
    """Whole calendar months from start to end, never negative."""
    return max(0, (end.year - start.year) * 12 + (end.month - start.month))


def compute_straight_line(
    acquisition_value: int,
    residual_value: int,
    useful_life_months: int,
    acquisition_date: date,
    as_of: date,
) -> DepreciationFigures:
    depreciable_base = max(0, acquisition_value - residual_value)
    monthly = depreciable_base / useful_life_months if useful_life_months > 0 else 0.0
    months_elapsed = months_between(acquisition_date, as_of)
    accumulated = min(depreciable_base, monthly * months_elapsed)
    return DepreciationFigures(
        monthly=monthly,
        months_elapsed=months_elapsed,
        accumulated=accumulated,
        book_value=acquisition_value - accumulated,
    )


async def depreciation_report(
    session: AsyncSession, as_of: Optional[date] = None
) -> list[dict]:
    as_of = as_of or date.today()
    result = await session.execute(
        select(AssetLedger, Equipment, CostCenter)
        .join(Equipment, Equipment.id == AssetLedger.equipment_id)
        .join(CostCenter, CostCenter.id == AssetLedger.cost_center_id)
        .order_by(AssetLedger.acquisition_date)
    )

    lines = []
    for ledger, equipment, cost_center in result.all():
        figures = compute_straight_line(
            ledger.acquisition_value_cents,
            ledger.residual_value_cents or 0,
            ledger.useful_life_months,
            ledger.acquisition_date,
            as_of,
        )
        lines.append(
            {
                "ledger_id": str(ledger.id),
                "equipment_id": str(ledger.equipment_id),
                "asset_tag": equipment.asset_tag,
                "cost_center_id": str(cost_center.id),
                "cost_center_code": cost_center.code,
                "acquisition_date": ledger.acquisition_date.isoformat(),
                "acquisition_value_cents": ledger.acquisition_value_cents,
                "residual_value_cents": ledger.residual_value_cents or 0,
                "useful_life_months": ledger.useful_life_months,
                "depreciation_method": ledger.depreciation_method,
                "monthly_depreciation_cents": figures.monthly,
                "months_elapsed": figures.months_elapsed,
                "accumulated_depreciation_cents": figures.accumulated,
                "book_value_cents": figures.book_value,
                "status": ledger.status,
            }
        )
    return lines
