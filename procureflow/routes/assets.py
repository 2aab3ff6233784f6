"""
Asset routes: ledger upsert/listing, movement registration, depreciation.

Mounted at /api/v1 directly since the three resources share a service.
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from procureflow.database import get_db
from procureflow.middleware.auth import get_current_user
from procureflow.middleware.authorization import FINANCE_WRITERS, require_roles
from procureflow.models.asset import AssetLedger, AssetMovement
from procureflow.schemas.asset import (
    AssetLedgerResponse,
    AssetLedgerUpsert,
    AssetMovementCreate,
    AssetMovementResponse,
    DepreciationLine,
)
from procureflow.services.asset_service import (
    depreciation_report,
    list_asset_ledgers,
    register_asset_movement,
    upsert_asset_ledger,
)
from procureflow.services.audit_service import emit_audit_event

logger = structlog.get_logger()
router = APIRouter()


def _movement_to_response(mv: AssetMovement) -> AssetMovementResponse:
    return AssetMovementResponse(
        id=str(mv.id),
        equipment_id=str(mv.equipment_id),
        asset_ledger_id=str(mv.asset_ledger_id),
        type=mv.type,
        from_cost_center_id=str(mv.from_cost_center_id) if mv.from_cost_center_id else None,
        to_cost_center_id=str(mv.to_cost_center_id) if mv.to_cost_center_id else None,
        reason=mv.reason,
        actor_id=str(mv.actor_id),
        metadata=mv.metadata_json,
        ts=mv.ts.isoformat() if mv.ts else "",
    )


def _ledger_to_response(
    ledger: AssetLedger, movements: Optional[list[AssetMovement]] = None
) -> AssetLedgerResponse:
    return AssetLedgerResponse(
        id=str(ledger.id),
        equipment_id=str(ledger.equipment_id),
        cost_center_id=str(ledger.cost_center_id),
        acquisition_date=ledger.acquisition_date.isoformat(),
        acquisition_value_cents=ledger.acquisition_value_cents,
        depreciation_method=ledger.depreciation_method,
        useful_life_months=ledger.useful_life_months,
        residual_value_cents=ledger.residual_value_cents or 0,
        status=ledger.status,
        recent_movements=[_movement_to_response(mv) for mv in movements or []],
    )


@router.post("/asset-ledgers", response_model=AssetLedgerResponse)
async def upsert_ledger(
    body: AssetLedgerUpsert,
    background_tasks: BackgroundTasks,
    current_user: dict = Depends(get_current_user),
    _auth: None = Depends(require_roles(*FINANCE_WRITERS)),
    db: AsyncSession = Depends(get_db),
):
    ledger = await upsert_asset_ledger(db, body)
    background_tasks.add_task(
        emit_audit_event,
        action="ASSET_LEDGER_UPSERTED",
        entity_type="ASSET_LEDGER",
        entity_id=str(ledger.id),
        actor_id=str(current_user["user_id"]),
        after_state=body.model_dump(mode="json"),
        actor_email=current_user.get("email"),
    )
    return _ledger_to_response(ledger)


@router.get("/asset-ledgers", response_model=list[AssetLedgerResponse])
async def list_ledgers(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    rows = await list_asset_ledgers(db)
    return [_ledger_to_response(ledger, movements) for ledger, movements in rows]


@router.post(
    "/asset-movements",
    response_model=AssetMovementResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_movement(
    body: AssetMovementCreate,
    background_tasks: BackgroundTasks,
    current_user: dict = Depends(get_current_user),
    _auth: None = Depends(require_roles(*FINANCE_WRITERS)),
    db: AsyncSession = Depends(get_db),
):
    movement = await register_asset_movement(db, current_user["user_id"], body)
    background_tasks.add_task(
        emit_audit_event,
        action=f"ASSET_{body.type}",
        entity_type="ASSET_LEDGER",
        entity_id=str(movement.asset_ledger_id),
        actor_id=str(current_user["user_id"]),
        after_state={
            "type": body.type,
            "to_cost_center_id": str(body.to_cost_center_id) if body.to_cost_center_id else None,
        },
        actor_email=current_user.get("email"),
    )
    return _movement_to_response(movement)


@router.get("/depreciation-report", response_model=list[DepreciationLine])
async def get_depreciation_report(
    as_of: Optional[date] = Query(None),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    lines = await depreciation_report(db, as_of)
    return [DepreciationLine(**line) for line in lines]
