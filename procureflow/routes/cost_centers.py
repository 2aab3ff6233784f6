from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from procureflow.database import get_db
from procureflow.middleware.auth import get_current_user
from procureflow.middleware.authorization import FINANCE_WRITERS, require_roles
from procureflow.models.cost_center import CostCenter
from procureflow.models.user import User
from procureflow.schemas.common import PaginatedResponse, build_pagination
from procureflow.schemas.master_data import CostCenterCreate, CostCenterResponse
from procureflow.services.audit_service import emit_audit_event

logger = structlog.get_logger()
router = APIRouter()


def _to_response(cc: CostCenter) -> CostCenterResponse:
    return CostCenterResponse(
        id=str(cc.id), code=cc.code, name=cc.name,
        owner_id=str(cc.owner_id) if cc.owner_id else None,
        created_at=cc.created_at.isoformat() if cc.created_at else "",
    )


@router.get("", response_model=PaginatedResponse[CostCenterResponse])
async def list_cost_centers(
    page: int = Query(1, ge=1), limit: int = Query(50, ge=1, le=100),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    total = (await db.execute(select(func.count(CostCenter.id)))).scalar() or 0
    result = await db.execute(
        select(CostCenter).order_by(CostCenter.code).offset((page - 1) * limit).limit(limit)
    )
    items = [_to_response(cc) for cc in result.scalars().all()]
    return PaginatedResponse(data=items, pagination=build_pagination(page, limit, total))


@router.post("", response_model=CostCenterResponse, status_code=status.HTTP_201_CREATED)
async def create_cost_center(
    body: CostCenterCreate,
    background_tasks: BackgroundTasks,
    current_user: dict = Depends(get_current_user),
    _auth: None = Depends(require_roles(*FINANCE_WRITERS)),
    db: AsyncSession = Depends(get_db),
):
    existing = await db.execute(select(CostCenter.id).where(CostCenter.code == body.code))
    if existing.scalar_one_or_none():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "error": {
                    "code": "DUPLICATE_COST_CENTER",
                    "message": f"Cost center '{body.code}' already exists",
                }
            },
        )

    if body.owner_id:
        owner = await db.execute(select(User.id).where(User.id == body.owner_id))
        if not owner.scalar_one_or_none():
            raise HTTPException(status_code=404, detail="Owner not found")

    cc = CostCenter(code=body.code, name=body.name, owner_id=body.owner_id)
    db.add(cc)
    await db.flush()
    await db.refresh(cc)

    background_tasks.add_task(
        emit_audit_event,
        action="COST_CENTER_CREATED",
        entity_type="COST_CENTER",
        entity_id=str(cc.id),
        actor_id=str(current_user["user_id"]),
        after_state={"code": cc.code, "name": cc.name},
        actor_email=current_user.get("email"),
    )
    logger.info("cost_center_created", cost_center_id=str(cc.id), code=cc.code)
    return _to_response(cc)
