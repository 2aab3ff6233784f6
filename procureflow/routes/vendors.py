from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from procureflow.database import get_db
from procureflow.middleware.auth import get_current_user
from procureflow.middleware.authorization import FINANCE_WRITERS, require_roles
from procureflow.models.vendor import Vendor
from procureflow.schemas.common import PaginatedResponse, build_pagination
from procureflow.schemas.master_data import VendorCreate, VendorResponse
from procureflow.services.audit_service import emit_audit_event

logger = structlog.get_logger()
router = APIRouter()


def _to_response(v: Vendor) -> VendorResponse:
    return VendorResponse(
        id=str(v.id),
        name=v.name,
        tax_id=v.tax_id,
        contact_email=v.contact_email,
        created_at=v.created_at.isoformat() if v.created_at else "",
    )


@router.get("", response_model=PaginatedResponse[VendorResponse])
async def list_vendors(
    page: int = Query(1, ge=1, le=1000),
    limit: int = Query(20, ge=1, le=100),
    search: str = Query(None),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    q = select(Vendor)
    count_q = select(func.count(Vendor.id))

    if search:
        pattern = f"%{search}%"
        q = q.where(or_(Vendor.name.ilike(pattern), Vendor.tax_id.ilike(pattern)))
        count_q = count_q.where(or_(Vendor.name.ilike(pattern), Vendor.tax_id.ilike(pattern)))

    total = (await db.execute(count_q)).scalar() or 0
    result = await db.execute(
        q.order_by(Vendor.name).offset((page - 1) * limit).limit(limit)
    )
    items = [_to_response(v) for v in result.scalars().all()]
    return PaginatedResponse(data=items, pagination=build_pagination(page, limit, total))


@router.post("", response_model=VendorResponse, status_code=status.HTTP_201_CREATED)
async def create_vendor(
    body: VendorCreate,
    background_tasks: BackgroundTasks,
    current_user: dict = Depends(get_current_user),
    _auth: None = Depends(require_roles(*FINANCE_WRITERS)),
    db: AsyncSession = Depends(get_db),
):
    if body.tax_id:
        existing = await db.execute(select(Vendor.id).where(Vendor.tax_id == body.tax_id))
        if existing.scalar_one_or_none():
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Vendor with this tax_id already exists",
            )

    vendor = Vendor(
        name=body.name,
        tax_id=body.tax_id,
        contact_email=str(body.contact_email) if body.contact_email else None,
    )
    db.add(vendor)
    await db.flush()
    await db.refresh(vendor)

    background_tasks.add_task(
        emit_audit_event,
        action="VENDOR_CREATED",
        entity_type="VENDOR",
        entity_id=str(vendor.id),
        actor_id=str(current_user["user_id"]),
        after_state={"name": vendor.name, "tax_id": vendor.tax_id},
        actor_email=current_user.get("email"),
    )
    logger.info("vendor_created", vendor_id=str(vendor.id))
    return _to_response(vendor)
