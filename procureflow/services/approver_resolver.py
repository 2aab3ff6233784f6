"""
Approver resolution: requester → ordered list of approver ids.

Order: requester's direct manager (when set, active and not the requester
themselves), then one finance approver (first active user holding a
``finance`` role assignment, falling back to the first active admin).
"""

import uuid
from typing import Awaitable, Callable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from fastapi import HTTPException, status as http_status
import structlog

from procureflow.models.user import User, UserRoleAssignment

logger = structlog.get_logger()

FINANCE_ROLE = "finance"
ADMIN_ROLE = "admin"

ApproverResolver = Callable[[AsyncSession, uuid.UUID], Awaitable[list[uuid.UUID]]]


async def get_manager_id(
    session: AsyncSession, requester_id: uuid.UUID
) -> Optional[uuid.UUID]:
    """Look up requester → manager_id → active User."""
    requester_result = await session.execute(
        select(User).where(User.id == requester_id)
    )
    requester = requester_result.scalar_one_or_none()
    if not requester or not requester.manager_id:
        return None
    if requester.manager_id == requester.id:
        return None

    manager_result = await session.execute(
        select(User).where(User.id == requester.manager_id, User.is_active == True)  # noqa: E712
    )
    manager = manager_result.scalar_one_or_none()
    return manager.id if manager else None


async def get_finance_approver_id(session: AsyncSession) -> Optional[uuid.UUID]:
    """First active finance role holder; any active admin otherwise."""
    result = await session.execute(
        select(User)
        .join(UserRoleAssignment, UserRoleAssignment.user_id == User.id)
        .where(
            UserRoleAssignment.role_name == FINANCE_ROLE,
            User.is_active == True,  # noqa: E712
        )
        .order_by(User.created_at, User.id)
    )
    finance_user = result.scalars().first()
    if finance_user:
        return finance_user.id

    admin_result = await session.execute(
        select(User)
        .where(User.role == ADMIN_ROLE, User.is_active == True)  # noqa: E712
        .order_by(User.created_at, User.id)
    )
    admin = admin_result.scalars().first()
    return admin.id if admin else None


async def resolve_approvers(
    session: AsyncSession, requester_id: uuid.UUID
) -> list[uuid.UUID]:
    approvers: list[uuid.UUID] = []

    manager_id = await get_manager_id(session, requester_id)
    if manager_id:
        approvers.append(manager_id)

    finance_id = await get_finance_approver_id(session)
    if finance_id and finance_id not in approvers:
        approvers.append(finance_id)

    if not approvers:
        logger.warning("approvers_unresolved", requester_id=str(requester_id))
        raise HTTPException(
            status_code=http_status.HTTP_400_BAD_REQUEST,
            detail={
                "error": {
                    "code": "NO_APPROVERS_RESOLVED",
                    "message": "Could not determine approvers for this workflow",
                }
            },
        )

    return approvers
