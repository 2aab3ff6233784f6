"""
Seed script: creates users with a reporting line, a finance approver,
cost centers, vendors and a few pieces of equipment.
Run from the project root: python -m scripts.seed
"""
import asyncio
import sys
import os
import uuid

# Ensure the project root is on sys.path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import select
from procureflow.database import AsyncSessionLocal, Base, engine
import procureflow.models  # noqa: F401
from procureflow.models.asset import Equipment
from procureflow.models.cost_center import CostCenter
from procureflow.models.user import User, UserRoleAssignment
from procureflow.models.vendor import Vendor
from procureflow.services.auth_service import create_access_token

# ---------- Fixed UUIDs ----------

USER_ADMIN_ID = uuid.UUID("a0000000-0000-0000-0000-000000000101")
USER_MANAGER_ID = uuid.UUID("a0000000-0000-0000-0000-000000000102")
USER_FINANCE_ID = uuid.UUID("a0000000-0000-0000-0000-000000000103")
USER_EMPLOYEE_ID = uuid.UUID("a0000000-0000-0000-0000-000000000104")

CC_ENGINEERING_ID = uuid.UUID("c0000000-0000-0000-0000-000000000001")
CC_OPERATIONS_ID = uuid.UUID("c0000000-0000-0000-0000-000000000002")

VENDOR_ALPHA_ID = uuid.UUID("e0000000-0000-0000-0000-000000000001")
VENDOR_BETA_ID = uuid.UUID("e0000000-0000-0000-0000-000000000002")


async def seed():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as db:
        # Check if already seeded
        result = await db.execute(select(User).where(User.id == USER_ADMIN_ID))
        if result.scalar_one_or_none():
            print("Seed data already exists. Skipping.")
            return

        # --- Users (manager before reports so the FK resolves on flush) ---
        db.add_all([
            User(id=USER_ADMIN_ID, email="admin@procureflow.local", name="Ada Admin", role="admin"),
            User(id=USER_MANAGER_ID, email="manager@procureflow.local", name="Max Manager", role="manager"),
            User(id=USER_FINANCE_ID, email="finance@procureflow.local", name="Fay Finance", role="finance"),
        ])
        await db.flush()
        db.add(
            User(
                id=USER_EMPLOYEE_ID,
                email="employee@procureflow.local",
                name="Eli Employee",
                role="employee",
                manager_id=USER_MANAGER_ID,
            )
        )
        db.add(UserRoleAssignment(user_id=USER_FINANCE_ID, role_name="finance"))

        # --- Cost centers ---
        db.add_all([
            CostCenter(id=CC_ENGINEERING_ID, code="ENG", name="Engineering", owner_id=USER_MANAGER_ID),
            CostCenter(id=CC_OPERATIONS_ID, code="OPS", name="Operations"),
        ])

        # --- Vendors ---
        db.add_all([
            Vendor(id=VENDOR_ALPHA_ID, name="Alpha Supplies", tax_id="TAX-ALPHA-001",
                   contact_email="sales@alpha.example"),
            Vendor(id=VENDOR_BETA_ID, name="Beta Hardware", tax_id="TAX-BETA-002",
                   contact_email="orders@beta.example"),
        ])

        # --- Equipment ---
        db.add_all([
            Equipment(asset_tag="EQ-0001", name="Laser cutter"),
            Equipment(asset_tag="EQ-0002", name="Forklift"),
        ])

        await db.commit()
        print("Seed data inserted successfully!")
        print("  Users: 4 (admin, manager, finance, employee -> manager)")
        print("  Cost centers: 2")
        print("  Vendors: 2")
        print("  Equipment: 2")
        print("Development tokens:")
        for user_id, role, email in (
            (USER_EMPLOYEE_ID, "employee", "employee@procureflow.local"),
            (USER_MANAGER_ID, "manager", "manager@procureflow.local"),
            (USER_FINANCE_ID, "finance", "finance@procureflow.local"),
            (USER_ADMIN_ID, "admin", "admin@procureflow.local"),
        ):
            token = create_access_token(str(user_id), role, email, expires_minutes=24 * 60)
            print(f"  {role}: {token}")


if __name__ == "__main__":
    asyncio.run(seed())
