import uuid
from datetime import datetime, date
from typing import Optional

from sqlalchemy import (
    String,
    BigInteger,
    Integer,
    DateTime,
    Date,
    Text,
    JSON,
    ForeignKey,
    CheckConstraint,
    Index,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from procureflow.database import Base


class Equipment(Base):
    __tablename__ = "equipment"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    asset_tag: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow
    )


class AssetLedger(Base):
    __tablename__ = "asset_ledgers"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    equipment_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("equipment.id"), unique=True, nullable=False
    )
    cost_center_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("cost_centers.id"), nullable=False
    )
    acquisition_date: Mapped[date] = mapped_column(Date, nullable=False)
    acquisition_value_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    depreciation_method: Mapped[str] = mapped_column(
        String(30), default="STRAIGHT_LINE"
    )
    useful_life_months: Mapped[int] = mapped_column(Integer, nullable=False)
    residual_value_cents: Mapped[int] = mapped_column(BigInteger, default=0)
    status: Mapped[str] = mapped_column(String(30), default="ACTIVE")
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    __table_args__ = (
        CheckConstraint("useful_life_months > 0", name="chk_ledger_life_positive"),
        CheckConstraint("residual_value_cents >= 0", name="chk_ledger_residual"),
        Index("idx_ledgers_cost_center", "cost_center_id"),
    )


class AssetMovement(Base):
    __tablename__ = "asset_movements"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    equipment_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("equipment.id"), nullable=False
    )
    asset_ledger_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("asset_ledgers.id", ondelete="CASCADE"), nullable=False
    )
    type: Mapped[str] = mapped_column(String(30), nullable=False)
    from_cost_center_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("cost_centers.id")
    )
    to_cost_center_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("cost_centers.id")
    )
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    actor_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False
    )
    metadata_json: Mapped[Optional[dict]] = mapped_column(JSON)
    ts: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_movements_ledger", "asset_ledger_id", "ts"),
    )
