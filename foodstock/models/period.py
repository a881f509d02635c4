"""
Period Models
Accounting periods, per-location close status, locked prices and approvals
"""
from sqlalchemy import (
    Column, String, Integer, Numeric, Date, DateTime, Text, JSON,
    ForeignKey, CheckConstraint, UniqueConstraint, Index
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from foodstock.core.database import Base
from foodstock.core.config import settings
from foodstock.models.enums import (
    PeriodStatus, PeriodLocationStatus, ApprovalEntityType, ApprovalStatus, sql_in
)


class Period(Base):
    """Accounting month; prices are locked per period"""
    __tablename__ = "periods"
    __table_args__ = (
        CheckConstraint(f"status IN ({sql_in(PeriodStatus)})", name="valid_status"),
        CheckConstraint("end_date > start_date", name="valid_range"),
        Index("idx_periods_status", "status"),
    )

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    status = Column(String(20), nullable=False, default=PeriodStatus.DRAFT.value)
    approved_at = Column(DateTime(timezone=True))
    closed_at = Column(DateTime(timezone=True))

    created_at = Column(DateTime(timezone=True), server_default=func.current_timestamp())
    updated_at = Column(DateTime(timezone=True), server_default=func.current_timestamp(), onupdate=func.current_timestamp())

    period_locations = relationship(
        "PeriodLocation", back_populates="period", cascade="all, delete-orphan"
    )
    item_prices = relationship("ItemPrice", back_populates="period", cascade="all, delete-orphan")


class PeriodLocation(Base):
    """Close status and closing snapshot of one location within a period"""
    __tablename__ = "period_locations"
    __table_args__ = (
        CheckConstraint(f"status IN ({sql_in(PeriodLocationStatus)})", name="valid_status"),
    )

    period_id = Column(Integer, ForeignKey("periods.id", ondelete="CASCADE"), primary_key=True)
    location_id = Column(Integer, ForeignKey("locations.id"), primary_key=True)
    status = Column(String(10), nullable=False, default=PeriodLocationStatus.OPEN.value)
    opening_value = Column(Numeric(15, 2), nullable=False, default=0)
    closing_value = Column(Numeric(15, 2))
    snapshot_data = Column(JSON)
    ready_at = Column(DateTime(timezone=True))
    closed_at = Column(DateTime(timezone=True))

    period = relationship("Period", back_populates="period_locations")
    location = relationship("Location")


class ItemPrice(Base):
    """Price of an item locked for one period"""
    __tablename__ = "item_prices"
    __table_args__ = (
        UniqueConstraint("item_id", "period_id", name="uq_item_price_period"),
        CheckConstraint("price >= 0", name="non_negative_price"),
    )

    id = Column(Integer, primary_key=True)
    item_id = Column(Integer, ForeignKey("items.id"), nullable=False, index=True)
    period_id = Column(Integer, ForeignKey("periods.id", ondelete="CASCADE"), nullable=False, index=True)
    price = Column(Numeric(15, 4), nullable=False)
    currency = Column(String(3), nullable=False, default=settings.DEFAULT_CURRENCY)

    created_at = Column(DateTime(timezone=True), server_default=func.current_timestamp())
    updated_at = Column(DateTime(timezone=True), server_default=func.current_timestamp(), onupdate=func.current_timestamp())

    item = relationship("Item", back_populates="prices")
    period = relationship("Period", back_populates="item_prices")


class Approval(Base):
    """Approval request for a period close"""
    __tablename__ = "approvals"
    __table_args__ = (
        CheckConstraint(f"entity_type IN ({sql_in(ApprovalEntityType)})", name="valid_entity_type"),
        CheckConstraint(f"status IN ({sql_in(ApprovalStatus)})", name="valid_status"),
        Index("idx_approvals_entity", "entity_type", "entity_id"),
    )

    id = Column(Integer, primary_key=True, index=True)
    entity_type = Column(String(20), nullable=False)
    entity_id = Column(Integer, nullable=False)
    status = Column(String(10), nullable=False, default=ApprovalStatus.PENDING.value)
    requested_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    reviewed_by = Column(Integer, ForeignKey("users.id"))
    requested_at = Column(DateTime(timezone=True), server_default=func.current_timestamp())
    reviewed_at = Column(DateTime(timezone=True))
    comments = Column(Text)
