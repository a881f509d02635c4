"""
Reconciliation Models
Period roll-ups per location and daily persons-on-board counts
"""
from sqlalchemy import (
    Column, Integer, Numeric, Date, DateTime,
    ForeignKey, CheckConstraint, UniqueConstraint
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from foodstock.core.database import Base


class Reconciliation(Base):
    """
    Stock value roll-up for one location in one period.

    opening + receipts + transfers_in - transfers_out - issues
    +/- adjustments should equal closing_stock.
    """
    __tablename__ = "reconciliations"
    __table_args__ = (
        UniqueConstraint("period_id", "location_id", name="uq_reconciliation_period_location"),
    )

    id = Column(Integer, primary_key=True, index=True)
    period_id = Column(Integer, ForeignKey("periods.id"), nullable=False)
    location_id = Column(Integer, ForeignKey("locations.id"), nullable=False)
    opening_stock = Column(Numeric(15, 2), nullable=False, default=0)
    receipts = Column(Numeric(15, 2), nullable=False, default=0)
    transfers_in = Column(Numeric(15, 2), nullable=False, default=0)
    transfers_out = Column(Numeric(15, 2), nullable=False, default=0)
    issues = Column(Numeric(15, 2), nullable=False, default=0)
    closing_stock = Column(Numeric(15, 2), nullable=False, default=0)
    adjustments = Column(Numeric(15, 2), nullable=False, default=0)
    back_charges = Column(Numeric(15, 2), nullable=False, default=0)
    credits = Column(Numeric(15, 2), nullable=False, default=0)
    condemnations = Column(Numeric(15, 2), nullable=False, default=0)
    last_updated = Column(DateTime(timezone=True), server_default=func.current_timestamp(), onupdate=func.current_timestamp())

    location = relationship("Location")
    period = relationship("Period")


class POB(Base):
    """Persons on board at a location for one day"""
    __tablename__ = "pob"
    __table_args__ = (
        UniqueConstraint("period_id", "location_id", "date", name="uq_pob_period_location_date"),
        CheckConstraint("crew_count >= 0", name="non_negative_crew"),
        CheckConstraint("extra_count >= 0", name="non_negative_extra"),
    )

    id = Column(Integer, primary_key=True)
    period_id = Column(Integer, ForeignKey("periods.id"), nullable=False, index=True)
    location_id = Column(Integer, ForeignKey("locations.id"), nullable=False, index=True)
    date = Column(Date, nullable=False)
    crew_count = Column(Integer, nullable=False, default=0)
    extra_count = Column(Integer, nullable=False, default=0)
    entered_by = Column(Integer, ForeignKey("users.id"), nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.current_timestamp())
    updated_at = Column(DateTime(timezone=True), server_default=func.current_timestamp(), onupdate=func.current_timestamp())

    @property
    def mandays(self) -> int:
        return (self.crew_count or 0) + (self.extra_count or 0)
