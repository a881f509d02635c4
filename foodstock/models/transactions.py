"""
Stock Transaction Models
Deliveries, issues and inter-location transfers with their lines
"""
from sqlalchemy import (
    Column, String, Integer, Numeric, Boolean, Date, DateTime, Text,
    ForeignKey, CheckConstraint, Index
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from foodstock.core.database import Base
from foodstock.models.enums import DocumentStatus, TransferStatus, CostCentre, sql_in


class Delivery(Base):
    """Goods received at a location from a supplier"""
    __tablename__ = "deliveries"
    __table_args__ = (
        CheckConstraint(f"status IN ({sql_in(DocumentStatus)})", name="valid_status"),
        Index("idx_deliveries_location_period", "location_id", "period_id"),
    )

    id = Column(Integer, primary_key=True, index=True)
    delivery_no = Column(String(60), unique=True, nullable=False, doc="Document number")
    period_id = Column(Integer, ForeignKey("periods.id"), nullable=False)
    location_id = Column(Integer, ForeignKey("locations.id"), nullable=False)
    supplier_id = Column(Integer, ForeignKey("suppliers.id"), nullable=False)
    invoice_no = Column(String(100), unique=True, doc="Supplier invoice number")
    delivery_note = Column(Text, doc="Delivery note reference")
    delivery_date = Column(Date, nullable=False)
    total_amount = Column(Numeric(15, 2), nullable=False, default=0)
    has_variance = Column(Boolean, nullable=False, default=False)
    status = Column(String(10), nullable=False, default=DocumentStatus.DRAFT.value)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    posted_at = Column(DateTime(timezone=True))

    created_at = Column(DateTime(timezone=True), server_default=func.current_timestamp())
    updated_at = Column(DateTime(timezone=True), server_default=func.current_timestamp(), onupdate=func.current_timestamp())

    lines = relationship("DeliveryLine", back_populates="delivery", cascade="all, delete-orphan")
    location = relationship("Location")
    supplier = relationship("Supplier")
    period = relationship("Period")


class DeliveryLine(Base):
    """Delivered quantity of one item, priced against the period price"""
    __tablename__ = "delivery_lines"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="positive_quantity"),
        CheckConstraint("unit_price >= 0", name="non_negative_price"),
    )

    id = Column(Integer, primary_key=True)
    delivery_id = Column(Integer, ForeignKey("deliveries.id", ondelete="CASCADE"), nullable=False, index=True)
    item_id = Column(Integer, ForeignKey("items.id"), nullable=False)
    quantity = Column(Numeric(15, 4), nullable=False)
    unit_price = Column(Numeric(15, 4), nullable=False)
    period_price = Column(Numeric(15, 4), doc="Locked period price at posting")
    price_variance = Column(Numeric(15, 4), nullable=False, default=0, doc="unit_price - period_price")
    line_value = Column(Numeric(15, 2), nullable=False)
    # ncrs.delivery_line_id holds the foreign key; this is the back reference
    ncr_id = Column(Integer, index=True, doc="Auto-generated variance NCR")

    delivery = relationship("Delivery", back_populates="lines")
    item = relationship("Item")


class Issue(Base):
    """Stock consumed at a location"""
    __tablename__ = "issues"
    __table_args__ = (
        CheckConstraint(f"status IN ({sql_in(DocumentStatus)})", name="valid_status"),
        CheckConstraint(f"cost_centre IN ({sql_in(CostCentre)})", name="valid_cost_centre"),
        Index("idx_issues_location_period", "location_id", "period_id"),
    )

    id = Column(Integer, primary_key=True, index=True)
    issue_no = Column(String(50), unique=True, nullable=False)
    period_id = Column(Integer, ForeignKey("periods.id"), nullable=False)
    location_id = Column(Integer, ForeignKey("locations.id"), nullable=False)
    issue_date = Column(Date, nullable=False)
    cost_centre = Column(String(10), nullable=False, default=CostCentre.FOOD.value)
    total_value = Column(Numeric(15, 2), nullable=False, default=0)
    status = Column(String(10), nullable=False, default=DocumentStatus.POSTED.value)
    notes = Column(Text)
    posted_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    posted_at = Column(DateTime(timezone=True))

    created_at = Column(DateTime(timezone=True), server_default=func.current_timestamp())

    lines = relationship("IssueLine", back_populates="issue", cascade="all, delete-orphan")
    location = relationship("Location")


class IssueLine(Base):
    """Issued quantity valued at the WAC in force when posted"""
    __tablename__ = "issue_lines"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="positive_quantity"),
    )

    id = Column(Integer, primary_key=True)
    issue_id = Column(Integer, ForeignKey("issues.id", ondelete="CASCADE"), nullable=False, index=True)
    item_id = Column(Integer, ForeignKey("items.id"), nullable=False)
    quantity = Column(Numeric(15, 4), nullable=False)
    wac_at_issue = Column(Numeric(15, 4), nullable=False)
    line_value = Column(Numeric(15, 2), nullable=False)

    issue = relationship("Issue", back_populates="lines")
    item = relationship("Item")


class Transfer(Base):
    """Stock moved between two locations, subject to approval"""
    __tablename__ = "transfers"
    __table_args__ = (
        CheckConstraint(f"status IN ({sql_in(TransferStatus)})", name="valid_status"),
        CheckConstraint("from_location_id <> to_location_id", name="distinct_locations"),
        Index("idx_transfers_status", "status"),
    )

    id = Column(Integer, primary_key=True, index=True)
    transfer_no = Column(String(50), unique=True, nullable=False)
    from_location_id = Column(Integer, ForeignKey("locations.id"), nullable=False)
    to_location_id = Column(Integer, ForeignKey("locations.id"), nullable=False)
    status = Column(String(20), nullable=False, default=TransferStatus.DRAFT.value)
    requested_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    approved_by = Column(Integer, ForeignKey("users.id"))
    request_date = Column(Date, nullable=False)
    approval_date = Column(Date)
    transfer_date = Column(Date, doc="Date the stock moved")
    total_value = Column(Numeric(15, 2), nullable=False, default=0)
    notes = Column(Text)

    created_at = Column(DateTime(timezone=True), server_default=func.current_timestamp())
    updated_at = Column(DateTime(timezone=True), server_default=func.current_timestamp(), onupdate=func.current_timestamp())

    lines = relationship("TransferLine", back_populates="transfer", cascade="all, delete-orphan")
    from_location = relationship("Location", foreign_keys=[from_location_id])
    to_location = relationship("Location", foreign_keys=[to_location_id])


class TransferLine(Base):
    """Transferred quantity valued at the source WAC"""
    __tablename__ = "transfer_lines"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="positive_quantity"),
    )

    id = Column(Integer, primary_key=True)
    transfer_id = Column(Integer, ForeignKey("transfers.id", ondelete="CASCADE"), nullable=False, index=True)
    item_id = Column(Integer, ForeignKey("items.id"), nullable=False)
    quantity = Column(Numeric(15, 4), nullable=False)
    wac_at_transfer = Column(Numeric(15, 4), nullable=False)
    line_value = Column(Numeric(15, 2), nullable=False)

    transfer = relationship("Transfer", back_populates="lines")
    item = relationship("Item")
