"""
Non-Conformance Report Model
"""
from sqlalchemy import (
    Column, String, Integer, Numeric, Boolean, DateTime, Text,
    ForeignKey, CheckConstraint, Index
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from foodstock.core.database import Base
from foodstock.models.enums import NCRType, NCRStatus, NCRResolutionType, sql_in


class NCR(Base):
    """
    Non-conformance against a delivery or location.

    PRICE_VARIANCE reports are raised automatically when a delivery line
    price differs from the locked period price; value holds the absolute
    impact of the variance.
    """
    __tablename__ = "ncrs"
    __table_args__ = (
        CheckConstraint(f"type IN ({sql_in(NCRType)})", name="valid_type"),
        CheckConstraint(f"status IN ({sql_in(NCRStatus)})", name="valid_status"),
        CheckConstraint(
            f"resolution_type IS NULL OR resolution_type IN ({sql_in(NCRResolutionType)})",
            name="valid_resolution_type"
        ),
        Index("idx_ncrs_location_status", "location_id", "status"),
    )

    id = Column(Integer, primary_key=True, index=True)
    ncr_no = Column(String(50), unique=True, nullable=False)
    location_id = Column(Integer, ForeignKey("locations.id"), nullable=False)
    type = Column(String(20), nullable=False, default=NCRType.MANUAL.value)
    auto_generated = Column(Boolean, nullable=False, default=False)
    delivery_id = Column(Integer, ForeignKey("deliveries.id"))
    delivery_line_id = Column(Integer, ForeignKey("delivery_lines.id"))
    reason = Column(Text, nullable=False)
    quantity = Column(Numeric(15, 4))
    value = Column(Numeric(15, 2), nullable=False)
    status = Column(String(10), nullable=False, default=NCRStatus.OPEN.value)
    resolution_type = Column(String(10))
    resolution_notes = Column(Text)
    resolved_at = Column(DateTime(timezone=True))
    created_by = Column(Integer, ForeignKey("users.id"), nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.current_timestamp())
    updated_at = Column(DateTime(timezone=True), server_default=func.current_timestamp(), onupdate=func.current_timestamp())

    location = relationship("Location")
    delivery = relationship("Delivery")
    delivery_line = relationship("DeliveryLine", foreign_keys=[delivery_line_id])
