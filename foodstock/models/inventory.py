"""
Inventory Models
Locations, items, suppliers and per-location stock levels
"""
from sqlalchemy import (
    Column, String, Integer, Numeric, Boolean, DateTime, Text,
    ForeignKey, CheckConstraint, Index
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from foodstock.core.database import Base
from foodstock.models.enums import LocationType, UnitOfMeasure, sql_in


class Location(Base):
    """Kitchen, store or warehouse holding stock"""
    __tablename__ = "locations"
    __table_args__ = (
        CheckConstraint(f"type IN ({sql_in(LocationType)})", name="valid_type"),
    )

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(10), unique=True, nullable=False, doc="Location code")
    name = Column(String(100), nullable=False, doc="Location name")
    type = Column(String(20), nullable=False, default=LocationType.KITCHEN.value, doc="Location type")
    address = Column(Text, doc="Address")
    is_active = Column(Boolean, default=True, nullable=False, doc="Active flag")

    created_at = Column(DateTime(timezone=True), server_default=func.current_timestamp())
    updated_at = Column(DateTime(timezone=True), server_default=func.current_timestamp(), onupdate=func.current_timestamp())

    stock = relationship("LocationStock", back_populates="location")


class Item(Base):
    """Stock item master"""
    __tablename__ = "items"
    __table_args__ = (
        CheckConstraint(f"unit IN ({sql_in(UnitOfMeasure)})", name="valid_unit"),
    )

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(50), unique=True, nullable=False, doc="Item code")
    name = Column(String(200), nullable=False, doc="Item description")
    unit = Column(String(10), nullable=False, default=UnitOfMeasure.EA.value, doc="Unit of measure")
    category = Column(String(50), doc="Category")
    sub_category = Column(String(50), doc="Sub-category")
    is_active = Column(Boolean, default=True, nullable=False, doc="Active flag")

    created_at = Column(DateTime(timezone=True), server_default=func.current_timestamp())
    updated_at = Column(DateTime(timezone=True), server_default=func.current_timestamp(), onupdate=func.current_timestamp())

    prices = relationship("ItemPrice", back_populates="item")


class Supplier(Base):
    """Supplier master"""
    __tablename__ = "suppliers"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(20), unique=True, nullable=False, doc="Supplier code")
    name = Column(String(200), nullable=False, doc="Supplier name")
    contact = Column(String(200), doc="Contact details")
    email = Column(String(255), doc="Order e-mail")
    is_active = Column(Boolean, default=True, nullable=False, doc="Active flag")

    created_at = Column(DateTime(timezone=True), server_default=func.current_timestamp())
    updated_at = Column(DateTime(timezone=True), server_default=func.current_timestamp(), onupdate=func.current_timestamp())


class LocationStock(Base):
    """
    Stock level of one item at one location.

    Deliveries and transfers-in raise on_hand and recompute wac;
    issues and transfers-out only lower on_hand.
    """
    __tablename__ = "location_stock"
    __table_args__ = (
        CheckConstraint("on_hand >= 0", name="non_negative_on_hand"),
        CheckConstraint("wac >= 0", name="non_negative_wac"),
        Index("idx_location_stock_item", "item_id"),
    )

    location_id = Column(Integer, ForeignKey("locations.id"), primary_key=True, doc="Location")
    item_id = Column(Integer, ForeignKey("items.id"), primary_key=True, doc="Item")
    on_hand = Column(Numeric(15, 4), nullable=False, default=0, doc="Quantity on hand")
    wac = Column(Numeric(15, 4), nullable=False, default=0, doc="Weighted average cost")
    min_stock = Column(Numeric(15, 4), doc="Reorder threshold")
    max_stock = Column(Numeric(15, 4), doc="Maximum stock level")
    last_counted = Column(DateTime(timezone=True), doc="Last physical count")

    updated_at = Column(DateTime(timezone=True), server_default=func.current_timestamp(), onupdate=func.current_timestamp())

    location = relationship("Location", back_populates="stock")
    item = relationship("Item")

    @property
    def stock_value(self):
        return (self.on_hand or 0) * (self.wac or 0)
