"""
FoodStock Models
SQLAlchemy models for multi-location stock control
"""

from .auth import User, UserLocation
from .audit import AuditLog
from .inventory import Location, Item, Supplier, LocationStock
from .period import Period, PeriodLocation, ItemPrice, Approval
from .transactions import Delivery, DeliveryLine, Issue, IssueLine, Transfer, TransferLine
from .ncr import NCR
from .reconciliation import Reconciliation, POB

__all__ = [
    # Auth
    "User",
    "UserLocation",
    "AuditLog",

    # Master data and stock
    "Location",
    "Item",
    "Supplier",
    "LocationStock",

    # Periods
    "Period",
    "PeriodLocation",
    "ItemPrice",
    "Approval",

    # Transactions
    "Delivery",
    "DeliveryLine",
    "Issue",
    "IssueLine",
    "Transfer",
    "TransferLine",

    # Control
    "NCR",
    "Reconciliation",
    "POB",
]
