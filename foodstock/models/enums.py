"""
Status and classification codes shared by models and schemas
"""
from enum import Enum


class UserRole(str, Enum):
    OPERATOR = "OPERATOR"
    SUPERVISOR = "SUPERVISOR"
    ADMIN = "ADMIN"


class AccessLevel(str, Enum):
    VIEW = "VIEW"
    POST = "POST"
    MANAGE = "MANAGE"


class LocationType(str, Enum):
    KITCHEN = "KITCHEN"
    STORE = "STORE"
    CENTRAL = "CENTRAL"
    WAREHOUSE = "WAREHOUSE"


class UnitOfMeasure(str, Enum):
    KG = "KG"
    EA = "EA"
    LTR = "LTR"
    BOX = "BOX"
    CASE = "CASE"
    PACK = "PACK"


class PeriodStatus(str, Enum):
    DRAFT = "DRAFT"
    OPEN = "OPEN"
    PENDING_CLOSE = "PENDING_CLOSE"
    APPROVED = "APPROVED"
    CLOSED = "CLOSED"


class PeriodLocationStatus(str, Enum):
    OPEN = "OPEN"
    READY = "READY"
    CLOSED = "CLOSED"


class DocumentStatus(str, Enum):
    """Deliveries and issues"""
    DRAFT = "DRAFT"
    POSTED = "POSTED"


class TransferStatus(str, Enum):
    DRAFT = "DRAFT"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    COMPLETED = "COMPLETED"


class CostCentre(str, Enum):
    FOOD = "FOOD"
    CLEAN = "CLEAN"
    OTHER = "OTHER"


class NCRType(str, Enum):
    MANUAL = "MANUAL"
    PRICE_VARIANCE = "PRICE_VARIANCE"


class NCRStatus(str, Enum):
    OPEN = "OPEN"
    SENT = "SENT"
    CREDITED = "CREDITED"
    REJECTED = "REJECTED"
    RESOLVED = "RESOLVED"


class NCRResolutionType(str, Enum):
    CREDIT = "CREDIT"
    LOSS = "LOSS"


class ApprovalEntityType(str, Enum):
    PERIOD_CLOSE = "PERIOD_CLOSE"


class ApprovalStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


def sql_in(enum_cls) -> str:
    """Render enum values for a CHECK ... IN (...) constraint"""
    return ", ".join(f"'{member.value}'" for member in enum_cls)
