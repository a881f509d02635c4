"""
Audit Trail Model
One row per mutating user action
"""
from datetime import datetime
from sqlalchemy import Column, String, Integer, JSON, TIMESTAMP

from foodstock.core.database import Base


class AuditLog(Base):
    """Audit trail for stock, period and master data changes"""
    __tablename__ = "audit_log"

    audit_id = Column(Integer, primary_key=True, index=True)
    audit_timestamp = Column(TIMESTAMP(timezone=True), default=datetime.utcnow, index=True)
    audit_user = Column(String(50), nullable=False, index=True)
    audit_action = Column(String(30), nullable=False, index=True)  # POST_DELIVERY, APPROVE_TRANSFER, ...
    audit_table = Column(String(50), index=True)
    audit_key = Column(String(100))
    audit_old_values = Column(JSON)
    audit_new_values = Column(JSON)
    audit_module = Column(String(20))  # STOCK, PERIOD, NCR, MASTER
