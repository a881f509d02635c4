"""
Authentication and Authorization Models
Maps to users and user_locations tables
"""
from datetime import datetime
from sqlalchemy import (
    Column, String, Boolean, Integer, ForeignKey, TIMESTAMP,
    CheckConstraint, UniqueConstraint
)
from sqlalchemy.orm import relationship

from foodstock.core.database import Base
from foodstock.models.enums import UserRole, AccessLevel, sql_in


class User(Base):
    """System users"""
    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint(f"role IN ({sql_in(UserRole)})", name="valid_role"),
    )

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(50), unique=True, nullable=False, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    full_name = Column(String(100))

    role = Column(String(20), nullable=False, default=UserRole.OPERATOR.value)
    default_location_id = Column(Integer, ForeignKey("locations.id"))
    is_active = Column(Boolean, default=True, nullable=False)

    last_login = Column(TIMESTAMP(timezone=True))
    created_at = Column(TIMESTAMP(timezone=True), default=datetime.utcnow)
    updated_at = Column(TIMESTAMP(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    default_location = relationship("Location", foreign_keys=[default_location_id])
    location_access = relationship(
        "UserLocation",
        back_populates="user",
        cascade="all, delete-orphan",
        foreign_keys="UserLocation.user_id",
    )

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value

    @property
    def is_supervisor_or_admin(self) -> bool:
        return self.role in (UserRole.SUPERVISOR.value, UserRole.ADMIN.value)


class UserLocation(Base):
    """Grants a user access to one location at a given level"""
    __tablename__ = "user_locations"
    __table_args__ = (
        UniqueConstraint("user_id", "location_id", name="uq_user_location"),
        CheckConstraint(f"access_level IN ({sql_in(AccessLevel)})", name="valid_access_level"),
    )

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    location_id = Column(Integer, ForeignKey("locations.id", ondelete="CASCADE"), nullable=False, index=True)
    access_level = Column(String(10), nullable=False, default=AccessLevel.VIEW.value)
    assigned_at = Column(TIMESTAMP(timezone=True), default=datetime.utcnow)
    assigned_by = Column(Integer, ForeignKey("users.id"))

    user = relationship("User", back_populates="location_access", foreign_keys=[user_id])
    location = relationship("Location")

    @property
    def can_post(self) -> bool:
        return self.access_level in (AccessLevel.POST.value, AccessLevel.MANAGE.value)
