"""
Authentication Service
User management, login and location access control
"""

from typing import List, Optional, Dict, Any
from datetime import datetime
from sqlalchemy.orm import Session

from foodstock.models import User, UserLocation, Location
from foodstock.models.enums import UserRole, AccessLevel
from foodstock.core.security import get_password_hash, verify_password, log_user_action
from foodstock.core.exceptions import (
    ConflictError, NotFoundError, LocationAccessDeniedError, InsufficientPermissionsError
)
from foodstock.core.logging import get_logger

logger = get_logger("security")


class AuthService:
    """Service for authentication and user management operations"""

    def __init__(self, db: Session, current_user: Optional[User] = None):
        self.db = db
        self.current_user = current_user

    # User Management Methods

    def get_users(self, skip: int = 0, limit: int = 100, is_active: Optional[bool] = None) -> List[User]:
        query = self.db.query(User)
        if is_active is not None:
            query = query.filter(User.is_active == is_active)
        return query.order_by(User.username).offset(skip).limit(limit).all()

    def get_user_by_id(self, user_id: int) -> Optional[User]:
        return self.db.query(User).filter(User.id == user_id).first()

    def get_user_by_username(self, username: str) -> Optional[User]:
        return self.db.query(User).filter(User.username == username).first()

    def create_user(self, user_data: Dict[str, Any]) -> User:
        """Create new user; username and email must be unique"""
        if self.get_user_by_username(user_data["username"]):
            raise ConflictError(f"Username {user_data['username']} already exists", code="DUPLICATE_USERNAME")
        if self.db.query(User).filter(User.email == user_data["email"]).first():
            raise ConflictError(f"Email {user_data['email']} already exists", code="DUPLICATE_EMAIL")

        role = user_data.get("role") or UserRole.OPERATOR
        db_user = User(
            username=user_data["username"],
            email=user_data["email"],
            full_name=user_data.get("full_name"),
            password_hash=get_password_hash(user_data["password"]),
            role=UserRole(role).value,
            default_location_id=user_data.get("default_location_id"),
            is_active=True,
        )
        self.db.add(db_user)
        self.db.commit()
        self.db.refresh(db_user)

        logger.info(f"User created: {db_user.username} ({db_user.role})")
        return db_user

    def authenticate(self, username: str, password: str) -> Optional[User]:
        """Return the user when the credentials match an active account"""
        user = self.get_user_by_username(username)
        if not user or not verify_password(password, user.password_hash):
            logger.warning(f"Failed login for {username}")
            return None
        if not user.is_active:
            logger.warning(f"Inactive user attempted login: {username}")
            return None

        user.last_login = datetime.utcnow()
        self.db.commit()
        logger.info(f"User logged in: {username}")
        return user

    # Location access

    def get_user_location(self, user_id: int, location_id: int) -> Optional[UserLocation]:
        return self.db.query(UserLocation).filter(
            UserLocation.user_id == user_id,
            UserLocation.location_id == location_id
        ).first()

    def check_location_access(self, user: User, location_id: int, require_post: bool = False) -> None:
        """
        Supervisors and admins reach every location. Operators need an
        assignment, and POST or MANAGE level to post transactions.
        """
        if user.is_supervisor_or_admin:
            return
        assignment = self.get_user_location(user.id, location_id)
        if assignment is None:
            raise LocationAccessDeniedError("You do not have access to this location")
        if require_post and not assignment.can_post:
            raise InsufficientPermissionsError(
                "You do not have permission to post transactions at this location"
            )

    def accessible_location_ids(self, user: User) -> Optional[List[int]]:
        """None means unrestricted"""
        if user.is_supervisor_or_admin:
            return None
        return [ul.location_id for ul in user.location_access]

    def list_location_users(self, location_id: int) -> List[UserLocation]:
        return self.db.query(UserLocation).filter(UserLocation.location_id == location_id).all()

    def assign_location(self, location_id: int, user_id: int, access_level: AccessLevel) -> UserLocation:
        """Grant or change a user's access to a location"""
        if not self.db.query(Location).filter(Location.id == location_id).first():
            raise NotFoundError("Location not found", code="LOCATION_NOT_FOUND")
        user = self.get_user_by_id(user_id)
        if not user:
            raise NotFoundError("User not found", code="USER_NOT_FOUND")

        assignment = self.get_user_location(user_id, location_id)
        if assignment:
            assignment.access_level = AccessLevel(access_level).value
        else:
            assignment = UserLocation(
                user_id=user_id,
                location_id=location_id,
                access_level=AccessLevel(access_level).value,
                assigned_by=self.current_user.id if self.current_user else None,
            )
            self.db.add(assignment)

        log_user_action(
            db=self.db, user=self.current_user, action="ASSIGN_LOCATION",
            table="user_locations", key=f"{user_id}:{location_id}",
            new_values={"access_level": assignment.access_level}, module="MASTER"
        )
        self.db.commit()
        self.db.refresh(assignment)
        return assignment

    def revoke_location(self, location_id: int, user_id: int) -> None:
        assignment = self.get_user_location(user_id, location_id)
        if not assignment:
            raise NotFoundError("User is not assigned to this location", code="ASSIGNMENT_NOT_FOUND")
        self.db.delete(assignment)
        log_user_action(
            db=self.db, user=self.current_user, action="REVOKE_LOCATION",
            table="user_locations", key=f"{user_id}:{location_id}", module="MASTER"
        )
        self.db.commit()
