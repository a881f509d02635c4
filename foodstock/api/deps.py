"""
API Dependencies
Common dependencies for API endpoints
"""

from typing import List, Optional
from fastapi import Depends, Path
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from foodstock.core.database import get_db
from foodstock.core.security import verify_token
from foodstock.core.exceptions import AuthenticationError, InsufficientPermissionsError
from foodstock.models.auth import User
from foodstock.models.enums import UserRole
from foodstock.services.auth_service import AuthService

# Security scheme
security = HTTPBearer(auto_error=False)


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db)
) -> User:
    """
    Get current authenticated user from JWT token.
    """
    if credentials is None:
        raise AuthenticationError("Not authenticated")

    payload = verify_token(credentials.credentials)
    if not payload:
        raise AuthenticationError("Could not validate credentials", code="INVALID_TOKEN")

    user = db.query(User).filter(User.id == int(payload["sub"])).first()
    if not user:
        raise AuthenticationError("User no longer exists", code="INVALID_TOKEN")
    return user


def get_current_active_user(
    current_user: User = Depends(get_current_user)
) -> User:
    """
    Get current active user - checks if user is active.
    """
    if not current_user.is_active:
        raise AuthenticationError("Inactive user", code="INACTIVE_USER")
    return current_user


class RoleChecker:
    """
    Role checker dependency for specific roles.

    Returns the user so endpoints can take it as their current user.
    """
    def __init__(self, allowed_roles: List[UserRole]):
        self.allowed_roles = [UserRole(role).value for role in allowed_roles]

    def __call__(self, current_user: User = Depends(get_current_active_user)) -> User:
        if current_user.role not in self.allowed_roles:
            raise InsufficientPermissionsError(
                f"Role not allowed. Required one of: {', '.join(self.allowed_roles)}"
            )
        return current_user


class LocationAccessChecker:
    """
    Location access dependency for routes with a location_id path parameter.

    require_post demands POST or MANAGE access for operators; allowed_roles
    narrows the endpoint to those roles before the location is checked.
    """
    def __init__(self, require_post: bool = False, allowed_roles: Optional[List[UserRole]] = None):
        self.require_post = require_post
        self.role_checker = RoleChecker(allowed_roles) if allowed_roles else None

    def __call__(
        self,
        location_id: int = Path(...),
        current_user: User = Depends(get_current_active_user),
        db: Session = Depends(get_db)
    ) -> User:
        if self.role_checker:
            self.role_checker(current_user)
        AuthService(db).check_location_access(current_user, location_id, require_post=self.require_post)
        return current_user


require_admin = RoleChecker([UserRole.ADMIN])
require_supervisor = RoleChecker([UserRole.SUPERVISOR, UserRole.ADMIN])
require_location_view = LocationAccessChecker()
require_location_post = LocationAccessChecker(require_post=True)
require_location_supervisor = LocationAccessChecker(allowed_roles=[UserRole.SUPERVISOR, UserRole.ADMIN])


def get_pagination_params(
    skip: int = 0,
    limit: int = 100
) -> dict:
    """
    Common pagination parameters.
    """
    return {"skip": max(skip, 0), "limit": min(max(limit, 1), 500)}
