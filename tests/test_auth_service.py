"""
Tests for Authentication Service
User management, credentials, tokens and location access
"""

import pytest
from datetime import timedelta
from sqlalchemy.orm import Session

from foodstock.core.exceptions import (
    ConflictError, NotFoundError, LocationAccessDeniedError, InsufficientPermissionsError
)
from foodstock.core.security import verify_password, create_access_token, verify_token
from foodstock.models import AuditLog
from foodstock.models.enums import UserRole, AccessLevel
from foodstock.services.auth_service import AuthService


class TestAuthService:
    """Test suite for AuthService"""

    def test_create_user_success(self, db_session: Session):
        """Test successful user creation"""
        user = AuthService(db_session).create_user({
            "username": "newuser",
            "email": "new@foodstock-demo.com",
            "full_name": "New User",
            "password": "securepassword123",
        })

        assert user.id is not None
        assert user.role == UserRole.OPERATOR.value
        assert user.is_active is True
        assert user.password_hash != "securepassword123"
        assert verify_password("securepassword123", user.password_hash)

    def test_create_user_duplicate_username(self, db_session: Session, admin_user):
        with pytest.raises(ConflictError) as exc_info:
            AuthService(db_session).create_user({
                "username": "admin",
                "email": "other@foodstock-demo.com",
                "password": "password123",
            })
        assert exc_info.value.code == "DUPLICATE_USERNAME"

    def test_create_user_duplicate_email(self, db_session: Session, admin_user):
        with pytest.raises(ConflictError) as exc_info:
            AuthService(db_session).create_user({
                "username": "admin2",
                "email": admin_user.email,
                "password": "password123",
            })
        assert exc_info.value.code == "DUPLICATE_EMAIL"

    def test_authenticate_success(self, db_session: Session, admin_user):
        user = AuthService(db_session).authenticate("admin", "adminpassword123")

        assert user is not None
        assert user.id == admin_user.id
        assert user.last_login is not None

    def test_authenticate_wrong_password(self, db_session: Session, admin_user):
        assert AuthService(db_session).authenticate("admin", "wrongpassword") is None

    def test_authenticate_nonexistent_user(self, db_session: Session):
        assert AuthService(db_session).authenticate("nobody", "password") is None

    def test_inactive_user_cannot_authenticate(self, db_session: Session, admin_user):
        admin_user.is_active = False
        db_session.commit()

        assert AuthService(db_session).authenticate("admin", "adminpassword123") is None

    def test_get_users_with_pagination(self, db_session: Session):
        service = AuthService(db_session)
        for i in range(5):
            service.create_user({
                "username": f"user{i}",
                "email": f"user{i}@foodstock-demo.com",
                "password": "password123",
            })

        assert len(service.get_users(skip=0, limit=3)) == 3
        assert len(service.get_users(skip=3, limit=3)) == 2


class TestLocationAccess:
    """Test suite for location assignments and access checks"""

    def test_supervisor_reaches_every_location(self, db_session: Session, supervisor_user, kitchen, store):
        service = AuthService(db_session)

        service.check_location_access(supervisor_user, store.id, require_post=True)
        assert service.accessible_location_ids(supervisor_user) is None

    def test_operator_needs_assignment(self, db_session: Session, operator_user, kitchen, store):
        service = AuthService(db_session)

        service.check_location_access(operator_user, kitchen.id, require_post=True)
        assert service.accessible_location_ids(operator_user) == [kitchen.id]

        with pytest.raises(LocationAccessDeniedError):
            service.check_location_access(operator_user, store.id)

    def test_view_access_cannot_post(self, db_session: Session, viewer_user, kitchen):
        service = AuthService(db_session)

        service.check_location_access(viewer_user, kitchen.id)
        with pytest.raises(InsufficientPermissionsError, match="permission to post"):
            service.check_location_access(viewer_user, kitchen.id, require_post=True)

    def test_reassign_changes_level(self, db_session: Session, admin_user, viewer_user, kitchen):
        service = AuthService(db_session, admin_user)
        assignment = service.assign_location(kitchen.id, viewer_user.id, AccessLevel.MANAGE)

        assert assignment.access_level == AccessLevel.MANAGE.value
        assert assignment.can_post is True
        assert len(service.list_location_users(kitchen.id)) == 1

    def test_assign_unknown_location(self, db_session: Session, admin_user, viewer_user):
        with pytest.raises(NotFoundError) as exc_info:
            AuthService(db_session, admin_user).assign_location(999, viewer_user.id, AccessLevel.VIEW)
        assert exc_info.value.code == "LOCATION_NOT_FOUND"

    def test_revoke(self, db_session: Session, admin_user, operator_user, kitchen):
        service = AuthService(db_session, admin_user)
        service.revoke_location(kitchen.id, operator_user.id)

        with pytest.raises(LocationAccessDeniedError):
            service.check_location_access(operator_user, kitchen.id)
        with pytest.raises(NotFoundError):
            service.revoke_location(kitchen.id, operator_user.id)

        entry = db_session.query(AuditLog).filter(AuditLog.audit_action == "REVOKE_LOCATION").one()
        assert entry.audit_user == "admin"


class TestTokens:

    def test_token_round_trip(self):
        token = create_access_token({"sub": "42", "role": "ADMIN"})
        payload = verify_token(token)

        assert payload["sub"] == "42"
        assert payload["role"] == "ADMIN"

    def test_expired_token(self):
        token = create_access_token({"sub": "42"}, expires_delta=timedelta(minutes=-1))
        assert verify_token(token) is None

    def test_tampered_token(self):
        token = create_access_token({"sub": "42"})
        assert verify_token(token[:-2] + "xx") is None

    def test_token_without_subject(self):
        assert verify_token(create_access_token({"role": "ADMIN"})) is None
