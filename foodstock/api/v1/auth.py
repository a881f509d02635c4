"""
Authentication API endpoints
Login, current user and user management
"""
from typing import Any, List
from fastapi import APIRouter, Depends, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session

from foodstock.api import deps
from foodstock.core.config import settings
from foodstock.core.database import get_db
from foodstock.core.exceptions import AuthenticationError
from foodstock.core.security import create_access_token, log_user_action
from foodstock.models.auth import User
from foodstock.schemas.auth import (
    Token, UserCreate, UserResponse, CurrentUserResponse, UserLocationResponse
)
from foodstock.services.auth_service import AuthService

router = APIRouter(prefix="/auth", tags=["authentication"])


@router.post("/login", response_model=Token)
async def login(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: Session = Depends(get_db)
) -> Any:
    """
    OAuth2 compatible token login
    """
    user = AuthService(db).authenticate(form_data.username, form_data.password)
    if not user:
        log_user_action(
            db=db, user=None, action="LOGIN_FAILED",
            new_values={"username": form_data.username}, module="AUTH"
        )
        db.commit()
        raise AuthenticationError("Incorrect username or password", code="INVALID_CREDENTIALS")

    access_token = create_access_token(data={"sub": str(user.id), "role": user.role})
    log_user_action(db=db, user=user, action="LOGIN", module="AUTH")
    db.commit()

    return Token(
        access_token=access_token,
        token_type="bearer",
        expires_in=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )


@router.get("/me", response_model=CurrentUserResponse)
async def read_current_user(
    current_user: User = Depends(deps.get_current_active_user)
) -> Any:
    """
    Get current user info with assigned locations
    """
    response = CurrentUserResponse.model_validate(current_user)
    response.locations = [
        UserLocationResponse(
            user_id=access.user_id,
            location_id=access.location_id,
            access_level=access.access_level,
            assigned_at=access.assigned_at,
        )
        for access in current_user.location_access
    ]
    return response


@router.get("/users", response_model=List[UserResponse])
async def list_users(
    pagination: dict = Depends(deps.get_pagination_params),
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.require_admin)
) -> Any:
    return AuthService(db, current_user).get_users(**pagination)


@router.post("/users", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(
    user_in: UserCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.require_admin)
) -> Any:
    """
    Create new user (admin only)
    """
    user = AuthService(db, current_user).create_user(user_in.model_dump())
    log_user_action(
        db=db, user=current_user, action="CREATE_USER",
        table="users", key=user.username, new_values={"role": user.role}, module="AUTH"
    )
    db.commit()
    return user
