"""
Authentication schemas for request/response validation
"""
from typing import Optional, List
from datetime import datetime
from pydantic import BaseModel, EmailStr, Field, ConfigDict

from foodstock.models.enums import UserRole, AccessLevel


class Token(BaseModel):
    """JWT token response"""
    access_token: str
    token_type: str = "bearer"
    expires_in: int


class UserBase(BaseModel):
    username: str = Field(..., min_length=3, max_length=50)
    email: EmailStr
    full_name: Optional[str] = Field(None, max_length=100)
    role: UserRole = UserRole.OPERATOR
    default_location_id: Optional[int] = None


class UserCreate(UserBase):
    """User creation request"""
    password: str = Field(..., min_length=8)

    model_config = {
        "json_schema_extra": {
            "example": {
                "username": "kitchen.op",
                "email": "kitchen.op@example.com",
                "full_name": "Kitchen Operator",
                "password": "secure_password",
                "role": "OPERATOR"
            }
        }
    }


class UserResponse(UserBase):
    id: int
    is_active: bool
    last_login: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class UserLocationAssign(BaseModel):
    """Grant a user access to a location"""
    user_id: int
    access_level: AccessLevel = AccessLevel.VIEW


class UserLocationResponse(BaseModel):
    user_id: int
    location_id: int
    access_level: AccessLevel
    assigned_at: Optional[datetime] = None
    username: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class CurrentUserResponse(UserResponse):
    """The signed-in user with the locations they can reach"""
    locations: List[UserLocationResponse] = []
