"""
Security utilities
Password hashing, access tokens and the audit trail
"""
from datetime import datetime, timedelta
from typing import Optional, Dict, Any
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from foodstock.core.config import settings
from foodstock.core.logging import get_logger

logger = get_logger("security")

# Password hashing
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against a hash"""
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """Generate password hash"""
    return pwd_context.hash(password)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create JWT access token"""
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def verify_token(token: str) -> Optional[Dict[str, Any]]:
    """Decode a JWT and return its payload, or None when invalid or expired"""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError as e:
        logger.warning(f"Rejected access token: {e}")
        return None
    if payload.get("sub") is None:
        return None
    return payload


def _jsonable(values: Optional[Dict]) -> Optional[Dict]:
    """Decimals and dates are stored as strings in the JSON audit columns"""
    if not values:
        return None
    return {
        k: v if v is None or isinstance(v, (str, int, float, bool)) else str(v)
        for k, v in values.items()
    }


def log_user_action(
    db: Session,
    user,
    action: str,
    table: Optional[str] = None,
    key: Optional[str] = None,
    old_values: Optional[Dict] = None,
    new_values: Optional[Dict] = None,
    module: Optional[str] = None
) -> None:
    """
    Add an audit row to the current transaction.

    The caller commits, so the audit entry lands atomically with the
    change it describes.
    """
    from foodstock.models.audit import AuditLog

    audit_entry = AuditLog(
        audit_user=user.username if user is not None else "system",
        audit_action=action,
        audit_table=table,
        audit_key=key,
        audit_old_values=_jsonable(old_values),
        audit_new_values=_jsonable(new_values),
        audit_module=module
    )
    db.add(audit_entry)
