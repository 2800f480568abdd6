"""
Authentication glue for AuditLens
Verifies bearer tokens issued by the platform's auth service
"""

import logging
from typing import Any, Dict, Optional

import jwt
from beanie import PydanticObjectId
from bson.errors import InvalidId
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .config import get_settings
from .models.enums import UserRole

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)

ANALYTICS_ROLES = (UserRole.ANALYST.value, UserRole.ADMIN.value)


def verify_token(token: str) -> Dict[str, Any]:
    """
    Decode and verify a JWT.

    Returns:
        The token payload, carrying at least ``id``, ``username`` and ``role``

    Raises:
        HTTPException: 401 on an expired or invalid token
    """
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token has expired")
    except jwt.InvalidTokenError as e:
        logger.warning(f"Invalid token: {e}")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Could not validate credentials")

    if not payload.get("id"):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Could not validate credentials")
    return payload


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Dict[str, Any]:
    """Get current authenticated user from the bearer token"""
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return verify_token(credentials.credentials)


def user_object_id(current_user: Dict[str, Any]) -> PydanticObjectId:
    """The token's user id as an ObjectId (401 when malformed)."""
    try:
        return PydanticObjectId(current_user["id"])
    except (InvalidId, TypeError, KeyError):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Could not validate credentials")


def require_analytics_role(
    current_user: Dict[str, Any] = Depends(get_current_user),
) -> Dict[str, Any]:
    """Dashboards are available to analysts and admins"""
    if current_user.get("role") not in ANALYTICS_ROLES:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="This endpoint is only available for analyst users",
        )
    return current_user


def require_admin(
    current_user: Dict[str, Any] = Depends(get_current_user),
) -> Dict[str, Any]:
    """Require admin role for protected endpoints"""
    if current_user.get("role") != UserRole.ADMIN.value:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin privileges required")
    return current_user
