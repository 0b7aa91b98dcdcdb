from fastapi import Depends, HTTPException, status, Request
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from typing import Optional, List

from ..core.config import settings
from ..core.database import get_db, get_redis
from ..core.security import (
    security, verify_token, AuthenticationError, ACCESS_TOKEN,
    AuthorizationError, UserRole, TokenPayload
)
from ..models.user import User
from ..services.access_policy import has_allowed_role

async def get_current_user_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> TokenPayload:
    """Extract and verify JWT token from Authorization header."""
    if credentials is None:
        raise AuthenticationError("Unauthorized: Access denied. Please log in.")

    # Verify token
    token_payload = verify_token(credentials.credentials)
    if not token_payload:
        raise AuthenticationError("Invalid or expired token")

    # Check if token is access token
    if token_payload.token_type != ACCESS_TOKEN:
        raise AuthenticationError("Invalid token type")

    return token_payload

def load_active_user(db: Session, token_payload: TokenPayload) -> User:
    """Resolve the token subject to an active user."""
    if not token_payload.sub:
        raise AuthenticationError("Invalid token payload")

    user = db.query(User).filter(User.id == token_payload.sub).first()
    if not user:
        raise AuthenticationError("User not found")

    if not user.is_active:
        raise AuthenticationError("User account is deactivated")

    return user

async def get_current_user(
    token_payload: TokenPayload = Depends(get_current_user_token),
    db: Session = Depends(get_db)
) -> User:
    """Get current authenticated user from database."""
    return load_active_user(db, token_payload)

# Role-based access control dependencies
def require_role(allowed_roles: List[UserRole]):
    """Create a dependency that requires specific user roles.

    The role claimed by the token is checked before any database access;
    the stored role is checked again once the user is loaded.
    """
    async def role_checker(
        token_payload: TokenPayload = Depends(get_current_user_token),
        db: Session = Depends(get_db)
    ) -> User:
        if not has_allowed_role(token_payload.role, allowed_roles):
            raise AuthorizationError(
                "Forbidden: You do not have the required role for this action."
            )

        user = load_active_user(db, token_payload)

        if not has_allowed_role(user.role, allowed_roles):
            raise AuthorizationError(
                "Forbidden: You do not have the required role for this action."
            )
        return user

    return role_checker

# Specific role dependencies
get_admin_user = require_role([UserRole.ADMIN])
get_doctor_user = require_role([UserRole.DOCTOR])
get_patient_user = require_role([UserRole.PATIENT])
get_staff_user = require_role([UserRole.DOCTOR, UserRole.ADMIN])

# Optional authentication (for public endpoints that may benefit from user context)
async def get_current_user_optional(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db)
) -> Optional[User]:
    """Get current user if authenticated, None otherwise."""
    if credentials is None:
        return None

    token_payload = verify_token(credentials.credentials)
    if not token_payload or not token_payload.sub or token_payload.token_type != ACCESS_TOKEN:
        return None

    user = db.query(User).filter(User.id == token_payload.sub).first()
    return user if user and user.is_active else None

# Rate limiting dependency
async def rate_limit_check(
    request: Request,
    redis_client = Depends(get_redis)
) -> None:
    """Basic rate limiting for authentication endpoints."""
    client_ip = request.client.host if request.client else "unknown"
    key = f"rate_limit:{request.url.path}:{client_ip}"

    current_requests = redis_client.get(key)
    if current_requests is None:
        redis_client.setex(key, settings.RATE_LIMIT_WINDOW_SECONDS, 1)
    else:
        if int(current_requests) >= settings.RATE_LIMIT_REQUESTS:
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail="Too many requests. Please try again later."
            )
        redis_client.incr(key)
