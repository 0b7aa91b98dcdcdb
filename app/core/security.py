from datetime import datetime, timedelta
from typing import Optional
from jose import JWTError, jwt
from passlib.context import CryptContext
from fastapi import status
from fastapi.security import HTTPBearer
from pydantic import BaseModel
import secrets
from enum import Enum

from .config import settings
from .exceptions import ApiError, UnauthorizedError, ForbiddenError

# Password hashing
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# JWT Security; missing credentials are reported by get_current_user_token
security = HTTPBearer(auto_error=False)

class UserRole(str, Enum):
    ADMIN = "admin"
    DOCTOR = "doctor"
    PATIENT = "patient"

class Token(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int

class TokenPayload(BaseModel):
    sub: Optional[int] = None
    email: Optional[str] = None
    role: Optional[str] = None
    exp: Optional[int] = None
    token_type: Optional[str] = None  # "access" or "refresh"

# Password utilities
def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a plain password against its hash."""
    return pwd_context.verify(plain_password, hashed_password)

def get_password_hash(password: str) -> str:
    """Generate password hash."""
    return pwd_context.hash(password)

# JWT utilities
ACCESS_TOKEN = "access"
REFRESH_TOKEN = "refresh"

def _encode_token(claims: dict, token_type: str, lifetime: timedelta) -> str:
    """Sign ``claims`` as a token of ``token_type`` valid for ``lifetime``."""
    payload = dict(claims, token_type=token_type, exp=datetime.utcnow() + lifetime)
    if token_type == REFRESH_TOKEN:
        # Distinguishes refresh tokens issued within the same second
        payload["jti"] = secrets.token_hex(8)

    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)

def create_access_token(claims: dict, expires_delta: Optional[timedelta] = None) -> str:
    lifetime = expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    return _encode_token(claims, ACCESS_TOKEN, lifetime)

def create_refresh_token(claims: dict) -> str:
    return _encode_token(claims, REFRESH_TOKEN, timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS))

def verify_token(token: str) -> Optional[TokenPayload]:
    """Decode a signed token; None when the signature or expiry is invalid."""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        return None
    return TokenPayload(**payload)

def create_token_pair(user_id: int, email: str, role: UserRole) -> Token:
    """Issue the access/refresh pair for a login or refresh."""
    # python-jose requires a string subject
    claims = {"sub": str(user_id), "email": email, "role": UserRole(role).value}

    return Token(
        access_token=create_access_token(claims),
        refresh_token=create_refresh_token(claims),
        expires_in=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60
    )

# Security exceptions
class AuthenticationError(UnauthorizedError):
    def __init__(self, detail: str = "Could not validate credentials"):
        super().__init__(
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )

class AuthorizationError(ForbiddenError):
    def __init__(self, detail: str = "Not enough permissions"):
        super().__init__(detail=detail)

class AccountLockedError(ApiError):
    status_code_default = status.HTTP_423_LOCKED
    detail_default = "Account is temporarily locked"
