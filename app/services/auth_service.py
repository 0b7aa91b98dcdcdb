from sqlalchemy import or_
from sqlalchemy.orm import Session
from fastapi import UploadFile
from jose import JWTError
from datetime import datetime, timedelta
from typing import Iterable, Optional
import hashlib
import logging

from ..models.user import User, RefreshToken
from ..core.config import settings
from ..core.exceptions import (
    BadRequestError, ConflictError, InternalServerError, NotFoundError, parse_id
)
from ..core.security import (
    verify_password, get_password_hash, create_token_pair,
    verify_token, UserRole, AuthenticationError, AccountLockedError, REFRESH_TOKEN
)
from ..schemas.auth import (
    AdminCreate, UserLogin, UserRegister, TokenResponse, UserResponse,
    ChangePassword, UserUpdate
)
from .access_policy import has_allowed_role
from .storage_service import StorageService

logger = logging.getLogger(__name__)

class AuthService:
    def __init__(self, db: Session, storage: Optional[StorageService] = None):
        self.db = db
        self.storage = storage or StorageService()

    def register_user(self, user_data: UserRegister) -> User:
        """Register a new patient or doctor account."""
        return self._create_user(user_data, user_data.role)

    def create_admin(self, admin_data: AdminCreate, created_by: User) -> User:
        """Create another admin account (admins only)."""
        user = self._create_user(admin_data, UserRole.ADMIN, is_verified=True)
        logger.info(f"Admin {created_by.id} created admin account {user.id}")
        return user

    def authenticate_user(
        self,
        login_data: UserLogin,
        allowed_roles: Optional[Iterable[UserRole]] = None
    ) -> TokenResponse:
        """Authenticate user and return tokens.

        ``allowed_roles`` restricts which accounts may log in through the
        calling endpoint; ``login_data.role`` narrows it further.
        """
        if not login_data.email and not login_data.username:
            raise BadRequestError("username or email is required")

        roles = set(allowed_roles) if allowed_roles is not None else set(UserRole)
        if login_data.role is not None:
            roles &= {login_data.role}

        user = self._find_by_login(login_data)

        if not user or not has_allowed_role(user.role, roles):
            raise AuthenticationError("Invalid email or password")

        # Check account lockout
        if user.locked_until and user.locked_until > datetime.utcnow():
            raise AccountLockedError("Account is temporarily locked")

        # Verify password
        if not verify_password(login_data.password, user.password_hash):
            self._handle_failed_login(user)
            raise AuthenticationError("Invalid email or password")

        if not user.is_active:
            raise AuthenticationError("Account is deactivated")

        # Reset failed login attempts
        user.failed_login_attempts = 0
        user.locked_until = None
        user.last_login = datetime.utcnow()

        response = self._issue_tokens(user)
        logger.info(f"User {user.id} logged in as {UserRole(user.role).value}")
        return response

    def refresh_access_token(self, refresh_token: str) -> TokenResponse:
        """Refresh access token using refresh token."""
        # Verify refresh token
        token_payload = verify_token(refresh_token)
        if not token_payload or token_payload.token_type != REFRESH_TOKEN:
            raise AuthenticationError("Invalid refresh token")

        # Check if refresh token exists in database
        token_hash = hashlib.sha256(refresh_token.encode()).hexdigest()
        stored_token = self.db.query(RefreshToken).filter(
            RefreshToken.token_hash == token_hash,
            RefreshToken.is_revoked == False,  # noqa: E712
            RefreshToken.expires_at > datetime.utcnow()
        ).first()

        if not stored_token:
            raise AuthenticationError("Refresh token is expired or used")

        # Get user
        user = self.db.query(User).filter(
            User.id == token_payload.sub
        ).first()

        if not user or not user.is_active:
            raise AuthenticationError("User not found or inactive")

        # Revoke old refresh token and issue a new pair
        stored_token.is_revoked = True
        return self._issue_tokens(user)

    def logout_user(self, refresh_token: str, user: User) -> bool:
        """Logout user by revoking their refresh tokens."""
        token_hash = hashlib.sha256(refresh_token.encode()).hexdigest()
        revoked = self.db.query(RefreshToken).filter(
            RefreshToken.token_hash == token_hash,
            RefreshToken.user_id == user.id
        ).update({"is_revoked": True})

        self.db.commit()
        logger.info(f"User {user.id} logged out")
        return revoked > 0

    def change_password(self, user: User, password_data: ChangePassword) -> None:
        if not verify_password(password_data.current_password, user.password_hash):
            raise BadRequestError("Current password is incorrect")

        user.password_hash = get_password_hash(password_data.new_password)
        self.db.commit()

    def update_account(self, user: User, updates: UserUpdate) -> User:
        changes = updates.model_dump(exclude_unset=True, exclude_none=True)
        if not changes:
            raise BadRequestError("All fields are required")

        if "email" in changes:
            changes["email"] = changes["email"].lower()

        if "email" in changes and changes["email"] != user.email:
            if self.db.query(User).filter(User.email == changes["email"]).first():
                raise ConflictError("Email is already registered.")

        if "username" in changes and changes["username"] != user.username:
            if self.db.query(User).filter(User.username == changes["username"]).first():
                raise ConflictError("Username is already taken. Please choose another one.")

        for field, value in changes.items():
            setattr(user, field, value)

        self.db.commit()
        self.db.refresh(user)
        return user

    def update_avatar(self, user: User, avatar: Optional[UploadFile]) -> User:
        if avatar is None or not avatar.filename:
            raise BadRequestError("Avatar file is missing")

        return self._store_image(user, "avatar", avatar, "avatars")

    def update_cover_image(self, user: User, cover_image: Optional[UploadFile]) -> User:
        if cover_image is None or not cover_image.filename:
            raise BadRequestError("Cover image file is missing")

        return self._store_image(user, "cover_image", cover_image, "cover_images")

    def get_user(self, user_id) -> User:
        user_id = parse_id(user_id, "user")

        user = self.db.query(User).filter(User.id == user_id).first()
        if not user:
            raise NotFoundError("User not found")
        return user

    def deactivate_user(self, user_id, admin: User) -> User:
        user_id = parse_id(user_id, "user")
        if user_id == admin.id:
            raise BadRequestError("Cannot deactivate own account")

        user = self.get_user(user_id)
        user.is_active = False

        # Outstanding refresh tokens die with the account
        self.db.query(RefreshToken).filter(
            RefreshToken.user_id == user.id
        ).update({"is_revoked": True})

        self.db.commit()
        self.db.refresh(user)

        logger.info(f"Admin {admin.id} deactivated user {user.id}")
        return user

    def _create_user(self, user_data, role: UserRole, is_verified: bool = False) -> User:
        email = user_data.email.lower()
        existing_user = self.db.query(User).filter(
            or_(User.email == email, User.username == user_data.username)
        ).first()

        if existing_user:
            raise ConflictError("User with email or username already exists")

        new_user = User(
            email=email,
            username=user_data.username,
            full_name=user_data.full_name.strip(),
            phone=user_data.phone,
            password_hash=get_password_hash(user_data.password),
            role=role,
            is_active=True,
            is_verified=is_verified
        )

        self.db.add(new_user)
        self.db.commit()
        self.db.refresh(new_user)

        logger.info(f"Registered user {new_user.id} with role {UserRole(role).value}")
        return new_user

    def _store_image(self, user: User, field: str, image: UploadFile, folder: str) -> User:
        uploaded = self.storage.upload(image, folder)

        setattr(user, field, uploaded["url"])
        self.db.commit()
        self.db.refresh(user)
        return user

    def _find_by_login(self, login_data: UserLogin) -> Optional[User]:
        filters = []
        if login_data.email:
            filters.append(User.email == login_data.email.lower().strip())
        if login_data.username:
            filters.append(User.username == login_data.username.lower().strip())

        return self.db.query(User).filter(or_(*filters)).first()

    def _issue_tokens(self, user: User) -> TokenResponse:
        try:
            tokens = create_token_pair(user.id, user.email, user.role)
        except JWTError as e:
            logger.error(f"Token generation failed for user {user.id}: {str(e)}")
            raise InternalServerError(
                "Something went wrong while generating refresh and access token"
            )

        self._store_refresh_token(user.id, tokens.refresh_token)
        self.db.commit()
        self.db.refresh(user)

        return TokenResponse(
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            token_type=tokens.token_type,
            expires_in=tokens.expires_in,
            user=UserResponse.model_validate(user)
        )

    def _handle_failed_login(self, user: User):
        """Handle failed login attempt."""
        user.failed_login_attempts = (user.failed_login_attempts or 0) + 1

        # Lock account after repeated failures
        if user.failed_login_attempts >= settings.MAX_FAILED_LOGIN_ATTEMPTS:
            user.locked_until = datetime.utcnow() + timedelta(minutes=settings.ACCOUNT_LOCKOUT_MINUTES)
            logger.warning(f"User {user.id} locked after {user.failed_login_attempts} failed logins")

        self.db.commit()

    def _store_refresh_token(self, user_id: int, refresh_token: str):
        """Store refresh token in database."""
        token_hash = hashlib.sha256(refresh_token.encode()).hexdigest()

        # Decode token to get expiration
        token_payload = verify_token(refresh_token)
        expires_at = datetime.utcfromtimestamp(token_payload.exp) if token_payload and token_payload.exp else datetime.utcnow() + timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)

        # Only the newest refresh token stays valid
        self.db.query(RefreshToken).filter(
            RefreshToken.user_id == user_id
        ).update({"is_revoked": True})

        # Store new refresh token
        new_token = RefreshToken(
            user_id=user_id,
            token_hash=token_hash,
            expires_at=expires_at
        )

        self.db.add(new_token)
