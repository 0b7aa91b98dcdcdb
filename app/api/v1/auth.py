from fastapi import APIRouter, Depends, File, UploadFile, status
from sqlalchemy.orm import Session

from ...core.database import get_db
from ...core.responses import ApiResponse
from ...api.deps import (
    get_current_user, get_current_user_token, rate_limit_check
)
from ...services.auth_service import AuthService
from ...schemas.auth import (
    UserLogin, UserRegister, TokenResponse, UserResponse,
    RefreshTokenRequest, ChangePassword, UserUpdate
)
from ...models.user import User

router = APIRouter(prefix="/auth", tags=["Authentication"])

@router.post(
    "/register",
    status_code=status.HTTP_201_CREATED,
    response_model=ApiResponse[UserResponse]
)
async def register(
    user_data: UserRegister,
    db: Session = Depends(get_db),
    _: None = Depends(rate_limit_check)
):
    """Register a new patient or doctor account."""
    auth_service = AuthService(db)
    user = auth_service.register_user(user_data)

    return ApiResponse(
        statusCode=status.HTTP_201_CREATED,
        data=UserResponse.model_validate(user),
        message="User registered successfully"
    )

@router.post("/login", response_model=ApiResponse[TokenResponse])
async def login(
    login_data: UserLogin,
    db: Session = Depends(get_db),
    _: None = Depends(rate_limit_check)
):
    """Authenticate user and return access tokens."""
    auth_service = AuthService(db)
    tokens = auth_service.authenticate_user(login_data)

    return ApiResponse(data=tokens, message="User logged in successfully")

@router.post("/refresh", response_model=ApiResponse[TokenResponse])
async def refresh_token(
    refresh_data: RefreshTokenRequest,
    db: Session = Depends(get_db)
):
    """Refresh access token using refresh token."""
    auth_service = AuthService(db)
    tokens = auth_service.refresh_access_token(refresh_data.refresh_token)

    return ApiResponse(data=tokens, message="Access token refreshed")

@router.post("/logout", response_model=ApiResponse[None])
async def logout(
    refresh_data: RefreshTokenRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Logout user by revoking refresh token."""
    auth_service = AuthService(db)
    success = auth_service.logout_user(refresh_data.refresh_token, current_user)

    return ApiResponse(message="Successfully logged out" if success else "Logout completed")

@router.get("/me", response_model=ApiResponse[UserResponse])
async def get_current_user_info(
    current_user: User = Depends(get_current_user)
):
    """Get current user information."""
    return ApiResponse(
        data=UserResponse.model_validate(current_user),
        message="Current user fetched successfully"
    )

@router.patch("/me", response_model=ApiResponse[UserResponse])
async def update_account_details(
    updates: UserUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Update name, email, username or phone."""
    user = AuthService(db).update_account(current_user, updates)

    return ApiResponse(
        data=UserResponse.model_validate(user),
        message="Account details updated successfully"
    )

@router.post("/change-password", response_model=ApiResponse[None])
async def change_password(
    password_data: ChangePassword,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Change user password."""
    AuthService(db).change_password(current_user, password_data)

    return ApiResponse(message="Password changed successfully")

@router.patch("/avatar", response_model=ApiResponse[UserResponse])
async def update_avatar(
    avatar: UploadFile = File(...),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    user = AuthService(db).update_avatar(current_user, avatar)

    return ApiResponse(
        data=UserResponse.model_validate(user),
        message="Avatar image updated successfully"
    )

@router.patch("/cover-image", response_model=ApiResponse[UserResponse])
async def update_cover_image(
    cover_image: UploadFile = File(..., alias="coverImage"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    user = AuthService(db).update_cover_image(current_user, cover_image)

    return ApiResponse(
        data=UserResponse.model_validate(user),
        message="Cover image updated successfully"
    )

@router.post("/verify-token", response_model=ApiResponse[dict])
async def verify_token_endpoint(
    token_payload = Depends(get_current_user_token)
):
    """Verify if token is valid."""
    return ApiResponse(
        data={
            "valid": True,
            "user_id": token_payload.sub,
            "email": token_payload.email,
            "role": token_payload.role,
            "expires": token_payload.exp
        },
        message="Token is valid"
    )
