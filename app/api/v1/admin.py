from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List

from ...core.database import get_db
from ...core.responses import ApiResponse
from ...core.security import UserRole
from ...api.deps import get_admin_user, rate_limit_check
from ...models.user import User
from ...schemas.auth import AdminCreate, TokenResponse, UserLogin, UserResponse
from ...schemas.doctor import DoctorProfile, DoctorVerify
from ...services.auth_service import AuthService
from ...services.doctor_service import DoctorService

router = APIRouter(prefix="/admin", tags=["Admin"])

@router.post("/login", response_model=ApiResponse[TokenResponse])
async def admin_login(
    login_data: UserLogin,
    db: Session = Depends(get_db),
    _: None = Depends(rate_limit_check)
):
    """Login restricted to admin accounts."""
    tokens = AuthService(db).authenticate_user(login_data, allowed_roles=[UserRole.ADMIN])

    return ApiResponse(data=tokens, message="Admin logged in successfully")

@router.post(
    "/users",
    status_code=status.HTTP_201_CREATED,
    response_model=ApiResponse[UserResponse]
)
async def create_admin(
    admin_data: AdminCreate,
    current_user: User = Depends(get_admin_user),
    db: Session = Depends(get_db)
):
    """Create another admin account."""
    user = AuthService(db).create_admin(admin_data, current_user)

    return ApiResponse(
        statusCode=status.HTTP_201_CREATED,
        data=UserResponse.model_validate(user),
        message="Admin user created successfully"
    )

@router.get("/users", response_model=ApiResponse[List[UserResponse]])
async def list_users(
    skip: int = Query(0, ge=0),
    limit: int = Query(10, ge=1, le=100),
    current_user: User = Depends(get_admin_user),
    db: Session = Depends(get_db)
):
    """List all users."""
    users = db.query(User).order_by(User.id.asc()).offset(skip).limit(limit).all()

    return ApiResponse(
        data=[UserResponse.model_validate(user) for user in users],
        message="Users fetched successfully"
    )

@router.get("/users/{user_id}", response_model=ApiResponse[UserResponse])
async def get_any_user_profile(
    user_id: str,
    current_user: User = Depends(get_admin_user),
    db: Session = Depends(get_db)
):
    user = AuthService(db).get_user(user_id)

    return ApiResponse(
        data=UserResponse.model_validate(user),
        message="User profile fetched successfully"
    )

@router.patch("/users/{user_id}/deactivate", response_model=ApiResponse[UserResponse])
async def deactivate_user(
    user_id: str,
    current_user: User = Depends(get_admin_user),
    db: Session = Depends(get_db)
):
    user = AuthService(db).deactivate_user(user_id, current_user)

    return ApiResponse(
        data=UserResponse.model_validate(user),
        message="User deactivated successfully"
    )

@router.get("/doctors/pending", response_model=ApiResponse[List[DoctorProfile]])
async def get_pending_doctors(
    current_user: User = Depends(get_admin_user),
    db: Session = Depends(get_db)
):
    """Doctor profiles awaiting credential verification."""
    doctors = DoctorService(db).list_pending_doctors()

    return ApiResponse(
        data=[DoctorProfile.model_validate(doctor) for doctor in doctors],
        message="Pending doctors fetched successfully"
    )

@router.patch("/doctors/{doctor_id}/verify", response_model=ApiResponse[DoctorProfile])
async def verify_doctor(
    doctor_id: str,
    payload: DoctorVerify,
    current_user: User = Depends(get_admin_user),
    db: Session = Depends(get_db)
):
    """Approve or reject a doctor's credentials."""
    doctor = DoctorService(db).verify_doctor(doctor_id, payload.status, current_user)

    return ApiResponse(
        data=DoctorProfile.model_validate(doctor),
        message=f"Doctor verification set to {doctor.verification_status}"
    )
