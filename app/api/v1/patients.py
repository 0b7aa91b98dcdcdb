from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ...core.database import get_db
from ...core.responses import ApiResponse
from ...api.deps import get_patient_user, get_staff_user
from ...models.user import User
from ...schemas.patient import PatientCreate, PatientResponse, PatientUpdate
from ...services.patient_service import PatientService

router = APIRouter(prefix="/patients", tags=["Patients"])

@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    response_model=ApiResponse[PatientResponse]
)
async def create_patient_profile(
    payload: PatientCreate,
    current_user: User = Depends(get_patient_user),
    db: Session = Depends(get_db)
):
    patient = PatientService(db).create_patient_profile(current_user, payload)

    return ApiResponse(
        statusCode=status.HTTP_201_CREATED,
        data=PatientResponse.model_validate(patient),
        message="Patient profile created successfully."
    )

@router.get("/me", response_model=ApiResponse[PatientResponse])
async def get_current_patient_profile(
    current_user: User = Depends(get_patient_user),
    db: Session = Depends(get_db)
):
    patient = PatientService(db).get_current_profile(current_user)

    return ApiResponse(
        data=PatientResponse.model_validate(patient),
        message="Current patient profile fetched successfully."
    )

@router.patch("/me", response_model=ApiResponse[PatientResponse])
async def update_patient_profile(
    payload: PatientUpdate,
    current_user: User = Depends(get_patient_user),
    db: Session = Depends(get_db)
):
    patient = PatientService(db).update_patient_profile(current_user, payload)

    return ApiResponse(
        data=PatientResponse.model_validate(patient),
        message="Patient profile updated successfully."
    )

@router.get("/{user_id}", response_model=ApiResponse[PatientResponse])
async def get_patient_profile_by_user_id(
    user_id: str,
    current_user: User = Depends(get_staff_user),
    db: Session = Depends(get_db)
):
    """Look up a patient's profile by their user id (doctors and admins)."""
    patient = PatientService(db).get_profile_by_user_id(user_id, current_user)

    return ApiResponse(
        data=PatientResponse.model_validate(patient),
        message="Patient profile fetched successfully."
    )
