from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status
from pydantic import Field, TypeAdapter, ValidationError
from sqlalchemy.orm import Session
from typing import Annotated, List, Optional, Union

from ...core.database import get_db
from ...core.exceptions import BadRequestError
from ...core.responses import ApiResponse
from ...api.deps import get_current_user_optional, get_doctor_user, get_staff_user
from ...models.user import User
from ...schemas.common import Page, build_page
from ...schemas.doctor import AvailabilityDay, DoctorProfile, DoctorPublic, DoctorUpdate
from ...services.doctor_service import DoctorService

router = APIRouter(prefix="/doctors", tags=["Doctors"])

availability_adapter = TypeAdapter(List[AvailabilityDay])

# Full profile when every private field is present, public view otherwise
DoctorView = Annotated[Union[DoctorProfile, DoctorPublic], Field(union_mode="left_to_right")]

def parse_availability(raw: Optional[str]) -> Optional[List[AvailabilityDay]]:
    """Availability arrives as a JSON string inside the multipart form."""
    if not raw:
        return None
    try:
        return availability_adapter.validate_json(raw)
    except ValidationError as e:
        first_error = e.errors()[0]
        raise BadRequestError(f"Invalid availability: {first_error['msg']}")

@router.post(
    "/profile",
    status_code=status.HTTP_201_CREATED,
    response_model=ApiResponse[DoctorProfile]
)
async def create_doctor_profile(
    specialization: Optional[str] = Form(None),
    registration_number: Optional[str] = Form(None, alias="registrationNumber"),
    experience: Optional[int] = Form(None),
    availability: Optional[str] = Form(None),
    proof_document: Optional[UploadFile] = File(None, alias="proofDocument"),
    current_user: User = Depends(get_doctor_user),
    db: Session = Depends(get_db)
):
    """Create the caller's doctor profile with a registration proof document."""
    doctor = DoctorService(db).create_doctor_profile(
        current_user,
        specialization=specialization,
        registration_number=registration_number,
        proof_document=proof_document,
        experience=experience,
        availability=parse_availability(availability)
    )

    return ApiResponse(
        statusCode=status.HTTP_201_CREATED,
        data=DoctorProfile.model_validate(doctor),
        message="Doctor profile created. Verification pending."
    )

@router.get("", response_model=ApiResponse[Page[DoctorPublic]])
async def list_doctors(
    page: Optional[int] = Query(None),
    limit: Optional[int] = Query(None),
    specialization: Optional[str] = Query(None),
    db: Session = Depends(get_db)
):
    """Verified doctors, optionally filtered by specialization."""
    result = DoctorService(db).list_doctors(page=page, limit=limit, specialization=specialization)

    return ApiResponse(
        data=build_page(DoctorPublic, result),
        message="Verified doctors fetched successfully."
    )

@router.get("/{doctor_id}", response_model=ApiResponse[DoctorView])
async def get_doctor(
    doctor_id: str,
    current_user: Optional[User] = Depends(get_current_user_optional),
    db: Session = Depends(get_db)
):
    """Public doctor profile; owners and admins get the full record."""
    doctor, full_view = DoctorService(db).get_doctor(doctor_id, current_user)
    schema = DoctorProfile if full_view else DoctorPublic

    return ApiResponse(
        data=schema.model_validate(doctor),
        message="Doctor profile fetched successfully."
    )

@router.get("/{doctor_id}/availability", response_model=ApiResponse[List[AvailabilityDay]])
async def get_doctor_availability(
    doctor_id: str,
    db: Session = Depends(get_db)
):
    availability = DoctorService(db).get_availability(doctor_id)

    return ApiResponse(
        data=availability_adapter.validate_python(availability),
        message="Doctor availability fetched successfully."
    )

@router.patch("/{doctor_id}", response_model=ApiResponse[DoctorProfile])
async def update_doctor_profile(
    doctor_id: str,
    payload: DoctorUpdate,
    current_user: User = Depends(get_staff_user),
    db: Session = Depends(get_db)
):
    """Edit specialization, experience or availability (owner or admin)."""
    doctor = DoctorService(db).update_doctor_profile(doctor_id, payload, current_user)

    return ApiResponse(
        data=DoctorProfile.model_validate(doctor),
        message="Doctor profile updated successfully."
    )
