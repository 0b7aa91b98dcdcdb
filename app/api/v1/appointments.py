from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import Optional

from ...core.database import get_db
from ...core.responses import ApiResponse
from ...api.deps import get_current_user, get_patient_user, get_staff_user, require_role
from ...core.security import UserRole
from ...models.user import User
from ...schemas.appointment import (
    AppointmentCreate, AppointmentResponse, AppointmentStatusUpdate
)
from ...schemas.common import Page, build_page
from ...services.appointment_service import AppointmentService

router = APIRouter(prefix="/appointments", tags=["Appointments"])

@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    response_model=ApiResponse[AppointmentResponse]
)
async def book_appointment(
    payload: AppointmentCreate,
    current_user: User = Depends(get_patient_user),
    db: Session = Depends(get_db)
):
    """Book a slot with a doctor; the booking starts out pending."""
    appointment = AppointmentService(db).book_appointment(
        payload.doctor_id,
        payload.slot_date,
        payload.start_time,
        payload.end_time,
        current_user
    )

    return ApiResponse(
        statusCode=status.HTTP_201_CREATED,
        data=AppointmentResponse.model_validate(appointment),
        message="Appointment booked successfully and is pending confirmation."
    )

@router.get("", response_model=ApiResponse[Page[AppointmentResponse]])
async def list_appointments(
    status_filter: Optional[str] = Query(None, alias="status"),
    page: Optional[int] = Query(None),
    limit: Optional[int] = Query(None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Appointments visible to the caller, most recent slot first."""
    result, message = AppointmentService(db).get_user_appointments(
        current_user, status=status_filter, page=page, limit=limit
    )

    return ApiResponse(data=build_page(AppointmentResponse, result), message=message)

@router.patch("/{appointment_id}/status", response_model=ApiResponse[AppointmentResponse])
async def update_appointment_status(
    appointment_id: str,
    payload: AppointmentStatusUpdate,
    current_user: User = Depends(get_staff_user),
    db: Session = Depends(get_db)
):
    """Confirm, complete or cancel an appointment (owning doctor or admin)."""
    appointment = AppointmentService(db).update_appointment_status(
        appointment_id, payload.status, current_user
    )

    return ApiResponse(
        data=AppointmentResponse.model_validate(appointment),
        message=f"Appointment status updated to {appointment.status.value}."
    )

@router.patch("/{appointment_id}/cancel", response_model=ApiResponse[AppointmentResponse])
async def cancel_appointment(
    appointment_id: str,
    current_user: User = Depends(
        require_role([UserRole.PATIENT, UserRole.DOCTOR, UserRole.ADMIN])
    ),
    db: Session = Depends(get_db)
):
    """Cancel a pending or confirmed appointment."""
    appointment = AppointmentService(db).cancel_appointment(appointment_id, current_user)

    return ApiResponse(
        data=AppointmentResponse.model_validate(appointment),
        message="Appointment cancelled successfully."
    )
