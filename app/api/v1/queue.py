from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List, Optional

from ...core.database import get_db
from ...core.responses import ApiResponse
from ...api.deps import get_current_user, get_patient_user, get_staff_user
from ...models.user import User
from ...schemas.queue import (
    DoctorQueueItem, MyQueueStatus, QueueEntryResponse,
    QueueJoinRequest, QueueStatusUpdate
)
from ...services.queue_service import QueueService

router = APIRouter(prefix="/queue", tags=["Queue"])

@router.post(
    "/join",
    status_code=status.HTTP_201_CREATED,
    response_model=ApiResponse[QueueEntryResponse]
)
async def join_queue(
    payload: QueueJoinRequest,
    current_user: User = Depends(get_patient_user),
    db: Session = Depends(get_db)
):
    """Join a doctor's live queue."""
    entry = QueueService(db).join_queue(payload.doctor_id, current_user)

    return ApiResponse(
        statusCode=status.HTTP_201_CREATED,
        data=QueueEntryResponse.model_validate(entry),
        message=(
            f"Joined queue at position {entry.position}. "
            f"Estimated time: {entry.estimated_time:%H:%M} UTC."
        )
    )

@router.get("/me", response_model=ApiResponse[Optional[MyQueueStatus]])
async def get_my_queue_status(
    current_user: User = Depends(get_patient_user),
    db: Session = Depends(get_db)
):
    """Where the calling patient currently stands, if queued anywhere."""
    entry = QueueService(db).get_my_queue_status(current_user)

    if entry is None:
        return ApiResponse(data=None, message="You are not currently in a queue.")

    return ApiResponse(
        data=MyQueueStatus.model_validate(entry),
        message=f"Your status in Dr. {entry.doctor.user.full_name}'s queue is: {entry.status.value}."
    )

@router.get("/doctor/{doctor_id}", response_model=ApiResponse[List[DoctorQueueItem]])
async def get_doctor_queue(
    doctor_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """A doctor's waiting and in-progress patients in position order."""
    entries = QueueService(db).get_doctor_queue(doctor_id)

    if not entries:
        return ApiResponse(data=[], message="The queue is currently empty.")

    return ApiResponse(
        data=[DoctorQueueItem.model_validate(entry) for entry in entries],
        message="Doctor's queue list fetched successfully."
    )

@router.patch("/{entry_id}/status", response_model=ApiResponse[QueueEntryResponse])
async def update_queue_status(
    entry_id: str,
    payload: QueueStatusUpdate,
    current_user: User = Depends(get_staff_user),
    db: Session = Depends(get_db)
):
    """Start or finish a consultation (owning doctor or admin)."""
    entry = QueueService(db).update_queue_status(entry_id, payload.status, current_user)

    return ApiResponse(
        data=QueueEntryResponse.model_validate(entry),
        message=f"Patient status updated to {entry.status.value}."
    )
