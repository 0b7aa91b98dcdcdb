from datetime import datetime
from typing import Optional, Union

from .common import CamelModel, DoctorSummary, PatientSummary
from ..models.queue import QueueStatus


class QueueJoinRequest(CamelModel):
    doctor_id: Optional[Union[int, str]] = None


class QueueStatusUpdate(CamelModel):
    status: Optional[str] = None


class QueueEntryResponse(CamelModel):
    id: int
    position: int
    status: QueueStatus
    estimated_time: Optional[datetime] = None
    doctor: Optional[DoctorSummary] = None
    patient: Optional[PatientSummary] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class DoctorQueueItem(CamelModel):
    id: int
    position: int
    status: QueueStatus
    estimated_time: Optional[datetime] = None
    patient: Optional[PatientSummary] = None


class MyQueueStatus(CamelModel):
    id: int
    position: int
    status: QueueStatus
    estimated_time: Optional[datetime] = None
    doctor: Optional[DoctorSummary] = None
