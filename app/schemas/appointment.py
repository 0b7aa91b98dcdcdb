from datetime import date, datetime
from typing import Optional, Union

from pydantic import Field

from .common import CamelModel, DoctorSummary, PatientSummary
from ..models.appointment import AppointmentStatus

TIME_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"


class AppointmentCreate(CamelModel):
    doctor_id: Optional[Union[int, str]] = None
    slot_date: Optional[date] = Field(None, alias="date")
    start_time: Optional[str] = Field(None, pattern=TIME_PATTERN)
    end_time: Optional[str] = Field(None, pattern=TIME_PATTERN)


class AppointmentStatusUpdate(CamelModel):
    status: Optional[str] = None


class AppointmentSlot(CamelModel):
    slot_date: date = Field(..., alias="date")
    start_time: str
    end_time: str


class AppointmentResponse(CamelModel):
    id: int
    slot: AppointmentSlot
    status: AppointmentStatus
    doctor: Optional[DoctorSummary] = None
    patient: Optional[PatientSummary] = None
    doctor_id: int
    patient_id: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
