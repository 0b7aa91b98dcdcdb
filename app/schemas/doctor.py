from datetime import datetime
from typing import List, Optional

from pydantic import Field, field_validator

from .common import CamelModel, UserSummary
from ..models.doctor import VerificationStatus

TIME_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"
WEEKDAYS = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")


class TimeRange(CamelModel):
    start: str = Field(..., pattern=TIME_PATTERN)
    end: str = Field(..., pattern=TIME_PATTERN)

    @field_validator("end")
    @classmethod
    def end_after_start(cls, value, info):
        start = info.data.get("start")
        if start is not None and value <= start:
            raise ValueError("Slot end must be after its start")
        return value


class AvailabilityDay(CamelModel):
    day: str
    slots: List[TimeRange] = []

    @field_validator("day")
    @classmethod
    def known_weekday(cls, value: str) -> str:
        day = value.strip().capitalize()
        if day not in WEEKDAYS:
            raise ValueError(f"day must be one of {', '.join(WEEKDAYS)}")
        return day


class DoctorUpdate(CamelModel):
    specialization: Optional[str] = Field(None, min_length=1, max_length=100)
    experience: Optional[int] = Field(None, ge=0, le=80)
    availability: Optional[List[AvailabilityDay]] = None


class DoctorVerify(CamelModel):
    status: Optional[str] = None


class DoctorPublic(CamelModel):
    id: int
    specialization: str
    experience: int = 0
    availability: List[AvailabilityDay] = []
    user: Optional[UserSummary] = None


class DoctorProfile(DoctorPublic):
    """Full profile, shown to the owning doctor and admins."""

    registration_number: str
    proof_document: Optional[str] = None
    is_verified: bool = False
    verification_status: VerificationStatus
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
