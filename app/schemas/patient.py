import re
from datetime import date, datetime
from typing import List, Optional

from pydantic import Field, field_validator

from .common import CamelModel, UserSummary

PHONE_PATTERN = re.compile(r"^\d{10}$")
GENDERS = ("Male", "Female", "Other")
BLOOD_GROUPS = ("A+", "A-", "B+", "B-", "AB+", "AB-", "O+", "O-", "Unknown")


class EmergencyContact(CamelModel):
    name: Optional[str] = ""
    phone: Optional[str] = ""


class PatientBase(CamelModel):
    date_of_birth: Optional[date] = None
    gender: Optional[str] = None
    address: Optional[str] = Field(None, max_length=255)
    city: Optional[str] = Field(None, max_length=100)
    zip_code: Optional[str] = Field(None, max_length=20)
    blood_group: Optional[str] = None
    medical_history: Optional[List[str]] = None
    emergency_contact: Optional[EmergencyContact] = None

    @field_validator("address", "city", "zip_code")
    @classmethod
    def strip_text(cls, value: Optional[str]) -> Optional[str]:
        return value.strip() if value is not None else value

    @field_validator("medical_history")
    @classmethod
    def strip_history(cls, value: Optional[List[str]]) -> Optional[List[str]]:
        if value is None:
            return value
        return [item.strip() for item in value if item and item.strip()]

    @field_validator("blood_group")
    @classmethod
    def known_blood_group(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and value not in BLOOD_GROUPS:
            raise ValueError(f"blood group must be one of {', '.join(BLOOD_GROUPS)}")
        return value


class PatientCreate(PatientBase):
    pass


class PatientUpdate(PatientBase):
    pass


class PatientResponse(CamelModel):
    id: int
    date_of_birth: date
    gender: str
    address: str
    city: str
    zip_code: str
    blood_group: Optional[str] = None
    medical_history: List[str] = []
    emergency_contact: EmergencyContact
    user: Optional[UserSummary] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
