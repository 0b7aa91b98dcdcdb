from typing import Optional
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from ..core.exceptions import (
    BadRequestError, ConflictError, ForbiddenError, NotFoundError, parse_id
)
from ..core.security import UserRole
from ..models.patient import Patient
from ..models.user import User
from ..schemas.patient import GENDERS, PHONE_PATTERN, PatientCreate, PatientUpdate
from .access_policy import get_patient_profile, has_allowed_role

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("date_of_birth", "gender", "address", "city", "zip_code")

def normalize_gender(value: str) -> str:
    gender = value.strip().capitalize()
    if gender not in GENDERS:
        raise BadRequestError("Invalid gender value. Must be Male, Female, or Other.")
    return gender

def validate_emergency_phone(phone: Optional[str]):
    if phone and not PHONE_PATTERN.match(phone):
        raise BadRequestError("Invalid emergency contact phone number. Must be 10 digits.")

class PatientService:
    def __init__(self, db: Session):
        self.db = db

    def create_patient_profile(self, user: User, data: PatientCreate) -> Patient:
        """Create the caller's patient profile. One per identity."""
        if not has_allowed_role(user.role, [UserRole.PATIENT, UserRole.ADMIN]):
            raise ForbiddenError("Access Denied. User must be a 'patient' or 'admin' to create a profile.")

        if get_patient_profile(self.db, user.id):
            raise ConflictError("Patient profile already exists for this user.")

        if any(not getattr(data, field) for field in REQUIRED_FIELDS):
            raise BadRequestError(
                "Missing required fields: dateOfBirth, gender, address, city, or zipCode."
            )

        emergency_contact = data.emergency_contact
        validate_emergency_phone(emergency_contact.phone if emergency_contact else None)

        patient = Patient(
            user_id=user.id,
            date_of_birth=data.date_of_birth,
            gender=normalize_gender(data.gender),
            address=data.address,
            city=data.city,
            zip_code=data.zip_code,
            blood_group=data.blood_group,
            medical_history=data.medical_history or [],
            emergency_contact_name=emergency_contact.name if emergency_contact else "",
            emergency_contact_phone=emergency_contact.phone if emergency_contact else "",
        )

        try:
            self.db.add(patient)
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise ConflictError("Patient profile already exists for this user.")

        logger.info(f"Patient profile {patient.id} created for user {user.id}")

        return self._get_populated_patient(patient.id)

    def get_current_profile(self, user: User) -> Patient:
        patient = get_patient_profile(self.db, user.id)
        if not patient:
            raise NotFoundError("Patient profile not found for the current user. Please create one.")
        return self._get_populated_patient(patient.id)

    def update_patient_profile(self, user: User, updates: PatientUpdate) -> Patient:
        patient = get_patient_profile(self.db, user.id)
        if not patient:
            raise NotFoundError("Patient profile not found.")

        changes = updates.model_dump(exclude_unset=True, exclude_none=True)
        if not changes:
            raise BadRequestError("No valid fields provided for update.")

        if "gender" in changes:
            changes["gender"] = normalize_gender(changes["gender"])

        emergency_contact = changes.pop("emergency_contact", None)
        if emergency_contact is not None:
            validate_emergency_phone(emergency_contact.get("phone"))
            patient.emergency_contact_name = emergency_contact.get("name") or ""
            patient.emergency_contact_phone = emergency_contact.get("phone") or ""

        for field, value in changes.items():
            setattr(patient, field, value)

        self.db.commit()

        logger.info(f"Patient profile {patient.id} updated: {sorted(updates.model_fields_set)}")

        return self._get_populated_patient(patient.id)

    def get_profile_by_user_id(self, user_id, requester: User) -> Patient:
        """Doctors and admins may look up any patient's profile."""
        if not has_allowed_role(requester.role, [UserRole.DOCTOR, UserRole.ADMIN]):
            raise ForbiddenError("Access Denied. Only Doctors or Admins can view other patient profiles.")

        user_id = parse_id(user_id, "user")

        patient = get_patient_profile(self.db, user_id)
        if not patient:
            raise NotFoundError("Patient profile not found for this user ID.")
        return self._get_populated_patient(patient.id)

    def _get_populated_patient(self, patient_id: int) -> Patient:
        return self.db.query(Patient).options(
            joinedload(Patient.user)
        ).filter(Patient.id == patient_id).populate_existing().one()
