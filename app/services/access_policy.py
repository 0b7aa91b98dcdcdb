"""Role and ownership checks shared by the queue and appointment services.

Route-level gating (``has_allowed_role``) only looks at the role claimed by
the caller's verified token. Record-level checks resolve the caller's own
Patient/Doctor profile and compare it with the reference held by the record.
"""
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from ..core.security import UserRole
from ..models.doctor import Doctor
from ..models.patient import Patient
from ..models.user import User


def has_allowed_role(role, allowed_roles: Iterable[UserRole]) -> bool:
    """Pure role gate, evaluated before any record is loaded."""
    if role is None:
        return False
    try:
        role = UserRole(role)
    except ValueError:
        return False
    return role in set(allowed_roles)


def is_admin(role) -> bool:
    return has_allowed_role(role, [UserRole.ADMIN])


def get_patient_profile(db: Session, user_id: int) -> Optional[Patient]:
    """Resolve a login identity to its patient profile."""
    return db.query(Patient).filter(Patient.user_id == user_id).first()


def get_doctor_profile(db: Session, user_id: int) -> Optional[Doctor]:
    """Resolve a login identity to its doctor profile."""
    return db.query(Doctor).filter(Doctor.user_id == user_id).first()


def is_owner_doctor(db: Session, user: User, doctor_id: int) -> bool:
    doctor = get_doctor_profile(db, user.id)
    return doctor is not None and doctor.id == doctor_id


def is_owner_patient(db: Session, user: User, patient_id: int) -> bool:
    patient = get_patient_profile(db, user.id)
    return patient is not None and patient.id == patient_id
