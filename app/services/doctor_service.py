from typing import List, Optional, Tuple
import logging

from fastapi import UploadFile
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from ..core.exceptions import (
    BadRequestError, ConflictError, ForbiddenError,
    InternalServerError, NotFoundError, parse_id
)
from ..core.pagination import paginate
from ..core.security import UserRole
from ..models.doctor import Doctor, VerificationStatus
from ..models.user import User
from ..schemas.doctor import AvailabilityDay, DoctorUpdate
from .access_policy import get_doctor_profile, is_admin
from .storage_service import StorageService

logger = logging.getLogger(__name__)

class DoctorService:
    def __init__(self, db: Session, storage: Optional[StorageService] = None):
        self.db = db
        self.storage = storage or StorageService()

    def create_doctor_profile(
        self,
        user: User,
        specialization: Optional[str],
        registration_number: Optional[str],
        proof_document: Optional[UploadFile],
        experience: Optional[int] = None,
        availability: Optional[List[AvailabilityDay]] = None
    ) -> Doctor:
        """Create the caller's doctor profile; it starts pending verification."""
        if user.role != UserRole.DOCTOR:
            raise ForbiddenError("Access Denied. User must have the 'doctor' role to create a profile.")

        specialization = (specialization or "").strip()
        registration_number = (registration_number or "").strip()
        if not specialization or not registration_number:
            raise BadRequestError("Specialization and Medical Registration Number are required.")

        if experience is not None and experience < 0:
            raise BadRequestError("Experience cannot be negative.")

        if get_doctor_profile(self.db, user.id):
            raise ConflictError("Doctor profile already exists for this user.")

        registration_taken = self.db.query(Doctor).filter(
            Doctor.registration_number == registration_number
        ).first()
        if registration_taken:
            raise ConflictError("A doctor with this Registration Number is already registered.")

        if proof_document is None or not proof_document.filename:
            raise BadRequestError("Medical registration proof document is mandatory for verification.")

        try:
            uploaded = self.storage.upload(proof_document, "proof_documents")
        except InternalServerError:
            raise InternalServerError(
                "Failed to upload verification document. Please check your file and try again."
            )

        doctor = Doctor(
            user_id=user.id,
            specialization=specialization,
            experience=experience or 0,
            registration_number=registration_number,
            proof_document=uploaded["url"],
            availability=[day.model_dump() for day in availability or []],
            is_verified=False,
            verification_status=VerificationStatus.PENDING.value
        )

        try:
            self.db.add(doctor)
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise ConflictError("Doctor profile already exists for this user or registration number.")

        logger.info(f"Doctor profile {doctor.id} created for user {user.id}, pending verification")

        return self._get_populated_doctor(doctor.id)

    def list_doctors(
        self,
        page: Optional[int] = None,
        limit: Optional[int] = None,
        specialization: Optional[str] = None
    ) -> dict:
        """Verified doctors only, optionally filtered by specialization."""
        query = self.db.query(Doctor).join(Doctor.user).options(
            joinedload(Doctor.user)
        ).filter(Doctor.is_verified.is_(True))

        if specialization:
            query = query.filter(Doctor.specialization == specialization)

        query = query.order_by(Doctor.specialization.asc(), User.full_name.asc(), Doctor.id.asc())

        return paginate(query, page, limit)

    def get_doctor(self, doctor_id, requester: Optional[User] = None) -> Tuple[Doctor, bool]:
        """Fetch a doctor profile.

        Unverified profiles are only visible to their owner and to admins.
        The second element tells the caller whether the full profile may be shown.
        """
        doctor = self._get_doctor(doctor_id)

        owner_or_admin = requester is not None and (
            doctor.user_id == requester.id or is_admin(requester.role)
        )

        if not doctor.is_verified and not owner_or_admin:
            raise NotFoundError("Doctor profile not found or is pending verification.")

        return self._get_populated_doctor(doctor.id), owner_or_admin

    def get_availability(self, doctor_id) -> list:
        doctor = self._get_doctor(doctor_id, not_found="Doctor profile not found or not yet verified.")

        if not doctor.is_verified:
            raise NotFoundError("Doctor profile not found or not yet verified.")

        return doctor.availability or []

    def update_doctor_profile(self, doctor_id, updates: DoctorUpdate, user: User) -> Doctor:
        """Owner or admin edit; verification fields are not editable here."""
        doctor = self._get_doctor(doctor_id)

        if doctor.user_id != user.id and not is_admin(user.role):
            raise ForbiddenError("Unauthorized to update this profile.")

        changes = updates.model_dump(exclude_unset=True, exclude_none=True)
        if not changes:
            raise BadRequestError("No valid fields provided for update.")

        if "specialization" in changes:
            doctor.specialization = changes["specialization"].strip()
        if "experience" in changes:
            doctor.experience = changes["experience"]
        if "availability" in changes:
            doctor.availability = changes["availability"]

        self.db.commit()

        logger.info(f"Doctor profile {doctor.id} updated by user {user.id}: {sorted(changes)}")

        return self._get_populated_doctor(doctor.id)

    def list_pending_doctors(self) -> List[Doctor]:
        return self.db.query(Doctor).options(
            joinedload(Doctor.user)
        ).filter(
            Doctor.verification_status == VerificationStatus.PENDING.value
        ).order_by(Doctor.created_at.asc(), Doctor.id.asc()).all()

    def verify_doctor(self, doctor_id, status: Optional[str], admin: User) -> Doctor:
        """Approve or reject a doctor's credentials."""
        if status not in (VerificationStatus.APPROVED.value, VerificationStatus.REJECTED.value):
            raise BadRequestError("Status must be 'approved' or 'rejected'.")

        doctor = self._get_doctor(doctor_id)
        approved = status == VerificationStatus.APPROVED.value

        doctor.verification_status = status
        doctor.is_verified = approved
        doctor.user.is_verified = approved

        self.db.commit()

        logger.info(f"Doctor {doctor.id} verification set to {status} by admin {admin.id}")

        return self._get_populated_doctor(doctor.id)

    def _get_doctor(self, doctor_id, not_found: str = "Doctor profile not found.") -> Doctor:
        doctor_id = parse_id(doctor_id, "doctor")

        doctor = self.db.query(Doctor).filter(Doctor.id == doctor_id).first()
        if not doctor:
            raise NotFoundError(not_found)
        return doctor

    def _get_populated_doctor(self, doctor_id: int) -> Doctor:
        return self.db.query(Doctor).options(
            joinedload(Doctor.user)
        ).filter(Doctor.id == doctor_id).populate_existing().one()
