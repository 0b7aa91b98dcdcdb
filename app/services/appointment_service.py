from datetime import date
from typing import Optional, Tuple
import logging

from sqlalchemy import false
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from ..core.exceptions import (
    ApiError, BadRequestError, ConflictError, ForbiddenError,
    InternalServerError, NotFoundError, parse_id
)
from ..core.pagination import empty_page, paginate
from ..core.security import UserRole
from ..models.appointment import Appointment, AppointmentStatus, ACTIVE_APPOINTMENT_STATUSES
from ..models.doctor import Doctor
from ..models.patient import Patient
from ..models.user import User
from .access_policy import (
    get_doctor_profile, get_patient_profile, is_admin,
    is_owner_doctor, is_owner_patient
)

logger = logging.getLogger(__name__)

UPDATABLE_STATUSES = (
    AppointmentStatus.CONFIRMED.value,
    AppointmentStatus.CANCELLED.value,
    AppointmentStatus.COMPLETED.value,
)

# Status that must be current before moving to the key status
REQUIRED_PRIOR_STATUS = {
    AppointmentStatus.COMPLETED: (
        AppointmentStatus.CONFIRMED,
        "Cannot complete an appointment that is not confirmed."
    ),
    AppointmentStatus.CONFIRMED: (
        AppointmentStatus.PENDING,
        "Can only confirm a pending appointment."
    ),
}

TERMINAL_STATUSES = (AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED)

SLOT_TAKEN_MESSAGE = "The selected slot is already booked or pending confirmation."

class AppointmentService:
    def __init__(self, db: Session):
        self.db = db

    def book_appointment(
        self,
        doctor_id,
        slot_date: Optional[date],
        start_time: Optional[str],
        end_time: Optional[str],
        user: User
    ) -> Appointment:
        """Book a pending appointment for the calling patient."""
        if doctor_id in (None, "") or not slot_date or not start_time or not end_time:
            raise BadRequestError("Doctor ID, date, start time, and end time are required.")
        doctor_id = parse_id(doctor_id, "doctor")

        if end_time <= start_time:
            raise BadRequestError("End time must be after start time.")

        patient = get_patient_profile(self.db, user.id)
        if not patient:
            raise NotFoundError("Patient profile not found. Complete your profile first.")

        doctor = self.db.query(Doctor).filter(Doctor.id == doctor_id).first()
        if not doctor:
            raise NotFoundError("Doctor profile not found.")

        conflict = self.db.query(Appointment).filter(
            Appointment.doctor_id == doctor_id,
            Appointment.slot_date == slot_date,
            Appointment.start_time == start_time,
            Appointment.status.in_(ACTIVE_APPOINTMENT_STATUSES)
        ).first()

        if conflict:
            raise ConflictError(SLOT_TAKEN_MESSAGE)

        appointment = Appointment(
            patient_id=patient.id,
            doctor_id=doctor_id,
            slot_date=slot_date,
            start_time=start_time,
            end_time=end_time,
            status=AppointmentStatus.PENDING
        )

        try:
            self.db.add(appointment)
            self.db.commit()
        except IntegrityError:
            # Lost the race for the slot to a concurrent booking
            self.db.rollback()
            raise ConflictError(SLOT_TAKEN_MESSAGE)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to book doctor {doctor_id} on {slot_date} {start_time}: {str(e)}")
            raise InternalServerError("Failed to book the appointment.")

        logger.info(
            f"Appointment {appointment.id} booked: patient {patient.id}, doctor {doctor_id}, "
            f"{slot_date} {start_time}-{end_time}"
        )

        return self._get_populated_appointment(appointment.id)

    def get_user_appointments(
        self,
        user: User,
        status: Optional[str] = None,
        page: Optional[int] = None,
        limit: Optional[int] = None
    ) -> Tuple[dict, str]:
        """Appointments visible to the caller, newest slot first.

        Patients see their own, doctors the ones booked with them, admins all.
        Returns the page together with a message for the response envelope.
        """
        query = self.db.query(Appointment).options(
            joinedload(Appointment.patient).joinedload(Patient.user),
            joinedload(Appointment.doctor).joinedload(Doctor.user)
        )

        if status:
            # Exact match; an unknown value matches nothing
            if status in [s.value for s in AppointmentStatus]:
                query = query.filter(Appointment.status == AppointmentStatus(status))
            else:
                query = query.filter(false())

        if user.role == UserRole.PATIENT:
            patient = get_patient_profile(self.db, user.id)
            if not patient:
                return empty_page(limit), "No patient profile found."
            query = query.filter(Appointment.patient_id == patient.id)
        elif user.role == UserRole.DOCTOR:
            doctor = get_doctor_profile(self.db, user.id)
            if not doctor:
                return empty_page(limit), "No doctor profile found."
            query = query.filter(Appointment.doctor_id == doctor.id)
        elif not is_admin(user.role):
            raise ForbiddenError("Unauthorized role to view appointments.")

        query = query.order_by(
            Appointment.slot_date.desc(),
            Appointment.start_time.desc(),
            Appointment.id.desc()
        )

        return paginate(query, page, limit), "Appointments fetched successfully."

    def update_appointment_status(self, appointment_id, new_status: Optional[str], user: User) -> Appointment:
        """Doctor/admin status transition: confirm, complete or cancel."""
        if not new_status or new_status.lower() not in UPDATABLE_STATUSES:
            raise BadRequestError(
                "Invalid or missing status. Must be confirmed, cancelled, or completed."
            )
        new_status = AppointmentStatus(new_status.lower())

        appointment = self._get_appointment(appointment_id)

        authorized = is_admin(user.role)
        if not authorized and user.role == UserRole.DOCTOR:
            authorized = is_owner_doctor(self.db, user, appointment.doctor_id)

        if not authorized:
            raise ForbiddenError("Unauthorized to change the status of this appointment.")

        required = REQUIRED_PRIOR_STATUS.get(new_status)
        if required and appointment.status != required[0]:
            raise BadRequestError(required[1])

        self._set_status(appointment, new_status)

        logger.info(f"Appointment {appointment.id} moved to {new_status.value} by user {user.id}")

        return self._get_populated_appointment(appointment.id)

    def cancel_appointment(self, appointment_id, user: User) -> Appointment:
        """Cancel on behalf of the owning patient, owning doctor or an admin."""
        appointment = self._get_appointment(appointment_id)

        authorized = (
            is_admin(user.role)
            or is_owner_patient(self.db, user, appointment.patient_id)
            or is_owner_doctor(self.db, user, appointment.doctor_id)
        )

        if not authorized:
            raise ForbiddenError("Unauthorized to cancel this appointment.")

        if appointment.status in TERMINAL_STATUSES:
            raise BadRequestError(
                f"Cannot cancel an appointment that is already {AppointmentStatus(appointment.status).value}."
            )

        self._set_status(appointment, AppointmentStatus.CANCELLED)

        logger.info(f"Appointment {appointment.id} cancelled by user {user.id}")

        return self.db.query(Appointment).filter(Appointment.id == appointment.id).one()

    def _set_status(self, appointment: Appointment, new_status: AppointmentStatus):
        """Conditional update: only applies if the status is still the one we checked."""
        try:
            updated = self.db.query(Appointment).filter(
                Appointment.id == appointment.id,
                Appointment.status == appointment.status
            ).update({Appointment.status: new_status}, synchronize_session=False)

            if updated == 0:
                raise ConflictError(
                    "Appointment was modified by another request. Please reload and try again."
                )

            self.db.commit()
        except ApiError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to set appointment {appointment.id} to {new_status.value}: {str(e)}")
            raise InternalServerError("Failed to update the appointment.")

    def _get_appointment(self, appointment_id) -> Appointment:
        appointment_id = parse_id(appointment_id, "appointment")

        appointment = self.db.query(Appointment).filter(Appointment.id == appointment_id).first()
        if not appointment:
            raise NotFoundError("Appointment not found.")
        return appointment

    def _get_populated_appointment(self, appointment_id: int) -> Appointment:
        return self.db.query(Appointment).options(
            joinedload(Appointment.patient).joinedload(Patient.user),
            joinedload(Appointment.doctor).joinedload(Doctor.user)
        ).filter(Appointment.id == appointment_id).populate_existing().one()
