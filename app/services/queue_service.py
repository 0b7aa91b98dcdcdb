from datetime import datetime, timedelta
from typing import List, Optional
import logging

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from ..core.config import settings
from ..core.exceptions import (
    ApiError, BadRequestError, ConflictError, ForbiddenError,
    InternalServerError, NotFoundError, parse_id
)
from ..core.security import UserRole
from ..models.doctor import Doctor
from ..models.patient import Patient
from ..models.queue import QueueEntry, QueueStatus, ACTIVE_QUEUE_STATUSES
from ..models.user import User
from .access_policy import get_patient_profile, is_admin, is_owner_doctor

logger = logging.getLogger(__name__)

UPDATABLE_STATUSES = (QueueStatus.IN_PROGRESS.value, QueueStatus.COMPLETED.value)

def calculate_estimated_time(position: int, now: Optional[datetime] = None) -> datetime:
    """Estimated consultation start for a patient joining at ``position``."""
    now = now or datetime.utcnow()
    return now + timedelta(minutes=(position - 1) * settings.QUEUE_MINUTES_PER_PATIENT)

class QueueService:
    def __init__(self, db: Session):
        self.db = db

    def join_queue(self, doctor_id, user: User) -> QueueEntry:
        """Append the calling patient to a doctor's live queue."""
        if doctor_id is None or doctor_id == "":
            raise BadRequestError("Doctor ID is required to join the queue.")
        doctor_id = parse_id(doctor_id, "doctor")

        patient = get_patient_profile(self.db, user.id)
        if not patient:
            raise NotFoundError("Patient profile not found. Please complete your profile.")

        try:
            # Lock the doctor row so position assignment is serialized per queue
            doctor = self.db.query(Doctor).filter(
                Doctor.id == doctor_id
            ).with_for_update().first()

            if not doctor:
                raise NotFoundError("Doctor not found.")

            existing_entry = self._active_entry_query().filter(
                QueueEntry.doctor_id == doctor_id,
                QueueEntry.patient_id == patient.id
            ).first()

            if existing_entry:
                raise ConflictError(
                    f"You are already in this doctor's queue at position {existing_entry.position}."
                )

            last_position = self.db.query(func.max(QueueEntry.position)).filter(
                QueueEntry.doctor_id == doctor_id,
                QueueEntry.status.in_(ACTIVE_QUEUE_STATUSES)
            ).scalar()

            next_position = (last_position or 0) + 1

            queue_entry = QueueEntry(
                doctor_id=doctor_id,
                patient_id=patient.id,
                position=next_position,
                estimated_time=calculate_estimated_time(next_position),
                status=QueueStatus.WAITING
            )

            self.db.add(queue_entry)
            self.db.commit()
        except ApiError:
            self.db.rollback()
            raise
        except IntegrityError:
            # Concurrent join for the same patient won the unique index
            self.db.rollback()
            raise ConflictError("You are already in this doctor's queue.")
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to add patient {patient.id} to doctor {doctor_id} queue: {str(e)}")
            raise InternalServerError("Failed to join the queue.")

        logger.info(
            f"Patient {patient.id} joined doctor {doctor_id} queue at position {next_position}"
        )

        return self._get_populated_entry(queue_entry.id)

    def update_queue_status(self, entry_id, new_status: Optional[str], user: User) -> QueueEntry:
        """Move an entry to in-progress or completed, compacting on completion."""
        if not new_status or new_status.lower() not in UPDATABLE_STATUSES:
            raise BadRequestError(
                "Invalid or missing status. Must be 'in-progress' or 'completed'."
            )
        new_status = QueueStatus(new_status.lower())
        entry_id = parse_id(entry_id, "queue entry")

        queue_entry = self.db.query(QueueEntry).filter(QueueEntry.id == entry_id).first()
        if not queue_entry:
            raise NotFoundError("Queue entry not found.")

        authorized = is_admin(user.role)
        if not authorized and user.role == UserRole.DOCTOR:
            authorized = is_owner_doctor(self.db, user, queue_entry.doctor_id)

        if not authorized:
            raise ForbiddenError("Unauthorized to update this queue status.")

        if new_status == QueueStatus.IN_PROGRESS and queue_entry.status != QueueStatus.WAITING:
            raise BadRequestError("Cannot start consultation on a patient who is not 'waiting'.")

        try:
            if new_status == QueueStatus.COMPLETED:
                self._complete_entry(queue_entry)
            else:
                queue_entry.status = new_status
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to update queue entry {entry_id} to {new_status.value}: {str(e)}")
            raise InternalServerError("Failed to update the queue status.")

        logger.info(f"Queue entry {entry_id} moved to {new_status.value} by user {user.id}")

        return self._get_populated_entry(entry_id)

    def get_doctor_queue(self, doctor_id) -> List[QueueEntry]:
        """Live queue of a doctor, in position order."""
        doctor_id = parse_id(doctor_id, "doctor")

        return self.db.query(QueueEntry).options(
            joinedload(QueueEntry.patient).joinedload(Patient.user)
        ).filter(
            QueueEntry.doctor_id == doctor_id,
            QueueEntry.status.in_(ACTIVE_QUEUE_STATUSES)
        ).order_by(QueueEntry.position.asc(), QueueEntry.id.asc()).all()

    def get_my_queue_status(self, user: User) -> Optional[QueueEntry]:
        """The caller's live queue entry, or None when not queued anywhere."""
        patient = get_patient_profile(self.db, user.id)
        if not patient:
            raise NotFoundError("Patient profile not found.")

        return self._active_entry_query().options(
            joinedload(QueueEntry.doctor).joinedload(Doctor.user)
        ).filter(
            QueueEntry.patient_id == patient.id
        ).order_by(QueueEntry.created_at.asc(), QueueEntry.id.asc()).first()

    def _complete_entry(self, queue_entry: QueueEntry):
        """Mark an entry completed and close the gap it leaves behind."""
        self.db.query(Doctor).filter(
            Doctor.id == queue_entry.doctor_id
        ).with_for_update().first()

        # Re-read under the lock; another request may have compacted meanwhile
        queue_entry = self.db.query(QueueEntry).filter(
            QueueEntry.id == queue_entry.id
        ).populate_existing().one()

        if queue_entry.status == QueueStatus.COMPLETED:
            return

        completed_position = queue_entry.position
        queue_entry.status = QueueStatus.COMPLETED

        shifted = self.db.query(QueueEntry).filter(
            QueueEntry.doctor_id == queue_entry.doctor_id,
            QueueEntry.id != queue_entry.id,
            QueueEntry.status.in_(ACTIVE_QUEUE_STATUSES),
            QueueEntry.position > completed_position
        ).update(
            {QueueEntry.position: QueueEntry.position - 1},
            synchronize_session=False
        )

        logger.debug(
            f"Compacted doctor {queue_entry.doctor_id} queue after position "
            f"{completed_position}: {shifted} entries moved up"
        )

    def _active_entry_query(self):
        return self.db.query(QueueEntry).filter(
            QueueEntry.status.in_(ACTIVE_QUEUE_STATUSES)
        )

    def _get_populated_entry(self, entry_id: int) -> QueueEntry:
        return self.db.query(QueueEntry).options(
            joinedload(QueueEntry.patient).joinedload(Patient.user),
            joinedload(QueueEntry.doctor).joinedload(Doctor.user)
        ).filter(QueueEntry.id == entry_id).populate_existing().one()
