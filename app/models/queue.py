from sqlalchemy import Column, Integer, ForeignKey, DateTime, Index, Enum as SQLEnum, text
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import enum

from ..core.database import Base

class QueueStatus(str, enum.Enum):
    WAITING = "waiting"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"

# Statuses that keep a place in a doctor's queue
ACTIVE_QUEUE_STATUSES = (QueueStatus.WAITING, QueueStatus.IN_PROGRESS)

class QueueEntry(Base):
    __tablename__ = "queue_entries"

    id = Column(Integer, primary_key=True, index=True)

    doctor_id = Column(Integer, ForeignKey("doctors.id"), nullable=False, index=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False, index=True)

    position = Column(Integer, nullable=False)
    # Computed once at join time
    estimated_time = Column(DateTime, nullable=True)
    status = Column(
        SQLEnum(QueueStatus, values_callable=lambda statuses: [s.value for s in statuses]),
        default=QueueStatus.WAITING,
        nullable=False,
    )

    # Timestamps
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    # Relationships
    doctor = relationship("Doctor", back_populates="queue_entries")
    patient = relationship("Patient", back_populates="queue_entries")

    __table_args__ = (
        # A patient holds at most one live place per doctor queue
        Index(
            "uq_queue_entries_active_patient",
            "doctor_id", "patient_id",
            unique=True,
            sqlite_where=text("status IN ('waiting', 'in-progress')"),
            postgresql_where=text("status IN ('waiting', 'in-progress')"),
        ),
    )

    def __repr__(self):
        return f"<QueueEntry(id={self.id}, doctor_id={self.doctor_id}, patient_id={self.patient_id}, position={self.position}, status='{self.status}')>"
