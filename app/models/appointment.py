from sqlalchemy import Column, Integer, String, ForeignKey, Date, DateTime, Index, Enum as SQLEnum, text
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import enum

from ..core.database import Base

class AppointmentStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

# Statuses that hold a doctor's slot
ACTIVE_APPOINTMENT_STATUSES = (AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED)

class Appointment(Base):
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True, index=True)

    # Relationships
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False, index=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), nullable=False, index=True)

    # Slot
    slot_date = Column(Date, nullable=False, index=True)
    start_time = Column(String(5), nullable=False)
    end_time = Column(String(5), nullable=False)

    status = Column(
        SQLEnum(AppointmentStatus, values_callable=lambda statuses: [s.value for s in statuses]),
        default=AppointmentStatus.PENDING,
        nullable=False,
    )

    # Tracking
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    # Relationships
    patient = relationship("Patient", back_populates="appointments")
    doctor = relationship("Doctor", back_populates="appointments")

    __table_args__ = (
        # One live booking per doctor slot start
        Index(
            "uq_appointments_active_slot",
            "doctor_id", "slot_date", "start_time",
            unique=True,
            sqlite_where=text("status IN ('pending', 'confirmed')"),
            postgresql_where=text("status IN ('pending', 'confirmed')"),
        ),
    )

    @property
    def slot(self):
        return {
            "date": self.slot_date,
            "start_time": self.start_time,
            "end_time": self.end_time,
        }

    def __repr__(self):
        return f"<Appointment(id={self.id}, patient_id={self.patient_id}, doctor_id={self.doctor_id}, date='{self.slot_date}', start='{self.start_time}')>"
