from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Boolean, JSON
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import enum

from ..core.database import Base

class VerificationStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

class Doctor(Base):
    __tablename__ = "doctors"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)

    # Professional information
    specialization = Column(String(100), nullable=False, index=True)
    experience = Column(Integer, default=0)
    registration_number = Column(String(50), nullable=False, unique=True)
    proof_document = Column(String(500), nullable=True)

    # Verification (admin controlled)
    is_verified = Column(Boolean, default=False)
    verification_status = Column(String(20), default=VerificationStatus.PENDING.value, nullable=False)

    # Ordered weekly schedule: [{"day": "Monday", "slots": [{"start": "09:00", "end": "12:00"}]}]
    availability = Column(JSON, default=list, nullable=False)

    # Timestamps
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    # Relationships
    user = relationship("User", back_populates="doctor")
    appointments = relationship("Appointment", back_populates="doctor")
    queue_entries = relationship("QueueEntry", back_populates="doctor")

    def __repr__(self):
        return f"<Doctor(id={self.id}, user_id={self.user_id}, specialization='{self.specialization}')>"
