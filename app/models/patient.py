from sqlalchemy import Column, Integer, String, ForeignKey, Date, DateTime, JSON
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from ..core.database import Base

class Patient(Base):
    __tablename__ = "patients"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)

    # Personal information
    date_of_birth = Column(Date, nullable=False)
    gender = Column(String(20), nullable=False)

    # Contact information
    address = Column(String(255), nullable=False)
    city = Column(String(100), nullable=False)
    zip_code = Column(String(20), nullable=False)

    # Medical information
    blood_group = Column(String(10), nullable=True)
    medical_history = Column(JSON, default=list, nullable=False)

    # Emergency contact
    emergency_contact_name = Column(String(150), nullable=True)
    emergency_contact_phone = Column(String(20), nullable=True)

    # Timestamps
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    # Relationships
    user = relationship("User", back_populates="patient")
    appointments = relationship("Appointment", back_populates="patient")
    queue_entries = relationship("QueueEntry", back_populates="patient")

    @property
    def emergency_contact(self):
        return {
            "name": self.emergency_contact_name or "",
            "phone": self.emergency_contact_phone or "",
        }

    def __repr__(self):
        return f"<Patient(id={self.id}, user_id={self.user_id})>"
