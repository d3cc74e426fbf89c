# queueflow/models/clinic.py
from sqlalchemy import (
    Boolean, Column, Date, DateTime, Float, ForeignKey, Index, Integer, JSON, String, Text,
    UniqueConstraint, or_,
)
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from queueflow.database import Base


def _utcnow():
    return datetime.now(timezone.utc)


# Statuses that keep a patient in front of a clinician
ACTIVE_QUEUE_STATUSES = ("waiting", "in-progress")
QUEUE_STATUSES = ("waiting", "in-progress", "completed", "cancelled", "no-show")
COUNTED_APPOINTMENT_STATUSES = ("scheduled", "confirmed", "in-progress")


class Clinician(Base):
    __tablename__ = "clinicians"
    id = Column(String(64), primary_key=True)
    first_name = Column(String(50), nullable=False)
    last_name = Column(String(50), nullable=False)
    role = Column(String(20), nullable=False, default="doctor")
    department = Column(String(64), nullable=True, index=True)
    specializations = Column(JSON, nullable=False, default=list)
    is_active = Column(Boolean, nullable=False, default=True)

    queue_entries = relationship("QueueEntry", back_populates="doctor")
    appointments = relationship("Appointment", back_populates="doctor")


class Appointment(Base):
    __tablename__ = "appointments"
    id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(String(64), nullable=False)
    doctor_id = Column(String(64), ForeignKey("clinicians.id", ondelete="CASCADE"), index=True)
    appointment_date = Column(Date, nullable=False, index=True)
    status = Column(String(20), nullable=False, default="scheduled")
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    doctor = relationship("Clinician", back_populates="appointments")


class QueueEntry(Base):
    __tablename__ = "queue_entries"
    __table_args__ = (UniqueConstraint("service_day", "queue_number", name="uq_queue_day_number"),)

    id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(String(64), nullable=False, index=True)
    service_day = Column(Date, nullable=False, index=True)
    # None when the patient was queued without a reservable number
    queue_number = Column(Integer, nullable=True)
    doctor_id = Column(String(64), ForeignKey("clinicians.id"), nullable=True, index=True)
    status = Column(String(20), nullable=False, default="waiting")
    priority = Column(String(20), nullable=False, default="medium")
    priority_rank = Column(Integer, nullable=False, default=2)
    symptoms = Column(Text, nullable=False, default="")
    estimated_wait_minutes = Column(Integer, nullable=True)
    notes = Column(String(500), nullable=True)
    checked_in_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    called_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    doctor = relationship("Clinician", back_populates="queue_entries")


# At most one waiting or in-progress entry per patient
_ACTIVE_ENTRY = or_(*(QueueEntry.status == s for s in ACTIVE_QUEUE_STATUSES))
Index(
    "uq_queue_active_patient",
    QueueEntry.patient_id,
    unique=True,
    postgresql_where=_ACTIVE_ENTRY,
    sqlite_where=_ACTIVE_ENTRY,
)


class QueueDaySequence(Base):
    __tablename__ = "queue_day_sequence"
    service_day = Column(Date, primary_key=True)
    last_value = Column(Integer, nullable=False, default=0)


class AssignmentAudit(Base):
    __tablename__ = "assignment_audit"
    id = Column(Integer, primary_key=True, index=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    service_day = Column(Date, nullable=False, index=True)
    action = Column(String(32), nullable=False)  # "doctor_assigned" or "assignment_failed"
    patient_id = Column(String(64), nullable=False)
    doctor_id = Column(String(64), nullable=True)
    department = Column(String(64), nullable=True)
    urgency = Column(String(20), nullable=True)
    queue_number = Column(Integer, nullable=True)
    estimated_wait_minutes = Column(Integer, nullable=True)
    final_score = Column(Float, nullable=True)
    symptoms = Column(Text, nullable=True)
    error = Column(Text, nullable=True)
    meta = Column(JSON, nullable=True)
