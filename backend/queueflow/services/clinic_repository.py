import logging
from datetime import date, datetime, timezone
from typing import Dict, Iterable, List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from queueflow.exceptions import PatientAlreadyQueued, QueueEntryNotFound
from queueflow.models.assignment_models import ClinicianCandidate, UrgencyTier
from queueflow.models.clinic import (
    ACTIVE_QUEUE_STATUSES, COUNTED_APPOINTMENT_STATUSES, QUEUE_STATUSES,
    Appointment, AssignmentAudit, Clinician, QueueEntry,
)
from queueflow.services.doctor_selector import FALLBACK_DEPARTMENT

logger = logging.getLogger(__name__)

# Allowed queue status transitions
_TRANSITIONS = {
    "waiting": {"in-progress", "cancelled", "no-show"},
    "in-progress": {"completed", "cancelled"},
}


def _utcnow():
    return datetime.now(timezone.utc)


def to_candidate(doctor: Clinician) -> ClinicianCandidate:
    return ClinicianCandidate(
        id=doctor.id,
        department=doctor.department,
        specializations=tuple(doctor.specializations or ()),
        is_active=bool(doctor.is_active),
        name=f"Dr. {doctor.first_name} {doctor.last_name}",
    )


class SqlClinicRepository:
    """Clinic state the assignment engine reads and the check-in flow writes.

    Each call opens its own session from the factory, so one repository can
    serve many worker threads at once.
    """

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    # ---------------------------- directory ----------------------------
    def directory_lookup(self, specialties: Iterable[str]) -> List[ClinicianCandidate]:
        wanted = set(specialties)
        with self.session_factory() as db:
            doctors = db.execute(
                select(Clinician)
                .where(Clinician.role == "doctor", Clinician.is_active.is_(True))
                .order_by(Clinician.id)
            ).scalars().all()
            # specializations live in a JSON column, so the overlap test runs here
            return [
                to_candidate(d) for d in doctors
                if d.department in wanted
                or d.department == FALLBACK_DEPARTMENT
                or wanted.intersection(d.specializations or ())
            ]

    # ---------------------------- workload ----------------------------
    def count_active_queue_entries(self, doctor_id: str) -> int:
        with self.session_factory() as db:
            return db.execute(
                select(func.count(QueueEntry.id)).where(
                    QueueEntry.doctor_id == doctor_id,
                    QueueEntry.status.in_(ACTIVE_QUEUE_STATUSES),
                )
            ).scalar_one()

    def count_same_day_appointments(self, doctor_id: str, day: date) -> int:
        with self.session_factory() as db:
            return db.execute(
                select(func.count(Appointment.id)).where(
                    Appointment.doctor_id == doctor_id,
                    Appointment.appointment_date == day,
                    Appointment.status.in_(COUNTED_APPOINTMENT_STATUSES),
                )
            ).scalar_one()

    # ---------------------------- queue entries ----------------------------
    def find_active_entry_id(self, patient_id: str) -> Optional[int]:
        with self.session_factory() as db:
            return db.execute(
                select(QueueEntry.id).where(
                    QueueEntry.patient_id == patient_id,
                    QueueEntry.status.in_(ACTIVE_QUEUE_STATUSES),
                )
            ).scalars().first()

    def persist_queue_entry(
        self,
        patient_id: str,
        doctor_id: Optional[str],
        sequence_number: Optional[int],
        urgency: UrgencyTier,
        symptom_text: str,
        service_day: date,
        estimated_wait_minutes: Optional[int] = None,
    ) -> int:
        entry = QueueEntry(
            patient_id=patient_id,
            doctor_id=doctor_id,
            queue_number=sequence_number,
            service_day=service_day,
            priority=urgency.value,
            priority_rank=urgency.rank,
            symptoms=symptom_text or "",
            estimated_wait_minutes=estimated_wait_minutes,
        )
        with self.session_factory() as db:
            db.add(entry)
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                existing_id = self.find_active_entry_id(patient_id)
                if existing_id is None:
                    raise
                raise PatientAlreadyQueued(patient_id, existing_id)
            db.refresh(entry)
            logger.info(f"✅ Queue entry {entry.id} saved (number {sequence_number}, doctor {doctor_id})")
            return entry.id

    def current_queue(self, doctor_id: Optional[str] = None) -> List[dict]:
        query = select(QueueEntry).where(QueueEntry.status.in_(ACTIVE_QUEUE_STATUSES))
        if doctor_id:
            query = query.where(QueueEntry.doctor_id == doctor_id)
        query = query.order_by(QueueEntry.priority_rank.desc(), QueueEntry.checked_in_at.asc(), QueueEntry.id.asc())
        with self.session_factory() as db:
            return [_entry_to_dict(e) for e in db.execute(query).scalars().all()]

    def update_status(self, entry_id: int, status: str, notes: Optional[str] = None) -> dict:
        if status not in QUEUE_STATUSES:
            raise ValueError(f"Unknown queue status: {status}")
        with self.session_factory() as db:
            entry = db.get(QueueEntry, entry_id)
            if entry is None:
                raise QueueEntryNotFound(f"Queue entry {entry_id} not found")
            if status not in _TRANSITIONS.get(entry.status, set()):
                raise ValueError(f"Cannot move queue entry from '{entry.status}' to '{status}'")
            entry.status = status
            if status == "in-progress":
                entry.called_at = _utcnow()
            elif status == "completed":
                entry.completed_at = _utcnow()
            elif notes is None and status == "cancelled":
                notes = "Cancelled by user"
            if notes is not None:
                entry.notes = notes
            db.commit()
            db.refresh(entry)
            return _entry_to_dict(entry)

    # ---------------------------- audit ----------------------------
    def save_audit(self, **fields) -> int:
        audit = AssignmentAudit(**fields)
        with self.session_factory() as db:
            db.add(audit)
            db.commit()
            db.refresh(audit)
            return audit.id

    def assignment_stats(self, day: date) -> Dict:
        with self.session_factory() as db:
            base = select(func.count(AssignmentAudit.id)).where(AssignmentAudit.service_day == day)
            total = db.execute(base.where(AssignmentAudit.action == "doctor_assigned")).scalar_one()
            emergency = db.execute(
                base.where(
                    AssignmentAudit.action == "doctor_assigned",
                    AssignmentAudit.urgency == UrgencyTier.EMERGENCY.value,
                )
            ).scalar_one()
            failed = db.execute(base.where(AssignmentAudit.action == "assignment_failed")).scalar_one()
            avg_wait = db.execute(
                select(func.avg(AssignmentAudit.estimated_wait_minutes)).where(
                    AssignmentAudit.service_day == day,
                    AssignmentAudit.action == "doctor_assigned",
                )
            ).scalar_one()
            distribution = db.execute(
                select(AssignmentAudit.department, func.count(AssignmentAudit.id))
                .where(AssignmentAudit.service_day == day, AssignmentAudit.action == "doctor_assigned")
                .group_by(AssignmentAudit.department)
            ).all()
        return {
            "service_day": day.isoformat(),
            "total_assignments": total,
            "emergency_assignments": emergency,
            "failed_assignments": failed,
            "average_wait_time": float(avg_wait or 0),
            "specialty_distribution": {dept or "unknown": count for dept, count in distribution},
        }


def _entry_to_dict(entry: QueueEntry) -> dict:
    return {
        "id": entry.id,
        "patient_id": entry.patient_id,
        "service_day": entry.service_day.isoformat(),
        "queue_number": entry.queue_number,
        "doctor_id": entry.doctor_id,
        "status": entry.status,
        "priority": entry.priority,
        "symptoms": entry.symptoms,
        "estimated_wait_minutes": entry.estimated_wait_minutes,
        "notes": entry.notes,
        "checked_in_at": entry.checked_in_at.isoformat() if entry.checked_in_at else None,
        "called_at": entry.called_at.isoformat() if entry.called_at else None,
        "completed_at": entry.completed_at.isoformat() if entry.completed_at else None,
    }
