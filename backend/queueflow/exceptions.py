# queueflow/exceptions.py
from typing import Optional


class QueueFlowError(Exception):
    """Base class for every error raised by the assignment engine."""

    reason = "queueflow_error"


class NoAvailableClinician(QueueFlowError):
    """The candidate pool was empty even after the internal-medicine fallback."""

    reason = "no_available_clinician"

    def __init__(self, specialties=None):
        self.specialties = tuple(specialties or ())
        wanted = ", ".join(self.specialties) or "any specialty"
        super().__init__(f"No available clinician for: {wanted}")


class WorkloadQueryFailed(QueueFlowError):
    """A workload count query errored. Recovered locally with a sentinel score."""

    reason = "workload_query_failed"

    def __init__(self, doctor_id: str, detail: str = ""):
        self.doctor_id = doctor_id
        super().__init__(f"Workload query failed for clinician {doctor_id}: {detail}")


class DirectoryLookupFailed(QueueFlowError):
    reason = "directory_lookup_failed"


class SequenceReservationFailed(QueueFlowError):
    """The day counter could not be advanced; no queue number was issued."""

    reason = "sequence_reservation_failed"


class AssignmentFailed(QueueFlowError):
    """Single tagged failure surfaced by the orchestrator to its caller."""

    def __init__(self, cause: QueueFlowError, patient_id: Optional[str] = None):
        self.cause = cause
        self.patient_id = patient_id
        self.reason = getattr(cause, "reason", "assignment_failed")
        super().__init__(f"Doctor assignment failed ({self.reason}): {cause}")


class PatientAlreadyQueued(QueueFlowError):
    reason = "patient_already_queued"

    def __init__(self, patient_id: str, entry_id: int):
        self.patient_id = patient_id
        self.entry_id = entry_id
        super().__init__(f"Patient {patient_id} is already in queue (entry {entry_id})")


class QueueEntryNotFound(QueueFlowError):
    reason = "queue_entry_not_found"
