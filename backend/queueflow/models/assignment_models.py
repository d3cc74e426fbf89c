# queueflow/models/assignment_models.py
from enum import Enum
from datetime import date, datetime, timezone
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class UrgencyTier(str, Enum):
    EMERGENCY = "emergency"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        """Higher rank is more urgent."""
        return _URGENCY_RANK[self]


_URGENCY_RANK = {
    UrgencyTier.EMERGENCY: 4,
    UrgencyTier.HIGH: 3,
    UrgencyTier.MEDIUM: 2,
    UrgencyTier.LOW: 1,
}


class Confidence(str, Enum):
    HIGH = "high"
    LOW = "low"


class SymptomAnalysis(BaseModel):
    model_config = ConfigDict(frozen=True)

    specialties: Tuple[str, ...]
    urgency: UrgencyTier
    matched_phrases: Tuple[str, ...] = ()
    confidence: Confidence


class ClinicianCandidate(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    department: Optional[str] = None
    specializations: Tuple[str, ...] = ()
    is_active: bool = True
    name: Optional[str] = None


class WorkloadSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    active_queue_count: int = Field(0, ge=0)
    same_day_appointment_count: int = Field(0, ge=0)
    query_failed: bool = False


class ScoredCandidate(BaseModel):
    model_config = ConfigDict(frozen=True)

    candidate: ClinicianCandidate
    workload_score: int
    estimated_wait_minutes: int
    specialty_score: int
    final_score: float


class QueueSlot(BaseModel):
    model_config = ConfigDict(frozen=True)

    day_sequence_number: int = Field(..., ge=1)
    service_day: date
    assigned_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class AssignmentRecord(BaseModel):
    """Audit output of one successful assignment. Owned by the caller once returned."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    patient_id: str
    chosen_doctor_id: str
    chosen_department: Optional[str] = None
    analysis: SymptomAnalysis
    workload: int
    estimated_wait_minutes: int
    specialty_score: int
    final_score: float
    queue_slot: QueueSlot
    reason: str


class AssignReqModel(BaseModel):
    patient_id: str
    symptoms: str = ""


class CheckInResult(BaseModel):
    queue_entry_id: int
    patient_id: str
    queue_number: Optional[int] = None
    assigned_doctor_id: Optional[str] = None
    urgency: UrgencyTier
    needs_manual_triage: bool = False
    failure_reason: Optional[str] = None
    assignment: Optional[AssignmentRecord] = None


class QueueStatusUpdate(BaseModel):
    status: str
    notes: Optional[str] = Field(None, max_length=500)
