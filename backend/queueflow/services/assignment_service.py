import os
import json
import asyncio
import logging
from datetime import date, datetime, timezone
from typing import Callable, List, Optional
from zoneinfo import ZoneInfo

from queueflow.exceptions import (
    AssignmentFailed, DirectoryLookupFailed, NoAvailableClinician, SequenceReservationFailed,
)
from queueflow.models.assignment_models import AssignmentRecord, ClinicianCandidate, ScoredCandidate
from queueflow.services.doctor_selector import DoctorSelector
from queueflow.services.queue_sequencer import QueueSequencer
from queueflow.services.symptom_classifier import classify
from queueflow.services.workload_scorer import WorkloadScorer

# ------------------------------- Logging -------------------------------
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# ------------------------------- Config -------------------------------
DEFAULT_TIMEOUT = float(os.getenv("QUEUEFLOW_COLLABORATOR_TIMEOUT", "5"))
CLINIC_TZ = ZoneInfo(os.getenv("QUEUEFLOW_CLINIC_TZ", "UTC"))


def clinic_now() -> datetime:
    return datetime.now(CLINIC_TZ)


def service_day(now: Optional[datetime] = None) -> date:
    """Calendar day in the clinic's timezone; queue numbers restart when it changes."""
    return (now or clinic_now()).astimezone(CLINIC_TZ).date()


def _reason(best: ScoredCandidate) -> str:
    doctor = best.candidate
    return (
        f"{doctor.name or doctor.id}: best match based on specialization ({doctor.department}), "
        f"current workload ({best.workload_score}), "
        f"and estimated wait time ({best.estimated_wait_minutes} minutes)"
    )


class AssignmentOrchestrator:
    """Classify, look up, score, reserve: the single entry point of the engine."""

    def __init__(
        self,
        repository,
        sequencer: QueueSequencer,
        timeout: Optional[float] = DEFAULT_TIMEOUT,
        clock: Callable[[], datetime] = clinic_now,
    ):
        self.repository = repository
        self.sequencer = sequencer
        self.selector = DoctorSelector(WorkloadScorer(repository))
        self.timeout = timeout
        self.clock = clock

    async def _lookup(self, specialties, timeout) -> List[ClinicianCandidate]:
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self.repository.directory_lookup, specialties), timeout
            )
        except asyncio.TimeoutError:
            raise DirectoryLookupFailed(f"Directory lookup timed out after {timeout}s")
        except Exception as e:
            raise DirectoryLookupFailed(f"Directory lookup failed: {e}") from e

    async def assign_doctor(
        self, patient_id: str, symptom_text: str, timeout: Optional[float] = None
    ) -> AssignmentRecord:
        timeout = self.timeout if timeout is None else timeout
        now = self.clock()
        day = service_day(now)

        analysis = classify(symptom_text)
        try:
            candidates = await self._lookup(analysis.specialties, timeout)
            ranked = await self.selector.rank_async(
                candidates, analysis.specialties, analysis.urgency, day, timeout
            )
            best = ranked[0]
            # nothing is reserved until a clinician is chosen
            slot = await self.sequencer.reserve_async(day, timeout)
        except (NoAvailableClinician, DirectoryLookupFailed, SequenceReservationFailed) as e:
            self._log_failure(patient_id, symptom_text, analysis, e)
            raise AssignmentFailed(e, patient_id=patient_id) from e

        record = AssignmentRecord(
            timestamp=datetime.now(timezone.utc),
            patient_id=patient_id,
            chosen_doctor_id=best.candidate.id,
            chosen_department=best.candidate.department,
            analysis=analysis,
            workload=best.workload_score,
            estimated_wait_minutes=best.estimated_wait_minutes,
            specialty_score=best.specialty_score,
            final_score=best.final_score,
            queue_slot=slot,
            reason=_reason(best),
        )

        logger.info("=== Doctor Assignment ===")
        logger.info(f"patient_id: {patient_id}")
        logger.info(f"analysis: {analysis.model_dump_json()}")
        logger.info(f"candidates scored: {[(s.candidate.id, round(s.final_score, 2)) for s in ranked]}")
        logger.info(f"chosen_doctor: {best.candidate.id} {best.candidate.name or ''} ({best.candidate.department})")
        logger.info(f"queue_number: {slot.day_sequence_number} for {slot.service_day}")
        logger.info("=========================")
        return record

    @staticmethod
    def _log_failure(patient_id, symptom_text, analysis, error) -> None:
        logger.error("❌ Assignment Error Log: " + json.dumps({
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "patient_id": patient_id,
            "action": "assignment_failed",
            "reason": error.reason,
            "error": str(error),
            "urgency": analysis.urgency.value,
            "symptoms": symptom_text,
        }))
