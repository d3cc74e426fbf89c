import asyncio
import logging
from typing import Optional

from queueflow.exceptions import AssignmentFailed, PatientAlreadyQueued, SequenceReservationFailed
from queueflow.models.assignment_models import CheckInResult
from queueflow.services.assignment_service import AssignmentOrchestrator, service_day
from queueflow.services.symptom_classifier import classify

logger = logging.getLogger(__name__)


async def check_in_patient(
    orchestrator: AssignmentOrchestrator,
    patient_id: str,
    symptom_text: str,
    timeout: Optional[float] = None,
) -> CheckInResult:
    """Queue a patient, with a clinician when the engine can pick one.

    A failed assignment never blocks check-in: the patient is still queued
    without a clinician and flagged for manual triage.
    """
    repository = orchestrator.repository

    existing_id = await asyncio.to_thread(repository.find_active_entry_id, patient_id)
    if existing_id is not None:
        raise PatientAlreadyQueued(patient_id, existing_id)

    try:
        record = await orchestrator.assign_doctor(patient_id, symptom_text, timeout)
    except AssignmentFailed as failure:
        return await _queue_unassigned(orchestrator, patient_id, symptom_text, failure, timeout)

    slot = record.queue_slot
    entry_id = await asyncio.to_thread(
        repository.persist_queue_entry,
        patient_id=patient_id,
        doctor_id=record.chosen_doctor_id,
        sequence_number=slot.day_sequence_number,
        urgency=record.analysis.urgency,
        symptom_text=symptom_text,
        service_day=slot.service_day,
        estimated_wait_minutes=record.estimated_wait_minutes,
    )
    await asyncio.to_thread(
        repository.save_audit,
        service_day=slot.service_day,
        action="doctor_assigned",
        patient_id=patient_id,
        doctor_id=record.chosen_doctor_id,
        department=record.chosen_department,
        urgency=record.analysis.urgency.value,
        queue_number=slot.day_sequence_number,
        estimated_wait_minutes=record.estimated_wait_minutes,
        final_score=record.final_score,
        symptoms=symptom_text,
        meta=record.model_dump(mode="json"),
    )
    logger.info(f"✅ Patient {patient_id} checked in as #{slot.day_sequence_number} with {record.chosen_doctor_id}")
    return CheckInResult(
        queue_entry_id=entry_id,
        patient_id=patient_id,
        queue_number=slot.day_sequence_number,
        assigned_doctor_id=record.chosen_doctor_id,
        urgency=record.analysis.urgency,
        assignment=record,
    )


async def _queue_unassigned(orchestrator, patient_id, symptom_text, failure, timeout) -> CheckInResult:
    repository = orchestrator.repository
    analysis = classify(symptom_text)
    day = service_day(orchestrator.clock())

    queue_number = None
    if not isinstance(failure.cause, SequenceReservationFailed):
        try:
            slot = await orchestrator.sequencer.reserve_async(day, timeout)
            queue_number = slot.day_sequence_number
        except SequenceReservationFailed as e:
            logger.error(f"❌ Could not number unassigned patient {patient_id}: {e}")

    entry_id = await asyncio.to_thread(
        repository.persist_queue_entry,
        patient_id=patient_id,
        doctor_id=None,
        sequence_number=queue_number,
        urgency=analysis.urgency,
        symptom_text=symptom_text,
        service_day=day,
    )
    await asyncio.to_thread(
        repository.save_audit,
        service_day=day,
        action="assignment_failed",
        patient_id=patient_id,
        urgency=analysis.urgency.value,
        queue_number=queue_number,
        symptoms=symptom_text,
        error=str(failure),
        meta={"reason": failure.reason},
    )
    logger.warning(f"⚠️ Patient {patient_id} queued without a clinician ({failure.reason}); manual triage needed")
    return CheckInResult(
        queue_entry_id=entry_id,
        patient_id=patient_id,
        queue_number=queue_number,
        urgency=analysis.urgency,
        needs_manual_triage=True,
        failure_reason=failure.reason,
    )
