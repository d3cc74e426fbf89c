# queueflow/endpoints/queue.py
import os
import threading
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from queueflow.database import SessionLocal
from queueflow.exceptions import AssignmentFailed, PatientAlreadyQueued, QueueEntryNotFound
from queueflow.models.assignment_models import AssignReqModel, QueueStatusUpdate
from queueflow.services.assignment_service import AssignmentOrchestrator, service_day
from queueflow.services.check_in_service import check_in_patient
from queueflow.services.clinic_repository import SqlClinicRepository
from queueflow.services.queue_sequencer import (
    InMemoryQueueSequencer, RedisQueueSequencer, SqlQueueSequencer,
)
from queueflow.services.redis_client import get_redis

SEQUENCER_BACKEND = os.getenv("QUEUEFLOW_SEQUENCER", "redis")

router = APIRouter(tags=["Queue"])

_orchestrator = None
_orchestrator_lock = threading.Lock()


def build_sequencer(backend: str = SEQUENCER_BACKEND):
    if backend == "redis":
        return RedisQueueSequencer(get_redis())
    if backend == "sql":
        return SqlQueueSequencer(SessionLocal)
    if backend == "memory":
        return InMemoryQueueSequencer()
    raise ValueError(f"Unknown QUEUEFLOW_SEQUENCER backend: {backend}")


def get_orchestrator() -> AssignmentOrchestrator:
    global _orchestrator
    # FastAPI resolves sync dependencies on worker threads
    if _orchestrator is None:
        with _orchestrator_lock:
            if _orchestrator is None:
                _orchestrator = AssignmentOrchestrator(SqlClinicRepository(SessionLocal), build_sequencer())
    return _orchestrator


@router.post("/assign")
async def assign(req: AssignReqModel, orchestrator: AssignmentOrchestrator = Depends(get_orchestrator)):
    try:
        record = await orchestrator.assign_doctor(req.patient_id, req.symptoms)
    except AssignmentFailed as e:
        return {"success": False, "reason": e.reason, "message": str(e.cause)}
    return {"success": True, "assignment": record.model_dump(mode="json")}


@router.post("/queue/check-in", status_code=201)
async def check_in(req: AssignReqModel, orchestrator: AssignmentOrchestrator = Depends(get_orchestrator)):
    try:
        result = await check_in_patient(orchestrator, req.patient_id, req.symptoms)
    except PatientAlreadyQueued as e:
        raise HTTPException(status_code=400, detail=str(e))
    return result.model_dump(mode="json")


@router.get("/queue")
def current_queue(doctor_id: Optional[str] = None, orchestrator: AssignmentOrchestrator = Depends(get_orchestrator)):
    entries = orchestrator.repository.current_queue(doctor_id)
    return {"count": len(entries), "data": entries}


@router.get("/queue/stats")
def queue_stats(orchestrator: AssignmentOrchestrator = Depends(get_orchestrator)):
    return orchestrator.repository.assignment_stats(service_day(orchestrator.clock()))


@router.patch("/queue/{entry_id}/status")
def update_queue_status(
    entry_id: int,
    update: QueueStatusUpdate,
    orchestrator: AssignmentOrchestrator = Depends(get_orchestrator),
):
    try:
        return orchestrator.repository.update_status(entry_id, update.status, update.notes)
    except QueueEntryNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
