import asyncio
import logging
from datetime import date
from typing import Optional

from queueflow.exceptions import WorkloadQueryFailed
from queueflow.models.assignment_models import WorkloadSnapshot

logger = logging.getLogger(__name__)

# ------------------------------- Scoring constants -------------------------------
QUEUE_WEIGHT = 2
MINUTES_PER_PATIENT = 15
# A clinician whose load cannot be read must never be preferred
WORKLOAD_SENTINEL = 999
WAIT_SENTINEL_MINUTES = 999

FAILED_SNAPSHOT = WorkloadSnapshot(query_failed=True)


class WorkloadScorer:
    """Reads per-clinician load from the clinic repository at call time.

    Nothing is cached between calls; every snapshot reflects the counts at
    the instant it was read.
    """

    def __init__(self, repository):
        self.repository = repository

    def snapshot(self, doctor_id: str, day: date) -> WorkloadSnapshot:
        try:
            return self._read_counts(doctor_id, day)
        except Exception as e:
            return self._recover(WorkloadQueryFailed(doctor_id, str(e)))

    async def snapshot_async(
        self, doctor_id: str, day: date, timeout: Optional[float] = None
    ) -> WorkloadSnapshot:
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self._read_counts, doctor_id, day), timeout
            )
        except asyncio.TimeoutError:
            return self._recover(WorkloadQueryFailed(doctor_id, f"timed out after {timeout}s"))
        except Exception as e:
            return self._recover(WorkloadQueryFailed(doctor_id, str(e)))

    def _read_counts(self, doctor_id: str, day: date) -> WorkloadSnapshot:
        queue_count = self.repository.count_active_queue_entries(doctor_id)
        appointment_count = self.repository.count_same_day_appointments(doctor_id, day)
        return WorkloadSnapshot(
            active_queue_count=queue_count,
            same_day_appointment_count=appointment_count,
        )

    @staticmethod
    def _recover(error: WorkloadQueryFailed) -> WorkloadSnapshot:
        logger.warning(f"⚠️ {error} - using sentinel workload {WORKLOAD_SENTINEL}")
        return FAILED_SNAPSHOT

    @staticmethod
    def score_value(snapshot: WorkloadSnapshot) -> int:
        # queued patients are waiting now, so they weigh twice an appointment
        if snapshot.query_failed:
            return WORKLOAD_SENTINEL
        return QUEUE_WEIGHT * snapshot.active_queue_count + snapshot.same_day_appointment_count

    @staticmethod
    def estimate_wait_minutes(active_queue_count: int) -> int:
        return MINUTES_PER_PATIENT * active_queue_count

    @classmethod
    def wait_minutes(cls, snapshot: WorkloadSnapshot) -> int:
        if snapshot.query_failed:
            return WAIT_SENTINEL_MINUTES
        return cls.estimate_wait_minutes(snapshot.active_queue_count)
