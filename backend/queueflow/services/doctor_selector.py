import asyncio
import logging
from datetime import date
from typing import Iterable, List, Optional, Sequence

from queueflow.exceptions import NoAvailableClinician
from queueflow.models.assignment_models import (
    ClinicianCandidate, ScoredCandidate, UrgencyTier, WorkloadSnapshot,
)
from queueflow.services.workload_scorer import MINUTES_PER_PATIENT, WorkloadScorer

logger = logging.getLogger(__name__)

FALLBACK_DEPARTMENT = "internal-medicine"
PRIMARY_MATCH_POINTS = 10
SECONDARY_MATCH_POINTS = 5

# Lower multiplier shrinks the load term, so urgent cases go to whoever fits now
URGENCY_MULTIPLIER = {
    UrgencyTier.EMERGENCY: 0.1,
    UrgencyTier.HIGH: 0.5,
    UrgencyTier.MEDIUM: 1.0,
    UrgencyTier.LOW: 1.5,
}


def build_pool(
    candidates: Iterable[ClinicianCandidate], specialties: Iterable[str]
) -> List[ClinicianCandidate]:
    """Active clinicians matching a required specialty, plus internal-medicine fallbacks."""
    wanted = set(specialties)
    pool = []
    for candidate in candidates:
        if not candidate.is_active:
            continue
        tags = set(candidate.specializations)
        if candidate.department:
            tags.add(candidate.department)
        if tags & wanted or candidate.department == FALLBACK_DEPARTMENT:
            pool.append(candidate)
    return pool


def specialty_score(candidate: ClinicianCandidate, specialties: Iterable[str]) -> int:
    wanted = set(specialties)
    score = 0
    if candidate.department and candidate.department in wanted:
        score += PRIMARY_MATCH_POINTS
    score += SECONDARY_MATCH_POINTS * sum(1 for spec in candidate.specializations if spec in wanted)
    return score


class DoctorSelector:
    """Ranks active clinicians for one request. Lower final score wins."""

    def __init__(self, scorer: WorkloadScorer):
        self.scorer = scorer

    def score_candidate(
        self,
        candidate: ClinicianCandidate,
        snapshot: WorkloadSnapshot,
        specialties: Sequence[str],
        urgency: UrgencyTier,
    ) -> ScoredCandidate:
        workload = self.scorer.score_value(snapshot)
        wait_minutes = self.scorer.wait_minutes(snapshot)
        match_score = specialty_score(candidate, specialties)
        final_score = (
            (workload + wait_minutes / MINUTES_PER_PATIENT) * URGENCY_MULTIPLIER[urgency]
            - match_score
        )
        return ScoredCandidate(
            candidate=candidate,
            workload_score=workload,
            estimated_wait_minutes=wait_minutes,
            specialty_score=match_score,
            final_score=final_score,
        )

    @staticmethod
    def order(scored: Iterable[ScoredCandidate]) -> List[ScoredCandidate]:
        # directory iteration order is not stable, so ties fall back to id
        return sorted(scored, key=lambda s: (s.final_score, s.candidate.id))

    def _pool_or_fail(self, candidates, specialties) -> List[ClinicianCandidate]:
        pool = build_pool(candidates or (), specialties)
        if not pool:
            raise NoAvailableClinician(specialties)
        return pool

    def rank(
        self,
        candidates: Iterable[ClinicianCandidate],
        specialties: Sequence[str],
        urgency: UrgencyTier,
        day: date,
    ) -> List[ScoredCandidate]:
        pool = self._pool_or_fail(candidates, specialties)
        return self.order(
            self.score_candidate(c, self.scorer.snapshot(c.id, day), specialties, urgency)
            for c in pool
        )

    def select_best(
        self,
        candidates: Iterable[ClinicianCandidate],
        specialties: Sequence[str],
        urgency: UrgencyTier,
        day: date,
    ) -> ScoredCandidate:
        return self.rank(candidates, specialties, urgency, day)[0]

    async def rank_async(
        self,
        candidates: Iterable[ClinicianCandidate],
        specialties: Sequence[str],
        urgency: UrgencyTier,
        day: date,
        timeout: Optional[float] = None,
    ) -> List[ScoredCandidate]:
        """Same ranking as rank(), reading every clinician's workload concurrently."""
        pool = self._pool_or_fail(candidates, specialties)
        snapshots = await asyncio.gather(
            *(self.scorer.snapshot_async(c.id, day, timeout) for c in pool)
        )
        return self.order(
            self.score_candidate(c, snap, specialties, urgency)
            for c, snap in zip(pool, snapshots)
        )

    async def select_best_async(self, candidates, specialties, urgency, day, timeout=None):
        ranked = await self.rank_async(candidates, specialties, urgency, day, timeout)
        return ranked[0]
