# tests/test_doctor_selector.py
import asyncio

import pytest

from queueflow.exceptions import NoAvailableClinician
from queueflow.models.assignment_models import UrgencyTier, WorkloadSnapshot
from queueflow.services.doctor_selector import DoctorSelector, build_pool, specialty_score
from queueflow.services.workload_scorer import WorkloadScorer
from tests_support import TODAY, StubRepository, candidate


def selector_for(repo):
    return DoctorSelector(WorkloadScorer(repo))


def test_pool_includes_matches_and_internal_medicine_fallback():
    pool = build_pool(
        [
            candidate("a", "cardiology"),
            candidate("b", "dermatology", ["cardiology"]),
            candidate("c", "internal-medicine"),
            candidate("d", "dermatology"),
            candidate("e", "cardiology", is_active=False),
        ],
        ["cardiology"],
    )

    assert [c.id for c in pool] == ["a", "b", "c"]


def test_specialty_score_is_additive():
    doc = candidate("a", "cardiology", ["emergency", "pulmonology", "neurology"])

    assert specialty_score(doc, ["cardiology", "emergency", "pulmonology"]) == 20
    assert specialty_score(doc, ["neurology"]) == 5
    assert specialty_score(doc, ["dermatology"]) == 0


def test_scenario_single_internal_medicine_clinician():
    repo = StubRepository(loads={"im-1": (3, 2)})
    doc = candidate("im-1", "internal-medicine")

    best = selector_for(repo).select_best([doc], ["cardiology"], UrgencyTier.MEDIUM, TODAY)

    assert best.workload_score == 8
    assert best.estimated_wait_minutes == 45
    assert best.specialty_score == 0
    assert best.final_score == pytest.approx(11)

    matched = selector_for(repo).select_best([doc], ["internal-medicine"], UrgencyTier.MEDIUM, TODAY)
    assert matched.specialty_score == 10
    assert matched.final_score == pytest.approx(1)


@pytest.mark.parametrize("urgency, expected", [
    (UrgencyTier.EMERGENCY, 1.1),
    (UrgencyTier.HIGH, 5.5),
    (UrgencyTier.MEDIUM, 11),
    (UrgencyTier.LOW, 16.5),
])
def test_urgency_multiplier(urgency, expected):
    selector = selector_for(StubRepository())
    doc = candidate("im-1", "internal-medicine")
    snapshot = WorkloadSnapshot(active_queue_count=3, same_day_appointment_count=2)

    scored = selector.score_candidate(doc, snapshot, ["cardiology"], urgency)

    assert scored.final_score == pytest.approx(expected)


def test_ties_break_by_id():
    # both score (2 * 1 + 2 + 15 / 15) * 1.0 = 5
    repo = StubRepository(loads={"doc-x": (1, 2), "doc-y": (1, 2)})
    x = candidate("doc-x", "internal-medicine")
    y = candidate("doc-y", "internal-medicine")
    selector = selector_for(repo)

    first = selector.select_best([y, x], ["cardiology"], UrgencyTier.MEDIUM, TODAY)
    second = selector.select_best([x, y], ["cardiology"], UrgencyTier.MEDIUM, TODAY)

    assert first.final_score == pytest.approx(5)
    assert first.candidate.id == second.candidate.id == "doc-x"


def test_specialist_beats_idle_generalist():
    repo = StubRepository(loads={"cardio": (2, 3), "im": (0, 0)})
    ranked = selector_for(repo).rank(
        [candidate("im", "internal-medicine"), candidate("cardio", "cardiology", ["emergency"])],
        ["cardiology", "emergency"],
        UrgencyTier.MEDIUM,
        TODAY,
    )

    # cardio: (7 + 2) * 1.0 - 15 = -6, im: 0
    assert [s.candidate.id for s in ranked] == ["cardio", "im"]
    assert ranked[0].final_score == pytest.approx(-6)


def test_emergency_shrinks_load_term():
    repo = StubRepository(loads={"busy-er": (10, 0), "idle-im": (0, 0)})
    candidates = [candidate("busy-er", "emergency"), candidate("idle-im", "internal-medicine")]

    low = selector_for(repo).select_best(candidates, ["emergency"], UrgencyTier.LOW, TODAY)
    emergency = selector_for(repo).select_best(candidates, ["emergency"], UrgencyTier.EMERGENCY, TODAY)

    # low: (20 + 10) * 1.5 - 10 = 35 vs 0, emergency: (20 + 10) * 0.1 - 10 = -7 vs 0
    assert low.candidate.id == "idle-im"
    assert emergency.candidate.id == "busy-er"


def test_unreadable_workload_is_never_preferred():
    repo = StubRepository(loads={"busy": (6, 4)}, failing={"broken"})
    best = selector_for(repo).select_best(
        [candidate("broken", "cardiology"), candidate("busy", "internal-medicine")],
        ["cardiology"],
        UrgencyTier.MEDIUM,
        TODAY,
    )

    assert best.candidate.id == "busy"


def test_empty_input_raises_no_available_clinician():
    with pytest.raises(NoAvailableClinician):
        selector_for(StubRepository()).select_best([], ["cardiology"], UrgencyTier.MEDIUM, TODAY)


def test_no_match_and_no_fallback_raises():
    with pytest.raises(NoAvailableClinician):
        selector_for(StubRepository()).select_best(
            [candidate("derm", "dermatology"), candidate("im", "internal-medicine", is_active=False)],
            ["cardiology"],
            UrgencyTier.MEDIUM,
            TODAY,
        )


def test_async_ranking_matches_sync():
    repo = StubRepository(loads={"a": (1, 0), "b": (0, 3), "c": (2, 2)})
    candidates = [candidate("a", "cardiology"), candidate("b", "internal-medicine"), candidate("c", "cardiology")]
    selector = selector_for(repo)

    sync_ranked = selector.rank(candidates, ["cardiology"], UrgencyTier.HIGH, TODAY)
    async_ranked = asyncio.run(selector.rank_async(candidates, ["cardiology"], UrgencyTier.HIGH, TODAY, timeout=1))

    assert sync_ranked == async_ranked
