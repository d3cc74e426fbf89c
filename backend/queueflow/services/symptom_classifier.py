import json
import logging
from pathlib import Path
from types import MappingProxyType
from typing import Dict, List, Optional, Tuple

from queueflow.models.assignment_models import Confidence, SymptomAnalysis, UrgencyTier

logger = logging.getLogger(__name__)

# -------------------------------
# Load symptom rules from JSON
# File: queueflow/services/data/symptom_rules.json
# -------------------------------
DATA_DIR = Path(__file__).parent / "data"
SYMPTOM_RULES_PATH = DATA_DIR / "symptom_rules.json"

# Fixed scan order, most urgent first
URGENCY_SCAN_ORDER = (
    UrgencyTier.EMERGENCY,
    UrgencyTier.HIGH,
    UrgencyTier.MEDIUM,
    UrgencyTier.LOW,
)


def load_symptom_rules(path: Path = SYMPTOM_RULES_PATH) -> dict:
    if not path.exists():
        raise RuntimeError(
            f"❌ Critical: Symptom rules file not found at {path}.\n"
            "Is 'queueflow/services/data/symptom_rules.json' included in the package data?\n"
            "This is required for doctor assignment to function."
        )
    with open(path, "r", encoding="utf-8") as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as e:
            raise RuntimeError(f"❌ Invalid JSON in {path}: {e}")
    logger.info(f"✅ Successfully loaded {len(data.get('specialty_rules', []))} symptom rules")
    return data


def _build_specialty_map(data: dict) -> "MappingProxyType[str, Tuple[str, ...]]":
    table: Dict[str, Tuple[str, ...]] = {}
    for rule in data["specialty_rules"]:
        table[rule["phrase"].lower()] = tuple(rule["specialties"])
    return MappingProxyType(table)


def _build_urgency_triggers(data: dict) -> "MappingProxyType[UrgencyTier, Tuple[str, ...]]":
    raw = data["urgency_triggers"]
    return MappingProxyType({
        tier: tuple(phrase.lower() for phrase in raw.get(tier.value, []))
        for tier in URGENCY_SCAN_ORDER
    })


_RULE_DATA = load_symptom_rules()
SYMPTOM_SPECIALTY_MAP = _build_specialty_map(_RULE_DATA)
URGENCY_TRIGGERS = _build_urgency_triggers(_RULE_DATA)
DEFAULT_SPECIALTY = _RULE_DATA.get("default_specialty", "internal-medicine")


def _resolve_urgency(text_lower: str) -> UrgencyTier:
    for tier in URGENCY_SCAN_ORDER:
        if any(trigger in text_lower for trigger in URGENCY_TRIGGERS[tier]):
            return tier
    return UrgencyTier.LOW


def classify(text: Optional[str]) -> SymptomAnalysis:
    """Map free-text complaints to specialty tags and an urgency tier.

    Matching is plain case-insensitive substring containment against the
    fixed phrase table. Never raises: empty or unmatched input resolves to
    the default specialty with low confidence.
    """
    text_lower = (text or "").lower()

    matched_phrases: List[str] = []
    specialties: List[str] = []
    for phrase, tags in SYMPTOM_SPECIALTY_MAP.items():
        if phrase in text_lower:
            matched_phrases.append(phrase)
            for tag in tags:
                if tag not in specialties:
                    specialties.append(tag)

    if not specialties:
        specialties.append(DEFAULT_SPECIALTY)

    return SymptomAnalysis(
        specialties=tuple(specialties),
        urgency=_resolve_urgency(text_lower),
        matched_phrases=tuple(matched_phrases),
        confidence=Confidence.HIGH if matched_phrases else Confidence.LOW,
    )
