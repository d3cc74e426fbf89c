# queueflow/validate_symptoms.py
import json
import sys
from pathlib import Path

URGENCY_TIERS = ("emergency", "high", "medium", "low")


def validate_rules(data) -> list:
    """Return a list of problems found in the rule table (empty when valid)."""
    errors = []
    if not isinstance(data, dict):
        return ["Top level must be an object"]

    rules = data.get("specialty_rules")
    if not isinstance(rules, list) or not rules:
        errors.append("'specialty_rules' must be a non-empty list")
        rules = []

    seen = set()
    for i, rule in enumerate(rules):
        missing = {"phrase", "specialties"} - set(rule)
        if missing:
            errors.append(f"Rule {i}: missing keys {missing}")
            continue
        phrase = rule["phrase"]
        if not isinstance(phrase, str) or not phrase.strip():
            errors.append(f"Rule {i}: 'phrase' must be a non-empty string")
        elif phrase.lower() in seen:
            errors.append(f"Rule {i}: duplicate phrase '{phrase}'")
        else:
            seen.add(phrase.lower())
        if not isinstance(rule["specialties"], list) or not rule["specialties"]:
            errors.append(f"Rule {i}: 'specialties' must be a non-empty list")

    triggers = data.get("urgency_triggers")
    if not isinstance(triggers, dict):
        errors.append("'urgency_triggers' must be an object")
        triggers = {}

    owner = {}
    for tier in URGENCY_TIERS:
        for phrase in triggers.get(tier, []):
            key = phrase.lower()
            if key in owner:
                errors.append(f"Trigger '{phrase}' appears in both '{owner[key]}' and '{tier}'")
            else:
                owner[key] = tier
    unknown = set(triggers) - set(URGENCY_TIERS)
    if unknown:
        errors.append(f"Unknown urgency tiers: {sorted(unknown)}")
    return errors


def validate_symptoms_file(file_path: Path = None):
    file_path = file_path or Path(__file__).parent / "services" / "data" / "symptom_rules.json"

    print(f"🔍 Validating {file_path}...")

    # Check if file exists
    if not file_path.exists():
        print(f"❌ ERROR: {file_path} not found!")
        sys.exit(1)

    # Check if it's valid JSON
    try:
        with open(file_path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        print(f"❌ Invalid JSON in {file_path}: {e}")
        sys.exit(1)

    errors = validate_rules(data)
    if errors:
        for err in errors:
            print(f"❌ {err}")
        sys.exit(1)

    print(f"✅ {len(data['specialty_rules'])} symptom rules validated successfully.")


if __name__ == "__main__":
    validate_symptoms_file()
