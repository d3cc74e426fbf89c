# seed_clinicians.py
from queueflow.database import Base, SessionLocal, engine
from queueflow.models.clinic import Clinician

# Sample roster for a small outpatient clinic
CLINICIANS = [
    {"id": "doc-001", "first_name": "Amara", "last_name": "Okafor", "department": "internal-medicine",
     "specializations": ["infectious-disease"]},
    {"id": "doc-002", "first_name": "Liam", "last_name": "Chen", "department": "cardiology",
     "specializations": ["internal-medicine"]},
    {"id": "doc-003", "first_name": "Sofia", "last_name": "Rossi", "department": "emergency",
     "specializations": ["surgery", "cardiology"]},
    {"id": "doc-004", "first_name": "Noah", "last_name": "Haddad", "department": "neurology",
     "specializations": ["psychiatry"]},
    {"id": "doc-005", "first_name": "Priya", "last_name": "Nair", "department": "pulmonology",
     "specializations": ["allergy"]},
    {"id": "doc-006", "first_name": "Mateo", "last_name": "Garcia", "department": "orthopedics",
     "specializations": ["sports-medicine", "rheumatology"]},
    {"id": "doc-007", "first_name": "Hana", "last_name": "Sato", "department": "gastroenterology",
     "specializations": []},
    {"id": "doc-008", "first_name": "Elif", "last_name": "Yilmaz", "department": "dermatology",
     "specializations": ["allergy"]},
    {"id": "doc-009", "first_name": "Jonas", "last_name": "Berg", "department": "ent",
     "specializations": []},
    {"id": "doc-010", "first_name": "Grace", "last_name": "Mensah", "department": "internal-medicine",
     "specializations": ["endocrinology"]},
]


def seed():
    Base.metadata.create_all(bind=engine)
    with SessionLocal() as db:
        added = 0
        for data in CLINICIANS:
            if db.get(Clinician, data["id"]):
                continue
            db.add(Clinician(role="doctor", is_active=True, **data))
            added += 1
        db.commit()
    print(f"✅ Seeded {added} clinicians ({len(CLINICIANS) - added} already present)")


if __name__ == "__main__":
    seed()
