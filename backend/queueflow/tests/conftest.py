# tests/conftest.py
import os

# must be set before queueflow.database is imported
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("QUEUEFLOW_SEQUENCER", "memory")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from queueflow.database import Base
from queueflow.models import clinic  # import your models to register with Base
from queueflow.models.clinic import Appointment, Clinician, QueueEntry
from queueflow.services.clinic_repository import SqlClinicRepository

from tests_support import TODAY, FakeRedis


@pytest.fixture
def engine(tmp_path):
    # file-backed so worker threads each get their own connection
    engine = create_engine(
        f"sqlite:///{tmp_path / 'queueflow.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False)


@pytest.fixture
def db_session(session_factory):
    """Provides a session for arranging and inspecting rows."""
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def repository(session_factory):
    return SqlClinicRepository(session_factory)


@pytest.fixture
def add_clinician(db_session):
    def _add(doc_id, department, specializations=(), is_active=True, role="doctor"):
        doctor = Clinician(
            id=doc_id,
            first_name="Test",
            last_name=doc_id,
            role=role,
            department=department,
            specializations=list(specializations),
            is_active=is_active,
        )
        db_session.add(doctor)
        db_session.commit()
        return doctor
    return _add


@pytest.fixture
def add_load(db_session):
    """Give a clinician active queue entries and same-day appointments."""
    counter = {"n": 1000}

    def _add(doc_id, queued=0, appointments=0, day=TODAY):
        for _ in range(queued):
            counter["n"] += 1
            db_session.add(QueueEntry(
                patient_id=f"load-{counter['n']}",
                service_day=day,
                queue_number=counter["n"],
                doctor_id=doc_id,
                status="waiting",
                symptoms="",
            ))
        for i in range(appointments):
            db_session.add(Appointment(
                patient_id=f"appt-{doc_id}-{i}",
                doctor_id=doc_id,
                appointment_date=day,
                status="scheduled",
            ))
        db_session.commit()
    return _add


@pytest.fixture
def fake_redis():
    return FakeRedis()
