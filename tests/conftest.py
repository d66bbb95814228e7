import os
import sys
from datetime import timedelta
from pathlib import Path
from typing import Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

# Set testing environment before the app reads its settings
os.environ["TESTING"] = "1"
os.environ["TEST_DATABASE_URL"] = "sqlite:///./test.db"
os.environ.setdefault("DEV_ADMIN_SECRET", "dev-secret")

from app.main import app
from app.core.database import get_db, get_redis, Base, utcnow
from app.core.security import Role, create_id_token
from app.models.appointment import Appointment, AppointmentStatus
from app.services.identity_service import IdentityProvider
from app.models.patient import Patient

# Create test database
SQLALCHEMY_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(
    SQLALCHEMY_DATABASE_URL, connect_args={"check_same_thread": False}
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

def override_get_db():
    try:
        db = TestingSessionLocal()
        yield db
    finally:
        db.close()

app.dependency_overrides[get_db] = override_get_db

@pytest.fixture(scope="function")
def test_db():
    # Create tables
    Base.metadata.create_all(bind=engine)
    get_redis().data.clear()
    yield
    Base.metadata.drop_all(bind=engine)

@pytest.fixture
def db(test_db):
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()

@pytest.fixture
def client(test_db):
    with TestClient(app, base_url="http://testserver") as test_client:
        yield test_client

@pytest.fixture
def actor(db):
    """Register an identity user and return Authorization headers for it."""
    def _actor(
        uid: str,
        role: Optional[Role] = None,
        clinic_id: Optional[str] = None,
        email: Optional[str] = None,
        disabled: bool = False
    ) -> dict:
        identity = IdentityProvider(db)
        if not identity.get_user(uid):
            identity.create_user(
                uid,
                email=email or f"{uid}@example.com",
                role=role,
                clinic_id=clinic_id,
                disabled=disabled,
            )
        token = create_id_token(uid, email or f"{uid}@example.com", role, clinic_id)
        return {"Authorization": f"Bearer {token}"}

    return _actor

@pytest.fixture
def make_patient(db):
    def _make_patient(
        clinic_id: str,
        name: str = "Ana Paciente",
        linked_uid: Optional[str] = None,
        **fields
    ) -> Patient:
        patient = Patient(clinic_id=clinic_id, name=name, linked_uid=linked_uid, **fields)
        db.add(patient)
        db.commit()
        db.refresh(patient)
        return patient

    return _make_patient

@pytest.fixture
def make_appointment(db):
    def _make_appointment(
        patient: Patient,
        status: AppointmentStatus = AppointmentStatus.REQUESTED,
        scheduled_in: Optional[timedelta] = None,
        nutri_uid: Optional[str] = None
    ) -> Appointment:
        now = utcnow()
        appt = Appointment(
            clinic_id=patient.clinic_id,
            patient_id=patient.id,
            patient_uid=patient.linked_uid or "unlinked",
            nutri_uid=nutri_uid,
            status=status,
            requested_at=now,
            scheduled_for=now + scheduled_in if scheduled_in is not None else None,
            created_at=now,
            updated_at=now,
        )
        db.add(appt)
        db.commit()
        db.refresh(appt)
        return appt

    return _make_appointment
