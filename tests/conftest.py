import os

# Set testing environment before the app reads its settings
os.environ["TESTING"] = "1"
os.environ["TEST_DATABASE_URL"] = "sqlite:///./test.db"

from datetime import date, timedelta

import pytest
from fastapi.testclient import TestClient

from app.main import app
from app.core.config import settings
from app.core.database import Base, SessionLocal, engine, get_db, redis_client
from app.core.security import UserRole, create_token_pair, get_password_hash
from app.models.doctor import Doctor, VerificationStatus
from app.models.patient import Patient
from app.models.user import User
# Registers the remaining tables with the metadata
from app.models import appointment, queue  # noqa: F401

DEFAULT_PASSWORD = "TestPassword123"

def override_get_db():
    try:
        db = SessionLocal()
        yield db
    finally:
        db.close()

app.dependency_overrides[get_db] = override_get_db

@pytest.fixture(scope="function")
def test_db(tmp_path, monkeypatch):
    # Create tables
    Base.metadata.create_all(bind=engine)
    redis_client.flushall()
    monkeypatch.setattr(settings, "UPLOAD_DIR", str(tmp_path / "uploads"))
    yield
    Base.metadata.drop_all(bind=engine)

@pytest.fixture
def client(test_db):
    with TestClient(app, base_url="http://testserver") as test_client:
        yield test_client

@pytest.fixture
def db_session(test_db):
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

def auth_headers(user: User) -> dict:
    tokens = create_token_pair(user.id, user.email, user.role)
    return {"Authorization": f"Bearer {tokens.access_token}"}

class Factory:
    """Builds users and profiles straight in the database."""

    def __init__(self, db):
        self.db = db
        self._counter = 0

    def _next(self) -> int:
        self._counter += 1
        return self._counter

    def user(self, role: UserRole, full_name: str = None, **fields) -> User:
        n = self._next()
        user = User(
            email=fields.pop("email", f"{role.value}{n}@example.com"),
            username=fields.pop("username", f"{role.value}{n}"),
            full_name=full_name or f"{role.value.title()} {n}",
            password_hash=get_password_hash(fields.pop("password", DEFAULT_PASSWORD)),
            role=role,
            is_active=fields.pop("is_active", True),
            is_verified=fields.pop("is_verified", False),
            **fields
        )
        self.db.add(user)
        self.db.commit()
        self.db.refresh(user)
        return user

    def admin(self) -> User:
        return self.user(UserRole.ADMIN, is_verified=True)

    def patient(self, full_name: str = None) -> Patient:
        user = self.user(UserRole.PATIENT, full_name=full_name)
        patient = Patient(
            user_id=user.id,
            date_of_birth=date(1990, 1, 1),
            gender="Female",
            address="12 Harbour Road",
            city="Mombasa",
            zip_code="80100",
            medical_history=[],
        )
        self.db.add(patient)
        self.db.commit()
        self.db.refresh(patient)
        return patient

    def doctor(self, specialization: str = "Cardiology", verified: bool = True,
               full_name: str = None, availability=None) -> Doctor:
        user = self.user(UserRole.DOCTOR, full_name=full_name, is_verified=verified)
        doctor = Doctor(
            user_id=user.id,
            specialization=specialization,
            experience=5,
            registration_number=f"REG-{user.id:05d}",
            proof_document="/media/proof_documents/proof.pdf",
            availability=availability or [],
            is_verified=verified,
            verification_status=(
                VerificationStatus.APPROVED.value if verified else VerificationStatus.PENDING.value
            ),
        )
        self.db.add(doctor)
        self.db.commit()
        self.db.refresh(doctor)
        return doctor

@pytest.fixture
def factory(db_session):
    return Factory(db_session)

@pytest.fixture
def tomorrow():
    return (date.today() + timedelta(days=1)).isoformat()

@pytest.fixture
def headers_for():
    return auth_headers
