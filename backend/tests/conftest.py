"""
Shared fixtures: in-memory SQLite database, API client with fake storage,
and small factories for users, beneficiaries and cases.
"""
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET_KEY"] = "test-secret-key"
os.environ.setdefault("AWS_REGION", "us-east-1")

import uuid
from datetime import datetime

import pytest
from botocore.exceptions import ClientError
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.api.deps import get_storage
from app.core.security import create_access_token, get_password_hash
from app.db.database import Base, get_db
from app.db.models import (
    Beneficiary,
    BeneficiaryStatus,
    Case,
    CaseType,
    User,
    UserRole,
    UserType,
)
from app.main import app
from app.services.cache_service import cache_service
from app.services.permission_service import assign_rule, get_or_create_beneficiary_rule

DEFAULT_PASSWORD = "Passw0rd!"
# bcrypt is slow; hash once for every factory-built user
DEFAULT_PASSWORD_HASH = get_password_hash(DEFAULT_PASSWORD)


# ── Fakes ────────────────────────────────────────────────────────────

class FakeStorage:
    """Stands in for S3Service; records uploads instead of sending them."""

    def __init__(self):
        self.uploads = []
        self.deleted = []
        self.fail_deletes = False

    def upload_fileobj(self, fileobj, file_name, content_type="application/octet-stream", size=0):
        key = f"uploads/test/{uuid.uuid4().hex}-{file_name}"
        self.uploads.append((key, fileobj.read()))
        return {
            "storage_key": key,
            "file_url": f"https://bucket.test/{key}",
            "file_name": file_name,
            "mime_type": content_type,
            "size": size,
        }

    def generate_download_url(self, s3_key, bucket=None, expires_in=3600):
        return f"https://signed.test/{s3_key}?expires={expires_in}"

    def delete_object(self, s3_key, bucket=None):
        if self.fail_deletes:
            raise ClientError({"Error": {"Code": "AccessDenied", "Message": "denied"}}, "DeleteObject")
        self.deleted.append(s3_key)

    def check_bucket(self):
        return "ok", "fake bucket"


# ── Database ─────────────────────────────────────────────────────────

@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def clear_permission_cache():
    cache_service.clear()
    yield
    cache_service.clear()


# ── API client ───────────────────────────────────────────────────────

@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def client(session_factory, storage):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_storage] = lambda: storage
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def auth_headers(user) -> dict:
    token = create_access_token({"sub": str(user.id)})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def headers_for():
    return auth_headers


# ── Factories ────────────────────────────────────────────────────────

@pytest.fixture
def make_beneficiary(db):
    counter = {"n": 0}

    def _make(full_name="Test Beneficiary", **kwargs):
        counter["n"] += 1
        beneficiary = Beneficiary(
            full_name=full_name,
            id_number=kwargs.pop("id_number", f"ID{counter['n']:08d}"),
            phone=kwargs.pop("phone", "0500000000"),
            status=kwargs.pop("status", BeneficiaryStatus.active),
            **kwargs,
        )
        db.add(beneficiary)
        db.commit()
        db.refresh(beneficiary)
        return beneficiary

    return _make


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make(role=UserRole.lawyer, user_type=UserType.staff, beneficiary=None, rules=(), password=DEFAULT_PASSWORD):
        counter["n"] += 1
        username = f"{getattr(role, 'value', role)}{counter['n']}"
        user = User(
            username=username,
            email=f"{username}@example.org",
            password_hash=DEFAULT_PASSWORD_HASH if password == DEFAULT_PASSWORD else get_password_hash(password),
            full_name=username.title(),
            user_type=user_type,
            role=role,
            beneficiary_id=beneficiary.id if beneficiary is not None else None,
            is_active=True,
        )
        db.add(user)
        db.flush()
        for rule in rules:
            assign_rule(db, user, rule)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def make_beneficiary_user(db, make_user):
    """Portal account holding the default beneficiary rule."""
    def _make(beneficiary):
        rule = get_or_create_beneficiary_rule(db)
        db.commit()
        return make_user(
            role=UserRole.beneficiary,
            user_type=UserType.beneficiary,
            beneficiary=beneficiary,
            rules=[rule],
        )

    return _make


@pytest.fixture
def make_case(db):
    counter = {"n": 0}

    def _make(beneficiary, lawyer=None, **kwargs):
        counter["n"] += 1
        case = Case(
            case_number=kwargs.pop("case_number", f"C-{counter['n']:04d}"),
            title=kwargs.pop("title", "Test case"),
            description=kwargs.pop("description", "Details"),
            beneficiary_id=beneficiary.id,
            assigned_lawyer_id=lawyer.id if lawyer is not None else None,
            **kwargs,
        )
        db.add(case)
        db.commit()
        db.refresh(case)
        return case

    return _make


@pytest.fixture
def make_case_type(db):
    def _make(name_ar, name_en=None, key=None, is_active=True):
        case_type = CaseType(name_ar=name_ar, name_en=name_en, key=key, is_active=is_active)
        db.add(case_type)
        db.commit()
        db.refresh(case_type)
        return case_type

    return _make


@pytest.fixture
def document_payload():
    def _make(**overrides):
        payload = {
            "title": "private.pdf",
            "storage_key": "uploads/test/private.pdf",
            "file_url": "https://bucket.test/uploads/test/private.pdf",
            "file_name": "private.pdf",
            "mime_type": "application/pdf",
            "size": 1024,
        }
        payload.update(overrides)
        return payload

    return _make


@pytest.fixture
def session_payload():
    def _make(case_id, **overrides):
        payload = {
            "case_id": str(case_id),
            "title": "First hearing",
            "gregorian_date": datetime(2030, 1, 15, 9, 0).isoformat(),
            "time": "09:00",
            "court_name": "General Court",
            "city": "Riyadh",
        }
        payload.update(overrides)
        return payload

    return _make
