"""Shared fixtures: a file-backed SQLite database per test, seeded accounts and services."""

import os
import sys
from datetime import date

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from certdesk.actor import Actor
from certdesk.config import Settings
from certdesk.database import build_engine, build_session_factory, init_db
from certdesk.middleware.auth import hash_password
from certdesk.models.user import User
from certdesk.services.audit_service import AuditRecorder
from certdesk.services.record_kinds import CERTIFICATES, SCHOOLS, STUDENTS
from certdesk.services.record_repository import RecordRepository
from certdesk.services.workflow_service import WorkflowService

PASSWORD = "Secret123!"


@pytest.fixture(scope="session")
def password_hash():
    return hash_password(PASSWORD)


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        DATABASE_URL=f"sqlite:///{tmp_path / 'certdesk_test.db'}",
        SECRET_KEY="test-secret",
        RATE_LIMIT_ENABLED=False,
        LOG_LEVEL="WARNING",
    )


@pytest.fixture
def engine(settings):
    engine = build_engine(settings.DATABASE_URL)
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def users(session_factory, password_hash):
    """One account per role plus a second admin, keyed by name."""
    session = session_factory()
    accounts = {
        "admin": User(username="admin", role="admin", full_name="Asha Admin", password_hash=password_hash),
        "admin2": User(username="admin2", role="admin", full_name="Second Admin", password_hash=password_hash),
        "super": User(username="super", role="super", full_name="Sunil Super", password_hash=password_hash),
        "user": User(username="viewer", role="user", full_name="Vera Viewer", password_hash=password_hash),
    }
    session.add_all(accounts.values())
    session.commit()
    session.close()
    return accounts


@pytest.fixture
def actors(users):
    return {name: Actor(id=u.id, role=u.role, username=u.username) for name, u in users.items()}


@pytest.fixture
def recorder(session_factory):
    return AuditRecorder(session_factory)


@pytest.fixture
def make_service(db, recorder):
    def factory(kind=SCHOOLS, recorder_override=None):
        return WorkflowService(RecordRepository(db, kind), recorder_override or recorder)

    return factory


@pytest.fixture
def schools(make_service):
    return make_service(SCHOOLS)


@pytest.fixture
def students(make_service):
    return make_service(STUDENTS)


@pytest.fixture
def certificates(make_service):
    return make_service(CERTIFICATES)


def school_payload(**overrides):
    payload = {
        "name": "Zilla Parishad Primary School",
        "district": "Pune",
        "taluka": "Haveli",
        "school_recognition_no": "REC-001",
        "udise_no": "27250100101",
    }
    payload.update(overrides)
    return payload


def student_payload(school_id=None, **overrides):
    payload = {
        "full_name": "Ravi Patil",
        "father_name": "Suresh",
        "surname": "Patil",
        "date_of_birth": date(2010, 6, 15),
        "student_id": "STU-001",
        "school_id": school_id,
    }
    payload.update(overrides)
    return payload


def certificate_payload(school_id, student_id, **overrides):
    payload = {
        "school_id": school_id,
        "student_id": student_id,
        "serial_no": "LC-2024-001",
        "leaving_date": date(2024, 4, 30),
        "leaving_class": "7th",
        "conduct": "Good",
    }
    payload.update(overrides)
    return payload


def advance(service, actors, record_id, *statuses):
    """Walk a record through ``statuses`` using whichever role may take each step."""
    record = None
    for status in statuses:
        role = "super" if status in ("accepted", "rejected") else "admin"
        record = service.transition(actors[role], record_id, status).unwrap()
    return record
