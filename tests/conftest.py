import pytest
import os
from types import SimpleNamespace

# Set env before importing app components
os.environ["APP_ENV"] = "testing"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"

from sqlalchemy.orm import sessionmaker
from fastapi.testclient import TestClient

import leave_tracker.models  # noqa: F401
from leave_tracker.database import Base, build_engine
from leave_tracker.dependencies import build_workflow, get_directory, get_workflow
from leave_tracker.main import app
from leave_tracker.models.user import User, UserRole
from leave_tracker.services.auth import create_access_token
from leave_tracker.services.routing import UserDirectory


def _create_schema(engine):
    Base.metadata.create_all(bind=engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def _seed_users(session_factory):
    """One actor per role. The first employee is routed to the GM."""
    db = session_factory()
    try:
        hr = User(email="hr@example.com", full_name="Hana HR", role=UserRole.HR)
        gm = User(email="gm@example.com", full_name="Gil GM", role=UserRole.GM)
        gm2 = User(email="gm2@example.com", full_name="Greta GM", role=UserRole.GM)
        ae = User(email="ae@example.com", full_name="Abel AE", role=UserRole.AE)
        db.add_all([hr, gm, gm2, ae])
        db.flush()
        employee = User(email="emp@example.com", full_name="Eve Employee", role=UserRole.EMPLOYEE, assigned_to=gm.id)
        other = User(email="other@example.com", role=UserRole.EMPLOYEE)
        inactive = User(email="gone@example.com", role=UserRole.EMPLOYEE, is_active=False, assigned_to=gm.id)
        db.add_all([employee, other, inactive])
        db.commit()
        return SimpleNamespace(
            hr=hr.id, gm=gm.id, gm2=gm2.id, ae=ae.id,
            employee=employee.id, other=other.id, inactive=inactive.id,
        )
    finally:
        db.close()


@pytest.fixture(scope="function")
def engine():
    """Fresh in-memory SQLite database for each test."""
    engine = build_engine("sqlite:///:memory:")
    yield engine
    engine.dispose()

@pytest.fixture(scope="function")
def session_factory(engine):
    return _create_schema(engine)

@pytest.fixture(scope="function")
def users(session_factory):
    return _seed_users(session_factory)

@pytest.fixture(scope="function")
def directory(session_factory):
    return UserDirectory(session_factory)

@pytest.fixture(scope="function")
def workflow(session_factory, directory, users):
    return build_workflow(session_factory, directory)

@pytest.fixture(scope="function")
def file_backed(tmp_path):
    """File-backed database for tests that need real concurrent connections."""
    engine = build_engine(f"sqlite:///{tmp_path / 'leave.db'}")
    factory = _create_schema(engine)
    seeded = _seed_users(factory)
    yield SimpleNamespace(session_factory=factory, users=seeded, workflow=build_workflow(factory))
    engine.dispose()

@pytest.fixture(scope="function")
def auth_headers():
    """Helper fixture to build bearer headers for a user id."""
    def _auth_headers(user_id):
        token = create_access_token(data={"sub": str(user_id)})
        return {"Authorization": f"Bearer {token}"}
    return _auth_headers

@pytest.fixture(scope="function")
def client(workflow, directory):
    """TestClient wired to the per-test workflow via dependency overrides."""
    app.dependency_overrides[get_workflow] = lambda: workflow
    app.dependency_overrides[get_directory] = lambda: directory
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
