import os
from datetime import datetime, time
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault('DATABASE_URL', 'sqlite:///:memory:')

from medcenter.auth import jwt_handler  # noqa: E402
from medcenter.database import Base, get_db  # noqa: E402
from medcenter.main import app  # noqa: E402
from medcenter.models import appointment, schedule, user  # noqa: E402,F401
from medcenter.models.schedule import SpecialistBreak, SpecialistSchedule  # noqa: E402
from medcenter.models.user import User, UserRole  # noqa: E402
from medcenter.scheduling import store  # noqa: E402

MONDAY = 1
CLINIC_NOW = datetime(2026, 1, 1, 8, 0)


@pytest.fixture(autouse=True)
def clinic_clock(monkeypatch):
    """Pin the clinic clock before the dates the tests book on."""
    clock = {'now': CLINIC_NOW}
    monkeypatch.setattr(store, 'clinic_now', lambda: clock['now'])
    return clock


@pytest.fixture
def db_engine():
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def db_session(db_engine):
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    db = testing_session_local()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def api_client(db_engine):
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)

    def override_get_db():
        db = testing_session_local()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def _create_user(db, email: str, role: UserRole, tenant_id: int | None = 1, name: str | None = None) -> User:
    created = User(tenant_id=tenant_id, email=email, name=name or email.split('@')[0], role=role.value)
    created.set_password('secret123')
    db.add(created)
    db.commit()
    db.refresh(created)
    return created


@pytest.fixture
def clinic(db_session):
    """One medical center with an admin, two specialists and a patient, plus a user from another center."""
    return SimpleNamespace(
        admin=_create_user(db_session, 'admin@clinic.test', UserRole.ADMIN),
        specialist=_create_user(db_session, 'doctor@clinic.test', UserRole.SPECIALIST),
        other_specialist=_create_user(db_session, 'nurse@clinic.test', UserRole.SPECIALIST),
        patient=_create_user(db_session, 'patient@clinic.test', UserRole.PATIENT),
        other_patient=_create_user(db_session, 'other.patient@clinic.test', UserRole.PATIENT),
        outsider=_create_user(db_session, 'admin@elsewhere.test', UserRole.ADMIN, tenant_id=2),
    )


@pytest.fixture
def monday_schedule(db_session, clinic):
    """Monday 09:00-12:00 with a 10:00-10:30 break for the clinic's specialist."""
    db_session.add(SpecialistSchedule(
        tenant_id=1,
        specialist_id=clinic.specialist.id,
        day_of_week=MONDAY,
        start_time=time(9, 0),
        end_time=time(12, 0),
        is_available=True,
    ))
    db_session.add(SpecialistBreak(
        tenant_id=1,
        specialist_id=clinic.specialist.id,
        day_of_week=MONDAY,
        start_time=time(10, 0),
        end_time=time(10, 30),
        description='Coffee',
    ))
    db_session.commit()
    return clinic


@pytest.fixture
def auth_headers():
    def build(user: User) -> dict:
        return {'Authorization': f'Bearer {jwt_handler.create_access_token(subject=user.email)}'}

    return build
