import pytest
from fastapi.testclient import TestClient

from clinic_backend.auth.jwt_handler import create_access_token
from clinic_backend.database import get_db
from clinic_backend.main import app
from clinic_backend.models.user import ClinicUser, User
from clinic_backend.routes import admin_slot_routes, appointment_routes, doctor_schedule_routes, slot_routes


@pytest.fixture
def client(session_factory, monkeypatch: pytest.MonkeyPatch):
    for module in (admin_slot_routes, appointment_routes, doctor_schedule_routes, slot_routes):
        monkeypatch.setattr(module, 'ensure_database_ready', lambda: None)

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def make_user(db):
    def factory(email: str, role: str = 'USER', memberships: dict | None = None, is_active: bool = True) -> User:
        user = User(email=email, role=role, is_active=is_active)
        db.add(user)
        db.flush()
        for clinic_id, clinic_role in (memberships or {}).items():
            db.add(ClinicUser(clinic_id=clinic_id, user_id=user.id, role=clinic_role))
        db.commit()
        return user

    return factory


@pytest.fixture
def auth_headers():
    def build(user: User, clinic_id: int | None = None, token_clinics: list[int] | None = None) -> dict:
        headers = {'Authorization': f'Bearer {create_access_token(user.email, token_clinics)}'}
        if clinic_id is not None:
            headers['x-clinic-id'] = str(clinic_id)
        return headers

    return build
