import io
import os
import tempfile

# Antes de importar la aplicación: bcrypt rápido y uploads temporales
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("UPLOADS_DIR", tempfile.mkdtemp(prefix="flota-uploads-"))

import pytest
from fastapi.testclient import TestClient
from PIL import Image
from sqlalchemy.pool import StaticPool

from app.core.config import settings
from app.db.database import Database
from app.enums.enums import RoleName
from app.models.models import Role, User, UserRole, Vehicle
from app.services import security_service
from main import create_app

PASSWORD = "Secreta1!"


@pytest.fixture
def database():
    database = Database("sqlite://", poolclass=StaticPool)
    database.prepare(retries=1)
    yield database
    database.dispose()


@pytest.fixture
def db(database):
    session = database.session()
    yield session
    session.close()


@pytest.fixture
def uploads_dir(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "UPLOADS_DIR", str(tmp_path))
    return tmp_path


@pytest.fixture
def client(database, uploads_dir):
    app = create_app(database=database, connect_on_startup=False)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def make_user(db):
    def _make_user(username, roles=(), password=PASSWORD, dni=None, **fields):
        user = User(
            username=username,
            password_hash=security_service.hash_password(password),
            nombre=fields.pop("nombre", username.capitalize()),
            apellidos=fields.pop("apellidos", "Pruebas"),
            dni=dni or f"DNI-{username}",
            **fields
        )
        db.add(user)
        db.flush()
        for name in roles:
            role = db.query(Role).filter(Role.nombre == name).one()
            db.add(UserRole(user_id=user.id, role_id=role.id))
        db.commit()
        db.refresh(user)
        return user
    return _make_user


@pytest.fixture
def make_vehicle(db):
    def _make_vehicle(matricula, alias=None, kilometros=0):
        vehicle = Vehicle(matricula=matricula, alias=alias or matricula, kilometros_actuales=kilometros)
        db.add(vehicle)
        db.commit()
        db.refresh(vehicle)
        return vehicle
    return _make_vehicle


@pytest.fixture
def login(client):
    def _login(username, password=PASSWORD):
        response = client.post(
            f"{settings.API_PREFIX}/auth/login",
            json={"username": username, "password": password}
        )
        assert response.status_code == 200, response.text
        return response.json()["data"]
    return _login


@pytest.fixture
def auth_headers(login):
    def _auth_headers(username, password=PASSWORD):
        token = login(username, password)["accessToken"]
        return {"Authorization": f"Bearer {token}"}
    return _auth_headers


@pytest.fixture
def admin(make_user):
    return make_user("admin", [RoleName.administrador.value])


@pytest.fixture
def gestor(make_user):
    return make_user("gestor", [RoleName.gestor.value])


@pytest.fixture
def tecnico(make_user):
    return make_user("tecnico", [RoleName.tecnico.value])


@pytest.fixture
def enfermero(make_user):
    return make_user("enfermero", [RoleName.enfermero.value])


@pytest.fixture
def png_bytes():
    def _png_bytes(width=1600, height=900, color=(200, 30, 30)):
        buffer = io.BytesIO()
        Image.new("RGB", (width, height), color).save(buffer, format="PNG")
        return buffer.getvalue()
    return _png_bytes


@pytest.fixture
def api():
    return settings.API_PREFIX
