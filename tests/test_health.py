import asyncio

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError
from sqlalchemy.pool import StaticPool

import main
from app.core.config import settings
from app.db.database import Database, DatabaseUnavailableError
from app.models.models import Role
from app.services.user_service import UserService
from main import create_app

from .conftest import PASSWORD


class _FlakyDatabase(Database):
    """Falla las primeras `failures` comprobaciones de conexión."""

    def __init__(self, failures):
        super().__init__("sqlite://", poolclass=StaticPool)
        self.failures = failures
        self.pings = 0

    def ping(self):
        self.pings += 1
        if self.pings <= self.failures:
            raise OperationalError("SELECT 1", {}, Exception("connection refused"))
        super().ping()


class TestConnectWithRetry:

    def test_succeeds_after_transient_failures(self):
        database = _FlakyDatabase(failures=2)
        sleeps = []

        database.prepare(retries=5, delay_seconds=3, sleep=sleeps.append)

        assert database.connected is True
        assert database.pings == 3
        assert sleeps == [3, 3]

    def test_gives_up_after_retries(self):
        database = _FlakyDatabase(failures=100)
        sleeps = []

        with pytest.raises(DatabaseUnavailableError):
            database.connect_with_retry(retries=10, delay_seconds=3, sleep=sleeps.append)

        assert database.pings == 10
        assert len(sleeps) == 9
        assert database.connected is False


class TestStartup:

    @pytest.fixture
    def exits(self, monkeypatch):
        calls = []
        monkeypatch.setattr(main.os, "_exit", calls.append)
        monkeypatch.setattr(settings, "DB_CONNECT_RETRIES", 2)
        monkeypatch.setattr(settings, "DB_CONNECT_DELAY_SECONDS", 0)
        return calls

    def test_schema_failure_is_fatal(self, exits, monkeypatch):
        database = Database("sqlite://", poolclass=StaticPool)

        def broken_schema():
            raise RuntimeError("create_all falló")

        monkeypatch.setattr(database, "init_schema", broken_schema)

        asyncio.run(main.connect_database(database))

        assert exits == [1]
        assert database.connected is False

    def test_unreachable_database_is_fatal(self, exits):
        database = _FlakyDatabase(failures=100)

        asyncio.run(main.connect_database(database))

        assert exits == [1]
        assert database.pings == 2
        assert database.connected is False

    def test_connected_only_after_schema(self, exits):
        database = _FlakyDatabase(failures=1)

        asyncio.run(main.connect_database(database))

        assert exits == []
        assert database.connected is True
        with database.session() as db:
            assert db.query(Role).count() == 5


class TestHealth:

    def test_health_when_connected(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"
        assert response.json()["database"] == "connected"

    def test_health_answers_before_database(self, uploads_dir):
        database = Database("sqlite://", poolclass=StaticPool)
        app = create_app(database=database, connect_on_startup=False)

        with TestClient(app) as client:
            health = client.get("/health")
            login = client.post("/api/v1/auth/login", json={"username": "a", "password": "b"})

        assert health.status_code == 200
        assert health.json()["status"] == "degraded"
        assert health.json()["database"] == "unavailable"
        assert login.status_code == 503
        assert login.json() == {"success": False, "message": "Base de datos no disponible"}


class TestErrorEnvelope:

    def test_validation_errors_are_itemized(self, client, api):
        response = client.post(f"{api}/auth/login", json={"username": "solo"})

        assert response.status_code == 422
        body = response.json()
        assert body["success"] is False
        assert body["message"] == "Errores de validación"
        assert body["errors"] == [{"field": "password", "message": "Field required"}]

    def test_unhandled_errors_are_500(self, database, uploads_dir, monkeypatch, make_user):
        make_user("u")

        def boom(db):
            raise RuntimeError("fallo inesperado")

        monkeypatch.setattr(UserService, "list_roles", staticmethod(boom))
        app = create_app(database=database, connect_on_startup=False)

        with TestClient(app, raise_server_exceptions=False) as client:
            token = client.post(
                "/api/v1/auth/login", json={"username": "u", "password": PASSWORD}
            ).json()["data"]["accessToken"]
            response = client.get("/api/v1/users/roles", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 500
        assert response.json() == {"success": False, "message": "fallo inesperado"}
