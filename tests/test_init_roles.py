import pytest

from app.core.init_roles import create_admin, init_roles, prompt_admin
from app.core.security import ConflictError, NotFoundError, WeakPasswordError
from app.models.models import Role, UserRole

from .conftest import PASSWORD


def _admin(db, **overrides):
    data = {
        "username": "ops_root",
        "password": PASSWORD,
        "nombre": "Raíz",
        "apellidos": "Operaciones",
        "dni": "00000000T",
    }
    data.update(overrides)
    return create_admin(db, **data)


class TestInitRoles:

    def test_is_idempotent(self, db):
        init_roles(db)
        init_roles(db)

        assert db.query(Role).count() == 5


class TestCreateAdmin:

    def test_creates_administrator_that_can_log_in(self, db, client, api):
        user = _admin(db, email="Root@Flota.ES")

        assert user.roles == ["administrador"]
        assert user.email == "root@flota.es"
        assert user.password_hash != PASSWORD
        assert db.query(UserRole).filter(UserRole.user_id == user.id).one().assigned_by is None

        response = client.post(f"{api}/auth/login", json={"username": "ops_root", "password": PASSWORD})
        assert response.status_code == 200
        assert response.json()["data"]["user"]["roles"] == ["administrador"]

    def test_weak_password_rejected(self, db):
        with pytest.raises(WeakPasswordError):
            _admin(db, password="corta")

    def test_duplicate_username_or_dni(self, db, make_user):
        make_user("ops_root")

        with pytest.raises(ConflictError):
            _admin(db, dni="otro")
        with pytest.raises(ConflictError):
            _admin(db, username="otro", dni="DNI-ops_root")

    def test_requires_seeded_role(self, db):
        db.query(Role).filter(Role.nombre == "administrador").delete()
        db.commit()

        with pytest.raises(NotFoundError):
            _admin(db)


class TestPromptAdmin:

    def test_repeats_until_password_is_valid_and_confirmed(self):
        answers = iter(["  ops_root ", "Raíz", "Operaciones", "00000000T", ""])
        passwords = iter(["debil", PASSWORD, "Distinta1!", PASSWORD, PASSWORD])
        output = []

        data = prompt_admin(
            ask=lambda _: next(answers),
            ask_password=lambda _: next(passwords),
            out=output.append,
        )

        assert data["username"] == "ops_root"
        assert data["email"] is None
        assert data["password"] == PASSWORD
        assert "⚠️ Las contraseñas no coinciden" in output
        assert any("Mínimo 8 caracteres" in line for line in output)
