from datetime import timedelta

import pytest

from app.core.security import InvalidTokenError, PermissionDeniedError, WeakPasswordError
from app.services import authorization_service, security_service


class TestPasswordPolicy:

    @pytest.mark.parametrize("password", ["Secreta1!", "Ab3$efgh", "ÑandúVerde9#"])
    def test_valid_passwords(self, password):
        assert security_service.password_policy_problems(password) == []

    @pytest.mark.parametrize("password, problem", [
        ("Ab1!", "Mínimo 8 caracteres"),
        ("secreta1!", "Debe incluir al menos una mayúscula"),
        ("SECRETA1!", "Debe incluir al menos una minúscula"),
        ("Secretaa!", "Debe incluir al menos un número"),
        ("Secreta12", "Debe incluir al menos un carácter especial"),
    ])
    def test_each_rule(self, password, problem):
        assert security_service.password_policy_problems(password) == [problem]

    def test_weak_password_error_is_itemized(self):
        with pytest.raises(WeakPasswordError) as exc:
            security_service.validate_password_strength("")

        assert exc.value.status_code == 422
        assert len(exc.value.errors) == 5
        assert all(e["field"] == "password" for e in exc.value.errors)

    def test_hash_and_verify(self):
        hashed = security_service.hash_password("Secreta1!")
        assert hashed != "Secreta1!"
        assert security_service.verify_password("Secreta1!", hashed)
        assert not security_service.verify_password("Otra1234!", hashed)
        assert not security_service.verify_password("Secreta1!", "no-es-un-hash")


class TestTokens:

    def test_expired_access_token(self):
        token = security_service.create_access_token(1, "u", [], expires_delta=timedelta(seconds=-1))
        with pytest.raises(InvalidTokenError, match="expirado"):
            security_service.decode_access_token(token)

    def test_refresh_tokens_are_unique_and_hashed(self):
        first, first_hash = security_service.generate_refresh_token()
        second, _ = security_service.generate_refresh_token()

        assert first != second
        assert len(first_hash) == 64
        assert security_service.hash_refresh_token(first) == first_hash


class _User:
    def __init__(self, username, roles):
        self.username = username
        self.roles = roles


class TestAuthorization:

    def test_role_predicates(self):
        admin = _User("a", ["administrador"])
        gestor = _User("g", ["gestor"])
        medico = _User("m", ["medico"])
        mixto = _User("x", ["gestor", "tecnico"])

        assert authorization_service.is_admin(admin)
        assert authorization_service.is_manager(gestor)
        assert not authorization_service.is_manager(_User("ag", ["administrador", "gestor"]))
        assert authorization_service.is_operational_only(medico)
        assert authorization_service.is_operational_only(_User("n", []))
        assert not authorization_service.is_operational_only(mixto)
        assert authorization_service.is_management(mixto)
        assert not authorization_service.has_any_role(None, ["administrador"])

    def test_scenario_e_manager_cannot_grant_admin(self):
        gestor = _User("g", ["gestor"])
        target = _User("t", ["tecnico"])

        with pytest.raises(PermissionDeniedError):
            authorization_service.ensure_can_manage_user(gestor, target, ["administrador"])

    def test_manager_cannot_touch_admin(self):
        with pytest.raises(PermissionDeniedError):
            authorization_service.ensure_can_manage_user(
                _User("g", ["gestor"]), _User("a", ["administrador"])
            )

    def test_admin_can_grant_admin(self):
        authorization_service.ensure_can_manage_user(
            _User("a", ["administrador"]), _User("t", ["tecnico"]), ["administrador"]
        )
