from app.models.models import RefreshToken, User, UserRole


def _new_user(**overrides):
    data = {
        "username": "nuevo",
        "password": "Segura123!",
        "nombre": "Nuevo",
        "apellidos": "Usuario",
        "dni": "12345678Z",
        "email": "Nuevo@Flota.es",
        "roles": ["tecnico"],
    }
    data.update(overrides)
    return data


class TestCreateUser:

    def test_admin_creates_user_with_roles(self, client, api, db, admin, auth_headers):
        response = client.post(f"{api}/users/", json=_new_user(), headers=auth_headers("admin"))

        assert response.status_code == 201
        body = response.json()
        assert body["message"] == "Usuario creado correctamente"
        assert body["data"]["roles"] == ["tecnico"]
        assert body["data"]["email"] == "nuevo@flota.es"
        assert "password" not in body["data"]

        link = db.query(UserRole).join(User, UserRole.user_id == User.id).filter(User.username == "nuevo").one()
        assert link.assigned_by == admin.id

    def test_manager_cannot_create_users(self, client, api, gestor, auth_headers):
        response = client.post(f"{api}/users/", json=_new_user(), headers=auth_headers("gestor"))
        assert response.status_code == 403
        assert "administrador" in response.json()["message"]

    def test_weak_password_lists_every_problem(self, client, api, admin, auth_headers):
        response = client.post(f"{api}/users/", json=_new_user(password="abc"), headers=auth_headers("admin"))

        assert response.status_code == 422
        errors = response.json()["errors"]
        assert {e["field"] for e in errors} == {"password"}
        assert len(errors) == 4

    def test_duplicate_username_or_dni_conflicts(self, client, api, admin, tecnico, auth_headers):
        headers = auth_headers("admin")
        assert client.post(f"{api}/users/", json=_new_user(username="tecnico"), headers=headers).status_code == 409
        assert client.post(f"{api}/users/", json=_new_user(dni="DNI-tecnico"), headers=headers).status_code == 409

    def test_unknown_role_is_rejected(self, client, api, admin, auth_headers):
        response = client.post(f"{api}/users/", json=_new_user(roles=["piloto"]), headers=auth_headers("admin"))

        assert response.status_code == 422
        assert response.json()["errors"][0]["message"] == "Rol no válido: piloto"


class TestUpdateUser:

    def test_manager_cannot_grant_admin_role(self, client, api, gestor, tecnico, auth_headers):
        response = client.put(
            f"{api}/users/{tecnico.id}",
            json={"roles": ["tecnico", "administrador"]},
            headers=auth_headers("gestor")
        )
        assert response.status_code == 403

    def test_manager_cannot_modify_admin(self, client, api, admin, gestor, auth_headers):
        response = client.put(f"{api}/users/{admin.id}", json={"nombre": "Otro"}, headers=auth_headers("gestor"))
        assert response.status_code == 403

    def test_manager_updates_operational_user(self, client, api, gestor, tecnico, auth_headers):
        response = client.put(
            f"{api}/users/{tecnico.id}",
            json={"telefono": "600000000", "roles": ["enfermero"]},
            headers=auth_headers("gestor")
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["telefono"] == "600000000"
        assert data["roles"] == ["enfermero"]

    def test_activo_and_password_ignored_for_manager(self, client, api, db, gestor, tecnico, auth_headers):
        old_hash = tecnico.password_hash
        response = client.put(
            f"{api}/users/{tecnico.id}",
            json={"activo": False, "password": "Otra1234!"},
            headers=auth_headers("gestor")
        )

        assert response.status_code == 200
        db.expire_all()
        user = db.get(User, tecnico.id)
        assert user.activo is True
        assert user.password_hash == old_hash

    def test_admin_can_deactivate(self, client, api, admin, tecnico, auth_headers):
        response = client.put(f"{api}/users/{tecnico.id}", json={"activo": False}, headers=auth_headers("admin"))
        assert response.status_code == 200
        assert response.json()["data"]["activo"] is False

    def test_dni_clash_conflicts(self, client, api, admin, tecnico, enfermero, auth_headers):
        response = client.put(
            f"{api}/users/{tecnico.id}", json={"dni": enfermero.dni}, headers=auth_headers("admin")
        )
        assert response.status_code == 409


class TestDeleteUser:

    def test_soft_delete_revokes_sessions(self, client, api, db, admin, tecnico, login, auth_headers):
        login("tecnico")
        login("tecnico")

        response = client.delete(f"{api}/users/{tecnico.id}", headers=auth_headers("admin"))

        assert response.status_code == 200
        assert response.json()["message"] == "Usuario eliminado (soft delete)"
        db.expire_all()
        user = db.get(User, tecnico.id)
        assert user.deleted_at is not None
        assert user.activo is False
        tokens = db.query(RefreshToken).filter(RefreshToken.user_id == tecnico.id).all()
        assert len(tokens) == 2
        assert all(t.revoked for t in tokens)

    def test_cannot_delete_own_account(self, client, api, admin, auth_headers):
        response = client.delete(f"{api}/users/{admin.id}", headers=auth_headers("admin"))
        assert response.status_code == 400
        assert response.json()["message"] == "No puedes eliminar tu propia cuenta"

    def test_deleted_users_only_listed_for_admin(self, client, api, admin, gestor, tecnico, auth_headers):
        admin_headers = auth_headers("admin")
        client.delete(f"{api}/users/{tecnico.id}", headers=admin_headers)

        as_admin = client.get(f"{api}/users/", params={"deleted": "true"}, headers=admin_headers).json()
        as_gestor = client.get(f"{api}/users/", params={"deleted": "true"}, headers=auth_headers("gestor")).json()

        assert "tecnico" in {u["username"] for u in as_admin["data"]}
        assert "tecnico" not in {u["username"] for u in as_gestor["data"]}


class TestListAndRoles:

    def test_list_is_paginated_and_filterable(self, client, api, admin, gestor, tecnico, enfermero, auth_headers):
        headers = auth_headers("gestor")

        page = client.get(f"{api}/users/", params={"limit": 2}, headers=headers).json()
        assert page["pagination"] == {
            "total": 4, "page": 1, "limit": 2, "totalPages": 2, "hasNext": True, "hasPrev": False
        }

        by_role = client.get(f"{api}/users/", params={"role": "enfermero"}, headers=headers).json()
        assert [u["username"] for u in by_role["data"]] == ["enfermero"]

    def test_operational_users_cannot_list_users(self, client, api, tecnico, auth_headers):
        assert client.get(f"{api}/users/", headers=auth_headers("tecnico")).status_code == 403

    def test_roles_listed_for_any_authenticated_user(self, client, api, tecnico, auth_headers):
        response = client.get(f"{api}/users/roles", headers=auth_headers("tecnico"))

        assert response.status_code == 200
        nombres = {r["nombre"] for r in response.json()["data"]}
        assert nombres == {"administrador", "gestor", "tecnico", "enfermero", "medico"}

    def test_create_role(self, client, api, admin, auth_headers):
        headers = auth_headers("admin")

        created = client.post(f"{api}/users/roles", json={"nombre": "conductor"}, headers=headers)
        assert created.status_code == 201
        assert created.json()["message"] == "Rol creado"

        duplicate = client.post(f"{api}/users/roles", json={"nombre": "conductor"}, headers=headers)
        assert duplicate.status_code == 409

        invalid = client.post(f"{api}/users/roles", json={"nombre": "Con Espacios"}, headers=headers)
        assert invalid.status_code == 422
        assert invalid.json()["errors"][0]["field"] == "nombre"
