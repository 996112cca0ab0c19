from PIL import Image

from app.models.models import Vehicle


def _image(content, name="foto.png", mimetype="image/png"):
    return {"image": (name, content, mimetype)}


class TestVehicleCrud:

    def test_create_uppercases_plate(self, client, api, gestor, auth_headers):
        response = client.post(
            f"{api}/vehicles/",
            json={"matricula": " 1234abc ", "alias": "SVB-1", "kilometros_actuales": 5000},
            headers=auth_headers("gestor")
        )

        assert response.status_code == 201
        assert response.json()["message"] == "Vehículo creado"
        assert response.json()["data"]["matricula"] == "1234ABC"

    def test_duplicate_plate_conflicts(self, client, api, gestor, make_vehicle, auth_headers):
        make_vehicle("1234ABC")
        response = client.post(
            f"{api}/vehicles/", json={"matricula": "1234abc", "alias": "Otra"}, headers=auth_headers("gestor")
        )
        assert response.status_code == 409

    def test_operational_users_cannot_create(self, client, api, tecnico, auth_headers):
        response = client.post(
            f"{api}/vehicles/", json={"matricula": "X1", "alias": "X"}, headers=auth_headers("tecnico")
        )
        assert response.status_code == 403

    def test_list_searches_plate_and_alias(self, client, api, tecnico, make_vehicle, auth_headers):
        make_vehicle("1111AAA", alias="Soporte vital")
        make_vehicle("2222BBB", alias="Convencional")
        headers = auth_headers("tecnico")

        by_plate = client.get(f"{api}/vehicles/", params={"search": "2222"}, headers=headers).json()
        by_alias = client.get(f"{api}/vehicles/", params={"search": "vital"}, headers=headers).json()

        assert [v["matricula"] for v in by_plate["data"]] == ["2222BBB"]
        assert [v["matricula"] for v in by_alias["data"]] == ["1111AAA"]
        assert by_plate["pagination"]["total"] == 1

    def test_update_rejects_lower_kilometers(self, client, api, gestor, make_vehicle, auth_headers):
        vehicle = make_vehicle("1111AAA", kilometros=10000)
        response = client.put(
            f"{api}/vehicles/{vehicle.id}", json={"kilometros_actuales": 9000}, headers=auth_headers("gestor")
        )

        assert response.status_code == 400
        assert response.json()["message"] == "Los kilómetros no pueden ser inferiores a los actuales (10000)"

    def test_update_without_fields(self, client, api, gestor, make_vehicle, auth_headers):
        vehicle = make_vehicle("1111AAA")
        response = client.put(f"{api}/vehicles/{vehicle.id}", json={}, headers=auth_headers("gestor"))

        assert response.status_code == 400
        assert response.json()["message"] == "No hay campos para actualizar"

    def test_update_advances_kilometers(self, client, api, gestor, make_vehicle, auth_headers):
        vehicle = make_vehicle("1111AAA", kilometros=10000)
        response = client.put(
            f"{api}/vehicles/{vehicle.id}",
            json={"kilometros_actuales": 12000, "alias": "Renombrada"},
            headers=auth_headers("gestor")
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["kilometros_actuales"] == 12000
        assert data["alias"] == "Renombrada"

    def test_delete_requires_admin(self, client, api, gestor, make_vehicle, auth_headers):
        vehicle = make_vehicle("1111AAA")
        assert client.delete(f"{api}/vehicles/{vehicle.id}", headers=auth_headers("gestor")).status_code == 403

    def test_delete_blocked_while_assigned(self, client, api, admin, make_vehicle, auth_headers):
        vehicle = make_vehicle("1111AAA")
        headers = auth_headers("admin")
        client.post(f"{api}/trabajos/", json={
            "nombre": "Traslado",
            "tipo": "traslado",
            "fecha_inicio": "2030-01-01T08:00:00",
            "fecha_fin": "2030-01-01T12:00:00",
            "vehiculos": [{"vehicle_id": vehicle.id, "responsable_user_id": admin.id}],
        }, headers=headers)

        response = client.delete(f"{api}/vehicles/{vehicle.id}", headers=headers)
        assert response.status_code == 400

    def test_soft_deleted_vehicle_disappears(self, client, api, db, admin, make_vehicle, auth_headers):
        vehicle = make_vehicle("1111AAA")
        headers = auth_headers("admin")

        response = client.delete(f"{api}/vehicles/{vehicle.id}", headers=headers)

        assert response.status_code == 200
        assert client.get(f"{api}/vehicles/{vehicle.id}", headers=headers).status_code == 404
        db.expire_all()
        assert db.get(Vehicle, vehicle.id).deleted_at is not None


class TestVehicleImages:

    def test_upload_resizes_to_jpeg(self, client, api, uploads_dir, tecnico, make_vehicle, auth_headers, png_bytes):
        vehicle = make_vehicle("1111AAA")
        response = client.post(
            f"{api}/vehicles/{vehicle.id}/images",
            data={"tipo_imagen": "frontal"},
            files=_image(png_bytes(width=2000, height=1000)),
            headers=auth_headers("tecnico")
        )

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["image_url"].startswith(f"/uploads/vehicles/{vehicle.id}/")
        assert data["image_url"].endswith(".jpg")
        assert data["trabajo_id"] is None

        stored = uploads_dir / data["image_url"][len("/uploads/"):]
        with Image.open(stored) as img:
            assert img.format == "JPEG"
            assert img.size == (1280, 640)

    def test_rejects_unsupported_mimetype(self, client, api, tecnico, make_vehicle, auth_headers):
        vehicle = make_vehicle("1111AAA")
        response = client.post(
            f"{api}/vehicles/{vehicle.id}/images",
            data={"tipo_imagen": "frontal"},
            files=_image(b"%PDF-1.4", name="doc.pdf", mimetype="application/pdf"),
            headers=auth_headers("tecnico")
        )
        assert response.status_code == 400

    def test_rejects_corrupt_image(self, client, api, tecnico, make_vehicle, auth_headers):
        vehicle = make_vehicle("1111AAA")
        response = client.post(
            f"{api}/vehicles/{vehicle.id}/images",
            data={"tipo_imagen": "frontal"},
            files=_image(b"no soy una imagen"),
            headers=auth_headers("tecnico")
        )

        assert response.status_code == 400
        assert response.json()["message"] == "El archivo no es una imagen válida"

    def test_rejects_invalid_tipo(self, client, api, tecnico, make_vehicle, auth_headers, png_bytes):
        vehicle = make_vehicle("1111AAA")
        response = client.post(
            f"{api}/vehicles/{vehicle.id}/images",
            data={"tipo_imagen": "techo"},
            files=_image(png_bytes()),
            headers=auth_headers("tecnico")
        )
        assert response.status_code == 400

    def test_upload_with_trabajo_counts_as_evidence(
        self, client, api, gestor, make_vehicle, auth_headers, png_bytes
    ):
        vehicle = make_vehicle("1111AAA")
        headers = auth_headers("gestor")
        trabajo = client.post(f"{api}/trabajos/", json={
            "nombre": "Cobertura",
            "tipo": "cobertura_evento",
            "fecha_inicio": "2030-01-01T08:00:00",
            "fecha_fin": "2030-01-01T12:00:00",
            "vehiculos": [{"vehicle_id": vehicle.id, "responsable_user_id": gestor.id}],
        }, headers=headers).json()["data"]

        response = client.post(
            f"{api}/vehicles/{vehicle.id}/images",
            data={"tipo_imagen": "liquidos", "trabajo_id": str(trabajo["id"])},
            files=_image(png_bytes()),
            headers=headers
        )

        assert response.status_code == 201
        assert response.json()["data"]["progreso"]["completado"] == 1

        listed = client.get(
            f"{api}/vehicles/{vehicle.id}/images", params={"trabajo_id": trabajo["id"]}, headers=headers
        ).json()["data"]
        assert [i["tipo_imagen"] for i in listed] == ["liquidos"]

    def test_vehicle_detail_includes_images(self, client, api, tecnico, make_vehicle, auth_headers, png_bytes):
        vehicle = make_vehicle("1111AAA")
        headers = auth_headers("tecnico")
        client.post(
            f"{api}/vehicles/{vehicle.id}/images",
            data={"tipo_imagen": "trasera"},
            files=_image(png_bytes()),
            headers=headers
        )

        detail = client.get(f"{api}/vehicles/{vehicle.id}", headers=headers).json()["data"]
        assert len(detail["images"]) == 1
        assert detail["images"][0]["tipo_imagen"] == "trasera"
