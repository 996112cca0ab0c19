import logging
from typing import Any, Dict, List, Optional, Tuple

from fastapi import UploadFile
from fastapi.concurrency import run_in_threadpool
from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.core.security import BusinessRuleError, ConflictError, NotFoundError
from app.db.crud import crud
from app.enums.enums import EstadoTrabajo
from app.models.models import Trabajo, TrabajoVehiculo, User, Vehicle, VehicleImage
from app.schemas.vehicle_schemas import (
    VehicleCreate, VehicleImageResponse, VehicleResponse, VehicleUpdate
)
from app.services import evidence_service, storage_service, utils
from app.services.auth_service import AuthService
from app.services.handlers.image_upload import process_upload, read_upload

logger = logging.getLogger(__name__)


class VehicleService:
    """CRUD de vehículos e imágenes libres de vehículo"""

    @staticmethod
    def _get_or_404(db: Session, vehicle_id: int) -> Vehicle:
        vehicle = crud.get_active_vehicle(db, vehicle_id)
        if not vehicle:
            raise NotFoundError("Vehículo")
        return vehicle

    @staticmethod
    def list_vehicles(
        db: Session, page: int = 1, limit: int = None, search: Optional[str] = None
    ) -> Tuple[List[Dict[str, Any]], int, int, int]:
        page, limit, offset = utils.page_params(page, limit)

        query = db.query(Vehicle).filter(Vehicle.deleted_at.is_(None))
        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(Vehicle.matricula.like(pattern), Vehicle.alias.like(pattern)))

        total = query.count()
        vehicles = query.order_by(Vehicle.alias.asc(), Vehicle.id.asc()).offset(offset).limit(limit).all()
        data = [VehicleResponse.model_validate(v).model_dump() for v in vehicles]
        return data, total, page, limit

    @staticmethod
    def get_vehicle(db: Session, vehicle_id: int) -> Dict[str, Any]:
        """Vehículo con sus imágenes (más recientes primero)."""
        vehicle = VehicleService._get_or_404(db, vehicle_id)
        detail = VehicleResponse.model_validate(vehicle).model_dump()
        detail["images"] = VehicleService.list_images(db, vehicle_id)
        return detail

    @staticmethod
    def create_vehicle(db: Session, data: VehicleCreate) -> Dict[str, Any]:
        """
        Raises:
            ConflictError: Matrícula ya registrada
        """
        if crud.get_vehicle_by_matricula(db, data.matricula):
            raise ConflictError("Ya existe un vehículo con esa matrícula")

        with AuthService.db_transaction(db):
            vehicle = Vehicle(**data.model_dump())
            db.add(vehicle)

        db.refresh(vehicle)
        logger.info(f"🚑 Vehículo {vehicle.matricula} creado")
        return VehicleResponse.model_validate(vehicle).model_dump()

    @staticmethod
    def update_vehicle(db: Session, vehicle_id: int, data: VehicleUpdate) -> Dict[str, Any]:
        """
        Actualización parcial.

        Raises:
            BusinessRuleError: Sin campos o kilómetros inferiores a los actuales
        """
        vehicle = VehicleService._get_or_404(db, vehicle_id)
        fields = data.model_dump(exclude_unset=True)
        if not fields:
            raise BusinessRuleError("No hay campos para actualizar")

        if "alias" in fields and not fields["alias"]:
            raise BusinessRuleError("El alias no puede estar vacío")

        kilometros = fields.pop("kilometros_actuales", None)
        if kilometros is not None and kilometros < vehicle.kilometros_actuales:
            raise BusinessRuleError(
                f"Los kilómetros no pueden ser inferiores a los actuales ({vehicle.kilometros_actuales})"
            )

        with AuthService.db_transaction(db):
            for name, value in fields.items():
                setattr(vehicle, name, value)
            if kilometros is not None:
                crud.ratchet_odometer(db, vehicle.id, kilometros)

        db.refresh(vehicle)
        return VehicleResponse.model_validate(vehicle).model_dump()

    @staticmethod
    def delete_vehicle(db: Session, vehicle_id: int) -> None:
        """
        Borrado lógico; no se permite mientras esté asignado a un trabajo
        programado o activo.
        """
        vehicle = VehicleService._get_or_404(db, vehicle_id)

        en_uso = (
            db.query(TrabajoVehiculo.id)
            .join(Trabajo, TrabajoVehiculo.trabajo_id == Trabajo.id)
            .filter(
                TrabajoVehiculo.vehicle_id == vehicle_id,
                Trabajo.estado.in_([EstadoTrabajo.programado, EstadoTrabajo.activo]),
                Trabajo.deleted_at.is_(None)
            )
            .first()
        )
        if en_uso:
            raise BusinessRuleError("No se puede eliminar: el vehículo tiene trabajos activos asignados")

        with AuthService.db_transaction(db):
            vehicle.deleted_at = utils.utcnow()

        logger.info(f"🗑️ Vehículo {vehicle.matricula} eliminado")

    # ========================================
    #  IMÁGENES
    # ========================================

    @staticmethod
    def list_images(db: Session, vehicle_id: int, trabajo_id: Optional[int] = None) -> List[Dict[str, Any]]:
        VehicleService._get_or_404(db, vehicle_id)
        query = db.query(VehicleImage).filter(VehicleImage.vehicle_id == vehicle_id)
        if trabajo_id is not None:
            query = query.filter(VehicleImage.trabajo_id == trabajo_id)
        images = query.order_by(VehicleImage.created_at.desc(), VehicleImage.id.desc()).all()
        return [VehicleImageResponse.model_validate(i).model_dump() for i in images]

    @staticmethod
    def _register_image(
        db: Session, vehicle_id: int, tipo_imagen: str, image_url: str, user: User
    ) -> Dict[str, Any]:
        try:
            with AuthService.db_transaction(db):
                image = VehicleImage(
                    vehicle_id=vehicle_id,
                    tipo_imagen=tipo_imagen,
                    image_url=image_url,
                    uploaded_by=user.id,
                )
                db.add(image)
        except Exception:
            storage_service.discard_file(image_url)
            raise

        db.refresh(image)
        return VehicleImageResponse.model_validate(image).model_dump()

    @staticmethod
    async def upload_image(
        db: Session,
        vehicle_id: int,
        tipo_imagen: Optional[str],
        image: Optional[UploadFile],
        user: User,
        trabajo_id: Optional[int] = None
    ) -> Dict[str, Any]:
        """
        Sube una imagen al vehículo.

        Con trabajo_id la imagen es una evidencia de cierre y sigue las
        mismas reglas que POST /trabajos/{id}/evidencias (sobrescritura
        por categoría incluida).
        """
        await run_in_threadpool(VehicleService._get_or_404, db, vehicle_id)

        if trabajo_id is not None:
            return await evidence_service.upload_evidence(
                db, trabajo_id, vehicle_id, tipo_imagen, image, user
            )

        tipo = evidence_service.parse_tipo_imagen(tipo_imagen)
        if image is None:
            raise BusinessRuleError("No se recibió ninguna imagen")

        content = await read_upload(image)
        context = await process_upload(
            image.filename, content, image.content_type, f"vehicles/{vehicle_id}"
        )

        return await run_in_threadpool(
            VehicleService._register_image, db, vehicle_id, tipo.value, context.image_url, user
        )
