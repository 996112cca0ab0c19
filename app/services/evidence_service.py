"""
Servicio de evidencias fotográficas de cierre.

Cada vehículo asignado a un trabajo necesita una imagen por cada una de
las cinco categorías (frontal, lateral_derecho, trasera,
lateral_izquierdo, liquidos). Una nueva subida de la misma categoría
sustituye a la anterior y borra su archivo.

El progreso calculado aquí lo usan la respuesta de subida, la vista
completa del trabajo y la cadena de finalización.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import UploadFile
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from app.core.security import BusinessRuleError, NotFoundError, PermissionDeniedError
from app.db.crud import crud
from app.enums.enums import REQUIRED_IMAGE_TYPES, TipoImagen
from app.models.models import Trabajo, User, VehicleImage
from app.services import authorization_service, storage_service
from app.services.auth_service import AuthService
from app.services.handlers.image_upload import process_upload, read_upload

logger = logging.getLogger(__name__)


# ========================================
#  PROGRESO
# ========================================

def progress(db: Session, vehicle_id: int, trabajo_id: int) -> Dict[str, Any]:
    """
    Progreso de evidencias de un vehículo en un trabajo.

    Returns:
        dict: {completado, total, faltantes, completo}
    """
    subidos = set(crud.get_evidence_types(db, trabajo_id, vehicle_id))
    faltantes = [tipo for tipo in REQUIRED_IMAGE_TYPES if tipo not in subidos]
    return {
        "completado": len(REQUIRED_IMAGE_TYPES) - len(faltantes),
        "total": len(REQUIRED_IMAGE_TYPES),
        "faltantes": faltantes,
        "completo": not faltantes,
    }


def parse_tipo_imagen(tipo_imagen: Optional[str]) -> TipoImagen:
    try:
        return TipoImagen(tipo_imagen)
    except ValueError:
        raise BusinessRuleError(
            f"tipo_imagen debe ser uno de: {', '.join(REQUIRED_IMAGE_TYPES)}"
        )


# ========================================
#  COMPROBACIONES PREVIAS
# ========================================

def ensure_can_upload(db: Session, trabajo_id: int, vehicle_id: int, user: User) -> Trabajo:
    """
    Comprueba que se puede subir evidencia del vehículo al trabajo.

    Raises:
        NotFoundError: Trabajo inexistente o borrado
        BusinessRuleError: Trabajo terminal o vehículo no asignado
        PermissionDeniedError: Operacional sin relación con el trabajo
    """
    trabajo = crud.get_active_trabajo(db, trabajo_id)
    if not trabajo:
        raise NotFoundError("Trabajo")

    if trabajo.is_terminal:
        raise BusinessRuleError("No se pueden subir evidencias a un trabajo ya finalizado")

    if not crud.get_assignment(db, trabajo_id, vehicle_id):
        raise BusinessRuleError("El vehículo no está asignado a este trabajo")

    if authorization_service.is_operational_only(user):
        asignado = crud.is_user_assigned(db, trabajo_id, user.id)
        responsable = any(tv.responsable_user_id == user.id for tv in trabajo.vehiculos)
        if not (asignado or responsable):
            raise PermissionDeniedError("No tienes acceso a este trabajo")

    return trabajo


# ========================================
#  REGISTRO
# ========================================

def register_evidence(
    db: Session,
    trabajo_id: int,
    vehicle_id: int,
    tipo_imagen: TipoImagen,
    image_url: str,
    user: User
) -> Dict[str, Any]:
    """
    Inserta la evidencia o sobrescribe la existente de la misma categoría.

    El trabajo se vuelve a leer con bloqueo para no registrar evidencias
    en un trabajo que otra petición acaba de finalizar.
    """
    old_url = None

    try:
        with AuthService.db_transaction(db):
            trabajo = crud.get_active_trabajo(db, trabajo_id, for_update=True)
            if not trabajo:
                raise NotFoundError("Trabajo")
            if trabajo.is_terminal:
                raise BusinessRuleError("No se pueden subir evidencias a un trabajo ya finalizado")

            image = crud.get_evidence(db, trabajo_id, vehicle_id, tipo_imagen.value)
            if image:
                old_url = image.image_url
                image.image_url = image_url
                image.uploaded_by = user.id
            else:
                image = VehicleImage(
                    vehicle_id=vehicle_id,
                    tipo_imagen=tipo_imagen.value,
                    image_url=image_url,
                    trabajo_id=trabajo_id,
                    uploaded_by=user.id,
                )
                db.add(image)
            db.flush()
            image_id = image.id
    except Exception:
        storage_service.discard_file(image_url)
        raise

    if old_url and old_url != image_url:
        storage_service.discard_file(old_url)

    logger.info(
        f"📸 Evidencia {tipo_imagen.value} trabajo={trabajo_id} vehiculo={vehicle_id} "
        f"{'sobrescrita' if old_url else 'nueva'}"
    )

    return {
        "id": image_id,
        "image_url": image_url,
        "tipo_imagen": tipo_imagen.value,
        "vehicle_id": vehicle_id,
        "trabajo_id": trabajo_id,
        "progreso": progress(db, vehicle_id, trabajo_id),
    }


async def upload_evidence(
    db: Session,
    trabajo_id: int,
    vehicle_id: Optional[int],
    tipo_imagen: Optional[str],
    image: Optional[UploadFile],
    user: User
) -> Dict[str, Any]:
    """
    Flujo completo de subida de evidencia.

    Orden de comprobaciones: vehicle_id, tipo_imagen, trabajo, estado,
    asignación del vehículo, acceso del usuario e imagen recibida.
    El procesado de la imagen corre fuera del event loop y el acceso a
    base de datos en el threadpool.
    """
    if not vehicle_id:
        raise BusinessRuleError("vehicle_id requerido")
    tipo = parse_tipo_imagen(tipo_imagen)

    await run_in_threadpool(ensure_can_upload, db, trabajo_id, vehicle_id, user)

    if image is None:
        raise BusinessRuleError("No se recibió ninguna imagen")

    content = await read_upload(image)
    context = await process_upload(
        image.filename, content, image.content_type, f"trabajos/{trabajo_id}"
    )

    return await run_in_threadpool(
        register_evidence, db, trabajo_id, vehicle_id, tipo, context.image_url, user
    )
