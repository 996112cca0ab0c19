"""
Endpoints de vehículos de la flota y sus imágenes.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Path, Query, UploadFile, status
from sqlalchemy.orm import Session

from app.db.database import get_db
from app.models.models import User
from app.schemas.common_schemas import ok, paginated
from app.schemas.vehicle_schemas import VehicleCreate, VehicleUpdate
from app.services.auth_service import get_current_user
from app.services.authorization_service import require_admin, require_management
from app.services.vehicle_service import VehicleService

router = APIRouter(prefix="/vehicles", tags=["vehicles"])
logger = logging.getLogger(__name__)


# ========================================
# 🚑 VEHÍCULOS
# ========================================

@router.get("/", summary="Listar vehículos")
def list_vehicles(
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    search: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    rows, total, page, limit = VehicleService.list_vehicles(db, page=page, limit=limit, search=search)
    return paginated(rows, total, page, limit)


@router.post("/", status_code=status.HTTP_201_CREATED, summary="Crear vehículo")
def create_vehicle(
    data: VehicleCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_management)
):
    return ok(VehicleService.create_vehicle(db, data), "Vehículo creado")


@router.get("/{vehicle_id}", summary="Detalle de vehículo con imágenes")
def get_vehicle(
    vehicle_id: int = Path(..., ge=1),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return ok(VehicleService.get_vehicle(db, vehicle_id))


@router.put("/{vehicle_id}", summary="Actualizar vehículo")
def update_vehicle(
    data: VehicleUpdate,
    vehicle_id: int = Path(..., ge=1),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_management)
):
    """Los kilómetros solo pueden aumentar."""
    return ok(VehicleService.update_vehicle(db, vehicle_id, data), "Vehículo actualizado")


@router.delete("/{vehicle_id}", summary="Eliminar vehículo (soft delete)")
def delete_vehicle(
    vehicle_id: int = Path(..., ge=1),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin)
):
    VehicleService.delete_vehicle(db, vehicle_id)
    return ok(message="Vehículo eliminado")


# ========================================
# 📷 IMÁGENES
# ========================================

@router.get("/{vehicle_id}/images", summary="Imágenes del vehículo")
def list_images(
    vehicle_id: int = Path(..., ge=1),
    trabajo_id: Optional[int] = Query(None, ge=1),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return ok(VehicleService.list_images(db, vehicle_id, trabajo_id))


@router.post("/{vehicle_id}/images", status_code=status.HTTP_201_CREATED, summary="Subir imagen de vehículo")
async def upload_image(
    vehicle_id: int = Path(..., ge=1),
    tipo_imagen: Optional[str] = Form(None),
    trabajo_id: Optional[int] = Form(None),
    image: Optional[UploadFile] = File(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Subir imagen.

    Con trabajo_id la imagen cuenta como evidencia de cierre del trabajo.
    """
    data = await VehicleService.upload_image(
        db, vehicle_id, tipo_imagen, image, current_user, trabajo_id=trabajo_id
    )
    return ok(data, "Imagen subida correctamente")
