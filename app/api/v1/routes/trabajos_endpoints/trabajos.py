"""
Endpoints de trabajos (traslados, coberturas de evento y otros).

Las rutas fijas (/calendario, /mis-trabajos) se declaran antes que
/{trabajo_id} para que no las capture el parámetro de ruta.
"""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.orm import Session

from app.db.database import get_db
from app.enums.enums import EstadoTrabajo, TipoTrabajo
from app.models.models import User
from app.schemas.common_schemas import ok, paginated
from app.schemas.trabajo_schemas import FinalizeRequest, TrabajoCreate, TrabajoUpdate
from app.services import utils
from app.services.auth_service import get_current_user
from app.services.authorization_service import require_management
from app.services.trabajo_service import TrabajoService

router = APIRouter(prefix="/trabajos", tags=["trabajos"])
logger = logging.getLogger(__name__)


# ========================================
# 📋 LECTURA
# ========================================

@router.get("/", summary="Listar trabajos")
def list_trabajos(
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    estado: Optional[EstadoTrabajo] = None,
    tipo: Optional[TipoTrabajo] = None,
    fecha_desde: Optional[date] = None,
    fecha_hasta: Optional[date] = None,
    search: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Listado paginado ordenado por fecha de inicio descendente.

    Los usuarios operacionales solo ven los trabajos en los que están
    asignados.
    """
    rows, total, page, limit = TrabajoService.list_trabajos(
        db,
        current_user,
        page=page,
        limit=limit,
        estado=estado,
        tipo=tipo,
        fecha_desde=fecha_desde,
        fecha_hasta=fecha_hasta,
        search=search
    )
    return paginated(rows, total, page, limit)


@router.get("/calendario", summary="Trabajos del mes")
def calendario(
    year: Optional[int] = Query(None, ge=2020, le=2100),
    month: Optional[int] = Query(None, ge=1, le=12),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Sin parámetros usa el año y mes actuales."""
    today = utils.utcnow()
    year = year or today.year
    month = month or today.month
    return ok(TrabajoService.calendario(db, current_user, year, month))


@router.get("/mis-trabajos", summary="Trabajos asignados al usuario")
def mis_trabajos(
    page: int = Query(1, ge=1),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    rows, total, page, limit = TrabajoService.mis_trabajos(db, current_user, page=page)
    return paginated(rows, total, page, limit)


@router.get("/{trabajo_id}", summary="Detalle de trabajo")
def get_trabajo(
    trabajo_id: int = Path(..., ge=1),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return ok(TrabajoService.get_trabajo(db, trabajo_id, current_user))


# ========================================
# ✏️ ESCRITURA
# ========================================

@router.post("/", status_code=status.HTTP_201_CREATED, summary="Crear trabajo")
def create_trabajo(
    data: TrabajoCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_management)
):
    """
    Crea el trabajo con su identificador TRB-YYYY-NNNN, asignaciones de
    vehículos y personal en una única transacción.
    """
    return ok(TrabajoService.create_trabajo(db, data, current_user), "Trabajo creado")


@router.put("/{trabajo_id}", summary="Actualizar trabajo")
def update_trabajo(
    data: TrabajoUpdate,
    trabajo_id: int = Path(..., ge=1),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_management)
):
    return ok(TrabajoService.update_trabajo(db, trabajo_id, data, current_user), "Trabajo actualizado")


@router.delete("/{trabajo_id}", summary="Eliminar trabajo (soft delete)")
def delete_trabajo(
    trabajo_id: int = Path(..., ge=1),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_management)
):
    TrabajoService.delete_trabajo(db, trabajo_id, current_user)
    return ok(message="Trabajo eliminado")


@router.post("/{trabajo_id}/finalize", summary="Finalizar trabajo")
def finalize_trabajo(
    data: FinalizeRequest,
    trabajo_id: int = Path(..., ge=1),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Cierra el trabajo.

    Requiere las cinco evidencias de cada vehículo asignado y los
    kilómetros finales. Antes de fecha_fin exige motivo de finalización
    anticipada.
    """
    return ok(
        TrabajoService.finalize_trabajo(db, trabajo_id, data, current_user),
        "Trabajo finalizado correctamente"
    )
