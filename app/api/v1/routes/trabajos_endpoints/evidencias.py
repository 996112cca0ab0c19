import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Path, UploadFile, status
from sqlalchemy.orm import Session

from app.db.database import get_db
from app.models.models import User
from app.schemas.common_schemas import ok
from app.services import evidence_service
from app.services.auth_service import get_current_user

router = APIRouter(prefix="/trabajos", tags=["evidencias"])
logger = logging.getLogger(__name__)


@router.post(
    "/{trabajo_id}/evidencias",
    status_code=status.HTTP_201_CREATED,
    summary="Subir evidencia fotográfica",
    description="Sube una de las cinco fotos obligatorias de un vehículo asignado"
)
async def upload_evidencia(
    trabajo_id: int = Path(..., ge=1),
    vehicle_id: Optional[int] = Form(None),
    tipo_imagen: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Subir evidencia de cierre.

    Una segunda subida de la misma categoría sustituye a la anterior.

    Returns:
        dict: Evidencia registrada con el progreso del vehículo
    """
    data = await evidence_service.upload_evidence(
        db, trabajo_id, vehicle_id, tipo_imagen, image, current_user
    )
    return ok(data, "Evidencia subida correctamente")
