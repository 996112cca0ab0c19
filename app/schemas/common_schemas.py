from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from app.services.utils import pagination_meta


# ========================================
#  ESQUEMAS DE RESPUESTA UNIFICADOS
# ========================================
class ValidationErrorDetail(BaseModel):
    """Detalle de error de validación"""
    field: str = Field(..., description="Campo que no pasó la validación")
    message: str = Field(..., description="Mensaje de error")


class ErrorResponse(BaseModel):
    """Respuesta de error genérica"""
    success: bool = False
    message: str
    errors: Optional[List[Dict[str, Any]]] = None


class PaginationMeta(BaseModel):
    total: int
    page: int
    limit: int
    totalPages: int
    hasNext: bool
    hasPrev: bool


class PaginatedResponse(BaseModel):
    """Respuesta paginada: data + pagination"""
    success: bool = True
    data: List[Any]
    pagination: PaginationMeta


class HealthResponse(BaseModel):
    """Respuesta de salud del sistema"""
    status: str = Field(..., pattern="^(ok|degraded)$")
    service: str
    database: str = Field(..., pattern="^(connecting|connected|unavailable)$")
    environment: str


# ========================================
#  CONSTRUCTORES DE RESPUESTA
# ========================================
def ok(data: Any = None, message: Optional[str] = None) -> Dict[str, Any]:
    """Envoltorio {success, message?, data?} de las respuestas correctas."""
    body: Dict[str, Any] = {"success": True}
    if message is not None:
        body["message"] = message
    if data is not None:
        body["data"] = data
    return body


def paginated(rows: List[Any], total: int, page: int, limit: int) -> Dict[str, Any]:
    return PaginatedResponse(
        data=rows,
        pagination=PaginationMeta(**pagination_meta(total, page, limit)),
    ).model_dump()
