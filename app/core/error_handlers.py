"""
Manejadores globales de excepciones.

Convierten cualquier error en la respuesta estándar:
    {"success": false, "message": "...", "errors": [...]?}

Mapeo:
    - ServiceError            -> su status_code
    - HTTPException           -> su status_code y detail
    - RequestValidationError  -> 422 con [{field, message}]
    - IntegrityError          -> 409
    - Exception               -> 500 (detalle oculto en producción)
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.config import settings
from app.core.security import ServiceError
from app.schemas.common_schemas import ErrorResponse, ValidationErrorDetail

logger = logging.getLogger(__name__)


def error_response(
    status_code: int,
    message: str,
    errors: Optional[List[Dict[str, Any]]] = None,
    headers: Optional[Dict[str, str]] = None
) -> JSONResponse:
    content = ErrorResponse(message=message, errors=errors or None).model_dump(exclude_none=True)
    return JSONResponse(status_code=status_code, content=content, headers=headers)


def _field_name(loc) -> str:
    # ("body", "vehiculos", 0, "vehicle_id") -> "vehiculos.0.vehicle_id"
    if not loc:
        return "request"
    parts = [str(p) for p in loc if p not in ("body", "query", "path", "form")]
    return ".".join(parts) or str(loc[-1])


async def service_error_handler(request: Request, exc: ServiceError):
    if exc.status_code >= 500:
        logger.error(f"Error de servicio en {request.url.path}: {exc.message}")
    return error_response(exc.status_code, exc.message, exc.errors)


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    message = exc.detail if isinstance(exc.detail, str) else "Error en la petición"
    return error_response(exc.status_code, message, headers=getattr(exc, "headers", None))


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = [
        ValidationErrorDetail(
            field=_field_name(err.get("loc", ())),
            message=err.get("msg", "Valor no válido"),
        ).model_dump()
        for err in exc.errors()
    ]
    return error_response(status.HTTP_422_UNPROCESSABLE_ENTITY, "Errores de validación", errors)


async def integrity_error_handler(request: Request, exc: IntegrityError):
    logger.warning(f"Violación de integridad en {request.url.path}: {exc.orig}")
    return error_response(status.HTTP_409_CONFLICT, "Ya existe un registro con ese valor")


async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Error no controlado en {request.method} {request.url.path}: {exc}")
    message = "Error interno del servidor" if settings.is_production else str(exc)
    return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, message)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ServiceError, service_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(IntegrityError, integrity_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
