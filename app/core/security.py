"""
Excepciones de dominio de la aplicación.

Los servicios lanzan estas excepciones; los routers las dejan propagar
(o las mapean explícitamente) y los manejadores globales de
app.core.error_handlers las convierten en la respuesta estándar
{success, message, errors?}.
"""

from typing import Any, Dict, List, Optional


class ServiceError(Exception):
    """Excepción base para errores de servicio"""

    status_code = 500
    default_message = "Error interno del servidor"

    def __init__(self, message: Optional[str] = None, errors: Optional[List[Dict[str, Any]]] = None):
        self.message = message or self.default_message
        self.errors = errors
        super().__init__(self.message)


class InvalidCredentialsError(ServiceError):
    """Credenciales inválidas (mismo mensaje exista o no el usuario)"""
    status_code = 401
    default_message = "Credenciales incorrectas"


class InvalidTokenError(ServiceError):
    """Token inválido, expirado, revocado o de tipo incorrecto"""
    status_code = 401
    default_message = "Token inválido"


class AccountLockedError(ServiceError):
    """Cuenta bloqueada por demasiados intentos fallidos"""
    status_code = 429
    default_message = "Cuenta bloqueada temporalmente"


class PermissionDeniedError(ServiceError):
    """Permiso denegado"""
    status_code = 403
    default_message = "Acceso denegado"


class NotFoundError(ServiceError):
    """Recurso no encontrado"""
    status_code = 404

    def __init__(self, resource: str = "Recurso"):
        super().__init__(f"{resource} no encontrado")


class ValidationError(ServiceError):
    """Errores de validación con detalle por campo"""
    status_code = 422
    default_message = "Errores de validación"


class WeakPasswordError(ValidationError):
    """La contraseña no cumple la política de seguridad"""

    def __init__(self, problems: List[str]):
        super().__init__(
            errors=[{"field": "password", "message": problem} for problem in problems]
        )
        self.problems = problems


class ConflictError(ServiceError):
    """Registro duplicado (username, dni, matrícula, rol)"""
    status_code = 409
    default_message = "Ya existe un registro con ese valor"


class BusinessRuleError(ServiceError):
    """Violación de una regla de negocio o de estado del trabajo"""
    status_code = 400
    default_message = "Operación no permitida"
