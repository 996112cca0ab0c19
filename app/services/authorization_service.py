"""
Capa de autorización basada en roles.

Único lugar donde se comparan nombres de rol. Todos los predicados
(is_admin, is_manager, is_operational_only...) se construyen sobre
has_any_role y el vocabulario cerrado RoleName.
"""

import logging
from typing import Iterable, Union

from fastapi import Depends

from app.core.security import PermissionDeniedError
from app.enums.enums import MANAGEMENT_ROLES, RoleName
from app.models.models import User

logger = logging.getLogger(__name__)

RoleLike = Union[RoleName, str]


def _names(roles: Iterable[RoleLike]) -> set:
    return {r.value if isinstance(r, RoleName) else r for r in roles}


# ========================================
#  PREDICADOS
# ========================================

def has_any_role(user: User, roles: Iterable[RoleLike]) -> bool:
    """True si el usuario tiene al menos uno de los roles indicados"""
    if user is None:
        return False
    return bool(set(user.roles) & _names(roles))


def is_admin(user: User) -> bool:
    return has_any_role(user, [RoleName.administrador])


def is_management(user: User) -> bool:
    return has_any_role(user, MANAGEMENT_ROLES)


def is_manager(user: User) -> bool:
    """Gestor sin rol de administrador"""
    return has_any_role(user, [RoleName.gestor]) and not is_admin(user)


def is_operational_only(user: User) -> bool:
    """
    Sin rol de gestión: solo accede a los trabajos a los que está asignado.

    Una cuenta sin ningún rol queda igual de restringida.
    """
    return not is_management(user)


# ========================================
#  REGLAS DE GESTIÓN DE USUARIOS
# ========================================

def ensure_can_manage_user(actor: User, target: User, new_roles: Iterable[str] = None) -> None:
    """
    Un gestor (no administrador) no puede modificar a un administrador
    ni conceder el rol de administrador.

    Raises:
        PermissionDeniedError: Si el actor no tiene el nivel suficiente
    """
    if not is_manager(actor):
        return

    if is_admin(target):
        logger.warning(f"Gestor {actor.username} intentó modificar al administrador {target.username}")
        raise PermissionDeniedError("No tienes permiso para modificar un administrador")

    if new_roles is not None and RoleName.administrador.value in _names(new_roles):
        logger.warning(f"Gestor {actor.username} intentó asignar rol administrador")
        raise PermissionDeniedError("No tienes permiso para asignar el rol de administrador")


# ========================================
#  DEPENDENCIAS FASTAPI
# ========================================

def require_roles(*roles: RoleLike):
    """
    Factory de dependencias que exige alguno de los roles indicados.

    Uso:
        @router.post("/", dependencies=[Depends(require_roles(RoleName.administrador))])
    """
    from app.services.auth_service import get_current_user

    allowed = _names(roles)

    def dependency(current_user: User = Depends(get_current_user)) -> User:
        if not has_any_role(current_user, allowed):
            raise PermissionDeniedError(
                f"Acceso denegado. Requiere rol: {' o '.join(sorted(allowed))}"
            )
        return current_user

    return dependency


require_admin = require_roles(RoleName.administrador)
require_management = require_roles(*MANAGEMENT_ROLES)
