"""
Gestión de usuarios y roles.

Administrador: alta, baja y edición completa.
Gestor: consulta y edición sin tocar administradores.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.orm import Session

from app.db.database import get_db
from app.models.models import User
from app.schemas.common_schemas import ok, paginated
from app.schemas.user_schemas import RoleCreate, UserCreate, UserUpdate
from app.services.auth_service import get_current_user
from app.services.authorization_service import require_admin, require_management
from app.services.user_service import UserService

router = APIRouter(prefix="/users", tags=["users"])
logger = logging.getLogger(__name__)


# ========================================
# 🛡️ ROLES
# ========================================

@router.get("/roles", summary="Listar roles")
def list_roles(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return ok(UserService.list_roles(db))


@router.post("/roles", status_code=status.HTTP_201_CREATED, summary="Crear rol")
def create_role(
    data: RoleCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin)
):
    return ok(UserService.create_role(db, data), "Rol creado")


# ========================================
# 👥 USUARIOS
# ========================================

@router.get("/", summary="Listar usuarios")
def list_users(
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    search: Optional[str] = None,
    role: Optional[str] = None,
    deleted: bool = False,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_management)
):
    """deleted=true solo tiene efecto para administradores."""
    rows, total, page, limit = UserService.list_users(
        db, current_user, page=page, limit=limit, search=search, role=role, deleted=deleted
    )
    return paginated(rows, total, page, limit)


@router.get("/{user_id}", summary="Obtener usuario")
def get_user(
    user_id: int = Path(..., ge=1),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_management)
):
    return ok(UserService.get_user(db, user_id))


@router.post("/", status_code=status.HTTP_201_CREATED, summary="Crear usuario")
def create_user(
    data: UserCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin)
):
    return ok(UserService.create_user(db, data, current_user), "Usuario creado correctamente")


@router.put("/{user_id}", summary="Actualizar usuario")
def update_user(
    data: UserUpdate,
    user_id: int = Path(..., ge=1),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_management)
):
    return ok(UserService.update_user(db, user_id, data, current_user), "Usuario actualizado")


@router.delete("/{user_id}", summary="Eliminar usuario (soft delete)")
def delete_user(
    user_id: int = Path(..., ge=1),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin)
):
    UserService.delete_user(db, user_id, current_user)
    return ok(message="Usuario eliminado (soft delete)")
