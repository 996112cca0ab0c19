"""
Servicio de administración de usuarios y roles.

Reglas:
    - Solo un administrador crea o borra usuarios
    - Un gestor no puede modificar a un administrador ni conceder ese rol
    - activo y password solo los cambia un administrador
    - El borrado es lógico y revoca todas las sesiones del usuario
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.core.security import BusinessRuleError, ConflictError, NotFoundError, ValidationError
from app.db.crud import crud
from app.models.models import Role, User, UserRole
from app.schemas.user_schemas import RoleCreate, RoleResponse, UserCreate, UserResponse, UserUpdate
from app.services import authorization_service, security_service, utils
from app.services.auth_service import AuthService

logger = logging.getLogger(__name__)


class UserService:

    @staticmethod
    def _get_or_404(db: Session, user_id: int) -> User:
        user = crud.get_active_user(db, user_id)
        if not user:
            raise NotFoundError("Usuario")
        return user

    @staticmethod
    def to_dict(user: User) -> Dict[str, Any]:
        return UserResponse.model_validate(user).model_dump()

    @staticmethod
    def _resolve_roles(db: Session, names: List[str]) -> List[Role]:
        """
        Raises:
            ValidationError: Si algún nombre de rol no existe
        """
        names = list(dict.fromkeys(names))
        roles = crud.get_roles_by_names(db, names)
        unknown = sorted(set(names) - {r.nombre for r in roles})
        if unknown:
            raise ValidationError(errors=[
                {"field": "roles", "message": f"Rol no válido: {name}"} for name in unknown
            ])
        return roles

    @staticmethod
    def _set_roles(user: User, roles: List[Role], assigned_by: User) -> None:
        user.role_links = [
            UserRole(role_id=role.id, assigned_by=assigned_by.id, role=role) for role in roles
        ]

    # ========================================
    #  USUARIOS
    # ========================================

    @staticmethod
    def list_users(
        db: Session,
        actor: User,
        page: int = 1,
        limit: int = None,
        search: Optional[str] = None,
        role: Optional[str] = None,
        deleted: bool = False
    ) -> Tuple[List[Dict[str, Any]], int, int, int]:
        """Los borrados solo se incluyen si lo pide un administrador."""
        page, limit, offset = utils.page_params(page, limit)

        query = db.query(User)
        if not (deleted and authorization_service.is_admin(actor)):
            query = query.filter(User.deleted_at.is_(None))
        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(
                User.username.like(pattern),
                User.nombre.like(pattern),
                User.apellidos.like(pattern),
                User.email.like(pattern),
            ))
        if role:
            query = query.filter(User.role_links.any(UserRole.role.has(Role.nombre == role)))

        total = query.count()
        users = query.order_by(User.created_at.desc(), User.id.desc()).offset(offset).limit(limit).all()
        return [UserService.to_dict(u) for u in users], total, page, limit

    @staticmethod
    def get_user(db: Session, user_id: int) -> Dict[str, Any]:
        return UserService.to_dict(UserService._get_or_404(db, user_id))

    @staticmethod
    def create_user(db: Session, data: UserCreate, actor: User) -> Dict[str, Any]:
        """
        Raises:
            WeakPasswordError: Contraseña fuera de política
            ConflictError: Username o DNI ya en uso
            ValidationError: Rol inexistente
        """
        security_service.validate_password_strength(data.password)

        duplicate = (
            db.query(User.id)
            .filter(or_(User.username == data.username, User.dni == data.dni))
            .first()
        )
        if duplicate:
            raise ConflictError("Username o DNI ya en uso")

        roles = UserService._resolve_roles(db, data.roles)

        with AuthService.db_transaction(db):
            user = User(
                username=data.username,
                password_hash=security_service.hash_password(data.password),
                email=data.email,
                nombre=data.nombre,
                apellidos=data.apellidos,
                dni=data.dni,
                direccion=data.direccion,
                telefono=data.telefono,
                activo=True,
            )
            db.add(user)
            db.flush()
            UserService._set_roles(user, roles, actor)

        db.refresh(user)
        logger.info(f"👤 Usuario {user.username} creado por {actor.username} con roles {user.roles}")
        return UserService.to_dict(user)

    @staticmethod
    def update_user(db: Session, user_id: int, data: UserUpdate, actor: User) -> Dict[str, Any]:
        """
        Actualización parcial con la regla gestor/administrador.

        Raises:
            PermissionDeniedError: Gestor sobre administrador o concediendo ese rol
        """
        target = UserService._get_or_404(db, user_id)
        authorization_service.ensure_can_manage_user(actor, target, data.roles)

        fields = data.model_dump(exclude_unset=True)
        actor_is_admin = authorization_service.is_admin(actor)

        password = fields.pop("password", None)
        activo = fields.pop("activo", None)
        new_roles = fields.pop("roles", None)

        if password is not None and actor_is_admin:
            security_service.validate_password_strength(password)

        if "dni" in fields and fields["dni"] != target.dni:
            clash = db.query(User.id).filter(User.dni == fields["dni"], User.id != target.id).first()
            if clash:
                raise ConflictError("Username o DNI ya en uso")

        roles = UserService._resolve_roles(db, new_roles) if new_roles is not None else None

        with AuthService.db_transaction(db):
            for name, value in fields.items():
                if name in ("nombre", "apellidos", "dni") and value is None:
                    continue
                setattr(target, name, value)

            if actor_is_admin:
                if activo is not None:
                    target.activo = activo
                if password is not None:
                    target.password_hash = security_service.hash_password(password)

            if roles is not None:
                target.role_links.clear()
                db.flush()
                UserService._set_roles(target, roles, actor)

        db.refresh(target)
        logger.info(f"✏️ Usuario {target.username} actualizado por {actor.username}")
        return UserService.to_dict(target)

    @staticmethod
    def delete_user(db: Session, user_id: int, actor: User) -> None:
        """
        Borrado lógico + revocación de todos sus refresh tokens en una transacción.
        """
        if user_id == actor.id:
            raise BusinessRuleError("No puedes eliminar tu propia cuenta")

        target = UserService._get_or_404(db, user_id)
        now = utils.utcnow()

        with AuthService.db_transaction(db):
            target.deleted_at = now
            target.activo = False
            revoked = AuthService.revoke_user_tokens(target.id, db, now)

        logger.info(f"🗑️ Usuario {target.username} eliminado por {actor.username} ({revoked} sesiones revocadas)")

    # ========================================
    #  ROLES
    # ========================================

    @staticmethod
    def list_roles(db: Session) -> List[Dict[str, Any]]:
        roles = db.query(Role).order_by(Role.nombre.asc()).all()
        return [RoleResponse.model_validate(r).model_dump() for r in roles]

    @staticmethod
    def create_role(db: Session, data: RoleCreate) -> Dict[str, Any]:
        if crud.get_role_by_name(db, data.nombre):
            raise ConflictError("Ya existe un rol con ese nombre")

        with AuthService.db_transaction(db):
            role = Role(nombre=data.nombre, descripcion=data.descripcion)
            db.add(role)

        db.refresh(role)
        logger.info(f"🛡️ Rol {role.nombre} creado")
        return RoleResponse.model_validate(role).model_dump()
