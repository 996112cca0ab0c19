"""
Inicialización de roles base.

Crea los cinco roles del servicio (administrador, gestor, tecnico,
enfermero, medico) si no existen. Es idempotente: se ejecuta en cada
arranque sin crear duplicados.

Incluye además el alta del primer administrador, que no puede hacerse
por la API porque POST /users exige ya un administrador.

Uso:
    python -m app.core.init_roles
    flota-create-admin
"""

import getpass
import logging
from typing import Callable, Dict, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.core.security import ConflictError, NotFoundError, ServiceError
from app.enums.enums import RoleName
from app.models.models import Role, User, UserRole
from app.services import security_service

logger = logging.getLogger(__name__)


ROLES_DATA = [
    {"nombre": RoleName.administrador.value, "descripcion": "Acceso total al sistema"},
    {"nombre": RoleName.gestor.value, "descripcion": "Gestión de trabajos, vehículos y personal"},
    {"nombre": RoleName.tecnico.value, "descripcion": "Técnico de emergencias sanitarias"},
    {"nombre": RoleName.enfermero.value, "descripcion": "Personal de enfermería"},
    {"nombre": RoleName.medico.value, "descripcion": "Personal médico"},
]


def init_roles(db: Session) -> None:
    """
    Inicializar roles básicos en la base de datos.

    Args:
        db (Session): Sesión de base de datos SQLAlchemy

    Raises:
        Exception: Si hay error en la BD durante commit
    """
    for role_data in ROLES_DATA:
        existing_role = db.query(Role).filter(Role.nombre == role_data["nombre"]).first()

        if not existing_role:
            db.add(Role(**role_data))
            logger.info(f"Created role: {role_data['nombre']}")

    try:
        db.commit()
        logger.info("Roles initialized successfully")
    except Exception as e:
        db.rollback()
        logger.error(f"Error initializing roles: {e}")
        raise


# ========================================
# 👑 ADMINISTRADOR INICIAL
# ========================================

def create_admin(
    db: Session,
    username: str,
    password: str,
    nombre: str,
    apellidos: str,
    dni: str,
    email: Optional[str] = None
) -> User:
    """
    Crea un usuario con el rol administrador.

    Raises:
        WeakPasswordError: Contraseña fuera de política
        ConflictError: Username o DNI ya en uso
        NotFoundError: El rol administrador no está sembrado
    """
    security_service.validate_password_strength(password)

    duplicate = db.query(User.id).filter(or_(User.username == username, User.dni == dni)).first()
    if duplicate:
        raise ConflictError("Username o DNI ya en uso")

    role = db.query(Role).filter(Role.nombre == RoleName.administrador.value).first()
    if not role:
        raise NotFoundError("Rol administrador")

    user = User(
        username=username,
        password_hash=security_service.hash_password(password),
        email=email.lower() if email else None,
        nombre=nombre,
        apellidos=apellidos,
        dni=dni,
        activo=True,
    )
    user.role_links = [UserRole(role_id=role.id, role=role)]

    try:
        db.add(user)
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error(f"Error creating admin {username}: {e}")
        raise

    db.refresh(user)
    logger.info(f"👑 Administrador {user.username} creado")
    return user


def prompt_admin(
    ask: Callable[[str], str] = input,
    ask_password: Callable[[str], str] = getpass.getpass,
    out: Callable[[str], None] = print
) -> Dict[str, Optional[str]]:
    """Pide los datos del administrador; repite la contraseña hasta que cumpla la política."""
    username = ask("Username: ").strip()
    nombre = ask("Nombre: ").strip()
    apellidos = ask("Apellidos: ").strip()
    dni = ask("DNI: ").strip()
    email = ask("Email (opcional, Enter para omitir): ").strip() or None

    while True:
        password = ask_password("Contraseña: ")
        problems = security_service.password_policy_problems(password)
        if problems:
            out("⚠️ La contraseña no cumple los requisitos:")
            for problem in problems:
                out(f"   • {problem}")
            continue
        if ask_password("Confirmar contraseña: ") != password:
            out("⚠️ Las contraseñas no coinciden")
            continue
        break

    return {
        "username": username,
        "password": password,
        "nombre": nombre,
        "apellidos": apellidos,
        "dni": dni,
        "email": email,
    }


def create_admin_main():
    """Alta interactiva del administrador contra la DATABASE_URL configurada."""
    from app.core.config import settings
    from app.db.database import Database

    logging.basicConfig(level=logging.INFO)
    data = prompt_admin()

    database = Database(settings.DATABASE_URL)
    try:
        database.init_schema()
        with database.session() as db:
            user = create_admin(db, **data)
        print(f"✅ Administrador creado: {user.username} (id {user.id})")
    except ServiceError as e:
        print(f"✗ {e.message}")
        raise SystemExit(1)
    finally:
        database.dispose()


def main():
    """Crea tablas y roles contra la DATABASE_URL configurada."""
    from app.core.config import settings
    from app.db.database import Database

    database = Database(settings.DATABASE_URL)
    try:
        database.init_schema()
    finally:
        database.dispose()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    main()
