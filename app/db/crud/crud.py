"""
Módulo CRUD de consultas reutilizables.

Funciones de lectura compartidas por los servicios: usuarios, roles,
vehículos, trabajos y evidencias. Todas excluyen los registros con
borrado lógico salvo que se indique lo contrario.
"""

import logging
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from app.models import models

logger = logging.getLogger(__name__)


# =========================================================
# 👤 USUARIOS Y ROLES
# =========================================================

def get_user_by_username(db: Session, username: str) -> Optional[models.User]:
    """Busca por username exacto (sensible a mayúsculas), incluidos borrados."""
    return db.query(models.User).filter(models.User.username == username).first()


def get_active_user(db: Session, user_id: int) -> Optional[models.User]:
    return (
        db.query(models.User)
        .filter(models.User.id == user_id, models.User.deleted_at.is_(None))
        .first()
    )


def get_roles_by_names(db: Session, names: Iterable[str]) -> List[models.Role]:
    names = list(dict.fromkeys(names))
    if not names:
        return []
    return db.query(models.Role).filter(models.Role.nombre.in_(names)).all()


def get_role_by_name(db: Session, nombre: str) -> Optional[models.Role]:
    return db.query(models.Role).filter(models.Role.nombre == nombre).first()


# =========================================================
# 🚑 VEHÍCULOS
# =========================================================

def get_active_vehicle(db: Session, vehicle_id: int) -> Optional[models.Vehicle]:
    return (
        db.query(models.Vehicle)
        .filter(models.Vehicle.id == vehicle_id, models.Vehicle.deleted_at.is_(None))
        .first()
    )


def get_vehicle_by_matricula(db: Session, matricula: str) -> Optional[models.Vehicle]:
    return (
        db.query(models.Vehicle)
        .filter(models.Vehicle.matricula == matricula, models.Vehicle.deleted_at.is_(None))
        .first()
    )


def ratchet_odometer(db: Session, vehicle_id: int, kilometros: int, **extra_values) -> int:
    """
    Avanza kilometros_actuales solo si el nuevo valor es mayor.

    UPDATE vehicles SET kilometros_actuales = :km WHERE id = :id
    AND kilometros_actuales < :km

    Returns:
        int: Filas actualizadas (0 si el valor no era mayor)
    """
    values = {models.Vehicle.kilometros_actuales: kilometros}
    values.update({getattr(models.Vehicle, k): v for k, v in extra_values.items()})
    return (
        db.query(models.Vehicle)
        .filter(
            models.Vehicle.id == vehicle_id,
            models.Vehicle.kilometros_actuales < kilometros
        )
        .update(values, synchronize_session=False)
    )


# =========================================================
# 📋 TRABAJOS Y EVIDENCIAS
# =========================================================

def get_active_trabajo(db: Session, trabajo_id: int, for_update: bool = False) -> Optional[models.Trabajo]:
    """
    Trabajo no borrado por id.

    Con for_update=True toma un bloqueo de fila (SELECT ... FOR UPDATE).
    """
    query = db.query(models.Trabajo).filter(
        models.Trabajo.id == trabajo_id,
        models.Trabajo.deleted_at.is_(None)
    )
    if for_update:
        query = query.with_for_update()
    return query.first()


def get_assignment(db: Session, trabajo_id: int, vehicle_id: int) -> Optional[models.TrabajoVehiculo]:
    return (
        db.query(models.TrabajoVehiculo)
        .filter(
            models.TrabajoVehiculo.trabajo_id == trabajo_id,
            models.TrabajoVehiculo.vehicle_id == vehicle_id
        )
        .first()
    )


def get_evidence_types(db: Session, trabajo_id: int, vehicle_id: int) -> List[str]:
    rows = (
        db.query(models.VehicleImage.tipo_imagen)
        .filter(
            models.VehicleImage.trabajo_id == trabajo_id,
            models.VehicleImage.vehicle_id == vehicle_id
        )
        .all()
    )
    return [row[0] for row in rows]


def get_evidence(
    db: Session, trabajo_id: int, vehicle_id: int, tipo_imagen: str
) -> Optional[models.VehicleImage]:
    return (
        db.query(models.VehicleImage)
        .filter(
            models.VehicleImage.trabajo_id == trabajo_id,
            models.VehicleImage.vehicle_id == vehicle_id,
            models.VehicleImage.tipo_imagen == tipo_imagen
        )
        .first()
    )


def is_user_assigned(db: Session, trabajo_id: int, user_id: int) -> bool:
    return (
        db.query(models.TrabajoUsuario.id)
        .filter(
            models.TrabajoUsuario.trabajo_id == trabajo_id,
            models.TrabajoUsuario.user_id == user_id
        )
        .first()
        is not None
    )
