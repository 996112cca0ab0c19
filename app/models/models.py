"""
Módulo de modelos ORM para base de datos.

Define todas las tablas y relaciones del back office de flota usando
SQLAlchemy ORM.

Estructura:
    - Mixins: TimestampMixin para created_at/updated_at
    - Autenticación: User, Role, UserRole, RefreshToken, LoginAttempt
    - Flota: Vehicle, VehicleImage
    - Trabajos: Trabajo, TrabajoVehiculo, TrabajoUsuario, TrabajoSecuencia
"""

from typing import List
from sqlalchemy import (
    Boolean, Column, Date, DateTime, ForeignKey, Integer, String, Text,
    UniqueConstraint, Index
)
from sqlalchemy import Enum as SqlEnum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.db.database import Base
from app.enums.enums import EstadoTrabajo, TipoTrabajo, TERMINAL_STATES


# =========================================================
# MIXINS - Campos comunes
# =========================================================

class TimestampMixin:
    """
    Mixin para agregar campos de timestamp automáticos.

    Campos:
        - created_at: Cuándo se creó el registro (inmutable)
        - updated_at: Cuándo se actualizó por última vez
    """
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime,
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False
    )


# =========================================================
# AUTENTICACIÓN
# =========================================================

class Role(Base):
    """
    Modelo de roles para control de acceso.

    Roles base: administrador, gestor (gestión) y tecnico, enfermero,
    medico (operacionales). Se pueden crear roles adicionales.
    """
    __tablename__ = "roles"

    id = Column(Integer, primary_key=True)
    nombre = Column(String(50), unique=True, nullable=False, index=True)
    descripcion = Column(Text, nullable=True)

    def __repr__(self):
        return f"<Role(id={self.id}, nombre={self.nombre})>"


class UserRole(Base):
    """
    Asignación de rol a usuario.

    Guarda quién asignó el rol (assigned_by) para auditoría.
    """
    __tablename__ = "user_roles"
    __table_args__ = (UniqueConstraint("user_id", "role_id", name="uq_user_role"),)

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    role_id = Column(Integer, ForeignKey("roles.id"), nullable=False)
    assigned_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    assigned_at = Column(DateTime, server_default=func.now(), nullable=False)

    role = relationship("Role", lazy="joined")
    user = relationship("User", foreign_keys=[user_id], back_populates="role_links")


class User(Base, TimestampMixin):
    """
    Modelo de usuario (personal del servicio).

    Campos principales:
        - username: Único, usado para login (sensible a mayúsculas)
        - dni: Documento nacional, único
        - password_hash: Hash bcrypt (nunca guardar en claro)
        - activo: Si la cuenta puede iniciar sesión
        - deleted_at: Borrado lógico (nunca se borra físicamente)

    Relaciones:
        - role_links: Asignaciones de rol (many-to-many con Role)
        - refresh_tokens: Sesiones emitidas

    Propiedades:
        - roles: Lista de nombres de rol
        - nombre_completo: "nombre apellidos"
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(50), unique=True, nullable=False, index=True)
    password_hash = Column(String(128), nullable=False)
    email = Column(String(255), nullable=True)
    nombre = Column(String(100), nullable=False)
    apellidos = Column(String(150), nullable=False)
    dni = Column(String(20), unique=True, nullable=False)
    direccion = Column(String(255), nullable=True)
    telefono = Column(String(20), nullable=True)
    activo = Column(Boolean, default=True, nullable=False)
    deleted_at = Column(DateTime, nullable=True)

    role_links = relationship(
        "UserRole",
        foreign_keys=[UserRole.user_id],
        back_populates="user",
        cascade="all, delete-orphan",
        lazy="selectin"
    )
    refresh_tokens = relationship("RefreshToken", back_populates="user")

    def __repr__(self):
        return f"<User(id={self.id}, username={self.username}, roles={self.roles})>"

    @property
    def roles(self) -> List[str]:
        return sorted(link.role.nombre for link in self.role_links)

    @property
    def nombre_completo(self) -> str:
        return f"{self.nombre} {self.apellidos}"

    @property
    def is_enabled(self) -> bool:
        """True si la cuenta está activa y no borrada"""
        return bool(self.activo) and self.deleted_at is None


class RefreshToken(Base):
    """
    Refresh token opaco de una sesión.

    Solo se guarda el hash SHA-256 del valor entregado al cliente.
    Cada uso revoca el token y emite uno nuevo (rotación).
    """
    __tablename__ = "refresh_tokens"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    token_hash = Column(String(64), unique=True, nullable=False, index=True)
    expires_at = Column(DateTime, nullable=False)
    revoked = Column(Boolean, default=False, nullable=False)
    revoked_at = Column(DateTime, nullable=True)
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(String(500), nullable=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    user = relationship("User", back_populates="refresh_tokens")


class LoginAttempt(Base):
    """
    Registro de intentos de login (append-only).

    Se registra incluso si el usuario no existe o la cuenta está
    bloqueada. Se usa para el bloqueo por ventana deslizante.
    """
    __tablename__ = "login_attempts"
    __table_args__ = (Index("ix_login_attempts_user_time", "username", "attempted_at"),)

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(100), nullable=False)
    ip_address = Column(String(45), nullable=True)
    success = Column(Boolean, default=False, nullable=False)
    user_agent = Column(String(500), nullable=True)
    attempted_at = Column(DateTime, nullable=False)


# =========================================================
# FLOTA
# =========================================================

class Vehicle(Base, TimestampMixin):
    """
    Vehículo de la flota.

    kilometros_actuales solo avanza: las escrituras desde trabajos usan
    UPDATE ... WHERE kilometros_actuales < :nuevo.
    """
    __tablename__ = "vehicles"

    id = Column(Integer, primary_key=True, index=True)
    matricula = Column(String(20), unique=True, nullable=False)
    alias = Column(String(100), nullable=False)
    kilometros_actuales = Column(Integer, default=0, nullable=False)
    fecha_ultima_revision = Column(Date, nullable=True)
    fecha_ultimo_servicio = Column(Date, nullable=True)
    deleted_at = Column(DateTime, nullable=True)

    images = relationship("VehicleImage", back_populates="vehicle")

    def __repr__(self):
        return f"<Vehicle(id={self.id}, matricula={self.matricula})>"


class VehicleImage(Base):
    """
    Imagen de un vehículo.

    Con trabajo_id es una evidencia de cierre: como máximo una por
    (vehículo, trabajo, tipo_imagen); las re-subidas sobrescriben.
    """
    __tablename__ = "vehicle_images"
    __table_args__ = (
        Index("ix_vehicle_images_evidencia", "vehicle_id", "trabajo_id", "tipo_imagen"),
    )

    id = Column(Integer, primary_key=True)
    vehicle_id = Column(Integer, ForeignKey("vehicles.id"), nullable=False)
    tipo_imagen = Column(String(30), nullable=False)
    image_url = Column(String(255), nullable=False)
    trabajo_id = Column(Integer, ForeignKey("trabajos.id"), nullable=True)
    uploaded_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    vehicle = relationship("Vehicle", back_populates="images")


# =========================================================
# TRABAJOS
# =========================================================

class Trabajo(Base):
    """
    Trabajo (traslado, cobertura de evento u otro).

    Estados: programado -> activo -> finalizado, o
    programado|activo -> finalizado_anticipado. Los dos finales son
    terminales e inmutables.
    """
    __tablename__ = "trabajos"

    id = Column(Integer, primary_key=True, index=True)
    identificador = Column(String(20), unique=True, nullable=False, index=True)
    nombre = Column(String(255), nullable=False)
    tipo = Column(SqlEnum(TipoTrabajo, native_enum=False, length=30), nullable=False)
    estado = Column(
        SqlEnum(EstadoTrabajo, native_enum=False, length=30),
        default=EstadoTrabajo.programado,
        nullable=False
    )
    fecha_inicio = Column(DateTime, nullable=False)
    fecha_fin = Column(DateTime, nullable=False)
    motivo_finalizacion_anticipada = Column(Text, nullable=True)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    deleted_at = Column(DateTime, nullable=True)

    creator = relationship("User", foreign_keys=[created_by])
    vehiculos = relationship(
        "TrabajoVehiculo",
        back_populates="trabajo",
        cascade="all, delete-orphan",
        order_by="TrabajoVehiculo.id"
    )
    usuarios = relationship(
        "TrabajoUsuario",
        back_populates="trabajo",
        cascade="all, delete-orphan"
    )

    def __repr__(self):
        return f"<Trabajo(id={self.id}, identificador={self.identificador}, estado={self.estado})>"

    @property
    def is_terminal(self) -> bool:
        return self.estado in TERMINAL_STATES


class TrabajoVehiculo(Base):
    """Asignación de un vehículo a un trabajo con su responsable y kilómetros"""
    __tablename__ = "trabajo_vehiculos"

    id = Column(Integer, primary_key=True)
    trabajo_id = Column(Integer, ForeignKey("trabajos.id"), nullable=False, index=True)
    vehicle_id = Column(Integer, ForeignKey("vehicles.id"), nullable=False)
    responsable_user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    kilometros_inicio = Column(Integer, nullable=True)
    kilometros_fin = Column(Integer, nullable=True)

    trabajo = relationship("Trabajo", back_populates="vehiculos")
    vehicle = relationship("Vehicle")
    responsable = relationship("User", foreign_keys=[responsable_user_id])


class TrabajoUsuario(Base):
    """Personal asignado a un trabajo"""
    __tablename__ = "trabajo_usuarios"
    __table_args__ = (UniqueConstraint("trabajo_id", "user_id", name="uq_trabajo_usuario"),)

    id = Column(Integer, primary_key=True)
    trabajo_id = Column(Integer, ForeignKey("trabajos.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    trabajo = relationship("Trabajo", back_populates="usuarios")
    user = relationship("User")


class TrabajoSecuencia(Base):
    """Contador atómico de identificadores por año"""
    __tablename__ = "trabajo_secuencias"

    anio = Column(Integer, primary_key=True, autoincrement=False)
    ultimo = Column(Integer, nullable=False, default=0)
