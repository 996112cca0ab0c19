from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator


# ========================================
# 📝 ESQUEMAS DE USUARIO
# ========================================

def _blank_to_none(v):
    if isinstance(v, str) and not v.strip():
        return None
    return v


class UserCreate(BaseModel):
    """Alta de usuario (solo administrador). La política de contraseña se aplica en el servicio."""
    username: str = Field(..., min_length=3, max_length=50, pattern=r"^[a-zA-Z0-9_]+$")
    password: str = Field(..., min_length=1, max_length=128)
    nombre: str = Field(..., min_length=1, max_length=100)
    apellidos: str = Field(..., min_length=1, max_length=150)
    dni: str = Field(..., min_length=1, max_length=20)
    email: Optional[EmailStr] = None
    direccion: Optional[str] = Field(None, max_length=255)
    telefono: Optional[str] = Field(None, max_length=20)
    roles: List[str] = Field(default_factory=list)

    @field_validator("nombre", "apellidos", "dni")
    @classmethod
    def strip_required(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Campo requerido")
        return v

    @field_validator("email", "direccion", "telefono", mode="before")
    @classmethod
    def empty_as_null(cls, v):
        return _blank_to_none(v)

    @field_validator("email")
    @classmethod
    def email_lowercase(cls, v):
        return v.lower() if v else v


class UserUpdate(BaseModel):
    """
    Actualización parcial. Solo cambian los campos enviados.

    activo y password solo se aplican si quien actualiza es administrador.
    roles, si llega, sustituye la lista completa.
    """
    email: Optional[EmailStr] = None
    nombre: Optional[str] = Field(None, min_length=1, max_length=100)
    apellidos: Optional[str] = Field(None, min_length=1, max_length=150)
    dni: Optional[str] = Field(None, min_length=1, max_length=20)
    direccion: Optional[str] = Field(None, max_length=255)
    telefono: Optional[str] = Field(None, max_length=20)
    activo: Optional[bool] = None
    password: Optional[str] = Field(None, max_length=128)
    roles: Optional[List[str]] = None

    @field_validator("email", "direccion", "telefono", mode="before")
    @classmethod
    def empty_as_null(cls, v):
        return _blank_to_none(v)


class UserResponse(BaseModel):
    id: int
    username: str
    email: Optional[str] = None
    nombre: str
    apellidos: str
    dni: str
    direccion: Optional[str] = None
    telefono: Optional[str] = None
    activo: bool
    roles: List[str]
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


# ========================================
# 🛡️ ESQUEMAS DE ROLES
# ========================================

class RoleCreate(BaseModel):
    nombre: str = Field(..., min_length=1, max_length=50, pattern=r"^[a-z_]+$")
    descripcion: Optional[str] = None

    @field_validator("nombre", mode="before")
    @classmethod
    def strip_nombre(cls, v):
        return v.strip() if isinstance(v, str) else v


class RoleResponse(BaseModel):
    id: int
    nombre: str
    descripcion: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)
