from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class VehicleCreate(BaseModel):
    """Alta de vehículo. La matrícula se guarda en mayúsculas."""
    matricula: str = Field(..., min_length=1, max_length=20)
    alias: str = Field(..., min_length=1, max_length=100)
    kilometros_actuales: int = Field(0, ge=0)
    fecha_ultima_revision: Optional[date] = None
    fecha_ultimo_servicio: Optional[date] = None

    @field_validator("matricula")
    @classmethod
    def normalize_matricula(cls, v):
        v = v.strip().upper()
        if not v:
            raise ValueError("Matrícula requerida")
        return v

    @field_validator("alias")
    @classmethod
    def strip_alias(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Alias requerido")
        return v

    @field_validator("fecha_ultima_revision", "fecha_ultimo_servicio", mode="before")
    @classmethod
    def empty_date(cls, v):
        return None if v == "" else v


class VehicleUpdate(BaseModel):
    """Actualización parcial; kilometros_actuales no puede bajar."""
    alias: Optional[str] = Field(None, min_length=1, max_length=100)
    kilometros_actuales: Optional[int] = Field(None, ge=0)
    fecha_ultima_revision: Optional[date] = None
    fecha_ultimo_servicio: Optional[date] = None

    @field_validator("fecha_ultima_revision", "fecha_ultimo_servicio", mode="before")
    @classmethod
    def empty_date(cls, v):
        return None if v == "" else v


class VehicleImageResponse(BaseModel):
    id: int
    vehicle_id: int
    tipo_imagen: str
    image_url: str
    trabajo_id: Optional[int] = None
    uploaded_by: Optional[int] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class VehicleResponse(BaseModel):
    id: int
    matricula: str
    alias: str
    kilometros_actuales: int
    fecha_ultima_revision: Optional[date] = None
    fecha_ultimo_servicio: Optional[date] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
