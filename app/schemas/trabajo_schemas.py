from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from app.enums.enums import EstadoEditable, TipoTrabajo
from app.services.utils import to_naive_utc


# ========================================
#  ASIGNACIONES
# ========================================

class VehiculoAsignacion(BaseModel):
    vehicle_id: int = Field(..., ge=1)
    responsable_user_id: int = Field(..., ge=1)
    kilometros_inicio: Optional[int] = Field(None, ge=0)


class VehiculoKm(BaseModel):
    vehicle_id: int = Field(..., ge=1)
    kilometros_fin: Optional[int] = Field(None, ge=0)


# ========================================
#  PETICIONES
# ========================================

class TrabajoCreate(BaseModel):
    """
    Alta de trabajo.

    Las fechas con zona horaria se convierten a UTC; la regla
    fecha_fin > fecha_inicio la comprueba el servicio (400).
    """
    nombre: str = Field(..., min_length=1, max_length=255)
    tipo: TipoTrabajo
    fecha_inicio: datetime
    fecha_fin: datetime
    vehiculos: List[VehiculoAsignacion] = Field(default_factory=list)
    usuarios: List[int] = Field(default_factory=list)

    @field_validator("nombre")
    @classmethod
    def strip_nombre(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Nombre requerido")
        return v

    @field_validator("fecha_inicio", "fecha_fin")
    @classmethod
    def naive_utc(cls, v):
        return to_naive_utc(v)


class TrabajoUpdate(BaseModel):
    """
    Actualización parcial: solo cambian los campos enviados.

    estado solo admite programado o activo; la finalización tiene su
    propio endpoint. vehiculos y usuarios sustituyen las listas completas.
    """
    nombre: Optional[str] = Field(None, min_length=1, max_length=255)
    tipo: Optional[TipoTrabajo] = None
    fecha_inicio: Optional[datetime] = None
    fecha_fin: Optional[datetime] = None
    estado: Optional[EstadoEditable] = None
    vehiculos: Optional[List[VehiculoAsignacion]] = None
    usuarios: Optional[List[int]] = None

    @field_validator("fecha_inicio", "fecha_fin")
    @classmethod
    def naive_utc(cls, v):
        return to_naive_utc(v) if v is not None else v


class FinalizeRequest(BaseModel):
    motivo_finalizacion_anticipada: Optional[str] = Field(None, max_length=2000)
    vehiculos_km: List[VehiculoKm] = Field(default_factory=list)
