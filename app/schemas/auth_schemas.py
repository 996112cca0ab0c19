from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


# ========================================
#  PETICIONES
# ========================================

class LoginRequest(BaseModel):
    """Credenciales de acceso (username sensible a mayúsculas)"""
    username: str = Field(..., min_length=1, max_length=100)
    password: str = Field(..., min_length=1, max_length=128)


class RefreshTokenRequest(BaseModel):
    refreshToken: str = Field(..., min_length=1)


class LogoutRequest(BaseModel):
    refreshToken: Optional[str] = None


# ========================================
#  RESPUESTAS
# ========================================

class SessionUser(BaseModel):
    id: int
    username: str
    nombre: str
    apellidos: str
    roles: List[str]


class TokenPair(BaseModel):
    """Access token JWT + refresh token opaco"""
    accessToken: str
    refreshToken: str
    expiresIn: int = Field(..., description="Segundos de vida del access token")


class LoginResponse(TokenPair):
    user: SessionUser


class ProfileResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    email: Optional[str] = None
    nombre: str
    apellidos: str
    dni: str
    telefono: Optional[str] = None
    activo: bool
    created_at: Optional[datetime] = None
    roles: List[str]
