"""
Módulo de autenticación y sesiones.

Endpoints de login, renovación de tokens (rotación del refresh token),
logout y perfil del usuario autenticado.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from app.core.security import AccountLockedError, InvalidCredentialsError, InvalidTokenError
from app.db.database import get_db
from app.models.models import User
from app.schemas.auth_schemas import LoginRequest, LogoutRequest, RefreshTokenRequest
from app.schemas.common_schemas import ok
from app.services.auth_service import AuthService, get_client_info, get_current_user


# ========================================
# 🔧 CONFIGURACIÓN
# ========================================

router = APIRouter(prefix="/auth", tags=["authentication"])
logger = logging.getLogger(__name__)


# ========================================
# 🔐 ENDPOINTS DE AUTENTICACIÓN
# ========================================

@router.post("/login", summary="Iniciar sesión", description="Autentica usuario y retorna access token y refresh token")
def login(
    credentials: LoginRequest,
    request: Request,
    db: Session = Depends(get_db)
):
    """
    Autenticar usuario y obtener tokens.

    Características de seguridad:
        - Bloqueo tras 5 intentos fallidos en 30 minutos (configurable)
        - Registro de cada intento con IP y User-Agent
        - Mismo mensaje de error exista o no el usuario

    Returns:
        dict: accessToken, refreshToken, expiresIn y datos del usuario

    Raises:
        HTTPException 401: Credenciales incorrectas
        HTTPException 429: Cuenta bloqueada temporalmente
    """
    try:
        ip_address, user_agent = get_client_info(request)
        session = AuthService.login_user(
            credentials.username,
            credentials.password,
            db,
            ip_address,
            user_agent
        )
        return ok(session, "Login exitoso")

    except InvalidCredentialsError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=e.message)

    except AccountLockedError as e:
        raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail=e.message)


@router.post("/refresh", summary="Renovar tokens", description="Rota el refresh token y emite un nuevo access token")
def refresh_token(
    body: RefreshTokenRequest,
    request: Request,
    db: Session = Depends(get_db)
):
    """
    Renovar tokens con rotación.

    El refresh token presentado queda revocado; reutilizarlo falla.

    Raises:
        HTTPException 401: Token inválido, revocado, expirado o cuenta inactiva
    """
    try:
        ip_address, user_agent = get_client_info(request)
        tokens = AuthService.refresh_tokens(body.refreshToken, db, ip_address, user_agent)
        return ok(tokens, "Token refrescado")

    except InvalidTokenError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=e.message)


@router.post("/logout", summary="Cerrar sesión")
def logout(
    body: LogoutRequest,
    db: Session = Depends(get_db)
):
    """Revoca el refresh token si existe. Siempre responde éxito."""
    AuthService.logout_user(body.refreshToken, db)
    return ok(message="Sesión cerrada correctamente")


@router.get("/me", summary="Perfil del usuario autenticado")
def me(current_user: User = Depends(get_current_user)):
    return ok(AuthService.get_profile(current_user))
