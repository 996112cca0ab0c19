import logging
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Tuple

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.security import AccountLockedError, InvalidCredentialsError, InvalidTokenError, ServiceError
from app.db.crud import crud
from app.db.database import get_db
from app.models.models import LoginAttempt, RefreshToken, User
from app.schemas.auth_schemas import LoginResponse, ProfileResponse, SessionUser, TokenPair
from app.services import security_service, utils

# ========================================
# 🔧 CONFIGURACIÓN INICIAL
# ========================================

# Esquema Bearer (el login recibe JSON, tokenUrl solo documenta)
oauth2_scheme = OAuth2PasswordBearer(
    tokenUrl=f"{settings.API_PREFIX}/auth/login",
    auto_error=False
)

# Logger
logger = logging.getLogger(__name__)

# ========================================
#  SERVICIO DE AUTENTICACIÓN
# ========================================

class AuthService:
    """
    Servicio de autenticación y sesiones

    Proporciona funcionalidades para:
    - Login con bloqueo por ventana deslizante de intentos fallidos
    - Emisión de access token (JWT) y refresh token opaco
    - Rotación del refresh token en cada uso
    - Cierre de sesión
    """

    # Configuración de seguridad
    MAX_LOGIN_ATTEMPTS = settings.ACCOUNT_LOCKOUT_ATTEMPTS
    LOCKOUT_DURATION = timedelta(minutes=settings.ACCOUNT_LOCKOUT_DURATION_MINUTES)
    USER_AGENT_MAX_LENGTH = 500

    @staticmethod
    @contextmanager
    def db_transaction(db: Session):
        """
        Context manager para transacciones de base de datos con rollback automático

        Args:
            db: Sesión de base de datos

        Yields:
            Sesión de base de datos
        """
        try:
            yield db
            db.commit()
        except ServiceError:
            db.rollback()
            raise
        except Exception as e:
            db.rollback()
            logger.error(f"Database transaction failed: {e}")
            raise

    @staticmethod
    def _is_account_locked(username: str, db: Session, now: datetime) -> bool:
        """
        Cuenta los intentos fallidos dentro de la ventana de bloqueo

        Args:
            username: Username intentado
            db: Sesión de base de datos
            now: Hora actual (reloj de negocio)

        Returns:
            bool: True si se alcanzó el máximo de intentos fallidos
        """
        window_start = now - AuthService.LOCKOUT_DURATION

        failed_attempts = (
            db.query(LoginAttempt)
            .filter(
                LoginAttempt.username == username,
                LoginAttempt.success.is_(False),
                LoginAttempt.attempted_at >= window_start
            )
            .count()
        )
        return failed_attempts >= AuthService.MAX_LOGIN_ATTEMPTS

    @staticmethod
    def _log_login_attempt(
        username: str,
        success: bool,
        db: Session,
        now: datetime,
        ip_address: str = None,
        user_agent: str = None
    ) -> None:
        """
        Registra intento de login para auditoría y bloqueo
        """
        with AuthService.db_transaction(db):
            db.add(LoginAttempt(
                username=username[:100],
                success=success,
                ip_address=ip_address,
                user_agent=user_agent[:AuthService.USER_AGENT_MAX_LENGTH] if user_agent else None,
                attempted_at=now
            ))

    @staticmethod
    def login_user(
        username: str,
        password: str,
        db: Session,
        ip_address: str,
        user_agent: str
    ) -> Dict[str, Any]:
        """
        Autenticar usuario y generar tokens

        El mensaje de error es el mismo si el usuario no existe, está
        inactivo o la contraseña no coincide.

        Raises:
            AccountLockedError: Demasiados intentos fallidos en la ventana
            InvalidCredentialsError: Credenciales incorrectas
        """
        now = utils.utcnow()

        # 1. Verificar bloqueo antes de comparar hashes
        if AuthService._is_account_locked(username, db, now):
            AuthService._log_login_attempt(username, False, db, now, ip_address, user_agent)
            logger.warning(f"🔒 Login bloqueado para {username} desde {ip_address}")
            raise AccountLockedError(
                "Cuenta bloqueada temporalmente por exceso de intentos fallidos. "
                f"Intenta de nuevo en {settings.ACCOUNT_LOCKOUT_DURATION_MINUTES} minutos."
            )

        # 2. Buscar usuario y verificar contraseña
        user = crud.get_user_by_username(db, username)
        if (
            not user
            or not user.is_enabled
            or not security_service.verify_password(password, user.password_hash)
        ):
            AuthService._log_login_attempt(username, False, db, now, ip_address, user_agent)
            logger.info(f"Login fallido: {username} desde {ip_address}")
            raise InvalidCredentialsError("Credenciales incorrectas")

        # 3. Registrar intento exitoso y emitir sesión
        AuthService._log_login_attempt(username, True, db, now, ip_address, user_agent)
        session = AuthService.issue_session(user, db, ip_address, user_agent)
        logger.info(f"✅ Login exitoso: {username} desde {ip_address}")
        return session

    @staticmethod
    def issue_session(
        user: User,
        db: Session,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Emite access token y refresh token (solo se guarda su hash)

        Returns:
            dict: accessToken, refreshToken, expiresIn y datos del usuario
        """
        roles = user.roles
        access_token = security_service.create_access_token(user.id, user.username, roles)
        refresh_token, token_hash = security_service.generate_refresh_token()

        with AuthService.db_transaction(db):
            db.add(RefreshToken(
                user_id=user.id,
                token_hash=token_hash,
                expires_at=security_service.refresh_token_expires_at(utils.utcnow()),
                ip_address=ip_address,
                user_agent=user_agent[:AuthService.USER_AGENT_MAX_LENGTH] if user_agent else None
            ))

        return LoginResponse(
            accessToken=access_token,
            refreshToken=refresh_token,
            expiresIn=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
            user=SessionUser(
                id=user.id,
                username=user.username,
                nombre=user.nombre,
                apellidos=user.apellidos,
                roles=roles,
            ),
        ).model_dump()

    @staticmethod
    def refresh_tokens(
        refresh_token: str,
        db: Session,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Rota el refresh token: revoca el presentado y emite uno nuevo
        en una sola transacción.

        Raises:
            InvalidTokenError: Token desconocido, revocado, expirado o cuenta inactiva
        """
        now = utils.utcnow()
        token_hash = security_service.hash_refresh_token(refresh_token)

        stored = db.query(RefreshToken).filter(RefreshToken.token_hash == token_hash).first()
        if not stored:
            raise InvalidTokenError("Refresh token inválido")
        if stored.revoked:
            logger.warning(f"⚠️ Reutilización de refresh token revocado (user_id={stored.user_id})")
            raise InvalidTokenError("Refresh token revocado")
        if stored.expires_at < now:
            raise InvalidTokenError("Refresh token expirado")

        user = stored.user
        if not user or not user.is_enabled:
            raise InvalidTokenError("Cuenta inactiva")

        new_refresh_token, new_hash = security_service.generate_refresh_token()

        with AuthService.db_transaction(db):
            # Revocación condicional: una rotación concurrente solo gana una vez
            revoked = (
                db.query(RefreshToken)
                .filter(RefreshToken.id == stored.id, RefreshToken.revoked.is_(False))
                .update({RefreshToken.revoked: True, RefreshToken.revoked_at: now},
                        synchronize_session=False)
            )
            if revoked != 1:
                raise InvalidTokenError("Refresh token revocado")

            db.add(RefreshToken(
                user_id=user.id,
                token_hash=new_hash,
                expires_at=security_service.refresh_token_expires_at(now),
                ip_address=ip_address,
                user_agent=user_agent[:AuthService.USER_AGENT_MAX_LENGTH] if user_agent else None
            ))

        logger.info(f"🔄 Refresh token rotado para {user.username}")
        return TokenPair(
            accessToken=security_service.create_access_token(user.id, user.username, user.roles),
            refreshToken=new_refresh_token,
            expiresIn=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        ).model_dump()

    @staticmethod
    def logout_user(refresh_token: Optional[str], db: Session) -> bool:
        """
        Revoca el refresh token si existe.

        Siempre retorna True: no revela si el token existía.
        """
        if not refresh_token:
            return True

        token_hash = security_service.hash_refresh_token(refresh_token)
        with AuthService.db_transaction(db):
            db.query(RefreshToken).filter(
                RefreshToken.token_hash == token_hash,
                RefreshToken.revoked.is_(False)
            ).update(
                {RefreshToken.revoked: True, RefreshToken.revoked_at: utils.utcnow()},
                synchronize_session=False
            )
        return True

    @staticmethod
    def revoke_user_tokens(user_id: int, db: Session, now: datetime) -> int:
        """Revoca todos los refresh tokens vigentes de un usuario (sin commit)."""
        return (
            db.query(RefreshToken)
            .filter(RefreshToken.user_id == user_id, RefreshToken.revoked.is_(False))
            .update({RefreshToken.revoked: True, RefreshToken.revoked_at: now},
                    synchronize_session=False)
        )

    @staticmethod
    def get_user_from_token(token: str, db: Session) -> User:
        """
        Obtiene el usuario autenticado a partir del access token

        Raises:
            InvalidTokenError: Token inválido o usuario inactivo/eliminado
        """
        payload = security_service.decode_access_token(token)

        try:
            user_id = int(payload["sub"])
        except (TypeError, ValueError):
            raise InvalidTokenError("Token inválido")

        user = db.query(User).filter(User.id == user_id).first()
        if not user:
            raise InvalidTokenError("Usuario no encontrado")
        if not user.is_enabled:
            raise InvalidTokenError("Cuenta inactiva o eliminada")
        return user

    @staticmethod
    def get_profile(user: User) -> Dict[str, Any]:
        """Perfil del usuario autenticado con sus roles"""
        return ProfileResponse.model_validate(user).model_dump()


# ========================================
#  DEPENDENCIAS
# ========================================

def get_current_user(
    token: Optional[str] = Depends(oauth2_scheme),
    db: Session = Depends(get_db)
) -> User:
    """
    Dependencia para obtener usuario autenticado desde token

    Raises:
        HTTPException: 401 si falta el token o no es válido
    """
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token de acceso no proporcionado",
            headers={"WWW-Authenticate": "Bearer"}
        )
    try:
        return AuthService.get_user_from_token(token, db)
    except InvalidTokenError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=e.message,
            headers={"WWW-Authenticate": "Bearer"}
        )


def get_client_info(request: Request) -> Tuple[str, str]:
    """
    Extrae información del cliente desde la request

    Returns:
        tuple[str, str]: Dirección IP y User-Agent
    """
    ip_address = request.client.host if request.client else "unknown"
    user_agent = request.headers.get("user-agent", "unknown")
    return ip_address, user_agent
