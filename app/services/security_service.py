# app/services/security_service.py
import hashlib
import logging
import re
import secrets
import uuid
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional, Tuple

from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext

from app.core.config import settings
from app.core.security import InvalidTokenError, WeakPasswordError

logger = logging.getLogger(__name__)

# ========================================
#  CONFIGURACIÓN
# ========================================
SECRET_KEY = settings.SECRET_KEY
ALGORITHM = settings.ALGORITHM
ACCESS_TOKEN_EXPIRE_MINUTES = settings.ACCESS_TOKEN_EXPIRE_MINUTES
REFRESH_TOKEN_EXPIRE_DAYS = settings.REFRESH_TOKEN_EXPIRE_DAYS

#  ÚNICA instancia de pwd_context en toda la aplicación
pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.BCRYPT_ROUNDS
)

# ========================================
#  FUNCIONES DE PASSWORD
# ========================================
def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Verifica que la contraseña en texto plano coincida con el hash.

    Args:
        plain_password: Contraseña en texto plano
        hashed_password: Hash almacenado en la base de datos

    Returns:
        bool: True si la contraseña es correcta
    """
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except (ValueError, TypeError) as e:
        logger.error(f"Error verificando password: {e}")
        return False


def hash_password(password: str) -> str:
    """Genera un hash bcrypt de la contraseña."""
    return pwd_context.hash(password)


def password_policy_problems(password: Optional[str]) -> List[str]:
    """
    Lista de incumplimientos de la política de contraseñas.

    Returns:
        List[str]: Vacía si la contraseña es válida
    """
    password = password or ""
    problems = []
    if len(password) < 8:
        problems.append("Mínimo 8 caracteres")
    if not re.search(r"[A-Z]", password):
        problems.append("Debe incluir al menos una mayúscula")
    if not re.search(r"[a-z]", password):
        problems.append("Debe incluir al menos una minúscula")
    if not re.search(r"[0-9]", password):
        problems.append("Debe incluir al menos un número")
    if not re.search(r"[^A-Za-z0-9]", password):
        problems.append("Debe incluir al menos un carácter especial")
    return problems


def validate_password_strength(password: Optional[str]) -> None:
    """
    Raises:
        WeakPasswordError: Con un error por cada regla incumplida
    """
    problems = password_policy_problems(password)
    if problems:
        raise WeakPasswordError(problems)

# ========================================
#  FUNCIONES DE JWT (ACCESS TOKEN)
# ========================================
def create_access_token(
    user_id: int,
    username: str,
    roles: Iterable[str],
    expires_delta: Optional[timedelta] = None
) -> str:
    """
    Crea un JWT access token.

    Claims: sub, username, roles, jti (uuid4), type="access", exp.

    Returns:
        str: Token JWT codificado
    """
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode = {
        "sub": str(user_id),
        "username": username,
        "roles": list(roles),
        "jti": str(uuid.uuid4()),
        "type": "access",
        "exp": expire,
    }
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def decode_access_token(token: str) -> dict:
    """
    Decodifica y valida un access token.

    Raises:
        InvalidTokenError: Si el token es inválido, expiró o no es de tipo access
    """
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except ExpiredSignatureError:
        raise InvalidTokenError("Token expirado. Utiliza el endpoint /auth/refresh")
    except JWTError as e:
        logger.warning(f"Token decode error: {e}")
        raise InvalidTokenError("Token inválido")

    if payload.get("type") != "access":
        raise InvalidTokenError("Tipo de token incorrecto")
    if not payload.get("sub"):
        raise InvalidTokenError("Token inválido")
    return payload

# ========================================
#  REFRESH TOKENS OPACOS
# ========================================
def generate_refresh_token() -> Tuple[str, str]:
    """
    Genera un refresh token opaco y su hash para almacenar en BD.

    Returns:
        Tuple[str, str]: (token en claro para el cliente, hash SHA-256 hex)
    """
    token = f"{uuid.uuid4()}-{secrets.token_hex(32)}"
    return token, hash_refresh_token(token)


def hash_refresh_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def refresh_token_expires_at(now: datetime) -> datetime:
    return now + timedelta(days=REFRESH_TOKEN_EXPIRE_DAYS)
