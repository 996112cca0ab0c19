"""
Utilidades compartidas por los servicios: reloj de negocio y paginación.
"""

import math
from datetime import datetime, timezone
from typing import Any, Dict, Tuple

from app.core.config import settings


def utcnow() -> datetime:
    """
    Hora actual en UTC sin tzinfo.

    Es el reloj de negocio (bloqueo de cuentas, expiración de refresh
    tokens, finalización anticipada). Los servicios lo llaman como
    utils.utcnow() para poder sustituirlo en tests.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """Normaliza un datetime con zona horaria a UTC naive."""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def page_params(page: int = None, limit: int = None) -> Tuple[int, int, int]:
    """
    Normaliza página y límite.

    Returns:
        Tuple[int, int, int]: (page, limit, offset)
    """
    page = max(1, page or 1)
    limit = min(limit or settings.DEFAULT_PAGE_LIMIT, settings.MAX_PAGE_LIMIT)
    limit = max(1, limit)
    return page, limit, (page - 1) * limit


def pagination_meta(total: int, page: int, limit: int) -> Dict[str, Any]:
    return {
        "total": total,
        "page": page,
        "limit": limit,
        "totalPages": math.ceil(total / limit) if limit else 0,
        "hasNext": page * limit < total,
        "hasPrev": page > 1,
    }
