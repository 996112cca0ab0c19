"""
Generación de identificadores de trabajo: TRB-<año>-<NNNN>.

La secuencia vive en la tabla trabajo_secuencias (una fila por año) y
se incrementa con un UPDATE atómico dentro de la transacción de
creación del trabajo, así dos creaciones concurrentes nunca obtienen
el mismo número.
"""

import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.models import Trabajo, TrabajoSecuencia

logger = logging.getLogger(__name__)


class IdentifierService:

    PREFIX = settings.TRABAJO_ID_PREFIX

    @staticmethod
    def format(year: int, sequence: int) -> str:
        return f"{IdentifierService.PREFIX}-{year}-{sequence:04d}"

    @staticmethod
    def parse_sequence(identificador: str) -> int:
        """Número de secuencia de un identificador (0 si no es parseable)."""
        try:
            return int(identificador.rsplit("-", 1)[-1])
        except (AttributeError, ValueError):
            return 0

    @staticmethod
    def _increment(db: Session, year: int) -> bool:
        updated = (
            db.query(TrabajoSecuencia)
            .filter(TrabajoSecuencia.anio == year)
            .update({TrabajoSecuencia.ultimo: TrabajoSecuencia.ultimo + 1},
                    synchronize_session=False)
        )
        return updated == 1

    @staticmethod
    def _last_existing_sequence(db: Session, year: int) -> int:
        """Mayor secuencia ya usada en el año (trabajos creados antes del contador)."""
        rows = (
            db.query(Trabajo.identificador)
            .filter(Trabajo.identificador.like(f"{IdentifierService.PREFIX}-{year}-%"))
            .all()
        )
        return max((IdentifierService.parse_sequence(r[0]) for r in rows), default=0)

    @staticmethod
    def allocate(db: Session, year: int) -> str:
        """
        Reserva el siguiente identificador del año.

        Debe llamarse dentro de la transacción que inserta el trabajo:
        si esa transacción hace rollback, el número no se consume.

        Pasos:
            1. UPDATE ultimo = ultimo + 1 para el año
            2. Si no hay fila, sembrarla (último existente + 1) en un savepoint
            3. Si otra petición la sembró antes, repetir el UPDATE

        Returns:
            str: Identificador con el formato TRB-2025-0001
        """
        if not IdentifierService._increment(db, year):
            seed = IdentifierService._last_existing_sequence(db, year) + 1
            try:
                with db.begin_nested():
                    db.add(TrabajoSecuencia(anio=year, ultimo=seed))
            except IntegrityError:
                logger.info(f"Secuencia {year} creada por otra petición, reintentando incremento")
                if not IdentifierService._increment(db, year):
                    raise

        ultimo = (
            db.query(TrabajoSecuencia.ultimo)
            .filter(TrabajoSecuencia.anio == year)
            .scalar()
        )
        identificador = IdentifierService.format(year, ultimo)
        logger.debug(f"Identificador asignado: {identificador}")
        return identificador
