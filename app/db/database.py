"""
Módulo de configuración de base de datos.

Gestiona la conexión a la base de datos: el handle Database (motor
SQLAlchemy + factory de sesiones), la base declarativa de los modelos,
la conexión con reintentos al arrancar y la inyección de sesiones en
FastAPI.

Configuración soportada:
    - SQLite: Desarrollo local y tests
    - MySQL / PostgreSQL: Producción

Componentes:
    - Base: Declarative base para modelos ORM
    - Database: Handle explícito con ciclo de vida (connect/dispose)
    - get_db: Dependency injection para FastAPI
"""

import logging
import time
from typing import Callable, Optional

from fastapi import HTTPException, Request, status
from sqlalchemy import create_engine, text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

logger = logging.getLogger(__name__)

# **Base**: Base declarativa para definir modelos ORM
#   - Base.metadata contiene la definición de todas las tablas
Base = declarative_base()


class DatabaseUnavailableError(RuntimeError):
    """No se pudo conectar a la base de datos tras todos los reintentos"""


class Database:
    """
    Handle de la base de datos con ciclo de vida explícito.

    Se construye una vez al crear la aplicación y se guarda en
    app.state.database. Cada request obtiene su propia sesión a
    través de get_db.

    Ciclo de vida:
        1. Database(url) crea el motor (sin conectar todavía)
        2. prepare() verifica la conexión con reintentos, crea tablas
           y roles y solo entonces marca connected
        3. dispose() libera el pool al cerrar

    Example:
        database = Database("sqlite:///./flota.db")
        database.prepare()
        with database.session() as db:
            db.query(Vehicle).count()
    """

    def __init__(self, url: str, **engine_kwargs):
        self.url = url
        connect_args = engine_kwargs.pop("connect_args", {})
        if url.startswith("sqlite"):
            # SQLite necesita permitir el uso desde varios hilos
            connect_args.setdefault("check_same_thread", False)
        else:
            engine_kwargs.setdefault("pool_pre_ping", True)

        self.engine = create_engine(url, connect_args=connect_args, **engine_kwargs)
        self.SessionLocal = sessionmaker(
            autocommit=False,  # Transacciones explícitas
            autoflush=False,   # Flush explícito
            bind=self.engine
        )
        self.connected = False

    def session(self) -> Session:
        """Crea una sesión nueva ligada al motor."""
        return self.SessionLocal()

    def ping(self) -> None:
        with self.engine.connect() as conn:
            conn.execute(text("SELECT 1"))

    def connect_with_retry(
        self,
        retries: int = 10,
        delay_seconds: float = 3,
        sleep: Callable[[float], None] = time.sleep
    ) -> None:
        """
        Verifica la conexión con reintentos de espera fija.

        Args:
            retries: Número máximo de intentos
            delay_seconds: Espera entre intentos
            sleep: Función de espera (inyectable en tests)

        Raises:
            DatabaseUnavailableError: Si se agotan los intentos
        """
        for attempt in range(1, retries + 1):
            try:
                self.ping()
                logger.info("✅ Conexión a la base de datos establecida")
                return
            except OperationalError as e:
                remaining = retries - attempt
                logger.error(
                    f"❌ Error conectando a la base de datos "
                    f"({remaining} intentos restantes): {e}"
                )
                if remaining == 0:
                    break
                sleep(delay_seconds)

        raise DatabaseUnavailableError(
            f"No se pudo conectar a la base de datos tras {retries} intentos"
        )

    def init_schema(self) -> None:
        """Crea las tablas si no existen y siembra los roles base."""
        # Importar modelos para registrarlos en Base.metadata
        from app.models import models  # noqa: F401
        from app.core.init_roles import init_roles

        Base.metadata.create_all(bind=self.engine)
        logger.info("✅ Tablas de base de datos verificadas/creadas")

        with self.session() as db:
            init_roles(db)

    def prepare(
        self,
        retries: int = 10,
        delay_seconds: float = 3,
        sleep: Callable[[float], None] = time.sleep
    ) -> None:
        """
        Conecta con reintentos y prepara el esquema.

        Solo marca la base como conectada cuando tablas y roles están listos;
        cualquier fallo se propaga y connected sigue en False.
        """
        self.connect_with_retry(retries, delay_seconds, sleep)
        self.init_schema()
        self.connected = True

    def dispose(self) -> None:
        self.engine.dispose()
        self.connected = False


def get_db(request: Request):
    """
    Obtener sesión de base de datos para inyectar en endpoints.

    Toma el handle Database de app.state y abre una sesión por request.
    La sesión se cierra siempre, incluso si el endpoint lanza error.

    Yields:
        Session: Sesión SQLAlchemy lista para usar
    """
    database: Optional[Database] = getattr(request.app.state, "database", None)
    if database is None or not database.connected:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Base de datos no disponible"
        )

    db = database.session()
    try:
        yield db
    finally:
        db.close()
