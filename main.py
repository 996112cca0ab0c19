"""
Punto de entrada principal de la aplicación FastAPI.

Back office de flota de ambulancias: autenticación, usuarios y roles,
vehículos, trabajos y evidencias fotográficas de cierre.
"""

import asyncio
import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from app.core.config import settings
from app.core.error_handlers import register_exception_handlers
from app.db.database import Database, DatabaseUnavailableError
from app.api.v1.routes.auth_endpoints import router as auth_router
from app.api.v1.routes.trabajos_endpoints import router as trabajos_router
from app.api.v1.routes.vehicles_endpoints import router as vehicles_router
from app.schemas.common_schemas import HealthResponse

load_dotenv()

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("flota")


async def connect_database(database: Database) -> None:
    """
    Conecta con reintentos y prepara el esquema.

    Corre en segundo plano para que /health responda mientras tanto.
    Si se agotan los reintentos o falla la creación del esquema el
    proceso termina con código 1.
    """
    try:
        await asyncio.to_thread(
            database.prepare,
            settings.DB_CONNECT_RETRIES,
            settings.DB_CONNECT_DELAY_SECONDS
        )
    except DatabaseUnavailableError as e:
        logger.critical(f"💥 {e}. Cerrando proceso.")
        os._exit(1)
    except Exception:
        logger.critical("💥 Error preparando la base de datos. Cerrando proceso.", exc_info=True)
        os._exit(1)


def create_app(database: Optional[Database] = None, connect_on_startup: bool = True) -> FastAPI:
    """
    Construye la aplicación.

    Args:
        database: Handle de base de datos (por defecto settings.DATABASE_URL)
        connect_on_startup: Lanzar la conexión con reintentos al arrancar.
            Los tests pasan False con una base ya conectada.
    """
    database = database or Database(settings.DATABASE_URL)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Gestiona el ciclo de vida de la aplicación.

        Al iniciar lanza la conexión a la base de datos; al cerrar libera
        el pool de conexiones.
        """
        logger.info("🚀 Iniciando aplicación...")
        connect_task = None
        if connect_on_startup:
            connect_task = asyncio.create_task(connect_database(database))
        yield
        logger.info("🛑 Cerrando aplicación...")
        if connect_task and not connect_task.done():
            connect_task.cancel()
        database.dispose()

    app = FastAPI(
        title="Flota - Back Office",
        description="API de gestión de flota de ambulancias, trabajos y evidencias de cierre",
        version="1.0.0",
        lifespan=lifespan
    )
    app.state.database = database

    register_exception_handlers(app)

    # Configurar middleware CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Incluir routers de endpoints
    app.include_router(auth_router, prefix=settings.API_PREFIX)
    app.include_router(trabajos_router, prefix=settings.API_PREFIX)
    app.include_router(vehicles_router, prefix=settings.API_PREFIX)

    @app.get("/health", response_model=HealthResponse, tags=["health"])
    def health():
        """
        Estado del servicio.

        Responde aunque la base de datos todavía no esté conectada.
        """
        if database.connected:
            db_status = "connected"
        elif connect_on_startup:
            db_status = "connecting"
        else:
            db_status = "unavailable"

        return {
            "status": "ok" if database.connected else "degraded",
            "database": db_status,
            "service": "flota-backoffice",
            "environment": settings.ENVIRONMENT,
        }

    # Montar directorio de archivos estáticos
    os.makedirs(settings.UPLOADS_DIR, exist_ok=True)
    app.mount("/uploads", StaticFiles(directory=settings.UPLOADS_DIR), name="uploads")

    return app


app = create_app()
