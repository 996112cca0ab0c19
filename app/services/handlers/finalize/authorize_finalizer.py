# app/services/handlers/finalize/authorize_finalizer.py
import logging

from app.core.security import PermissionDeniedError
from app.services import authorization_service
from app.services.handlers.base import FinalizeHandler
from app.services.handlers.finalize.context import FinalizeContext

logger = logging.getLogger(__name__)


class AuthorizeFinalizerHandler(FinalizeHandler):
    """Un usuario solo operacional debe ser responsable de algún vehículo del trabajo."""

    def _handle(self, context: FinalizeContext):
        if not authorization_service.is_operational_only(context.user):
            return

        es_responsable = any(
            tv.responsable_user_id == context.user.id for tv in context.trabajo.vehiculos
        )
        if not es_responsable:
            logger.warning(
                f"Usuario {context.user.username} intentó finalizar {context.trabajo.identificador} sin ser responsable"
            )
            raise PermissionDeniedError("Solo el responsable puede finalizar este trabajo")
