# app/services/handlers/finalize/check_evidence.py
import logging

from app.core.security import BusinessRuleError
from app.services import evidence_service
from app.services.handlers.base import FinalizeHandler
from app.services.handlers.finalize.context import FinalizeContext

logger = logging.getLogger(__name__)


class CheckEvidenceHandler(FinalizeHandler):
    """
    Cada vehículo asignado necesita las cinco categorías de evidencia.

    El error lista un elemento por vehículo incompleto; el mensaje
    principal nombra el primero.
    """

    def _handle(self, context: FinalizeContext):
        trabajo = context.trabajo
        matriculas = {tv.vehicle_id: tv.vehicle.matricula for tv in trabajo.vehiculos if tv.vehicle}
        errors = []

        for vehicle_id in context.vehicle_ids:
            progreso = evidence_service.progress(context.db, vehicle_id, trabajo.id)
            if progreso["completo"]:
                continue
            etiqueta = matriculas.get(vehicle_id, vehicle_id)
            errors.append({
                "field": "evidencias",
                "vehicle_id": vehicle_id,
                "faltantes": progreso["faltantes"],
                "message": f"Faltan evidencias del vehículo {etiqueta}: {', '.join(progreso['faltantes'])}",
            })

        if errors:
            logger.info(f"Finalización de {trabajo.identificador} rechazada: evidencias incompletas")
            raise BusinessRuleError(errors[0]["message"], errors=errors)
