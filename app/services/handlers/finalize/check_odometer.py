# app/services/handlers/finalize/check_odometer.py
from app.core.security import BusinessRuleError
from app.services.handlers.base import FinalizeHandler
from app.services.handlers.finalize.context import FinalizeContext


class CheckOdometerHandler(FinalizeHandler):
    """Cada vehículo asignado necesita kilometros_fin."""

    def _handle(self, context: FinalizeContext):
        for tv in context.trabajo.vehiculos:
            if not context.kilometros_fin.get(tv.vehicle_id):
                etiqueta = tv.vehicle.matricula if tv.vehicle else tv.vehicle_id
                raise BusinessRuleError(f"Faltan kilómetros finales para el vehículo {etiqueta}")
