# app/services/handlers/finalize/persist_finalization.py
import logging

from app.db.crud import crud
from app.models.models import Vehicle
from app.services.handlers.base import FinalizeHandler
from app.services.handlers.finalize.context import FinalizeContext

logger = logging.getLogger(__name__)


class PersistFinalizationHandler(FinalizeHandler):
    """
    Escribe el estado final, los kilómetros de cierre y avanza el
    odómetro de cada vehículo. No hace commit: la transacción la
    controla TrabajoService.finalize.
    """

    def _handle(self, context: FinalizeContext):
        trabajo = context.trabajo
        db = context.db
        today = context.now.date()

        trabajo.estado = context.estado_final
        trabajo.motivo_finalizacion_anticipada = context.motivo

        for tv in trabajo.vehiculos:
            tv.kilometros_fin = context.kilometros_fin[tv.vehicle_id]

        for vehicle_id in context.vehicle_ids:
            km = context.kilometros_fin[vehicle_id]
            crud.ratchet_odometer(db, vehicle_id, km)
            db.query(Vehicle).filter(Vehicle.id == vehicle_id).update(
                {Vehicle.fecha_ultimo_servicio: today}, synchronize_session=False
            )

        logger.info(f"🏁 Trabajo {trabajo.identificador} -> {context.estado_final.value}")
