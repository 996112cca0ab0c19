# app/services/handlers/finalize/detect_early_finish.py
from app.core.security import BusinessRuleError
from app.enums.enums import EstadoTrabajo
from app.services.handlers.base import FinalizeHandler
from app.services.handlers.finalize.context import FinalizeContext


class DetectEarlyFinishHandler(FinalizeHandler):
    """
    Finalizar antes de fecha_fin es anticipado y exige motivo.

    Fija context.estado_final. Si no es anticipado el motivo se descarta.
    """

    def _handle(self, context: FinalizeContext):
        context.is_early = context.now < context.trabajo.fecha_fin

        if context.is_early:
            if not context.motivo:
                raise BusinessRuleError("Es obligatorio indicar el motivo de finalización anticipada")
            context.estado_final = EstadoTrabajo.finalizado_anticipado
        else:
            context.motivo = None
            context.estado_final = EstadoTrabajo.finalizado
