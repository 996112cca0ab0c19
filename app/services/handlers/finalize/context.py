# app/services/handlers/finalize/context.py
from datetime import datetime
from typing import Dict, Optional


class FinalizeContext:
    """
    Contexto de la finalización de un trabajo.

    Entrada: trabajo (bloqueado FOR UPDATE), user, db, now, motivo y
    kilometros_fin por vehicle_id.
    Salida: is_early y estado_final.
    """

    def __init__(
        self,
        trabajo,
        user,
        db,
        now: datetime,
        motivo: Optional[str] = None,
        kilometros_fin: Optional[Dict[int, int]] = None
    ):
        self.trabajo = trabajo
        self.user = user
        self.db = db
        self.now = now
        self.motivo = motivo.strip() if motivo and motivo.strip() else None
        self.kilometros_fin = kilometros_fin or {}

        self.is_early = False
        self.estado_final = None

    @property
    def vehicle_ids(self):
        """Vehículos asignados distintos, en orden de asignación."""
        return list(dict.fromkeys(tv.vehicle_id for tv in self.trabajo.vehiculos))
