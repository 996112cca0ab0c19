from app.services.handlers.base import build_chain
from app.services.handlers.finalize.authorize_finalizer import AuthorizeFinalizerHandler
from app.services.handlers.finalize.check_evidence import CheckEvidenceHandler
from app.services.handlers.finalize.check_not_terminal import CheckNotTerminalHandler
from app.services.handlers.finalize.check_odometer import CheckOdometerHandler
from app.services.handlers.finalize.context import FinalizeContext
from app.services.handlers.finalize.detect_early_finish import DetectEarlyFinishHandler
from app.services.handlers.finalize.persist_finalization import PersistFinalizationHandler


def build_finalize_chain():
    """Cadena en el orden en que se evalúan las reglas de cierre."""
    return build_chain(
        AuthorizeFinalizerHandler(),
        CheckNotTerminalHandler(),
        DetectEarlyFinishHandler(),
        CheckEvidenceHandler(),
        CheckOdometerHandler(),
        PersistFinalizationHandler(),
    )


__all__ = ["FinalizeContext", "build_finalize_chain"]
