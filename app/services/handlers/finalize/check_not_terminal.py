# app/services/handlers/finalize/check_not_terminal.py
from app.core.security import BusinessRuleError
from app.services.handlers.base import FinalizeHandler
from app.services.handlers.finalize.context import FinalizeContext


class CheckNotTerminalHandler(FinalizeHandler):

    def _handle(self, context: FinalizeContext):
        if context.trabajo.is_terminal:
            raise BusinessRuleError("El trabajo ya está finalizado")
