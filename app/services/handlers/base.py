"""
Módulo base de handlers para patrones Chain of Responsibility.

Implementa las clases base de las cadenas usadas en la aplicación:
    - FinalizeHandler: Cierre de trabajos (autorización, estado, evidencias, km)
    - ImageHandler: Procesamiento de imágenes subidas (validar, redimensionar, guardar)

Patrón Chain of Responsibility:
    - Cada handler procesa una parte de la lógica
    - Pasa contexto al siguiente handler
    - Un handler que lanza excepción corta la cadena

Utilidad:
    - Modularizar flujos con varias comprobaciones ordenadas
    - Separar responsabilidades
    - Detectar ciclos infinitos
"""

from abc import ABC, abstractmethod
import logging

logger = logging.getLogger(__name__)


# =========================================================
# UTILIDADES
# =========================================================

def verify_chain_integrity(handler_chain) -> bool:
    """
    Verificar que la cadena de handlers esté bien formada sin ciclos.

    Recorre la cadena desde el handler inicial guardando el id() de
    cada handler visitado; si un id se repite hay un ciclo.

    Args:
        handler_chain: Handler inicial de la cadena

    Returns:
        bool: True si válida, False si hay ciclos

    Notas:
        - Se llama una vez al construir la cadena
        - No en ruta crítica de cada handler
    """
    visited = set()
    current = handler_chain
    chain_list = []

    while current is not None:
        handler_name = current.__class__.__name__
        handler_id = id(current)

        if handler_id in visited:
            logger.error(
                f"Ciclo detectado en cadena de handlers. "
                f"Cadena hasta ciclo: {' -> '.join(chain_list)}. "
                f"Handler que repite: {handler_name}"
            )
            return False

        visited.add(handler_id)
        chain_list.append(handler_name)
        current = current._next_handler

    logger.debug(f"Cadena de handlers válida: {' -> '.join(chain_list)}")
    return True


def build_chain(*handlers):
    """
    Enlaza los handlers en el orden dado y devuelve el primero.

    Raises:
        RuntimeError: Si la cadena resultante tiene ciclos
    """
    if not handlers:
        raise ValueError("Se necesita al menos un handler")
    for current, following in zip(handlers, handlers[1:]):
        current.set_next(following)
    if not verify_chain_integrity(handlers[0]):
        raise RuntimeError("Cadena de handlers inválida")
    return handlers[0]


# =========================================================
# FINALIZE HANDLERS
# =========================================================

class FinalizeHandler(ABC):
    """
    Clase base para handlers de finalización de trabajos.

    Cadena:
        AuthorizeFinalizerHandler
            ↓
        CheckNotTerminalHandler
            ↓
        DetectEarlyFinishHandler
            ↓
        CheckEvidenceHandler
            ↓
        CheckOdometerHandler
            ↓
        PersistFinalizationHandler

    Los handlers se ejecutan con el trabajo ya bloqueado (FOR UPDATE)
    y dentro de la transacción abierta por TrabajoService.

    Uso:
        class CustomHandler(FinalizeHandler):
            def _handle(self, context):
                if not context.trabajo.vehiculos:
                    raise BusinessRuleError("...")
    """

    def __init__(self):
        """Inicializar handler."""
        self._next_handler = None

    def set_next(self, handler: "FinalizeHandler") -> "FinalizeHandler":
        """
        Establecer siguiente handler en la cadena.

        Raises:
            ValueError: Si handler intenta ser su propio siguiente
        """
        if handler is self:
            raise ValueError(
                f"Un handler no puede ser su propio siguiente: {self.__class__.__name__}"
            )
        self._next_handler = handler
        return handler

    def handle(self, context):
        """Ejecutar handler actual y continuar cadena."""
        logger.debug(f"Ejecutando {self.__class__.__name__} para trabajo {context.trabajo.id}")
        self._handle(context)
        if self._next_handler:
            self._next_handler.handle(context)

    @abstractmethod
    def _handle(self, context):
        """Lógica específica (implementar en subclass)."""
        pass


# =========================================================
# IMAGE HANDLERS
# =========================================================

class ImageHandler(ABC):
    """
    Clase base para handlers de imágenes subidas (asíncronos).

    Cadena:
        ValidateImageHandler
            ↓
        ProcessImageHandler
            ↓
        StoreImageHandler

    El trabajo de CPU y disco (Pillow, escritura) se ejecuta en un
    hilo con asyncio.to_thread para no bloquear el event loop.
    """

    def __init__(self):
        """Inicializar handler."""
        self._next_handler = None

    def set_next(self, handler: "ImageHandler") -> "ImageHandler":
        if handler is self:
            raise ValueError(
                f"Un handler no puede ser su propio siguiente: {self.__class__.__name__}"
            )
        self._next_handler = handler
        return handler

    async def handle(self, context):
        """
        Ejecutar handler actual y continuar cadena.

        Raises:
            Exception: Cualquier excepción de _handle propagada
        """
        handler_name = self.__class__.__name__
        try:
            logger.debug(f"Ejecutando handler {handler_name} para imagen {context.filename}")
            await self._handle(context)
        except Exception as e:
            logger.warning(f"Error en handler {handler_name} para imagen {context.filename}: {e}")
            raise

        if self._next_handler:
            await self._next_handler.handle(context)

    @abstractmethod
    async def _handle(self, context):
        """Lógica específica (implementar en subclass)."""
        pass
