# app/services/handlers/image_upload/validate_image.py
import logging

from app.core.config import settings
from app.core.security import BusinessRuleError
from app.services.handlers.base import ImageHandler
from app.services.handlers.image_upload.context import ImageUploadContext

logger = logging.getLogger(__name__)


class ValidateImageHandler(ImageHandler):
    """Comprueba que hay contenido, el tipo MIME y el tamaño máximo."""

    async def _handle(self, context: ImageUploadContext):
        if context.size == 0:
            raise BusinessRuleError("No se recibió ninguna imagen")

        if context.mimetype not in settings.ALLOWED_IMAGE_MIMETYPES:
            logger.info(f"[ValidateImageHandler] Tipo no permitido: {context.mimetype}")
            raise BusinessRuleError(
                f"Tipo de imagen no permitido. Permitidos: {', '.join(settings.ALLOWED_IMAGE_MIMETYPES)}"
            )

        if context.size > settings.MAX_FILE_SIZE_BYTES:
            raise BusinessRuleError(
                f"La imagen supera el tamaño máximo de {settings.MAX_FILE_SIZE_MB} MB"
            )
