# app/services/handlers/image_upload/store_image.py
import asyncio
import logging

from app.services import storage_service
from app.services.handlers.base import ImageHandler
from app.services.handlers.image_upload.context import ImageUploadContext

logger = logging.getLogger(__name__)


class StoreImageHandler(ImageHandler):
    """Escribe el JPEG procesado bajo UPLOADS_DIR/<subdir>."""

    async def _handle(self, context: ImageUploadContext):
        context.image_url = await asyncio.to_thread(
            storage_service.save_bytes, context.processed, context.subdir, "jpg"
        )
        logger.info(
            f"🖼️ Imagen guardada {context.image_url} ({context.width}x{context.height})"
        )
