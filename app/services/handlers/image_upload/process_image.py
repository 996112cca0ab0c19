# app/services/handlers/image_upload/process_image.py
import asyncio
import io
import logging

from PIL import Image, ImageOps, UnidentifiedImageError

from app.core.config import settings
from app.core.security import BusinessRuleError
from app.services.handlers.base import ImageHandler
from app.services.handlers.image_upload.context import ImageUploadContext

logger = logging.getLogger(__name__)


def resize_to_jpeg(content: bytes, max_width: int, quality: int):
    """
    Orienta según EXIF, reduce al ancho máximo (LANCZOS) y codifica
    como JPEG progresivo.

    Returns:
        tuple: (bytes JPEG, ancho, alto)
    """
    with Image.open(io.BytesIO(content)) as img:
        img = ImageOps.exif_transpose(img)
        if img.mode != "RGB":
            img = img.convert("RGB")

        if img.width > max_width:
            height = max(1, round(img.height * max_width / img.width))
            img = img.resize((max_width, height), Image.Resampling.LANCZOS)

        buffer = io.BytesIO()
        img.save(buffer, format="JPEG", quality=quality, progressive=True, optimize=True)
        return buffer.getvalue(), img.width, img.height


class ProcessImageHandler(ImageHandler):
    """Decodifica y redimensiona con Pillow fuera del event loop."""

    async def _handle(self, context: ImageUploadContext):
        try:
            processed, width, height = await asyncio.to_thread(
                resize_to_jpeg,
                context.content,
                settings.IMAGE_RESIZE_WIDTH,
                settings.IMAGE_JPEG_QUALITY,
            )
        except (UnidentifiedImageError, OSError) as e:
            logger.info(f"[ProcessImageHandler] Imagen ilegible {context.filename}: {e}")
            raise BusinessRuleError("El archivo no es una imagen válida")

        context.processed = processed
        context.width = width
        context.height = height
