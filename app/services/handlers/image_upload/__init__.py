from fastapi import UploadFile

from app.core.config import settings
from app.core.security import BusinessRuleError
from app.services.handlers.base import build_chain
from app.services.handlers.image_upload.context import ImageUploadContext
from app.services.handlers.image_upload.process_image import ProcessImageHandler
from app.services.handlers.image_upload.store_image import StoreImageHandler
from app.services.handlers.image_upload.validate_image import ValidateImageHandler

READ_CHUNK_SIZE = 64 * 1024


def _too_large() -> BusinessRuleError:
    return BusinessRuleError(f"La imagen supera el tamaño máximo de {settings.MAX_FILE_SIZE_MB} MB")


async def read_upload(image: UploadFile) -> bytes:
    """
    Lee la subida por bloques sin pasar de MAX_FILE_SIZE_BYTES.

    Si el cliente declaró el tamaño se rechaza antes de leer nada.
    """
    limit = settings.MAX_FILE_SIZE_BYTES
    if image.size is not None and image.size > limit:
        raise _too_large()

    chunks = []
    total = 0
    while True:
        chunk = await image.read(READ_CHUNK_SIZE)
        if not chunk:
            break
        total += len(chunk)
        if total > limit:
            raise _too_large()
        chunks.append(chunk)
    return b"".join(chunks)


async def process_upload(filename, content: bytes, mimetype: str, subdir: str) -> ImageUploadContext:
    """Valida, redimensiona y guarda una imagen. Devuelve el contexto con image_url."""
    chain = build_chain(ValidateImageHandler(), ProcessImageHandler(), StoreImageHandler())
    context = ImageUploadContext(filename, content, mimetype, subdir)
    await chain.handle(context)
    return context
