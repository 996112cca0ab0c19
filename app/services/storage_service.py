import logging
import os
import uuid

from app.core.config import settings

logger = logging.getLogger(__name__)

URL_PREFIX = "/uploads"


def _uploads_root() -> str:
    return os.path.abspath(settings.UPLOADS_DIR)


def save_bytes(data: bytes, subdir: str, extension: str = "jpg") -> str:
    """
    Escribe el contenido en UPLOADS_DIR/<subdir>/<uuid4>.<ext>.

    Returns:
        str: URL pública /uploads/<subdir>/<archivo>
    """
    folder = os.path.join(_uploads_root(), subdir)
    os.makedirs(folder, exist_ok=True)

    filename = f"{uuid.uuid4()}.{extension}"
    with open(os.path.join(folder, filename), "wb") as f:
        f.write(data)

    return f"{URL_PREFIX}/{subdir}/{filename}"


def url_to_path(url: str) -> str:
    """Ruta en disco de una URL /uploads/...; rechaza rutas fuera del directorio."""
    if not url or not url.startswith(URL_PREFIX + "/"):
        raise ValueError(f"URL de upload no válida: {url}")
    relative = url[len(URL_PREFIX) + 1:]
    root = _uploads_root()
    path = os.path.abspath(os.path.join(root, relative))
    if os.path.commonpath([root, path]) != root:
        raise ValueError(f"URL de upload no válida: {url}")
    return path


def delete_file(url: str) -> bool:
    """
    Borra el archivo asociado a una URL de upload.

    Returns:
        bool: False si el archivo ya no existía
    """
    path = url_to_path(url)
    if not os.path.exists(path):
        logger.warning(f"⚠️ Archivo no encontrado al borrar: {path}")
        return False
    os.remove(path)
    return True


def discard_file(url: str) -> None:
    """Borrado best-effort: un fallo se registra y no interrumpe la petición."""
    try:
        delete_file(url)
    except (OSError, ValueError) as e:
        logger.warning(f"⚠️ No se pudo borrar {url}: {e}")
