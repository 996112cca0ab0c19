# app/services/handlers/image_upload/context.py
class ImageUploadContext:
    """
    Contexto de una imagen subida.

    Entrada: filename, content, mimetype, subdir (carpeta bajo UPLOADS_DIR).
    Salida: processed (bytes JPEG), width, height, image_url.
    """

    def __init__(self, filename, content: bytes, mimetype: str, subdir: str):
        self.filename = filename or "imagen"
        self.content = content or b""
        self.mimetype = mimetype
        self.subdir = subdir
        self.size = len(self.content)

        self.processed = None
        self.width = None
        self.height = None
        self.image_url = None
