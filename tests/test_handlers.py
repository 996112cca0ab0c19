import asyncio
import io

import pytest
from fastapi import UploadFile

from app.core.config import settings
from app.core.security import BusinessRuleError
from app.services.handlers.base import FinalizeHandler, build_chain, verify_chain_integrity
from app.services.handlers.finalize import build_finalize_chain
from app.services.handlers.image_upload import process_upload, read_upload
from app.services.handlers.image_upload.process_image import resize_to_jpeg


class _Record(FinalizeHandler):
    def __init__(self, name, calls):
        super().__init__()
        self.name = name
        self.calls = calls

    def _handle(self, context):
        self.calls.append(self.name)


class _Stop(FinalizeHandler):
    def _handle(self, context):
        raise BusinessRuleError("stop")


class _Context:
    class trabajo:
        id = 1


class TestChain:

    def test_handlers_run_in_order(self):
        calls = []
        chain = build_chain(_Record("a", calls), _Record("b", calls), _Record("c", calls))

        chain.handle(_Context())

        assert calls == ["a", "b", "c"]

    def test_exception_stops_chain(self):
        calls = []
        chain = build_chain(_Record("a", calls), _Stop(), _Record("c", calls))

        with pytest.raises(BusinessRuleError):
            chain.handle(_Context())
        assert calls == ["a"]

    def test_cycle_is_detected(self):
        calls = []
        first, second = _Record("a", calls), _Record("b", calls)
        first.set_next(second)
        second.set_next(first)

        assert verify_chain_integrity(first) is False

    def test_handler_cannot_point_to_itself(self):
        handler = _Record("a", [])
        with pytest.raises(ValueError):
            handler.set_next(handler)

    def test_empty_chain_rejected(self):
        with pytest.raises(ValueError):
            build_chain()

    def test_finalize_chain_order(self):
        names = []
        current = build_finalize_chain()
        while current is not None:
            names.append(type(current).__name__)
            current = current._next_handler

        assert names == [
            "AuthorizeFinalizerHandler",
            "CheckNotTerminalHandler",
            "DetectEarlyFinishHandler",
            "CheckEvidenceHandler",
            "CheckOdometerHandler",
            "PersistFinalizationHandler",
        ]


class TestImagePipeline:

    def test_small_images_keep_size(self, png_bytes):
        data, width, height = resize_to_jpeg(png_bytes(width=640, height=480), 1280, 82)

        assert (width, height) == (640, 480)
        assert data[:2] == b"\xff\xd8"

    def test_process_upload_stores_jpeg(self, uploads_dir, png_bytes):
        context = asyncio.run(process_upload("a.png", png_bytes(width=2560, height=1440), "image/png", "pruebas"))

        assert (context.width, context.height) == (1280, 720)
        assert context.image_url.startswith("/uploads/pruebas/")
        assert (uploads_dir / context.image_url[len("/uploads/"):]).exists()

    def test_empty_upload_rejected(self, uploads_dir):
        with pytest.raises(BusinessRuleError, match="No se recibió ninguna imagen"):
            asyncio.run(process_upload("a.png", b"", "image/png", "pruebas"))

    def test_oversized_upload_rejected(self, uploads_dir, monkeypatch, png_bytes):
        monkeypatch.setattr(settings, "MAX_FILE_SIZE_MB", 0)

        with pytest.raises(BusinessRuleError, match="tamaño máximo"):
            asyncio.run(process_upload("a.png", png_bytes(), "image/png", "pruebas"))


class TestReadUpload:

    def test_reads_in_chunks(self):
        data = b"x" * (200 * 1024)

        assert asyncio.run(read_upload(UploadFile(io.BytesIO(data)))) == data

    def test_stops_reading_past_limit(self, monkeypatch):
        monkeypatch.setattr(settings, "MAX_FILE_SIZE_MB", 1)
        source = io.BytesIO(b"x" * (3 * 1024 * 1024))

        with pytest.raises(BusinessRuleError, match="tamaño máximo"):
            asyncio.run(read_upload(UploadFile(source)))
        assert source.tell() < 2 * 1024 * 1024

    def test_declared_size_rejected_before_reading(self, monkeypatch):
        monkeypatch.setattr(settings, "MAX_FILE_SIZE_MB", 1)
        source = io.BytesIO(b"x" * 16)

        with pytest.raises(BusinessRuleError, match="tamaño máximo"):
            asyncio.run(read_upload(UploadFile(source, size=5 * 1024 * 1024)))
        assert source.tell() == 0
