"""
Shared fixtures: sample receipt images and a stub OCR backend.

The stub backend is a FastAPI app served in-process through httpx.ASGITransport,
so the client exercises real HTTP semantics without a network.
"""

from typing import Any, Optional

import httpx
import pytest
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response

# Minimal but well-formed headers followed by filler bytes
JPEG_BYTES = b"\xff\xd8\xff\xe0\x00\x10JFIF\x00" + bytes(range(256)) * 8 + b"\xff\xd9"
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00\x00\x00\rIHDR" + bytes(range(200))
WEBP_BYTES = b"RIFF\x24\x00\x00\x00WEBPVP8 " + bytes(range(64))

OCR_BASE_URL = "http://ocr.test"


def build_ocr_backend(
    status_code: int = 200,
    body: Any = None,
    raw: Optional[str] = None,
) -> FastAPI:
    """
    Stub OCR server implementing POST /api/ocr/base64.

    Every received request is recorded in `app.state.received`.
    """
    app = FastAPI()
    app.state.received = []

    @app.post("/api/ocr/base64")
    async def ocr_base64(request: Request):
        app.state.received.append({
            "method": request.method,
            "path": request.url.path,
            "headers": dict(request.headers),
            "body": await request.json(),
        })

        if raw is not None:
            return Response(content=raw, status_code=status_code, media_type="text/html")

        content = body if body is not None else {"text": "TOTAL 12.34"}
        return JSONResponse(status_code=status_code, content=content)

    return app


def asgi_transport(app: FastAPI) -> httpx.ASGITransport:
    return httpx.ASGITransport(app=app)


@pytest.fixture
def jpeg_file(tmp_path):
    """A captured receipt photo on disk."""
    path = tmp_path / "receipt.jpg"
    path.write_bytes(JPEG_BYTES)
    return path


@pytest.fixture
def png_file(tmp_path):
    path = tmp_path / "receipt.png"
    path.write_bytes(PNG_BYTES)
    return path


@pytest.fixture
def ocr_backend():
    """Stub backend returning {"text": "TOTAL 12.34"}."""
    return build_ocr_backend()
