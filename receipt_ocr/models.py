"""
Receipt OCR - Pipeline Data Model

Values passed between the capture, encode, request and verification stages.
"""

import uuid
import mimetypes
from pathlib import Path
from datetime import datetime, timezone
from typing import Optional, Union
from dataclasses import dataclass, field
from urllib.parse import urlparse, unquote

from receipt_ocr.errors import OCRPipelineError, ErrorDescriptor


# Camera captures are stored as JPEG
DEFAULT_IMAGE_MIME_TYPE = "image/jpeg"

SUPPORTED_IMAGE_TYPES = {
    "image/jpeg": (".jpg", ".jpeg"),
    "image/png": (".png",),
    "image/webp": (".webp",),
}


def path_from_uri(uri: Union[str, Path]) -> Path:
    """Convert a local path or file:// URI into a filesystem path."""
    if isinstance(uri, Path):
        return uri
    if uri.startswith("file://"):
        return Path(unquote(urlparse(uri).path))
    return Path(uri)


def guess_mime_type(path: Path) -> str:
    suffix = path.suffix.lower()
    for mime_type, extensions in SUPPORTED_IMAGE_TYPES.items():
        if suffix in extensions:
            return mime_type
    guessed, _ = mimetypes.guess_type(path.name)
    if guessed and guessed.startswith("image/"):
        return guessed
    return DEFAULT_IMAGE_MIME_TYPE


@dataclass(frozen=True)
class CapturedImage:
    """Reference to a photo taken or selected by the user."""
    uri: str
    mime_type: str = ""
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    captured_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self):
        if not self.mime_type:
            object.__setattr__(self, "mime_type", guess_mime_type(self.path))

    @property
    def path(self) -> Path:
        return path_from_uri(self.uri)

    @classmethod
    def from_ref(cls, ref: Union["CapturedImage", str, Path]) -> "CapturedImage":
        if isinstance(ref, CapturedImage):
            return ref
        return cls(uri=str(ref))


@dataclass(frozen=True)
class EncodedPayload:
    """Base64 data URI of one captured image."""
    data_uri: str
    mime_type: str
    byte_size: int

    @property
    def base64_data(self) -> str:
        return self.data_uri.split(",", 1)[1]

    def __repr__(self) -> str:
        # never dump the image into logs
        return f"EncodedPayload(mime_type={self.mime_type!r}, byte_size={self.byte_size})"


@dataclass(frozen=True)
class OCRResult:
    """Outcome of one recognition attempt: text or a classified error."""
    attempt_id: int
    text: Optional[str] = None
    error: Optional[OCRPipelineError] = None
    correlation_id: Optional[str] = None
    completed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def success(self) -> bool:
        return self.error is None

    @property
    def error_descriptor(self) -> Optional[ErrorDescriptor]:
        if self.error is None:
            return None
        return ErrorDescriptor.from_error(self.error)
