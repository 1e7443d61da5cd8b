"""
Image Encoder

Turns a captured receipt photo into the transport payload sent to the OCR backend.

Flow:
1. Resolve the capture reference (path or file:// URI) to a local file
2. Read the full file and take the image type from its leading bytes,
   falling back to the declared type when the format is not recognised
3. Return `data:<mime>;base64,<data>` - no resizing, no re-compression
"""

import asyncio
import base64
import logging
from typing import Optional, Union
from pathlib import Path

from receipt_ocr.errors import EncodingError
from receipt_ocr.models import CapturedImage, EncodedPayload

logger = logging.getLogger(__name__)

ImageRef = Union[CapturedImage, str, Path]


class ImageEncoder:
    """
    Reads captured photos and encodes them as base64 data URIs.

    Stateless; one instance can serve any number of flows.
    """

    # Max file size (50MB)
    MAX_FILE_SIZE = 50 * 1024 * 1024

    # Leading bytes per supported image type
    SIGNATURES = {
        'image/jpeg': (b'\xff\xd8\xff',),
        'image/png': (b'\x89PNG\r\n\x1a\n',),
        'image/webp': (b'RIFF',),
    }

    def __init__(self, max_file_size: int = MAX_FILE_SIZE):
        self.max_file_size = max_file_size

    def encode(self, image_ref: ImageRef) -> EncodedPayload:
        """
        Encode a captured image.

        Args:
            image_ref: CapturedImage, local path or file:// URI

        Returns:
            EncodedPayload carrying the data URI

        Raises:
            EncodingError: file missing, unreadable, empty, too large or corrupt
        """
        image = CapturedImage.from_ref(image_ref)
        path = image.path

        try:
            image_bytes = path.read_bytes()
        except FileNotFoundError:
            raise EncodingError(f"Image file not found: {path}")
        except PermissionError:
            raise EncodingError(f"Permission denied reading image: {path}")
        except OSError as e:
            raise EncodingError(f"Failed to read image {path}: {e}")

        file_size = len(image_bytes)
        if file_size == 0:
            raise EncodingError(f"Image file is empty: {path}")

        if file_size > self.max_file_size:
            raise EncodingError(
                f"Image too large: {file_size} bytes. Max: {self.max_file_size} bytes"
            )

        mime_type = self._detect_mime_type(image_bytes)
        if mime_type is None:
            if image.mime_type in self.SIGNATURES:
                raise EncodingError(f"Image data does not look like {image.mime_type}: {path}")
            # Unknown image type, nothing to check against
            mime_type = image.mime_type

        image_base64 = base64.b64encode(image_bytes).decode('ascii')

        logger.debug(f"Encoded {path.name} ({file_size} bytes, {mime_type})")

        return EncodedPayload(
            data_uri=f"data:{mime_type};base64,{image_base64}",
            mime_type=mime_type,
            byte_size=file_size,
        )

    async def encode_async(self, image_ref: ImageRef) -> EncodedPayload:
        """Encode without blocking the event loop."""
        return await asyncio.to_thread(self.encode, image_ref)

    def _detect_mime_type(self, data: bytes) -> Optional[str]:
        """Image type from the leading bytes, or None if none of the known signatures match."""
        for mime_type, signatures in self.SIGNATURES.items():
            if not any(data.startswith(sig) for sig in signatures):
                continue
            # RIFF is a container; WebP carries its tag at offset 8
            if mime_type == 'image/webp' and data[8:12] != b'WEBP':
                continue
            return mime_type
        return None
