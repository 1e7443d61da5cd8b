"""
OCR Backend Client

Submits an encoded receipt image to the remote OCR service.
Uses the backend contract:
- POST {base_url}/api/ocr/base64
- Content-Type: application/json, body {"image": "<data-uri>"}
- 2xx response: JSON object with a `text` field

Every failure is raised as a classified error (see receipt_ocr.errors).
The client holds no per-request state and performs no retries.
"""

import json
import logging
import httpx
from typing import Optional, Any

from receipt_ocr.errors import (
    ConfigurationError,
    NetworkError,
    ServerError,
    MalformedResponseError,
)
from receipt_ocr.models import EncodedPayload
from receipt_ocr.utils.correlation import (
    create_correlation_header,
    extract_correlation_id,
    generate_correlation_id,
)

logger = logging.getLogger(__name__)

OCR_PATH = "/api/ocr/base64"
IMAGE_FIELD = "image"
TEXT_FIELD = "text"

DEFAULT_TIMEOUT_SECONDS = 30.0


class OCRClient:
    """
    Client for the receipt OCR backend.

    Usage:
        client = OCRClient(base_url="https://ocr.example.com")
        text = await client.recognize(payload)
    """

    def __init__(
        self,
        base_url: Optional[str],
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            base_url: OCR service base URL, resolved once at startup
            timeout: Request timeout in seconds
            transport: Optional httpx transport (tests, proxies)
        """
        self.base_url = (base_url or "").strip().rstrip("/")
        self.timeout = timeout
        self._transport = transport

        if self.base_url:
            logger.info(f"OCRClient initialized with URL: {self.base_url}")
        else:
            logger.warning("OCRClient initialized without an endpoint")

    @classmethod
    def from_settings(cls, settings, transport: Optional[httpx.AsyncBaseTransport] = None) -> "OCRClient":
        return cls(
            base_url=settings.resolve_ocr_endpoint(),
            timeout=settings.ocr_timeout_seconds,
            transport=transport,
        )

    def is_configured(self) -> bool:
        return bool(self.base_url)

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}{OCR_PATH}"

    async def recognize(
        self,
        payload: EncodedPayload,
        correlation_id: Optional[str] = None,
    ) -> str:
        """
        Recognize the text in one encoded image.

        Args:
            payload: Encoded image produced by ImageEncoder
            correlation_id: Request tracking ID (generated if omitted)

        Returns:
            The `text` field of the response, verbatim

        Raises:
            ConfigurationError: no endpoint configured (no request is made)
            NetworkError: no response received
            ServerError: non-2xx status
            MalformedResponseError: body is not an object with a string `text`
        """
        if not self.is_configured():
            raise ConfigurationError("OCR endpoint not configured")

        correlation_id = correlation_id or generate_correlation_id()
        headers = {
            "Content-Type": "application/json",
            **create_correlation_header(correlation_id),
        }

        logger.info(
            f"Submitting receipt for OCR ({payload.byte_size} bytes)",
            extra={"correlation_id": correlation_id},
        )

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    self.endpoint,
                    headers=headers,
                    json={IMAGE_FIELD: payload.data_uri},
                )
        except httpx.TimeoutException as e:
            logger.error(f"OCR request timed out: {e}", extra={"correlation_id": correlation_id})
            raise NetworkError(f"OCR request timed out after {self.timeout}s") from e
        except httpx.RequestError as e:
            logger.error(f"OCR request error: {e}", extra={"correlation_id": correlation_id})
            raise NetworkError(f"OCR request failed: {e}") from e

        if not response.is_success:
            logger.error(
                f"OCR service returned {response.status_code}",
                extra={"correlation_id": correlation_id},
            )
            raise ServerError(response.status_code)

        echoed = extract_correlation_id(response.headers)
        if echoed and echoed != correlation_id:
            logger.debug(f"OCR service answered with correlation ID {echoed}", extra={"correlation_id": correlation_id})

        text = self._parse_text(response)
        logger.info(
            f"OCR succeeded ({len(text)} characters)",
            extra={"correlation_id": correlation_id},
        )
        return text

    def _parse_text(self, response: httpx.Response) -> str:
        try:
            data: Any = response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise MalformedResponseError(f"OCR response is not valid JSON: {e}") from e

        if not isinstance(data, dict):
            raise MalformedResponseError(
                f"OCR response is not a JSON object: {type(data).__name__}"
            )

        if TEXT_FIELD not in data:
            raise MalformedResponseError(f"OCR response missing '{TEXT_FIELD}' field")

        text = data[TEXT_FIELD]
        if not isinstance(text, str):
            raise MalformedResponseError(
                f"OCR response '{TEXT_FIELD}' is {type(text).__name__}, expected string"
            )

        return text
