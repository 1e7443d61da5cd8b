"""
Receipt OCR - Error Taxonomy

Every failure in the capture pipeline is classified into one of these types:
- EncodingError: the captured photo could not be read or encoded
- ConfigurationError: no OCR endpoint configured (detected before any request)
- NetworkError: the request never produced a response
- ServerError: the backend answered with a non-success status
- MalformedResponseError: the backend answered 2xx with an unexpected body

The flow converts these into ErrorDescriptor values for the verification stage.
"""

from enum import Enum
from typing import Optional, Dict, Any
from dataclasses import dataclass, asdict


class ErrorKind(str, Enum):
    """Error category surfaced to the verification stage."""
    ENCODING = "encoding"
    CONFIGURATION = "configuration"
    NETWORK = "network"
    SERVER = "server"
    MALFORMED_RESPONSE = "malformed_response"


class OCRPipelineError(Exception):
    """Base class for classified pipeline failures."""

    kind: ErrorKind
    code: str = "OCR_ERROR"
    user_message: str = "Something went wrong. Please try again."
    retryable: bool = False

    def __init__(self, message: str, *, user_message: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if user_message is not None:
            self.user_message = user_message


class EncodingError(OCRPipelineError):
    """The captured image could not be read or is not usable image data."""
    kind = ErrorKind.ENCODING
    code = "ENCODING_FAILED"
    user_message = "We couldn't read that photo. Try a clearer photo."
    retryable = True


class ConfigurationError(OCRPipelineError):
    """The OCR endpoint is missing or invalid."""
    kind = ErrorKind.CONFIGURATION
    code = "NOT_CONFIGURED"
    user_message = "The app is misconfigured. Please contact support."


class NetworkError(OCRPipelineError):
    """Connectivity loss, DNS failure or timeout before a response arrived."""
    kind = ErrorKind.NETWORK
    code = "NETWORK_ERROR"
    user_message = "Check your connection and try again."
    retryable = True


class ServerError(OCRPipelineError):
    """The OCR backend rejected the request with a non-2xx status."""
    kind = ErrorKind.SERVER

    def __init__(self, status_code: int, message: Optional[str] = None):
        self.status_code = status_code
        if self.is_server_error:
            self.code = "SERVICE_UNAVAILABLE"
            self.user_message = "The receipt scanning service is unavailable. Try again later."
            self.retryable = True
        else:
            self.code = "REQUEST_REJECTED"
            self.user_message = "The receipt could not be processed."
            self.retryable = False
        super().__init__(message or f"OCR service error: {status_code}")

    @property
    def is_client_error(self) -> bool:
        return 400 <= self.status_code < 500

    @property
    def is_server_error(self) -> bool:
        return self.status_code >= 500


class MalformedResponseError(OCRPipelineError):
    """The response body is not the expected JSON object with a `text` field."""
    kind = ErrorKind.MALFORMED_RESPONSE
    code = "MALFORMED_RESPONSE"
    user_message = "We couldn't read any text. Try a clearer photo."
    retryable = True


# ==================== FLOW USAGE ERRORS ====================

class FlowError(Exception):
    """Raised when the capture flow is driven out of order."""


class InvalidTransitionError(FlowError):
    def __init__(self, from_state, to_state):
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(f"Invalid flow transition: {from_state.value} -> {to_state.value}")


class FlowBusyError(FlowError):
    """A recognition attempt is already in flight."""


# ==================== DESCRIPTORS ====================

@dataclass(frozen=True)
class ErrorDescriptor:
    """User-facing description of a failed attempt."""
    kind: ErrorKind
    code: str
    message: str
    user_message: str
    retryable: bool
    status_code: Optional[int] = None

    @classmethod
    def from_error(cls, error: OCRPipelineError) -> "ErrorDescriptor":
        return cls(
            kind=error.kind,
            code=error.code,
            message=error.message,
            user_message=error.user_message,
            retryable=error.retryable,
            status_code=getattr(error, "status_code", None),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["kind"] = self.kind.value
        return data
