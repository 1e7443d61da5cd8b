"""
Receipt OCR

Client side of the receipt scanning flow:
- Encodes captured receipt photos as base64 data URIs
- Submits them to the OCR backend (POST /api/ocr/base64)
- Tracks each attempt through an explicit capture flow state machine
- Hands recognized text to the verification stage
"""

from receipt_ocr.errors import (
    ErrorKind,
    ErrorDescriptor,
    OCRPipelineError,
    EncodingError,
    ConfigurationError,
    NetworkError,
    ServerError,
    MalformedResponseError,
    FlowError,
    FlowBusyError,
    InvalidTransitionError,
)
from receipt_ocr.models import CapturedImage, EncodedPayload, OCRResult
from receipt_ocr.services.image_encoder import ImageEncoder
from receipt_ocr.clients.ocr_client import OCRClient
from receipt_ocr.flow.capture_flow import CaptureFlow, FlowState, FlowTransition, VerificationInput
from receipt_ocr.bootstrap import create_capture_flow

__version__ = "1.0.0"

__all__ = [
    'ErrorKind',
    'ErrorDescriptor',
    'OCRPipelineError',
    'EncodingError',
    'ConfigurationError',
    'NetworkError',
    'ServerError',
    'MalformedResponseError',
    'FlowError',
    'FlowBusyError',
    'InvalidTransitionError',
    'CapturedImage',
    'EncodedPayload',
    'OCRResult',
    'ImageEncoder',
    'OCRClient',
    'CaptureFlow',
    'FlowState',
    'FlowTransition',
    'VerificationInput',
    'create_capture_flow',
]
