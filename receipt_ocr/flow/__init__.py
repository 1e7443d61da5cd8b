from receipt_ocr.flow.capture_flow import (
    CaptureFlow,
    FlowState,
    FlowTransition,
    VerificationInput,
    ALLOWED_TRANSITIONS,
)

__all__ = [
    'CaptureFlow',
    'FlowState',
    'FlowTransition',
    'VerificationInput',
    'ALLOWED_TRANSITIONS',
]
