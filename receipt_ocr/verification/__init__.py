"""
Verification stage: turns recognized text into a receipt the user can check and report.
"""

from receipt_ocr.verification.receipt_draft import (
    ReceiptDraft,
    ReceiptType,
    ReceiptStatus,
    extract_receipt_draft,
)
from receipt_ocr.verification.validation import ValidationResult, FieldError, validate_receipt
from receipt_ocr.verification.report import toggle_status, build_share_message

__all__ = [
    'ReceiptDraft',
    'ReceiptType',
    'ReceiptStatus',
    'extract_receipt_draft',
    'ValidationResult',
    'FieldError',
    'validate_receipt',
    'toggle_status',
    'build_share_message',
]
