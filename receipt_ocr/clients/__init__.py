from receipt_ocr.clients.ocr_client import OCRClient

__all__ = [
    'OCRClient',
]
