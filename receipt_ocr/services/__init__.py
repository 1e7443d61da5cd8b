from receipt_ocr.services.image_encoder import ImageEncoder

__all__ = [
    'ImageEncoder',
]
