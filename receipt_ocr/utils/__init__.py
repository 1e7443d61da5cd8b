from receipt_ocr.utils.correlation import (
    CORRELATION_HEADER,
    generate_correlation_id,
    is_valid_correlation_id,
    get_timestamp_from_correlation_id,
    create_correlation_header,
    extract_correlation_id,
)

__all__ = [
    'CORRELATION_HEADER',
    'generate_correlation_id',
    'is_valid_correlation_id',
    'get_timestamp_from_correlation_id',
    'create_correlation_header',
    'extract_correlation_id',
]
