"""
Correlation IDs for request tracking.

Format: <platform>-<device>-<timestamp_ms>-<random>
Example: linux-pixel7-1704067200000-a1b2c3d4
"""

import re
import sys
import time
import socket
import secrets
import string
from typing import Optional, Mapping

CORRELATION_HEADER = "X-Correlation-ID"

_ALPHABET = string.ascii_lowercase + string.digits


def _random_suffix(length: int = 8) -> str:
    return "".join(secrets.choice(_ALPHABET) for _ in range(length))


def _device_identifier() -> str:
    # dashes are the field separator
    name = re.sub(r"[^A-Za-z0-9]", "", socket.gethostname())[:20]
    return name or "unknown"


def generate_correlation_id() -> str:
    """Generate a unique correlation ID for one OCR request."""
    platform = re.sub(r"[^a-z0-9]", "", sys.platform.lower()) or "unknown"
    timestamp = int(time.time() * 1000)
    return f"{platform}-{_device_identifier()}-{timestamp}-{_random_suffix()}"


def is_valid_correlation_id(correlation_id: Optional[str]) -> bool:
    if not correlation_id or not isinstance(correlation_id, str):
        return False

    parts = correlation_id.split("-")
    if len(parts) != 4:
        return False

    platform, device, timestamp, random_part = parts
    return bool(platform) and bool(device) and timestamp.isdigit() and len(random_part) >= 8


def get_timestamp_from_correlation_id(correlation_id: str) -> Optional[int]:
    """Extract the millisecond timestamp, or None if the ID is not well formed."""
    if not is_valid_correlation_id(correlation_id):
        return None
    return int(correlation_id.split("-")[2])


def create_correlation_header(correlation_id: Optional[str] = None) -> dict:
    return {CORRELATION_HEADER: correlation_id or generate_correlation_id()}


def extract_correlation_id(headers: Mapping[str, str]) -> Optional[str]:
    """Read the correlation ID echoed back in response headers."""
    for key, value in headers.items():
        if key.lower() == CORRELATION_HEADER.lower():
            return value
    return None
