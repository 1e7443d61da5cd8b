"""
Receipt OCR - Startup

Resolves configuration once and wires the capture pipeline:
1. Load .env
2. Read settings and resolve the OCR endpoint (fails loudly if missing)
3. Configure logging and error tracking
4. Build the encoder, client and flow
"""

import logging
from pathlib import Path
from typing import Optional

import httpx
from dotenv import load_dotenv

from receipt_ocr.config import Settings, get_settings, validate_environment
from receipt_ocr.logging_config import setup_logging
from receipt_ocr.sentry_integration import init_sentry, set_tag
from receipt_ocr.services.image_encoder import ImageEncoder
from receipt_ocr.clients.ocr_client import OCRClient
from receipt_ocr.flow.capture_flow import CaptureFlow

logger = logging.getLogger(__name__)


def create_capture_flow(
    settings: Optional[Settings] = None,
    env_file: Optional[Path] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    configure_logging: bool = True,
) -> CaptureFlow:
    """
    Build a ready-to-use CaptureFlow.

    Args:
        settings: Explicit settings (skips .env loading and the settings cache)
        env_file: .env file to load before reading settings
        transport: Optional httpx transport for the OCR client
        configure_logging: Install the root log handler

    Raises:
        ConfigurationError: no OCR endpoint configured
    """
    if settings is None:
        load_dotenv(env_file or Path.cwd() / ".env")
        settings = get_settings()

    if configure_logging:
        setup_logging(
            level=settings.LOG_LEVEL,
            json_format=settings.is_production,
            service_name=settings.SERVICE_NAME,
        )

    # Resolve before anything else so a missing endpoint stops startup
    endpoint = settings.resolve_ocr_endpoint()

    env_status = validate_environment(settings)
    for warning in env_status.get("warnings", []):
        logger.warning(f"Configuration warning: {warning}")

    if settings.SENTRY_DSN:
        if init_sentry(
            dsn=settings.SENTRY_DSN,
            environment=settings.ENVIRONMENT,
            traces_sample_rate=0.1 if settings.is_production else 0.0,
        ):
            set_tag("service", settings.SERVICE_NAME)

    encoder = ImageEncoder(max_file_size=settings.max_image_size_bytes)
    client = OCRClient(
        base_url=endpoint,
        timeout=settings.ocr_timeout_seconds,
        transport=transport,
    )

    logger.info(f"Capture pipeline ready (endpoint: {endpoint}, environment: {settings.ENVIRONMENT})")
    return CaptureFlow(encoder=encoder, client=client)
