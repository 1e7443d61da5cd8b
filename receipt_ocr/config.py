"""
Receipt OCR - Configuration Management

Centralized configuration for the capture pipeline.
This module ensures:
- The OCR endpoint is resolved once, at startup
- A missing endpoint is a loud ConfigurationError, never an undefined URL
- Environment-specific settings (dev/staging/prod)
"""

from typing import List, Optional
from urllib.parse import urlparse
from pydantic import Field
from pydantic_settings import BaseSettings
from functools import lru_cache
import logging

from receipt_ocr.errors import ConfigurationError

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Uses pydantic-settings for validation and type coercion.
    """

    # ==================== ENVIRONMENT ====================
    ENVIRONMENT: str = Field(
        default="development",
        description="Runtime environment: development, staging, production"
    )
    DEBUG: bool = Field(
        default=False,
        description="Enable debug mode (auto-enabled in development)"
    )

    # ==================== OCR BACKEND ====================
    # Two sources, checked in order: app config value, then public runtime variable
    OCR_API_URL: str = Field(
        default="",
        description="OCR backend base URL from the app configuration"
    )
    PUBLIC_OCR_API_URL: str = Field(
        default="",
        description="OCR backend base URL from the public runtime environment"
    )
    OCR_TIMEOUT_MS: int = Field(
        default=30000,
        description="OCR request timeout in milliseconds"
    )
    OCR_MAX_IMAGE_SIZE_MB: int = Field(
        default=50,
        description="Largest captured image accepted for encoding"
    )

    # ==================== OBSERVABILITY ====================
    SENTRY_DSN: str = Field(
        default="",
        description="Sentry DSN for error tracking"
    )
    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level: DEBUG, INFO, WARNING, ERROR"
    )
    SERVICE_NAME: str = Field(
        default="receipt-ocr",
        description="Service name attached to log lines"
    )

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "ignore"

    # ==================== COMPUTED PROPERTIES ====================

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT.lower() == "development"

    @property
    def debug_enabled(self) -> bool:
        """Enable debug in development or when explicitly set"""
        return self.DEBUG or self.is_development

    @property
    def ocr_timeout_seconds(self) -> float:
        return self.OCR_TIMEOUT_MS / 1000.0

    @property
    def max_image_size_bytes(self) -> int:
        return self.OCR_MAX_IMAGE_SIZE_MB * 1024 * 1024

    def resolve_ocr_endpoint(self) -> str:
        """
        Resolve the OCR backend base URL.

        Returns:
            Base URL without a trailing slash

        Raises:
            ConfigurationError: neither source is set, or the value is not an http(s) URL
        """
        candidates = [
            ("OCR_API_URL", self.OCR_API_URL),
            ("PUBLIC_OCR_API_URL", self.PUBLIC_OCR_API_URL),
        ]

        for name, value in candidates:
            value = (value or "").strip()
            if not value:
                continue

            parsed = urlparse(value)
            if parsed.scheme not in ("http", "https") or not parsed.netloc:
                raise ConfigurationError(f"{name} is not a valid http(s) URL: {value!r}")

            return value.rstrip("/")

        raise ConfigurationError("OCR endpoint not configured. Set OCR_API_URL or PUBLIC_OCR_API_URL.")

    def validate_production_config(self) -> List[str]:
        """
        Validate configuration for production deployment.
        Returns list of validation errors.
        """
        errors = []

        try:
            endpoint = self.resolve_ocr_endpoint()
        except ConfigurationError as e:
            errors.append(str(e))
            endpoint = None

        if self.OCR_TIMEOUT_MS <= 0:
            errors.append("OCR_TIMEOUT_MS must be positive")

        if self.is_production:
            if endpoint and not endpoint.startswith("https://"):
                errors.append("OCR endpoint must use https in production")

            if endpoint and "localhost" in endpoint.lower():
                errors.append("OCR endpoint cannot point to localhost in production")

            if self.DEBUG:
                errors.append("DEBUG should be False in production")

        return errors


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Settings are loaded once and cached for the application lifetime.
    """
    settings = Settings()

    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Debug: {settings.debug_enabled}")

    if settings.is_production:
        errors = settings.validate_production_config()
        if errors:
            for error in errors:
                logger.error(f"Configuration error: {error}")
            raise ConfigurationError(f"Production configuration invalid: {', '.join(errors)}")

    return settings


# ==================== ENVIRONMENT VALIDATION ====================

def validate_environment(settings: Optional[Settings] = None) -> dict:
    """
    Validate all required environment variables.

    Returns a status dict with validation results.
    """
    settings = settings or get_settings()

    status = {
        "valid": True,
        "environment": settings.ENVIRONMENT,
        "errors": [],
        "warnings": [],
        "variables": {}
    }

    for name, value in [
        ("OCR_API_URL", settings.OCR_API_URL),
        ("PUBLIC_OCR_API_URL", settings.PUBLIC_OCR_API_URL),
    ]:
        status["variables"][name] = "✓ Set" if value else "⚠ Not set"

    optional_vars = [
        ("SENTRY_DSN", settings.SENTRY_DSN, "Error tracking disabled"),
    ]

    for name, value, warning in optional_vars:
        if not value:
            status["warnings"].append(warning)
            status["variables"][name] = "⚠ Not set"
        else:
            status["variables"][name] = "✓ Set"

    errors = settings.validate_production_config()
    if errors:
        status["errors"].extend(errors)
        status["valid"] = False

    return status
