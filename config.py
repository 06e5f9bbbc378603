"""
Configuration for the Mail Parse Service
========================================

Central configuration management for the HTTP service and the attachment
lifecycle. Values are read from the environment (and an optional .env file).
Required settings are checked explicitly through ``validate_required``; when
something mandatory is missing this module prints a clear error to stderr and
raises.
"""

import os
import sys
from typing import Literal, Optional

from pydantic import BaseModel, Field
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

TRUTHY_ENV_VALUES = {"1", "true", "yes", "on"}


class AttachmentSettings(BaseModel):
    """Attachment storage, expiry and delivery settings."""

    base_path: str = Field(
        default="./attachments",
        description="Directory holding one blob per stored attachment",
    )
    ttl_seconds: float = Field(
        default=3600.0,
        gt=0,
        description="Seconds an attachment stays downloadable after it was stored",
    )
    temp_token_ttl_seconds: float = Field(
        default=300.0,
        gt=0,
        description="Seconds a temporary download token stays valid after issuance",
    )
    max_size_bytes: int = Field(
        default=10 * 1024 * 1024,
        gt=0,
        description="Maximum size of a single attachment that will be stored",
    )
    cleanup_interval_seconds: float = Field(
        default=600.0,
        gt=0,
        description="Period of the background eviction sweep",
    )
    cleanup_stop_timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        description="Upper bound waited for an in-flight sweep when stopping",
    )
    purge_orphans_on_startup: bool = Field(
        default=True,
        description="Delete blobs left in base_path by a previous process on the first sweep",
    )
    download_mode: Literal["direct", "token"] = Field(
        default="direct",
        description="'direct' links to the bytes, 'token' links to the download-link issuance endpoint",
    )
    single_use_tokens: bool = Field(
        default=False,
        description="Consume a temporary token on its first successful redemption",
    )


class Config(BaseModel):
    """Configuration settings for the Mail Parse Service."""

    model_config = {"populate_by_name": True}

    # Authentication
    API_TOKEN: str = Field(default="", description="Shared secret expected as Bearer token")

    ATTACHMENTS: AttachmentSettings = Field(
        default_factory=AttachmentSettings, description="Attachment lifecycle settings"
    )

    # Request limits
    MAX_REQUEST_BODY_BYTES: int = Field(
        default=50 * 1024 * 1024, description="Largest raw message accepted by /parse"
    )

    # Link building
    PUBLIC_BASE_URL: str = Field(
        default="", description="Public base URL used to build absolute download links"
    )

    # Parsed message presentation
    EMAIL_DATE_UTC_OFFSET_HOURS: float = Field(
        default=8.0, description="UTC offset applied when formatting the message date"
    )

    # Logging
    LOG_LEVEL: str = Field(default="INFO", description="Root log level")
    VERBOSE_LOGGING: bool = Field(default=False, description="Emit per-phase debug output for /parse")

    # FastAPI Configuration
    APP_HOST: str = Field(default="0.0.0.0", description="FastAPI host")
    APP_PORT: int = Field(default=3000, description="FastAPI port")
    APP_RELOAD: bool = Field(default=False, description="FastAPI reload mode")

    def __init__(self, **data):
        super().__init__(**data)
        self.load_from_environment()

    def load_from_environment(self):
        """Load configuration from environment variables."""
        self.API_TOKEN = os.getenv("API_TOKEN", self.API_TOKEN)

        attachment_dir = os.getenv("ATTACHMENT_DIR") or os.getenv("ATTACHMENTS_BASE_PATH")
        if attachment_dir:
            self.ATTACHMENTS.base_path = attachment_dir

        # Seconds are preferred; the legacy variables are expressed in milliseconds
        ttl = _positive_float(os.getenv("ATTACHMENT_TTL_SECONDS"))
        if ttl is None:
            ttl = _milliseconds_to_seconds(os.getenv("ATTACHMENT_TTL"))
        if ttl is not None:
            self.ATTACHMENTS.ttl_seconds = ttl

        token_ttl = _positive_float(os.getenv("TEMP_TOKEN_TTL_SECONDS"))
        if token_ttl is None:
            token_ttl = _milliseconds_to_seconds(os.getenv("TEMP_TOKEN_TTL"))
        if token_ttl is not None:
            self.ATTACHMENTS.temp_token_ttl_seconds = token_ttl

        max_size = _positive_int(os.getenv("MAX_ATTACHMENT_SIZE"))
        if max_size is not None:
            self.ATTACHMENTS.max_size_bytes = max_size

        interval = _positive_float(os.getenv("CLEANUP_INTERVAL_SECONDS"))
        if interval is not None:
            self.ATTACHMENTS.cleanup_interval_seconds = interval

        stop_timeout = _positive_float(os.getenv("CLEANUP_STOP_TIMEOUT_SECONDS"))
        if stop_timeout is not None:
            self.ATTACHMENTS.cleanup_stop_timeout_seconds = stop_timeout

        purge_override = os.getenv("PURGE_ORPHANS_ON_STARTUP")
        if purge_override:
            self.ATTACHMENTS.purge_orphans_on_startup = purge_override.lower() in TRUTHY_ENV_VALUES

        mode_override = (os.getenv("DOWNLOAD_MODE") or "").strip().lower()
        if mode_override in {"direct", "token"}:
            self.ATTACHMENTS.download_mode = mode_override

        single_use_override = os.getenv("SINGLE_USE_DOWNLOAD_TOKENS")
        if single_use_override:
            self.ATTACHMENTS.single_use_tokens = single_use_override.lower() in TRUTHY_ENV_VALUES

        body_limit = _positive_int(os.getenv("MAX_REQUEST_BODY_BYTES"))
        if body_limit is not None:
            self.MAX_REQUEST_BODY_BYTES = body_limit

        self.PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL", self.PUBLIC_BASE_URL).strip()

        offset_override = os.getenv("EMAIL_DATE_UTC_OFFSET_HOURS")
        if offset_override:
            try:
                self.EMAIL_DATE_UTC_OFFSET_HOURS = float(offset_override)
            except ValueError:
                pass

        # Logging
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", self.LOG_LEVEL).upper()
        verbose_override = os.getenv("VERBOSE_LOGGING")
        if verbose_override:
            self.VERBOSE_LOGGING = verbose_override.lower() in TRUTHY_ENV_VALUES

        # FastAPI Configuration (PORT kept for compatibility with container platforms)
        self.APP_HOST = os.getenv("APP_HOST", self.APP_HOST)
        port = _positive_int(os.getenv("PORT")) or _positive_int(os.getenv("APP_PORT"))
        if port is not None:
            self.APP_PORT = port
        reload_override = os.getenv("APP_RELOAD")
        if reload_override:
            self.APP_RELOAD = reload_override.lower() in TRUTHY_ENV_VALUES

    def validate_required(self) -> None:
        """Fail loudly when a mandatory setting is missing."""
        if not self.API_TOKEN:
            message = "API_TOKEN environment variable is required"
            print(f"ERROR: {message}", file=sys.stderr)
            raise RuntimeError(message)


def _positive_int(value: Optional[str]) -> Optional[int]:
    if not value:
        return None
    try:
        parsed = int(value)
    except ValueError:
        return None
    return parsed if parsed > 0 else None


def _positive_float(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    try:
        parsed = float(value)
    except ValueError:
        return None
    return parsed if parsed > 0 else None


def _milliseconds_to_seconds(value: Optional[str]) -> Optional[float]:
    parsed = _positive_float(value)
    return parsed / 1000.0 if parsed is not None else None


# Global configuration instance
config = Config()
