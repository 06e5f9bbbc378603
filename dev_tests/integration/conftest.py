"""
Shared fixtures for integration tests.

These fixtures handle:
- An isolated application per test (own storage directory and fake clock)
- Authenticated and unauthenticated TestClient access
"""

import pytest
from fastapi.testclient import TestClient

from config import AttachmentSettings, Config
from core.app_state import create_app


API_TOKEN = "test-api-token"
AUTH_HEADERS = {"Authorization": f"Bearer {API_TOKEN}"}


# ============================================================================
# Application Fixtures
# ============================================================================

@pytest.fixture
def attachment_settings(storage_dir):
    """Per-test attachment settings; tests may tweak them before the client starts."""
    return AttachmentSettings(
        base_path=str(storage_dir),
        ttl_seconds=3600.0,
        temp_token_ttl_seconds=300.0,
        max_size_bytes=10 * 1024 * 1024,
        purge_orphans_on_startup=True,
    )


@pytest.fixture
def app_config(attachment_settings):
    cfg = Config()
    cfg.API_TOKEN = API_TOKEN
    cfg.ATTACHMENTS = attachment_settings
    cfg.MAX_REQUEST_BODY_BYTES = 50 * 1024 * 1024
    cfg.PUBLIC_BASE_URL = ""
    cfg.EMAIL_DATE_UTC_OFFSET_HOURS = 8.0
    cfg.VERBOSE_LOGGING = True
    return cfg


@pytest.fixture
def test_app(app_config, fake_clock):
    return create_app(app_config, clock=fake_clock)


@pytest.fixture
def client(test_app):
    """TestClient with startup/shutdown events (sweeper started and stopped)."""
    with TestClient(test_app) as test_client:
        yield test_client


@pytest.fixture
def auth_headers():
    return dict(AUTH_HEADERS)


@pytest.fixture
def parse(client, auth_headers):
    """POST raw bytes to /parse with valid credentials and return the response."""

    def _parse(raw: bytes):
        return client.post(
            "/parse",
            content=raw,
            headers={**auth_headers, "Content-Type": "message/rfc822"},
        )

    return _parse
