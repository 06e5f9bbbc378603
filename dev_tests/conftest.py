"""Shared pytest fixtures for Mail Parse Service tests."""

import os
import sys
from email.message import EmailMessage
from typing import Iterable, Optional, Tuple

import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import AttachmentSettings  # noqa: E402
from services.attachment_manager import AttachmentManager  # noqa: E402


# ============================================================================
# Clock Fixtures
# ============================================================================

class FakeClock:
    """Manually advanced wall clock; call it like time.time."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_clock():
    return FakeClock()


# ============================================================================
# Attachment Fixtures
# ============================================================================

@pytest.fixture
def storage_dir(tmp_path):
    return tmp_path / "attachments"


@pytest.fixture
def attachment_settings(storage_dir):
    """Small limits so tests stay fast."""
    return AttachmentSettings(
        base_path=str(storage_dir),
        ttl_seconds=3600.0,
        temp_token_ttl_seconds=300.0,
        max_size_bytes=10 * 1024 * 1024,
    )


@pytest.fixture
def manager(attachment_settings, fake_clock):
    return AttachmentManager(settings=attachment_settings, clock=fake_clock)


# ============================================================================
# Message Fixtures
# ============================================================================

Attachment = Tuple[str, bytes, str]


def build_email(
    *,
    subject: str = "Quarterly report",
    text: str = "Please find the report attached.",
    html: Optional[str] = None,
    attachments: Iterable[Attachment] = (),
    inline_images: Iterable[Attachment] = (),
) -> bytes:
    """
    Build raw message bytes.

    ``attachments`` are (filename, data, mime type); ``inline_images`` are
    (content id without brackets, data, mime type) and require ``html``.
    """
    message = EmailMessage()
    message["From"] = "Alice Example <alice@example.com>"
    message["To"] = "Bob Example <bob@example.com>, carol@example.com"
    message["Cc"] = "Dave <dave@example.com>"
    message["Subject"] = subject
    message["Date"] = "Mon, 06 Jan 2025 09:30:00 +0000"
    message["Message-ID"] = "<report-2025-q4@example.com>"
    message.set_content(text)

    if html is not None:
        message.add_alternative(html, subtype="html")
        html_part = message.get_body(preferencelist=("html",))
        for content_id, data, mime_type in inline_images:
            maintype, subtype = mime_type.split("/", 1)
            html_part.add_related(data, maintype=maintype, subtype=subtype, cid=f"<{content_id}>")

    for filename, data, mime_type in attachments:
        maintype, subtype = mime_type.split("/", 1)
        message.add_attachment(data, maintype=maintype, subtype=subtype, filename=filename)

    return message.as_bytes()


@pytest.fixture
def make_email():
    """Factory fixture returning ``build_email``."""
    return build_email
