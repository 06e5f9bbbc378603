"""
Request-scoped accessors for the state owned by the running application.
"""

from fastapi import Request

from config import Config
from services.attachment_manager import AttachmentManager


def get_app_config(request: Request) -> Config:
    return request.app.state.config


def get_attachment_manager(request: Request) -> AttachmentManager:
    """Return the AttachmentManager created for this application."""
    return request.app.state.attachment_manager


def public_url(request: Request, path: str) -> str:
    """Prefix ``path`` with PUBLIC_BASE_URL when one is configured."""
    base_url = get_app_config(request).PUBLIC_BASE_URL
    if not base_url:
        return path
    return f"{base_url.rstrip('/')}{path}"


def attachment_url(request: Request, attachment_id: str) -> str:
    """URL handed to callers for a freshly stored attachment.

    In ``token`` download mode this points at the link issuance endpoint
    instead of the bytes.
    """
    if get_app_config(request).ATTACHMENTS.download_mode == "token":
        return public_url(request, f"/attachments/{attachment_id}/download-link")
    return public_url(request, f"/attachments/{attachment_id}")


def token_download_url(request: Request, token: str) -> str:
    return public_url(request, f"/attachments/download/{token}")
