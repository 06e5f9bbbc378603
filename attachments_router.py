"""FastAPI router serving stored attachments and temporary download links."""

from __future__ import annotations

import logging
from urllib.parse import quote

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status

from core.dependencies import get_attachment_manager, token_download_url
from core.security import require_api_token
from models import DownloadLinkResponse
from services.attachment_manager import (
    NOT_FOUND_MESSAGE,
    AttachmentManager,
    AttachmentNotFoundError,
    AttachmentRecord,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/attachments", tags=["attachments"])


def ascii_fallback_filename(filename: str) -> str:
    """Best-effort ASCII rendition for clients that ignore ``filename*``."""
    fallback = filename.encode("ascii", errors="replace").decode("ascii")
    fallback = fallback.replace("\\", "_").replace('"', "_").replace("\r", "_").replace("\n", "_")
    return fallback or "download"


def content_disposition(filename: str) -> str:
    """Build an ``attachment`` Content-Disposition with an RFC 5987 UTF-8 name."""
    encoded = quote(filename, safe="")
    return f"attachment; filename=\"{ascii_fallback_filename(filename)}\"; filename*=UTF-8''{encoded}"


def attachment_response(record: AttachmentRecord, content: bytes) -> Response:
    return Response(
        content=content,
        media_type=record.mime_type,
        headers={
            "Content-Length": str(len(content)),
            "Content-Disposition": content_disposition(record.filename),
        },
    )


def _not_found() -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=NOT_FOUND_MESSAGE)


@router.get("/download/{token}")
async def download_with_token(
    token: str,
    manager: AttachmentManager = Depends(get_attachment_manager),
) -> Response:
    """Redeem a temporary token; the token itself is the credential."""
    try:
        record, content = await manager.redeem_download_token(token)
    except AttachmentNotFoundError as exc:
        raise _not_found() from exc
    return attachment_response(record, content)


@router.get("/{attachment_id}", dependencies=[Depends(require_api_token)])
async def download_attachment(
    attachment_id: str,
    manager: AttachmentManager = Depends(get_attachment_manager),
) -> Response:
    """Return the bytes of a live attachment."""
    try:
        record, content = await manager.get_attachment(attachment_id)
    except AttachmentNotFoundError as exc:
        raise _not_found() from exc
    return attachment_response(record, content)


@router.post(
    "/{attachment_id}/download-link",
    response_model=DownloadLinkResponse,
    dependencies=[Depends(require_api_token)],
)
async def create_download_link(
    attachment_id: str,
    request: Request,
    manager: AttachmentManager = Depends(get_attachment_manager),
) -> DownloadLinkResponse:
    """Issue a temporary token for a live attachment."""
    try:
        token, record = await manager.issue_download_link(attachment_id)
    except AttachmentNotFoundError as exc:
        raise _not_found() from exc

    return DownloadLinkResponse(
        download_url=token_download_url(request, token),
        filename=record.filename,
        size=record.size,
        mime_type=record.mime_type,
        expires_in=int(manager.settings.temp_token_ttl_seconds),
    )
