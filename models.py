"""
Data Models for the Mail Parse Service
======================================

Pydantic models for API responses. JSON field names are camelCase; the
Python attributes stay snake_case.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from services.attachment_pipeline import AttachmentStatus, ProcessedAttachment


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class EmailAddress(ApiModel):
    name: str = ""
    address: str = ""


class AttachmentInfo(ApiModel):
    """Outcome for one attachment of a parsed message."""

    filename: str
    mime_type: str
    size: int = Field(..., ge=0)
    disposition: str
    content_id: Optional[str] = None
    is_inline: bool = False
    status: AttachmentStatus
    id: Optional[str] = None
    download_url: Optional[str] = None
    skipped: bool = False
    skip_reason: Optional[str] = None

    @classmethod
    def from_processed(cls, processed: ProcessedAttachment) -> "AttachmentInfo":
        return cls(
            filename=processed.filename,
            mime_type=processed.mime_type,
            size=processed.size,
            disposition=processed.disposition,
            content_id=processed.content_id,
            is_inline=processed.is_inline,
            status=processed.status,
            id=processed.id,
            download_url=processed.download_url,
            skipped=processed.skipped,
            skip_reason=processed.skip_reason,
        )


class ParseResponse(ApiModel):
    """Structured message returned by POST /parse."""

    from_: EmailAddress = Field(default_factory=EmailAddress, alias="from")
    to: List[EmailAddress] = Field(default_factory=list)
    cc: List[EmailAddress] = Field(default_factory=list)
    bcc: List[EmailAddress] = Field(default_factory=list)
    subject: str = ""
    date: Optional[str] = None
    message_id: str = ""
    text: str = ""
    html: str = ""
    attachments: List[AttachmentInfo] = Field(default_factory=list)


class DownloadLinkResponse(ApiModel):
    """Temporary download link for one attachment."""

    download_url: str
    filename: str
    size: int
    mime_type: str
    expires_in: int = Field(..., description="Seconds until the link stops working")


class HealthResponse(BaseModel):
    status: str = "ok"
