"""Classify, persist and describe the attachments of one parsed message.

The parser hands over attachments as loosely shaped mappings. They are
normalized into ``AttachmentDescriptor`` first; every decision afterwards
works on that fixed shape:

* attachments referenced from the HTML body through ``cid:`` become inline
  data URIs and are never stored;
* attachments over the size limit are skipped with a readable reason;
* everything else is persisted and gets a download URL, or is skipped with the
  storage error when persisting fails.
"""

from __future__ import annotations

import base64
import binascii
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Set

from services.attachment_manager import AttachmentManager
from services.errors import AttachmentError

logger = logging.getLogger(__name__)

DEFAULT_FILENAME = "unnamed"
DEFAULT_MIME_TYPE = "application/octet-stream"
DEFAULT_DISPOSITION = "attachment"
INLINE_FALLBACK_MIME_TYPE = "image/png"
INLINE_SKIP_REASON = "Inline image embedded in HTML body as base64 data URI"

CID_REFERENCE_PATTERN = re.compile(r"""src=["']cid:([^"']+)["']""", re.IGNORECASE)

_PLACEHOLDER_SVG = (
    '<svg width="200" height="100" xmlns="http://www.w3.org/2000/svg">'
    '<rect width="100%" height="100%" fill="#f0f0f0"/>'
    '<text x="50%" y="50%" font-family="Arial" font-size="14" fill="#999" '
    'text-anchor="middle" dy=".3em">Image unavailable</text></svg>'
)
PLACEHOLDER_IMAGE_SRC = (
    'src="data:image/svg+xml;base64,'
    + base64.b64encode(_PLACEHOLDER_SVG.encode("utf-8")).decode("ascii")
    + '" alt="Image unavailable"'
)


class AttachmentStatus(str, Enum):
    INLINE = "inline"
    DOWNLOADABLE = "downloadable"
    SKIPPED_OVERSIZE = "skipped_oversize"
    SKIPPED_ERROR = "skipped_error"


@dataclass
class AttachmentDescriptor:
    """Fixed internal shape of a raw attachment coming out of the parser."""

    filename: str
    mime_type: str
    content: bytes
    disposition: str
    content_id: Optional[str] = None
    mime_type_declared: bool = True

    @property
    def size(self) -> int:
        return len(self.content)

    @property
    def normalized_content_id(self) -> Optional[str]:
        return strip_angle_brackets(self.content_id) if self.content_id else None

    @property
    def inline_mime_type(self) -> Optional[str]:
        """MIME type for a data URI; None lets the image fallback apply."""
        return self.mime_type if self.mime_type_declared else None

    @classmethod
    def from_raw(cls, raw: Any) -> "AttachmentDescriptor":
        """Build a descriptor from a mapping or an object with attachment attributes."""
        filename = _pick(raw, "filename")
        mime_type = _pick(raw, "mime_type", "mimeType", "content_type")
        disposition = _pick(raw, "disposition", "content_disposition")
        content_id = _pick(raw, "content_id", "contentId", "cid")
        return cls(
            filename=str(filename) if filename else DEFAULT_FILENAME,
            mime_type=str(mime_type) if mime_type else DEFAULT_MIME_TYPE,
            content=_coerce_bytes(_pick(raw, "content", "payload")),
            disposition=str(disposition).lower() if disposition else DEFAULT_DISPOSITION,
            content_id=str(content_id).strip() if content_id else None,
            mime_type_declared=bool(mime_type),
        )


@dataclass
class ProcessedAttachment:
    """Per-attachment outcome reported back to the caller."""

    filename: str
    mime_type: str
    size: int
    disposition: str
    content_id: Optional[str]
    status: AttachmentStatus
    is_inline: bool = False
    id: Optional[str] = None
    download_url: Optional[str] = None
    skipped: bool = False
    skip_reason: Optional[str] = None


@dataclass
class PipelineResult:
    html: str
    attachments: List[ProcessedAttachment] = field(default_factory=list)


def strip_angle_brackets(content_id: str) -> str:
    value = content_id.strip()
    if value.startswith("<"):
        value = value[1:]
    if value.endswith(">"):
        value = value[:-1]
    return value


def build_cid_map(descriptors: Iterable[AttachmentDescriptor]) -> Dict[str, AttachmentDescriptor]:
    """Map content identifiers to their attachments; later duplicates win."""
    cid_map: Dict[str, AttachmentDescriptor] = {}
    for descriptor in descriptors:
        cid = descriptor.normalized_content_id
        if cid:
            cid_map[cid] = descriptor
    return cid_map


def encode_data_uri(content: bytes, mime_type: Optional[str]) -> str:
    encoded = base64.b64encode(content).decode("ascii")
    return f"data:{mime_type or INLINE_FALLBACK_MIME_TYPE};base64,{encoded}"


def rewrite_inline_images(
    html: str,
    cid_map: Dict[str, AttachmentDescriptor],
) -> tuple[str, Set[int]]:
    """Replace ``cid:`` image references with data URIs.

    Returns the rewritten HTML and the ``id()`` of every descriptor that was
    referenced, which is what makes an attachment inline.
    """
    inline_ids: Set[int] = set()
    if not html or not cid_map:
        return html or "", inline_ids

    def _substitute(match: "re.Match[str]") -> str:
        descriptor = cid_map.get(match.group(1).strip())
        if descriptor is None:
            return match.group(0)
        inline_ids.add(id(descriptor))
        if not descriptor.content:
            return PLACEHOLDER_IMAGE_SRC
        try:
            return f'src="{encode_data_uri(descriptor.content, descriptor.inline_mime_type)}"'
        except (TypeError, ValueError, binascii.Error) as exc:
            logger.warning("Unable to encode inline image %s: %s", match.group(1), exc)
            return PLACEHOLDER_IMAGE_SRC

    return CID_REFERENCE_PATTERN.sub(_substitute, html), inline_ids


class AttachmentPipeline:
    """Turn a parser's attachment list into caller-facing outcomes."""

    def __init__(
        self,
        manager: AttachmentManager,
        *,
        url_for: Callable[[str], str],
    ) -> None:
        self.manager = manager
        self.policy = manager.policy
        self._url_for = url_for

    async def process(self, raw_attachments: Optional[Iterable[Any]], html: Optional[str]) -> PipelineResult:
        descriptors = [AttachmentDescriptor.from_raw(raw) for raw in (raw_attachments or [])]
        rewritten_html, inline_ids = rewrite_inline_images(html or "", build_cid_map(descriptors))

        result = PipelineResult(html=rewritten_html)
        for descriptor in descriptors:
            if id(descriptor) in inline_ids:
                outcome = self._inline(descriptor)
            elif self.policy.is_oversize(descriptor.size):
                outcome = self._skipped(
                    descriptor,
                    AttachmentStatus.SKIPPED_OVERSIZE,
                    self.policy.reason_for_oversize(descriptor.size),
                )
            else:
                outcome = await self._persist(descriptor)
            result.attachments.append(outcome)
        return result

    async def _persist(self, descriptor: AttachmentDescriptor) -> ProcessedAttachment:
        try:
            record = await self.manager.store_attachment(
                data=descriptor.content,
                filename=descriptor.filename,
                mime_type=descriptor.mime_type,
            )
        except (AttachmentError, OSError) as exc:
            logger.error("Failed to save attachment %r: %s", descriptor.filename, exc)
            return self._skipped(
                descriptor,
                AttachmentStatus.SKIPPED_ERROR,
                f"Failed to save attachment: {exc}",
            )

        outcome = self._base(descriptor, AttachmentStatus.DOWNLOADABLE)
        outcome.id = record.attachment_id
        outcome.download_url = self._url_for(record.attachment_id)
        return outcome

    def _inline(self, descriptor: AttachmentDescriptor) -> ProcessedAttachment:
        outcome = self._skipped(descriptor, AttachmentStatus.INLINE, INLINE_SKIP_REASON)
        outcome.is_inline = True
        return outcome

    def _skipped(
        self,
        descriptor: AttachmentDescriptor,
        status: AttachmentStatus,
        reason: str,
    ) -> ProcessedAttachment:
        outcome = self._base(descriptor, status)
        outcome.skipped = True
        outcome.skip_reason = reason
        return outcome

    @staticmethod
    def _base(descriptor: AttachmentDescriptor, status: AttachmentStatus) -> ProcessedAttachment:
        return ProcessedAttachment(
            filename=descriptor.filename,
            mime_type=descriptor.mime_type,
            size=descriptor.size,
            disposition=descriptor.disposition,
            content_id=descriptor.content_id,
            status=status,
        )


def _pick(raw: Any, *names: str) -> Any:
    for name in names:
        if isinstance(raw, dict):
            value = raw.get(name)
        else:
            value = getattr(raw, name, None)
        if value is not None:
            return value
    return None


def _coerce_bytes(content: Any) -> bytes:
    if content is None:
        return b""
    if isinstance(content, bytes):
        return content
    if isinstance(content, (bytearray, memoryview)):
        return bytes(content)
    if isinstance(content, str):
        return content.encode("utf-8")
    if isinstance(content, (list, tuple)):
        try:
            return bytes(content)
        except (TypeError, ValueError):
            pass
    logger.warning("Unsupported attachment content type %s; treating as empty", type(content).__name__)
    return b""
