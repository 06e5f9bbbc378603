"""Raw message parsing built on the standard library ``email`` package.

Produces the structured message consumed by the attachment pipeline: header
fields, text and HTML bodies, and a list of raw attachment mappings.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from email import policy
from email.headerregistry import Address
from email.message import EmailMessage
from email.parser import BytesParser
from email.utils import getaddresses, parsedate_to_datetime
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

HEADER_SNIFF_BYTES = 1000
_HEADER_PATTERN = re.compile(
    r"(?:^|\r?\n)(From|To|Subject|Date|Message-ID|Received|Return-Path|Delivered-To):",
    re.IGNORECASE,
)


class EmailParseError(Exception):
    """Raised when a raw message cannot be turned into a structured message."""


@dataclass
class ParsedEmail:
    from_: Dict[str, str]
    to: List[Dict[str, str]] = field(default_factory=list)
    cc: List[Dict[str, str]] = field(default_factory=list)
    bcc: List[Dict[str, str]] = field(default_factory=list)
    subject: str = ""
    date: Optional[str] = None
    message_id: str = ""
    text: str = ""
    html: str = ""
    attachments: List[Dict[str, Any]] = field(default_factory=list)


def validate_email_data(raw: bytes) -> bool:
    """Cheap sanity check that ``raw`` starts like an RFC 5322 message."""
    if not raw:
        return False
    head = raw[:HEADER_SNIFF_BYTES].decode("utf-8", errors="replace")
    return bool(_HEADER_PATTERN.search(head))


def parse_email(raw: bytes, *, utc_offset_hours: float = 8.0) -> ParsedEmail:
    """Parse raw message bytes into a ``ParsedEmail``."""
    try:
        message = BytesParser(policy=policy.default).parsebytes(raw)
    except Exception as exc:
        raise EmailParseError(f"Unable to parse message: {exc}") from exc

    try:
        text_part = message.get_body(preferencelist=("plain",))
        html_part = message.get_body(preferencelist=("html",))
        parsed = ParsedEmail(
            from_=format_single_address(message.get("From")),
            to=format_addresses(message.get_all("To")),
            cc=format_addresses(message.get_all("Cc")),
            bcc=format_addresses(message.get_all("Bcc")),
            subject=str(message.get("Subject") or ""),
            date=format_date(message.get("Date"), utc_offset_hours),
            message_id=str(message.get("Message-ID") or "").strip(),
            text=_part_text(text_part),
            html=_part_text(html_part),
            attachments=extract_attachments(message, skip=(text_part, html_part)),
        )
    except EmailParseError:
        raise
    except Exception as exc:
        raise EmailParseError(f"Unable to parse message: {exc}") from exc

    logger.debug(
        "Parsed message %s with %d attachment(s)", parsed.message_id or "<no id>", len(parsed.attachments)
    )
    return parsed


def format_addresses(values: Any) -> List[Dict[str, str]]:
    """Normalize address headers to ``{"name", "address"}`` dicts.

    A missing display name falls back to the address itself.
    """
    if not values:
        return []
    if not isinstance(values, (list, tuple)):
        values = [values]

    formatted: List[Dict[str, str]] = []
    for value in values:
        addresses = getattr(value, "addresses", None)
        if addresses is not None:
            for address in addresses:
                formatted.append(_address_dict(address))
            continue
        for name, addr in getaddresses([str(value)]):
            if not name and not addr:
                continue
            formatted.append({"name": name or addr, "address": addr})
    return formatted


def format_single_address(value: Any) -> Dict[str, str]:
    formatted = format_addresses(value)
    return formatted[0] if formatted else {"name": "", "address": ""}


def format_date(value: Any, utc_offset_hours: float = 8.0) -> Optional[str]:
    """Render the Date header as ``YYYY-MM-DD HH:MM:SS`` in a fixed UTC offset."""
    if not value:
        return None
    moment = getattr(value, "datetime", None)
    if moment is None:
        try:
            moment = parsedate_to_datetime(str(value))
        except (TypeError, ValueError, IndexError):
            return None
    if moment is None:
        return None
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    target = timezone(timedelta(hours=utc_offset_hours))
    return moment.astimezone(target).strftime("%Y-%m-%d %H:%M:%S")


def extract_attachments(message: EmailMessage, *, skip: tuple = ()) -> List[Dict[str, Any]]:
    """Collect attachment-like leaf parts, including inline images with a Content-ID."""
    skip_ids = {id(part) for part in skip if part is not None}
    attachments: List[Dict[str, Any]] = []

    for part in message.walk():
        if part.is_multipart() or id(part) in skip_ids:
            continue

        disposition = part.get_content_disposition()
        filename = part.get_filename()
        content_id = part.get("Content-ID")
        is_attachment = (
            disposition == "attachment"
            or bool(filename)
            or (content_id is not None and part.get_content_maintype() != "text")
        )
        if not is_attachment:
            continue

        payload = part.get_payload(decode=True)
        attachments.append(
            {
                "filename": filename,
                "mime_type": part.get_content_type(),
                "content": payload if isinstance(payload, bytes) else b"",
                "content_id": str(content_id).strip() if content_id else None,
                "disposition": disposition,
            }
        )
    return attachments


def _address_dict(address: Address) -> Dict[str, str]:
    addr_spec = address.addr_spec or ""
    return {"name": address.display_name or addr_spec, "address": addr_spec}


def _part_text(part: Optional[EmailMessage]) -> str:
    if part is None:
        return ""
    try:
        content = part.get_content()
    except (LookupError, UnicodeError):
        payload = part.get_payload(decode=True) or b""
        return payload.decode("utf-8", errors="replace")
    return content if isinstance(content, str) else ""
