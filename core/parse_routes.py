"""
Parse route for the Mail Parse Service.

POST /parse takes a raw RFC 5322 message as the request body and returns the
structured message together with one outcome per attachment.
"""

import asyncio
import uuid
from collections import Counter
from functools import partial

from fastapi import APIRouter, Depends, HTTPException, Request, status

from config import Config
from logging_utils import Phase, create_phase_logger
from models import AttachmentInfo, EmailAddress, ParseResponse
from services.attachment_manager import AttachmentManager
from services.attachment_pipeline import AttachmentPipeline
from services.email_parser import EmailParseError, parse_email, validate_email_data

from .dependencies import attachment_url, get_app_config, get_attachment_manager
from .security import require_api_token

router = APIRouter(tags=["parse"])


def _declared_length(request: Request) -> int:
    value = request.headers.get("content-length", "")
    return int(value) if value.isdigit() else 0


@router.post(
    "/parse",
    response_model=ParseResponse,
    dependencies=[Depends(require_api_token)],
)
async def parse_message(
    request: Request,
    manager: AttachmentManager = Depends(get_attachment_manager),
    app_config: Config = Depends(get_app_config),
) -> ParseResponse:
    """Parse a raw message and store its downloadable attachments."""
    request_id = uuid.uuid4().hex[:8]
    phase_logger = create_phase_logger(request_id, verbose=app_config.VERBOSE_LOGGING)
    body_limit = app_config.MAX_REQUEST_BODY_BYTES

    with phase_logger.phase(Phase.VALIDATION):
        if _declared_length(request) > body_limit:
            raise HTTPException(
                status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                detail=f"Request body exceeds {body_limit} bytes",
            )
        raw = await request.body()
        if len(raw) > body_limit:
            raise HTTPException(
                status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                detail=f"Request body exceeds {body_limit} bytes",
            )
        if not raw:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Request body is empty")
        if not validate_email_data(raw):
            phase_logger.warning("Body does not look like an email message")
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid email format")

    with phase_logger.phase(Phase.PARSE):
        phase_logger.debug(f"Parsing {len(raw)} bytes")
        try:
            parsed = await asyncio.to_thread(
                parse_email, raw, utc_offset_hours=app_config.EMAIL_DATE_UTC_OFFSET_HOURS
            )
        except EmailParseError as exc:
            phase_logger.warning(str(exc))
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Failed to parse email: {exc}",
            ) from exc

    with phase_logger.phase(Phase.ATTACHMENTS):
        pipeline = AttachmentPipeline(manager, url_for=partial(attachment_url, request))
        result = await pipeline.process(parsed.attachments, parsed.html)

    with phase_logger.phase(Phase.COMPLETION):
        phase_logger.log_outcome_summary(
            dict(Counter(outcome.status.value for outcome in result.attachments))
        )
        phase_logger.log_timing_summary()

    return ParseResponse(
        from_=EmailAddress(**parsed.from_),
        to=[EmailAddress(**address) for address in parsed.to],
        cc=[EmailAddress(**address) for address in parsed.cc],
        bcc=[EmailAddress(**address) for address in parsed.bcc],
        subject=parsed.subject,
        date=parsed.date,
        message_id=parsed.message_id,
        text=parsed.text,
        html=result.html,
        attachments=[AttachmentInfo.from_processed(outcome) for outcome in result.attachments],
    )
