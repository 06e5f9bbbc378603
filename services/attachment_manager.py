"""Attachment lifecycle management for the Mail Parse Service."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Tuple

from config import AttachmentSettings
from services.content_store import ContentStore
from services.errors import (
    AttachmentError,
    AttachmentNotFoundError,
    AttachmentStorageError,
    AttachmentValidationError,
)
from services.metadata_index import AttachmentRecord, MetadataIndex
from services.size_policy import SizePolicy
from services.token_registry import TemporaryTokenRegistry

logger = logging.getLogger(__name__)

__all__ = [
    "AttachmentError",
    "AttachmentManager",
    "AttachmentNotFoundError",
    "AttachmentRecord",
    "AttachmentStorageError",
    "AttachmentValidationError",
    "CleanupReport",
]

NOT_FOUND_MESSAGE = "Attachment not found or expired"


@dataclass
class CleanupReport:
    """Aggregated report produced by one eviction pass."""

    attachments_removed: int = 0
    tokens_removed: int = 0
    orphans_removed: int = 0
    partials_removed: int = 0
    removed_ids: List[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return (
            self.attachments_removed
            + self.tokens_removed
            + self.orphans_removed
            + self.partials_removed
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "attachments_removed": self.attachments_removed,
            "tokens_removed": self.tokens_removed,
            "orphans_removed": self.orphans_removed,
            "partials_removed": self.partials_removed,
            "removed_ids": list(self.removed_ids),
        }


class AttachmentManager:
    """Own the content store, metadata index and token registry of one application.

    Instances are created per application and handed to routes and to the
    eviction sweeper, so tests can build isolated managers against a
    temporary directory and a fake clock.
    """

    def __init__(
        self,
        *,
        settings: AttachmentSettings,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.settings = settings
        self.store = ContentStore(settings.base_path)
        self.index = MetadataIndex(store=self.store, ttl_seconds=settings.ttl_seconds, clock=clock)
        self.tokens = TemporaryTokenRegistry(
            ttl_seconds=settings.temp_token_ttl_seconds,
            single_use=settings.single_use_tokens,
            clock=clock,
        )
        self.policy = SizePolicy(max_size_bytes=settings.max_size_bytes)
        self._clock = clock

    async def store_attachment(
        self,
        *,
        data: bytes,
        filename: str,
        mime_type: str = "application/octet-stream",
    ) -> AttachmentRecord:
        """Persist bytes and register their metadata."""
        if data is None:
            raise AttachmentValidationError("No data provided for attachment")

        attachment_id = await asyncio.to_thread(self.store.persist, data, filename, mime_type)
        record = AttachmentRecord(
            attachment_id=attachment_id,
            filename=filename,
            mime_type=mime_type or "application/octet-stream",
            size=len(data),
            storage_path=attachment_id,
            created_at=self._clock(),
        )
        await self.index.register(record)
        logger.info("Stored attachment %s (%d bytes)", attachment_id, record.size)
        return record

    async def get_metadata(self, attachment_id: str) -> AttachmentRecord:
        """Return live metadata without reading the blob."""
        record = await self.index.lookup(attachment_id)
        if record is None:
            raise AttachmentNotFoundError(NOT_FOUND_MESSAGE)
        return record

    async def get_attachment(self, attachment_id: str) -> Tuple[AttachmentRecord, bytes]:
        """Return metadata and bytes of a live attachment."""
        record = await self.get_metadata(attachment_id)
        content = await asyncio.to_thread(self.store.fetch, attachment_id)
        if content is None or len(content) != record.size:
            # Blob vanished or was truncated behind our back; the record is dead too
            logger.warning("Attachment %s has no usable blob; evicting", attachment_id)
            await self.index.evict(attachment_id)
            raise AttachmentNotFoundError(NOT_FOUND_MESSAGE)
        return record, content

    async def issue_download_link(self, attachment_id: str) -> Tuple[str, AttachmentRecord]:
        """Create a temporary token for a live attachment."""
        record = await self.get_metadata(attachment_id)
        token = await self.tokens.issue(record.attachment_id)
        logger.info("Issued temporary download token for attachment %s", attachment_id)
        return token, record

    async def redeem_download_token(self, token: str) -> Tuple[AttachmentRecord, bytes]:
        """Resolve a temporary token to the attachment it authorizes."""
        attachment_id = await self.tokens.redeem(token)
        if attachment_id is None:
            raise AttachmentNotFoundError(NOT_FOUND_MESSAGE)
        # The attachment may expire between the two lookups; that is a plain miss
        return await self.get_attachment(attachment_id)

    async def cleanup_attachment(self, attachment_id: str) -> bool:
        return await self.index.evict(attachment_id) is not None

    async def run_cleanup(self, *, purge_orphans: bool = False) -> CleanupReport:
        """Evict expired attachments and tokens, optionally deleting orphan blobs."""
        report = CleanupReport()
        removed = await self.index.sweep()
        report.attachments_removed = len(removed)
        report.removed_ids.extend(removed)
        report.tokens_removed = await self.tokens.sweep()

        if purge_orphans:
            known = set(await self.index.identifiers())
            on_disk = await asyncio.to_thread(self.store.list_identifiers)
            for attachment_id in on_disk:
                if attachment_id in known:
                    continue
                await asyncio.to_thread(self.store.delete, attachment_id)
                report.orphans_removed += 1
                report.removed_ids.append(attachment_id)

            partials = await asyncio.to_thread(self.store.list_abandoned_partials)
            for partial in partials:
                if await asyncio.to_thread(self.store.remove_partial, partial):
                    report.partials_removed += 1

        return report
