"""In-memory attachment metadata with liveness-checked access."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from services.content_store import ContentStore

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


class AttachmentRecord(BaseModel):
    """Metadata describing one stored attachment."""

    model_config = ConfigDict(frozen=True)

    attachment_id: str = Field(..., description="Opaque identifier issued by the content store")
    filename: str = Field(..., description="Original filename as provided by the message")
    mime_type: str = Field(default="application/octet-stream", description="Declared MIME type")
    size: int = Field(..., ge=0, description="Bytes written to storage")
    storage_path: str = Field(..., description="Location of the blob inside the storage directory")
    created_at: float = Field(..., description="Wall clock seconds captured when the blob was stored")


class MetadataIndex:
    """Source of truth for attachment existence and expiry.

    Every read goes through ``lookup`` which applies the TTL rule and evicts
    stale entries (metadata and blob) before reporting them as absent. The
    background sweep uses the same rule through ``sweep``.
    """

    def __init__(self, *, store: ContentStore, ttl_seconds: float, clock: Clock = time.time) -> None:
        self._store = store
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._records: Dict[str, AttachmentRecord] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._records)

    def now(self) -> float:
        return self._clock()

    def _is_expired(self, record: AttachmentRecord, now: float) -> bool:
        return (now - record.created_at) > self.ttl_seconds

    async def register(self, record: AttachmentRecord) -> None:
        async with self._lock:
            self._records[record.attachment_id] = record

    async def lookup(self, attachment_id: str) -> Optional[AttachmentRecord]:
        """Return the live record, evicting it first when its TTL has elapsed."""
        async with self._lock:
            record = self._records.get(attachment_id)
            if record is None:
                return None
            if not self._is_expired(record, self._clock()):
                return record
            self._records.pop(attachment_id, None)

        await asyncio.to_thread(self._store.delete, attachment_id)
        logger.info("Attachment %s expired on read; evicted", attachment_id)
        return None

    async def contains(self, attachment_id: str) -> bool:
        return await self.lookup(attachment_id) is not None

    async def evict(self, attachment_id: str) -> Optional[AttachmentRecord]:
        """Drop an entry and its blob regardless of age."""
        async with self._lock:
            record = self._records.pop(attachment_id, None)
        if record is not None:
            await asyncio.to_thread(self._store.delete, attachment_id)
        return record

    async def sweep(self) -> List[str]:
        """Evict every expired entry. Returns the evicted identifiers."""
        async with self._lock:
            now = self._clock()
            expired = [
                attachment_id
                for attachment_id, record in self._records.items()
                if self._is_expired(record, now)
            ]
            for attachment_id in expired:
                self._records.pop(attachment_id, None)

        for attachment_id in expired:
            await asyncio.to_thread(self._store.delete, attachment_id)
        return expired

    async def identifiers(self) -> List[str]:
        async with self._lock:
            return list(self._records)
