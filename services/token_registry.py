"""Short-lived download tokens bound to attachment identifiers."""

from __future__ import annotations

import asyncio
import logging
import secrets
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TemporaryToken:
    """A download credential for exactly one attachment."""

    token: str
    attachment_id: str
    created_at: float


class TemporaryTokenRegistry:
    """Issue and redeem temporary download tokens.

    The registry only knows about its own clock. It never checks that the
    bound attachment exists; callers confirm that before ``issue`` and again
    after ``redeem``.
    """

    TOKEN_BYTES = 32

    def __init__(
        self,
        *,
        ttl_seconds: float,
        single_use: bool = False,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self.single_use = single_use
        self._clock = clock
        self._tokens: Dict[str, TemporaryToken] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._tokens)

    def _is_expired(self, entry: TemporaryToken, now: float) -> bool:
        return (now - entry.created_at) > self.ttl_seconds

    async def issue(self, attachment_id: str) -> str:
        token = secrets.token_urlsafe(self.TOKEN_BYTES)
        async with self._lock:
            self._tokens[token] = TemporaryToken(
                token=token,
                attachment_id=attachment_id,
                created_at=self._clock(),
            )
        return token

    async def redeem(self, token: str) -> Optional[str]:
        """Return the bound attachment identifier, or None for unknown or stale tokens."""
        if not token:
            return None
        async with self._lock:
            entry = self._tokens.get(token)
            if entry is None:
                return None
            if self._is_expired(entry, self._clock()):
                self._tokens.pop(token, None)
                return None
            if self.single_use:
                self._tokens.pop(token, None)
            return entry.attachment_id

    async def revoke(self, token: str) -> None:
        async with self._lock:
            self._tokens.pop(token, None)

    async def sweep(self) -> int:
        """Drop every expired token. Returns how many were removed."""
        async with self._lock:
            now = self._clock()
            expired = [token for token, entry in self._tokens.items() if self._is_expired(entry, now)]
            for token in expired:
                self._tokens.pop(token, None)
        return len(expired)
