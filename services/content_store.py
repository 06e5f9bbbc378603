"""Filesystem blob store holding one file per attachment identifier."""

from __future__ import annotations

import logging
import threading
import uuid
from pathlib import Path
from typing import List, Optional, Set

from services.errors import AttachmentStorageError

logger = logging.getLogger(__name__)


class ContentStore:
    """Write, read and delete attachment bytes under a single directory.

    Blobs are keyed by a random UUID generated here. The suggested filename is
    only logged; it never becomes part of a path.
    """

    TEMP_SUFFIX = ".part"

    def __init__(self, base_path: str | Path) -> None:
        self.base_path = Path(base_path)
        self._writes_in_flight: Set[str] = set()
        self._writes_lock = threading.Lock()

    def persist(self, data: bytes, suggested_filename: str, mime_type: str) -> str:
        """Store ``data`` and return the new identifier."""
        attachment_id = str(uuid.uuid4())
        target = self.base_path / attachment_id
        temp_file = target.with_name(attachment_id + self.TEMP_SUFFIX)
        with self._writes_lock:
            self._writes_in_flight.add(attachment_id)
        try:
            self.base_path.mkdir(parents=True, exist_ok=True)
            with temp_file.open("wb") as fh:
                fh.write(data)
            temp_file.replace(target)
        except OSError as exc:
            self._discard(temp_file)
            raise AttachmentStorageError(f"Unable to persist attachment contents: {exc}") from exc
        finally:
            with self._writes_lock:
                self._writes_in_flight.discard(attachment_id)

        logger.debug(
            "Persisted %d bytes (%s, %r) as %s", len(data), mime_type, suggested_filename, attachment_id
        )
        return attachment_id

    def fetch(self, attachment_id: str) -> Optional[bytes]:
        """Return the stored bytes, or None when the blob does not exist."""
        path = self.path_for(attachment_id)
        if path is None:
            return None
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None

    def delete(self, attachment_id: str) -> None:
        """Remove a blob. Missing blobs are ignored."""
        path = self.path_for(attachment_id)
        if path is None:
            return
        try:
            path.unlink()
        except FileNotFoundError:
            return
        except OSError as exc:
            logger.warning("Failed to remove attachment blob %s: %s", path, exc)

    def exists(self, attachment_id: str) -> bool:
        path = self.path_for(attachment_id)
        return path is not None and path.is_file()

    def path_for(self, attachment_id: str) -> Optional[Path]:
        """Resolve an identifier to its blob path; None for malformed identifiers."""
        if not self.is_valid_identifier(attachment_id):
            return None
        return self.base_path / attachment_id

    def list_identifiers(self) -> List[str]:
        """Identifiers of every blob currently on disk."""
        if not self.base_path.is_dir():
            return []
        return sorted(
            entry.name
            for entry in self.base_path.iterdir()
            if entry.is_file() and self.is_valid_identifier(entry.name)
        )

    def list_abandoned_partials(self) -> List[Path]:
        """Leftover temp files from writes that never finished, e.g. after a crash."""
        if not self.base_path.is_dir():
            return []
        with self._writes_lock:
            in_flight = set(self._writes_in_flight)
        abandoned = []
        for entry in self.base_path.glob("*" + self.TEMP_SUFFIX):
            attachment_id = entry.name[: -len(self.TEMP_SUFFIX)]
            if entry.is_file() and self.is_valid_identifier(attachment_id) and attachment_id not in in_flight:
                abandoned.append(entry)
        return sorted(abandoned)

    def remove_partial(self, path: Path) -> bool:
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            logger.warning("Failed to remove partial write %s: %s", path, exc)
            return False
        return True

    @staticmethod
    def _discard(path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            logger.debug("Could not remove partial write %s: %s", path, exc)

    @staticmethod
    def is_valid_identifier(attachment_id: str) -> bool:
        if not attachment_id or not isinstance(attachment_id, str):
            return False
        try:
            parsed = uuid.UUID(attachment_id)
        except ValueError:
            return False
        # Only the canonical lowercase hyphenated form names a blob
        return str(parsed) == attachment_id
