"""Size limit decisions for extracted attachments."""

from __future__ import annotations

from dataclasses import dataclass

BYTES_PER_MEGABYTE = 1024 * 1024


def format_megabytes(size_bytes: int) -> str:
    """Binary megabytes with one decimal place, e.g. ``10.0MB``."""
    return f"{size_bytes / BYTES_PER_MEGABYTE:.1f}MB"


@dataclass(frozen=True)
class SizePolicy:
    max_size_bytes: int

    def is_oversize(self, size_bytes: int) -> bool:
        return size_bytes > self.max_size_bytes

    def reason_for_oversize(self, size_bytes: int) -> str:
        # Shown to API callers; must always carry both numbers
        return (
            f"Attachment size exceeds limit "
            f"({format_megabytes(size_bytes)} > {format_megabytes(self.max_size_bytes)})"
        )
