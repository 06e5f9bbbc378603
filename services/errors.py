"""Exceptions shared by the attachment services."""


class AttachmentError(Exception):
    """Base exception for attachment errors."""


class AttachmentValidationError(AttachmentError):
    """Raised when incoming attachment data fails validation."""


class AttachmentNotFoundError(AttachmentError):
    """Raised when a requested attachment is unknown, expired or unreadable."""


class AttachmentStorageError(AttachmentError):
    """Raised when attachment bytes cannot be written to storage."""
