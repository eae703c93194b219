"""
Error taxonomy for backup validation and restore.

Every failure in the backup subsystem is reported as exactly one
BackupErrorCode plus optional human-readable details. Codes are grouped
into categories that describe how the caller should treat them; none of
them is retried automatically.
"""

from enum import Enum
from typing import Optional


class ErrorCategory(str, Enum):
    """Broad class of a backup error."""

    FORMAT = "format"  # Not parseable or not the expected shape
    INTEGRITY = "integrity"  # Recomputed digest disagrees with the declared one
    COMPATIBILITY = "compatibility"  # Unknown schema version
    COMPLETENESS = "completeness"  # Manifest references absent assets
    COMMIT = "commit"  # Applying resolved operations failed


class BackupErrorCode(str, Enum):
    """Error codes surfaced to callers of the backup subsystem."""

    INVALID_JSON = "invalid-json"
    INVALID_STRUCTURE = "invalid-structure"
    UNSUPPORTED_SCHEMA = "unsupported-schema"
    INVALID_FORMAT = "invalid-format"
    CHECKSUM_MISMATCH = "checksum-mismatch"
    ASSETS_MISSING = "assets-missing"
    ASSETS_HASH_MISMATCH = "assets-hash-mismatch"
    ASSETS_CHECKSUM_MISMATCH = "assets-checksum-mismatch"
    ARCHIVE_MISSING = "archive-missing"
    ARCHIVE_INVALID = "archive-invalid"
    RESTORE_FAILED = "restore-failed"

    @property
    def category(self) -> ErrorCategory:
        """Category this code belongs to."""
        return _CATEGORIES[self]


_CATEGORIES = {
    BackupErrorCode.INVALID_JSON: ErrorCategory.FORMAT,
    BackupErrorCode.INVALID_STRUCTURE: ErrorCategory.FORMAT,
    BackupErrorCode.INVALID_FORMAT: ErrorCategory.FORMAT,
    BackupErrorCode.ARCHIVE_MISSING: ErrorCategory.FORMAT,
    BackupErrorCode.ARCHIVE_INVALID: ErrorCategory.FORMAT,
    BackupErrorCode.CHECKSUM_MISMATCH: ErrorCategory.INTEGRITY,
    BackupErrorCode.ASSETS_HASH_MISMATCH: ErrorCategory.INTEGRITY,
    BackupErrorCode.ASSETS_CHECKSUM_MISMATCH: ErrorCategory.INTEGRITY,
    BackupErrorCode.UNSUPPORTED_SCHEMA: ErrorCategory.COMPATIBILITY,
    BackupErrorCode.ASSETS_MISSING: ErrorCategory.COMPLETENESS,
    BackupErrorCode.RESTORE_FAILED: ErrorCategory.COMMIT,
}


class BackupError(Exception):
    """
    Raised when a backup artifact cannot be exported, validated or restored.

    Attributes:
        code: The BackupErrorCode describing the failure
        details: Optional diagnostic detail (offending path, version, ...)
    """

    def __init__(self, code: BackupErrorCode, details: Optional[str] = None):
        self.code = code
        self.details = details
        message = code.value if not details else f"{code.value}: {details}"
        super().__init__(message)

    @property
    def category(self) -> ErrorCategory:
        """Category of the underlying error code."""
        return self.code.category


class ArchiveError(Exception):
    """Raised by archive containers when the container cannot be read."""

    pass
