"""
Backup and restore functionality for the library.

This package serializes the library into integrity-protected backup
artifacts, validates incoming artifacts, and manages backup files on disk.
"""

from bookvault.backup.errors import BackupError, BackupErrorCode, ErrorCategory
from bookvault.backup.exporter import BackupExporter
from bookvault.backup.manager import BackupManager
from bookvault.backup.manifest import BackupFormat, BackupManifest
from bookvault.backup.validator import BackupValidator, ValidatedDataSet

__all__ = [
    "BackupError",
    "BackupErrorCode",
    "BackupExporter",
    "BackupFormat",
    "BackupManager",
    "BackupManifest",
    "BackupValidator",
    "ErrorCategory",
    "ValidatedDataSet",
]
