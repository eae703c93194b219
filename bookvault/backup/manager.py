"""
Backup file manager for library exports.

Provides functionality to:
- Save metadata and full exports with timestamp naming
- List available backups sorted by timestamp
- Load backup bytes for validation and restore
- Apply retention policy to limit backup count
"""

from __future__ import annotations

import contextlib
import logging
from datetime import datetime
from pathlib import Path

from bookvault.backup.manifest import BackupFormat

logger = logging.getLogger(__name__)


class BackupManager:
    """
    Manager for storing and rotating backup artifacts on disk.

    Attributes:
        backup_dir: Directory path where backups are stored
        retention_count: Maximum number of backups to retain (0 = unlimited)

    Usage:
        from pathlib import Path

        bm = BackupManager(Path("~/.bookvault/backups"), retention_count=10)

        # Save an export
        path = bm.save_backup(exporter.export_full_archive(), BackupFormat.FULL)

        # List and load
        for backup in bm.list_backups():
            data = bm.load_backup(backup)
    """

    BACKUP_PREFIX = "backup_"
    SUFFIXES = {BackupFormat.METADATA: ".json", BackupFormat.FULL: ".zip"}

    def __init__(self, backup_dir: Path, retention_count: int = 10):
        """
        Initialize the backup manager.

        Args:
            backup_dir: Directory path where backups will be stored
            retention_count: Maximum number of backups to keep (0 = keep all)
        """
        self.backup_dir = Path(backup_dir).expanduser()
        self.retention_count = retention_count

        self.backup_dir.mkdir(parents=True, exist_ok=True)

    def _new_backup_path(self, backup_format: BackupFormat, now: datetime) -> Path:
        """Build a timestamped, not-yet-existing backup path."""
        suffix = self.SUFFIXES[backup_format]
        stem = f"{self.BACKUP_PREFIX}{now.strftime('%Y%m%d_%H%M%S')}"
        path = self.backup_dir / f"{stem}{suffix}"
        counter = 1
        while path.exists():
            path = self.backup_dir / f"{stem}_{counter}{suffix}"
            counter += 1
        return path

    def save_backup(
        self,
        data: bytes,
        backup_format: BackupFormat,
        now: datetime | None = None,
    ) -> Path:
        """
        Write an exported artifact as backup_YYYYmmdd_HHMMSS.json / .zip.

        Args:
            data: Artifact bytes produced by the exporter
            backup_format: Format of the artifact (selects the suffix)
            now: Timestamp used for the file name (defaults to local now)

        Returns:
            Path to the created backup file

        Raises:
            OSError: If the file cannot be written
        """
        backup_path = self._new_backup_path(backup_format, now or datetime.now())
        backup_path.write_bytes(data)
        logger.info(f"Saved {backup_format.value} backup to {backup_path}")

        self.apply_retention()
        return backup_path

    def list_backups(self) -> list[Path]:
        """
        List all available backup files sorted by timestamp (newest first).

        Returns:
            List of Path objects for backup files, sorted newest to oldest
        """
        backup_files = [
            path
            for suffix in self.SUFFIXES.values()
            for path in self.backup_dir.glob(f"{self.BACKUP_PREFIX}*{suffix}")
        ]

        # Newest first; the name breaks ties between same-second files
        backup_files.sort(key=lambda p: (p.stat().st_mtime, p.name), reverse=True)

        return backup_files

    def load_backup(self, backup_file: Path) -> bytes:
        """
        Read a backup file.

        Args:
            backup_file: Path to the backup file (absolute, or a name inside
                the backup directory)

        Returns:
            Raw artifact bytes, to be passed to the validator

        Raises:
            OSError: If the file cannot be read
        """
        path = Path(backup_file)
        if not path.is_absolute() and not path.exists():
            path = self.backup_dir / path
        return path.read_bytes()

    def apply_retention(self) -> list[Path]:
        """
        Apply retention policy by deleting old backups.

        Keeps only the most recent N backups where N = retention_count.
        If retention_count is 0, all backups are kept.

        Returns:
            Paths that were deleted
        """
        if self.retention_count <= 0:
            return []

        backups_to_delete = self.list_backups()[self.retention_count :]

        deleted = []
        for backup in backups_to_delete:
            with contextlib.suppress(OSError):
                backup.unlink()
                deleted.append(backup)
                logger.debug(f"Removed old backup {backup.name}")

        if deleted:
            logger.info(f"Retention removed {len(deleted)} old backup(s)")
        return deleted
