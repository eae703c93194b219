"""
Archive container reader/writer.

The exporter and validator only talk to the ArchiveWriter / ArchiveReader
interfaces, so the concrete container format can be swapped without
touching them. The zip implementation below is the default.
"""

from __future__ import annotations

import io
import logging
import zipfile
import zlib
from typing import Protocol

from bookvault.backup.errors import ArchiveError

logger = logging.getLogger(__name__)

# Zip local file header signature
ZIP_MAGIC = b"PK\x03\x04"

# Fixed entry timestamp so identical content produces identical archives
_FIXED_DATE_TIME = (1980, 1, 1, 0, 0, 0)


class ArchiveEntryCorruptError(ArchiveError):
    """Raised when an entry is present but its payload fails to decode."""

    def __init__(self, name: str, reason: str):
        self.name = name
        super().__init__(f"Corrupt archive entry {name}: {reason}")


class ArchiveWriter(Protocol):
    """Builds an archive from named binary entries."""

    def add(self, name: str, data: bytes, compress: bool = True) -> None: ...

    def to_bytes(self) -> bytes: ...


class ArchiveReader(Protocol):
    """Reads named binary entries from an archive."""

    def names(self) -> list[str]: ...

    def has(self, name: str) -> bool: ...

    def read(self, name: str) -> bytes: ...


def looks_like_zip(data: bytes) -> bool:
    """Check whether data starts with the zip local file header signature."""
    return data[: len(ZIP_MAGIC)] == ZIP_MAGIC


class ZipArchiveWriter:
    """
    In-memory zip archive writer.

    Usage:
        writer = ZipArchiveWriter()
        writer.add("backup.json", document_bytes)
        writer.add("assets/abc.bin", image_bytes, compress=False)
        archive = writer.to_bytes()
    """

    def __init__(self, compresslevel: int = 6):
        self.compresslevel = compresslevel
        self._entries: dict[str, tuple[bytes, bool]] = {}

    def add(self, name: str, data: bytes, compress: bool = True) -> None:
        """
        Add an entry. Adding a name twice replaces the earlier payload.

        Args:
            name: Entry path inside the archive
            data: Entry payload
            compress: Deflate the payload (False stores it verbatim)
        """
        self._entries[name] = (data, compress)

    def to_bytes(self) -> bytes:
        """Serialize all entries into zip bytes."""
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w") as zf:
            for name, (data, compress) in self._entries.items():
                info = zipfile.ZipInfo(name, date_time=_FIXED_DATE_TIME)
                info.compress_type = (
                    zipfile.ZIP_DEFLATED if compress else zipfile.ZIP_STORED
                )
                zf.writestr(info, data, compresslevel=self.compresslevel)
        return buffer.getvalue()


class ZipArchiveReader:
    """
    In-memory zip archive reader.

    Raises:
        ArchiveError: If the bytes are not a readable zip container
    """

    def __init__(self, data: bytes):
        try:
            self._zip = zipfile.ZipFile(io.BytesIO(data))
            self._names = [
                info.filename for info in self._zip.infolist() if not info.is_dir()
            ]
        except (zipfile.BadZipFile, zipfile.LargeZipFile, ValueError, OSError) as e:
            raise ArchiveError(f"Unreadable zip archive: {e}") from e

    def names(self) -> list[str]:
        """Entry names in archive order (directories excluded)."""
        return list(self._names)

    def has(self, name: str) -> bool:
        """Check whether the archive contains an entry."""
        return name in self._names

    def read(self, name: str) -> bytes:
        """
        Read an entry payload.

        Raises:
            KeyError: If the entry does not exist
            ArchiveEntryCorruptError: If the payload fails CRC or decompression
        """
        if name not in self._names:
            raise KeyError(name)
        try:
            return self._zip.read(name)
        except (zipfile.BadZipFile, zlib.error, EOFError, OSError) as e:
            logger.debug(f"Failed to read archive entry {name}: {e}")
            raise ArchiveEntryCorruptError(name, str(e)) from e

    def close(self) -> None:
        """Release the underlying zip handle."""
        self._zip.close()
