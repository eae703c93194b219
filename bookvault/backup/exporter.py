"""
Backup exporter.

Serializes the library into either a metadata-only JSON document or a
full zip archive that bundles the document with every cover asset
referenced by a book and a manifest of per-asset digests.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from datetime import datetime
from typing import TYPE_CHECKING, Any, Optional

from bookvault import __version__
from bookvault.backup.checksum import digest
from bookvault.backup.container import ArchiveWriter, ZipArchiveWriter
from bookvault.backup.manifest import (
    CHECKSUM_FIELD,
    MANIFEST_PATH,
    METADATA_PATH,
    SCHEMA_VERSION,
    AssetEntry,
    BackupFormat,
    BackupManifest,
    asset_path,
    document_checksum,
)
from bookvault.library.asset import Asset
from bookvault.library.book import format_timestamp, utc_now
from bookvault.library.snapshot import LibrarySnapshot

if TYPE_CHECKING:
    from bookvault.storage.db import LibraryDatabase

logger = logging.getLogger(__name__)


def build_metadata_document(
    snapshot: LibrarySnapshot,
    backup_format: BackupFormat,
    generated_at: datetime,
) -> dict[str, Any]:
    """
    Build a sealed metadata document from a library snapshot.

    Args:
        snapshot: Library contents to serialize
        backup_format: Format recorded in the document
        generated_at: Generation timestamp

    Returns:
        Document dictionary including its checksum field
    """
    document: dict[str, Any] = {
        "format": backup_format.value,
        "schemaVersion": SCHEMA_VERSION,
        "appVersion": __version__,
        "generatedAt": format_timestamp(generated_at),
        "books": [book.to_dict() for book in snapshot.books],
        "bookLists": [book_list.to_dict() for book_list in snapshot.book_lists],
        "categories": list(snapshot.categories),
    }
    document[CHECKSUM_FIELD] = document_checksum(document)
    return document


def serialize_document(document: dict[str, Any]) -> bytes:
    """Encode a document as pretty-printed UTF-8 JSON."""
    return json.dumps(document, indent=2, ensure_ascii=False).encode("utf-8")


def referenced_assets(snapshot: LibrarySnapshot) -> list[Asset]:
    """
    Collect the assets referenced by books, in book order, without repeats.

    References to assets missing from the snapshot are logged and skipped.
    """
    assets: list[Asset] = []
    seen: set[str] = set()
    for book in snapshot.books:
        asset_id = book.cover_asset_id
        if not asset_id or asset_id in seen:
            continue
        seen.add(asset_id)
        asset = snapshot.assets.get(asset_id)
        if asset is None:
            logger.warning(
                f"Book {book.id} references missing cover asset {asset_id}; "
                "exporting the reference without payload"
            )
            continue
        assets.append(asset)
    return assets


class BackupExporter:
    """
    Exports the library into backup artifacts.

    The exporter reads the store once per export, under the store's
    exclusive lock, and never writes to it.

    Usage:
        exporter = BackupExporter(database)
        document = exporter.export_metadata()
        archive_bytes = exporter.export_full_archive()
    """

    def __init__(
        self,
        database: LibraryDatabase,
        clock: Optional[Callable[[], datetime]] = None,
        writer_factory: Optional[Callable[[], ArchiveWriter]] = None,
    ):
        """
        Initialize the exporter.

        Args:
            database: Live library store
            clock: Returns the generation timestamp (defaults to UTC now)
            writer_factory: Creates the archive writer (defaults to zip)
        """
        self.database = database
        self.clock = clock or utc_now
        self.writer_factory = writer_factory or ZipArchiveWriter

    def _snapshot(self) -> LibrarySnapshot:
        with self.database.exclusive():
            return self.database.snapshot()

    def export_metadata(self) -> dict[str, Any]:
        """
        Serialize all books, lists and categories into one sealed document.

        Returns:
            Metadata document dictionary
        """
        snapshot = self._snapshot()
        document = build_metadata_document(
            snapshot, BackupFormat.METADATA, self.clock()
        )
        logger.info(
            f"Exported metadata: {len(snapshot.books)} books, "
            f"{len(snapshot.book_lists)} lists"
        )
        return document

    def export_metadata_bytes(self) -> bytes:
        """Export the metadata document as UTF-8 JSON bytes."""
        return serialize_document(self.export_metadata())

    def export_full_archive(self) -> bytes:
        """
        Build a full archive with the document, assets and manifest.

        Returns:
            Archive bytes
        """
        snapshot = self._snapshot()
        generated_at = self.clock()
        document = build_metadata_document(snapshot, BackupFormat.FULL, generated_at)

        writer = self.writer_factory()
        writer.add(METADATA_PATH, serialize_document(document))

        entries: list[AssetEntry] = []
        for asset in referenced_assets(snapshot):
            path = asset_path(asset.asset_id)
            # Cover images are already compressed
            writer.add(path, asset.data, compress=False)
            entries.append(
                AssetEntry(
                    asset_id=asset.asset_id,
                    path=path,
                    bytes=len(asset.data),
                    sha256=digest(asset.data),
                    media_type=asset.media_type,
                    source_url=asset.source_url,
                    cached_at=format_timestamp(asset.cached_at),
                )
            )

        manifest = BackupManifest.build(
            metadata_checksum=document[CHECKSUM_FIELD],
            assets=entries,
            created_at=generated_at,
        )
        writer.add(MANIFEST_PATH, serialize_document(manifest.to_dict()))

        logger.info(
            f"Exported full archive: {len(snapshot.books)} books, "
            f"{len(snapshot.book_lists)} lists, {len(entries)} assets"
        )
        return writer.to_bytes()
