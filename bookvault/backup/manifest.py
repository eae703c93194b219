"""
Backup manifest model and metadata document layout.

Metadata document format (backup.json or a standalone .json export):

    {
        "format": "metadata",
        "schemaVersion": "2.0",
        "appVersion": "0.3.0",
        "generatedAt": "2026-01-20T10:30:00+00:00",
        "checksum": "<sha256 of the document without this field>",
        "books": [...],
        "bookLists": [...],
        "categories": [...]
    }

Full archive manifest (manifest.json inside the zip):

    {
        "schemaVersion": "2.0",
        "createdAt": "2026-01-20T10:30:00+00:00",
        "metadataChecksum": "<checksum field of backup.json>",
        "assets": [
            {"assetId": "...", "path": "assets/<assetId>.bin", "bytes": 1234,
             "sha256": "...", "mediaType": "image/jpeg",
             "sourceUrl": "https://...", "cachedAt": "..."}
        ],
        "assetsChecksum": "<sha256 of the canonical assets table>"
    }
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from bookvault.backup.checksum import digest_document, is_digest
from bookvault.library.book import format_timestamp, parse_timestamp

# Current schema version written by the exporter
SCHEMA_VERSION = "2.0"

# Older schema versions the validator can migrate
LEGACY_SCHEMA_VERSIONS = ("1.0",)

SUPPORTED_SCHEMA_VERSIONS = (SCHEMA_VERSION, *LEGACY_SCHEMA_VERSIONS)

# Fixed entry names inside a full archive
METADATA_PATH = "backup.json"
MANIFEST_PATH = "manifest.json"
ASSETS_DIR = "assets"

# Key of the embedded digest in the metadata document
CHECKSUM_FIELD = "checksum"


class BackupFormat(str, Enum):
    """Kind of backup artifact."""

    METADATA = "metadata"  # JSON document only
    FULL = "full"  # Zip archive with document, assets and manifest


def asset_path(asset_id: str) -> str:
    """Archive path of the payload for asset_id."""
    return f"{ASSETS_DIR}/{asset_id}.bin"


def document_checksum(document: dict[str, Any]) -> str:
    """
    Compute the checksum of a metadata document.

    The checksum field itself is excluded from the hashed content.

    Args:
        document: Metadata document (with or without a checksum field)

    Returns:
        SHA-256 hex digest
    """
    payload = {k: v for k, v in document.items() if k != CHECKSUM_FIELD}
    return digest_document(payload)


@dataclass(frozen=True)
class AssetEntry:
    """Manifest record for one asset payload in a full archive."""

    asset_id: str
    path: str
    bytes: int
    sha256: str
    media_type: str = "application/octet-stream"
    source_url: str = ""
    cached_at: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AssetEntry:
        """
        Create an entry from its manifest representation.

        Raises:
            ValueError: If a field is missing or has the wrong type
        """
        asset_id = data.get("assetId")
        path = data.get("path")
        size = data.get("bytes")
        sha256 = data.get("sha256")

        if not isinstance(asset_id, str) or not asset_id:
            raise ValueError("Asset entry 'assetId' must be a non-empty string")
        if not isinstance(path, str) or not path:
            raise ValueError(f"Asset {asset_id}: 'path' must be a non-empty string")
        if isinstance(size, bool) or not isinstance(size, int) or size < 0:
            raise ValueError(f"Asset {asset_id}: 'bytes' must be a non-negative int")
        if not is_digest(sha256):
            raise ValueError(f"Asset {asset_id}: 'sha256' must be a hex digest")

        return cls(
            asset_id=asset_id,
            path=path,
            bytes=size,
            sha256=sha256,
            media_type=str(data.get("mediaType") or "application/octet-stream"),
            source_url=str(data.get("sourceUrl") or ""),
            cached_at=str(data.get("cachedAt") or ""),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert the entry to its manifest representation."""
        return {
            "assetId": self.asset_id,
            "path": self.path,
            "bytes": self.bytes,
            "sha256": self.sha256,
            "mediaType": self.media_type,
            "sourceUrl": self.source_url,
            "cachedAt": self.cached_at,
        }


@dataclass
class BackupManifest:
    """
    Versioned, self-describing integrity record of a full archive.

    Attributes:
        schema_version: Schema version of the archive
        created_at: When the archive was built
        metadata_checksum: Checksum of the embedded metadata document
        assets: Per-asset table (length and content hash)
        assets_checksum: Digest of the canonical asset table
    """

    schema_version: str
    created_at: datetime
    metadata_checksum: str
    assets: list[AssetEntry] = field(default_factory=list)
    assets_checksum: str = ""

    @staticmethod
    def compute_assets_checksum(entries: list[AssetEntry]) -> str:
        """Digest of the asset table in its manifest representation."""
        return digest_document([entry.to_dict() for entry in entries])

    @classmethod
    def build(
        cls,
        metadata_checksum: str,
        assets: list[AssetEntry],
        created_at: datetime,
        schema_version: str = SCHEMA_VERSION,
    ) -> BackupManifest:
        """Create a manifest and seal it with the asset table checksum."""
        return cls(
            schema_version=schema_version,
            created_at=created_at,
            metadata_checksum=metadata_checksum,
            assets=list(assets),
            assets_checksum=cls.compute_assets_checksum(assets),
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BackupManifest:
        """
        Create a manifest from its JSON representation.

        Raises:
            ValueError: If the structure is invalid
        """
        schema_version = data.get("schemaVersion")
        metadata_checksum = data.get("metadataChecksum")
        assets = data.get("assets")
        assets_checksum = data.get("assetsChecksum")

        if not isinstance(schema_version, str):
            raise ValueError("Manifest 'schemaVersion' must be a string")
        if not is_digest(metadata_checksum):
            raise ValueError("Manifest 'metadataChecksum' must be a hex digest")
        if not isinstance(assets, list) or not all(
            isinstance(a, dict) for a in assets
        ):
            raise ValueError("Manifest 'assets' must be a list of objects")
        if not is_digest(assets_checksum):
            raise ValueError("Manifest 'assetsChecksum' must be a hex digest")

        return cls(
            schema_version=schema_version,
            created_at=parse_timestamp(data.get("createdAt")),
            metadata_checksum=metadata_checksum,
            assets=[AssetEntry.from_dict(a) for a in assets],
            assets_checksum=assets_checksum,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert the manifest to its JSON representation."""
        return {
            "schemaVersion": self.schema_version,
            "createdAt": format_timestamp(self.created_at),
            "metadataChecksum": self.metadata_checksum,
            "assets": [entry.to_dict() for entry in self.assets],
            "assetsChecksum": self.assets_checksum,
        }

    def entries_by_id(self) -> dict[str, AssetEntry]:
        """Asset entries keyed by asset id."""
        return {entry.asset_id: entry for entry in self.assets}
