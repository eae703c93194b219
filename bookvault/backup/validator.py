"""
Backup validator.

Parses an incoming artifact (metadata JSON document or full zip archive),
checks its structure, schema version and every digest, and produces a
fully validated in-memory data set. Any failure raises a BackupError with
exactly one BackupErrorCode; validation never writes anywhere and has no
partial-success state.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from bookvault.backup.checksum import digest
from bookvault.backup.container import (
    ArchiveEntryCorruptError,
    ArchiveReader,
    ZipArchiveReader,
    looks_like_zip,
)
from bookvault.backup.errors import ArchiveError, BackupError, BackupErrorCode
from bookvault.backup.manifest import (
    CHECKSUM_FIELD,
    MANIFEST_PATH,
    METADATA_PATH,
    SCHEMA_VERSION,
    SUPPORTED_SCHEMA_VERSIONS,
    BackupFormat,
    BackupManifest,
    asset_path,
    document_checksum,
)
from bookvault.library.asset import Asset
from bookvault.library.book import Book, format_timestamp, parse_timestamp
from bookvault.library.book_list import BookList

logger = logging.getLogger(__name__)


@dataclass
class ValidatedDataSet:
    """
    Library contents recovered from a verified backup artifact.

    Attributes:
        format: Artifact format (metadata or full)
        schema_version: Schema version as written in the artifact
        generated_at: When the artifact was generated
        checksum: Verified metadata checksum
        books: Books in document order
        book_lists: Book lists in document order
        categories: Category vocabulary
        assets: Verified asset payloads keyed by asset id (full archives only)
    """

    format: BackupFormat
    schema_version: str
    generated_at: datetime
    checksum: str
    books: list[Book] = field(default_factory=list)
    book_lists: list[BookList] = field(default_factory=list)
    categories: list[str] = field(default_factory=list)
    assets: dict[str, Asset] = field(default_factory=dict)


def _reject_constant(name: str) -> Any:
    raise ValueError(f"Non-standard JSON constant: {name}")


def _ms_to_iso(value: Any) -> Any:
    """Convert a millisecond epoch timestamp to ISO-8601; pass others through."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return format_timestamp(datetime.fromtimestamp(value / 1000, tz=timezone.utc))
    return value


def _migrate_v1_to_v2(document: dict[str, Any]) -> dict[str, Any]:
    """
    Upgrade a schema 1.0 document.

    Schema 1.0 stored timestamps as millisecond epochs (books used
    "addedAt" instead of "createdAt") and allowed "source" to be a
    single string.
    """
    books = []
    for raw in document["books"]:
        book = dict(raw)
        created = book.pop("addedAt", book.get("createdAt"))
        book["createdAt"] = _ms_to_iso(created)
        book["updatedAt"] = _ms_to_iso(book.get("updatedAt", created))
        if isinstance(book.get("source"), str):
            book["source"] = [book["source"]] if book["source"] else []
        books.append(book)

    book_lists = []
    for raw in document["bookLists"]:
        book_list = dict(raw)
        book_list["createdAt"] = _ms_to_iso(book_list.get("createdAt"))
        book_list["updatedAt"] = _ms_to_iso(
            book_list.get("updatedAt", book_list.get("createdAt"))
        )
        book_lists.append(book_list)

    return {
        **document,
        "schemaVersion": "2.0",
        "books": books,
        "bookLists": book_lists,
    }


# Migration step per legacy schema version
MIGRATIONS: dict[str, Callable[[dict[str, Any]], dict[str, Any]]] = {
    "1.0": _migrate_v1_to_v2,
}


class BackupValidator:
    """
    Validates backup artifacts and rebuilds their data set.

    Usage:
        validator = BackupValidator()
        try:
            dataset = validator.validate(artifact_bytes)
        except BackupError as e:
            print(e.code.value, e.details)
    """

    def __init__(
        self, reader_factory: Optional[Callable[[bytes], ArchiveReader]] = None
    ):
        """
        Initialize the validator.

        Args:
            reader_factory: Opens archive bytes (defaults to the zip reader)
        """
        self.reader_factory = reader_factory or ZipArchiveReader

    # =========================================================================
    # Entry points
    # =========================================================================

    def validate(self, artifact: bytes) -> ValidatedDataSet:
        """
        Validate an artifact, detecting its container from the content.

        Args:
            artifact: Raw artifact bytes

        Returns:
            ValidatedDataSet

        Raises:
            BackupError: On any validation failure
        """
        if not artifact:
            raise BackupError(BackupErrorCode.ARCHIVE_MISSING, "empty artifact")
        if looks_like_zip(artifact):
            return self.validate_archive(artifact)
        return self.validate_metadata(artifact)

    def validate_file(self, path: Path | str) -> ValidatedDataSet:
        """
        Read and validate an artifact from disk.

        Raises:
            BackupError: archive-missing when the file is absent or empty,
                otherwise as validate()
        """
        path = Path(path)
        try:
            data = path.read_bytes()
        except OSError as e:
            raise BackupError(BackupErrorCode.ARCHIVE_MISSING, str(e)) from e
        if not data:
            raise BackupError(BackupErrorCode.ARCHIVE_MISSING, f"empty file: {path}")
        return self.validate(data)

    def validate_metadata(self, data: bytes) -> ValidatedDataSet:
        """
        Validate a metadata-only JSON document.

        Raises:
            BackupError: On any validation failure
        """
        return self._guarded(lambda: self._validate_metadata(data))

    def validate_archive(self, data: bytes) -> ValidatedDataSet:
        """
        Validate a full archive.

        Raises:
            BackupError: On any validation failure
        """
        return self._guarded(lambda: self._validate_archive(data))

    def _guarded(self, check: Callable[[], ValidatedDataSet]) -> ValidatedDataSet:
        try:
            dataset = check()
        except BackupError as e:
            logger.warning(f"Backup validation failed: {e}")
            raise
        except Exception as e:
            logger.exception("Unexpected failure while validating backup")
            raise BackupError(BackupErrorCode.RESTORE_FAILED, str(e)) from e

        logger.info(
            f"Validated {dataset.format.value} backup "
            f"(schema {dataset.schema_version}): {len(dataset.books)} books, "
            f"{len(dataset.book_lists)} lists, {len(dataset.assets)} assets"
        )
        return dataset

    # =========================================================================
    # Metadata document
    # =========================================================================

    def _validate_metadata(self, data: bytes) -> ValidatedDataSet:
        document = self._check_document(data, BackupFormat.METADATA)
        return self._build_dataset(document)

    def _check_document(self, data: bytes, expected: BackupFormat) -> dict[str, Any]:
        """Run parse, shape, schema, format and checksum checks in order."""
        document = self._parse_json(data, METADATA_PATH)
        self._check_document_shape(document)

        schema_version = document["schemaVersion"]
        if schema_version not in SUPPORTED_SCHEMA_VERSIONS:
            raise BackupError(
                BackupErrorCode.UNSUPPORTED_SCHEMA,
                f"schemaVersion={schema_version}",
            )

        if document["format"] != expected.value:
            raise BackupError(
                BackupErrorCode.INVALID_FORMAT,
                f"expected {expected.value} backup, got {document['format']}",
            )

        if document_checksum(document) != document[CHECKSUM_FIELD]:
            raise BackupError(BackupErrorCode.CHECKSUM_MISMATCH, METADATA_PATH)

        return document

    @staticmethod
    def _parse_json(data: bytes, name: str) -> dict[str, Any]:
        try:
            parsed = json.loads(data.decode("utf-8"), parse_constant=_reject_constant)
        except (UnicodeDecodeError, ValueError) as e:
            raise BackupError(BackupErrorCode.INVALID_JSON, f"{name}: {e}") from e

        if not isinstance(parsed, dict):
            raise BackupError(
                BackupErrorCode.INVALID_STRUCTURE,
                f"{name}: top level must be an object",
            )
        return parsed

    @staticmethod
    def _check_document_shape(document: dict[str, Any]) -> None:
        """Check the top-level fields and element shapes of a document."""

        def fail(reason: str) -> BackupError:
            return BackupError(BackupErrorCode.INVALID_STRUCTURE, reason)

        for key in ("format", "schemaVersion", "generatedAt", CHECKSUM_FIELD):
            if not isinstance(document.get(key), str):
                raise fail(f"'{key}' must be a string")

        books = document.get("books")
        if not isinstance(books, list):
            raise fail("'books' must be a list")
        for index, book in enumerate(books):
            if not isinstance(book, dict):
                raise fail(f"books[{index}] must be an object")
            if not isinstance(book.get("id"), str) or not book["id"]:
                raise fail(f"books[{index}].id must be a non-empty string")
            if not isinstance(book.get("title"), str):
                raise fail(f"books[{index}].title must be a string")

        book_lists = document.get("bookLists")
        if not isinstance(book_lists, list):
            raise fail("'bookLists' must be a list")
        for index, book_list in enumerate(book_lists):
            if not isinstance(book_list, dict):
                raise fail(f"bookLists[{index}] must be an object")
            if not isinstance(book_list.get("id"), str) or not book_list["id"]:
                raise fail(f"bookLists[{index}].id must be a non-empty string")
            if not isinstance(book_list.get("name"), str):
                raise fail(f"bookLists[{index}].name must be a string")
            if not isinstance(book_list.get("bookIds"), list):
                raise fail(f"bookLists[{index}].bookIds must be a list")

        categories = document.get("categories")
        if not isinstance(categories, list) or not all(
            isinstance(c, str) for c in categories
        ):
            raise fail("'categories' must be a list of strings")

    @staticmethod
    def _migrate(document: dict[str, Any]) -> dict[str, Any]:
        while document["schemaVersion"] != SCHEMA_VERSION:
            migration = MIGRATIONS[document["schemaVersion"]]
            logger.debug(f"Migrating backup from schema {document['schemaVersion']}")
            document = migration(document)
        return document

    def _build_dataset(self, document: dict[str, Any]) -> ValidatedDataSet:
        """Migrate a verified document and convert it to model objects."""
        schema_version = document["schemaVersion"]
        migrated = self._migrate(document)

        try:
            books = [Book.from_dict(b) for b in migrated["books"]]
            book_lists = [BookList.from_dict(bl) for bl in migrated["bookLists"]]
            generated_at = parse_timestamp(migrated["generatedAt"])
        except (ValueError, TypeError) as e:
            raise BackupError(BackupErrorCode.INVALID_STRUCTURE, str(e)) from e

        self._check_unique([b.id for b in books], "book id")
        self._check_unique([bl.id for bl in book_lists], "book list id")

        return ValidatedDataSet(
            format=BackupFormat(migrated["format"]),
            schema_version=schema_version,
            generated_at=generated_at,
            checksum=migrated[CHECKSUM_FIELD],
            books=books,
            book_lists=book_lists,
            categories=list(migrated["categories"]),
        )

    @staticmethod
    def _check_unique(values: list[str], label: str) -> None:
        seen: set[str] = set()
        for value in values:
            if value in seen:
                raise BackupError(
                    BackupErrorCode.INVALID_STRUCTURE, f"duplicate {label}: {value}"
                )
            seen.add(value)

    # =========================================================================
    # Full archive
    # =========================================================================

    def _validate_archive(self, data: bytes) -> ValidatedDataSet:
        if not data:
            raise BackupError(BackupErrorCode.ARCHIVE_MISSING, "empty archive")

        try:
            reader = self.reader_factory(data)
        except ArchiveError as e:
            raise BackupError(BackupErrorCode.ARCHIVE_INVALID, str(e)) from e

        for required in (METADATA_PATH, MANIFEST_PATH):
            if not reader.has(required):
                raise BackupError(BackupErrorCode.ARCHIVE_MISSING, required)

        document = self._check_document(
            self._read_container_entry(reader, METADATA_PATH), BackupFormat.FULL
        )
        manifest = self._load_manifest(
            self._read_container_entry(reader, MANIFEST_PATH)
        )

        if manifest.metadata_checksum != document[CHECKSUM_FIELD]:
            raise BackupError(
                BackupErrorCode.CHECKSUM_MISMATCH,
                f"{MANIFEST_PATH} does not match {METADATA_PATH}",
            )

        dataset = self._build_dataset(document)
        dataset.assets = self._verify_assets(reader, manifest, dataset.books)
        return dataset

    @staticmethod
    def _read_container_entry(reader: ArchiveReader, name: str) -> bytes:
        try:
            return reader.read(name)
        except ArchiveEntryCorruptError as e:
            raise BackupError(BackupErrorCode.ARCHIVE_INVALID, str(e)) from e

    def _load_manifest(self, data: bytes) -> BackupManifest:
        raw = self._parse_json(data, MANIFEST_PATH)
        try:
            manifest = BackupManifest.from_dict(raw)
        except (ValueError, TypeError) as e:
            raise BackupError(
                BackupErrorCode.INVALID_STRUCTURE, f"{MANIFEST_PATH}: {e}"
            ) from e

        if manifest.schema_version not in SUPPORTED_SCHEMA_VERSIONS:
            raise BackupError(
                BackupErrorCode.UNSUPPORTED_SCHEMA,
                f"schemaVersion={manifest.schema_version}",
            )
        return manifest

    def _verify_assets(
        self, reader: ArchiveReader, manifest: BackupManifest, books: list[Book]
    ) -> dict[str, Asset]:
        """Check completeness, per-asset digests and the asset table digest."""
        entries = manifest.entries_by_id()

        # Completeness: referenced ids listed, listed payloads present
        for book in books:
            if book.cover_asset_id and book.cover_asset_id not in entries:
                raise BackupError(BackupErrorCode.ASSETS_MISSING, book.cover_asset_id)
        for entry in manifest.assets:
            expected_path = asset_path(entry.asset_id)
            if entry.path != expected_path:
                raise BackupError(
                    BackupErrorCode.INVALID_STRUCTURE,
                    f"{entry.path}: asset {entry.asset_id} must be at {expected_path}",
                )
            if not reader.has(entry.path):
                raise BackupError(BackupErrorCode.ASSETS_MISSING, entry.path)

        payloads: dict[str, bytes] = {}
        for entry in manifest.assets:
            try:
                payload = reader.read(entry.path)
            except ArchiveEntryCorruptError as e:
                raise BackupError(
                    BackupErrorCode.ASSETS_HASH_MISMATCH, entry.path
                ) from e
            if len(payload) != entry.bytes or digest(payload) != entry.sha256:
                raise BackupError(BackupErrorCode.ASSETS_HASH_MISMATCH, entry.path)
            payloads[entry.asset_id] = payload

        if (
            BackupManifest.compute_assets_checksum(manifest.assets)
            != manifest.assets_checksum
        ):
            raise BackupError(BackupErrorCode.ASSETS_CHECKSUM_MISMATCH, MANIFEST_PATH)

        assets: dict[str, Asset] = {}
        for entry in manifest.assets:
            if entry.asset_id != entry.sha256:
                raise BackupError(
                    BackupErrorCode.ASSETS_HASH_MISMATCH,
                    f"{entry.path}: asset id is not its content hash",
                )
            try:
                cached_at = (
                    parse_timestamp(entry.cached_at)
                    if entry.cached_at
                    else manifest.created_at
                )
            except ValueError as e:
                raise BackupError(
                    BackupErrorCode.INVALID_STRUCTURE, f"{entry.path}: {e}"
                ) from e
            assets[entry.asset_id] = Asset(
                asset_id=entry.asset_id,
                data=payloads[entry.asset_id],
                media_type=entry.media_type,
                source_url=entry.source_url,
                cached_at=cached_at,
            )
        return assets
