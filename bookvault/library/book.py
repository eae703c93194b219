"""
Book data model for the library.

Provides the Book representation with methods for:
- Converting to/from the JSON document format used in backups
- Generating dedup keys (normalized ISBN, title/author pair)
- Computing content hashes for identical-record detection
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from bookvault.utils.normalization import normalize_isbn, normalize_text_key


class ReadingStatus(str, Enum):
    """Reading progress of a book."""

    WANT = "want"
    READING = "reading"
    READ = "read"


def utc_now() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> datetime:
    """
    Parse a timestamp from the backup document format.

    Accepts ISO-8601 strings (a trailing "Z" is treated as UTC) and
    datetime instances. Naive values are assumed to be UTC.

    Raises:
        ValueError: If the value is not a parseable timestamp
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    else:
        raise ValueError(f"Invalid timestamp: {value!r}")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_timestamp(value: datetime) -> str:
    """Format a timestamp for the backup document format."""
    return value.isoformat()


def _string_list(value: Any, field_name: str) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ValueError(f"Field '{field_name}' must be a list of strings")
    return list(value)


def _optional_string(value: Any, field_name: str) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"Field '{field_name}' must be a string")
    return value


# Fields combined by the merge resolver, in document order
MERGEABLE_FIELDS = (
    "isbn",
    "title",
    "author",
    "publisher",
    "publish_date",
    "cover",
    "cover_asset_id",
    "categories",
    "tags",
    "status",
    "source",
)

# Free-text fields combined with the comment merge strategy
COMMENT_FIELDS = ("notes", "recommendation")


@dataclass
class Book:
    """
    A book in the library.

    Attributes:
        id: Opaque unique identifier, immutable once assigned
        isbn: ISBN as entered (may be empty)
        title: Book title
        author: Author name(s)
        publisher: Publisher name
        publish_date: Publication date as free text (e.g. "1965" or "1965-08")
        cover: URL of the cover image
        cover_asset_id: Content id of the cached cover image asset
        categories: Category names assigned to the book
        tags: Free-form tags
        status: Reading status
        recommendation: Free-text recommendation
        notes: Free-text notes
        source: Provenance list (which catalogs supplied the data)
        created_at: When the book was added
        updated_at: When the book was last modified

    Usage:
        book = Book.from_dict(document["books"][0])
        key = book.isbn_key() or book.title_author_key()
        data = book.to_dict()
    """

    id: str
    title: str
    author: str = ""
    isbn: str = ""
    publisher: str = ""
    publish_date: str = ""
    cover: str = ""
    cover_asset_id: Optional[str] = None
    categories: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    status: ReadingStatus = ReadingStatus.WANT
    recommendation: str = ""
    notes: str = ""
    source: list[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Book:
        """
        Create a Book from its backup document representation.

        Args:
            data: Dictionary with camelCase keys as written by to_dict()

        Returns:
            Book instance

        Raises:
            ValueError: If a field has the wrong type or value
        """
        book_id = data.get("id")
        title = data.get("title")
        if not isinstance(book_id, str) or not book_id:
            raise ValueError("Book 'id' must be a non-empty string")
        if not isinstance(title, str):
            raise ValueError(f"Book {book_id}: 'title' must be a string")

        cover_asset_id = data.get("coverAssetId")
        if cover_asset_id is not None and not isinstance(cover_asset_id, str):
            raise ValueError(f"Book {book_id}: 'coverAssetId' must be a string")

        created_at = parse_timestamp(data.get("createdAt"))
        updated_at = parse_timestamp(data.get("updatedAt", data.get("createdAt")))

        return cls(
            id=book_id,
            title=title,
            author=_optional_string(data.get("author"), "author"),
            isbn=_optional_string(data.get("isbn"), "isbn"),
            publisher=_optional_string(data.get("publisher"), "publisher"),
            publish_date=_optional_string(data.get("publishDate"), "publishDate"),
            cover=_optional_string(data.get("cover"), "cover"),
            cover_asset_id=cover_asset_id or None,
            categories=_string_list(data.get("categories"), "categories"),
            tags=_string_list(data.get("tags"), "tags"),
            status=ReadingStatus(data.get("status", ReadingStatus.WANT.value)),
            recommendation=_optional_string(
                data.get("recommendation"), "recommendation"
            ),
            notes=_optional_string(data.get("notes"), "notes"),
            source=_string_list(data.get("source"), "source"),
            created_at=created_at,
            updated_at=updated_at,
        )

    def to_dict(self) -> dict[str, Any]:
        """
        Convert the book to its backup document representation.

        Returns:
            Dictionary with camelCase keys, JSON-serializable
        """
        return {
            "id": self.id,
            "isbn": self.isbn,
            "title": self.title,
            "author": self.author,
            "publisher": self.publisher,
            "publishDate": self.publish_date,
            "cover": self.cover,
            "coverAssetId": self.cover_asset_id,
            "categories": list(self.categories),
            "tags": list(self.tags),
            "status": self.status.value,
            "recommendation": self.recommendation,
            "notes": self.notes,
            "source": list(self.source),
            "createdAt": format_timestamp(self.created_at),
            "updatedAt": format_timestamp(self.updated_at),
        }

    def isbn_key(self) -> str:
        """
        Primary dedup key: the normalized ISBN.

        Returns:
            Normalized ISBN-13 (or cleaned ISBN), empty when no ISBN is set
        """
        return normalize_isbn(self.isbn)

    def title_author_key(self) -> tuple[str, str]:
        """
        Secondary dedup key: case- and whitespace-insensitive title and author.

        Returns:
            Tuple of (normalized title, normalized author)
        """
        return (normalize_text_key(self.title), normalize_text_key(self.author))

    def content_hash(self) -> str:
        """
        Generate a hash of the book's content for identical-record detection.

        Excludes the id and both timestamps, so the same book exported from
        two different libraries hashes identically.

        Returns:
            SHA-256 hash string of book content
        """
        content_parts = [
            f"isbn:{self.isbn_key()}",
            f"title:{self.title}",
            f"author:{self.author}",
            f"publisher:{self.publisher}",
            f"publish_date:{self.publish_date}",
            f"cover:{self.cover}",
            f"cover_asset_id:{self.cover_asset_id or ''}",
            f"categories:{','.join(sorted(self.categories))}",
            f"tags:{','.join(sorted(self.tags))}",
            f"status:{self.status.value}",
            f"recommendation:{self.recommendation}",
            f"notes:{self.notes}",
            f"source:{','.join(sorted(self.source))}",
        ]

        content_string = "\n".join(content_parts)
        return hashlib.sha256(content_string.encode("utf-8")).hexdigest()

    def __repr__(self) -> str:
        """Return a readable string representation."""
        return (
            f"Book(id={self.id!r}, title={self.title!r}, "
            f"author={self.author!r}, isbn={self.isbn!r})"
        )
