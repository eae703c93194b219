"""
Tests for the library data model.

Tests Book, BookList, Asset and LibrarySnapshot conversion, dedup keys
and content hashing.
"""

from datetime import datetime, timezone

import pytest

from bookvault.library import Asset, Book, BookList, LibrarySnapshot, ReadingStatus
from bookvault.library.book import format_timestamp, parse_timestamp

CREATED = datetime(2025, 3, 1, 9, 30, tzinfo=timezone.utc)
UPDATED = datetime(2025, 6, 15, 18, 0, tzinfo=timezone.utc)


def make_book(**overrides) -> Book:
    """Create a fully populated book."""
    fields = {
        "id": "b1",
        "title": "Dune",
        "author": "Frank Herbert",
        "isbn": "0-441-01359-7",
        "publisher": "Ace",
        "publish_date": "1965",
        "cover": "https://covers.example.com/dune.jpg",
        "cover_asset_id": None,
        "categories": ["Science Fiction"],
        "tags": ["classic"],
        "status": ReadingStatus.READ,
        "recommendation": "Start here",
        "notes": "Reread in 2024",
        "source": ["openlibrary"],
        "created_at": CREATED,
        "updated_at": UPDATED,
    }
    fields.update(overrides)
    return Book(**fields)


class TestTimestamps:
    """Tests for timestamp parsing and formatting."""

    def test_parse_zulu_suffix(self):
        """A trailing Z is treated as UTC."""
        assert parse_timestamp("2025-03-01T09:30:00Z") == CREATED

    def test_parse_naive_assumes_utc(self):
        """Naive timestamps are assumed to be UTC."""
        assert parse_timestamp("2025-03-01T09:30:00").tzinfo == timezone.utc

    def test_parse_invalid_raises(self):
        """Unparseable values raise ValueError."""
        with pytest.raises(ValueError):
            parse_timestamp("yesterday")
        with pytest.raises(ValueError):
            parse_timestamp(None)

    def test_format_roundtrip(self):
        """Formatted timestamps parse back to the same instant."""
        assert parse_timestamp(format_timestamp(UPDATED)) == UPDATED


class TestBookConversion:
    """Tests for Book.from_dict / Book.to_dict."""

    def test_to_dict_uses_camel_case_keys(self):
        """The document form uses camelCase keys."""
        data = make_book().to_dict()
        assert data["publishDate"] == "1965"
        assert data["coverAssetId"] is None
        assert data["createdAt"] == "2025-03-01T09:30:00+00:00"
        assert data["status"] == "read"

    def test_from_dict_inverts_to_dict(self):
        """from_dict(to_dict(b)) reproduces the book."""
        book = make_book(cover_asset_id="a" * 64)
        assert Book.from_dict(book.to_dict()) == book

    def test_from_dict_defaults_optional_fields(self):
        """Missing optional fields get their defaults."""
        book = Book.from_dict(
            {"id": "x", "title": "Solaris", "createdAt": "2025-01-01T00:00:00Z"}
        )
        assert book.author == ""
        assert book.categories == []
        assert book.status == ReadingStatus.WANT
        assert book.updated_at == book.created_at

    def test_from_dict_rejects_missing_id(self):
        """A book without an id is invalid."""
        with pytest.raises(ValueError, match="id"):
            Book.from_dict({"title": "Dune", "createdAt": "2025-01-01T00:00:00Z"})

    def test_from_dict_rejects_bad_list_field(self):
        """List fields must contain strings."""
        with pytest.raises(ValueError, match="tags"):
            Book.from_dict(
                {
                    "id": "x",
                    "title": "Dune",
                    "tags": "classic",
                    "createdAt": "2025-01-01T00:00:00Z",
                }
            )

    def test_from_dict_rejects_unknown_status(self):
        """Status must be a known reading status."""
        with pytest.raises(ValueError):
            Book.from_dict(
                {
                    "id": "x",
                    "title": "Dune",
                    "status": "abandoned",
                    "createdAt": "2025-01-01T00:00:00Z",
                }
            )


class TestBookKeys:
    """Tests for dedup keys and content hashing."""

    def test_isbn_key_normalizes_isbn10(self):
        """ISBN-10 and ISBN-13 forms share a key."""
        assert make_book(isbn="0441013597").isbn_key() == "9780441013593"
        assert make_book(isbn="978-0-441-01359-3").isbn_key() == "9780441013593"

    def test_isbn_key_empty_without_isbn(self):
        """Books without an ISBN have an empty key."""
        assert make_book(isbn="").isbn_key() == ""

    def test_title_author_key_ignores_case_and_spacing(self):
        """Title/author keys are case- and whitespace-insensitive."""
        a = make_book(title="DUNE", author="  frank   herbert")
        b = make_book(title="Dune", author="Frank Herbert")
        assert a.title_author_key() == b.title_author_key()

    def test_content_hash_ignores_id_and_timestamps(self):
        """Same content from two libraries hashes identically."""
        a = make_book()
        b = make_book(
            id="other",
            created_at=datetime(2020, 1, 1, tzinfo=timezone.utc),
            updated_at=datetime(2021, 1, 1, tzinfo=timezone.utc),
        )
        assert a.content_hash() == b.content_hash()

    def test_content_hash_changes_with_notes(self):
        """User-visible fields affect the hash."""
        assert make_book().content_hash() != make_book(notes="").content_hash()


class TestBookList:
    """Tests for BookList conversion."""

    def test_roundtrip(self):
        """from_dict(to_dict(l)) reproduces the list."""
        book_list = BookList(
            id="l1",
            name="Favorites",
            book_ids=["b1", "b2"],
            description="Best of",
            created_at=CREATED,
            updated_at=UPDATED,
        )
        data = book_list.to_dict()
        assert data["bookIds"] == ["b1", "b2"]
        assert BookList.from_dict(data) == book_list

    def test_rejects_empty_name(self):
        """List names must be non-empty."""
        with pytest.raises(ValueError, match="name"):
            BookList.from_dict(
                {"id": "l1", "name": "", "createdAt": "2025-01-01T00:00:00Z"}
            )


class TestAssetAndSnapshot:
    """Tests for Asset and LibrarySnapshot."""

    def test_asset_id_is_content_hash(self):
        """Asset ids are the SHA-256 of the payload."""
        asset = Asset.from_bytes(b"abc", media_type="image/jpeg")
        assert asset.asset_id == (
            "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"
        )
        assert asset.size == 3

    def test_snapshot_lookups(self):
        """Snapshots expose ids and names."""
        snapshot = LibrarySnapshot(
            books=[make_book()],
            book_lists=[BookList(id="l1", name="Favorites")],
        )
        assert snapshot.book_ids() == {"b1"}
        assert snapshot.list_names() == {"Favorites"}
        assert snapshot.find_list_by_name("Favorites").id == "l1"
        assert snapshot.find_list_by_name("favorites") is None
